"""Execution-scoped log context and per-state visit metrics."""

import logging
import threading
import time
import uuid
from collections import defaultdict
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

from .logging_config import get_logger


@dataclass(frozen=True)
class LogContext:
    """Identifies which execution, state and component a log line belongs to."""

    correlation_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    operation: str = ""
    component: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)

    def with_operation(self, operation: str) -> "LogContext":
        return replace(self, operation=operation, metadata=dict(self.metadata))

    def prefix(self) -> str:
        parts = [self.correlation_id]
        if self.operation:
            parts.append(self.operation)
        if self.component:
            parts.append(self.component)
        return "".join(f"[{p}]" for p in parts)


def _render_fields(fields: Dict[str, Any]) -> str:
    return ", ".join(f"{k}={v}" for k, v in fields.items())


class StructuredLogger:
    """
    Wraps a stdlib logger so that every message carries its LogContext.

    A line logged as `info("Entering state", ctx, kind="task")` renders as
    `[exec-1][CanWrite][engine] Entering state (kind=task)`.
    """

    def __init__(self, name: str = "copy-out"):
        self._logger = get_logger(name)

    def _log(self, level: int, message: str, context: Optional[LogContext], fields: Dict[str, Any]) -> None:
        if not self._logger.isEnabledFor(level):
            return
        if context is not None:
            fields = {**context.metadata, **fields}
            message = f"{context.prefix()} {message}"
        if fields:
            message = f"{message} ({_render_fields(fields)})"
        self._logger.log(level, message)

    def debug(self, message: str, context: Optional[LogContext] = None, **kwargs):
        self._log(logging.DEBUG, message, context, kwargs)

    def info(self, message: str, context: Optional[LogContext] = None, **kwargs):
        self._log(logging.INFO, message, context, kwargs)

    def warning(self, message: str, context: Optional[LogContext] = None, **kwargs):
        self._log(logging.WARNING, message, context, kwargs)

    def error(self, message: str, context: Optional[LogContext] = None, **kwargs):
        self._log(logging.ERROR, message, context, kwargs)


@dataclass
class StateMetrics:
    """Timing of one visit to a workflow state."""

    state: str
    start_time: float
    end_time: float
    success: bool
    error_message: Optional[str] = None

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time


def _summarise(visits: List[StateMetrics]) -> Dict[str, Any]:
    durations = [v.duration for v in visits]
    ok = sum(1 for v in visits if v.success)
    return {
        "total_visits": len(visits),
        "successful_visits": ok,
        "failed_visits": len(visits) - ok,
        "success_rate": ok / len(visits),
        "avg_duration": sum(durations) / len(durations),
        "max_duration": max(durations),
        "total_duration": sum(durations),
    }


class MetricsCollector:
    """Per-state visit timings for one or more executions. Thread-safe."""

    def __init__(self):
        self._visits: List[StateMetrics] = []
        self._lock = threading.Lock()

    def record_visit(
        self, state: str, start_time: float, success: bool, error_message: Optional[str] = None
    ) -> None:
        visit = StateMetrics(
            state=state,
            start_time=start_time,
            end_time=time.time(),
            success=success,
            error_message=error_message,
        )
        with self._lock:
            self._visits.append(visit)

    def get_metrics(self, state: Optional[str] = None) -> List[StateMetrics]:
        with self._lock:
            return [v for v in self._visits if state is None or v.state == state]

    def get_summary(self, state: Optional[str] = None) -> Dict[str, Any]:
        """Summary statistics for all visits, or for one state; empty when nothing was recorded."""
        visits = self.get_metrics(state)
        return _summarise(visits) if visits else {}

    def by_state(self) -> Dict[str, Dict[str, Any]]:
        """One summary per visited state, e.g. how often CanWrite was retried."""
        grouped: Dict[str, List[StateMetrics]] = defaultdict(list)
        for visit in self.get_metrics():
            grouped[visit.state].append(visit)
        return {state: _summarise(visits) for state, visits in grouped.items()}
