"""Local state-machine runtime executing one copy-out job."""

import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, cast

from ..core.error_handling import call_with_retry
from ..core.exceptions import ExecutionTimeoutError
from ..core.logging_config import get_logger
from ..core.models import FailureReason, JobStatus
from ..core.observability import LogContext, MetricsCollector, StructuredLogger
from .states import ExecutionContext, StateDefinition, StateHandler, StateKind, StateName
from .timers import ExecutionTimer


@dataclass
class ExecutionResult:
    status: JobStatus
    context: ExecutionContext
    final_state: StateName
    reason: Optional[FailureReason] = None
    error: Optional[BaseException] = None
    history: List[StateName] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.status == JobStatus.SUCCEEDED


class WorkflowEngine:
    """
    Runs states one at a time from `start_at` until a terminal state.

    For a task state, the state's retry policies are applied first; if the
    error survives them, the first matching catcher decides the next state
    and the failure reason. An error nothing catches fails the execution
    with reason ERROR. Every wait goes through the execution timer, and the
    deadline is checked before each state and before each fan-out item is
    started, so a job never outlives its timeout by more than the items
    already running.
    """

    def __init__(
        self,
        states: Dict[StateName, StateDefinition],
        start_at: StateName,
        logger: Optional[StructuredLogger] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        if start_at not in states:
            raise ValueError(f"Start state {start_at.value} is not defined")
        for state in states.values():
            if state.terminal:
                continue
            if state.next_state is None or (state.kind == StateKind.TASK and state.handler is None):
                raise ValueError(f"State {state.name.value} is incomplete; build it with build_transition_table")
        self._states = states
        self._start_at = start_at
        self._logger = logger or StructuredLogger("copy-out.engine")
        self.metrics = metrics or MetricsCollector()

    def run(self, context: ExecutionContext, timer: ExecutionTimer) -> ExecutionResult:
        log_context = LogContext(correlation_id=context.execution_id, component="engine")
        history: List[StateName] = []
        current = self._start_at

        while True:
            state = self._states[current]
            state_context = log_context.with_operation(state.name.value)

            try:
                timer.check()
            except ExecutionTimeoutError as e:
                self._logger.error(f"Timed out before entering {state.name.value}", state_context)
                return self._failed(context, history, state.name, FailureReason.TIMED_OUT, e)

            history.append(state.name)
            self._logger.info("Entering state", state_context, kind=state.kind.value)

            if state.kind == StateKind.SUCCEED:
                self._logger.info("Execution succeeded", state_context)
                return ExecutionResult(
                    status=JobStatus.SUCCEEDED,
                    context=context,
                    final_state=state.name,
                    history=history,
                )

            if state.kind == StateKind.FAIL:
                reason = context.failure_reason or FailureReason.ERROR
                self._logger.error(f"Execution failed: {context.error}", state_context, reason=reason.value)
                return self._failed(context, history, state.name, reason, context.error)

            started = time.time()
            try:
                if state.kind == StateKind.WAIT:
                    timer.sleep(state.wait_seconds)
                else:
                    handler = cast(StateHandler, state.handler)
                    call_with_retry(
                        lambda: handler(context),
                        state.retry,
                        sleep=timer.sleep,
                        logger=get_logger("copy-out.engine"),
                        description=state.name.value,
                    )
            except ExecutionTimeoutError as e:
                self.metrics.record_visit(state.name.value, started, success=False, error_message=str(e))
                self._logger.error("Timed out", state_context)
                return self._failed(context, history, state.name, FailureReason.TIMED_OUT, e)
            except Exception as e:
                self.metrics.record_visit(state.name.value, started, success=False, error_message=str(e))
                catcher = next((c for c in state.catch if c.matches(e)), None)
                if catcher is None:
                    self._logger.error(
                        f"Unhandled {type(e).__name__}: {e}", state_context
                    )
                    return self._failed(context, history, state.name, FailureReason.ERROR, e)

                self._logger.warning(
                    f"Caught {type(e).__name__}: {e}",
                    state_context,
                    next_state=catcher.next_state.value,
                )
                context.error = e
                context.failure_reason = catcher.reason
                current = catcher.next_state
                continue

            self.metrics.record_visit(state.name.value, started, success=True)
            current = cast(StateName, state.next_state)

    @staticmethod
    def _failed(
        context: ExecutionContext,
        history: List[StateName],
        final_state: StateName,
        reason: FailureReason,
        error: Optional[BaseException],
    ) -> ExecutionResult:
        context.failure_reason = reason
        context.error = error
        return ExecutionResult(
            status=JobStatus.FAILED,
            context=context,
            final_state=final_state,
            reason=reason,
            error=error,
            history=history,
        )
