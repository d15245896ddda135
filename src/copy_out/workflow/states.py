"""State definitions and the transition table of a copy-out execution."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Type, Union

from ..core.error_handling import RetryPolicy
from ..core.models import (
    CopyBatch,
    FailureReason,
    JobDefaults,
    JobInput,
    JobParameters,
    ManifestRow,
    ResultWriterDetails,
    SummaryEntry,
)


class StateName(str, Enum):
    DEFINE_DEFAULTS = "DefineDefaults"
    APPLY_DEFAULTS = "ApplyDefaults"
    CAN_WRITE = "CanWrite"
    WAIT_FOR_WRITABLE = "WaitForWritable"
    THAW_ALL = "ThawAll"
    COPY_ALL = "CopyAll"
    SUMMARISE = "Summarise"
    SUCCEED = "Succeed"
    FAIL = "Fail"


class StateKind(str, Enum):
    TASK = "Task"
    WAIT = "Wait"
    SUCCEED = "Succeed"
    FAIL = "Fail"


@dataclass
class ExecutionContext:
    """Data flowing between the states of one execution."""

    execution_id: str
    job_input: Union[JobInput, Dict[str, Any]]
    defaults: Optional[JobDefaults] = None
    params: Optional[JobParameters] = None
    rows: List[ManifestRow] = field(default_factory=list)
    batches: List[CopyBatch] = field(default_factory=list)
    start_marker_key: Optional[str] = None
    result_writer_details: Optional[ResultWriterDetails] = None
    summary: List[SummaryEntry] = field(default_factory=list)
    error: Optional[BaseException] = None
    failure_reason: Optional[FailureReason] = None

    def require(self, attribute: str) -> Any:
        """Value a previous state must have produced; RuntimeError if it never ran."""
        value = getattr(self, attribute)
        if value is None:
            raise RuntimeError(f"Execution {self.execution_id} has no {attribute} yet")
        return value


StateHandler = Callable[[ExecutionContext], None]


@dataclass(frozen=True)
class CatchPolicy:
    """Route matching errors to `next_state` instead of failing the execution."""

    errors: Tuple[Type[BaseException], ...]
    next_state: StateName
    reason: Optional[FailureReason] = None

    def matches(self, exc: BaseException) -> bool:
        return isinstance(exc, self.errors)


@dataclass(frozen=True)
class StateDefinition:
    name: StateName
    kind: StateKind
    handler: Optional[StateHandler] = None
    next_state: Optional[StateName] = None
    retry: Tuple[RetryPolicy, ...] = ()
    catch: Tuple[CatchPolicy, ...] = ()
    wait_seconds: float = 0.0

    @property
    def terminal(self) -> bool:
        return self.kind in (StateKind.SUCCEED, StateKind.FAIL)


def build_transition_table(states: Sequence[StateDefinition]) -> Dict[StateName, StateDefinition]:
    """
    Index states by name, checking that the graph is closed.

    Raises:
        ValueError: duplicate states, dangling transitions, a task without a
            handler, or a terminal state with an outgoing transition
    """
    table: Dict[StateName, StateDefinition] = {}
    for state in states:
        if state.name in table:
            raise ValueError(f"State {state.name.value} is defined twice")
        table[state.name] = state

    for state in states:
        if state.terminal:
            if state.next_state is not None or state.catch:
                raise ValueError(f"Terminal state {state.name.value} cannot transition")
            continue
        if state.next_state is None:
            raise ValueError(f"State {state.name.value} has no next state")
        if state.kind == StateKind.TASK and state.handler is None:
            raise ValueError(f"Task state {state.name.value} has no handler")
        targets = [state.next_state] + [c.next_state for c in state.catch]
        for target in targets:
            if target not in table:
                raise ValueError(f"State {state.name.value} transitions to undefined {target.value}")

    return table
