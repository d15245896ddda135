"""State-machine runtime and the copy-out job definition."""

from .states import CatchPolicy, ExecutionContext, StateDefinition, StateKind, StateName, build_transition_table
from .timers import ExecutionTimer
from .engine import ExecutionResult, WorkflowEngine
from .fanout import DistributedMap, MapResult
from .orchestrator import CopyOutOrchestrator

__all__ = [
    "StateName",
    "StateKind",
    "StateDefinition",
    "CatchPolicy",
    "ExecutionContext",
    "build_transition_table",
    "ExecutionTimer",
    "WorkflowEngine",
    "ExecutionResult",
    "DistributedMap",
    "MapResult",
    "CopyOutOrchestrator",
]
