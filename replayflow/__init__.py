"""replayflow: Deterministic replay of workflows written as ordinary async code."""

from .contracts import (
    ActivityOptions,
    ActivityTask,
    ChildWorkflowOptions,
    Decision,
    DecisionTask,
    DecisionType,
    EventType,
    HistoryEvent,
    OperationKind,
    OperationState,
)
from .decisions import DecisionBatch, DecisionSink
from .errors import OperationFailed, PayloadTooLarge, ReplayflowError, UnknownActivityError
from .execute import ActivityExecutor, ExecutionHandle
from .history import EventHistory, HistoryQuery
from .operations import WorkflowContext
from .registry import ActivityRegistry, WorkflowRegistry, activity, workflow
from .replay import ReplayOutcome, WorkflowReplayer, run_decision_task
from .transports import get_service_client
from .worker import ActivityWorker, Decider

__version__ = "0.1.0"
__all__ = [
    "ActivityExecutor",
    "ActivityOptions",
    "ActivityRegistry",
    "ActivityTask",
    "ActivityWorker",
    "ChildWorkflowOptions",
    "Decider",
    "Decision",
    "DecisionBatch",
    "DecisionSink",
    "DecisionTask",
    "DecisionType",
    "EventHistory",
    "EventType",
    "ExecutionHandle",
    "HistoryEvent",
    "HistoryQuery",
    "OperationFailed",
    "OperationKind",
    "OperationState",
    "PayloadTooLarge",
    "ReplayOutcome",
    "ReplayflowError",
    "UnknownActivityError",
    "WorkflowContext",
    "WorkflowRegistry",
    "WorkflowReplayer",
    "activity",
    "get_service_client",
    "run_decision_task",
    "workflow",
]
