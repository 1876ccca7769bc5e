"""Core data contracts for replayflow deciders and activity workers."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_ACTIVITY_VERSION = "1.0.0"
DEFAULT_WORKFLOW_VERSION = "1.0.0"


class OperationKind(str, Enum):
    """Kinds of named external operations a workflow can wait on."""

    ACTIVITY = "activity"
    TIMER = "timer"
    CHILD_WORKFLOW = "child_workflow"
    SIGNAL = "signal"


class OperationState(str, Enum):
    """Derived state of one operation, computed afresh from history."""

    UNSCHEDULED = "unscheduled"
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    FAILED = "failed"


class EventType(str, Enum):
    """Normalized history event types understood by ``EventHistory``."""

    WORKFLOW_STARTED = "workflow_started"
    SCHEDULED = "scheduled"
    SCHEDULE_FAILED = "schedule_failed"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELED = "canceled"
    SIGNALED = "signaled"


class HistoryEvent(BaseModel):
    """One entry of an execution's append-only event history."""

    model_config = ConfigDict(frozen=True)

    event_id: int
    event_type: EventType
    kind: Optional[OperationKind] = None
    name: Optional[str] = None
    payload: Any = None
    reason: Optional[str] = None
    details: Any = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class DecisionType(str, Enum):
    """Outgoing instruction types accumulated in a decision batch."""

    SCHEDULE_ACTIVITY = "schedule_activity"
    START_TIMER = "start_timer"
    START_CHILD_WORKFLOW = "start_child_workflow"
    COMPLETE_WORKFLOW = "complete_workflow"
    FAIL_WORKFLOW = "fail_workflow"
    NO_DECISION = "no_decision"


TERMINAL_DECISIONS = frozenset(
    {DecisionType.COMPLETE_WORKFLOW, DecisionType.FAIL_WORKFLOW}
)


class Decision(BaseModel):
    """A single instruction sent back to the orchestration service."""

    decision_type: DecisionType
    name: Optional[str] = None
    input: Any = None
    delay_seconds: Optional[float] = None
    options: Dict[str, Any] = Field(default_factory=dict)
    result: Any = None
    reason: Optional[str] = None
    details: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.decision_type in TERMINAL_DECISIONS


class ActivityOptions(BaseModel):
    """Scheduling options attached to a ``schedule_activity`` decision."""

    version: str = DEFAULT_ACTIVITY_VERSION
    task_list: Optional[str] = None
    schedule_to_start_timeout: Optional[int] = None
    start_to_close_timeout: Optional[int] = None
    schedule_to_close_timeout: Optional[int] = None
    heartbeat_timeout: Optional[int] = None
    extra: Dict[str, Any] = Field(default_factory=dict)


class ChildWorkflowOptions(BaseModel):
    """Scheduling options attached to a ``start_child_workflow`` decision."""

    version: str = DEFAULT_WORKFLOW_VERSION
    task_list: Optional[str] = None
    execution_start_to_close_timeout: Optional[int] = None
    task_start_to_close_timeout: Optional[int] = None
    child_policy: Optional[str] = None
    extra: Dict[str, Any] = Field(default_factory=dict)


class DecisionTask(BaseModel):
    """One opportunity to replay a workflow against its current history."""

    task_token: str
    workflow_id: str
    run_id: Optional[str] = None
    workflow_type: Optional[str] = None
    events: List[HistoryEvent] = Field(default_factory=list)


class ActivityTask(BaseModel):
    """One opportunity to execute a single named unit of work."""

    task_token: str
    activity_id: str
    name: str
    version: Optional[str] = None
    raw_input: Optional[str] = None
    workflow_id: Optional[str] = None


def parse_payload(raw: Optional[str]) -> Any:
    """Decode a wire payload, falling back to the raw text when not JSON."""
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        return raw


def dump_payload(value: Any) -> Optional[str]:
    """Encode ``value`` as JSON for the wire."""
    if value is None:
        return None
    return json.dumps(value, default=str)
