"""Read-only query facade over one execution's event history."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Protocol, Tuple

from .contracts import EventType, HistoryEvent, OperationKind, OperationState

_FAILURE_EVENTS = frozenset(
    {
        EventType.FAILED,
        EventType.SCHEDULE_FAILED,
        EventType.TIMED_OUT,
        EventType.CANCELED,
    }
)

_STATE_BY_EVENT = {
    EventType.SCHEDULED: OperationState.SCHEDULED,
    EventType.COMPLETED: OperationState.COMPLETED,
    EventType.SIGNALED: OperationState.COMPLETED,
    **{event_type: OperationState.FAILED for event_type in _FAILURE_EVENTS},
}


class HistoryQuery(Protocol):
    """Typed point queries over an execution history.

    Every method is a pure function of the history delivered with the
    current decision task.
    """

    def workflow_input(self) -> Any:
        """Return the decoded input the workflow execution was started with."""

    def state_of(self, kind: OperationKind, name: str) -> OperationState:
        """Return the four-way state of operation ``(kind, name)``."""

    def is_scheduled(self, kind: OperationKind, name: str) -> bool:
        """Return ``True`` once the operation has been scheduled (or settled)."""

    def is_completed(self, kind: OperationKind, name: str) -> bool:
        """Return ``True`` when the operation finished successfully."""

    def is_failed(self, kind: OperationKind, name: str) -> bool:
        """Return ``True`` when the operation finished unsuccessfully."""

    def result_of(self, kind: OperationKind, name: str) -> Any:
        """Return the recorded value, or the failure reason for failed operations."""

    def failure_of(self, kind: OperationKind, name: str) -> Tuple[Optional[str], Any]:
        """Return ``(reason, details)`` recorded for a failed operation."""


class EventHistory(HistoryQuery):
    """``HistoryQuery`` backed by an in-memory list of ``HistoryEvent``s.

    The state of an operation is taken from the latest event recorded for it,
    except for signals where the first arrival wins.
    """

    def __init__(self, events: Iterable[HistoryEvent] = ()) -> None:
        self._events: Tuple[HistoryEvent, ...] = tuple(
            sorted(events, key=lambda event: event.event_id)
        )
        self._latest: Dict[Tuple[OperationKind, str], HistoryEvent] = {}
        self._started: Optional[HistoryEvent] = None

        for event in self._events:
            if event.event_type is EventType.WORKFLOW_STARTED:
                if self._started is None:
                    self._started = event
                continue
            if event.kind is None or event.name is None:
                continue
            key = (event.kind, event.name)
            if event.kind is OperationKind.SIGNAL and key in self._latest:
                continue
            self._latest[key] = event

    @property
    def events(self) -> Tuple[HistoryEvent, ...]:
        return self._events

    def __len__(self) -> int:
        return len(self._events)

    def appended(self, *events: HistoryEvent) -> "EventHistory":
        """Return a new history with ``events`` appended."""
        return EventHistory([*self._events, *events])

    # ------------------------------------------------------------------
    def workflow_input(self) -> Any:
        if self._started is None:
            return None
        return self._started.payload

    def state_of(self, kind: OperationKind, name: str) -> OperationState:
        event = self._latest.get((kind, name))
        if event is None:
            return OperationState.UNSCHEDULED
        return _STATE_BY_EVENT.get(event.event_type, OperationState.UNSCHEDULED)

    def is_scheduled(self, kind: OperationKind, name: str) -> bool:
        return self.state_of(kind, name) is not OperationState.UNSCHEDULED

    def is_completed(self, kind: OperationKind, name: str) -> bool:
        return self.state_of(kind, name) is OperationState.COMPLETED

    def is_failed(self, kind: OperationKind, name: str) -> bool:
        return self.state_of(kind, name) is OperationState.FAILED

    def result_of(self, kind: OperationKind, name: str) -> Any:
        event = self._latest.get((kind, name))
        if event is None:
            return None
        if event.event_type in _FAILURE_EVENTS:
            return event.reason
        return event.payload

    def failure_of(self, kind: OperationKind, name: str) -> Tuple[Optional[str], Any]:
        event = self._latest.get((kind, name))
        if event is None or event.event_type not in _FAILURE_EVENTS:
            return None, None
        reason = event.reason or event.event_type.value
        return reason, event.details

    def to_list(self) -> List[dict]:
        """Dump the history as JSON-compatible dictionaries."""
        return [event.model_dump(mode="json") for event in self._events]
