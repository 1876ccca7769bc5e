"""Operation futures: activities, timers, child workflows and signals.

Each factory on ``WorkflowContext`` runs the same state machine against the
execution history::

    UNSCHEDULED -> emit the schedule instruction, future stays pending
    SCHEDULED   -> future stays pending
    COMPLETED   -> future fulfilled with the recorded value
    FAILED      -> future rejected with ``OperationFailed``

A pending future is never resolved during the decision task that created it.
Progress happens on a later decision task, once new history has arrived and
the workflow is replayed from the top.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from .contracts import (
    ActivityOptions,
    ChildWorkflowOptions,
    OperationKind,
    OperationState,
)
from .decisions import DecisionSink
from .errors import OperationFailed
from .futures import ReplayFuture, Scheduler
from .history import HistoryQuery

logger = logging.getLogger(__name__)

_LABELS = {
    OperationKind.ACTIVITY: "Activity",
    OperationKind.TIMER: "Timer",
    OperationKind.CHILD_WORKFLOW: "Child workflow",
    OperationKind.SIGNAL: "Signal",
}


class WorkflowContext:
    """Operation factories bound to one decision task.

    A new context is built for every replay and handed to the workflow
    function as an argument; nothing about it survives the decision task.
    """

    def __init__(
        self,
        history: HistoryQuery,
        sink: DecisionSink,
        scheduler: Scheduler,
        workflow_id: Optional[str] = None,
        run_id: Optional[str] = None,
        activity_defaults: Optional[ActivityOptions] = None,
        child_defaults: Optional[ChildWorkflowOptions] = None,
    ) -> None:
        self._history = history
        self._sink = sink
        self._scheduler = scheduler
        self._workflow_id = workflow_id
        self._run_id = run_id
        self._activity_defaults = activity_defaults or ActivityOptions()
        self._child_defaults = child_defaults or ChildWorkflowOptions()
        self._scheduled_this_task: set[Tuple[OperationKind, str]] = set()
        self._emitted = 0

    @property
    def input(self) -> Any:
        return self._history.workflow_input()

    @property
    def workflow_id(self) -> Optional[str]:
        return self._workflow_id

    @property
    def run_id(self) -> Optional[str]:
        return self._run_id

    @property
    def history(self) -> HistoryQuery:
        return self._history

    @property
    def emitted(self) -> int:
        """Number of schedule instructions sent to the sink so far."""
        return self._emitted

    # ------------------------------------------------------------------
    def activity(
        self,
        name: str,
        input: Any = None,
        options: Optional[ActivityOptions | Dict[str, Any]] = None,
    ) -> ReplayFuture:
        """Future for activity ``name``, scheduling it on first reach."""
        resolved = _merge_options(self._activity_defaults, options)
        return self._operation(
            OperationKind.ACTIVITY,
            name,
            lambda: self._sink.emit_schedule_activity(name, input, resolved),
        )

    def timer(self, name: str, seconds: float) -> ReplayFuture:
        """Future fulfilled with ``None`` once timer ``name`` has fired."""
        return self._operation(
            OperationKind.TIMER,
            name,
            lambda: self._sink.emit_start_timer(name, seconds),
            fulfil_with_none=True,
        )

    def child_workflow(
        self,
        name: str,
        input: Any = None,
        options: Optional[ChildWorkflowOptions | Dict[str, Any]] = None,
    ) -> ReplayFuture:
        """Future for child workflow ``name``, starting it on first reach."""
        resolved = _merge_options(self._child_defaults, options)
        return self._operation(
            OperationKind.CHILD_WORKFLOW,
            name,
            lambda: self._sink.emit_start_child_workflow(name, input, resolved),
        )

    def signal(self, name: str) -> ReplayFuture:
        """Future fulfilled with the payload of signal ``name`` once it arrives."""
        return self._operation(OperationKind.SIGNAL, name, schedule=None)

    def gather(self, *awaitables: Awaitable[Any]) -> ReplayFuture:
        return self._scheduler.gather(*awaitables)

    def first(self, *awaitables: Awaitable[Any]) -> ReplayFuture:
        return self._scheduler.first(*awaitables)

    # ------------------------------------------------------------------
    def _operation(
        self,
        kind: OperationKind,
        name: str,
        schedule: Optional[Callable[[], None]],
        fulfil_with_none: bool = False,
    ) -> ReplayFuture:
        label = _LABELS[kind]
        future = self._scheduler.create_future(f"{kind.value}:{name}")
        state = self._history.state_of(kind, name)

        if state is OperationState.UNSCHEDULED:
            key = (kind, name)
            if schedule is None:
                logger.info(f"Waiting for {label.lower()} '{name}'")
            elif key in self._scheduled_this_task:
                logger.debug(f"{label} '{name}' already scheduled in this decision task")
            else:
                logger.info(f"Scheduling {label.lower()} '{name}'")
                self._scheduled_this_task.add(key)
                schedule()
                self._emitted += 1
            return future

        if state is OperationState.SCHEDULED:
            logger.info(f"Waiting for {label.lower()} '{name}' to finish")
            return future

        if state is OperationState.COMPLETED:
            if kind is OperationKind.SIGNAL:
                logger.info(f"Signal '{name}' has been received")
            else:
                logger.info(f"{label} '{name}' has completed")
            value = None if fulfil_with_none else self._history.result_of(kind, name)
            future.set_result(value)
            return future

        reason, details = self._history.failure_of(kind, name)
        logger.error(f"{label} '{name}' has failed: {reason}")
        future.set_exception(OperationFailed(kind, name, reason, details))
        return future


def _merge_options(defaults, options):
    if options is None:
        return defaults.model_copy()
    if isinstance(options, dict):
        known = set(type(defaults).model_fields)
        fields = {k: v for k, v in options.items() if k in known}
        extra = {k: v for k, v in options.items() if k not in known}
        merged = defaults.model_copy(update=fields)
        if extra:
            merged.extra = {**defaults.extra, **extra}
        return merged
    return options
