"""Root continuation runner and decision reconciler."""

from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Callable, List, Literal, Optional, Tuple

from pydantic import BaseModel

from .contracts import ActivityOptions, ChildWorkflowOptions, Decision, DecisionTask
from .decisions import DecisionBatch, DecisionSink
from .futures import ReplayFuture, Scheduler
from .history import EventHistory, HistoryQuery
from .operations import WorkflowContext

logger = logging.getLogger(__name__)

WorkflowFunction = Callable[[Any, WorkflowContext], Awaitable[Any]]


class ReplayOutcome(BaseModel):
    """State of the root future once the scheduler went quiet."""

    status: Literal["pending", "completed", "failed"]
    result: Any = None
    reason: Optional[str] = None


def _start_root(
    workflow_fn: WorkflowFunction, ctx: WorkflowContext, scheduler: Scheduler
) -> ReplayFuture:
    try:
        returned = workflow_fn(ctx.input, ctx)
    except Exception as exc:
        root = scheduler.create_future("root")
        root.set_exception(exc)
        return root

    if inspect.iscoroutine(returned):
        return scheduler.spawn(returned, "root")
    if isinstance(returned, ReplayFuture):
        return scheduler.ensure_future(returned)

    root = scheduler.create_future("root")
    root.set_result(returned)
    return root


def _failure_reason(error: Optional[BaseException]) -> str:
    if error is None:
        return "Workflow execution failed"
    return str(error) or type(error).__name__


def reconcile(root: ReplayFuture, sink: DecisionSink, emitted: int = 0) -> ReplayOutcome:
    """Turn the root future's state into at most one terminal decision.

    A pending root only gets the no-decision marker when ``emitted`` says the
    sink has not received anything else during this decision task.
    """
    if root.fulfilled():
        value = root.result()
        sink.emit_complete_workflow(value)
        logger.info("Workflow execution has succeeded")
        return ReplayOutcome(status="completed", result=value)

    if root.rejected():
        reason = _failure_reason(root.exception())
        sink.emit_fail_workflow(reason, reason)
        logger.info(f"Workflow execution has failed: {reason}")
        return ReplayOutcome(status="failed", reason=reason)

    if not emitted:
        sink.emit_no_decision()
    logger.info("Workflow execution is still pending")
    return ReplayOutcome(status="pending")


def run_decision_task(
    workflow_fn: WorkflowFunction,
    history: HistoryQuery,
    sink: DecisionSink,
    *,
    workflow_id: Optional[str] = None,
    run_id: Optional[str] = None,
    activity_defaults: Optional[ActivityOptions] = None,
    child_defaults: Optional[ChildWorkflowOptions] = None,
) -> ReplayOutcome:
    """Replay ``workflow_fn`` once against ``history`` and reconcile the result.

    The workflow runs on a fresh scheduler until quiescence. Whatever is
    still pending afterwards is cancelled, so no continuation outlives this
    decision task.
    """
    scheduler = Scheduler()
    ctx = WorkflowContext(
        history,
        sink,
        scheduler,
        workflow_id=workflow_id,
        run_id=run_id,
        activity_defaults=activity_defaults,
        child_defaults=child_defaults,
    )

    try:
        root = _start_root(workflow_fn, ctx, scheduler)
        steps = scheduler.run_until_quiescent()
        logger.debug(f"Decision execution finished after {steps} steps")
        return reconcile(root, sink, ctx.emitted)
    finally:
        cancelled = scheduler.cancel_pending()
        if cancelled:
            logger.debug(f"Cancelled {cancelled} pending workflow task(s)")


class WorkflowReplayer:
    """Replays decision tasks for one workflow function."""

    def __init__(
        self,
        workflow_fn: WorkflowFunction,
        activity_defaults: Optional[ActivityOptions] = None,
        child_defaults: Optional[ChildWorkflowOptions] = None,
    ) -> None:
        self._workflow_fn = workflow_fn
        self._activity_defaults = activity_defaults
        self._child_defaults = child_defaults

    def replay(self, task: DecisionTask) -> Tuple[ReplayOutcome, List[Decision]]:
        """Return the outcome and the flushed decision batch for ``task``."""
        batch = DecisionBatch()
        outcome = run_decision_task(
            self._workflow_fn,
            EventHistory(task.events),
            batch,
            workflow_id=task.workflow_id,
            run_id=task.run_id,
            activity_defaults=self._activity_defaults,
            child_defaults=self._child_defaults,
        )
        return outcome, batch.flush()
