"""Root continuation runner and decision reconciler tests."""

from replayflow.contracts import (
    DecisionTask,
    DecisionType,
    EventType,
    HistoryEvent,
    OperationKind,
)
from replayflow.decisions import DecisionBatch
from replayflow.history import EventHistory
from replayflow.replay import WorkflowReplayer, run_decision_task

A = OperationKind.ACTIVITY


def _started(payload=None):
    return HistoryEvent(event_id=1, event_type=EventType.WORKFLOW_STARTED, payload=payload)


def _event(event_id, event_type, kind=A, name="fetchUser", **kwargs):
    return HistoryEvent(event_id=event_id, event_type=event_type, kind=kind, name=name, **kwargs)


async def fetch_user_workflow(input, ctx):
    return await ctx.activity("fetchUser", input)


def _replay(workflow_fn, *events):
    batch = DecisionBatch()
    outcome = run_decision_task(workflow_fn, EventHistory(events), batch)
    return outcome, batch.flush()


def test_unscheduled_activity_schedules_and_stays_pending():
    outcome, decisions = _replay(fetch_user_workflow, _started({"id": 1}))

    assert outcome.status == "pending"
    assert [(d.decision_type, d.name, d.input) for d in decisions] == [
        (DecisionType.SCHEDULE_ACTIVITY, "fetchUser", {"id": 1})
    ]


def test_completed_activity_completes_workflow_without_rescheduling():
    outcome, decisions = _replay(
        fetch_user_workflow,
        _started({"id": 1}),
        _event(2, EventType.SCHEDULED),
        _event(3, EventType.COMPLETED, payload={"name": "Ann"}),
    )

    assert outcome.status == "completed"
    assert outcome.result == {"name": "Ann"}
    assert [d.decision_type for d in decisions] == [DecisionType.COMPLETE_WORKFLOW]
    assert decisions[0].result == {"name": "Ann"}


def test_rejected_workflow_emits_explicit_fail_decision():
    async def quota_workflow(input, ctx):
        raise RuntimeError("quota exceeded")

    outcome, decisions = _replay(quota_workflow, _started())

    assert outcome.status == "failed"
    (decision,) = decisions
    assert decision.decision_type is DecisionType.FAIL_WORKFLOW
    assert decision.reason == "quota exceeded"
    assert decision.details == "quota exceeded"


def test_failed_activity_fails_workflow_with_recorded_reason():
    outcome, decisions = _replay(
        fetch_user_workflow,
        _started(),
        _event(2, EventType.SCHEDULED),
        _event(3, EventType.FAILED, reason="user service down"),
    )
    assert outcome.status == "failed"
    assert decisions[0].reason == "user service down"


def test_synchronous_workflow_failure_is_a_rejection():
    def broken(input, ctx):
        raise KeyError("missing")

    outcome, decisions = _replay(broken, _started())
    assert outcome.status == "failed"
    assert decisions[0].decision_type is DecisionType.FAIL_WORKFLOW


def test_fired_timer_resolves_without_decisions():
    async def cooldown_workflow(input, ctx):
        waited = await ctx.timer("cooldown", 30)
        return {"waited": waited}

    outcome, decisions = _replay(
        cooldown_workflow,
        _started(),
        _event(2, EventType.SCHEDULED, kind=OperationKind.TIMER, name="cooldown"),
        _event(3, EventType.COMPLETED, kind=OperationKind.TIMER, name="cooldown"),
    )
    assert outcome.status == "completed"
    assert outcome.result == {"waited": None}
    assert [d.decision_type for d in decisions] == [DecisionType.COMPLETE_WORKFLOW]


def test_pending_without_schedules_emits_no_decision_marker():
    async def approval_workflow(input, ctx):
        return await ctx.signal("approve")

    outcome, decisions = _replay(approval_workflow, _started())
    assert outcome.status == "pending"
    assert [d.decision_type for d in decisions] == [DecisionType.NO_DECISION]


def test_pending_root_is_cancelled_at_end_of_decision_task():
    cleanup = []

    async def waiting_workflow(input, ctx):
        try:
            return await ctx.activity("fetchUser")
        finally:
            cleanup.append("closed")

    outcome, _ = _replay(waiting_workflow, _started())
    assert outcome.status == "pending"
    assert cleanup == ["closed"]


def test_replay_is_deterministic():
    async def fan_out(input, ctx):
        users = await ctx.gather(ctx.activity("a", 1), ctx.activity("b", 2))
        await ctx.timer("pause", 5)
        return users

    events = [_started(), _event(2, EventType.SCHEDULED, name="a")]
    first = _replay(fan_out, *events)
    second = _replay(fan_out, *events)
    assert first[0] == second[0]
    assert [d.model_dump() for d in first[1]] == [d.model_dump() for d in second[1]]
    assert [d.name for d in first[1]] == ["b"]


def test_workflow_returning_plain_value_completes():
    outcome, decisions = _replay(lambda input, ctx: "done", _started())
    assert outcome.status == "completed"
    assert decisions[0].result == "done"


def test_workflow_replayer_uses_task_metadata():
    seen = {}

    async def wf(input, ctx):
        seen["workflow_id"] = ctx.workflow_id
        return input

    task = DecisionTask(task_token="t", workflow_id="wf-9", events=[_started("hi")])
    outcome, decisions = WorkflowReplayer(wf).replay(task)
    assert outcome.result == "hi"
    assert seen == {"workflow_id": "wf-9"}
    assert decisions[0].decision_type is DecisionType.COMPLETE_WORKFLOW


def test_cleanup_code_cannot_schedule_while_cancelled():
    async def charge_workflow(input, ctx):
        try:
            return await ctx.activity("charge")
        finally:
            await ctx.activity("refund")

    outcome, decisions = _replay(charge_workflow, _started())
    assert outcome.status == "pending"
    assert [(d.decision_type, d.name) for d in decisions] == [
        (DecisionType.SCHEDULE_ACTIVITY, "charge")
    ]


def test_losing_branch_cannot_schedule_after_terminal_decision():
    async def slow(ctx):
        try:
            return await ctx.activity("slow")
        finally:
            await ctx.activity("undo_slow")

    async def race_workflow(input, ctx):
        return await ctx.first(slow(ctx), ctx.signal("go"))

    outcome, decisions = _replay(
        race_workflow,
        _started(),
        _event(2, EventType.SIGNALED, kind=OperationKind.SIGNAL, name="go", payload="now"),
    )
    assert outcome.status == "completed"
    assert outcome.result == "now"
    assert decisions[-1].decision_type is DecisionType.COMPLETE_WORKFLOW
    assert "undo_slow" not in [d.name for d in decisions]


class RecordingSink:
    def __init__(self):
        self.emitted = []

    def emit_schedule_activity(self, name, input, options=None):
        self.emitted.append(("schedule_activity", name))

    def emit_start_timer(self, name, delay_seconds):
        self.emitted.append(("start_timer", name))

    def emit_start_child_workflow(self, name, input, options=None):
        self.emitted.append(("start_child_workflow", name))

    def emit_complete_workflow(self, value):
        self.emitted.append(("complete_workflow", None))

    def emit_fail_workflow(self, reason, detail=None):
        self.emitted.append(("fail_workflow", reason))

    def emit_no_decision(self):
        self.emitted.append(("no_decision", None))


def test_no_decision_marker_only_sent_to_untouched_sink():
    sink = RecordingSink()
    run_decision_task(fetch_user_workflow, EventHistory([_started({"id": 1})]), sink)
    assert sink.emitted == [("schedule_activity", "fetchUser")]

    async def approval_workflow(input, ctx):
        return await ctx.signal("approve")

    idle = RecordingSink()
    run_decision_task(approval_workflow, EventHistory([_started()]), idle)
    assert idle.emitted == [("no_decision", None)]
