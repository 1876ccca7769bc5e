"""Multi-task replay properties: at-most-once scheduling and terminal exclusivity."""

from collections import Counter

from replayflow.contracts import (
    DecisionType,
    EventType,
    HistoryEvent,
    OperationKind,
)
from replayflow.decisions import DecisionBatch
from replayflow.history import EventHistory
from replayflow.replay import run_decision_task

_SCHEDULING = {
    DecisionType.SCHEDULE_ACTIVITY: OperationKind.ACTIVITY,
    DecisionType.START_TIMER: OperationKind.TIMER,
    DecisionType.START_CHILD_WORKFLOW: OperationKind.CHILD_WORKFLOW,
}


class FakeExecution:
    """Records decisions into history the way the orchestration service would."""

    def __init__(self, workflow_fn, input=None):
        self.workflow_fn = workflow_fn
        self.history = EventHistory(
            [HistoryEvent(event_id=1, event_type=EventType.WORKFLOW_STARTED, payload=input)]
        )
        self.all_decisions = []
        self.outstanding = []

    def _next_id(self):
        return len(self.history) + 1

    def decide(self):
        batch = DecisionBatch()
        outcome = run_decision_task(self.workflow_fn, self.history, batch)
        decisions = batch.flush()
        self.all_decisions.extend(decisions)
        for decision in decisions:
            kind = _SCHEDULING.get(decision.decision_type)
            if kind is None:
                continue
            self.history = self.history.appended(
                HistoryEvent(
                    event_id=self._next_id(),
                    event_type=EventType.SCHEDULED,
                    kind=kind,
                    name=decision.name,
                )
            )
            self.outstanding.append((kind, decision.name, decision.input))
        return outcome

    def complete_next(self, result_for=lambda kind, name, input: None):
        kind, name, input = self.outstanding.pop(0)
        self.history = self.history.appended(
            HistoryEvent(
                event_id=self._next_id(),
                event_type=EventType.COMPLETED,
                kind=kind,
                name=name,
                payload=result_for(kind, name, input),
            )
        )


async def onboarding(input, ctx):
    user = await ctx.activity("fetchUser", {"id": input["id"]})
    await ctx.timer("cooldown", 30)
    welcome, report = await ctx.gather(
        ctx.activity("sendWelcome", user),
        ctx.child_workflow("buildReport", {"user": user}),
    )
    return {"user": user, "welcome": welcome, "report": report}


def _results(kind, name, input):
    return {
        "fetchUser": {"name": "Ann"},
        "sendWelcome": "sent",
        "buildReport": {"pages": 3},
    }.get(name)


def test_each_operation_is_scheduled_exactly_once_across_replays():
    execution = FakeExecution(onboarding, {"id": 1})

    outcome = execution.decide()
    while outcome.status == "pending":
        # replay again with nothing new: must not reschedule anything
        execution.decide()
        if not execution.outstanding:
            break
        execution.complete_next(_results)
        outcome = execution.decide()

    assert outcome.status == "completed"
    assert outcome.result == {
        "user": {"name": "Ann"},
        "welcome": "sent",
        "report": {"pages": 3},
    }

    scheduled = Counter(
        (d.decision_type, d.name) for d in execution.all_decisions if d.decision_type in _SCHEDULING
    )
    assert scheduled == Counter(
        {
            (DecisionType.SCHEDULE_ACTIVITY, "fetchUser"): 1,
            (DecisionType.START_TIMER, "cooldown"): 1,
            (DecisionType.SCHEDULE_ACTIVITY, "sendWelcome"): 1,
            (DecisionType.START_CHILD_WORKFLOW, "buildReport"): 1,
        }
    )


def test_terminal_decision_is_emitted_once_and_last():
    execution = FakeExecution(onboarding, {"id": 1})
    outcome = execution.decide()
    while outcome.status == "pending" and execution.outstanding:
        execution.complete_next(_results)
        outcome = execution.decide()

    terminal_positions = [i for i, d in enumerate(execution.all_decisions) if d.is_terminal]
    assert len(terminal_positions) == 1
    assert terminal_positions[0] == len(execution.all_decisions) - 1


def test_pending_replay_leaves_no_state_behind():
    execution = FakeExecution(onboarding, {"id": 1})
    execution.decide()

    first = run_decision_task(onboarding, execution.history, DecisionBatch())
    batch = DecisionBatch()
    second = run_decision_task(onboarding, execution.history, batch)

    assert first == second
    assert second.status == "pending"
    assert [d.decision_type for d in batch.flush()] == [DecisionType.NO_DECISION]
