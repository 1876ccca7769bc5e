"""SWF client conversion tests using a fake boto3 client."""

import pytest

from replayflow.contracts import (
    ActivityOptions,
    Decision,
    DecisionType,
    EventType,
    OperationKind,
    OperationState,
)
from replayflow.errors import PayloadTooLarge
from replayflow.history import EventHistory
from replayflow.transports.swf import (
    MAX_RESULT_LENGTH,
    SWFServiceClient,
    normalize_events,
    to_swf_decision,
)


class FakeSWF:
    def __init__(self, decision_pages=(), activity_task=None):
        self.decision_pages = list(decision_pages)
        self.activity_task = activity_task or {}
        self.calls = []

    def poll_for_decision_task(self, **kwargs):
        self.calls.append(("poll_for_decision_task", kwargs))
        return self.decision_pages.pop(0) if self.decision_pages else {"taskToken": ""}

    def respond_decision_task_completed(self, **kwargs):
        self.calls.append(("respond_decision_task_completed", kwargs))

    def poll_for_activity_task(self, **kwargs):
        self.calls.append(("poll_for_activity_task", kwargs))
        return self.activity_task

    def record_activity_task_heartbeat(self, **kwargs):
        self.calls.append(("record_activity_task_heartbeat", kwargs))

    def respond_activity_task_completed(self, **kwargs):
        self.calls.append(("respond_activity_task_completed", kwargs))

    def respond_activity_task_failed(self, **kwargs):
        self.calls.append(("respond_activity_task_failed", kwargs))


RAW_EVENTS = [
    {
        "eventId": 1,
        "eventType": "WorkflowExecutionStarted",
        "workflowExecutionStartedEventAttributes": {"input": '{"id": 1}'},
    },
    {"eventId": 2, "eventType": "DecisionTaskScheduled"},
    {
        "eventId": 5,
        "eventType": "ActivityTaskScheduled",
        "activityTaskScheduledEventAttributes": {"activityId": "fetchUser"},
    },
    {
        "eventId": 7,
        "eventType": "ActivityTaskCompleted",
        "activityTaskCompletedEventAttributes": {"scheduledEventId": 5, "result": '{"name": "Ann"}'},
    },
    {
        "eventId": 8,
        "eventType": "TimerStarted",
        "timerStartedEventAttributes": {"timerId": "cooldown"},
    },
    {
        "eventId": 9,
        "eventType": "StartChildWorkflowExecutionInitiated",
        "startChildWorkflowExecutionInitiatedEventAttributes": {"control": "report", "workflowId": "wf-report"},
    },
    {
        "eventId": 12,
        "eventType": "ChildWorkflowExecutionFailed",
        "childWorkflowExecutionFailedEventAttributes": {"initiatedEventId": 9, "reason": "boom", "details": "trace"},
    },
    {
        "eventId": 13,
        "eventType": "WorkflowExecutionSignaled",
        "workflowExecutionSignaledEventAttributes": {"signalName": "approve", "input": "yes"},
    },
]


def test_normalize_events_resolves_names_and_payloads():
    history = EventHistory(normalize_events(RAW_EVENTS))

    assert history.workflow_input() == {"id": 1}
    assert history.result_of(OperationKind.ACTIVITY, "fetchUser") == {"name": "Ann"}
    assert history.is_scheduled(OperationKind.TIMER, "cooldown")
    assert not history.is_completed(OperationKind.TIMER, "cooldown")
    assert history.failure_of(OperationKind.CHILD_WORKFLOW, "report") == ("boom", "trace")
    assert history.result_of(OperationKind.SIGNAL, "approve") == "yes"
    assert all(e.event_type is not None for e in history.events)
    assert len(history) == 7


def test_to_swf_decision_formats():
    schedule = to_swf_decision(
        Decision(
            decision_type=DecisionType.SCHEDULE_ACTIVITY,
            name="fetchUser",
            input={"id": 1},
            options=ActivityOptions(task_list="users", heartbeat_timeout=60).model_dump(exclude_none=True),
        )
    )
    attrs = schedule["scheduleActivityTaskDecisionAttributes"]
    assert schedule["decisionType"] == "ScheduleActivityTask"
    assert attrs["activityType"] == {"name": "fetchUser", "version": "1.0.0"}
    assert attrs["activityId"] == "fetchUser"
    assert attrs["input"] == '{"id": 1}'
    assert attrs["taskList"] == {"name": "users"}
    assert attrs["heartbeatTimeout"] == "60"

    timer = to_swf_decision(
        Decision(decision_type=DecisionType.START_TIMER, name="cooldown", delay_seconds=30)
    )
    assert timer["startTimerDecisionAttributes"] == {"timerId": "cooldown", "startToFireTimeout": "30"}

    child = to_swf_decision(
        Decision(decision_type=DecisionType.START_CHILD_WORKFLOW, name="report", options={"version": "1.0.0"}),
        workflow_id="wf-1",
    )
    child_attrs = child["startChildWorkflowExecutionDecisionAttributes"]
    assert child_attrs["workflowId"] == "wf-1-report"
    assert child_attrs["control"] == "report"

    fail = to_swf_decision(
        Decision(decision_type=DecisionType.FAIL_WORKFLOW, reason="x" * 300, details="quota")
    )
    fail_attrs = fail["failWorkflowExecutionDecisionAttributes"]
    assert len(fail_attrs["reason"]) == 256
    assert fail_attrs["details"] == "quota"

    assert to_swf_decision(Decision(decision_type=DecisionType.NO_DECISION)) is None


@pytest.mark.asyncio
async def test_poll_decision_task_pages_history():
    fake = FakeSWF(
        decision_pages=[
            {
                "taskToken": "tok",
                "workflowExecution": {"workflowId": "wf-1", "runId": "r1"},
                "workflowType": {"name": "onboarding", "version": "1"},
                "events": RAW_EVENTS[:4],
                "nextPageToken": "page-2",
            },
            {"taskToken": "tok", "events": RAW_EVENTS[4:]},
        ]
    )
    client = SWFServiceClient(domain="orders", client=fake)

    task = await client.poll_decision_task("main", "decider-1")
    assert task.task_token == "tok"
    assert task.workflow_id == "wf-1"
    assert task.workflow_type == "onboarding"
    assert len(task.events) == 7
    first_call = fake.calls[0][1]
    assert first_call["maximumPageSize"] == 500
    assert first_call["reverseOrder"] is False
    assert fake.calls[1][1]["nextPageToken"] == "page-2"

    await client.respond_decision_task_completed(
        "tok",
        [
            Decision(decision_type=DecisionType.START_CHILD_WORKFLOW, name="report", options={"version": "1"}),
            Decision(decision_type=DecisionType.NO_DECISION),
        ],
        workflow_id=task.workflow_id,
    )
    name, kwargs = fake.calls[-1]
    assert name == "respond_decision_task_completed"
    assert len(kwargs["decisions"]) == 1
    attrs = kwargs["decisions"][0]["startChildWorkflowExecutionDecisionAttributes"]
    assert attrs["workflowId"] == "wf-1-report"


@pytest.mark.asyncio
async def test_empty_poll_returns_none():
    client = SWFServiceClient(domain="orders", client=FakeSWF())
    assert await client.poll_decision_task("main", "d") is None
    assert await client.poll_activity_task("main", "a") is None


@pytest.mark.asyncio
async def test_activity_round_trip():
    fake = FakeSWF(
        activity_task={
            "taskToken": "atok",
            "activityId": "fetchUser",
            "activityType": {"name": "fetchUser", "version": "1.0.0"},
            "input": '{"id": 1}',
            "workflowExecution": {"workflowId": "wf-1"},
        }
    )
    client = SWFServiceClient(domain="orders", client=fake)

    task = await client.poll_activity_task("main", "worker-1")
    assert task.name == "fetchUser"
    assert task.raw_input == '{"id": 1}'

    await client.record_activity_heartbeat("atok", None)
    await client.respond_activity_task_failed("atok", "ValueError", "bad")
    await client.respond_activity_task_completed("atok", '"ok"')

    assert fake.calls[-3] == ("record_activity_task_heartbeat", {"taskToken": "atok"})
    assert fake.calls[-2] == (
        "respond_activity_task_failed",
        {"taskToken": "atok", "reason": "ValueError", "details": "bad"},
    )
    assert fake.calls[-1] == ("respond_activity_task_completed", {"taskToken": "atok", "result": '"ok"'})


def test_newest_first_history_is_normalized_in_event_order():
    history = EventHistory(normalize_events(list(reversed(RAW_EVENTS))))

    assert history.state_of(OperationKind.ACTIVITY, "fetchUser") is OperationState.COMPLETED
    assert history.result_of(OperationKind.ACTIVITY, "fetchUser") == {"name": "Ann"}
    assert history.failure_of(OperationKind.CHILD_WORKFLOW, "report") == ("boom", "trace")


def test_oversized_workflow_result_fails_the_workflow_instead_of_truncating():
    result = to_swf_decision(
        Decision(decision_type=DecisionType.COMPLETE_WORKFLOW, result="x" * MAX_RESULT_LENGTH),
        workflow_id="wf-1",
    )
    assert result["decisionType"] == "FailWorkflowExecution"
    attrs = result["failWorkflowExecutionDecisionAttributes"]
    assert attrs["reason"] == "PayloadTooLarge"
    assert str(MAX_RESULT_LENGTH) in attrs["details"]

    fits = to_swf_decision(Decision(decision_type=DecisionType.COMPLETE_WORKFLOW, result=[1, 2]))
    assert fits["completeWorkflowExecutionDecisionAttributes"] == {"result": "[1, 2]"}


@pytest.mark.asyncio
async def test_oversized_activity_result_is_rejected():
    fake = FakeSWF()
    client = SWFServiceClient(domain="orders", client=fake)

    with pytest.raises(PayloadTooLarge):
        await client.respond_activity_task_completed("atok", "x" * (MAX_RESULT_LENGTH + 1))
    assert fake.calls == []


@pytest.mark.asyncio
async def test_respond_without_prior_poll_uses_given_workflow_id():
    fake = FakeSWF()
    client = SWFServiceClient(domain="orders", client=fake)

    await client.respond_decision_task_completed(
        "tok-9",
        [Decision(decision_type=DecisionType.START_CHILD_WORKFLOW, name="report")],
        workflow_id="wf-9",
    )
    _, kwargs = fake.calls[-1]
    attrs = kwargs["decisions"][0]["startChildWorkflowExecutionDecisionAttributes"]
    assert attrs["workflowId"] == "wf-9-report"
