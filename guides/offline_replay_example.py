"""Walk the signup workflow through its history without any service.

Each step appends the events the orchestration service would have recorded
and replays the workflow from the top, printing the decisions it makes.
"""

import logging

from replayflow import (
    DecisionTask,
    EventType,
    HistoryEvent,
    OperationKind,
    WorkflowReplayer,
)
from signup_workflow import signup

ACTIVITY = OperationKind.ACTIVITY


def event(event_id, event_type, kind=None, name=None, payload=None):
    return HistoryEvent(
        event_id=event_id, event_type=event_type, kind=kind, name=name, payload=payload
    )


def main():
    logging.basicConfig(level=logging.INFO)
    replayer = WorkflowReplayer(signup)

    events = [event(1, EventType.WORKFLOW_STARTED, payload={"email": "ann@example.com"})]
    steps = [
        [
            event(2, EventType.SCHEDULED, ACTIVITY, "create_account"),
            event(3, EventType.SCHEDULED, ACTIVITY, "load_profile"),
        ],
        [
            event(4, EventType.COMPLETED, ACTIVITY, "create_account", "acct-ann"),
            event(5, EventType.COMPLETED, ACTIVITY, "load_profile", {"name": "Ann"}),
        ],
        [
            event(6, EventType.SCHEDULED, OperationKind.TIMER, "confirm_window"),
            event(7, EventType.SIGNALED, OperationKind.SIGNAL, "confirmed", {"ok": True}),
        ],
        [
            event(8, EventType.SCHEDULED, ACTIVITY, "send_welcome"),
            event(9, EventType.COMPLETED, ACTIVITY, "send_welcome", {"delivered_to": "Ann"}),
        ],
    ]

    for number, new_events in enumerate([[]] + steps, start=1):
        events.extend(new_events)
        task = DecisionTask(task_token=f"task-{number}", workflow_id="signup-ann", events=events)
        outcome, decisions = replayer.replay(task)
        print(f"Decision task {number}: {outcome.status}")
        for decision in decisions:
            print(f"  {decision.decision_type.value} {decision.name or ''}")
        if outcome.status != "pending":
            print(f"Result: {outcome.result}")


if __name__ == "__main__":
    main()
