"""Amazon Simple Workflow Service client."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

try:
    import boto3
    from botocore.config import Config as BotoConfig
except ImportError:
    boto3 = None  # type: ignore
    BotoConfig = None  # type: ignore

from ..contracts import (
    ActivityTask,
    Decision,
    DecisionTask,
    DecisionType,
    EventType,
    HistoryEvent,
    OperationKind,
    dump_payload,
    parse_payload,
)
from ..errors import PayloadTooLarge
from .base import BaseServiceClient

logger = logging.getLogger(__name__)

MAX_REASON_LENGTH = 256
MAX_DETAILS_LENGTH = 32768
MAX_RESULT_LENGTH = 32768

# SWF event type -> (normalized type, kind, attributes key, how the operation is identified)
_EVENT_MAP: Dict[str, tuple] = {
    "ActivityTaskScheduled": (EventType.SCHEDULED, OperationKind.ACTIVITY, "activityTaskScheduledEventAttributes", "activityId"),
    "ScheduleActivityTaskFailed": (EventType.SCHEDULE_FAILED, OperationKind.ACTIVITY, "scheduleActivityTaskFailedEventAttributes", "activityId"),
    "ActivityTaskCompleted": (EventType.COMPLETED, OperationKind.ACTIVITY, "activityTaskCompletedEventAttributes", "scheduledEventId"),
    "ActivityTaskFailed": (EventType.FAILED, OperationKind.ACTIVITY, "activityTaskFailedEventAttributes", "scheduledEventId"),
    "ActivityTaskTimedOut": (EventType.TIMED_OUT, OperationKind.ACTIVITY, "activityTaskTimedOutEventAttributes", "scheduledEventId"),
    "ActivityTaskCanceled": (EventType.CANCELED, OperationKind.ACTIVITY, "activityTaskCanceledEventAttributes", "scheduledEventId"),
    "TimerStarted": (EventType.SCHEDULED, OperationKind.TIMER, "timerStartedEventAttributes", "timerId"),
    "StartTimerFailed": (EventType.SCHEDULE_FAILED, OperationKind.TIMER, "startTimerFailedEventAttributes", "timerId"),
    "TimerFired": (EventType.COMPLETED, OperationKind.TIMER, "timerFiredEventAttributes", "timerId"),
    "TimerCanceled": (EventType.CANCELED, OperationKind.TIMER, "timerCanceledEventAttributes", "timerId"),
    "StartChildWorkflowExecutionInitiated": (EventType.SCHEDULED, OperationKind.CHILD_WORKFLOW, "startChildWorkflowExecutionInitiatedEventAttributes", "control"),
    "StartChildWorkflowExecutionFailed": (EventType.SCHEDULE_FAILED, OperationKind.CHILD_WORKFLOW, "startChildWorkflowExecutionFailedEventAttributes", "control"),
    "ChildWorkflowExecutionCompleted": (EventType.COMPLETED, OperationKind.CHILD_WORKFLOW, "childWorkflowExecutionCompletedEventAttributes", "initiatedEventId"),
    "ChildWorkflowExecutionFailed": (EventType.FAILED, OperationKind.CHILD_WORKFLOW, "childWorkflowExecutionFailedEventAttributes", "initiatedEventId"),
    "ChildWorkflowExecutionTimedOut": (EventType.TIMED_OUT, OperationKind.CHILD_WORKFLOW, "childWorkflowExecutionTimedOutEventAttributes", "initiatedEventId"),
    "ChildWorkflowExecutionCanceled": (EventType.CANCELED, OperationKind.CHILD_WORKFLOW, "childWorkflowExecutionCanceledEventAttributes", "initiatedEventId"),
    "ChildWorkflowExecutionTerminated": (EventType.CANCELED, OperationKind.CHILD_WORKFLOW, "childWorkflowExecutionTerminatedEventAttributes", "initiatedEventId"),
    "WorkflowExecutionSignaled": (EventType.SIGNALED, OperationKind.SIGNAL, "workflowExecutionSignaledEventAttributes", "signalName"),
}


def _truncate(value: Optional[str], limit: int) -> Optional[str]:
    if value is None:
        return None
    return value[:limit]


def _check_result(result: Optional[str]) -> Optional[str]:
    if result is not None and len(result) > MAX_RESULT_LENGTH:
        raise PayloadTooLarge(
            f"Result is {len(result)} characters, the limit is {MAX_RESULT_LENGTH}"
        )
    return result


def normalize_events(raw_events: List[Dict[str, Any]]) -> List[HistoryEvent]:
    """Convert raw SWF history events into ``HistoryEvent``s.

    Completion events refer back to their scheduling event by id; those ids
    are resolved to operation names here. Unknown event types are skipped.
    """
    names_by_event_id: Dict[int, str] = {}
    events: List[HistoryEvent] = []

    # Histories polled with reverseOrder arrive newest first.
    for raw in sorted(raw_events, key=lambda raw: raw["eventId"]):
        event_id = raw["eventId"]
        event_type = raw["eventType"]
        timestamp = raw.get("eventTimestamp")
        common = {"event_id": event_id}
        if timestamp is not None:
            common["timestamp"] = timestamp

        if event_type == "WorkflowExecutionStarted":
            attrs = raw.get("workflowExecutionStartedEventAttributes", {})
            events.append(
                HistoryEvent(
                    event_type=EventType.WORKFLOW_STARTED,
                    payload=parse_payload(attrs.get("input")),
                    **common,
                )
            )
            continue

        mapping = _EVENT_MAP.get(event_type)
        if mapping is None:
            continue
        normalized, kind, attrs_key, id_field = mapping
        attrs = raw.get(attrs_key, {})

        if id_field in ("scheduledEventId", "initiatedEventId"):
            name = names_by_event_id.get(attrs.get(id_field))
        elif id_field == "control":
            name = attrs.get("control") or attrs.get("workflowId")
        else:
            name = attrs.get(id_field)
        if name is None:
            logger.warning(f"Cannot resolve operation for event {event_id} ({event_type})")
            continue
        if normalized is EventType.SCHEDULED:
            names_by_event_id[event_id] = name

        payload_field = "input" if kind is OperationKind.SIGNAL else "result"
        reason = attrs.get("reason") or attrs.get("cause") or attrs.get("timeoutType")
        events.append(
            HistoryEvent(
                event_type=normalized,
                kind=kind,
                name=name,
                payload=parse_payload(attrs.get(payload_field)),
                reason=reason,
                details=attrs.get("details"),
                **common,
            )
        )

    return events


def _timeout(value: Optional[int]) -> Optional[str]:
    return None if value is None else str(value)


def _compact(attrs: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in attrs.items() if v is not None}


def to_swf_decision(decision: Decision, workflow_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """Convert a ``Decision`` into the SWF wire format (``None`` for no-ops)."""
    options = decision.options
    extra = options.get("extra", {})

    if decision.decision_type is DecisionType.SCHEDULE_ACTIVITY:
        attrs = _compact(
            {
                "activityType": {"name": decision.name, "version": options.get("version")},
                "activityId": decision.name,
                "input": dump_payload(decision.input),
                "taskList": {"name": options["task_list"]} if options.get("task_list") else None,
                "scheduleToStartTimeout": _timeout(options.get("schedule_to_start_timeout")),
                "startToCloseTimeout": _timeout(options.get("start_to_close_timeout")),
                "scheduleToCloseTimeout": _timeout(options.get("schedule_to_close_timeout")),
                "heartbeatTimeout": _timeout(options.get("heartbeat_timeout")),
            }
        )
        attrs.update(extra)
        return {
            "decisionType": "ScheduleActivityTask",
            "scheduleActivityTaskDecisionAttributes": attrs,
        }

    if decision.decision_type is DecisionType.START_TIMER:
        return {
            "decisionType": "StartTimer",
            "startTimerDecisionAttributes": {
                "timerId": decision.name,
                "startToFireTimeout": str(int(decision.delay_seconds or 0)),
            },
        }

    if decision.decision_type is DecisionType.START_CHILD_WORKFLOW:
        child_id = f"{workflow_id}-{decision.name}" if workflow_id else decision.name
        attrs = _compact(
            {
                "workflowType": {"name": decision.name, "version": options.get("version")},
                "workflowId": child_id,
                "control": decision.name,
                "input": dump_payload(decision.input),
                "taskList": {"name": options["task_list"]} if options.get("task_list") else None,
                "executionStartToCloseTimeout": _timeout(options.get("execution_start_to_close_timeout")),
                "taskStartToCloseTimeout": _timeout(options.get("task_start_to_close_timeout")),
                "childPolicy": options.get("child_policy"),
            }
        )
        attrs.update(extra)
        return {
            "decisionType": "StartChildWorkflowExecution",
            "startChildWorkflowExecutionDecisionAttributes": attrs,
        }

    if decision.decision_type is DecisionType.COMPLETE_WORKFLOW:
        try:
            result = _check_result(dump_payload(decision.result))
        except PayloadTooLarge as e:
            logger.error(f"Cannot complete workflow {workflow_id}: {e}")
            return to_swf_decision(
                Decision(
                    decision_type=DecisionType.FAIL_WORKFLOW,
                    reason=type(e).__name__,
                    details=str(e),
                )
            )
        return {
            "decisionType": "CompleteWorkflowExecution",
            "completeWorkflowExecutionDecisionAttributes": _compact({"result": result}),
        }

    if decision.decision_type is DecisionType.FAIL_WORKFLOW:
        return {
            "decisionType": "FailWorkflowExecution",
            "failWorkflowExecutionDecisionAttributes": _compact(
                {
                    "reason": _truncate(decision.reason, MAX_REASON_LENGTH),
                    "details": _truncate(decision.details, MAX_DETAILS_LENGTH),
                }
            ),
        }

    return None


class SWFServiceClient(BaseServiceClient):
    """``BaseServiceClient`` backed by boto3's ``swf`` client."""

    def __init__(
        self,
        domain: str,
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        maximum_page_size: int = 500,
        reverse_order: bool = False,
        client: Any = None,
    ) -> None:
        if client is None:
            if boto3 is None:
                raise ImportError("boto3 package is required for SWFServiceClient")
            client = boto3.client(
                "swf",
                region_name=region,
                endpoint_url=endpoint_url,
                config=BotoConfig(read_timeout=70),
            )
        self.domain = domain
        self.maximum_page_size = maximum_page_size
        self.reverse_order = reverse_order
        self._client = client

    async def poll_decision_task(
        self, task_list: str, identity: str
    ) -> Optional[DecisionTask]:
        raw_events: List[Dict[str, Any]] = []
        request: Dict[str, Any] = {
            "domain": self.domain,
            "taskList": {"name": task_list},
            "identity": identity,
            "maximumPageSize": self.maximum_page_size,
            "reverseOrder": self.reverse_order,
        }
        response: Dict[str, Any] = {}
        while True:
            page = await asyncio.to_thread(self._client.poll_for_decision_task, **request)
            if not page.get("taskToken"):
                return None
            response = response or page
            raw_events.extend(page.get("events", []))
            next_page = page.get("nextPageToken")
            if not next_page:
                break
            request["nextPageToken"] = next_page

        execution = response.get("workflowExecution", {})
        return DecisionTask(
            task_token=response["taskToken"],
            workflow_id=execution.get("workflowId", ""),
            run_id=execution.get("runId"),
            workflow_type=response.get("workflowType", {}).get("name"),
            events=normalize_events(raw_events),
        )

    async def respond_decision_task_completed(
        self,
        task_token: str,
        decisions: List[Decision],
        workflow_id: Optional[str] = None,
    ) -> None:
        converted = [
            swf_decision
            for swf_decision in (to_swf_decision(d, workflow_id) for d in decisions)
            if swf_decision is not None
        ]
        await asyncio.to_thread(
            self._client.respond_decision_task_completed,
            taskToken=task_token,
            decisions=converted,
        )

    async def poll_activity_task(
        self, task_list: str, identity: str
    ) -> Optional[ActivityTask]:
        response = await asyncio.to_thread(
            self._client.poll_for_activity_task,
            domain=self.domain,
            taskList={"name": task_list},
            identity=identity,
        )
        if not response.get("taskToken"):
            return None
        activity_type = response.get("activityType", {})
        return ActivityTask(
            task_token=response["taskToken"],
            activity_id=response.get("activityId", ""),
            name=activity_type.get("name", ""),
            version=activity_type.get("version"),
            raw_input=response.get("input"),
            workflow_id=response.get("workflowExecution", {}).get("workflowId"),
        )

    async def record_activity_heartbeat(
        self, task_token: str, details: Optional[str] = None
    ) -> None:
        await asyncio.to_thread(
            self._client.record_activity_task_heartbeat,
            **_compact({"taskToken": task_token, "details": _truncate(details, 2048)}),
        )

    async def respond_activity_task_completed(
        self, task_token: str, result: Optional[str] = None
    ) -> None:
        await asyncio.to_thread(
            self._client.respond_activity_task_completed,
            **_compact({"taskToken": task_token, "result": _check_result(result)}),
        )

    async def respond_activity_task_failed(
        self, task_token: str, reason: str, details: Optional[str] = None
    ) -> None:
        await asyncio.to_thread(
            self._client.respond_activity_task_failed,
            **_compact(
                {
                    "taskToken": task_token,
                    "reason": _truncate(reason, MAX_REASON_LENGTH),
                    "details": _truncate(details, MAX_DETAILS_LENGTH),
                }
            ),
        )
