"""Base client interface for the orchestration service."""

from __future__ import annotations

import abc
from typing import List, Optional

from ..contracts import ActivityTask, Decision, DecisionTask


class BaseServiceClient(metaclass=abc.ABCMeta):
    """Abstract client for polling tasks and answering them."""

    async def connect(self) -> None:
        """Open connection to the service (no-op by default)."""
        pass

    async def disconnect(self) -> None:
        """Close connection to the service (no-op by default)."""
        pass

    @abc.abstractmethod
    async def poll_decision_task(
        self, task_list: str, identity: str
    ) -> Optional[DecisionTask]:
        """Long-poll for a decision task; ``None`` when the poll timed out."""
        raise NotImplementedError

    @abc.abstractmethod
    async def respond_decision_task_completed(
        self,
        task_token: str,
        decisions: List[Decision],
        workflow_id: Optional[str] = None,
    ) -> None:
        """Send the flushed decision batch for ``task_token``.

        ``workflow_id`` identifies the deciding execution, for clients that
        derive child workflow ids from it.
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def poll_activity_task(
        self, task_list: str, identity: str
    ) -> Optional[ActivityTask]:
        """Long-poll for an activity task; ``None`` when the poll timed out."""
        raise NotImplementedError

    @abc.abstractmethod
    async def record_activity_heartbeat(
        self, task_token: str, details: Optional[str] = None
    ) -> None:
        """Report progress of a running activity."""
        raise NotImplementedError

    @abc.abstractmethod
    async def respond_activity_task_completed(
        self, task_token: str, result: Optional[str] = None
    ) -> None:
        """Report successful completion of an activity."""
        raise NotImplementedError

    @abc.abstractmethod
    async def respond_activity_task_failed(
        self, task_token: str, reason: str, details: Optional[str] = None
    ) -> None:
        """Report failure of an activity with an error category and message."""
        raise NotImplementedError
