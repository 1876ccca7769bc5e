"""In-memory service client for testing."""

from __future__ import annotations

import asyncio
from collections import defaultdict, deque
from typing import Deque, Dict, List, Optional, Tuple

from ..contracts import ActivityTask, Decision, DecisionTask
from .base import BaseServiceClient


class InMemoryServiceClient(BaseServiceClient):
    """Queue-backed stand-in for the orchestration service.

    Tests enqueue tasks with ``add_decision_task``/``add_activity_task`` and
    inspect the recorded responses afterwards.
    """

    def __init__(self, poll_interval: float = 0.01) -> None:
        self._decision_tasks: Dict[str, Deque[DecisionTask]] = defaultdict(deque)
        self._activity_tasks: Dict[str, Deque[ActivityTask]] = defaultdict(deque)
        self._lock = asyncio.Lock()
        self._poll_interval = poll_interval
        self.decisions: Dict[str, List[Decision]] = {}
        self.heartbeats: List[Tuple[str, Optional[str]]] = []
        self.completed: Dict[str, Optional[str]] = {}
        self.failed: Dict[str, Tuple[str, Optional[str]]] = {}

    def add_decision_task(self, task_list: str, task: DecisionTask) -> None:
        self._decision_tasks[task_list].append(task)

    def add_activity_task(self, task_list: str, task: ActivityTask) -> None:
        self._activity_tasks[task_list].append(task)

    async def poll_decision_task(
        self, task_list: str, identity: str
    ) -> Optional[DecisionTask]:
        async with self._lock:
            if self._decision_tasks[task_list]:
                return self._decision_tasks[task_list].popleft()
        await asyncio.sleep(self._poll_interval)
        return None

    async def respond_decision_task_completed(
        self,
        task_token: str,
        decisions: List[Decision],
        workflow_id: Optional[str] = None,
    ) -> None:
        self.decisions[task_token] = list(decisions)

    async def poll_activity_task(
        self, task_list: str, identity: str
    ) -> Optional[ActivityTask]:
        async with self._lock:
            if self._activity_tasks[task_list]:
                return self._activity_tasks[task_list].popleft()
        await asyncio.sleep(self._poll_interval)
        return None

    async def record_activity_heartbeat(
        self, task_token: str, details: Optional[str] = None
    ) -> None:
        self.heartbeats.append((task_token, details))

    async def respond_activity_task_completed(
        self, task_token: str, result: Optional[str] = None
    ) -> None:
        self.completed[task_token] = result

    async def respond_activity_task_failed(
        self, task_token: str, reason: str, details: Optional[str] = None
    ) -> None:
        self.failed[task_token] = (reason, details)
