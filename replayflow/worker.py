"""Polling loops for deciders and activity workers."""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Set

from .config import default_identity
from .contracts import ActivityOptions, ChildWorkflowOptions, Decision, DecisionTask
from .execute import ActivityExecutor
from .heartbeat import DEFAULT_HEARTBEAT_INTERVAL
from .registry import ActivityRegistry
from .replay import WorkflowFunction, WorkflowReplayer
from .transports import BaseServiceClient
from .utils.retry import schedule_retry

logger = logging.getLogger(__name__)


class _Poller:
    def __init__(self, client: BaseServiceClient, task_list: str, identity: str) -> None:
        self._client = client
        self.task_list = task_list
        self.identity = identity
        self._stopping = False
        self._poll_failures = 0

    def stop(self) -> None:
        """Stop polling once the current request returns."""
        logger.info(f"Polling for '{self.task_list}' will stop after current request...")
        self._stopping = True

    def _running(self, deadline: Optional[float]) -> bool:
        if self._stopping:
            return False
        if deadline is not None and asyncio.get_running_loop().time() >= deadline:
            return False
        return True

    @staticmethod
    def _deadline(lifespan: Optional[float]) -> Optional[float]:
        if lifespan is None:
            return None
        return asyncio.get_running_loop().time() + lifespan

    async def _poll_failed(self, error: Exception) -> None:
        self._poll_failures += 1
        logger.error(f"Polling '{self.task_list}' failed: {error}")
        await schedule_retry(self._poll_failures)


class Decider(_Poller):
    """Replays a workflow function for every decision task it receives."""

    def __init__(
        self,
        client: BaseServiceClient,
        workflow_fn: WorkflowFunction,
        task_list: str,
        identity: Optional[str] = None,
        activity_defaults: Optional[ActivityOptions] = None,
        child_defaults: Optional[ChildWorkflowOptions] = None,
    ) -> None:
        super().__init__(client, task_list, identity or default_identity("decider"))
        self._replayer = WorkflowReplayer(workflow_fn, activity_defaults, child_defaults)

    async def handle(self, task: DecisionTask) -> List[Decision]:
        """Replay ``task`` and send its decisions in a single response."""
        logger.info(f"Received decision task for workflow {task.workflow_id}")
        outcome, decisions = self._replayer.replay(task)
        logger.info(
            f"Sending {len(decisions)} decision(s) for workflow {task.workflow_id} "
            f"({outcome.status})"
        )
        await self._client.respond_decision_task_completed(
            task.task_token, decisions, workflow_id=task.workflow_id
        )
        return decisions

    async def start(self, lifespan: Optional[float] = None) -> None:
        """Poll for decision tasks until stopped or ``lifespan`` seconds elapsed."""
        logger.info(
            f"Starting decider '{self.identity}' for task list '{self.task_list}'"
        )
        deadline = self._deadline(lifespan)
        while self._running(deadline):
            logger.debug("Polling for decision tasks...")
            try:
                task = await self._client.poll_decision_task(self.task_list, self.identity)
            except Exception as e:
                await self._poll_failed(e)
                continue
            self._poll_failures = 0
            if task is None:
                continue
            try:
                await self.handle(task)
            except Exception:
                # Left unanswered so the service times the task out and retries it.
                logger.exception(f"Decision execution failed for workflow {task.workflow_id}")


class ActivityWorker(_Poller):
    """Executes activity tasks with a bounded number in flight."""

    def __init__(
        self,
        client: BaseServiceClient,
        registry: ActivityRegistry,
        task_list: str,
        identity: Optional[str] = None,
        heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL,
        max_concurrency: int = 1,
    ) -> None:
        super().__init__(client, task_list, identity or default_identity("activity"))
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self._executor = ActivityExecutor(client, registry, heartbeat_interval)
        self._max_concurrency = max_concurrency
        self._inflight: Set[asyncio.Task] = set()
        self._failures = 0

    async def start(self, lifespan: Optional[float] = None) -> None:
        """Poll for activity tasks until stopped or ``lifespan`` seconds elapsed."""
        logger.info(
            f"Starting activity worker '{self.identity}' for task list '{self.task_list}'"
        )
        semaphore = asyncio.Semaphore(self._max_concurrency)
        deadline = self._deadline(lifespan)
        try:
            while self._running(deadline):
                await semaphore.acquire()
                logger.debug("Polling for activity tasks...")
                try:
                    task = await self._client.poll_activity_task(self.task_list, self.identity)
                except Exception as e:
                    semaphore.release()
                    await self._poll_failed(e)
                    continue
                self._poll_failures = 0
                if task is None:
                    semaphore.release()
                    continue
                running = asyncio.create_task(self._run(task, semaphore))
                self._inflight.add(running)
                running.add_done_callback(self._inflight.discard)
        finally:
            if self._inflight:
                await asyncio.gather(*self._inflight, return_exceptions=True)

    async def _run(self, task, semaphore: asyncio.Semaphore) -> None:
        logger.info(f"Received activity task '{task.name}' ({task.activity_id})")
        try:
            await self._executor.execute(task)
        except Exception as e:
            self._failures += 1
            logger.warning(
                f"Activity '{task.name}' failed ({self._failures} in a row): {e}"
            )
            await schedule_retry(self._failures)
        else:
            self._failures = 0
        finally:
            semaphore.release()
