"""Activity execution harness for replayflow workers."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Optional

from .contracts import ActivityTask, dump_payload, parse_payload
from .errors import PayloadTooLarge, UnknownActivityError
from .heartbeat import DEFAULT_HEARTBEAT_INTERVAL, HeartbeatThrottle
from .registry import ActivityRegistry
from .transports import BaseServiceClient

logger = logging.getLogger(__name__)


class ExecutionHandle:
    """Handed to an activity implementation alongside its input."""

    def __init__(
        self,
        task: ActivityTask,
        throttle: HeartbeatThrottle,
        loop: asyncio.AbstractEventLoop,
    ) -> None:
        self._task = task
        self._throttle = throttle
        self._loop = loop

    @property
    def task(self) -> ActivityTask:
        return self._task

    @property
    def activity_id(self) -> str:
        return self._task.activity_id

    @property
    def workflow_id(self) -> Optional[str]:
        return self._task.workflow_id

    def heartbeat(self, details: Any = None) -> None:
        """Report progress; bursts are coalesced into one heartbeat per interval.

        Safe to call from synchronous activities running in a worker thread.
        """
        self._loop.call_soon_threadsafe(self._throttle.report, details)


class ActivityExecutor:
    """Executes one activity task against a registry of implementations."""

    def __init__(
        self,
        client: BaseServiceClient,
        registry: ActivityRegistry,
        heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL,
    ) -> None:
        self._client = client
        self._registry = registry
        self._heartbeat_interval = heartbeat_interval

    async def execute(self, task: ActivityTask) -> Any:
        """Run ``task`` and report its outcome to the service.

        Raises:
            UnknownActivityError: If no implementation is registered for the task.
            Exception: Whatever the implementation raised, after reporting it.
        """
        try:
            activity = self._registry.get(task.name, task.version)
        except UnknownActivityError as e:
            logger.error(f"Activity '{task.name}' is not registered: {e}")
            await self._client.respond_activity_task_failed(
                task.task_token, type(e).__name__, str(e)
            )
            raise

        input = parse_payload(task.raw_input)
        throttle = HeartbeatThrottle(
            lambda details: self._client.record_activity_heartbeat(
                task.task_token, dump_payload(details)
            ),
            self._heartbeat_interval,
        )
        handle = ExecutionHandle(task, throttle, asyncio.get_running_loop())

        logger.info(f"Executing activity '{task.name}' with input {task.raw_input!r}")
        try:
            result = await self._invoke(activity, input, handle)
        except Exception as e:
            throttle.stop()
            logger.error(f"Activity execution failed: {e}")
            await self._client.respond_activity_task_failed(
                task.task_token, type(e).__name__, str(e)
            )
            raise
        finally:
            throttle.stop()

        logger.info(f"Activity execution succeeded: {result!r}")
        try:
            await self._client.respond_activity_task_completed(
                task.task_token, dump_payload(result)
            )
        except PayloadTooLarge as e:
            logger.error(f"Activity '{task.name}' result rejected: {e}")
            await self._client.respond_activity_task_failed(
                task.task_token, type(e).__name__, str(e)
            )
            raise
        return result

    @staticmethod
    async def _invoke(activity: Any, input: Any, handle: ExecutionHandle) -> Any:
        if inspect.iscoroutinefunction(activity):
            return await activity(input, handle)
        result = await asyncio.to_thread(activity, input, handle)
        if inspect.isawaitable(result):
            result = await result
        return result
