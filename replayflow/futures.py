"""Replay futures and the cooperative scheduler that drives workflow code.

Workflow functions are ordinary ``async def`` coroutines, but they never run
on an asyncio event loop. A ``Scheduler`` steps them directly: every await of
a ``ReplayFuture`` either returns at once (the future is already settled) or
parks the task until the future settles. Nothing ever sleeps, so a single
``run_until_quiescent`` call processes everything the current history allows
and then returns.
"""

from __future__ import annotations

import inspect
import logging
from collections import deque
from enum import Enum
from typing import (
    Any,
    Awaitable,
    Callable,
    Coroutine,
    Deque,
    Generator,
    List,
    Optional,
    Tuple,
)

from .errors import NonDeterministicAwait, ReplayCancelled, SchedulerClosed

logger = logging.getLogger(__name__)


class FutureState(str, Enum):
    PENDING = "pending"
    FULFILLED = "fulfilled"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class ReplayFuture:
    """Future whose resolution is driven purely by execution history."""

    def __init__(self, scheduler: "Scheduler", label: Optional[str] = None) -> None:
        self._scheduler = scheduler
        self._label = label
        self._state = FutureState.PENDING
        self._value: Any = None
        self._error: Optional[BaseException] = None
        self._callbacks: List[Callable[["ReplayFuture"], None]] = []

    def __repr__(self) -> str:
        label = f" {self._label}" if self._label else ""
        return f"<{type(self).__name__}{label} {self._state.value}>"

    @property
    def label(self) -> Optional[str]:
        return self._label

    @property
    def state(self) -> FutureState:
        return self._state

    @property
    def scheduler(self) -> "Scheduler":
        return self._scheduler

    def done(self) -> bool:
        return self._state is not FutureState.PENDING

    def pending(self) -> bool:
        return self._state is FutureState.PENDING

    def fulfilled(self) -> bool:
        return self._state is FutureState.FULFILLED

    def rejected(self) -> bool:
        return self._state is FutureState.REJECTED

    def cancelled(self) -> bool:
        return self._state is FutureState.CANCELLED

    def result(self) -> Any:
        """Return the value, or raise the rejection error."""
        if self._state is FutureState.FULFILLED:
            return self._value
        if self._state is FutureState.REJECTED:
            assert self._error is not None
            raise self._error
        if self._state is FutureState.CANCELLED:
            raise ReplayCancelled(f"{self!r} was cancelled")
        raise RuntimeError(f"{self!r} has not settled")

    def exception(self) -> Optional[BaseException]:
        if self._state is FutureState.PENDING:
            raise RuntimeError(f"{self!r} has not settled")
        return self._error

    def set_result(self, value: Any) -> None:
        self._settle(FutureState.FULFILLED, value=value)

    def set_exception(self, error: BaseException) -> None:
        self._settle(FutureState.REJECTED, error=error)

    def cancel(self) -> bool:
        if self.done():
            return False
        self._settle(FutureState.CANCELLED)
        return True

    def add_done_callback(self, callback: Callable[["ReplayFuture"], None]) -> None:
        if self.done():
            self._scheduler.call_soon(callback, self)
        else:
            self._callbacks.append(callback)

    def _settle(
        self, state: FutureState, value: Any = None, error: Optional[BaseException] = None
    ) -> None:
        if self.done():
            raise RuntimeError(f"{self!r} already settled")
        self._state = state
        self._value = value
        self._error = error
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            self._scheduler.call_soon(callback, self)

    def __await__(self) -> Generator["ReplayFuture", None, Any]:
        if not self.done():
            yield self
        return self.result()


class ReplayTask(ReplayFuture):
    """Drives one workflow coroutine, parking it on pending futures."""

    def __init__(
        self,
        scheduler: "Scheduler",
        coro: Coroutine[Any, Any, Any],
        label: Optional[str] = None,
    ) -> None:
        super().__init__(scheduler, label)
        self._coro = coro
        self._waiting_on: Optional[ReplayFuture] = None
        scheduler.call_soon(self._step)

    @property
    def waiting_on(self) -> Optional[ReplayFuture]:
        return self._waiting_on

    def _step(self, value: Any = None, error: Optional[BaseException] = None) -> None:
        if self.done():
            return
        self._waiting_on = None
        try:
            if error is None:
                yielded = self._coro.send(value)
            else:
                yielded = self._coro.throw(error)
        except StopIteration as stop:
            self.set_result(stop.value)
            return
        except Exception as exc:
            self.set_exception(exc)
            return

        if not isinstance(yielded, ReplayFuture):
            self._scheduler.call_soon(
                self._step,
                None,
                NonDeterministicAwait(
                    f"Workflow awaited {yielded!r}; only replay futures may be awaited"
                ),
            )
        elif yielded.scheduler is not self._scheduler:
            self._scheduler.call_soon(
                self._step,
                None,
                NonDeterministicAwait(f"{yielded!r} belongs to another decision task"),
            )
        else:
            self._waiting_on = yielded
            yielded.add_done_callback(self._wakeup)

    def _wakeup(self, future: ReplayFuture) -> None:
        try:
            value = future.result()
        except Exception as exc:
            self._step(error=exc)
        else:
            self._step(value)

    def cancel(self) -> bool:
        if self.done():
            return False
        try:
            self._coro.close()
        except Exception as exc:
            logger.warning(f"Workflow coroutine {self!r} failed while cancelled: {exc!r}")
        self._waiting_on = None
        return super().cancel()


class Scheduler:
    """Single-threaded, single-use cooperative scheduler for one decision task."""

    def __init__(self) -> None:
        self._ready: Deque[Tuple[Callable[..., None], Tuple[Any, ...]]] = deque()
        self._tasks: List[ReplayTask] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def tasks(self) -> Tuple[ReplayTask, ...]:
        return tuple(self._tasks)

    def pending_tasks(self) -> List[ReplayTask]:
        return [task for task in self._tasks if task.pending()]

    def call_soon(self, callback: Callable[..., None], *args: Any) -> None:
        if self._closed:
            return
        self._ready.append((callback, args))

    def create_future(self, label: Optional[str] = None) -> ReplayFuture:
        self._ensure_open()
        return ReplayFuture(self, label)

    def spawn(self, coro: Coroutine[Any, Any, Any], label: Optional[str] = None) -> ReplayTask:
        """Schedule ``coro`` as a new task."""
        self._ensure_open()
        if not inspect.iscoroutine(coro):
            raise TypeError(f"Expected a coroutine, got {coro!r}")
        task = ReplayTask(self, coro, label)
        self._tasks.append(task)
        return task

    def run_until_quiescent(self) -> int:
        """Run ready callbacks until no further progress is possible.

        Returns the number of callbacks executed.
        """
        steps = 0
        while self._ready:
            callback, args = self._ready.popleft()
            callback(*args)
            steps += 1
        return steps

    def cancel_pending(self) -> int:
        """Cancel every unfinished task and close the scheduler for good."""
        self._closed = True
        self._ready.clear()
        cancelled = 0
        for task in self._tasks:
            if task.cancel():
                cancelled += 1
        return cancelled

    # ------------------------------------------------------------------
    def ensure_future(self, awaitable: Awaitable[Any]) -> ReplayFuture:
        if isinstance(awaitable, ReplayFuture):
            if awaitable.scheduler is not self:
                raise NonDeterministicAwait(f"{awaitable!r} belongs to another decision task")
            return awaitable
        return self.spawn(awaitable)  # type: ignore[arg-type]

    def gather(self, *awaitables: Awaitable[Any]) -> ReplayFuture:
        """Future fulfilled with every result in order, or the first rejection."""
        futures = [self.ensure_future(aw) for aw in awaitables]
        combined = self.create_future("gather")
        if not futures:
            combined.set_result([])
            return combined

        remaining = len(futures)

        def _on_done(future: ReplayFuture) -> None:
            nonlocal remaining
            if combined.done():
                return
            if future.fulfilled():
                remaining -= 1
                if remaining == 0:
                    combined.set_result([f.result() for f in futures])
            elif future.rejected():
                combined.set_exception(future.exception())
            else:
                combined.cancel()

        for future in futures:
            future.add_done_callback(_on_done)
        return combined

    def first(self, *awaitables: Awaitable[Any]) -> ReplayFuture:
        """Future settled like whichever of ``awaitables`` settles first."""
        futures = [self.ensure_future(aw) for aw in awaitables]
        if not futures:
            raise ValueError("first() needs at least one awaitable")
        combined = self.create_future("first")

        def _on_done(future: ReplayFuture) -> None:
            if combined.done():
                return
            if future.fulfilled():
                combined.set_result(future.result())
            elif future.rejected():
                combined.set_exception(future.exception())
            else:
                combined.cancel()

        for future in futures:
            future.add_done_callback(_on_done)
        return combined

    def _ensure_open(self) -> None:
        if self._closed:
            raise SchedulerClosed("Scheduler has been torn down with its decision task")
