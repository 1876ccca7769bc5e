"""Exception hierarchy for replayflow."""

from __future__ import annotations

from typing import Any, Optional


class ReplayflowError(Exception):
    """Base class for all replayflow errors."""


class OperationFailed(ReplayflowError):
    """A named operation was recorded as failed in the execution history.

    Raised into workflow code when it awaits the operation's future.
    ``str()`` of the error is the recorded failure reason, so a workflow that
    lets it propagate fails with the same reason.
    """

    def __init__(
        self,
        kind: Any,
        name: str,
        reason: Optional[str] = None,
        details: Any = None,
    ) -> None:
        self.kind = kind
        self.name = name
        self.reason = reason
        self.details = details
        super().__init__(reason if reason is not None else f"{kind} '{name}' failed")


class UnknownActivityError(ReplayflowError):
    """No activity implementation is registered under the requested name."""


class UnknownWorkflowError(ReplayflowError):
    """No workflow function is registered under the requested name."""


class NonDeterministicAwait(ReplayflowError):
    """Workflow code awaited something that is not a replay future."""


class ReplayCancelled(ReplayflowError):
    """The awaited replay future was cancelled when its decision task ended."""


class SchedulerClosed(ReplayflowError):
    """Work was submitted to a scheduler that has already been torn down."""


class DecisionBatchSealed(ReplayflowError):
    """A decision was emitted after the batch had been flushed."""


class TerminalDecisionError(ReplayflowError):
    """More than one terminal decision was emitted for the same batch."""


class PayloadTooLarge(ReplayflowError):
    """An encoded result does not fit the service's size limit."""


__all__ = [
    "ReplayflowError",
    "OperationFailed",
    "UnknownActivityError",
    "UnknownWorkflowError",
    "NonDeterministicAwait",
    "ReplayCancelled",
    "SchedulerClosed",
    "DecisionBatchSealed",
    "TerminalDecisionError",
    "PayloadTooLarge",
]
