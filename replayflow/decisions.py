"""Write-only sink accumulating the decisions of one decision task."""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Protocol

from .contracts import (
    ActivityOptions,
    ChildWorkflowOptions,
    Decision,
    DecisionType,
)
from .errors import DecisionBatchSealed, TerminalDecisionError

logger = logging.getLogger(__name__)


class DecisionSink(Protocol):
    """Protocol for emitting outgoing instructions during a decision task."""

    def emit_schedule_activity(
        self, name: str, input: Any, options: Optional[ActivityOptions] = None
    ) -> None:
        """Schedule activity ``name`` with ``input``."""

    def emit_start_timer(self, name: str, delay_seconds: float) -> None:
        """Start timer ``name`` firing after ``delay_seconds``."""

    def emit_start_child_workflow(
        self, name: str, input: Any, options: Optional[ChildWorkflowOptions] = None
    ) -> None:
        """Start child workflow ``name`` with ``input``."""

    def emit_complete_workflow(self, value: Any) -> None:
        """Complete the workflow execution with ``value``."""

    def emit_fail_workflow(self, reason: str, detail: Optional[str] = None) -> None:
        """Fail the workflow execution."""

    def emit_no_decision(self) -> None:
        """Signal that nothing new can be decided yet."""


class DecisionBatch(DecisionSink):
    """Ordered batch of decisions owned by a single decision task.

    The batch is never read back while the task runs; ``flush`` hands the
    decisions over once and seals the batch.
    """

    def __init__(self) -> None:
        self._decisions: List[Decision] = []
        self._sealed = False

    def __len__(self) -> int:
        return sum(
            1 for d in self._decisions if d.decision_type is not DecisionType.NO_DECISION
        )

    @property
    def sealed(self) -> bool:
        return self._sealed

    @property
    def has_terminal(self) -> bool:
        return any(d.is_terminal for d in self._decisions)

    def _append(self, decision: Decision) -> None:
        if self._sealed:
            raise DecisionBatchSealed(
                f"Cannot emit {decision.decision_type.value}: batch already flushed"
            )
        if decision.is_terminal and self.has_terminal:
            raise TerminalDecisionError("Workflow execution already has a terminal decision")

        if decision.decision_type is DecisionType.NO_DECISION:
            if self._decisions:
                return
        else:
            self._decisions = [
                d for d in self._decisions if d.decision_type is not DecisionType.NO_DECISION
            ]
        self._decisions.append(decision)
        logger.debug(f"Emitted decision {decision.decision_type.value} {decision.name or ''}")

    # ------------------------------------------------------------------
    def emit_schedule_activity(
        self, name: str, input: Any, options: Optional[ActivityOptions] = None
    ) -> None:
        options = options or ActivityOptions()
        self._append(
            Decision(
                decision_type=DecisionType.SCHEDULE_ACTIVITY,
                name=name,
                input=input,
                options=options.model_dump(exclude_none=True),
            )
        )

    def emit_start_timer(self, name: str, delay_seconds: float) -> None:
        self._append(
            Decision(
                decision_type=DecisionType.START_TIMER,
                name=name,
                delay_seconds=delay_seconds,
            )
        )

    def emit_start_child_workflow(
        self, name: str, input: Any, options: Optional[ChildWorkflowOptions] = None
    ) -> None:
        options = options or ChildWorkflowOptions()
        self._append(
            Decision(
                decision_type=DecisionType.START_CHILD_WORKFLOW,
                name=name,
                input=input,
                options=options.model_dump(exclude_none=True),
            )
        )

    def emit_complete_workflow(self, value: Any) -> None:
        self._append(Decision(decision_type=DecisionType.COMPLETE_WORKFLOW, result=value))

    def emit_fail_workflow(self, reason: str, detail: Optional[str] = None) -> None:
        self._append(
            Decision(
                decision_type=DecisionType.FAIL_WORKFLOW,
                reason=reason,
                details=detail if detail is not None else reason,
            )
        )

    def emit_no_decision(self) -> None:
        self._append(Decision(decision_type=DecisionType.NO_DECISION))

    def flush(self) -> List[Decision]:
        """Return the accumulated decisions and seal the batch."""
        if self._sealed:
            raise DecisionBatchSealed("Decision batch already flushed")
        self._sealed = True
        decisions, self._decisions = self._decisions, []
        return decisions
