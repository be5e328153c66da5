"""Resumption: where should a reloaded diary continue?

Pure functions with no external dependencies.
"""

from dataclasses import dataclass
from typing import Any

from cbt_diary.domain.flow import FlowState, FlowStatus
from cbt_diary.domain.models import CBTSessionData
from cbt_diary.domain.steps import (
    CBT_STEP_ORDER,
    COMPLETE,
    TOTAL_CBT_STEPS,
    CBTStepId,
    CurrentStep,
    coerce_step,
    filled_prefix,
    order_of,
)


@dataclass(frozen=True)
class ResumePoint:
    """Where to continue and which steps are already done."""

    start_step: CurrentStep
    completed_steps: tuple[CBTStepId, ...]

    @property
    def ready_to_finalize(self) -> bool:
        return self.start_step == COMPLETE


def compute_starting_step(data: Any = None) -> ResumePoint:
    """Walk the steps in order and stop at the first one that is not filled.

    Data for steps after the first gap is ignored: a diary with situation
    and thoughts filled but emotions missing resumes at emotions with only
    situation complete.

    Args:
        data: Partial session data (mapping with camelCase keys, a
            CBTSessionData, or None)

    Returns:
        ResumePoint; ``start_step`` is "complete" when all nine steps are filled.
    """
    completed = filled_prefix(data)
    if len(completed) < TOTAL_CBT_STEPS:
        return ResumePoint(start_step=CBT_STEP_ORDER[len(completed)], completed_steps=completed)
    return ResumePoint(start_step=COMPLETE, completed_steps=completed)


def state_from_session_data(
    data: CBTSessionData | None,
    session_id: str | None = None,
    current_step: str | None = None,
    started_at: str | None = None,
) -> FlowState:
    """Rebuild an active FlowState from a persisted data bag.

    A remembered ``current_step`` earlier than the resolved start point is
    kept, so a user who navigated back before reloading lands on the same
    step. Anything later than the start point is ignored.
    """
    context = data or CBTSessionData()
    point = compute_starting_step(context)

    current: CurrentStep = point.start_step
    remembered = COMPLETE if current_step == COMPLETE else coerce_step(current_step)
    if remembered is not None and order_of(remembered) < order_of(current):
        current = remembered

    return FlowState(
        session_id=session_id,
        status=FlowStatus.COMPLETE if current == COMPLETE else FlowStatus.ACTIVE,
        current_step_id=current,
        completed_steps=point.completed_steps,
        context=context,
        started_at=started_at,
        updated_at=context.last_modified,
    )
