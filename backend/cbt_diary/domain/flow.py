"""CBT flow state, events, and the pure transition function.

Pure domain logic -- no I/O, no clock reads. Timestamps travel on the
events; callers stamp them before dispatching.
"""

from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Any

from cbt_diary.domain.models import ActionPlanData, CBTSessionData, EmotionData
from cbt_diary.domain.steps import (
    CBT_STEP_CONFIG,
    CBT_STEP_ORDER,
    COMPLETE,
    TOTAL_CBT_STEPS,
    CBTStepId,
    CurrentStep,
    coerce_step,
    filled_prefix,
    is_step_filled,
    next_step,
    order_of,
    step_number,
)


class FlowStatus(StrEnum):
    """Lifecycle of one diary session."""

    IDLE = "idle"
    ACTIVE = "active"
    COMPLETE = "complete"


# Python attribute on CBTSessionData holding each step's payload
STEP_TO_ATTR: dict[CBTStepId, str] = {
    CBTStepId.SITUATION: "situation",
    CBTStepId.EMOTIONS: "emotions",
    CBTStepId.THOUGHTS: "thoughts",
    CBTStepId.CORE_BELIEF: "core_belief",
    CBTStepId.CHALLENGE_QUESTIONS: "challenge_questions",
    CBTStepId.RATIONAL_THOUGHTS: "rational_thoughts",
    CBTStepId.SCHEMA_MODES: "schema_modes",
    CBTStepId.ACTIONS: "action_plan",
    CBTStepId.FINAL_EMOTIONS: "final_emotions",
}


@dataclass(frozen=True)
class FlowState:
    """Immutable snapshot of one diary session's progress."""

    session_id: str | None = None
    status: FlowStatus = FlowStatus.IDLE
    current_step_id: CurrentStep = CBTStepId.SITUATION
    completed_steps: tuple[CBTStepId, ...] = ()
    context: CBTSessionData = field(default_factory=CBTSessionData)
    started_at: str | None = None
    updated_at: str | None = None

    @property
    def is_complete(self) -> bool:
        return self.status == FlowStatus.COMPLETE

    @property
    def current_step_number(self) -> int:
        """1-indexed step number; a finished flow reports the last step."""
        if self.current_step_id == COMPLETE:
            return TOTAL_CBT_STEPS
        return step_number(self.current_step_id)


# ──────────────────────────────────────────────────────────────────────────────
# Events
# ──────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class SessionStart:
    session_id: str | None = None
    timestamp: str | None = None


@dataclass(frozen=True)
class StepSubmitted:
    """Data for the current step was submitted; advance on success."""

    step_id: CBTStepId
    payload: Any
    timestamp: str | None = None


@dataclass(frozen=True)
class StepUpdated:
    """Edit a step's data without moving the current step."""

    step_id: CBTStepId
    payload: Any
    timestamp: str | None = None


@dataclass(frozen=True)
class StepCleared:
    step_id: CBTStepId
    timestamp: str | None = None


@dataclass(frozen=True)
class GoToStep:
    step_id: CurrentStep
    timestamp: str | None = None


@dataclass(frozen=True)
class Reset:
    pass


@dataclass(frozen=True)
class Hydrate:
    state: FlowState


FlowEvent = SessionStart | StepSubmitted | StepUpdated | StepCleared | GoToStep | Reset | Hydrate


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of applying one event; ``state`` is unchanged when rejected.

    ``missing_data`` marks a submit rejected because the step would still be
    empty, as opposed to one sent for the wrong step.
    """

    allowed: bool
    state: FlowState
    reason: str = ""
    missing_data: bool = False


# ──────────────────────────────────────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────────────────────────────────────


def create_initial_state() -> FlowState:
    return FlowState()


def first_incomplete_step(completed_steps: tuple[CBTStepId, ...]) -> CurrentStep:
    """First step in canonical order missing from ``completed_steps``."""
    done = set(completed_steps)
    for step in CBT_STEP_ORDER:
        if step not in done:
            return step
    return COMPLETE


def _align_with_data(state: FlowState, current: CurrentStep) -> FlowState:
    """Recompute completion from the data bag and keep ``current`` at or before the first gap.

    The result matches what a reload of the stored draft resolves to.
    """
    completed = filled_prefix(state.context)
    gap = first_incomplete_step(completed)
    if order_of(current) > order_of(gap):
        current = gap
    return replace(
        state,
        current_step_id=current,
        completed_steps=completed,
        status=FlowStatus.COMPLETE if current == COMPLETE else FlowStatus.ACTIVE,
    )


def _stamp(context: CBTSessionData, timestamp: str | None) -> CBTSessionData:
    if timestamp is None:
        return context
    return context.model_copy(update={"last_modified": timestamp})


def apply_step_payload(context: CBTSessionData, step: CBTStepId, payload: Any) -> CBTSessionData:
    """Merge one step's payload into the data bag, leaving other steps untouched.

    ``actions`` merges into an existing action plan; ``final-emotions`` is
    mirrored into ``action_plan.final_emotions``.
    """
    if step == CBTStepId.ACTIONS:
        existing = context.action_plan
        if existing is not None and isinstance(payload, ActionPlanData):
            payload = existing.model_copy(
                update={name: getattr(payload, name) for name in payload.model_fields_set}
            )
        return context.model_copy(update={"action_plan": payload})

    if step == CBTStepId.FINAL_EMOTIONS:
        if context.action_plan is not None:
            action_plan = context.action_plan.model_copy(update={"final_emotions": payload})
        else:
            action_plan = ActionPlanData(
                final_emotions=payload if isinstance(payload, EmotionData) else None,
                new_behaviors="",
                original_thought_credibility=5,
            )
        return context.model_copy(update={"final_emotions": payload, "action_plan": action_plan})

    return context.model_copy(update={STEP_TO_ATTR[step]: payload})


def clear_step_payload(context: CBTSessionData, step: CBTStepId) -> CBTSessionData:
    """Remove one step's payload from the data bag."""
    if step == CBTStepId.FINAL_EMOTIONS:
        action_plan = context.action_plan
        if action_plan is not None:
            action_plan = action_plan.model_copy(update={"final_emotions": None})
        return context.model_copy(update={"final_emotions": None, "action_plan": action_plan})
    return context.model_copy(update={STEP_TO_ATTR[step]: None})


# ──────────────────────────────────────────────────────────────────────────────
# Transition
# ──────────────────────────────────────────────────────────────────────────────


def try_transition(state: FlowState, event: FlowEvent) -> TransitionResult:
    """Apply ``event`` to ``state`` and report whether it was accepted.

    Pure function -- deterministic, no side effects.

    Rules:
        - Reset returns the idle initial state; Hydrate returns its state.
        - SessionStart restarts at step 1 with empty history and data.
        - StepSubmitted is only accepted for the current step of an active
          flow, and only when the merged data fills that step. It marks the
          step complete and advances; submitting final-emotions completes
          the flow.
        - StepUpdated merges data without moving, unless the edit empties a
          step before the current one.
        - StepCleared drops a step's data and completion. The current step
          moves back to the cleared step when it was further along, so a
          finished flow reopens there.
        - GoToStep may move to any step up to the first incomplete one, and
          to "complete" only once all steps are complete. Later completion
          is kept when revisiting an earlier step.

    Completion always follows the data: a step counts as complete only when
    it and every step before it are filled.
    """
    if isinstance(event, Reset):
        return TransitionResult(True, create_initial_state())

    if isinstance(event, Hydrate):
        return TransitionResult(True, event.state)

    if isinstance(event, SessionStart):
        return TransitionResult(
            True,
            FlowState(
                session_id=event.session_id or state.session_id,
                status=FlowStatus.ACTIVE,
                current_step_id=CBTStepId.SITUATION,
                completed_steps=(),
                context=_stamp(CBTSessionData(), event.timestamp),
                started_at=event.timestamp,
                updated_at=event.timestamp,
            ),
        )

    if state.status == FlowStatus.IDLE:
        return TransitionResult(False, state, "No active CBT session")

    timestamp = getattr(event, "timestamp", None) or state.updated_at

    if isinstance(event, StepSubmitted):
        if state.current_step_id == COMPLETE:
            return TransitionResult(False, state, "CBT session is already complete")
        if event.step_id != state.current_step_id:
            return TransitionResult(
                False, state, f"Expected data for '{state.current_step_id}', got '{event.step_id}'"
            )

        merged = apply_step_payload(state.context, event.step_id, event.payload)
        if not is_step_filled(merged, event.step_id):
            return TransitionResult(
                False, state, f"Step '{event.step_id}' needs data before it can be completed", missing_data=True
            )

        updated = replace(
            state,
            context=_stamp(merged, timestamp),
            started_at=state.started_at or timestamp,
            updated_at=timestamp,
        )
        return TransitionResult(True, _align_with_data(updated, next_step(event.step_id)))

    if isinstance(event, StepUpdated):
        updated = replace(
            state,
            context=_stamp(apply_step_payload(state.context, event.step_id, event.payload), timestamp),
            updated_at=timestamp,
        )
        return TransitionResult(True, _align_with_data(updated, state.current_step_id))

    if isinstance(event, StepCleared):
        cleared = replace(
            state,
            context=_stamp(clear_step_payload(state.context, event.step_id), timestamp),
            updated_at=timestamp,
        )
        return TransitionResult(True, _align_with_data(cleared, state.current_step_id))

    if isinstance(event, GoToStep):
        frontier = first_incomplete_step(state.completed_steps)
        if event.step_id == COMPLETE:
            if frontier != COMPLETE:
                return TransitionResult(False, state, f"Step '{frontier}' is not complete yet")
            return TransitionResult(
                True,
                replace(state, current_step_id=COMPLETE, status=FlowStatus.COMPLETE, updated_at=timestamp),
            )

        target = coerce_step(event.step_id)
        if target is None:
            return TransitionResult(False, state, f"Unknown step '{event.step_id}'")
        if order_of(target) > order_of(frontier):
            return TransitionResult(False, state, f"Complete '{frontier}' before moving to '{target}'")
        return TransitionResult(
            True,
            replace(state, current_step_id=target, status=FlowStatus.ACTIVE, updated_at=timestamp),
        )

    raise TypeError(f"Unhandled flow event: {event!r}")


def transition(state: FlowState, event: FlowEvent) -> FlowState:
    """Pure state transition; rejected events return ``state`` unchanged."""
    return try_transition(state, event).state


# ──────────────────────────────────────────────────────────────────────────────
# Selectors
# ──────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class TimelineMessage:
    """One entry of the chat-style timeline the UI renders for a session."""

    id: str
    step_id: CBTStepId
    type: str  # "cbt-component" | "ai-response"
    text: str
    step_number: int
    total_steps: int = TOTAL_CBT_STEPS


def _component_message(step: CBTStepId) -> TimelineMessage:
    return TimelineMessage(
        id=f"component:{step}",
        step_id=step,
        type="cbt-component",
        text=CBT_STEP_CONFIG[step].prompt,
        step_number=step_number(step),
    )


def _ai_message(step: CBTStepId) -> TimelineMessage:
    return TimelineMessage(
        id=f"ai:{step}",
        step_id=step,
        type="ai-response",
        text=CBT_STEP_CONFIG[step].ai_response,
        step_number=step_number(step),
    )


def select_timeline_messages(state: FlowState) -> list[TimelineMessage]:
    """Prompt for step 1, then an AI reply and the next prompt per completed step."""
    if state.status == FlowStatus.IDLE:
        return []

    messages = [_component_message(CBT_STEP_ORDER[0])]
    queued = {messages[0].id}
    for step in state.completed_steps:
        messages.append(_ai_message(step))
        following = next_step(step)
        if following != COMPLETE and f"component:{following}" not in queued:
            messages.append(_component_message(following))
            queued.add(f"component:{following}")
    return messages
