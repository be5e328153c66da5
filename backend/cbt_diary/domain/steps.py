"""CBT diary step registry and completion predicates.

Pure domain logic with no external dependencies. Every function here is
total: unknown steps and malformed data answer "not filled" instead of
raising.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Literal


class CBTStepId(StrEnum):
    """The nine diary steps, declared in canonical order."""

    SITUATION = "situation"
    EMOTIONS = "emotions"
    THOUGHTS = "thoughts"
    CORE_BELIEF = "core-belief"
    CHALLENGE_QUESTIONS = "challenge-questions"
    RATIONAL_THOUGHTS = "rational-thoughts"
    SCHEMA_MODES = "schema-modes"
    ACTIONS = "actions"
    FINAL_EMOTIONS = "final-emotions"


# Terminal pseudo-step reached after final-emotions
COMPLETE: Literal["complete"] = "complete"

CurrentStep = CBTStepId | Literal["complete"]

CBT_STEP_ORDER: tuple[CBTStepId, ...] = tuple(CBTStepId)
TOTAL_CBT_STEPS = len(CBT_STEP_ORDER)

_STEP_INDEX: dict[CBTStepId, int] = {step: index for index, step in enumerate(CBT_STEP_ORDER)}


@dataclass(frozen=True)
class StepConfig:
    """Static description of one diary step."""

    id: CBTStepId
    field: str  # key in the session data bag
    title: str
    subtitle: str
    completed_label: str
    prompt: str
    ai_response: str
    list_key: str | None = None  # wrapper key holding the step's list, if list-valued
    is_list: bool = False


CBT_STEP_CONFIG: dict[CBTStepId, StepConfig] = {
    CBTStepId.SITUATION: StepConfig(
        id=CBTStepId.SITUATION,
        field="situation",
        title="Describe the situation",
        subtitle="Capture the triggering event and context.",
        completed_label="Situation Analysis",
        prompt="What happened?",
        ai_response=(
            "Thank you for sharing that situation with me. Understanding the context is so "
            "important for CBT work. Now let's explore how this situation made you feel emotionally."
        ),
    ),
    CBTStepId.EMOTIONS: StepConfig(
        id=CBTStepId.EMOTIONS,
        field="emotions",
        title="Rate your emotions",
        subtitle="Notice emotional intensity before processing your thoughts.",
        completed_label="Emotion Assessment",
        prompt="How are you feeling?",
        ai_response=(
            "I can see you're experiencing some significant emotions around this situation. "
            "These feelings are completely valid. Now let's examine what thoughts were running "
            "through your mind during this experience."
        ),
    ),
    CBTStepId.THOUGHTS: StepConfig(
        id=CBTStepId.THOUGHTS,
        field="thoughts",
        title="Capture automatic thoughts",
        subtitle="Record the thoughts that appeared during the situation.",
        completed_label="Automatic Thoughts",
        prompt="What thoughts went through your mind?",
        ai_response=(
            "Those automatic thoughts can be really powerful and feel very real in the moment. "
            "Let's dig deeper into what core beliefs might be underlying these thoughts."
        ),
        is_list=True,
    ),
    CBTStepId.CORE_BELIEF: StepConfig(
        id=CBTStepId.CORE_BELIEF,
        field="coreBelief",
        title="Name the core belief",
        subtitle="Explore the deeper belief that fuels your automatic thoughts.",
        completed_label="Core Belief Exploration",
        prompt="What's the core belief?",
        ai_response=(
            "I can see the core belief you've identified. This insight is really valuable - "
            "recognizing these deep patterns is the first step toward change. Now let's "
            "challenge this belief together."
        ),
    ),
    CBTStepId.CHALLENGE_QUESTIONS: StepConfig(
        id=CBTStepId.CHALLENGE_QUESTIONS,
        field="challengeQuestions",
        title="Challenge the thought",
        subtitle="Use guided questions to test the accuracy of your belief.",
        completed_label="Thought Challenging",
        prompt="Challenge the belief",
        ai_response=(
            "Excellent work examining your belief from different angles. Those challenge "
            "questions help us see beyond our automatic thinking patterns. Now let's develop "
            "some more balanced, rational thoughts."
        ),
        list_key="challengeQuestions",
        is_list=True,
    ),
    CBTStepId.RATIONAL_THOUGHTS: StepConfig(
        id=CBTStepId.RATIONAL_THOUGHTS,
        field="rationalThoughts",
        title="Create balanced responses",
        subtitle="Write compassionate, realistic statements to counter your belief.",
        completed_label="Rational Response Development",
        prompt="Rational alternatives",
        ai_response=(
            "These rational alternatives you've developed are really insightful. Having these "
            "balanced thoughts ready can be incredibly helpful when the old patterns try to "
            "resurface. Now let's explore which schema modes feel most active for you right now."
        ),
        list_key="rationalThoughts",
        is_list=True,
    ),
    CBTStepId.SCHEMA_MODES: StepConfig(
        id=CBTStepId.SCHEMA_MODES,
        field="schemaModes",
        title="Identify schema modes",
        subtitle="Notice which coping modes are present and how intense they feel.",
        completed_label="Schema Mode Analysis",
        prompt="Schema modes",
        ai_response=(
            "Thank you for identifying those schema modes. Understanding which parts of "
            "yourself are most active can provide valuable insights into your emotional "
            "patterns. Next, let's outline a concrete action plan for future situations."
        ),
        list_key="selectedModes",
        is_list=True,
    ),
    CBTStepId.ACTIONS: StepConfig(
        id=CBTStepId.ACTIONS,
        field="actionPlan",
        title="Plan helpful actions",
        subtitle="Capture new behaviours and confidence in your revised belief.",
        completed_label="Action Plan Development",
        prompt="Future Action Plan",
        ai_response=(
            "Great plan. Now, as a final step, please reflect on how you feel after this whole "
            "process. When you're ready, you can send your session to chat for analysis."
        ),
    ),
    CBTStepId.FINAL_EMOTIONS: StepConfig(
        id=CBTStepId.FINAL_EMOTIONS,
        field="finalEmotions",
        title="Reflect on current emotions",
        subtitle="Compare how you feel now with how you felt at the start.",
        completed_label="Emotional Reflection",
        prompt="How do you feel now?",
        ai_response=(
            "Wonderful work! You've completed a comprehensive CBT exploration. This kind of "
            "structured reflection can be incredibly helpful for understanding patterns and "
            "developing new ways of responding to challenging situations."
        ),
    ),
}

STEP_TO_FIELD: dict[CBTStepId, str] = {step: config.field for step, config in CBT_STEP_CONFIG.items()}


def coerce_step(value: Any) -> CBTStepId | None:
    """Return the CBTStepId for a raw value, or None if it is not a step."""
    if isinstance(value, CBTStepId):
        return value
    try:
        return CBTStepId(value)
    except ValueError:
        return None


def order_of(step: CurrentStep | str) -> int:
    """Return the 0-based canonical position; "complete" sorts after every step.

    Unknown values sort after "complete" so they never look reachable.
    """
    if step == COMPLETE:
        return TOTAL_CBT_STEPS
    resolved = coerce_step(step)
    if resolved is None:
        return TOTAL_CBT_STEPS + 1
    return _STEP_INDEX[resolved]


def step_number(step: CurrentStep | str) -> int:
    """Return the 1-indexed step number used for progress display."""
    if step == COMPLETE:
        return TOTAL_CBT_STEPS + 1
    resolved = coerce_step(step)
    return _STEP_INDEX[resolved] + 1 if resolved is not None else 1


def next_step(step: CBTStepId) -> CurrentStep:
    """Return the step after ``step``, or "complete" after the last one."""
    index = _STEP_INDEX[step] + 1
    return CBT_STEP_ORDER[index] if index < TOTAL_CBT_STEPS else COMPLETE


def previous_step(current: CurrentStep) -> CBTStepId | None:
    """Return the step before ``current``; None when already at the first step."""
    if current == COMPLETE:
        return CBT_STEP_ORDER[-1]
    index = _STEP_INDEX[current]
    return CBT_STEP_ORDER[index - 1] if index > 0 else None


def _as_mapping(data: Any) -> Mapping | None:
    if data is None:
        return None
    if isinstance(data, Mapping):
        return data
    # pydantic models from cbt_diary.domain.models; camelCase keys like the stored JSON
    dump = getattr(data, "model_dump", None)
    if callable(dump):
        return dump(by_alias=True)
    return None


def _has_leaf(value: Any) -> bool:
    """True if any scalar leaf under ``value`` is neither None nor an empty string."""
    if value is None:
        return False
    if isinstance(value, str):
        return value != ""
    if isinstance(value, Mapping):
        return any(_has_leaf(item) for item in value.values())
    if isinstance(value, (list, tuple)):
        return any(_has_leaf(item) for item in value)
    # numbers and booleans are meaningful, 0 included
    return True


def is_step_filled(data: Any, step: CBTStepId | str) -> bool:
    """Has this step's data been meaningfully filled in?

    - List-valued steps: the list (bare, or inside its wrapper object) is
      present and non-empty.
    - Object-valued steps: some leaf is non-empty. A numeric rating alone
      counts, so ``{"coreBeliefText": "", "coreBeliefCredibility": 5}`` is
      filled while ``{"situation": "", "date": ""}`` is not.
    - Missing or None data is never filled.
    """
    resolved = coerce_step(step)
    mapping = _as_mapping(data)
    if resolved is None or mapping is None:
        return False

    config = CBT_STEP_CONFIG[resolved]
    value = mapping.get(config.field)
    if value is None:
        return False

    if config.is_list:
        if config.list_key and isinstance(value, Mapping):
            value = value.get(config.list_key)
        return isinstance(value, (list, tuple)) and len(value) > 0

    if isinstance(value, (list, tuple)):
        return False
    return _has_leaf(value)


def has_any_step_data(data: Any) -> bool:
    """Order-independent check: is any step filled at all?"""
    return any(is_step_filled(data, step) for step in CBT_STEP_ORDER)


def filled_prefix(data: Any) -> tuple[CBTStepId, ...]:
    """Steps filled in canonical order, stopping at the first gap."""
    filled: list[CBTStepId] = []
    for step in CBT_STEP_ORDER:
        if not is_step_filled(data, step):
            break
        filled.append(step)
    return tuple(filled)
