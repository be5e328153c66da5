"""Render a CBT diary as chat content.

Two formats are produced:
- a summary card: a JSON payload wrapped in HTML comments that the chat UI
  renders as a structured card
- a markdown summary for plain-text display and report generation
"""

import json
from datetime import UTC, datetime
from typing import Any

from cbt_diary.domain.flow import FlowState
from cbt_diary.domain.models import CORE_EMOTIONS, ActionPlanData, CBTSessionData, EmotionData
from cbt_diary.domain.steps import CBT_STEP_CONFIG, CBT_STEP_ORDER, CBTStepId

CARD_PREFIX = "<!-- CBT_SUMMARY_CARD:"
CARD_SUFFIX = " -->\n<!-- END_CBT_SUMMARY_CARD -->"

SUMMARY_FOOTER = (
    "*Structured reflection: Situation, Emotions, Thoughts, Core Beliefs, "
    "Rational Alternatives, Schema Modes, and Action Plan.*"
)


def _date_label(timestamp: str | None) -> str:
    if timestamp:
        try:
            return datetime.fromisoformat(timestamp.replace("Z", "+00:00")).date().isoformat()
        except ValueError:
            pass
    return datetime.now(UTC).date().isoformat()


def _drop_empty(data: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in data.items() if value is not None}


def to_card_string(data: dict[str, Any]) -> str:
    return f"{CARD_PREFIX}{json.dumps(_drop_empty(data), ensure_ascii=False)}{CARD_SUFFIX}"


def emotion_list(emotions: EmotionData | None) -> list[dict[str, Any]]:
    """Non-zero emotions as ``{"emotion": "Fear", "rating": 5}``, custom emotion last."""
    if emotions is None:
        return []
    result = []
    for name in CORE_EMOTIONS:
        value = getattr(emotions, name)
        if value > 0:
            result.append({"emotion": name.capitalize(), "rating": value})
    if emotions.other and emotions.other_intensity:
        result.append({"emotion": emotions.other, "rating": emotions.other_intensity})
    return result


def _final_emotions(context: CBTSessionData) -> EmotionData | None:
    if context.final_emotions is not None:
        return context.final_emotions
    return context.action_plan.final_emotions if context.action_plan else None


def _thoughts(context: CBTSessionData) -> list[dict[str, Any]]:
    return [{"thought": t.thought, "credibility": t.credibility} for t in context.thoughts or []]


def _rational_thoughts(context: CBTSessionData) -> list[dict[str, Any]]:
    if context.rational_thoughts is None:
        return []
    return [
        {"thought": t.thought, "confidence": t.confidence}
        for t in context.rational_thoughts.rational_thoughts
    ]


def _active_schema_modes(context: CBTSessionData) -> list[dict[str, Any]]:
    if context.schema_modes is None:
        return []
    return [
        {"name": mode.name, "intensity": mode.intensity}
        for mode in context.schema_modes.selected_modes
        if mode.selected
    ]


def _new_behaviors(action_plan: ActionPlanData | None) -> list[str] | None:
    if action_plan is None or not action_plan.new_behaviors.strip():
        return None
    return [action_plan.new_behaviors.strip()]


def build_summary_card(state: FlowState) -> dict[str, Any]:
    """Structured summary of the whole session (card payload before wrapping)."""
    context = state.context
    core_belief = None
    if context.core_belief is not None:
        core_belief = {
            "belief": context.core_belief.core_belief_text,
            "credibility": context.core_belief.core_belief_credibility,
        }
    return {
        "date": _date_label(state.started_at),
        "situation": context.situation.situation if context.situation else None,
        "initialEmotions": emotion_list(context.emotions),
        "automaticThoughts": _thoughts(context),
        "coreBelief": core_belief,
        "rationalThoughts": _rational_thoughts(context),
        "schemaModes": _active_schema_modes(context),
        "finalEmotions": emotion_list(_final_emotions(context)),
        "newBehaviors": _new_behaviors(context.action_plan),
        "completedSteps": [CBT_STEP_CONFIG[step].title for step in state.completed_steps],
    }


def build_session_summary_card(state: FlowState) -> str:
    return to_card_string(build_summary_card(state))


def build_markdown_summary(state: FlowState) -> str:
    """Markdown document covering every filled section of the diary."""
    context = state.context
    lines = [f"## CBT Session Summary - {_date_label(state.started_at)}", ""]

    if context.situation is not None:
        lines += [f"**Situation**: {context.situation.situation}", ""]

    initial = emotion_list(context.emotions)
    if initial:
        formatted = ", ".join(f"{e['emotion']}: {e['rating']}/10" for e in initial)
        lines += [f"**Initial Emotions**: {formatted}", ""]

    if context.thoughts:
        lines.append("**Automatic Thoughts**:")
        lines += [f'{i}. "{t.thought}" ({t.credibility}/10)' for i, t in enumerate(context.thoughts, 1)]
        lines.append("")

    if context.core_belief is not None:
        belief = context.core_belief
        rating = belief.core_belief_credibility if belief.core_belief_credibility is not None else "-"
        lines += [f'**Core Belief**: "{belief.core_belief_text}" ({rating}/10)', ""]

    if context.challenge_questions and context.challenge_questions.challenge_questions:
        lines.append("**Challenge Questions**:")
        for i, item in enumerate(context.challenge_questions.challenge_questions, 1):
            lines.append(f"{i}. {item.question}")
            if item.answer:
                lines.append(f"   {item.answer}")
        lines.append("")

    rational = _rational_thoughts(context)
    if rational:
        lines.append("**Rational Alternative Thoughts**:")
        lines += [f'{i}. "{t["thought"]}" ({t["confidence"]}/10)' for i, t in enumerate(rational, 1)]
        lines.append("")

    modes = _active_schema_modes(context)
    if modes:
        lines.append("**Active Schema Modes**:")
        for i, mode in enumerate(modes, 1):
            intensity = f" ({mode['intensity']}/10)" if mode["intensity"] is not None else ""
            lines.append(f"{i}. {mode['name']}{intensity}")
        lines.append("")

    final = emotion_list(_final_emotions(context))
    if final:
        formatted = ", ".join(f"{e['emotion']}: {e['rating']}/10" for e in final)
        lines += [f"**Final Emotions**: {formatted}", ""]

    if context.action_plan is not None and context.action_plan.new_behaviors:
        lines += [f"**New Behaviors/Strategies**: {context.action_plan.new_behaviors}", ""]

    lines.append(SUMMARY_FOOTER)
    return "\n".join(lines)


def build_step_card(step: CBTStepId, context: CBTSessionData) -> str | None:
    """Card for one finished step, or None when the step has no data."""
    label = [CBT_STEP_CONFIG[step].completed_label]

    if step == CBTStepId.SITUATION and context.situation is not None:
        return to_card_string({
            "date": context.situation.date,
            "situation": context.situation.situation,
            "completedSteps": label,
        })
    if step == CBTStepId.EMOTIONS and context.emotions is not None:
        return to_card_string({"initialEmotions": emotion_list(context.emotions), "completedSteps": label})
    if step == CBTStepId.THOUGHTS and context.thoughts:
        return to_card_string({"automaticThoughts": _thoughts(context), "completedSteps": label})
    if step == CBTStepId.CORE_BELIEF and context.core_belief is not None:
        return to_card_string({
            "coreBelief": {
                "belief": context.core_belief.core_belief_text,
                "credibility": context.core_belief.core_belief_credibility,
            },
            "completedSteps": label,
        })
    if step == CBTStepId.CHALLENGE_QUESTIONS and context.challenge_questions:
        questions = context.challenge_questions.challenge_questions
        if not questions:
            return None
        return to_card_string({
            "challengeQuestions": [{"question": q.question, "answer": q.answer} for q in questions],
            "completedSteps": label,
        })
    if step == CBTStepId.RATIONAL_THOUGHTS and _rational_thoughts(context):
        return to_card_string({"rationalThoughts": _rational_thoughts(context), "completedSteps": label})
    if step == CBTStepId.SCHEMA_MODES and context.schema_modes and context.schema_modes.selected_modes:
        return to_card_string({"schemaModes": _active_schema_modes(context), "completedSteps": label})
    if step == CBTStepId.ACTIONS and context.action_plan is not None:
        return to_card_string({
            "newBehaviors": _new_behaviors(context.action_plan),
            "finalEmotions": emotion_list(context.action_plan.final_emotions),
            "completedSteps": label,
        })
    if step == CBTStepId.FINAL_EMOTIONS:
        final = _final_emotions(context)
        if final is not None:
            return to_card_string({"finalEmotions": emotion_list(final), "completedSteps": label})
    return None


def collect_completed_step_cards(context: CBTSessionData) -> list[str]:
    cards = []
    for step in CBT_STEP_ORDER:
        card = build_step_card(step, context)
        if card:
            cards.append(card)
    return cards


def build_emotion_comparison_card(initial: EmotionData, final: EmotionData) -> str:
    return to_card_string({
        "initialEmotions": emotion_list(initial),
        "finalEmotions": emotion_list(final),
        "completedSteps": ["Emotional Progress Tracking"],
    })


def format_for_chat(state: FlowState) -> str:
    """Message content handed to the chat service for a finished diary."""
    return f"{build_session_summary_card(state)}\n\n{build_markdown_summary(state)}"
