"""Tests for the step registry and completion predicates."""

import pytest

from cbt_diary.domain.models import CBTSessionData, CoreBeliefData, SituationData
from cbt_diary.domain.steps import (
    CBT_STEP_CONFIG,
    CBT_STEP_ORDER,
    COMPLETE,
    TOTAL_CBT_STEPS,
    CBTStepId,
    filled_prefix,
    has_any_step_data,
    is_step_filled,
    next_step,
    order_of,
    previous_step,
    step_number,
)

pytestmark = pytest.mark.unit


class TestRegistry:
    def test_nine_steps_in_canonical_order(self):
        assert TOTAL_CBT_STEPS == 9
        assert [str(s) for s in CBT_STEP_ORDER] == [
            "situation",
            "emotions",
            "thoughts",
            "core-belief",
            "challenge-questions",
            "rational-thoughts",
            "schema-modes",
            "actions",
            "final-emotions",
        ]

    def test_every_step_has_config(self):
        for step in CBT_STEP_ORDER:
            config = CBT_STEP_CONFIG[step]
            assert config.id == step
            assert config.title
            assert config.prompt

    def test_order_and_number(self):
        assert order_of(CBTStepId.SITUATION) == 0
        assert order_of(CBTStepId.FINAL_EMOTIONS) == 8
        assert order_of(COMPLETE) == 9
        assert step_number(CBTStepId.SITUATION) == 1
        assert step_number("core-belief") == 4

    def test_unknown_step_sorts_after_complete(self):
        assert order_of("not-a-step") > order_of(COMPLETE)

    def test_next_and_previous(self):
        assert next_step(CBTStepId.SITUATION) == CBTStepId.EMOTIONS
        assert next_step(CBTStepId.FINAL_EMOTIONS) == COMPLETE
        assert previous_step(CBTStepId.EMOTIONS) == CBTStepId.SITUATION
        assert previous_step(CBTStepId.SITUATION) is None
        assert previous_step(COMPLETE) == CBTStepId.FINAL_EMOTIONS


class TestIsStepFilled:
    @pytest.mark.parametrize("step", list(CBT_STEP_ORDER))
    def test_missing_data_is_never_filled(self, step):
        assert is_step_filled(None, step) is False
        assert is_step_filled({}, step) is False

    def test_situation_with_empty_strings_is_not_filled(self):
        assert is_step_filled({"situation": {"situation": "", "date": ""}}, "situation") is False

    def test_situation_with_text_is_filled(self):
        assert is_step_filled({"situation": {"situation": "Argued with my sister", "date": ""}}, "situation")

    def test_core_belief_rating_alone_counts(self):
        data = {"coreBelief": {"coreBeliefText": "", "coreBeliefCredibility": 5}}
        assert is_step_filled(data, CBTStepId.CORE_BELIEF) is True

    def test_zero_rating_counts(self):
        assert is_step_filled({"emotions": {"fear": 0}}, CBTStepId.EMOTIONS) is True

    def test_empty_thought_list_is_not_filled(self):
        assert is_step_filled({"thoughts": []}, CBTStepId.THOUGHTS) is False

    def test_thought_list_with_entry_is_filled(self):
        data = {"thoughts": [{"thought": "I always fail", "credibility": 7}]}
        assert is_step_filled(data, CBTStepId.THOUGHTS) is True

    def test_wrapped_list_steps(self):
        assert is_step_filled({"challengeQuestions": {"challengeQuestions": []}}, "challenge-questions") is False
        assert is_step_filled(
            {"challengeQuestions": {"challengeQuestions": [{"question": "Q", "answer": ""}]}},
            "challenge-questions",
        )
        assert is_step_filled({"rationalThoughts": {"rationalThoughts": []}}, "rational-thoughts") is False
        assert is_step_filled({"schemaModes": {"selectedModes": [{"id": "x"}]}}, "schema-modes") is True

    def test_malformed_shapes_answer_false(self):
        assert is_step_filled({"thoughts": {"thought": "not a list"}}, CBTStepId.THOUGHTS) is False
        assert is_step_filled({"situation": ["not", "an", "object"]}, CBTStepId.SITUATION) is False
        assert is_step_filled({"schemaModes": {"selectedModes": "nope"}}, CBTStepId.SCHEMA_MODES) is False
        assert is_step_filled("garbage", CBTStepId.SITUATION) is False
        assert is_step_filled(42, CBTStepId.SITUATION) is False

    def test_unknown_step_is_not_filled(self):
        assert is_step_filled({"situation": {"situation": "x"}}, "bogus") is False

    def test_accepts_session_model(self):
        data = CBTSessionData(
            situation=SituationData(situation="Missed the bus"),
            core_belief=CoreBeliefData(core_belief_text="", core_belief_credibility=None),
        )
        assert is_step_filled(data, CBTStepId.SITUATION) is True
        assert is_step_filled(data, CBTStepId.CORE_BELIEF) is False
        assert is_step_filled(data, CBTStepId.EMOTIONS) is False


class TestHasAnyStepData:
    def test_empty_inputs(self):
        assert has_any_step_data(None) is False
        assert has_any_step_data({}) is False
        assert has_any_step_data(CBTSessionData()) is False

    def test_order_independent(self):
        """A later step alone is enough, even with earlier steps missing."""
        assert has_any_step_data({"actionPlan": {"newBehaviors": "Go for a walk"}}) is True

    def test_only_empty_leaves(self):
        data = {"situation": {"situation": "", "date": ""}, "thoughts": [], "lastModified": "2026-10-18T09:30:00.000Z"}
        assert has_any_step_data(data) is False


class TestFilledPrefix:
    def test_stops_at_first_gap(self):
        data = {
            "situation": {"situation": "Missed the train", "date": ""},
            "thoughts": [{"thought": "I'm hopeless", "credibility": 6}],
        }
        assert filled_prefix(data) == (CBTStepId.SITUATION,)

    def test_empty(self):
        assert filled_prefix(None) == ()
        assert filled_prefix({}) == ()
