"""Tests for the CBT flow transition function."""

import pytest

from cbt_diary.domain.flow import (
    FlowState,
    FlowStatus,
    GoToStep,
    Hydrate,
    Reset,
    SessionStart,
    StepCleared,
    StepSubmitted,
    StepUpdated,
    create_initial_state,
    select_timeline_messages,
    transition,
    try_transition,
)
from cbt_diary.domain.models import ActionPlanData, ChallengeQuestionsData, EmotionData, SituationData
from cbt_diary.domain.steps import CBT_STEP_ORDER, COMPLETE, CBTStepId

pytestmark = pytest.mark.unit

T0 = "2026-10-18T09:30:00.000Z"
T1 = "2026-10-18T09:31:00.000Z"


def _started() -> FlowState:
    return transition(create_initial_state(), SessionStart(session_id="chat-1", timestamp=T0))


def _submit_through(state: FlowState, payloads: dict, last: CBTStepId) -> FlowState:
    for step in CBT_STEP_ORDER:
        state = transition(state, StepSubmitted(step, payloads[step], timestamp=T1))
        if step == last:
            break
    return state


class TestSessionLifecycle:
    def test_initial_state_is_idle(self):
        state = create_initial_state()
        assert state.status == FlowStatus.IDLE
        assert state.current_step_id == CBTStepId.SITUATION
        assert state.completed_steps == ()

    def test_session_start(self):
        state = _started()
        assert state.status == FlowStatus.ACTIVE
        assert state.session_id == "chat-1"
        assert state.current_step_id == CBTStepId.SITUATION
        assert state.started_at == T0
        assert state.context.last_modified == T0

    def test_session_start_discards_previous_progress(self, payloads):
        state = _submit_through(_started(), payloads, CBTStepId.THOUGHTS)
        restarted = transition(state, SessionStart(timestamp=T1))
        assert restarted.completed_steps == ()
        assert restarted.context.situation is None
        assert restarted.session_id == "chat-1"

    def test_reset_returns_idle(self, payloads):
        state = _submit_through(_started(), payloads, CBTStepId.EMOTIONS)
        assert transition(state, Reset()) == create_initial_state()

    def test_hydrate_replaces_state(self):
        other = FlowState(status=FlowStatus.ACTIVE, current_step_id=CBTStepId.ACTIONS)
        assert transition(_started(), Hydrate(other)) is other


class TestStepSubmitted:
    def test_linear_happy_path(self, payloads):
        """Submitting all nine steps in order completes the flow."""
        state = _started()
        for index, step in enumerate(CBT_STEP_ORDER):
            assert state.current_step_id == step
            assert state.current_step_number == index + 1
            state = transition(state, StepSubmitted(step, payloads[step], timestamp=T1))

        assert state.status == FlowStatus.COMPLETE
        assert state.is_complete
        assert state.current_step_id == COMPLETE
        assert state.completed_steps == CBT_STEP_ORDER
        assert state.current_step_number == 9

    def test_payload_merged_and_timestamped(self, payloads):
        state = transition(_started(), StepSubmitted(CBTStepId.SITUATION, payloads[CBTStepId.SITUATION], T1))
        assert state.context.situation.situation == "Presentation at work went badly"
        assert state.context.last_modified == T1
        assert state.updated_at == T1

    def test_out_of_order_submit_is_rejected(self, payloads):
        state = _started()
        result = try_transition(state, StepSubmitted(CBTStepId.THOUGHTS, payloads[CBTStepId.THOUGHTS], T1))
        assert result.allowed is False
        assert result.state is state
        assert "situation" in result.reason

    def test_submit_without_session_is_rejected(self, payloads):
        idle = create_initial_state()
        result = try_transition(idle, StepSubmitted(CBTStepId.SITUATION, payloads[CBTStepId.SITUATION], T1))
        assert result.allowed is False
        assert result.reason == "No active CBT session"

    def test_submit_after_complete_is_rejected(self, payloads):
        done = _submit_through(_started(), payloads, CBTStepId.FINAL_EMOTIONS)
        result = try_transition(done, StepSubmitted(CBTStepId.SITUATION, payloads[CBTStepId.SITUATION], T1))
        assert result.allowed is False
        assert result.state is done

    @pytest.mark.parametrize(
        ("step", "payload"),
        [
            (CBTStepId.SITUATION, SituationData(situation="", date="")),
            (CBTStepId.THOUGHTS, []),
            (CBTStepId.CHALLENGE_QUESTIONS, ChallengeQuestionsData()),
        ],
    )
    def test_empty_submit_is_rejected(self, payloads, step, payload):
        state = _started()
        for earlier in CBT_STEP_ORDER[: CBT_STEP_ORDER.index(step)]:
            state = transition(state, StepSubmitted(earlier, payloads[earlier], T1))
        assert state.current_step_id == step

        result = try_transition(state, StepSubmitted(step, payload, T1))

        assert result.allowed is False
        assert result.missing_data is True
        assert result.state is state
        assert step in result.reason

    def test_wrong_step_is_not_reported_as_missing_data(self, payloads):
        result = try_transition(_started(), StepSubmitted(CBTStepId.EMOTIONS, payloads[CBTStepId.EMOTIONS], T1))
        assert result.missing_data is False

    def test_missing_timestamp_keeps_previous(self, payloads):
        state = transition(_started(), StepSubmitted(CBTStepId.SITUATION, payloads[CBTStepId.SITUATION]))
        assert state.updated_at == T0
        assert state.context.last_modified == T0

    def test_final_emotions_mirrored_into_action_plan(self, payloads):
        done = _submit_through(_started(), payloads, CBTStepId.FINAL_EMOTIONS)
        assert done.context.final_emotions.fear == 2
        assert done.context.action_plan.final_emotions == done.context.final_emotions
        assert done.context.action_plan.new_behaviors == "Rehearse with a colleague"

    def test_actions_merge_keeps_existing_final_emotions(self, payloads):
        state = _submit_through(_started(), payloads, CBTStepId.SCHEMA_MODES)
        seeded = EmotionData(joy=4)
        state = transition(state, StepUpdated(CBTStepId.ACTIONS, ActionPlanData(final_emotions=seeded), T1))
        state = transition(
            state,
            StepSubmitted(CBTStepId.ACTIONS, ActionPlanData(new_behaviors="Ask for feedback"), T1),
        )
        assert state.context.action_plan.new_behaviors == "Ask for feedback"
        assert state.context.action_plan.final_emotions == seeded


class TestEditingAndNavigation:
    def test_update_does_not_move(self, payloads):
        state = _submit_through(_started(), payloads, CBTStepId.EMOTIONS)
        updated = transition(state, StepUpdated(CBTStepId.SITUATION, SituationData(situation="Edited"), T1))
        assert updated.current_step_id == CBTStepId.THOUGHTS
        assert updated.context.situation.situation == "Edited"
        assert updated.completed_steps == state.completed_steps

    def test_clear_removes_data_and_completion(self, payloads):
        state = _submit_through(_started(), payloads, CBTStepId.THOUGHTS)
        cleared = transition(state, StepCleared(CBTStepId.EMOTIONS, T1))
        assert cleared.context.emotions is None
        assert cleared.context.thoughts is not None
        assert cleared.completed_steps == (CBTStepId.SITUATION,)
        assert cleared.current_step_id == CBTStepId.EMOTIONS

    def test_clear_after_current_step_keeps_position(self, payloads):
        state = _submit_through(_started(), payloads, CBTStepId.CORE_BELIEF)
        back = transition(state, GoToStep(CBTStepId.EMOTIONS, T1))
        cleared = transition(back, StepCleared(CBTStepId.THOUGHTS, T1))
        assert cleared.current_step_id == CBTStepId.EMOTIONS
        assert cleared.completed_steps == (CBTStepId.SITUATION, CBTStepId.EMOTIONS)

    def test_update_that_empties_earlier_step_moves_back(self, payloads):
        state = _submit_through(_started(), payloads, CBTStepId.EMOTIONS)
        updated = transition(state, StepUpdated(CBTStepId.SITUATION, SituationData(), T1))
        assert updated.current_step_id == CBTStepId.SITUATION
        assert updated.completed_steps == ()

    def test_resubmitting_cleared_step_picks_up_later_data(self, payloads):
        state = _submit_through(_started(), payloads, CBTStepId.THOUGHTS)
        cleared = transition(state, StepCleared(CBTStepId.SITUATION, T1))
        resubmitted = transition(cleared, StepSubmitted(CBTStepId.SITUATION, payloads[CBTStepId.SITUATION], T1))
        assert resubmitted.current_step_id == CBTStepId.EMOTIONS
        assert resubmitted.completed_steps == (CBTStepId.SITUATION, CBTStepId.EMOTIONS, CBTStepId.THOUGHTS)

    def test_clear_reopens_finished_flow(self, payloads):
        done = _submit_through(_started(), payloads, CBTStepId.FINAL_EMOTIONS)
        reopened = transition(done, StepCleared(CBTStepId.FINAL_EMOTIONS, T1))
        assert reopened.status == FlowStatus.ACTIVE
        assert reopened.current_step_id == CBTStepId.FINAL_EMOTIONS
        assert reopened.context.final_emotions is None
        assert reopened.context.action_plan.final_emotions is None

    def test_go_back_keeps_later_completion(self, payloads):
        state = _submit_through(_started(), payloads, CBTStepId.CORE_BELIEF)
        back = transition(state, GoToStep(CBTStepId.EMOTIONS, T1))
        assert back.current_step_id == CBTStepId.EMOTIONS
        assert CBTStepId.CORE_BELIEF in back.completed_steps

        forward = try_transition(back, GoToStep(CBTStepId.CHALLENGE_QUESTIONS, T1))
        assert forward.allowed is True
        assert forward.state.current_step_id == CBTStepId.CHALLENGE_QUESTIONS

    def test_cannot_skip_ahead(self, payloads):
        state = _submit_through(_started(), payloads, CBTStepId.EMOTIONS)
        result = try_transition(state, GoToStep(CBTStepId.ACTIONS, T1))
        assert result.allowed is False
        assert result.state is state

    def test_complete_reachable_only_when_all_done(self, payloads):
        partial = _submit_through(_started(), payloads, CBTStepId.ACTIONS)
        assert try_transition(partial, GoToStep(COMPLETE, T1)).allowed is False

        done = _submit_through(_started(), payloads, CBTStepId.FINAL_EMOTIONS)
        back = transition(done, GoToStep(CBTStepId.SITUATION, T1))
        assert back.status == FlowStatus.ACTIVE
        again = transition(back, GoToStep(COMPLETE, T1))
        assert again.status == FlowStatus.COMPLETE

    def test_idle_rejects_navigation(self):
        result = try_transition(create_initial_state(), GoToStep(CBTStepId.SITUATION, T1))
        assert result.allowed is False

    def test_unknown_event_type_raises(self):
        with pytest.raises(TypeError):
            try_transition(_started(), object())


class TestTimeline:
    def test_idle_has_no_messages(self):
        assert select_timeline_messages(create_initial_state()) == []

    def test_started_shows_first_prompt(self):
        messages = select_timeline_messages(_started())
        assert [m.id for m in messages] == ["component:situation"]

    def test_completed_steps_add_reply_and_next_prompt(self, payloads):
        state = _submit_through(_started(), payloads, CBTStepId.EMOTIONS)
        ids = [m.id for m in select_timeline_messages(state)]
        assert ids == [
            "component:situation",
            "ai:situation",
            "component:emotions",
            "ai:emotions",
            "component:thoughts",
        ]

    def test_finished_flow_has_no_trailing_prompt(self, payloads):
        done = _submit_through(_started(), payloads, CBTStepId.FINAL_EMOTIONS)
        messages = select_timeline_messages(done)
        assert messages[-1].id == "ai:final-emotions"
        assert messages[-1].type == "ai-response"
