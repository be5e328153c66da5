"""Request and response schemas for the CBT diary API.

Wire names are camelCase to match the web client; see CamelModel.
"""

from typing import Any

from pydantic import Field

from cbt_diary.domain.flow import FlowState, FlowStatus, TimelineMessage
from cbt_diary.domain.models import (
    DEFAULT_CHALLENGE_QUESTIONS,
    DEFAULT_SCHEMA_MODES,
    CamelModel,
    CBTSessionData,
    ChallengeQuestionData,
)
from cbt_diary.domain.steps import (
    CBT_STEP_CONFIG,
    CBT_STEP_ORDER,
    TOTAL_CBT_STEPS,
    CBTStepId,
    StepConfig,
    previous_step,
    step_number,
)

# ==================== REQUESTS ====================


class StartSessionRequest(CamelModel):
    session_id: str | None = None


class NavigateRequest(CamelModel):
    """Target step id, or "complete" to show the finished diary."""

    step_id: str = Field(..., min_length=1)


class FinalizeRequest(CamelModel):
    """Chat session to receive the diary; defaults to the flow's own session."""

    session_id: str | None = None


# ==================== RESPONSES ====================


# Pre-filled items a client seeds list steps with
STEP_DEFAULTS: dict[CBTStepId, tuple[CamelModel, ...]] = {
    CBTStepId.CHALLENGE_QUESTIONS: tuple(ChallengeQuestionData(question=q) for q in DEFAULT_CHALLENGE_QUESTIONS),
    CBTStepId.SCHEMA_MODES: DEFAULT_SCHEMA_MODES,
}


class StepInfo(CamelModel):
    id: str
    number: int
    field: str
    title: str
    subtitle: str
    prompt: str
    is_list: bool
    list_key: str | None = None
    defaults: list[dict[str, Any]] = Field(default_factory=list)

    @classmethod
    def from_config(cls, config: StepConfig) -> "StepInfo":
        return cls(
            id=str(config.id),
            number=step_number(config.id),
            field=config.field,
            title=config.title,
            subtitle=config.subtitle,
            prompt=config.prompt,
            is_list=config.is_list,
            list_key=config.list_key,
            defaults=[item.to_json_dict() for item in STEP_DEFAULTS.get(config.id, ())],
        )


class StepListResponse(CamelModel):
    total_steps: int = TOTAL_CBT_STEPS
    steps: list[StepInfo]


def list_steps() -> StepListResponse:
    return StepListResponse(steps=[StepInfo.from_config(CBT_STEP_CONFIG[step]) for step in CBT_STEP_ORDER])


class TimelineMessageView(CamelModel):
    id: str
    step_id: str
    type: str
    text: str
    step_number: int
    total_steps: int

    @classmethod
    def from_message(cls, message: TimelineMessage) -> "TimelineMessageView":
        return cls(
            id=message.id,
            step_id=str(message.step_id),
            type=message.type,
            text=message.text,
            step_number=message.step_number,
            total_steps=message.total_steps,
        )


class FlowView(CamelModel):
    """Client view of the flow state."""

    session_id: str | None
    status: str
    current_step: str
    current_step_number: int
    total_steps: int = TOTAL_CBT_STEPS
    completed_steps: list[str]
    completed_count: int
    is_complete: bool
    can_go_back: bool
    data: CBTSessionData
    started_at: str | None = None
    last_saved: str | None = None
    timeline: list[TimelineMessageView] = Field(default_factory=list)

    @classmethod
    def from_state(cls, state: FlowState, timeline: list[TimelineMessage] | None = None) -> "FlowView":
        return cls(
            session_id=state.session_id,
            status=str(state.status),
            current_step=str(state.current_step_id),
            current_step_number=state.current_step_number,
            completed_steps=[str(step) for step in state.completed_steps],
            completed_count=len(state.completed_steps),
            is_complete=state.is_complete,
            can_go_back=state.status != FlowStatus.IDLE and previous_step(state.current_step_id) is not None,
            data=state.context,
            started_at=state.started_at,
            last_saved=state.updated_at,
            timeline=[TimelineMessageView.from_message(m) for m in timeline or []],
        )


class DraftStatusResponse(CamelModel):
    has_draft: bool
    last_saved: str | None = None


class DraftSummary(CamelModel):
    """Saved draft listing entry (without the full data bag)."""

    id: str
    session_id: str | None = None
    current_step: int
    current_step_id: str | None = None
    last_saved: str
    started_at: str | None = None
    is_complete: bool
    completed_count: int


class SummaryResponse(CamelModel):
    markdown: str
    card: dict[str, Any]


class FinalizeResponse(CamelModel):
    success: bool
    session_id: str | None = None
