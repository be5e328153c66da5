"""Pydantic models for CBT diary step payloads and the session data bag.

Stored and wire JSON keep the web client's camelCase names; Python code
uses snake_case attributes.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from cbt_diary.core.exceptions import InvalidStepDataError
from cbt_diary.domain.steps import CBTStepId

# Marker for "never saved" (epoch), as written by the web client
EMPTY_TIMESTAMP = "1970-01-01T00:00:00.000Z"

CORE_EMOTIONS: tuple[str, ...] = ("fear", "anger", "sadness", "joy", "anxiety", "shame", "guilt")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class SituationData(CamelModel):
    situation: str = ""
    date: str = ""


class EmotionData(CamelModel):
    """Intensity 0-10 for each core emotion plus one optional custom emotion."""

    fear: int = Field(0, ge=0, le=10)
    anger: int = Field(0, ge=0, le=10)
    sadness: int = Field(0, ge=0, le=10)
    joy: int = Field(0, ge=0, le=10)
    anxiety: int = Field(0, ge=0, le=10)
    shame: int = Field(0, ge=0, le=10)
    guilt: int = Field(0, ge=0, le=10)
    other: str | None = None
    other_intensity: int | None = Field(None, ge=0, le=10)


class ThoughtData(CamelModel):
    thought: str
    credibility: int = Field(..., ge=0, le=10)


class CoreBeliefData(CamelModel):
    core_belief_text: str = ""
    core_belief_credibility: int | None = Field(None, ge=0, le=10)


class ChallengeQuestionData(CamelModel):
    question: str
    answer: str = ""


class ChallengeQuestionsData(CamelModel):
    challenge_questions: list[ChallengeQuestionData] = Field(default_factory=list)


class RationalThoughtData(CamelModel):
    thought: str
    confidence: int = Field(..., ge=0, le=10)


class RationalThoughtsData(CamelModel):
    rational_thoughts: list[RationalThoughtData] = Field(default_factory=list)


class SchemaMode(CamelModel):
    id: str
    name: str
    description: str = ""
    selected: bool = False
    intensity: int | None = Field(None, ge=0, le=10)


class SchemaModesData(CamelModel):
    selected_modes: list[SchemaMode] = Field(default_factory=list)


class ActionPlanData(CamelModel):
    final_emotions: EmotionData | None = None
    original_thought_credibility: int = Field(5, ge=0, le=10)
    new_behaviors: str = ""


class CBTSessionData(CamelModel):
    """The accumulated diary data bag. Every step is optional until filled."""

    situation: SituationData | None = None
    emotions: EmotionData | None = None
    thoughts: list[ThoughtData] | None = None
    core_belief: CoreBeliefData | None = None
    challenge_questions: ChallengeQuestionsData | None = None
    rational_thoughts: RationalThoughtsData | None = None
    schema_modes: SchemaModesData | None = None
    action_plan: ActionPlanData | None = None
    final_emotions: EmotionData | None = None
    last_modified: str = EMPTY_TIMESTAMP


DEFAULT_SCHEMA_MODES: tuple[SchemaMode, ...] = (
    SchemaMode(id="vulnerable-child", name="The Vulnerable Child",
               description="scared, helpless, needy", intensity=5),
    SchemaMode(id="angry-child", name="The Angry Child",
               description="frustrated, defiant, rebellious", intensity=5),
    SchemaMode(id="punishing-parent", name="The Punishing Parent",
               description="critical, harsh, demanding", intensity=5),
    SchemaMode(id="demanding-parent", name="The Demanding Parent",
               description="controlling, entitled, impatient", intensity=5),
    SchemaMode(id="detached-self-soother", name="The Detached Self-Soother",
               description="withdrawn, disconnected, avoiding", intensity=5),
    SchemaMode(id="healthy-adult", name="The Healthy Adult",
               description="balanced, rational, caring", intensity=5),
)

DEFAULT_CHALLENGE_QUESTIONS: tuple[str, ...] = (
    "What evidence supports this thought?",
    "What evidence contradicts this thought?",
    "What would I tell a friend in this situation?",
    "How helpful is this thought?",
    "What's the worst that could realistically happen?",
    "What's a more balanced way to think about this?",
)

# Payload shape accepted by each step
STEP_PAYLOAD_MODELS: dict[CBTStepId, type[BaseModel]] = {
    CBTStepId.SITUATION: SituationData,
    CBTStepId.EMOTIONS: EmotionData,
    CBTStepId.CORE_BELIEF: CoreBeliefData,
    CBTStepId.CHALLENGE_QUESTIONS: ChallengeQuestionsData,
    CBTStepId.RATIONAL_THOUGHTS: RationalThoughtsData,
    CBTStepId.SCHEMA_MODES: SchemaModesData,
    CBTStepId.ACTIONS: ActionPlanData,
    CBTStepId.FINAL_EMOTIONS: EmotionData,
}


def parse_step_payload(step: CBTStepId, raw: Any) -> Any:
    """Validate a raw step payload into its typed model.

    ``thoughts`` is the only bare-list step and returns ``list[ThoughtData]``.

    Raises:
        InvalidStepDataError: If the payload does not match the step's shape.
    """
    try:
        if step == CBTStepId.THOUGHTS:
            if not isinstance(raw, list):
                raise InvalidStepDataError(step, [{"msg": "thoughts must be a list"}])
            return [ThoughtData.model_validate(item) for item in raw]
        return STEP_PAYLOAD_MODELS[step].model_validate(raw)
    except ValidationError as exc:
        raise InvalidStepDataError(step, exc.errors(include_url=False)) from exc


def parse_session_data(raw: Any) -> CBTSessionData | None:
    """Best-effort parse of a stored data bag; None when it does not validate."""
    if not isinstance(raw, dict):
        return None
    try:
        return CBTSessionData.model_validate(raw)
    except ValidationError:
        return None
