"""CBT Diary Service: runs the flow engine against a user's stored draft.

Each request builds a fresh service for one user. The flow state is
rebuilt from the persisted draft, the event is applied through the pure
transition function, and the result is written back. Storage failures are
logged by the draft store and never change the state returned here.
"""

import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import structlog

from cbt_diary.core.exceptions import (
    ChatHandoffError,
    DraftNotFoundError,
    FlowNotCompleteError,
    InvalidStepDataError,
    InvalidStepError,
    OutOfOrderStepError,
    StepNotReachableError,
)
from cbt_diary.domain.flow import (
    FlowEvent,
    FlowState,
    FlowStatus,
    GoToStep,
    SessionStart,
    StepCleared,
    StepSubmitted,
    StepUpdated,
    TransitionResult,
    create_initial_state,
    try_transition,
)
from cbt_diary.domain.models import parse_step_payload
from cbt_diary.domain.resume import state_from_session_data
from cbt_diary.domain.steps import CBT_STEP_CONFIG, COMPLETE, CBTStepId, CurrentStep, coerce_step
from cbt_diary.domain.summary import build_markdown_summary, build_summary_card, format_for_chat
from cbt_diary.services.chat_bridge import ChatBridge
from cbt_diary.services.draft_store import CBTDraft, PersistedDraftStore, SavedDraftsStore

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class DraftStatus:
    has_draft: bool
    last_saved: str | None


@dataclass(frozen=True)
class SessionSummary:
    markdown: str
    card: dict[str, Any]


def format_timestamp(moment: datetime) -> str:
    """ISO-8601 UTC with millisecond precision and a ``Z`` suffix."""
    return moment.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _require_step(step: str) -> CBTStepId:
    step_id = coerce_step(step)
    if step_id is None:
        raise InvalidStepError(step)
    return step_id


class CBTDiaryService:
    """Flow operations for one user's diary."""

    def __init__(
        self,
        drafts: PersistedDraftStore,
        saved: SavedDraftsStore,
        chat: ChatBridge,
        now: Callable[[], datetime] | None = None,
    ):
        self.drafts = drafts
        self.saved = saved
        self.chat = chat
        self._now = now or (lambda: datetime.now(UTC))

    def _timestamp(self) -> str:
        return format_timestamp(self._now())

    # ──────────────────────────────────────────────────────────────────────
    # State loading and persistence
    # ──────────────────────────────────────────────────────────────────────

    async def _load(self) -> tuple[FlowState, CBTDraft | None]:
        draft = await self.drafts.load_draft()
        if draft is None:
            return create_initial_state(), None
        state = state_from_session_data(
            draft.data,
            session_id=draft.session_id,
            current_step=draft.current_step_id,
            started_at=draft.started_at,
        )
        return state, draft

    async def _persist(self, state: FlowState, draft_id: str) -> CBTDraft:
        draft = CBTDraft(
            id=draft_id,
            session_id=state.session_id,
            data=state.context,
            current_step=state.current_step_number,
            current_step_id=str(state.current_step_id),
            last_saved=self._timestamp(),
            started_at=state.started_at,
            is_complete=state.is_complete,
        )
        await self.drafts.save_draft(draft)
        return draft

    async def _dispatch(self, event: FlowEvent) -> tuple[FlowState, TransitionResult]:
        """Apply ``event`` to the stored state.

        Returns (previous state, transition result). The draft is only written
        when the event is accepted.
        """
        state, draft = await self._load()
        result = try_transition(state, event)
        if result.allowed:
            await self._persist(result.state, draft.id if draft else uuid.uuid4().hex)
        return state, result

    # ──────────────────────────────────────────────────────────────────────
    # Flow operations
    # ──────────────────────────────────────────────────────────────────────

    async def get_flow(self) -> FlowState:
        state, _ = await self._load()
        return state

    async def start_session(self, session_id: str | None = None) -> FlowState:
        """Begin a new diary at step 1, replacing any existing draft."""
        state = try_transition(
            create_initial_state(),
            SessionStart(session_id=session_id, timestamp=self._timestamp()),
        ).state
        draft = await self._persist(state, uuid.uuid4().hex)
        logger.info("cbt_session_started", draft_id=draft.id, session_id=session_id)
        return state

    async def submit_step(self, step: str, payload: Any) -> FlowState:
        """Record data for the current step and advance.

        Raises:
            InvalidStepError: Unknown step id.
            InvalidStepDataError: Payload does not match the step, or leaves
                it empty.
            OutOfOrderStepError: ``step`` is not the current step.
        """
        step_id = _require_step(step)
        data = parse_step_payload(step_id, payload)
        previous, result = await self._dispatch(
            StepSubmitted(step_id=step_id, payload=data, timestamp=self._timestamp())
        )
        if result.missing_data:
            logger.info("cbt_step_empty", step=step_id)
            field = CBT_STEP_CONFIG[step_id].field
            raise InvalidStepDataError(step_id, [{"loc": (field,), "msg": result.reason, "type": "missing"}])
        if not result.allowed:
            logger.info(
                "cbt_step_rejected", step=step_id, current_step=previous.current_step_id, reason=result.reason
            )
            raise OutOfOrderStepError(step_id, str(previous.current_step_id), result.reason)

        state = result.state
        logger.info("cbt_step_submitted", step=step_id, next_step=state.current_step_id)
        if state.status == FlowStatus.COMPLETE:
            logger.info("cbt_session_completed", session_id=state.session_id)
        return state

    async def update_step(self, step: str, payload: Any) -> FlowState:
        """Replace a step's data. The current step only moves back if the edit empties an earlier step."""
        step_id = _require_step(step)
        data = parse_step_payload(step_id, payload)
        _, result = await self._dispatch(
            StepUpdated(step_id=step_id, payload=data, timestamp=self._timestamp())
        )
        if not result.allowed:
            raise StepNotReachableError(step_id, result.reason)
        return result.state

    async def clear_step(self, step: str) -> FlowState:
        step_id = _require_step(step)
        _, result = await self._dispatch(StepCleared(step_id=step_id, timestamp=self._timestamp()))
        if not result.allowed:
            raise StepNotReachableError(step_id, result.reason)
        logger.info("cbt_step_cleared", step=step_id, current_step=result.state.current_step_id)
        return result.state

    async def go_to_step(self, step: str) -> FlowState:
        target: CurrentStep = COMPLETE if step == COMPLETE else _require_step(step)
        _, result = await self._dispatch(GoToStep(step_id=target, timestamp=self._timestamp()))
        if not result.allowed:
            raise StepNotReachableError(str(target), result.reason)
        return result.state

    async def reset(self) -> FlowState:
        """Discard the current diary. Safe to call when nothing is stored."""
        await self.drafts.clear_persisted_draft()
        logger.info("cbt_session_reset")
        return create_initial_state()

    # ──────────────────────────────────────────────────────────────────────
    # Drafts
    # ──────────────────────────────────────────────────────────────────────

    async def draft_status(self) -> DraftStatus:
        return DraftStatus(
            has_draft=await self.drafts.has_persisted_draft(),
            last_saved=await self.drafts.get_persisted_draft_timestamp(),
        )

    async def save_draft(self) -> CBTDraft:
        """Copy the current diary into the saved-drafts list (same id overwrites)."""
        state, draft = await self._load()
        if draft is None or state.status == FlowStatus.IDLE:
            raise DraftNotFoundError("current")
        saved = await self._persist(state, draft.id)
        await self.saved.save(saved)
        logger.info("cbt_draft_saved", draft_id=saved.id)
        return saved

    async def list_drafts(self) -> list[CBTDraft]:
        return await self.saved.list()

    async def load_draft(self, draft_id: str) -> FlowState:
        """Make a saved draft the current diary and resume it."""
        saved = await self.saved.load(draft_id)
        if saved is None:
            raise DraftNotFoundError(draft_id)
        state = state_from_session_data(
            saved.data,
            session_id=saved.session_id,
            current_step=saved.current_step_id,
            started_at=saved.started_at,
        )
        await self._persist(state, saved.id)
        logger.info("cbt_draft_loaded", draft_id=draft_id, current_step=state.current_step_id)
        return state

    async def delete_draft(self, draft_id: str) -> None:
        """Remove a saved draft; also drops the current diary if it is that draft."""
        if not await self.saved.delete(draft_id):
            raise DraftNotFoundError(draft_id)
        current = await self.drafts.load_draft()
        if current is not None and current.id == draft_id:
            await self.drafts.clear_persisted_draft()
        logger.info("cbt_draft_deleted", draft_id=draft_id)

    # ──────────────────────────────────────────────────────────────────────
    # Output
    # ──────────────────────────────────────────────────────────────────────

    async def summary(self) -> SessionSummary:
        state, _ = await self._load()
        return SessionSummary(markdown=build_markdown_summary(state), card=build_summary_card(state))

    async def finalize(self, session_id: str | None = None) -> str | None:
        """Send the finished diary to the chat session and clear the draft.

        Returns the chat session that received the entry: ``session_id`` when
        given, else the flow's own session.

        Raises:
            FlowNotCompleteError: Not every step has been completed.
            ChatHandoffError: The chat service did not accept the entry.
                The draft is kept so the user can retry.
        """
        state, _ = await self._load()
        if state.status != FlowStatus.COMPLETE:
            raise FlowNotCompleteError(f"CBT session is not complete (current step: {state.current_step_id})")

        target_session = session_id or state.session_id
        result = await self.chat.add_message(target_session, format_for_chat(state))
        if not result.success:
            raise ChatHandoffError(result.error)

        await self.drafts.clear_persisted_draft()
        logger.info("cbt_session_finalized", session_id=target_session)
        return target_session
