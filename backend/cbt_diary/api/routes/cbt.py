"""CBT diary API routes: guided flow, drafts, and chat handoff."""

from typing import Any

import structlog
from fastapi import APIRouter, Body, Depends, HTTPException
from redis.asyncio import Redis

from cbt_diary.core.auth import ClerkUser, require_auth
from cbt_diary.core.config import get_settings
from cbt_diary.core.exceptions import (
    CBTDiaryError,
    ChatHandoffError,
    DraftNotFoundError,
    FlowNotCompleteError,
    InvalidStepDataError,
    InvalidStepError,
    OutOfOrderStepError,
    StepNotReachableError,
)
from cbt_diary.db import get_redis, user_namespace
from cbt_diary.domain.flow import FlowState, select_timeline_messages
from cbt_diary.domain.resume import compute_starting_step
from cbt_diary.schemas.cbt import (
    DraftStatusResponse,
    DraftSummary,
    FinalizeRequest,
    FinalizeResponse,
    FlowView,
    NavigateRequest,
    StartSessionRequest,
    StepListResponse,
    SummaryResponse,
    list_steps,
)
from cbt_diary.services.chat_bridge import ChatBridge, HttpChatBridge
from cbt_diary.services.diary_service import CBTDiaryService
from cbt_diary.services.draft_store import (
    CBTDraft,
    PersistedDraftStore,
    RedisKeyValueStore,
    SavedDraftsStore,
)

logger = structlog.get_logger(__name__)

router = APIRouter()

_STATUS_CODES: dict[type[CBTDiaryError], int] = {
    InvalidStepError: 400,
    InvalidStepDataError: 422,
    OutOfOrderStepError: 409,
    StepNotReachableError: 409,
    FlowNotCompleteError: 409,
    DraftNotFoundError: 404,
    ChatHandoffError: 502,
}


def _http_error(exc: CBTDiaryError) -> HTTPException:
    """Translate a domain error into the HTTP response the client sees."""
    status_code = _STATUS_CODES.get(type(exc), 400)
    if isinstance(exc, InvalidStepDataError):
        errors = [
            {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
            for err in exc.errors
        ]
        return HTTPException(status_code=status_code, detail={"message": str(exc), "step": exc.step, "errors": errors})
    return HTTPException(status_code=status_code, detail=str(exc))


def get_chat_bridge() -> ChatBridge:
    """Dependency that provides the chat bridge.

    Override this dependency in tests via app.dependency_overrides.
    """
    return HttpChatBridge()


def get_diary_service(
    user: ClerkUser = Depends(require_auth),
    redis: Redis = Depends(get_redis),
    chat: ChatBridge = Depends(get_chat_bridge),
) -> CBTDiaryService:
    """Build a diary service bound to the caller's storage context."""
    namespace = user_namespace(user.user_id)
    return CBTDiaryService(
        drafts=PersistedDraftStore(RedisKeyValueStore(redis), namespace),
        saved=SavedDraftsStore(redis, namespace, limit=get_settings().saved_drafts_limit),
        chat=chat,
    )


def _view(state: FlowState) -> FlowView:
    return FlowView.from_state(state, select_timeline_messages(state))


def _draft_summary(draft: CBTDraft) -> DraftSummary:
    return DraftSummary(
        id=draft.id,
        session_id=draft.session_id,
        current_step=draft.current_step,
        current_step_id=draft.current_step_id,
        last_saved=draft.last_saved,
        started_at=draft.started_at,
        is_complete=draft.is_complete,
        completed_count=len(compute_starting_step(draft.data).completed_steps),
    )


# ==================== STEPS ====================


@router.get("/steps", response_model=StepListResponse)
async def get_steps(user: ClerkUser = Depends(require_auth)):
    """List the diary steps in order with their display texts."""
    return list_steps()


# ==================== SESSION ====================


@router.get("/session", response_model=FlowView)
async def get_session(service: CBTDiaryService = Depends(get_diary_service)):
    """Current flow, resumed from the stored draft (idle when there is none)."""
    return _view(await service.get_flow())


@router.post("/session", response_model=FlowView, status_code=201)
async def start_session(
    request: StartSessionRequest | None = None,
    service: CBTDiaryService = Depends(get_diary_service),
):
    """Start a new diary at step 1. Replaces any unfinished draft."""
    state = await service.start_session(request.session_id if request else None)
    return _view(state)


@router.delete("/session", status_code=204)
async def reset_session(service: CBTDiaryService = Depends(get_diary_service)):
    """Discard the current diary and its draft. Idempotent."""
    await service.reset()


@router.put("/session/steps/{step_id}", response_model=FlowView)
async def submit_step(
    step_id: str,
    payload: Any = Body(...),
    service: CBTDiaryService = Depends(get_diary_service),
):
    """Submit data for the current step and advance.

    Raises:
        HTTPException(400): Unknown step id
        HTTPException(409): Step is not the current step
        HTTPException(422): Payload does not match the step
    """
    try:
        state = await service.submit_step(step_id, payload)
    except CBTDiaryError as exc:
        raise _http_error(exc) from exc
    return _view(state)


@router.patch("/session/steps/{step_id}", response_model=FlowView)
async def update_step(
    step_id: str,
    payload: Any = Body(...),
    service: CBTDiaryService = Depends(get_diary_service),
):
    """Edit a step's data without moving the current step."""
    try:
        state = await service.update_step(step_id, payload)
    except CBTDiaryError as exc:
        raise _http_error(exc) from exc
    return _view(state)


@router.delete("/session/steps/{step_id}", response_model=FlowView)
async def clear_step(step_id: str, service: CBTDiaryService = Depends(get_diary_service)):
    try:
        state = await service.clear_step(step_id)
    except CBTDiaryError as exc:
        raise _http_error(exc) from exc
    return _view(state)


@router.post("/session/navigate", response_model=FlowView)
async def navigate(request: NavigateRequest, service: CBTDiaryService = Depends(get_diary_service)):
    """Jump to a step already reached, or to "complete" once every step is done."""
    try:
        state = await service.go_to_step(request.step_id)
    except CBTDiaryError as exc:
        raise _http_error(exc) from exc
    return _view(state)


@router.get("/session/summary", response_model=SummaryResponse)
async def get_summary(service: CBTDiaryService = Depends(get_diary_service)):
    summary = await service.summary()
    return SummaryResponse(markdown=summary.markdown, card=summary.card)


@router.post("/session/finalize", response_model=FinalizeResponse)
async def finalize_session(
    request: FinalizeRequest | None = None,
    user: ClerkUser = Depends(require_auth),
    service: CBTDiaryService = Depends(get_diary_service),
):
    """Send the finished diary to the chat session and clear the draft.

    Raises:
        HTTPException(409): Diary is not complete
        HTTPException(502): Chat service did not accept the entry (draft kept)
    """
    try:
        session_id = await service.finalize(request.session_id if request else None)
    except CBTDiaryError as exc:
        logger.warning("cbt_finalize_failed", user_id=user.user_id, error_type=type(exc).__name__)
        raise _http_error(exc) from exc
    return FinalizeResponse(success=True, session_id=session_id)


# ==================== DRAFTS ====================


@router.get("/draft", response_model=DraftStatusResponse)
async def get_draft_status(service: CBTDiaryService = Depends(get_diary_service)):
    """Whether a resumable draft exists, and when it was last saved."""
    status = await service.draft_status()
    return DraftStatusResponse(has_draft=status.has_draft, last_saved=status.last_saved)


@router.get("/drafts", response_model=list[DraftSummary])
async def list_drafts(service: CBTDiaryService = Depends(get_diary_service)):
    return [_draft_summary(draft) for draft in await service.list_drafts()]


@router.post("/drafts", response_model=DraftSummary, status_code=201)
async def save_draft(service: CBTDiaryService = Depends(get_diary_service)):
    """Save the current diary to the drafts list."""
    try:
        draft = await service.save_draft()
    except CBTDiaryError as exc:
        raise _http_error(exc) from exc
    return _draft_summary(draft)


@router.post("/drafts/{draft_id}/load", response_model=FlowView)
async def load_draft(draft_id: str, service: CBTDiaryService = Depends(get_diary_service)):
    try:
        state = await service.load_draft(draft_id)
    except CBTDiaryError as exc:
        raise _http_error(exc) from exc
    return _view(state)


@router.delete("/drafts/{draft_id}", status_code=204)
async def delete_draft(draft_id: str, service: CBTDiaryService = Depends(get_diary_service)):
    try:
        await service.delete_draft(draft_id)
    except CBTDiaryError as exc:
        raise _http_error(exc) from exc
