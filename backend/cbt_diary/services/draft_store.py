"""Draft persistence: the resumable current draft and the saved-drafts list.

The current draft lives under one fixed key (``STORAGE_KEY``) inside the
user's storage context, so at most one resumable draft exists per user.
Reads fail open: missing, malformed, or unreadable content means "no
draft". Writes are best effort and never raise into the flow logic.
"""

import json
from typing import Any, Protocol

import structlog
from pydantic import Field, ValidationError
from redis.asyncio import Redis
from redis.exceptions import RedisError

from cbt_diary.domain.models import (
    EMPTY_TIMESTAMP,
    CamelModel,
    CBTSessionData,
    parse_session_data,
)
from cbt_diary.domain.steps import has_any_step_data

logger = structlog.get_logger(__name__)

STORAGE_KEY = "cbt-flow-draft"
SAVED_DRAFTS_KEY = "cbt-drafts"

STORAGE_ERRORS = (RedisError, OSError)


class KeyValueStore(Protocol):
    """Narrow string key-value interface the draft adapter depends on."""

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...

    async def delete(self, key: str) -> None: ...


class RedisKeyValueStore:
    """KeyValueStore backed by a decode_responses=True Redis client."""

    def __init__(self, redis: Redis):
        self.redis = redis

    async def get(self, key: str) -> str | None:
        return await self.redis.get(key)

    async def set(self, key: str, value: str) -> None:
        await self.redis.set(key, value)

    async def delete(self, key: str) -> None:
        await self.redis.delete(key)


class CBTDraft(CamelModel):
    """Persisted envelope around an in-progress diary."""

    id: str
    session_id: str | None = None
    data: CBTSessionData = Field(default_factory=CBTSessionData)
    current_step: int = 1  # 1-indexed, for progress display
    current_step_id: str | None = None
    last_saved: str = EMPTY_TIMESTAMP
    started_at: str | None = None
    is_complete: bool = False


def _is_envelope(payload: dict[str, Any]) -> bool:
    return isinstance(payload.get("data"), dict)


def _decode(raw: str | None) -> dict[str, Any] | None:
    if not raw:
        return None
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError):
        return None
    return payload if isinstance(payload, dict) else None


def parse_draft(payload: dict[str, Any], fallback_id: str = STORAGE_KEY) -> CBTDraft | None:
    """Build a CBTDraft from a stored payload.

    Accepts the envelope format and the legacy format where the session
    data bag itself was stored (timestamp in ``lastModified``).
    """
    if _is_envelope(payload):
        try:
            return CBTDraft.model_validate(payload)
        except ValidationError:
            return None

    data = parse_session_data(payload)
    if data is None:
        return None
    return CBTDraft(id=fallback_id, data=data, last_saved=data.last_modified)


class PersistedDraftStore:
    """Adapter for the single resumable draft in one storage context."""

    def __init__(self, store: KeyValueStore, namespace: str = ""):
        self.store = store
        self.key = f"{namespace}{STORAGE_KEY}"

    async def _read_payload(self) -> dict[str, Any] | None:
        try:
            raw = await self.store.get(self.key)
        except STORAGE_ERRORS as exc:
            logger.warning("draft_read_failed", key=self.key, error_type=type(exc).__name__)
            return None
        return _decode(raw)

    async def has_persisted_draft(self) -> bool:
        """True iff a readable draft is stored and has at least one meaningfully filled step."""
        draft = await self.load_draft()
        return draft is not None and has_any_step_data(draft.data)

    async def get_persisted_draft_timestamp(self) -> str | None:
        """Last-saved marker, or None when never saved or unreadable."""
        draft = await self.load_draft()
        if draft is None or not draft.last_saved or draft.last_saved == EMPTY_TIMESTAMP:
            return None
        return draft.last_saved

    async def load_draft(self) -> CBTDraft | None:
        payload = await self._read_payload()
        if payload is None:
            return None
        draft = parse_draft(payload)
        if draft is None:
            logger.warning("draft_unparseable", key=self.key)
        return draft

    async def save_draft(self, draft: CBTDraft) -> bool:
        """Write the draft; returns False instead of raising when storage fails."""
        try:
            await self.store.set(self.key, json.dumps(draft.to_json_dict()))
        except STORAGE_ERRORS as exc:
            logger.warning("draft_save_failed", key=self.key, error_type=type(exc).__name__)
            return False
        return True

    async def clear_persisted_draft(self) -> None:
        """Remove the draft. Idempotent; storage failures are logged, not raised."""
        try:
            await self.store.delete(self.key)
        except STORAGE_ERRORS as exc:
            logger.warning("draft_clear_failed", key=self.key, error_type=type(exc).__name__)


class SavedDraftsStore:
    """Named drafts kept in a Redis hash keyed by draft id (last write wins)."""

    def __init__(self, redis: Redis, namespace: str = "", limit: int | None = None):
        self.redis = redis
        self.key = f"{namespace}{SAVED_DRAFTS_KEY}"
        self.limit = limit

    async def save(self, draft: CBTDraft) -> None:
        await self.redis.hset(self.key, draft.id, json.dumps(draft.to_json_dict()))
        if self.limit:
            await self._prune()

    async def load(self, draft_id: str) -> CBTDraft | None:
        raw = await self.redis.hget(self.key, draft_id)
        payload = _decode(raw)
        if payload is None:
            return None
        return parse_draft(payload, fallback_id=draft_id)

    async def delete(self, draft_id: str) -> bool:
        return bool(await self.redis.hdel(self.key, draft_id))

    async def list(self) -> list[CBTDraft]:
        """All saved drafts, most recently saved first. Corrupt entries are skipped."""
        entries = await self.redis.hgetall(self.key)
        drafts = []
        for draft_id, raw in entries.items():
            payload = _decode(raw)
            draft = parse_draft(payload, fallback_id=draft_id) if payload is not None else None
            if draft is None:
                logger.warning("saved_draft_unparseable", key=self.key, draft_id=draft_id)
                continue
            drafts.append(draft)
        return sorted(drafts, key=lambda d: d.last_saved, reverse=True)

    async def _prune(self) -> None:
        drafts = await self.list()
        stale = [d.id for d in drafts[self.limit:]]
        if stale:
            await self.redis.hdel(self.key, *stale)
            logger.info("saved_drafts_pruned", key=self.key, removed=len(stale))
