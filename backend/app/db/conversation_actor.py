# backend/app/db/conversation_actor.py

import asyncio
import re
from typing import Dict, Iterable, List, Optional
from uuid import uuid4

from app.core.logger import logger
from app.db.kv_store import SQLiteKVStore
from app.models.conversation_models import (
    ChatMessage,
    ConversationData,
    ConversationMeta,
    MessagesPage,
)
from app.models.itinerary_models import Itinerary
from app.models.preference_models import Preferences
from app.utils.time_utils import now_ms


DEFAULT_TITLE = "New Itinerary"

META_KEY = "meta"
ITINERARY_KEY = "itinerary"
PREFERENCES_KEY = "preferences"
MESSAGE_COUNT_KEY = "messageCount"
MESSAGE_PREFIX = "msg:"

CONVERSATION_ID_RE = re.compile(r"^[0-9a-f]{32}$")


def message_key(index: int) -> str:
    # zero-padded so lexicographic key order == append order
    return f"{MESSAGE_PREFIX}{index:08d}"


def _index_from_key(key: str) -> int:
    return int(key[len(MESSAGE_PREFIX):])


class ConversationActor:
    """
    Owns the durable state of exactly one conversation.

    Operations run one at a time (per-actor lock), which gives callers
    linearizable reads and writes for this conversation. Actors for
    different conversations share nothing and run in parallel. Storage work
    runs in a worker thread so a slow or locked database never stalls the
    event loop.
    """

    def __init__(self, conversation_id: str, store: SQLiteKVStore):
        self.conversation_id = conversation_id
        self.store = store
        self._lock = asyncio.Lock()

    async def _run(self, fn, *args):
        async with self._lock:
            return await asyncio.to_thread(fn, *args)

    # ----------------------------------------------------------------------
    # STORAGE SHORTCUTS (worker thread, actor lock held)
    # ----------------------------------------------------------------------
    def _get(self, key: str):
        return self.store.get(self.conversation_id, key)

    def _put(self, key: str, value):
        self.store.put(self.conversation_id, key, value)

    def _load_meta(self) -> Optional[ConversationMeta]:
        raw = self._get(META_KEY)
        return ConversationMeta.model_validate(raw) if raw else None

    def _touch(self, at: Optional[int] = None):
        meta = self._load_meta()
        if meta:
            meta.updated_at = at or now_ms()
            self._put(META_KEY, meta.model_dump(by_alias=True))

    def _next_index(self) -> int:
        count = self._get(MESSAGE_COUNT_KEY)
        if isinstance(count, int):
            return count
        # conversations written before the counter existed
        return self.store.count(self.conversation_id, prefix=MESSAGE_PREFIX)

    # ----------------------------------------------------------------------
    # LIFECYCLE
    # ----------------------------------------------------------------------
    def _initialize(self) -> ConversationMeta:
        now = now_ms()
        meta = ConversationMeta(
            id=self.conversation_id,
            title=DEFAULT_TITLE,
            created_at=now,
            updated_at=now,
        )
        self._put(META_KEY, meta.model_dump(by_alias=True))
        self._put(ITINERARY_KEY, Itinerary().to_storage())
        self._put(PREFERENCES_KEY, Preferences().to_storage())
        # messages survive a re-initialize, so the counter must too
        self._put(MESSAGE_COUNT_KEY, self._next_index())

        logger.info(f"Initialized conversation {self.conversation_id}")
        return meta

    async def initialize(self) -> ConversationMeta:
        return await self._run(self._initialize)

    def _delete(self) -> int:
        keys = list(self.store.list(self.conversation_id).keys())
        for key in keys:
            self.store.delete(self.conversation_id, key)

        logger.info(f"Deleted conversation {self.conversation_id} ({len(keys)} keys)")
        return len(keys)

    async def delete(self) -> int:
        return await self._run(self._delete)

    # ----------------------------------------------------------------------
    # READS
    # ----------------------------------------------------------------------
    async def get_meta(self) -> Optional[ConversationMeta]:
        return await self._run(self._load_meta)

    def _load_data(self) -> Optional[ConversationData]:
        meta = self._load_meta()
        if not meta:
            return None

        itinerary = self._get(ITINERARY_KEY) or {"days": []}
        preferences = self._get(PREFERENCES_KEY) or {}
        return ConversationData(
            **meta.model_dump(),
            itinerary=Itinerary.model_validate(itinerary),
            preferences=Preferences.model_validate(preferences),
        )

    async def get_data(self) -> Optional[ConversationData]:
        return await self._run(self._load_data)

    async def get_messages(self, cursor: int = 0, limit: int = 50) -> MessagesPage:
        """
        One page of messages in append order.

        The cursor is the storage index of the first message to return, not a
        position in a re-sorted list, so appends that land between two page
        fetches never shift what the next page returns.
        """
        start = max(cursor, 0)
        # one extra row tells us whether another page exists
        rows = await self._run(
            lambda: self.store.list(
                self.conversation_id,
                prefix=MESSAGE_PREFIX,
                start=message_key(start),
                limit=limit + 1,
            )
        )

        keys = list(rows.keys())
        page_keys = keys[:limit]
        messages = [ChatMessage.model_validate(rows[k]) for k in page_keys]

        next_cursor = None
        if len(keys) > limit:
            next_cursor = str(_index_from_key(keys[limit]))

        return MessagesPage(messages=messages, cursor=next_cursor)

    def _recent(self, limit: int, exclude_roles: Iterable[str]) -> List[ChatMessage]:
        excluded = set(exclude_roles)
        picked: List[ChatMessage] = []
        end = None

        # walk backwards a batch at a time until enough messages qualify
        while len(picked) < limit:
            rows = self.store.list(
                self.conversation_id,
                prefix=MESSAGE_PREFIX,
                end=end,
                limit=limit,
                reverse=True,
            )
            if not rows:
                break
            for key, value in rows.items():
                end = key
                message = ChatMessage.model_validate(value)
                if message.role in excluded:
                    continue
                picked.append(message)
                if len(picked) == limit:
                    break

        picked.reverse()
        return picked

    async def get_recent_messages(self, limit: int, exclude_roles: Iterable[str] = ()) -> List[ChatMessage]:
        """The last `limit` stored messages whose role is not excluded, oldest first."""
        if limit <= 0:
            return []
        return await self._run(self._recent, limit, tuple(exclude_roles))

    # ----------------------------------------------------------------------
    # WRITES
    # ----------------------------------------------------------------------
    def _append(self, message: ChatMessage) -> ChatMessage:
        created_at = now_ms()
        index = self._next_index()

        stored = message.model_copy(update={"created_at": created_at})
        self._put(message_key(index), stored.model_dump(by_alias=True, exclude_none=True))
        self._put(MESSAGE_COUNT_KEY, index + 1)
        self._touch(created_at)

        logger.debug(f"Appended {message.role} message #{index} to {self.conversation_id}")
        return stored

    async def append_message(self, message: ChatMessage) -> ChatMessage:
        return await self._run(self._append, message)

    def _store_itinerary(self, itinerary: Itinerary):
        self._put(ITINERARY_KEY, itinerary.to_storage())
        self._touch()
        logger.info(f"Itinerary updated for {self.conversation_id}: {len(itinerary.days)} day(s)")

    async def update_itinerary(self, itinerary: Itinerary):
        await self._run(self._store_itinerary, itinerary)

    def _store_preferences(self, preferences: Preferences):
        self._put(PREFERENCES_KEY, preferences.to_storage())
        self._touch()

    async def update_preferences(self, preferences: Preferences):
        await self._run(self._store_preferences, preferences)

    def _rename(self, title: str) -> Optional[ConversationMeta]:
        meta = self._load_meta()
        if not meta:
            return None
        meta.title = title
        meta.updated_at = now_ms()
        self._put(META_KEY, meta.model_dump(by_alias=True))
        return meta

    async def update_title(self, title: str) -> Optional[ConversationMeta]:
        return await self._run(self._rename, title)

class ConversationDirectory:
    """
    Hands out one actor per conversation id and mints new ids.
    """

    def __init__(self, store: SQLiteKVStore):
        self.store = store
        self._actors: Dict[str, ConversationActor] = {}

    @staticmethod
    def new_id() -> str:
        return uuid4().hex

    @staticmethod
    def is_valid_id(conversation_id: str) -> bool:
        return bool(conversation_id and CONVERSATION_ID_RE.match(conversation_id))

    def get(self, conversation_id: str) -> ConversationActor:
        actor = self._actors.get(conversation_id)
        if actor is None:
            actor = ConversationActor(conversation_id, self.store)
            self._actors[conversation_id] = actor
        return actor
