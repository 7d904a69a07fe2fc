"""
Conversation session manager.

Owns the active conversation plus the archive of past ones. Every change to
a conversation's messages goes through this class; other components get
copies.
"""

import copy
import datetime
import logging
import uuid
from typing import Protocol

from financebuddy.graph.state import ChatMessage, Conversation
from financebuddy.graph.synthesizer import first_name
from financebuddy.services.profile import UserContextProvider

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "New Conversation"
_TITLE_LIMIT = 50
_GREETING = (
    "Hi {name}! 👋 I'm your personal finance assistant. I've looked at your data and I'm "
    "ready to help with savings strategies, investment suggestions and spending analysis. "
    "How can I help you today?"
)


class ConversationNotFoundError(LookupError):
    pass


class ConversationStore(Protocol):
    async def save(self, conversation: Conversation) -> bool: ...

    async def load(self, conversation_id: str) -> Conversation | None: ...

    async def delete(self, conversation_id: str) -> bool: ...


def _now() -> str:
    return datetime.datetime.utcnow().isoformat()


def derive_title(messages: list[ChatMessage]) -> str:
    first_user = next((m for m in messages if m.get("sender") == "user"), None)
    if first_user is None:
        return DEFAULT_TITLE
    content = first_user.get("content", "")
    if len(content) > _TITLE_LIMIT:
        return content[:_TITLE_LIMIT] + "…"
    return content or DEFAULT_TITLE


class ConversationManager:
    def __init__(self, store: ConversationStore, context_provider: UserContextProvider) -> None:
        self._store = store
        self._context_provider = context_provider
        self._archive: dict[str, Conversation] = {}
        self._active: Conversation = self._new_conversation()

    # ── read access ───────────────────────────────────────────────────────

    @property
    def active_conversation_id(self) -> str:
        return self._active["id"]

    @property
    def active_conversation(self) -> Conversation:
        return copy.deepcopy(self._active)

    def get(self, conversation_id: str) -> Conversation:
        return copy.deepcopy(self._find(conversation_id))

    def list_conversations(self) -> list[dict]:
        ordered = sorted(self._archive.values(), key=lambda c: c["last_activity"], reverse=True)
        return [
            {
                "id": c["id"],
                "title": c["title"],
                "last_activity": c["last_activity"],
                "message_count": len(c["messages"]),
            }
            for c in ordered
        ]

    def summarize(self, conversation_id: str) -> dict:
        conv = self._find(conversation_id)
        messages = conv["messages"]
        intents: list[str] = []
        for m in messages:
            intent = m.get("intent")
            if intent and intent not in intents:
                intents.append(intent)
        duration = 0.0
        if messages:
            first = datetime.datetime.fromisoformat(messages[0]["timestamp"])
            last = datetime.datetime.fromisoformat(messages[-1]["timestamp"])
            duration = (last - first).total_seconds()
        return {
            "conversation_id": conv["id"],
            "total_messages": len(messages),
            "user_messages": sum(1 for m in messages if m.get("sender") == "user"),
            "agent_messages": sum(1 for m in messages if m.get("sender") == "agent"),
            "top_intents": intents,
            "duration_seconds": duration,
        }

    # ── session operations ────────────────────────────────────────────────

    async def create_conversation(self) -> str:
        await self._archive_active()
        self._active = self._new_conversation()
        logger.info("Started conversation %s", self._active["id"])
        return self._active["id"]

    async def load_conversation(self, conversation_id: str) -> Conversation:
        if conversation_id != self._active["id"]:
            conv = self._archive.get(conversation_id)
            if conv is None:
                conv = await self._store.load(conversation_id)
                if conv is None:
                    raise ConversationNotFoundError(conversation_id)
                self._archive[conversation_id] = conv
            await self._archive_active()
            self._active = conv
        self._active["last_activity"] = _now()
        return copy.deepcopy(self._active)

    async def delete_conversation(self, conversation_id: str) -> None:
        was_active = conversation_id == self._active["id"]
        removed = self._archive.pop(conversation_id, None)
        if removed is None and not was_active:
            if await self._store.load(conversation_id) is None:
                raise ConversationNotFoundError(conversation_id)
        await self._store.delete(conversation_id)
        logger.info("Deleted conversation %s", conversation_id)
        if was_active:
            # the deleted conversation must not be archived again
            self._active = self._new_conversation()

    async def append_message(self, conversation_id: str, message: ChatMessage) -> None:
        conv = self._find(conversation_id)
        conv["messages"].append(copy.deepcopy(message))
        conv["last_activity"] = message.get("timestamp") or _now()
        await self._store.save(conv)

    def clear_active(self) -> Conversation:
        """Swap in a fresh greeting conversation; stored and archived ones stay as they are."""
        self._active = self._new_conversation()
        return copy.deepcopy(self._active)

    # ── internals ─────────────────────────────────────────────────────────

    def _find(self, conversation_id: str) -> Conversation:
        if conversation_id == self._active["id"]:
            return self._active
        conv = self._archive.get(conversation_id)
        if conv is None:
            raise ConversationNotFoundError(conversation_id)
        return conv

    async def _archive_active(self) -> None:
        current = self._active
        if len(current["messages"]) <= 1:
            return
        current["title"] = derive_title(current["messages"])
        current["last_activity"] = _now()
        self._archive[current["id"]] = current
        if not await self._store.save(current):
            logger.warning("Conversation %s archived in memory only", current["id"])

    def _greeting(self) -> ChatMessage:
        name = first_name(self._context_provider.get_context())
        return {
            "id": f"welcome-{uuid.uuid4().hex[:8]}",
            "content": _GREETING.format(name=name),
            "sender": "agent",
            "timestamp": _now(),
            "guardrail_triggered": False,
        }

    def _new_conversation(self) -> Conversation:
        now = _now()
        return {
            "id": f"conv-{uuid.uuid4().hex[:12]}",
            "title": DEFAULT_TITLE,
            "messages": [self._greeting()],
            "created_at": now,
            "last_activity": now,
        }
