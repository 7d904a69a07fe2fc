"""
Conversation persistence.

The session manager only needs save/load/delete by id. Storage failures
are logged and reported as False/None so a broken database never corrupts
the in-memory conversation state.
"""

import datetime
import logging

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from financebuddy.database import AsyncSessionLocal, ConversationRecord
from financebuddy.graph.state import Conversation

logger = logging.getLogger(__name__)


def _parse_ts(value: str | None) -> datetime.datetime:
    if not value:
        return datetime.datetime.utcnow()
    return datetime.datetime.fromisoformat(value)


def _to_conversation(row: ConversationRecord) -> Conversation:
    return {
        "id": row.id,
        "title": row.title,
        "messages": list(row.messages or []),
        "created_at": row.created_at.isoformat(),
        "last_activity": row.last_activity.isoformat(),
    }


class ConversationRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
        self._session_factory = session_factory or AsyncSessionLocal

    async def save(self, conversation: Conversation) -> bool:
        try:
            async with self._session_factory() as db:
                row = await db.get(ConversationRecord, conversation["id"])
                if row is None:
                    row = ConversationRecord(
                        id=conversation["id"],
                        created_at=_parse_ts(conversation.get("created_at")),
                    )
                    db.add(row)
                row.title = conversation["title"]
                row.messages = list(conversation["messages"])
                row.last_activity = _parse_ts(conversation.get("last_activity"))
                await db.commit()
            return True
        except Exception as exc:
            logger.error("Saving conversation %s failed: %s", conversation.get("id"), exc)
            return False

    async def load(self, conversation_id: str) -> Conversation | None:
        try:
            async with self._session_factory() as db:
                result = await db.execute(
                    select(ConversationRecord).where(ConversationRecord.id == conversation_id)
                )
                row = result.scalar_one_or_none()
                return _to_conversation(row) if row else None
        except Exception as exc:
            logger.error("Loading conversation %s failed: %s", conversation_id, exc)
            return None

    async def delete(self, conversation_id: str) -> bool:
        try:
            async with self._session_factory() as db:
                await db.execute(
                    delete(ConversationRecord).where(ConversationRecord.id == conversation_id)
                )
                await db.commit()
            return True
        except Exception as exc:
            logger.error("Deleting conversation %s failed: %s", conversation_id, exc)
            return False
