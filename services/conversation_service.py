# services/conversation_service.py
import logging
import uuid
from datetime import datetime, timezone
from functools import lru_cache
from typing import List, Optional

from pymongo import ASCENDING, DESCENDING

from models import Conversation, ConversationSnapshot, Message, MessageSender
from utils.mongodb_conn import get_mongodb_connection

logger = logging.getLogger(__name__)

# Mongo stores datetimes at millisecond precision; _id breaks timestamp ties
# so a user message and its reply keep insertion order.
OLDEST_FIRST = [("timestamp", ASCENDING), ("_id", ASCENDING)]
NEWEST_FIRST = [("timestamp", DESCENDING), ("_id", DESCENDING)]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConversationService:
    """
    Persistence layer: conversations and their append-only messages in MongoDB.
    This is the system of record; Redis only ever holds copies.
    """

    def __init__(self, db=None):
        if db is None:
            db = get_mongodb_connection().get_database()
        self.db = db

    async def ensure_indexes(self):
        await self.db.conversations.create_index("conversation_id", unique=True)
        await self.db.messages.create_index(
            [("conversation_id", ASCENDING), ("timestamp", ASCENDING)]
        )

    async def create_conversation(self, metadata: Optional[dict] = None) -> Conversation:
        now = _utcnow()
        conversation = Conversation(
            conversation_id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            message_count=0,
            metadata=metadata or {},
        )
        await self.db.conversations.insert_one(conversation.model_dump())
        logger.info("[ConversationService] created conversation %s", conversation.conversation_id)
        return conversation

    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        doc = await self.db.conversations.find_one(
            {"conversation_id": conversation_id}, {"_id": 0}
        )
        if doc is None:
            return None
        return Conversation.model_validate(doc)

    async def get_messages(self, conversation_id: str, limit: Optional[int] = None) -> List[Message]:
        """
        Messages oldest first. With a limit, only the most recent `limit`.
        """
        query = {"conversation_id": conversation_id}
        if limit is None:
            cursor = self.db.messages.find(query).sort(OLDEST_FIRST)
            docs = await cursor.to_list(length=None)
        else:
            cursor = self.db.messages.find(query).sort(NEWEST_FIRST).limit(limit)
            docs = await cursor.to_list(length=limit)
            docs.reverse()
        return [Message.model_validate(doc) for doc in docs]

    async def add_message(self, conversation_id: str, sender: MessageSender, text: str) -> Message:
        message = Message(
            message_id=str(uuid.uuid4()),
            conversation_id=conversation_id,
            sender=sender,
            text=text,
            timestamp=_utcnow(),
        )
        doc = message.model_dump()
        doc["sender"] = message.sender.value
        await self.db.messages.insert_one(doc)

        await self.db.conversations.update_one(
            {"conversation_id": conversation_id},
            {"$inc": {"message_count": 1}},
        )
        return message

    async def touch_conversation(self, conversation_id: str, updated_at: Optional[datetime] = None) -> datetime:
        updated_at = updated_at or _utcnow()
        await self.db.conversations.update_one(
            {"conversation_id": conversation_id},
            {"$set": {"updated_at": updated_at}},
        )
        return updated_at

    async def load_snapshot(self, conversation_id: str, limit: Optional[int] = None) -> Optional[ConversationSnapshot]:
        """
        Conversation plus messages (all, or the most recent `limit`).
        None when the conversation does not exist.
        """
        conversation = await self.get_conversation(conversation_id)
        if conversation is None:
            return None
        messages = await self.get_messages(conversation_id, limit=limit)
        return ConversationSnapshot(
            **conversation.model_dump(),
            messages=messages,
            message_limit=limit if limit is not None and len(messages) >= limit else None,
        )


@lru_cache(maxsize=1)
def get_conversation_service() -> ConversationService:
    """
    FastAPI dependency factory that returns a singleton ConversationService instance.
    """
    return ConversationService()
