# services/chat_service.py
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from typing import Optional

from models import MAX_MESSAGE_LENGTH, ConversationSnapshot, MessageSender
from services.conversation_service import ConversationService, get_conversation_service
from services.exceptions import (
    HISTORY_ERROR_MESSAGE,
    InternalError,
    MissingParameterError,
    SessionNotFoundError,
    ValidationError,
)
from services.llm_service import HISTORY_WINDOW, LLMService, get_llm_service
from utils.redis_conn import RedisCache, get_redis_cache

logger = logging.getLogger(__name__)


@dataclass
class ChatReply:
    reply: str
    session_id: str
    message_id: str
    timestamp: datetime


def validate_message(message_text) -> str:
    if not isinstance(message_text, str):
        raise ValidationError(details=[{"path": ["message"], "message": "Message must be a string"}])
    if len(message_text) == 0:
        raise ValidationError(details=[{"path": ["message"], "message": "Message cannot be empty"}])
    if len(message_text) > MAX_MESSAGE_LENGTH:
        raise ValidationError(details=[{"path": ["message"], "message": "Message too long"}])
    return message_text


class ChatService:
    """
    Resolves a session, keeps the conversation in MongoDB, asks the LLM for a
    reply and keeps the Redis snapshot from going stale.

    Collaborators are passed in; the module-level factory wires the process-wide
    singletons for the API.
    """

    def __init__(
        self,
        conversation_service: ConversationService,
        llm_service: LLMService,
        cache: RedisCache,
        history_limit: int = HISTORY_WINDOW,
        channel: str = "web",
    ):
        self.conversation_service = conversation_service
        self.llm_service = llm_service
        self.cache = cache
        self.history_limit = history_limit
        self.channel = channel

    async def handle_message(
        self,
        message_text: str,
        session_id: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> ChatReply:
        validate_message(message_text)
        try:
            return await self._handle_message(message_text, session_id or None, metadata)
        except (ValidationError, SessionNotFoundError):
            raise
        except Exception as e:
            logger.exception("[Chat] handle_message failed for session %s", session_id)
            raise InternalError() from e

    async def _handle_message(self, message_text: str, session_id: Optional[str], metadata: Optional[dict]) -> ChatReply:
        timings = {}
        start_total = time.perf_counter()

        # 1. Resolve the conversation
        t0 = time.perf_counter()
        if session_id is None:
            conversation_metadata = {
                "started_at": datetime.now(timezone.utc).isoformat(),
                "channel": self.channel,
            }
            conversation_metadata.update(metadata or {})
            conversation = await self.conversation_service.create_conversation(conversation_metadata)
            snapshot = ConversationSnapshot(**conversation.model_dump())
        else:
            snapshot = await self._resolve_snapshot(session_id, limit=self.history_limit)
        conversation_id = snapshot.conversation_id
        timings["resolve"] = (time.perf_counter() - t0) * 1000

        # 2. Persist the user message
        await self.conversation_service.add_message(conversation_id, MessageSender.USER, message_text)

        try:
            # 3. Generate (never raises)
            t0 = time.perf_counter()
            history = snapshot.messages[-self.history_limit:] if self.history_limit > 0 else []
            reply_text = await self.llm_service.generate_reply(history, message_text)
            timings["generate"] = (time.perf_counter() - t0) * 1000

            # 4. Persist the reply and bump the conversation
            reply = await self.conversation_service.add_message(conversation_id, MessageSender.ASSISTANT, reply_text)
            await self.conversation_service.touch_conversation(conversation_id, reply.timestamp)
        finally:
            # 5. Drop the snapshot so the next read rebuilds from MongoDB,
            # also when a write after the user message failed
            self.cache.invalidate_conversation(conversation_id)

        timings["total"] = (time.perf_counter() - start_total) * 1000
        logger.info(
            "[Chat] conversation %s replied (%s)",
            conversation_id,
            ", ".join(f"{step}={duration:.2f}ms" for step, duration in timings.items()),
        )
        return ChatReply(
            reply=reply_text,
            session_id=conversation_id,
            message_id=reply.message_id,
            timestamp=reply.timestamp,
        )

    async def get_history(self, session_id: Optional[str]) -> ConversationSnapshot:
        if not session_id:
            raise MissingParameterError("sessionId")
        try:
            return await self._resolve_snapshot(session_id, limit=None)
        except SessionNotFoundError:
            raise
        except Exception as e:
            logger.exception("[Chat] get_history failed for session %s", session_id)
            raise InternalError(HISTORY_ERROR_MESSAGE) from e

    async def _resolve_snapshot(self, session_id: str, limit: Optional[int]) -> ConversationSnapshot:
        """
        Cache first, MongoDB on a miss. Only MongoDB decides that a session
        does not exist. A bounded snapshot cannot stand in for full history.
        """
        cached = self.cache.get_conversation_snapshot(session_id)
        if cached is not None and (limit is not None or cached.is_complete):
            logger.debug("[Chat] cache hit for %s", session_id)
            return cached

        snapshot = await self.conversation_service.load_snapshot(session_id, limit=limit)
        if snapshot is None:
            raise SessionNotFoundError(session_id)
        self.cache.cache_conversation_snapshot(session_id, snapshot)
        return snapshot


@lru_cache(maxsize=1)
def get_chat_service() -> ChatService:
    """
    FastAPI dependency factory that returns a singleton ChatService instance.
    """
    return ChatService(
        conversation_service=get_conversation_service(),
        llm_service=get_llm_service(),
        cache=get_redis_cache(),
    )
