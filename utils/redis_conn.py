# utils/redis_conn.py
import logging
import os
from functools import lru_cache
from typing import Optional

import redis
from dotenv import load_dotenv
from pydantic import ValidationError as PydanticValidationError

from models import ConversationSnapshot

load_dotenv()

logger = logging.getLogger(__name__)

CONVERSATION_PREFIX = "conv:"
DEFAULT_CONVERSATION_TTL = 86400  # 24h

# Anything the client can raise when Redis is down or slow
CACHE_ERRORS = (redis.RedisError, OSError)


class RedisCache:
    """
    Best-effort wrapper around a Redis client.
    Every operation swallows transport failures: a cache outage only makes
    the chat slower, never unavailable.
    """

    def __init__(self, client: Optional[redis.Redis] = None, ttl: Optional[int] = None):
        if ttl is None:
            ttl = int(os.getenv("CACHE_CONVERSATION_TTL", DEFAULT_CONVERSATION_TTL))
        self.ttl = ttl

        if client is not None:
            self.client = client
            return

        redis_uri = os.getenv("REDIS_URI")
        if redis_uri:
            self.client = redis.from_url(redis_uri, decode_responses=True)
        else:
            redis_host = os.getenv("REDIS_HOST", "localhost")
            redis_port_raw = os.getenv("REDIS_PORT", "6379")
            redis_db_raw = os.getenv("REDIS_DB", "0")

            try:
                redis_port = int(redis_port_raw)
            except ValueError:
                redis_port = 6379

            try:
                redis_db = int(redis_db_raw) if redis_db_raw.strip() != "" else 0
            except ValueError:
                redis_db = 0

            redis_password = os.getenv("REDIS_PASSWORD", None)

            self.client = redis.Redis(
                host=redis_host,
                port=redis_port,
                db=redis_db,
                password=redis_password if redis_password else None,
                socket_timeout=int(os.getenv("REDIS_SOCKET_TIMEOUT", 5)),
                decode_responses=True,
            )
        self.check_connection()

    # ===== Basic operations (never raise) =====

    def get(self, key: str) -> Optional[str]:
        try:
            return self.client.get(key)
        except CACHE_ERRORS as e:
            logger.warning("[Cache] get %s failed: %s", key, e)
            return None

    def set(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        try:
            self.client.setex(key, ttl or self.ttl, value)
            return True
        except CACHE_ERRORS as e:
            logger.warning("[Cache] set %s failed: %s", key, e)
            return False

    def delete(self, key: str) -> bool:
        try:
            self.client.delete(key)
            return True
        except CACHE_ERRORS as e:
            logger.warning("[Cache] delete %s failed: %s", key, e)
            return False

    # ===== Conversation snapshots =====

    @staticmethod
    def conversation_key(session_id: str) -> str:
        return f"{CONVERSATION_PREFIX}{session_id}"

    def get_conversation_snapshot(self, session_id: str) -> Optional[ConversationSnapshot]:
        """
        Return the cached snapshot, or None on miss.
        A payload that no longer parses is dropped and reported as a miss.
        """
        key = self.conversation_key(session_id)
        data = self.get(key)
        if not data:
            return None
        try:
            return ConversationSnapshot.model_validate_json(data)
        except PydanticValidationError as e:
            logger.warning("[Cache] discarding unreadable snapshot %s: %s", key, e)
            self.delete(key)
            return None

    def cache_conversation_snapshot(
        self, session_id: str, snapshot: ConversationSnapshot, ttl: Optional[int] = None
    ) -> bool:
        return self.set(self.conversation_key(session_id), snapshot.model_dump_json(), ttl)

    def invalidate_conversation(self, session_id: str) -> bool:
        return self.delete(self.conversation_key(session_id))

    def check_connection(self) -> bool:
        try:
            if self.client and self.client.ping():
                logger.info("[Cache] Redis connection OK")
                return True
        except CACHE_ERRORS as e:
            logger.warning("[Cache] Redis connection failed: %s", e)
        return False


@lru_cache(maxsize=1)
def get_redis_cache() -> RedisCache:
    """
    FastAPI dependency factory that returns a singleton RedisCache instance.
    """
    return RedisCache()
