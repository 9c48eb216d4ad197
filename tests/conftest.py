from unittest.mock import MagicMock

import fakeredis
import pytest
import redis
from mongomock_motor import AsyncMongoMockClient

from services.chat_service import ChatService
from services.conversation_service import ConversationService
from utils.redis_conn import RedisCache


class StubLLMService:
    """Records what the chat service hands to the reply generator."""

    def __init__(self, reply="Thanks for reaching out!"):
        self.reply = reply
        self.calls = []

    def is_configured(self):
        return True

    async def generate_reply(self, history, user_message):
        self.calls.append((list(history), user_message))
        return self.reply


@pytest.fixture
def fake_redis():
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture
def cache(fake_redis):
    return RedisCache(client=fake_redis)


@pytest.fixture
def mongo_db():
    return AsyncMongoMockClient()["support_chat_test"]


@pytest.fixture
def conversation_service(mongo_db):
    return ConversationService(db=mongo_db)


@pytest.fixture
def llm_service():
    return StubLLMService()


@pytest.fixture
def chat_service(conversation_service, llm_service, cache):
    return ChatService(
        conversation_service=conversation_service,
        llm_service=llm_service,
        cache=cache,
    )


def _broken_client():
    client = MagicMock()
    client.get.side_effect = redis.ConnectionError("connection refused")
    client.setex.side_effect = redis.ConnectionError("connection refused")
    client.delete.side_effect = redis.TimeoutError("timed out")
    client.ping.side_effect = redis.ConnectionError("connection refused")
    return client


@pytest.fixture
def broken_cache():
    """A cache whose Redis is unreachable."""
    return RedisCache(client=_broken_client())
