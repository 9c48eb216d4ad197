from datetime import datetime, timezone

from models import ConversationSnapshot, Message, MessageSender
from utils.redis_conn import DEFAULT_CONVERSATION_TTL, RedisCache


def _snapshot(conversation_id="conv-1", **kwargs):
    now = datetime.now(timezone.utc)
    return ConversationSnapshot(
        conversation_id=conversation_id,
        created_at=now,
        updated_at=now,
        messages=[
            Message(message_id="m1", conversation_id=conversation_id,
                    sender=MessageSender.USER, text="Hi", timestamp=now),
        ],
        **kwargs,
    )


def test_snapshot_is_stored_under_namespaced_key_with_default_ttl(cache, fake_redis):
    assert cache.cache_conversation_snapshot("conv-1", _snapshot())

    assert fake_redis.exists("conv:conv-1")
    assert 0 < fake_redis.ttl("conv:conv-1") <= DEFAULT_CONVERSATION_TTL

    cached = cache.get_conversation_snapshot("conv-1")
    assert cached.conversation_id == "conv-1"
    assert [m.text for m in cached.messages] == ["Hi"]
    assert cached.messages[0].sender == MessageSender.USER


def test_missing_snapshot_is_none(cache):
    assert cache.get_conversation_snapshot("nope") is None


def test_invalidate_removes_snapshot(cache, fake_redis):
    cache.cache_conversation_snapshot("conv-1", _snapshot())
    cache.invalidate_conversation("conv-1")
    assert not fake_redis.exists("conv:conv-1")
    assert cache.get_conversation_snapshot("conv-1") is None


def test_corrupt_payload_is_a_miss_and_dropped(cache, fake_redis):
    fake_redis.set("conv:conv-1", "{not json")
    assert cache.get_conversation_snapshot("conv-1") is None
    assert not fake_redis.exists("conv:conv-1")


def test_transport_failures_are_swallowed(broken_cache):
    cache = broken_cache

    assert cache.get("conv:x") is None
    assert cache.set("conv:x", "{}") is False
    assert cache.delete("conv:x") is False
    assert cache.get_conversation_snapshot("x") is None
    assert cache.cache_conversation_snapshot("x", _snapshot("x")) is False
    assert cache.invalidate_conversation("x") is False
    assert cache.check_connection() is False


def test_custom_ttl(fake_redis):
    cache = RedisCache(client=fake_redis, ttl=60)
    cache.cache_conversation_snapshot("conv-1", _snapshot())
    assert 0 < fake_redis.ttl("conv:conv-1") <= 60


def test_bounded_snapshot_is_not_complete():
    assert _snapshot().is_complete
    assert not _snapshot(message_limit=10).is_complete
