"""
Redis event mirror tests
"""

import json
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from companion.live.ws.publisher import SessionEventPublisher


@pytest.mark.asyncio
async def test_publish_wraps_message_with_session_id():
    redis = AsyncMock()
    publisher = SessionEventPublisher(enabled=True, channel="test-events", client_factory=lambda: redis)

    assert await publisher.publish("session-1", {"event": "session:paused", "data": {}})

    channel, body = redis.publish.await_args.args
    assert channel == "test-events"
    assert json.loads(body) == {"session_id": "session-1", "message": {"event": "session:paused", "data": {}}}

    await publisher.close()
    redis.aclose.assert_awaited_once()


@pytest.mark.asyncio
async def test_publish_failure_is_reported_not_raised():
    redis = AsyncMock()
    redis.publish.side_effect = RedisConnectionError("redis down")
    publisher = SessionEventPublisher(enabled=True, client_factory=lambda: redis)

    assert await publisher.publish("session-1", {"event": "error", "data": {}}) is False


@pytest.mark.asyncio
async def test_disabled_mirror_never_connects():
    def factory():
        raise AssertionError("should not connect")

    publisher = SessionEventPublisher(enabled=False, client_factory=factory)
    assert await publisher.publish("session-1", {}) is False
    await publisher.close()
