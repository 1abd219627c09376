import json
from typing import Any, Callable, Dict, Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from companion.core.config import settings
from companion.core.logging import emit_log, get_event_logger
from companion.infra.redis import get_redis_client

EVENTS_LOGGER = get_event_logger("companion.events")


def _log(
    level: str,
    *,
    event: str,
    summary: str,
    payload: Optional[str] = None,
    **kv,
) -> None:
    emit_log(
        EVENTS_LOGGER,
        level=level,
        domain="redis",
        event=event,
        summary=summary,
        kv=kv,
        payload=payload,
    )


class SessionEventPublisher:
    """Mirrors outbound session events to a redis pub/sub channel"""

    def __init__(
        self,
        enabled: Optional[bool] = None,
        channel: Optional[str] = None,
        client_factory: Callable[[], Redis] = get_redis_client,
    ):
        self.enabled = settings.enable_event_mirror if enabled is None else enabled
        self.channel = channel or settings.session_events_channel
        self._client_factory = client_factory
        self._client: Optional[Redis] = None

    async def publish(self, session_id: str, message: Dict[str, Any]) -> bool:
        if not self.enabled:
            return False
        if self._client is None:
            self._client = self._client_factory()

        body = json.dumps({"session_id": session_id, "message": message})
        try:
            await self._client.publish(self.channel, body)
        except RedisError as e:
            _log(
                "WARN",
                event="events.redis.publish_failed",
                summary="Mirror publish failed",
                channel=self.channel,
                session_id=session_id,
                err=repr(e),
            )
            return False
        return True

    async def close(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            await client.aclose()
