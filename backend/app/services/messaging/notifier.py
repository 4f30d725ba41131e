"""
Real-time notifier over Redis pub/sub.

Messages are JSON objects `{"event": <name>, "data": <payload>}` published on
a named channel; the websocket gateway relays them to subscribed clients.
Delivery is at-most-once: there is no retry, a missed message is corrected by
the client's next fetch.
"""
import json
from typing import Any, Dict, Optional

from redis.asyncio import Redis

from app.core.cache import get_redis_client
from app.core.logging import get_logger

logger = get_logger(__name__)


class NotifierUnavailableError(Exception):
    """Raised when no Redis connection is available for publishing."""
    pass


class RedisNotifier:
    """Publishes events to Redis channels."""

    def __init__(self, redis_client: Optional[Redis] = None):
        self._redis_client = redis_client

    @property
    def redis(self) -> Optional[Redis]:
        return self._redis_client if self._redis_client is not None else get_redis_client()

    async def trigger(self, channel: str, event: str, payload: Dict[str, Any]) -> int:
        """
        Publish one event.

        Returns:
            Number of subscribers that received the message

        Raises:
            NotifierUnavailableError: Redis is not connected
            redis.exceptions.RedisError: publish failed
        """
        client = self.redis
        if client is None:
            raise NotifierUnavailableError("Redis not available for notifications")

        message = json.dumps({"event": event, "data": payload})
        receivers = await client.publish(channel, message)
        logger.info(
            "notification_published",
            channel=channel,
            event_name=event,
            receivers=receivers,
        )
        return receivers


_notifier: Optional[RedisNotifier] = None


def get_notifier() -> RedisNotifier:
    global _notifier
    if _notifier is None:
        _notifier = RedisNotifier()
    return _notifier
