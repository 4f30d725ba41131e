"""
Content event relay (EventRelay).

A deleted video fans out to three independent steps:
1. notify: publish `video-deleted` on the realtime channel
2. clear: drop every trending cache key (`trending:` prefix)
3. backup: enqueue an all-ranges invalidation through the scheduler transport

A failing step is logged and recorded but never stops the others; the caller
gets the per-step outcome back. The backup message covers the case where the
direct clear raced with a concurrent repopulation.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from app.core.cache import CacheClient, get_cache_client
from app.core.config import get_notify_channel
from app.core.logging import get_logger
from app.core.metrics import record_event_relay_failure
from app.models.trending import ALL_RANGES
from app.services.messaging.notifier import RedisNotifier, get_notifier
from app.services.trending.cache import KEY_PREFIX
from app.services.trending.scheduler import Scheduler, get_scheduler

logger = get_logger(__name__)

VIDEO_DELETED_EVENT = "video-deleted"


@dataclass
class RelayStep:
    success: bool
    detail: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"success": self.success, **self.detail}
        if self.error:
            data["error"] = self.error
        return data


class EventRelay:
    """Fans content deletions out to notifier, cache and scheduler."""

    def __init__(
        self,
        notifier: Optional[RedisNotifier] = None,
        cache: Optional[CacheClient] = None,
        scheduler: Optional[Scheduler] = None,
        channel: Optional[str] = None,
    ):
        self.notifier = notifier or get_notifier()
        self.cache = cache or get_cache_client()
        self.scheduler = scheduler or get_scheduler()
        self.channel = channel or get_notify_channel()

    async def _notify(self, content_id: str) -> RelayStep:
        try:
            receivers = await self.notifier.trigger(
                self.channel,
                VIDEO_DELETED_EVENT,
                {"contentId": content_id},
            )
        except Exception as e:
            logger.error(
                "event_relay_notify_failed",
                content_id=content_id,
                channel=self.channel,
                error=str(e),
                error_type=type(e).__name__,
            )
            return RelayStep(False, error=str(e))
        return RelayStep(True, {"receivers": receivers})

    async def _clear_cache(self, content_id: str) -> RelayStep:
        # CacheClient absorbs transport faults, so 0 can also mean Redis is down.
        try:
            cleared = await self.cache.delete_by_prefix(KEY_PREFIX)
        except Exception as e:
            logger.error(
                "event_relay_cache_clear_failed",
                content_id=content_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return RelayStep(False, error=str(e))
        return RelayStep(True, {"cleared": cleared})

    async def _enqueue_backup(self, content_id: str) -> RelayStep:
        try:
            result = await self.scheduler.trigger_invalidation(
                ALL_RANGES,
                reason=f"video_deleted:{content_id}",
            )
        except Exception as e:
            result = {"success": False, "error": str(e)}

        if not result.get("success"):
            logger.error(
                "event_relay_backup_failed",
                content_id=content_id,
                error=result.get("error"),
            )
            return RelayStep(False, error=result.get("error"))
        return RelayStep(True, {"message_id": result.get("message_id")})

    async def video_deleted(self, content_id: str) -> Dict[str, Dict[str, Any]]:
        """
        Run every step for one deleted video.

        Returns:
            {"notify": {...}, "cache": {...}, "backup": {...}} each with a success flag
        """
        steps = {
            "notify": await self._notify(content_id),
            "cache": await self._clear_cache(content_id),
            "backup": await self._enqueue_backup(content_id),
        }

        for name, step in steps.items():
            if not step.success:
                record_event_relay_failure(name)

        logger.info(
            "event_relay_video_deleted",
            content_id=content_id,
            **{f"{name}_ok": step.success for name, step in steps.items()},
        )
        return {name: step.to_dict() for name, step in steps.items()}


_event_relay: Optional[EventRelay] = None


def get_event_relay() -> EventRelay:
    global _event_relay
    if _event_relay is None:
        _event_relay = EventRelay()
    return _event_relay
