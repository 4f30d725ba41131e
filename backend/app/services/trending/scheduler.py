"""
Recurring trending cache invalidation schedules.

Schedules (fixed ids, so setup is idempotent):
- trending-invalidation-daily:      "5 0 * * *"   -> day window, every day at 00:05
- trending-invalidation-weekly:     "10 0 * * 1"  -> week window, Mondays at 00:10
- trending-invalidation-all-ranges: "0 */6 * * *" -> every window, every 6 hours

Each schedule posts `{"timeRange": ...}` to the invalidation webhook with the
shared x-api-key header. The all-ranges schedule is the safety net for missed
or failed single-window triggers, which is why it runs most often.

Every operation returns a `{"success": bool, ...}` dict; transport failures are
reported as `{"success": False, "error": ...}` and never raised.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from app.core.config import get_internal_api_key, get_invalidation_webhook_url
from app.core.logging import get_logger
from app.core.metrics import record_scheduler_operation
from app.models.trending import ALL_RANGES, TimeWindow
from app.services.messaging.qstash import QStashClient, QStashError, get_qstash_client

logger = get_logger(__name__)

SCHEDULE_ID_MARKER = "trending-invalidation"


@dataclass(frozen=True)
class ScheduleDefinition:
    schedule_id: str
    cron: str
    time_range: str


TRENDING_SCHEDULES: List[ScheduleDefinition] = [
    ScheduleDefinition("trending-invalidation-daily", "5 0 * * *", TimeWindow.DAY.value),
    ScheduleDefinition("trending-invalidation-weekly", "10 0 * * 1", TimeWindow.WEEK.value),
    ScheduleDefinition("trending-invalidation-all-ranges", "0 */6 * * *", ALL_RANGES),
]


class Scheduler:
    """Manages trending invalidation triggers on the scheduling transport."""

    def __init__(
        self,
        client: Optional[QStashClient] = None,
        webhook_url: Optional[str] = None,
        api_key: Optional[str] = None,
    ):
        self._client = client
        self._webhook_url = webhook_url
        self._api_key = api_key

    @property
    def client(self) -> QStashClient:
        return self._client if self._client is not None else get_qstash_client()

    @property
    def webhook_url(self) -> str:
        return self._webhook_url or get_invalidation_webhook_url()

    def _headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self._api_key or get_internal_api_key() or "",
            "Content-Type": "application/json",
        }

    async def setup_schedules(self) -> Dict[str, Any]:
        """Create (or overwrite) every trending invalidation schedule."""
        try:
            schedules = []
            for definition in TRENDING_SCHEDULES:
                schedule = await self.client.create_schedule(
                    destination=self.webhook_url,
                    cron=definition.cron,
                    body={"timeRange": definition.time_range},
                    schedule_id=definition.schedule_id,
                    headers=self._headers(),
                )
                schedules.append(schedule)
        except QStashError as e:
            record_scheduler_operation("setup", success=False)
            logger.error("trending_schedules_setup_failed", error=str(e))
            return {"success": False, "error": str(e)}

        record_scheduler_operation("setup", success=True)
        logger.info(
            "trending_schedules_setup",
            schedule_ids=[s["scheduleId"] for s in schedules],
            destination=self.webhook_url,
        )
        return {"success": True, "schedules": schedules}

    async def check_schedules(self) -> Dict[str, Any]:
        """List registered schedules belonging to trending invalidation."""
        try:
            schedules = await self.client.list_schedules()
        except QStashError as e:
            record_scheduler_operation("check", success=False)
            logger.error("trending_schedules_check_failed", error=str(e))
            return {"success": False, "error": str(e)}

        record_scheduler_operation("check", success=True)
        trending = [
            schedule for schedule in schedules
            if SCHEDULE_ID_MARKER in (schedule.get("scheduleId") or "")
        ]
        return {"success": True, "schedules": trending}

    async def remove_schedule(self, schedule_id: str) -> Dict[str, Any]:
        try:
            await self.client.delete_schedule(schedule_id)
        except QStashError as e:
            record_scheduler_operation("remove", success=False)
            logger.error("trending_schedule_remove_failed", schedule_id=schedule_id, error=str(e))
            return {"success": False, "error": str(e)}

        record_scheduler_operation("remove", success=True)
        logger.info("trending_schedule_removed", schedule_id=schedule_id)
        return {"success": True, "message": f"Schedule {schedule_id} deleted successfully"}

    async def trigger_invalidation(
        self,
        time_range: str = ALL_RANGES,
        reason: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Enqueue a one-off invalidation request to the webhook.

        Returns:
            {"success": True, "message_id": ...} or {"success": False, "error": ...}
        """
        body: Dict[str, Any] = {"timeRange": time_range}
        if reason:
            body["reason"] = reason

        try:
            message_id = await self.client.publish_json(
                url=self.webhook_url,
                body=body,
                headers={"x-api-key": self._api_key or get_internal_api_key() or ""},
            )
        except QStashError as e:
            record_scheduler_operation("trigger", success=False)
            logger.error(
                "trending_invalidation_trigger_failed",
                time_range=time_range,
                reason=reason,
                error=str(e),
            )
            return {"success": False, "error": str(e)}

        record_scheduler_operation("trigger", success=True)
        logger.info(
            "trending_invalidation_triggered",
            time_range=time_range,
            reason=reason,
            message_id=message_id,
        )
        return {"success": True, "message_id": message_id}


_scheduler: Optional[Scheduler] = None


def get_scheduler() -> Scheduler:
    global _scheduler
    if _scheduler is None:
        _scheduler = Scheduler()
    return _scheduler
