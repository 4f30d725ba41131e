"""
Unit tests for trending invalidation schedules.
"""
from unittest.mock import AsyncMock

import httpx
import pytest

from app.services.messaging.qstash import QStashClient, QStashError
from app.services.trending.scheduler import TRENDING_SCHEDULES, Scheduler

WEBHOOK_URL = "https://app.example.com/invalidate-trending"


@pytest.fixture
def qstash():
    client = AsyncMock()

    async def create_schedule(destination, cron, body, schedule_id, headers=None):
        return {"scheduleId": schedule_id, "cron": cron, "destination": destination, "body": body}

    client.create_schedule = AsyncMock(side_effect=create_schedule)
    return client


@pytest.fixture
def scheduler(qstash):
    return Scheduler(client=qstash, webhook_url=WEBHOOK_URL, api_key="internal-key")


def test_schedule_definitions():
    assert [(s.schedule_id, s.cron, s.time_range) for s in TRENDING_SCHEDULES] == [
        ("trending-invalidation-daily", "5 0 * * *", "day"),
        ("trending-invalidation-weekly", "10 0 * * 1", "week"),
        ("trending-invalidation-all-ranges", "0 */6 * * *", "all-ranges"),
    ]


@pytest.mark.asyncio
async def test_setup_creates_all_schedules_with_api_key(scheduler, qstash):
    result = await scheduler.setup_schedules()

    assert result["success"] is True
    assert [s["scheduleId"] for s in result["schedules"]] == [
        "trending-invalidation-daily",
        "trending-invalidation-weekly",
        "trending-invalidation-all-ranges",
    ]
    for call in qstash.create_schedule.await_args_list:
        assert call.kwargs["destination"] == WEBHOOK_URL
        assert call.kwargs["headers"] == {"x-api-key": "internal-key", "Content-Type": "application/json"}
    assert qstash.create_schedule.await_args_list[1].kwargs["body"] == {"timeRange": "week"}


@pytest.mark.asyncio
async def test_setup_failure_is_reported_not_raised(scheduler, qstash):
    qstash.create_schedule.side_effect = QStashError("QStash returned 500")

    result = await scheduler.setup_schedules()

    assert result == {"success": False, "error": "QStash returned 500"}


@pytest.mark.asyncio
async def test_check_filters_to_trending_schedules(scheduler, qstash):
    qstash.list_schedules.return_value = [
        {"scheduleId": "trending-invalidation-daily"},
        {"scheduleId": "newsletter-weekly"},
        {"cron": "* * * * *"},
    ]

    result = await scheduler.check_schedules()

    assert result == {"success": True, "schedules": [{"scheduleId": "trending-invalidation-daily"}]}


@pytest.mark.asyncio
async def test_remove_schedule(scheduler, qstash):
    result = await scheduler.remove_schedule("trending-invalidation-weekly")

    qstash.delete_schedule.assert_awaited_once_with("trending-invalidation-weekly")
    assert result["success"] is True
    assert "trending-invalidation-weekly" in result["message"]


@pytest.mark.asyncio
async def test_remove_schedule_failure(scheduler, qstash):
    qstash.delete_schedule.side_effect = QStashError("not found")

    assert await scheduler.remove_schedule("x") == {"success": False, "error": "not found"}


@pytest.mark.asyncio
async def test_trigger_invalidation_publishes_with_reason(scheduler, qstash):
    qstash.publish_json.return_value = "msg_1"

    result = await scheduler.trigger_invalidation("all-ranges", reason="video_deleted:v1")

    assert result == {"success": True, "message_id": "msg_1"}
    qstash.publish_json.assert_awaited_once_with(
        url=WEBHOOK_URL,
        body={"timeRange": "all-ranges", "reason": "video_deleted:v1"},
        headers={"x-api-key": "internal-key"},
    )


@pytest.mark.asyncio
async def test_trigger_invalidation_failure(scheduler, qstash):
    qstash.publish_json.side_effect = QStashError("QSTASH_TOKEN not configured")

    result = await scheduler.trigger_invalidation("day")

    assert result["success"] is False
    assert "QSTASH_TOKEN" in result["error"]


@pytest.mark.asyncio
async def test_malformed_provider_response_is_reported_not_raised():
    client = QStashClient(
        base_url="https://qstash.example.com",
        token="qstash-token",
        transport=httpx.MockTransport(lambda request: httpx.Response(200, text="<html>proxy</html>")),
    )
    scheduler = Scheduler(client=client, webhook_url=WEBHOOK_URL, api_key="internal-key")

    checked = await scheduler.check_schedules()
    triggered = await scheduler.trigger_invalidation("day")

    assert checked["success"] is False
    assert "non-JSON" in checked["error"]
    assert triggered["success"] is False
