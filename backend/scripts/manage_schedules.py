"""
Manage the QStash schedules that invalidate trending caches.

Usage:
    python scripts/manage_schedules.py setup
    python scripts/manage_schedules.py check
    python scripts/manage_schedules.py remove <schedule_id>
    python scripts/manage_schedules.py trigger [--time-range day] [--reason text]

Requires QSTASH_TOKEN, INTERNAL_API_KEY and APP_URL in the environment or
the root .env file.
"""
import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.core.logging import configure_logging, get_logger
from app.models.trending import ALL_RANGES, TimeWindow
from app.services.trending.scheduler import get_scheduler

# Configure logging
configure_logging(log_level="INFO", json_output=False)
logger = get_logger(__name__)


async def run(args: argparse.Namespace) -> Dict[str, Any]:
    scheduler = get_scheduler()

    if args.command == "setup":
        return await scheduler.setup_schedules()
    if args.command == "check":
        return await scheduler.check_schedules()
    if args.command == "remove":
        return await scheduler.remove_schedule(args.schedule_id)
    return await scheduler.trigger_invalidation(args.time_range, reason=args.reason)


def main() -> int:
    parser = argparse.ArgumentParser(description="Manage trending cache invalidation schedules")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("setup", help="Create the daily, weekly and all-ranges schedules")
    subparsers.add_parser("check", help="List existing trending schedules")

    remove = subparsers.add_parser("remove", help="Delete a schedule by id")
    remove.add_argument("schedule_id", help="QStash schedule id")

    trigger = subparsers.add_parser("trigger", help="Enqueue a one-off invalidation")
    trigger.add_argument(
        "--time-range",
        default=ALL_RANGES,
        choices=[w.value for w in TimeWindow] + [ALL_RANGES],
        help=f"Time range to invalidate (default: {ALL_RANGES})",
    )
    trigger.add_argument("--reason", default="manual:cli", help="Reason recorded with the request")

    args = parser.parse_args()

    result = asyncio.run(run(args))
    print(json.dumps(result, indent=2, default=str))

    if not result.get("success"):
        logger.error("schedule_command_failed", command=args.command, error=result.get("error"))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
