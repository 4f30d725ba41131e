"""
Environment configuration for the trending service.

Values are read from the process environment on every call so tests and
long-running workers pick up changes without a restart. A `.env` file in the
repository root is loaded once at import time when present.
"""
import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

# Load environment variables from .env file in root directory
env_path = Path(__file__).parent.parent.parent.parent / ".env"

if env_path.exists():
    load_dotenv(env_path)

DEFAULT_QSTASH_URL = "https://qstash.upstash.io"
DEFAULT_NOTIFY_CHANNEL = "videos-channel"


def get_app_url() -> str:
    """Public base URL of this service (used as the scheduler destination)."""
    return os.getenv("APP_URL", "http://localhost:8000").rstrip("/")


def get_invalidation_webhook_url() -> str:
    return f"{get_app_url()}/invalidate-trending"


def get_internal_api_key() -> Optional[str]:
    """Shared secret accepted in the x-api-key header. Empty means disabled."""
    return os.getenv("INTERNAL_API_KEY") or None


def get_qstash_url() -> str:
    return os.getenv("QSTASH_URL", DEFAULT_QSTASH_URL).rstrip("/")


def get_qstash_token() -> Optional[str]:
    return os.getenv("QSTASH_TOKEN") or None


def get_qstash_signing_keys() -> List[str]:
    """
    Signing keys for request signatures, current key first.

    Both keys are accepted so the provider can rotate without downtime.
    """
    keys = [
        os.getenv("QSTASH_CURRENT_SIGNING_KEY", ""),
        os.getenv("QSTASH_NEXT_SIGNING_KEY", ""),
    ]
    return [key for key in keys if key]


def get_session_jwt_key() -> Optional[str]:
    """Key (PEM public key or shared secret) used to verify session tokens."""
    return os.getenv("SESSION_JWT_KEY") or None


def get_session_jwt_algorithm() -> str:
    return os.getenv("SESSION_JWT_ALGORITHM", "RS256")


def get_notify_channel() -> str:
    return os.getenv("NOTIFY_CHANNEL", DEFAULT_NOTIFY_CHANNEL)
