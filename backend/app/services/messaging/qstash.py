"""
QStash scheduling/messaging transport.

Requests go to the QStash REST API (v2) through httpx:
- Forwarded headers use the `Upstash-Forward-<name>` convention
- Signatures on delivered requests are HS256 JWTs; the `body` claim is the
  base64url SHA-256 of the raw request body

Environment configuration:
- QSTASH_URL: API base (default: https://qstash.upstash.io)
- QSTASH_TOKEN: bearer token
- QSTASH_CURRENT_SIGNING_KEY / QSTASH_NEXT_SIGNING_KEY: signature keys
"""
import base64
import hashlib
import json
from typing import Any, Dict, List, Optional

import httpx
import jwt
from jwt import PyJWTError

from app.core.config import get_qstash_signing_keys, get_qstash_token, get_qstash_url
from app.core.logging import get_logger

logger = get_logger(__name__)


class QStashError(Exception):
    """Raised when a QStash API call fails or is not configured."""
    pass


def _decode(response: httpx.Response, expected: type) -> Any:
    """Parse a successful response body, raising QStashError if it is not the expected JSON shape."""
    try:
        data = response.json()
    except ValueError as exc:
        logger.warning(
            "qstash_invalid_response",
            path=response.request.url.path,
            status_code=response.status_code,
            body=response.text[:200],
        )
        raise QStashError(f"QStash returned a non-JSON body: {response.text[:200]}") from exc

    if not isinstance(data, expected):
        raise QStashError(
            f"QStash returned {type(data).__name__}, expected {expected.__name__}"
        )
    return data


class QStashClient:
    """Async HTTP client for QStash schedules and one-off messages."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str],
        timeout_seconds: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    def _headers(self, forward_headers: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {"Authorization": f"Bearer {self.token}"}
        for name, value in (forward_headers or {}).items():
            if name.lower() == "content-type":
                headers["Content-Type"] = value
            else:
                headers[f"Upstash-Forward-{name}"] = value
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        headers: Optional[Dict[str, str]] = None,
        content: Optional[str] = None,
    ) -> httpx.Response:
        if not self.token:
            raise QStashError("QSTASH_TOKEN not configured")

        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.request(
                    method,
                    url,
                    headers=headers or self._headers(),
                    content=content,
                )
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.warning(
                "qstash_http_error",
                method=method,
                path=path,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise QStashError(f"QStash request failed: {exc}") from exc

        if response.status_code >= 400:
            logger.warning(
                "qstash_error_response",
                method=method,
                path=path,
                status_code=response.status_code,
                body=response.text[:200],
            )
            raise QStashError(
                f"QStash returned {response.status_code}: {response.text[:200]}"
            )
        return response

    async def create_schedule(
        self,
        destination: str,
        cron: str,
        body: Dict[str, Any],
        schedule_id: str,
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """
        Create or overwrite a recurring HTTP trigger.

        A fixed schedule_id makes the call idempotent: re-running replaces
        the existing schedule instead of adding another one.
        """
        request_headers = self._headers(headers)
        request_headers["Upstash-Cron"] = cron
        request_headers["Upstash-Schedule-Id"] = schedule_id
        request_headers.setdefault("Content-Type", "application/json")

        response = await self._request(
            "POST",
            f"/v2/schedules/{destination}",
            headers=request_headers,
            content=json.dumps(body),
        )
        data = _decode(response, dict) if response.content else {}
        return {
            "scheduleId": data.get("scheduleId", schedule_id),
            "cron": cron,
            "destination": destination,
            "body": body,
        }

    async def list_schedules(self) -> List[Dict[str, Any]]:
        response = await self._request("GET", "/v2/schedules")
        return _decode(response, list) if response.content else []

    async def delete_schedule(self, schedule_id: str) -> None:
        await self._request("DELETE", f"/v2/schedules/{schedule_id}")

    async def publish_json(
        self,
        url: str,
        body: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None,
    ) -> str:
        """
        Enqueue a one-off JSON delivery to url.

        Returns:
            QStash message id
        """
        request_headers = self._headers(headers)
        request_headers["Content-Type"] = "application/json"

        response = await self._request(
            "POST",
            f"/v2/publish/{url}",
            headers=request_headers,
            content=json.dumps(body),
        )
        return _decode(response, dict).get("messageId", "")


class QStashReceiver:
    """
    Verifies the `Upstash-Signature` header of delivered requests.

    Two keys are tried in order (current, next) so signing keys can be rotated
    without rejecting in-flight deliveries.
    """

    ISSUER = "Upstash"

    def __init__(self, signing_keys: List[str], clock_tolerance_seconds: int = 0):
        self.signing_keys = [key for key in signing_keys if key]
        self.clock_tolerance_seconds = clock_tolerance_seconds

    @staticmethod
    def body_hash(body: bytes) -> str:
        digest = hashlib.sha256(body).digest()
        return base64.urlsafe_b64encode(digest).decode().rstrip("=")

    def verify(self, signature: str, body: bytes, url: Optional[str] = None) -> bool:
        """
        Check signature against body (and destination url when given).

        Returns:
            True if any configured key produces a valid token for this body
        """
        if not self.signing_keys or not signature:
            return False

        expected_hash = self.body_hash(body)

        for index, key in enumerate(self.signing_keys):
            try:
                claims = jwt.decode(
                    signature,
                    key,
                    algorithms=["HS256"],
                    issuer=self.ISSUER,
                    leeway=self.clock_tolerance_seconds,
                    options={"require": ["iss", "exp", "body"]},
                )
            except PyJWTError as exc:
                logger.debug(
                    "qstash_signature_key_rejected",
                    key_index=index,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                continue

            if url is not None and claims.get("sub") != url:
                logger.debug("qstash_signature_url_mismatch", key_index=index)
                continue

            if str(claims.get("body", "")).rstrip("=") != expected_hash:
                logger.debug("qstash_signature_body_mismatch", key_index=index)
                continue

            return True

        return False


_qstash_client: Optional[QStashClient] = None


def get_qstash_client() -> QStashClient:
    """Get global QStash client instance."""
    global _qstash_client
    if _qstash_client is None:
        _qstash_client = QStashClient(
            base_url=get_qstash_url(),
            token=get_qstash_token(),
        )
    return _qstash_client


def get_qstash_receiver() -> QStashReceiver:
    """Build a receiver from the current signing keys (cheap, not cached)."""
    return QStashReceiver(get_qstash_signing_keys())
