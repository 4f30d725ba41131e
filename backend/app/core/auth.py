"""
Request authentication.

Webhooks (invalidate-trending, content-deleted) accept either:
- `x-api-key` equal to INTERNAL_API_KEY (internal callers, scheduled triggers)
- `upstash-signature`: an HS256 JWT signed with the current or next QStash
  signing key whose `body` claim matches the raw request body

Admin endpoints accept either a session bearer token (verified with PyJWT
against SESSION_JWT_KEY) or the same internal API key.
"""
import hmac
from typing import Any, Dict, Optional

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import PyJWTError

from app.services.messaging.qstash import get_qstash_receiver

from .config import get_internal_api_key, get_session_jwt_algorithm, get_session_jwt_key
from .logging import get_logger, set_user_id
from .metrics import record_webhook_auth_failure

logger = get_logger(__name__)

API_KEY_HEADER = "x-api-key"
SIGNATURE_HEADER = "upstash-signature"

# HTTP Bearer token extraction
security = HTTPBearer(auto_error=False)


class WebhookAuthError(Exception):
    """Raised when a webhook request carries no valid credential."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class SessionTokenError(Exception):
    pass


def verify_api_key(provided: Optional[str]) -> bool:
    """Constant-time comparison against INTERNAL_API_KEY; False when unset."""
    expected = get_internal_api_key()
    if not expected or not provided:
        return False
    return hmac.compare_digest(provided.encode(), expected.encode())


async def authorize_webhook(request: Request, endpoint: str) -> bytes:
    """
    Authenticate a webhook call and return its raw body.

    The body is read here because signature verification needs the exact
    bytes; route handlers parse the returned bytes.

    Raises:
        WebhookAuthError: neither credential is valid
    """
    body = await request.body()

    if verify_api_key(request.headers.get(API_KEY_HEADER)):
        return body

    signature = request.headers.get(SIGNATURE_HEADER)
    if signature:
        if get_qstash_receiver().verify(signature, body):
            return body
        reason = "invalid_signature"
    elif request.headers.get(API_KEY_HEADER):
        reason = "invalid_api_key"
    else:
        reason = "missing_credentials"

    record_webhook_auth_failure(endpoint, reason)
    logger.warning("webhook_unauthorized", endpoint=endpoint, reason=reason)
    raise WebhookAuthError(reason)


def verify_session_token(token: str) -> Dict[str, Any]:
    """
    Verify a session JWT and return its claims.

    Raises:
        SessionTokenError: key not configured, or token invalid/expired
    """
    key = get_session_jwt_key()
    if not key:
        raise SessionTokenError("SESSION_JWT_KEY not configured")

    try:
        claims = jwt.decode(
            token,
            key,
            algorithms=[get_session_jwt_algorithm()],
            options={"require": ["exp", "sub"]},
        )
    except PyJWTError as e:
        raise SessionTokenError(str(e)) from e
    return claims


async def require_admin(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Dict[str, Any]:
    """
    Admin guard: a valid session token or the internal API key.

    Returns:
        Principal dict: {"type": "session", "user_id": ...} or {"type": "api_key"}

    Raises:
        HTTPException 401: no valid credential
    """
    if credentials:
        try:
            claims = verify_session_token(credentials.credentials)
        except SessionTokenError as e:
            logger.warning("admin_session_rejected", error=str(e))
        else:
            user_id = str(claims["sub"])
            set_user_id(user_id)
            return {"type": "session", "user_id": user_id}

    if verify_api_key(request.headers.get(API_KEY_HEADER)):
        return {"type": "api_key"}

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
        headers={"WWW-Authenticate": "Bearer"},
    )
