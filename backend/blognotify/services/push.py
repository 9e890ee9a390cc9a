"""
Send Web Push messages (RFC 8030) authenticated with VAPID (RFC 8292).
Requires VAPID_PUBLIC_KEY (base64url, uncompressed P-256 point) and VAPID_PRIVATE_KEY
(PEM or base64-encoded PEM) in env. If not configured, send_web_push no-ops (log and
return SKIPPED).

Messages carry no payload: the service worker wakes up and pulls the unread list from
the notifications API, so nothing needs encrypting with the subscription keys.
"""
import base64
import logging
import threading
import time
from enum import Enum
from urllib.parse import urlsplit

import httpx
import jwt

from blognotify.config import settings
from blognotify.core.constants import ENDPOINT_PREVIEW_CHARS

logger = logging.getLogger(__name__)

# JWT cache: audience -> (token_string, expiry_epoch). Push services accept exp up to 24h ahead.
_jwt_cache: dict[str, tuple[str, float]] = {}
_jwt_lock = threading.Lock()
_JWT_LIFETIME_SECONDS = 12 * 60 * 60
_JWT_REFRESH_MARGIN_SECONDS = 5 * 60


class PushResult(str, Enum):
    SENT = "sent"
    GONE = "gone"  # 404/410: subscription expired or revoked; caller deactivates it
    FAILED = "failed"
    SKIPPED = "skipped"  # VAPID not configured


def _load_private_key() -> str | None:
    """VAPID private key as PEM text; accepts raw PEM or base64 of the PEM. None if unset."""
    raw = (settings.vapid_private_key or "").strip()
    if not raw:
        return None
    if "BEGIN" in raw:
        return raw.replace("\\n", "\n")
    try:
        return base64.b64decode(raw).decode("utf-8")
    except Exception as e:
        logger.warning("VAPID_PRIVATE_KEY decode failed: %s", e)
        return None


def vapid_configured() -> bool:
    return bool((settings.vapid_public_key or "").strip() and _load_private_key())


def _audience(endpoint: str) -> str:
    parts = urlsplit(endpoint)
    return f"{parts.scheme}://{parts.netloc}"


def _get_vapid_jwt(audience: str) -> str | None:
    """Build and cache the VAPID JWT for one push service origin. None if config missing."""
    key = _load_private_key()
    if not key:
        return None
    now = time.time()
    with _jwt_lock:
        cached = _jwt_cache.get(audience)
        if cached and cached[1] - _JWT_REFRESH_MARGIN_SECONDS > now:
            return cached[0]
    expiry = int(now) + _JWT_LIFETIME_SECONDS
    try:
        token = jwt.encode(
            {"aud": audience, "exp": expiry, "sub": settings.vapid_subject},
            key,
            algorithm="ES256",
            headers={"typ": "JWT", "alg": "ES256"},
        )
        if isinstance(token, bytes):
            token = token.decode("utf-8")
    except Exception as e:
        logger.warning("VAPID JWT build failed: %s", e, exc_info=True)
        return None
    with _jwt_lock:
        _jwt_cache[audience] = (token, float(expiry))
    return token


def send_web_push(endpoint: str, urgency: str = "normal", topic: str | None = None) -> PushResult:
    """
    Send one push message to a subscription endpoint.
    Returns SENT on 2xx, GONE on 404/410, FAILED on other errors, SKIPPED if VAPID is not set up.
    """
    public_key = (settings.vapid_public_key or "").strip()
    if not public_key:
        logger.debug("VAPID_PUBLIC_KEY not set; skipping push")
        return PushResult.SKIPPED
    token = _get_vapid_jwt(_audience(endpoint))
    if not token:
        logger.debug("VAPID private key not configured; skipping push")
        return PushResult.SKIPPED
    headers = {
        "Authorization": f"vapid t={token}, k={public_key}",
        "TTL": str(settings.push_ttl_seconds),
        "Urgency": urgency,
        "Content-Length": "0",
    }
    if topic:
        headers["Topic"] = topic
    preview = endpoint[:ENDPOINT_PREVIEW_CHARS]
    try:
        with httpx.Client(timeout=10.0) as client:
            resp = client.post(endpoint, headers=headers)
    except Exception as e:
        logger.warning("Push request to %s... failed: %s", preview, e, exc_info=True)
        return PushResult.FAILED
    if 200 <= resp.status_code < 300:
        return PushResult.SENT
    if resp.status_code in (404, 410):
        logger.info("Push endpoint %s... is gone (%s)", preview, resp.status_code)
        return PushResult.GONE
    logger.warning("Push service returned %s for %s...: %s", resp.status_code, preview, resp.text)
    return PushResult.FAILED
