from __future__ import annotations

import secrets
import threading
import time
from typing import Dict, Tuple

from flask import current_app, request, session
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from portal.errors import ValidationError


PUBLIC_PAYMENT_TOKEN_SALT = "public-payment-link"
TOKEN_MODES = {"legacy", "signed"}


class SimpleRateLimiter:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: Dict[str, Tuple[float, int]] = {}

    def allow(self, key: str, *, limit: int, window_seconds: int) -> tuple[bool, int]:
        now = time.monotonic()
        with self._lock:
            start, count = self._entries.get(key, (now, 0))
            if now - start >= window_seconds:
                start = now
                count = 0
            count += 1
            self._entries[key] = (start, count)
            if len(self._entries) > 10_000:
                cutoff = now - (window_seconds * 2)
                self._entries = {
                    cached_key: value
                    for cached_key, value in self._entries.items()
                    if value[0] >= cutoff
                }
            retry_after = max(0, int(window_seconds - (now - start)))
            return count <= limit, retry_after

    def reset(self) -> None:
        with self._lock:
            self._entries.clear()


_RATE_LIMITER = SimpleRateLimiter()


def _rate_limit_key() -> str:
    user = str(session.get("user_id") or "").strip() or "anon"
    ip = str(request.remote_addr or "").strip() or "unknown"
    route = request.url_rule.rule if request.url_rule else request.path
    return f"{ip}|{user}|{request.method}|{route}"


def enforce_rate_limit():
    if not bool(current_app.config.get("RATE_LIMIT_ENABLED", True)):
        return None
    if request.method == "OPTIONS":
        return None

    window_seconds = max(1, int(current_app.config.get("RATE_LIMIT_WINDOW_SECONDS", 60) or 60))
    max_requests = max(1, int(current_app.config.get("RATE_LIMIT_MAX_REQUESTS", 300) or 300))
    allowed, retry_after = _RATE_LIMITER.allow(
        _rate_limit_key(),
        limit=max_requests,
        window_seconds=window_seconds,
    )
    if allowed:
        return None
    raise ValidationError(
        code="rate_limit_exceeded",
        message_key="rate_limit_exceeded",
        http_status=429,
        critical=False,
        payload={"retry_after": retry_after},
    )


def apply_security_headers(response):
    if not bool(current_app.config.get("SECURITY_HEADERS_ENABLED", True)):
        return response
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("Referrer-Policy", "no-referrer")
    response.headers.setdefault("Cross-Origin-Opener-Policy", "same-origin")
    response.headers.setdefault("Content-Security-Policy", "default-src 'none'; frame-ancestors 'none'")
    response.headers.setdefault("Cache-Control", "no-store")
    if request.is_secure:
        response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
    return response


def reset_rate_limiter_for_tests() -> None:
    _RATE_LIMITER.reset()


def public_payment_token_mode() -> str:
    mode = str(current_app.config.get("PUBLIC_PAYMENT_TOKEN_MODE", "legacy") or "legacy").strip().lower()
    return mode if mode in TOKEN_MODES else "legacy"


def _payment_serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=PUBLIC_PAYMENT_TOKEN_SALT)


def issue_public_payment_token(payment_id: str, vendor_user_id: str) -> str:
    if public_payment_token_mode() == "signed":
        return _payment_serializer().dumps({"payment_id": payment_id, "vendor_user_id": vendor_user_id})
    return vendor_user_id


def _same(left: str, right: str) -> bool:
    return secrets.compare_digest(left.encode("utf-8"), right.encode("utf-8"))


def verify_public_payment_token(payment_id: str, vendor_user_id: str, token: str | None) -> bool:
    """Check a public payment link token against the payment's owning vendor user."""
    provided = str(token or "").strip()
    if not provided or not vendor_user_id:
        return False
    if public_payment_token_mode() == "legacy":
        return _same(provided, vendor_user_id)

    max_age = int(current_app.config.get("PUBLIC_PAYMENT_TOKEN_MAX_AGE_SECONDS", 0) or 0) or None
    try:
        data = _payment_serializer().loads(provided, max_age=max_age)
    except SignatureExpired:
        current_app.logger.info("public_payment_token_expired", extra={"payment_id": payment_id})
        return False
    except BadSignature:
        return False
    if not isinstance(data, dict):
        return False
    return _same(str(data.get("payment_id") or ""), payment_id) and _same(
        str(data.get("vendor_user_id") or ""), vendor_user_id
    )
