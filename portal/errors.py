from __future__ import annotations

import re
from typing import Any, Dict

from portal.ui_strings import error_message


class AppError(Exception):
    default_code = "system_error"
    default_message_key = "unexpected_error"
    default_http_status = 500
    default_critical = True

    def __init__(
        self,
        code: str | None = None,
        message_key: str | None = None,
        http_status: int | None = None,
        critical: bool | None = None,
        details: str | None = None,
        payload: Dict[str, Any] | None = None,
    ) -> None:
        self.code = (code or self.default_code).strip()
        self.message_key = (message_key or code or self.default_message_key).strip()
        self.http_status = int(http_status or self.default_http_status)
        self.critical = bool(self.default_critical if critical is None else critical)
        self.details = (details or "").strip() or None
        self.payload = dict(payload or {})
        super().__init__(self.details or self.code)

    def user_message(self) -> str:
        fallback = error_message("unexpected_error", "The operation could not be completed.")
        return error_message(self.message_key, fallback)

    def to_response_payload(self, request_id: str) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "error": self.code,
            "message": self.user_message(),
            "request_id": request_id,
        }
        if self.payload:
            payload.update(self.payload)
        return payload


class UserActionError(AppError):
    default_code = "action_invalid"
    default_message_key = "action_invalid"
    default_http_status = 400
    default_critical = False


class ValidationError(UserActionError):
    default_code = "validation_error"
    default_message_key = "validation_error"
    default_http_status = 400
    default_critical = False


class AuthorizationError(UserActionError):
    """Role, state, ownership or deadline precondition not met. Never retried."""

    default_code = "permission_denied"
    default_message_key = "permission_denied"
    default_http_status = 403
    default_critical = False

    def __init__(self, reason: str = "role_mismatch", **kwargs) -> None:
        payload = dict(kwargs.pop("payload", None) or {})
        payload.setdefault("reason", reason)
        kwargs.setdefault("message_key", f"denied_{reason}")
        super().__init__(payload=payload, **kwargs)
        self.reason = reason


class NotFoundError(UserActionError):
    default_code = "not_found"
    default_message_key = "not_found"
    default_http_status = 404
    default_critical = False


class ConflictError(UserActionError):
    """Uniqueness violation or stale state; surfaced as already exists / state changed."""

    default_code = "conflict"
    default_message_key = "state_changed"
    default_http_status = 409
    default_critical = False


class UpstreamUnavailable(AppError):
    default_code = "upstream_unavailable"
    default_message_key = "upstream_unavailable"
    default_http_status = 503
    default_critical = False


class SystemError(AppError):
    default_code = "system_error"
    default_message_key = "unexpected_error"
    default_http_status = 500
    default_critical = True


_TRANSIENT_MARKERS = (
    "database is locked",
    "server closed the connection",
    "could not connect",
    "connection refused",
    "timeout",
    "too many connections",
)
_HTTP_CODE_PATTERN = re.compile(r"http\s+(\d{3})", re.IGNORECASE)


def is_transient_failure(details: str | None) -> bool:
    normalized = (details or "").strip().lower()
    code_match = _HTTP_CODE_PATTERN.search(normalized)
    if code_match:
        http_code = int(code_match.group(1))
        return http_code in {408, 429} or http_code >= 500
    return any(marker in normalized for marker in _TRANSIENT_MARKERS)
