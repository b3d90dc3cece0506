from __future__ import annotations

import math
from typing import Any, Iterable, List

from portal.domain.clock import now_iso, parse_timestamp
from portal.errors import ValidationError


def _invalid(code: str, **payload: Any) -> ValidationError:
    return ValidationError(code=code, message_key=code, payload=payload or None)


def require_text(value: Any, field: str, *, code: str | None = None) -> str:
    text = str(value or "").strip()
    if not text:
        raise _invalid(code or "field_required", field=field)
    return text


def optional_text(value: Any) -> str | None:
    text = str(value or "").strip()
    return text or None


def require_choice(value: Any, choices: Iterable[str], code: str) -> str:
    text = str(value or "").strip()
    if text not in tuple(choices):
        raise _invalid(code)
    return text


def positive_amount(value: Any, code: str = "amount_invalid") -> float:
    try:
        amount = float(value)
    except (TypeError, ValueError):
        raise _invalid(code) from None
    if not math.isfinite(amount) or amount <= 0:
        raise _invalid(code)
    return amount


def score_value(value: Any) -> float:
    """0-100 inclusive, rounded to one decimal."""
    if isinstance(value, bool):
        raise _invalid("score_invalid")
    try:
        score = float(value)
    except (TypeError, ValueError):
        raise _invalid("score_invalid") from None
    if score != score or score < 0 or score > 100:
        raise _invalid("score_invalid")
    return round(score, 1)


def future_timestamp(value: Any) -> str:
    parsed = parse_timestamp(value)
    if parsed is None:
        raise _invalid("deadline_invalid")
    if parsed <= parse_timestamp(now_iso()):
        raise _invalid("deadline_invalid")
    return parsed.isoformat().replace("+00:00", "Z")


def parse_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in {"1", "true", "yes", "on"}


def normalize_documents(raw: Any, allowed_types: Iterable[str] | None = None) -> List[dict]:
    if raw in (None, ""):
        return []
    if not isinstance(raw, list):
        raise _invalid("documents_invalid")
    allowed = tuple(allowed_types) if allowed_types is not None else None
    documents: List[dict] = []
    for item in raw:
        if not isinstance(item, dict):
            raise _invalid("documents_invalid")
        name = str(item.get("name") or "").strip()
        url = str(item.get("url") or "").strip()
        doc_type = str(item.get("type") or ("other" if allowed else "")).strip()
        if not name or not url:
            raise _invalid("documents_invalid")
        if allowed is not None and doc_type not in allowed:
            raise _invalid("documents_invalid")
        # verified_at is stamped server side only.
        documents.append({"name": name, "type": doc_type, "url": url, "uploaded_at": item.get("uploaded_at") or now_iso()})
    return documents


def bounded_int(value: Any, *, default: int, min_value: int, max_value: int) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return max(min_value, min(max_value, parsed))
