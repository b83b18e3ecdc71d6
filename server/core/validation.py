import base64
import binascii
import re
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from core.errors import ValidationError

_DATA_URL = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<payload>.*)$", re.DOTALL)
_UUID = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)


def is_valid_uuid(value: Any) -> bool:
    return isinstance(value, str) and _UUID.match(value) is not None


def require_uuid(value: Any, label: str) -> str:
    if not value or not is_valid_uuid(value):
        raise ValidationError(f"Valid {label} ID is required")
    return value


def require_text(value: Optional[str], label: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{label} is required")
    return str(value).strip()


def parse_datetime(value: Any, label: str) -> datetime:
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{label} must be a valid date")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        raise ValidationError(f"{label} must be a valid date") from None
    if parsed.tzinfo is not None:
        # stored timestamps are naive UTC
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def validate_data_url(
    value: Optional[str],
    label: str,
    max_bytes: int,
    mime_prefixes: Iterable[str] = ("image/",),
) -> str:
    """Base64 data URL of an allowed type whose decoded size stays within max_bytes."""
    if not value:
        raise ValidationError(f"{label} is required")
    match = _DATA_URL.match(value.strip())
    if match is None:
        raise ValidationError(f"{label} must be a base64 data URL")
    mime = match.group("mime").lower()
    if not any(mime.startswith(prefix) for prefix in mime_prefixes):
        raise ValidationError(f"{label} has unsupported type {mime}")
    payload = re.sub(r"\s", "", match.group("payload"))
    # cheap bound before decoding
    if len(payload) * 3 // 4 > max_bytes + 3:
        raise ValidationError(f"{label} is larger than {max_bytes} bytes")
    try:
        decoded = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError(f"{label} is not valid base64") from None
    if not decoded:
        raise ValidationError(f"{label} is empty")
    if len(decoded) > max_bytes:
        raise ValidationError(f"{label} is larger than {max_bytes} bytes")
    return value.strip()
