"""JSON helpers: the ``{type, value}`` envelope, base64 and RFC 3339 times."""

import base64
import binascii
import json
from datetime import datetime, timezone
from typing import Any, Optional, Union

from .errors import MarshalError, ParseError


def dumps(obj: Any, indent: Optional[int] = None) -> str:
    """Serialize JSON data to a string."""
    try:
        return json.dumps(obj, indent=indent)
    except (TypeError, ValueError) as exc:
        raise MarshalError(f"JSON encoding failed: {exc}") from exc


def loads(data: Union[str, bytes]) -> Any:
    """Parse a JSON document."""
    try:
        return json.loads(data)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ParseError(f"JSON decoding failed: {exc}") from exc


def b64encode(data: bytes) -> str:
    """Encode bytes with standard, padded base64."""
    return base64.b64encode(data).decode("ascii")


def b64decode(text: Any, what: str = "value") -> bytes:
    """Decode standard or URL-safe base64, with or without padding.

    Raises:
        ParseError: If ``text`` is not a string or not valid base64
    """
    if not isinstance(text, str):
        raise ParseError(f"expected base64 string for {what}, got {type(text).__name__}")
    padded = text + "=" * (-len(text) % 4)
    try:
        if "-" in text or "_" in text:
            return base64.urlsafe_b64decode(padded)
        return base64.b64decode(padded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ParseError(f"invalid base64 for {what}: {exc}") from exc


def format_time(value: datetime) -> str:
    """Format a datetime as an RFC 3339 string in the ``Z`` timezone."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_time(text: Any) -> datetime:
    """Parse an RFC 3339 timestamp into an aware UTC datetime."""
    if not isinstance(text, str):
        raise ParseError(f"expected RFC 3339 time string, got {type(text).__name__}")
    candidate = text[:-1] + "+00:00" if text.endswith(("Z", "z")) else text
    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError as exc:
        raise ParseError(f"invalid time {text!r}: {exc}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def type_and_value(type_name: str, value: Any) -> dict[str, Any]:
    """Build the ``{"type": ..., "value": ...}`` envelope."""
    return {"type": type_name, "value": value}


def split_type_and_value(data: Any, what: str) -> tuple[str, Any]:
    """Unpack a ``{type, value}`` envelope.

    Args:
        data: Decoded JSON value
        what: Name of the choice being decoded, for error messages

    Returns:
        Tuple of (type name, value)

    Raises:
        ParseError: If the envelope is malformed
    """
    if not isinstance(data, dict):
        raise ParseError(f"expected {{type, value}} object for {what}, got {type(data).__name__}")
    type_name = data.get("type")
    if not type_name:
        raise ParseError("type not set", what)
    if not isinstance(type_name, str):
        raise ParseError(f"type must be a string, got {type(type_name).__name__}", what)
    if "value" not in data:
        raise ParseError(f"no value provided for {type_name}", what)
    return type_name, data["value"]


def is_json_native(obj: Any) -> bool:
    """Report whether ``obj`` has the same value in the JSON and CBOR data models.

    Byte strings, tags, times, floats and maps with non-text keys do not, and
    field-cached entries holding them are rendered as a CBOR envelope instead.
    """
    if obj is None or isinstance(obj, (str, bool, int)):
        return True
    if isinstance(obj, list):
        return all(is_json_native(item) for item in obj)
    if isinstance(obj, dict):
        return all(isinstance(k, str) and is_json_native(v) for k, v in obj.items())
    return False
