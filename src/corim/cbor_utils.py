"""CBOR utilities module.

This module provides a unified interface for CBOR operations, isolating the
underlying CBOR library implementation. Everything the package writes goes
through :func:`encode`, which applies the deterministic encoding rules used
for CoRIM:

- map keys are sorted by the bytewise order of their own CBOR encodings
  (so ``0, 8, -1, -3`` rather than numeric order),
- only definite lengths are produced,
- time values are emitted as tag 1 with an integer epoch.

Decoding tolerates indefinite lengths and out-of-order keys but rejects
duplicate keys inside a map.

Currently uses cbor2 as the underlying implementation.
"""

import logging
import threading
import uuid
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Optional, Union

import cbor2

from .errors import MarshalError, ParseError, RegistrationError

logger = logging.getLogger(__name__)

# Type aliases for CBOR special values
CBORTag = cbor2.CBORTag
CBORDecodeError = cbor2.CBORDecodeError


def encode(obj: Any) -> bytes:
    """Encode an object to deterministic CBOR bytes.

    Args:
        obj: The object to encode (CBOR data model values, ``CBORTag``,
            ``datetime``)

    Returns:
        CBOR-encoded bytes

    Raises:
        MarshalError: If the object cannot be represented in CBOR
    """
    try:
        return cbor2.dumps(_deterministic(obj))
    except MarshalError:
        raise
    except (cbor2.CBOREncodeError, TypeError, ValueError) as exc:
        raise MarshalError(f"CBOR encoding failed: {exc}") from exc


def decode(data: bytes) -> Any:
    """Decode CBOR bytes to an object.

    Tag 37 (UUID) values are handed back as ``CBORTag`` objects rather than
    ``uuid.UUID`` so that every tagged choice is dispatched uniformly.

    Args:
        data: CBOR-encoded bytes

    Returns:
        The decoded object

    Raises:
        ParseError: If the data is not valid CBOR or a map repeats a key
    """
    if not isinstance(data, (bytes, bytearray, memoryview)):
        raise ParseError(f"expected CBOR bytes, got {type(data).__name__}")
    if len(data) == 0:
        raise ParseError("empty CBOR input")
    try:
        decoded = cbor2.loads(data, allow_duplicate_keys=False)
    except (CBORDecodeError, ValueError, TypeError) as exc:
        raise ParseError(f"CBOR decoding failed: {exc}") from exc
    return normalize(decoded)


def _sort_key(key: Any) -> bytes:
    try:
        return cbor2.dumps(key)
    except (cbor2.CBOREncodeError, TypeError, ValueError) as exc:
        raise MarshalError(f"unsupported map key {key!r}: {exc}") from exc


def _deterministic(obj: Any) -> Any:
    if isinstance(obj, dict):
        items = [(_deterministic(k), _deterministic(v)) for k, v in obj.items()]
        items.sort(key=lambda item: _sort_key(item[0]))
        return dict(items)
    if isinstance(obj, (list, tuple)):
        return [_deterministic(item) for item in obj]
    if isinstance(obj, CBORTag):
        return CBORTag(obj.tag, _deterministic(obj.value))
    if isinstance(obj, datetime):
        return CBORTag(1, epoch_seconds(obj))
    if isinstance(obj, uuid.UUID):
        return CBORTag(37, obj.bytes)
    if isinstance(obj, bytearray):
        return bytes(obj)
    return obj


def normalize(obj: Any) -> Any:
    """Rebuild decoded CBOR as plain mutable containers.

    cbor2 hands back the contents of tags (and map keys) as immutable
    ``frozendict`` and ``tuple`` values. Everything past the kernel expects
    ``dict`` and ``list``, so maps and arrays are rebuilt recursively. Map keys
    keep their hashable form.
    """
    if isinstance(obj, Mapping):
        return {_normalize_key(k): normalize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [normalize(item) for item in obj]
    if isinstance(obj, CBORTag):
        return CBORTag(obj.tag, normalize(obj.value))
    if isinstance(obj, uuid.UUID):
        return CBORTag(37, obj.bytes)
    return obj


def _normalize_key(key: Any) -> Any:
    if isinstance(key, uuid.UUID):
        return CBORTag(37, key.bytes)
    return key


def epoch_seconds(value: datetime) -> int:
    """Return the integer epoch of a datetime (naive values are taken as UTC)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp())


def create_tag(tag: int, value: Any) -> CBORTag:
    """Create a CBOR tag.

    Args:
        tag: The tag number
        value: The tagged value

    Returns:
        A CBOR tag object
    """
    return CBORTag(tag, value)


def is_tag(obj: Any, tag_number: Union[int, None] = None) -> bool:
    """Check if an object is a CBOR tag.

    Args:
        obj: The object to check
        tag_number: Optional specific tag number to check for

    Returns:
        True if the object is a CBOR tag (and matches tag_number if specified)
    """
    if not isinstance(obj, CBORTag):
        return False
    if tag_number is not None:
        return obj.tag == tag_number
    return True


def get_tag_number(obj: CBORTag) -> int:
    """Get the tag number from a CBOR tag."""
    return obj.tag


def get_tag_value(obj: CBORTag) -> Any:
    """Get the tagged value from a CBOR tag."""
    return obj.value


def encode_tagged(tag: int, obj: Any) -> bytes:
    """Encode ``obj`` wrapped in CBOR tag ``tag``."""
    return encode(CBORTag(tag, obj))


def decode_tagged(data: bytes, tag: int, what: str) -> Any:
    """Decode CBOR bytes that must start with tag ``tag``.

    Args:
        data: CBOR-encoded bytes
        tag: Expected outer tag number
        what: Human readable name of the expected document, for errors

    Returns:
        The tagged content

    Raises:
        ParseError: If the bytes are not valid CBOR or carry a different tag
    """
    if len(data) < 3:
        raise ParseError(f"input CBOR data too short for {what}")
    decoded = decode(data)
    if not is_tag(decoded, tag):
        raise ParseError(f"did not see {what} tag {tag}")
    return decoded.value


# Process-wide association between tag numbers and the types they carry.
_tag_registry: dict[int, type] = {}
_tag_lock = threading.Lock()


def register_tag(number: int, value_type: type) -> None:
    """Associate a CBOR tag number with the type that it carries.

    Registering the same (number, type) pair again is a no-op.

    Args:
        number: CBOR tag number
        value_type: Type that is encoded under this tag

    Raises:
        RegistrationError: If the tag is already registered for another type
    """
    with _tag_lock:
        existing = _tag_registry.get(number)
        if existing is value_type:
            return
        if existing is not None:
            raise RegistrationError(f"tag {number} is already registered")
        _tag_registry[number] = value_type
    logger.debug("registered CBOR tag %d for %s", number, value_type.__name__)


def registered_tag_type(number: int) -> Optional[type]:
    """Return the type registered for a tag number, if any."""
    with _tag_lock:
        return _tag_registry.get(number)


# Constants for commonly used tags
EPOCH_TIME_TAG = 1
COSE_SIGN1_TAG = 18
URI_TAG = 32
UUID_TAG = 37
OID_TAG = 111
LEGACY_CORIM_TAG = 500
UNSIGNED_CORIM_TAG = 501
LEGACY_SIGNED_CORIM_TAG = 502
COSWID_TAG = 505
COMID_TAG = 506
COTS_TAG = 508
CONCISE_EVIDENCE_TAG = 571
