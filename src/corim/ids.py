"""Identifier value types shared across CoRIM, CoMID and CoEv.

These are the building blocks of most tagged choices: tagged URIs, UUIDs,
OIDs, UEIDs, tagged bytes and integers, plus the profile and tag
identifiers that are not choices in their own right.
"""

import re
import uuid
from typing import Any, Union
from urllib.parse import urlparse

from . import json_utils
from .cbor_utils import OID_TAG, URI_TAG, UUID_TAG, CBORTag, register_tag
from .choice import ChoiceValue
from .encoding import Codec, Serializable, type_name
from .errors import MarshalError, ParseError, ValidationError

# UEID type bytes (EAT)
UEID_TYPE_RAND = 0x01
UEID_TYPE_EUI = 0x02
UEID_TYPE_IMEI = 0x03


def check_absolute_uri(value: Any) -> None:
    """Raise ValidationError unless ``value`` is a non-empty absolute URI."""
    if not isinstance(value, str) or not value:
        raise ValidationError("empty URI")
    parsed = urlparse(value)
    if not parsed.scheme:
        raise ValidationError(f"invalid URI {value!r}: not absolute")


class TaggedURI(ChoiceValue):
    """URI carried under CBOR tag 32."""

    type_name = "uri"
    cbor_tag = URI_TAG

    def valid(self) -> None:
        check_absolute_uri(self.value)

    @classmethod
    def from_cbor_inner(cls, inner: Any) -> "TaggedURI":
        if not isinstance(inner, str):
            raise ParseError(f"expected text string for URI, got {type_name(inner)}")
        return cls(inner)

    from_json_value = from_cbor_inner


register_tag(URI_TAG, TaggedURI)


class URICodec(Codec):
    """Field codec for tagged-URI members: tag 32 in CBOR, bare string in JSON."""

    def to_cbor(self, value: Any) -> CBORTag:
        return CBORTag(URI_TAG, _uri_text(value))

    def from_cbor(self, data: Any) -> TaggedURI:
        if isinstance(data, CBORTag):
            if data.tag != URI_TAG:
                raise ParseError(f"expected CBOR tag {URI_TAG} for URI, got {data.tag}")
            data = data.value
        return TaggedURI.from_cbor_inner(data)

    def to_json(self, value: Any) -> str:
        return _uri_text(value)

    def from_json(self, data: Any) -> TaggedURI:
        return TaggedURI.from_cbor_inner(data)


def _uri_text(value: Any) -> str:
    if isinstance(value, TaggedURI):
        return value.value
    if isinstance(value, str):
        return value
    raise MarshalError(f"expected URI, got {type_name(value)}")


def _uuid_bytes(value: Any) -> bytes:
    if isinstance(value, uuid.UUID):
        return value.bytes
    if isinstance(value, str):
        try:
            return uuid.UUID(value).bytes
        except ValueError as exc:
            raise ParseError(f"bad UUID {value!r}: {exc}") from exc
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    raise ParseError(f"unexpected type for UUID: {type_name(value)}")


class TaggedUUID(ChoiceValue):
    """RFC 4122 UUID carried under CBOR tag 37; JSON uses the canonical string."""

    type_name = "uuid"
    cbor_tag = UUID_TAG

    def __init__(self, value: Any):
        super().__init__(_uuid_bytes(value))

    def valid(self) -> None:
        if len(self.value) != 16:
            raise ValidationError(f"invalid UUID: expected 16 bytes, got {len(self.value)}")

    @property
    def uuid(self) -> uuid.UUID:
        return uuid.UUID(bytes=self.value)

    def json_value(self) -> str:
        return str(self.uuid)

    @classmethod
    def from_json_value(cls, value: Any) -> "TaggedUUID":
        if not isinstance(value, str):
            raise ParseError(f"expected UUID string, got {type_name(value)}")
        return cls(value)


class UUIDCodec(Codec):
    """Untagged UUID members (e.g. the ``uuid`` measurement value)."""

    def to_cbor(self, value: Any) -> bytes:
        return _as_uuid(value).value

    def from_cbor(self, data: Any) -> TaggedUUID:
        if not isinstance(data, bytes) or len(data) != 16:
            raise ParseError("expected 16-byte UUID")
        return TaggedUUID(data)

    def to_json(self, value: Any) -> str:
        return _as_uuid(value).json_value()

    def from_json(self, data: Any) -> TaggedUUID:
        return TaggedUUID.from_json_value(data)


def _as_uuid(value: Any) -> TaggedUUID:
    return value if isinstance(value, TaggedUUID) else TaggedUUID(value)


def oid_to_der(dotted: str) -> bytes:
    """Encode a dotted-decimal OID to its BER content octets."""
    try:
        arcs = [int(arc) for arc in dotted.split(".")]
    except ValueError as exc:
        raise ValidationError(f"invalid OID {dotted!r}") from exc
    if len(arcs) < 2 or arcs[0] > 2 or (arcs[0] < 2 and arcs[1] >= 40) or min(arcs) < 0:
        raise ValidationError(f"invalid OID {dotted!r}")
    out = bytearray()
    for arc in [arcs[0] * 40 + arcs[1]] + arcs[2:]:
        chunk = [arc & 0x7F]
        arc >>= 7
        while arc:
            chunk.append(0x80 | (arc & 0x7F))
            arc >>= 7
        out.extend(reversed(chunk))
    return bytes(out)


def oid_from_der(data: bytes) -> str:
    """Decode BER OID content octets to dotted-decimal form."""
    if not data or data[-1] & 0x80:
        raise ParseError("truncated OID encoding")
    arcs = []
    current = 0
    for byte in data:
        current = (current << 7) | (byte & 0x7F)
        if not byte & 0x80:
            arcs.append(current)
            current = 0
    first = arcs[0]
    head = [min(first // 40, 2), first - 40 * min(first // 40, 2)]
    return ".".join(str(arc) for arc in head + arcs[1:])


_DOTTED = re.compile(r"^[0-9]+(\.[0-9]+)+$")


class OID(ChoiceValue):
    """Object identifier under CBOR tag 111; the value is the dotted string."""

    type_name = "oid"
    cbor_tag = OID_TAG

    def valid(self) -> None:
        if not isinstance(self.value, str) or not _DOTTED.match(self.value):
            raise ValidationError(f"invalid OID {self.value!r}")
        oid_to_der(self.value)

    def cbor_inner(self) -> bytes:
        return oid_to_der(self.value)

    @classmethod
    def from_cbor_inner(cls, inner: Any) -> "OID":
        if not isinstance(inner, bytes):
            raise ParseError(f"expected byte string for OID, got {type_name(inner)}")
        return cls(oid_from_der(inner))

    @classmethod
    def from_json_value(cls, value: Any) -> "OID":
        if not isinstance(value, str):
            raise ParseError(f"expected dotted OID string, got {type_name(value)}")
        return cls(value)


class BytesValue(ChoiceValue):
    """Common behaviour for byte-string variants (base64 in JSON)."""

    def __init__(self, value: Any):
        if isinstance(value, (bytearray, memoryview)):
            value = bytes(value)
        super().__init__(value)

    def valid(self) -> None:
        if not isinstance(self.value, bytes) or len(self.value) == 0:
            raise ValidationError(f"empty {self.type_name}")

    @classmethod
    def from_cbor_inner(cls, inner: Any) -> "BytesValue":
        if not isinstance(inner, bytes):
            raise ParseError(f"expected byte string for {cls.type_name}, got {type_name(inner)}")
        return cls(inner)

    def json_value(self) -> str:
        return json_utils.b64encode(self.value)

    @classmethod
    def from_json_value(cls, value: Any) -> "BytesValue":
        return cls(json_utils.b64decode(value, cls.type_name))

    @classmethod
    def factory(cls, value: Any) -> "BytesValue":
        if isinstance(value, str):
            return cls.from_json_value(value)
        return cls(value)


def check_ueid(value: bytes) -> None:
    """Check the EAT UEID shape rules."""
    if not value:
        raise ValidationError("empty UEID")
    kind = value[0]
    if kind == UEID_TYPE_RAND:
        if len(value) not in (17, 24, 33):
            raise ValidationError(f"invalid RAND UEID length {len(value)}")
    elif kind == UEID_TYPE_EUI:
        if len(value) != 7:
            raise ValidationError(f"invalid EUI UEID length {len(value)}")
    elif kind == UEID_TYPE_IMEI:
        if len(value) != 9:
            raise ValidationError(f"invalid IMEI UEID length {len(value)}")
    else:
        raise ValidationError(f"unknown UEID type 0x{kind:02x}")


class UEID(BytesValue):
    """Universal Entity ID under CBOR tag 550."""

    type_name = "ueid"
    cbor_tag = 550

    def valid(self) -> None:
        super().valid()
        try:
            check_ueid(self.value)
        except ValidationError as err:
            raise ValidationError(f"UEID validation failed: {err}") from err


class UEIDCodec(Codec):
    """Untagged UEID members."""

    def to_cbor(self, value: Any) -> bytes:
        return value.value if isinstance(value, UEID) else bytes(value)

    def from_cbor(self, data: Any) -> UEID:
        return UEID.from_cbor_inner(data)

    def to_json(self, value: Any) -> str:
        return json_utils.b64encode(self.to_cbor(value))

    def from_json(self, data: Any) -> UEID:
        return UEID(json_utils.b64decode(data, "ueid"))


class TaggedBytes(BytesValue):
    """Opaque bytes under CBOR tag 560."""

    type_name = "bytes"
    cbor_tag = 560


class TaggedInt(ChoiceValue):
    """Integer under CBOR tag 551."""

    type_name = "int"
    cbor_tag = 551

    def valid(self) -> None:
        if isinstance(self.value, bool) or not isinstance(self.value, int):
            raise ValidationError(f"expected integer, got {type_name(self.value)}")

    @classmethod
    def from_cbor_inner(cls, inner: Any) -> "TaggedInt":
        if isinstance(inner, bool) or not isinstance(inner, int):
            raise ParseError(f"expected integer, got {type_name(inner)}")
        return cls(inner)

    from_json_value = from_cbor_inner


def is_uint(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


class UintValue(ChoiceValue):
    """Untagged unsigned integer variant."""

    type_name = "uint"

    def valid(self) -> None:
        if not is_uint(self.value):
            raise ValidationError(f"expected unsigned integer, got {self.value!r}")

    @classmethod
    def matches_untagged(cls, data: Any) -> bool:
        return is_uint(data)

    @classmethod
    def from_cbor_inner(cls, inner: Any) -> "UintValue":
        if not is_uint(inner):
            raise ParseError(f"expected unsigned integer, got {inner!r}")
        return cls(inner)

    from_json_value = from_cbor_inner


class TextValue(ChoiceValue):
    """Untagged text string variant."""

    type_name = "string"

    def valid(self) -> None:
        if not isinstance(self.value, str) or not self.value:
            raise ValidationError("empty string")

    @classmethod
    def matches_untagged(cls, data: Any) -> bool:
        return isinstance(data, str)

    @classmethod
    def from_cbor_inner(cls, inner: Any) -> "TextValue":
        if not isinstance(inner, str):
            raise ParseError(f"expected text string, got {type_name(inner)}")
        return cls(inner)

    from_json_value = from_cbor_inner


class ProfileID(Serializable):
    """EAT profile identifier: an absolute URI or an OID.

    URIs are carried as text strings, OIDs under tag 111. The string form
    (URI or dotted OID) is the key used by the profile registry.
    """

    def __init__(self, value: Union[str, "ProfileID"]):
        if isinstance(value, ProfileID):
            value = value.value
        if not isinstance(value, str) or not value:
            raise ValidationError("empty profile identifier")
        self.value = value
        self.is_oid = bool(_DOTTED.match(value))
        if self.is_oid:
            oid_to_der(value)
        else:
            check_absolute_uri(value)

    @property
    def is_uri(self) -> bool:
        return not self.is_oid

    def __str__(self) -> str:
        return self.value

    def __repr__(self) -> str:
        return f"ProfileID({self.value!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ProfileID):
            return self.value == other.value
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.value)

    def to_cbor_data(self) -> Any:
        if self.is_oid:
            return CBORTag(OID_TAG, oid_to_der(self.value))
        return self.value

    @classmethod
    def from_cbor_data(cls, data: Any) -> "ProfileID":
        if isinstance(data, CBORTag) and data.tag in (OID_TAG, URI_TAG):
            data = data.value
        if isinstance(data, bytes):
            data = oid_from_der(data)
        if not isinstance(data, str):
            raise ParseError(f"unexpected type for profile: {type_name(data)}")
        try:
            return cls(data)
        except ValidationError as err:
            raise ParseError(str(err), "profile") from err

    def to_json_data(self) -> str:
        return self.value

    @classmethod
    def from_json_data(cls, data: Any) -> "ProfileID":
        if not isinstance(data, str):
            raise ParseError(f"unexpected type for profile: {type_name(data)}")
        try:
            return cls(data)
        except ValidationError as err:
            raise ParseError(str(err), "profile") from err


class TagID(Serializable):
    """Tag identifier: a text string or a 16-byte UUID.

    JSON renders the text form as a bare string and the UUID form as a
    ``{"type": "uuid", "value": ...}`` envelope.
    """

    def __init__(self, value: Union[str, bytes, uuid.UUID, "TagID"]):
        if isinstance(value, TagID):
            value = value.value
        if isinstance(value, uuid.UUID):
            value = value.bytes
        self.value = value

    def __eq__(self, other: object) -> bool:
        if isinstance(other, TagID):
            return self.value == other.value
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.value)

    def __repr__(self) -> str:
        return f"TagID({self.value!r})"

    def __str__(self) -> str:
        if isinstance(self.value, bytes) and len(self.value) == 16:
            return str(uuid.UUID(bytes=self.value))
        return str(self.value)

    def is_empty(self) -> bool:
        return not self.value

    def valid(self) -> None:
        if isinstance(self.value, str):
            if not self.value:
                raise ValidationError("empty tag-id")
        elif isinstance(self.value, bytes):
            if len(self.value) != 16:
                raise ValidationError(f"tag-id UUID must be 16 bytes, got {len(self.value)}")
        else:
            raise ValidationError(f"unexpected type for tag-id: {type_name(self.value)}")

    def to_cbor_data(self) -> Any:
        return self.value

    @classmethod
    def from_cbor_data(cls, data: Any) -> "TagID":
        if isinstance(data, CBORTag) and data.tag == UUID_TAG:
            data = data.value
        if not isinstance(data, (str, bytes)):
            raise ParseError(f"unexpected type for tag-id: {type_name(data)}")
        return cls(data)

    def to_json_data(self) -> Any:
        if isinstance(self.value, bytes):
            if len(self.value) != 16:
                raise MarshalError(f"tag-id UUID must be 16 bytes, got {len(self.value)}")
            return json_utils.type_and_value("uuid", str(uuid.UUID(bytes=self.value)))
        if not isinstance(self.value, str):
            raise MarshalError(f"unexpected type for tag-id: {type_name(self.value)}")
        return self.value

    @classmethod
    def from_json_data(cls, data: Any) -> "TagID":
        if isinstance(data, str):
            return cls(data)
        found, value = json_utils.split_type_and_value(data, "tag-id")
        if found != "uuid":
            raise ParseError(f'unknown tag-id type "{found}"')
        return cls(_uuid_bytes(value))
