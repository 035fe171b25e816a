"""Struct-field serializer.

A document type declares its map members as a tuple of :class:`Field`
objects. Each field carries its integer CBOR key, its JSON member name,
whether it may be omitted, and a :class:`Codec` that converts the Python
attribute value to and from the CBOR and JSON data models. The helpers at
the bottom of this module walk such a declaration to build or consume a map.
"""

from datetime import datetime, timezone
from typing import Any, Optional, Union

from . import cbor_utils, json_utils
from .cbor_utils import CBORTag
from .errors import MarshalError, ParseError


def type_name(value: Any) -> str:
    """Short type name used in error messages."""
    return type(value).__name__


def is_empty(value: Any) -> bool:
    """Report whether a value counts as absent for ``omitempty`` purposes."""
    if value is None:
        return True
    if isinstance(value, (str, bytes, bytearray, list, tuple, dict)):
        return len(value) == 0
    check = getattr(value, "is_empty", None)
    if callable(check):
        return bool(check())
    return False


class Serializable:
    """Mixin giving a type the byte/string level codec entry points.

    Subclasses implement the four data-model hooks; this class turns them
    into ``to_cbor``/``from_cbor``/``to_json``/``from_json``.
    """

    def to_cbor_data(self) -> Any:
        raise NotImplementedError

    @classmethod
    def from_cbor_data(cls, data: Any) -> Any:
        raise NotImplementedError

    def to_json_data(self) -> Any:
        raise NotImplementedError

    @classmethod
    def from_json_data(cls, data: Any) -> Any:
        raise NotImplementedError

    def valid(self) -> None:
        """Check semantic constraints, raising ``ValidationError`` on failure."""

    def to_cbor(self) -> bytes:
        """Serialize to deterministic CBOR."""
        return cbor_utils.encode(self.to_cbor_data())

    @classmethod
    def from_cbor(cls, data: bytes) -> Any:
        """Deserialize from CBOR bytes."""
        return cls.from_cbor_data(cbor_utils.decode(data))

    def to_json(self, indent: Optional[int] = None) -> str:
        """Serialize to a JSON string."""
        return json_utils.dumps(self.to_json_data(), indent=indent)

    @classmethod
    def from_json(cls, data: Union[str, bytes]) -> Any:
        """Deserialize from a JSON string."""
        return cls.from_json_data(json_utils.loads(data))


class Codec:
    """Converts a field value to and from its CBOR and JSON data forms."""

    def to_cbor(self, value: Any) -> Any:
        return value

    def from_cbor(self, data: Any) -> Any:
        return data

    def to_json(self, value: Any) -> Any:
        return value

    def from_json(self, data: Any) -> Any:
        return data


class TextCodec(Codec):
    def from_cbor(self, data: Any) -> str:
        if not isinstance(data, str):
            raise ParseError(f"expected text string, got {type_name(data)}")
        return data

    from_json = from_cbor


class UintCodec(Codec):
    def from_cbor(self, data: Any) -> int:
        if isinstance(data, bool) or not isinstance(data, int) or data < 0:
            raise ParseError(f"expected unsigned integer, got {data!r}")
        return data

    from_json = from_cbor


class IntCodec(Codec):
    def from_cbor(self, data: Any) -> int:
        if isinstance(data, bool) or not isinstance(data, int):
            raise ParseError(f"expected integer, got {type_name(data)}")
        return data

    from_json = from_cbor


class BoolCodec(Codec):
    def from_cbor(self, data: Any) -> bool:
        if not isinstance(data, bool):
            raise ParseError(f"expected boolean, got {type_name(data)}")
        return data

    from_json = from_cbor


class BytesCodec(Codec):
    """Byte strings: raw in CBOR, base64 in JSON."""

    def to_cbor(self, value: bytes) -> bytes:
        return bytes(value)

    def from_cbor(self, data: Any) -> bytes:
        if not isinstance(data, bytes):
            raise ParseError(f"expected byte string, got {type_name(data)}")
        return data

    def to_json(self, value: bytes) -> str:
        return json_utils.b64encode(value)

    def from_json(self, data: Any) -> bytes:
        return json_utils.b64decode(data)


class TimeCodec(Codec):
    """Times: tag 1 integer epoch in CBOR, RFC 3339 ``Z`` strings in JSON."""

    def to_cbor(self, value: datetime) -> CBORTag:
        if not isinstance(value, datetime):
            raise MarshalError(f"expected datetime, got {type_name(value)}")
        return CBORTag(cbor_utils.EPOCH_TIME_TAG, cbor_utils.epoch_seconds(value))

    def from_cbor(self, data: Any) -> datetime:
        # cbor2 already turns tag 1 into a datetime
        if isinstance(data, datetime):
            value = data if data.tzinfo else data.replace(tzinfo=timezone.utc)
            return value.astimezone(timezone.utc)
        if isinstance(data, CBORTag) and data.tag == cbor_utils.EPOCH_TIME_TAG:
            data = data.value
        if isinstance(data, bool) or not isinstance(data, (int, float)):
            raise ParseError(f"expected epoch time, got {type_name(data)}")
        return datetime.fromtimestamp(int(data), tz=timezone.utc)

    def to_json(self, value: datetime) -> str:
        return json_utils.format_time(value)

    def from_json(self, data: Any) -> datetime:
        return json_utils.parse_time(data)


class ListCodec(Codec):
    """Arrays of values sharing one item codec."""

    def __init__(self, item: Codec, what: str = "array"):
        self.item = item
        self.what = what

    def to_cbor(self, value: list) -> list:
        return [self.item.to_cbor(v) for v in value]

    def from_cbor(self, data: Any) -> list:
        if not isinstance(data, list):
            raise ParseError(f"expected {self.what}, got {type_name(data)}")
        result = []
        for i, entry in enumerate(data):
            try:
                result.append(self.item.from_cbor(entry))
            except ParseError as err:
                raise err.wrap(f"{self.what} entry at index {i}") from err
        return result

    def to_json(self, value: list) -> list:
        return [self.item.to_json(v) for v in value]

    def from_json(self, data: Any) -> list:
        if not isinstance(data, list):
            raise ParseError(f"expected {self.what}, got {type_name(data)}")
        result = []
        for i, entry in enumerate(data):
            try:
                result.append(self.item.from_json(entry))
            except ParseError as err:
                raise err.wrap(f"{self.what} entry at index {i}") from err
        return result


class ModelCodec(Codec):
    """Delegates to a :class:`Serializable` type."""

    def __init__(self, model: type):
        self.model = model

    def to_cbor(self, value: Any) -> Any:
        if not isinstance(value, self.model):
            raise MarshalError(f"expected {self.model.__name__}, got {type_name(value)}")
        return value.to_cbor_data()

    def from_cbor(self, data: Any) -> Any:
        return self.model.from_cbor_data(data)

    def to_json(self, value: Any) -> Any:
        if not isinstance(value, self.model):
            raise MarshalError(f"expected {self.model.__name__}, got {type_name(value)}")
        return value.to_json_data()

    def from_json(self, data: Any) -> Any:
        return self.model.from_json_data(data)


TEXT = TextCodec()
UINT = UintCodec()
INT = IntCodec()
BOOL = BoolCodec()
BYTES = BytesCodec()
TIME = TimeCodec()
RAW = Codec()


def list_of(item: Codec, what: str = "array") -> ListCodec:
    return ListCodec(item, what)


def model(cls: type) -> ModelCodec:
    return ModelCodec(cls)


class Field:
    """Declaration of one map member.

    Args:
        name: Python attribute name
        key: Integer CBOR map key
        json_name: JSON member name
        codec: Converter for the attribute value
        optional: Whether the member may be absent (``omitempty``)
    """

    __slots__ = ("name", "key", "json_name", "codec", "optional")

    def __init__(
        self,
        name: str,
        key: int,
        json_name: str,
        codec: Codec = RAW,
        optional: bool = True,
    ):
        self.name = name
        self.key = key
        self.json_name = json_name
        self.codec = codec
        self.optional = optional

    def __repr__(self) -> str:
        return f"Field({self.name!r}, {self.key}, {self.json_name!r})"

    def missing(self) -> str:
        return f'missing mandatory field "{self.json_name}" ({self.key})'


def put_unique(out: dict, key: Any, value: Any, kind: str = "cbor") -> None:
    """Insert into a map under construction, refusing duplicate keys."""
    if key in out:
        raise MarshalError(f"duplicate {kind} key {key!r}")
    out[key] = value


def encode_cbor_fields(obj: Any, fields: tuple, out: dict) -> None:
    """Add the CBOR form of each declared field of ``obj`` to ``out``."""
    for field in fields:
        value = getattr(obj, field.name, None)
        if value is None or (field.optional and is_empty(value)):
            if not field.optional:
                raise MarshalError(field.missing())
            continue
        try:
            put_unique(out, field.key, field.codec.to_cbor(value))
        except MarshalError as err:
            raise err.wrap(f'field "{field.json_name}"') from err


def encode_json_fields(obj: Any, fields: tuple, out: dict) -> None:
    """Add the JSON form of each declared field of ``obj`` to ``out``."""
    for field in fields:
        value = getattr(obj, field.name, None)
        if value is None or (field.optional and is_empty(value)):
            if not field.optional:
                raise MarshalError(field.missing())
            continue
        try:
            put_unique(out, field.json_name, field.codec.to_json(value), "json")
        except MarshalError as err:
            raise err.wrap(f'field "{field.json_name}"') from err


def decode_cbor_fields(obj: Any, fields: tuple, data: dict) -> None:
    """Consume declared keys from ``data`` and set them on ``obj``.

    Consumed entries are removed from ``data``; whatever is left over is
    unknown to this declaration.
    """
    for field in fields:
        if field.key not in data:
            if not field.optional:
                raise ParseError(field.missing())
            continue
        raw = data.pop(field.key)
        try:
            setattr(obj, field.name, field.codec.from_cbor(raw))
        except ParseError as err:
            raise err.wrap(f'field "{field.json_name}"') from err


def decode_json_fields(obj: Any, fields: tuple, data: dict) -> None:
    """JSON counterpart of :func:`decode_cbor_fields`."""
    for field in fields:
        if field.json_name not in data:
            if not field.optional:
                raise ParseError(field.missing())
            continue
        raw = data.pop(field.json_name)
        try:
            setattr(obj, field.name, field.codec.from_json(raw))
        except ParseError as err:
            raise err.wrap(f'field "{field.json_name}"') from err


def expect_map(data: Any, what: str) -> dict:
    if not isinstance(data, dict):
        raise ParseError(f"expected map for {what}, got {type_name(data)}")
    return dict(data)


def expect_array(data: Any, what: str, length: Optional[int] = None) -> list:
    if not isinstance(data, list):
        raise ParseError(f"expected array for {what}, got {type_name(data)}")
    if length is not None and len(data) != length:
        raise ParseError(f"expected {length} elements for {what}, got {len(data)}")
    return data
