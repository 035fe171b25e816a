"""Digests and the named-information hash algorithm table."""

from typing import Any, Union

from . import json_utils
from .encoding import Codec, Serializable, expect_array, type_name
from .errors import MarshalError, ParseError, ValidationError

# IANA "Named Information Hash Algorithm Registry": id -> (name, digest size)
HASH_ALGORITHMS: dict[int, tuple[str, int]] = {
    1: ("sha-256", 32),
    2: ("sha-256-128", 16),
    3: ("sha-256-120", 15),
    4: ("sha-256-96", 12),
    5: ("sha-256-64", 8),
    6: ("sha-256-32", 4),
    7: ("sha-384", 48),
    8: ("sha-512", 64),
    9: ("sha3-224", 28),
    10: ("sha3-256", 32),
    11: ("sha3-384", 48),
    12: ("sha3-512", 64),
}

_BY_NAME = {name: alg_id for alg_id, (name, _) in HASH_ALGORITHMS.items()}

SHA256 = 1
SHA384 = 7
SHA512 = 8


def algorithm_id(alg: Union[int, str]) -> int:
    """Resolve a hash algorithm name or id to its registered integer id.

    Raises:
        ValidationError: If the algorithm is not registered
    """
    if isinstance(alg, str):
        if alg not in _BY_NAME:
            raise ValidationError(f"unknown hash algorithm {alg}")
        return _BY_NAME[alg]
    if isinstance(alg, bool) or not isinstance(alg, int) or alg not in HASH_ALGORITHMS:
        raise ValidationError(f"unknown hash algorithm {alg}")
    return alg


class HashEntry(Serializable):
    """A ``[alg-id, hash-value]`` pair.

    Args:
        alg_id: Registered algorithm id or name (e.g. ``1`` or ``"sha-256"``)
        value: Raw digest bytes
    """

    def __init__(self, alg_id: Union[int, str] = 0, value: bytes = b""):
        # known names are stored as their registered id; unknown ones fail in valid()
        self.alg_id = _BY_NAME.get(alg_id, alg_id) if isinstance(alg_id, str) else alg_id
        self.value = bytes(value)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, HashEntry):
            return NotImplemented
        return self.alg_id == other.alg_id and self.value == other.value

    def __hash__(self) -> int:
        return hash((self.alg_id, self.value))

    def __repr__(self) -> str:
        return f"HashEntry({self.alg_id!r}, {self.value.hex()})"

    @property
    def algorithm_name(self) -> str:
        return HASH_ALGORITHMS[algorithm_id(self.alg_id)][0]

    def valid(self) -> None:
        alg = algorithm_id(self.alg_id)
        want = HASH_ALGORITHMS[alg][1]
        if len(self.value) != want:
            raise ValidationError(
                f"length mismatch for hash algorithm {HASH_ALGORITHMS[alg][0]}: "
                f"want {want} bytes, got {len(self.value)}"
            )

    def to_cbor_data(self) -> list:
        return [self.alg_id, self.value]

    @classmethod
    def from_cbor_data(cls, data: Any) -> "HashEntry":
        alg, value = expect_array(data, "hash entry", 2)
        if isinstance(alg, bool) or not isinstance(alg, (int, str)):
            raise ParseError(f"unexpected type for hash algorithm: {type_name(alg)}")
        if not isinstance(value, bytes):
            raise ParseError(f"expected byte string for hash value, got {type_name(value)}")
        return cls(alg, value)

    def to_text(self, separator: str = ";") -> str:
        """Render as ``"<alg-name><separator><base64>"``.

        Raises:
            MarshalError: If the algorithm is not registered
        """
        try:
            name = self.algorithm_name
        except ValidationError as err:
            raise MarshalError(str(err)) from err
        return f"{name}{separator}{json_utils.b64encode(self.value)}"

    @classmethod
    def from_text(cls, text: Any) -> "HashEntry":
        """Parse ``"<alg-name>;<base64>"``, also accepting ``:`` as separator."""
        if not isinstance(text, str):
            raise ParseError(f"expected digest string, got {type_name(text)}")
        for sep in (";", ":"):
            if sep in text:
                name, encoded = text.split(sep, 1)
                break
        else:
            raise ParseError(f"malformed digest {text!r}: expected <alg>;<base64>")
        try:
            alg = algorithm_id(name)
        except ValidationError as err:
            raise ParseError(str(err)) from err
        return cls(alg, json_utils.b64decode(encoded, "digest"))

    def to_json_data(self) -> str:
        return self.to_text(";")

    @classmethod
    def from_json_data(cls, data: Any) -> "HashEntry":
        return cls.from_text(data)


class Digests(list):
    """A list of :class:`HashEntry` values."""

    def add(self, alg_id: Union[int, str], value: bytes) -> "Digests":
        self.append(HashEntry(alg_id, value))
        return self

    def valid(self) -> None:
        if not self:
            raise ValidationError("no digest entry found")
        for i, entry in enumerate(self):
            try:
                entry.valid()
            except ValidationError as err:
                raise err.wrap(f"digest at index {i}") from err


class DigestsCodec(Codec):
    """Array of hash entries: ``[+[alg, value]]`` in CBOR, strings in JSON."""

    def to_cbor(self, value: Any) -> list:
        return [entry.to_cbor_data() for entry in value]

    def from_cbor(self, data: Any) -> Digests:
        return Digests(_entries(data, HashEntry.from_cbor_data))

    def to_json(self, value: Any) -> list:
        return [entry.to_json_data() for entry in value]

    def from_json(self, data: Any) -> Digests:
        return Digests(_entries(data, HashEntry.from_json_data))


def _entries(data: Any, parse) -> list:
    if not isinstance(data, list):
        raise ParseError(f"expected array of digests, got {type_name(data)}")
    out = []
    for i, raw in enumerate(data):
        try:
            out.append(parse(raw))
        except ParseError as err:
            raise err.wrap(f"digest at index {i}") from err
    return out


class ThumbprintCodec(Codec):
    """Single hash entry shown as ``"<alg>:<base64>"`` in JSON."""

    def to_cbor(self, value: HashEntry) -> list:
        return value.to_cbor_data()

    def from_cbor(self, data: Any) -> HashEntry:
        return HashEntry.from_cbor_data(data)

    def to_json(self, value: HashEntry) -> str:
        return value.to_text(":")

    def from_json(self, data: Any) -> HashEntry:
        return HashEntry.from_text(data)


DIGESTS = DigestsCodec()
THUMBPRINT = ThumbprintCodec()
