"""Measurements: a measured-element key plus a measurement-values map."""

import ipaddress
from typing import Any, Optional

from .choice import ChoiceCodec, ChoiceRegistry, ChoiceValue
from .cryptokeys import CRYPTO_KEYS
from .digests import DIGESTS, Digests, HashEntry
from .encoding import BOOL, BYTES, TEXT, Codec, Field, ListCodec, model, type_name
from .errors import MarshalError, ParseError, ValidationError
from .extensions import ExtensionValue
from .ids import OID, TaggedBytes, TaggedUUID, TextValue, UEIDCodec, UintValue, UUIDCodec, is_uint
from .model import MapStruct

# Version schemes (CoSWID)
VERSION_SCHEMES = {
    1: "multipartnumeric",
    2: "multipartnumeric+suffix",
    3: "alphanumeric",
    4: "decimal",
    16384: "semver",
}
_SCHEME_CODES = {name: code for code, name in VERSION_SCHEMES.items()}


class VersionSchemeCodec(Codec):
    """Integer code in CBOR, scheme name in JSON."""

    def from_cbor(self, data: Any) -> int:
        if isinstance(data, bool) or not isinstance(data, int):
            raise ParseError(f"expected version scheme code, got {type_name(data)}")
        return data

    def to_json(self, value: int) -> Any:
        return VERSION_SCHEMES.get(value, value)

    def from_json(self, data: Any) -> int:
        if isinstance(data, str):
            if data not in _SCHEME_CODES:
                raise ParseError(f"unknown version scheme {data!r}")
            return _SCHEME_CODES[data]
        return self.from_cbor(data)


class Version(MapStruct):
    """version-map: a version string and its scheme."""

    fields = (
        Field("value", 0, "value", TEXT, optional=False),
        Field("scheme", 1, "scheme", VersionSchemeCodec()),
    )

    def __init__(self, value: Optional[str] = None, scheme: Optional[int] = None):
        super().__init__(value=value, scheme=scheme)

    def valid(self) -> None:
        if not self.value:
            raise ValidationError("empty version")
        if self.scheme is not None and self.scheme not in VERSION_SCHEMES:
            raise ValidationError(f"unknown version scheme {self.scheme}")


class ExactSVN(UintValue):
    """Security version number that must match exactly (tag 552)."""

    type_name = "exact-value"
    cbor_tag = 552

    @classmethod
    def matches_untagged(cls, data: Any) -> bool:
        return False


class MinSVN(UintValue):
    """Minimum acceptable security version number (tag 553)."""

    type_name = "min-value"
    cbor_tag = 553

    @classmethod
    def matches_untagged(cls, data: Any) -> bool:
        return False


svns = ChoiceRegistry("svn")
svns.register(ExactSVN)
svns.register(MinSVN)


class SVNCodec(ChoiceCodec):
    """SVN choice; a bare unsigned integer decodes as an exact value."""

    def from_cbor(self, data: Any) -> ChoiceValue:
        if is_uint(data):
            return ExactSVN(data)
        return super().from_cbor(data)


SVN = SVNCodec(svns)

raw_values = ChoiceRegistry("raw value")
raw_values.register(TaggedBytes)
RAW_VALUE = ChoiceCodec(raw_values)

mkeys = ChoiceRegistry("measurement key")
for _variant in (OID, TaggedUUID, UintValue, TextValue):
    mkeys.register(_variant)
MKEY = ChoiceCodec(mkeys)


def register_mkey_type(variant: type) -> None:
    mkeys.register(variant)


def new_mkey(value: Any, type_name: str) -> ChoiceValue:
    """Create a measurement key of the named type."""
    key = mkeys.new(value, type_name)
    key.valid()
    return key


class MACAddrCodec(Codec):
    """EUI-48 / EUI-64 address: bytes in CBOR, colon-separated hex in JSON."""

    def to_cbor(self, value: bytes) -> bytes:
        return bytes(value)

    def from_cbor(self, data: Any) -> bytes:
        if not isinstance(data, bytes):
            raise ParseError(f"expected byte string for MAC address, got {type_name(data)}")
        return data

    def to_json(self, value: bytes) -> str:
        return ":".join(f"{b:02x}" for b in value)

    def from_json(self, data: Any) -> bytes:
        if not isinstance(data, str):
            raise ParseError(f"expected MAC address string, got {type_name(data)}")
        try:
            return bytes(int(part, 16) for part in data.replace("-", ":").split(":"))
        except ValueError as exc:
            raise ParseError(f"invalid MAC address {data!r}") from exc


class IPAddrCodec(Codec):
    """IPv4 / IPv6 address: bytes in CBOR, textual form in JSON."""

    def to_cbor(self, value: bytes) -> bytes:
        return bytes(value)

    def from_cbor(self, data: Any) -> bytes:
        if not isinstance(data, bytes):
            raise ParseError(f"expected byte string for IP address, got {type_name(data)}")
        return data

    def to_json(self, value: bytes) -> str:
        try:
            return str(ipaddress.ip_address(bytes(value)))
        except ValueError as exc:
            raise MarshalError(f"invalid IP address: {exc}") from exc

    def from_json(self, data: Any) -> bytes:
        try:
            return ipaddress.ip_address(data).packed
        except ValueError as exc:
            raise ParseError(f"invalid IP address {data!r}") from exc


FLAG_NAMES = (
    "is-configured",
    "is-secure",
    "is-recovery",
    "is-debug",
    "is-replay-protected",
    "is-integrity-protected",
    "is-runtime-meas",
    "is-immutable",
    "is-tcb",
)


class FlagsMap(MapStruct):
    """flags-map: operational state booleans, extensible by profiles."""

    fields = tuple(
        Field(name[3:].replace("-", "_"), key, name, BOOL)
        for key, name in enumerate(FLAG_NAMES)
    )
    extensible = True
    constrainer = "constrain_flags"

    def set_flag(self, name: str, value: bool = True) -> "FlagsMap":
        """Set a flag by its JSON name (e.g. ``"is-debug"``) or attribute name."""
        for field in self.fields:
            if name in (field.json_name, field.name):
                setattr(self, field.name, value)
                return self
        raise ValidationError(f"unknown flag {name!r}")

    def valid(self) -> None:
        self.valid_extensions()


class Mval(MapStruct):
    """measurement-values-map."""

    fields = (
        Field("version", 0, "version", model(Version)),
        Field("svn", 1, "svn", SVN),
        Field("digests", 2, "digests", DIGESTS),
        Field("flags", 3, "flags", model(FlagsMap)),
        Field("raw_value", 4, "raw-value", RAW_VALUE),
        Field("raw_value_mask", 5, "raw-value-mask", BYTES),
        Field("mac_addr", 6, "mac-addr", MACAddrCodec()),
        Field("ip_addr", 7, "ip-addr", IPAddrCodec()),
        Field("serial_number", 8, "serial-number", TEXT),
        Field("ueid", 9, "ueid", UEIDCodec()),
        Field("uuid", 10, "uuid", UUIDCodec()),
        Field("name", 11, "name", TEXT),
        Field("crypto_keys", 13, "crypto-keys", CRYPTO_KEYS),
    )
    extensible = True
    constrainer = "constrain_mval"

    def set_version(self, version: str, scheme: Optional[int] = None) -> "Mval":
        self.version = Version(version, scheme)
        return self

    def set_svn(self, svn: int, minimum: bool = False) -> "Mval":
        self.svn = MinSVN(svn) if minimum else ExactSVN(svn)
        return self

    def add_digest(self, alg_id: Any, value: bytes) -> "Mval":
        if self.digests is None:
            self.digests = Digests()
        self.digests.append(HashEntry(alg_id, value))
        return self

    def set_raw_value_bytes(self, value: bytes, mask: Optional[bytes] = None) -> "Mval":
        self.raw_value = TaggedBytes(value)
        if mask is not None:
            self.raw_value_mask = bytes(mask)
        return self

    def set_flag(self, name: str, value: bool = True) -> "Mval":
        if self.flags is None:
            self.flags = FlagsMap()
        self.flags.set_flag(name, value)
        return self

    def add_crypto_key(self, key: ChoiceValue) -> "Mval":
        if self.crypto_keys is None:
            self.crypto_keys = []
        self.crypto_keys.append(key)
        return self

    def register_extensions(
        self,
        mval_ext: Optional[ExtensionValue],
        flags_ext: Optional[ExtensionValue] = None,
    ) -> None:
        self.register_extension(mval_ext)
        if self.flags is not None:
            self.flags.register_extension(flags_ext)

    def valid(self) -> None:
        if self.is_empty():
            raise ValidationError("no measurement value set")
        if self.version is not None:
            self.version.valid()
        if self.svn is not None:
            self.svn.valid()
        if self.digests:
            Digests(self.digests).valid()
        if self.flags is not None:
            try:
                self.flags.valid()
            except ValidationError as err:
                raise err.wrap("flags") from err
        if self.raw_value is not None:
            self.raw_value.valid()
        if self.mac_addr is not None and len(self.mac_addr) not in (6, 8):
            raise ValidationError(f"invalid MAC address length {len(self.mac_addr)}")
        if self.ip_addr is not None and len(self.ip_addr) not in (4, 16):
            raise ValidationError(f"invalid IP address length {len(self.ip_addr)}")
        if self.ueid is not None:
            self.ueid.valid()
        if self.uuid is not None:
            self.uuid.valid()
        for i, key in enumerate(self.crypto_keys or []):
            try:
                key.valid()
            except ValidationError as err:
                raise err.wrap(f"crypto key at index {i}") from err
        self.valid_extensions()


class Measurement(MapStruct):
    """measurement-map."""

    fields = (
        Field("key", 0, "key", MKEY),
        Field("value", 1, "value", model(Mval), optional=False),
        Field("authorized_by", 2, "authorized-by", CRYPTO_KEYS),
    )

    def __init__(self, key: Optional[ChoiceValue] = None, value: Optional[Mval] = None,
                 authorized_by: Optional[list] = None):
        super().__init__(key=key, value=value if value is not None else Mval(),
                         authorized_by=authorized_by)

    def valid(self) -> None:
        if self.key is not None:
            try:
                self.key.valid()
            except ValidationError as err:
                raise err.wrap("invalid measurement key") from err
        if self.value is None:
            raise ValidationError("no measurement value set")
        try:
            self.value.valid()
        except ValidationError as err:
            raise err.wrap("invalid measurement value") from err
        for i, key in enumerate(self.authorized_by or []):
            try:
                key.valid()
            except ValidationError as err:
                raise err.wrap(f"authorized-by key at index {i}") from err


MEASUREMENTS = ListCodec(model(Measurement), "measurement")


class Measurements(list):
    """A list of :class:`Measurement` values."""

    def add(self, measurement: Measurement) -> "Measurements":
        self.append(measurement)
        return self

    def valid(self) -> None:
        if not self:
            raise ValidationError("no measurement entries")
        for i, measurement in enumerate(self):
            try:
                measurement.valid()
            except ValidationError as err:
                raise err.wrap(f"measurement at index {i}") from err
