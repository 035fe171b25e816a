"""Extension points and the per-node extension holder.

A profile contributes an :class:`ExtensionValue` subclass for one or more
:class:`ExtensionPoint` slots. The subclass declares extra map members via
``fields`` (using the same :class:`~corim.encoding.Field` declarations as the
core types) and may implement the constrainer hook that the hosting node
calls from its ``valid()``:

=====================  ===============================
Hosting node           Hook
=====================  ===============================
UnsignedCorim          ``constrain_corim(corim)``
Signer                 ``constrain_signer(signer)``
Entity (both kinds)    ``constrain_entity(entity)``
Comid                  ``constrain_comid(comid)``
Triples                ``valid_triples(triples)``
Mval                   ``constrain_mval(mval)``
FlagsMap               ``constrain_flags(flags)``
EvTriples              ``valid_evidence_triples(triples)``
=====================  ===============================

Every extensible node owns an :class:`Extensions` holder. Map entries that
no declaration claims are kept in the holder's field cache so that they
survive a decode/encode cycle even when the profile is unknown.
"""

import logging
from enum import Enum
from typing import Any, Optional

from . import cbor_utils, json_utils
from .encoding import (
    decode_cbor_fields,
    decode_json_fields,
    encode_cbor_fields,
    encode_json_fields,
    is_empty,
    put_unique,
)
from .errors import ParseError, RegistrationError, ValidationError

logger = logging.getLogger(__name__)


class ExtensionPoint(Enum):
    """Named slots of the document model that a profile may extend."""

    UNSIGNED_CORIM = "UnsignedCorim"
    SIGNER = "Signer"
    CORIM_ENTITY = "CorimEntity"
    COMID = "Comid"
    COMID_ENTITY = "ComidEntity"
    TRIPLES = "Triples"
    REFERENCE_VALUE = "ReferenceValue"
    REFERENCE_VALUE_FLAGS = "ReferenceValueFlags"
    ENDORSED_VALUE = "EndorsedValue"
    ENDORSED_VALUE_FLAGS = "EndorsedValueFlags"
    MVAL = "Mval"
    EVIDENCE_TRIPLES = "EvidenceTriples"


class ExtensionValue:
    """Base class for profile-supplied extension descriptors."""

    fields: tuple = ()

    def __init__(self, **values: Any):
        for field in self.fields:
            setattr(self, field.name, values.pop(field.name, None))
        if values:
            raise TypeError(f"unexpected extension fields: {', '.join(values)}")

    def is_empty(self) -> bool:
        return all(is_empty(getattr(self, f.name, None)) for f in self.fields)

    def __eq__(self, other: object) -> bool:
        if type(self) is not type(other):
            return NotImplemented
        return all(getattr(self, f.name) == getattr(other, f.name) for f in self.fields)

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        members = ", ".join(
            f"{f.name}={getattr(self, f.name)!r}"
            for f in self.fields
            if getattr(self, f.name, None) is not None
        )
        return f"{type(self).__name__}({members})"


class ExtensionMap(dict):
    """Mapping of :class:`ExtensionPoint` to extension descriptor."""

    def add(self, point: ExtensionPoint, value: ExtensionValue) -> "ExtensionMap":
        """Add a registration and return ``self`` for chaining."""
        self[point] = value
        return self


class Extensions:
    """Holder for one node's extension value and field cache."""

    def __init__(self) -> None:
        self.value: Optional[ExtensionValue] = None
        # map entries with no declaration, keyed by str(cbor key) or JSON name
        self.cache: dict[str, Any] = {}
        # "cbor" or "json" per cache key: the data model the entry is held in
        self.cache_formats: dict[str, str] = {}

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Extensions):
            return NotImplemented
        return self.value == other.value and self.cache == other.cache

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"Extensions(value={self.value!r}, cache={self.cache!r})"

    def have_extensions(self) -> bool:
        """Report whether an extension value has been registered."""
        return self.value is not None

    def is_empty(self) -> bool:
        return (self.value is None or self.value.is_empty()) and not self.cache

    def register(self, template: Optional[ExtensionValue]) -> None:
        """Attach a fresh instance of ``template``'s type to this node.

        Entries already sitting in the field cache that belong to the new
        declaration are decoded into it.

        Raises:
            RegistrationError: If ``template`` is not an ExtensionValue instance
            ParseError: If a cached entry does not decode under the declaration
        """
        if template is None:
            return
        if not isinstance(template, ExtensionValue):
            raise RegistrationError(
                f"attempting to register a non-instance extension value: {template!r}"
            )
        if type(self.value) is type(template):
            return
        value = type(template)()
        self._absorb(value)
        self.value = value

    def _absorb(self, value: ExtensionValue) -> None:
        if not self.cache:
            return
        json_entries, cbor_entries = self._split_cache()
        fields = _optional(value.fields)
        decode_json_fields(value, fields, json_entries)
        decode_cbor_fields(value, fields, cbor_entries)
        self._store(json_entries, cbor_entries)

    def _split_cache(self) -> tuple[dict, dict]:
        json_entries: dict = {}
        cbor_entries: dict = {}
        for key, raw in self.cache.items():
            if self.cache_formats.get(key) == "json":
                json_entries[key] = raw
            else:
                cbor_entries[_cache_key(key)] = raw
        return json_entries, cbor_entries

    def _store(self, json_entries: dict, cbor_entries: dict) -> None:
        self.cache = {}
        self.cache_formats = {}
        for key, raw in json_entries.items():
            self.cache[key] = raw
            self.cache_formats[key] = "json"
        for key, raw in cbor_entries.items():
            self.cache[str(key)] = raw
            self.cache_formats[str(key)] = "cbor"

    def capture(self, leftovers: dict, data_format: str) -> None:
        """Store map entries that no declaration consumed.

        JSON members whose name is an integer, or whose value is a cached
        CBOR envelope, are held in the CBOR data model so that they encode
        back to CBOR unchanged.
        """
        if not leftovers:
            return
        json_entries: dict = {}
        cbor_entries: dict = {}
        if data_format == "json":
            for key, raw in leftovers.items():
                if _is_int_key(key) or _is_cbor_envelope(raw):
                    cbor_entries[_cache_key(key)] = _from_json_cache(raw)
                else:
                    json_entries[key] = raw
        else:
            cbor_entries = dict(leftovers)
        if self.value is not None:
            fields = _optional(self.value.fields)
            decode_json_fields(self.value, fields, json_entries)
            decode_cbor_fields(self.value, fields, cbor_entries)
            for field in self.value.fields:
                if not field.optional and getattr(self.value, field.name, None) is None:
                    raise ParseError(field.missing())
        old_json, old_cbor = self._split_cache()
        self._store({**old_json, **json_entries}, {**old_cbor, **cbor_entries})
        if json_entries or cbor_entries:
            logger.debug("cached %d unknown map entries: %s", len(self.cache), sorted(self.cache))

    def encode_cbor(self, out: dict) -> None:
        if self.value is not None:
            encode_cbor_fields(self.value, self.value.fields, out)
        for key, raw in self.cache.items():
            put_unique(out, _cache_key(key), raw)

    def encode_json(self, out: dict) -> None:
        if self.value is not None:
            encode_json_fields(self.value, self.value.fields, out)
        for key, raw in self.cache.items():
            if self.cache_formats.get(key) == "json":
                put_unique(out, key, raw, "json")
            else:
                put_unique(out, key, _to_json_cache(raw), "json")

    def _find(self, name: str):
        if self.value is None:
            return None
        for field in self.value.fields:
            if name in (field.name, field.json_name, str(field.key)):
                return field
        return None

    def get(self, name: str) -> Any:
        """Return an extension field by attribute name, JSON name or CBOR key.

        Falls back to the raw field-cache entry when nothing is registered.

        Raises:
            KeyError: If no such field or cache entry exists
        """
        field = self._find(name)
        if field is not None:
            return getattr(self.value, field.name)
        if name in self.cache:
            return self.cache[name]
        raise KeyError(f"extension field not found: {name}")

    def set(self, name: str, value: Any) -> None:
        """Set a registered extension field.

        Raises:
            RegistrationError: If no extension value is registered
            KeyError: If the registered value has no such field
        """
        if self.value is None:
            raise RegistrationError("no extension value registered")
        field = self._find(name)
        if field is None:
            raise KeyError(f"extension field not found: {name}")
        setattr(self.value, field.name, value)

    def valid(self, node: Any, hook: Optional[str]) -> None:
        """Check mandatory extension fields and run the node's constrainer."""
        if self.value is None:
            return
        for field in self.value.fields:
            if not field.optional and getattr(self.value, field.name, None) is None:
                raise ValidationError(field.missing())
        own_valid = getattr(self.value, "valid", None)
        if callable(own_valid):
            own_valid()
        constrainer = getattr(self.value, hook, None) if hook else None
        if callable(constrainer):
            constrainer(node)


def _cache_key(key: str) -> Any:
    try:
        return int(key)
    except ValueError:
        return key


def _is_int_key(key: Any) -> bool:
    return isinstance(key, str) and isinstance(_cache_key(key), int)


# JSON rendering of a cached CBOR value that has no exact JSON form
CBOR_ENVELOPE_TYPE = "cbor"


def _is_cbor_envelope(raw: Any) -> bool:
    return (
        isinstance(raw, dict)
        and set(raw) == {"type", "value"}
        and raw["type"] == CBOR_ENVELOPE_TYPE
        and isinstance(raw["value"], str)
    )


def _to_json_cache(raw: Any) -> Any:
    if json_utils.is_json_native(raw):
        return raw
    return {"type": CBOR_ENVELOPE_TYPE, "value": json_utils.b64encode(cbor_utils.encode(raw))}


def _from_json_cache(raw: Any) -> Any:
    if not _is_cbor_envelope(raw):
        return raw
    try:
        return cbor_utils.decode(json_utils.b64decode(raw["value"], "cached CBOR value"))
    except ParseError as err:
        raise err.wrap("cached CBOR value") from err


def _optional(fields: tuple) -> tuple:
    # mandatory members are checked by valid()
    return tuple(
        type(f)(f.name, f.key, f.json_name, f.codec, True) for f in fields
    )


def check_extension_map(ext_map: Any, allowed: Optional[set] = None) -> None:
    """Validate a profile's extension map before registration.

    Raises:
        RegistrationError: On an unknown point or a non-instance descriptor
    """
    if not isinstance(ext_map, dict):
        raise RegistrationError(f"expected an extension map, got {type(ext_map).__name__}")
    for point, value in ext_map.items():
        if not isinstance(point, ExtensionPoint) or (allowed is not None and point not in allowed):
            raise RegistrationError(f"unexpected extension point: {point!r}")
        if not isinstance(value, ExtensionValue):
            raise RegistrationError(
                f"attempting to register a non-instance extension value for {point.value}"
            )
