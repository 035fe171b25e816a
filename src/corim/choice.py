"""Tagged-choice type system.

A polymorphic field (class id, instance id, measurement key, crypto key, ...)
holds one :class:`ChoiceValue`. Each variant class declares a JSON
``type_name`` and, unless it is carried untagged, a ``cbor_tag``. A
:class:`ChoiceRegistry` per choice lists the variants that the choice
accepts; it dispatches on the CBOR tag (or on the Python shape of untagged
data) when decoding and on the ``type`` member of the JSON envelope.
"""

import logging
import threading
from typing import Any, Optional

from . import cbor_utils, json_utils
from .cbor_utils import CBORTag
from .encoding import Codec, Serializable, type_name
from .errors import (
    CorimError,
    MarshalError,
    ParseError,
    RegistrationError,
    UnsupportedError,
    ValidationError,
)

logger = logging.getLogger(__name__)


class ChoiceValue(Serializable):
    """One variant of a tagged choice."""

    type_name: str = ""
    cbor_tag: Optional[int] = None

    def __init__(self, value: Any):
        self.value = value

    def __eq__(self, other: object) -> bool:
        if type(self) is not type(other):
            return NotImplemented
        return self.value == other.value

    def __hash__(self) -> int:
        return hash((type(self), repr(self.value)))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.value!r})"

    def __str__(self) -> str:
        return str(self.json_value())

    @classmethod
    def factory(cls, value: Any) -> "ChoiceValue":
        """Build a variant from a convenient Python value."""
        return cls(value)

    @classmethod
    def matches_untagged(cls, data: Any) -> bool:
        """For untagged variants: whether raw CBOR data belongs to this variant."""
        return False

    def cbor_inner(self) -> Any:
        return self.value

    @classmethod
    def from_cbor_inner(cls, inner: Any) -> "ChoiceValue":
        return cls(inner)

    def json_value(self) -> Any:
        return self.value

    @classmethod
    def from_json_value(cls, value: Any) -> "ChoiceValue":
        return cls(value)

    def to_cbor_data(self) -> Any:
        inner = self.cbor_inner()
        if self.cbor_tag is None:
            return inner
        return CBORTag(self.cbor_tag, inner)

    @classmethod
    def from_cbor_data(cls, data: Any) -> "ChoiceValue":
        if cls.cbor_tag is not None:
            if not cbor_utils.is_tag(data, cls.cbor_tag):
                raise ParseError(f"expected CBOR tag {cls.cbor_tag} for {cls.type_name}")
            data = data.value
        return cls.from_cbor_inner(data)

    def to_json_data(self) -> Any:
        return json_utils.type_and_value(self.type_name, self.json_value())

    @classmethod
    def from_json_data(cls, data: Any) -> "ChoiceValue":
        found, value = json_utils.split_type_and_value(data, cls.type_name)
        if found != cls.type_name:
            raise ParseError(f'expected type "{cls.type_name}", got "{found}"')
        return cls.from_json_value(value)


class ChoiceRegistry:
    """The set of variants accepted by one choice type.

    Args:
        name: Name of the choice, used in error messages
        plain_json_type: Variant whose JSON form is the bare value instead of
            a ``{type, value}`` envelope
    """

    def __init__(self, name: str, plain_json_type: Optional[str] = None):
        self.name = name
        self.plain_json_type = plain_json_type
        self._by_type: dict[str, type] = {}
        self._by_tag: dict[int, type] = {}
        self._untagged: list[type] = []
        self._lock = threading.Lock()

    def __contains__(self, type_name: str) -> bool:
        return type_name in self._by_type

    def types(self) -> list[str]:
        """Registered JSON type names."""
        with self._lock:
            return list(self._by_type)

    def register(self, variant: type) -> None:
        """Add a variant to this choice.

        Re-registering the same class is a no-op.

        Raises:
            RegistrationError: On a non-ChoiceValue class or a type name / tag
                already taken by a different variant
        """
        if not (isinstance(variant, type) and issubclass(variant, ChoiceValue)):
            raise RegistrationError(f"{self.name}: {variant!r} is not a ChoiceValue subclass")
        if not variant.type_name:
            raise RegistrationError(f"{self.name}: variant {variant.__name__} has no type name")
        with self._lock:
            existing = self._by_type.get(variant.type_name)
            if existing is variant:
                return
            if existing is not None:
                raise RegistrationError(
                    f'{self.name} type "{variant.type_name}" is already registered'
                )
            if variant.cbor_tag is not None:
                if variant.cbor_tag in self._by_tag:
                    raise RegistrationError(f"tag {variant.cbor_tag} is already registered")
                cbor_utils.register_tag(variant.cbor_tag, variant)
                self._by_tag[variant.cbor_tag] = variant
            else:
                self._untagged.append(variant)
            self._by_type[variant.type_name] = variant
        logger.debug("registered %s type %r", self.name, variant.type_name)

    def register_alias_tag(self, tag: int, variant: type) -> None:
        """Accept ``tag`` on decode as another spelling of ``variant``."""
        with self._lock:
            existing = self._by_tag.get(tag)
            if existing is variant:
                return
            if existing is not None:
                raise RegistrationError(f"tag {tag} is already registered")
            cbor_utils.register_tag(tag, variant)
            self._by_tag[tag] = variant

    def variant(self, type_name: str) -> type:
        with self._lock:
            found = self._by_type.get(type_name)
        if found is None:
            raise UnsupportedError(f'unknown {self.name} type "{type_name}"')
        return found

    def new(self, value: Any, type_name: str) -> ChoiceValue:
        """Create a variant by JSON type name from a convenient value."""
        return self.variant(type_name).factory(value)

    def check(self, value: Any) -> ChoiceValue:
        if not isinstance(value, ChoiceValue) or self._by_type.get(value.type_name) is not type(value):
            raise MarshalError(f"unexpected type {type_name(value)} for {self.name}")
        return value

    def encode_cbor(self, value: Any) -> Any:
        return self.check(value).to_cbor_data()

    def encode_json(self, value: Any) -> Any:
        value = self.check(value)
        if self.plain_json_type is not None and value.type_name == self.plain_json_type:
            return value.json_value()
        return value.to_json_data()

    def decode_cbor(self, data: Any) -> ChoiceValue:
        """Dispatch raw CBOR data to the matching variant and validate it.

        Raises:
            UnsupportedError: If no registered variant matches
            ParseError: If the variant rejects the content
        """
        with self._lock:
            if isinstance(data, CBORTag):
                variant = self._by_tag.get(data.tag)
                inner = data.value
            else:
                variant = next((v for v in self._untagged if v.matches_untagged(data)), None)
                inner = data
        if variant is None:
            detail = f"tag {data.tag}" if isinstance(data, CBORTag) else type_name(data)
            raise UnsupportedError(f"unknown {self.name} ({detail})")
        return self._checked(variant.from_cbor_inner, inner)

    def decode_json(self, data: Any) -> ChoiceValue:
        if self.plain_json_type is not None and not isinstance(data, dict):
            return self._checked(self.variant(self.plain_json_type).from_json_value, data)
        found, value = json_utils.split_type_and_value(data, self.name)
        return self._checked(self.variant(found).from_json_value, value)

    def _checked(self, build, raw: Any) -> ChoiceValue:
        try:
            value = build(raw)
            value.valid()
        except UnsupportedError:
            raise
        except (ValidationError, ParseError) as err:
            raise ParseError(str(err), self.name) from err
        except (TypeError, ValueError) as err:
            if isinstance(err, CorimError):
                raise
            raise ParseError(str(err), self.name) from err
        return value


class ChoiceCodec(Codec):
    """Field codec backed by a :class:`ChoiceRegistry`."""

    def __init__(self, registry: ChoiceRegistry):
        self.registry = registry

    def to_cbor(self, value: Any) -> Any:
        return self.registry.encode_cbor(value)

    def from_cbor(self, data: Any) -> ChoiceValue:
        return self.registry.decode_cbor(data)

    def to_json(self, value: Any) -> Any:
        return self.registry.encode_json(value)

    def from_json(self, data: Any) -> ChoiceValue:
        return self.registry.decode_json(data)
