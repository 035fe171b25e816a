"""Base class for map-shaped document types."""

import logging
from typing import Any, Optional

from .encoding import (
    Serializable,
    decode_cbor_fields,
    decode_json_fields,
    encode_cbor_fields,
    encode_json_fields,
    expect_map,
    is_empty,
)
from .extensions import Extensions, ExtensionValue

logger = logging.getLogger(__name__)


class MapStruct(Serializable):
    """A CBOR map / JSON object described by a tuple of fields.

    Subclasses set ``fields``. Setting ``extensible`` gives every instance an
    :class:`~corim.extensions.Extensions` holder, and ``constrainer`` names
    the hook that ``valid()`` calls on a registered extension value.
    """

    fields: tuple = ()
    extensible: bool = False
    constrainer: Optional[str] = None

    def __init__(self, **values: Any):
        for field in self.fields:
            setattr(self, field.name, values.pop(field.name, None))
        if values:
            raise TypeError(f"unexpected fields for {type(self).__name__}: {', '.join(values)}")
        self.extensions: Optional[Extensions] = Extensions() if self.extensible else None

    def __eq__(self, other: object) -> bool:
        if type(self) is not type(other):
            return NotImplemented
        return (
            all(getattr(self, f.name) == getattr(other, f.name) for f in self.fields)
            and self.extensions == other.extensions
        )

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        members = ", ".join(
            f"{f.name}={getattr(self, f.name)!r}"
            for f in self.fields
            if getattr(self, f.name, None) is not None
        )
        return f"{type(self).__name__}({members})"

    def is_empty(self) -> bool:
        if not all(is_empty(getattr(self, f.name, None)) for f in self.fields):
            return False
        return self.extensions is None or self.extensions.is_empty()

    def register_extension(self, template: Optional[ExtensionValue]) -> None:
        """Attach an extension value to this node's holder."""
        if self.extensions is not None:
            self.extensions.register(template)

    def valid_extensions(self) -> None:
        """Run the registered extension's checks for this node."""
        if self.extensions is not None:
            self.extensions.valid(self, self.constrainer)

    def to_cbor_data(self) -> dict:
        out: dict = {}
        encode_cbor_fields(self, self.fields, out)
        if self.extensions is not None:
            self.extensions.encode_cbor(out)
        return out

    @classmethod
    def from_cbor_data(cls, data: Any) -> Any:
        rest = expect_map(data, cls.__name__)
        obj = cls()
        decode_cbor_fields(obj, cls.fields, rest)
        obj._keep_unknown(rest, "cbor")
        return obj

    def to_json_data(self) -> dict:
        out: dict = {}
        encode_json_fields(self, self.fields, out)
        if self.extensions is not None:
            self.extensions.encode_json(out)
        return out

    @classmethod
    def from_json_data(cls, data: Any) -> Any:
        rest = expect_map(data, cls.__name__)
        obj = cls()
        decode_json_fields(obj, cls.fields, rest)
        obj._keep_unknown(rest, "json")
        return obj

    def _keep_unknown(self, rest: dict, data_format: str) -> None:
        if not rest:
            return
        if self.extensions is not None:
            self.extensions.capture(rest, data_format)
        else:
            logger.debug("%s: ignoring unknown keys %s", type(self).__name__, list(rest))
