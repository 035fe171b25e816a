"""CoRIM meta: signer identity and signature validity, carried in the COSE header."""

from typing import Any, Optional, Union

from . import cbor_utils
from .encoding import TEXT, Field, model
from .entity import URI
from .errors import ValidationError
from .extensions import ExtensionMap, ExtensionPoint
from .ids import TaggedURI
from .model import MapStruct
from .unsigned_corim import Validity


class Signer(MapStruct):
    """corim-signer-map."""

    fields = (
        Field("name", 0, "name", TEXT, optional=False),
        Field("uri", 1, "uri", URI),
    )
    extensible = True
    constrainer = "constrain_signer"

    def __init__(self, name: Optional[str] = None, uri: Union[str, TaggedURI, None] = None):
        if isinstance(uri, str):
            uri = TaggedURI(uri)
        super().__init__(name=name, uri=uri)

    def valid(self) -> None:
        if not self.name:
            raise ValidationError("empty name")
        if self.uri is not None:
            try:
                self.uri.valid()
            except ValidationError as err:
                raise err.wrap("invalid URI") from err
        self.valid_extensions()


class Meta(MapStruct):
    """corim-meta-map."""

    fields = (
        Field("signer", 0, "signer", model(Signer), optional=False),
        Field("validity", 1, "validity", model(Validity)),
    )

    def __init__(self, signer: Optional[Signer] = None, validity: Optional[Validity] = None):
        super().__init__(signer=signer, validity=validity)

    def set_signer(self, name: str, uri: Optional[str] = None) -> "Meta":
        self.signer = Signer(name, uri)
        return self

    def set_validity(self, not_after: Any, not_before: Any = None) -> "Meta":
        validity = Validity(not_after, not_before)
        validity.valid()
        self.validity = validity
        return self

    def register_extensions(self, ext_map: Optional[ExtensionMap]) -> None:
        if ext_map and self.signer is not None:
            self.signer.register_extension(ext_map.get(ExtensionPoint.SIGNER))

    def valid(self) -> None:
        if self.signer is None:
            raise ValidationError("invalid meta: signer not set")
        try:
            self.signer.valid()
        except ValidationError as err:
            raise err.wrap("invalid meta: signer") from err
        if self.validity is not None:
            try:
                self.validity.valid()
            except ValidationError as err:
                raise err.wrap("invalid meta: validity") from err

    @classmethod
    def from_header(cls, raw: Any) -> "Meta":
        """Decode the byte string found under COSE header label 8."""
        return cls.from_cbor_data(cbor_utils.decode(raw))
