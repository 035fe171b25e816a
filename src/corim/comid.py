"""Concise Module Identifier (CoMID) tags."""

import logging
from typing import Any, Optional

from .encoding import TEXT, UINT, Codec, Field, ListCodec, model, type_name
from .entity import ComidEntity, validate_entities
from .environment import Environment
from .errors import ParseError, ValidationError
from .extensions import ExtensionMap, ExtensionPoint
from .ids import TagID
from .measurement import Measurement
from .model import MapStruct
from .triples import KeyTriple, Triples, ValueTriple

logger = logging.getLogger(__name__)

REL_SUPERSEDES = 0
REL_REPLACES = 1
RELATIONS = {REL_SUPERSEDES: "supersedes", REL_REPLACES: "replaces"}
_REL_CODES = {name: code for code, name in RELATIONS.items()}


class RelCodec(Codec):
    def from_cbor(self, data: Any) -> int:
        if isinstance(data, bool) or not isinstance(data, int):
            raise ParseError(f"expected rel code, got {type_name(data)}")
        return data

    def to_json(self, value: int) -> Any:
        return RELATIONS.get(value, value)

    def from_json(self, data: Any) -> int:
        if data not in _REL_CODES:
            raise ParseError(f"unknown rel {data!r}")
        return _REL_CODES[data]


class TagIdentity(MapStruct):
    """tag-identity-map: the tag id and its version."""

    fields = (
        Field("tag_id", 0, "id", model(TagID), optional=False),
        Field("tag_version", 1, "version", UINT),
    )

    def __init__(self, tag_id: Any = None, tag_version: Optional[int] = None):
        if tag_id is not None and not isinstance(tag_id, TagID):
            tag_id = TagID(tag_id)
        super().__init__(tag_id=tag_id, tag_version=tag_version)

    def valid(self) -> None:
        if self.tag_id is None:
            raise ValidationError("empty tag-id")
        self.tag_id.valid()


class LinkedTag(MapStruct):
    """linked-tag-map: a relation to another tag."""

    fields = (
        Field("target", 0, "target", model(TagID), optional=False),
        Field("rel", 1, "rel", RelCodec(), optional=False),
    )

    def __init__(self, target: Any = None, rel: Optional[int] = None):
        if target is not None and not isinstance(target, TagID):
            target = TagID(target)
        super().__init__(target=target, rel=rel)

    def valid(self) -> None:
        if self.target is None:
            raise ValidationError("empty linked tag-id")
        self.target.valid()
        if self.rel not in RELATIONS:
            raise ValidationError(f"unknown rel {self.rel}")


class Comid(MapStruct):
    """concise-mid-tag."""

    fields = (
        Field("language", 0, "lang", TEXT),
        Field("tag_identity", 1, "tag-identity", model(TagIdentity), optional=False),
        Field("entities", 2, "entities", ListCodec(model(ComidEntity), "entity")),
        Field("linked_tags", 3, "linked-tags", ListCodec(model(LinkedTag), "linked tag")),
        Field("triples", 4, "triples", model(Triples), optional=False),
    )
    extensible = True
    constrainer = "constrain_comid"

    def __init__(self, **values: Any):
        super().__init__(**values)
        if self.triples is None:
            self.triples = Triples()

    def set_language(self, language: str) -> "Comid":
        self.language = language
        return self

    def set_tag_identity(self, tag_id: Any, version: Optional[int] = None) -> "Comid":
        self.tag_identity = TagIdentity(tag_id, version)
        return self

    def add_entity(self, name: str, regid: Optional[str] = None, *roles: Any) -> "Comid":
        entity = ComidEntity(name=name, regid=regid).set_roles(*roles)
        self.entities = (self.entities or []) + [entity]
        return self

    def add_linked_tag(self, target: Any, rel: int) -> "Comid":
        self.linked_tags = (self.linked_tags or []) + [LinkedTag(target, rel)]
        return self

    def add_reference_value(self, environment: Environment, *measurements: Measurement) -> "Comid":
        self.triples.add_reference_value(ValueTriple(environment, list(measurements)))
        return self

    def add_endorsed_value(self, environment: Environment, *measurements: Measurement) -> "Comid":
        self.triples.add_endorsed_value(ValueTriple(environment, list(measurements)))
        return self

    def add_attest_verif_key(self, environment: Environment, *keys: Any) -> "Comid":
        self.triples.add_attest_verif_key(KeyTriple(environment, list(keys)))
        return self

    def add_dev_identity_key(self, environment: Environment, *keys: Any) -> "Comid":
        self.triples.add_dev_identity_key(KeyTriple(environment, list(keys)))
        return self

    def register_extensions(self, ext_map: Optional[ExtensionMap]) -> None:
        """Attach a profile's extensions to this CoMID and everything below it."""
        if not ext_map:
            return
        self.register_extension(ext_map.get(ExtensionPoint.COMID))
        entity_ext = ext_map.get(ExtensionPoint.COMID_ENTITY)
        for entity in self.entities or []:
            entity.register_extension(entity_ext)
        if self.triples is not None:
            self.triples.register_extensions(ext_map)
        logger.debug("registered extensions on CoMID %s", self._tag_id_text())

    def _tag_id_text(self) -> str:
        if self.tag_identity is None or self.tag_identity.tag_id is None:
            return "<unset>"
        return str(self.tag_identity.tag_id)

    def valid(self) -> None:
        if self.tag_identity is None:
            raise ValidationError("tag-identity validation failed: tag-identity not set")
        try:
            self.tag_identity.valid()
        except ValidationError as err:
            raise err.wrap("tag-identity validation failed") from err
        try:
            validate_entities(self.entities)
        except ValidationError as err:
            raise err.wrap("entities validation failed") from err
        for i, linked in enumerate(self.linked_tags or []):
            try:
                linked.valid()
            except ValidationError as err:
                raise err.wrap(f"linked tag at index {i}") from err
        if self.triples is None:
            raise ValidationError("triples validation failed: triples not set")
        try:
            self.triples.valid()
        except ValidationError as err:
            raise err.wrap("triples validation failed") from err
        self.valid_extensions()
