"""Entities: the organizations responsible for a CoMID or a CoRIM."""

from typing import Any, Optional

from .choice import ChoiceCodec, ChoiceRegistry, ChoiceValue
from .encoding import Codec, Field, type_name
from .errors import ParseError, ValidationError
from .ids import TaggedURI, TextValue, URICodec
from .model import MapStruct

# CoMID roles
COMID_ROLES = {0: "tagCreator", 1: "creator", 2: "maintainer"}

# CoRIM roles
CORIM_ROLES = {1: "manifestCreator"}

entity_names = ChoiceRegistry("entity name", plain_json_type=TextValue.type_name)
entity_names.register(TextValue)
ENTITY_NAME = ChoiceCodec(entity_names)

URI = URICodec()


def register_entity_name_type(variant: type) -> None:
    entity_names.register(variant)


class RolesCodec(Codec):
    """Role codes in CBOR, role names in JSON."""

    def __init__(self, table: dict[int, str]):
        self.table = table
        self.codes = {name: code for code, name in table.items()}

    def to_cbor(self, value: list) -> list:
        return list(value)

    def from_cbor(self, data: Any) -> list:
        if not isinstance(data, list):
            raise ParseError(f"expected array of roles, got {type_name(data)}")
        for role in data:
            if isinstance(role, bool) or not isinstance(role, int):
                raise ParseError(f"expected role code, got {type_name(role)}")
        return list(data)

    def to_json(self, value: list) -> list:
        return [self.table.get(role, role) for role in value]

    def from_json(self, data: Any) -> list:
        if not isinstance(data, list):
            raise ParseError(f"expected array of roles, got {type_name(data)}")
        roles = []
        for role in data:
            if role not in self.codes:
                raise ParseError(f"unknown role {role!r}")
            roles.append(self.codes[role])
        return roles


class _Entity(MapStruct):
    """entity-map shared by CoMID and CoRIM."""

    roles_table: dict[int, str] = {}
    extensible = True
    constrainer = "constrain_entity"

    def __init__(self, name: Any = None, regid: Any = None, roles: Optional[list] = None):
        if isinstance(name, str):
            name = TextValue(name)
        if isinstance(regid, str):
            regid = TaggedURI(regid)
        super().__init__(name=name, regid=regid, roles=roles)

    def set_name(self, name: str) -> "_Entity":
        self.name = TextValue(name)
        return self

    def set_regid(self, uri: str) -> "_Entity":
        self.regid = TaggedURI(uri)
        return self

    def set_roles(self, *roles: Any) -> "_Entity":
        """Add roles by code or name."""
        codes = {name: code for code, name in self.roles_table.items()}
        for role in roles:
            code = codes.get(role, role)
            if code not in self.roles_table:
                raise ValidationError(f"unknown role {role!r}")
            self.roles = (self.roles or []) + [code]
        return self

    def valid(self) -> None:
        if self.name is None:
            raise ValidationError("invalid entity: empty entity-name")
        try:
            self.name.valid()
        except ValidationError as err:
            raise err.wrap("invalid entity: entity-name") from err
        if self.regid is not None:
            try:
                self.regid.valid()
            except ValidationError as err:
                raise err.wrap("invalid entity: regid") from err
        if not self.roles:
            raise ValidationError("invalid entity: empty roles")
        for role in self.roles:
            if role not in self.roles_table:
                raise ValidationError(f"invalid entity: unknown role {role}")
        self.valid_extensions()

    def name_text(self) -> Optional[str]:
        return str(self.name.value) if isinstance(self.name, ChoiceValue) else None


class ComidEntity(_Entity):
    roles_table = COMID_ROLES
    fields = (
        Field("name", 0, "name", ENTITY_NAME, optional=False),
        Field("regid", 1, "regid", URI),
        Field("roles", 2, "roles", RolesCodec(COMID_ROLES), optional=False),
    )


class CorimEntity(_Entity):
    roles_table = CORIM_ROLES
    fields = (
        Field("name", 0, "name", ENTITY_NAME, optional=False),
        Field("regid", 1, "regid", URI),
        Field("roles", 2, "roles", RolesCodec(CORIM_ROLES), optional=False),
    )


def validate_entities(entities: Optional[list]) -> None:
    """Validate every entity, prefixing errors with the entity index."""
    for i, entity in enumerate(entities or []):
        try:
            entity.valid()
        except ValidationError as err:
            raise err.wrap(f"entity at index {i}") from err
