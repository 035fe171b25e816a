"""Environments: the class / instance / group identifiers a triple talks about."""

from typing import Any, Optional

from .choice import ChoiceCodec, ChoiceRegistry, ChoiceValue
from .encoding import TEXT, UINT, Field, model
from .errors import ValidationError
from .ids import OID, UEID, TaggedBytes, TaggedInt, TaggedUUID, TextValue
from .model import MapStruct

class_ids = ChoiceRegistry("class id")
for _variant in (OID, TaggedUUID, TaggedBytes, TaggedInt):
    class_ids.register(_variant)

instances = ChoiceRegistry("instance")
for _variant in (TaggedUUID, UEID, TaggedBytes, TaggedInt, TextValue):
    instances.register(_variant)

groups = ChoiceRegistry("group")
for _variant in (TaggedUUID, TaggedBytes):
    groups.register(_variant)

CLASS_ID = ChoiceCodec(class_ids)
INSTANCE = ChoiceCodec(instances)
GROUP = ChoiceCodec(groups)


def register_class_id_type(variant: type) -> None:
    class_ids.register(variant)


def register_instance_type(variant: type) -> None:
    instances.register(variant)


def register_group_type(variant: type) -> None:
    groups.register(variant)


def new_class_id(value: Any, type_name: str) -> ChoiceValue:
    """Create a class id of the named type (``oid``, ``uuid``, ``bytes``, ``int``)."""
    class_id = class_ids.new(value, type_name)
    class_id.valid()
    return class_id


def new_instance(value: Any, type_name: str) -> ChoiceValue:
    """Create an instance id of the named type (``ueid``, ``uuid``, ``bytes``, ...)."""
    instance = instances.new(value, type_name)
    instance.valid()
    return instance


def new_group(value: Any, type_name: str) -> ChoiceValue:
    group = groups.new(value, type_name)
    group.valid()
    return group


class Class(MapStruct):
    """class-map: identifies a class of target environments."""

    fields = (
        Field("class_id", 0, "id", CLASS_ID),
        Field("vendor", 1, "vendor", TEXT),
        Field("model", 2, "model", TEXT),
        Field("layer", 3, "layer", UINT),
        Field("index", 4, "index", UINT),
    )

    def set_class_id(self, class_id: ChoiceValue) -> "Class":
        self.class_id = class_id
        return self

    def set_vendor(self, vendor: str) -> "Class":
        self.vendor = vendor
        return self

    def set_model(self, model: str) -> "Class":
        self.model = model
        return self

    def valid(self) -> None:
        if self.class_id is None and not self.vendor and not self.model \
                and self.layer is None and self.index is None:
            raise ValidationError("class must not be empty")
        if self.class_id is not None:
            try:
                self.class_id.valid()
            except ValidationError as err:
                raise err.wrap("class id") from err


class Environment(MapStruct):
    """environment-map: at least one of class, instance, group, layer, index."""

    fields = (
        Field("class_", 0, "class", model(Class)),
        Field("instance", 1, "instance", INSTANCE),
        Field("group", 2, "group", GROUP),
        Field("layer", 3, "layer", UINT),
        Field("index", 4, "index", UINT),
    )

    def valid(self) -> None:
        if all(getattr(self, f.name) is None for f in self.fields):
            raise ValidationError("environment must not be empty")
        if self.class_ is not None:
            try:
                self.class_.valid()
            except ValidationError as err:
                raise err.wrap("class validation failed") from err
        for name, what in (("instance", "instance"), ("group", "group")):
            value = getattr(self, name)
            if value is not None:
                try:
                    value.valid()
                except ValidationError as err:
                    raise err.wrap(f"{what} validation failed") from err

    def class_id(self) -> Optional[ChoiceValue]:
        """Shortcut to ``class_.class_id``."""
        return self.class_.class_id if self.class_ is not None else None

