"""Unsigned CoRIM: the manifest that bundles CoMID, CoSWID and CoTS tags."""

import logging
from datetime import datetime, timezone
from typing import Any, Optional, Union

from . import cbor_utils, json_utils
from .cbor_utils import COMID_TAG, COSWID_TAG, COTS_TAG, UNSIGNED_CORIM_TAG, CBORTag
from .comid import Comid
from .digests import THUMBPRINT, HashEntry
from .encoding import TIME, Field, ListCodec, Serializable, model, type_name
from .entity import URI, CorimEntity, validate_entities
from .errors import ParseError, ValidationError
from .extensions import ExtensionMap, ExtensionPoint
from .ids import ProfileID, TagID, TaggedURI, check_absolute_uri
from .model import MapStruct

logger = logging.getLogger(__name__)

TAG_TYPES = {COMID_TAG: "comid", COSWID_TAG: "coswid", COTS_TAG: "cots"}
_TAG_NUMBERS = {name: number for number, name in TAG_TYPES.items()}


class CorimTag(Serializable):
    """One entry of the CoRIM ``tags`` array.

    Args:
        number: CBOR tag number identifying the tag type (506, 505 or 508)
        body: CBOR encoding of the untagged tag content
    """

    def __init__(self, number: int = COMID_TAG, body: bytes = b""):
        self.number = number
        self.body = bytes(body)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CorimTag):
            return NotImplemented
        return self.number == other.number and self.body == other.body

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"CorimTag({self.number}, {len(self.body)} bytes)"

    @property
    def type_name(self) -> str:
        return TAG_TYPES.get(self.number, str(self.number))

    def comid(self, ext_map: Optional[ExtensionMap] = None) -> Comid:
        """Decode the body as a CoMID, attaching ``ext_map`` if given."""
        if self.number != COMID_TAG:
            raise ValidationError(f"tag {self.number} is not a CoMID")
        comid = Comid.from_cbor(self.body)
        comid.register_extensions(ext_map)
        return comid

    def valid(self, ext_map: Optional[ExtensionMap] = None) -> None:
        if not self.body:
            raise ValidationError("empty tag body")
        if self.number not in TAG_TYPES:
            raise ValidationError(f"unexpected tag type {self.number}")
        if self.number == COMID_TAG:
            try:
                comid = self.comid(ext_map)
            except ParseError as err:
                raise ValidationError(f"failed to decode CoMID: {err}") from err
            comid.valid()

    def to_cbor_data(self) -> CBORTag:
        return CBORTag(self.number, cbor_utils.decode(self.body))

    @classmethod
    def from_cbor_data(cls, data: Any) -> "CorimTag":
        if not isinstance(data, CBORTag):
            raise ParseError(f"expected tagged CoMID, CoSWID or CoTS, got {type_name(data)}")
        if data.tag not in TAG_TYPES:
            raise ParseError(f"unexpected tag {data.tag}")
        return cls(data.tag, cbor_utils.encode(data.value))

    def to_json_data(self) -> dict:
        return json_utils.type_and_value(self.type_name, json_utils.b64encode(self.body))

    @classmethod
    def from_json_data(cls, data: Any) -> "CorimTag":
        found, value = json_utils.split_type_and_value(data, "tag")
        if found not in _TAG_NUMBERS:
            raise ParseError(f'unknown tag type "{found}"')
        return cls(_TAG_NUMBERS[found], json_utils.b64decode(value, found))


class Validity(MapStruct):
    """validity-map: the period during which a manifest or signature holds."""

    fields = (
        Field("not_before", 0, "not-before", TIME),
        Field("not_after", 1, "not-after", TIME, optional=False),
    )

    def __init__(self, not_after: Optional[datetime] = None, not_before: Optional[datetime] = None):
        super().__init__(not_before=not_before, not_after=not_after)

    def valid(self) -> None:
        if self.not_after is None:
            raise ValidationError("no not-after set")
        if self.not_before is not None and _utc(self.not_before) > _utc(self.not_after):
            raise ValidationError("invalid not-before / not-after: not-before is after not-after")

    def check(self, now: Optional[datetime] = None) -> None:
        """Raise ValidationError unless ``now`` falls inside the period."""
        self.valid()
        now = _utc(now or datetime.now(timezone.utc))
        if self.not_before is not None and now < _utc(self.not_before):
            raise ValidationError("validity period has not started yet")
        if now > _utc(self.not_after):
            raise ValidationError("validity period has expired")


def _utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class Locator(MapStruct):
    """corim-locator-map: where to find a dependent manifest."""

    fields = (
        Field("href", 0, "href", URI, optional=False),
        Field("thumbprint", 1, "thumbprint", THUMBPRINT),
    )

    def __init__(self, href: Union[str, TaggedURI, None] = None,
                 thumbprint: Optional[HashEntry] = None):
        if isinstance(href, str):
            href = TaggedURI(href)
        super().__init__(href=href, thumbprint=thumbprint)

    def valid(self) -> None:
        if self.href is None:
            raise ValidationError("empty href")
        try:
            check_absolute_uri(self.href.value)
        except ValidationError as err:
            raise err.wrap("invalid href") from err
        if self.thumbprint is not None:
            try:
                self.thumbprint.valid()
            except ValidationError as err:
                raise err.wrap("invalid locator thumbprint") from err


class UnsignedCorim(MapStruct):
    """corim-map, carried under CBOR tag 501."""

    fields = (
        Field("id", 0, "corim-id", model(TagID), optional=False),
        Field("tags", 1, "tags", ListCodec(model(CorimTag), "tag"), optional=False),
        Field("dependent_rims", 2, "dependent-rims", ListCodec(model(Locator), "locator")),
        Field("profile", 3, "profile", model(ProfileID)),
        Field("rim_validity", 4, "validity", model(Validity)),
        Field("entities", 5, "entities", ListCodec(model(CorimEntity), "entity")),
    )
    extensible = True
    constrainer = "constrain_corim"

    def __init__(self, **values: Any):
        if isinstance(values.get("id"), (str, bytes)):
            values["id"] = TagID(values["id"])
        super().__init__(**values)
        self.ext_map: Optional[ExtensionMap] = None

    def set_id(self, corim_id: Any) -> "UnsignedCorim":
        self.id = corim_id if isinstance(corim_id, TagID) else TagID(corim_id)
        return self

    def add_comid(self, comid: Comid) -> "UnsignedCorim":
        """Validate ``comid`` and append it as a CoMID tag."""
        comid.valid()
        return self._add_tag(CorimTag(COMID_TAG, comid.to_cbor()))

    def add_coswid(self, body: bytes) -> "UnsignedCorim":
        """Append an encoded CoSWID (untagged ``concise-swid-tag`` map)."""
        return self._add_tag(CorimTag(COSWID_TAG, body))

    def add_cots(self, body: bytes) -> "UnsignedCorim":
        return self._add_tag(CorimTag(COTS_TAG, body))

    def _add_tag(self, tag: CorimTag) -> "UnsignedCorim":
        self.tags = (self.tags or []) + [tag]
        return self

    def add_dependent_rim(self, href: str, thumbprint: Optional[HashEntry] = None) -> "UnsignedCorim":
        locator = Locator(href, thumbprint)
        locator.valid()
        self.dependent_rims = (self.dependent_rims or []) + [locator]
        return self

    def set_profile(self, profile: Union[str, ProfileID]) -> "UnsignedCorim":
        self.profile = ProfileID(profile)
        return self

    def set_rim_validity(self, not_after: datetime,
                         not_before: Optional[datetime] = None) -> "UnsignedCorim":
        validity = Validity(not_after, not_before)
        validity.valid()
        self.rim_validity = validity
        return self

    def add_entity(self, name: str, regid: Optional[str] = None, *roles: Any) -> "UnsignedCorim":
        entity = CorimEntity(name=name, regid=regid).set_roles(*roles)
        self.entities = (self.entities or []) + [entity]
        return self

    def comids(self) -> list[Comid]:
        """Decode every CoMID tag, with this manifest's extensions attached."""
        return [tag.comid(self.ext_map) for tag in self.tags or [] if tag.number == COMID_TAG]

    def register_extensions(self, ext_map: Optional[ExtensionMap]) -> None:
        """Attach a profile's extensions to this manifest and its entities.

        The map is kept so that embedded CoMIDs are decoded with it.
        """
        if not ext_map:
            return
        self.ext_map = ext_map
        self.register_extension(ext_map.get(ExtensionPoint.UNSIGNED_CORIM))
        entity_ext = ext_map.get(ExtensionPoint.CORIM_ENTITY)
        for entity in self.entities or []:
            entity.register_extension(entity_ext)
        logger.debug("registered extensions on unsigned CoRIM %s", self.id)

    def valid(self) -> None:
        if self.id is None or self.id.is_empty():
            raise ValidationError("empty id")
        try:
            self.id.valid()
        except ValidationError as err:
            raise err.wrap("invalid id") from err
        if not self.tags:
            raise ValidationError("tags validation failed: no tags")
        for i, tag in enumerate(self.tags):
            try:
                tag.valid(self.ext_map)
            except ValidationError as err:
                raise err.wrap(f"tag at index {i}") from err
        for i, locator in enumerate(self.dependent_rims or []):
            try:
                locator.valid()
            except ValidationError as err:
                raise err.wrap(f"dependent RIM at index {i}") from err
        if self.rim_validity is not None:
            try:
                self.rim_validity.valid()
            except ValidationError as err:
                raise err.wrap("invalid rim-validity") from err
        try:
            validate_entities(self.entities)
        except ValidationError as err:
            raise err.wrap("entities validation failed") from err
        self.valid_extensions()

    def to_cbor(self) -> bytes:
        """Serialize to deterministic CBOR under tag 501."""
        return cbor_utils.encode_tagged(UNSIGNED_CORIM_TAG, self.to_cbor_data())

    @classmethod
    def from_cbor(cls, data: bytes, ext_map: Optional[ExtensionMap] = None) -> "UnsignedCorim":
        """Deserialize a tag-501 unsigned CoRIM.

        Args:
            data: CBOR bytes starting with tag 501
            ext_map: Extensions to attach after decoding (profile-aware
                decoding lives in :mod:`corim.profile`)
        """
        content = cbor_utils.decode_tagged(data, UNSIGNED_CORIM_TAG, "unsigned CoRIM")
        corim = cls.from_cbor_data(content)
        corim.register_extensions(ext_map)
        return corim

    @classmethod
    def from_json(cls, data: Union[str, bytes],
                  ext_map: Optional[ExtensionMap] = None) -> "UnsignedCorim":
        corim = cls.from_json_data(json_utils.loads(data))
        corim.register_extensions(ext_map)
        return corim


def profile_of(content: Any, key: Any) -> Optional[ProfileID]:
    """Read only the profile member out of a decoded map.

    Returns ``None`` when the map carries no profile.

    Raises:
        ParseError: If the profile member is malformed
    """
    if not isinstance(content, dict) or key not in content:
        return None
    if isinstance(key, str):
        return ProfileID.from_json_data(content[key])
    return ProfileID.from_cbor_data(content[key])
