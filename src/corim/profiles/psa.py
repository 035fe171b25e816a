"""PSA endorsement profile (``tag:arm.com,2025:psa#1.0.0``).

The profile narrows the generic CoMID triples:

- reference values and attestation verification keys identify the platform
  through a 32-byte implementation id carried as a tagged-bytes class id;
- attestation verification keys also carry a 33-byte RAND UEID instance id
  and exactly one ``pkix-base64-key``;
- every reference-value measurement is keyed by the text
  ``psa.software-component`` and names its signer with exactly one
  tagged-bytes crypto key of 32, 48 or 64 bytes.

Reference values are checked in that order: implementation id, then for each
measurement its key and then its signer id.

Reference and endorsed measurement values may carry the PSA certification
number (key 100). The ``psa.refval-id`` measurement key (tag 601) is
registered on import.
"""

from typing import Any, Optional, Union

from ..choice import ChoiceValue
from ..cryptokeys import PKIXBase64Key
from ..encoding import BOOL, BYTES, TEXT, UINT, Field, ListCodec, model
from ..environment import Environment, new_class_id, new_instance
from ..errors import RegistrationError, ValidationError
from ..extensions import ExtensionMap, ExtensionPoint, ExtensionValue
from ..ids import UEID, TaggedBytes, TextValue
from ..measurement import Measurement, register_mkey_type
from ..model import MapStruct
from ..profile import register_profile
from ..triples import KeyTriple, Triples, ValueTriple

PROFILE_ID = "tag:arm.com,2025:psa#1.0.0"
REFVAL_ID_TAG = 601

IMPL_ID_SIZE = 32
INSTANCE_ID_SIZE = 33
SIGNER_ID_SIZES = (32, 48, 64)
SOFTWARE_COMPONENT_MKEY = "psa.software-component"

SWREL_TRIPLES_KEY = 50
SWREL_UPDATES = 1
SWREL_PATCHES = 2
SWREL_TYPES = (SWREL_UPDATES, SWREL_PATCHES)


def _kind(value: Any) -> str:
    return getattr(value, "type_name", "") or type(value).__name__


def check_signer_id(keys: Optional[list], prefix: str) -> None:
    """Require exactly one tagged-bytes signer id of 32, 48 or 64 bytes.

    Raises:
        ValidationError: Prefixed with ``prefix``
    """
    if not keys:
        raise ValidationError(f"{prefix}: crypto-keys (signer-id) is mandatory but not set")
    if len(keys) != 1:
        raise ValidationError(f"{prefix}: crypto-keys must contain exactly one entry, got {len(keys)}")
    key = keys[0]
    if not isinstance(key, TaggedBytes):
        raise ValidationError(
            f"{prefix}: crypto-keys (signer-id) must be of type 'bytes', got '{_kind(key)}'"
        )
    size = len(key.value)
    if size not in SIGNER_ID_SIZES:
        raise ValidationError(f"{prefix}: signer-id must be 32, 48, or 64 bytes (got {size})")


def check_implementation_id(env: Optional[Environment], prefix: str) -> None:
    """Require a 32-byte tagged-bytes class id."""
    class_id = env.class_id() if env is not None else None
    if class_id is None:
        raise ValidationError(f"{prefix}: environment class id (implementation id) is required")
    if not isinstance(class_id, TaggedBytes):
        raise ValidationError(
            f"{prefix}: implementation id must be of type 'bytes', got '{_kind(class_id)}'"
        )
    if len(class_id.value) != IMPL_ID_SIZE:
        raise ValidationError(
            f"{prefix}: implementation id must be {IMPL_ID_SIZE} bytes (got {len(class_id.value)})"
        )


def _is_instance_id(value: Any) -> bool:
    return (
        isinstance(value, UEID)
        and len(value.value) == INSTANCE_ID_SIZE
        and value.value[0] == 0x01
    )


def check_instance_id(env: Optional[Environment], prefix: str) -> None:
    """Require a 33-byte RAND UEID instance."""
    instance = env.instance if env is not None else None
    if instance is None:
        raise ValidationError(f"{prefix}: environment instance (instance id) is required")
    if not _is_instance_id(instance):
        raise ValidationError(f"{prefix}: instance id must be a 33-byte UEID starting with 0x01")


def check_attest_verif_key(triple: KeyTriple, prefix: str) -> None:
    """Shape shared by PSA and CCA platform attestation verification keys."""
    check_implementation_id(triple.environment, prefix)
    check_instance_id(triple.environment, prefix)
    keys = triple.verif_keys or []
    if len(keys) != 1 or not isinstance(keys[0], PKIXBase64Key):
        raise ValidationError(
            f"{prefix}: exactly one verification key of type "
            f"{PKIXBase64Key.type_name} expected"
        )


def check_software_component_mkey(measurement: Measurement, prefix: str) -> None:
    """Require the ``psa.software-component`` text measurement key."""
    key = measurement.key
    if key is None:
        raise ValidationError(f"{prefix}: mkey is mandatory but not set")
    if not isinstance(key, TextValue):
        raise ValidationError(f"{prefix}: mkey must be of type 'string', got '{_kind(key)}'")
    if key.value != SOFTWARE_COMPONENT_MKEY:
        raise ValidationError(
            f'{prefix}: mkey must be "{SOFTWARE_COMPONENT_MKEY}", got "{key.value}"'
        )


def _check_reference_value(triple: ValueTriple, prefix: str) -> None:
    check_implementation_id(triple.environment, prefix)
    for j, measurement in enumerate(triple.measurements or []):
        where = f"{prefix}, measurement at index {j}"
        check_software_component_mkey(measurement, where)
        mval = measurement.value
        check_signer_id(mval.crypto_keys if mval is not None else None, where)


class PSASwRel(MapStruct):
    """How a new software component relates to the one it replaces."""

    fields = (
        Field("type", 0, "type", UINT, optional=False),
        Field("security_critical", 1, "security-critical", BOOL, optional=False),
    )

    def valid(self) -> None:
        if self.type not in SWREL_TYPES:
            raise ValidationError(
                f"invalid PSA software relationship type: {self.type} "
                f"(must be {SWREL_UPDATES} for updates or {SWREL_PATCHES} for patches)"
            )


class PSASwRelationship(MapStruct):
    """A ``new`` measurement that updates or patches an ``old`` one."""

    fields = (
        Field("new", 0, "new", model(Measurement), optional=False),
        Field("rel", 1, "rel", model(PSASwRel), optional=False),
        Field("old", 2, "old", model(Measurement), optional=False),
    )

    def valid(self) -> None:
        if self.new is None:
            raise ValidationError("new measurement is required")
        if self.rel is None:
            raise ValidationError("relationship definition is required")
        if self.old is None:
            raise ValidationError("old measurement is required")
        try:
            self.rel.valid()
        except ValidationError as err:
            raise err.wrap("invalid relationship") from err
        for name in ("new", "old"):
            try:
                getattr(self, name).valid()
            except ValidationError as err:
                raise err.wrap(f"invalid {name} measurement") from err


class PSASwRelTriple(MapStruct):
    """psa-swrel-triple: a software relationship within an environment."""

    fields = (
        Field("environment", 0, "environment", model(Environment), optional=False),
        Field("relationship", 1, "relationship", model(PSASwRelationship), optional=False),
    )

    def valid(self) -> None:
        if self.environment is None:
            raise ValidationError("environment is required")
        try:
            self.environment.valid()
        except ValidationError as err:
            raise err.wrap("invalid environment") from err
        if self.relationship is None:
            raise ValidationError("relationship is required")
        try:
            self.relationship.valid()
        except ValidationError as err:
            raise err.wrap("invalid relationship") from err


def _new_relationship(rel_type: int, new: Measurement, old: Measurement,
                      security_critical: bool) -> PSASwRelationship:
    relationship = PSASwRelationship(
        new=new, rel=PSASwRel(type=rel_type, security_critical=security_critical), old=old
    )
    relationship.valid()
    return relationship


def new_psa_update_relationship(new: Measurement, old: Measurement,
                                security_critical: bool = False) -> PSASwRelationship:
    """Create a validated relationship in which ``new`` updates ``old``."""
    return _new_relationship(SWREL_UPDATES, new, old, security_critical)


def new_psa_patch_relationship(new: Measurement, old: Measurement,
                               security_critical: bool = False) -> PSASwRelationship:
    """Create a validated relationship in which ``new`` patches ``old``."""
    return _new_relationship(SWREL_PATCHES, new, old, security_critical)


class TriplesConstraints(ExtensionValue):
    """Triples extension for the PSA profile.

    Carries the ``psa-swrel-triples`` family (key 50) and constrains the
    reference-value and attestation-key families.
    """

    fields = (
        Field("swrel_triples", SWREL_TRIPLES_KEY, "psa-swrel-triples",
              ListCodec(model(PSASwRelTriple), "PSA software relationship triple")),
    )

    def valid(self) -> None:
        for i, triple in enumerate(self.swrel_triples or []):
            try:
                triple.valid()
            except ValidationError as err:
                raise err.wrap(f"invalid PSA software relationship triple at index {i}") from err

    def valid_triples(self, triples: Triples) -> None:
        for i, triple in enumerate(triples.reference_values or []):
            _check_reference_value(triple, f"reference value at index {i}")
        for i, triple in enumerate(triples.attest_verif_keys or []):
            check_attest_verif_key(triple, f"attester verification key at index {i}")


def add_psa_swrel_triple(triples: Triples, triple: PSASwRelTriple) -> Triples:
    """Append to the ``psa-swrel-triples`` family of PSA-registered triples.

    Raises:
        RegistrationError: If the PSA triples extension is not registered
    """
    ext = triples.extensions.value if triples.extensions is not None else None
    if not isinstance(ext, TriplesConstraints):
        raise RegistrationError("PSA triples extension not registered")
    ext.swrel_triples = (ext.swrel_triples or []) + [triple]
    return triples


class MvalExtensions(ExtensionValue):
    """PSA measurement-values-map members."""

    fields = (Field("cert_num", 100, "psa-cert-num", TEXT),)

    def valid(self) -> None:
        if self.cert_num is not None and not self.cert_num:
            raise ValidationError("empty psa-cert-num")


class _RefValIDMap(MapStruct):
    fields = (
        Field("label", 1, "label", TEXT),
        Field("version", 4, "version", TEXT),
        Field("signer_id", 5, "signer-id", BYTES, optional=False),
    )


class PSARefValID(ChoiceValue):
    """PSA software component identifier used as a measurement key (tag 601).

    Args:
        signer_id: Hash of the component signer's public key (32, 48 or 64 bytes)
        label: Component label, e.g. ``"BL"``
        version: Component version string
    """

    type_name = "psa.refval-id"
    cbor_tag = REFVAL_ID_TAG

    def __init__(self, signer_id: bytes = b"", label: Optional[str] = None,
                 version: Optional[str] = None):
        super().__init__(_RefValIDMap(label=label, version=version, signer_id=bytes(signer_id)))

    def __repr__(self) -> str:
        return (
            f"PSARefValID(signer_id={self.signer_id.hex()}, "
            f"label={self.label!r}, version={self.version!r})"
        )

    @property
    def signer_id(self) -> bytes:
        return self.value.signer_id

    @property
    def label(self) -> Optional[str]:
        return self.value.label

    @property
    def version(self) -> Optional[str]:
        return self.value.version

    def set_label(self, label: str) -> "PSARefValID":
        self.value.label = label
        return self

    def set_version(self, version: str) -> "PSARefValID":
        self.value.version = version
        return self

    @classmethod
    def factory(cls, value: Any) -> "PSARefValID":
        """Accept a signer id or a dict with ``signer_id``, ``label`` and ``version``."""
        if isinstance(value, dict):
            return cls(**value)
        return cls(value)

    def valid(self) -> None:
        if not self.signer_id:
            raise ValidationError("missing mandatory signer ID")
        if len(self.signer_id) not in SIGNER_ID_SIZES:
            raise ValidationError(f"want 32, 48 or 64 bytes, got {len(self.signer_id)}")

    def cbor_inner(self) -> dict:
        return self.value.to_cbor_data()

    @classmethod
    def from_cbor_inner(cls, inner: Any) -> "PSARefValID":
        fields = _RefValIDMap.from_cbor_data(inner)
        return cls(fields.signer_id, fields.label, fields.version)

    def json_value(self) -> dict:
        return self.value.to_json_data()

    @classmethod
    def from_json_value(cls, value: Any) -> "PSARefValID":
        fields = _RefValIDMap.from_json_data(value)
        return cls(fields.signer_id, fields.label, fields.version)


def new_psa_refval_id(signer_id: bytes, label: Optional[str] = None,
                      version: Optional[str] = None) -> PSARefValID:
    """Create a validated ``psa.refval-id`` measurement key."""
    refval_id = PSARefValID(signer_id, label, version)
    refval_id.valid()
    return refval_id


def new_psa_impl_id_class_id(value: Union[bytes, str]) -> TaggedBytes:
    """Create the tagged-bytes class id for a 32-byte implementation id.

    Args:
        value: Raw bytes or their base64 text

    Raises:
        ValidationError: If the value is not 32 bytes long
    """
    class_id = new_class_id(value, TaggedBytes.type_name)
    if len(class_id.value) != IMPL_ID_SIZE:
        raise ValidationError(
            f"implementation id must be {IMPL_ID_SIZE} bytes (got {len(class_id.value)})"
        )
    return class_id


def new_psa_instance_id(value: Union[bytes, str]) -> UEID:
    """Create the UEID instance for a 33-byte RAND instance id."""
    instance = new_instance(value, UEID.type_name)
    if not _is_instance_id(instance):
        raise ValidationError("instance id must be a 33-byte UEID starting with 0x01")
    return instance


register_mkey_type(PSARefValID)

_mval_extensions = MvalExtensions()
register_profile(
    PROFILE_ID,
    ExtensionMap()
    .add(ExtensionPoint.TRIPLES, TriplesConstraints())
    .add(ExtensionPoint.REFERENCE_VALUE, _mval_extensions)
    .add(ExtensionPoint.ENDORSED_VALUE, _mval_extensions),
)
