"""Arm CCA endorsement profiles.

Two profiles are registered on import:

``tag:arm.com,2025:cca_platform#1.0.0``
    Platform reference values reuse the PSA implementation id and signer id
    rules. Each reference value lists at least one ``cca.software-component``
    measurement (digests and signer id) and exactly one
    ``cca.platform-config`` measurement (raw value and mask).

``tag:arm.com,2025:cca_realm#1.0.0``
    A realm is identified by its Realm Initial Measurement (RIM) carried as
    a 32, 48 or 64-byte tagged-bytes class id. Measurements are keyed
    ``cca.rim`` (mandatory), ``cca.rem0`` to ``cca.rem3`` and ``cca.rpv``.
"""

from typing import Any, Optional, Union

from ..choice import ChoiceValue
from ..encoding import type_name
from ..environment import Environment, new_class_id
from ..errors import ParseError, ValidationError
from ..extensions import ExtensionMap, ExtensionPoint, ExtensionValue
from ..ids import UEID, TaggedBytes, TextValue
from ..measurement import Measurement, register_mkey_type
from ..profile import register_profile
from ..triples import Triples, ValueTriple
from .psa import (
    check_attest_verif_key,
    check_implementation_id,
    check_signer_id,
    new_psa_impl_id_class_id,
    new_psa_instance_id,
)

PLATFORM_PROFILE_ID = "tag:arm.com,2025:cca_platform#1.0.0"
REALM_PROFILE_ID = "tag:arm.com,2025:cca_realm#1.0.0"

PLATFORM_CONFIG_ID_TAG = 602

SOFTWARE_COMPONENT_MKEY = "cca.software-component"
PLATFORM_CONFIG_MKEY = "cca.platform-config"

RIM_MKEY = "cca.rim"
RPV_MKEY = "cca.rpv"
REM_MKEYS = ("cca.rem0", "cca.rem1", "cca.rem2", "cca.rem3")

DIGEST_SIZES = (32, 48, 64)


class CCAPlatformConfigID(ChoiceValue):
    """Label of the CCA platform configuration measurement (tag 602)."""

    type_name = "cca.platform-config-id"
    cbor_tag = PLATFORM_CONFIG_ID_TAG

    def valid(self) -> None:
        if not isinstance(self.value, str) or not self.value:
            raise ValidationError("empty CCA platform config ID")

    @classmethod
    def from_cbor_inner(cls, inner: Any) -> "CCAPlatformConfigID":
        if not isinstance(inner, str):
            raise ParseError(f"expected text string for {cls.type_name}, got {type_name(inner)}")
        return cls(inner)

    from_json_value = from_cbor_inner


def new_platform_config_id(label: str) -> CCAPlatformConfigID:
    config_id = CCAPlatformConfigID(label)
    config_id.valid()
    return config_id


def new_platform_impl_id_class_id(value: Union[bytes, str]) -> TaggedBytes:
    """Class id for a 32-byte CCA platform implementation id."""
    return new_psa_impl_id_class_id(value)


def new_platform_instance_id(value: Union[bytes, str]) -> UEID:
    """Instance for a 33-byte CCA platform instance id (RAND UEID)."""
    return new_psa_instance_id(value)


def new_realm_rim_class_id(value: Union[bytes, str]) -> TaggedBytes:
    """Class id carrying a Realm Initial Measurement.

    Raises:
        ValidationError: If the RIM is not 32, 48 or 64 bytes
    """
    class_id = new_class_id(value, TaggedBytes.type_name)
    if len(class_id.value) not in DIGEST_SIZES:
        raise ValidationError(f"RIM must be 32, 48, or 64 bytes, got {len(class_id.value)}")
    return class_id


def _mkey_name(measurement: Measurement, prefix: str) -> str:
    key = measurement.key
    if key is None:
        raise ValidationError(f"{prefix}: mkey is mandatory but not set")
    if isinstance(key, CCAPlatformConfigID):
        return PLATFORM_CONFIG_MKEY
    if not isinstance(key, TextValue):
        raise ValidationError(f"{prefix}: mkey must be of type 'string', got '{key.type_name}'")
    return key.value


def _check_digest_sizes(digests: Optional[list], prefix: str) -> None:
    if not digests:
        raise ValidationError(f"{prefix}: digests field is mandatory but not set")
    for i, digest in enumerate(digests):
        if len(digest.value) not in DIGEST_SIZES:
            raise ValidationError(
                f"{prefix}, digest at index {i}: hash value must be 32, 48, or 64 bytes, "
                f"got {len(digest.value)}"
            )


def _check_software_component(measurement: Measurement, prefix: str) -> None:
    mval = measurement.value
    _check_digest_sizes(mval.digests, prefix)
    check_signer_id(mval.crypto_keys, prefix)
    if mval.version is not None and mval.version.scheme is not None:
        raise ValidationError(
            f"{prefix}: version-scheme field MUST NOT be present in {SOFTWARE_COMPONENT_MKEY}"
        )


def _check_platform_config(measurement: Measurement, prefix: str) -> None:
    mval = measurement.value
    if mval.raw_value is None:
        raise ValidationError(f"{prefix}: raw-value is mandatory for {PLATFORM_CONFIG_MKEY}")
    if mval.raw_value_mask is None:
        raise ValidationError(f"{prefix}: raw-value-mask is mandatory for {PLATFORM_CONFIG_MKEY}")


def _check_platform_reference_value(triple: ValueTriple, prefix: str) -> None:
    check_implementation_id(triple.environment, prefix)
    software_components = 0
    platform_configs = 0
    for j, measurement in enumerate(triple.measurements or []):
        where = f"{prefix}, measurement at index {j}"
        mkey = _mkey_name(measurement, where)
        if mkey == SOFTWARE_COMPONENT_MKEY:
            _check_software_component(measurement, where)
            software_components += 1
        elif mkey == PLATFORM_CONFIG_MKEY:
            _check_platform_config(measurement, where)
            platform_configs += 1
        else:
            raise ValidationError(
                f'{where}: invalid mkey "{mkey}", expected "{SOFTWARE_COMPONENT_MKEY}" '
                f'or "{PLATFORM_CONFIG_MKEY}"'
            )
    if not software_components:
        raise ValidationError(f"{prefix}: at least one software component measurement is required")
    if platform_configs != 1:
        raise ValidationError(
            f"{prefix}: exactly one platform-config measurement is required, found {platform_configs}"
        )


class PlatformTriplesConstraints(ExtensionValue):
    """Triples constrainer for the CCA platform profile."""

    def valid_triples(self, triples: Triples) -> None:
        for i, triple in enumerate(triples.reference_values or []):
            _check_platform_reference_value(triple, f"platform reference value at index {i}")
        for i, triple in enumerate(triples.attest_verif_keys or []):
            check_attest_verif_key(triple, f"platform attestation verification key at index {i}")


def _check_rim(env: Optional[Environment], prefix: str) -> None:
    class_id = env.class_id() if env is not None else None
    if class_id is None:
        raise ValidationError(f"{prefix}: environment class id (RIM) is required")
    if not isinstance(class_id, TaggedBytes):
        raise ValidationError(f"{prefix}: RIM must be of type 'bytes', got '{class_id.type_name}'")
    if len(class_id.value) not in DIGEST_SIZES:
        raise ValidationError(f"{prefix}: RIM must be 32, 48, or 64 bytes, got {len(class_id.value)}")


def _check_realm_measurement(measurement: Measurement, prefix: str) -> None:
    digests = measurement.value.digests
    if not digests:
        raise ValidationError(f"{prefix}: digests field is mandatory but not set")
    if len(digests) != 1:
        raise ValidationError(f"{prefix}: digests must contain exactly one entry, got {len(digests)}")
    size = len(digests[0].value)
    if size not in DIGEST_SIZES:
        raise ValidationError(f"{prefix}: hash value must be 32, 48, or 64 bytes, got {size}")


def _check_realm_reference_value(triple: ValueTriple, index: int) -> None:
    prefix = f"realm reference value at index {index}"
    _check_rim(triple.environment, prefix)
    has_rim = False
    for j, measurement in enumerate(triple.measurements or []):
        mkey = _mkey_name(measurement, f"{prefix}, measurement at index {j}")
        if mkey == RIM_MKEY:
            _check_realm_measurement(measurement, f"{prefix}, RIM measurement at index {j}")
            has_rim = True
        elif mkey in REM_MKEYS:
            _check_realm_measurement(measurement, f"{prefix}, REM measurement at index {j}")
        elif mkey == RPV_MKEY:
            if measurement.value.raw_value is None:
                raise ValidationError(
                    f"{prefix}, RPV measurement at index {j}: raw-value is mandatory for {RPV_MKEY}"
                )
        else:
            raise ValidationError(
                f'{prefix}, measurement at index {j}: invalid mkey "{mkey}", '
                f'expected "{RIM_MKEY}", "cca.rem0"-"cca.rem3", or "{RPV_MKEY}"'
            )
    if not has_rim:
        raise ValidationError(f"{prefix}: RIM ({RIM_MKEY}) measurement is mandatory but not found")


class RealmTriplesConstraints(ExtensionValue):
    """Triples constrainer for the CCA realm profile."""

    def valid_triples(self, triples: Triples) -> None:
        for i, triple in enumerate(triples.reference_values or []):
            _check_realm_reference_value(triple, i)


register_mkey_type(CCAPlatformConfigID)

register_profile(
    PLATFORM_PROFILE_ID,
    ExtensionMap().add(ExtensionPoint.TRIPLES, PlatformTriplesConstraints()),
)
register_profile(
    REALM_PROFILE_ID,
    ExtensionMap().add(ExtensionPoint.TRIPLES, RealmTriplesConstraints()),
)
