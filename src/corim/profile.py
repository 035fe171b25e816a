"""Profile registry and profile-aware decoding.

A profile is identified by an EAT profile identifier (URI or OID) and
bundles the extension values that apply to documents claiming it. The
``unmarshal_*`` functions read only the profile member of a document first,
look the profile up, and attach its extensions after decoding. Documents
with an unregistered (or no) profile still decode: their extension data
stays in the field caches and round-trips unvalidated.
"""

import logging
import threading
from typing import Optional, Union

from . import cbor_utils, json_utils
from .cbor_utils import CONCISE_EVIDENCE_TAG, UNSIGNED_CORIM_TAG
from .coev import ConciseEvidence
from .comid import Comid
from .cose_sign1 import cose_sign1_decode
from .errors import RegistrationError, ValidationError
from .extensions import ExtensionMap, ExtensionPoint, check_extension_map
from .ids import ProfileID
from .signed_corim import SignedCorim, strip_legacy_prefix
from .unsigned_corim import UnsignedCorim, profile_of

logger = logging.getLogger(__name__)

ProfileLike = Union[str, ProfileID, None]

# CBOR keys / JSON names of the profile member
CORIM_PROFILE_KEY = 3
COEV_PROFILE_KEY = 2
PROFILE_JSON_NAME = "profile"


class ProfileManifest:
    """A registered profile: its identifier and its extension values.

    Args:
        profile_id: The EAT profile identifier
        ext_map: Extension values keyed by extension point
    """

    def __init__(self, profile_id: ProfileID, ext_map: ExtensionMap):
        self.id = profile_id
        self.ext_map = ext_map

    def __repr__(self) -> str:
        points = ", ".join(point.value for point in self.ext_map)
        return f"ProfileManifest({self.id!s}, [{points}])"

    def get_unsigned_corim(self) -> UnsignedCorim:
        """Return an empty unsigned CoRIM wired to this profile's extensions."""
        corim = UnsignedCorim(profile=self.id)
        corim.register_extensions(self.ext_map)
        return corim

    def get_comid(self) -> Comid:
        """Return an empty CoMID wired to this profile's extensions."""
        comid = Comid()
        comid.register_extensions(self.ext_map)
        return comid

    def get_concise_evidence(self) -> ConciseEvidence:
        evidence = ConciseEvidence(profile=self.id)
        evidence.register_extensions(self.ext_map)
        return evidence


_profiles: dict[str, ProfileManifest] = {}
_profiles_lock = threading.Lock()


def _profile_id(profile: Union[str, ProfileID]) -> ProfileID:
    return profile if isinstance(profile, ProfileID) else ProfileID(profile)


def register_profile(profile: Union[str, ProfileID], ext_map: ExtensionMap) -> None:
    """Register a profile's extension values.

    Args:
        profile: EAT profile identifier (URI or dotted OID)
        ext_map: Extension values keyed by :class:`ExtensionPoint`

    Raises:
        RegistrationError: If the profile is already registered, a point is
            unknown, or a value is not an ExtensionValue instance
    """
    try:
        profile_id = _profile_id(profile)
    except ValidationError as err:
        raise RegistrationError(f"invalid profile identifier: {err}") from err
    check_extension_map(ext_map, set(ExtensionPoint))
    with _profiles_lock:
        if str(profile_id) in _profiles:
            raise RegistrationError(f'profile with id "{profile_id}" already registered')
        _profiles[str(profile_id)] = ProfileManifest(profile_id, ExtensionMap(ext_map))
    logger.debug("registered profile %s (%s)", profile_id, ", ".join(p.value for p in ext_map))


def unregister_profile(profile: ProfileLike) -> bool:
    """Remove a profile registration.

    Returns:
        True if the profile was registered
    """
    if profile is None:
        return False
    with _profiles_lock:
        removed = _profiles.pop(str(profile), None)
    if removed is not None:
        logger.debug("unregistered profile %s", profile)
    return removed is not None


def get_profile_manifest(profile: ProfileLike) -> tuple[Optional[ProfileManifest], bool]:
    """Look up a registered profile.

    Returns:
        Tuple of (manifest or None, whether the profile is registered)
    """
    if profile is None:
        return None, False
    with _profiles_lock:
        manifest = _profiles.get(str(profile))
    return manifest, manifest is not None


def registered_profiles() -> list[str]:
    with _profiles_lock:
        return sorted(_profiles)


def _ext_map_for(profile: ProfileLike) -> Optional[ExtensionMap]:
    manifest, found = get_profile_manifest(profile)
    if found:
        logger.debug("decoding with profile %s", profile)
        return manifest.ext_map
    if profile is not None:
        logger.debug("profile %s is not registered, decoding without extensions", profile)
    return None


def unmarshal_unsigned_corim_from_cbor(data: bytes, profile: ProfileLike = None) -> UnsignedCorim:
    """Decode a tag-501 unsigned CoRIM using the profile it declares.

    Args:
        data: CBOR bytes
        profile: Profile to use instead of the one found in the document

    Raises:
        ParseError: If the data is malformed
    """
    if profile is None:
        content = cbor_utils.decode_tagged(data, UNSIGNED_CORIM_TAG, "unsigned CoRIM")
        profile = profile_of(content, CORIM_PROFILE_KEY)
    return UnsignedCorim.from_cbor(data, _ext_map_for(profile))


def unmarshal_unsigned_corim_from_json(
    data: Union[str, bytes], profile: ProfileLike = None
) -> UnsignedCorim:
    if profile is None:
        profile = profile_of(json_utils.loads(data), PROFILE_JSON_NAME)
    return UnsignedCorim.from_json(data, _ext_map_for(profile))


def unmarshal_comid_from_cbor(data: bytes, profile: ProfileLike = None) -> Comid:
    """Decode an untagged CoMID under ``profile``.

    A CoMID does not name its profile; it comes from the enclosing CoRIM.
    """
    comid = Comid.from_cbor(data)
    comid.register_extensions(_ext_map_for(profile))
    return comid


def unmarshal_comid_from_json(data: Union[str, bytes], profile: ProfileLike = None) -> Comid:
    comid = Comid.from_json(data)
    comid.register_extensions(_ext_map_for(profile))
    return comid


def unmarshal_signed_corim_from_cbor(data: bytes, profile: ProfileLike = None) -> SignedCorim:
    """Decode a COSE_Sign1 signed CoRIM using the profile its payload declares."""
    if profile is None:
        _, _, payload, _, _ = cose_sign1_decode(strip_legacy_prefix(data))
        content = cbor_utils.decode_tagged(payload, UNSIGNED_CORIM_TAG, "unsigned CoRIM")
        profile = profile_of(content, CORIM_PROFILE_KEY)
    return SignedCorim.from_cose(data, _ext_map_for(profile))


def validate_unsigned_corim(corim: UnsignedCorim) -> None:
    """Validate a CoRIM and every CoMID it carries under the CoRIM's profile.

    A CoRIM without attached extensions gets those of the profile it declares.

    Raises:
        ValidationError: At the first failure, prefixed with the tag index
    """
    if corim.ext_map is None:
        corim.register_extensions(_ext_map_for(corim.profile))
    corim.valid()


def unmarshal_and_validate_unsigned_corim_from_cbor(
    data: bytes, profile: ProfileLike = None
) -> UnsignedCorim:
    corim = unmarshal_unsigned_corim_from_cbor(data, profile)
    validate_unsigned_corim(corim)
    return corim


def unmarshal_and_validate_unsigned_corim_from_json(
    data: Union[str, bytes], profile: ProfileLike = None
) -> UnsignedCorim:
    corim = unmarshal_unsigned_corim_from_json(data, profile)
    validate_unsigned_corim(corim)
    return corim


def unmarshal_and_validate_signed_corim_from_cbor(
    data: bytes, profile: ProfileLike = None
) -> SignedCorim:
    signed = unmarshal_signed_corim_from_cbor(data, profile)
    validate_unsigned_corim(signed.unsigned)
    return signed


def unmarshal_concise_evidence_from_cbor(
    data: bytes, profile: ProfileLike = None
) -> ConciseEvidence:
    """Decode a tag-571 Concise Evidence using the profile it declares (key 2)."""
    if profile is None:
        content = cbor_utils.decode_tagged(data, CONCISE_EVIDENCE_TAG, "concise evidence")
        profile = profile_of(content, COEV_PROFILE_KEY)
    return ConciseEvidence.from_cbor(data, _ext_map_for(profile))


def unmarshal_concise_evidence_from_json(
    data: Union[str, bytes], profile: ProfileLike = None
) -> ConciseEvidence:
    if profile is None:
        profile = profile_of(json_utils.loads(data), PROFILE_JSON_NAME)
    return ConciseEvidence.from_json(data, _ext_map_for(profile))


def unmarshal_and_validate_concise_evidence_from_cbor(
    data: bytes, profile: ProfileLike = None
) -> ConciseEvidence:
    evidence = unmarshal_concise_evidence_from_cbor(data, profile)
    evidence.valid()
    return evidence
