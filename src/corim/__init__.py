"""CoRIM: Concise Reference Integrity Manifests, CoMID and Concise Evidence."""

import logging

# Hide module imports
from . import (
    cbor_utils,
    coev,
    comid,
    cryptokeys,
    digests,
    environment,
    errors,
    expressions,
    extensions,
    ids,
    measurement,
    meta,
    profile,
    signed_corim,
    signers,
    triples,
    unsigned_corim,
    validation,
    verifiers,
)
from .coev import ConciseEvidence, EvTriples, new_evidence_id
from .comid import Comid, LinkedTag, TagIdentity
from .cryptokeys import new_cose_key, new_crypto_key, new_pkix_base64_key
from .digests import Digests, HashEntry
from .entity import ComidEntity, CorimEntity
from .environment import Class, Environment, new_class_id, new_group, new_instance
from .errors import (
    CorimError,
    MarshalError,
    ParseError,
    RegistrationError,
    SignatureError,
    UnsupportedError,
    ValidationError,
)
from .expressions import NumericExpression, SetDigestExpression, SetStringExpression
from .extensions import ExtensionMap, ExtensionPoint, ExtensionValue
from .ids import ProfileID, TagID
from .measurement import Measurement, Mval, new_mkey
from .meta import Meta, Signer
from .profile import (
    get_profile_manifest,
    register_profile,
    registered_profiles,
    unmarshal_and_validate_concise_evidence_from_cbor,
    unmarshal_and_validate_signed_corim_from_cbor,
    unmarshal_and_validate_unsigned_corim_from_cbor,
    unmarshal_and_validate_unsigned_corim_from_json,
    unmarshal_comid_from_cbor,
    unmarshal_comid_from_json,
    unmarshal_concise_evidence_from_cbor,
    unmarshal_concise_evidence_from_json,
    unmarshal_signed_corim_from_cbor,
    unmarshal_unsigned_corim_from_cbor,
    unmarshal_unsigned_corim_from_json,
    unregister_profile,
)
from .signed_corim import SignedCorim
from .signers import generate_es256_key_pair, signer_from_pem, signer_from_private_key
from .triples import KeyTriple, Triples, ValueTriple
from .unsigned_corim import Locator, UnsignedCorim, Validity
from .validation import CorimValidator
from .verifiers import verifier_for

# Register the built-in profiles
from . import profiles

del (
    cbor_utils, coev, comid, cryptokeys, digests, environment, errors, expressions,
    extensions, ids, measurement, meta, profile, signed_corim, signers, triples,
    unsigned_corim, validation, verifiers,
)

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"


__all__ = [
    "__version__",
    # Errors
    "CorimError",
    "MarshalError",
    "ParseError",
    "ValidationError",
    "SignatureError",
    "RegistrationError",
    "UnsupportedError",
    # Document model
    "UnsignedCorim",
    "Locator",
    "Validity",
    "Comid",
    "TagIdentity",
    "LinkedTag",
    "ComidEntity",
    "CorimEntity",
    "Triples",
    "ValueTriple",
    "KeyTriple",
    "Environment",
    "Class",
    "Measurement",
    "Mval",
    "Digests",
    "HashEntry",
    "TagID",
    "ProfileID",
    # Choice constructors
    "new_class_id",
    "new_instance",
    "new_group",
    "new_mkey",
    "new_crypto_key",
    "new_pkix_base64_key",
    "new_cose_key",
    # Expressions
    "NumericExpression",
    "SetDigestExpression",
    "SetStringExpression",
    # Signed CoRIM
    "SignedCorim",
    "Meta",
    "Signer",
    "signer_from_private_key",
    "signer_from_pem",
    "generate_es256_key_pair",
    "verifier_for",
    # Extensions and profiles
    "ExtensionPoint",
    "ExtensionValue",
    "ExtensionMap",
    "register_profile",
    "unregister_profile",
    "get_profile_manifest",
    "registered_profiles",
    "profiles",
    # Profile-aware decoding
    "unmarshal_unsigned_corim_from_cbor",
    "unmarshal_unsigned_corim_from_json",
    "unmarshal_and_validate_unsigned_corim_from_cbor",
    "unmarshal_and_validate_unsigned_corim_from_json",
    "unmarshal_comid_from_cbor",
    "unmarshal_comid_from_json",
    "unmarshal_signed_corim_from_cbor",
    "unmarshal_and_validate_signed_corim_from_cbor",
    "unmarshal_concise_evidence_from_cbor",
    "unmarshal_concise_evidence_from_json",
    "unmarshal_and_validate_concise_evidence_from_cbor",
    # Concise Evidence
    "ConciseEvidence",
    "EvTriples",
    "new_evidence_id",
    # Validation
    "CorimValidator",
]
