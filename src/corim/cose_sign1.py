"""COSE Sign1 implementation with pluggable signers and verifiers.

This module provides generic COSE Sign1 signing and verification functions
that accept signer and verifier objects, allowing keys to be managed
externally, plus ``cryptography``-backed signers and verifiers for the
ECDSA, EdDSA and RSASSA-PSS COSE algorithms.
"""

import logging
from typing import Any, Optional, Protocol

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, ed448, ed25519, padding, rsa, utils

from . import cbor_utils
from .cbor_utils import COSE_SIGN1_TAG
from .errors import ParseError, SignatureError, UnsupportedError

logger = logging.getLogger(__name__)

# COSE algorithm identifiers
ALG_ES256 = -7
ALG_ES384 = -35
ALG_ES512 = -36
ALG_EDDSA = -8
ALG_PS256 = -37
ALG_PS384 = -38
ALG_PS512 = -39

# COSE header labels
HEADER_ALG = 1
HEADER_CONTENT_TYPE = 3
HEADER_KID = 4

# algorithm -> (hash, curve, coordinate size)
ECDSA_PARAMS = {
    ALG_ES256: (hashes.SHA256, ec.SECP256R1, 32),
    ALG_ES384: (hashes.SHA384, ec.SECP384R1, 48),
    ALG_ES512: (hashes.SHA512, ec.SECP521R1, 66),
}

PSS_HASHES = {
    ALG_PS256: hashes.SHA256,
    ALG_PS384: hashes.SHA384,
    ALG_PS512: hashes.SHA512,
}

ALGORITHM_NAMES = {
    ALG_ES256: "ES256",
    ALG_ES384: "ES384",
    ALG_ES512: "ES512",
    ALG_EDDSA: "EdDSA",
    ALG_PS256: "PS256",
    ALG_PS384: "PS384",
    ALG_PS512: "PS512",
}


class Signer(Protocol):
    """Protocol for COSE Sign1 signers."""

    def sign(self, message: bytes) -> bytes:
        """Sign a message and return the signature.

        Args:
            message: The message to sign

        Returns:
            The signature bytes
        """

    @property
    def algorithm(self) -> int:
        """Get the COSE algorithm identifier.

        Returns:
            COSE algorithm identifier (e.g., -7 for ES256)
        """


class Verifier(Protocol):
    """Protocol for COSE Sign1 verifiers."""

    def verify(self, message: bytes, signature: bytes) -> bool:
        """Verify a signature on a message.

        Args:
            message: The message that was signed
            signature: The signature to verify

        Returns:
            True if signature is valid, False otherwise
        """


def sig_structure(protected_header_bytes: bytes, payload: bytes, external_aad: bytes = b"") -> bytes:
    """Build the ``Signature1`` Sig_structure that is signed."""
    return cbor_utils.encode(["Signature1", protected_header_bytes, external_aad, payload])


def cose_sign1_sign(
    payload: bytes,
    signer: Signer,
    protected_header: Optional[dict[int, Any]] = None,
    unprotected_header: Optional[dict[int, Any]] = None,
    external_aad: bytes = b"",
) -> bytes:
    """Create a COSE Sign1 message.

    Args:
        payload: The payload to sign
        signer: A signer object that implements the sign method
        protected_header: Protected header parameters (will be integrity protected)
        unprotected_header: Unprotected header parameters
        external_aad: External additional authenticated data

    Returns:
        CBOR-encoded COSE Sign1 message with tag 18

    Raises:
        SignatureError: If the signer fails
    """
    protected_header = dict(protected_header or {})
    if HEADER_ALG not in protected_header:
        protected_header[HEADER_ALG] = signer.algorithm

    protected_header_bytes = cbor_utils.encode(protected_header)

    try:
        signature = signer.sign(sig_structure(protected_header_bytes, payload, external_aad))
    except (ValueError, TypeError) as exc:
        raise SignatureError(f"signing failed: {exc}") from exc

    cose_sign1 = [
        protected_header_bytes,
        dict(unprotected_header or {}),
        payload,
        signature,
    ]
    return cbor_utils.encode(cbor_utils.create_tag(COSE_SIGN1_TAG, cose_sign1))


def cose_sign1_decode(message: Any) -> tuple[dict[int, Any], dict, bytes, bytes, bytes]:
    """Split a COSE Sign1 message into its parts.

    Args:
        message: CBOR bytes, or an already decoded (tagged or untagged) structure

    Returns:
        Tuple of (protected header, unprotected header, payload, signature,
        protected header bytes)

    Raises:
        ParseError: If the structure is not a COSE Sign1 message
    """
    if isinstance(message, (bytes, bytearray)):
        decoded = cbor_utils.decode(message)
    else:
        decoded = cbor_utils.normalize(message)
    if cbor_utils.is_tag(decoded):
        if cbor_utils.get_tag_number(decoded) != COSE_SIGN1_TAG:
            raise ParseError(f"expected COSE_Sign1 tag 18, got {decoded.tag}")
        decoded = cbor_utils.get_tag_value(decoded)
    if not isinstance(decoded, list) or len(decoded) != 4:
        raise ParseError("COSE_Sign1 must be an array of 4 elements")
    protected_bytes, unprotected, payload, signature = decoded
    if not isinstance(protected_bytes, bytes):
        raise ParseError("COSE_Sign1 protected header must be a byte string")
    if not isinstance(unprotected, dict):
        raise ParseError("COSE_Sign1 unprotected header must be a map")
    if not isinstance(payload, bytes):
        raise ParseError("COSE_Sign1 payload must be a byte string (detached payloads are not supported)")
    if not isinstance(signature, bytes):
        raise ParseError("COSE_Sign1 signature must be a byte string")
    protected = cbor_utils.decode(protected_bytes) if protected_bytes else {}
    if not isinstance(protected, dict):
        raise ParseError("COSE_Sign1 protected header must encode a map")
    return protected, unprotected, payload, signature, protected_bytes


def cose_sign1_verify(
    cose_sign1_message: Any,
    verifier: Verifier,
    external_aad: bytes = b"",
) -> tuple[bool, Optional[bytes]]:
    """Verify a COSE Sign1 message.

    Args:
        cose_sign1_message: CBOR-encoded COSE Sign1 message (or decoded structure)
        verifier: A verifier object that implements the verify method
        external_aad: External additional authenticated data used during signing

    Returns:
        Tuple of (verification_result, payload if verified successfully)

    Raises:
        ParseError: If the message is not a COSE Sign1 structure
    """
    _, _, payload, signature, protected_bytes = cose_sign1_decode(cose_sign1_message)
    if verifier.verify(sig_structure(protected_bytes, payload, external_aad), signature):
        return True, payload
    logger.debug("COSE_Sign1 signature did not verify")
    return False, None


class ECDSASigner:
    """ECDSA signer (ES256, ES384, ES512) producing raw ``r || s`` signatures."""

    def __init__(self, private_key: ec.EllipticCurvePrivateKey, algorithm: int = ALG_ES256):
        if algorithm not in ECDSA_PARAMS:
            raise UnsupportedError(f"unsupported ECDSA algorithm: {algorithm}")
        hash_cls, curve_cls, self._size = ECDSA_PARAMS[algorithm]
        if not isinstance(private_key.curve, curve_cls):
            raise UnsupportedError(
                f"{ALGORITHM_NAMES[algorithm]} requires curve {curve_cls.name}, "
                f"got {private_key.curve.name}"
            )
        self.private_key = private_key
        self._hash = hash_cls
        self._algorithm = algorithm

    def sign(self, message: bytes) -> bytes:
        signature_der = self.private_key.sign(message, ec.ECDSA(self._hash()))
        # COSE uses the fixed-size r || s form, not DER
        r, s = utils.decode_dss_signature(signature_der)
        return r.to_bytes(self._size, byteorder="big") + s.to_bytes(self._size, byteorder="big")

    @property
    def algorithm(self) -> int:
        return self._algorithm


class ECDSAVerifier:
    """ECDSA verifier for raw ``r || s`` signatures."""

    def __init__(self, public_key: ec.EllipticCurvePublicKey, algorithm: int = ALG_ES256):
        if algorithm not in ECDSA_PARAMS:
            raise UnsupportedError(f"unsupported ECDSA algorithm: {algorithm}")
        hash_cls, _, self._size = ECDSA_PARAMS[algorithm]
        self.public_key = public_key
        self._hash = hash_cls

    def verify(self, message: bytes, signature: bytes) -> bool:
        if len(signature) != 2 * self._size:
            return False
        r = int.from_bytes(signature[: self._size], byteorder="big")
        s = int.from_bytes(signature[self._size:], byteorder="big")
        try:
            self.public_key.verify(utils.encode_dss_signature(r, s), message, ec.ECDSA(self._hash()))
        except InvalidSignature:
            return False
        return True


class EdDSASigner:
    """EdDSA signer for Ed25519 and Ed448 keys."""

    def __init__(self, private_key: Any):
        if not isinstance(private_key, (ed25519.Ed25519PrivateKey, ed448.Ed448PrivateKey)):
            raise UnsupportedError(f"EdDSA requires an Ed25519 or Ed448 key, got {type(private_key).__name__}")
        self.private_key = private_key

    def sign(self, message: bytes) -> bytes:
        return self.private_key.sign(message)

    @property
    def algorithm(self) -> int:
        return ALG_EDDSA


class EdDSAVerifier:
    """EdDSA verifier for Ed25519 and Ed448 keys."""

    def __init__(self, public_key: Any):
        self.public_key = public_key

    def verify(self, message: bytes, signature: bytes) -> bool:
        try:
            self.public_key.verify(signature, message)
        except InvalidSignature:
            return False
        return True


def _pss(hash_cls: type) -> padding.PSS:
    return padding.PSS(mgf=padding.MGF1(hash_cls()), salt_length=hash_cls.digest_size)


class PSSSigner:
    """RSASSA-PSS signer (PS256, PS384, PS512)."""

    def __init__(self, private_key: rsa.RSAPrivateKey, algorithm: int = ALG_PS256):
        if algorithm not in PSS_HASHES:
            raise UnsupportedError(f"unsupported RSASSA-PSS algorithm: {algorithm}")
        self.private_key = private_key
        self._hash = PSS_HASHES[algorithm]
        self._algorithm = algorithm

    def sign(self, message: bytes) -> bytes:
        return self.private_key.sign(message, _pss(self._hash), self._hash())

    @property
    def algorithm(self) -> int:
        return self._algorithm


class PSSVerifier:
    """RSASSA-PSS verifier (PS256, PS384, PS512)."""

    def __init__(self, public_key: rsa.RSAPublicKey, algorithm: int = ALG_PS256):
        if algorithm not in PSS_HASHES:
            raise UnsupportedError(f"unsupported RSASSA-PSS algorithm: {algorithm}")
        self.public_key = public_key
        self._hash = PSS_HASHES[algorithm]

    def verify(self, message: bytes, signature: bytes) -> bool:
        try:
            self.public_key.verify(signature, message, _pss(self._hash), self._hash())
        except InvalidSignature:
            return False
        return True
