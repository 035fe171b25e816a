"""Verifiers for signed CoRIMs.

:func:`verifier_for` instantiates the COSE Sign1 verifier for the algorithm
found in a protected header, after checking that the public key fits it.
"""

from typing import Any

from cryptography.hazmat.primitives.asymmetric import ec, ed448, ed25519, rsa

from .cose_keys import public_key_from_cose_key, public_key_from_pem
from .cose_sign1 import (
    ECDSA_PARAMS,
    PSS_HASHES,
    ALG_EDDSA,
    ALGORITHM_NAMES,
    ECDSAVerifier,
    EdDSAVerifier,
    PSSVerifier,
    Verifier,
)
from .errors import SignatureError, UnsupportedError


def verifier_for(algorithm: Any, public_key: Any) -> Verifier:
    """Create a verifier for a COSE algorithm and a public key.

    Args:
        algorithm: COSE algorithm identifier from the protected header
        public_key: A ``cryptography`` public key, a COSE_Key map or a PEM string

    Returns:
        A verifier implementing the :class:`~corim.cose_sign1.Verifier` protocol

    Raises:
        UnsupportedError: If the algorithm is not supported
        SignatureError: If the key does not match the algorithm
    """
    if isinstance(algorithm, bool) or not isinstance(algorithm, int):
        raise SignatureError(f"COSE algorithm must be an integer, got {type(algorithm).__name__}")
    if isinstance(public_key, dict):
        public_key = public_key_from_cose_key(public_key)
    elif isinstance(public_key, (str, bytes)):
        public_key = public_key_from_pem(public_key)

    if algorithm in ECDSA_PARAMS:
        _, curve_cls, _ = ECDSA_PARAMS[algorithm]
        if not isinstance(public_key, ec.EllipticCurvePublicKey) or not isinstance(
            public_key.curve, curve_cls
        ):
            raise SignatureError(f"{ALGORITHM_NAMES[algorithm]} requires a {curve_cls.name} EC key")
        return ECDSAVerifier(public_key, algorithm)
    if algorithm == ALG_EDDSA:
        if not isinstance(public_key, (ed25519.Ed25519PublicKey, ed448.Ed448PublicKey)):
            raise SignatureError("EdDSA requires an Ed25519 or Ed448 key")
        return EdDSAVerifier(public_key)
    if algorithm in PSS_HASHES:
        if not isinstance(public_key, rsa.RSAPublicKey):
            raise SignatureError(f"{ALGORITHM_NAMES[algorithm]} requires an RSA key")
        return PSSVerifier(public_key, algorithm)
    raise UnsupportedError(f"unsupported COSE algorithm: {algorithm}")
