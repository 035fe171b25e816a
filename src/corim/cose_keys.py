"""COSE_Key conversion and RFC 9679 thumbprints.

Converts between COSE_Key maps (integer labels) and ``cryptography`` public
keys, and computes COSE Key Thumbprints for building thumbprint crypto keys.
"""

import hashlib
from typing import Any, Union

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, ed448, rsa

from . import cbor_utils
from .errors import ParseError, UnsupportedError

# COSE key types
COSE_KTY_OKP = 1
COSE_KTY_EC2 = 2
COSE_KTY_RSA = 3
COSE_KTY_SYMMETRIC = 4

# COSE curves
COSE_CRV_P256 = 1
COSE_CRV_P384 = 2
COSE_CRV_P521 = 3
COSE_CRV_ED25519 = 6
COSE_CRV_ED448 = 7

_EC_CURVES = {
    COSE_CRV_P256: (ec.SECP256R1, 32),
    COSE_CRV_P384: (ec.SECP384R1, 48),
    COSE_CRV_P521: (ec.SECP521R1, 66),
}

_HASHES = {
    "sha-256": hashlib.sha256,
    "sha-384": hashlib.sha384,
    "sha-512": hashlib.sha512,
}

# Required members for each key type according to RFC 9679
THUMBPRINT_MEMBERS = {
    COSE_KTY_OKP: [1, -1, -2],  # kty, crv, x
    COSE_KTY_EC2: [1, -1, -2, -3],  # kty, crv, x, y
    COSE_KTY_RSA: [1, -1, -2],  # kty, n, e
    COSE_KTY_SYMMETRIC: [1, -1],  # kty, k
}

PublicKey = Union[
    ec.EllipticCurvePublicKey,
    rsa.RSAPublicKey,
    ed25519.Ed25519PublicKey,
    ed448.Ed448PublicKey,
]


def _int_bytes(value: int, size: int = 0) -> bytes:
    return value.to_bytes(size or (value.bit_length() + 7) // 8, "big")


def cose_key_from_public_key(key: Any) -> dict[int, Any]:
    """Convert a ``cryptography`` public key to a COSE_Key map.

    Args:
        key: EC, RSA, Ed25519 or Ed448 public key

    Returns:
        COSE key dictionary

    Raises:
        UnsupportedError: If the key type or curve has no COSE mapping
    """
    if isinstance(key, ec.EllipticCurvePublicKey):
        numbers = key.public_numbers()
        for crv, (curve, size) in _EC_CURVES.items():
            if isinstance(numbers.curve, curve):
                return {
                    1: COSE_KTY_EC2,
                    -1: crv,
                    -2: _int_bytes(numbers.x, size),
                    -3: _int_bytes(numbers.y, size),
                }
        raise UnsupportedError(f"unsupported curve: {numbers.curve.name}")
    if isinstance(key, rsa.RSAPublicKey):
        numbers = key.public_numbers()
        return {1: COSE_KTY_RSA, -1: _int_bytes(numbers.n), -2: _int_bytes(numbers.e)}
    raw_format = serialization.Encoding.Raw, serialization.PublicFormat.Raw
    if isinstance(key, ed25519.Ed25519PublicKey):
        return {1: COSE_KTY_OKP, -1: COSE_CRV_ED25519, -2: key.public_bytes(*raw_format)}
    if isinstance(key, ed448.Ed448PublicKey):
        return {1: COSE_KTY_OKP, -1: COSE_CRV_ED448, -2: key.public_bytes(*raw_format)}
    raise UnsupportedError(f"unsupported key type: {type(key).__name__}")


def public_key_from_cose_key(cose_key: dict[int, Any]) -> PublicKey:
    """Build a ``cryptography`` public key from a COSE_Key map.

    Raises:
        ParseError: If required parameters are missing or malformed
        UnsupportedError: If the key type or curve is not supported
    """
    if not isinstance(cose_key, dict):
        raise ParseError(f"expected COSE_Key map, got {type(cose_key).__name__}")
    kty = cose_key.get(1)
    try:
        if kty == COSE_KTY_EC2:
            crv = cose_key.get(-1)
            if crv not in _EC_CURVES:
                raise UnsupportedError(f"unsupported EC2 curve: {crv}")
            x = int.from_bytes(cose_key[-2], "big")
            y = int.from_bytes(cose_key[-3], "big")
            curve = _EC_CURVES[crv][0]()
            return ec.EllipticCurvePublicNumbers(x, y, curve).public_key(default_backend())
        if kty == COSE_KTY_RSA:
            n = int.from_bytes(cose_key[-1], "big")
            e = int.from_bytes(cose_key[-2], "big")
            return rsa.RSAPublicNumbers(e, n).public_key(default_backend())
        if kty == COSE_KTY_OKP:
            crv = cose_key.get(-1)
            if crv == COSE_CRV_ED25519:
                return ed25519.Ed25519PublicKey.from_public_bytes(cose_key[-2])
            if crv == COSE_CRV_ED448:
                return ed448.Ed448PublicKey.from_public_bytes(cose_key[-2])
            raise UnsupportedError(f"unsupported OKP curve: {crv}")
    except KeyError as exc:
        raise ParseError(f"COSE_Key is missing parameter {exc.args[0]}") from exc
    except (TypeError, ValueError) as exc:
        if isinstance(exc, UnsupportedError):
            raise
        raise ParseError(f"invalid COSE_Key: {exc}") from exc
    raise UnsupportedError(f"unsupported COSE key type: {kty}")


def public_key_from_pem(pem_data: Union[str, bytes]) -> PublicKey:
    """Load a public key from PEM, accepting a private key PEM as well.

    Raises:
        ParseError: If the PEM does not contain a usable key
    """
    if isinstance(pem_data, str):
        pem_data = pem_data.encode("ascii")
    try:
        if b"PRIVATE KEY-----" in pem_data:
            private_key = serialization.load_pem_private_key(
                pem_data, password=None, backend=default_backend()
            )
            return private_key.public_key()
        return serialization.load_pem_public_key(pem_data, backend=default_backend())
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise ParseError(f"could not decode PEM key: {exc}") from exc


def cose_key_from_pem(pem_data: Union[str, bytes]) -> dict[int, Any]:
    """Convert a PEM key to a COSE_Key map (public members only)."""
    return cose_key_from_public_key(public_key_from_pem(pem_data))


def canonical_cbor(cose_key: dict[int, Any]) -> bytes:
    """Create the canonical CBOR input of an RFC 9679 thumbprint.

    Args:
        cose_key: COSE key as a dictionary with integer labels

    Returns:
        Deterministic CBOR encoding of the required members

    Raises:
        UnsupportedError: If the key type is unsupported
        ParseError: If a required member is missing
    """
    kty = cose_key.get(1)
    if kty not in THUMBPRINT_MEMBERS:
        raise UnsupportedError(f"unsupported key type: {kty}")
    filtered = {}
    for label in THUMBPRINT_MEMBERS[kty]:
        if label not in cose_key:
            raise ParseError(f"required field {label} missing from COSE key")
        filtered[label] = cose_key[label]
    return cbor_utils.encode(filtered)


def cose_key_thumbprint(cose_key: dict[int, Any], hash_alg: str = "sha-256") -> bytes:
    """Compute the RFC 9679 COSE Key Thumbprint.

    Args:
        cose_key: COSE key as a dictionary with integer labels
        hash_alg: One of ``sha-256``, ``sha-384``, ``sha-512``

    Returns:
        Thumbprint bytes
    """
    if hash_alg not in _HASHES:
        raise UnsupportedError(f"unsupported hash algorithm: {hash_alg}")
    return _HASHES[hash_alg](canonical_cbor(cose_key)).digest()
