"""Signers for signed CoRIMs.

This module picks a COSE Sign1 signer from a ``cryptography`` private key:
- EC keys sign with the ECDSA algorithm matching their curve
- Ed25519 / Ed448 keys sign with EdDSA
- RSA keys sign with RSASSA-PSS (PS256 unless another is requested)
"""

from typing import Any, Optional, Union

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed448, ed25519, rsa

from .cose_sign1 import (
    ALG_ES256,
    ALG_ES384,
    ALG_ES512,
    ALG_PS256,
    ECDSASigner,
    EdDSASigner,
    PSSSigner,
    Signer,
)
from .errors import ParseError, UnsupportedError

_CURVE_ALGORITHMS = {
    "secp256r1": ALG_ES256,
    "secp384r1": ALG_ES384,
    "secp521r1": ALG_ES512,
}


def signer_from_private_key(private_key: Any, algorithm: Optional[int] = None) -> Signer:
    """Create a signer for a private key.

    Args:
        private_key: A ``cryptography`` EC, Ed25519, Ed448 or RSA private key
        algorithm: COSE algorithm to use; derived from the key when omitted

    Returns:
        A signer implementing the :class:`~corim.cose_sign1.Signer` protocol

    Raises:
        UnsupportedError: If the key type or algorithm is not supported
    """
    if isinstance(private_key, ec.EllipticCurvePrivateKey):
        if algorithm is None:
            algorithm = _CURVE_ALGORITHMS.get(private_key.curve.name)
            if algorithm is None:
                raise UnsupportedError(f"unsupported EC curve: {private_key.curve.name}")
        return ECDSASigner(private_key, algorithm)
    if isinstance(private_key, (ed25519.Ed25519PrivateKey, ed448.Ed448PrivateKey)):
        return EdDSASigner(private_key)
    if isinstance(private_key, rsa.RSAPrivateKey):
        return PSSSigner(private_key, algorithm or ALG_PS256)
    raise UnsupportedError(f"unsupported private key type: {type(private_key).__name__}")


def signer_from_pem(
    pem_data: Union[str, bytes],
    password: Optional[bytes] = None,
    algorithm: Optional[int] = None,
) -> Signer:
    """Create a signer from a PEM encoded private key.

    Raises:
        ParseError: If the PEM cannot be loaded
        UnsupportedError: If the key type is not supported
    """
    if isinstance(pem_data, str):
        pem_data = pem_data.encode("ascii")
    try:
        private_key = serialization.load_pem_private_key(
            pem_data, password=password, backend=default_backend()
        )
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise ParseError(f"could not decode PEM private key: {exc}") from exc
    return signer_from_private_key(private_key, algorithm)


def generate_es256_key_pair() -> tuple[ec.EllipticCurvePrivateKey, ec.EllipticCurvePublicKey]:
    """Generate a P-256 key pair for ES256 signing."""
    private_key = ec.generate_private_key(ec.SECP256R1(), default_backend())
    return private_key, private_key.public_key()
