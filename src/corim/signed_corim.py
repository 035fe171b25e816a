"""Signed CoRIM: an unsigned CoRIM wrapped in a COSE_Sign1 envelope.

The protected header carries the algorithm (1), the content type (3), the
key identifier (4) and the CBOR encoded :class:`~corim.meta.Meta` (8). The
payload is the tag-501 unsigned CoRIM.
"""

import logging
from typing import Any, Optional

from . import cbor_utils
from .cbor_utils import LEGACY_CORIM_TAG, LEGACY_SIGNED_CORIM_TAG
from .cose_sign1 import (
    HEADER_ALG,
    HEADER_CONTENT_TYPE,
    HEADER_KID,
    Signer,
    cose_sign1_decode,
    cose_sign1_sign,
    cose_sign1_verify,
)
from .errors import CorimError, ParseError, SignatureError, ValidationError
from .extensions import ExtensionMap
from .meta import Meta
from .unsigned_corim import UnsignedCorim
from .verifiers import verifier_for

logger = logging.getLogger(__name__)

CONTENT_TYPE = "application/rim+cbor"
HEADER_CORIM_META = 8
NO_EXTERNAL_DATA = b""


def strip_legacy_prefix(data: bytes) -> Any:
    """Decode ``data`` and drop an outer tag 500 / tag 502 wrapping if present."""
    decoded = cbor_utils.decode(data)
    if cbor_utils.is_tag(decoded, LEGACY_CORIM_TAG):
        decoded = decoded.value
        if not cbor_utils.is_tag(decoded, LEGACY_SIGNED_CORIM_TAG):
            raise ParseError("tag 500 must wrap a tag 502 signed CoRIM")
        logger.debug("stripped legacy tagged-corim-type-choice prefix")
        decoded = decoded.value
    elif cbor_utils.is_tag(decoded, LEGACY_SIGNED_CORIM_TAG):
        logger.debug("stripped legacy signed CoRIM tag 502")
        decoded = decoded.value
    return decoded


class SignedCorim:
    """A CoRIM together with the meta that is signed alongside it.

    Args:
        unsigned: The manifest to sign
        meta: Signer identity and optional signature validity
    """

    def __init__(self, unsigned: Optional[UnsignedCorim] = None, meta: Optional[Meta] = None):
        self.unsigned = unsigned if unsigned is not None else UnsignedCorim()
        self.meta = meta if meta is not None else Meta()
        self.protected: dict[int, Any] = {}
        self._message: Optional[Any] = None

    def __repr__(self) -> str:
        return f"SignedCorim(unsigned={self.unsigned!r}, meta={self.meta!r})"

    @property
    def kid(self) -> Optional[bytes]:
        return self.protected.get(HEADER_KID)

    @property
    def algorithm(self) -> Optional[int]:
        return self.protected.get(HEADER_ALG)

    def sign(self, signer: Signer, kid: bytes) -> bytes:
        """Validate, encode and sign the CoRIM.

        Args:
            signer: A COSE Sign1 signer (see :mod:`corim.signers`)
            kid: Key identifier placed in the protected header

        Returns:
            The tag-18 COSE_Sign1 bytes

        Raises:
            ValidationError: If the unsigned CoRIM or the meta is invalid
            SignatureError: If the signer has no algorithm or signing fails
        """
        if signer is None:
            raise SignatureError("nil signer")
        if not isinstance(kid, (bytes, bytearray)):
            raise SignatureError(f"kid must be a byte string, got {type(kid).__name__}")
        try:
            self.unsigned.valid()
        except ValidationError as err:
            raise err.wrap("failed validation of unsigned CoRIM") from err
        try:
            self.meta.valid()
        except ValidationError as err:
            raise err.wrap("failed validation of CoRIM meta") from err

        algorithm = getattr(signer, "algorithm", None)
        if algorithm is None:
            raise SignatureError("signer has no algorithm")

        payload = self.unsigned.to_cbor()
        protected = {
            HEADER_ALG: algorithm,
            HEADER_CONTENT_TYPE: CONTENT_TYPE,
            HEADER_KID: bytes(kid),
            HEADER_CORIM_META: self.meta.to_cbor(),
        }
        try:
            message = cose_sign1_sign(payload, signer, protected, external_aad=NO_EXTERNAL_DATA)
        except SignatureError as err:
            raise err.wrap("COSE Sign1 signature failed") from err
        self.protected = protected
        self._message = cbor_utils.decode(message)
        logger.debug("signed CoRIM %s with algorithm %s", self.unsigned.id, algorithm)
        return message

    @classmethod
    def from_cose(cls, data: bytes, ext_map: Optional[ExtensionMap] = None) -> "SignedCorim":
        """Decode and validate a signed CoRIM.

        A legacy tag 500 / 502 prefix is accepted. The COSE message is kept
        so that :meth:`verify` can be called afterwards.

        Args:
            data: COSE_Sign1 bytes
            ext_map: Extensions to attach to the payload and the signer

        Raises:
            ParseError: If the envelope, headers, meta or payload are malformed
            ValidationError: If the decoded unsigned CoRIM is invalid
        """
        message = strip_legacy_prefix(data)
        try:
            protected, _, payload, _, _ = cose_sign1_decode(message)
        except ParseError as err:
            raise err.wrap("failed CBOR decoding for COSE-Sign1 signed CoRIM") from err

        signed = cls()
        signed.meta = _process_headers(protected)
        signed.meta.register_extensions(ext_map)
        try:
            signed.unsigned = UnsignedCorim.from_cbor(payload, ext_map)
        except ParseError as err:
            raise err.wrap("failed CBOR decoding of unsigned CoRIM") from err
        try:
            signed.unsigned.valid()
        except ValidationError as err:
            raise err.wrap("failed validation of unsigned CoRIM") from err
        signed.protected = protected
        signed._message = message
        return signed

    def verify(self, public_key: Any) -> None:
        """Verify the COSE signature.

        Args:
            public_key: ``cryptography`` public key, COSE_Key map or PEM

        Raises:
            SignatureError: If there is no message, no usable algorithm, or
                the signature does not verify
        """
        if self._message is None:
            raise SignatureError("no Sign1 message found")
        algorithm = self.protected.get(HEADER_ALG)
        if algorithm is None:
            raise SignatureError("unable to get verification algorithm: missing alg header")
        try:
            verifier = verifier_for(algorithm, public_key)
        except CorimError as err:
            raise SignatureError(f"unable to get verification algorithm: {err}") from err
        ok, _ = cose_sign1_verify(self._message, verifier, NO_EXTERNAL_DATA)
        if not ok:
            raise SignatureError("verification error")


def _process_headers(protected: dict[int, Any]) -> Meta:
    if not protected:
        raise ParseError("missing mandatory protected header", "processing COSE headers")
    algorithm = protected.get(HEADER_ALG)
    if isinstance(algorithm, bool) or not isinstance(algorithm, int):
        raise ParseError("missing or non-integer algorithm", "processing COSE headers")
    if HEADER_CONTENT_TYPE not in protected:
        raise ParseError("missing mandatory content type", "processing COSE headers")
    content_type = protected[HEADER_CONTENT_TYPE]
    if content_type != CONTENT_TYPE:
        raise ParseError(
            f'expecting content type "{CONTENT_TYPE}", got "{content_type}" instead',
            "processing COSE headers",
        )
    if not isinstance(protected.get(HEADER_KID), bytes):
        raise ParseError("missing mandatory byte string kid", "processing COSE headers")
    if HEADER_CORIM_META not in protected:
        raise ParseError("missing mandatory corim.meta", "processing COSE headers")
    raw_meta = protected[HEADER_CORIM_META]
    if not isinstance(raw_meta, bytes):
        raise ParseError(
            f"expecting CBOR-encoded CoRIM Meta, got {type(raw_meta).__name__} instead",
            "processing COSE headers",
        )
    try:
        return Meta.from_header(raw_meta)
    except ParseError as err:
        raise err.wrap("processing COSE headers: unable to decode CoRIM Meta") from err
