"""The crypto-key type choice.

Verification keys, signer identifiers and key references share one tagged
choice. PEM variants carry text; the COSE_Key variant keeps the deterministic
CBOR encoding of the key (or key set) it wraps; the thumbprint variants
carry a hash entry.
"""

import re
from typing import Any, Union

from cryptography import x509
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import serialization

from . import cbor_utils, cose_keys, json_utils
from .choice import ChoiceCodec, ChoiceRegistry, ChoiceValue
from .digests import HashEntry
from .encoding import ListCodec, type_name
from .errors import ParseError, UnsupportedError, ValidationError
from .ids import BytesValue, TaggedBytes

_PEM_BLOCK = re.compile(
    r"-----BEGIN ([A-Z0-9 ]+)-----\s*(.*?)\s*-----END \1-----", re.DOTALL
)


def _pem_blocks(text: str) -> list[tuple[str, str]]:
    """Split PEM text into ``(label, full block)`` pairs, rejecting trailing data."""
    blocks = []
    pos = 0
    for match in _PEM_BLOCK.finditer(text):
        if text[pos:match.start()].strip():
            raise ValidationError("unexpected data outside PEM block")
        blocks.append((match.group(1), match.group(0)))
        pos = match.end()
    if not blocks:
        raise ValidationError("could not decode PEM block")
    if text[pos:].strip():
        raise ValidationError("trailing data found after PEM block")
    return blocks


class PEMValue(ChoiceValue):
    """Common behaviour of the PEM text variants."""

    def __init__(self, value: Any):
        if isinstance(value, bytes):
            value = value.decode("ascii")
        super().__init__(value)

    def valid(self) -> None:
        self.public_key()

    @classmethod
    def from_cbor_inner(cls, inner: Any) -> "PEMValue":
        if not isinstance(inner, str):
            raise ParseError(f"expected text string for {cls.type_name}, got {type_name(inner)}")
        return cls(inner)

    from_json_value = from_cbor_inner


class PKIXBase64Key(PEMValue):
    """PEM-encoded SubjectPublicKeyInfo (tag 554)."""

    type_name = "pkix-base64-key"
    cbor_tag = 554

    def public_key(self) -> Any:
        if not self.value:
            raise ValidationError("key value not set")
        blocks = _pem_blocks(self.value)
        if len(blocks) != 1:
            raise ValidationError("trailing data found after PEM block")
        label, block = blocks[0]
        if label != "PUBLIC KEY":
            raise ValidationError(f'unexpected PEM block type: "{label}", expected "PUBLIC KEY"')
        try:
            return serialization.load_pem_public_key(block.encode("ascii"), default_backend())
        except ValueError as exc:
            raise ValidationError(f"unable to parse public key: {exc}") from exc


def _load_cert(block: str) -> x509.Certificate:
    try:
        return x509.load_pem_x509_certificate(block.encode("ascii"), default_backend())
    except ValueError as exc:
        raise ValidationError(f"could not parse x509 cert: {exc}") from exc


class PKIXBase64Cert(PEMValue):
    """PEM-encoded X.509 certificate (tag 555)."""

    type_name = "pkix-base64-cert"
    cbor_tag = 555

    def certificate(self) -> x509.Certificate:
        if not self.value:
            raise ValidationError("cert value not set")
        blocks = _pem_blocks(self.value)
        if len(blocks) != 1:
            raise ValidationError("trailing data found after PEM block")
        label, block = blocks[0]
        if label != "CERTIFICATE":
            raise ValidationError(f'unexpected PEM block type: "{label}", expected "CERTIFICATE"')
        return _load_cert(block)

    def public_key(self) -> Any:
        return self.certificate().public_key()


class PKIXBase64CertPath(PEMValue):
    """Concatenated PEM certificates, leaf first (tag 556)."""

    type_name = "pkix-base64-cert-path"
    cbor_tag = 556

    def certificates(self) -> list[x509.Certificate]:
        if not self.value:
            raise ValidationError("cert value not set")
        certs = []
        for i, (label, block) in enumerate(_pem_blocks(self.value)):
            if label != "CERTIFICATE":
                raise ValidationError(
                    f'cert {i}: unexpected PEM block type: "{label}", expected "CERTIFICATE"'
                )
            try:
                certs.append(_load_cert(block))
            except ValidationError as err:
                raise err.wrap(f"cert {i}") from err
        return certs

    def public_key(self) -> Any:
        return self.certificates()[0].public_key()


class COSEKey(ChoiceValue):
    """CBOR-encoded COSE_Key or single-entry COSE_KeySet (tag 558).

    ``value`` holds the encoded key bytes; JSON shows them as base64.
    """

    type_name = "cose-key"
    cbor_tag = 558

    def __init__(self, value: Any):
        if isinstance(value, (dict, list)):
            value = cbor_utils.encode(value)
        super().__init__(value)

    @classmethod
    def factory(cls, value: Any) -> "COSEKey":
        if isinstance(value, str):
            return cls(json_utils.b64decode(value, "COSE_Key"))
        return cls(value)

    def key_map(self) -> dict:
        if not isinstance(self.value, bytes) or not self.value:
            raise ValidationError("empty COSE_Key bytes")
        try:
            decoded = cbor_utils.decode(self.value)
        except ParseError as err:
            raise ValidationError(f"invalid COSE_Key: {err}") from err
        if isinstance(decoded, list):
            if not decoded:
                raise ValidationError("empty COSE_KeySet")
            if len(decoded) > 1:
                raise ValidationError("COSE_KeySet contains more than one key")
            decoded = decoded[0]
        if not isinstance(decoded, dict):
            raise ValidationError(f"invalid COSE_Key: expected map, got {type_name(decoded)}")
        return decoded

    def valid(self) -> None:
        self.public_key()

    def public_key(self) -> Any:
        try:
            return cose_keys.public_key_from_cose_key(self.key_map())
        except (ParseError, UnsupportedError) as err:
            raise ValidationError(str(err)) from err

    def cbor_inner(self) -> Any:
        return cbor_utils.decode(self.value)

    @classmethod
    def from_cbor_inner(cls, inner: Any) -> "COSEKey":
        if not isinstance(inner, (dict, list)):
            raise ParseError(f"expected COSE_Key map or key set, got {type_name(inner)}")
        return cls(inner)

    def json_value(self) -> str:
        return json_utils.b64encode(self.value)

    @classmethod
    def from_json_value(cls, value: Any) -> "COSEKey":
        return cls(json_utils.b64decode(value, "COSE_Key"))


class DigestValue(ChoiceValue):
    """Variants whose payload is a hash entry; JSON uses ``"<alg>;<base64>"``."""

    def __init__(self, value: Any):
        if isinstance(value, str):
            value = HashEntry.from_text(value)
        super().__init__(value)

    def valid(self) -> None:
        if not isinstance(self.value, HashEntry):
            raise ValidationError(f"expected hash entry, got {type_name(self.value)}")
        self.value.valid()

    def public_key(self) -> Any:
        raise ValidationError("cannot get PublicKey from a digest")

    def cbor_inner(self) -> list:
        return self.value.to_cbor_data()

    @classmethod
    def from_cbor_inner(cls, inner: Any) -> "DigestValue":
        return cls(HashEntry.from_cbor_data(inner))

    def json_value(self) -> str:
        return self.value.to_text(";")

    @classmethod
    def from_json_value(cls, value: Any) -> "DigestValue":
        return cls(HashEntry.from_text(value))


class Thumbprint(DigestValue):
    """Digest of a raw public key (tag 557)."""

    type_name = "thumbprint"
    cbor_tag = 557


class CertThumbprint(DigestValue):
    """Digest of a certificate (tag 559)."""

    type_name = "cert-thumbprint"
    cbor_tag = 559


class CertPathThumbprint(DigestValue):
    """Digest of a certification path (tag 561)."""

    type_name = "cert-path-thumbprint"
    cbor_tag = 561


class RawPublicKey(BytesValue):
    """DER SubjectPublicKeyInfo carried as an untagged byte string."""

    type_name = "raw-public-key"

    @classmethod
    def matches_untagged(cls, data: Any) -> bool:
        return isinstance(data, bytes)

    def valid(self) -> None:
        super().valid()
        self.public_key()

    def public_key(self) -> Any:
        try:
            return serialization.load_der_public_key(self.value, default_backend())
        except ValueError as exc:
            raise ValidationError(f"unable to parse public key: {exc}") from exc


crypto_keys = ChoiceRegistry("crypto key")
for _variant in (
    PKIXBase64Key,
    PKIXBase64Cert,
    PKIXBase64CertPath,
    COSEKey,
    Thumbprint,
    CertThumbprint,
    CertPathThumbprint,
    TaggedBytes,
    RawPublicKey,
):
    crypto_keys.register(_variant)
# Early CoRIM drafts carried COSE_Key under 600. Older tag tables used 600 for a
# tagged implementation id, which no class-id choice here accepts, so reading
# 600 as COSE_Key cannot shadow another variant.
crypto_keys.register_alias_tag(600, COSEKey)

CRYPTO_KEY = ChoiceCodec(crypto_keys)
CRYPTO_KEYS = ListCodec(CRYPTO_KEY, "crypto key")


def register_crypto_key_type(variant: type) -> None:
    """Add a crypto-key variant (e.g. from a profile)."""
    crypto_keys.register(variant)


def new_crypto_key(value: Any, key_type: str) -> ChoiceValue:
    """Create and validate a crypto key of the named type.

    Args:
        value: Input accepted by the variant (PEM text, COSE_Key bytes or map,
            ``HashEntry`` or ``"<alg>;<base64>"`` text, raw bytes)
        key_type: JSON type name, e.g. ``"pkix-base64-key"``

    Raises:
        UnsupportedError: If the type is unknown
        ValidationError: If the value is not a valid key of that type
    """
    key = crypto_keys.new(value, key_type)
    key.valid()
    return key


def new_pkix_base64_key(pem: Union[str, bytes]) -> PKIXBase64Key:
    return new_crypto_key(pem, PKIXBase64Key.type_name)


def new_cose_key(key: Union[bytes, dict]) -> COSEKey:
    return new_crypto_key(key, COSEKey.type_name)


def public_key_of(key: ChoiceValue) -> Any:
    """Return the ``cryptography`` public key behind a crypto key.

    Raises:
        ValidationError: If the variant does not carry key material
    """
    getter = getattr(key, "public_key", None)
    if getter is None:
        raise ValidationError(f"cannot get PublicKey from {key.type_name}")
    return getter()
