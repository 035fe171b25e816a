"""Unit tests for signing and verifying CoRIMs."""

import pytest
from cryptography.hazmat.primitives.asymmetric import ed25519, x25519

from corim import (
    Meta,
    ParseError,
    SignatureError,
    SignedCorim,
    UnsignedCorim,
    UnsupportedError,
    ValidationError,
    signer_from_private_key,
    verifier_for,
)
from corim.cbor_utils import CBORTag, decode, encode
from corim.cose_keys import cose_key_from_public_key
from corim.cose_sign1 import ALG_EDDSA, ALG_ES256, cose_sign1_decode, cose_sign1_sign
from corim.signed_corim import CONTENT_TYPE, HEADER_CORIM_META

KID = b"key-1"


@pytest.fixture
def signed_bytes(sample_corim, sample_meta, ec_keypair):
    signer = signer_from_private_key(ec_keypair[0])
    return SignedCorim(sample_corim, sample_meta).sign(signer, KID)


class TestSign:
    """Producing the COSE_Sign1 envelope."""

    @pytest.mark.unit
    def test_protected_header(self, signed_bytes, sample_meta):
        message = decode(signed_bytes)

        assert message.tag == 18
        protected = decode(message.value[0])
        assert protected == {
            1: ALG_ES256,
            3: CONTENT_TYPE,
            4: KID,
            HEADER_CORIM_META: sample_meta.to_cbor(),
        }
        assert message.value[1] == {}
        assert decode(message.value[2]).tag == 501

    @pytest.mark.unit
    def test_invalid_corim_not_signed(self, sample_meta, ec_keypair):
        with pytest.raises(ValidationError, match="failed validation of unsigned CoRIM: empty id"):
            SignedCorim(UnsignedCorim(), sample_meta).sign(
                signer_from_private_key(ec_keypair[0]), KID
            )

    @pytest.mark.unit
    def test_invalid_meta_not_signed(self, sample_corim, ec_keypair):
        with pytest.raises(
            ValidationError,
            match="failed validation of CoRIM meta: invalid meta: signer not set",
        ):
            SignedCorim(sample_corim, Meta()).sign(signer_from_private_key(ec_keypair[0]), KID)

    @pytest.mark.unit
    def test_kid_must_be_bytes(self, sample_corim, sample_meta, ec_keypair):
        with pytest.raises(SignatureError, match="kid must be a byte string"):
            SignedCorim(sample_corim, sample_meta).sign(
                signer_from_private_key(ec_keypair[0]), "key-1"
            )

    @pytest.mark.unit
    def test_unsupported_private_key(self):
        with pytest.raises(UnsupportedError, match="unsupported private key type"):
            signer_from_private_key(x25519.X25519PrivateKey.generate())


class TestVerify:
    """Decoding and verifying signed CoRIMs."""

    @pytest.mark.unit
    def test_round_trip(self, signed_bytes, sample_corim, sample_meta, ec_keypair):
        signed = SignedCorim.from_cose(signed_bytes)

        signed.verify(ec_keypair[1])
        assert signed.unsigned == sample_corim
        assert signed.meta == sample_meta
        assert signed.kid == KID
        assert signed.algorithm == ALG_ES256

    @pytest.mark.unit
    def test_verify_with_pem_or_cose_key(self, signed_bytes, public_key_pem, ec_keypair):
        signed = SignedCorim.from_cose(signed_bytes)

        signed.verify(public_key_pem)
        signed.verify(cose_key_from_public_key(ec_keypair[1]))

    @pytest.mark.unit
    def test_tampered_signature(self, signed_bytes, ec_keypair):
        tampered = signed_bytes[:-1] + bytes([signed_bytes[-1] ^ 0x01])
        signed = SignedCorim.from_cose(tampered)

        with pytest.raises(SignatureError, match="verification error"):
            signed.verify(ec_keypair[1])

    @pytest.mark.unit
    def test_tampered_payload(self, signed_bytes, ec_keypair):
        """A payload edit that keeps the CoRIM well formed still breaks the signature."""
        tampered = signed_bytes.replace(b"test corim id", b"best corim id")
        signed = SignedCorim.from_cose(tampered)

        assert str(signed.unsigned.id) == "best corim id"
        with pytest.raises(SignatureError, match="verification error"):
            signed.verify(ec_keypair[1])

    @pytest.mark.unit
    def test_wrong_key(self, signed_bytes, other_ec_keypair):
        with pytest.raises(SignatureError, match="verification error"):
            SignedCorim.from_cose(signed_bytes).verify(other_ec_keypair[1])

    @pytest.mark.unit
    def test_key_type_must_match_algorithm(self, signed_bytes):
        ed_key = ed25519.Ed25519PrivateKey.generate().public_key()

        with pytest.raises(
            SignatureError,
            match="unable to get verification algorithm: ES256 requires a secp256r1 EC key",
        ):
            SignedCorim.from_cose(signed_bytes).verify(ed_key)

    @pytest.mark.unit
    def test_verify_without_message(self, ec_keypair):
        with pytest.raises(SignatureError, match="no Sign1 message found"):
            SignedCorim().verify(ec_keypair[1])

    @pytest.mark.unit
    def test_eddsa(self, sample_corim, sample_meta):
        private_key = ed25519.Ed25519PrivateKey.generate()
        data = SignedCorim(sample_corim, sample_meta).sign(signer_from_private_key(private_key), KID)

        signed = SignedCorim.from_cose(data)
        assert signed.algorithm == ALG_EDDSA
        signed.verify(private_key.public_key())

    @pytest.mark.unit
    def test_unsupported_algorithm(self, ec_keypair):
        with pytest.raises(UnsupportedError, match="unsupported COSE algorithm: -999"):
            verifier_for(-999, ec_keypair[1])


class TestEnvelope:
    """Header and framing checks on decode."""

    @pytest.mark.unit
    def test_content_type_mismatch(self, sample_corim, sample_meta, ec_keypair):
        protected = {3: "application/cbor", 4: KID, 8: sample_meta.to_cbor()}
        data = cose_sign1_sign(
            sample_corim.to_cbor(), signer_from_private_key(ec_keypair[0]), protected
        )

        with pytest.raises(
            ParseError,
            match='processing COSE headers: expecting content type "application/rim\\+cbor", '
            'got "application/cbor" instead',
        ):
            SignedCorim.from_cose(data)

    @pytest.mark.unit
    def test_missing_meta(self, sample_corim, ec_keypair):
        protected = {3: CONTENT_TYPE, 4: KID}
        data = cose_sign1_sign(
            sample_corim.to_cbor(), signer_from_private_key(ec_keypair[0]), protected
        )

        with pytest.raises(ParseError, match="missing mandatory corim.meta"):
            SignedCorim.from_cose(data)

    @pytest.mark.unit
    def test_legacy_prefix_accepted(self, signed_bytes, ec_keypair):
        legacy = encode(CBORTag(500, CBORTag(502, decode(signed_bytes).value)))

        signed = SignedCorim.from_cose(legacy)
        signed.verify(ec_keypair[1])

    @pytest.mark.unit
    def test_legacy_500_must_wrap_502(self, signed_bytes):
        bad = encode(CBORTag(500, decode(signed_bytes)))

        with pytest.raises(ParseError, match="tag 500 must wrap a tag 502 signed CoRIM"):
            SignedCorim.from_cose(bad)

    @pytest.mark.unit
    def test_not_a_sign1(self, sample_corim):
        with pytest.raises(ParseError, match="failed CBOR decoding for COSE-Sign1 signed CoRIM"):
            SignedCorim.from_cose(sample_corim.to_cbor())

    @pytest.mark.unit
    def test_decoded_tuple_message_accepted(self, signed_bytes, sample_meta):
        """A message already decoded into a tagged tuple splits like its bytes."""
        message = decode(signed_bytes)
        as_tuple = CBORTag(18, tuple(message.value))

        protected, unprotected, payload, signature, _ = cose_sign1_decode(as_tuple)

        assert protected[HEADER_CORIM_META] == sample_meta.to_cbor()
        assert unprotected == {}
        assert payload == message.value[2]
        assert signature == message.value[3]
        assert cose_sign1_decode(tuple(message.value))[2] == payload
