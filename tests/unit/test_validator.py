"""Unit tests for the result-dictionary validator."""

import pytest

from corim import CorimValidator, SignedCorim, signer_from_private_key
from corim.cbor_utils import encode_tagged
from corim.profiles import psa

BAD_CBOR = b"\xff\x00\x01"


@pytest.fixture
def validator():
    return CorimValidator()


class TestUnsignedCorim:
    """validate_unsigned_corim results."""

    @pytest.mark.unit
    def test_valid(self, validator, sample_corim):
        results = validator.validate_unsigned_corim(sample_corim.to_cbor())

        assert results == {
            "valid": True,
            "cbor_valid": True,
            "structure_valid": True,
            "profile": None,
            "errors": [],
        }

    @pytest.mark.unit
    def test_profile_reported(self, validator, sample_corim, throwaway_profile):
        sample_corim.set_profile(str(throwaway_profile.id))

        results = validator.validate_unsigned_corim(sample_corim.to_cbor())

        assert results["valid"] is True
        assert results["profile"] == str(throwaway_profile.id)

    @pytest.mark.unit
    def test_bad_cbor(self, validator):
        results = validator.validate_unsigned_corim(BAD_CBOR)

        assert results["valid"] is False
        assert results["cbor_valid"] is False
        assert results["errors"] == ["Invalid CBOR structure"]

    @pytest.mark.unit
    def test_invalid_content(self, validator):
        results = validator.validate_unsigned_corim(encode_tagged(501, {0: "id"}))

        assert results["cbor_valid"] is True
        assert results["structure_valid"] is False
        assert results["valid"] is False
        assert len(results["errors"]) == 1


class TestSignedCorim:
    """validate_signed_corim results."""

    @pytest.fixture
    def signed_bytes(self, sample_corim, sample_meta, ec_keypair):
        return SignedCorim(sample_corim, sample_meta).sign(
            signer_from_private_key(ec_keypair[0]), b"kid"
        )

    @pytest.mark.unit
    def test_without_key(self, validator, signed_bytes):
        results = validator.validate_signed_corim(signed_bytes)

        assert results["valid"] is True
        assert results["signature_valid"] is None

    @pytest.mark.unit
    def test_with_key(self, validator, signed_bytes, ec_keypair):
        results = validator.validate_signed_corim(signed_bytes, ec_keypair[1])

        assert results["valid"] is True
        assert results["signature_valid"] is True

    @pytest.mark.unit
    def test_with_wrong_key(self, validator, signed_bytes, other_ec_keypair):
        results = validator.validate_signed_corim(signed_bytes, other_ec_keypair[1])

        assert results["valid"] is False
        assert results["structure_valid"] is True
        assert results["signature_valid"] is False
        assert results["errors"] == ["verification error"]

    @pytest.mark.unit
    def test_bad_cbor(self, validator):
        results = validator.validate_signed_corim(BAD_CBOR)

        assert results["signature_valid"] is None
        assert results["errors"] == ["Invalid CBOR structure"]


class TestComidAndEvidence:
    """validate_comid and validate_concise_evidence results."""

    @pytest.mark.unit
    def test_comid(self, validator, sample_comid):
        results = validator.validate_comid(sample_comid.to_cbor())

        assert results["valid"] is True
        assert results["profile"] is None

    @pytest.mark.unit
    def test_comid_under_profile(self, validator, sample_comid):
        """The sample key triple has no implementation id, which PSA requires."""
        results = validator.validate_comid(sample_comid.to_cbor(), psa.PROFILE_ID)

        assert results["profile"] == psa.PROFILE_ID
        assert results["cbor_valid"] is True
        assert results["valid"] is False
        assert "implementation id" in results["errors"][0]

    @pytest.mark.unit
    def test_invalid_evidence(self, validator):
        results = validator.validate_concise_evidence(encode_tagged(571, {0: {}}))

        assert results["valid"] is False
        assert results["errors"][0].startswith("invalid EvTriples")
