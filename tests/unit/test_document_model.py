"""Unit tests for CoRIM and CoMID construction and validation."""

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from corim import (
    Comid,
    Environment,
    HashEntry,
    KeyTriple,
    MarshalError,
    Measurement,
    Mval,
    ParseError,
    TagID,
    Triples,
    UnsignedCorim,
    Validity,
    ValidationError,
    ValueTriple,
    new_class_id,
    new_instance,
    new_mkey,
    new_pkix_base64_key,
)
from corim.cbor_utils import COMID_TAG, decode
from corim.comid import REL_REPLACES
from corim.environment import Class
from corim.triples import DependencyTriple, MembershipTriple

SAMPLE_UUID = "31fb5abf-023e-4992-aa4e-95f9c1503bfa"
SHA256_DIGEST = bytes(range(32))


def _env() -> Environment:
    return Environment(instance=new_instance(SAMPLE_UUID, "uuid"))


def _measurement() -> Measurement:
    value = Mval().set_version("1.0.0").add_digest("sha-256", SHA256_DIGEST)
    return Measurement(key=new_mkey("BL", "string"), value=value)


class TestEnvironment:
    """Environments must name something."""

    @pytest.mark.unit
    def test_empty_environment(self):
        with pytest.raises(ValidationError, match="environment must not be empty"):
            Environment().valid()

    @pytest.mark.unit
    def test_class_id_shortcut(self):
        class_id = new_class_id(SAMPLE_UUID, "uuid")
        env = Environment(class_=Class(class_id=class_id, vendor="ACME"))

        env.valid()
        assert env.class_id() == class_id
        assert env.to_cbor_data()[0] == {0: class_id.to_cbor_data(), 1: "ACME"}

    @pytest.mark.unit
    def test_empty_class(self):
        with pytest.raises(ValidationError, match="class validation failed: class must not be empty"):
            Environment(class_=Class()).valid()


class TestMeasurements:
    """Measurement value checks."""

    @pytest.mark.unit
    def test_empty_mval(self):
        with pytest.raises(ValidationError, match="invalid measurement value: no measurement value set"):
            Measurement().valid()

    @pytest.mark.unit
    def test_digest_length_checked(self):
        value = Mval().add_digest("sha-256", b"\x00" * 31)

        with pytest.raises(
            ValidationError,
            match="length mismatch for hash algorithm sha-256: want 32 bytes, got 31",
        ):
            Measurement(value=value).valid()

    @pytest.mark.unit
    def test_unknown_hash_algorithm(self):
        with pytest.raises(ValidationError, match="unknown hash algorithm md5"):
            Mval().add_digest("md5", b"\x00" * 16).valid()

    @pytest.mark.unit
    def test_digest_text_form(self):
        entry = HashEntry("sha-256", SHA256_DIGEST)

        assert entry.to_text().startswith("sha-256;")
        assert HashEntry.from_text(entry.to_text(":")) == HashEntry(1, SHA256_DIGEST)

    @pytest.mark.unit
    def test_unknown_algorithm_fails_to_render(self):
        """Rendering an unregistered algorithm is an encode error."""
        entry = HashEntry("md5", b"\x00" * 16)

        with pytest.raises(MarshalError, match="unknown hash algorithm md5"):
            entry.to_text()
        with pytest.raises(MarshalError):
            entry.to_json_data()

    @pytest.mark.unit
    def test_raw_value_and_mask(self):
        value = Mval().set_raw_value_bytes(b"\x01\x02", mask=b"\xff\x00")

        value.valid()
        assert value.to_cbor_data() == {4: value.raw_value.to_cbor_data(), 5: b"\xff\x00"}
        assert value.to_cbor_data()[4].tag == 560

    @pytest.mark.unit
    def test_bad_mac_length(self):
        with pytest.raises(ValidationError, match="invalid MAC address length 3"):
            Mval(mac_addr=b"\x01\x02\x03").valid()


class TestTriples:
    """Triples map and its families."""

    @pytest.mark.unit
    def test_empty_triples(self):
        with pytest.raises(ValidationError, match="triples struct must not be empty"):
            Triples().valid()

    @pytest.mark.unit
    def test_reference_value_index_in_message(self):
        triples = Triples()
        triples.add_reference_value(ValueTriple(_env(), [_measurement()]))
        triples.add_reference_value(ValueTriple(Environment(), [_measurement()]))

        with pytest.raises(
            ValidationError,
            match="reference value at index 1: environment validation failed: "
            "environment must not be empty",
        ):
            triples.valid()

    @pytest.mark.unit
    def test_key_triple_needs_keys(self):
        triples = Triples().add_attest_verif_key(KeyTriple(_env(), []))

        with pytest.raises(ValidationError, match="attestation verification key at index 0"):
            triples.valid()

    @pytest.mark.unit
    def test_value_triple_needs_measurements(self):
        with pytest.raises(ValidationError, match="no measurement entries"):
            ValueTriple(_env(), []).valid()

    @pytest.mark.unit
    def test_triple_is_array_in_cbor_and_object_in_json(self, public_key_pem):
        triple = KeyTriple(_env(), [new_pkix_base64_key(public_key_pem)])

        assert isinstance(triple.to_cbor_data(), list)
        assert set(triple.to_json_data()) == {"environment", "verification-keys"}
        assert KeyTriple.from_cbor_data(triple.to_cbor_data()) == triple

    @pytest.mark.unit
    def test_triple_array_length_checked(self):
        with pytest.raises(ParseError, match="expected 2 elements for ValueTriple"):
            ValueTriple.from_cbor_data([{1: b"x"}])

    @pytest.mark.unit
    def test_domain_triples(self):
        domain = Environment(class_=Class(vendor="ACME"))
        dependency = DependencyTriple(domain, [_env()])
        membership = MembershipTriple(domain, [_env()])

        dependency.valid()
        membership.valid()
        with pytest.raises(ValidationError, match="no member environments"):
            MembershipTriple(domain, []).valid()


class TestComid:
    """CoMID builder and checks."""

    @pytest.mark.unit
    def test_tag_identity_required(self):
        comid = Comid().add_reference_value(_env(), _measurement())

        with pytest.raises(ValidationError, match="tag-identity validation failed: tag-identity not set"):
            comid.valid()

    @pytest.mark.unit
    def test_triples_required(self):
        comid = Comid().set_tag_identity("vendor.example/prod/1")

        with pytest.raises(ValidationError, match="triples validation failed: triples struct must not be empty"):
            comid.valid()

    @pytest.mark.unit
    def test_entity_roles_required(self):
        comid = (
            Comid()
            .set_tag_identity("vendor.example/prod/1")
            .add_reference_value(_env(), _measurement())
        )
        comid.add_entity("ACME Inc.", "https://acme.example")

        with pytest.raises(ValidationError, match="invalid entity: empty roles"):
            comid.valid()

    @pytest.mark.unit
    def test_unknown_role(self):
        with pytest.raises(ValidationError, match="unknown role 'owner'"):
            Comid().add_entity("ACME Inc.", None, "owner")

    @pytest.mark.unit
    def test_full_comid_json_round_trip(self):
        comid = (
            Comid()
            .set_language("en-GB")
            .set_tag_identity(uuid.UUID(SAMPLE_UUID), 2)
            .add_entity("ACME Inc.", "https://acme.example", "tagCreator", "creator")
            .add_linked_tag("vendor.example/prod/0", REL_REPLACES)
            .add_reference_value(_env(), _measurement())
        )
        comid.valid()

        data = comid.to_json_data()
        assert data["tag-identity"] == {
            "id": {"type": "uuid", "value": SAMPLE_UUID},
            "version": 2,
        }
        assert data["entities"][0]["roles"] == ["tagCreator", "creator"]
        assert data["linked-tags"] == [{"target": "vendor.example/prod/0", "rel": "replaces"}]
        assert Comid.from_json(comid.to_json()) == comid
        assert Comid.from_cbor(comid.to_cbor()) == comid

    @pytest.mark.unit
    def test_tag_id_with_bad_uuid_fails_to_render(self):
        """Byte tag ids that are not 16 bytes long cannot be written as JSON."""
        with pytest.raises(MarshalError, match="tag-id UUID must be 16 bytes, got 3"):
            TagID(b"\x01\x02\x03").to_json_data()
        with pytest.raises(MarshalError, match="unexpected type for tag-id: int"):
            TagID(7).to_json_data()


class TestUnsignedCorim:
    """Unsigned CoRIM builder and checks."""

    @pytest.mark.unit
    def test_empty_id(self):
        with pytest.raises(ValidationError, match="empty id"):
            UnsignedCorim().valid()

    @pytest.mark.unit
    def test_no_tags(self):
        with pytest.raises(ValidationError, match="tags validation failed: no tags"):
            UnsignedCorim(id="corim").valid()

    @pytest.mark.unit
    def test_add_comid_validates_first(self):
        with pytest.raises(ValidationError, match="tag-identity not set"):
            UnsignedCorim(id="corim").add_comid(Comid())

    @pytest.mark.unit
    def test_comid_tag_embedded_untagged(self, sample_corim, sample_comid):
        tag = sample_corim.tags[0]

        assert tag.number == COMID_TAG
        assert tag.body == sample_comid.to_cbor()
        assert decode(sample_corim.to_cbor()).value[1][0].tag == COMID_TAG
        assert sample_corim.comids() == [sample_comid]

    @pytest.mark.unit
    def test_relative_dependent_rim_rejected(self):
        with pytest.raises(ValidationError, match="invalid href: .*not absolute"):
            UnsignedCorim(id="corim").add_dependent_rim("rims/other.cbor")

    @pytest.mark.unit
    def test_corim_entity_roles(self, sample_corim):
        sample_corim.add_entity("ACME Ltd", None, "manifestCreator")

        assert sample_corim.to_json_data()["entities"] == [
            {"name": "ACME Ltd", "roles": ["manifestCreator"]}
        ]
        with pytest.raises(ValidationError, match="unknown role 'tagCreator'"):
            sample_corim.add_entity("ACME Ltd", None, "tagCreator")

    @pytest.mark.unit
    def test_validity_window(self):
        now = datetime(2030, 6, 1, tzinfo=timezone.utc)
        validity = Validity(now + timedelta(days=1), now - timedelta(days=1))

        validity.check(now)
        with pytest.raises(ValidationError, match="validity period has expired"):
            validity.check(now + timedelta(days=2))
        with pytest.raises(ValidationError, match="has not started yet"):
            validity.check(now - timedelta(days=2))

    @pytest.mark.unit
    def test_inverted_validity_rejected(self, sample_corim, not_after):
        with pytest.raises(ValidationError, match="not-before is after not-after"):
            sample_corim.set_rim_validity(not_after, not_after + timedelta(seconds=1))

    @pytest.mark.unit
    def test_validity_serialized_as_epoch_and_rfc3339(self, sample_corim, not_after):
        sample_corim.set_rim_validity(not_after)

        assert sample_corim.rim_validity.to_json_data() == {"not-after": "2031-01-01T00:00:00Z"}
        assert decode(sample_corim.to_cbor()).value[4] == {1: not_after}

    @pytest.mark.unit
    def test_wrong_outer_tag(self, sample_comid):
        with pytest.raises(ParseError, match="did not see unsigned CoRIM tag 501"):
            UnsignedCorim.from_cbor(sample_comid.to_cbor())
