"""Unit tests for tagged-choice registries and the identifier variants."""

import pytest

from corim import (
    ComidEntity,
    HashEntry,
    Locator,
    MarshalError,
    ParseError,
    ProfileID,
    RegistrationError,
    UnsupportedError,
    ValidationError,
    new_class_id,
    new_instance,
)
from corim.cbor_utils import CBORTag
from corim.choice import ChoiceRegistry, ChoiceValue
from corim.environment import Class, class_ids, instances
from corim.ids import OID, TaggedBytes, TaggedInt, TaggedUUID, TextValue

SAMPLE_UUID = "31fb5abf-023e-4992-aa4e-95f9c1503bfa"


class Widget(ChoiceValue):
    """Untagged text variant used to exercise a private registry."""

    type_name = "widget"

    @classmethod
    def matches_untagged(cls, data):
        return isinstance(data, str)

    def valid(self):
        if not self.value:
            raise ValidationError("empty widget")


class Gadget(ChoiceValue):
    type_name = "gadget"
    cbor_tag = 65100


class TestChoiceRegistry:
    """Registration and dispatch rules."""

    @pytest.fixture
    def registry(self):
        registry = ChoiceRegistry("test choice")
        registry.register(Widget)
        registry.register(Gadget)
        return registry

    @pytest.mark.unit
    def test_reregistering_same_variant_is_noop(self, registry):
        registry.register(Widget)

        assert registry.types() == ["widget", "gadget"]

    @pytest.mark.unit
    def test_duplicate_type_name_rejected(self, registry):
        class OtherWidget(ChoiceValue):
            type_name = "widget"

        with pytest.raises(RegistrationError, match='type "widget" is already registered'):
            registry.register(OtherWidget)

    @pytest.mark.unit
    def test_duplicate_tag_rejected(self, registry):
        class OtherGadget(ChoiceValue):
            type_name = "other-gadget"
            cbor_tag = 65100

        with pytest.raises(RegistrationError, match="tag 65100 is already registered"):
            registry.register(OtherGadget)

    @pytest.mark.unit
    def test_non_variant_rejected(self, registry):
        with pytest.raises(RegistrationError, match="not a ChoiceValue subclass"):
            registry.register(str)

    @pytest.mark.unit
    def test_dispatch_on_tag_and_shape(self, registry):
        """Tagged data goes by tag number, untagged data by Python shape."""
        assert registry.decode_cbor(CBORTag(65100, 1)) == Gadget(1)
        assert registry.decode_cbor("abc") == Widget("abc")

    @pytest.mark.unit
    def test_unknown_tag_is_unsupported(self, registry):
        with pytest.raises(UnsupportedError, match=r"unknown test choice \(tag 9999\)"):
            registry.decode_cbor(CBORTag(9999, b""))

    @pytest.mark.unit
    def test_unknown_shape_is_unsupported(self, registry):
        with pytest.raises(UnsupportedError, match=r"unknown test choice \(float\)"):
            registry.decode_cbor(3.5)

    @pytest.mark.unit
    def test_variant_validation_failure_is_parse_error(self, registry):
        """Content that decodes but fails its own check reports the choice name."""
        with pytest.raises(ParseError, match="test choice: empty widget"):
            registry.decode_cbor("")

    @pytest.mark.unit
    def test_json_envelope(self, registry):
        assert registry.encode_json(Widget("w")) == {"type": "widget", "value": "w"}
        assert registry.decode_json({"type": "gadget", "value": 3}) == Gadget(3)

    @pytest.mark.unit
    def test_json_envelope_errors(self, registry):
        with pytest.raises(ParseError, match="test choice: type not set"):
            registry.decode_json({"value": 3})
        with pytest.raises(ParseError, match="no value provided for widget"):
            registry.decode_json({"type": "widget"})
        with pytest.raises(UnsupportedError, match='unknown test choice type "nope"'):
            registry.decode_json({"type": "nope", "value": 1})

    @pytest.mark.unit
    def test_encode_rejects_foreign_variant(self, registry):
        with pytest.raises(MarshalError, match="unexpected type TextValue for test choice"):
            registry.encode_cbor(TextValue("x"))


class TestIdentifierVariants:
    """Built-in class id, instance and profile identifier forms."""

    @pytest.mark.unit
    def test_uuid_class_id(self):
        class_id = new_class_id(SAMPLE_UUID, "uuid")

        assert isinstance(class_id, TaggedUUID)
        assert class_id.to_cbor_data().tag == 37
        assert class_ids.encode_json(class_id) == {"type": "uuid", "value": SAMPLE_UUID}

    @pytest.mark.unit
    def test_short_uuid_rejected_on_decode(self):
        with pytest.raises(ParseError, match="class id: invalid UUID: expected 16 bytes, got 3"):
            class_ids.decode_cbor(CBORTag(37, b"\x00" * 3))

    @pytest.mark.unit
    def test_oid_is_der_encoded(self):
        """OIDs are dotted strings in Python and JSON, BER octets under tag 111 in CBOR."""
        oid = new_class_id("1.2.3.4", "oid")

        assert oid.to_cbor_data() == CBORTag(111, bytes.fromhex("2a0304"))
        assert class_ids.decode_cbor(CBORTag(111, bytes.fromhex("2a0304"))) == OID("1.2.3.4")

    @pytest.mark.unit
    def test_oid_large_arc(self):
        oid = OID("2.16.840.1.113741")

        assert OID.from_cbor_inner(oid.cbor_inner()) == oid

    @pytest.mark.unit
    def test_invalid_oid(self):
        with pytest.raises(ValidationError, match="invalid OID"):
            new_class_id("1.2.x", "oid")

    @pytest.mark.unit
    def test_bytes_factory_accepts_base64(self):
        assert new_class_id("AQID", "bytes") == TaggedBytes(b"\x01\x02\x03")

    @pytest.mark.unit
    def test_tagged_int_class_id(self):
        assert class_ids.decode_cbor(CBORTag(551, 7)) == TaggedInt(7)

    @pytest.mark.unit
    def test_ueid_shapes(self):
        """EUI UEIDs are 7 bytes; RAND UEIDs are 17, 24 or 33."""
        new_instance(b"\x02" + b"\x11" * 6, "ueid")
        new_instance(b"\x01" + b"\x22" * 16, "ueid")

        with pytest.raises(ValidationError, match="invalid RAND UEID length 6"):
            new_instance(b"\x01" + b"\x22" * 5, "ueid")
        with pytest.raises(ValidationError, match="unknown UEID type 0x07"):
            new_instance(b"\x07\x00", "ueid")

    @pytest.mark.unit
    def test_text_instance_untagged(self):
        assert instances.decode_cbor("node-1") == TextValue("node-1")

    @pytest.mark.unit
    def test_wrong_variant_in_class(self):
        """A variant the class-id choice does not accept cannot be encoded."""
        with pytest.raises(MarshalError, match='field "id"'):
            Class(class_id=TextValue("x")).to_cbor_data()


class TestProfileID:
    """Profile identifiers are URIs or OIDs."""

    @pytest.mark.unit
    def test_uri_profile(self):
        profile = ProfileID("http://example.com/profile")

        assert profile.is_uri
        assert profile.to_cbor_data() == "http://example.com/profile"

    @pytest.mark.unit
    def test_oid_profile(self):
        profile = ProfileID("1.2.3")

        assert profile.is_oid
        assert profile.to_cbor_data() == CBORTag(111, bytes.fromhex("2a03"))
        assert ProfileID.from_cbor_data(CBORTag(111, bytes.fromhex("2a03"))) == profile

    @pytest.mark.unit
    def test_relative_uri_rejected(self):
        with pytest.raises(ValidationError, match="not absolute"):
            ProfileID("not a uri")

    @pytest.mark.unit
    def test_bad_profile_on_decode_is_parse_error(self):
        with pytest.raises(ParseError, match="profile:"):
            ProfileID.from_cbor_data("relative/path")


class TestPlainJsonForms:
    """Choices and members whose JSON form drops the envelope."""

    @pytest.mark.unit
    def test_entity_name_plain_string(self):
        entity = ComidEntity(name="ACME Inc.", roles=[0])

        assert entity.to_json_data() == {"name": "ACME Inc.", "roles": ["tagCreator"]}

    @pytest.mark.unit
    def test_entity_name_envelope_still_accepted(self):
        data = {"name": {"type": "string", "value": "ACME Inc."}, "roles": ["creator"]}
        entity = ComidEntity.from_json_data(data)

        assert entity.name == TextValue("ACME Inc.")
        assert entity.roles == [1]

    @pytest.mark.unit
    def test_thumbprint_uses_colon_and_accepts_semicolon(self):
        digest = b"\xaa" * 32
        locator = Locator("https://example.com/rim.cbor", HashEntry(1, digest))
        data = locator.to_json_data()

        assert data["thumbprint"].startswith("sha-256:")
        data["thumbprint"] = data["thumbprint"].replace(":", ";", 1)
        assert Locator.from_json_data(data) == locator
