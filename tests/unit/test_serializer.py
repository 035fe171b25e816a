"""Unit tests for the struct-field serializer and the field cache."""

import json

import pytest

from corim import Comid, MarshalError, ParseError, TagIdentity
from corim.cbor_utils import CBORTag
from corim.comid import REL_SUPERSEDES, LinkedTag
from corim.measurement import ExactSVN, MinSVN, Mval, Version
from corim.meta import Signer


class TestMandatoryAndOmitempty:
    """Field declaration semantics."""

    @pytest.mark.unit
    def test_missing_mandatory_field_on_decode(self):
        """A mandatory key absent from the map names the field and its key."""
        with pytest.raises(ParseError, match=r'missing mandatory field "id" \(0\)'):
            TagIdentity.from_cbor_data({1: 0})

    @pytest.mark.unit
    def test_missing_mandatory_json_member(self):
        with pytest.raises(ParseError, match='missing mandatory field "tag-identity"'):
            Comid.from_json('{"triples": {}}')

    @pytest.mark.unit
    def test_missing_mandatory_field_on_encode(self):
        """Encoding without a mandatory value is a programming error."""
        with pytest.raises(MarshalError, match='missing mandatory field "value"'):
            Version().to_cbor_data()

    @pytest.mark.unit
    def test_optional_zero_values_omitted(self):
        """Unset and empty optional members produce no keys."""
        version = Version("1.0.0")

        assert version.to_cbor_data() == {0: "1.0.0"}
        assert version.to_json_data() == {"value": "1.0.0"}

        mval = Mval(serial_number="", digests=[])
        mval.name = "fw"
        assert mval.to_cbor_data() == {11: "fw"}

    @pytest.mark.unit
    def test_wrong_member_type_reports_location(self):
        """Decode errors carry the JSON name of the failing field."""
        with pytest.raises(ParseError, match='field "value": expected text string'):
            Version.from_cbor_data({0: 7})

    @pytest.mark.unit
    def test_map_expected(self):
        with pytest.raises(ParseError, match="expected map for Version"):
            Version.from_cbor_data([0, "1"])


class TestCodecs:
    """Per-field codecs that differ between CBOR and JSON."""

    @pytest.mark.unit
    def test_version_scheme_names_in_json(self):
        """Scheme codes are integers in CBOR and names in JSON."""
        version = Version("1.2.3", 16384)

        assert version.to_cbor_data() == {0: "1.2.3", 1: 16384}
        assert version.to_json_data() == {"value": "1.2.3", "scheme": "semver"}
        assert Version.from_json('{"value": "1.2.3", "scheme": "semver"}') == version

    @pytest.mark.unit
    def test_bare_uint_svn_decodes_as_exact(self):
        mval = Mval.from_cbor_data({1: 5})

        assert mval.svn == ExactSVN(5)

    @pytest.mark.unit
    def test_min_svn_is_tagged(self):
        mval = Mval().set_svn(3, minimum=True)
        data = mval.to_cbor_data()

        assert data[1].tag == 553
        assert Mval.from_cbor_data(data).svn == MinSVN(3)

    @pytest.mark.unit
    def test_mac_and_ip_address_forms(self):
        """MAC addresses are colon hex and IP addresses textual in JSON."""
        mval = Mval(mac_addr=bytes.fromhex("0242ac110002"), ip_addr=bytes([192, 0, 2, 1]))
        data = mval.to_json_data()

        assert data["mac-addr"] == "02:42:ac:11:00:02"
        assert data["ip-addr"] == "192.0.2.1"
        assert Mval.from_json_data(data) == mval

    @pytest.mark.unit
    def test_flags_round_trip(self):
        mval = Mval().set_flag("is-debug", False).set_flag("tcb")

        assert mval.to_cbor_data() == {3: {3: False, 8: True}}
        assert mval.to_json_data() == {"flags": {"is-debug": False, "is-tcb": True}}
        assert Mval.from_cbor_data(mval.to_cbor_data()) == mval

    @pytest.mark.unit
    def test_linked_tag_relation_names(self):
        linked = LinkedTag("vendor.example/prod/0", REL_SUPERSEDES)

        assert linked.to_json_data() == {"target": "vendor.example/prod/0", "rel": "supersedes"}
        assert LinkedTag.from_json_data(linked.to_json_data()) == linked


class TestFieldCache:
    """Unknown map entries survive decode and re-encode."""

    @pytest.mark.unit
    def test_unknown_cbor_keys_round_trip(self):
        """Extensible maps keep unknown integer keys under their string form."""
        data = {0: "ACME", -1: "foo", -70: [1, 2]}
        signer = Signer.from_cbor_data(dict(data))

        assert signer.extensions.cache == {"-1": "foo", "-70": [1, 2]}
        assert signer.to_cbor_data() == data

    @pytest.mark.unit
    def test_unknown_json_members_round_trip(self):
        text = json.dumps({"name": "ACME", "x-extra": {"a": 1}})
        signer = Signer.from_json(text)

        assert json.loads(signer.to_json()) == {"name": "ACME", "x-extra": {"a": 1}}

    @pytest.mark.unit
    def test_cbor_cache_rendered_in_json(self):
        """Cached entries keep plain JSON when they have one and a CBOR envelope otherwise."""
        signer = Signer.from_cbor_data({0: "ACME", -1: b"\x01\x02", -2: "text"})

        assert signer.to_json_data() == {
            "name": "ACME",
            "-1": {"type": "cbor", "value": "QgEC"},
            "-2": "text",
        }

    @pytest.mark.unit
    def test_cbor_cache_survives_json(self):
        """CBOR to JSON to CBOR keeps byte strings, tags and integer-keyed maps."""
        data = {
            0: "ACME",
            -1: b"\x01\x02",
            -2: CBORTag(560, b"\xaa"),
            -3: {1: [b"x", "y"]},
            -4: 7,
            -5: "text",
        }
        signer = Signer.from_cbor_data(dict(data))

        again = Signer.from_json(signer.to_json())

        assert again == signer
        assert again.to_cbor_data() == data
        assert again.to_json_data() == signer.to_json_data()

    @pytest.mark.unit
    def test_closed_maps_drop_unknown_keys(self):
        """Non-extensible maps ignore what they do not declare."""
        version = Version.from_cbor_data({0: "1.0", 99: True})

        assert version.to_cbor_data() == {0: "1.0"}

    @pytest.mark.unit
    def test_cache_counts_as_content(self):
        """A node holding only cached entries is not empty."""
        signer = Signer.from_cbor_data({0: "x", -5: 1})
        signer.name = None

        assert not signer.is_empty()
