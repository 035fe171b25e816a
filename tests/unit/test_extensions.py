"""Unit tests for extension holders and the profile registry."""

import pytest

from corim import (
    Comid,
    Environment,
    ExtensionMap,
    ExtensionPoint,
    ExtensionValue,
    Measurement,
    Mval,
    RegistrationError,
    UnsignedCorim,
    ValidationError,
    get_profile_manifest,
    new_instance,
    new_mkey,
    register_profile,
    registered_profiles,
    unregister_profile,
)
from corim.encoding import TEXT, UINT, Field

TEST_PROFILE_ID = "http://example.com/test-profile"


class CorimExtension(ExtensionValue):
    fields = (Field("extension1", -1, "extension1", TEXT),)


class StrictComidExtension(ExtensionValue):
    """A mandatory member plus a constrainer on the CoMID."""

    fields = (Field("build", -2, "build", UINT, optional=False),)

    def constrain_comid(self, comid):
        if comid.language != "en":
            raise ValidationError("language must be en")


def _comid() -> Comid:
    env = Environment(instance=new_instance("node-1", "string"))
    measurement = Measurement(key=new_mkey("fw", "string"), value=Mval().set_version("1"))
    return Comid().set_tag_identity("vendor.example/prod/1").add_reference_value(env, measurement)


class TestProfileRegistry:
    """Registration rules for profiles."""

    @pytest.mark.unit
    def test_registered_profile_is_found(self, throwaway_profile):
        manifest, found = get_profile_manifest(TEST_PROFILE_ID)

        assert found
        assert manifest is throwaway_profile
        assert str(manifest.id) == TEST_PROFILE_ID
        assert TEST_PROFILE_ID in registered_profiles()

    @pytest.mark.unit
    def test_unknown_profile(self):
        assert get_profile_manifest("http://example.com/nobody") == (None, False)
        assert get_profile_manifest(None) == (None, False)

    @pytest.mark.unit
    def test_duplicate_registration(self, throwaway_profile):
        with pytest.raises(
            RegistrationError,
            match=f'profile with id "{TEST_PROFILE_ID}" already registered',
        ):
            register_profile(TEST_PROFILE_ID, ExtensionMap())

    @pytest.mark.unit
    def test_unregister(self):
        register_profile("http://example.com/short-lived", ExtensionMap())

        assert unregister_profile("http://example.com/short-lived") is True
        assert unregister_profile("http://example.com/short-lived") is False

    @pytest.mark.unit
    def test_non_instance_value_rejected(self):
        ext_map = ExtensionMap().add(ExtensionPoint.COMID, CorimExtension)

        with pytest.raises(RegistrationError, match="attempting to register a non-instance"):
            register_profile("http://example.com/bad", ext_map)
        assert get_profile_manifest("http://example.com/bad") == (None, False)

    @pytest.mark.unit
    def test_unknown_point_rejected(self):
        with pytest.raises(RegistrationError, match="unexpected extension point"):
            register_profile("http://example.com/bad", {"Comid": CorimExtension()})

    @pytest.mark.unit
    def test_invalid_profile_identifier(self):
        with pytest.raises(RegistrationError, match="invalid profile identifier"):
            register_profile("not a uri", ExtensionMap())

    @pytest.mark.unit
    def test_oid_profile_identifier(self):
        register_profile("1.2.3.4.5", ExtensionMap())
        try:
            manifest, found = get_profile_manifest("1.2.3.4.5")
            assert found
            assert manifest.id.is_oid
        finally:
            unregister_profile("1.2.3.4.5")


class TestExtensionHolders:
    """Per-node extension values and field caches."""

    @pytest.mark.unit
    def test_each_document_gets_its_own_instance(self, throwaway_profile):
        first = throwaway_profile.get_unsigned_corim()
        second = throwaway_profile.get_unsigned_corim()

        first.extensions.set("extension1", "one")

        assert second.extensions.get("extension1") is None
        assert first.extensions.value is not second.extensions.value
        assert str(first.profile) == TEST_PROFILE_ID

    @pytest.mark.unit
    def test_get_by_name_json_name_or_key(self):
        corim = UnsignedCorim(id="x")
        corim.register_extension(CorimExtension())
        corim.extensions.set("-1", "foo")

        assert corim.extensions.get("extension1") == "foo"
        assert corim.extensions.get("-1") == "foo"
        with pytest.raises(KeyError):
            corim.extensions.get("extension2")
        with pytest.raises(KeyError):
            corim.extensions.set("extension2", "bar")

    @pytest.mark.unit
    def test_set_without_registration(self):
        with pytest.raises(RegistrationError, match="no extension value registered"):
            UnsignedCorim(id="x").extensions.set("extension1", "foo")

    @pytest.mark.unit
    def test_extension_encoded_under_its_key(self, sample_corim):
        sample_corim.register_extension(CorimExtension())
        sample_corim.extensions.set("extension1", "foo")

        assert sample_corim.to_cbor_data()[-1] == "foo"
        assert sample_corim.to_json_data()["extension1"] == "foo"

    @pytest.mark.unit
    def test_late_registration_absorbs_cbor_cache(self, sample_corim):
        data = sample_corim.to_cbor_data()
        data[-1] = "foo"
        decoded = UnsignedCorim.from_cbor_data(data)

        assert decoded.extensions.cache == {"-1": "foo"}
        decoded.register_extension(CorimExtension())
        assert decoded.extensions.get("extension1") == "foo"
        assert decoded.extensions.cache == {}

    @pytest.mark.unit
    def test_late_registration_absorbs_json_cache(self, sample_corim):
        data = sample_corim.to_json_data()
        data["extension1"] = "bar"
        decoded = UnsignedCorim.from_json_data(data)

        decoded.register_extension(CorimExtension())
        assert decoded.extensions.get("extension1") == "bar"

    @pytest.mark.unit
    def test_reregistering_same_type_keeps_values(self):
        corim = UnsignedCorim(id="x")
        corim.register_extension(CorimExtension())
        corim.extensions.set("extension1", "kept")
        corim.register_extension(CorimExtension())

        assert corim.extensions.get("extension1") == "kept"

    @pytest.mark.unit
    def test_mandatory_extension_member(self):
        comid = _comid().set_language("en")
        comid.register_extension(StrictComidExtension())

        with pytest.raises(ValidationError, match='missing mandatory field "build" \\(-2\\)'):
            comid.valid()
        comid.extensions.set("build", 7)
        comid.valid()

    @pytest.mark.unit
    def test_constrainer_hook_runs(self):
        comid = _comid().set_language("fr")
        comid.register_extension(StrictComidExtension(build=1))
        comid.extensions.set("build", 1)

        with pytest.raises(ValidationError, match="language must be en"):
            comid.valid()

    @pytest.mark.unit
    def test_profile_extensions_reach_embedded_comids(self):
        ext_map = ExtensionMap().add(ExtensionPoint.COMID, StrictComidExtension())
        comid = _comid().set_language("en")
        comid.register_extension(StrictComidExtension())
        comid.extensions.set("build", 3)
        corim = UnsignedCorim(id="x").add_comid(comid)
        corim.register_extensions(ext_map)

        assert corim.comids()[0].extensions.get("build") == 3
