"""Pytest configuration and shared fixtures for CoRIM tests."""

from collections.abc import Iterator
from datetime import datetime, timezone
from typing import Callable

import pytest
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.ec import (
    EllipticCurvePrivateKey,
    EllipticCurvePublicKey,
)
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from corim import (
    Comid,
    Environment,
    ExtensionMap,
    ExtensionPoint,
    ExtensionValue,
    Meta,
    UnsignedCorim,
    get_profile_manifest,
    new_instance,
    new_pkix_base64_key,
    register_profile,
    unregister_profile,
)
from corim.encoding import TEXT, Field
from corim.profile import ProfileManifest

SAMPLE_UUID = "31fb5abf-023e-4992-aa4e-95f9c1503bfa"
SAMPLE_TAG_ID = "vendor.example/prod/1"
SAMPLE_CORIM_ID = "test corim id"
TEST_PROFILE_ID = "http://example.com/test-profile"


class CorimExtensions(ExtensionValue):
    """Single optional text member at key -1 of the unsigned CoRIM."""

    fields = (Field("extension1", -1, "extension1", TEXT),)


@pytest.fixture(scope="session")
def ec_keypair() -> tuple[EllipticCurvePrivateKey, EllipticCurvePublicKey]:
    """Generate an EC P-256 keypair for testing."""
    private_key = ec.generate_private_key(ec.SECP256R1())
    public_key = private_key.public_key()
    return private_key, public_key


@pytest.fixture(scope="session")
def other_ec_keypair() -> tuple[EllipticCurvePrivateKey, EllipticCurvePublicKey]:
    """A second, unrelated EC P-256 keypair."""
    private_key = ec.generate_private_key(ec.SECP256R1())
    return private_key, private_key.public_key()


@pytest.fixture(scope="session")
def public_key_pem(ec_keypair) -> str:
    """PEM SubjectPublicKeyInfo of the session keypair."""
    _, public_key = ec_keypair
    return public_key.public_bytes(Encoding.PEM, PublicFormat.SubjectPublicKeyInfo).decode("ascii")


@pytest.fixture
def make_comid(public_key_pem: str) -> Callable[..., Comid]:
    """Build a CoMID with one attestation verification key triple."""

    def _make(tag_id: str = SAMPLE_TAG_ID) -> Comid:
        env = Environment(instance=new_instance(SAMPLE_UUID, "uuid"))
        return (
            Comid()
            .set_tag_identity(tag_id)
            .add_attest_verif_key(env, new_pkix_base64_key(public_key_pem))
        )

    return _make


@pytest.fixture
def sample_comid(make_comid) -> Comid:
    return make_comid()


@pytest.fixture
def make_corim(make_comid) -> Callable[..., UnsignedCorim]:
    """Build a minimal valid unsigned CoRIM carrying one CoMID."""

    def _make(corim_id: str = SAMPLE_CORIM_ID) -> UnsignedCorim:
        return UnsignedCorim(id=corim_id).add_comid(make_comid())

    return _make


@pytest.fixture
def sample_corim(make_corim) -> UnsignedCorim:
    return make_corim()


@pytest.fixture
def sample_meta() -> Meta:
    return Meta().set_signer("ACME Ltd signing key", "https://acme.example")


@pytest.fixture
def not_after() -> datetime:
    return datetime(2031, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def throwaway_profile() -> Iterator[ProfileManifest]:
    """Register a profile with one optional CoRIM extension for the duration of a test."""
    ext_map = ExtensionMap().add(ExtensionPoint.UNSIGNED_CORIM, CorimExtensions())
    register_profile(TEST_PROFILE_ID, ext_map)
    manifest, _ = get_profile_manifest(TEST_PROFILE_ID)
    yield manifest
    unregister_profile(TEST_PROFILE_ID)


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: fast tests of a single module")
    config.addinivalue_line("markers", "integration: end-to-end document workflows")
    config.addinivalue_line(
        "markers", "requires_crypto: mark test as requiring cryptographic operations"
    )
