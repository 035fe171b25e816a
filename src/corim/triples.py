"""Triples: records relating an environment to values, keys or other environments.

Each triple record is a CBOR array and a JSON object. :class:`Triples`
groups the families into the CoMID triples map.
"""

from typing import Any, Optional

from .cryptokeys import CRYPTO_KEYS
from .encoding import Field, ListCodec, Serializable, expect_array, expect_map, model
from .environment import Environment
from .errors import MarshalError, ParseError, ValidationError
from .extensions import ExtensionMap, ExtensionPoint, ExtensionValue
from .ids import TagID
from .measurement import MEASUREMENTS, Measurement
from .model import MapStruct

ENVIRONMENT = model(Environment)
ENVIRONMENTS = ListCodec(ENVIRONMENT, "environment")


class TripleRecord(Serializable):
    """A fixed-length array whose members are named in JSON.

    Subclasses set ``members`` to ``(attribute, json name, codec)`` tuples.
    """

    members: tuple = ()

    def __init__(self, *values: Any, **named: Any):
        for i, (name, _, _) in enumerate(self.members):
            setattr(self, name, values[i] if i < len(values) else named.pop(name, None))
        if named:
            raise TypeError(f"unexpected members for {type(self).__name__}: {', '.join(named)}")

    def __eq__(self, other: object) -> bool:
        if type(self) is not type(other):
            return NotImplemented
        return all(getattr(self, n) == getattr(other, n) for n, _, _ in self.members)

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        inner = ", ".join(f"{n}={getattr(self, n)!r}" for n, _, _ in self.members)
        return f"{type(self).__name__}({inner})"

    def _value(self, name: str) -> Any:
        value = getattr(self, name)
        if value is None:
            raise MarshalError(f"{type(self).__name__}: {name} not set")
        return value

    def to_cbor_data(self) -> list:
        return [codec.to_cbor(self._value(name)) for name, _, codec in self.members]

    @classmethod
    def from_cbor_data(cls, data: Any) -> Any:
        items = expect_array(data, cls.__name__, len(cls.members))
        obj = cls()
        for (name, json_name, codec), raw in zip(cls.members, items):
            try:
                setattr(obj, name, codec.from_cbor(raw))
            except ParseError as err:
                raise err.wrap(json_name) from err
        return obj

    def to_json_data(self) -> dict:
        return {
            json_name: codec.to_json(self._value(name))
            for name, json_name, codec in self.members
        }

    @classmethod
    def from_json_data(cls, data: Any) -> Any:
        rest = expect_map(data, cls.__name__)
        obj = cls()
        for name, json_name, codec in cls.members:
            if json_name not in rest:
                raise ParseError(f'missing mandatory member "{json_name}"', cls.__name__)
            try:
                setattr(obj, name, codec.from_json(rest[json_name]))
            except ParseError as err:
                raise err.wrap(json_name) from err
        return obj

    def _valid_environment(self) -> None:
        if self.environment is None:
            raise ValidationError("environment validation failed: environment not set")
        try:
            self.environment.valid()
        except ValidationError as err:
            raise err.wrap("environment validation failed") from err


class ValueTriple(TripleRecord):
    """``[environment, [+measurement]]`` (reference and endorsed values)."""

    members = (
        ("environment", "environment", ENVIRONMENT),
        ("measurements", "measurements", MEASUREMENTS),
    )

    def add_measurement(self, measurement: Measurement) -> "ValueTriple":
        if self.measurements is None:
            self.measurements = []
        self.measurements.append(measurement)
        return self

    def register_extensions(
        self,
        mval_ext: Optional[ExtensionValue],
        flags_ext: Optional[ExtensionValue] = None,
    ) -> None:
        for measurement in self.measurements or []:
            if measurement.value is not None:
                measurement.value.register_extensions(mval_ext, flags_ext)

    def valid(self) -> None:
        self._valid_environment()
        if not self.measurements:
            raise ValidationError("measurements validation failed: no measurement entries")
        for i, measurement in enumerate(self.measurements):
            try:
                measurement.valid()
            except ValidationError as err:
                raise err.wrap(f"measurement at index {i}") from err


class KeyTriple(TripleRecord):
    """``[environment, [+crypto-key]]`` (attestation and identity keys)."""

    members = (
        ("environment", "environment", ENVIRONMENT),
        ("verif_keys", "verification-keys", CRYPTO_KEYS),
    )

    def add_key(self, key: Any) -> "KeyTriple":
        if self.verif_keys is None:
            self.verif_keys = []
        self.verif_keys.append(key)
        return self

    def valid(self) -> None:
        self._valid_environment()
        if not self.verif_keys:
            raise ValidationError("verification keys validation failed: no keys to validate")
        for i, key in enumerate(self.verif_keys):
            try:
                key.valid()
            except ValidationError as err:
                raise err.wrap(f"verification keys validation failed: invalid key at index {i}") from err


class DependencyTriple(TripleRecord):
    """``[domain, [+environment]]``: domains the first environment depends on."""

    members = (
        ("environment", "domain", ENVIRONMENT),
        ("dependencies", "dependent-domains", ENVIRONMENTS),
    )

    def valid(self) -> None:
        self._valid_environment()
        _valid_environments(self.dependencies, "dependent domain")


class MembershipTriple(TripleRecord):
    """``[domain, [+environment]]``: environments that are members of a domain."""

    members = (
        ("environment", "domain", ENVIRONMENT),
        ("environments", "environments", ENVIRONMENTS),
    )

    def valid(self) -> None:
        self._valid_environment()
        _valid_environments(self.environments, "member")


class CoswidTriple(TripleRecord):
    """``[environment, [+tag-id]]``: CoSWID tags describing an environment."""

    members = (
        ("environment", "environment", ENVIRONMENT),
        ("tag_ids", "coswid-tags", ListCodec(model(TagID), "tag-id")),
    )

    def valid(self) -> None:
        self._valid_environment()
        if not self.tag_ids:
            raise ValidationError("no CoSWID tag ids")
        for i, tag_id in enumerate(self.tag_ids):
            try:
                tag_id.valid()
            except ValidationError as err:
                raise err.wrap(f"tag-id at index {i}") from err


def _valid_environments(environments: Optional[list], what: str) -> None:
    if not environments:
        raise ValidationError(f"no {what} environments")
    for i, env in enumerate(environments):
        try:
            env.valid()
        except ValidationError as err:
            raise err.wrap(f"{what} at index {i}") from err


def valid_family(triples: Optional[list], what: str) -> None:
    """Validate each triple, prefixing errors with ``"<what> at index <i>"``."""
    for i, triple in enumerate(triples or []):
        try:
            triple.valid()
        except ValidationError as err:
            raise err.wrap(f"{what} at index {i}") from err


def register_value_triples(
    triples: Optional[list],
    ext_map: ExtensionMap,
    point: ExtensionPoint,
    flags_point: ExtensionPoint,
) -> None:
    """Attach measurement extensions to a family of value triples.

    ``point`` takes precedence over the generic ``Mval`` registration.
    """
    mval_ext = ext_map.get(point) or ext_map.get(ExtensionPoint.MVAL)
    flags_ext = ext_map.get(flags_point)
    for triple in triples or []:
        triple.register_extensions(mval_ext, flags_ext)


class Triples(MapStruct):
    """triples-map of a CoMID."""

    fields = (
        Field("reference_values", 0, "reference-values", ListCodec(model(ValueTriple), "reference value")),
        Field("endorsed_values", 1, "endorsed-values", ListCodec(model(ValueTriple), "endorsed value")),
        Field("attest_verif_keys", 2, "attester-verification-keys",
              ListCodec(model(KeyTriple), "attester verification key")),
        Field("dev_identity_keys", 3, "dev-identity-keys",
              ListCodec(model(KeyTriple), "device identity key")),
        Field("dependency_triples", 4, "dependency-triples",
              ListCodec(model(DependencyTriple), "dependency triple")),
        Field("membership_triples", 5, "membership-triples",
              ListCodec(model(MembershipTriple), "membership triple")),
        Field("coswid_triples", 6, "coswid-triples", ListCodec(model(CoswidTriple), "coswid triple")),
    )
    extensible = True
    constrainer = "valid_triples"

    def _append(self, name: str, triple: Any) -> "Triples":
        current = getattr(self, name)
        setattr(self, name, (current or []) + [triple])
        return self

    def add_reference_value(self, triple: ValueTriple) -> "Triples":
        return self._append("reference_values", triple)

    def add_endorsed_value(self, triple: ValueTriple) -> "Triples":
        return self._append("endorsed_values", triple)

    def add_attest_verif_key(self, triple: KeyTriple) -> "Triples":
        return self._append("attest_verif_keys", triple)

    def add_dev_identity_key(self, triple: KeyTriple) -> "Triples":
        return self._append("dev_identity_keys", triple)

    def add_dependency_triple(self, triple: DependencyTriple) -> "Triples":
        return self._append("dependency_triples", triple)

    def add_membership_triple(self, triple: MembershipTriple) -> "Triples":
        return self._append("membership_triples", triple)

    def add_coswid_triple(self, triple: CoswidTriple) -> "Triples":
        return self._append("coswid_triples", triple)

    def register_extensions(self, ext_map: ExtensionMap) -> None:
        self.register_extension(ext_map.get(ExtensionPoint.TRIPLES))
        register_value_triples(
            self.reference_values, ext_map,
            ExtensionPoint.REFERENCE_VALUE, ExtensionPoint.REFERENCE_VALUE_FLAGS,
        )
        register_value_triples(
            self.endorsed_values, ext_map,
            ExtensionPoint.ENDORSED_VALUE, ExtensionPoint.ENDORSED_VALUE_FLAGS,
        )

    def valid(self) -> None:
        if all(not getattr(self, f.name) for f in self.fields) and (
            self.extensions is None or self.extensions.is_empty()
        ):
            raise ValidationError("triples struct must not be empty")
        valid_family(self.reference_values, "reference value")
        valid_family(self.endorsed_values, "endorsed value")
        valid_family(self.attest_verif_keys, "attestation verification key")
        valid_family(self.dev_identity_keys, "device identity key")
        valid_family(self.dependency_triples, "dependency triple")
        valid_family(self.membership_triples, "membership triple")
        valid_family(self.coswid_triples, "coswid triple")
        self.valid_extensions()
