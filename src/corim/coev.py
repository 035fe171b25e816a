"""Concise Evidence (CoEv): attester claims expressed with CoMID triples."""

import logging
from typing import Any, Optional, Union

from . import cbor_utils, json_utils
from .cbor_utils import CONCISE_EVIDENCE_TAG
from .choice import ChoiceCodec, ChoiceRegistry, ChoiceValue
from .encoding import Field, ListCodec, model
from .errors import ValidationError
from .extensions import ExtensionMap, ExtensionPoint
from .ids import ProfileID, TaggedUUID
from .model import MapStruct
from .triples import DependencyTriple, KeyTriple, MembershipTriple, ValueTriple, valid_family

logger = logging.getLogger(__name__)

evidence_ids = ChoiceRegistry("evidence id")
evidence_ids.register(TaggedUUID)
EVIDENCE_ID = ChoiceCodec(evidence_ids)


def register_evidence_id_type(variant: type) -> None:
    evidence_ids.register(variant)


def new_evidence_id(value: Any, type_name: str = TaggedUUID.type_name) -> ChoiceValue:
    """Create an evidence id of the named type (``uuid`` by default)."""
    evidence_id = evidence_ids.new(value, type_name)
    evidence_id.valid()
    return evidence_id


class EvTriples(MapStruct):
    """ev-triples-map."""

    fields = (
        Field("evidence_triples", 0, "evidence-triples", ListCodec(model(ValueTriple), "evidence triple")),
        Field("identity_triples", 1, "identity-triples", ListCodec(model(KeyTriple), "identity triple")),
        Field("dependency_triples", 2, "dependency-triples",
              ListCodec(model(DependencyTriple), "dependency triple")),
        Field("membership_triples", 3, "membership-triples",
              ListCodec(model(MembershipTriple), "membership triple")),
        Field("attest_key_triples", 5, "attestkey-triples", ListCodec(model(KeyTriple), "attest key triple")),
    )
    extensible = True
    constrainer = "valid_evidence_triples"

    def _append(self, name: str, triple: Any) -> "EvTriples":
        current = getattr(self, name)
        setattr(self, name, (current or []) + [triple])
        return self

    def add_evidence_triple(self, triple: ValueTriple) -> "EvTriples":
        return self._append("evidence_triples", triple)

    def add_identity_triple(self, triple: KeyTriple) -> "EvTriples":
        return self._append("identity_triples", triple)

    def add_dependency_triple(self, triple: DependencyTriple) -> "EvTriples":
        return self._append("dependency_triples", triple)

    def add_membership_triple(self, triple: MembershipTriple) -> "EvTriples":
        return self._append("membership_triples", triple)

    def add_attest_key_triple(self, triple: KeyTriple) -> "EvTriples":
        return self._append("attest_key_triples", triple)

    def register_extensions(self, ext_map: ExtensionMap) -> None:
        self.register_extension(ext_map.get(ExtensionPoint.EVIDENCE_TRIPLES))
        mval_ext = ext_map.get(ExtensionPoint.MVAL)
        for triple in self.evidence_triples or []:
            triple.register_extensions(mval_ext)

    def valid(self) -> None:
        if all(not getattr(self, f.name) for f in self.fields):
            raise ValidationError("no Triples set inside EvTriples")
        valid_family(self.evidence_triples, "evidence triple")
        valid_family(self.identity_triples, "identity triple")
        valid_family(self.dependency_triples, "dependency triple")
        valid_family(self.membership_triples, "membership triple")
        valid_family(self.attest_key_triples, "attest key triple")
        self.valid_extensions()


class ConciseEvidence(MapStruct):
    """concise-evidence-map, carried under CBOR tag 571."""

    fields = (
        Field("ev_triples", 0, "ev-triples", model(EvTriples), optional=False),
        Field("evidence_id", 1, "evidence-id", EVIDENCE_ID),
        Field("profile", 2, "profile", model(ProfileID)),
    )
    extensible = True

    def __init__(self, **values: Any):
        super().__init__(**values)
        if self.ev_triples is None:
            self.ev_triples = EvTriples()

    def add_triples(self, ev_triples: EvTriples) -> "ConciseEvidence":
        """Set the evidence triples after validating them."""
        try:
            ev_triples.valid()
        except ValidationError as err:
            raise err.wrap("invalid evidence triples") from err
        self.ev_triples = ev_triples
        return self

    def add_evidence_id(self, evidence_id: Any) -> "ConciseEvidence":
        if not isinstance(evidence_id, ChoiceValue):
            evidence_id = new_evidence_id(evidence_id)
        try:
            evidence_id.valid()
        except ValidationError as err:
            raise err.wrap("invalid EvidenceID") from err
        self.evidence_id = evidence_id
        return self

    def add_profile(self, profile: Union[str, ProfileID]) -> "ConciseEvidence":
        self.profile = ProfileID(profile)
        return self

    def register_extensions(self, ext_map: Optional[ExtensionMap]) -> None:
        if not ext_map:
            return
        if self.ev_triples is not None:
            self.ev_triples.register_extensions(ext_map)
        logger.debug("registered extensions on concise evidence")

    def valid(self) -> None:
        if self.ev_triples is None:
            raise ValidationError("invalid EvTriples: not set")
        try:
            self.ev_triples.valid()
        except ValidationError as err:
            raise err.wrap("invalid EvTriples") from err
        if self.evidence_id is not None:
            try:
                self.evidence_id.valid()
            except ValidationError as err:
                raise err.wrap("invalid EvidenceID") from err
        self.valid_extensions()

    def to_cbor(self) -> bytes:
        """Validate and serialize under tag 571."""
        self.valid()
        return cbor_utils.encode_tagged(CONCISE_EVIDENCE_TAG, self.to_cbor_data())

    @classmethod
    def from_cbor(cls, data: bytes, ext_map: Optional[ExtensionMap] = None) -> "ConciseEvidence":
        """Deserialize a tag-571 Concise Evidence.

        Extensions are attached before validation runs.

        Raises:
            ParseError: If the data is malformed
            ValidationError: If the decoded evidence is invalid
        """
        content = cbor_utils.decode_tagged(data, CONCISE_EVIDENCE_TAG, "concise evidence")
        evidence = cls.from_cbor_data(content)
        evidence.register_extensions(ext_map)
        evidence.valid()
        return evidence

    def to_json(self, indent: Optional[int] = None) -> str:
        self.valid()
        return json_utils.dumps(self.to_json_data(), indent=indent)

    @classmethod
    def from_json(cls, data: Union[str, bytes],
                  ext_map: Optional[ExtensionMap] = None) -> "ConciseEvidence":
        evidence = cls.from_json_data(json_utils.loads(data))
        evidence.register_extensions(ext_map)
        evidence.valid()
        return evidence
