"""Validation helpers returning result dictionaries instead of raising."""

import logging
from typing import Any, Optional

from . import cbor_utils
from .errors import CorimError, ParseError
from .profile import (
    unmarshal_and_validate_concise_evidence_from_cbor,
    unmarshal_and_validate_signed_corim_from_cbor,
    unmarshal_and_validate_unsigned_corim_from_cbor,
    unmarshal_comid_from_cbor,
)

logger = logging.getLogger(__name__)


class CBORValidator:
    """Utility class for CBOR well-formedness checks."""

    @staticmethod
    def validate_structure(cbor_data: bytes) -> bool:
        """Validate CBOR structure.

        Args:
            cbor_data: CBOR encoded bytes

        Returns:
            True if the bytes decode as a single CBOR item
        """
        try:
            cbor_utils.decode(cbor_data)
            return True
        except ParseError:
            return False


class CorimValidator:
    """High-level validator for CoRIM, CoMID and Concise Evidence documents.

    Each ``validate_*`` method decodes the document with the profile it
    declares, runs the full validation and reports the outcome as a
    dictionary::

        {
            "valid": bool,            # every check passed
            "cbor_valid": bool,       # the bytes are well-formed CBOR
            "structure_valid": bool,  # the document decoded and validated
            "profile": str | None,    # profile declared by (or given for) the document
            "errors": [str],
        }
    """

    def __init__(self) -> None:
        self.cbor_validator = CBORValidator()

    def _results(self, data: bytes) -> dict[str, Any]:
        results: dict[str, Any] = {
            "valid": False,
            "cbor_valid": False,
            "structure_valid": False,
            "profile": None,
            "errors": [],
        }
        if self.cbor_validator.validate_structure(data):
            results["cbor_valid"] = True
        else:
            results["errors"].append("Invalid CBOR structure")
        return results

    @staticmethod
    def _fail(results: dict[str, Any], err: CorimError) -> dict[str, Any]:
        logger.debug("validation failed: %s", err)
        results["errors"].append(str(err))
        return results

    def validate_unsigned_corim(self, data: bytes) -> dict[str, Any]:
        """Validate a tag-501 unsigned CoRIM and the CoMIDs it carries.

        Args:
            data: CBOR encoded unsigned CoRIM

        Returns:
            Validation results dictionary
        """
        results = self._results(data)
        if not results["cbor_valid"]:
            return results
        try:
            corim = unmarshal_and_validate_unsigned_corim_from_cbor(data)
        except CorimError as err:
            return self._fail(results, err)
        results["profile"] = str(corim.profile) if corim.profile is not None else None
        results["structure_valid"] = True
        results["valid"] = True
        return results

    def validate_signed_corim(self, data: bytes, public_key: Optional[Any] = None) -> dict[str, Any]:
        """Validate a COSE_Sign1 signed CoRIM.

        Args:
            data: CBOR encoded signed CoRIM
            public_key: Key to verify the signature with; when omitted the
                signature is not checked and ``signature_valid`` is None

        Returns:
            Validation results dictionary with an extra ``signature_valid``
        """
        results = self._results(data)
        results["signature_valid"] = None
        if not results["cbor_valid"]:
            return results
        try:
            signed = unmarshal_and_validate_signed_corim_from_cbor(data)
        except CorimError as err:
            return self._fail(results, err)
        profile = signed.unsigned.profile
        results["profile"] = str(profile) if profile is not None else None
        results["structure_valid"] = True

        if public_key is not None:
            try:
                signed.verify(public_key)
                results["signature_valid"] = True
            except CorimError as err:
                results["signature_valid"] = False
                return self._fail(results, err)

        results["valid"] = True
        return results

    def validate_comid(self, data: bytes, profile: Optional[str] = None) -> dict[str, Any]:
        """Validate an untagged CoMID, optionally under a named profile.

        Args:
            data: CBOR encoded CoMID
            profile: Profile whose extensions and constraints apply

        Returns:
            Validation results dictionary
        """
        results = self._results(data)
        results["profile"] = profile
        if not results["cbor_valid"]:
            return results
        try:
            comid = unmarshal_comid_from_cbor(data, profile)
            comid.valid()
        except CorimError as err:
            return self._fail(results, err)
        results["structure_valid"] = True
        results["valid"] = True
        return results

    def validate_concise_evidence(self, data: bytes) -> dict[str, Any]:
        """Validate a tag-571 Concise Evidence.

        Args:
            data: CBOR encoded Concise Evidence

        Returns:
            Validation results dictionary
        """
        results = self._results(data)
        if not results["cbor_valid"]:
            return results
        try:
            evidence = unmarshal_and_validate_concise_evidence_from_cbor(data)
        except CorimError as err:
            return self._fail(results, err)
        results["profile"] = str(evidence.profile) if evidence.profile is not None else None
        results["structure_valid"] = True
        results["valid"] = True
        return results
