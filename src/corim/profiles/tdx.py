"""Intel TDX profile (OID ``2.16.840.1.113741.1.16.1``).

TDX reference values, endorsements and evidence describe the SEAM module,
the Quoting Enclave and the Provisioning Certification Enclave with extra
measurement-values-map members at negative keys. Several of those members
accept either a plain value or an expression (tags 60010 / 60020 / 60021):

======================  =====  ===============================================
JSON name               key    value
======================  =====  ===============================================
tcbdate                 -72    time
isvsvn                  -73    uint or numeric-expression (greater_or_equal)
instanceid              -77    uint or bytes
pceid                   -80    text
miscselect              -81    bytes
attributes              -82    bytes
mrtee                   -83    digests or digest-expression
mrsigner                -84    digests or digest-expression
isvprodid               -85    uint or bytes
tcbevalnum              -86    uint or numeric-expression (greater_or_equal)
tcbstatus               -88    text set or string-expression
advisoryids             -89    text set or string-expression
epoch                   -90    time
teecryptokeys           -91    crypto keys
tcbcompsvn              -125   1 to 16 SVNs
======================  =====  ===============================================

Example::

    mval = Mval()
    ext = tdx.mval_extensions(mval)
    ext.isv_svn = tdx.new_svn_expression(10)
    ext.mr_signer = tdx.new_tee_digest([HashEntry("sha-256", signer_hash)])
"""

from typing import Any, Iterable, Optional, Union

from ..choice import ChoiceCodec, ChoiceRegistry, ChoiceValue
from ..cryptokeys import CRYPTO_KEYS
from ..digests import DIGESTS, Digests, HashEntry
from ..encoding import BYTES, TEXT, TIME, Field, ListCodec, type_name
from ..errors import ParseError, ValidationError
from ..expressions import (
    GE,
    NumericExpression,
    SetDigestExpression,
    SetStringExpression,
    operator_name,
)
from ..extensions import ExtensionMap, ExtensionPoint, ExtensionValue
from ..ids import BytesValue, UintValue
from ..measurement import Mval
from ..profile import register_profile

PROFILE_ID = "2.16.840.1.113741.1.16.1"
MAX_SVN_COUNT = 16


class UntaggedBytes(BytesValue):
    """Byte string carried without a tag."""

    type_name = "bytes"

    @classmethod
    def matches_untagged(cls, data: Any) -> bool:
        return isinstance(data, bytes)


class DigestList(ChoiceValue):
    """Untagged ``[+digest]``."""

    type_name = "digest"

    def __init__(self, value: Optional[Iterable[HashEntry]] = None):
        super().__init__(Digests(value or []))

    @classmethod
    def matches_untagged(cls, data: Any) -> bool:
        return isinstance(data, list)

    def valid(self) -> None:
        self.value.valid()

    def cbor_inner(self) -> list:
        return DIGESTS.to_cbor(self.value)

    @classmethod
    def from_cbor_inner(cls, inner: Any) -> "DigestList":
        return cls(DIGESTS.from_cbor(inner))

    def json_value(self) -> list:
        return DIGESTS.to_json(self.value)

    @classmethod
    def from_json_value(cls, value: Any) -> "DigestList":
        return cls(DIGESTS.from_json(value))


class StringSet(ChoiceValue):
    """Untagged ``[+text]``."""

    type_name = "string"

    def __init__(self, value: Optional[Iterable[str]] = None):
        super().__init__(list(value or []))

    @classmethod
    def matches_untagged(cls, data: Any) -> bool:
        return isinstance(data, list)

    def valid(self) -> None:
        if not self.value:
            raise ValidationError("empty string set")
        for i, member in enumerate(self.value):
            if not isinstance(member, str):
                raise ValidationError(f"invalid type {type_name(member)} at index {i}")

    @classmethod
    def from_cbor_inner(cls, inner: Any) -> "StringSet":
        if not isinstance(inner, list):
            raise ParseError(f"expected array of text strings, got {type_name(inner)}")
        return cls(inner)

    from_json_value = from_cbor_inner


tee_svns = ChoiceRegistry("tee svn")
tcb_eval_nums = ChoiceRegistry("tee tcb eval number")
for _registry in (tee_svns, tcb_eval_nums):
    _registry.register(UintValue)
    _registry.register(NumericExpression)

tee_ids = ChoiceRegistry("tee id")
tee_ids.register(UintValue)
tee_ids.register(UntaggedBytes)

tee_digests = ChoiceRegistry("tee digest")
tee_digests.register(DigestList)
tee_digests.register(SetDigestExpression)

tee_string_sets = ChoiceRegistry("tee string set")
tee_string_sets.register(StringSet)
tee_string_sets.register(SetStringExpression)

TEE_SVN = ChoiceCodec(tee_svns)
TCB_EVAL_NUM = ChoiceCodec(tcb_eval_nums)
TEE_ID = ChoiceCodec(tee_ids)
TEE_DIGEST = ChoiceCodec(tee_digests)
TEE_STRING_SET = ChoiceCodec(tee_string_sets)


def check_numeric(value: Any, what: str) -> None:
    """Accept a uint or a ``greater_or_equal`` numeric expression over a uint.

    Raises:
        ValidationError: On any other operator, operand type or variant
    """
    if isinstance(value, NumericExpression):
        if value.operator != GE:
            raise ValidationError(
                f"unknown operator {operator_name(value.operator)} for Numeric {what}"
            )
        if not value.number.is_uint():
            raise ValidationError(f"unknown type {value.number.kind} for Numeric {what}")
        return
    if not isinstance(value, UintValue):
        raise ValidationError(f"unknown type {type_name(value)} for {what}")
    value.valid()


class TeeTcbCompSvn(list):
    """TCB component SVNs: between 1 and 16 entries."""

    def valid(self) -> None:
        if not self:
            raise ValidationError("empty TeeTcbCompSVN")
        if len(self) > MAX_SVN_COUNT:
            raise ValidationError(f"invalid length {len(self)} for TeeTcbCompSVN")
        for i, svn in enumerate(self):
            try:
                check_numeric(svn, "TeeSVN")
            except ValidationError as err:
                raise err.wrap(f"svn at index {i}") from err


class TcbCompSvnCodec(ListCodec):
    def from_cbor(self, data: Any) -> TeeTcbCompSvn:
        return TeeTcbCompSvn(super().from_cbor(data))

    def from_json(self, data: Any) -> TeeTcbCompSvn:
        return TeeTcbCompSvn(super().from_json(data))


def _svn(value: Union[int, ChoiceValue]) -> ChoiceValue:
    return value if isinstance(value, ChoiceValue) else UintValue(value)


def new_svn_expression(value: int) -> NumericExpression:
    """``greater_or_equal value`` for an ISV SVN."""
    expr = NumericExpression(GE, value)
    check_numeric(expr, "TeeSVN")
    return expr


def new_tcb_eval_num_expression(value: int) -> NumericExpression:
    """``greater_or_equal value`` for a TCB evaluation number."""
    expr = NumericExpression(GE, value)
    check_numeric(expr, "TeeTcbEvalNum")
    return expr


def new_set_digest_expression(
    operator: Union[int, str], digests: Iterable[HashEntry]
) -> SetDigestExpression:
    """Digest set expression; only ``member`` and ``non_member`` are accepted."""
    expr = SetDigestExpression(operator, list(digests))
    expr.valid()
    return expr


def new_set_string_expression(
    operator: Union[int, str], members: Iterable[str]
) -> SetStringExpression:
    """String set expression; only ``member`` and ``non_member`` are accepted."""
    expr = SetStringExpression(operator, list(members))
    expr.valid()
    return expr


def new_tee_digest(digests: Iterable[HashEntry]) -> DigestList:
    value = DigestList(digests)
    value.valid()
    return value


def new_string_set(members: Iterable[str]) -> StringSet:
    value = StringSet(members)
    value.valid()
    return value


def new_tee_tcb_comp_svn(values: Iterable[Union[int, ChoiceValue]]) -> TeeTcbCompSvn:
    """Build a TCB component SVN list from uints or numeric expressions."""
    svns = TeeTcbCompSvn(_svn(v) for v in values)
    svns.valid()
    return svns


class MValExtensions(ExtensionValue):
    """TDX members of the measurement-values-map."""

    fields = (
        Field("tcb_date", -72, "tcbdate", TIME),
        Field("isv_svn", -73, "isvsvn", TEE_SVN),
        Field("instance_id", -77, "instanceid", TEE_ID),
        Field("pce_id", -80, "pceid", TEXT),
        Field("misc_select", -81, "miscselect", BYTES),
        Field("attributes", -82, "attributes", BYTES),
        Field("mr_tee", -83, "mrtee", TEE_DIGEST),
        Field("mr_signer", -84, "mrsigner", TEE_DIGEST),
        Field("isv_prod_id", -85, "isvprodid", TEE_ID),
        Field("tcb_eval_num", -86, "tcbevalnum", TCB_EVAL_NUM),
        Field("tcb_status", -88, "tcbstatus", TEE_STRING_SET),
        Field("advisory_ids", -89, "advisoryids", TEE_STRING_SET),
        Field("epoch", -90, "epoch", TIME),
        Field("tee_crypto_keys", -91, "teecryptokeys", CRYPTO_KEYS),
        Field("tcb_comp_svn", -125, "tcbcompsvn", TcbCompSvnCodec(TEE_SVN, "tee svn")),
    )

    def valid(self) -> None:
        if self.isv_svn is not None:
            check_numeric(self.isv_svn, "TeeSVN")
        if self.tcb_eval_num is not None:
            check_numeric(self.tcb_eval_num, "TeeTcbEvalNum")
        if self.pce_id is not None and not self.pce_id:
            raise ValidationError("empty TeePCEID")
        for name, what in (("misc_select", "TeeMiscSelect"), ("attributes", "TeeAttributes")):
            value = getattr(self, name)
            if value is not None and not value:
                raise ValidationError(f"empty {what}")
        for name in ("instance_id", "isv_prod_id", "mr_tee", "mr_signer", "tcb_status",
                     "advisory_ids"):
            value = getattr(self, name)
            if value is not None:
                try:
                    value.valid()
                except ValidationError as err:
                    raise err.wrap(name.replace("_", "")) from err
        if self.tcb_comp_svn is not None:
            TeeTcbCompSvn(self.tcb_comp_svn).valid()
        for i, key in enumerate(self.tee_crypto_keys or []):
            try:
                key.valid()
            except ValidationError as err:
                raise err.wrap(f"teecryptokeys at index {i}") from err


def mval_extensions(mval: Mval) -> MValExtensions:
    """Attach the TDX members to ``mval`` and return them for editing."""
    mval.register_extension(MValExtensions())
    return mval.extensions.value


register_profile(
    PROFILE_ID,
    ExtensionMap()
    .add(ExtensionPoint.REFERENCE_VALUE, MValExtensions())
    .add(ExtensionPoint.ENDORSED_VALUE, MValExtensions())
    .add(ExtensionPoint.MVAL, MValExtensions()),
)
