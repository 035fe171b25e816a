"""Unit tests for numeric and set expressions."""

import pytest

from corim import (
    HashEntry,
    NumericExpression,
    ParseError,
    SetDigestExpression,
    SetStringExpression,
    UnsupportedError,
    ValidationError,
)
from corim.cbor_utils import CBORTag, decode, encode
from corim.expressions import GE, LT, MEM, NMEM, SUB, NumericType, operator_code


class TestNumericType:
    """Kind detection for numeric operands."""

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "value,kind",
        [(5, "uint"), (0, "uint"), (-3, "int"), (1.5, "float")],
    )
    def test_kind(self, value, kind):
        assert NumericType(value).kind == kind

    @pytest.mark.unit
    def test_non_number_rejected(self):
        with pytest.raises(UnsupportedError, match="unsupported numeric type: str"):
            NumericType("7")

    @pytest.mark.unit
    def test_json_float_accepts_integral_value(self):
        assert NumericType.from_json_data({"type": "float", "value": 2}) == NumericType(2.0)

    @pytest.mark.unit
    def test_json_uint_rejects_negative(self):
        with pytest.raises(ParseError, match="expected unsigned integer"):
            NumericType.from_json_data({"type": "uint", "value": -1})

    @pytest.mark.unit
    def test_json_int_keeps_declared_kind(self):
        """A non-negative value declared as int stays int through JSON."""
        data = {"type": "int", "value": 5}

        number = NumericType.from_json_data(data)

        assert number.kind == "int"
        assert number.to_json_data() == data
        assert number.to_cbor_data() == 5
        assert number != NumericType(5)

    @pytest.mark.unit
    def test_declared_kind_must_fit_value(self):
        assert NumericType(7, "int").kind == "int"
        with pytest.raises(UnsupportedError, match="-1 is not a valid uint"):
            NumericType(-1, "uint")
        with pytest.raises(UnsupportedError, match="2 is not a valid float"):
            NumericType(2, "float")
        with pytest.raises(UnsupportedError, match='unsupported numeric type "double"'):
            NumericType(2.0, "double")


class TestNumericExpression:
    """Tag 60010 expressions."""

    @pytest.mark.unit
    def test_cbor_shape(self):
        expr = NumericExpression(GE, 5)

        assert expr.to_cbor_data() == CBORTag(60010, [2, 5])
        assert NumericExpression.from_cbor_data(decode(encode(expr.to_cbor_data()))) == expr

    @pytest.mark.unit
    def test_json_shape(self):
        expr = NumericExpression("less_than", -2)

        assert expr.operator == LT
        assert expr.to_json_data() == {
            "type": "numeric-expression",
            "value": {
                "numeric-operator": "less_than",
                "numeric-type": {"type": "int", "value": -2},
            },
        }
        assert NumericExpression.from_json_data(expr.to_json_data()) == expr

    @pytest.mark.unit
    def test_factory_defaults_to_greater_or_equal(self):
        assert NumericExpression.factory(7) == NumericExpression(GE, 7)
        assert NumericExpression.factory(("less_than", 7)) == NumericExpression(LT, 7)

    @pytest.mark.unit
    def test_set_operator_is_not_numeric(self):
        with pytest.raises(ValidationError, match="invalid numeric operator member"):
            NumericExpression(MEM, 1).valid()

    @pytest.mark.unit
    def test_unknown_operator(self):
        with pytest.raises(ValidationError, match="unknown operator 'bogus'"):
            operator_code("bogus")
        with pytest.raises(ParseError, match="invalid operator 42"):
            NumericExpression.from_cbor_inner([42, 1])

    @pytest.mark.unit
    def test_missing_json_member(self):
        with pytest.raises(ParseError, match='missing mandatory member "numeric-type"'):
            NumericExpression.from_json_value({"numeric-operator": "equal"})


class TestSetExpressions:
    """Tag 60020 and 60021 expressions."""

    @pytest.mark.unit
    def test_digest_set_cbor_shape(self):
        entry = HashEntry(1, b"\x01" * 32)
        expr = SetDigestExpression(NMEM, [entry])

        expr.valid()
        assert expr.to_cbor_data() == CBORTag(60020, [6, [[1, b"\x01" * 32]]])
        assert SetDigestExpression.from_cbor_data(expr.to_cbor_data()) == expr

    @pytest.mark.unit
    def test_digest_set_checks_lengths(self):
        expr = SetDigestExpression(MEM, [HashEntry(1, b"\x01" * 20)])

        with pytest.raises(ValidationError, match="length mismatch for hash algorithm sha-256"):
            expr.valid()

    @pytest.mark.unit
    def test_string_set_json_shape(self):
        expr = SetStringExpression(MEM, ["UpToDate", "SWHardeningNeeded"])

        assert expr.json_value() == {
            "set-operator": "member",
            "set-string": ["UpToDate", "SWHardeningNeeded"],
        }
        assert SetStringExpression.from_json_data(expr.to_json_data()) == expr

    @pytest.mark.unit
    def test_only_membership_operators_allowed(self):
        with pytest.raises(
            ValidationError, match="invalid set operator subset: must be member or non_member"
        ):
            SetStringExpression(SUB, ["a"]).valid()

    @pytest.mark.unit
    def test_empty_set_rejected(self):
        with pytest.raises(ValidationError, match="empty string-expression"):
            SetStringExpression(MEM, []).valid()

    @pytest.mark.unit
    def test_non_text_member_rejected_on_decode(self):
        with pytest.raises(ParseError, match="expected text string in set-string"):
            SetStringExpression.from_cbor_inner([MEM, ["ok", 3]])
