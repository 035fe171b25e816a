"""Numeric and set expressions.

An expression pairs an operator with an operand and lets a reference value
describe a range or a set instead of a single value:

- ``NumericExpression`` (tag 60010): ``[operator, numeric-type]``
- ``SetDigestExpression`` (tag 60020): ``[operator, [+digest]]``
- ``SetStringExpression`` (tag 60021): ``[operator, [+text]]``

Operators are integers in CBOR and names in JSON.
"""

from typing import Any, Optional, Union

from . import json_utils
from .choice import ChoiceValue
from .digests import Digests, HashEntry
from .encoding import expect_array, expect_map, type_name
from .errors import MarshalError, ParseError, UnsupportedError, ValidationError
from .ids import is_uint

NUMERIC_EXPRESSION_TAG = 60010
SET_DIGEST_EXPRESSION_TAG = 60020
SET_STRING_EXPRESSION_TAG = 60021

# Operators
EQ = 0
GT = 1
GE = 2
LT = 3
LE = 4
MEM = 5
NMEM = 6
SUB = 7
SUP = 8
DIS = 9

OPERATORS = {
    EQ: "equal",
    GT: "greater_than",
    GE: "greater_or_equal",
    LT: "less_than",
    LE: "less_or_equal",
    MEM: "member",
    NMEM: "non_member",
    SUB: "subset",
    SUP: "superset",
    DIS: "disjoint",
}
_OPERATOR_CODES = {name: code for code, name in OPERATORS.items()}

NUMERIC_OPERATORS = (EQ, GT, GE, LT, LE)
SET_OPERATORS = (MEM, NMEM, SUB, SUP, DIS)


def operator_code(operator: Union[int, str]) -> int:
    """Resolve an operator name or code.

    Raises:
        ValidationError: If the operator is not in the table
    """
    if isinstance(operator, str):
        if operator not in _OPERATOR_CODES:
            raise ValidationError(f"unknown operator {operator!r}")
        return _OPERATOR_CODES[operator]
    if isinstance(operator, bool) or operator not in OPERATORS:
        raise ValidationError(f"unknown operator {operator!r}")
    return operator


def operator_name(operator: int) -> str:
    return OPERATORS.get(operator, str(operator))


def _operator_from_cbor(data: Any) -> int:
    if isinstance(data, bool) or not isinstance(data, int) or data not in OPERATORS:
        raise ParseError(f"invalid operator {data!r}")
    return data


def _operator_from_json(data: Any) -> int:
    if data not in _OPERATOR_CODES:
        raise ParseError(f"unknown operator {data!r}")
    return _OPERATOR_CODES[data]


NUMERIC_TYPES = ("uint", "int", "float")


class NumericType:
    """A number carried as-is in CBOR and as ``{type, value}`` in JSON.

    Args:
        value: An ``int`` or ``float``
        kind: ``"uint"``, ``"int"`` or ``"float"``; inferred from ``value``
            when omitted, non-negative integers being ``uint``

    Raises:
        UnsupportedError: For any other Python type, or a kind the value
            cannot carry
    """

    def __init__(self, value: Union[int, float], kind: Optional[str] = None):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise UnsupportedError(f"unsupported numeric type: {type_name(value)}")
        if kind is None:
            if isinstance(value, float):
                kind = "float"
            else:
                kind = "uint" if value >= 0 else "int"
        elif kind not in NUMERIC_TYPES:
            raise UnsupportedError(f'unsupported numeric type "{kind}"')
        elif (kind == "float") != isinstance(value, float) or (kind == "uint" and value < 0):
            raise UnsupportedError(f"{value!r} is not a valid {kind}")
        self.value = value
        self._kind = kind

    @property
    def kind(self) -> str:
        return self._kind

    def is_uint(self) -> bool:
        return is_uint(self.value)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, NumericType):
            return NotImplemented
        return self.kind == other.kind and self.value == other.value

    def __hash__(self) -> int:
        return hash((self.kind, self.value))

    def __repr__(self) -> str:
        return f"NumericType({self.value!r}, {self.kind!r})"

    def to_cbor_data(self) -> Union[int, float]:
        return self.value

    @classmethod
    def from_cbor_data(cls, data: Any) -> "NumericType":
        try:
            return cls(data)
        except UnsupportedError as err:
            raise ParseError(str(err), "numeric-type") from err

    def to_json_data(self) -> dict:
        return json_utils.type_and_value(self.kind, self.value)

    @classmethod
    def from_json_data(cls, data: Any) -> "NumericType":
        found, value = json_utils.split_type_and_value(data, "numeric-type")
        if found not in NUMERIC_TYPES:
            raise ParseError(f'unsupported numeric type "{found}"')
        if found == "float":
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ParseError(f"expected float, got {type_name(value)}")
            return cls(float(value), found)
        if isinstance(value, bool) or not isinstance(value, int):
            raise ParseError(f"expected {found}, got {type_name(value)}")
        if found == "uint" and value < 0:
            raise ParseError(f"expected unsigned integer, got {value}")
        return cls(value, found)


class NumericExpression(ChoiceValue):
    """``[numeric-operator, numeric-type]`` under tag 60010."""

    type_name = "numeric-expression"
    cbor_tag = NUMERIC_EXPRESSION_TAG

    def __init__(self, operator: Union[int, str] = GE, number: Any = 0):
        if not isinstance(number, NumericType):
            number = NumericType(number)
        self.operator = operator_code(operator)
        self.number = number
        super().__init__((self.operator, number))

    def __repr__(self) -> str:
        return f"NumericExpression({operator_name(self.operator)}, {self.number.value!r})"

    def __str__(self) -> str:
        return f"{operator_name(self.operator)} {self.number.value}"

    @classmethod
    def factory(cls, value: Any) -> "NumericExpression":
        """Accept ``(operator, number)`` or a bare number (``greater_or_equal``)."""
        if isinstance(value, (tuple, list)) and len(value) == 2:
            return cls(value[0], value[1])
        return cls(GE, value)

    def valid(self) -> None:
        if self.operator not in NUMERIC_OPERATORS:
            raise ValidationError(f"invalid numeric operator {operator_name(self.operator)}")

    def cbor_inner(self) -> list:
        return [self.operator, self.number.to_cbor_data()]

    @classmethod
    def from_cbor_inner(cls, inner: Any) -> "NumericExpression":
        operator, raw = expect_array(inner, cls.type_name, 2)
        return cls(_operator_from_cbor(operator), NumericType.from_cbor_data(raw))

    def json_value(self) -> dict:
        return {
            "numeric-operator": operator_name(self.operator),
            "numeric-type": self.number.to_json_data(),
        }

    @classmethod
    def from_json_value(cls, value: Any) -> "NumericExpression":
        data = expect_map(value, cls.type_name)
        for member in ("numeric-operator", "numeric-type"):
            if member not in data:
                raise ParseError(f'missing mandatory member "{member}"', cls.type_name)
        return cls(
            _operator_from_json(data["numeric-operator"]),
            NumericType.from_json_data(data["numeric-type"]),
        )


class _SetExpression(ChoiceValue):
    """Common shape of ``[set-operator, [+member]]`` expressions."""

    json_member = ""

    def __init__(self, operator: Union[int, str] = MEM, members: Optional[list] = None):
        self.operator = operator_code(operator)
        self.members = self._members(members or [])
        super().__init__((self.operator, self.members))

    def __hash__(self) -> int:
        return hash((type(self), self.operator, repr(self.members)))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({operator_name(self.operator)}, {self.members!r})"

    @staticmethod
    def _members(members: list) -> list:
        return list(members)

    @classmethod
    def factory(cls, value: Any) -> "_SetExpression":
        """Accept ``(operator, members)`` or bare members (``member``)."""
        if isinstance(value, tuple) and len(value) == 2:
            return cls(value[0], value[1])
        return cls(MEM, value)

    def valid(self) -> None:
        if self.operator not in (MEM, NMEM):
            raise ValidationError(
                f"invalid set operator {operator_name(self.operator)}: "
                "must be member or non_member"
            )
        if not self.members:
            raise ValidationError(f"empty {self.type_name}")

    def member_to_cbor(self, member: Any) -> Any:
        return member

    @classmethod
    def member_from_cbor(cls, data: Any) -> Any:
        return data

    def member_to_json(self, member: Any) -> Any:
        return member

    @classmethod
    def member_from_json(cls, data: Any) -> Any:
        return data

    def cbor_inner(self) -> list:
        return [self.operator, [self.member_to_cbor(m) for m in self.members]]

    @classmethod
    def from_cbor_inner(cls, inner: Any) -> "_SetExpression":
        operator, raw = expect_array(inner, cls.type_name, 2)
        members = [cls.member_from_cbor(m) for m in expect_array(raw, cls.json_member)]
        return cls(_operator_from_cbor(operator), members)

    def json_value(self) -> dict:
        return {
            "set-operator": operator_name(self.operator),
            self.json_member: [self.member_to_json(m) for m in self.members],
        }

    @classmethod
    def from_json_value(cls, value: Any) -> "_SetExpression":
        data = expect_map(value, cls.type_name)
        for member in ("set-operator", cls.json_member):
            if member not in data:
                raise ParseError(f'missing mandatory member "{member}"', cls.type_name)
        raw = data[cls.json_member]
        if not isinstance(raw, list):
            raise ParseError(f"expected array for {cls.json_member}, got {type_name(raw)}")
        return cls(
            _operator_from_json(data["set-operator"]),
            [cls.member_from_json(m) for m in raw],
        )


class SetDigestExpression(_SetExpression):
    """Set operator over digests, under tag 60020."""

    type_name = "digest-expression"
    cbor_tag = SET_DIGEST_EXPRESSION_TAG
    json_member = "set-digest"

    @staticmethod
    def _members(members: list) -> Digests:
        return Digests(members)

    def valid(self) -> None:
        super().valid()
        self.members.valid()

    def member_to_cbor(self, member: HashEntry) -> list:
        if not isinstance(member, HashEntry):
            raise MarshalError(f"expected HashEntry, got {type_name(member)}")
        return member.to_cbor_data()

    @classmethod
    def member_from_cbor(cls, data: Any) -> HashEntry:
        return HashEntry.from_cbor_data(data)

    def member_to_json(self, member: HashEntry) -> str:
        return member.to_json_data()

    @classmethod
    def member_from_json(cls, data: Any) -> HashEntry:
        return HashEntry.from_json_data(data)


class SetStringExpression(_SetExpression):
    """Set operator over text strings, under tag 60021."""

    type_name = "string-expression"
    cbor_tag = SET_STRING_EXPRESSION_TAG
    json_member = "set-string"

    def valid(self) -> None:
        super().valid()
        for i, member in enumerate(self.members):
            if not isinstance(member, str):
                raise ValidationError(f"invalid type {type_name(member)} for set-string at index {i}")

    @classmethod
    def member_from_cbor(cls, data: Any) -> str:
        if not isinstance(data, str):
            raise ParseError(f"expected text string in set-string, got {type_name(data)}")
        return data

    member_from_json = member_from_cbor
