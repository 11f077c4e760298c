"""
Validation rules as tagged values.

A rule is a ``RuleKind`` plus a typed payload. Model sources still declare rules
with the compact ``"name:argument"`` syntax (``"between:1,10"``,
``"exist:users,id"``); ``ValidationRule.parse`` turns those strings into rule
values once, when the model is registered, so nothing is parsed while a
mutation is being validated.

Every rule except ``required`` accepts an empty value (None, blank string,
empty collection); combine with ``required`` to reject those.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple, Union

from pgorm.exceptions import InvalidRuleError

UNIQID_REGEX = re.compile(r"^[a-zA-Z0-9]{14}$")
PASSWORD_REGEX = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*[0-9])(?=.*[!@+?#$%&*]).{8,}$")
EMAIL_REGEX = re.compile(
    r"^(([^<>()\[\]\\.,;:\s@\"]+(\.[^<>()\[\]\\.,;:\s@\"]+)*)|(\".+\"))@"
    r"((\[[0-9]{1,3}\.[0-9]{1,3}\.[0-9]{1,3}\.[0-9]{1,3}\])|(([a-zA-Z\-0-9]+\.)+[a-zA-Z]{2,}))$"
)
ZIPCODE_REGEX = re.compile(r"^(([0-8][0-9])|(9[0-5])|(2[abAB]))[0-9]{3}$")
TELEPHONE_REGEX = re.compile(r"^(?:(?:\+|00)33|0)\s*[1-9](?:[\s.-]*\d{2}){4}$")
IDENTIFIER_REGEX = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")


class RuleKind(str, Enum):
    REQUIRED = "required"
    STRING = "string"
    NUMBER = "number"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    DATE = "date"
    OBJECT = "object"
    MIN_LENGTH = "minLength"
    MAX_LENGTH = "maxLength"
    MIN_VALUE = "minValue"
    MAX_VALUE = "maxValue"
    BETWEEN = "between"
    IN = "in"
    UNIQID = "uniqid"
    PASSWORD = "password"
    EMAIL = "email"
    ZIPCODE = "zipcode"
    TELEPHONE = "telephone"
    EXIST = "exist"
    EXIST_NOT_DELETED = "existNotDeleted"
    EXIST_ENABLED = "existEnabled"
    EXIST_ENABLED_NOT_DELETED = "existEnabledNotDeleted"


DATABASE_RULES = frozenset(
    {
        RuleKind.EXIST,
        RuleKind.EXIST_NOT_DELETED,
        RuleKind.EXIST_ENABLED,
        RuleKind.EXIST_ENABLED_NOT_DELETED,
    }
)


@dataclass(frozen=True)
class NumericRange:
    minimum: float
    maximum: float

    def __str__(self) -> str:
        return f"{self.minimum:g},{self.maximum:g}"


@dataclass(frozen=True)
class TableColumn:
    table: str
    column: str

    def __str__(self) -> str:
        return f"{self.table},{self.column}"


Payload = Union[None, int, float, NumericRange, Tuple[str, ...], TableColumn]


def _no_argument(kind: RuleKind, argument: Optional[str]) -> None:
    if argument is not None:
        raise InvalidRuleError(f"Rule '{kind.value}' takes no argument (got '{argument}')")
    return None


def _length(kind: RuleKind, argument: Optional[str]) -> int:
    try:
        length = int(argument or "")
    except ValueError:
        raise InvalidRuleError(f"Rule '{kind.value}' needs an integer length (got '{argument}')") from None
    if length < 0:
        raise InvalidRuleError(f"Rule '{kind.value}' needs a non-negative length (got {length})")
    return length


def _bound(kind: RuleKind, argument: Optional[str]) -> float:
    try:
        bound = float(argument or "")
    except ValueError:
        bound = math.nan
    if not math.isfinite(bound):
        raise InvalidRuleError(f"Rule '{kind.value}' needs a numeric bound (got '{argument}')")
    return bound


def _range(kind: RuleKind, argument: Optional[str]) -> NumericRange:
    parts = (argument or "").split(",")
    if len(parts) != 2:
        raise InvalidRuleError(f"Rule '{kind.value}' needs 'min,max' (got '{argument}')")
    minimum, maximum = (_bound(kind, part.strip()) for part in parts)
    if minimum > maximum:
        raise InvalidRuleError(f"Rule '{kind.value}' has min greater than max ('{argument}')")
    return NumericRange(minimum, maximum)


def _choices(kind: RuleKind, argument: Optional[str]) -> Tuple[str, ...]:
    choices = tuple(choice.strip() for choice in (argument or "").split(",") if choice.strip())
    if not choices:
        raise InvalidRuleError(f"Rule '{kind.value}' needs a comma-separated list of values")
    return choices


def _table_column(kind: RuleKind, argument: Optional[str]) -> TableColumn:
    parts = [part.strip() for part in (argument or "").split(",")]
    if len(parts) == 1:
        parts.append("id")
    if len(parts) != 2 or not all(IDENTIFIER_REGEX.fullmatch(part) for part in parts):
        raise InvalidRuleError(f"Rule '{kind.value}' needs 'table,column' identifiers (got '{argument}')")
    return TableColumn(parts[0], parts[1])


_PAYLOAD_PARSERS: Dict[RuleKind, Callable[[RuleKind, Optional[str]], Payload]] = {
    RuleKind.REQUIRED: _no_argument,
    RuleKind.STRING: _no_argument,
    RuleKind.NUMBER: _no_argument,
    RuleKind.INTEGER: _no_argument,
    RuleKind.BOOLEAN: _no_argument,
    RuleKind.DATE: _no_argument,
    RuleKind.OBJECT: _no_argument,
    RuleKind.MIN_LENGTH: _length,
    RuleKind.MAX_LENGTH: _length,
    RuleKind.MIN_VALUE: _bound,
    RuleKind.MAX_VALUE: _bound,
    RuleKind.BETWEEN: _range,
    RuleKind.IN: _choices,
    RuleKind.UNIQID: _no_argument,
    RuleKind.PASSWORD: _no_argument,
    RuleKind.EMAIL: _no_argument,
    RuleKind.ZIPCODE: _no_argument,
    RuleKind.TELEPHONE: _no_argument,
    RuleKind.EXIST: _table_column,
    RuleKind.EXIST_NOT_DELETED: _table_column,
    RuleKind.EXIST_ENABLED: _table_column,
    RuleKind.EXIST_ENABLED_NOT_DELETED: _table_column,
}


@dataclass(frozen=True)
class ValidationRule:
    """One rule: its kind and the payload that kind expects."""

    kind: RuleKind
    payload: Payload = None

    @classmethod
    def parse(cls, spec: Union[str, "ValidationRule"]) -> "ValidationRule":
        """Parse ``"name"`` or ``"name:argument"``; rule values pass through unchanged."""
        if isinstance(spec, ValidationRule):
            return spec
        if not isinstance(spec, str):
            raise InvalidRuleError(f"A validation rule must be a string (got {spec!r})")
        name, separator, argument = spec.partition(":")
        try:
            kind = RuleKind(name.strip())
        except ValueError:
            raise InvalidRuleError(f"Unknown validation rule '{name.strip()}'") from None
        return cls(kind, _PAYLOAD_PARSERS[kind](kind, argument.strip() if separator else None))

    @property
    def requires_database(self) -> bool:
        return self.kind in DATABASE_RULES

    def __str__(self) -> str:
        if self.payload is None:
            return self.kind.value
        if isinstance(self.payload, tuple):
            return f"{self.kind.value}:{','.join(self.payload)}"
        if isinstance(self.payload, float):
            return f"{self.kind.value}:{self.payload:g}"
        return f"{self.kind.value}:{self.payload}"


def is_empty(value: Any) -> bool:
    """None, whitespace-only strings and empty collections are empty; 0 and False are not."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict, set, frozenset)):
        return len(value) == 0
    return False


def _as_number(value: Any) -> Optional[Decimal]:
    if isinstance(value, bool):
        return None
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation:
        return None
    return number if number.is_finite() else None


def _length_of(value: Any) -> int:
    return len(value) if hasattr(value, "__len__") else len(str(value))


def _check_required(field: str, value: Any, payload: Payload) -> Optional[str]:
    if is_empty(value):
        return f"Field {field} can not be empty or undefined"
    return None


def _check_string(field: str, value: Any, payload: Payload) -> Optional[str]:
    if not isinstance(value, str):
        return f"Field {field} must be a string (received : {value})"
    return None


def _check_number(field: str, value: Any, payload: Payload) -> Optional[str]:
    number = _as_number(value)
    if number is None:
        return f"Field {field} must be a number (received : {value})"
    return None


def _check_integer(field: str, value: Any, payload: Payload) -> Optional[str]:
    if isinstance(value, bool) or not isinstance(value, int):
        return f"Field {field} must be an integer (received : {value})"
    return None


def _check_boolean(field: str, value: Any, payload: Payload) -> Optional[str]:
    if not isinstance(value, bool):
        return f"Field {field} must be a boolean (received : {value})"
    return None


def _check_date(field: str, value: Any, payload: Payload) -> Optional[str]:
    if isinstance(value, (date, datetime)):
        return None
    if isinstance(value, str):
        try:
            datetime.fromisoformat(value.strip())
            return None
        except ValueError:
            pass
    return f"Field {field} must be a Date (received : {value})"


def _check_object(field: str, value: Any, payload: Payload) -> Optional[str]:
    if not isinstance(value, (dict, list)):
        return f"Field {field} must be an Object (received : {value})"
    return None


def _check_min_length(field: str, value: Any, payload: Payload) -> Optional[str]:
    length = _length_of(value)
    if length < payload:  # type: ignore[operator]
        return f"Length of {field} must be greater or equal than {payload} (actual length : {length})"
    return None


def _check_max_length(field: str, value: Any, payload: Payload) -> Optional[str]:
    length = _length_of(value)
    if length > payload:  # type: ignore[operator]
        return f"Length of {field} must be less than or equal to {payload} (actual length : {length})"
    return None


def _check_min_value(field: str, value: Any, payload: Payload) -> Optional[str]:
    number = _as_number(value)
    if number is None:
        return f"Field {field} must be a number (received : {value})"
    if number < Decimal(str(payload)):
        return f"Field {field} must have a value greater than or equal to {payload:g} (received : {value})"
    return None


def _check_max_value(field: str, value: Any, payload: Payload) -> Optional[str]:
    number = _as_number(value)
    if number is None:
        return f"Field {field} must be a number (received : {value})"
    if number > Decimal(str(payload)):
        return f"Field {field} must have a value less than or equal to {payload:g} (received : {value})"
    return None


def _check_between(field: str, value: Any, payload: Payload) -> Optional[str]:
    assert isinstance(payload, NumericRange)
    number = _as_number(value)
    if number is None:
        return f"Field {field} must be a number (received : {value})"
    if number < Decimal(str(payload.minimum)) or number > Decimal(str(payload.maximum)):
        return (
            f"Field {field} must have a value between {payload.minimum:g} and "
            f"{payload.maximum:g} (received : {value})"
        )
    return None


def _check_in(field: str, value: Any, payload: Payload) -> Optional[str]:
    assert isinstance(payload, tuple)
    if str(value) not in payload:
        return f"Field {field} must be in the list : {','.join(payload)} (received : {value})"
    return None


def _regex_check(regex: "re.Pattern[str]", message: str) -> Callable[[str, Any, Payload], Optional[str]]:
    def check(field: str, value: Any, payload: Payload) -> Optional[str]:
        if not regex.fullmatch(str(value)):
            return message.format(field=field, value=value)
        return None

    return check


LOCAL_CHECKS: Dict[RuleKind, Callable[[str, Any, Payload], Optional[str]]] = {
    RuleKind.REQUIRED: _check_required,
    RuleKind.STRING: _check_string,
    RuleKind.NUMBER: _check_number,
    RuleKind.INTEGER: _check_integer,
    RuleKind.BOOLEAN: _check_boolean,
    RuleKind.DATE: _check_date,
    RuleKind.OBJECT: _check_object,
    RuleKind.MIN_LENGTH: _check_min_length,
    RuleKind.MAX_LENGTH: _check_max_length,
    RuleKind.MIN_VALUE: _check_min_value,
    RuleKind.MAX_VALUE: _check_max_value,
    RuleKind.BETWEEN: _check_between,
    RuleKind.IN: _check_in,
    RuleKind.UNIQID: _regex_check(
        UNIQID_REGEX, "Field {field} must be a UniqId of database (received: {value})"
    ),
    RuleKind.PASSWORD: _regex_check(
        PASSWORD_REGEX,
        "Field {field} must be a correct password which contains minimum 8 char, 1 lowercase, "
        "1 uppercase, 1 number and 1 special char (in : !@+?#$%&*)",
    ),
    RuleKind.EMAIL: _regex_check(EMAIL_REGEX, "Field {field} must have an email format (received : {value})"),
    RuleKind.ZIPCODE: _regex_check(ZIPCODE_REGEX, "Field {field} must be a french zipcode (received : {value})"),
    RuleKind.TELEPHONE: _regex_check(
        TELEPHONE_REGEX, "Field {field} must be a french number phone (received : {value})"
    ),
}


def check_local(rule: ValidationRule, field: str, value: Any) -> Optional[str]:
    """Evaluate a rule that needs no database; returns the error message or None."""
    if rule.kind is not RuleKind.REQUIRED and is_empty(value):
        return None
    return LOCAL_CHECKS[rule.kind](field, value, rule.payload)


__all__ = [
    "DATABASE_RULES",
    "NumericRange",
    "RuleKind",
    "TableColumn",
    "ValidationRule",
    "check_local",
    "is_empty",
]
