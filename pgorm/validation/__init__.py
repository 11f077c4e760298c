"""
Validation package for pgorm.
"""

from pgorm.validation.rules import NumericRange, RuleKind, TableColumn, ValidationRule, is_empty
from pgorm.validation.validator import Validator

__all__ = [
    "NumericRange",
    "RuleKind",
    "TableColumn",
    "ValidationRule",
    "Validator",
    "is_empty",
]
