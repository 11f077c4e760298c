"""
Rule engine that gates every ORM mutation.

The validator never raises on a failing rule: it records a human-readable
message and reports failure through its return value. The caller decides
whether to abort. Existence rules query the database through the executor the
validator was built with.
"""

from __future__ import annotations

from typing import Any, Iterable, List, Mapping, Optional, Sequence, Union

from pgorm.exceptions import QueryBuilderError
from pgorm.infrastructure.executor import SQLExecutor
from pgorm.query.builder import QueryBuilder
from pgorm.validation.rules import RuleKind, ValidationRule, check_local, is_empty

RuleSpec = Union[str, ValidationRule]


class Validator:
    """
    Evaluates rules against field values and accumulates error messages.

    Parameters
    ----------
    executor : SQLExecutor, optional
        Needed only when ``exist*`` rules are evaluated.
    """

    def __init__(self, executor: Optional[SQLExecutor] = None) -> None:
        self._executor = executor
        self._errors: List[str] = []

    def get_errors(self) -> List[str]:
        return list(self._errors)

    def clear(self) -> None:
        self._errors.clear()

    async def execute(
        self,
        field: str,
        value: Any,
        rules: Sequence[RuleSpec],
        make_all_tests: bool = True,
    ) -> bool:
        """
        Run ``rules`` against one value.

        Returns False as soon as a rule fails when ``make_all_tests`` is False;
        otherwise every rule runs and every failure is recorded.
        """
        valid = True
        for spec in rules:
            rule = ValidationRule.parse(spec)
            if rule.requires_database:
                message = await self._check_database(rule, field, value)
            else:
                message = check_local(rule, field, value)
            if message is None:
                continue
            self._errors.append(message)
            valid = False
            if not make_all_tests:
                break
        return valid

    async def validate_record(
        self,
        values: Mapping[str, Any],
        validations: Mapping[str, Sequence[RuleSpec]],
        make_all_tests: bool = True,
        only: Optional[Iterable[str]] = None,
    ) -> bool:
        """
        Run every field's rules against a record.

        ``only`` restricts validation to the named fields (partial updates).
        """
        selected = set(only) if only is not None else None
        valid = True
        for field, rules in validations.items():
            if selected is not None and field not in selected:
                continue
            if not await self.execute(field, values.get(field), rules, make_all_tests):
                valid = False
                if not make_all_tests:
                    break
        return valid

    async def _check_database(self, rule: ValidationRule, field: str, value: Any) -> Optional[str]:
        if is_empty(value):
            return None
        if self._executor is None:
            raise QueryBuilderError(f"Rule '{rule.kind.value}' needs a database executor")

        target = rule.payload
        builder = QueryBuilder(self._executor).from_(target.table).where(target.column, value)  # type: ignore[union-attr]
        if rule.kind in (RuleKind.EXIST_ENABLED, RuleKind.EXIST_ENABLED_NOT_DELETED):
            builder.where("enabled = TRUE")
        if rule.kind in (RuleKind.EXIST_NOT_DELETED, RuleKind.EXIST_ENABLED_NOT_DELETED):
            builder.where_null("deleted_at")

        if await builder.count() > 0:
            return None
        return f"Field {field} must exist in database (received : {value})"


__all__ = ["RuleSpec", "Validator"]
