"""
Fluent SELECT builder rendering PostgreSQL with ``$n`` positional placeholders.

Every chained call mutates the builder in place and returns it. Clauses are
stored separately and always rendered in the fixed order SELECT, FROM, JOIN,
WHERE, GROUP BY, ORDER BY, LIMIT/OFFSET, whatever order they were added in.

Values are never interpolated into the SQL text: each literal handed to a
condition method is appended to the parameter list and replaced by
``$<position>`` at the moment it is appended.

Example:
    builder = (
        QueryBuilder(executor)
        .select(["u.id", "u.email"])
        .from_("users", "u")
        .left_join("posts", "p", "p.user_id = u.id")
        .where("u.active", True)
        .or_where("u.role", "=", "admin")
        .order_by("u.id", "DESC")
        .limit(10, 20)
    )
    builder.get_query()
    # SELECT u.id, u.email FROM users AS u LEFT JOIN posts p ON p.user_id = u.id
    # WHERE (u.active = $1) OR (u.role = $2) ORDER BY u.id DESC LIMIT 10 OFFSET 20
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from pgorm.exceptions import QueryBuilderError
from pgorm.infrastructure.executor import SQLExecutor, interpolate

ALLOWED_OPERATORS = frozenset(
    {
        "=",
        "!=",
        "<>",
        "<",
        "<=",
        ">",
        ">=",
        "LIKE",
        "NOT LIKE",
        "ILIKE",
        "NOT ILIKE",
        "IS DISTINCT FROM",
        "IS NOT DISTINCT FROM",
    }
)
DIRECTIONS = ("ASC", "DESC")

# A condition as accepted by the ORM finders: [raw], [field, value] or [field, op, value].
Condition = Sequence[Any]
Conditions = Union[str, Mapping[str, Any], Iterable[Condition], None]


def _normalize_operator(operator: str) -> str:
    normalized = " ".join(str(operator).split()).upper()
    if normalized not in ALLOWED_OPERATORS:
        raise QueryBuilderError(f"Unsupported comparison operator '{operator}'")
    return normalized


class WhereClause:
    """
    AND/OR chain of parenthesized predicates sharing one parameter list.

    The parameter list may be handed in so that several clauses of a single
    statement (e.g. the SET and WHERE parts of an UPDATE) number their
    placeholders from one sequence.
    """

    def __init__(self, params: Optional[List[Any]] = None) -> None:
        self.params: List[Any] = params if params is not None else []
        self._predicates: List[Tuple[str, str]] = []

    def __bool__(self) -> bool:
        return bool(self._predicates)

    def bind(self, value: Any) -> str:
        """Append a value and return the placeholder that refers to it."""
        self.params.append(value)
        return f"${len(self.params)}"

    def _predicate(self, field: str, args: Tuple[Any, ...]) -> str:
        if not args:
            predicate = str(field).strip()
            if not predicate:
                raise QueryBuilderError("A raw WHERE condition can not be empty")
            return predicate
        if len(args) == 1:
            return f"{field} = {self.bind(args[0])}"
        if len(args) == 2:
            operator = _normalize_operator(args[0])
            return f"{field} {operator} {self.bind(args[1])}"
        raise QueryBuilderError(
            f"A WHERE condition takes a field, an optional operator and a value (got {1 + len(args)} parts)"
        )

    def _push(self, connector: str, predicate: str) -> None:
        self._predicates.append((connector, predicate))

    def where(self, field: str, *args: Any) -> "WhereClause":
        self._push("AND", self._predicate(field, args))
        return self

    def or_where(self, field: str, *args: Any) -> "WhereClause":
        self._push("OR", self._predicate(field, args))
        return self

    def where_null(self, field: str) -> "WhereClause":
        self._push("AND", f"{field} IS NULL")
        return self

    def where_not_null(self, field: str) -> "WhereClause":
        self._push("AND", f"{field} IS NOT NULL")
        return self

    def render(self) -> str:
        rendered = ""
        for connector, predicate in self._predicates:
            if rendered:
                rendered += f" {connector} "
            rendered += f"({predicate})"
        return rendered


def apply_conditions(target: Any, conditions: Conditions) -> Any:
    """
    Feed finder-style conditions into anything exposing ``where(field, *args)``.

    ``conditions`` is a raw predicate string, a mapping of ``field -> value``
    (equality), or a sequence of ``[raw]``, ``[field, value]`` and
    ``[field, operator, value]`` entries. Entries are AND-combined in order.
    """
    if conditions is None:
        return target
    if isinstance(conditions, str):
        if conditions.strip():
            target.where(conditions)
        return target
    if isinstance(conditions, Mapping):
        for field, value in conditions.items():
            target.where(field, value)
        return target
    for condition in conditions:
        if isinstance(condition, str):
            target.where(condition)
            continue
        parts = list(condition)
        if not 1 <= len(parts) <= 3:
            raise QueryBuilderError(f"Invalid condition {condition!r}: expected 1 to 3 elements")
        target.where(*parts)
    return target


@dataclass(frozen=True)
class Join:
    kind: str
    table: str
    alias: Optional[str]
    condition: str

    def render(self) -> str:
        target = f"{self.table} {self.alias}" if self.alias else self.table
        return f"{self.kind} JOIN {target} ON {self.condition}"


class QueryBuilder:
    """
    Accumulates a SELECT statement and runs it through an executor.

    Parameters
    ----------
    executor : SQLExecutor, optional
        Required only by the terminal operations (``execute``, ``get_row``,
        ``get_value``, ``count``).
    """

    def __init__(self, executor: Optional[SQLExecutor] = None) -> None:
        self._executor = executor
        self._select: List[str] = []
        self._from: Optional[str] = None
        self._joins: List[Join] = []
        self._where = WhereClause()
        self._group: Optional[str] = None
        self._order: List[Tuple[str, str]] = []
        self._limit: Optional[int] = None
        self._offset: Optional[int] = None

    # ---------------------------------------------------------------- clauses

    def select(self, fields: Union[str, Sequence[str]], alias: Optional[str] = None) -> "QueryBuilder":
        """Add one field or a sequence of fields; ``alias`` renames the last one added."""
        if isinstance(fields, str):
            self._select.append(fields)
        else:
            self._select.extend(fields)
        if alias:
            if not self._select:
                raise QueryBuilderError("Can not alias a field before selecting one")
            self._select[-1] = f"{self._select[-1]} AS {alias}"
        return self

    def from_(self, table: str, alias: Optional[str] = None) -> "QueryBuilder":
        self._from = f"{table} AS {alias}" if alias else table
        return self

    def join(self, table: str, alias: Optional[str], condition: str) -> "QueryBuilder":
        self._joins.append(Join("INNER", table, alias, condition))
        return self

    def left_join(self, table: str, alias: Optional[str], condition: str) -> "QueryBuilder":
        self._joins.append(Join("LEFT", table, alias, condition))
        return self

    def where(self, field: str, *args: Any) -> "QueryBuilder":
        """
        AND a predicate onto the WHERE clause.

        ``where("age > 18")`` adds a raw, unparameterized predicate;
        ``where("email", value)`` compares with ``=``;
        ``where("age", ">=", value)`` uses the given operator.
        """
        self._where.where(field, *args)
        return self

    def or_where(self, field: str, *args: Any) -> "QueryBuilder":
        """Same forms as ``where`` but OR-combined with what precedes it."""
        self._where.or_where(field, *args)
        return self

    def where_null(self, field: str) -> "QueryBuilder":
        self._where.where_null(field)
        return self

    def where_not_null(self, field: str) -> "QueryBuilder":
        self._where.where_not_null(field)
        return self

    def group_by(self, condition: str) -> "QueryBuilder":
        self._group = f"{self._group}, {condition}" if self._group else condition
        return self

    def order_by(self, field: str, direction: str = "ASC") -> "QueryBuilder":
        direction = str(direction).upper()
        if direction not in DIRECTIONS:
            raise QueryBuilderError(f"Order direction must be ASC or DESC (got '{direction}')")
        self._order.append((field, direction))
        return self

    def order_by_raw(self, expression: str) -> "QueryBuilder":
        self._order.append((expression, ""))
        return self

    def limit(self, count: int, offset: Optional[int] = None) -> "QueryBuilder":
        self._limit = self._non_negative(count, "LIMIT")
        if offset is not None:
            return self.offset(offset)
        return self

    def offset(self, count: int) -> "QueryBuilder":
        if self._limit is None:
            raise QueryBuilderError("Can not set OFFSET if there is no LIMIT")
        self._offset = self._non_negative(count, "OFFSET")
        return self

    @staticmethod
    def _non_negative(value: Any, clause: str) -> int:
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise QueryBuilderError(f"{clause} must be a non-negative integer (got {value!r})")
        return value

    # ------------------------------------------------------------- parameters

    def add_params(self, params: Any) -> "QueryBuilder":
        """Append raw parameters, e.g. for placeholders written in raw predicates."""
        if isinstance(params, (list, tuple)):
            self._where.params.extend(params)
        else:
            self._where.params.append(params)
        return self

    def set_params(self, params: Sequence[Any]) -> "QueryBuilder":
        self._where.params[:] = list(params)
        return self

    def get_params(self) -> List[Any]:
        return list(self._where.params)

    # -------------------------------------------------------------- rendering

    def get_query(self) -> str:
        """Render the statement; fails if no FROM target was set."""
        if not self._from:
            raise QueryBuilderError("You must provide a FROM part to execute the query")

        parts = [f"SELECT {', '.join(self._select) if self._select else '*'}", f"FROM {self._from}"]
        parts.extend(join.render() for join in self._joins)
        if self._where:
            parts.append(f"WHERE {self._where.render()}")
        if self._group:
            parts.append(f"GROUP BY {self._group}")
        if self._order:
            parts.append(
                "ORDER BY " + ", ".join(f"{field} {direction}".strip() for field, direction in self._order)
            )
        if self._limit is not None:
            parts.append(f"LIMIT {self._limit}")
            if self._offset is not None:
                parts.append(f"OFFSET {self._offset}")
        return " ".join(parts)

    def to_sql(self) -> Tuple[str, List[Any]]:
        return self.get_query(), self.get_params()

    def show_sql(self) -> str:
        """The statement with parameters inlined; for debugging output only."""
        return interpolate(self.get_query(), self._where.params)

    # -------------------------------------------------------------- terminals

    async def _run(self) -> Any:
        if self._executor is None:
            raise QueryBuilderError("No executor bound to this query builder")
        return await self._executor.execute(self.get_query(), self._where.params)

    async def execute(self) -> List[Dict[str, Any]]:
        """Run the query and return every row."""
        result = await self._run()
        return result.rows

    async def get_row(self) -> Optional[Dict[str, Any]]:
        """Run with ``LIMIT 1 OFFSET 0`` and return the first row, or None."""
        self._limit, self._offset = 1, 0
        result = await self._run()
        return result.first()

    async def get_value(self) -> Any:
        """Run with ``LIMIT 1 OFFSET 0`` and return the first column of the first row."""
        row = await self.get_row()
        if not row:
            return None
        return next(iter(row.values()))

    async def count(self, field: str = "*") -> int:
        """Replace the select list with ``COUNT(field) AS total`` and return the total."""
        if self._select:
            raise QueryBuilderError("SELECT instruction already present in the query")
        self._select.append(f"COUNT({field or '*'}) AS total")
        result = await self._run()
        row = result.first()
        return int(row["total"]) if row else 0


__all__ = [
    "ALLOWED_OPERATORS",
    "Condition",
    "Conditions",
    "Join",
    "QueryBuilder",
    "WhereClause",
    "apply_conditions",
]
