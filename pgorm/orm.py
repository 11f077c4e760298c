"""
ORM orchestration: CRUD, pagination and relation loading over model definitions.

``ORM.model(name)`` returns a ``ModelContext`` bound to a private copy of the
registered definition. Every context carries its own field state and error
list, so concurrent call chains on one ORM never interfere; the executor's pool
is the only thing they share.

Usage:
    orm = await ORM.connect()
    user = await orm.model("user").create({"email": "jane@example.com"})
    page = await orm.model("user").find_many_paginate([["active", True]], page=2, limit=25)

Cross-cutting policies applied on every write path:

- only fillable fields are written from caller data;
- ``id``, ``created_at``, ``updated_at`` and ``deleted_at`` are managed by the
  ORM and skipped from caller data unless an update is forced;
- with timestamps, inserts stamp ``created_at`` and updates stamp ``updated_at``;
- with soft delete, ``delete`` stamps ``deleted_at`` instead of removing the row.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional, Sequence, Tuple, Union

from pgorm.config import Settings, get_settings
from pgorm.domain.models import PaginatedResult
from pgorm.exceptions import (
    QueryBuilderError,
    QueryExecutionError,
    RecordNotFoundError,
    RelationNotFoundError,
    ValidationError,
)
from pgorm.infrastructure.executor import QueryExecutor, SQLExecutor
from pgorm.models.definition import AUTO_FILLABLE_FIELDS, ModelDefinition, Record
from pgorm.models.registry import ModelRegistry, get_registry
from pgorm.query.builder import Conditions, QueryBuilder, WhereClause, apply_conditions
from pgorm.utils.helpers import uniqid
from pgorm.utils.logging import get_logger
from pgorm.validation.validator import Validator

log = get_logger(__name__)

OrderSpec = Union[str, Sequence[Union[str, Tuple[str, str]]], None]

DEFAULT_PAGE_SIZE = 25


def _now() -> datetime:
    """Current UTC time as a naive timestamp, bound like any other parameter."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _placeholders(start: int, count: int) -> str:
    return ", ".join(f"${index}" for index in range(start, start + count))


class ModelContext:
    """
    One call chain against one model.

    Holds the definition copy being filled and hydrated, the executor used to
    reach the database and the validation errors of the last mutation.
    """

    def __init__(self, definition: ModelDefinition, executor: SQLExecutor, registry: ModelRegistry) -> None:
        self._definition = definition
        self._template = definition.copy()
        self._executor = executor
        self._registry = registry
        self._errors: List[str] = []

    @property
    def definition(self) -> ModelDefinition:
        return self._definition

    def get(self) -> Record:
        """The bound record as callers see it (hidden fields removed)."""
        return self._definition.to_record()

    def get_field(self, name: str) -> Any:
        return self._definition.get_field(name)

    def get_errors(self) -> List[str]:
        return list(self._errors)

    # ---------------------------------------------------------------- helpers

    def _builder(self, executor: Optional[SQLExecutor] = None) -> QueryBuilder:
        return QueryBuilder(executor or self._executor).from_(self._definition.table)

    def _hydrate(self, row: Mapping[str, Any]) -> Record:
        return self._template.copy().hydrate(row)

    @staticmethod
    def _apply_order(builder: QueryBuilder, order_by: OrderSpec) -> QueryBuilder:
        if order_by is None:
            return builder
        if isinstance(order_by, str):
            return builder.order_by_raw(order_by)
        for entry in order_by:
            if isinstance(entry, str):
                builder.order_by_raw(entry)
            else:
                builder.order_by(*entry)
        return builder

    def _writable_columns(self, data: Mapping[str, Any], force: bool = False) -> List[Tuple[str, Any]]:
        columns: List[Tuple[str, Any]] = []
        for key, value in data.items():
            if key in AUTO_FILLABLE_FIELDS:
                if not force:
                    continue
            elif not self._definition.is_fillable(key):
                log.debug("skipping non-fillable field", extra={"model": self._definition.name, "field": key})
                continue
            columns.append((key, value))
        return columns

    async def _validate(self, only: Optional[Sequence[str]] = None) -> None:
        validator = Validator(self._executor)
        valid = await validator.validate_record(
            self._definition.values(), self._definition.validations, make_all_tests=True, only=only
        )
        self._errors = validator.get_errors()
        if not valid:
            log.info(
                "validation rejected %s mutation",
                self._definition.name,
                extra={"errors": self._errors},
            )
            raise ValidationError(self._errors)

    # ------------------------------------------------------------------ reads

    async def find_by_id(self, id: Any) -> Optional[Record]:
        row = await self._builder().where("id", id).get_row()
        return self._definition.hydrate(row) if row is not None else None

    async def find_one(self, where: Conditions = None, order_by: OrderSpec = None) -> Optional[Record]:
        builder = self._apply_order(apply_conditions(self._builder(), where), order_by)
        row = await builder.get_row()
        return self._definition.hydrate(row) if row is not None else None

    async def find_many(self, where: Conditions = None, order_by: OrderSpec = None) -> List[Record]:
        builder = self._apply_order(apply_conditions(self._builder(), where), order_by)
        return [self._hydrate(row) for row in await builder.execute()]

    async def find_many_paginate(
        self,
        where: Conditions = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
        order_by: OrderSpec = None,
    ) -> PaginatedResult:
        """
        One page of matching records plus totals.

        Pages are 1-based; anything below 1 is served as page 1.
        """
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise QueryBuilderError(f"Page size must be a positive integer (got {limit!r})")
        page = max(int(page), 1)

        total = await apply_conditions(self._builder(), where).count()
        builder = self._apply_order(apply_conditions(self._builder(), where), order_by)
        rows = await builder.limit(limit, (page - 1) * limit).execute()

        return PaginatedResult(
            total=total,
            page_count=math.ceil(total / limit),
            current_page=page,
            per_page=limit,
            data=[self._hydrate(row) for row in rows],
        )

    # ----------------------------------------------------------------- writes

    async def create(self, data: Mapping[str, Any]) -> Record:
        """
        Validate and insert a record, then return it as stored.

        The INSERT and the re-read of the new row run in one transaction.
        """
        definition = self._definition
        definition.fill(data)
        await self._validate()

        columns = self._writable_columns(data)
        if not definition.use_autoincrement:
            columns.append(("id", uniqid()))
        if definition.timestamps:
            columns.append(("created_at", _now()))

        if columns:
            names = ", ".join(name for name, _ in columns)
            sql = (
                f"INSERT INTO {definition.table} ({names}) "
                f"VALUES ({_placeholders(1, len(columns))}) RETURNING id"
            )
        else:
            sql = f"INSERT INTO {definition.table} DEFAULT VALUES RETURNING id"
        params = [value for _, value in columns]

        async with self._executor.transaction() as tx:
            inserted = (await tx.execute(sql, params)).first()
            if inserted is None:
                raise QueryExecutionError(f"INSERT into {definition.table} returned no id", sql=sql)
            row = await self._builder(tx).where("id", inserted["id"]).get_row()
            if row is None:
                raise QueryExecutionError(f"Row {inserted['id']} of {definition.table} vanished after insert")

        log.debug("created record", extra={"model": definition.name, "id": inserted["id"]})
        return definition.hydrate(row)

    def _set_clause(self, columns: List[Tuple[str, Any]]) -> Tuple[str, List[Any]]:
        if self._definition.timestamps:
            now = _now()
            columns = [column for column in columns if column[0] != "updated_at"]
            columns.append(("updated_at", now))
            self._definition.assign("updated_at", now)
        assignments = ", ".join(f"{name} = ${index}" for index, (name, _) in enumerate(columns, start=1))
        return assignments, [value for _, value in columns]

    async def update(self, id: Any, data: Mapping[str, Any], force: bool = False) -> Record:
        """
        Reload the record, apply ``data``, validate and write the changes.

        ``force`` lets the managed columns (id and timestamps) be written from
        ``data``.
        """
        definition = self._definition
        if await self.find_by_id(id) is None:
            raise RecordNotFoundError(f"{definition.name} with id {id} not found")

        definition.fill(data)
        columns = self._writable_columns(data, force=force)
        for name, value in columns:
            if name in AUTO_FILLABLE_FIELDS:
                definition.assign(name, value)
        await self._validate()

        if not columns and not definition.timestamps:
            log.debug("nothing to update", extra={"model": definition.name, "id": id})
            return definition.to_record()

        assignments, params = self._set_clause(columns)
        where = WhereClause(params).where("id", id)
        await self._executor.execute(f"UPDATE {definition.table} SET {assignments} WHERE {where.render()}", params)
        return definition.to_record()

    async def update_where(self, data: Mapping[str, Any], where: Conditions) -> int:
        """
        Write ``data`` to every row matching ``where``; returns the affected row count.

        Only the rules of the fields being written are checked, since no row is
        reloaded.
        """
        definition = self._definition
        definition.fill(data)
        columns = self._writable_columns(data)
        await self._validate(only=[name for name, _ in columns])
        if not columns:
            raise QueryBuilderError(f"No writable field in update of {definition.name}")

        assignments, params = self._set_clause(columns)
        clause = apply_conditions(WhereClause(params), where)
        if not clause:
            raise QueryBuilderError("update_where needs at least one condition")

        result = await self._executor.execute(
            f"UPDATE {definition.table} SET {assignments} WHERE {clause.render()}", params
        )
        return result.row_count

    async def upsert(self, data: Mapping[str, Any], conflict_field: str) -> Record:
        """
        Insert a record, or update the row already holding its ``conflict_field`` value.

        The conflict column is inserted when present in ``data`` but never
        appears in the ``DO UPDATE SET`` list.
        """
        definition = self._definition
        definition.fill(data)
        await self._validate()

        columns = self._writable_columns(data)
        if conflict_field in data and all(name != conflict_field for name, _ in columns):
            columns.append((conflict_field, data[conflict_field]))
        if not definition.use_autoincrement and all(name != "id" for name, _ in columns):
            columns.append(("id", uniqid()))
        now = _now()
        if definition.timestamps:
            columns.append(("created_at", now))

        names = [name for name, _ in columns]
        params: List[Any] = [value for _, value in columns]
        updates = [
            f"{name} = EXCLUDED.{name}"
            for name in names
            if name != conflict_field and name not in AUTO_FILLABLE_FIELDS
        ]
        if definition.timestamps:
            params.append(now)
            updates.append(f"updated_at = ${len(params)}")

        sql = (
            f"INSERT INTO {definition.table} ({', '.join(names)}) "
            f"VALUES ({_placeholders(1, len(names))}) ON CONFLICT ({conflict_field}) "
        )
        sql += f"DO UPDATE SET {', '.join(updates)}" if updates else "DO NOTHING"
        sql += " RETURNING *"

        row = (await self._executor.execute(sql, params)).first()
        if row is not None:
            definition.hydrate(row)
        return definition.to_record()

    async def delete(self, id: Any) -> Union[Record, int]:
        """
        Soft-delete (returns the stamped record) or hard-delete (returns the row count).
        """
        definition = self._definition
        if definition.soft_delete:
            return await self.update(id, {"deleted_at": _now()}, force=True)
        result = await self._executor.execute(f"DELETE FROM {definition.table} WHERE id = $1", [id])
        return result.row_count

    def save(self) -> Record:
        raise NotImplementedError("save() is not implemented; use create() or update() explicitly")

    # -------------------------------------------------------------- relations

    async def load(self, relation_name: str) -> Record:
        """
        Read the record linked to the bound one through ``relation_name``.

        Returns an empty dict when no row matches.
        """
        definition = self._definition
        relation = definition.relations.get(relation_name)
        if relation is None:
            raise RelationNotFoundError(
                f"Can not find relation {relation_name} for model {definition.name}"
            )
        target = self._registry.load(relation.model)
        row = await (
            QueryBuilder(self._executor)
            .from_(target.table)
            .where(relation.distant_field, definition.get_field(relation.local_field))
            .get_row()
        )
        return target.hydrate(row) if row is not None else {}


class ORM:
    """
    Entry point binding model names to per-call contexts.

    Parameters
    ----------
    executor : SQLExecutor
        Executes every statement the contexts build.
    registry : ModelRegistry, optional
        Source of model definitions; the process-wide registry by default.
    """

    def __init__(self, executor: SQLExecutor, registry: Optional[ModelRegistry] = None) -> None:
        self._executor = executor
        self._registry = registry if registry is not None else get_registry()

    @classmethod
    async def connect(
        cls,
        dsn: Optional[str] = None,
        settings: Optional[Settings] = None,
        registry: Optional[ModelRegistry] = None,
    ) -> "ORM":
        """
        Build an ORM on a fresh pool, discovering models from ``settings.models_dir``
        when the registry is still empty.
        """
        settings = settings or get_settings()
        registry = registry if registry is not None else get_registry()
        if not len(registry):
            registry.discover(settings.models_dir)
        executor = await QueryExecutor.connect(dsn, settings)
        return cls(executor, registry)

    @property
    def registry(self) -> ModelRegistry:
        return self._registry

    @property
    def executor(self) -> SQLExecutor:
        return self._executor

    def model(self, name: str) -> ModelContext:
        """Bind a fresh context to model ``name``; raises ModelNotFoundError if unknown."""
        return ModelContext(self._registry.load(name), self._executor, self._registry)

    def query(self) -> QueryBuilder:
        """A query builder running on this ORM's executor."""
        return QueryBuilder(self._executor)

    async def close(self) -> None:
        close = getattr(self._executor, "close", None)
        if close is not None:
            await close()


__all__ = ["DEFAULT_PAGE_SIZE", "ModelContext", "ORM"]
