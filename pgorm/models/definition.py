"""
Model metadata plus the in-memory field state of one record.

A ``ModelDefinition`` is built once per model source by the registry; the ORM
works on copies so that no two call chains ever share field state.

Write eligibility and read visibility are separate concerns: ``fillable_fields``
decides what ``fill`` and ``set`` may write, ``hidden_fields`` decides what
``complete`` skips and what ``to_record`` exposes.
"""

from __future__ import annotations

import copy
from typing import Any, Callable, Dict, FrozenSet, Iterator, Mapping, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from pgorm.domain.models import ModelConfig, RelationSpec
from pgorm.exceptions import MethodNotFoundError, ModelDefinitionError, ProtectedFieldError
from pgorm.utils.helpers import ucfirst
from pgorm.validation.rules import ValidationRule

Record = Dict[str, Any]

# Columns the ORM manages itself; never written from caller data unless forced.
AUTO_FILLABLE_FIELDS: Tuple[str, ...] = ("id", "created_at", "updated_at", "deleted_at")


def _is_private(name: str) -> bool:
    return name.startswith("_")


class ModelDefinition:
    """
    Parsed model source: table metadata, policies, rules, relations and field state.

    Parameters
    ----------
    name : str
        Model name the definition is registered under.
    config : ModelConfig
        Validated ``config`` block.
    fields : Mapping[str, Any], optional
        Declared fields and their initial values.
    methods : Mapping[str, Callable], optional
        Model methods; each is called with the definition as first argument.
    """

    def __init__(
        self,
        name: str,
        config: ModelConfig,
        fields: Optional[Mapping[str, Any]] = None,
        methods: Optional[Mapping[str, Callable[..., Any]]] = None,
    ) -> None:
        self.name = name
        self.table: str = config.table or name
        self.use_autoincrement = config.use_autoincrement
        self.timestamps = config.timestamps
        self.soft_delete = config.soft_delete
        self.fillable_fields: Optional[FrozenSet[str]] = (
            frozenset(config.fillable_fields) if config.fillable_fields is not None else None
        )
        self.hidden_fields: FrozenSet[str] = frozenset(config.hidden_fields)
        self.validations: Dict[str, Tuple[ValidationRule, ...]] = {
            field: tuple(ValidationRule.parse(rule) for rule in rules)
            for field, rules in config.validations.items()
        }
        self.relations: Dict[str, RelationSpec] = dict(config.relations)
        self.methods: Dict[str, Callable[..., Any]] = dict(methods or {})
        self._fields: Dict[str, Any] = dict(fields or {})

    @classmethod
    def from_source(cls, name: str, source: Any) -> "ModelDefinition":
        """
        Build a definition from a model source.

        ``source`` is a mapping or a module exposing ``config``, ``fields`` and
        optionally ``methods``.
        """
        if isinstance(source, Mapping):
            raw_config = source.get("config", {})
            fields = source.get("fields", {})
            methods = source.get("methods", {})
        else:
            raw_config = getattr(source, "config", {})
            fields = getattr(source, "fields", {})
            methods = getattr(source, "methods", {})

        try:
            config = raw_config if isinstance(raw_config, ModelConfig) else ModelConfig(**(raw_config or {}))
        except (PydanticValidationError, TypeError) as exc:
            raise ModelDefinitionError(f"Invalid config for model '{name}': {exc}") from exc
        if not isinstance(fields, Mapping):
            raise ModelDefinitionError(f"Model '{name}' must declare its fields as a mapping")
        for method_name, method in (methods or {}).items():
            if not callable(method):
                raise ModelDefinitionError(f"Method '{method_name}' of model '{name}' is not callable")
        return cls(name, config, fields, methods)

    def copy(self) -> "ModelDefinition":
        """A copy whose field state can be mutated independently."""
        clone = copy.copy(self)
        clone._fields = copy.deepcopy(self._fields)
        return clone

    # ----------------------------------------------------------- write policy

    def is_fillable(self, name: str) -> bool:
        return self.fillable_fields is not None and name in self.fillable_fields

    def fill(self, data: Mapping[str, Any]) -> Record:
        """Copy the fillable keys of ``data`` into the field state; others are ignored."""
        for key, value in data.items():
            if self.is_fillable(key):
                self._fields[key] = value
        return self.to_record()

    def complete(self, data: Mapping[str, Any]) -> Record:
        """Copy every non-hidden key of ``data``, e.g. a freshly read row."""
        for key, value in data.items():
            if key in self.hidden_fields:
                continue
            self._fields[key] = value
        return self.to_record()

    def hydrate(self, row: Mapping[str, Any]) -> Record:
        """
        Load a row read from the database into the field state.

        Hidden columns are kept in the state so validation still sees them;
        the returned record leaves them out like any other ``to_record`` call.
        """
        self._fields.update(row)
        return self.to_record()

    def assign(self, name: str, value: Any) -> None:
        """Write a field bypassing the fillable check; reserved to the ORM's managed columns."""
        self._fields[name] = value

    # ------------------------------------------------------ accessor surface

    def get_field(self, name: str) -> Any:
        return self._fields.get(name)

    def get(self, name: str) -> Any:
        """
        Read a field, or a computed value from a ``get<Name>`` model method.
        """
        if name in self._fields:
            return self._fields[name]
        getter = self.methods.get("get" + ucfirst(name))
        if getter is not None:
            return getter(self)
        return None

    def set(self, name: str, value: Any) -> None:
        if not self.is_fillable(name):
            raise ProtectedFieldError(f"Can not modify field {name} because it is not fillable !")
        self._fields[name] = value

    def has(self, name: str) -> bool:
        return not _is_private(name) and name in self._fields

    def fields(self) -> Iterator[str]:
        """Names of the public fields currently held."""
        return (name for name in self._fields if not _is_private(name))

    def values(self) -> Record:
        """Every held value, hidden fields included; what validation reads."""
        return dict(self._fields)

    def to_record(self) -> Record:
        """Externally visible projection: hidden and private fields removed."""
        return {
            name: value
            for name, value in self._fields.items()
            if not _is_private(name) and name not in self.hidden_fields
        }

    def call(self, method: str, *args: Any, **kwargs: Any) -> Any:
        func = self.methods.get(method)
        if func is None:
            raise MethodNotFoundError(f"Method {method} seems not exist for model {self.name}")
        return func(self, *args, **kwargs)

    def __repr__(self) -> str:
        return f"<ModelDefinition {self.name} table={self.table}>"


__all__ = ["AUTO_FILLABLE_FIELDS", "ModelDefinition", "Record"]
