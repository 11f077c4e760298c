"""
Startup-time registry of model definitions.

Model sources are Python modules (one ``<name>.py`` per model in the models
directory) or plain mappings registered programmatically. Each source is parsed
and validated once; ``load`` hands out independent copies.

Example model source ``models/user.py``:

    config = {
        "table": "users",
        "fillable_fields": ["email", "name"],
        "hidden_fields": ["password_hash"],
        "validations": {"email": ["required", "email"]},
        "relations": {"profile": {"model": "profile", "local_field": "id", "distant_field": "user_id"}},
    }
    fields = {"id": None, "email": None, "name": None}
    methods = {"getDisplayName": lambda model: model.get_field("name") or model.get_field("email")}
"""

from __future__ import annotations

import importlib.util
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pgorm.exceptions import ModelDefinitionError, ModelNotFoundError
from pgorm.models.definition import ModelDefinition
from pgorm.utils.logging import get_logger

log = get_logger(__name__)


def _key(name: str) -> str:
    return name.strip().lower()


class ModelRegistry:
    """Mapping from model name to a validated, already-parsed definition."""

    def __init__(self) -> None:
        self._definitions: Dict[str, ModelDefinition] = {}

    def __contains__(self, name: str) -> bool:
        return _key(name) in self._definitions

    def __len__(self) -> int:
        return len(self._definitions)

    def names(self) -> List[str]:
        return sorted(self._definitions)

    def register(self, name: str, source: Any) -> ModelDefinition:
        """Parse ``source`` and register it under ``name`` (case-insensitive)."""
        definition = ModelDefinition.from_source(_key(name), source)
        self._definitions[_key(name)] = definition
        log.debug("registered model", extra={"model": definition.name, "table": definition.table})
        return definition

    def discover(self, directory: Union[str, Path]) -> List[str]:
        """
        Register every ``*.py`` model source found in ``directory``.

        Returns the registered names. A missing directory registers nothing.
        """
        path = Path(directory)
        if not path.is_dir():
            log.warning("models directory %s does not exist", path)
            return []

        registered: List[str] = []
        for file in sorted(path.glob("*.py")):
            if file.name.startswith("_"):
                continue
            module = self._import_source(file)
            registered.append(self.register(file.stem, module).name)
        log.info("discovered %d model(s) in %s", len(registered), path)
        return registered

    @staticmethod
    def _import_source(file: Path) -> Any:
        spec = importlib.util.spec_from_file_location(f"pgorm_models.{file.stem}", file)
        if spec is None or spec.loader is None:
            raise ModelDefinitionError(f"Can not import model source {file}")
        module = importlib.util.module_from_spec(spec)
        try:
            spec.loader.exec_module(module)
        except Exception as exc:
            raise ModelDefinitionError(f"Model source {file} failed to import: {exc}") from exc
        return module

    def get(self, name: str) -> ModelDefinition:
        """The registered definition itself; callers must not mutate its field state."""
        definition = self._definitions.get(_key(name))
        if definition is None:
            raise ModelNotFoundError(f"Model {name} is not registered")
        return definition

    def load(self, name: str) -> ModelDefinition:
        """A fresh copy of the definition, safe to fill and hydrate."""
        return self.get(name).copy()


_default_registry: Optional[ModelRegistry] = None


def get_registry() -> ModelRegistry:
    """Process-wide registry used when an ORM is built without an explicit one."""
    global _default_registry
    if _default_registry is None:
        _default_registry = ModelRegistry()
    return _default_registry


__all__ = ["ModelRegistry", "get_registry"]
