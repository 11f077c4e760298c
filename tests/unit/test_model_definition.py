from __future__ import annotations

from pathlib import Path

import pytest

from pgorm.exceptions import (
    InvalidRuleError,
    MethodNotFoundError,
    ModelDefinitionError,
    ModelNotFoundError,
    ProtectedFieldError,
)
from pgorm.models import ModelDefinition, ModelRegistry
from pgorm.validation import RuleKind


def _definition(**config) -> ModelDefinition:
    return ModelDefinition.from_source("item", {"config": config, "fields": {"id": None, "other": None}})


def test_defaults_apply_to_omitted_config_keys() -> None:
    definition = ModelDefinition.from_source("item", {})

    assert definition.table == "item"
    assert definition.use_autoincrement is True
    assert definition.timestamps is True
    assert definition.soft_delete is False
    assert definition.fillable_fields is None
    assert definition.hidden_fields == frozenset()


def test_fill_only_writes_fillable_keys() -> None:
    definition = _definition(fillable_fields=["other"])

    record = definition.fill({"id": 5, "other": "y", "unknown": 1})

    assert record == {"id": None, "other": "y"}
    assert definition.get_field("id") is None
    assert not definition.has("unknown")


def test_missing_fillable_list_makes_nothing_writable() -> None:
    definition = _definition()

    definition.fill({"other": "y"})

    assert definition.get_field("other") is None


def test_complete_copies_everything_but_hidden_fields() -> None:
    definition = _definition(hidden_fields=["password"])

    record = definition.complete({"id": 3, "other": "z", "password": "secret"})

    assert record == {"id": 3, "other": "z"}
    assert definition.get_field("password") is None


def test_hydrate_keeps_hidden_columns_in_field_state() -> None:
    definition = _definition(hidden_fields=["password"])

    record = definition.hydrate({"id": 3, "other": "z", "password": "secret"})

    assert record == {"id": 3, "other": "z"}
    assert definition.get_field("password") == "secret"
    assert definition.values()["password"] == "secret"


def test_hidden_fields_are_projected_out_of_records() -> None:
    definition = _definition(fillable_fields=["other", "password"], hidden_fields=["password"])

    definition.fill({"other": "y", "password": "secret"})

    assert definition.get_field("password") == "secret"
    assert "password" not in definition.to_record()
    assert definition.values()["password"] == "secret"


def test_set_outside_fillable_raises() -> None:
    definition = _definition(fillable_fields=["other"])

    definition.set("other", "ok")
    with pytest.raises(ProtectedFieldError, match="Can not modify field id because it is not fillable"):
        definition.set("id", 9)
    assert definition.get("other") == "ok"


def test_private_names_are_never_exposed() -> None:
    definition = ModelDefinition.from_source("item", {"fields": {"_cache": 1, "name": "n"}})

    assert not definition.has("_cache")
    assert list(definition.fields()) == ["name"]
    assert definition.to_record() == {"name": "n"}


def test_get_falls_back_to_model_getter_and_call_dispatches_methods() -> None:
    definition = ModelDefinition.from_source(
        "item",
        {
            "fields": {"first": "Ada", "last": "Lovelace"},
            "methods": {
                "getFullName": lambda model: f"{model.get('first')} {model.get('last')}",
                "greet": lambda model, greeting: f"{greeting}, {model.get('first')}",
            },
        },
    )

    assert definition.get("fullName") == "Ada Lovelace"
    assert definition.get("missing") is None
    assert definition.call("greet", "Hello") == "Hello, Ada"
    with pytest.raises(MethodNotFoundError):
        definition.call("explode")


def test_copies_do_not_share_field_state() -> None:
    definition = ModelDefinition.from_source(
        "item", {"config": {"fillable_fields": ["tags"]}, "fields": {"tags": []}}
    )
    first, second = definition.copy(), definition.copy()

    first.get_field("tags").append("a")
    second.fill({"tags": ["b"]})

    assert definition.get_field("tags") == []
    assert first.get_field("tags") == ["a"]
    assert second.get_field("tags") == ["b"]


def test_validations_are_parsed_at_registration() -> None:
    definition = _definition(validations={"other": ["required", "maxLength:8"], "id": "integer"})

    assert [rule.kind for rule in definition.validations["other"]] == [RuleKind.REQUIRED, RuleKind.MAX_LENGTH]
    assert definition.validations["id"][0].kind is RuleKind.INTEGER


@pytest.mark.parametrize(
    "source",
    [
        {"config": {"tabel": "typo"}},
        {"config": {"timestamps": "sometimes"}},
        {"config": {"relations": {"owner": {"model": "user"}}}},
        {"fields": ["id", "name"]},
        {"methods": {"getName": "not callable"}},
    ],
)
def test_malformed_sources_are_rejected(source: dict) -> None:
    with pytest.raises(ModelDefinitionError):
        ModelDefinition.from_source("broken", source)


def test_malformed_rule_is_rejected_at_registration() -> None:
    with pytest.raises(InvalidRuleError):
        _definition(validations={"other": ["maxLenght:8"]})


def test_registry_lookup_is_case_insensitive_and_returns_copies(registry: ModelRegistry) -> None:
    first = registry.load("User")
    first.fill({"email": "a@b.c"})

    assert "USER" in registry
    assert registry.load("user").get_field("email") is None
    assert registry.names() == ["company", "token", "user"]


def test_registry_unknown_model_raises(registry: ModelRegistry) -> None:
    with pytest.raises(ModelNotFoundError, match="Model ghost is not registered"):
        registry.load("ghost")


def test_registry_discovers_model_modules(tmp_path: Path) -> None:
    (tmp_path / "article.py").write_text(
        "config = {'table': 'articles', 'fillable_fields': ['title'], 'validations': {'title': ['required']}}\n"
        "fields = {'id': None, 'title': None}\n",
        encoding="utf-8",
    )
    (tmp_path / "_helpers.py").write_text("raise RuntimeError('never imported')\n", encoding="utf-8")
    registry = ModelRegistry()

    names = registry.discover(tmp_path)

    assert names == ["article"]
    assert registry.get("article").table == "articles"


def test_registry_wraps_import_failures(tmp_path: Path) -> None:
    (tmp_path / "broken.py").write_text("config = {\n", encoding="utf-8")

    with pytest.raises(ModelDefinitionError, match="failed to import"):
        ModelRegistry().discover(tmp_path)


def test_registry_missing_directory_registers_nothing(tmp_path: Path) -> None:
    assert ModelRegistry().discover(tmp_path / "absent") == []
