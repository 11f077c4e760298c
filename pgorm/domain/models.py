"""
Domain models for pgorm.

Pydantic schemas for the declarative part of a model source (its ``config``
block and relations) and for the paginated result envelope returned by the
ORM. Model configs are validated once at registration time.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class RelationSpec(BaseModel):
    """
    A foreign-key-style link from a local field to another model's column.
    """

    model: str = Field(..., description="Name of the target model.")
    local_field: str = Field(..., description="Field of the bound record holding the key.")
    distant_field: str = Field(..., description="Column of the target table matched against it.")

    model_config = {
        "frozen": True,
        "protected_namespaces": (),
    }


class ModelConfig(BaseModel):
    """
    The ``config`` block of a model source, with defaults for every omitted key.
    """

    table: Optional[str] = Field(None, description="Table name; defaults to the model name.")
    use_autoincrement: bool = Field(True, description="Serial id when True, generated uniqid otherwise.")
    timestamps: bool = Field(True, description="Maintain created_at / updated_at.")
    soft_delete: bool = Field(False, description="Delete by stamping deleted_at.")
    fillable_fields: Optional[List[str]] = Field(
        None, description="Fields writable through fill; None means none are."
    )
    hidden_fields: List[str] = Field(default_factory=list, description="Fields excluded from records.")
    validations: Dict[str, List[Any]] = Field(
        default_factory=dict, description="Rule specs per field, e.g. ['required', 'maxLength:64']."
    )
    relations: Dict[str, RelationSpec] = Field(default_factory=dict, description="Named relations.")

    model_config = {
        "extra": "forbid",
        "frozen": True,
    }

    @field_validator("validations", mode="before")
    @classmethod
    def _rules_as_lists(cls, value: Any) -> Any:
        # A single rule may be written as a bare string.
        if isinstance(value, dict):
            return {field: [rules] if isinstance(rules, str) else rules for field, rules in value.items()}
        return value


class PaginatedResult(BaseModel):
    """
    One page of records plus the totals needed to navigate the others.
    """

    total: int = Field(..., ge=0, description="Rows matching the filter across all pages.")
    page_count: int = Field(..., ge=0, description="ceil(total / per_page).")
    current_page: int = Field(..., ge=1, description="1-based page number served.")
    per_page: int = Field(..., ge=1, description="Page size requested.")
    data: List[Dict[str, Any]] = Field(default_factory=list, description="Records of this page.")


__all__ = ["ModelConfig", "PaginatedResult", "RelationSpec"]
