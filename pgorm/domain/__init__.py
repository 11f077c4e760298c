"""
Domain package for pgorm.

Exports the schemas shared by the model registry and the ORM.
Keep this package focused on data definitions and validation concerns.
"""

from pgorm.domain.models import ModelConfig, PaginatedResult, RelationSpec

__all__ = [
    "ModelConfig",
    "PaginatedResult",
    "RelationSpec",
]
