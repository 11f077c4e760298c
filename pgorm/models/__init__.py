"""
Model metadata package for pgorm.
"""

from pgorm.models.definition import AUTO_FILLABLE_FIELDS, ModelDefinition, Record
from pgorm.models.registry import ModelRegistry, get_registry

__all__ = [
    "AUTO_FILLABLE_FIELDS",
    "ModelDefinition",
    "ModelRegistry",
    "Record",
    "get_registry",
]
