"""
Query construction package for pgorm.
"""

from pgorm.query.builder import QueryBuilder, WhereClause, apply_conditions

__all__ = ["QueryBuilder", "WhereClause", "apply_conditions"]
