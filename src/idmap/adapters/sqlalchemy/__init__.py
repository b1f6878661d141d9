"""SQLAlchemy adapter package for idmap."""

from __future__ import annotations

from .mappings import (
    CLASS_BY_KIND,
    TABLE_BY_KIND,
    create_all_tables,
    mapper_registry,
    start_mappers,
)
from .repositories import (
    SqlAlchemyAssessmentMappingStore,
    SqlAlchemyChildMappingStore,
    SqlAlchemyMappingStore,
    SqlAlchemyOwnedMappingStore,
    SqlAlchemyRelationMappingStore,
)

__all__ = [
    "CLASS_BY_KIND",
    "TABLE_BY_KIND",
    "SqlAlchemyAssessmentMappingStore",
    "SqlAlchemyChildMappingStore",
    "SqlAlchemyMappingStore",
    "SqlAlchemyOwnedMappingStore",
    "SqlAlchemyRelationMappingStore",
    "create_all_tables",
    "mapper_registry",
    "start_mappers",
]
