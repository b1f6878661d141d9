"""Domain port definitions for adapters."""

from __future__ import annotations

from .persistence import (
    AssessmentMappingStore,
    ChildMappingStore,
    MappingStore,
    OwnedMappingStore,
    RelationMappingStore,
)
from .unit_of_work import (
    MappingRepositories,
    MappingUnitOfWork,
    RepositoryCollection,
    UnitOfWork,
)

__all__ = [
    "AssessmentMappingStore",
    "ChildMappingStore",
    "MappingRepositories",
    "MappingStore",
    "MappingUnitOfWork",
    "OwnedMappingStore",
    "RelationMappingStore",
    "RepositoryCollection",
    "UnitOfWork",
]
