"""Public domain model surface."""

from __future__ import annotations

from idmap.domain.model.enums import EntityKind, Provenance
from idmap.domain.model.keys import BookingSequenceKey, LocalKey, RelationKey, key_values
from idmap.domain.model.mapping import (
    AlertMapping,
    AssessmentMapping,
    CaseChildMapping,
    CaseFactorMapping,
    CaseInterviewMapping,
    CasePlanMapping,
    CaseReportMapping,
    Mapping,
    MappingRecord,
    NonAssociationMapping,
    OwnedMapping,
    PersonMapping,
)
from idmap.domain.model.paging import OwnerMappingSummary, Page, PageRequest

__all__ = [  # noqa: RUF022
    # enums
    "EntityKind",
    "Provenance",
    # keys
    "BookingSequenceKey",
    "LocalKey",
    "RelationKey",
    "key_values",
    # mappings
    "Mapping",
    "MappingRecord",
    "OwnedMapping",
    "PersonMapping",
    "AlertMapping",
    "AssessmentMapping",
    "CaseReportMapping",
    "CaseChildMapping",
    "CaseFactorMapping",
    "CaseInterviewMapping",
    "CasePlanMapping",
    "NonAssociationMapping",
    # paging
    "OwnerMappingSummary",
    "Page",
    "PageRequest",
]
