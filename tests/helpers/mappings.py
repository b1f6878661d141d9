"""Builders for mapping rows used across tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

from idmap.domain.model import (
    AlertMapping,
    AssessmentMapping,
    CaseFactorMapping,
    CaseInterviewMapping,
    CaseReportMapping,
    NonAssociationMapping,
    PersonMapping,
    Provenance,
)

if TYPE_CHECKING:
    from datetime import datetime


def make_person(
    local_id: int = 1,
    remote_id: str = "person-1",
    *,
    label: str | None = None,
    provenance: Provenance = Provenance.MIGRATED,
    created_at: datetime | None = None,
) -> PersonMapping:
    return PersonMapping(
        local_id=local_id,
        remote_id=remote_id,
        batch_label=label,
        provenance=provenance,
        created_at=created_at,
    )


def make_alert(
    local_id: int = 1,
    remote_id: str = "alert-1",
    *,
    owner: str = "A1234BC",
    label: str | None = None,
    provenance: Provenance = Provenance.MIGRATED,
) -> AlertMapping:
    return AlertMapping(
        local_id=local_id,
        remote_id=remote_id,
        owner=owner,
        batch_label=label,
        provenance=provenance,
    )


def make_assessment(
    booking_id: int = 100,
    sequence: int = 1,
    remote_id: str = "assessment-1",
    *,
    owner: str = "A1234BC",
    label: str | None = None,
    provenance: Provenance = Provenance.MIGRATED,
) -> AssessmentMapping:
    return AssessmentMapping(
        booking_id=booking_id,
        sequence=sequence,
        remote_id=remote_id,
        owner=owner,
        batch_label=label,
        provenance=provenance,
    )


def make_case_report(
    local_id: int = 1,
    remote_id: str = "case-1",
    *,
    owner: str = "A1234BC",
    provenance: Provenance = Provenance.MODERN_CREATED,
) -> CaseReportMapping:
    return CaseReportMapping(
        local_id=local_id,
        remote_id=remote_id,
        owner=owner,
        provenance=provenance,
    )


def make_case_factor(
    local_id: int = 1,
    remote_id: str = "factor-1",
    *,
    parent: str = "case-1",
) -> CaseFactorMapping:
    return CaseFactorMapping(local_id=local_id, remote_id=remote_id, parent_remote_id=parent)


def make_case_interview(
    local_id: int = 1,
    remote_id: str = "interview-1",
    *,
    parent: str = "case-1",
) -> CaseInterviewMapping:
    return CaseInterviewMapping(local_id=local_id, remote_id=remote_id, parent_remote_id=parent)


def make_relation(
    first: str,
    second: str,
    sequence: int = 1,
    remote_id: str = "na-1",
    *,
    label: str | None = None,
    provenance: Provenance = Provenance.MIGRATED,
) -> NonAssociationMapping:
    return NonAssociationMapping(
        first_owner_key=first,
        second_owner_key=second,
        variant_sequence=sequence,
        remote_id=remote_id,
        batch_label=label,
        provenance=provenance,
    )
