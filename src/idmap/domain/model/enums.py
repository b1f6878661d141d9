"""Domain enums (pure, dependency-light)."""

from __future__ import annotations

from enum import StrEnum


class Provenance(StrEnum):
    """Which process originated a mapping."""

    MIGRATED = "migrated"
    LEGACY_CREATED = "legacy_created"
    MODERN_CREATED = "modern_created"


class EntityKind(StrEnum):
    """Tagged-variant discriminator for the mapping families."""

    PERSON = "person"
    ALERT = "alert"
    ASSESSMENT = "assessment"

    # Hierarchical: a case report plus its attached records
    CASE_REPORT = "case_report"
    CASE_FACTOR = "case_factor"
    CASE_INTERVIEW = "case_interview"
    CASE_PLAN = "case_plan"

    # Relations between two owners
    NON_ASSOCIATION = "non_association"
