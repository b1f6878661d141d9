"""Unit-of-work abstractions for coordinating mapping stores."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from idmap.domain.model import EntityKind

if TYPE_CHECKING:
    from types import TracebackType

    from idmap.domain.model import (
        AlertMapping,
        CaseFactorMapping,
        CaseInterviewMapping,
        CasePlanMapping,
        CaseReportMapping,
        PersonMapping,
    )
    from idmap.domain.ports.persistence import (
        AssessmentMappingStore,
        ChildMappingStore,
        MappingStore,
        OwnedMappingStore,
        RelationMappingStore,
    )


@runtime_checkable
class RepositoryCollection(Protocol):
    """Marker protocol for groups of repositories managed together."""


@runtime_checkable
class UnitOfWork[TRepositories: RepositoryCollection](Protocol):
    """Generic unit-of-work boundary around a repository collection."""

    @property
    def repositories(self) -> TRepositories: ...

    def __enter__(self) -> UnitOfWork[TRepositories]: ...

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> bool: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...


@dataclass(slots=True)
class MappingRepositories(RepositoryCollection):
    """One store per entity family."""

    people: MappingStore[PersonMapping]
    alerts: OwnedMappingStore[AlertMapping]
    assessments: AssessmentMappingStore
    case_reports: OwnedMappingStore[CaseReportMapping]
    case_factors: ChildMappingStore[CaseFactorMapping]
    case_interviews: ChildMappingStore[CaseInterviewMapping]
    case_plans: ChildMappingStore[CasePlanMapping]
    non_associations: RelationMappingStore

    def for_kind(self, kind: EntityKind) -> MappingStore[Any]:
        match kind:
            case EntityKind.PERSON:
                return self.people
            case EntityKind.ALERT:
                return self.alerts
            case EntityKind.ASSESSMENT:
                return self.assessments
            case EntityKind.CASE_REPORT:
                return self.case_reports
            case EntityKind.CASE_FACTOR:
                return self.case_factors
            case EntityKind.CASE_INTERVIEW:
                return self.case_interviews
            case EntityKind.CASE_PLAN:
                return self.case_plans
            case EntityKind.NON_ASSOCIATION:
                return self.non_associations

    def owned(self, kind: EntityKind) -> OwnedMappingStore[Any]:
        match kind:
            case EntityKind.ALERT:
                return self.alerts
            case EntityKind.ASSESSMENT:
                return self.assessments
            case EntityKind.CASE_REPORT:
                return self.case_reports
            case _:
                raise ValueError(f"{kind} mappings are not grouped by owner")

    def children(self, kind: EntityKind) -> ChildMappingStore[Any]:
        match kind:
            case EntityKind.CASE_FACTOR:
                return self.case_factors
            case EntityKind.CASE_INTERVIEW:
                return self.case_interviews
            case EntityKind.CASE_PLAN:
                return self.case_plans
            case _:
                raise ValueError(f"{kind} mappings have no parent")


type MappingUnitOfWork = UnitOfWork[MappingRepositories]
