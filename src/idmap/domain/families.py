"""Entity families and their explicit row factories.

The engine is generic over ``Mapping``; everything family-specific (which
class a row is, how a legacy key is spelled on the command line, how to build a
row from an identifier pair) is looked up here by ``EntityKind``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Final, cast

from idmap.domain.errors import MappingValidationError
from idmap.domain.model import (
    AlertMapping,
    AssessmentMapping,
    BookingSequenceKey,
    CaseFactorMapping,
    CaseInterviewMapping,
    CasePlanMapping,
    CaseReportMapping,
    EntityKind,
    Mapping,
    NonAssociationMapping,
    PersonMapping,
    Provenance,
    RelationKey,
)

if TYPE_CHECKING:
    from datetime import datetime

    from idmap.domain.model import LocalKey


@dataclass(frozen=True, slots=True)
class IdPair:
    """A legacy/modern identifier pair as supplied by a migration batch."""

    local_key: LocalKey
    remote_key: str


@dataclass(frozen=True, slots=True)
class RowMetadata:
    """Shared metadata stamped onto every row built from an ``IdPair``."""

    owner_key: str | None = None
    parent_remote_id: str | None = None
    batch_label: str | None = None
    provenance: Provenance = Provenance.MIGRATED
    created_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class MappingFamily[TMapping: Mapping]:
    kind: EntityKind
    mapping_cls: type[TMapping]
    owned: bool = False
    parent_kind: EntityKind | None = None
    child_kinds: tuple[EntityKind, ...] = field(default_factory=tuple)

    @property
    def label(self) -> str:
        return self.kind.value.replace("_", " ")

    @property
    def is_relation(self) -> bool:
        return self.kind is EntityKind.NON_ASSOCIATION

    def parse_local_key(self, raw: str) -> LocalKey:
        return parse_local_key(self.kind, raw)

    def build(self, pair: IdPair, metadata: RowMetadata) -> TMapping:
        return cast("TMapping", build_mapping(self.kind, pair, metadata))


FAMILIES: Final[dict[EntityKind, MappingFamily[Mapping]]] = {
    EntityKind.PERSON: MappingFamily(EntityKind.PERSON, PersonMapping),
    EntityKind.ALERT: MappingFamily(EntityKind.ALERT, AlertMapping, owned=True),
    EntityKind.ASSESSMENT: MappingFamily(EntityKind.ASSESSMENT, AssessmentMapping, owned=True),
    EntityKind.CASE_REPORT: MappingFamily(
        EntityKind.CASE_REPORT,
        CaseReportMapping,
        owned=True,
        child_kinds=(EntityKind.CASE_FACTOR, EntityKind.CASE_INTERVIEW, EntityKind.CASE_PLAN),
    ),
    EntityKind.CASE_FACTOR: MappingFamily(
        EntityKind.CASE_FACTOR, CaseFactorMapping, parent_kind=EntityKind.CASE_REPORT
    ),
    EntityKind.CASE_INTERVIEW: MappingFamily(
        EntityKind.CASE_INTERVIEW, CaseInterviewMapping, parent_kind=EntityKind.CASE_REPORT
    ),
    EntityKind.CASE_PLAN: MappingFamily(
        EntityKind.CASE_PLAN, CasePlanMapping, parent_kind=EntityKind.CASE_REPORT
    ),
    EntityKind.NON_ASSOCIATION: MappingFamily(EntityKind.NON_ASSOCIATION, NonAssociationMapping),
}


def family_for(kind: EntityKind | str) -> MappingFamily[Mapping]:
    try:
        return FAMILIES[EntityKind(kind)]
    except ValueError as exc:
        raise MappingValidationError(f"Unknown entity kind: {kind}") from exc


def parse_local_key(kind: EntityKind, raw: str) -> LocalKey:
    """Parse the textual form of a legacy key (``123``, ``123:4``, ``A1:B2:1``)."""

    parts = raw.strip().split(":")
    try:
        match kind:
            case EntityKind.ASSESSMENT:
                booking_id, sequence = parts
                return BookingSequenceKey(int(booking_id), int(sequence))
            case EntityKind.NON_ASSOCIATION:
                first, second, sequence = parts
                return RelationKey(first, second, int(sequence))
            case _:
                (value,) = parts
                return int(value)
    except ValueError as exc:
        raise MappingValidationError(f"Invalid {kind} legacy key: {raw!r}") from exc


def build_mapping(kind: EntityKind, pair: IdPair, metadata: RowMetadata) -> Mapping:
    """Build the concrete row for ``kind`` from an identifier pair."""

    common = {
        "remote_id": pair.remote_key,
        "batch_label": metadata.batch_label,
        "provenance": metadata.provenance,
        "created_at": metadata.created_at,
    }
    match kind:
        case EntityKind.PERSON:
            return PersonMapping(local_id=_int_key(kind, pair), **common)
        case EntityKind.ALERT:
            return AlertMapping(
                local_id=_int_key(kind, pair),
                owner=_require_owner(kind, metadata),
                **common,
            )
        case EntityKind.ASSESSMENT:
            key = pair.local_key
            if not isinstance(key, BookingSequenceKey):
                raise MappingValidationError(f"{kind} needs a booking/sequence key, got {key!r}")
            return AssessmentMapping(
                booking_id=key.booking_id,
                sequence=key.sequence,
                owner=_require_owner(kind, metadata),
                **common,
            )
        case EntityKind.CASE_REPORT:
            return CaseReportMapping(
                local_id=_int_key(kind, pair),
                owner=_require_owner(kind, metadata),
                **common,
            )
        case EntityKind.CASE_FACTOR:
            return CaseFactorMapping(
                local_id=_int_key(kind, pair),
                parent_remote_id=_require_parent(kind, metadata),
                **common,
            )
        case EntityKind.CASE_INTERVIEW:
            return CaseInterviewMapping(
                local_id=_int_key(kind, pair),
                parent_remote_id=_require_parent(kind, metadata),
                **common,
            )
        case EntityKind.CASE_PLAN:
            return CasePlanMapping(
                local_id=_int_key(kind, pair),
                parent_remote_id=_require_parent(kind, metadata),
                **common,
            )
        case EntityKind.NON_ASSOCIATION:
            key = pair.local_key
            if not isinstance(key, RelationKey):
                raise MappingValidationError(f"{kind} needs a relation key, got {key!r}")
            return NonAssociationMapping(
                first_owner_key=key.first_owner_key,
                second_owner_key=key.second_owner_key,
                variant_sequence=key.variant_sequence,
                **common,
            )


def _int_key(kind: EntityKind, pair: IdPair) -> int:
    key = pair.local_key
    if isinstance(key, tuple):
        raise MappingValidationError(f"{kind} needs an integer legacy key, got {key!r}")
    return key


def _require_owner(kind: EntityKind, metadata: RowMetadata) -> str:
    if not metadata.owner_key:
        raise MappingValidationError(f"{kind} mappings need an owner")
    return metadata.owner_key


def _require_parent(kind: EntityKind, metadata: RowMetadata) -> str:
    if not metadata.parent_remote_id:
        raise MappingValidationError(f"{kind} mappings need a parent")
    return metadata.parent_remote_id
