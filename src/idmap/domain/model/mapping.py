"""Identity mappings between legacy and modern identifiers.

Every concrete mapping class is one entity family's row. They share a small
capability contract (``MappingRecord``): a family ``kind``, a legacy-side
``local_key``, a modern-side ``remote_key`` and an optional ``owner_key``.
Conflict resolution and replay detection only use that contract; the
family-specific columns stay on the classes.

``created_at`` is stamped by the store on insert. ``local_key`` / ``remote_key``
are immutable once stored; ``owner_key`` is only rewritten by reassignment.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, ClassVar, Protocol, runtime_checkable

from idmap.domain.model.enums import EntityKind, Provenance
from idmap.domain.model.keys import BookingSequenceKey, RelationKey

if TYPE_CHECKING:
    from datetime import datetime

    from idmap.domain.model.keys import LocalKey


@runtime_checkable
class MappingRecord(Protocol):
    """Structural contract the engine relies on."""

    @property
    def kind(self) -> EntityKind: ...

    @property
    def local_key(self) -> LocalKey: ...

    @property
    def remote_key(self) -> str: ...

    @property
    def owner_key(self) -> str | None: ...

    def describe(self) -> str: ...


@dataclass(eq=False, kw_only=True)
class Mapping(ABC):
    """Base for all mapping rows."""

    remote_id: str
    batch_label: str | None = None
    provenance: Provenance = Provenance.MODERN_CREATED
    created_at: datetime | None = None

    # class-level discriminator; subclasses must override
    KIND: ClassVar[EntityKind]

    @property
    def kind(self) -> EntityKind:
        return self.KIND

    @property
    @abstractmethod
    def local_key(self) -> LocalKey: ...

    @property
    def remote_key(self) -> str:
        return self.remote_id

    @property
    def owner_key(self) -> str | None:
        return None

    def same_identity(self, other: MappingRecord) -> bool:
        """Whether ``other`` describes exactly the same correspondence (a replay)."""

        return (
            self.kind == other.kind
            and self.remote_key == other.remote_key
            and self.local_key == other.local_key
        )

    def describe(self) -> str:
        owner = f", owner={self.owner_key}" if self.owner_key is not None else ""
        label = f", label={self.batch_label}" if self.batch_label is not None else ""
        return (
            f"{self.KIND}(local={self.local_key}, remote={self.remote_key}{owner}"
            f", provenance={self.provenance}{label})"
        )


@dataclass(eq=False, kw_only=True)
class PersonMapping(Mapping):
    KIND: ClassVar[EntityKind] = EntityKind.PERSON

    local_id: int

    @property
    def local_key(self) -> int:
        return self.local_id


@dataclass(eq=False, kw_only=True)
class OwnedMapping(Mapping, ABC):
    """A mapping that belongs to a per-owner collection."""

    owner: str

    @property
    def owner_key(self) -> str:
        return self.owner


@dataclass(eq=False, kw_only=True)
class AlertMapping(OwnedMapping):
    KIND: ClassVar[EntityKind] = EntityKind.ALERT

    local_id: int

    @property
    def local_key(self) -> int:
        return self.local_id


@dataclass(eq=False, kw_only=True)
class AssessmentMapping(OwnedMapping):
    """Keyed on the legacy side by booking and a sequence within it."""

    KIND: ClassVar[EntityKind] = EntityKind.ASSESSMENT

    booking_id: int
    sequence: int

    @property
    def local_key(self) -> BookingSequenceKey:
        return BookingSequenceKey(self.booking_id, self.sequence)


@dataclass(eq=False, kw_only=True)
class CaseReportMapping(OwnedMapping):
    KIND: ClassVar[EntityKind] = EntityKind.CASE_REPORT

    local_id: int

    @property
    def local_key(self) -> int:
        return self.local_id


@dataclass(eq=False, kw_only=True)
class CaseChildMapping(Mapping, ABC):
    """A record attached to a case report; meaningless without its parent."""

    local_id: int
    parent_remote_id: str

    PARENT_KIND: ClassVar[EntityKind] = EntityKind.CASE_REPORT

    @property
    def local_key(self) -> int:
        return self.local_id


@dataclass(eq=False, kw_only=True)
class CaseFactorMapping(CaseChildMapping):
    KIND: ClassVar[EntityKind] = EntityKind.CASE_FACTOR


@dataclass(eq=False, kw_only=True)
class CaseInterviewMapping(CaseChildMapping):
    KIND: ClassVar[EntityKind] = EntityKind.CASE_INTERVIEW


@dataclass(eq=False, kw_only=True)
class CasePlanMapping(CaseChildMapping):
    KIND: ClassVar[EntityKind] = EntityKind.CASE_PLAN


@dataclass(eq=False, kw_only=True)
class NonAssociationMapping(Mapping):
    """Relation between two owners.

    The legacy side identifies a relation by the pair of owners plus a
    sequence disambiguating several relations between the same pair.
    Relations have no single owner; ``owner_key`` is always ``None``.
    """

    KIND: ClassVar[EntityKind] = EntityKind.NON_ASSOCIATION

    first_owner_key: str
    second_owner_key: str
    variant_sequence: int

    @property
    def local_key(self) -> RelationKey:
        return RelationKey(self.first_owner_key, self.second_owner_key, self.variant_sequence)

    def involves(self, owner_key: str) -> bool:
        return owner_key in (self.first_owner_key, self.second_owner_key)
