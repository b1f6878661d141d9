"""Ports for persisting identity mappings.

Stores raise ``UniqueConstraintViolation`` from any write that breaks one of
their uniqueness constraints; everything else about conflict handling lives in
the engine.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

from idmap.domain.model import (
    AssessmentMapping,
    Mapping,
    NonAssociationMapping,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from idmap.domain.model import LocalKey, OwnerMappingSummary, Provenance


@runtime_checkable
class MappingStore[TMapping: Mapping](Protocol):
    """Point lookups, deletes and batch scans for one mapping table."""

    def insert(self, mapping: TMapping) -> None: ...

    def insert_all(self, mappings: Sequence[TMapping]) -> None: ...

    def find_by_local_key(self, key: LocalKey) -> TMapping | None: ...

    def find_by_remote_key(self, key: str) -> TMapping | None: ...

    def find_remote_keys(self, *, provenance: Provenance | None = None) -> list[str]: ...

    def delete_by_local_key(self, key: LocalKey) -> int: ...

    def delete_by_remote_key(self, key: str) -> int: ...

    def delete_all(self, *, provenance: Provenance | None = None) -> int: ...

    def find_page_by_batch_label(
        self,
        label: str,
        provenance: Provenance,
        *,
        offset: int,
        limit: int,
    ) -> list[TMapping]: ...

    def count_by_batch_label_and_provenance(self, label: str, provenance: Provenance) -> int: ...

    def count_all(self) -> int: ...

    def find_latest(self, provenance: Provenance) -> TMapping | None: ...


@runtime_checkable
class OwnedMappingStore[TMapping: Mapping](MappingStore[TMapping], Protocol):
    """Store for families whose rows belong to a per-owner collection."""

    def find_by_owner_key(self, owner_key: str) -> list[TMapping]: ...

    def delete_by_owner_key(self, owner_key: str) -> int: ...

    def update_owner_key(self, old_owner_key: str, new_owner_key: str) -> int: ...

    def delete_then_insert(
        self,
        owner_keys: Sequence[str],
        mappings: Sequence[TMapping],
    ) -> None: ...

    def find_owner_summaries_by_batch_label(
        self,
        label: str,
        provenance: Provenance,
        *,
        offset: int,
        limit: int,
    ) -> list[OwnerMappingSummary]: ...

    def count_owners_by_batch_label(self, label: str, provenance: Provenance) -> int: ...


@runtime_checkable
class AssessmentMappingStore(OwnedMappingStore[AssessmentMapping], Protocol):
    """Composite-keyed store whose rows can move between owners by booking."""

    def update_owner_key_by_booking(
        self,
        booking_id: int,
        new_owner_key: str,
    ) -> list[AssessmentMapping]: ...


@runtime_checkable
class ChildMappingStore[TMapping: Mapping](MappingStore[TMapping], Protocol):
    """Store for rows attached to a parent mapping."""

    def find_by_parent(self, parent_remote_id: str) -> list[TMapping]: ...

    def delete_by_parent(self, parent_remote_id: str) -> int: ...


@runtime_checkable
class RelationMappingStore(MappingStore[NonAssociationMapping], Protocol):
    """Store for symmetric relations between two owners."""

    def find_by_either_owner(self, owner_key: str) -> list[NonAssociationMapping]: ...

    def update_first_owner(self, remote_id: str, new_owner_key: str) -> int: ...

    def update_second_owner(self, remote_id: str, new_owner_key: str) -> int: ...

    def update_first_owner_by_pair(
        self,
        first_owner_key: str,
        second_owner_key: str,
        new_owner_key: str,
    ) -> int: ...

    def update_second_owner_by_pair(
        self,
        first_owner_key: str,
        second_owner_key: str,
        new_owner_key: str,
    ) -> int: ...
