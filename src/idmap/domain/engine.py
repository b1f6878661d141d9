"""Idempotent create, hierarchical create, lookups and deletes for one family.

A create first attempts the insert and only on a uniqueness violation re-reads
the colliding row. The re-read decides between a benign replay (identical
correspondence already stored: success, nothing written) and a genuine
duplicate (``DuplicateMappingError`` carrying both rows). The violation alone
never tells which of the two happened.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, cast

from idmap.domain.conflicts import ConflictResolver
from idmap.domain.errors import (
    DuplicateMappingError,
    MappingNotFoundError,
    MappingValidationError,
    UniqueConstraintViolation,
    already_exists_message,
)
from idmap.domain.families import IdPair, MappingFamily, RowMetadata, family_for
from idmap.domain.model import CaseChildMapping, Mapping, Provenance

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence
    from collections.abc import Mapping as MappingOf

    from idmap.domain.model import EntityKind, LocalKey
    from idmap.domain.ports import MappingRepositories, MappingUnitOfWork

log = logging.getLogger(__name__)


class MappingEngine[TMapping: Mapping]:
    """Create/lookup/delete operations for a single entity family."""

    def __init__(
        self,
        family: MappingFamily[TMapping],
        unit_of_work_factory: Callable[[], MappingUnitOfWork],
        *,
        resolver: ConflictResolver | None = None,
    ) -> None:
        self.family = family
        self._unit_of_work_factory = unit_of_work_factory
        self._resolver = resolver or ConflictResolver(unit_of_work_factory)

    # Create -----------------------------------------------------------------

    def create(self, mapping: TMapping) -> None:
        """Persist ``mapping``; replays of an identical mapping succeed silently."""

        self._check_family(mapping)
        self._create_one(mapping)

    def create_all(self, mappings: Sequence[TMapping]) -> None:
        """Persist a migration batch in one transaction.

        On a violation the batch is rolled back and the mappings are checked
        in order against the store; the first genuine collision is reported.
        If every collision turns out to be a replay the remaining mappings are
        written.
        """

        for mapping in mappings:
            self._check_family(mapping)
        if not mappings:
            return
        try:
            with self._unit_of_work_factory() as uow:
                self._store(uow).insert_all(mappings)
                uow.commit()
        except UniqueConstraintViolation as violation:
            fresh = self._recover_bulk(mappings, violation)
            if fresh:
                self._insert_remainder(fresh)
            log.info(
                "Created %s of %s %s mappings (rest already present)",
                len(fresh),
                len(mappings),
                self.family.label,
            )
            return
        log.info("Created %s %s mappings", len(mappings), self.family.label)

    def create_all_for_owner(
        self,
        owner_key: str,
        id_pairs: Iterable[IdPair],
        *,
        batch_label: str | None = None,
        provenance: Provenance = Provenance.MIGRATED,
    ) -> list[TMapping]:
        """Build rows for ``owner_key`` from identifier pairs and persist them."""

        if not self.family.owned:
            raise MappingValidationError(f"{self.family.label} mappings are not grouped by owner")
        metadata = RowMetadata(
            owner_key=owner_key,
            batch_label=batch_label,
            provenance=provenance,
        )
        mappings = [self.family.build(pair, metadata) for pair in id_pairs]
        self.create_all(mappings)
        return mappings

    def create_with_children(
        self,
        parent: TMapping,
        child_sets: MappingOf[EntityKind, Sequence[CaseChildMapping]],
    ) -> None:
        """Persist a parent and then each of its children, one write at a time.

        Nothing is rolled back on a child conflict: the parent and any siblings
        already written stay, and the error names the child that collided.
        Callers re-drive the remaining children individually.
        """

        self._check_family(parent)
        for kind, children in child_sets.items():
            if kind not in self.family.child_kinds:
                raise MappingValidationError(
                    f"{kind} is not a child of {self.family.label} mappings"
                )
            for child in children:
                if child.kind is not kind:
                    raise MappingValidationError(
                        f"{child.describe()} listed under {kind} children"
                    )
                if child.parent_remote_id != parent.remote_key:
                    raise MappingValidationError(
                        f"{child.describe()} points at parent {child.parent_remote_id}, "
                        f"expected {parent.remote_key}"
                    )

        self._create_one(parent)
        for children in child_sets.values():
            for child in children:
                self._create_one(child)

    # Lookups ----------------------------------------------------------------

    def get_by_local_key(self, key: LocalKey) -> TMapping:
        with self._unit_of_work_factory() as uow:
            mapping = self._store(uow).find_by_local_key(key)
        if mapping is None:
            raise MappingNotFoundError(key, f"{self.family.label} with legacy key={key} not found")
        return cast("TMapping", mapping)

    def get_by_remote_key(self, key: str) -> TMapping:
        with self._unit_of_work_factory() as uow:
            mapping = self._store(uow).find_by_remote_key(key)
        if mapping is None:
            raise MappingNotFoundError(key, f"{self.family.label} with modern key={key} not found")
        return cast("TMapping", mapping)

    def find_by_owner(self, owner_key: str) -> list[TMapping]:
        with self._unit_of_work_factory() as uow:
            store = uow.repositories.owned(self.family.kind)
            return cast("list[TMapping]", store.find_by_owner_key(owner_key))

    def find_children(self, parent_remote_id: str) -> dict[EntityKind, list[Mapping]]:
        with self._unit_of_work_factory() as uow:
            return {
                kind: uow.repositories.children(kind).find_by_parent(parent_remote_id)
                for kind in self.family.child_kinds
            }

    # Deletes ----------------------------------------------------------------

    def delete_by_remote_key(self, key: str) -> int:
        with self._unit_of_work_factory() as uow:
            self._delete_children(uow.repositories, [key])
            deleted = self._store(uow).delete_by_remote_key(key)
            uow.commit()
        log.info("Deleted %s %s mapping(s) with modern key=%s", deleted, self.family.label, key)
        return deleted

    def delete_by_local_key(self, key: LocalKey) -> int:
        with self._unit_of_work_factory() as uow:
            store = self._store(uow)
            if self.family.child_kinds:
                existing = store.find_by_local_key(key)
                if existing is not None:
                    self._delete_children(uow.repositories, [existing.remote_key])
            deleted = store.delete_by_local_key(key)
            uow.commit()
        log.info("Deleted %s %s mapping(s) with legacy key=%s", deleted, self.family.label, key)
        return deleted

    def delete_by_owner(self, owner_key: str) -> int:
        with self._unit_of_work_factory() as uow:
            store = uow.repositories.owned(self.family.kind)
            if self.family.child_kinds:
                parents = store.find_by_owner_key(owner_key)
                self._delete_children(uow.repositories, [p.remote_key for p in parents])
            deleted = store.delete_by_owner_key(owner_key)
            uow.commit()
        log.info("Deleted %s %s mapping(s) for owner %s", deleted, self.family.label, owner_key)
        return deleted

    def delete_all(self, *, only_migrated: bool = False) -> int:
        """Administrative reset of the whole family (children included)."""

        provenance = Provenance.MIGRATED if only_migrated else None
        with self._unit_of_work_factory() as uow:
            store = self._store(uow)
            if self.family.child_kinds:
                if provenance is None:
                    for kind in self.family.child_kinds:
                        uow.repositories.children(kind).delete_all()
                else:
                    self._delete_children(
                        uow.repositories, store.find_remote_keys(provenance=provenance)
                    )
            deleted = store.delete_all(provenance=provenance)
            uow.commit()
        log.warning(
            "Deleted %s %s mappings (only_migrated=%s)", deleted, self.family.label, only_migrated
        )
        return deleted

    # Internals --------------------------------------------------------------

    def _store(self, uow: MappingUnitOfWork):  # noqa: ANN202
        return uow.repositories.for_kind(self.family.kind)

    def _check_family(self, mapping: Mapping) -> None:
        if mapping.kind is not self.family.kind:
            raise MappingValidationError(
                f"{mapping.describe()} is not a {self.family.label} mapping"
            )

    def _create_one(self, mapping: Mapping) -> None:
        try:
            with self._unit_of_work_factory() as uow:
                if isinstance(mapping, CaseChildMapping):
                    self._require_parent(uow.repositories, mapping)
                uow.repositories.for_kind(mapping.kind).insert(mapping)
                uow.commit()
        except UniqueConstraintViolation as violation:
            self._resolve_violation(mapping, violation)
            return
        log.info("Created %s", mapping.describe())

    def _resolve_violation(self, mapping: Mapping, violation: UniqueConstraintViolation) -> None:
        existing = self._resolver.find_colliding(mapping)
        if existing is None:
            log.error(
                "Unique constraint violation for %s but no colliding mapping found",
                mapping.describe(),
            )
            raise violation
        if existing.same_identity(mapping):
            log.debug("Not creating. All OK: %s", already_exists_message(mapping, existing))
            return
        error = DuplicateMappingError(incoming=mapping, existing=existing)
        log.error("Duplicate mapping: %s", error)
        raise error from violation

    def _recover_bulk(
        self,
        mappings: Sequence[TMapping],
        violation: UniqueConstraintViolation,
    ) -> list[TMapping]:
        fresh: list[TMapping] = []
        replays = 0
        for candidate in mappings:
            existing = self._resolver.find_colliding(candidate)
            if existing is None:
                fresh.append(candidate)
            elif existing.same_identity(candidate):
                replays += 1
            else:
                error = DuplicateMappingError(incoming=candidate, existing=existing)
                log.error("Duplicate mapping in batch: %s", error)
                raise error from violation
        if not replays:
            log.error(
                "Unique constraint violation in a batch of %s %s mappings "
                "but no colliding mapping found",
                len(mappings),
                self.family.label,
            )
            raise violation
        return fresh

    def _insert_remainder(self, fresh: list[TMapping]) -> None:
        """Write the rows that did not collide, after a recovered batch violation.

        The remainder can still violate a constraint: two of its rows may share
        a key, or another writer may have stored one of them since the rescan.
        """

        try:
            with self._unit_of_work_factory() as uow:
                self._store(uow).insert_all(fresh)
                uow.commit()
        except UniqueConstraintViolation as violation:
            # raises for a genuine duplicate or when nothing collides
            self._recover_bulk(fresh, violation)
            log.error(
                "Unique constraint violation re-inserting %s %s mappings "
                "after concurrent replays",
                len(fresh),
                self.family.label,
            )
            raise

    @staticmethod
    def _require_parent(repositories: MappingRepositories, child: CaseChildMapping) -> None:
        parents = repositories.for_kind(child.PARENT_KIND)
        if parents.find_by_remote_key(child.parent_remote_id) is None:
            raise MappingValidationError(
                f"Parent {child.PARENT_KIND} {child.parent_remote_id} of {child.describe()} "
                "does not exist"
            )

    def _delete_children(self, repositories: MappingRepositories, parent_keys: list[str]) -> None:
        for kind in self.family.child_kinds:
            store = repositories.children(kind)
            for parent_key in parent_keys:
                store.delete_by_parent(parent_key)


def engine_for(
    kind: EntityKind | str,
    unit_of_work_factory: Callable[[], MappingUnitOfWork],
) -> MappingEngine[Mapping]:
    return MappingEngine(family_for(kind), unit_of_work_factory)
