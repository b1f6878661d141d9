"""Bulk replacement of an owner's mappings and owner merges.

Owned families support a full replace (``delete_then_insert``), a replace after
two owners were merged, a plain owner rewrite and, for composite-keyed
assessments, moving one booking to another owner.

Relations between owners cannot be rewritten blindly: pointing a relation at the
new owner may make it relate the owner to itself, or may duplicate a relation
that already exists for the new owner. ``RelationReassigner`` checks every row
before writing it.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from idmap.domain.conflicts import ConflictResolver
from idmap.domain.errors import (
    DuplicateMappingError,
    MappingValidationError,
    UniqueConstraintViolation,
)
from idmap.domain.model import EntityKind, NonAssociationMapping, RelationKey

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from idmap.domain.families import MappingFamily
    from idmap.domain.model import AssessmentMapping, Mapping
    from idmap.domain.ports import MappingRepositories, MappingUnitOfWork, RelationMappingStore

log = logging.getLogger(__name__)


class OwnerMappingReplacer[TMapping: Mapping]:
    """Replace and reassign operations for families grouped by owner."""

    def __init__(
        self,
        family: MappingFamily[TMapping],
        unit_of_work_factory: Callable[[], MappingUnitOfWork],
        *,
        resolver: ConflictResolver | None = None,
    ) -> None:
        if not family.owned:
            raise ValueError(f"{family.label} mappings are not grouped by owner")
        self.family = family
        self._unit_of_work_factory = unit_of_work_factory
        self._resolver = resolver or ConflictResolver(unit_of_work_factory)

    def replace_all(self, owner_key: str, mappings: Sequence[TMapping]) -> None:
        """Make ``mappings`` the complete set stored for ``owner_key``."""

        self._replace([owner_key], owner_key, mappings)
        log.info(
            "Replaced %s mappings for %s with %s rows", self.family.label, owner_key, len(mappings)
        )

    def replace_after_merge(
        self,
        retained_owner_key: str,
        removed_owner_key: str,
        mappings: Sequence[TMapping],
    ) -> None:
        """Replace the retained owner's set and drop everything the removed owner had."""

        if retained_owner_key == removed_owner_key:
            raise MappingValidationError(
                f"Cannot merge {retained_owner_key} into itself"
            )
        self._replace([removed_owner_key, retained_owner_key], retained_owner_key, mappings)
        log.info(
            "Replaced %s mappings for %s after merge from %s with %s rows",
            self.family.label,
            retained_owner_key,
            removed_owner_key,
            len(mappings),
        )

    def reassign_owner(self, old_owner_key: str, new_owner_key: str) -> int:
        with self._unit_of_work_factory() as uow:
            moved = uow.repositories.owned(self.family.kind).update_owner_key(
                old_owner_key, new_owner_key
            )
            uow.commit()
        log.info(
            "Moved %s %s mappings from %s to %s",
            moved,
            self.family.label,
            old_owner_key,
            new_owner_key,
        )
        return moved

    def move_local_group(self, group_id: int, new_owner_key: str) -> list[AssessmentMapping]:
        """Rewrite the owner of every row sharing the first legacy key component."""

        if self.family.kind is not EntityKind.ASSESSMENT:
            raise MappingValidationError(
                f"{self.family.label} mappings have no composite legacy key"
            )
        with self._unit_of_work_factory() as uow:
            moved = uow.repositories.assessments.update_owner_key_by_booking(
                group_id, new_owner_key
            )
            uow.commit()
        log.info("Moved %s mappings of booking %s to %s", len(moved), group_id, new_owner_key)
        return moved

    def _replace(
        self,
        owner_keys: list[str],
        target_owner_key: str,
        mappings: Sequence[TMapping],
    ) -> None:
        for mapping in mappings:
            if mapping.kind is not self.family.kind:
                raise MappingValidationError(
                    f"{mapping.describe()} is not a {self.family.label} mapping"
                )
            if mapping.owner_key != target_owner_key:
                raise MappingValidationError(
                    f"{mapping.describe()} does not belong to {target_owner_key}"
                )
        try:
            with self._unit_of_work_factory() as uow:
                if self.family.child_kinds:
                    self._delete_children_of_owners(uow.repositories, owner_keys)
                uow.repositories.owned(self.family.kind).delete_then_insert(owner_keys, mappings)
                uow.commit()
        except UniqueConstraintViolation as violation:
            collision = self._resolver.find_first_colliding(
                mappings, ignore=lambda existing: existing.owner_key in owner_keys
            )
            if collision is None:
                log.error(
                    "Unique constraint violation replacing %s mappings for %s "
                    "but no colliding mapping found",
                    self.family.label,
                    ", ".join(owner_keys),
                )
                raise
            candidate, existing = collision
            error = DuplicateMappingError(incoming=candidate, existing=existing)
            log.error("Duplicate mapping in replacement: %s", error)
            raise error from violation

    def _delete_children_of_owners(
        self, repositories: MappingRepositories, owner_keys: list[str]
    ) -> None:
        parents = repositories.owned(self.family.kind)
        for owner_key in owner_keys:
            for parent in parents.find_by_owner_key(owner_key):
                for kind in self.family.child_kinds:
                    repositories.children(kind).delete_by_parent(parent.remote_key)


class RelationReassigner:
    """Owner merges for relations between two owners."""

    def __init__(self, unit_of_work_factory: Callable[[], MappingUnitOfWork]) -> None:
        self._unit_of_work_factory = unit_of_work_factory

    def reassign_owner(self, old_owner_key: str, new_owner_key: str) -> int:
        """Point every relation of ``old_owner_key`` at ``new_owner_key``.

        Rows are rewritten one at a time, each in its own transaction, in
        modern-key order. The first row that would clash aborts the call with
        ``MappingValidationError``; rows rewritten before it stay rewritten.
        """

        with self._unit_of_work_factory() as uow:
            relations = self._store(uow).find_by_either_owner(old_owner_key)

        moved = 0
        for relation in relations:
            with self._unit_of_work_factory() as uow:
                store = self._store(uow)
                self._check_clash(store, relation, old_owner_key, new_owner_key)
                if relation.first_owner_key == old_owner_key:
                    store.update_first_owner(relation.remote_key, new_owner_key)
                else:
                    store.update_second_owner(relation.remote_key, new_owner_key)
                uow.commit()
            moved += 1
            log.info(
                "Moved %s from %s to %s", relation.describe(), old_owner_key, new_owner_key
            )
        return moved

    def reassign_owner_against_list(
        self,
        old_owner_key: str,
        new_owner_key: str,
        partner_keys: Sequence[str],
    ) -> int:
        """Rewrite only the relations between ``old_owner_key`` and the listed partners."""

        for partner_key in partner_keys:
            if partner_key == old_owner_key:
                raise MappingValidationError(
                    f"Old owner {old_owner_key} is in the list, when moving relations "
                    f"from {old_owner_key} to {new_owner_key}"
                )
            if partner_key == new_owner_key:
                raise MappingValidationError(
                    f"New owner {new_owner_key} is in the list, when moving relations "
                    f"from {old_owner_key} to {new_owner_key}"
                )

        moved = 0
        with self._unit_of_work_factory() as uow:
            store = self._store(uow)
            for partner_key in partner_keys:
                moved += store.update_first_owner_by_pair(old_owner_key, partner_key, new_owner_key)
                moved += store.update_second_owner_by_pair(
                    partner_key, old_owner_key, new_owner_key
                )
            uow.commit()
        log.info(
            "Moved %s relations from %s to %s against %s partners",
            moved,
            old_owner_key,
            new_owner_key,
            len(partner_keys),
        )
        return moved

    def find_common_partners(self, owner_key: str, other_owner_key: str) -> list[str]:
        """Third parties related to both owners at the same variant sequence."""

        with self._unit_of_work_factory() as uow:
            store = self._store(uow)
            ours = self._partner_slots(store.find_by_either_owner(owner_key), owner_key)
            theirs = self._partner_slots(
                store.find_by_either_owner(other_owner_key), other_owner_key
            )
        shared = {
            partner
            for partner, _sequence in ours & theirs
            if partner not in (owner_key, other_owner_key)
        }
        return sorted(shared)

    @staticmethod
    def _store(uow: MappingUnitOfWork) -> RelationMappingStore:
        return uow.repositories.non_associations

    @staticmethod
    def _partner_slots(
        relations: list[NonAssociationMapping], owner_key: str
    ) -> set[tuple[str, int]]:
        slots: set[tuple[str, int]] = set()
        for relation in relations:
            partner = relation.local_key.partner_of(owner_key)
            if partner is not None:
                slots.add((partner, relation.variant_sequence))
        return slots

    @staticmethod
    def _check_clash(
        store: RelationMappingStore,
        relation: NonAssociationMapping,
        old_owner_key: str,
        new_owner_key: str,
    ) -> None:
        first, second, sequence = relation.local_key
        rewritten = RelationKey(
            new_owner_key if first == old_owner_key else first,
            new_owner_key if second == old_owner_key else second,
            sequence,
        )
        if rewritten.first_owner_key == rewritten.second_owner_key:
            raise MappingValidationError(
                f"Found relation clash in {relation.describe()} when moving owner "
                f"from {old_owner_key} to {new_owner_key}"
            )
        for other in store.find_by_either_owner(new_owner_key):
            if other.remote_key != relation.remote_key and other.local_key.same_slot(rewritten):
                raise MappingValidationError(
                    f"Found relation clash in {relation.describe()} when moving owner "
                    f"from {old_owner_key} to {new_owner_key}: "
                    f"{other.describe()} already exists"
                )


def reassigner_for(
    family: MappingFamily[Any],
    unit_of_work_factory: Callable[[], MappingUnitOfWork],
) -> OwnerMappingReplacer[Any] | RelationReassigner:
    """Pick the reassignment strategy for ``family``."""

    if family.is_relation:
        return RelationReassigner(unit_of_work_factory)
    return OwnerMappingReplacer(family, unit_of_work_factory)
