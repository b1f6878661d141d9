"""Locate the stored mapping behind a uniqueness violation."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from idmap.domain.model import Mapping, MappingRecord
    from idmap.domain.ports import MappingUnitOfWork

log = logging.getLogger(__name__)


class ConflictResolver:
    """Re-reads the store to find which existing row a candidate collides with.

    A violation can come from either uniqueness constraint (legacy key or
    modern key), so both are tried, legacy side first.
    """

    def __init__(self, unit_of_work_factory: Callable[[], MappingUnitOfWork]) -> None:
        self._unit_of_work_factory = unit_of_work_factory

    def find_colliding(self, candidate: MappingRecord) -> Mapping | None:
        with self._unit_of_work_factory() as uow:
            store = uow.repositories.for_kind(candidate.kind)
            existing = store.find_by_local_key(candidate.local_key)
            if existing is None:
                existing = store.find_by_remote_key(candidate.remote_key)
        if existing is None:
            log.debug("No stored mapping collides with %s", candidate.describe())
        return existing

    def find_first_colliding[TRecord: MappingRecord](
        self,
        candidates: Iterable[TRecord],
        *,
        ignore: Callable[[Mapping], bool] | None = None,
    ) -> tuple[TRecord, Mapping] | None:
        """Return ``(candidate, existing)`` for the first candidate that collides.

        Stored rows matching ``ignore`` are not counted as collisions; replace
        operations use it to skip rows they are about to delete.
        """

        for candidate in candidates:
            existing = self.find_colliding(candidate)
            if existing is not None and not (ignore and ignore(existing)):
                return candidate, existing
        return None
