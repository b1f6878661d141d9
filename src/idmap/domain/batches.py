"""Paged reads over the rows a migration batch created."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, cast

from idmap.domain.errors import MappingNotFoundError, MappingValidationError
from idmap.domain.model import Page, PageRequest, Provenance

if TYPE_CHECKING:
    from collections.abc import Callable

    from idmap.domain.families import MappingFamily
    from idmap.domain.model import Mapping, OwnerMappingSummary
    from idmap.domain.ports import MappingUnitOfWork

log = logging.getLogger(__name__)


class MigrationBatchReader[TMapping: Mapping]:
    """Pages of ``MIGRATED`` rows by batch label.

    ``average_rows_per_owner`` switches ``count_grouped_by_owner`` from an
    exact distinct-owner count to ``count_all() // average_rows_per_owner``.
    The approximation counts every row of the family regardless of label and
    is only meant for progress reporting on very large tables.
    """

    def __init__(
        self,
        family: MappingFamily[TMapping],
        unit_of_work_factory: Callable[[], MappingUnitOfWork],
        *,
        average_rows_per_owner: int | None = None,
    ) -> None:
        if average_rows_per_owner is not None and average_rows_per_owner < 1:
            raise ValueError("average_rows_per_owner must be positive")
        self.family = family
        self._unit_of_work_factory = unit_of_work_factory
        self._average_rows_per_owner = average_rows_per_owner

    def page_by_batch(self, label: str, request: PageRequest | None = None) -> Page[TMapping]:
        request = request or PageRequest()
        with self._unit_of_work_factory() as uow:
            store = uow.repositories.for_kind(self.family.kind)
            items = store.find_page_by_batch_label(
                label, Provenance.MIGRATED, offset=request.offset, limit=request.limit
            )
        total = self.count_by_batch(label)
        return Page(items=cast("list[TMapping]", items), request=request, total=total)

    def count_by_batch(self, label: str) -> int:
        with self._unit_of_work_factory() as uow:
            store = uow.repositories.for_kind(self.family.kind)
            return store.count_by_batch_label_and_provenance(label, Provenance.MIGRATED)

    def page_grouped_by_owner(
        self, label: str, request: PageRequest | None = None
    ) -> Page[OwnerMappingSummary]:
        self._require_owned()
        request = request or PageRequest()
        with self._unit_of_work_factory() as uow:
            store = uow.repositories.owned(self.family.kind)
            items = store.find_owner_summaries_by_batch_label(
                label, Provenance.MIGRATED, offset=request.offset, limit=request.limit
            )
        return Page(items=items, request=request, total=self.count_grouped_by_owner(label))

    def count_grouped_by_owner(self, label: str) -> int:
        self._require_owned()
        with self._unit_of_work_factory() as uow:
            store = uow.repositories.owned(self.family.kind)
            if self._average_rows_per_owner is None:
                return store.count_owners_by_batch_label(label, Provenance.MIGRATED)
            approximate = store.count_all() // self._average_rows_per_owner
        log.debug(
            "Approximated %s owners for batch %s from %s rows per owner",
            approximate,
            label,
            self._average_rows_per_owner,
        )
        return approximate

    def latest_migrated(self) -> TMapping:
        with self._unit_of_work_factory() as uow:
            latest = uow.repositories.for_kind(self.family.kind).find_latest(Provenance.MIGRATED)
        if latest is None:
            raise MappingNotFoundError(
                Provenance.MIGRATED, f"No migrated {self.family.label} mapping found"
            )
        return cast("TMapping", latest)

    def _require_owned(self) -> None:
        if not self.family.owned:
            raise MappingValidationError(f"{self.family.label} mappings are not grouped by owner")
