"""Application orchestration entry points."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, Any

from idmap.adapters.payloads import parse_owner_mappings_line
from idmap.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemyMappingUnitOfWork,
    is_started,
    startup,
)
from idmap.config import (
    AdminConfig,
    ConfigurationError,
    MigrationConfig,
    get_admin_config,
    get_migration_config,
)
from idmap.domain.batches import MigrationBatchReader
from idmap.domain.engine import MappingEngine
from idmap.domain.errors import MappingNotFoundError, MappingValidationError
from idmap.domain.families import FAMILIES, family_for
from idmap.domain.model import EntityKind, Page, PageRequest
from idmap.domain.ports import MappingUnitOfWork
from idmap.domain.reassignment import OwnerMappingReplacer, RelationReassigner

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from datetime import datetime

    from idmap.domain.model import Mapping

UnitOfWorkFactory = Callable[[], MappingUnitOfWork]


log = getLogger(__name__)


@dataclass(slots=True)
class ImportBatchResult:
    lines: int = 0
    mappings: int = 0
    by_kind: dict[EntityKind, int] = field(default_factory=dict[EntityKind, int])


@dataclass(frozen=True, slots=True)
class BatchSummary:
    kind: EntityKind
    label: str
    mapping_count: int
    owner_count: int | None
    latest_created_at: datetime | None


def import_batch(
    lines: Iterable[str],
    *,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> ImportBatchResult:
    """Create mappings from JSON lines, one ``OwnerMappingsPayload`` per line.

    Each line is written in its own transaction; a duplicate stops the import
    with everything before the offending line kept.
    """

    effective_uow = _resolve_unit_of_work(unit_of_work_factory)
    result = ImportBatchResult()
    for number, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        try:
            payload = parse_owner_mappings_line(line)
            engine = MappingEngine(family_for(payload.kind), effective_uow)
            owner_key = payload.owner_key if engine.family.owned else None
            pairs = payload.id_pairs() if owner_key is not None else []
            rows = payload.to_domain() if owner_key is None else []
        except MappingValidationError as exc:
            raise MappingValidationError(f"Line {number}: {exc.reason}") from exc
        if owner_key is not None:
            created = engine.create_all_for_owner(
                owner_key,
                pairs,
                batch_label=payload.label,
                provenance=payload.mapping_type,
            )
        else:
            created = rows
            engine.create_all(created)
        result.lines += 1
        result.mappings += len(created)
        result.by_kind[payload.kind] = result.by_kind.get(payload.kind, 0) + len(created)

    log.info(
        "Finished batch import: lines=%s, mappings=%s",
        result.lines,
        result.mappings,
    )
    return result


def lookup_mapping(
    kind: EntityKind | str,
    *,
    legacy_key: str | None = None,
    modern_id: str | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> Mapping:
    family = family_for(kind)
    engine = MappingEngine(family, _resolve_unit_of_work(unit_of_work_factory))
    if legacy_key is not None and modern_id is None:
        return engine.get_by_local_key(family.parse_local_key(legacy_key))
    if modern_id is not None and legacy_key is None:
        return engine.get_by_remote_key(modern_id)
    raise MappingValidationError("Give exactly one of a legacy key or a modern id")


def read_batch(
    kind: EntityKind | str,
    label: str,
    *,
    page: int = 0,
    size: int | None = None,
    by_owner: bool = False,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
    migration_config: MigrationConfig | None = None,
) -> Page[Any]:
    """Read one page of a migration batch, optionally grouped by owner."""

    config = migration_config or get_migration_config()
    reader = _batch_reader(kind, _resolve_unit_of_work(unit_of_work_factory), config)
    request = PageRequest.of(page, size or config.page_size)
    if by_owner:
        return reader.page_grouped_by_owner(label, request)
    return reader.page_by_batch(label, request)


def summarize_batch(
    kind: EntityKind | str,
    label: str,
    *,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
    migration_config: MigrationConfig | None = None,
) -> BatchSummary:
    config = migration_config or get_migration_config()
    reader = _batch_reader(kind, _resolve_unit_of_work(unit_of_work_factory), config)
    owner_count = reader.count_grouped_by_owner(label) if reader.family.owned else None
    try:
        latest_created_at = reader.latest_migrated().created_at
    except MappingNotFoundError:
        latest_created_at = None
    return BatchSummary(
        kind=reader.family.kind,
        label=label,
        mapping_count=reader.count_by_batch(label),
        owner_count=owner_count,
        latest_created_at=latest_created_at,
    )


def reassign_owner(
    kind: EntityKind | str,
    old_owner_key: str,
    new_owner_key: str,
    *,
    partner_keys: Sequence[str] | None = None,
    booking_id: int | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> int:
    """Move mappings from one owner to another and return how many moved."""

    family = family_for(kind)
    effective_uow = _resolve_unit_of_work(unit_of_work_factory)
    if family.is_relation:
        reassigner = RelationReassigner(effective_uow)
        if partner_keys:
            return reassigner.reassign_owner_against_list(
                old_owner_key, new_owner_key, partner_keys
            )
        return reassigner.reassign_owner(old_owner_key, new_owner_key)
    if partner_keys:
        raise MappingValidationError(f"{family.label} mappings have no partners")
    if not family.owned:
        raise MappingValidationError(f"{family.label} mappings are not grouped by owner")
    replacer = OwnerMappingReplacer(family, effective_uow)
    if booking_id is not None:
        return len(replacer.move_local_group(booking_id, new_owner_key))
    return replacer.reassign_owner(old_owner_key, new_owner_key)


def reset_mappings(
    kind: EntityKind | str | None = None,
    *,
    only_migrated: bool = False,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
    admin_config: AdminConfig | None = None,
) -> dict[EntityKind, int]:
    """Administrative delete of whole families; refused unless explicitly enabled."""

    config = admin_config or get_admin_config()
    if not config.allow_reset:
        raise ConfigurationError("Resetting mappings is disabled. Set IDMAP_ALLOW_RESET=1.")
    effective_uow = _resolve_unit_of_work(unit_of_work_factory)
    families = (
        [family_for(kind)]
        if kind is not None
        else [family for family in FAMILIES.values() if family.parent_kind is None]
    )
    return {
        family.kind: MappingEngine(family, effective_uow).delete_all(only_migrated=only_migrated)
        for family in families
    }


def _batch_reader(
    kind: EntityKind | str,
    unit_of_work_factory: UnitOfWorkFactory,
    config: MigrationConfig,
) -> MigrationBatchReader[Mapping]:
    family = family_for(kind)
    average = (
        config.average_assessments_per_owner if family.kind is EntityKind.ASSESSMENT else None
    )
    return MigrationBatchReader(family, unit_of_work_factory, average_rows_per_owner=average)


def _resolve_unit_of_work(unit_of_work_factory: UnitOfWorkFactory | None) -> UnitOfWorkFactory:
    if unit_of_work_factory is not None:
        return unit_of_work_factory
    if not is_started():
        startup()
    return SqlAlchemyMappingUnitOfWork
