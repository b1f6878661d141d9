"""Mapping stores backed by SQLAlchemy sessions."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, cast

from sqlalchemy import and_, delete, distinct, func, inspect, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import make_transient

from idmap.adapters.sqlalchemy.mappings import CLASS_BY_KIND, TABLE_BY_KIND
from idmap.domain.errors import MappingValidationError, UniqueConstraintViolation
from idmap.domain.model import (
    AssessmentMapping,
    EntityKind,
    Mapping,
    NonAssociationMapping,
    OwnerMappingSummary,
    key_values,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sqlalchemy import ColumnElement, CursorResult, Executable
    from sqlalchemy.orm import Session

    from idmap.domain.model import LocalKey, Provenance


LOCAL_KEY_COLUMNS: dict[EntityKind, tuple[str, ...]] = {
    EntityKind.ASSESSMENT: ("booking_id", "sequence"),
    EntityKind.NON_ASSOCIATION: ("first_owner_key", "second_owner_key", "variant_sequence"),
}


class SqlAlchemyMappingStore[TMapping: Mapping]:
    """Point lookups, deletes and batch scans over one mapping table.

    Inserts go through the ORM so the caller's dataclass becomes the stored
    row. Deletes and owner updates are Core statements returning row counts.
    """

    def __init__(self, session: Session, kind: EntityKind) -> None:
        self.session = session
        self.kind = kind
        self._mapping_cls = cast("type[TMapping]", CLASS_BY_KIND[kind])
        self._table = TABLE_BY_KIND[kind]
        self._local_columns = LOCAL_KEY_COLUMNS.get(kind, ("local_id",))

    # Writes ---------------------------------------------------------------

    def insert(self, mapping: TMapping) -> None:
        self.insert_all([mapping])

    def insert_all(self, mappings: Sequence[TMapping]) -> None:
        now = datetime.now(UTC)
        for mapping in mappings:
            # rows loaded or written earlier keep their identity; add() would UPDATE them
            if inspect(mapping).has_identity:
                make_transient(mapping)
        stamped = [mapping for mapping in mappings if mapping.created_at is None]
        for mapping in stamped:
            mapping.created_at = now
        self.session.add_all(mappings)
        try:
            self.session.flush()
        except IntegrityError as exc:
            for mapping in stamped:
                mapping.created_at = None
            raise UniqueConstraintViolation(str(exc.orig)) from exc

    def delete_by_local_key(self, key: LocalKey) -> int:
        return self._execute(delete(self._table).where(self._local_key_clause(key)))

    def delete_by_remote_key(self, key: str) -> int:
        return self._execute(delete(self._table).where(self._table.c.remote_id == key))

    def delete_all(self, *, provenance: Provenance | None = None) -> int:
        stmt = delete(self._table)
        if provenance is not None:
            stmt = stmt.where(self._table.c.provenance == provenance)
        return self._execute(stmt)

    # Reads ----------------------------------------------------------------

    def find_by_local_key(self, key: LocalKey) -> TMapping | None:
        stmt = select(self._mapping_cls).where(self._local_key_clause(key))
        return self.session.execute(stmt).scalar_one_or_none()

    def find_by_remote_key(self, key: str) -> TMapping | None:
        return self.session.get(self._mapping_cls, key)

    def find_remote_keys(self, *, provenance: Provenance | None = None) -> list[str]:
        stmt = select(self._table.c.remote_id).order_by(self._table.c.remote_id)
        if provenance is not None:
            stmt = stmt.where(self._table.c.provenance == provenance)
        return list(self.session.execute(stmt).scalars())

    def find_page_by_batch_label(
        self,
        label: str,
        provenance: Provenance,
        *,
        offset: int,
        limit: int,
    ) -> list[TMapping]:
        stmt = (
            select(self._mapping_cls)
            .where(self._table.c.batch_label == label)
            .where(self._table.c.provenance == provenance)
            .order_by(self._table.c.batch_label.desc(), self._table.c.remote_id)
            .offset(offset)
            .limit(limit)
        )
        return list(self.session.execute(stmt).scalars())

    def count_by_batch_label_and_provenance(self, label: str, provenance: Provenance) -> int:
        stmt = (
            select(func.count())
            .select_from(self._table)
            .where(self._table.c.batch_label == label)
            .where(self._table.c.provenance == provenance)
        )
        return self.session.execute(stmt).scalar_one()

    def count_all(self) -> int:
        stmt = select(func.count()).select_from(self._table)
        return self.session.execute(stmt).scalar_one()

    def find_latest(self, provenance: Provenance) -> TMapping | None:
        stmt = (
            select(self._mapping_cls)
            .where(self._table.c.provenance == provenance)
            .order_by(self._table.c.created_at.desc(), self._table.c.remote_id.desc())
            .limit(1)
        )
        return self.session.execute(stmt).scalars().first()

    # Helpers --------------------------------------------------------------

    def _local_key_clause(self, key: LocalKey) -> ColumnElement[bool]:
        values = key_values(key)
        if len(values) != len(self._local_columns):
            raise MappingValidationError(
                f"{self.kind} legacy key needs {len(self._local_columns)} parts"
            )
        return and_(
            *(
                self._table.c[column] == value
                for column, value in zip(self._local_columns, values, strict=True)
            )
        )

    def _execute(self, stmt: Executable) -> int:
        try:
            result = cast("CursorResult[Any]", self.session.execute(stmt))
        except IntegrityError as exc:
            raise UniqueConstraintViolation(str(exc.orig)) from exc
        return result.rowcount


class SqlAlchemyOwnedMappingStore[TMapping: Mapping](SqlAlchemyMappingStore[TMapping]):
    def find_by_owner_key(self, owner_key: str) -> list[TMapping]:
        stmt = (
            select(self._mapping_cls)
            .where(self._table.c.owner == owner_key)
            .order_by(self._table.c.remote_id)
        )
        return list(self.session.execute(stmt).scalars())

    def delete_by_owner_key(self, owner_key: str) -> int:
        return self._execute(delete(self._table).where(self._table.c.owner == owner_key))

    def update_owner_key(self, old_owner_key: str, new_owner_key: str) -> int:
        stmt = (
            update(self._table)
            .where(self._table.c.owner == old_owner_key)
            .values({self._table.c.owner: new_owner_key})
        )
        return self._execute(stmt)

    def delete_then_insert(
        self,
        owner_keys: Sequence[str],
        mappings: Sequence[TMapping],
    ) -> None:
        # ORM delete so rows already loaded in this session leave the identity map
        self._execute(
            delete(self._mapping_cls)
            .where(self._table.c.owner.in_(list(owner_keys)))
            .execution_options(synchronize_session="fetch")
        )
        self.insert_all(mappings)

    def find_owner_summaries_by_batch_label(
        self,
        label: str,
        provenance: Provenance,
        *,
        offset: int,
        limit: int,
    ) -> list[OwnerMappingSummary]:
        owner = self._table.c.owner
        stmt = (
            select(owner, func.count(), func.max(self._table.c.created_at))
            .where(self._table.c.batch_label == label)
            .where(self._table.c.provenance == provenance)
            .group_by(owner)
            .order_by(owner)
            .offset(offset)
            .limit(limit)
        )
        return [
            OwnerMappingSummary(owner_key=owner_key, mapping_count=count, latest_created_at=latest)
            for owner_key, count, latest in self.session.execute(stmt)
        ]

    def count_owners_by_batch_label(self, label: str, provenance: Provenance) -> int:
        stmt = (
            select(func.count(distinct(self._table.c.owner)))
            .where(self._table.c.batch_label == label)
            .where(self._table.c.provenance == provenance)
        )
        return self.session.execute(stmt).scalar_one()


class SqlAlchemyAssessmentMappingStore(SqlAlchemyOwnedMappingStore[AssessmentMapping]):
    def __init__(self, session: Session) -> None:
        super().__init__(session, EntityKind.ASSESSMENT)

    def update_owner_key_by_booking(
        self,
        booking_id: int,
        new_owner_key: str,
    ) -> list[AssessmentMapping]:
        self._execute(
            update(self._table)
            .where(self._table.c.booking_id == booking_id)
            .values({self._table.c.owner: new_owner_key})
        )
        stmt = (
            select(AssessmentMapping)
            .where(self._table.c.booking_id == booking_id)
            .order_by(self._table.c.sequence)
            .execution_options(populate_existing=True)
        )
        return list(self.session.execute(stmt).scalars())


class SqlAlchemyChildMappingStore[TMapping: Mapping](SqlAlchemyMappingStore[TMapping]):
    def find_by_parent(self, parent_remote_id: str) -> list[TMapping]:
        stmt = (
            select(self._mapping_cls)
            .where(self._table.c.parent_remote_id == parent_remote_id)
            .order_by(self._table.c.remote_id)
        )
        return list(self.session.execute(stmt).scalars())

    def delete_by_parent(self, parent_remote_id: str) -> int:
        return self._execute(
            delete(self._table).where(self._table.c.parent_remote_id == parent_remote_id)
        )


class SqlAlchemyRelationMappingStore(SqlAlchemyMappingStore[NonAssociationMapping]):
    def __init__(self, session: Session) -> None:
        super().__init__(session, EntityKind.NON_ASSOCIATION)

    def find_by_either_owner(self, owner_key: str) -> list[NonAssociationMapping]:
        stmt = (
            select(NonAssociationMapping)
            .where(
                or_(
                    self._table.c.first_owner_key == owner_key,
                    self._table.c.second_owner_key == owner_key,
                )
            )
            .order_by(self._table.c.remote_id)
        )
        return list(self.session.execute(stmt).scalars())

    def update_first_owner(self, remote_id: str, new_owner_key: str) -> int:
        stmt = (
            update(self._table)
            .where(self._table.c.remote_id == remote_id)
            .values({self._table.c.first_owner_key: new_owner_key})
        )
        return self._execute(stmt)

    def update_second_owner(self, remote_id: str, new_owner_key: str) -> int:
        stmt = (
            update(self._table)
            .where(self._table.c.remote_id == remote_id)
            .values({self._table.c.second_owner_key: new_owner_key})
        )
        return self._execute(stmt)

    def update_first_owner_by_pair(
        self,
        first_owner_key: str,
        second_owner_key: str,
        new_owner_key: str,
    ) -> int:
        stmt = (
            update(self._table)
            .where(self._table.c.first_owner_key == first_owner_key)
            .where(self._table.c.second_owner_key == second_owner_key)
            .values({self._table.c.first_owner_key: new_owner_key})
        )
        return self._execute(stmt)

    def update_second_owner_by_pair(
        self,
        first_owner_key: str,
        second_owner_key: str,
        new_owner_key: str,
    ) -> int:
        stmt = (
            update(self._table)
            .where(self._table.c.first_owner_key == first_owner_key)
            .where(self._table.c.second_owner_key == second_owner_key)
            .values({self._table.c.second_owner_key: new_owner_key})
        )
        return self._execute(stmt)
