"""SQLAlchemy mapping metadata for the identity mapping tables."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from functools import cache
from typing import TYPE_CHECKING, Any, Final

from sqlalchemy import (
    Column,
    DateTime,
    Dialect,
    Enum,
    ForeignKey,
    Integer,
    String,
    Table,
    TypeDecorator,
    UniqueConstraint,
    orm,
)
from sqlalchemy.orm import configure_mappers

from idmap.domain.model import (
    AlertMapping,
    AssessmentMapping,
    CaseFactorMapping,
    CaseInterviewMapping,
    CasePlanMapping,
    CaseReportMapping,
    EntityKind,
    Mapping,
    NonAssociationMapping,
    PersonMapping,
    Provenance,
)

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

log = logging.getLogger(__name__)

BATCH_LABEL_LENGTH: Final[int] = 20


class UTCDateTime(TypeDecorator[datetime]):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        return value if value.tzinfo else value.replace(tzinfo=UTC)


mapper_registry = orm.registry()
mapper_registry.metadata.naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_label)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_label)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


def _metadata_columns() -> list[Column[Any]]:
    return [
        Column("batch_label", String(BATCH_LABEL_LENGTH), nullable=True),
        Column("provenance", Enum(Provenance, native_enum=False), nullable=False),
        Column("created_at", UTCDateTime(), nullable=False),
    ]


# Plain and owned families ----------------------------------------------------

person_mapping_table = Table(
    "person_mapping",
    mapper_registry.metadata,
    Column("remote_id", String, primary_key=True),
    Column("local_id", Integer, nullable=False, unique=True),
    *_metadata_columns(),
)

alert_mapping_table = Table(
    "alert_mapping",
    mapper_registry.metadata,
    Column("remote_id", String, primary_key=True),
    Column("local_id", Integer, nullable=False, unique=True),
    Column("owner_key", String, key="owner", nullable=False, index=True),
    *_metadata_columns(),
)

assessment_mapping_table = Table(
    "assessment_mapping",
    mapper_registry.metadata,
    Column("remote_id", String, primary_key=True),
    Column("booking_id", Integer, nullable=False),
    Column("sequence", Integer, nullable=False),
    Column("owner_key", String, key="owner", nullable=False, index=True),
    *_metadata_columns(),
    UniqueConstraint("booking_id", "sequence"),
)

case_report_mapping_table = Table(
    "case_report_mapping",
    mapper_registry.metadata,
    Column("remote_id", String, primary_key=True),
    Column("local_id", Integer, nullable=False, unique=True),
    Column("owner_key", String, key="owner", nullable=False, index=True),
    *_metadata_columns(),
)


# Case report children --------------------------------------------------------


def _case_child_table(name: str) -> Table:
    return Table(
        name,
        mapper_registry.metadata,
        Column("remote_id", String, primary_key=True),
        Column("local_id", Integer, nullable=False, unique=True),
        Column(
            "parent_remote_id",
            String,
            ForeignKey("case_report_mapping.remote_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        *_metadata_columns(),
    )


case_factor_mapping_table = _case_child_table("case_factor_mapping")
case_interview_mapping_table = _case_child_table("case_interview_mapping")
case_plan_mapping_table = _case_child_table("case_plan_mapping")


# Relations -------------------------------------------------------------------

non_association_mapping_table = Table(
    "non_association_mapping",
    mapper_registry.metadata,
    Column("remote_id", String, primary_key=True),
    Column("first_owner_key", String, nullable=False, index=True),
    Column("second_owner_key", String, nullable=False, index=True),
    Column("variant_sequence", Integer, nullable=False),
    *_metadata_columns(),
    UniqueConstraint("first_owner_key", "second_owner_key", "variant_sequence"),
)


TABLE_BY_KIND: Final[dict[EntityKind, Table]] = {
    EntityKind.PERSON: person_mapping_table,
    EntityKind.ALERT: alert_mapping_table,
    EntityKind.ASSESSMENT: assessment_mapping_table,
    EntityKind.CASE_REPORT: case_report_mapping_table,
    EntityKind.CASE_FACTOR: case_factor_mapping_table,
    EntityKind.CASE_INTERVIEW: case_interview_mapping_table,
    EntityKind.CASE_PLAN: case_plan_mapping_table,
    EntityKind.NON_ASSOCIATION: non_association_mapping_table,
}

CLASS_BY_KIND: Final[dict[EntityKind, type[Mapping]]] = {
    EntityKind.PERSON: PersonMapping,
    EntityKind.ALERT: AlertMapping,
    EntityKind.ASSESSMENT: AssessmentMapping,
    EntityKind.CASE_REPORT: CaseReportMapping,
    EntityKind.CASE_FACTOR: CaseFactorMapping,
    EntityKind.CASE_INTERVIEW: CaseInterviewMapping,
    EntityKind.CASE_PLAN: CasePlanMapping,
    EntityKind.NON_ASSOCIATION: NonAssociationMapping,
}


@cache
def start_mappers() -> orm.registry:
    """Configure SQLAlchemy mappers for the mapping rows."""

    log.info("Starting SQLAlchemy mappers")

    for kind, mapping_cls in CLASS_BY_KIND.items():
        mapper_registry.map_imperatively(mapping_cls, TABLE_BY_KIND[kind])

    configure_mappers()
    return mapper_registry


def create_all_tables(engine: Engine) -> None:
    """Create database tables for the mapped metadata."""

    log.info("Creating all tables")
    mapper_registry.metadata.create_all(engine)
