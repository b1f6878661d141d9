"""SQLAlchemy-backed unit of work for the mapping stores."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from idmap.adapters.sqlalchemy.mappings import create_all_tables, start_mappers
from idmap.adapters.sqlalchemy.repositories import (
    SqlAlchemyAssessmentMappingStore,
    SqlAlchemyChildMappingStore,
    SqlAlchemyMappingStore,
    SqlAlchemyOwnedMappingStore,
    SqlAlchemyRelationMappingStore,
)
from idmap.config import get_database_config
from idmap.domain.model import EntityKind
from idmap.domain.ports import MappingRepositories, RepositoryCollection

if TYPE_CHECKING:
    from types import TracebackType

    from sqlalchemy.engine import Engine


class StartupError(RuntimeError):
    """Raised when a SQLAlchemy unit of work is used before initialisation."""


@dataclass(slots=True)
class _AdapterState:
    _engine: Engine | None = None
    _session_factory: sessionmaker[Session] | None = None

    @property
    def engine(self) -> Engine | None:
        return self._engine

    @engine.setter
    def engine(self, value: Engine | None) -> None:
        self._session_factory = None
        self._engine = value

    @property
    def session_factory(self) -> sessionmaker[Session]:
        if self._engine is None:
            raise StartupError(
                "SQLAlchemy adapter not initialised. Call idmap.adapters.sqlalchemy."
                "unit_of_work.startup() before requesting a unit of work."
            )
        if self._session_factory is None:
            self._session_factory = sessionmaker(bind=self._engine, expire_on_commit=False)
        return self._session_factory


_STATE = _AdapterState()


def startup(
    *,
    engine: Engine | None = None,
    database_uri: str | None = None,
    force: bool = False,
) -> None:
    """Initialise the SQLAlchemy engine, metadata, and session factory."""

    if _STATE.engine is not None and not force:
        raise StartupError(
            "SQLAlchemy adapter already initialised. Pass force=True to reconfigure."
        )

    resolved_engine = engine or create_engine(database_uri or get_database_config().uri)
    start_mappers()
    create_all_tables(resolved_engine)
    _STATE.engine = resolved_engine


def configured_engine() -> Engine | None:
    """Return the engine currently managed by the adapter (if any)."""

    return _STATE.engine


def is_started() -> bool:
    return _STATE.engine is not None


def shutdown() -> None:
    """Dispose the managed engine and reset state (primarily for tests)."""

    if _STATE.engine is not None:
        _STATE.engine.dispose()
    _STATE.engine = None


class BaseSqlAlchemyUnitOfWork[TRepositories: RepositoryCollection](ABC):
    """Generic SQLAlchemy unit of work with pluggable repository collections."""

    def __init__(self) -> None:
        self.session_factory: sessionmaker[Session] = _STATE.session_factory
        self._session: Session | None = None

    @abstractmethod
    def _build_repositories(self, session: Session) -> TRepositories: ...

    def __enter__(self) -> BaseSqlAlchemyUnitOfWork[TRepositories]:
        self.session = self.session_factory()
        self._repositories = self._build_repositories(self.session)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> Literal[False]:
        if exc_type is not None:
            self.rollback()
        self.session.close()
        self.session = None
        return False

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()

    @property
    def repositories(self) -> TRepositories:
        if self._session is None:
            raise StartupError("Unit of work session not initialised")
        return self._repositories

    @property
    def session(self) -> Session:
        if self._session is None:
            raise StartupError("Unit of work session not initialised")
        return self._session

    @session.setter
    def session(self, session: Session | None) -> None:
        if self._session is not None and session is not None:
            raise StartupError("Unit of work session already initialised")
        self._session = session


class SqlAlchemyMappingUnitOfWork(BaseSqlAlchemyUnitOfWork[MappingRepositories]):
    """Unit of work exposing one store per mapping family."""

    def _build_repositories(self, session: Session) -> MappingRepositories:
        return MappingRepositories(
            people=SqlAlchemyMappingStore(session, EntityKind.PERSON),
            alerts=SqlAlchemyOwnedMappingStore(session, EntityKind.ALERT),
            assessments=SqlAlchemyAssessmentMappingStore(session),
            case_reports=SqlAlchemyOwnedMappingStore(session, EntityKind.CASE_REPORT),
            case_factors=SqlAlchemyChildMappingStore(session, EntityKind.CASE_FACTOR),
            case_interviews=SqlAlchemyChildMappingStore(session, EntityKind.CASE_INTERVIEW),
            case_plans=SqlAlchemyChildMappingStore(session, EntityKind.CASE_PLAN),
            non_associations=SqlAlchemyRelationMappingStore(session),
        )


if TYPE_CHECKING:
    from idmap.domain.ports import MappingUnitOfWork

    _uow_check: MappingUnitOfWork = SqlAlchemyMappingUnitOfWork()
