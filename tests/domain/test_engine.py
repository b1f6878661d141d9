from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import pytest

from idmap.domain.engine import MappingEngine, engine_for
from idmap.domain.errors import (
    DuplicateMappingError,
    MappingNotFoundError,
    MappingValidationError,
    UniqueConstraintViolation,
)
from idmap.domain.families import IdPair, family_for
from idmap.domain.model import BookingSequenceKey, EntityKind, Provenance
from tests.helpers.mappings import (
    make_alert,
    make_assessment,
    make_case_factor,
    make_case_interview,
    make_case_report,
    make_person,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from idmap.adapters.sqlalchemy.unit_of_work import SqlAlchemyMappingUnitOfWork
    from idmap.domain.model import Mapping

    UowFactory = Callable[[], SqlAlchemyMappingUnitOfWork]


def _engine(kind: EntityKind, uow: UowFactory) -> MappingEngine[Mapping]:
    return MappingEngine(family_for(kind), uow)


def test_create_then_lookup_by_either_key(sqlite_unit_of_work: UowFactory) -> None:
    engine = _engine(EntityKind.PERSON, sqlite_unit_of_work)

    engine.create(make_person(101, "person-101"))

    by_local = engine.get_by_local_key(101)
    by_remote = engine.get_by_remote_key("person-101")
    assert by_local.remote_key == "person-101"
    assert by_remote.local_key == 101
    assert by_local.created_at is not None
    assert by_local.created_at.tzinfo is not None


def test_replayed_create_is_a_silent_success(
    sqlite_unit_of_work: UowFactory,
    caplog: pytest.LogCaptureFixture,
) -> None:
    engine = _engine(EntityKind.PERSON, sqlite_unit_of_work)
    first_seen = datetime(2024, 3, 1, 12, 0, tzinfo=UTC)
    engine.create(make_person(101, "person-101", created_at=first_seen))

    with caplog.at_level(logging.DEBUG, logger="idmap.domain.engine"):
        engine.create(make_person(101, "person-101"))

    stored = engine.get_by_remote_key("person-101")
    assert stored.created_at == first_seen
    assert any("Not creating. All OK" in record.getMessage() for record in caplog.records)
    with sqlite_unit_of_work() as uow:
        assert uow.repositories.people.count_all() == 1


def test_same_legacy_key_with_different_modern_key_is_a_duplicate(
    sqlite_unit_of_work: UowFactory,
) -> None:
    engine = _engine(EntityKind.PERSON, sqlite_unit_of_work)
    engine.create(make_person(101, "person-101"))
    incoming = make_person(101, "person-999")

    with pytest.raises(DuplicateMappingError) as excinfo:
        engine.create(incoming)

    error = excinfo.value
    assert error.incoming is incoming
    assert error.existing.remote_key == "person-101"
    lines = str(error).splitlines()
    assert lines[0] == "person mapping already exists."
    assert lines[1].startswith("Existing mapping: person(local=101, remote=person-101")
    assert lines[2].startswith("Duplicate mapping: person(local=101, remote=person-999")


def test_same_modern_key_with_different_legacy_key_is_a_duplicate(
    sqlite_unit_of_work: UowFactory,
) -> None:
    engine = _engine(EntityKind.PERSON, sqlite_unit_of_work)
    engine.create(make_person(101, "person-101"))

    with pytest.raises(DuplicateMappingError) as excinfo:
        engine.create(make_person(202, "person-101"))

    assert excinfo.value.existing.local_key == 101


def test_duplicate_on_composite_key(sqlite_unit_of_work: UowFactory) -> None:
    engine = _engine(EntityKind.ASSESSMENT, sqlite_unit_of_work)
    engine.create(make_assessment(100, 1, "assessment-1"))

    with pytest.raises(DuplicateMappingError) as excinfo:
        engine.create(make_assessment(100, 1, "assessment-2"))

    assert excinfo.value.existing.local_key == BookingSequenceKey(100, 1)


def test_create_rejects_other_family(sqlite_unit_of_work: UowFactory) -> None:
    engine = _engine(EntityKind.PERSON, sqlite_unit_of_work)

    with pytest.raises(MappingValidationError):
        engine.create(make_alert())


def test_create_all_writes_fresh_rows_when_only_replays_collide(
    sqlite_unit_of_work: UowFactory,
) -> None:
    engine = _engine(EntityKind.PERSON, sqlite_unit_of_work)
    engine.create(make_person(1, "person-1"))

    engine.create_all([make_person(1, "person-1"), make_person(2, "person-2")])

    assert engine.get_by_local_key(2).remote_key == "person-2"
    with sqlite_unit_of_work() as uow:
        assert uow.repositories.people.count_all() == 2


def test_create_all_is_all_or_nothing_on_genuine_duplicate(
    sqlite_unit_of_work: UowFactory,
) -> None:
    engine = _engine(EntityKind.PERSON, sqlite_unit_of_work)
    engine.create(make_person(1, "person-1"))

    with pytest.raises(DuplicateMappingError) as excinfo:
        engine.create_all(
            [
                make_person(2, "person-2"),
                make_person(1, "person-other"),
                make_person(3, "person-3"),
            ]
        )

    assert excinfo.value.incoming.remote_key == "person-other"
    with sqlite_unit_of_work() as uow:
        assert uow.repositories.people.count_all() == 1


def test_create_all_for_owner_builds_migrated_rows(sqlite_unit_of_work: UowFactory) -> None:
    engine = _engine(EntityKind.ALERT, sqlite_unit_of_work)

    created = engine.create_all_for_owner(
        "A1234BC",
        [IdPair(11, "alert-11"), IdPair(12, "alert-12")],
        batch_label="2024-05-01",
    )

    assert [mapping.remote_key for mapping in created] == ["alert-11", "alert-12"]
    stored = engine.find_by_owner("A1234BC")
    assert [mapping.local_key for mapping in stored] == [11, 12]
    assert {mapping.provenance for mapping in stored} == {Provenance.MIGRATED}
    assert {mapping.batch_label for mapping in stored} == {"2024-05-01"}


def test_create_all_for_owner_reports_first_genuine_pair(
    sqlite_unit_of_work: UowFactory,
) -> None:
    engine = _engine(EntityKind.ALERT, sqlite_unit_of_work)
    engine.create(make_alert(11, "alert-11", owner="A1234BC"))

    with pytest.raises(DuplicateMappingError) as excinfo:
        engine.create_all_for_owner(
            "A1234BC",
            [IdPair(10, "alert-10"), IdPair(11, "alert-other")],
        )

    assert excinfo.value.incoming.remote_key == "alert-other"
    assert excinfo.value.existing.remote_key == "alert-11"
    assert [mapping.remote_key for mapping in engine.find_by_owner("A1234BC")] == ["alert-11"]


def test_create_all_for_owner_requires_owned_family(sqlite_unit_of_work: UowFactory) -> None:
    engine = _engine(EntityKind.PERSON, sqlite_unit_of_work)

    with pytest.raises(MappingValidationError):
        engine.create_all_for_owner("A1234BC", [IdPair(1, "person-1")])


def test_create_with_children_writes_parent_then_children(
    sqlite_unit_of_work: UowFactory,
) -> None:
    engine = _engine(EntityKind.CASE_REPORT, sqlite_unit_of_work)

    engine.create_with_children(
        make_case_report(1, "case-1"),
        {
            EntityKind.CASE_FACTOR: [
                make_case_factor(1, "factor-1"),
                make_case_factor(2, "factor-2"),
            ],
            EntityKind.CASE_INTERVIEW: [make_case_interview(1, "interview-1")],
        },
    )

    children = engine.find_children("case-1")
    assert [child.remote_key for child in children[EntityKind.CASE_FACTOR]] == [
        "factor-1",
        "factor-2",
    ]
    assert [child.remote_key for child in children[EntityKind.CASE_INTERVIEW]] == ["interview-1"]
    assert children[EntityKind.CASE_PLAN] == []


def test_child_conflict_keeps_parent_and_earlier_siblings(
    sqlite_unit_of_work: UowFactory,
) -> None:
    engine = _engine(EntityKind.CASE_REPORT, sqlite_unit_of_work)
    engine.create(make_case_report(9, "case-9"))
    factors = engine_for(EntityKind.CASE_FACTOR, sqlite_unit_of_work)
    factors.create(make_case_factor(2, "factor-taken", parent="case-9"))

    with pytest.raises(DuplicateMappingError) as excinfo:
        engine.create_with_children(
            make_case_report(1, "case-1"),
            {
                EntityKind.CASE_FACTOR: [
                    make_case_factor(1, "factor-1"),
                    make_case_factor(2, "factor-2"),
                    make_case_factor(3, "factor-3"),
                ],
            },
        )

    assert excinfo.value.incoming.remote_key == "factor-2"
    assert excinfo.value.existing.remote_key == "factor-taken"
    assert engine.get_by_remote_key("case-1").local_key == 1
    remaining = engine.find_children("case-1")[EntityKind.CASE_FACTOR]
    assert [child.remote_key for child in remaining] == ["factor-1"]


def test_parent_conflict_writes_no_children(sqlite_unit_of_work: UowFactory) -> None:
    engine = _engine(EntityKind.CASE_REPORT, sqlite_unit_of_work)
    engine.create(make_case_report(1, "case-existing"))

    with pytest.raises(DuplicateMappingError) as excinfo:
        engine.create_with_children(
            make_case_report(1, "case-1"),
            {EntityKind.CASE_FACTOR: [make_case_factor(1, "factor-1")]},
        )

    assert excinfo.value.incoming.remote_key == "case-1"
    with sqlite_unit_of_work() as uow:
        assert uow.repositories.case_factors.count_all() == 0


def test_children_must_point_at_the_parent(sqlite_unit_of_work: UowFactory) -> None:
    engine = _engine(EntityKind.CASE_REPORT, sqlite_unit_of_work)

    with pytest.raises(MappingValidationError):
        engine.create_with_children(
            make_case_report(1, "case-1"),
            {EntityKind.CASE_FACTOR: [make_case_factor(1, "factor-1", parent="case-other")]},
        )

    with pytest.raises(MappingNotFoundError):
        engine.get_by_remote_key("case-1")


def test_child_without_parent_is_rejected(sqlite_unit_of_work: UowFactory) -> None:
    factors = engine_for(EntityKind.CASE_FACTOR, sqlite_unit_of_work)

    with pytest.raises(MappingValidationError):
        factors.create(make_case_factor(1, "factor-1", parent="missing-case"))


def test_get_missing_mapping_raises_not_found(sqlite_unit_of_work: UowFactory) -> None:
    engine = _engine(EntityKind.PERSON, sqlite_unit_of_work)

    with pytest.raises(MappingNotFoundError) as excinfo:
        engine.get_by_local_key(404)

    assert excinfo.value.key == 404


def test_deleting_parent_cascades_to_children(sqlite_unit_of_work: UowFactory) -> None:
    engine = _engine(EntityKind.CASE_REPORT, sqlite_unit_of_work)
    engine.create_with_children(
        make_case_report(1, "case-1"),
        {EntityKind.CASE_FACTOR: [make_case_factor(1, "factor-1")]},
    )

    assert engine.delete_by_local_key(1) == 1

    with sqlite_unit_of_work() as uow:
        assert uow.repositories.case_reports.count_all() == 0
        assert uow.repositories.case_factors.count_all() == 0


def test_delete_by_owner_only_touches_that_owner(sqlite_unit_of_work: UowFactory) -> None:
    engine = _engine(EntityKind.ALERT, sqlite_unit_of_work)
    engine.create(make_alert(1, "alert-1", owner="A1111AA"))
    engine.create(make_alert(2, "alert-2", owner="A1111AA"))
    engine.create(make_alert(3, "alert-3", owner="B2222BB"))

    assert engine.delete_by_owner("A1111AA") == 2
    assert [mapping.remote_key for mapping in engine.find_by_owner("B2222BB")] == ["alert-3"]


def test_delete_all_only_migrated_keeps_other_rows(sqlite_unit_of_work: UowFactory) -> None:
    engine = _engine(EntityKind.PERSON, sqlite_unit_of_work)
    engine.create(make_person(1, "person-1", provenance=Provenance.MIGRATED))
    engine.create(make_person(2, "person-2", provenance=Provenance.MODERN_CREATED))

    assert engine.delete_all(only_migrated=True) == 1

    assert engine.get_by_local_key(2).remote_key == "person-2"
    assert engine.delete_all() == 1


def test_create_all_remainder_sharing_a_key_is_reraised_and_logged(
    sqlite_unit_of_work: UowFactory,
    caplog: pytest.LogCaptureFixture,
) -> None:
    engine = _engine(EntityKind.ALERT, sqlite_unit_of_work)
    engine.create(make_alert(1, "alert-1"))

    with (
        caplog.at_level(logging.ERROR, logger="idmap.domain.engine"),
        pytest.raises(UniqueConstraintViolation),
    ):
        engine.create_all(
            [make_alert(1, "alert-1"), make_alert(2, "alert-x"), make_alert(2, "alert-y")]
        )

    assert any("no colliding mapping found" in record.getMessage() for record in caplog.records)
    with sqlite_unit_of_work() as uow:
        assert uow.repositories.alerts.find_remote_keys() == ["alert-1"]


def test_create_with_loaded_row_never_rewrites_stored_keys(
    sqlite_unit_of_work: UowFactory,
) -> None:
    engine = _engine(EntityKind.PERSON, sqlite_unit_of_work)
    engine.create(make_person(1, "person-1"))
    loaded = engine.get_by_remote_key("person-1")
    loaded.local_id = 999  # type: ignore[attr-defined]

    with pytest.raises(DuplicateMappingError) as excinfo:
        engine.create(loaded)

    assert excinfo.value.existing.local_key == 1
    assert engine.get_by_remote_key("person-1").local_key == 1
    with pytest.raises(MappingNotFoundError):
        engine.get_by_local_key(999)


def test_create_again_after_delete_stores_the_row(sqlite_unit_of_work: UowFactory) -> None:
    engine = _engine(EntityKind.PERSON, sqlite_unit_of_work)
    mapping = make_person(5, "person-5")
    engine.create(mapping)
    engine.create(mapping)

    assert engine.delete_by_remote_key("person-5") == 1
    engine.create(mapping)

    assert engine.get_by_local_key(5).remote_key == "person-5"


def test_lookup_with_key_of_wrong_shape_is_a_validation_error(
    sqlite_unit_of_work: UowFactory,
) -> None:
    engine = _engine(EntityKind.ASSESSMENT, sqlite_unit_of_work)

    with pytest.raises(MappingValidationError, match="legacy key needs 2 parts"):
        engine.get_by_local_key(100)
    with pytest.raises(MappingValidationError):
        engine.delete_by_local_key(100)
