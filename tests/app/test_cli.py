from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import pytest

from idmap.app import BatchSummary, ImportBatchResult
from idmap.config import ConfigurationError
from idmap.domain.errors import (
    DuplicateMappingError,
    MappingNotFoundError,
    MappingValidationError,
)
from idmap.domain.model import EntityKind, Page, PageRequest
from idmap.ui import cli
from tests.helpers.mappings import make_assessment, make_person

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path


def _output(capsys: pytest.CaptureFixture[str]) -> object:
    return json.loads(capsys.readouterr().out)


def test_lookup_prints_mapping(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    captured: dict[str, object] = {}

    def fake_lookup(kind: str, **kwargs: object) -> object:
        captured.update(kwargs, kind=kind)
        return make_assessment(100, 2, "assessment-2", owner="A1234BC")

    monkeypatch.setattr(cli, "lookup_mapping", fake_lookup)

    cli.main(["lookup", "assessment", "--legacy-key", "100:2"])

    assert captured == {"kind": "assessment", "legacy_key": "100:2", "modern_id": None}
    output = _output(capsys)
    assert isinstance(output, dict)
    assert output["legacyKey"] == "100:2"
    assert output["ownerKey"] == "A1234BC"


def test_lookup_requires_one_key() -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["lookup", "person", "--legacy-key", "1", "--modern-id", "person-1"])

    assert excinfo.value.code == 2


def test_unknown_kind_is_rejected_by_parser() -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["lookup", "spaceship", "--modern-id", "x"])

    assert excinfo.value.code == 2


def test_import_batch_reads_file(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
    tmp_path: Path,
) -> None:
    batch_file = tmp_path / "batch.jsonl"
    batch_file.write_text('{"kind": "person"}\n{"kind": "alert"}\n', encoding="utf-8")
    seen: list[str] = []

    def fake_import(lines: Iterable[str]) -> ImportBatchResult:
        seen.extend(lines)
        return ImportBatchResult(lines=2, mappings=5, by_kind={EntityKind.PERSON: 5})

    monkeypatch.setattr(cli, "import_batch", fake_import)

    cli.main(["import-batch", str(batch_file)])

    assert len(seen) == 2
    assert _output(capsys) == {"lines": 2, "mappings": 5, "byKind": {"person": 5}}


def test_batch_prints_page(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    captured: dict[str, object] = {}

    def fake_read(kind: str, label: str, **kwargs: object) -> Page[object]:
        captured.update(kwargs, kind=kind, label=label)
        return Page(items=[make_person(1, "person-1")], request=PageRequest.of(1, 1), total=2)

    monkeypatch.setattr(cli, "read_batch", fake_read)

    cli.main(["batch", "person", "b1", "--page", "1", "--size", "1"])

    assert captured == {"kind": "person", "label": "b1", "page": 1, "size": 1, "by_owner": False}
    output = _output(capsys)
    assert isinstance(output, dict)
    assert output["totalElements"] == 2
    assert output["last"] is True
    assert output["content"][0]["modernId"] == "person-1"


def test_batch_summary_prints_counts(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    def fake_summary(kind: str, label: str) -> BatchSummary:
        return BatchSummary(
            kind=EntityKind(kind),
            label=label,
            mapping_count=4,
            owner_count=2,
            latest_created_at=datetime(2024, 5, 1, tzinfo=UTC),
        )

    monkeypatch.setattr(cli, "summarize_batch", fake_summary)

    cli.main(["batch-summary", "alert", "b1"])

    assert _output(capsys) == {
        "kind": "alert",
        "label": "b1",
        "mappingCount": 4,
        "ownerCount": 2,
        "latestCreatedAt": "2024-05-01 00:00:00+00:00",
    }


def test_reassign_passes_partners(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    captured: dict[str, object] = {}

    def fake_reassign(kind: str, old: str, new: str, **kwargs: object) -> int:
        captured.update(kwargs, kind=kind, old=old, new=new)
        return 2

    monkeypatch.setattr(cli, "reassign_owner", fake_reassign)

    cli.main(["reassign", "non_association", "OLD", "NEW", "--partner", "X", "--partner", "Y"])

    assert captured == {
        "kind": "non_association",
        "old": "OLD",
        "new": "NEW",
        "partner_keys": ["X", "Y"],
        "booking_id": None,
    }
    assert _output(capsys) == {"moved": 2}


def test_duplicate_exits_with_both_rows(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    def fake_lookup(*_: object, **__: object) -> object:
        raise DuplicateMappingError(
            incoming=make_person(1, "person-new"),
            existing=make_person(1, "person-old"),
        )

    monkeypatch.setattr(cli, "lookup_mapping", fake_lookup)

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["lookup", "person", "--legacy-key", "1"])

    assert excinfo.value.code == 1
    output = _output(capsys)
    assert isinstance(output, dict)
    assert output["duplicate"]["modernId"] == "person-new"
    assert output["existing"]["modernId"] == "person-old"


@pytest.mark.parametrize(
    ("error", "code"),
    [
        (MappingValidationError("bad request"), 2),
        (ConfigurationError("Resetting mappings is disabled"), 2),
        (MappingNotFoundError("person-9"), 1),
        (RuntimeError("database went away"), 1),
    ],
)
def test_errors_map_to_exit_codes(
    monkeypatch: pytest.MonkeyPatch,
    error: Exception,
    code: int,
) -> None:
    def fake_reset(*_: object, **__: object) -> dict[EntityKind, int]:
        raise error

    monkeypatch.setattr(cli, "reset_mappings", fake_reset)

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["reset"])

    assert excinfo.value.code == code


def test_reset_prints_deleted_counts(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    captured: dict[str, object] = {}

    def fake_reset(kind: str | None, **kwargs: object) -> dict[EntityKind, int]:
        captured.update(kwargs, kind=kind)
        return {EntityKind.PERSON: 3}

    monkeypatch.setattr(cli, "reset_mappings", fake_reset)

    cli.main(["reset", "person", "--only-migrated"])

    assert captured == {"kind": "person", "only_migrated": True}
    assert _output(capsys) == {"person": 3}
