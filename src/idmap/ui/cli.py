from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from signal import SIGINT, signal
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from idmap.adapters.payloads import DuplicateErrorPayload, MappingPayload, PagePayload
from idmap.app import (
    import_batch,
    lookup_mapping,
    read_batch,
    reassign_owner,
    reset_mappings,
    summarize_batch,
)
from idmap.config import ConfigurationError, configure_logging
from idmap.domain.errors import (
    DuplicateMappingError,
    MappingNotFoundError,
    MappingValidationError,
)
from idmap.domain.model import EntityKind

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

log = logging.getLogger(__name__)

KIND_CHOICES = [kind.value for kind in EntityKind]


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Maintain legacy/modern identity mappings")
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Log at DEBUG level",
    )
    parser.add_argument(
        "--echo-sql",
        action="store_true",
        help="Also log SQL statements issued by SQLAlchemy",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    import_cmd = subparsers.add_parser(
        "import-batch",
        help="Create mappings from a JSON-lines migration batch file",
    )
    import_cmd.add_argument(
        "path",
        type=str,
        help="Batch file with one owner mapping set per line ('-' reads stdin)",
    )

    lookup = subparsers.add_parser("lookup", help="Look up a single mapping")
    lookup.add_argument("kind", choices=KIND_CHOICES)
    keys = lookup.add_mutually_exclusive_group(required=True)
    keys.add_argument(
        "--legacy-key",
        type=str,
        help="Legacy key, e.g. 123, 123:4 (booking:sequence) or A1:B2:1 (relation)",
    )
    keys.add_argument("--modern-id", type=str, help="Modern identifier")

    batch = subparsers.add_parser("batch", help="Page through the mappings of a migration batch")
    batch.add_argument("kind", choices=KIND_CHOICES)
    batch.add_argument("label", type=str, help="Migration batch label")
    batch.add_argument("--page", type=int, default=0, help="Zero-based page number")
    batch.add_argument(
        "--size",
        type=int,
        default=None,
        help="Page size (defaults to IDMAP_PAGE_SIZE)",
    )
    batch.add_argument(
        "--by-owner",
        action="store_true",
        help="Page over per-owner counts instead of individual mappings",
    )

    summary = subparsers.add_parser("batch-summary", help="Counts for a migration batch")
    summary.add_argument("kind", choices=KIND_CHOICES)
    summary.add_argument("label", type=str, help="Migration batch label")

    reassign = subparsers.add_parser("reassign", help="Move mappings to another owner")
    reassign.add_argument("kind", choices=KIND_CHOICES)
    reassign.add_argument("old_owner", type=str)
    reassign.add_argument("new_owner", type=str)
    reassign.add_argument(
        "--partner",
        action="append",
        dest="partners",
        default=None,
        help="Only move relations with this partner (repeatable)",
    )
    reassign.add_argument(
        "--booking",
        type=int,
        default=None,
        help="Only move assessments of this booking",
    )

    reset = subparsers.add_parser("reset", help="Delete all mappings (non-production only)")
    reset.add_argument("kind", nargs="?", choices=KIND_CHOICES, default=None)
    reset.add_argument(
        "--only-migrated",
        action="store_true",
        help="Only delete mappings created by migrations",
    )

    return parser.parse_args(list(argv))


def _emit(payload: object) -> None:
    sys.stdout.write(json.dumps(payload, default=str) + "\n")


def _run(args: argparse.Namespace) -> None:
    if args.command == "import-batch":
        if args.path == "-":
            result = import_batch(sys.stdin)
        else:
            with Path(args.path).open(encoding="utf-8") as handle:
                result = import_batch(handle)
        _emit(
            {
                "lines": result.lines,
                "mappings": result.mappings,
                "byKind": {str(kind): count for kind, count in result.by_kind.items()},
            }
        )
    elif args.command == "lookup":
        mapping = lookup_mapping(args.kind, legacy_key=args.legacy_key, modern_id=args.modern_id)
        _emit(MappingPayload.from_domain(mapping).model_dump(mode="json", by_alias=True))
    elif args.command == "batch":
        page = read_batch(
            args.kind,
            args.label,
            page=args.page,
            size=args.size,
            by_owner=args.by_owner,
        )
        _emit(PagePayload.from_page(page).model_dump(mode="json", by_alias=True))
    elif args.command == "batch-summary":
        summary = summarize_batch(args.kind, args.label)
        _emit(
            {
                "kind": str(summary.kind),
                "label": summary.label,
                "mappingCount": summary.mapping_count,
                "ownerCount": summary.owner_count,
                "latestCreatedAt": summary.latest_created_at,
            }
        )
    elif args.command == "reassign":
        moved = reassign_owner(
            args.kind,
            args.old_owner,
            args.new_owner,
            partner_keys=args.partners,
            booking_id=args.booking,
        )
        _emit({"moved": moved})
    elif args.command == "reset":
        deleted = reset_mappings(args.kind, only_migrated=args.only_migrated)
        _emit({str(kind): count for kind, count in deleted.items()})
    else:
        raise ValueError(f"Unsupported command: {args.command}")


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    parsed_args = _parse_args(args_list)
    configure_logging(
        level=logging.DEBUG if parsed_args.verbose else logging.INFO,
        sql_echo=parsed_args.echo_sql,
    )

    try:
        _run(parsed_args)
    except DuplicateMappingError as exc:
        log.error("Duplicate mapping: %s", exc.existing.describe())
        _emit(DuplicateErrorPayload.from_error(exc).model_dump(mode="json", by_alias=True))
        sys.exit(1)
    except MappingValidationError as exc:
        log.info("Rejected: %s", exc.reason)
        sys.exit(2)
    except (ConfigurationError, ValueError):
        log.exception("CLI validation error")
        sys.exit(2)
    except MappingNotFoundError as exc:
        log.error("%s", exc)
        sys.exit(1)
    except Exception:
        log.exception("Fatal error")
        sys.exit(1)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


def run() -> None:
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
