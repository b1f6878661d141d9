"""Domain-level failures surfaced by the mapping engine.

The engine never swallows these; callers translate them into their own
protocol (HTTP status codes, CLI exit codes, ...).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from idmap.domain.model import Mapping


class MappingError(Exception):
    """Base class for mapping engine failures."""


class UniqueConstraintViolation(MappingError):
    """Raised by a store when a write hits one of its uniqueness constraints.

    This is the low-level signal only: it does not say which row collided, nor
    whether the collision is a harmless replay.
    """


class DuplicateMappingError(MappingError):
    """A genuine uniqueness conflict: a different correspondence occupies the slot."""

    def __init__(self, incoming: Mapping, existing: Mapping) -> None:
        self.incoming = incoming
        self.existing = existing
        super().__init__(already_exists_message(incoming, existing))


class MappingNotFoundError(MappingError):
    def __init__(self, key: object, message: str | None = None) -> None:
        self.key = key
        super().__init__(message or f"No mapping found for {key}")


class MappingValidationError(MappingError):
    """The request contradicts itself or would produce an invalid mapping."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


def already_exists_message(incoming: Mapping, existing: Mapping) -> str:
    return (
        f"{existing.kind} mapping already exists.\n"
        f"Existing mapping: {existing.describe()}\n"
        f"Duplicate mapping: {incoming.describe()}"
    )
