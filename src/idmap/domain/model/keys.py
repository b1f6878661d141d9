"""Legacy-side key shapes.

Most families are keyed by a single integer on the legacy side; a few use a
natural composite key. Composite keys are plain named tuples so they compare,
hash and unpack like the column values they are stored as.
"""

from __future__ import annotations

from typing import NamedTuple


class BookingSequenceKey(NamedTuple):
    booking_id: int
    sequence: int

    def __str__(self) -> str:
        return f"{self.booking_id}:{self.sequence}"


class RelationKey(NamedTuple):
    first_owner_key: str
    second_owner_key: str
    variant_sequence: int

    def __str__(self) -> str:
        return f"{self.first_owner_key}:{self.second_owner_key}:{self.variant_sequence}"

    def partner_of(self, owner_key: str) -> str | None:
        """Return the opposite party of ``owner_key``, or ``None`` if it is not a side."""

        if owner_key == self.first_owner_key:
            return self.second_owner_key
        if owner_key == self.second_owner_key:
            return self.first_owner_key
        return None

    def same_slot(self, other: RelationKey) -> bool:
        """Relations are symmetric: (A, B) and (B, A) occupy the same slot."""

        if self.variant_sequence != other.variant_sequence:
            return False
        return {self.first_owner_key, self.second_owner_key} == {
            other.first_owner_key,
            other.second_owner_key,
        }


type LocalKey = int | BookingSequenceKey | RelationKey


def key_values(key: LocalKey) -> tuple[object, ...]:
    """Flatten a local key into the column values it is stored as."""

    if isinstance(key, tuple):
        return tuple(key)
    return (key,)
