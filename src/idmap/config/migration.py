"""Migration batch reading defaults."""

from __future__ import annotations

from dataclasses import dataclass

from .env import env_int

DEFAULT_PAGE_SIZE = 20
DEFAULT_AVERAGE_ASSESSMENTS_PER_OWNER = 5


@dataclass(frozen=True, slots=True)
class MigrationConfig:
    page_size: int = DEFAULT_PAGE_SIZE
    average_assessments_per_owner: int = DEFAULT_AVERAGE_ASSESSMENTS_PER_OWNER


def get_migration_config() -> MigrationConfig:
    return MigrationConfig(
        page_size=env_int("IDMAP_PAGE_SIZE", DEFAULT_PAGE_SIZE),
        average_assessments_per_owner=env_int(
            "IDMAP_AVERAGE_ASSESSMENTS_PER_OWNER",
            DEFAULT_AVERAGE_ASSESSMENTS_PER_OWNER,
        ),
    )
