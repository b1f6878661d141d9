"""Administrative switches (non-production only operations)."""

from __future__ import annotations

from dataclasses import dataclass

from .env import env_flag


@dataclass(frozen=True, slots=True)
class AdminConfig:
    allow_reset: bool = False


def get_admin_config() -> AdminConfig:
    return AdminConfig(allow_reset=env_flag("IDMAP_ALLOW_RESET"))
