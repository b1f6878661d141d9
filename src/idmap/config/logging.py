"""Logging setup for the command line."""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(
    *,
    level: int = logging.INFO,
    sql_echo: bool = False,
    force: bool = False,
) -> None:
    """Initialise the root logger once.

    SQLAlchemy's engine logger stays at WARNING unless ``sql_echo`` is set, so
    ``--verbose`` shows the engine's replay/duplicate decisions without every
    statement. Pass ``force=True`` to reconfigure an already configured root logger.
    """

    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt="%H:%M:%S", force=force)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if sql_echo else logging.WARNING)
