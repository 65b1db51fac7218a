"""Create Sendly's tables: ``python -m sendly.db.init_db``."""

from __future__ import annotations

import asyncio
import logging

import sendly.db.models  # noqa: F401  (registers tables on Base.metadata)
from sendly.core.logging import configure_logging
from sendly.db.base import Base
from sendly.db.session import dispose_engine, get_engine

logger = logging.getLogger(__name__)


async def create_tables() -> None:
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Created tables: %s", ", ".join(sorted(Base.metadata.tables)))


async def _main() -> None:
    try:
        await create_tables()
    finally:
        await dispose_engine()


if __name__ == "__main__":
    configure_logging()
    asyncio.run(_main())
