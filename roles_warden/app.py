from __future__ import annotations

import asyncio
import contextlib
import logging

from .config import Settings
from .discord.client import RolesWardenBot
from .events import WardenServices
from .factory import build_store

logger = logging.getLogger("roles_warden")


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    logging.getLogger("discord.gateway").setLevel(logging.WARNING)
    logging.getLogger("discord.client").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


def build_bot(settings: Settings) -> RolesWardenBot:
    store = build_store(settings)
    services = WardenServices.build(store, grant_reason=settings.grant_reason)
    logger.info("Using %s backend", store.backend_name)
    return RolesWardenBot(settings=settings, store=store, services=services)


async def _run_bot(settings: Settings) -> None:
    bot = build_bot(settings)
    try:
        async with bot:
            await bot.start(settings.discord_token)
    finally:
        if not bot.is_closed():
            with contextlib.suppress(Exception):
                await asyncio.wait_for(bot.close(), timeout=10.0)


def main() -> None:
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    settings.validate()
    try:
        asyncio.run(_run_bot(settings))
    except KeyboardInterrupt:
        logger.info("Shutdown requested, exiting.")
