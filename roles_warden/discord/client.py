from __future__ import annotations

import asyncio
import logging
from typing import Any

import discord
from discord.ext import commands

from ..config import Settings
from ..events import WardenServices
from .commands import register_commands

logger = logging.getLogger("roles_warden")


class RolesWardenBot(commands.Bot):
    def __init__(self, settings: Settings, store: Any, services: WardenServices) -> None:
        intents = discord.Intents.default()
        intents.members = settings.discord_members_intent
        intents.message_content = True

        super().__init__(command_prefix=settings.command_prefix, intents=intents, help_command=None)

        self.settings = settings
        self.store = store
        self.services = services

    async def setup_hook(self) -> None:
        await self.store.init()
        self.services.subscribe(self)
        register_commands(self)

    async def close(self) -> None:
        self.services.unsubscribe(self)
        await self._run_shutdown_step("store.close", self.store.close(), timeout=6.0)
        await self._run_shutdown_step("discord.Client.close", super().close(), timeout=6.0)

    async def _run_shutdown_step(self, label: str, coro: object, *, timeout: float) -> None:
        try:
            await asyncio.wait_for(coro, timeout=timeout)  # type: ignore[arg-type]
        except asyncio.TimeoutError:
            logger.warning("Shutdown step timed out: %s", label)
        except Exception as exc:
            logger.warning("Shutdown step failed: %s (%s)", label, exc)

    async def on_ready(self) -> None:
        if self.user:
            logger.info("Connected as %s (%s), watching %s guilds", self.user, self.user.id, len(self.guilds))
