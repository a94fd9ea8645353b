"""Entry point for the Junimo portal discovery Discord bot."""

from __future__ import annotations

import asyncio
import logging
import random

import discord
from discord.ext import commands

from .config import BotConfig
from .discovery.content import registration_requests
from .storage import DataStore

log = logging.getLogger(__name__)


class PortalBot(commands.Bot):
    def __init__(self, config: BotConfig):
        intents = discord.Intents.default()
        super().__init__(command_prefix="!", intents=intents)
        self.config = config
        self.store = DataStore()
        self.rng = random.Random()
        self.content = registration_requests(config)
        self._synced = False

    async def setup_hook(self) -> None:
        await self.load_extension("portalbot.cogs.discovery")
        log.info("Registered %d content requests", len(self.content))

    async def on_ready(self) -> None:
        if not self._synced:
            await self.tree.sync()
            self._synced = True
            log.info("Application commands synced")
        if self.user:
            log.info("Connected as %s (%s)", self.user, self.user.id)

    async def on_guild_join(self, guild: discord.Guild) -> None:
        await self.tree.sync(guild=guild)
        log.info("Synced application commands for guild %s (%s)", guild.name, guild.id)


async def main() -> None:
    logging.basicConfig(level=logging.INFO)
    config = BotConfig.from_env()
    bot = PortalBot(config)
    async with bot:
        await bot.start(config.token)


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
