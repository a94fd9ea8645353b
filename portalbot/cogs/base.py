"""Shared helpers for cogs."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Type, TypeVar

import discord
from discord.ext import commands

from ..config import BotConfig
from ..discovery import DiscoveryCoordinator, FlagStore
from ..models import ModelValidationError, validate_dataclass_payload
from ..models.farm import FarmSnapshot
from ..models.participants import Participant, Session
from ..storage import DataStore

log = logging.getLogger(__name__)

T = TypeVar("T")


def load_dataclass(cls: Type[T], data: Mapping[str, Any]) -> T:
    payload = validate_dataclass_payload(cls, data)
    factory = getattr(cls, "from_dict", None)
    if callable(factory):
        return factory(payload)
    return cls(**payload)


@dataclass(slots=True)
class FarmContext:
    """Everything loaded for one guild's farm while a signal is handled."""

    guild_id: int
    session: Session
    farm: FarmSnapshot
    flags: FlagStore


class PortalCog(commands.Cog):
    def __init__(self, bot: commands.Bot):
        self.bot = bot
        self._farm_locks: Dict[int, asyncio.Lock] = {}

    @property
    def store(self) -> DataStore:
        return self.bot.store  # type: ignore[attr-defined]

    @property
    def config(self) -> BotConfig:
        return self.bot.config  # type: ignore[attr-defined]

    @property
    def rng(self) -> random.Random:
        return self.bot.rng  # type: ignore[attr-defined]

    def farm_lock(self, guild_id: int) -> asyncio.Lock:
        """Serialise every signal for one farm; only one writer per guild."""

        lock = self._farm_locks.get(guild_id)
        if lock is None:
            lock = asyncio.Lock()
            self._farm_locks[guild_id] = lock
        return lock

    async def load_context(self, guild: discord.Guild) -> FarmContext:
        buckets = await self.store.get_many(guild.id, ("flags", "farm", "players"))

        session = Session(host_id=guild.owner_id)
        for key, value in buckets["players"].items():
            try:
                session.register(load_dataclass(Participant, value))
            except (ModelValidationError, TypeError, ValueError) as exc:
                errors = getattr(exc, "errors", None)
                log.error(
                    "Failed to load participant '%s' for guild %s: %s",
                    key,
                    guild.id,
                    "; ".join(errors) if errors else exc,
                )
        owner_name = guild.owner.display_name if guild.owner else f"Host {guild.owner_id}"
        session.ensure(guild.owner_id, owner_name)

        try:
            farm = load_dataclass(FarmSnapshot, buckets["farm"])
        except (ModelValidationError, KeyError, TypeError, ValueError) as exc:
            errors = getattr(exc, "errors", None)
            log.error(
                "Failed to load farm for guild %s, starting from an empty farm: %s",
                guild.id,
                "; ".join(errors) if errors else exc,
            )
            farm = FarmSnapshot()

        return FarmContext(
            guild_id=guild.id,
            session=session,
            farm=farm,
            flags=FlagStore(buckets["flags"]),
        )

    async def save_context(self, context: FarmContext) -> None:
        await self.store.bulk_set(
            context.guild_id, "flags", context.flags.drain_changes().items()
        )
        await self.store.bulk_set(
            context.guild_id, "farm", context.farm.to_mapping().items()
        )
        for participant in context.session.participants.values():
            await self.store.upsert_participant(context.guild_id, participant.to_mapping())

    def coordinator_for(self, context: FarmContext) -> DiscoveryCoordinator:
        return DiscoveryCoordinator(
            context.session,
            context.farm,
            context.flags,
            unlock_override=self.config.unlock_portal,
            min_days=self.config.min_days,
            rng=self.rng,
        )
