from __future__ import annotations

import logging
from typing import Iterable

import discord
from discord import app_commands
from discord.ext import commands

from ..constants import (
    DISCOVERY_EVENT,
    FLAG_PLACED_OLD_PORTAL,
    JUNIMO_PORTAL_RECIPE,
    OLD_PORTAL_QIID,
    OLD_PORTAL_QUEST,
)
from ..discovery import (
    DayEnding,
    DayStarted,
    DiscoveryCoordinator,
    DiscoveryStage,
    ForcePlacement,
    InventoryChanged,
    Notification,
    NotificationScope,
)
from ..discovery.content import PORTAL_RECIPE
from ..models.participants import Session
from .base import FarmContext, PortalCog

log = logging.getLogger(__name__)

STAGE_LABELS = {
    DiscoveryStage.HIDDEN: "Nothing unusual has turned up on the farm yet.",
    DiscoveryStage.PLACED: "Something strange is half buried somewhere on the farm.",
    DiscoveryStage.QUEST_ACTIVE: "The host should bring the strange structure to the wizard.",
    DiscoveryStage.RESOLVED: "The Junimo Portal recipe is unlocked.",
}


def run_discovery_event(session: Session, user_id: int) -> bool:
    """Play the wizard-house event if its preconditions hold.

    The event is host-only and needs the old portal in the host's inventory.
    Seeing it consumes the item, closes the quest and teaches the recipe.
    """

    if not session.is_host(user_id):
        return False
    host = session.host
    if host is None or host.has_seen_event(DISCOVERY_EVENT):
        return False
    if not host.has_item(OLD_PORTAL_QIID):
        return False
    host.mark_event_seen(DISCOVERY_EVENT)
    host.remove_item(OLD_PORTAL_QIID)
    host.remove_quest(OLD_PORTAL_QUEST)
    host.learn_recipe(JUNIMO_PORTAL_RECIPE)
    return True


def hand_to_host(coordinator: DiscoveryCoordinator, giver_id: int) -> bool:
    """Pass the old portal from a guest to the host, as a chest drop would."""

    session = coordinator.session
    moved = session.transfer_item(giver_id, session.host_id, OLD_PORTAL_QIID)
    if moved is None:
        return False
    removed, added = moved
    coordinator.dispatch(InventoryChanged(giver_id, removed=(removed,)))
    coordinator.dispatch(InventoryChanged(session.host_id, added=(added,)))
    return True


class DiscoveryCog(PortalCog):
    portal_group = app_commands.Group(name="portal", description="The old Junimo portal")

    async def _deliver(
        self, interaction: discord.Interaction, notices: Iterable[Notification]
    ) -> None:
        for notice in notices:
            if notice.scope is NotificationScope.LOCAL:
                if notice.recipient_id not in (None, interaction.user.id):
                    continue
                await interaction.followup.send(notice.text, ephemeral=True)
            elif interaction.channel is not None:
                try:
                    await interaction.channel.send(notice.text)
                except discord.HTTPException:
                    log.warning("Could not broadcast notice in guild %s", interaction.guild_id)

    async def cog_app_command_error(
        self, interaction: discord.Interaction, error: app_commands.AppCommandError
    ) -> None:
        if isinstance(error, app_commands.CheckFailure):
            message = "Only farm managers can do that."
        else:
            log.exception("Portal command failed", exc_info=error)
            message = "Something went wrong with that command."
        if interaction.response.is_done():
            await interaction.followup.send(message, ephemeral=True)
        else:
            await interaction.response.send_message(message, ephemeral=True)

    @portal_group.command(name="status", description="Check on the old portal")
    @app_commands.guild_only()
    async def status(self, interaction: discord.Interaction) -> None:
        guild = interaction.guild
        assert guild is not None
        async with self.farm_lock(guild.id):
            context = await self.load_context(guild)
        coordinator = self.coordinator_for(context)
        stage = coordinator.stage()
        embed = discord.Embed(
            title="Old Junimo Portal",
            description=STAGE_LABELS[stage],
            colour=discord.Colour.green() if stage is DiscoveryStage.RESOLVED else discord.Colour.dark_gold(),
        )
        embed.add_field(name="Day", value=str(context.farm.total_days))
        embed.add_field(name="Unlocked", value="Yes" if coordinator.is_unlocked() else "No")
        if interaction.user.guild_permissions.manage_guild:  # type: ignore[union-attr]
            placed = context.flags.get(FLAG_PLACED_OLD_PORTAL)
            embed.add_field(name="Placed at", value=placed or "unknown")
        await interaction.response.send_message(embed=embed, ephemeral=True)

    @portal_group.command(name="endday", description="End the current farm day")
    @app_commands.describe(
        rain_today="Whether it rained on the day that is ending",
        rain_tomorrow="Whether the next day starts with rain",
    )
    @app_commands.guild_only()
    @app_commands.checks.has_permissions(manage_guild=True)
    async def endday(
        self,
        interaction: discord.Interaction,
        rain_today: bool,
        rain_tomorrow: bool = False,
    ) -> None:
        guild = interaction.guild
        assert guild is not None
        await interaction.response.defer(ephemeral=True)
        async with self.farm_lock(guild.id):
            context = await self.load_context(guild)
            coordinator = self.coordinator_for(context)
            farm = context.farm
            farm.raining = rain_today
            coordinator.dispatch(DayEnding(farm.total_days, rain_today))
            farm.total_days += 1
            farm.raining = rain_tomorrow
            coordinator.dispatch(DayStarted(farm.total_days, rain_tomorrow))
            await self.save_context(context)
        await interaction.followup.send(f"Day {farm.total_days} begins.", ephemeral=True)
        await self._deliver(interaction, coordinator.drain_notifications())

    @portal_group.command(name="pickup", description="Pick up the strange structure")
    @app_commands.guild_only()
    async def pickup(self, interaction: discord.Interaction) -> None:
        guild = interaction.guild
        assert guild is not None
        await interaction.response.defer(ephemeral=True)
        async with self.farm_lock(guild.id):
            context = await self.load_context(guild)
            found = context.farm.find_object(OLD_PORTAL_QIID)
            if found is None:
                await interaction.followup.send("There is nothing like that on the farm.", ephemeral=True)
                return
            tile, _ = found
            context.farm.remove_object(tile)
            participant = context.session.ensure(
                interaction.user.id, interaction.user.display_name
            )
            stack = participant.add_item(OLD_PORTAL_QIID)
            coordinator = self.coordinator_for(context)
            coordinator.dispatch(InventoryChanged(participant.user_id, added=(stack,)))
            await self.save_context(context)
        await interaction.followup.send(
            "You pick up a strange little structure. It smells like forest magic.",
            ephemeral=True,
        )
        await self._deliver(interaction, coordinator.drain_notifications())

    @portal_group.command(name="give", description="Hand the strange structure to the host")
    @app_commands.guild_only()
    async def give(self, interaction: discord.Interaction) -> None:
        guild = interaction.guild
        assert guild is not None
        await interaction.response.defer(ephemeral=True)
        async with self.farm_lock(guild.id):
            context = await self.load_context(guild)
            coordinator = self.coordinator_for(context)
            if not hand_to_host(coordinator, interaction.user.id):
                await interaction.followup.send(
                    "You have nothing to hand over to the host.", ephemeral=True
                )
                return
            await self.save_context(context)
        await interaction.followup.send(
            "You leave the strange structure where the host will find it.", ephemeral=True
        )
        await self._deliver(interaction, coordinator.drain_notifications())

    @portal_group.command(name="visit", description="Visit the wizard's tower")
    @app_commands.guild_only()
    async def visit(self, interaction: discord.Interaction) -> None:
        guild = interaction.guild
        assert guild is not None
        async with self.farm_lock(guild.id):
            context: FarmContext = await self.load_context(guild)
            if not run_discovery_event(context.session, interaction.user.id):
                await interaction.response.send_message(
                    "The wizard has nothing to say to you right now.", ephemeral=True
                )
                return
            await self.save_context(context)
        await interaction.response.send_message(
            "The wizard teaches you how to craft a Junimo Portal.", ephemeral=True
        )

    @portal_group.command(name="place", description="Bury the old portal on the farm now")
    @app_commands.guild_only()
    @app_commands.checks.has_permissions(manage_guild=True)
    async def place(self, interaction: discord.Interaction) -> None:
        guild = interaction.guild
        assert guild is not None
        async with self.farm_lock(guild.id):
            context = await self.load_context(guild)
            self.coordinator_for(context).dispatch(ForcePlacement())
            await self.save_context(context)
        placed = context.flags.get(FLAG_PLACED_OLD_PORTAL)
        message = f"The old portal is at {placed}." if placed else "No weeds or grass to hide it under."
        await interaction.response.send_message(message, ephemeral=True)

    @portal_group.command(name="recipe", description="Show what a Junimo Portal costs")
    @app_commands.guild_only()
    async def recipe(self, interaction: discord.Interaction) -> None:
        guild = interaction.guild
        assert guild is not None
        async with self.farm_lock(guild.id):
            context = await self.load_context(guild)
        if not self.coordinator_for(context).is_unlocked():
            await interaction.response.send_message("You don't know that recipe yet.", ephemeral=True)
            return
        lines = [f"• `{item_id}` × {amount}" for item_id, amount in PORTAL_RECIPE.ingredients]
        await interaction.response.send_message(
            f"**{PORTAL_RECIPE.yields}**\n" + "\n".join(lines), ephemeral=True
        )


async def setup(bot: commands.Bot) -> None:
    await bot.add_cog(DiscoveryCog(bot))
