from __future__ import annotations

import logging

import discord
from discord import app_commands
from discord.ext import commands, tasks

from core.bot import TicketBot
from core.errors import ValidationError
from database.models import Ticket

LOGGER = logging.getLogger(__name__)


class TicketsCog(commands.Cog):
    def __init__(self, bot: TicketBot) -> None:
        self.bot = bot
        self.close_job_worker.start()

    def cog_unload(self) -> None:
        self.close_job_worker.cancel()

    @staticmethod
    def _target_channel(
        interaction: discord.Interaction, channel: discord.TextChannel | None
    ) -> discord.TextChannel:
        target = channel or interaction.channel
        if interaction.guild is None or not isinstance(target, discord.TextChannel):
            raise ValidationError("error.guild_only")
        return target

    async def _resolve_ticket(
        self, interaction: discord.Interaction, channel: discord.TextChannel | None
    ) -> Ticket:
        target = self._target_channel(interaction, channel)
        return await self.bot.ticket_service.get_ticket_for_channel(target.id)

    @app_commands.command(name="claim", description="Claim een ticket (staff).")
    @app_commands.describe(channel="Ticketkanaal, standaard het huidige kanaal")
    @app_commands.guild_only()
    async def claim(self, interaction: discord.Interaction, channel: discord.TextChannel | None = None) -> None:
        ticket = await self._resolve_ticket(interaction, channel)
        await self.bot.workflow.claim(interaction, ticket)

    @app_commands.command(name="unclaim", description="Unclaim een ticket (staff).")
    @app_commands.describe(channel="Ticketkanaal, standaard het huidige kanaal")
    @app_commands.guild_only()
    async def unclaim(self, interaction: discord.Interaction, channel: discord.TextChannel | None = None) -> None:
        ticket = await self._resolve_ticket(interaction, channel)
        await self.bot.workflow.unclaim(interaction, ticket)

    @app_commands.command(name="close", description="Sluit een ticket (staff).")
    @app_commands.describe(channel="Ticketkanaal, standaard het huidige kanaal")
    @app_commands.guild_only()
    async def close(self, interaction: discord.Interaction, channel: discord.TextChannel | None = None) -> None:
        ticket = await self._resolve_ticket(interaction, channel)
        await self.bot.workflow.close(interaction, ticket)

    @app_commands.command(name="transcript", description="Maak transcript van ticket (staff).")
    @app_commands.describe(channel="Ticketkanaal, standaard het huidige kanaal")
    @app_commands.guild_only()
    async def transcript(
        self, interaction: discord.Interaction, channel: discord.TextChannel | None = None
    ) -> None:
        ticket = await self._resolve_ticket(interaction, channel)
        await self.bot.workflow.send_transcript(interaction, ticket)

    @app_commands.command(name="rename", description="Hernoem het ticketkanaal (staff).")
    @app_commands.describe(name="Nieuwe kanaalnaam")
    @app_commands.guild_only()
    async def rename(self, interaction: discord.Interaction, name: str) -> None:
        await self.bot.workflow.rename(interaction, self._target_channel(interaction, None), name)

    @app_commands.command(name="add", description="Voeg een gebruiker toe aan het ticket (staff).")
    @app_commands.describe(user="Gebruiker om toe te voegen")
    @app_commands.guild_only()
    async def add(self, interaction: discord.Interaction, user: discord.Member) -> None:
        await self.bot.workflow.add_member(interaction, self._target_channel(interaction, None), user)

    @app_commands.command(name="remove", description="Verwijder een gebruiker uit het ticket (staff).")
    @app_commands.describe(user="Gebruiker om te verwijderen")
    @app_commands.guild_only()
    async def remove(self, interaction: discord.Interaction, user: discord.Member) -> None:
        await self.bot.workflow.remove_member(interaction, self._target_channel(interaction, None), user)

    @tasks.loop(seconds=30)
    async def close_job_worker(self) -> None:
        jobs = await self.bot.close_jobs.due_jobs()
        for job in jobs:
            if self.bot.workflow.is_armed(job.id):
                continue
            LOGGER.info("Recovering overdue close job", extra={"job_id": job.id, "ticket_id": job.ticket_id})
            try:
                await self.bot.workflow.run_close_job(job)
            except Exception:
                LOGGER.exception("Close job recovery failed", extra={"job_id": job.id})

    @close_job_worker.before_loop
    async def before_close_job_worker(self) -> None:
        await self.bot.wait_until_ready()


async def setup(bot: TicketBot) -> None:
    await bot.add_cog(TicketsCog(bot))
