from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import discord

from core.config import AppConfig
from core.errors import (
    PermissionDenied,
    TicketCreationError,
    TicketNotFound,
    TicketStateError,
    ValidationError,
)
from database.models import Ticket
from database.repositories import TicketRepository
from services.close_jobs import CloseJob, CloseJobService
from utils.constants import CHANNEL_NAME_MAX_LENGTH, TICKET_STATUS_CLOSED
from utils.decorators import is_staff
from utils.naming import build_channel_base, unique_channel_name

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class TicketServiceDeps:
    ticket_repo: TicketRepository
    close_jobs: CloseJobService


class TicketService:
    """Ticket state transitions plus the guild-side channel bookkeeping they need."""

    def __init__(self, config: AppConfig, deps: TicketServiceDeps) -> None:
        self.config = config
        self.deps = deps

    @property
    def categories(self) -> tuple[str, ...]:
        return self.config.tickets.categories

    def is_staff(self, member: Any) -> bool:
        return is_staff(member, self.config.tickets.staff_role_name)

    def require_staff(self, member: Any) -> None:
        if not self.is_staff(member):
            raise PermissionDenied()

    def resolve_category(self, index: int) -> str:
        if 0 <= index < len(self.categories):
            return self.categories[index]
        LOGGER.warning("Category index %s out of range, using fallback", index)
        return self.config.tickets.fallback_category

    async def get_ticket(self, ticket_id: int) -> Ticket:
        ticket = await self.deps.ticket_repo.get_by_id(ticket_id)
        if not ticket:
            raise TicketNotFound()
        return ticket

    async def get_ticket_for_channel(self, channel_id: int) -> Ticket:
        ticket = await self.deps.ticket_repo.get_by_channel(channel_id)
        if not ticket:
            raise TicketNotFound("error.not_a_ticket")
        return ticket

    async def list_open_tickets(self, guild_id: int, limit: int = 100) -> list[Ticket]:
        return await self.deps.ticket_repo.list_open(guild_id, limit)

    async def get_or_create_category_channel(self, guild: discord.Guild, name: str) -> discord.CategoryChannel:
        existing = discord.utils.get(guild.categories, name=name)
        if existing:
            return existing
        try:
            return await guild.create_category(name=name, reason="Ticket category")
        except discord.HTTPException as exc:
            LOGGER.error("Could not create category %r in guild %s: %s", name, guild.id, exc)
            raise TicketCreationError() from exc

    def build_channel_name(self, guild: discord.Guild, member: discord.Member, category: str) -> str:
        base = build_channel_base(category, member.name, getattr(member, "nick", None))
        if not base:
            base = f"ticket-{member.id}"
        return unique_channel_name(base, (channel.name for channel in guild.channels))

    def _overwrites(
        self, guild: discord.Guild, owner: discord.Member
    ) -> dict[Any, discord.PermissionOverwrite]:
        overwrites: dict[Any, discord.PermissionOverwrite] = {
            guild.default_role: discord.PermissionOverwrite(view_channel=False),
            owner: discord.PermissionOverwrite(
                view_channel=True,
                send_messages=True,
                read_message_history=True,
                attach_files=True,
            ),
            guild.me: discord.PermissionOverwrite(
                view_channel=True,
                send_messages=True,
                read_message_history=True,
                manage_channels=True,
                attach_files=True,
            ),
        }
        staff_role = discord.utils.get(guild.roles, name=self.config.tickets.staff_role_name)
        if staff_role:
            overwrites[staff_role] = discord.PermissionOverwrite(
                view_channel=True,
                send_messages=True,
                read_message_history=True,
            )
        else:
            LOGGER.warning(
                "Staff role %r not found in guild %s", self.config.tickets.staff_role_name, guild.id
            )
        return overwrites

    async def create_ticket(
        self,
        guild: discord.Guild,
        owner: discord.Member,
        category_index: int,
        topic: str | None,
    ) -> tuple[discord.TextChannel, Ticket]:
        category = self.resolve_category(category_index)
        parent = await self.get_or_create_category_channel(guild, category)
        channel_name = self.build_channel_name(guild, owner, category)

        try:
            channel = await guild.create_text_channel(
                name=channel_name,
                category=parent,
                overwrites=self._overwrites(guild, owner),
                reason=f"Ticket opened by {owner} ({owner.id})",
            )
        except discord.HTTPException as exc:
            LOGGER.error("Could not create ticket channel %r in guild %s: %s", channel_name, guild.id, exc)
            raise TicketCreationError() from exc

        ticket_id = await self.deps.ticket_repo.create(
            guild_id=guild.id,
            channel_id=channel.id,
            owner_id=owner.id,
            category=category,
            topic=topic or None,
        )
        LOGGER.info(
            "Ticket opened in #%s",
            channel.name,
            extra={"ticket_id": ticket_id, "guild_id": guild.id, "channel_id": channel.id, "user_id": owner.id},
        )
        return channel, await self.get_ticket(ticket_id)

    async def claim_ticket(self, ticket: Ticket, member: Any) -> Ticket:
        self.require_staff(member)
        if not ticket.is_open:
            raise TicketStateError("error.ticket_closed")
        if ticket.is_claimed:
            raise TicketStateError("error.already_claimed", user=f"<@{ticket.claimed_by_id}>")
        await self.deps.ticket_repo.set_claim(ticket.id, member.id)
        LOGGER.info("Ticket claimed", extra={"ticket_id": ticket.id, "user_id": member.id})
        return await self.get_ticket(ticket.id)

    async def unclaim_ticket(self, ticket: Ticket, member: Any) -> Ticket:
        self.require_staff(member)
        if not ticket.is_open:
            raise TicketStateError("error.ticket_closed")
        if not ticket.is_claimed:
            raise TicketStateError("error.not_claimed")
        await self.deps.ticket_repo.set_claim(ticket.id, None)
        LOGGER.info("Ticket unclaimed", extra={"ticket_id": ticket.id, "user_id": member.id})
        return await self.get_ticket(ticket.id)

    async def close_ticket(self, ticket: Ticket, member: Any) -> CloseJob:
        """Mark the ticket closed and schedule the delayed archival.

        A ticket whose earlier close job already finished or failed but whose
        channel survived can be closed again; the row stays closed and a new
        job is scheduled.
        """
        self.require_staff(member)
        if await self.deps.close_jobs.active_for_ticket(ticket.id):
            raise TicketStateError("error.already_closing")
        await self.deps.ticket_repo.set_status(ticket.id, TICKET_STATUS_CLOSED, closed_by_id=member.id)
        job = await self.deps.close_jobs.schedule(ticket, self.config.tickets.close_delay_seconds)
        LOGGER.info(
            "Ticket closing",
            extra={"ticket_id": ticket.id, "job_id": job.id, "user_id": member.id},
        )
        return job

    async def rename_ticket(self, channel: discord.TextChannel, member: Any, name: str) -> str:
        self.require_staff(member)
        await self.get_ticket_for_channel(channel.id)
        new_name = name.strip()[:CHANNEL_NAME_MAX_LENGTH]
        if not new_name:
            raise ValidationError("error.invalid_name")
        try:
            await channel.edit(name=new_name, reason=f"Renamed by {member}")
        except discord.HTTPException as exc:
            LOGGER.warning("Rename of channel %s failed: %s", channel.id, exc)
            raise TicketStateError("error.rename_failed") from exc
        return new_name

    async def add_member(self, channel: discord.TextChannel, member: Any, target: discord.abc.Snowflake) -> Ticket:
        self.require_staff(member)
        ticket = await self.get_ticket_for_channel(channel.id)
        try:
            await channel.set_permissions(
                target,
                view_channel=True,
                send_messages=True,
                read_message_history=True,
                reason=f"Added to ticket by {member}",
            )
        except discord.HTTPException as exc:
            LOGGER.warning("Adding overwrite for %s in channel %s failed: %s", target.id, channel.id, exc)
            raise TicketStateError("error.member_update_failed") from exc
        return ticket

    async def remove_member(self, channel: discord.TextChannel, member: Any, target: discord.abc.Snowflake) -> Ticket:
        self.require_staff(member)
        ticket = await self.get_ticket_for_channel(channel.id)
        try:
            await channel.set_permissions(target, overwrite=None, reason=f"Removed from ticket by {member}")
        except discord.HTTPException as exc:
            LOGGER.warning("Removing overwrite for %s in channel %s failed: %s", target.id, channel.id, exc)
            raise TicketStateError("error.member_update_failed") from exc
        return ticket
