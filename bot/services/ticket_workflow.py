from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any

import discord

from core.errors import TicketCreationError, TicketNotFoundError, ValidationError
from database.models import Ticket
from services.close_jobs import CloseJob
from utils.custom_ids import TicketAction
from utils.embeds import action_embed, error_embed, info_embed, success_embed
from utils.time import seconds_until
from views.ticket_controls import build_ticket_controls

if TYPE_CHECKING:
    from core.bot import TicketBot

LOGGER = logging.getLogger(__name__)

ActionHandler = Callable[[discord.Interaction, Ticket], Awaitable[None]]


class TicketWorkflow:
    """Interaction-facing side of the ticket lifecycle.

    Buttons, the topic modal and slash commands all end up here; state changes
    are delegated to :class:`services.ticket_service.TicketService` and every
    Discord side effect that may fail without aborting the action goes through
    :meth:`_post`.
    """

    def __init__(self, bot: TicketBot) -> None:
        self.bot = bot
        self._close_tasks: dict[int, asyncio.Task[None]] = {}

    def t(self, key: str, **params: Any) -> str:
        return self.bot.i18n.t(key, **params)

    @property
    def close_delay_seconds(self) -> int:
        return self.bot.config.tickets.close_delay_seconds

    def _ticket_channel(self, ticket: Ticket) -> Any:
        return self.bot.get_channel(ticket.channel_id)

    async def _staff_log_channel(self, guild: discord.Guild | None) -> Any:
        channel_id = self.bot.config.tickets.staff_log_channel_id
        if not channel_id:
            return None
        channel = guild.get_channel(channel_id) if guild else None
        if channel is None:
            channel = self.bot.get_channel(channel_id)
        if channel is None:
            try:
                channel = await self.bot.fetch_channel(channel_id)
            except discord.HTTPException as exc:
                LOGGER.warning("Staff log channel %s unavailable: %s", channel_id, exc)
                return None
        return channel

    async def _post(self, destination: Any, **kwargs: Any) -> bool:
        """Best-effort send; failures are logged and reported as ``False``."""
        if destination is None:
            return False
        try:
            await destination.send(**kwargs)
        except discord.HTTPException as exc:
            LOGGER.warning("Could not send to %s: %s", getattr(destination, "id", destination), exc)
            return False
        return True

    async def _resolve_member(self, guild: discord.Guild, user_id: int) -> discord.Member | None:
        member = guild.get_member(user_id)
        if member is not None:
            return member
        try:
            return await guild.fetch_member(user_id)
        except discord.HTTPException:
            return None

    async def _make_transcript(self, channel: discord.TextChannel) -> Path | None:
        try:
            return await self.bot.transcript_service.generate(
                channel, title=self.t("transcript.header", channel=channel.name)
            )
        except (discord.HTTPException, OSError) as exc:
            LOGGER.warning("Transcript for channel %s failed: %s", channel.id, exc, extra={"channel_id": channel.id})
        except Exception:
            LOGGER.exception("Transcript for channel %s crashed", channel.id, extra={"channel_id": channel.id})
        return None

    def intro_embed(self, ticket: Ticket, owner: discord.abc.User) -> discord.Embed:
        return info_embed(
            self.t("ticket.intro.title", category=ticket.category),
            self.t("ticket.intro.body", user=owner.mention, topic=ticket.topic or self.t("ticket.topic_missing")),
            footer=self.t("ticket.footer", ticket_id=ticket.id),
        )

    async def open_ticket(self, interaction: discord.Interaction, topic: str | None) -> None:
        category_index = await self.bot.pending_selections.consume(interaction.user.id)
        if category_index is None:
            raise ValidationError("error.selection_expired")
        guild = interaction.guild
        member = interaction.user
        if guild is None or not isinstance(member, discord.Member):
            raise ValidationError("error.guild_only")

        await interaction.response.defer(ephemeral=True, thinking=True)
        try:
            channel, ticket = await self.bot.ticket_service.create_ticket(guild, member, category_index, topic)
            await channel.send(
                content=member.mention,
                embed=self.intro_embed(ticket, member),
                view=build_ticket_controls(ticket.id, self.bot.i18n),
            )
        except (TicketCreationError, discord.HTTPException):
            LOGGER.exception("Ticket creation failed", extra={"guild_id": guild.id, "user_id": member.id})
            await interaction.edit_original_response(
                embed=error_embed(self.t("error.title"), self.t("error.create_failed"))
            )
            return

        await self._post(
            await self._staff_log_channel(guild),
            embed=info_embed(
                self.t("log.opened.title"),
                self.t("log.opened.body", channel=channel.mention, user=member.mention, category=ticket.category),
            ),
        )
        url = f"https://discord.com/channels/{guild.id}/{channel.id}"
        await interaction.edit_original_response(
            embed=success_embed(
                self.t("ticket.opened.title"),
                self.t("ticket.opened.body", channel=channel.mention, url=url),
                footer=self.t("ticket.footer", ticket_id=ticket.id),
            )
        )

    async def dispatch(self, interaction: discord.Interaction, action: TicketAction, ticket_id: int) -> None:
        handlers: dict[TicketAction, ActionHandler] = {
            TicketAction.CLAIM: self.claim,
            TicketAction.UNCLAIM: self.unclaim,
            TicketAction.CLOSE: self.close,
            TicketAction.TRANSCRIPT: self.send_transcript,
        }
        ticket = await self.bot.ticket_service.get_ticket(ticket_id)
        await handlers[action](interaction, ticket)

    async def claim(self, interaction: discord.Interaction, ticket: Ticket) -> None:
        await self.bot.ticket_service.claim_ticket(ticket, interaction.user)
        embed = success_embed(self.t("claim.notice.title"), self.t("claim.notice.body", user=interaction.user.mention))
        await self._post(self._ticket_channel(ticket), embed=embed)
        await interaction.response.send_message(embed=embed, ephemeral=True)

    async def unclaim(self, interaction: discord.Interaction, ticket: Ticket) -> None:
        await self.bot.ticket_service.unclaim_ticket(ticket, interaction.user)
        embed = action_embed(
            self.t("unclaim.notice.title"), self.t("unclaim.notice.body", user=interaction.user.mention)
        )
        await self._post(self._ticket_channel(ticket), embed=embed)
        await interaction.response.send_message(embed=embed, ephemeral=True)

    async def close(self, interaction: discord.Interaction, ticket: Ticket) -> None:
        job = await self.bot.ticket_service.close_ticket(ticket, interaction.user)
        seconds = self.close_delay_seconds
        await interaction.response.send_message(
            embed=success_embed(self.t("close.started.title"), self.t("close.started.body", seconds=seconds)),
            ephemeral=True,
        )
        await self._post(
            self._ticket_channel(ticket),
            embed=action_embed(self.t("close.notice.title"), self.t("close.notice.body", seconds=seconds)),
        )
        self.arm_close(job)

    def is_armed(self, job_id: int) -> bool:
        return job_id in self._close_tasks

    def arm_close(self, job: CloseJob) -> None:
        if self.is_armed(job.id):
            return
        task = asyncio.create_task(self._run_when_due(job), name=f"close-job-{job.id}")
        self._close_tasks[job.id] = task
        task.add_done_callback(lambda _: self._close_tasks.pop(job.id, None))

    async def _run_when_due(self, job: CloseJob) -> None:
        await asyncio.sleep(seconds_until(job.run_at))
        try:
            await self.run_close_job(job)
        except Exception:
            LOGGER.exception("Armed close job failed", extra={"job_id": job.id, "ticket_id": job.ticket_id})

    async def run_close_job(self, job: CloseJob) -> None:
        log_extra = {"job_id": job.id, "ticket_id": job.ticket_id, "channel_id": job.channel_id}
        if not await self.bot.close_jobs.claim(job.id):
            LOGGER.debug("Close job already taken", extra=log_extra)
            return
        try:
            deleted = await self.finalize_close(job)
        except Exception as exc:
            LOGGER.exception("Close job crashed", extra=log_extra)
            await self.bot.close_jobs.mark_failed(job.id, str(exc) or type(exc).__name__)
            return
        if deleted:
            await self.bot.close_jobs.mark_done(job.id)
            LOGGER.info("Ticket archived", extra=log_extra)
        else:
            await self.bot.close_jobs.mark_failed(job.id, "channel_delete_failed")

    async def finalize_close(self, job: CloseJob) -> bool:
        """Archive and delete the ticket channel.

        Transcript delivery and the owner DM are independent best-effort
        steps; deletion is attempted regardless. Returns ``False`` only when
        the channel still exists afterwards.
        """
        guild = self.bot.get_guild(job.guild_id)
        channel = guild.get_channel(job.channel_id) if guild else None
        if guild is None or channel is None:
            LOGGER.info("Ticket channel already gone", extra={"job_id": job.id, "channel_id": job.channel_id})
            return True

        path = await self._make_transcript(channel)
        if path is not None:
            await self._deliver_transcript(guild, channel, job, path)

        try:
            await channel.delete(reason=self.t("close.delete_reason"))
        except discord.HTTPException as exc:
            LOGGER.error(
                "Could not delete ticket channel: %s",
                exc,
                extra={"job_id": job.id, "ticket_id": job.ticket_id, "channel_id": job.channel_id},
            )
            await self._post(
                await self._staff_log_channel(guild),
                embed=error_embed(self.t("close.failed.title"), self.t("close.failed.body", ticket_id=job.ticket_id)),
            )
            return False
        return True

    async def _deliver_transcript(
        self, guild: discord.Guild, channel: discord.TextChannel, job: CloseJob, path: Path
    ) -> None:
        log_extra = {"job_id": job.id, "ticket_id": job.ticket_id, "channel_id": job.channel_id}
        try:
            await self._post(
                await self._staff_log_channel(guild),
                embed=info_embed(
                    self.t("transcript.log.title"),
                    self.t("transcript.log.body", channel=channel.name, ticket_id=job.ticket_id),
                ),
                file=discord.File(path),
            )
        except Exception:
            LOGGER.exception("Transcript delivery to staff log failed", extra=log_extra)

        try:
            ticket = await self.bot.ticket_repo.get_by_id(job.ticket_id)
            owner = await self._resolve_member(guild, ticket.owner_id) if ticket else None
            await self._post(
                owner,
                embed=info_embed(self.t("transcript.dm.title"), self.t("transcript.dm.body", channel=channel.name)),
                file=discord.File(path),
            )
        except Exception:
            LOGGER.exception("Transcript DM to ticket owner failed", extra=log_extra)

    async def send_transcript(self, interaction: discord.Interaction, ticket: Ticket) -> None:
        self.bot.ticket_service.require_staff(interaction.user)
        channel = self._ticket_channel(ticket)
        if channel is None:
            raise TicketNotFoundError("error.channel_not_found")

        await interaction.response.send_message(
            embed=info_embed(self.t("transcript.pending.title"), self.t("transcript.pending.body")),
            ephemeral=True,
        )
        path = await self._make_transcript(channel)
        if path is None:
            await interaction.followup.send(
                embed=error_embed(self.t("error.title"), self.t("error.transcript_failed")), ephemeral=True
            )
            return

        embed = info_embed(self.t("transcript.pending.title"), self.t("transcript.manual.body", channel=channel.name))
        log_channel = await self._staff_log_channel(interaction.guild)
        if log_channel is not None and await self._post(log_channel, embed=embed, file=discord.File(path)):
            return
        if not await self._post(interaction.user, embed=embed, file=discord.File(path)):
            await interaction.followup.send(
                embed=error_embed(self.t("error.title"), self.t("error.dm_failed")), ephemeral=True
            )

    async def rename(self, interaction: discord.Interaction, channel: discord.TextChannel, name: str) -> None:
        new_name = await self.bot.ticket_service.rename_ticket(channel, interaction.user, name)
        await interaction.response.send_message(
            embed=success_embed(self.t("rename.done.title"), self.t("rename.done.body", name=new_name)),
            ephemeral=True,
        )

    async def add_member(
        self, interaction: discord.Interaction, channel: discord.TextChannel, target: discord.abc.User
    ) -> None:
        await self.bot.ticket_service.add_member(channel, interaction.user, target)
        await self._post(
            channel,
            embed=info_embed(
                self.t("member.added.title"),
                self.t("member.added.body", user=target.mention, actor=interaction.user.mention),
            ),
        )
        await interaction.response.send_message(
            embed=success_embed(self.t("member.added.title"), self.t("member.added.reply", user=target.mention)),
            ephemeral=True,
        )

    async def remove_member(
        self, interaction: discord.Interaction, channel: discord.TextChannel, target: discord.abc.User
    ) -> None:
        await self.bot.ticket_service.remove_member(channel, interaction.user, target)
        await self._post(
            channel,
            embed=info_embed(
                self.t("member.removed.title"),
                self.t("member.removed.body", user=target.mention, actor=interaction.user.mention),
            ),
        )
        await interaction.response.send_message(
            embed=success_embed(
                self.t("member.removed.title"), self.t("member.removed.reply", user=target.mention)
            ),
            ephemeral=True,
        )
