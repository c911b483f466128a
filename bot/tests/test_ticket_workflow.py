from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from core.config import AppConfig, DiscordConfig, TicketConfig
from core.errors import PermissionDeniedError, TicketStateError, ValidationError
from database.base import Database
from database.repositories import TicketRepository
from services.cache import MemoryCache
from services.close_jobs import CloseJobService
from services.pending_selection import PendingSelectionStore
from services.ticket_service import TicketService, TicketServiceDeps
from services.ticket_workflow import TicketWorkflow
from utils.constants import JOB_STATUS_COMPLETED, JOB_STATUS_FAILED, TICKET_STATUS_CLOSED
from utils.custom_ids import TicketAction
from utils.i18n import I18N
from views.ticket_controls import TicketActionButton

ROOT = Path(__file__).resolve().parents[1]
LOCALES_DIR = ROOT / "config" / "locales"
STAFF_LOG_ID = 777


def _http_error(cls: type[discord.HTTPException] = discord.HTTPException, status: int = 500):
    return cls(SimpleNamespace(status=status, reason="error"), "error")


def _bot(
    database: Database, tmp_path: Path, *, staff_log: bool = False, close_delay: int = 0
) -> SimpleNamespace:
    config = AppConfig(
        discord=DiscordConfig(token="x"),
        tickets=TicketConfig(
            staff_role_name="Staff",
            staff_log_channel_id=STAFF_LOG_ID if staff_log else None,
            close_delay_seconds=close_delay,
        ),
    )
    ticket_repo = TicketRepository(database)
    close_jobs = CloseJobService(database)
    transcript_path = tmp_path / "transcript.txt"
    transcript_path.write_text("log", encoding="utf-8")
    bot = SimpleNamespace(
        database=database,
        config=config,
        i18n=I18N(LOCALES_DIR, "nl-NL", ["nl-NL", "en-US"]),
        ticket_repo=ticket_repo,
        close_jobs=close_jobs,
        pending_selections=PendingSelectionStore(MemoryCache(), ttl_seconds=300),
        ticket_service=TicketService(config, TicketServiceDeps(ticket_repo=ticket_repo, close_jobs=close_jobs)),
        transcript_service=SimpleNamespace(generate=AsyncMock(return_value=transcript_path)),
        get_channel=MagicMock(return_value=None),
        get_guild=MagicMock(return_value=None),
        fetch_channel=AsyncMock(side_effect=_http_error(discord.NotFound, 404)),
    )
    bot.workflow = TicketWorkflow(bot)
    return bot


def _member(user_id: int, *, staff: bool = False) -> MagicMock:
    member = MagicMock(spec=discord.Member)
    member.id = user_id
    member.name = f"user{user_id}"
    member.nick = None
    member.mention = f"<@{user_id}>"
    member.guild_permissions = SimpleNamespace(administrator=False)
    member.roles = [SimpleNamespace(name="Staff" if staff else "Member")]
    member.send = AsyncMock()
    return member


def _interaction(user: MagicMock, guild: object | None = None) -> MagicMock:
    interaction = MagicMock()
    interaction.user = user
    interaction.guild = guild
    interaction.response.send_message = AsyncMock()
    interaction.response.defer = AsyncMock()
    interaction.response.is_done = MagicMock(return_value=False)
    interaction.edit_original_response = AsyncMock()
    interaction.followup.send = AsyncMock()
    return interaction


def _ticket_channel(channel_id: int) -> MagicMock:
    channel = MagicMock()
    channel.id = channel_id
    channel.name = "donaties-user100"
    channel.mention = f"<#{channel_id}>"
    channel.send = AsyncMock()
    channel.delete = AsyncMock()
    return channel


def _guild(channels: dict[int, object], members: dict[int, object]) -> MagicMock:
    guild = MagicMock()
    guild.id = 1
    guild.get_channel = MagicMock(side_effect=channels.get)
    guild.get_member = MagicMock(side_effect=members.get)
    guild.fetch_member = AsyncMock(side_effect=_http_error(discord.NotFound, 404))
    return guild


async def _closing_ticket(bot: SimpleNamespace, channel_id: int = 10):
    ticket_id = await bot.ticket_repo.create(1, channel_id, 100, "Donaties", None)
    ticket = await bot.ticket_repo.get_by_id(ticket_id)
    job = await bot.ticket_service.close_ticket(ticket, _member(300, staff=True))
    return ticket, job


@pytest.mark.asyncio
async def test_transcript_failure_still_deletes_channel(database: Database, tmp_path: Path) -> None:
    bot = _bot(database, tmp_path)
    ticket, job = await _closing_ticket(bot)
    channel = _ticket_channel(ticket.channel_id)
    owner = _member(100)
    bot.get_guild.return_value = _guild({ticket.channel_id: channel}, {100: owner})
    bot.transcript_service.generate.side_effect = OSError("disk full")

    await bot.workflow.run_close_job(job)

    channel.delete.assert_awaited_once()
    owner.send.assert_not_awaited()
    assert (await bot.close_jobs.get(job.id)).status == JOB_STATUS_COMPLETED
    assert (await bot.ticket_repo.get_by_id(ticket.id)).status == TICKET_STATUS_CLOSED


@pytest.mark.asyncio
async def test_unexpected_transcript_error_still_deletes_channel(database: Database, tmp_path: Path) -> None:
    bot = _bot(database, tmp_path, staff_log=True)
    ticket, job = await _closing_ticket(bot)
    channel = _ticket_channel(ticket.channel_id)
    log_channel = _ticket_channel(STAFF_LOG_ID)
    bot.get_guild.return_value = _guild({ticket.channel_id: channel, STAFF_LOG_ID: log_channel}, {})
    bot.transcript_service.generate.side_effect = RuntimeError("connection reset while paging history")

    await bot.workflow.run_close_job(job)

    channel.delete.assert_awaited_once()
    log_channel.send.assert_not_awaited()
    assert (await bot.close_jobs.get(job.id)).status == JOB_STATUS_COMPLETED


@pytest.mark.asyncio
async def test_owner_lookup_error_does_not_block_log_or_delete(database: Database, tmp_path: Path) -> None:
    bot = _bot(database, tmp_path, staff_log=True)
    ticket, job = await _closing_ticket(bot)
    channel = _ticket_channel(ticket.channel_id)
    log_channel = _ticket_channel(STAFF_LOG_ID)
    bot.get_guild.return_value = _guild({ticket.channel_id: channel, STAFF_LOG_ID: log_channel}, {})
    bot.ticket_repo = SimpleNamespace(get_by_id=AsyncMock(side_effect=RuntimeError("database is locked")))

    await bot.workflow.run_close_job(job)

    log_channel.send.assert_awaited_once()
    channel.delete.assert_awaited_once()
    assert (await bot.close_jobs.get(job.id)).status == JOB_STATUS_COMPLETED


@pytest.mark.asyncio
async def test_armed_close_logs_storage_errors(
    database: Database, tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    bot = _bot(database, tmp_path)
    _, job = await _closing_ticket(bot)
    bot.close_jobs = SimpleNamespace(claim=AsyncMock(side_effect=RuntimeError("disk I/O error")))

    bot.workflow.arm_close(job)
    task = bot.workflow._close_tasks[job.id]
    await task

    assert task.exception() is None
    assert "Armed close job failed" in caplog.text


@pytest.mark.asyncio
async def test_closed_dms_are_swallowed(database: Database, tmp_path: Path) -> None:
    bot = _bot(database, tmp_path, staff_log=True)
    ticket, job = await _closing_ticket(bot)
    channel = _ticket_channel(ticket.channel_id)
    log_channel = _ticket_channel(STAFF_LOG_ID)
    owner = _member(100)
    owner.send.side_effect = _http_error(discord.Forbidden, 403)
    bot.get_guild.return_value = _guild({ticket.channel_id: channel, STAFF_LOG_ID: log_channel}, {100: owner})

    await bot.workflow.run_close_job(job)

    log_channel.send.assert_awaited_once()
    assert isinstance(log_channel.send.await_args.kwargs["file"], discord.File)
    owner.send.assert_awaited_once()
    channel.delete.assert_awaited_once()
    assert (await bot.close_jobs.get(job.id)).status == JOB_STATUS_COMPLETED


@pytest.mark.asyncio
async def test_delete_failure_is_reported_to_staff_log(database: Database, tmp_path: Path) -> None:
    bot = _bot(database, tmp_path, staff_log=True)
    ticket, job = await _closing_ticket(bot)
    channel = _ticket_channel(ticket.channel_id)
    channel.delete.side_effect = _http_error(discord.Forbidden, 403)
    log_channel = _ticket_channel(STAFF_LOG_ID)
    bot.get_guild.return_value = _guild({ticket.channel_id: channel, STAFF_LOG_ID: log_channel}, {})

    await bot.workflow.run_close_job(job)

    assert log_channel.send.await_count == 2
    failure_embed = log_channel.send.await_args.kwargs["embed"]
    assert str(ticket.id) in failure_embed.description
    assert (await bot.close_jobs.get(job.id)).status == JOB_STATUS_FAILED


@pytest.mark.asyncio
async def test_missing_channel_completes_job(database: Database, tmp_path: Path) -> None:
    bot = _bot(database, tmp_path)
    _, job = await _closing_ticket(bot)
    bot.get_guild.return_value = _guild({}, {})

    await bot.workflow.run_close_job(job)

    bot.transcript_service.generate.assert_not_awaited()
    assert (await bot.close_jobs.get(job.id)).status == JOB_STATUS_COMPLETED


@pytest.mark.asyncio
async def test_job_runs_only_once(database: Database, tmp_path: Path) -> None:
    bot = _bot(database, tmp_path)
    ticket, job = await _closing_ticket(bot)
    channel = _ticket_channel(ticket.channel_id)
    bot.get_guild.return_value = _guild({ticket.channel_id: channel}, {})

    await bot.workflow.run_close_job(job)
    await bot.workflow.run_close_job(job)

    channel.delete.assert_awaited_once()


@pytest.mark.asyncio
async def test_close_button_flow_deletes_channel_after_delay(database: Database, tmp_path: Path) -> None:
    bot = _bot(database, tmp_path, close_delay=0)
    ticket_id = await bot.ticket_repo.create(1, 10, 100, "Donaties", None)
    channel = _ticket_channel(10)
    bot.get_channel.return_value = channel
    bot.get_guild.return_value = _guild({10: channel}, {100: _member(100)})
    interaction = _interaction(_member(300, staff=True))

    await bot.workflow.dispatch(interaction, TicketAction.CLOSE, ticket_id)

    assert (await bot.ticket_repo.get_by_id(ticket_id)).status == TICKET_STATUS_CLOSED
    interaction.response.send_message.assert_awaited_once()
    assert interaction.response.send_message.await_args.kwargs["ephemeral"] is True
    notice = channel.send.await_args.kwargs["embed"]
    assert "0" in notice.description

    job = await bot.close_jobs.active_for_ticket(ticket_id)
    assert job is not None
    assert bot.workflow.is_armed(job.id)
    await bot.workflow._close_tasks[job.id]

    channel.delete.assert_awaited_once()
    assert (await bot.close_jobs.get(job.id)).status == JOB_STATUS_COMPLETED
    assert await bot.ticket_repo.get_by_id(ticket_id) is not None


@pytest.mark.asyncio
async def test_expired_selection_is_rejected(database: Database, tmp_path: Path) -> None:
    bot = _bot(database, tmp_path)
    interaction = _interaction(_member(100), guild=MagicMock())

    with pytest.raises(ValidationError) as excinfo:
        await bot.workflow.open_ticket(interaction, "banned by mistake")

    assert excinfo.value.user_message == "error.selection_expired"
    interaction.response.defer.assert_not_awaited()


@pytest.mark.asyncio
async def test_open_ticket_posts_intro_with_four_controls(database: Database, tmp_path: Path) -> None:
    bot = _bot(database, tmp_path)
    owner = _member(100)
    owner.name = "jan"
    created = _ticket_channel(9001)
    guild = MagicMock()
    guild.id = 1
    guild.categories = []
    guild.channels = []
    guild.roles = []
    guild.default_role = MagicMock()
    guild.me = MagicMock()
    guild.create_category = AsyncMock(return_value=SimpleNamespace(id=500, name="Unban Aanvraag Ingame"))
    guild.create_text_channel = AsyncMock(return_value=created)
    interaction = _interaction(owner, guild=guild)
    await bot.pending_selections.remember(owner.id, 2)

    await bot.workflow.open_ticket(interaction, "banned by mistake")

    assert guild.create_text_channel.await_args.kwargs["name"] == "unban-aanvraag-ingame-jan"
    intro = created.send.await_args.kwargs
    assert intro["content"] == "<@100>"
    assert "banned by mistake" in intro["embed"].description
    assert len(intro["view"].children) == 4
    interaction.edit_original_response.assert_awaited_once()
    reply = interaction.edit_original_response.await_args.kwargs["embed"]
    assert "https://discord.com/channels/1/9001" in reply.description

    ticket = await bot.ticket_repo.get_by_channel(9001)
    assert ticket.is_open
    assert ticket.claimed_by_id is None
    assert await bot.pending_selections.consume(owner.id) is None


@pytest.mark.asyncio
async def test_manual_transcript_falls_back_to_dm_notice(database: Database, tmp_path: Path) -> None:
    bot = _bot(database, tmp_path)
    ticket_id = await bot.ticket_repo.create(1, 10, 100, "Donaties", None)
    bot.get_channel.return_value = _ticket_channel(10)
    staff = _member(300, staff=True)
    staff.send.side_effect = _http_error(discord.Forbidden, 403)
    interaction = _interaction(staff, guild=_guild({}, {}))

    await bot.workflow.send_transcript(interaction, await bot.ticket_repo.get_by_id(ticket_id))

    staff.send.assert_awaited_once()
    interaction.followup.send.assert_awaited_once()
    assert (await bot.ticket_repo.get_by_id(ticket_id)).is_open


@pytest.mark.asyncio
async def test_manual_transcript_requires_staff(database: Database, tmp_path: Path) -> None:
    bot = _bot(database, tmp_path)
    ticket_id = await bot.ticket_repo.create(1, 10, 100, "Donaties", None)
    bot.get_channel.return_value = _ticket_channel(10)
    interaction = _interaction(_member(100), guild=_guild({}, {}))

    with pytest.raises(PermissionDeniedError):
        await bot.workflow.send_transcript(interaction, await bot.ticket_repo.get_by_id(ticket_id))

    bot.transcript_service.generate.assert_not_awaited()
    interaction.response.send_message.assert_not_awaited()


@pytest.mark.asyncio
async def test_failed_member_removal_is_not_announced(database: Database, tmp_path: Path) -> None:
    bot = _bot(database, tmp_path)
    await bot.ticket_repo.create(1, 10, 100, "Donaties", None)
    channel = _ticket_channel(10)
    channel.set_permissions = AsyncMock(side_effect=_http_error(discord.Forbidden, 403))
    interaction = _interaction(_member(300, staff=True), guild=_guild({10: channel}, {}))

    with pytest.raises(TicketStateError):
        await bot.workflow.remove_member(interaction, channel, _member(500))

    channel.send.assert_not_awaited()
    interaction.response.send_message.assert_not_awaited()


@pytest.mark.asyncio
async def test_control_button_routes_to_workflow() -> None:
    button = TicketActionButton(TicketAction.CLAIM, 5, label="Claim")
    interaction = MagicMock()
    interaction.client.workflow.dispatch = AsyncMock()

    await button.callback(interaction)

    assert button.item.custom_id == "ticket:claim:5"
    interaction.client.workflow.dispatch.assert_awaited_once_with(interaction, TicketAction.CLAIM, 5)


@pytest.mark.asyncio
async def test_control_button_reports_rejections_privately() -> None:
    button = TicketActionButton(TicketAction.CLOSE, 5)
    interaction = _interaction(_member(200))
    interaction.client.i18n = I18N(LOCALES_DIR, "nl-NL")
    interaction.client.workflow.dispatch = AsyncMock(side_effect=PermissionDeniedError())

    await button.callback(interaction)

    kwargs = interaction.response.send_message.await_args.kwargs
    assert kwargs["ephemeral"] is True
    assert kwargs["embed"].description == "Alleen staff kan deze actie uitvoeren."
