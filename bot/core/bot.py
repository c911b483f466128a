from __future__ import annotations

import logging
from pathlib import Path

import discord
from discord.ext import commands

from core.config import AppConfig
from core.errors import handle_app_command_error
from database.base import Database
from database.migrations.runner import run_migrations
from database.repositories import TicketRepository
from services.cache import CacheBackend, build_cache
from services.close_jobs import CloseJobService
from services.pending_selection import PendingSelectionStore
from services.ticket_service import TicketService, TicketServiceDeps
from services.ticket_workflow import TicketWorkflow
from services.transcript_service import TranscriptService
from utils.i18n import I18N
from views.ticket_controls import TicketActionButton
from views.ticket_panel import TicketPanelView

LOGGER = logging.getLogger(__name__)


class TicketBot(commands.Bot):
    def __init__(self, config: AppConfig) -> None:
        intents = discord.Intents.default()
        intents.guilds = True
        intents.members = True
        intents.messages = True
        intents.message_content = True

        super().__init__(
            command_prefix=commands.when_mentioned,
            intents=intents,
            application_id=config.discord.application_id,
            allowed_mentions=discord.AllowedMentions(everyone=False, roles=False, users=True, replied_user=False),
            help_command=None,
        )
        self.config = config
        self.root_dir = Path(__file__).resolve().parent.parent
        self.database = Database(url=config.database.url, timeout_seconds=config.database.timeout_seconds)
        self.cache: CacheBackend | None = None
        self.i18n = I18N(
            self.root_dir / "config" / "locales",
            config.i18n.default_locale,
            config.i18n.supported_locales,
        )

        # Repositories and services are initialized during setup_hook.
        self.ticket_repo: TicketRepository
        self.close_jobs: CloseJobService
        self.pending_selections: PendingSelectionStore
        self.ticket_service: TicketService
        self.transcript_service: TranscriptService
        self.workflow: TicketWorkflow

    async def setup_hook(self) -> None:
        await self.database.connect()
        await run_migrations(self.database, self.root_dir / "database" / "migrations")
        self.cache = await build_cache(self.config.redis)

        self.ticket_repo = TicketRepository(self.database)
        self.close_jobs = CloseJobService(self.database)
        self.pending_selections = PendingSelectionStore(
            self.cache, self.config.tickets.pending_selection_ttl_seconds
        )
        self.ticket_service = TicketService(
            self.config,
            TicketServiceDeps(ticket_repo=self.ticket_repo, close_jobs=self.close_jobs),
        )
        self.transcript_service = TranscriptService(self.config.transcripts)
        self.workflow = TicketWorkflow(self)

        requeued = await self.close_jobs.requeue_interrupted()
        if requeued:
            LOGGER.warning("Requeued %s close job(s) interrupted by a restart", requeued)

        self.add_view(TicketPanelView(self))
        self.add_dynamic_items(TicketActionButton)

        for ext in self.config.enabled_extensions:
            try:
                await self.load_extension(ext)
                LOGGER.info("Loaded extension: %s", ext)
            except commands.ExtensionError:
                LOGGER.exception("Failed to load extension: %s", ext)

        self.tree.on_error = handle_app_command_error  # type: ignore[assignment]
        if self.config.discord.sync_commands_on_start:
            await self._register_commands()

    async def _register_commands(self) -> None:
        guild_id = self.config.discord.guild_id
        try:
            if guild_id:
                guild = discord.Object(id=guild_id)
                self.tree.copy_global_to(guild=guild)
                synced = await self.tree.sync(guild=guild)
                LOGGER.info("Synced %s application commands to guild %s", len(synced), guild_id)
            else:
                synced = await self.tree.sync()
                LOGGER.info("Synced %s global application commands (propagation may take up to an hour)", len(synced))
        except discord.HTTPException:
            LOGGER.exception("Command registration failed")

    async def on_ready(self) -> None:
        LOGGER.info("Bot ready as %s (%s)", self.user, self.user.id if self.user else "n/a")
        activity_type = self.config.discord.activity_type.lower()
        if activity_type == "playing":
            activity = discord.Game(name=self.config.discord.status_text)
        elif activity_type == "listening":
            activity = discord.Activity(
                type=discord.ActivityType.listening, name=self.config.discord.status_text
            )
        else:
            activity = discord.Activity(
                type=discord.ActivityType.watching, name=self.config.discord.status_text
            )
        await self.change_presence(status=discord.Status.online, activity=activity)

    async def close(self) -> None:
        await super().close()
        await self.database.close()
        if self.cache:
            await self.cache.close()
