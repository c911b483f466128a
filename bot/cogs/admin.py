from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import discord
from discord import app_commands
from discord.ext import commands

from core.bot import TicketBot
from core.errors import ValidationError
from utils.decorators import panel_manager_only
from utils.embeds import error_embed, info_embed, success_embed
from views.ticket_panel import TicketPanelView

LOGGER = logging.getLogger(__name__)


class AdminCog(commands.Cog):
    def __init__(self, bot: TicketBot) -> None:
        self.bot = bot

    def _panel_image(self) -> Path | None:
        raw = self.bot.config.tickets.panel_image_path
        if not raw:
            return None
        path = Path(raw)
        if not path.is_file():
            LOGGER.warning("Panel image %s does not exist, posting panel without it", path)
            return None
        return path

    @app_commands.command(name="setup-ticket-panel", description="Plaats of update het ticket panel (dropdown).")
    @app_commands.guild_only()
    @panel_manager_only()
    async def setup_ticket_panel(self, interaction: discord.Interaction) -> None:
        channel = interaction.channel
        if not isinstance(channel, discord.TextChannel):
            raise ValidationError("error.guild_only")

        t = self.bot.i18n.t
        embed = info_embed(t("panel.title"), t("panel.description"), footer=t("panel.footer"))
        send_kwargs: dict[str, Any] = {"embed": embed, "view": TicketPanelView(self.bot)}
        image = self._panel_image()
        if image is not None:
            send_kwargs["file"] = discord.File(image, filename=image.name)
            embed.set_image(url=f"attachment://{image.name}")

        try:
            await channel.send(**send_kwargs)
        except discord.HTTPException:
            LOGGER.exception("Posting ticket panel failed", extra={"channel_id": channel.id})
            await interaction.response.send_message(
                embed=error_embed(t("error.title"), t("error.panel_failed")), ephemeral=True
            )
            return
        await interaction.response.send_message(
            embed=success_embed(t("panel.posted.title"), t("panel.posted.body", channel=channel.mention)),
            ephemeral=True,
        )


async def setup(bot: TicketBot) -> None:
    await bot.add_cog(AdminCog(bot))
