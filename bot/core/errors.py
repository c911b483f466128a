from __future__ import annotations

import logging
from typing import Any

import discord
from discord import app_commands

LOGGER = logging.getLogger(__name__)


class BotError(app_commands.AppCommandError):
    """Expected failure shown to the invoking user.

    ``user_message`` is a locale key; ``params`` are substituted into the
    translated template.
    """

    user_message: str = "error.generic"

    def __init__(self, user_message: str | None = None, **params: Any) -> None:
        if user_message is not None:
            self.user_message = user_message
        self.params = params
        super().__init__(self.user_message)


class PermissionDeniedError(BotError):
    user_message = "error.not_staff"


class TicketNotFoundError(BotError):
    user_message = "error.ticket_not_found"


class TicketStateError(BotError):
    user_message = "error.invalid_state"


class TicketCreationError(BotError):
    user_message = "error.create_failed"


class ValidationError(BotError):
    user_message = "error.invalid_input"


PermissionDenied = PermissionDeniedError
TicketNotFound = TicketNotFoundError


def _translate(interaction: discord.Interaction, key: str, **params: Any) -> str:
    i18n = getattr(interaction.client, "i18n", None)
    if i18n is None:
        return key
    return i18n.t(key, **params)


async def send_error_response(interaction: discord.Interaction, message: str) -> None:
    embed = discord.Embed(
        title=_translate(interaction, "error.title"),
        description=message,
        color=discord.Color.red(),
    )
    if interaction.response.is_done():
        await interaction.followup.send(embed=embed, ephemeral=True)
    else:
        await interaction.response.send_message(embed=embed, ephemeral=True)


async def handle_interaction_error(interaction: discord.Interaction, error: Exception) -> None:
    """Last-resort handler for selects, modals and buttons."""
    if isinstance(error, app_commands.CommandInvokeError):
        error = error.original
    if isinstance(error, BotError):
        LOGGER.info(
            "Interaction rejected. reason=%s guild=%s user=%s",
            error.user_message,
            getattr(interaction.guild, "id", None),
            interaction.user.id if interaction.user else None,
        )
        await send_error_response(interaction, _translate(interaction, error.user_message, **error.params))
        return

    LOGGER.exception(
        "Interaction failed. custom_id=%s guild=%s user=%s",
        (interaction.data or {}).get("custom_id"),
        getattr(interaction.guild, "id", None),
        interaction.user.id if interaction.user else None,
        exc_info=error,
    )
    if interaction.response.is_done():
        return
    try:
        await send_error_response(interaction, _translate(interaction, "error.generic"))
    except discord.HTTPException:
        LOGGER.warning("Could not report failure for interaction %s", interaction.id)


async def handle_app_command_error(
    interaction: discord.Interaction, error: app_commands.AppCommandError
) -> None:
    if isinstance(error, app_commands.CommandInvokeError):
        await handle_interaction_error(interaction, error.original)
        return
    if isinstance(error, BotError):
        await handle_interaction_error(interaction, error)
        return

    if isinstance(error, app_commands.CommandOnCooldown):
        message = _translate(interaction, "error.cooldown", seconds=f"{error.retry_after:.1f}")
    elif isinstance(error, app_commands.CheckFailure):
        message = _translate(interaction, "error.not_staff")
    else:
        message = _translate(interaction, "error.generic")

    LOGGER.exception(
        "Slash command failed. command=%s guild=%s user=%s",
        getattr(interaction.command, "qualified_name", None),
        getattr(interaction.guild, "id", None),
        interaction.user.id if interaction.user else None,
        exc_info=error,
    )
    await send_error_response(interaction, message)
