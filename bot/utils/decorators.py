from __future__ import annotations

from collections.abc import Callable
from typing import Any, TypeVar

import discord
from discord import app_commands

from core.errors import PermissionDenied, ValidationError

F = TypeVar("F", bound=Callable[..., Any])


def is_staff(member: Any, staff_role_name: str) -> bool:
    """Administrator permission or a role whose name equals ``staff_role_name``."""
    permissions = getattr(member, "guild_permissions", None)
    if permissions is not None and permissions.administrator:
        return True
    return any(role.name == staff_role_name for role in getattr(member, "roles", []))


def _staff_role_name(interaction: discord.Interaction) -> str:
    return interaction.client.config.tickets.staff_role_name


def panel_manager_only() -> Callable[[F], F]:
    async def predicate(interaction: discord.Interaction) -> bool:
        member = interaction.user
        if not interaction.guild or not isinstance(member, discord.Member):
            raise ValidationError("error.guild_only")
        if member.guild_permissions.manage_guild or is_staff(member, _staff_role_name(interaction)):
            return True
        raise PermissionDenied("error.not_panel_manager")

    return app_commands.check(predicate)
