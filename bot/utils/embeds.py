from __future__ import annotations

from datetime import UTC, datetime

import discord

INFO_COLOR = discord.Color(0x5865F2)
SUCCESS_COLOR = discord.Color(0x57F287)
ERROR_COLOR = discord.Color(0xED4245)
ACTION_COLOR = discord.Color(0xFEE75C)


def make_embed(
    title: str,
    description: str,
    color: discord.Color | None = None,
    footer: str | None = None,
) -> discord.Embed:
    resolved_color = color if color is not None else INFO_COLOR
    embed = discord.Embed(
        title=title,
        description=description,
        color=resolved_color,
        timestamp=datetime.now(UTC),
    )
    if footer:
        embed.set_footer(text=footer)
    return embed


def info_embed(title: str, description: str, footer: str | None = None) -> discord.Embed:
    return make_embed(title=title, description=description, color=INFO_COLOR, footer=footer)


def success_embed(title: str, description: str, footer: str | None = None) -> discord.Embed:
    return make_embed(title=title, description=description, color=SUCCESS_COLOR, footer=footer)


def error_embed(title: str, description: str) -> discord.Embed:
    return make_embed(title=title, description=description, color=ERROR_COLOR)


def action_embed(title: str, description: str) -> discord.Embed:
    return make_embed(title=title, description=description, color=ACTION_COLOR)
