from __future__ import annotations

import re
from typing import Any

import discord

from core.errors import handle_interaction_error
from utils.custom_ids import ACTION_CUSTOM_ID_TEMPLATE, TicketAction, build_action_custom_id

_BUTTON_STYLES = {
    TicketAction.CLAIM: discord.ButtonStyle.primary,
    TicketAction.UNCLAIM: discord.ButtonStyle.secondary,
    TicketAction.CLOSE: discord.ButtonStyle.danger,
    TicketAction.TRANSCRIPT: discord.ButtonStyle.secondary,
}


class TicketActionButton(discord.ui.DynamicItem[discord.ui.Button], template=ACTION_CUSTOM_ID_TEMPLATE):
    """Per-ticket control; the custom id carries the action and the ticket id."""

    def __init__(self, action: TicketAction, ticket_id: int, label: str | None = None) -> None:
        super().__init__(
            discord.ui.Button(
                label=label or action.value.title(),
                style=_BUTTON_STYLES[action],
                custom_id=build_action_custom_id(action, ticket_id),
            )
        )
        self.action = action
        self.ticket_id = ticket_id

    @classmethod
    async def from_custom_id(
        cls, interaction: discord.Interaction, item: discord.ui.Button, match: re.Match[str], /
    ) -> TicketActionButton:
        return cls(TicketAction(match["action"]), int(match["ticket_id"]), label=item.label)

    async def callback(self, interaction: discord.Interaction) -> None:
        try:
            await interaction.client.workflow.dispatch(interaction, self.action, self.ticket_id)
        except Exception as exc:
            await handle_interaction_error(interaction, exc)


def build_ticket_controls(ticket_id: int, i18n: Any) -> discord.ui.View:
    view = discord.ui.View(timeout=None)
    for action in TicketAction:
        view.add_item(TicketActionButton(action, ticket_id, label=i18n.t(f"button.{action.value}")))
    return view
