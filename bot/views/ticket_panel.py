from __future__ import annotations

from typing import TYPE_CHECKING, Any

import discord

from core.errors import ValidationError, handle_interaction_error
from utils.constants import CATEGORY_SELECT_ID, TOPIC_INPUT_ID, TOPIC_MODAL_ID

if TYPE_CHECKING:
    from core.bot import TicketBot

_TOPIC_MAX_LENGTH = 100


class TicketTopicModal(discord.ui.Modal):
    def __init__(self, bot: TicketBot) -> None:
        super().__init__(title=bot.i18n.t("modal.title")[:45], timeout=None, custom_id=TOPIC_MODAL_ID)
        self.bot = bot
        self.topic = discord.ui.TextInput(
            label=bot.i18n.t("modal.topic_label")[:45],
            placeholder=bot.i18n.t("modal.topic_placeholder")[:100],
            style=discord.TextStyle.short,
            required=False,
            max_length=_TOPIC_MAX_LENGTH,
            custom_id=TOPIC_INPUT_ID,
        )
        self.add_item(self.topic)

    async def on_submit(self, interaction: discord.Interaction) -> None:
        topic = str(self.topic.value or "").strip() or None
        await self.bot.workflow.open_ticket(interaction, topic)

    async def on_error(self, interaction: discord.Interaction, error: Exception) -> None:
        await handle_interaction_error(interaction, error)


class TicketCategorySelect(discord.ui.Select["TicketPanelView"]):
    def __init__(self, bot: TicketBot) -> None:
        options = [
            discord.SelectOption(label=label if len(label) <= 100 else f"{label[:97]}...", value=str(index))
            for index, label in enumerate(bot.config.tickets.categories)
        ]
        super().__init__(
            placeholder=bot.i18n.t("panel.placeholder")[:150],
            options=options,
            min_values=1,
            max_values=1,
            custom_id=CATEGORY_SELECT_ID,
        )
        self.bot = bot

    async def callback(self, interaction: discord.Interaction) -> None:
        try:
            category_index = int(self.values[0])
        except (IndexError, ValueError) as exc:
            raise ValidationError("error.invalid_input") from exc
        await self.bot.pending_selections.remember(interaction.user.id, category_index)
        await interaction.response.send_modal(TicketTopicModal(self.bot))


class TicketPanelView(discord.ui.View):
    """Persistent panel; survives restarts because every custom id is static."""

    def __init__(self, bot: TicketBot) -> None:
        super().__init__(timeout=None)
        self.bot = bot
        self.add_item(TicketCategorySelect(bot))

    async def on_error(self, interaction: discord.Interaction, error: Exception, item: discord.ui.Item[Any]) -> None:
        await handle_interaction_error(interaction, error)
