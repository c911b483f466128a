from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

import discord

from core.config import TranscriptConfig
from utils.constants import TRANSCRIPT_PAGE_SIZE


class TranscriptService:
    def __init__(self, config: TranscriptConfig) -> None:
        self.config = config
        self.base_dir = Path(config.storage_directory)
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, channel_id: int) -> Path:
        return self.base_dir / f"{channel_id}-transcript.txt"

    @staticmethod
    async def fetch_history(channel: discord.abc.Messageable) -> list[discord.Message]:
        """Page backwards through the channel and return messages oldest first."""
        messages: list[discord.Message] = []
        before: discord.Message | None = None
        while True:
            page = [message async for message in channel.history(limit=TRANSCRIPT_PAGE_SIZE, before=before)]
            messages.extend(page)
            if len(page) < TRANSCRIPT_PAGE_SIZE:
                break
            before = page[-1]
        messages.reverse()
        return messages

    async def generate(self, channel: discord.TextChannel, title: str | None = None) -> Path:
        messages = await self.fetch_history(channel)
        path = self.path_for(channel.id)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.render(title or f"Transcript #{channel.name}", messages), encoding="utf-8")
        return path

    @staticmethod
    def render(title: str, messages: Iterable[discord.Message]) -> str:
        lines: list[str] = [title, ""]
        for msg in messages:
            created = msg.created_at.isoformat()
            lines.append(f"[{created}] {msg.author}: {msg.content or ''}")
            for attach in msg.attachments:
                lines.append(f"    attachment: {attach.url}")
        return "\n".join(lines) + "\n"
