from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path
from types import SimpleNamespace

import pytest

from core.config import TranscriptConfig
from services.transcript_service import TranscriptService


class FakeChannel:
    """Serves ``history`` pages newest first, the way Discord does."""

    def __init__(self, messages: list[SimpleNamespace], channel_id: int = 321, name: str = "pc-checks-jan") -> None:
        self.id = channel_id
        self.name = name
        self._messages = messages
        self.calls: list[tuple[int, int | None]] = []

    async def history(self, *, limit: int, before: SimpleNamespace | None = None):
        self.calls.append((limit, before.id if before else None))
        candidates = [m for m in self._messages if before is None or m.id < before.id]
        for message in list(reversed(candidates))[:limit]:
            yield message


def _messages(count: int) -> list[SimpleNamespace]:
    start = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)
    items = []
    for index in range(count):
        attachments = [SimpleNamespace(url=f"https://cdn.example/{index}.png")] if index % 50 == 0 else []
        items.append(
            SimpleNamespace(
                id=index + 1,
                created_at=start + timedelta(seconds=index),
                author=f"user{index % 3}",
                content=f"message {index}",
                attachments=attachments,
            )
        )
    return items


@pytest.mark.asyncio
async def test_history_is_paged_and_returned_in_send_order(tmp_path: Path) -> None:
    service = TranscriptService(TranscriptConfig(storage_directory=str(tmp_path)))
    channel = FakeChannel(_messages(250))

    messages = await service.fetch_history(channel)

    assert [limit for limit, _ in channel.calls] == [100, 100, 100]
    assert [before for _, before in channel.calls] == [None, 151, 51]
    assert [m.id for m in messages] == list(range(1, 251))


@pytest.mark.asyncio
async def test_exact_page_multiple_needs_one_empty_page(tmp_path: Path) -> None:
    service = TranscriptService(TranscriptConfig(storage_directory=str(tmp_path)))
    channel = FakeChannel(_messages(200))

    messages = await service.fetch_history(channel)

    assert len(channel.calls) == 3
    assert len(messages) == 200


@pytest.mark.asyncio
async def test_generate_writes_one_line_per_message_and_attachment(tmp_path: Path) -> None:
    service = TranscriptService(TranscriptConfig(storage_directory=str(tmp_path / "transcripts")))
    channel = FakeChannel(_messages(250))

    path = await service.generate(channel, title="Transcript van #pc-checks-jan")

    assert path == tmp_path / "transcripts" / "321-transcript.txt"
    lines = path.read_text(encoding="utf-8").splitlines()
    assert lines[0] == "Transcript van #pc-checks-jan"
    assert lines[1] == ""
    body = lines[2:]
    assert len(body) == 250 + 5
    assert body[0] == "[2024-05-01T12:00:00+00:00] user0: message 0"
    assert body[1] == "    attachment: https://cdn.example/0.png"
    assert body[2] == "[2024-05-01T12:00:01+00:00] user1: message 1"
    assert body[-1] == "[2024-05-01T12:04:09+00:00] user0: message 249"


@pytest.mark.asyncio
async def test_regenerating_overwrites_previous_file(tmp_path: Path) -> None:
    service = TranscriptService(TranscriptConfig(storage_directory=str(tmp_path)))

    first = await service.generate(FakeChannel(_messages(3)))
    second = await service.generate(FakeChannel(_messages(1)))

    assert first == second
    lines = second.read_text(encoding="utf-8").splitlines()
    assert lines[0] == "Transcript #pc-checks-jan"
    assert len(lines) == 2 + 1 + 1


@pytest.mark.asyncio
async def test_empty_channel_produces_header_only(tmp_path: Path) -> None:
    service = TranscriptService(TranscriptConfig(storage_directory=str(tmp_path)))

    path = await service.generate(FakeChannel([]), title="Leeg")

    assert path.read_text(encoding="utf-8") == "Leeg\n\n"
