from __future__ import annotations

from dataclasses import dataclass

from utils.constants import TICKET_STATUS_OPEN


@dataclass(slots=True)
class Ticket:
    id: int
    guild_id: int
    channel_id: int
    owner_id: int
    category: str
    topic: str | None
    status: str
    claimed_by_id: int | None = None
    closed_by_id: int | None = None
    closed_at: str | None = None
    created_at: str | None = None

    @property
    def is_open(self) -> bool:
        return self.status == TICKET_STATUS_OPEN

    @property
    def is_claimed(self) -> bool:
        return self.claimed_by_id is not None
