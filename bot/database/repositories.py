from __future__ import annotations

from typing import Any

from database.base import Database
from database.models import Ticket
from utils.constants import TICKET_STATUS_CLOSED, TICKET_STATUS_OPEN, TICKET_STATUSES
from utils.time import to_iso, utc_now


def _now_iso() -> str:
    return to_iso(utc_now()) or ""


def _optional_int(value: Any) -> int | None:
    return int(value) if value is not None else None


class TicketRepository:
    def __init__(self, db: Database) -> None:
        self.db = db

    async def create(
        self,
        guild_id: int,
        channel_id: int,
        owner_id: int,
        category: str,
        topic: str | None,
    ) -> int:
        return await self.db.insert(
            """
            INSERT INTO tickets(guild_id, channel_id, owner_id, claimed_by_id, status, category, topic, created_at)
            VALUES (?, ?, ?, NULL, ?, ?, ?, ?);
            """,
            [guild_id, channel_id, owner_id, TICKET_STATUS_OPEN, category, topic, _now_iso()],
        )

    async def get_by_id(self, ticket_id: int) -> Ticket | None:
        row = await self.db.fetchone("SELECT * FROM tickets WHERE id = ?;", [ticket_id])
        if not row:
            return None
        return self._row_to_ticket(row)

    async def get_by_channel(self, channel_id: int) -> Ticket | None:
        row = await self.db.fetchone(
            """
            SELECT * FROM tickets
            WHERE channel_id = ?
            ORDER BY CASE status WHEN 'open' THEN 0 ELSE 1 END, id DESC
            LIMIT 1;
            """,
            [channel_id],
        )
        if not row:
            return None
        return self._row_to_ticket(row)

    async def list_open(self, guild_id: int, limit: int = 100) -> list[Ticket]:
        rows = await self.db.fetchall(
            """
            SELECT * FROM tickets
            WHERE guild_id = ? AND status = ?
            ORDER BY id DESC
            LIMIT ?;
            """,
            [guild_id, TICKET_STATUS_OPEN, limit],
        )
        return [self._row_to_ticket(row) for row in rows]

    async def set_claim(self, ticket_id: int, user_id: int | None) -> None:
        await self.db.execute(
            "UPDATE tickets SET claimed_by_id = ? WHERE id = ?;",
            [user_id, ticket_id],
        )

    async def set_status(self, ticket_id: int, status: str, closed_by_id: int | None = None) -> bool:
        """Move a ticket forward to ``status``.

        Closed rows are never touched again, so the call returns ``False`` both
        for repeated closes and for attempts to reopen.
        """
        if status not in TICKET_STATUSES:
            raise ValueError(f"Unknown ticket status: {status}")
        if status != TICKET_STATUS_CLOSED:
            return False
        changed = await self.db.execute(
            """
            UPDATE tickets
            SET status = ?, closed_by_id = ?, closed_at = ?
            WHERE id = ? AND status != ?;
            """,
            [TICKET_STATUS_CLOSED, closed_by_id, _now_iso(), ticket_id, TICKET_STATUS_CLOSED],
        )
        return changed > 0

    @staticmethod
    def _row_to_ticket(row: dict[str, Any]) -> Ticket:
        return Ticket(
            id=int(row["id"]),
            guild_id=int(row["guild_id"]),
            channel_id=int(row["channel_id"]),
            owner_id=int(row["owner_id"]),
            category=row["category"],
            topic=row["topic"],
            status=row["status"],
            claimed_by_id=_optional_int(row["claimed_by_id"]),
            closed_by_id=_optional_int(row["closed_by_id"]),
            closed_at=row["closed_at"],
            created_at=row["created_at"],
        )
