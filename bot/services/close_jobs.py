from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from database.base import Database
from database.models import Ticket
from utils.constants import (
    JOB_STATUS_COMPLETED,
    JOB_STATUS_FAILED,
    JOB_STATUS_PENDING,
    JOB_STATUS_RUNNING,
)
from utils.time import parse_iso, to_iso, utc_now


@dataclass(slots=True)
class CloseJob:
    id: int
    ticket_id: int
    guild_id: int
    channel_id: int
    run_at: datetime
    status: str


class CloseJobService:
    """Durable record of scheduled channel deletions.

    A job moves pending -> running -> completed/failed. Only the caller that
    wins :meth:`claim` may execute it, so the in-process timer and the recovery
    loop never delete the same channel twice.
    """

    def __init__(self, db: Database) -> None:
        self.db = db

    @staticmethod
    def _row_to_job(row: dict[str, Any]) -> CloseJob:
        return CloseJob(
            id=int(row["id"]),
            ticket_id=int(row["ticket_id"]),
            guild_id=int(row["guild_id"]),
            channel_id=int(row["channel_id"]),
            run_at=parse_iso(row["run_at"]),
            status=row["status"],
        )

    async def schedule(self, ticket: Ticket, delay_seconds: int) -> CloseJob:
        run_at = utc_now() + timedelta(seconds=delay_seconds)
        job_id = await self.db.insert(
            """
            INSERT INTO close_jobs(ticket_id, guild_id, channel_id, run_at, status, created_at)
            VALUES (?, ?, ?, ?, ?, ?);
            """,
            [ticket.id, ticket.guild_id, ticket.channel_id, to_iso(run_at), JOB_STATUS_PENDING, to_iso(utc_now())],
        )
        return CloseJob(
            id=job_id,
            ticket_id=ticket.id,
            guild_id=ticket.guild_id,
            channel_id=ticket.channel_id,
            run_at=run_at,
            status=JOB_STATUS_PENDING,
        )

    async def get(self, job_id: int) -> CloseJob | None:
        row = await self.db.fetchone("SELECT * FROM close_jobs WHERE id = ?;", [job_id])
        if not row:
            return None
        return self._row_to_job(row)

    async def active_for_ticket(self, ticket_id: int) -> CloseJob | None:
        row = await self.db.fetchone(
            """
            SELECT * FROM close_jobs
            WHERE ticket_id = ? AND status IN (?, ?)
            ORDER BY id DESC
            LIMIT 1;
            """,
            [ticket_id, JOB_STATUS_PENDING, JOB_STATUS_RUNNING],
        )
        if not row:
            return None
        return self._row_to_job(row)

    async def claim(self, job_id: int) -> bool:
        changed = await self.db.execute(
            "UPDATE close_jobs SET status = ? WHERE id = ? AND status = ?;",
            [JOB_STATUS_RUNNING, job_id, JOB_STATUS_PENDING],
        )
        return changed == 1

    async def due_jobs(self) -> list[CloseJob]:
        rows = await self.db.fetchall(
            """
            SELECT * FROM close_jobs
            WHERE status = ?
              AND datetime(run_at) <= datetime(?)
            ORDER BY run_at, id;
            """,
            [JOB_STATUS_PENDING, to_iso(utc_now())],
        )
        return [self._row_to_job(row) for row in rows]

    async def mark_done(self, job_id: int) -> None:
        await self.db.execute(
            "UPDATE close_jobs SET status = ?, finished_at = ? WHERE id = ?;",
            [JOB_STATUS_COMPLETED, to_iso(utc_now()), job_id],
        )

    async def mark_failed(self, job_id: int, reason: str) -> None:
        await self.db.execute(
            "UPDATE close_jobs SET status = ?, error = ?, finished_at = ? WHERE id = ?;",
            [JOB_STATUS_FAILED, reason[:200], to_iso(utc_now()), job_id],
        )

    async def requeue_interrupted(self) -> int:
        """Return jobs left ``running`` by a previous process to ``pending``."""
        return await self.db.execute(
            "UPDATE close_jobs SET status = ? WHERE status = ?;",
            [JOB_STATUS_PENDING, JOB_STATUS_RUNNING],
        )
