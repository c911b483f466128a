from __future__ import annotations

from dataclasses import asdict

from fastapi import FastAPI, Header, HTTPException, Query

from core.bot import TicketBot
from core.errors import TicketNotFoundError


def _auth(x_api_key: str | None, expected: str) -> None:
    if not expected:
        return
    if x_api_key != expected:
        raise HTTPException(status_code=401, detail="Unauthorized")


def create_api_app(bot: TicketBot) -> FastAPI:
    """Read-only status API served next to the bot when ``fastapi.enabled`` is set."""
    app = FastAPI(title="Ticket Panel Bot API", version="1.0.0")

    @app.get("/health")
    async def health() -> dict[str, object]:
        return {"status": "ok", "database": bot.database.is_connected}

    @app.get("/guilds/{guild_id}/tickets/open")
    async def open_tickets(
        guild_id: int,
        limit: int = Query(default=100, ge=1, le=500),
        x_api_key: str | None = Header(default=None),
    ) -> dict[str, object]:
        _auth(x_api_key, bot.config.fastapi.api_key)
        rows = await bot.ticket_service.list_open_tickets(guild_id=guild_id, limit=limit)
        return {"items": [asdict(row) for row in rows]}

    @app.get("/tickets/{ticket_id}")
    async def ticket_detail(ticket_id: int, x_api_key: str | None = Header(default=None)) -> dict[str, object]:
        _auth(x_api_key, bot.config.fastapi.api_key)
        try:
            ticket = await bot.ticket_service.get_ticket(ticket_id)
        except TicketNotFoundError as exc:
            raise HTTPException(status_code=404, detail="Ticket not found") from exc
        return asdict(ticket)

    return app
