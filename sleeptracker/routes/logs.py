from __future__ import annotations

from fastapi import APIRouter, Request

from ..logs import search_logs

router = APIRouter()


@router.get("/api/logs/search")
async def api_logs_search(
    request: Request,
    page: int = 1,
    size: int = 20,
    action: str | None = None,
    query: str | None = None,
    ts_from: str | None = None,
    ts_to: str | None = None,
):
    db = request.app.state.db
    total, items = await db.run(search_logs, query, action, ts_from, ts_to, page, size)
    return {"total": total, "items": items}
