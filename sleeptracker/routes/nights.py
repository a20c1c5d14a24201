from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from ..logs import search_logs
from ..services.config_svc import get_config
from ..services.quality_svc import rate_night
from ..services.utils import format_nights, quality_label

router = APIRouter()


class QualityBody(BaseModel):
    quality: int


def _item(night) -> dict:
    it = night.to_dict()
    it["is_open"] = night.is_open
    it["is_rated"] = night.is_rated
    it["quality_label"] = quality_label(night.sleep_quality)
    return it


@router.get("/api/nights")
async def api_nights(request: Request):
    db = request.app.state.db
    nights = await db.get_all()
    cfg = await db.run(get_config)
    return {
        "items": [_item(n) for n in nights],
        "text": format_nights(nights, cfg["date_format"]),
    }


@router.get("/api/nights/{night_id}")
async def api_night_detail(request: Request, night_id: int):
    db = request.app.state.db
    night = await db.get(night_id)
    if night is None:
        raise HTTPException(status_code=404, detail="night_not_found")
    _, history = await db.run(search_logs, None, None, None, None, 1, 50, night_id)
    return {"item": _item(night), "history": history}


@router.post("/api/nights/{night_id}/quality")
async def api_night_rate(request: Request, night_id: int, body: QualityBody):
    db = request.app.state.db
    try:
        night = await rate_night(db, night_id, body.quality)
        return {"message": "ok", "item": _item(night)}
    except ValueError as ve:
        code = 404 if str(ve) == "night_not_found" else 400
        raise HTTPException(status_code=code, detail=str(ve))
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))
