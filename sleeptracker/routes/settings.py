from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from ..logs import LogContext
from ..services.config_svc import get_config, update_config

router = APIRouter()


@router.get("/api/settings/get")
async def api_settings_get(request: Request):
    return await request.app.state.db.run(get_config)


class SettingsUpdateBody(BaseModel):
    updates: dict


@router.post("/api/settings/update")
async def api_settings_update(request: Request, body: SettingsUpdateBody):
    db = request.app.state.db
    log = LogContext("SETTINGS_UPDATE")
    log.set_payload(body.model_dump())
    try:
        updated_keys = await db.run(update_config, body.updates, log)
        await db.run(log.write, "OK")
        tracker = getattr(request.app.state, "tracker", None)
        if tracker is not None:
            tracker.apply_config(await db.run(get_config))
        return {"message": "ok", "updated": updated_keys}
    except ValueError as e:
        await db.run(log.write, "ERROR", str(e))
        raise HTTPException(status_code=400, detail=str(e))
