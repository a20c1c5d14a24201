from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request

from ..services.tracker_svc import SleepTrackerController

router = APIRouter()


def _tracker(request: Request) -> SleepTrackerController:
    return request.app.state.tracker


@router.get("/api/tracker/state")
async def api_tracker_state(request: Request):
    tracker = _tracker(request)
    await tracker.initialized
    return tracker.state()


@router.post("/api/tracker/start")
async def api_tracker_start(request: Request):
    tracker = _tracker(request)
    try:
        night = await tracker.on_start()
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))
    return {"message": "ok" if night else "already_tracking", "state": tracker.state()}


@router.post("/api/tracker/stop")
async def api_tracker_stop(request: Request):
    tracker = _tracker(request)
    try:
        night = await tracker.on_stop()
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))
    return {"message": "ok" if night else "not_tracking", "state": tracker.state()}


@router.post("/api/tracker/clear")
async def api_tracker_clear(request: Request):
    tracker = _tracker(request)
    try:
        await tracker.on_clear()
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))
    return {"message": "ok", "state": tracker.state()}


@router.post("/api/tracker/ack-navigation")
async def api_tracker_ack_navigation(request: Request):
    tracker = _tracker(request)
    tracker.acknowledge_navigation()
    return {"message": "ok", "state": tracker.state()}


@router.post("/api/tracker/ack-notice")
async def api_tracker_ack_notice(request: Request):
    tracker = _tracker(request)
    tracker.acknowledge_notice()
    return {"message": "ok", "state": tracker.state()}
