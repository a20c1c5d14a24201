"""
FastAPI app entry point aggregating per-domain routers under sleeptracker/routes.
Keep as `uvicorn sleeptracker.api:app`.
"""
from __future__ import annotations


from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .db import SleepDatabase
from .logs import LogContext
from .services.tracker_svc import SleepTrackerController


app = FastAPI(title="sleep-tracker-api", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def on_startup():
    # composition root: one store, one controller for the process
    db = SleepDatabase()
    app.state.db = db
    app.state.tracker = SleepTrackerController(db)
    log = LogContext("STARTUP")
    log.set_payload({"db_path": db.path})
    await db.run(log.write, "OK")


@app.on_event("shutdown")
async def on_shutdown():
    tracker = getattr(app.state, "tracker", None)
    if tracker is not None:
        tracker.close()
    db = getattr(app.state, "db", None)
    if db is not None:
        db.close()


# Include routers (split by business domain)
from .routes import base as base_routes
from .routes import tracker as tracker_routes
from .routes import nights as nights_routes
from .routes import settings as settings_routes
from .routes import logs as logs_routes

app.include_router(base_routes.router)
app.include_router(tracker_routes.router)
app.include_router(nights_routes.router)
app.include_router(settings_routes.router)
app.include_router(logs_routes.router)
