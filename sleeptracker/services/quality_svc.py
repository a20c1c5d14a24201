from __future__ import annotations

from ..db import SleepDatabase
from ..domain.night import SleepRecord
from ..logs import LogContext
from . import config_svc


async def rate_night(db: SleepDatabase, night_id: int, quality: int) -> SleepRecord:
    """为已结束的睡眠记录打分（0..quality_max）"""
    cfg = await db.run(config_svc.get_config)
    if isinstance(quality, bool) or not isinstance(quality, int) or not (0 <= quality <= cfg["quality_max"]):
        raise ValueError("invalid_quality")

    night = await db.get(night_id)
    if night is None:
        raise ValueError("night_not_found")
    if night.is_open:
        raise ValueError("night_still_open")

    log = LogContext("RATE_NIGHT")
    rated = night.rated(quality)
    log.set_records(night, rated)
    try:
        await db.update(rated)
    except Exception as e:
        await db.run(log.write, "ERROR", str(e))
        raise
    await db.run(log.write, "OK")
    return rated
