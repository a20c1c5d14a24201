# sleeptracker/services/config_svc.py
from sqlite3 import Connection

from ..logs import LogContext
from .utils import to_int_safe

DEFAULTS = {
    # 列表文本投影里的时间格式（strftime）
    "date_format": "%A %Y-%m-%d %H:%M",
    # 评分上限，评分范围为 0..quality_max
    "quality_max": "5",
}

DDL = """
CREATE TABLE IF NOT EXISTS config (
    key TEXT PRIMARY KEY,
    value TEXT
)
"""

def ensure_default_config(conn: Connection):
    """确保关键配置存在（不覆盖已有值）"""
    conn.execute(DDL)
    for k, v in DEFAULTS.items():
        conn.execute(
            "INSERT INTO config(key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO NOTHING",
            (k, v),
        )
    conn.commit()

def get_config(conn: Connection) -> dict:
    rows = conn.execute("SELECT key, value FROM config").fetchall()
    cfg = {r["key"]: r["value"] for r in rows}

    # 转换为正确类型 & 默认兜底
    out = {
        "date_format": cfg.get("date_format") or DEFAULTS["date_format"],
        "quality_max": to_int_safe(cfg.get("quality_max"), int(DEFAULTS["quality_max"])),
    }
    return out

def update_config(conn: Connection, upd: dict, log: LogContext) -> list[str]:
    unknown = [k for k in upd if k not in DEFAULTS]
    if unknown:
        raise ValueError(f"unknown_config_key: {','.join(unknown)}")
    if "quality_max" in upd and to_int_safe(upd["quality_max"], 0) < 1:
        raise ValueError("invalid_quality_max")
    updated = []
    before = {r["key"]: r["value"] for r in conn.execute("SELECT key,value FROM config")}
    for k, v in upd.items():
        conn.execute(
            "INSERT INTO config(key,value) VALUES(?,?) "
            "ON CONFLICT(key) DO UPDATE SET value=excluded.value",
            (k, str(v))
        )
        updated.append(k)
    conn.commit()
    after = {r["key"]: r["value"] for r in conn.execute("SELECT key,value FROM config")}
    log.set_before(before); log.set_after(after)
    return updated
