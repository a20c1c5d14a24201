from __future__ import annotations

import datetime as dt
import os
from sqlite3 import Connection

import pandas as pd

from ..repository.night_repo import TABLE
from .utils import millis_to_datetime, quality_label

REPORT_COLUMNS = ["id", "start", "end", "duration_minutes", "sleep_quality", "quality_label"]
_RAW_COLUMNS = ["id", "start_time_milli", "end_time_milli", "sleep_quality"]


def nights_frame(conn: Connection) -> pd.DataFrame:
    """睡眠记录明细（按开始时间倒序），未结束的记录 end / duration 为空"""
    rows = conn.execute(
        f"SELECT id, start_time_milli, end_time_milli, sleep_quality FROM {TABLE} ORDER BY id DESC"
    ).fetchall()
    df = pd.DataFrame([dict(r) for r in rows], columns=_RAW_COLUMNS)
    if df.empty:
        return pd.DataFrame(columns=REPORT_COLUMNS)

    is_open = df["end_time_milli"] == df["start_time_milli"]
    df["start"] = pd.to_datetime(df["start_time_milli"].map(millis_to_datetime))
    df["end"] = pd.to_datetime(df["end_time_milli"].map(millis_to_datetime)).where(~is_open)
    df["duration_minutes"] = ((df["end_time_milli"] - df["start_time_milli"]) / 60000.0).where(~is_open)
    df["quality_label"] = df["sleep_quality"].map(quality_label)
    return df[REPORT_COLUMNS]


def export_csv(conn: Connection, out_dir: str, date_yyyymmdd: str | None = None) -> str:
    date = date_yyyymmdd or dt.datetime.now().strftime("%Y%m%d")
    os.makedirs(out_dir, exist_ok=True)
    path = os.path.join(out_dir, f"nights_{date}.csv")
    nights_frame(conn).to_csv(path, index=False, encoding="utf-8-sig")
    return path
