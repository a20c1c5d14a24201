"""
睡眠记录数据访问层
负责 daily_sleep_quality 表的建表、插入、更新、查询与清空
"""
from __future__ import annotations

import sqlite3
from sqlite3 import Connection
from typing import Optional, List

from ..domain.night import SleepRecord

SCHEMA_VERSION = 1
TABLE = "daily_sleep_quality"

DDL = f"""
CREATE TABLE IF NOT EXISTS {TABLE} (
    id INTEGER PRIMARY KEY,
    start_time_milli INTEGER NOT NULL,
    end_time_milli INTEGER NOT NULL,
    sleep_quality INTEGER NOT NULL DEFAULT -1
)
"""

_COLUMNS = "id, start_time_milli, end_time_milli, sleep_quality"


class ConstraintError(sqlite3.IntegrityError):
    """Raised when a record with the same key already exists."""


def ensure_schema(conn: Connection):
    """
    建表并写入 schema 版本。

    版本不兼容时直接删表重建（历史数据不保留）。
    """
    current = conn.execute("PRAGMA user_version").fetchone()[0]
    if current not in (0, SCHEMA_VERSION):
        conn.execute(f"DROP TABLE IF EXISTS {TABLE}")
    conn.execute(DDL)
    conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")


def _to_record(row) -> SleepRecord:
    return SleepRecord(
        id=row["id"],
        start_time_millis=row["start_time_milli"],
        end_time_millis=row["end_time_milli"],
        sleep_quality=row["sleep_quality"],
    )


def insert(conn: Connection, night: SleepRecord):
    try:
        conn.execute(
            f"INSERT INTO {TABLE}({_COLUMNS}) VALUES(?, ?, ?, ?)",
            (night.id, night.start_time_millis, night.end_time_millis, night.sleep_quality),
        )
    except sqlite3.IntegrityError as e:
        raise ConstraintError(f"night_exists: {night.id}") from e


def update(conn: Connection, night: SleepRecord) -> int:
    """按主键覆盖整行；不存在时静默跳过，返回受影响行数"""
    cur = conn.execute(
        f"UPDATE {TABLE} SET start_time_milli=?, end_time_milli=?, sleep_quality=? WHERE id=?",
        (night.start_time_millis, night.end_time_millis, night.sleep_quality, night.id),
    )
    return cur.rowcount


def get_one(conn: Connection, key: int) -> Optional[SleepRecord]:
    row = conn.execute(f"SELECT {_COLUMNS} FROM {TABLE} WHERE id=?", (key,)).fetchone()
    return _to_record(row) if row else None


def get_latest(conn: Connection) -> Optional[SleepRecord]:
    row = conn.execute(f"SELECT {_COLUMNS} FROM {TABLE} ORDER BY id DESC LIMIT 1").fetchone()
    return _to_record(row) if row else None


def list_all(conn: Connection) -> List[SleepRecord]:
    rows = conn.execute(f"SELECT {_COLUMNS} FROM {TABLE} ORDER BY id DESC").fetchall()
    return [_to_record(r) for r in rows]


def clear(conn: Connection) -> int:
    cur = conn.execute(f"DELETE FROM {TABLE}")
    return cur.rowcount
