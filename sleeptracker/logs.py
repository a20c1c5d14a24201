"""
操作日志（operation_log）
每次 start / stop / clear / 打分 / 配置变更都写一行，记录变更前后的睡眠记录快照，
供 /api/logs 与单条记录的历史查询使用。
"""
from __future__ import annotations

import datetime as dt
import json
import time
from sqlite3 import Connection
from typing import Any, Optional

RECORD_ENTITY = "sleep_record"

DDL = """
CREATE TABLE IF NOT EXISTS operation_log (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  ts TEXT NOT NULL,
  user TEXT NOT NULL,
  action TEXT NOT NULL,
  entity_type TEXT,
  entity_id TEXT,
  before_json TEXT,
  after_json TEXT,
  payload_json TEXT,
  result TEXT,
  err_msg TEXT,
  latency_ms INTEGER
);
CREATE INDEX IF NOT EXISTS idx_log_ts ON operation_log(ts);
CREATE INDEX IF NOT EXISTS idx_log_entity ON operation_log(entity_type, entity_id);
"""

_INSERT = """INSERT INTO operation_log
(ts,user,action,entity_type,entity_id,before_json,after_json,payload_json,result,err_msg,latency_ms)
VALUES(?,?,?,?,?,?,?,?,?,?,?)"""


def ensure_log_schema(conn: Connection):
    conn.executescript(DDL)


def _dump(obj: Any) -> Optional[str]:
    return None if obj is None else json.dumps(obj, ensure_ascii=False)


class LogContext:
    """一次操作的日志上下文：先收集快照，操作结束后 write 落库"""

    def __init__(self, action: str, user: str = "owner"):
        self.action = action
        self.user = user
        self.started = time.perf_counter()
        self.entity_id: Optional[str] = None
        self.before = None
        self.after = None
        self.payload = None

    def set_records(self, before, after):
        """记录一条睡眠记录的前后快照；任一侧可以为 None（新建时没有 before）"""
        night = after if after is not None else before
        self.entity_id = str(night.id)
        self.before = before.to_dict() if before is not None else None
        self.after = after.to_dict() if after is not None else None

    def set_before(self, obj): self.before = obj
    def set_after(self, obj): self.after = obj
    def set_payload(self, obj): self.payload = obj

    def write(self, conn: Connection, result: str = "OK", err: Optional[str] = None):
        entity_type = RECORD_ENTITY if self.entity_id is not None else None
        conn.execute(_INSERT, (
            dt.datetime.now().astimezone().isoformat(),
            self.user,
            self.action,
            entity_type,
            self.entity_id,
            _dump(self.before),
            _dump(self.after),
            _dump(self.payload),
            result,
            err,
            int((time.perf_counter() - self.started) * 1000),
        ))


def search_logs(conn: Connection, q: str | None, action: str | None, ts_from: str | None, ts_to: str | None,
                page: int, size: int, night_id: int | None = None):
    """分页查询，id 倒序；night_id 只返回该条睡眠记录的历史"""
    filters = [
        ("entity_type = ? AND entity_id = ?", (RECORD_ENTITY, str(night_id)) if night_id is not None else None),
        ("(payload_json LIKE ? OR before_json LIKE ? OR after_json LIKE ?)", (f"%{q}%",) * 3 if q else None),
        ("action = ?", (action,) if action else None),
        ("ts >= ?", (ts_from,) if ts_from else None),
        ("ts <= ?", (ts_to,) if ts_to else None),
    ]
    clauses, params = [], []
    for clause, args in filters:
        if args is not None:
            clauses.append(clause)
            params.extend(args)
    wh = " WHERE " + " AND ".join(clauses) if clauses else ""
    total = conn.execute(f"SELECT COUNT(1) AS cnt FROM operation_log{wh}", params).fetchone()["cnt"]
    rows = conn.execute(
        f"SELECT * FROM operation_log{wh} ORDER BY id DESC LIMIT ? OFFSET ?",
        [*params, size, (page - 1) * size],
    ).fetchall()
    return total, [dict(r) for r in rows]
