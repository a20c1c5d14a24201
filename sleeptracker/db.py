from __future__ import annotations

# sleeptracker/db.py
import asyncio
import functools
import logging
import os
import sqlite3
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from typing import Any, Callable, Iterator, List, Optional

import yaml

from .domain.night import SleepRecord
from .logs import ensure_log_schema
from .observable import Observable
from .repository import night_repo
from .services import config_svc

logger = logging.getLogger(__name__)

# DB 路径解析顺序：
# 1) 显式传入的路径
# 2) 环境变量 SLEEP_DB_PATH
# 3) config.yaml 的 test_db_path（当检测到测试环境时）
# 4) config.yaml 的 db_path（生产默认）
# 5) 兜底：项目根 sleep_history.db
_PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
_ROOT_DB = os.path.join(_PROJECT_ROOT, "sleep_history.db")


def _read_config_yaml() -> dict:
    cfg_path = os.path.join(_PROJECT_ROOT, "config.yaml")
    if not os.path.exists(cfg_path):
        return {}
    try:
        with open(cfg_path, "r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning("config.yaml unreadable, using defaults: %s", e)
        return {}
    out = {}
    for k in ("db_path", "test_db_path"):
        v = cfg.get(k)
        if isinstance(v, str) and v.strip():
            # 相对路径以项目根为基准
            out[k] = os.path.join(_PROJECT_ROOT, v.strip())
    return out


def get_db_path(explicit: str | None = None) -> str:
    if explicit:
        path = explicit
    else:
        env_path = os.environ.get("SLEEP_DB_PATH")
        cfg = _read_config_yaml()
        is_test = (os.environ.get("APP_ENV") == "test") or (os.environ.get("PYTEST_CURRENT_TEST") is not None)
        if env_path:
            path = env_path
        elif is_test and cfg.get("test_db_path"):
            path = cfg["test_db_path"]
        else:
            path = cfg.get("db_path") or _ROOT_DB

    if path != ":memory:":
        # 确保目录存在
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    return path


def connect(db_path: str) -> sqlite3.Connection:
    conn = sqlite3.connect(
        db_path,
        detect_types=sqlite3.PARSE_DECLTYPES | sqlite3.PARSE_COLNAMES,
        check_same_thread=False,
        isolation_level=None,
    )
    conn.row_factory = sqlite3.Row
    return conn


@contextmanager
def get_conn(db_path: str | None = None) -> Iterator[sqlite3.Connection]:
    """
    获取一次性 SQLite 连接（脚本 / 报表 / 测试用）。优先使用显式传入的 db_path，否则走 get_db_path()。
    row_factory 为 Row，自动提交。
    """
    conn = connect(get_db_path(db_path))
    try:
        yield conn
    finally:
        conn.close()


def init_db(conn: sqlite3.Connection):
    night_repo.ensure_schema(conn)
    ensure_log_schema(conn)
    config_svc.ensure_default_config(conn)


class SleepDatabase:
    """
    Record store for sleep sessions.

    Owns one connection and a single-worker executor; every statement runs on
    that worker, so writes from different intents are serialized. Coroutines
    resume on the caller's event loop once the worker finishes. `nights`
    mirrors the table ordered by id descending and is republished on the loop
    after every write.
    """

    def __init__(self, db_path: str | None = None):
        self.path = get_db_path(db_path)
        self._conn = connect(self.path)
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="sleep-db")
        self._closed = False
        init_db(self._conn)
        self.nights: Observable[List[SleepRecord]] = Observable(night_repo.list_all(self._conn))
        logger.debug("opened sleep database at %s (%d nights)", self.path, len(self.nights.value))

    async def run(self, fn: Callable[..., Any], *args) -> Any:
        """Run fn(conn, *args) on the writer thread and await the result."""
        if self._closed:
            raise RuntimeError("database_closed")
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, functools.partial(fn, self._conn, *args))

    async def _write(self, fn: Callable[..., Any], *args) -> Any:
        loop = asyncio.get_running_loop()

        def job(conn):
            result = fn(conn, *args)
            rows = night_repo.list_all(conn)
            # publish on the loop even if the awaiting task was cancelled meanwhile
            loop.call_soon_threadsafe(self.nights.set, rows)
            return result

        return await self.run(job)

    async def insert(self, night: SleepRecord):
        logger.debug("insert night %s", night.id)
        await self._write(night_repo.insert, night)

    async def update(self, night: SleepRecord) -> int:
        logger.debug("update night %s", night.id)
        return await self._write(night_repo.update, night)

    async def get(self, key: int) -> Optional[SleepRecord]:
        return await self.run(night_repo.get_one, key)

    async def get_latest(self) -> Optional[SleepRecord]:
        return await self.run(night_repo.get_latest)

    async def get_all(self) -> List[SleepRecord]:
        return await self.run(night_repo.list_all)

    async def clear(self) -> int:
        logger.debug("clear all nights")
        return await self._write(night_repo.clear)

    def close(self):
        if self._closed:
            return
        self._closed = True
        self._executor.shutdown(wait=True)
        self._conn.close()
        self.nights.dispose()
