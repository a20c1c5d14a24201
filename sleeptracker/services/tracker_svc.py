"""
睡眠追踪控制器
持有当前未结束的睡眠记录与全部记录列表，把 start / stop / clear 三个意图翻译为存储操作，
并维护按钮可见性与一次性事件（导航、提示）。

Each intent runs as an asyncio task owned by the controller: store calls are
awaited off the loop thread, state is only touched back on the loop, and
close() cancels whatever is still running.
"""
from __future__ import annotations

import asyncio
import logging
import sqlite3
from typing import Any, Callable, Coroutine, List, Optional, Set

from ..db import SleepDatabase
from ..domain.night import SleepRecord, now_millis
from ..logs import LogContext
from ..observable import Mailbox, Observable
from . import config_svc
from .utils import DEFAULT_DATE_FORMAT, format_nights

logger = logging.getLogger(__name__)


class SleepTrackerController:
    def __init__(self, db: SleepDatabase, clock: Callable[[], int] = now_millis):
        self.db = db
        self._clock = clock
        self._tasks: Set[asyncio.Task] = set()
        self._closed = False
        # one intent at a time, so a second start cannot slip in before the first is confirmed
        self._intent_lock = asyncio.Lock()

        self.current_session: Observable[Optional[SleepRecord]] = Observable(None)
        self.all_sessions: Observable[List[SleepRecord]] = db.nights

        self.start_button_visible = self.current_session.map(lambda n: n is None)
        self.stop_button_visible = self.current_session.map(lambda n: n is not None)
        self.clear_button_visible = self.all_sessions.map(lambda nights: bool(nights))
        # configured strftime pattern; re-set by apply_config after a settings update
        self.date_format: Observable[str] = Observable(DEFAULT_DATE_FORMAT)
        self.sessions_text: Observable[str] = Observable(format_nights(self.all_sessions.value or []))
        self._text_sources = [
            self.all_sessions.subscribe(lambda _: self._refresh_text(), replay=False),
            self.date_format.subscribe(lambda _: self._refresh_text(), replay=False),
        ]

        self.navigation: Mailbox[SleepRecord] = Mailbox()
        self.notice: Mailbox[bool] = Mailbox()

        self.initialized = self._launch(self._initialize())

    # ---------------- one-shot signals ----------------

    @property
    def pending_navigation(self) -> Optional[SleepRecord]:
        return self.navigation.pending

    @property
    def pending_notice(self) -> bool:
        return bool(self.notice.pending)

    def acknowledge_navigation(self):
        """导航完成后调用，避免重建界面时重复导航"""
        self.navigation.acknowledge()

    def acknowledge_notice(self):
        self.notice.acknowledge()

    # ---------------- intents ----------------

    def on_start(self) -> asyncio.Task:
        return self._launch(self._start())

    def on_stop(self) -> asyncio.Task:
        return self._launch(self._stop())

    def on_clear(self) -> asyncio.Task:
        return self._launch(self._clear())

    def _refresh_text(self):
        self.sessions_text.set(format_nights(self.all_sessions.value or [], self.date_format.value))

    def apply_config(self, cfg: dict):
        self.date_format.set(cfg.get("date_format") or DEFAULT_DATE_FORMAT)

    async def _initialize(self):
        async with self._intent_lock:
            self.apply_config(await self.db.run(config_svc.get_config))
            self.current_session.set(await self._load_open_session())

    async def _load_open_session(self) -> Optional[SleepRecord]:
        """最新一条记录若起止时间相同（未结束）则返回，否则返回 None"""
        night = await self.db.get_latest()
        if night is None or not night.is_open:
            return None
        return night

    async def _start(self) -> Optional[SleepRecord]:
        async with self._intent_lock:
            current = self.current_session.value
            if current is not None:
                logger.info("start ignored: night %s is still open", current.id)
                return None

            log = LogContext("START_TRACKING")
            try:
                start = self._clock()
                latest = await self.db.get_latest()
                if latest is not None and start <= latest.id:
                    # keys must stay unique and increasing even within one millisecond
                    start = latest.id + 1
                night = SleepRecord.begin(start)
                log.set_records(None, night)
                await self.db.insert(night)
                self.current_session.set(await self._load_open_session())
            except Exception as e:
                await self._write_log(log, "ERROR", str(e))
                raise
            await self._write_log(log)
            return self.current_session.value

    async def _stop(self) -> Optional[SleepRecord]:
        async with self._intent_lock:
            current = self.current_session.value
            if current is None:
                return None

            night = current.stopped_at(self._clock())
            log = LogContext("STOP_TRACKING")
            log.set_records(current, night)
            try:
                await self.db.update(night)
            except Exception as e:
                await self._write_log(log, "ERROR", str(e))
                raise
            # current_session only ever holds an open record
            self.current_session.set(None)
            self.navigation.post(night)
            await self._write_log(log)
            return night

    async def _clear(self):
        async with self._intent_lock:
            log = LogContext("CLEAR_HISTORY")
            log.set_before({"count": len(self.all_sessions.value or [])})
            try:
                await self.db.clear()
            except Exception as e:
                await self._write_log(log, "ERROR", str(e))
                raise
            self.current_session.set(None)
            self.notice.post(True)
            await self._write_log(log)

    async def _write_log(self, log: LogContext, result: str = "OK", err: str | None = None):
        try:
            await self.db.run(log.write, result, err)
        except sqlite3.Error as e:
            # the intent's own outcome matters more than its audit row
            logger.warning("operation log write failed for %s: %s", log.action, e)

    # ---------------- state / lifecycle ----------------

    def state(self) -> dict[str, Any]:
        cur = self.current_session.value
        nav = self.pending_navigation
        return {
            "current_session": cur.to_dict() if cur else None,
            "session_count": len(self.all_sessions.value or []),
            "start_button_visible": self.start_button_visible.value,
            "stop_button_visible": self.stop_button_visible.value,
            "clear_button_visible": self.clear_button_visible.value,
            "pending_navigation": nav.to_dict() if nav else None,
            "pending_notice": self.pending_notice,
            "sessions_text": self.sessions_text.value,
        }

    def _launch(self, coro: Coroutine) -> asyncio.Task:
        if self._closed:
            coro.close()
            raise RuntimeError("controller_closed")
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("tracker task failed: %r", task.exception())

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    def close(self):
        """取消所有未完成的任务并解除派生状态的订阅"""
        self._closed = True
        for task in list(self._tasks):
            task.cancel()
        for detach in self._text_sources:
            detach()
        for derived in (self.start_button_visible, self.stop_button_visible,
                        self.clear_button_visible, self.sessions_text, self.date_format):
            derived.dispose()
        self.current_session.dispose()
        self.navigation.dispose()
        self.notice.dispose()
