"""
睡眠追踪控制器测试
覆盖 start / stop / clear 意图、派生按钮状态、一次性事件与关闭时的任务取消
"""
import asyncio
import json
import sqlite3

import pytest

from sleeptracker.domain.night import SleepRecord, UNRATED
from sleeptracker.logs import LogContext, search_logs
from sleeptracker.services.config_svc import update_config
from sleeptracker.services.tracker_svc import SleepTrackerController
from sleeptracker.services.utils import millis_to_str


def _open_records(nights):
    return [n for n in nights if n.is_open]


@pytest.mark.asyncio
async def test_initial_flags_with_empty_store(tracker):
    assert tracker.current_session.value is None
    assert tracker.all_sessions.value == []
    assert tracker.start_button_visible.value is True
    assert tracker.stop_button_visible.value is False
    assert tracker.clear_button_visible.value is False
    assert tracker.pending_navigation is None
    assert tracker.pending_notice is False


@pytest.mark.asyncio
async def test_start_creates_open_session(tracker, clock):
    night = await tracker.on_start()

    assert night == SleepRecord(clock.now, clock.now, clock.now, UNRATED)
    assert tracker.current_session.value == night
    assert tracker.start_button_visible.value is False
    assert tracker.stop_button_visible.value is True
    assert tracker.clear_button_visible.value is True
    assert tracker.all_sessions.value == [night]


@pytest.mark.asyncio
async def test_start_while_open_is_ignored(tracker, clock):
    await tracker.on_start()
    clock.advance(500)
    assert await tracker.on_start() is None
    assert len(tracker.all_sessions.value) == 1


@pytest.mark.asyncio
async def test_rapid_double_start_creates_one_open_record(tracker, db, clock):
    first = tracker.on_start()
    clock.advance(1)
    second = tracker.on_start()
    await asyncio.gather(first, second)

    nights = await db.get_all()
    assert len(nights) == 1
    assert len(_open_records(nights)) == 1


@pytest.mark.asyncio
async def test_start_then_stop(tracker, db, clock):
    await tracker.on_start()
    clock.advance(8 * 3600 * 1000)
    stopped = await tracker.on_stop()

    nights = await db.get_all()
    assert len(nights) == 1
    night = nights[0]
    assert night.start_time_millis <= night.end_time_millis
    assert night.sleep_quality == UNRATED
    assert tracker.pending_navigation == night == stopped
    assert tracker.current_session.value is None
    assert tracker.start_button_visible.value is True
    assert tracker.stop_button_visible.value is False


@pytest.mark.asyncio
async def test_stop_in_same_millisecond_still_closes(tracker, db):
    await tracker.on_start()
    stopped = await tracker.on_stop()
    assert not stopped.is_open
    assert _open_records(await db.get_all()) == []


@pytest.mark.asyncio
async def test_stop_without_open_session_is_noop(tracker, db):
    assert await tracker.on_stop() is None
    assert tracker.pending_navigation is None
    assert await db.get_all() == []


@pytest.mark.asyncio
async def test_acknowledge_navigation_is_idempotent(tracker, clock):
    tracker.acknowledge_navigation()
    assert tracker.pending_navigation is None

    await tracker.on_start()
    clock.advance(1000)
    await tracker.on_stop()
    assert tracker.pending_navigation is not None
    tracker.acknowledge_navigation()
    tracker.acknowledge_navigation()
    assert tracker.pending_navigation is None


@pytest.mark.asyncio
@pytest.mark.parametrize("stop_first", [False, True])
async def test_clear_resets_everything(tracker, clock, stop_first):
    await tracker.on_start()
    if stop_first:
        clock.advance(1000)
        await tracker.on_stop()
    clock.advance(1000)

    await tracker.on_clear()

    assert tracker.all_sessions.value == []
    assert tracker.current_session.value is None
    assert tracker.clear_button_visible.value is False
    assert tracker.pending_notice is True
    tracker.acknowledge_notice()
    assert tracker.pending_notice is False


@pytest.mark.asyncio
async def test_clear_on_empty_store_still_notifies(tracker):
    await tracker.on_clear()
    assert tracker.pending_notice is True


@pytest.mark.asyncio
async def test_stop_existing_open_record_scenario(db, clock):
    await db.insert(SleepRecord(1000, 1000, 1000, -1))
    assert (await db.get_latest()).id == 1000

    tracker = SleepTrackerController(db, clock=clock)
    try:
        await tracker.initialized
        assert tracker.current_session.value.id == 1000

        clock.now = 5000
        await tracker.on_stop()

        expected = SleepRecord(1000, 1000, 5000, -1)
        assert await db.get_all() == [expected]
        assert tracker.pending_navigation == expected
    finally:
        tracker.close()


@pytest.mark.asyncio
async def test_initialize_ignores_finished_latest(db, clock):
    await db.insert(SleepRecord(1000, 1000, 2000, 3))
    tracker = SleepTrackerController(db, clock=clock)
    try:
        await tracker.initialized
        assert tracker.current_session.value is None
        assert tracker.start_button_visible.value is True
        assert tracker.clear_button_visible.value is True
    finally:
        tracker.close()


@pytest.mark.asyncio
async def test_sessions_text_follows_store(tracker, clock):
    assert tracker.sessions_text.value == ""
    await tracker.on_start()
    assert "End: --" in tracker.sessions_text.value
    clock.advance(30 * 60 * 1000)
    await tracker.on_stop()
    assert "Quality: --" in tracker.sessions_text.value
    assert "30 minutes" in tracker.sessions_text.value


@pytest.mark.asyncio
async def test_intents_write_operation_log(tracker, db, clock):
    await tracker.on_start()
    clock.advance(1000)
    await tracker.on_stop()
    await tracker.on_clear()

    total, items = await db.run(search_logs, None, None, None, None, 1, 20)
    actions = [it["action"] for it in items]
    assert total == 3
    assert set(actions) == {"START_TRACKING", "STOP_TRACKING", "CLEAR_HISTORY"}
    assert all(it["result"] == "OK" for it in items)


@pytest.mark.asyncio
async def test_store_failure_propagates_and_is_logged(tracker, db, monkeypatch):
    async def broken_insert(night):
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(db, "insert", broken_insert)

    with pytest.raises(sqlite3.OperationalError):
        await tracker.on_start()

    assert tracker.current_session.value is None
    _, items = await db.run(search_logs, None, "START_TRACKING", None, None, 1, 10)
    assert items[0]["result"] == "ERROR"
    assert "disk I/O error" in items[0]["err_msg"]


@pytest.mark.asyncio
async def test_close_cancels_pending_work(db, clock):
    tracker = SleepTrackerController(db, clock=clock)
    await tracker.initialized
    task = tracker.on_start()
    tracker.close()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert tracker.pending_tasks == 0
    with pytest.raises(RuntimeError):
        tracker.on_stop()


@pytest.mark.asyncio
async def test_restart_in_same_millisecond_gets_a_new_id(tracker, db, clock):
    first = await tracker.on_start()
    stopped = await tracker.on_stop()
    second = await tracker.on_start()

    assert stopped.id == first.id == clock.now
    assert second.id == first.id + 1
    assert second.is_open
    assert tracker.current_session.value == second
    assert [n.id for n in await db.get_all()] == [second.id, first.id]


@pytest.mark.asyncio
async def test_sessions_text_uses_configured_date_format(db, clock):
    await db.run(update_config, {"date_format": "%Y/%m/%d"}, LogContext("SETTINGS_UPDATE"))
    tracker = SleepTrackerController(db, clock=clock)
    await tracker.initialized
    try:
        await tracker.on_start()
        expected = millis_to_str(clock.now, "%Y/%m/%d")
        assert f"Start: {expected}" in tracker.sessions_text.value
        assert tracker.state()["sessions_text"] == tracker.sessions_text.value

        tracker.apply_config({"date_format": "%H:%M"})
        assert f"Start: {millis_to_str(clock.now, '%H:%M')}" in tracker.sessions_text.value
        assert expected not in tracker.sessions_text.value
    finally:
        tracker.close()


@pytest.mark.asyncio
async def test_intents_log_record_snapshots(tracker, db, clock):
    night = await tracker.on_start()
    clock.advance(5000)
    await tracker.on_stop()

    _, items = await db.run(search_logs, None, None, None, None, 1, 10, night.id)
    by_action = {it["action"]: it for it in items}
    assert by_action["START_TRACKING"]["before_json"] is None
    assert json.loads(by_action["START_TRACKING"]["after_json"])["end_time_millis"] == night.id
    stop = by_action["STOP_TRACKING"]
    assert json.loads(stop["before_json"])["end_time_millis"] == night.id
    assert json.loads(stop["after_json"])["end_time_millis"] == night.id + 5000
    assert stop["entity_type"] == "sleep_record"
