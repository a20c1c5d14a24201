#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Track My Sleep Quality (SQLite)

Commands:
  init                Create the database (schema, operation log, default config)
  start               Start tracking a night (ignored while a night is open)
  stop                Stop the open night
  rate                Rate a finished night (0..quality_max)
  clear               Delete every recorded night
  list                Print all nights, newest first
  report              Export nights to CSV under ./exports

Notes:
- The database path comes from --db, then SLEEP_DB_PATH, then config.yaml, then ./sleep_history.db.
- A night is open while its end time still equals its start time.
"""

import argparse
import asyncio
import logging
import os
import sys

import pandas as pd

from sleeptracker.db import SleepDatabase, get_conn, get_db_path, init_db
from sleeptracker.repository import night_repo
from sleeptracker.services.config_svc import get_config
from sleeptracker.services.quality_svc import rate_night
from sleeptracker.services.report_svc import export_csv, nights_frame
from sleeptracker.services.tracker_svc import SleepTrackerController
from sleeptracker.services.utils import format_nights


async def _with_tracker(db_path, action):
    db = SleepDatabase(db_path)
    tracker = SleepTrackerController(db)
    try:
        await tracker.initialized
        return await action(tracker)
    finally:
        tracker.close()
        db.close()


def cmd_init(args):
    with get_conn(args.db) as conn:
        init_db(conn)
    print("Database ready at", get_db_path(args.db))


def cmd_start(args):
    async def action(tracker):
        night = await tracker.on_start()
        if night is None:
            print("Already tracking night", tracker.current_session.value.id)
        else:
            print("Started night", night.id)

    asyncio.run(_with_tracker(args.db, action))


def cmd_stop(args):
    async def action(tracker):
        night = await tracker.on_stop()
        if night is None:
            print("No open night to stop")
            return
        tracker.acknowledge_navigation()
        print(f"Stopped night {night.id}; rate it with: rate --id {night.id} --quality N")

    asyncio.run(_with_tracker(args.db, action))


def cmd_rate(args):
    async def run():
        db = SleepDatabase(args.db)
        try:
            return await rate_night(db, args.id, args.quality)
        finally:
            db.close()

    try:
        night = asyncio.run(run())
    except ValueError as e:
        print("Error:", e, file=sys.stderr)
        sys.exit(2)
    print("Rated night", night.id, "->", night.sleep_quality)


def cmd_clear(args):
    async def action(tracker):
        await tracker.on_clear()
        if tracker.pending_notice:
            print("All nights cleared")
            tracker.acknowledge_notice()

    asyncio.run(_with_tracker(args.db, action))


def cmd_list(args):
    with get_conn(args.db) as conn:
        init_db(conn)
        nights = night_repo.list_all(conn)
        cfg = get_config(conn)
    print(format_nights(nights, cfg["date_format"]) or "(empty)")


def cmd_report(args):
    with get_conn(args.db) as conn:
        init_db(conn)
        df = nights_frame(conn)
        pd.set_option("display.max_rows", 200)
        pd.set_option("display.width", 160)
        print("\n=== Nights ===")
        print(df if not df.empty else "(empty)")
        out_dir = args.out or os.path.join(os.path.dirname(os.path.abspath(__file__)), "exports")
        path = export_csv(conn, out_dir, args.date)
    print("\nCSV exported to", path)


# ---------------- Entry ----------------

def main():
    parser = argparse.ArgumentParser(description="Sleep tracker (SQLite)")
    parser.add_argument("--db", default=None, help="database path (default: SLEEP_DB_PATH / config.yaml)")
    parser.add_argument("--verbose", action="store_true")
    sub = parser.add_subparsers()

    p_init = sub.add_parser("init", help="create the database")
    p_init.set_defaults(func=cmd_init)

    p_start = sub.add_parser("start", help="start tracking a night")
    p_start.set_defaults(func=cmd_start)

    p_stop = sub.add_parser("stop", help="stop the open night")
    p_stop.set_defaults(func=cmd_stop)

    p_rate = sub.add_parser("rate", help="rate a finished night")
    p_rate.add_argument("--id", required=True, type=int)
    p_rate.add_argument("--quality", required=True, type=int)
    p_rate.set_defaults(func=cmd_rate)

    p_clear = sub.add_parser("clear", help="delete every night")
    p_clear.set_defaults(func=cmd_clear)

    p_list = sub.add_parser("list", help="print all nights")
    p_list.set_defaults(func=cmd_list)

    p_rep = sub.add_parser("report", help="export nights to CSV")
    p_rep.add_argument("--date", required=False, help="YYYYMMDD used in the file name (default today)")
    p_rep.add_argument("--out", required=False, help="output directory (default ./exports)")
    p_rep.set_defaults(func=cmd_report)

    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if hasattr(args, "func"):
        args.func(args)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
