from __future__ import annotations

# sleeptracker/services/utils.py
import datetime as dt
from typing import Iterable

from ..domain.night import SleepRecord

QUALITY_LABELS = {
    0: "Very bad",
    1: "Poor",
    2: "So-so",
    3: "OK",
    4: "Pretty good",
    5: "Excellent",
}

DEFAULT_DATE_FORMAT = "%A %Y-%m-%d %H:%M"


def to_int_safe(x, default=None):
    try: return int(x)
    except (TypeError, ValueError): return default


def quality_label(quality: int) -> str:
    return QUALITY_LABELS.get(quality, "--")


def millis_to_datetime(millis: int) -> dt.datetime:
    """本地时区的 naive datetime，文本列表与报表共用"""
    return dt.datetime.fromtimestamp(millis / 1000)


def millis_to_str(millis: int, date_format: str = DEFAULT_DATE_FORMAT) -> str:
    return millis_to_datetime(millis).strftime(date_format)


def format_duration(start_millis: int, end_millis: int) -> str:
    """不足一小时显示分钟数，否则 H:MM:SS"""
    seconds = max(0, (end_millis - start_millis) // 1000)
    if seconds < 3600:
        return f"{seconds // 60} minutes"
    h, rem = divmod(seconds, 3600)
    m, s = divmod(rem, 60)
    return f"{h}:{m:02d}:{s:02d}"


def format_nights(nights: Iterable[SleepRecord], date_format: str = DEFAULT_DATE_FORMAT) -> str:
    """Plain-text projection of the session list, newest first as given."""
    blocks = []
    for n in nights:
        lines = [f"Start: {millis_to_str(n.start_time_millis, date_format)}"]
        if n.is_open:
            lines.append("End: --")
        else:
            lines.append(f"End: {millis_to_str(n.end_time_millis, date_format)}")
            lines.append(f"Quality: {quality_label(n.sleep_quality)}")
            lines.append(f"Hours:Minutes:Seconds: {format_duration(n.start_time_millis, n.end_time_millis)}")
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)
