import datetime as dt

import pytest

from sleeptracker.domain.night import SleepRecord
from sleeptracker.services.utils import format_duration, format_nights, quality_label, to_int_safe


@pytest.mark.parametrize("q, label", [(0, "Very bad"), (3, "OK"), (5, "Excellent"), (-1, "--"), (9, "--")])
def test_quality_label(q, label):
    assert quality_label(q) == label


def test_format_duration():
    assert format_duration(0, 59 * 60 * 1000) == "59 minutes"
    assert format_duration(0, (7 * 3600 + 30 * 60 + 5) * 1000) == "7:30:05"
    assert format_duration(5000, 1000) == "0 minutes"


def test_to_int_safe():
    assert to_int_safe("7") == 7
    assert to_int_safe(None, 5) == 5
    assert to_int_safe("x", 5) == 5


def test_format_nights():
    start = int(dt.datetime(2024, 3, 1, 22, 0).timestamp() * 1000)
    end = start + 8 * 3600 * 1000
    nights = [SleepRecord.begin(end + 1000), SleepRecord(start, start, end, 5)]

    text = format_nights(nights, "%Y-%m-%d %H:%M")

    open_block, done_block = text.split("\n\n")
    assert open_block.endswith("End: --")
    assert "Start: 2024-03-01 22:00" in done_block
    assert "End: 2024-03-02 06:00" in done_block
    assert "Quality: Excellent" in done_block
    assert "Hours:Minutes:Seconds: 8:00:00" in done_block


def test_format_nights_empty():
    assert format_nights([]) == ""
