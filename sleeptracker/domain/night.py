from __future__ import annotations

import time
from dataclasses import dataclass, asdict, replace

UNRATED = -1


def now_millis() -> int:
    """Wall-clock time in milliseconds since the epoch."""
    return int(time.time() * 1000)


@dataclass(frozen=True)
class SleepRecord:
    """One sleep session. `id` is the start timestamp."""
    id: int
    start_time_millis: int
    end_time_millis: int
    sleep_quality: int = UNRATED

    @classmethod
    def begin(cls, start_millis: int) -> "SleepRecord":
        # end == start marks the session as still running
        return cls(
            id=start_millis,
            start_time_millis=start_millis,
            end_time_millis=start_millis,
            sleep_quality=UNRATED,
        )

    @property
    def is_open(self) -> bool:
        return self.end_time_millis == self.start_time_millis

    @property
    def is_rated(self) -> bool:
        return self.sleep_quality != UNRATED

    def stopped_at(self, end_millis: int) -> "SleepRecord":
        # a stop in the same millisecond as the start would leave the record looking open
        return replace(self, end_time_millis=max(end_millis, self.start_time_millis + 1))

    def rated(self, quality: int) -> "SleepRecord":
        return replace(self, sleep_quality=quality)

    def to_dict(self) -> dict:
        return asdict(self)
