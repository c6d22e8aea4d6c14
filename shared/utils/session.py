"""交易时段：off-hours（低流动性窗口）判定。"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time, timezone
from zoneinfo import ZoneInfo


def parse_hhmm(raw: str) -> time:
    """"23:00" -> time(23, 0)。"""
    try:
        hh, mm = raw.strip().split(":", 1)
        return time(int(hh), int(mm))
    except (AttributeError, ValueError) as exc:
        raise ValueError(f"invalid HH:MM time: {raw!r}") from exc


@dataclass(frozen=True)
class OffHoursWindow:
    """本地时区下的 [start, end) 时段，允许跨午夜（如 23:00-05:00）。"""

    start: time
    end: time
    tz: str = "America/New_York"

    @classmethod
    def from_strings(cls, start: str, end: str, tz: str = "America/New_York") -> "OffHoursWindow":
        return cls(start=parse_hhmm(start), end=parse_hhmm(end), tz=tz)

    def contains(self, now: datetime) -> bool:
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        local = now.astimezone(ZoneInfo(self.tz)).time()
        if self.start <= self.end:
            return self.start <= local < self.end
        return local >= self.start or local < self.end


def off_hours_predicate(window: OffHoursWindow | None, clock=None):
    """构造无参谓词 `() -> bool`，供 Coordinator 每个 tick 查询。

    window 为 None 表示关闭 off-hours 加成。
    """
    if window is None:
        return lambda: False
    now_fn = clock or (lambda: datetime.now(timezone.utc))
    return lambda: window.contains(now_fn())
