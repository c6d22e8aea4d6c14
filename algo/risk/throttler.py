"""信号节流：按 key 限制两次放行之间的最小间隔。"""

from __future__ import annotations

import logging
import time
from typing import Callable

from shared.utils.logging import component_logger


class SignalThrottler:
    """
    信号节流器。

    - 首次出现的 key 直接放行并记录时间；
    - 距上次放行 >= 间隔：放行并刷新时间；
    - 否则拒绝，且**不**刷新时间（被拒绝的信号不会延长冷却）。

    非线程安全：只在决策线程内调用。
    """

    def __init__(
        self,
        default_interval_s: float = 30.0,
        intervals: dict[str, float] | None = None,
        clock: Callable[[], float] = time.monotonic,
        logger: logging.Logger | None = None,
    ):
        self.default_interval_s = float(default_interval_s)
        self._intervals: dict[str, float] = {k: float(v) for k, v in (intervals or {}).items()}
        self._last: dict[str, float] = {}
        self._clock = clock
        self.logger = component_logger("throttler", logger)

    def set_interval(self, key: str, seconds: float) -> None:
        self._intervals[key] = float(seconds)

    def interval(self, key: str) -> float:
        return self._intervals.get(key, self.default_interval_s)

    def allow(self, key: str) -> bool:
        now = self._clock()
        last = self._last.get(key)
        if last is None:
            self._last[key] = now
            self.logger.debug(f"{key}: first signal allowed")
            return True

        elapsed = now - last
        if elapsed >= self.interval(key):
            self._last[key] = now
            self.logger.debug(f"{key}: signal allowed (waited {elapsed:.1f}s)")
            return True

        self.logger.info(f"{key}: signal throttled (wait {self.interval(key) - elapsed:.1f}s more)")
        return False

    def remaining(self, key: str) -> float:
        """距离下次放行还需等待的秒数（只读，不修改状态）。"""
        last = self._last.get(key)
        if last is None:
            return 0.0
        elapsed = self._clock() - last
        return max(0.0, self.interval(key) - elapsed)

    def reset(self) -> None:
        self._last.clear()
