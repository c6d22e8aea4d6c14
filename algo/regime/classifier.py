"""市场状态（Regime）识别。"""

from __future__ import annotations

import collections
import logging
from typing import Deque

from algo.factors.ema import SeededEMA
from algo.factors.volatility import relative_volatility
from shared.models.models import MarketSnapshot, Regime
from shared.utils.logging import component_logger


class RegimeClassifier:
    """
    基于滚动价格窗口的市场状态分类。

    逻辑（按顺序）：
    1. 窗口不足 min_samples：返回 Ranging（数据不足的默认值）
    2. 短周期波动率 > 1.5 × 长周期波动率：HighVolatility（先于趋势判断）
    3. 趋势强度 > trend_threshold 且价格/EMA 多头排列：Uptrend；空头排列：Downtrend
    4. 其余：Ranging

    Params:
    - window: 价格窗口长度 (default 300)
    - trend_lookback: 趋势强度回看样本数 (default 240)
    """

    def __init__(
        self,
        window: int = 300,
        min_samples: int = 60,
        fast_period: int = 20,
        slow_period: int = 50,
        trend_lookback: int = 240,
        short_vol_lookback: int = 60,
        long_vol_lookback: int = 240,
        trend_threshold: float = 0.015,
        vol_ratio_threshold: float = 1.5,
        logger: logging.Logger | None = None,
    ):
        if min_samples < 2 or min_samples > window:
            raise ValueError("min_samples must be within [2, window]")
        self.logger = component_logger("regime", logger)
        self.min_samples = int(min_samples)
        self.trend_lookback = int(trend_lookback)
        self.short_vol_lookback = int(short_vol_lookback)
        self.long_vol_lookback = int(long_vol_lookback)
        self.trend_threshold = float(trend_threshold)
        self.vol_ratio_threshold = float(vol_ratio_threshold)

        self._fast = SeededEMA(period=fast_period)
        self._slow = SeededEMA(period=slow_period)
        self._prices: Deque[float] = collections.deque(maxlen=int(window))
        self._current = Regime.RANGING

    @property
    def current(self) -> Regime:
        """最近一次分类结果（幂等查询）。"""
        return self._current

    def __len__(self) -> int:
        return len(self._prices)

    def classify(self, snapshot: MarketSnapshot) -> Regime:
        self._prices.append(float(snapshot.last_price))
        self._current = self._evaluate()
        return self._current

    def _evaluate(self) -> Regime:
        if len(self._prices) < self.min_samples:
            return Regime.RANGING

        prices = list(self._prices)
        current = prices[-1]

        lookback = min(self.trend_lookback, len(prices) - 1)
        reference = prices[-lookback - 1]
        trend_strength = abs(current - reference) / reference if reference else 0.0

        short_vol = relative_volatility(prices, self.short_vol_lookback)
        long_vol = relative_volatility(prices, self.long_vol_lookback)
        if short_vol > long_vol * self.vol_ratio_threshold:
            return Regime.HIGH_VOLATILITY

        if trend_strength > self.trend_threshold:
            ema_fast = self._fast.latest(prices)
            ema_slow = self._slow.latest(prices)
            if current > ema_fast > ema_slow:
                return Regime.UPTREND
            if current < ema_fast < ema_slow:
                return Regime.DOWNTREND

        return Regime.RANGING
