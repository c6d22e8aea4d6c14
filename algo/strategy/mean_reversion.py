from __future__ import annotations

import collections
import logging
import math
from typing import Deque

from algo.strategy.base import Analyzer
from shared.config.params import MeanReversionParameters, StrategyTag
from shared.models.models import MarketSnapshot, Regime, Side, Signal

_STD_EPSILON = 1e-4
# 价格回到 VWAP 3 bps 以内视为回归完成
_EXIT_DISTANCE = 0.0003


class MeanReversionAnalyzer(Analyzer):
    """
    VWAP 均值回归策略。

    逻辑:
    1. 滚动窗口 (<=200) 记录 (price, volume)，VWAP = Σ(p·v) / Σv
    2. 只在 Ranging 下交易（Downtrend/HighVolatility 等一律禁用）
    3. zScore = (mid - VWAP) / std，std 为价格相对 VWAP 的总体标准差
    4. 过滤: |zScore| < min_z_score 或 成交量/均量 < min_volume_ratio
    5. zScore > deviation: 卖（目标 VWAP）; zScore < -deviation: 买（目标 VWAP）
    6. 止损距当前价 stop_bps
    """

    tag = StrategyTag.MEAN_REVERSION
    stateful = True

    def __init__(
        self,
        params: MeanReversionParameters,
        deviation: float = 2.0,
        stop_bps: float = 4.0,
        notional: float = 4000.0,
        window: int = 200,
        logger: logging.Logger | None = None,
    ):
        super().__init__(logger)
        self.params = params
        self.deviation = float(deviation)
        self.stop_bps = float(stop_bps)
        self.notional = float(notional)
        self._window: Deque[tuple[float, float]] = collections.deque(maxlen=int(window))
        self._vwap = 0.0
        self._volume_ma = 0.0

    @property
    def vwap(self) -> float:
        return self._vwap

    def observe(self, price: float, volume: float) -> None:
        self._window.append((float(price), float(volume)))
        if len(self._window) < self.params.min_data_points:
            return
        total_pv = sum(p * v for p, v in self._window)
        total_v = sum(v for _, v in self._window)
        if total_v > 0:
            self._vwap = total_pv / total_v
        else:
            self._vwap = sum(p for p, _ in self._window) / len(self._window)
        self._volume_ma = total_v / len(self._window)

    def _analyze(self, snapshot: MarketSnapshot, regime: Regime) -> Signal | None:
        if regime != Regime.RANGING:
            self.logger.debug(f"Mean reversion disabled in {regime.value}")
            return None
        if len(self._window) < self.params.min_data_points or self._volume_ma <= 0:
            return None

        current = snapshot.mid_price
        variance = sum((p - self._vwap) ** 2 for p, _ in self._window) / len(self._window)
        std = math.sqrt(variance)
        if std < _STD_EPSILON:
            return None

        z_score = (current - self._vwap) / std
        volume_ratio = snapshot.volume / self._volume_ma
        if abs(z_score) < self.params.min_z_score:
            return None
        if volume_ratio < self.params.min_volume_ratio:
            return None

        stop_offset = self.stop_bps / 10000.0
        if z_score > self.deviation:
            # 价格偏高 -> 做空，等待回落
            side = Side.SELL
            price = snapshot.best_bid
            stop = current * (1.0 + stop_offset)
        elif z_score < -self.deviation:
            side = Side.BUY
            price = snapshot.best_ask
            stop = current * (1.0 - stop_offset)
        else:
            return None

        return Signal(
            symbol=snapshot.symbol,
            strategy=self.name,
            side=side,
            price=price,
            qty=self.notional / current if current > 0 else 0.0,
            confidence=min(abs(z_score) / 3.0, 1.0),
            target_price=self._vwap,
            stop_price=stop,
            generated_at=snapshot.ts,
            metadata={"z_score": z_score, "vwap": self._vwap, "volume_ratio": volume_ratio},
        )

    def should_exit(self, price: float) -> bool:
        """价格回到 VWAP 附近（3 bps 内）即可离场。"""
        if self._vwap <= 0:
            return False
        return abs(price - self._vwap) / self._vwap < _EXIT_DISTANCE
