from __future__ import annotations

import collections
import logging
from typing import Deque

from algo.strategy.base import Analyzer
from shared.config.params import StrategyTag, WickCaptureParameters
from shared.models.models import MarketSnapshot, Regime, Side, Signal

_LOOKBACK = 10
_OBI_LEVELS = 5
# 1% 的插针即满置信度
_FULL_CONFIDENCE_WICK = 0.01
_STOP_BUFFER = 0.002


class WickCaptureAnalyzer(Analyzer):
    """
    爆仓插针捕捉策略 (Liquidation Wick Capture)。

    逻辑:
    1. 最近 10 个样本的 high/low/avg；wickUp = (high-avg)/avg，wickDown = (avg-low)/avg
    2. wickRatio = max(wickUp, wickDown) / ((high-low)/avg)；high == low 视为无插针
    3. 过滤: wickRatio < min_wick_ratio 或 成交量/均量 < min_volume_spike
    4. 下插针达到阈值: 买（目标 avg，止损 low 下方）；上插针: 卖（止损 high 上方）
    5. 可选 OBI 确认：买需 imbalance > +confirmation，卖需 < -confirmation
    6. HighVolatility 下放大 1.5 倍（波动越大，爆仓越多）
    """

    tag = StrategyTag.WICK_CAPTURE
    stateful = True

    def __init__(
        self,
        params: WickCaptureParameters,
        wick_size_pct: float = 0.45,
        obi_confirmation: float = 0.5,
        notional: float = 5000.0,
        window: int = 50,
        logger: logging.Logger | None = None,
    ):
        super().__init__(logger)
        self.params = params
        self.wick_threshold = float(wick_size_pct) / 100.0
        self.obi_confirmation = float(obi_confirmation)
        self.notional = float(notional)
        self._window: Deque[tuple[float, float]] = collections.deque(maxlen=int(window))
        self._volume_ma = 0.0

    def observe(self, price: float, volume: float) -> None:
        self._window.append((float(price), float(volume)))
        if len(self._window) >= _LOOKBACK:
            recent = list(self._window)[-_LOOKBACK:]
            self._volume_ma = sum(v for _, v in recent) / _LOOKBACK

    def _analyze(self, snapshot: MarketSnapshot, regime: Regime) -> Signal | None:
        if len(self._window) < _LOOKBACK or self._volume_ma <= 0:
            return None

        prices = [p for p, _ in list(self._window)[-_LOOKBACK:]]
        high = max(prices)
        low = min(prices)
        avg = sum(prices) / len(prices)
        if high == low or avg <= 0:
            return None

        volume_spike = snapshot.volume / self._volume_ma
        wick_up = (high - avg) / avg
        wick_down = (avg - low) / avg
        wick_ratio = max(wick_up, wick_down) / ((high - low) / avg)

        if wick_ratio < self.params.min_wick_ratio:
            return None
        if volume_spike < self.params.min_volume_spike:
            return None

        bid_volume, ask_volume = snapshot.depth(_OBI_LEVELS)
        total = bid_volume + ask_volume

        if wick_down >= self.wick_threshold:
            # 多头爆仓留下的下插针
            if total <= 0:
                return None
            obi = (bid_volume - ask_volume) / total
            if self.params.require_obi_confirmation and not obi > self.obi_confirmation:
                return None
            side = Side.BUY
            price = snapshot.best_ask
            wick = wick_down
            stop = low * (1.0 - _STOP_BUFFER)
        elif wick_up >= self.wick_threshold:
            if total <= 0:
                return None
            obi = (bid_volume - ask_volume) / total
            if self.params.require_obi_confirmation and not obi < -self.obi_confirmation:
                return None
            side = Side.SELL
            price = snapshot.best_bid
            wick = wick_up
            stop = high * (1.0 + _STOP_BUFFER)
        else:
            return None

        mid = snapshot.mid_price
        confidence = min(wick / _FULL_CONFIDENCE_WICK, 1.0)
        qty = self.notional / mid if mid > 0 else 0.0
        if regime == Regime.HIGH_VOLATILITY:
            self.logger.debug("High volatility - increasing wick size 50%")
            confidence = min(confidence * 1.5, 1.0)
            qty *= 1.5

        return Signal(
            symbol=snapshot.symbol,
            strategy=self.name,
            side=side,
            price=price,
            qty=qty,
            confidence=confidence,
            target_price=avg,
            stop_price=stop,
            generated_at=snapshot.ts,
            metadata={"wick_pct": wick, "volume_spike": volume_spike, "obi": obi, "wick_ratio": wick_ratio},
        )
