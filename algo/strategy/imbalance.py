from __future__ import annotations

import logging

from algo.strategy.base import Analyzer
from shared.config.params import ImbalanceParameters, StrategyTag
from shared.models.models import MarketSnapshot, Regime, Side, Signal

# |imbalance| 达到该值即满置信度
_FULL_CONFIDENCE_IMBALANCE = 0.7
_TARGET_BPS = 10.0
_STOP_BPS = 5.0


class ImbalanceAnalyzer(Analyzer):
    """
    盘口失衡 (Order Book Imbalance) 策略。

    逻辑:
    1. 前 N 档买卖挂单量: imbalance = (bid - ask) / (bid + ask)，范围 [-1, 1]
    2. 过滤: 总量不足 / 价差过宽 / |imbalance| 低于最小阈值
    3. imbalance > trigger: 买（吃卖一）; imbalance < -trigger: 卖（吃买一）
    4. 目标 ±10 bps，止损 ∓5 bps（以中间价计）
    5. HighVolatility 下置信度与数量减半

    所有 regime 下都可运行。
    """

    tag = StrategyTag.IMBALANCE

    def __init__(
        self,
        params: ImbalanceParameters,
        levels: int = 5,
        trigger: float = 0.65,
        notional: float = 3000.0,
        logger: logging.Logger | None = None,
    ):
        super().__init__(logger)
        self.params = params
        self.levels = int(levels)
        self.trigger = float(trigger)
        self.notional = float(notional)

    def _analyze(self, snapshot: MarketSnapshot, regime: Regime) -> Signal | None:
        bid_volume, ask_volume = snapshot.depth(self.levels)
        total = bid_volume + ask_volume
        if total <= 0 or total < self.params.min_total_volume:
            return None

        imbalance = (bid_volume - ask_volume) / total
        if snapshot.spread_bps > self.params.max_spread_bps:
            return None
        if abs(imbalance) < self.params.min_imbalance:
            return None

        mid = snapshot.mid_price
        if imbalance > self.trigger:
            side = Side.BUY
            price = snapshot.best_ask
            target = mid * (1.0 + _TARGET_BPS / 10000.0)
            stop = mid * (1.0 - _STOP_BPS / 10000.0)
        elif imbalance < -self.trigger:
            side = Side.SELL
            price = snapshot.best_bid
            target = mid * (1.0 - _TARGET_BPS / 10000.0)
            stop = mid * (1.0 + _STOP_BPS / 10000.0)
        else:
            return None

        confidence = min(abs(imbalance) / _FULL_CONFIDENCE_IMBALANCE, 1.0)
        qty = self.notional / mid if mid > 0 else 0.0
        if regime == Regime.HIGH_VOLATILITY:
            self.logger.debug("High volatility - reducing imbalance size 50%")
            confidence *= 0.5
            qty *= 0.5

        return Signal(
            symbol=snapshot.symbol,
            strategy=self.name,
            side=side,
            price=price,
            qty=qty,
            confidence=confidence,
            target_price=target,
            stop_price=stop,
            generated_at=snapshot.ts,
            metadata={
                "imbalance": imbalance,
                "bid_volume": bid_volume,
                "ask_volume": ask_volume,
            },
        )
