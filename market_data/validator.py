"""行情快照合法性校验（坏 tick 过滤）。"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from shared.config.schema import ValidatorConfig
from shared.models.models import MarketSnapshot
from shared.utils.logging import component_logger


@dataclass(frozen=True)
class ValidationStats:
    total: int
    valid: int
    rejected: int
    rejection_rate: float
    last_valid_mid: float


class SnapshotValidator:
    """
    快照校验器，按顺序检查：

    1. bid/ask 非正
    2. bid 或 ask 超出 [min_price, max_price]
    3. 交叉盘口（bid >= ask）
    4. 价差百分比超过上限
    5. 相对上一次合法 mid 的跳变超过上限
    6. 盘口一档数量非正

    通过的快照刷新 last valid mid。非线程安全。
    """

    def __init__(self, cfg: ValidatorConfig | None = None, logger: logging.Logger | None = None):
        self.cfg = cfg or ValidatorConfig()
        self.logger = component_logger("validator", logger)
        self.total = 0
        self.rejected = 0
        self.last_valid_mid = 0.0

    @property
    def rejection_rate(self) -> float:
        return self.rejected / self.total if self.total > 0 else 0.0

    def _check(self, snapshot: MarketSnapshot) -> str | None:
        cfg = self.cfg
        bid, ask = snapshot.best_bid, snapshot.best_ask

        if bid <= 0 or ask <= 0:
            return f"Invalid prices: bid={bid:.2f}, ask={ask:.2f}"
        if not cfg.min_price <= bid <= cfg.max_price:
            return f"Bid {bid:.2f} outside valid range [{cfg.min_price:.0f}, {cfg.max_price:.0f}]"
        if not cfg.min_price <= ask <= cfg.max_price:
            return f"Ask {ask:.2f} outside valid range [{cfg.min_price:.0f}, {cfg.max_price:.0f}]"
        if bid >= ask:
            return f"Crossed book: bid {bid:.2f} >= ask {ask:.2f}"

        mid = (bid + ask) / 2.0
        spread_pct = (ask - bid) / mid * 100.0
        if spread_pct > cfg.max_spread_pct:
            return f"Spread {spread_pct:.2f}% > max {cfg.max_spread_pct}%"

        if self.last_valid_mid > 0:
            jump_pct = abs(mid - self.last_valid_mid) / self.last_valid_mid * 100.0
            if jump_pct > cfg.max_price_jump_pct:
                return f"Price jump {jump_pct:.2f}% > max {cfg.max_price_jump_pct}% ({self.last_valid_mid:.2f} -> {mid:.2f})"

        if snapshot.bid_size <= 0 or snapshot.ask_size <= 0:
            return f"Invalid sizes: bid_size={snapshot.bid_size:.4f}, ask_size={snapshot.ask_size:.4f}"
        return None

    def validate(self, snapshot: MarketSnapshot) -> tuple[bool, str]:
        self.total += 1
        reason = self._check(snapshot)
        if reason is not None:
            self.rejected += 1
            self.logger.warning(f"[VALIDATOR] Rejected: {reason}")
            return False, reason
        self.last_valid_mid = snapshot.mid_price
        return True, "OK"

    def stats(self) -> ValidationStats:
        return ValidationStats(
            total=self.total,
            valid=self.total - self.rejected,
            rejected=self.rejected,
            rejection_rate=self.rejection_rate,
            last_valid_mid=self.last_valid_mid,
        )

    def reset_stats(self) -> None:
        self.total = 0
        self.rejected = 0
