"""按可用余额计算下单数量（分环境风险档位）。"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from shared.config.params import Environment
from shared.utils.logging import component_logger
from shared.utils.precision import floor_to_lot


@dataclass(frozen=True)
class RiskProfile:
    max_position_pct: float  # 单笔占余额比例
    max_total_exposure: float  # 总敞口占余额比例
    min_balance: float  # 余额低于此值停止交易
    max_open_positions: int
    max_daily_loss_pct: float


RISK_PROFILES: dict[Environment, RiskProfile] = {
    Environment.TESTNET: RiskProfile(0.15, 0.90, 10.0, 3, 0.20),
    Environment.PRODUCTION: RiskProfile(0.08, 0.70, 500.0, 5, 0.02),
    Environment.BACKTESTING: RiskProfile(0.10, 0.80, 100.0, 4, 0.10),
}


class BalanceSizer:
    """
    余额感知的仓位计算。

    逻辑:
    1. 输入非法（余额/价格 <= 0，置信度不在 [0,1]）-> 0
    2. 余额低于 min_balance 或持仓数已满 -> 0
    3. 名义 = 余额 × max_position_pct × (0.5 + 0.5 × 置信度)，上限 余额 × max_total_exposure
    4. 换算为数量；低于交易所最小数量 -> 0；按 qty_step 向下取整
    """

    def __init__(
        self,
        profile: RiskProfile,
        min_qty: float = 0.00001,
        qty_step: float = 0.000001,
        logger: logging.Logger | None = None,
    ):
        self.profile = profile
        self.min_qty = float(min_qty)
        self.qty_step = float(qty_step)
        self.logger = component_logger("sizer", logger)

    @classmethod
    def for_environment(cls, env: Environment | str, **kwargs) -> "BalanceSizer":
        return cls(RISK_PROFILES[Environment(env)], **kwargs)

    def size(self, balance: float, price: float, confidence: float, open_positions: int) -> float:
        if balance <= 0 or price <= 0 or not 0.0 <= confidence <= 1.0:
            self.logger.debug(f"Invalid sizing input: balance={balance} price={price} confidence={confidence}")
            return 0.0

        ok, reason = self.can_trade(balance, open_positions)
        if not ok:
            self.logger.info(f"[SIZER] Blocking trade: {reason}")
            return 0.0

        notional = balance * self.profile.max_position_pct * (0.5 + 0.5 * confidence)
        max_exposure = balance * self.profile.max_total_exposure
        if notional > max_exposure:
            notional = max_exposure

        qty = notional / price
        if qty < self.min_qty:
            self.logger.info(f"[SIZER] Qty {qty:.8f} below exchange minimum {self.min_qty:.8f}")
            return 0.0

        qty = floor_to_lot(qty, self.qty_step)
        self.logger.debug(f"[SIZER] balance={balance:.2f} qty={qty} notional={qty * price:.2f}")
        return qty

    def can_trade(self, balance: float, open_positions: int) -> tuple[bool, str]:
        if balance < self.profile.min_balance:
            return False, f"Balance {balance:.2f} below threshold {self.profile.min_balance:.2f}"
        if open_positions >= self.profile.max_open_positions:
            return False, f"Max positions reached ({open_positions}/{self.profile.max_open_positions})"
        return True, "OK"

    def daily_loss_limit(self, starting_balance: float) -> float:
        return starting_balance * self.profile.max_daily_loss_pct

    def daily_loss_exceeded(self, starting_balance: float, current_balance: float) -> tuple[bool, float]:
        loss = starting_balance - current_balance
        exceeded = loss >= self.daily_loss_limit(starting_balance)
        if exceeded:
            self.logger.warning(f"[SIZER] Daily loss limit exceeded: -{loss:.2f}")
        return exceeded, loss
