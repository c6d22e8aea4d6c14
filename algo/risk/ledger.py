"""风险账本：持仓、已实现/未实现 PnL、峰值 PnL 与下单准入。"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from datetime import datetime, timezone

from shared.config.schema import TradingConfig
from shared.models.models import Fill, Position, RiskDecision, RiskStats, Side, Signal
from shared.utils.logging import component_logger


class RiskLedger:
    """风险账本。

    职责：
    1. 按成交维护持仓与均价（加仓加权平均、反向成交先平后开）
    2. 跟踪当日已实现 PnL、未实现 PnL 与峰值 PnL
    3. 准入检查：日损上限 / 峰值回撤（trailing stop）/ 单笔名义上限

    线程安全：所有读写都在同一把锁内完成，锁内不做 I/O（日志在锁外输出）。
    决策线程调用 `admit`，成交接入线程调用 `apply_fill`，两者可并发。

    Parameters
    ----------
    max_daily_loss:
        当日最大亏损（正数，单位报价货币）。
    trailing_stop_fraction:
        峰值回撤上限 = max_daily_loss × 该比例。
    max_position_notional:
        单笔信号名义上限。
    """

    def __init__(
        self,
        max_daily_loss: float,
        trailing_stop_fraction: float,
        max_position_notional: float,
        logger: logging.Logger | None = None,
    ):
        if max_daily_loss <= 0 or trailing_stop_fraction <= 0 or max_position_notional <= 0:
            raise ValueError("risk limits must be positive")
        self.max_daily_loss = float(max_daily_loss)
        self.trailing_stop_fraction = float(trailing_stop_fraction)
        self.max_position_notional = float(max_position_notional)
        self.logger = component_logger("risk", logger)

        self._lock = threading.Lock()
        self._positions: dict[str, Position] = {}
        self._daily_realized = 0.0
        self._peak = 0.0
        self.last_rejection_reason = ""

    @classmethod
    def from_config(cls, cfg: TradingConfig, logger: logging.Logger | None = None) -> "RiskLedger":
        return cls(
            max_daily_loss=cfg.max_daily_loss,
            trailing_stop_fraction=cfg.trailing_stop_fraction,
            max_position_notional=cfg.max_position_notional,
            logger=logger,
        )

    # ----- 锁内辅助（调用方必须已持锁） -----

    def _total_pnl_locked(self) -> float:
        return self._daily_realized + sum(p.unrealized_pnl for p in self._positions.values())

    def _update_peak_locked(self) -> None:
        total = self._total_pnl_locked()
        if total > self._peak:
            self._peak = total

    # ----- 准入 -----

    def check(self, signal: Signal) -> RiskDecision:
        """准入检查，返回带原因的决策；从不抛异常。"""
        with self._lock:
            total = self._total_pnl_locked()
            peak = self._peak

        if total < -self.max_daily_loss:
            return RiskDecision(False, f"Daily loss limit hit: {total:.2f} < -{self.max_daily_loss:.2f}")

        drawdown = peak - total
        max_drawdown = self.max_daily_loss * self.trailing_stop_fraction
        if drawdown > max_drawdown:
            return RiskDecision(False, f"Trailing stop hit: drawdown {drawdown:.2f} > {max_drawdown:.2f}")

        notional = signal.qty * signal.price
        if notional > self.max_position_notional:
            return RiskDecision(
                False, f"Position too large: notional {notional:.2f} > {self.max_position_notional:.2f}"
            )

        return RiskDecision(True)

    def admit(self, signal: Signal) -> bool:
        decision = self.check(signal)
        if not decision.approved:
            self.last_rejection_reason = decision.reason
            self.logger.warning(f"[RISK] {signal.strategy} {signal.side.value} rejected: {decision.reason}")
        return decision.approved

    # ----- 成交 -----

    def apply_fill(self, fill: Fill) -> float:
        """应用一笔成交，返回该成交带来的已实现 PnL（未平仓时为 0）。

        必须按品种时间顺序调用；乱序会破坏均价与已实现 PnL。
        """
        with self._lock:
            pos = self._positions.get(fill.symbol)
            if pos is None:
                pos = Position(symbol=fill.symbol, opened_at=fill.ts)
                self._positions[fill.symbol] = pos

            signed_qty = fill.qty if fill.side == Side.BUY else -fill.qty
            realized = 0.0

            if pos.is_flat:
                pos.qty = signed_qty
                pos.avg_price = fill.price
                pos.opened_at = fill.ts
            elif (pos.is_long and fill.side == Side.BUY) or (pos.is_short and fill.side == Side.SELL):
                total_cost = pos.qty * pos.avg_price + signed_qty * fill.price
                pos.qty += signed_qty
                pos.avg_price = total_cost / pos.qty
            else:
                closed_qty = min(abs(signed_qty), abs(pos.qty))
                direction = 1.0 if pos.is_long else -1.0
                realized = closed_qty * (fill.price - pos.avg_price) * direction - fill.fee

                pos.realized_pnl += realized
                self._daily_realized += realized
                was_long = pos.is_long
                pos.qty += signed_qty

                if pos.is_flat:
                    pos.qty = 0.0
                    pos.unrealized_pnl = 0.0
                elif pos.is_long != was_long:
                    # 反向超量成交：剩余部分按成交价开出反向新仓
                    pos.avg_price = fill.price
                    pos.opened_at = fill.ts
                    pos.unrealized_pnl = 0.0

                self._update_peak_locked()

        if realized:
            self.logger.info(f"[FILL] {fill.symbol} {fill.side.value} {fill.qty}@{fill.price} realized {realized:.4f}")
        return realized

    def mark_to_market(self, prices: dict[str, float]) -> None:
        with self._lock:
            for pos in self._positions.values():
                price = prices.get(pos.symbol)
                if price is not None:
                    pos.update_unrealized(price)
            self._update_peak_locked()

    # ----- 查询 -----

    def total_pnl(self) -> float:
        with self._lock:
            return self._total_pnl_locked()

    def position(self, symbol: str) -> Position | None:
        """返回持仓副本（避免调用方在锁外修改）。"""
        with self._lock:
            pos = self._positions.get(symbol)
            return replace(pos) if pos is not None else None

    def positions(self) -> dict[str, Position]:
        with self._lock:
            return {sym: replace(pos) for sym, pos in self._positions.items()}

    def stats(self) -> RiskStats:
        with self._lock:
            total = self._total_pnl_locked()
            return RiskStats(
                daily_pnl=total,
                peak_pnl=self._peak,
                drawdown=self._peak - total,
                gross_exposure=sum(abs(p.qty * p.avg_price) for p in self._positions.values()),
                net_exposure=sum(p.qty * p.avg_price for p in self._positions.values()),
                active_positions=sum(1 for p in self._positions.values() if not p.is_flat),
            )

    def reset_daily(self, log: bool = True) -> None:
        """跨日重置（由调用方决定何时触发）。持仓数量与均价保留。"""
        with self._lock:
            self._daily_realized = 0.0
            self._peak = 0.0
            for pos in self._positions.values():
                pos.realized_pnl = 0.0
                pos.unrealized_pnl = 0.0
        if log:
            self.logger.info(f"[RISK] Daily state reset at {datetime.now(timezone.utc).isoformat()}")
