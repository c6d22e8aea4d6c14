"""内部止损/止盈/时间止损监控（不向交易所挂止损单）。"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from shared.config.schema import ExitConfig
from shared.models.models import MarketSnapshot, OrderType, Side, Signal
from shared.utils.logging import component_logger


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class TrackedPosition:
    order_id: str
    symbol: str
    side: Side
    entry_price: float
    qty: float
    entry_time: datetime
    stop_loss_price: float
    take_profit_price: float
    max_hold_s: float
    strategy: str = "unknown"

    def pnl(self, price: float) -> float:
        return (price - self.entry_price) * self.qty * self.side.sign


@dataclass(frozen=True)
class ExitDecision:
    position: TrackedPosition
    reason: str  # StopLoss / TakeProfit / 策略规则名 / TimeStop
    price: float
    pnl: float

    def to_signal(self, snapshot: MarketSnapshot) -> Signal:
        """构造反向平仓信号（市价，满置信度）。"""
        side = self.position.side.opposite()
        price = snapshot.best_bid if side == Side.SELL else snapshot.best_ask
        return Signal(
            symbol=self.position.symbol,
            strategy=self.position.strategy,
            side=side,
            price=price,
            qty=self.position.qty,
            confidence=1.0,
            target_price=price,
            stop_price=price,
            generated_at=snapshot.ts,
            order_type=OrderType.MARKET,
            metadata={"exit_reason": self.reason, "entry_order_id": self.position.order_id},
        )


class ExitMonitor:
    """
    持仓退出监控。

    每笔开仓按 order_id 登记止损价/止盈价/最长持有时间；
    `check_exits` 在每个价格上检查并移除触发的持仓。
    策略可通过 `add_rule` 注册额外的离场判定（如均值回归回到 VWAP）。
    同一笔持仓同时满足多个条件时，原因优先级：StopLoss > TakeProfit > 策略规则 > TimeStop。

    非线程安全：与 Coordinator 同在决策线程调用。
    """

    def __init__(
        self,
        cfg: ExitConfig | None = None,
        clock: Callable[[], datetime] = _utcnow,
        logger: logging.Logger | None = None,
    ):
        self.cfg = cfg or ExitConfig()
        self._clock = clock
        self.logger = component_logger("exits", logger)
        self._positions: dict[str, TrackedPosition] = {}
        self._rules: dict[str, tuple[str, Callable[[float], bool]]] = {}

    def __len__(self) -> int:
        return len(self._positions)

    def add_rule(self, strategy: str, reason: str, predicate: Callable[[float], bool]) -> None:
        """为某策略的持仓注册离场判定；`predicate(price)` 为 True 时以 `reason` 平仓。"""
        self._rules[strategy] = (reason, predicate)

    def track(
        self,
        order_id: str,
        symbol: str,
        side: Side,
        entry_price: float,
        qty: float,
        strategy: str = "unknown",
        stop_loss_pct: float | None = None,
        take_profit_pct: float | None = None,
        max_hold_s: float | None = None,
        entry_time: datetime | None = None,
    ) -> TrackedPosition:
        sl = self.cfg.stop_loss_pct if stop_loss_pct is None else stop_loss_pct
        tp = self.cfg.take_profit_pct if take_profit_pct is None else take_profit_pct
        hold = self.cfg.max_hold_s if max_hold_s is None else max_hold_s

        if side == Side.BUY:
            stop_price = entry_price * (1.0 - sl)
            target_price = entry_price * (1.0 + tp)
        else:
            stop_price = entry_price * (1.0 + sl)
            target_price = entry_price * (1.0 - tp)

        position = TrackedPosition(
            order_id=order_id,
            symbol=symbol,
            side=side,
            entry_price=entry_price,
            qty=qty,
            entry_time=entry_time or self._clock(),
            stop_loss_price=stop_price,
            take_profit_price=target_price,
            max_hold_s=hold,
            strategy=strategy,
        )
        self._positions[order_id] = position
        self.logger.info(
            f"[EXIT] Tracking {strategy} position {order_id}: entry={entry_price:.2f} "
            f"SL={stop_price:.2f} TP={target_price:.2f}"
        )
        return position

    def _exit_reason(self, position: TrackedPosition, price: float, now: datetime) -> str | None:
        if position.side == Side.BUY:
            if price <= position.stop_loss_price:
                return "StopLoss"
            if price >= position.take_profit_price:
                return "TakeProfit"
        else:
            if price >= position.stop_loss_price:
                return "StopLoss"
            if price <= position.take_profit_price:
                return "TakeProfit"
        rule = self._rules.get(position.strategy)
        if rule is not None and rule[1](price):
            return rule[0]
        if (now - position.entry_time).total_seconds() > position.max_hold_s:
            return "TimeStop"
        return None

    def check_exits(self, price: float, now: datetime | None = None) -> list[ExitDecision]:
        now = now or self._clock()
        decisions: list[ExitDecision] = []
        for order_id, position in list(self._positions.items()):
            reason = self._exit_reason(position, price, now)
            if reason is None:
                continue
            del self._positions[order_id]
            decision = ExitDecision(position=position, reason=reason, price=price, pnl=position.pnl(price))
            self.logger.info(
                f"[EXIT] {position.strategy} order {order_id} - {reason} | PnL: {decision.pnl:.2f}"
            )
            decisions.append(decision)
        return decisions

    def close(self, order_id: str) -> bool:
        """手动移除（紧急平仓等）；未知 id 返回 False。"""
        if self._positions.pop(order_id, None) is None:
            return False
        self.logger.info(f"[EXIT] Position {order_id} manually closed")
        return True

    def open_positions(self) -> list[TrackedPosition]:
        return list(self._positions.values())
