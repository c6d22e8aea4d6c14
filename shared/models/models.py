"""核心数据结构：MarketSnapshot/Signal/Position/Fill/Order 与统计快照。"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

# 持仓“平仓”判定的数量容差
FLAT_EPSILON = 1e-4


class Side(str, Enum):
    BUY = "buy"
    SELL = "sell"

    @property
    def sign(self) -> int:
        return 1 if self is Side.BUY else -1

    def opposite(self) -> "Side":
        return Side.SELL if self is Side.BUY else Side.BUY


class OrderType(str, Enum):
    LIMIT = "limit"
    MARKET = "market"
    LIMIT_MAKER = "limit_maker"


class OrderStatus(str, Enum):
    """订单状态机：PENDING -> NEW -> PARTIALLY_FILLED -> {FILLED|CANCELED|REJECTED}。"""

    PENDING = "PENDING"
    NEW = "NEW"
    PARTIALLY_FILLED = "PARTIALLY_FILLED"
    FILLED = "FILLED"
    CANCELED = "CANCELED"
    REJECTED = "REJECTED"

    @property
    def is_active(self) -> bool:
        return self in (OrderStatus.NEW, OrderStatus.PARTIALLY_FILLED)

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.FILLED, OrderStatus.CANCELED, OrderStatus.REJECTED)


class Regime(str, Enum):
    """市场状态。"""

    RANGING = "ranging"  # 适合均值回归
    UPTREND = "uptrend"
    DOWNTREND = "downtrend"  # 均值回归禁用
    HIGH_VOLATILITY = "high_volatility"


@dataclass(frozen=True)
class Level:
    """盘口一档。"""
    price: float
    qty: float


@dataclass
class MarketSnapshot:
    """单个交易对的行情快照（已由外部校验）。"""
    symbol: str
    ts: datetime
    best_bid: float
    best_ask: float
    bid_size: float
    ask_size: float
    last_price: float
    volume: float  # 滚动成交量
    bid_levels: list[Level] = field(default_factory=list)
    ask_levels: list[Level] = field(default_factory=list)

    @property
    def mid_price(self) -> float:
        return (self.best_bid + self.best_ask) / 2.0

    @property
    def spread_bps(self) -> float:
        mid = self.mid_price
        if mid <= 0:
            return float("inf")
        return (self.best_ask - self.best_bid) / mid * 10000.0

    def depth(self, levels: int) -> tuple[float, float]:
        """前 N 档买/卖挂单量之和。"""
        bid = sum(lv.qty for lv in self.bid_levels[:levels])
        ask = sum(lv.qty for lv in self.ask_levels[:levels])
        return bid, ask


@dataclass
class Signal:
    """策略输出的交易信号。"""
    symbol: str
    strategy: str
    side: Side
    price: float
    qty: float
    confidence: float  # 0~1
    target_price: float
    stop_price: float
    generated_at: datetime
    order_type: OrderType = OrderType.LIMIT
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return self.qty > 0 and self.price > 0

    @property
    def notional(self) -> float:
        return self.qty * self.price


@dataclass
class Position:
    """持仓（正数多头，负数空头）。"""
    symbol: str
    qty: float = 0.0
    avg_price: float = 0.0
    realized_pnl: float = 0.0
    unrealized_pnl: float = 0.0
    opened_at: datetime | None = None

    @property
    def is_flat(self) -> bool:
        return abs(self.qty) < FLAT_EPSILON

    @property
    def is_long(self) -> bool:
        return self.qty > FLAT_EPSILON

    @property
    def is_short(self) -> bool:
        return self.qty < -FLAT_EPSILON

    def notional(self, price: float) -> float:
        return abs(self.qty * price)

    def update_unrealized(self, price: float) -> None:
        if self.is_flat:
            self.unrealized_pnl = 0.0
            return
        self.unrealized_pnl = self.qty * (price - self.avg_price)


@dataclass(frozen=True)
class Fill:
    """成交回报（外部来源，按品种时间顺序到达）。"""
    order_id: str
    symbol: str
    side: Side
    price: float
    qty: float
    ts: datetime
    fee: float = 0.0
    is_maker: bool = False


@dataclass
class Order:
    """订单记录：client_order_id 为主键，exchange_order_id 为可选二级键。"""
    client_order_id: str
    symbol: str
    side: Side
    price: float
    qty: float
    created_at: datetime
    order_type: OrderType = OrderType.LIMIT
    status: OrderStatus = OrderStatus.PENDING
    filled_qty: float = 0.0
    completed_at: datetime | None = None
    strategy: str | None = None
    exchange_order_id: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status.is_active

    @property
    def is_complete(self) -> bool:
        return self.status.is_terminal


@dataclass(frozen=True)
class OrderUpdate:
    """外部推送的订单状态变化。"""
    order_id: str  # client id 或 exchange id
    status: OrderStatus
    filled_qty: float | None = None
    ts: datetime | None = None


@dataclass(frozen=True)
class RiskDecision:
    approved: bool
    reason: str = "OK"


@dataclass(frozen=True)
class RiskStats:
    daily_pnl: float
    peak_pnl: float
    drawdown: float
    gross_exposure: float
    net_exposure: float
    active_positions: int


@dataclass
class StrategyStats:
    total_signals: int = 0
    filtered_signals: int = 0
    risk_rejected: int = 0
    trades_executed: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    total_pnl: float = 0.0
    win_rate: float = 0.0
    signals_by_strategy: dict[str, int] = field(default_factory=dict)
    strategy_pnl: dict[str, float] = field(default_factory=dict)
    strategy_win_rate: dict[str, float] = field(default_factory=dict)
