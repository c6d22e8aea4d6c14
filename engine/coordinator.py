"""策略协调器：分析器 -> off-hours 加成 -> 置信度/节流 -> 风控准入 -> lot 取整。"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable

from algo.risk.ledger import RiskLedger
from algo.risk.throttler import SignalThrottler
from algo.strategy.base import Analyzer
from algo.strategy.registry import PRIORITY
from shared.config.params import StrategyTag
from shared.config.schema import TradingConfig
from shared.models.models import MarketSnapshot, Regime, Signal, StrategyStats
from shared.utils.logging import component_logger
from shared.utils.precision import floor_to_lot

# off-hours 置信度加成；wick 不加成
OFF_HOURS_MULTIPLIER: dict[StrategyTag, float] = {
    StrategyTag.IMBALANCE: 1.2,
    StrategyTag.MEAN_REVERSION: 1.3,
}

# wick 信号不节流（爆仓事件稀少且时效性强）
THROTTLED: frozenset[StrategyTag] = frozenset({StrategyTag.IMBALANCE, StrategyTag.MEAN_REVERSION})


@dataclass
class _StrategyBook:
    pnl: float = 0.0
    trades: int = 0
    wins: int = 0
    losses: int = 0


class PerformanceBook:
    """按策略累计已实现 PnL 与胜负次数（线程安全，成交接入线程写、决策线程读）。"""

    def __init__(self):
        self._lock = threading.Lock()
        self._books: dict[str, _StrategyBook] = {}

    def record(self, strategy: str, pnl: float) -> None:
        with self._lock:
            book = self._books.setdefault(strategy, _StrategyBook())
            book.pnl += pnl
            book.trades += 1
            if pnl > 0:
                book.wins += 1
            elif pnl < 0:
                book.losses += 1

    def snapshot(self) -> dict[str, _StrategyBook]:
        with self._lock:
            return {k: _StrategyBook(v.pnl, v.trades, v.wins, v.losses) for k, v in self._books.items()}

    def reset(self) -> None:
        with self._lock:
            self._books.clear()


class Coordinator:
    """
    每个快照调用一次 `process`，按固定优先级 [imbalance, mean_reversion, wick_capture]
    输出已准入、已取整的信号列表。

    流程:
    1. 有状态分析器先 observe(mid, volume)
    2. 查询 off-hours 谓词
    3. 逐个分析器 analyze；off-hours 加成；置信度 >= min_confidence；
       imbalance / mean_reversion 还需通过节流
    4. RiskLedger.admit
    5. 数量按 lot_step 向下取整（取整为 0 的丢弃）

    单个分析器抛出的异常只影响它自己本 tick 的输出（记 ERROR 日志，视为无信号）。
    非线程安全：只允许单一决策线程调用。
    """

    def __init__(
        self,
        cfg: TradingConfig,
        analyzers: dict[StrategyTag, Analyzer],
        throttler: SignalThrottler,
        ledger: RiskLedger,
        off_hours: Callable[[], bool] | None = None,
        performance: PerformanceBook | None = None,
        logger: logging.Logger | None = None,
    ):
        self.cfg = cfg
        self.analyzers = analyzers
        self.throttler = throttler
        self.ledger = ledger
        self.off_hours = off_hours or (lambda: False)
        self.performance = performance or PerformanceBook()
        self.logger = component_logger("coordinator", logger)

        self.filtered_signals = 0
        self.risk_rejected = 0
        self.analyzer_errors = 0

    def _ordered(self) -> list[tuple[StrategyTag, Analyzer]]:
        return [(tag, self.analyzers[tag]) for tag in PRIORITY if tag in self.analyzers]

    def _is_off_hours(self) -> bool:
        if not self.cfg.enable_off_hours:
            return False
        try:
            return bool(self.off_hours())
        except Exception:
            self.logger.exception("Off-hours predicate failed; assuming regular hours")
            return False

    def process(self, snapshot: MarketSnapshot, regime: Regime) -> list[Signal]:
        ordered = self._ordered()

        for tag, analyzer in ordered:
            if not analyzer.stateful:
                continue
            try:
                analyzer.observe(snapshot.mid_price, snapshot.volume)
            except Exception:
                self.analyzer_errors += 1
                self.logger.exception(f"{tag.value}: observe failed")

        off_hours = self._is_off_hours()

        candidates: list[Signal] = []
        for tag, analyzer in ordered:
            try:
                signal = analyzer.analyze(snapshot, regime)
            except Exception:
                self.analyzer_errors += 1
                self.logger.exception(f"{tag.value}: analyze failed")
                continue
            if signal is None:
                continue

            multiplier = OFF_HOURS_MULTIPLIER.get(tag)
            if off_hours and multiplier is not None:
                signal.confidence = min(signal.confidence * multiplier, 1.0)
                signal.metadata["off_hours"] = True

            if signal.confidence < self.cfg.min_confidence:
                self.filtered_signals += 1
                self.logger.debug(f"{tag.value}: confidence {signal.confidence:.2f} below {self.cfg.min_confidence}")
                continue
            if tag in THROTTLED and not self.throttler.allow(tag.value):
                self.filtered_signals += 1
                continue
            candidates.append(signal)

        admitted: list[Signal] = []
        for signal in candidates:
            if not self.ledger.admit(signal):
                self.risk_rejected += 1
                continue
            qty = floor_to_lot(signal.qty, self.cfg.lot_step)
            if qty <= 0:
                self.logger.debug(f"{signal.strategy}: qty {signal.qty} rounds to zero at lot {self.cfg.lot_step}")
                continue
            signal.qty = qty
            admitted.append(signal)
            self.logger.info(
                f"[SIGNAL] {signal.strategy} {signal.side.value} {signal.qty}@{signal.price:.2f} "
                f"conf={signal.confidence:.2f} regime={regime.value}"
            )
        return admitted

    def record_trade_result(self, strategy: str, pnl: float) -> None:
        self.performance.record(strategy, pnl)

    def stats(self) -> StrategyStats:
        emitted = {tag.value: analyzer.signals_emitted for tag, analyzer in self._ordered()}
        books = {name: _StrategyBook() for name in emitted}
        books.update(self.performance.snapshot())

        wins = sum(b.wins for b in books.values())
        losses = sum(b.losses for b in books.values())
        trades = sum(b.trades for b in books.values())
        # 按成交笔数加权的整体胜率
        win_rate = wins / trades if trades > 0 else 0.0

        return StrategyStats(
            total_signals=sum(emitted.values()) - self.filtered_signals,
            filtered_signals=self.filtered_signals,
            risk_rejected=self.risk_rejected,
            trades_executed=trades,
            winning_trades=wins,
            losing_trades=losses,
            total_pnl=sum(b.pnl for b in books.values()),
            win_rate=win_rate,
            signals_by_strategy=emitted,
            strategy_pnl={k: b.pnl for k, b in books.items()},
            strategy_win_rate={k: (b.wins / b.trades if b.trades > 0 else 0.0) for k, b in books.items()},
        )
