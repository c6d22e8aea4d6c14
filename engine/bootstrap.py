"""启动装配：AppConfig -> TradingPipeline。

所有配置错误在这里暴露为 ConfigurationError 并中止启动；
进入 `on_snapshot` 之后不再读取配置、不再抛出配置类异常。
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from algo.regime.classifier import RegimeClassifier
from algo.risk.exits import ExitMonitor
from algo.risk.ledger import RiskLedger
from algo.risk.throttler import SignalThrottler
from algo.sizing.balance import RISK_PROFILES, BalanceSizer
from algo.strategy.registry import build_analyzers
from engine.coordinator import Coordinator, PerformanceBook
from engine.ingestion import IngestionWorker
from engine.order_index import OrderIndex
from market_data.validator import SnapshotValidator, ValidationStats
from shared.config.params import Environment, ParameterRegistry, StrategyTag
from shared.config.schema import AppConfig
from shared.models.models import MarketSnapshot, Regime, RiskStats, Signal, StrategyStats
from shared.utils.logging import component_logger, setup_logger
from shared.utils.session import OffHoursWindow, off_hours_predicate


@dataclass(frozen=True)
class PipelineStats:
    strategy: StrategyStats
    risk: RiskStats
    orders_tracked: int
    orders_active: int
    validator: ValidationStats | None


class TradingPipeline:
    """决策管线：校验 -> 状态识别 -> Coordinator。

    单一决策线程调用 `on_snapshot`；成交/订单状态由 `ingestion` 在另一路径并发写入。
    """

    def __init__(
        self,
        cfg: AppConfig,
        registry: ParameterRegistry,
        classifier: RegimeClassifier,
        coordinator: Coordinator,
        order_index: OrderIndex,
        exits: ExitMonitor,
        validator: SnapshotValidator | None = None,
        sizer: BalanceSizer | None = None,
        logger: logging.Logger | None = None,
    ):
        self.cfg = cfg
        self.registry = registry
        self.classifier = classifier
        self.coordinator = coordinator
        self.order_index = order_index
        self.exits = exits
        self.validator = validator
        self.sizer = sizer
        self.logger = component_logger("pipeline", logger)
        self.ingestion = IngestionWorker(
            coordinator.ledger, order_index, coordinator.performance, logger=logger
        )
        self._last_regime: Regime | None = None

    @property
    def ledger(self) -> RiskLedger:
        return self.coordinator.ledger

    @property
    def trading_enabled(self) -> bool:
        return self.cfg.trading.trading_enabled

    def on_snapshot(self, snapshot: MarketSnapshot) -> list[Signal]:
        if not self.trading_enabled:
            return []
        if snapshot.symbol != self.cfg.symbol:
            self.logger.debug(f"Ignoring snapshot for {snapshot.symbol} (trading {self.cfg.symbol})")
            return []
        if self.validator is not None:
            ok, _ = self.validator.validate(snapshot)
            if not ok:
                return []

        regime = self.classifier.classify(snapshot)
        if regime != self._last_regime:
            previous = self._last_regime.value if self._last_regime else "none"
            self.logger.info(f"[REGIME] {previous} -> {regime.value}")
            self._last_regime = regime

        self.ledger.mark_to_market({snapshot.symbol: snapshot.mid_price})
        return self.coordinator.process(snapshot, regime)

    def exit_signals(self, snapshot: MarketSnapshot, now: datetime | None = None) -> list[Signal]:
        """内部止损/止盈/时间止损触发的平仓信号。"""
        decisions = self.exits.check_exits(snapshot.mid_price, now=now)
        return [d.to_signal(snapshot) for d in decisions]

    def stats(self) -> PipelineStats:
        return PipelineStats(
            strategy=self.coordinator.stats(),
            risk=self.ledger.stats(),
            orders_tracked=len(self.order_index),
            orders_active=self.order_index.active_count,
            validator=self.validator.stats() if self.validator is not None else None,
        )


def build_pipeline(
    cfg: AppConfig,
    registry: ParameterRegistry | None = None,
    clock: Callable[[], datetime] | None = None,
    monotonic: Callable[[], float] = time.monotonic,
    logger: logging.Logger | None = None,
) -> TradingPipeline:
    """按配置装配整条决策管线。

    Parameters
    ----------
    cfg:
        已校验的应用配置。
    registry:
        参数注册表；缺省时按 `cfg.environment` + `cfg.strategies` 构建。
    clock:
        墙钟（off-hours 判定与时间止损），缺省为 UTC now。
    monotonic:
        节流器使用的单调时钟。

    Raises
    ------
    ConfigurationError
        启用的策略缺少参数集或参数非法。
    """
    log = logger or setup_logger("decision", cfg.log_level)
    trading = cfg.trading

    if registry is None:
        registry = ParameterRegistry(cfg.environment, overrides=cfg.strategies, logger=logger)
    registry.describe()

    # 启用的策略缺参数集时这里直接抛 ConfigurationError
    analyzers = build_analyzers(trading, registry, logger=logger)
    if not analyzers:
        log.warning("No strategies enabled; pipeline will never emit signals")

    throttler = SignalThrottler(
        default_interval_s=trading.throttle_default_s,
        intervals=trading.throttle_intervals,
        clock=monotonic,
        logger=logger,
    )
    ledger = RiskLedger.from_config(trading, logger=logger)

    window = None
    if trading.enable_off_hours:
        window = OffHoursWindow.from_strings(trading.off_hours_start, trading.off_hours_end, trading.off_hours_tz)

    coordinator = Coordinator(
        trading,
        analyzers,
        throttler,
        ledger,
        off_hours=off_hours_predicate(window, clock),
        performance=PerformanceBook(),
        logger=logger,
    )

    sizer = None
    if cfg.sizing is not None:
        profile = RISK_PROFILES[Environment(cfg.sizing.profile or cfg.environment)]
        sizer = BalanceSizer(profile, min_qty=cfg.sizing.min_qty, qty_step=cfg.sizing.qty_step, logger=logger)

    exit_kwargs = {"clock": clock} if clock is not None else {}
    exits = ExitMonitor(cfg.exits, logger=logger, **exit_kwargs)
    mean_reversion = analyzers.get(StrategyTag.MEAN_REVERSION)
    if mean_reversion is not None:
        exits.add_rule(mean_reversion.name, "VwapReverted", mean_reversion.should_exit)

    pipeline = TradingPipeline(
        cfg,
        registry,
        RegimeClassifier(logger=logger),
        coordinator,
        OrderIndex(logger=logger),
        exits,
        validator=SnapshotValidator(cfg.validator, logger=logger) if cfg.validator.enabled else None,
        sizer=sizer,
        logger=logger,
    )
    log.info(
        f"Pipeline ready: symbol={cfg.symbol} env={cfg.environment} "
        f"strategies={[t.value for t in analyzers]} trading_enabled={trading.trading_enabled}"
    )
    return pipeline
