"""分析器注册表：StrategyTag -> Analyzer 构建函数。

约定：engine 只负责 orchestration，分析器实例由 TradingConfig + 参数注册表驱动构建。
"""

from __future__ import annotations

import logging
from typing import Callable

from algo.strategy.base import Analyzer
from algo.strategy.imbalance import ImbalanceAnalyzer
from algo.strategy.mean_reversion import MeanReversionAnalyzer
from algo.strategy.wick_capture import WickCaptureAnalyzer
from shared.config.params import (
    ImbalanceParameters,
    MeanReversionParameters,
    ParameterRegistry,
    StrategyTag,
    WickCaptureParameters,
)
from shared.config.schema import TradingConfig
from shared.config.validation import ConfigurationError

# 固定优先级：imbalance -> mean_reversion -> wick_capture
PRIORITY: tuple[StrategyTag, ...] = (
    StrategyTag.IMBALANCE,
    StrategyTag.MEAN_REVERSION,
    StrategyTag.WICK_CAPTURE,
)

AnalyzerFactory = Callable[..., Analyzer]


def _build_imbalance(cfg: TradingConfig, params, logger) -> Analyzer:
    if not isinstance(params, ImbalanceParameters):
        raise ConfigurationError("imbalance analyzer requires ImbalanceParameters")
    return ImbalanceAnalyzer(
        params,
        levels=cfg.imbalance_levels,
        trigger=cfg.imbalance_trigger,
        notional=cfg.imbalance_notional,
        logger=logger,
    )


def _build_mean_reversion(cfg: TradingConfig, params, logger) -> Analyzer:
    if not isinstance(params, MeanReversionParameters):
        raise ConfigurationError("mean_reversion analyzer requires MeanReversionParameters")
    return MeanReversionAnalyzer(
        params,
        deviation=cfg.mr_vwap_deviation,
        stop_bps=cfg.mr_stop_bps,
        notional=cfg.mr_notional,
        logger=logger,
    )


def _build_wick_capture(cfg: TradingConfig, params, logger) -> Analyzer:
    if not isinstance(params, WickCaptureParameters):
        raise ConfigurationError("wick_capture analyzer requires WickCaptureParameters")
    return WickCaptureAnalyzer(
        params,
        wick_size_pct=cfg.wick_size_pct,
        obi_confirmation=cfg.wick_obi_confirmation,
        notional=cfg.wick_notional,
        logger=logger,
    )


_REGISTRY: dict[StrategyTag, AnalyzerFactory] = {}


def register_analyzer(tag: StrategyTag, factory: AnalyzerFactory) -> None:
    _REGISTRY[tag] = factory


def is_enabled(cfg: TradingConfig, tag: StrategyTag) -> bool:
    return {
        StrategyTag.IMBALANCE: cfg.enable_imbalance,
        StrategyTag.MEAN_REVERSION: cfg.enable_mean_reversion,
        StrategyTag.WICK_CAPTURE: cfg.enable_wick_capture,
    }[tag]


def build_analyzers(
    cfg: TradingConfig,
    registry: ParameterRegistry,
    logger: logging.Logger | None = None,
) -> dict[StrategyTag, Analyzer]:
    """按优先级构建所有启用的分析器。

    Raises
    ------
    ConfigurationError
        启用的策略缺少参数集或参数集类型不匹配（启动即中止）。
    """
    analyzers: dict[StrategyTag, Analyzer] = {}
    for tag in PRIORITY:
        if not is_enabled(cfg, tag):
            continue
        if tag not in _REGISTRY:
            raise ConfigurationError(f"No analyzer registered for {tag.value}")
        params = registry.require(tag)
        analyzers[tag] = _REGISTRY[tag](cfg, params, logger)
    return analyzers


# 默认注册
register_analyzer(StrategyTag.IMBALANCE, _build_imbalance)
register_analyzer(StrategyTag.MEAN_REVERSION, _build_mean_reversion)
register_analyzer(StrategyTag.WICK_CAPTURE, _build_wick_capture)
