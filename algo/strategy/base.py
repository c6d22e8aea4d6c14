"""分析器（Analyzer）抽象接口定义。"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from shared.config.params import StrategyTag
from shared.models.models import MarketSnapshot, Regime, Signal
from shared.utils.logging import component_logger


class Analyzer(ABC):
    """策略分析器抽象基类。

    约定：
    - 非线程安全，只允许单一决策线程按 tick 顺序调用；
    - 有状态的分析器需要在 `analyze` 之前调用一次 `observe(price, volume)`；
    - 数据不足/条件不满足时返回 None，不抛异常。
    """

    tag: StrategyTag
    stateful: bool = False

    def __init__(self, logger: logging.Logger | None = None):
        self.logger = component_logger(self.tag.value, logger)
        self.signals_emitted = 0

    @property
    def name(self) -> str:
        return self.tag.value

    def observe(self, price: float, volume: float) -> None:
        """喂入一条 (price, volume) 观测；无状态分析器忽略。"""
        return None

    def analyze(self, snapshot: MarketSnapshot, regime: Regime) -> Signal | None:
        """处理单个快照并输出 0~1 个候选信号。

        Parameters
        ----------
        snapshot:
            行情快照。
        regime:
            当前市场状态。

        Returns
        -------
        Signal | None
            有效候选信号；无信号时为 None。
        """
        signal = self._analyze(snapshot, regime)
        if signal is not None and signal.is_valid:
            self.signals_emitted += 1
            return signal
        return None

    @abstractmethod
    def _analyze(self, snapshot: MarketSnapshot, regime: Regime) -> Signal | None:
        ...
