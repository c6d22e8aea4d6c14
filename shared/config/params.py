"""策略参数注册表：按 StrategyTag + Environment 返回强类型参数集。

- 参数集是带 `strategy` 字面量标签的 pydantic 模型，组成判别联合 `StrategyParameters`；
- `get()` 返回 Optional，不抛异常；`require()` 只在启动阶段使用，缺失即 `ConfigurationError`；
- 配置文件 `strategies:` 块里的字段覆盖按 tag 合并到环境默认值上。
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Annotated, Any, Literal, Mapping, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, model_validator

from shared.config.validation import ConfigurationError
from shared.utils.logging import component_logger


class StrategyTag(str, Enum):
    IMBALANCE = "imbalance"
    MEAN_REVERSION = "mean_reversion"
    WICK_CAPTURE = "wick_capture"


class Environment(str, Enum):
    TESTNET = "testnet"
    PRODUCTION = "production"
    BACKTESTING = "backtesting"


class ImbalanceParameters(BaseModel):
    """盘口失衡（OBI）策略参数。"""
    strategy: Literal["imbalance"] = "imbalance"
    max_spread_bps: float
    min_imbalance: float
    max_imbalance: float
    min_total_volume: float
    min_bid_volume: float = 0.0
    min_ask_volume: float = 0.0
    min_confirmation_ticks: int = 1

    model_config = ConfigDict(extra="forbid", frozen=True)

    @model_validator(mode="after")
    def _check(self) -> "ImbalanceParameters":
        if self.max_spread_bps <= 0:
            raise ValueError("max_spread_bps must be positive")
        if not 0.5 < self.min_imbalance < 1.0:
            raise ValueError("min_imbalance must be between 0.5 and 1.0")
        if self.max_imbalance <= self.min_imbalance:
            raise ValueError("max_imbalance must exceed min_imbalance")
        if self.min_total_volume < 0:
            raise ValueError("min_total_volume cannot be negative")
        return self


class MeanReversionParameters(BaseModel):
    """VWAP 均值回归策略参数。"""
    strategy: Literal["mean_reversion"] = "mean_reversion"
    min_deviation_pct: float
    max_deviation_pct: float
    min_z_score: float
    max_z_score: float
    min_volume_ratio: float
    min_absolute_volume: float = 0.0
    lookback_period: int
    min_data_points: int
    max_position_size_pct: float = 0.0

    model_config = ConfigDict(extra="forbid", frozen=True)

    @model_validator(mode="after")
    def _check(self) -> "MeanReversionParameters":
        if self.min_z_score < 0:
            raise ValueError("min_z_score cannot be negative")
        if self.max_z_score <= self.min_z_score:
            raise ValueError("max_z_score must exceed min_z_score")
        if self.min_volume_ratio < 0:
            raise ValueError("min_volume_ratio cannot be negative")
        if self.lookback_period < 10:
            raise ValueError("lookback_period must be at least 10 for statistical validity")
        if self.min_data_points > self.lookback_period:
            raise ValueError("min_data_points cannot exceed lookback_period")
        return self


class WickCaptureParameters(BaseModel):
    """爆仓插针捕捉策略参数。"""
    strategy: Literal["wick_capture"] = "wick_capture"
    min_wick_ratio: float
    max_wick_ratio: float
    wick_lookback_ticks: int
    min_volume_spike: float
    volume_lookback_period: int
    require_obi_confirmation: bool
    min_obi_imbalance: float
    max_recovery_ticks: int = 0
    min_recovery_pct: float = 0.0

    model_config = ConfigDict(extra="forbid", frozen=True)

    @model_validator(mode="after")
    def _check(self) -> "WickCaptureParameters":
        if not 0 < self.min_wick_ratio < 1.0:
            raise ValueError("min_wick_ratio must be between 0 and 1.0")
        if self.max_wick_ratio <= self.min_wick_ratio:
            raise ValueError("max_wick_ratio must exceed min_wick_ratio")
        if self.min_volume_spike < 1.0:
            raise ValueError("min_volume_spike must be at least 1.0")
        if self.wick_lookback_ticks < 2:
            raise ValueError("wick_lookback_ticks must be at least 2")
        return self


StrategyParameters = Annotated[
    Union[ImbalanceParameters, MeanReversionParameters, WickCaptureParameters],
    Field(discriminator="strategy"),
]
_ADAPTER: TypeAdapter = TypeAdapter(StrategyParameters)


# 各环境默认参数（原样沿用调参结果）
DEFAULT_PARAMETERS: dict[Environment, dict[StrategyTag, dict[str, Any]]] = {
    Environment.TESTNET: {
        StrategyTag.IMBALANCE: {
            "max_spread_bps": 25.0,
            "min_imbalance": 0.62,
            "max_imbalance": 0.95,
            "min_total_volume": 1.0,
            "min_bid_volume": 0.1,
            "min_ask_volume": 0.1,
            "min_confirmation_ticks": 1,
        },
        StrategyTag.MEAN_REVERSION: {
            "min_deviation_pct": 0.3,
            "max_deviation_pct": 3.0,
            "min_z_score": 1.5,
            "max_z_score": 4.0,
            "min_volume_ratio": 0.8,
            "min_absolute_volume": 5.0,
            "lookback_period": 20,
            "min_data_points": 15,
            "max_position_size_pct": 5.0,
        },
        StrategyTag.WICK_CAPTURE: {
            "min_wick_ratio": 0.4,
            "max_wick_ratio": 0.9,
            "wick_lookback_ticks": 3,
            "min_volume_spike": 1.2,
            "volume_lookback_period": 5,
            "require_obi_confirmation": False,
            "min_obi_imbalance": 0.55,
            "max_recovery_ticks": 5,
            "min_recovery_pct": 30.0,
        },
    },
    Environment.PRODUCTION: {
        StrategyTag.IMBALANCE: {
            "max_spread_bps": 1.5,
            "min_imbalance": 0.65,
            "max_imbalance": 0.98,
            "min_total_volume": 1.0,
            "min_bid_volume": 0.3,
            "min_ask_volume": 0.3,
            "min_confirmation_ticks": 2,
        },
        StrategyTag.MEAN_REVERSION: {
            "min_deviation_pct": 0.5,
            "max_deviation_pct": 2.5,
            "min_z_score": 2.0,
            "max_z_score": 5.0,
            "min_volume_ratio": 1.5,
            "min_absolute_volume": 10.0,
            "lookback_period": 30,
            "min_data_points": 25,
            "max_position_size_pct": 3.0,
        },
        StrategyTag.WICK_CAPTURE: {
            "min_wick_ratio": 0.5,
            "max_wick_ratio": 0.85,
            "wick_lookback_ticks": 5,
            "min_volume_spike": 2.0,
            "volume_lookback_period": 10,
            "require_obi_confirmation": True,
            "min_obi_imbalance": 0.65,
            "max_recovery_ticks": 10,
            "min_recovery_pct": 50.0,
        },
    },
    Environment.BACKTESTING: {
        StrategyTag.IMBALANCE: {
            "max_spread_bps": 3.0,
            "min_imbalance": 0.60,
            "max_imbalance": 0.97,
            "min_total_volume": 0.8,
            "min_bid_volume": 0.2,
            "min_ask_volume": 0.2,
            "min_confirmation_ticks": 1,
        },
        StrategyTag.MEAN_REVERSION: {
            "min_deviation_pct": 0.4,
            "max_deviation_pct": 2.8,
            "min_z_score": 1.8,
            "max_z_score": 4.5,
            "min_volume_ratio": 1.2,
            "min_absolute_volume": 8.0,
            "lookback_period": 25,
            "min_data_points": 20,
            "max_position_size_pct": 4.0,
        },
        StrategyTag.WICK_CAPTURE: {
            "min_wick_ratio": 0.45,
            "max_wick_ratio": 0.88,
            "wick_lookback_ticks": 4,
            "min_volume_spike": 1.6,
            "volume_lookback_period": 8,
            "require_obi_confirmation": True,
            "min_obi_imbalance": 0.60,
            "max_recovery_ticks": 8,
            "min_recovery_pct": 40.0,
        },
    },
}


def parse_parameters(tag: StrategyTag | str, raw: Mapping[str, Any]) -> StrategyParameters:
    """把 dict 解析为对应 tag 的参数集；tag 以参数名为准，不接受 raw 里的冲突 tag。"""
    tag = StrategyTag(tag)
    data = dict(raw)
    claimed = data.pop("strategy", tag.value)
    if claimed != tag.value:
        raise ConfigurationError(f"Parameter set tagged {claimed!r} supplied for {tag.value!r}")
    try:
        return _ADAPTER.validate_python({"strategy": tag.value, **data})
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid {tag.value} parameters: {exc}") from exc


class ParameterRegistry:
    """参数注册表。

    Parameters
    ----------
    environment:
        当前环境，决定默认参数表。
    overrides:
        `{tag: {字段: 值}}`，合并到默认值上（来自配置文件 `strategies:` 块）。
    logger:
        可选注入的 logger。
    """

    def __init__(
        self,
        environment: Environment | str = Environment.TESTNET,
        overrides: Mapping[str, Mapping[str, Any]] | None = None,
        logger: logging.Logger | None = None,
    ):
        self.logger = component_logger("params", logger)
        self._environment = Environment(environment)
        self._overrides: dict[StrategyTag, dict[str, Any]] = {}
        for key, fields in (overrides or {}).items():
            try:
                tag = StrategyTag(key)
            except ValueError as exc:
                raise ConfigurationError(f"Unknown strategy in overrides: {key}") from exc
            self._overrides[tag] = dict(fields)
        self._sets: dict[StrategyTag, StrategyParameters] = {}
        self._load_defaults()

    @property
    def environment(self) -> Environment:
        return self._environment

    def _load_defaults(self) -> None:
        self._sets.clear()
        for tag, defaults in DEFAULT_PARAMETERS[self._environment].items():
            merged = {**defaults, **self._overrides.get(tag, {})}
            self._sets[tag] = parse_parameters(tag, merged)

    def get(self, tag: StrategyTag | str) -> StrategyParameters | None:
        return self._sets.get(StrategyTag(tag))

    def require(self, tag: StrategyTag | str) -> StrategyParameters:
        params = self.get(tag)
        if params is None:
            raise ConfigurationError(
                f"Parameter set not found: {StrategyTag(tag).value} ({self._environment.value})"
            )
        return params

    def remove(self, tag: StrategyTag | str) -> None:
        self._sets.pop(StrategyTag(tag), None)

    def update(self, params: StrategyParameters | Mapping[str, Any]) -> StrategyParameters:
        """校验并替换单个参数集（实盘调参入口）。"""
        if isinstance(params, Mapping):
            if "strategy" not in params:
                raise ConfigurationError("Parameter mapping must carry a 'strategy' tag")
            parsed = parse_parameters(params["strategy"], params)
        else:
            # 重新过一遍校验，防止 model_construct 绕过
            parsed = parse_parameters(params.strategy, params.model_dump())
        tag = StrategyTag(parsed.strategy)
        self._sets[tag] = parsed
        self.logger.info(f"Updated {tag.value} parameters for {self._environment.value}")
        return parsed

    def switch_environment(self, environment: Environment | str) -> None:
        environment = Environment(environment)
        if environment == self._environment:
            return
        self.logger.info(f"Switching parameters from {self._environment.value} to {environment.value}")
        self._environment = environment
        self._load_defaults()
        problems = self.validate_all()
        if problems:
            raise ConfigurationError("; ".join(problems))

    def validate_all(self) -> list[str]:
        problems: list[str] = []
        for tag in StrategyTag:
            params = self._sets.get(tag)
            if params is None:
                problems.append(f"Parameter set not found: {tag.value}")
                continue
            try:
                parse_parameters(tag, params.model_dump())
            except ConfigurationError as exc:
                problems.append(str(exc))
        return problems

    def export(self) -> dict[str, Any]:
        return {
            "environment": self._environment.value,
            "strategies": {
                tag.value: params.model_dump(exclude={"strategy"})
                for tag, params in self._sets.items()
            },
        }

    def export_yaml(self) -> str:
        return yaml.safe_dump(self.export(), sort_keys=False)

    def describe(self) -> None:
        self.logger.info(f"Strategy parameter configuration - {self._environment.value}")
        for tag, params in self._sets.items():
            fields = ", ".join(f"{k}={v}" for k, v in params.model_dump(exclude={"strategy"}).items())
            self.logger.info(f"  {tag.value}: {fields}")
