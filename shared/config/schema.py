"""配置架构定义（Pydantic Schema）。

目标：
- 让配置成为“强类型”的边界协议；
- 启动阶段尽早失败，避免 typo/类型错误在实盘中“隐蔽爆炸”；
- 业务代码只读 schema 对象的属性，不做 `cfg.get(...)`。
"""

from __future__ import annotations

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from shared.utils.session import parse_hhmm


class TradingConfig(BaseModel):
    """交易/风控主配置（默认值沿用线上 47k 资金档位）。"""
    capital: float = Field(47000.0, gt=0)
    max_daily_loss: float = Field(2350.0, gt=0)
    max_position_notional: float = Field(5000.0, gt=0)
    trailing_stop_fraction: float = Field(0.5, gt=0)
    trading_enabled: bool = True

    # 策略开关
    enable_off_hours: bool = True
    enable_imbalance: bool = True
    enable_mean_reversion: bool = True
    enable_wick_capture: bool = True

    # off-hours 窗口（本地时区）
    off_hours_start: str = "23:00"
    off_hours_end: str = "05:00"
    off_hours_tz: str = "America/New_York"

    # imbalance
    imbalance_levels: int = Field(5, ge=1)
    imbalance_trigger: float = Field(0.65, gt=0, lt=1)
    imbalance_notional: float = Field(3000.0, gt=0)

    # mean reversion
    mr_vwap_deviation: float = Field(2.0, gt=0)  # 标准差倍数
    mr_stop_bps: float = Field(4.0, gt=0)
    mr_notional: float = Field(4000.0, gt=0)

    # wick capture
    wick_size_pct: float = Field(0.45, gt=0)  # 百分比，0.45 表示 0.45%
    wick_obi_confirmation: float = Field(0.5, ge=0, lt=1)
    wick_notional: float = Field(5000.0, gt=0)

    min_confidence: float = Field(0.6, ge=0, le=1)
    lot_step: float = Field(0.001, gt=0)

    # 节流（秒）
    throttle_default_s: float = Field(30.0, ge=0)
    throttle_intervals: Dict[str, float] = Field(
        default_factory=lambda: {"imbalance": 30.0, "mean_reversion": 45.0, "wick_capture": 60.0}
    )

    model_config = ConfigDict(extra="forbid")

    @field_validator("off_hours_start", "off_hours_end")
    @classmethod
    def _check_hhmm(cls, v: str) -> str:
        parse_hhmm(v)
        return v

    @field_validator("throttle_intervals")
    @classmethod
    def _check_intervals(cls, v: Dict[str, float]) -> Dict[str, float]:
        for key, seconds in v.items():
            if seconds < 0:
                raise ValueError(f"throttle interval for {key} must be >= 0")
        return v


class ValidatorConfig(BaseModel):
    """行情快照校验阈值。"""
    enabled: bool = True
    max_spread_pct: float = Field(5.0, gt=0)
    min_price: float = Field(10000.0, ge=0)
    max_price: float = Field(200000.0, gt=0)
    max_price_jump_pct: float = Field(2.0, gt=0)
    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def _check_range(self) -> "ValidatorConfig":
        if self.max_price <= self.min_price:
            raise ValueError("validator.max_price must exceed validator.min_price")
        return self


class SizingConfig(BaseModel):
    """按余额 sizing（可选）；profile 缺省时跟随 environment。"""
    profile: Optional[Literal["testnet", "production", "backtesting"]] = None
    min_qty: float = Field(0.00001, gt=0)
    qty_step: float = Field(0.000001, gt=0)
    model_config = ConfigDict(extra="forbid")


class ExitConfig(BaseModel):
    """内部止损/止盈/时间止损默认值。"""
    stop_loss_pct: float = Field(0.003, gt=0)
    take_profit_pct: float = Field(0.005, gt=0)
    max_hold_s: float = Field(300.0, gt=0)
    model_config = ConfigDict(extra="forbid")


class AppConfig(BaseModel):
    """应用总配置。"""
    symbol: str
    environment: Literal["testnet", "production", "backtesting"] = "testnet"
    log_level: str = "INFO"

    trading: TradingConfig = Field(default_factory=TradingConfig)
    validator: ValidatorConfig = Field(default_factory=ValidatorConfig)
    sizing: Optional[SizingConfig] = None
    exits: ExitConfig = Field(default_factory=ExitConfig)
    # 策略参数覆盖：{tag: {字段: 值}}，由 ParameterRegistry 合并到环境默认值上
    strategies: Dict[str, Dict[str, Any]] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    @field_validator("symbol")
    @classmethod
    def _check_symbol(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("symbol must be a non-empty string")
        return v.strip().upper()


def schema_fields() -> dict[str, set[str]]:
    """顶层与各子块允许的键（供 raw config 校验使用）。"""
    return {
        "": set(AppConfig.model_fields.keys()),
        "trading": set(TradingConfig.model_fields.keys()),
        "validator": set(ValidatorConfig.model_fields.keys()),
        "sizing": set(SizingConfig.model_fields.keys()),
        "exits": set(ExitConfig.model_fields.keys()),
    }
