"""EMA 因子（SMA 作为种子的指数移动平均）。"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Sequence

import pandas as pd


@dataclass(frozen=True)
class SeededEMA:
    """指数移动平均：前 period 个样本的算术均值作种子，之后按 2/(period+1) 平滑。

    样本不足 period 个时退化为全体均值。
    """

    period: int = 20
    name: str = "ema"
    params: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.period <= 0:
            raise ValueError("EMA period must be > 0")
        object.__setattr__(self, "params", {"period": self.period})

    def latest(self, values: Sequence[float]) -> float:
        if not values:
            raise ValueError("SeededEMA requires at least one value")
        s = pd.Series(values, dtype=float)
        if len(s) < self.period:
            return float(s.mean())

        seed = s.iloc[: self.period].mean()
        # adjust=False 时 y0 = x0，因此把种子放在首位即得到“SMA 种子”的递推
        seeded = pd.concat([pd.Series([seed]), s.iloc[self.period:]], ignore_index=True)
        return float(seeded.ewm(span=self.period, adjust=False).mean().iloc[-1])
