"""波动率因子：相对波动率 = 总体标准差 / 均值。"""

from __future__ import annotations

from typing import Sequence

import numpy as np


def relative_volatility(values: Sequence[float], lookback: int) -> float:
    """最近 lookback 个样本的总体标准差 / 均值；样本不足 2 个或均值为 0 时返回 0。"""
    if lookback <= 0:
        raise ValueError("lookback must be > 0")
    recent = np.asarray(values, dtype=float)[-lookback:]
    if recent.size < 2:
        return 0.0
    mean = recent.mean()
    if mean == 0:
        return 0.0
    return float(recent.std() / mean)
