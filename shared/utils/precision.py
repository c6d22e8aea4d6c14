"""精度工具：把数量向下裁剪到交易所 lot step 的整数倍。"""

from __future__ import annotations

from decimal import Decimal, ROUND_FLOOR


def step_decimals(step: float) -> int:
    """根据 step（如 0.001）推导小数位数。"""
    d = Decimal(str(step))
    if d == 0:
        return 0
    return max(0, -int(d.as_tuple().exponent))


def floor_to_lot(qty: float, lot_step: float) -> float:
    """向下取整到 lot_step 的整数倍，永不向上进位。

    用 Decimal 计算，避免 `0.3 / 0.1 = 2.9999999999999996` 这类浮点噪声把
    恰好整倍数的数量再削掉一档。
    """
    if lot_step <= 0:
        raise ValueError("lot_step must be > 0")
    if qty <= 0:
        return 0.0

    q = Decimal(str(qty))
    step = Decimal(str(lot_step))
    n = (q / step).to_integral_value(rounding=ROUND_FLOOR)
    out = (n * step).quantize(Decimal(1).scaleb(-step_decimals(lot_step)))
    return float(out)
