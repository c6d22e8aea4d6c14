import pytest

from algo.sizing.balance import RISK_PROFILES, BalanceSizer
from shared.config.params import Environment


@pytest.fixture
def sizer():
    return BalanceSizer.for_environment("testnet")


def test_size_scales_with_confidence(sizer):
    # 1000 × 0.15 × (0.5 + 0.5 × 1.0) = 150 USDT
    assert sizer.size(1000.0, 50000.0, 1.0, 0) == pytest.approx(0.003)
    # 1000 × 0.15 × 0.75 = 112.5 -> 0.00225
    assert sizer.size(1000.0, 50000.0, 0.5, 0) == pytest.approx(0.00225)


def test_size_floors_to_qty_step(sizer):
    # 150 / 47000 = 0.0031914893... -> 0.003191
    assert sizer.size(1000.0, 47000.0, 1.0, 0) == 0.003191


@pytest.mark.parametrize(
    "balance, price, confidence, positions",
    [
        (0.0, 50000.0, 1.0, 0),
        (1000.0, 0.0, 1.0, 0),
        (1000.0, 50000.0, 1.5, 0),
        (5.0, 50000.0, 1.0, 0),  # 低于 min_balance
        (1000.0, 50000.0, 1.0, 3),  # 持仓已满
        (11.0, 50000000.0, 0.0, 0),  # 低于交易所最小数量
    ],
)
def test_size_zero_cases(sizer, balance, price, confidence, positions):
    assert sizer.size(balance, price, confidence, positions) == 0.0


def test_can_trade_and_daily_loss():
    sizer = BalanceSizer(RISK_PROFILES[Environment.PRODUCTION])
    assert sizer.can_trade(1000.0, 0) == (True, "OK")
    ok, reason = sizer.can_trade(400.0, 0)
    assert ok is False and "below threshold" in reason

    assert sizer.daily_loss_limit(10000.0) == pytest.approx(200.0)
    assert sizer.daily_loss_exceeded(10000.0, 9850.0) == (False, pytest.approx(150.0))
    exceeded, loss = sizer.daily_loss_exceeded(10000.0, 9700.0)
    assert exceeded is True
    assert loss == pytest.approx(300.0)
