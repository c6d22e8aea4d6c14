import pytest

from algo.risk.exits import ExitMonitor
from conftest import make_snapshot
from shared.config.schema import ExitConfig
from shared.models.models import OrderType, Side


@pytest.fixture
def monitor(wall_clock):
    return ExitMonitor(ExitConfig(), clock=wall_clock)


def test_long_stop_loss_and_take_profit_levels(monitor):
    pos = monitor.track("o1", "BTCUSDT", Side.BUY, 50000.0, 0.1, strategy="imbalance")
    assert pos.stop_loss_price == pytest.approx(50000.0 * 0.997)
    assert pos.take_profit_price == pytest.approx(50000.0 * 1.005)

    assert monitor.check_exits(50000.0) == []
    exits = monitor.check_exits(49800.0)
    assert len(exits) == 1
    assert exits[0].reason == "StopLoss"
    assert exits[0].pnl == pytest.approx(-20.0)
    assert len(monitor) == 0


def test_short_take_profit(monitor):
    monitor.track("o2", "BTCUSDT", Side.SELL, 50000.0, 0.1)
    exits = monitor.check_exits(49700.0)
    assert [e.reason for e in exits] == ["TakeProfit"]
    assert exits[0].pnl == pytest.approx(30.0)


def test_time_stop_after_max_hold(monitor, wall_clock):
    monitor.track("o3", "BTCUSDT", Side.BUY, 50000.0, 0.1)
    wall_clock.advance(300)
    assert monitor.check_exits(50000.0) == []
    wall_clock.advance(1)
    assert [e.reason for e in monitor.check_exits(50000.0)] == ["TimeStop"]


def test_stop_loss_takes_priority_over_time_stop(monitor, wall_clock):
    monitor.track("o4", "BTCUSDT", Side.BUY, 50000.0, 0.1)
    wall_clock.advance(1000)
    assert [e.reason for e in monitor.check_exits(49000.0)] == ["StopLoss"]


def test_close_and_exit_signal(monitor):
    monitor.track("o5", "BTCUSDT", Side.BUY, 50000.0, 0.1, strategy="wick_capture")
    monitor.track("o6", "BTCUSDT", Side.BUY, 50000.0, 0.2)
    assert monitor.close("o6") is True
    assert monitor.close("o6") is False
    assert [p.order_id for p in monitor.open_positions()] == ["o5"]

    decision = monitor.check_exits(50300.0)[0]
    snap = make_snapshot(price=50300.0)
    sig = decision.to_signal(snap)
    assert sig.side == Side.SELL
    assert sig.price == snap.best_bid
    assert sig.qty == 0.1
    assert sig.order_type == OrderType.MARKET
    assert sig.strategy == "wick_capture"
    assert sig.metadata["exit_reason"] == "TakeProfit"


def test_strategy_rule_exits_only_its_own_positions(monitor, wall_clock):
    monitor.add_rule("mean_reversion", "VwapReverted", lambda price: price >= 50010.0)
    monitor.track("mr1", "BTCUSDT", Side.BUY, 50000.0, 0.1, strategy="mean_reversion")
    monitor.track("ob1", "BTCUSDT", Side.BUY, 50000.0, 0.1, strategy="imbalance")

    assert monitor.check_exits(50005.0) == []
    exits = monitor.check_exits(50010.0)
    assert [(e.position.order_id, e.reason) for e in exits] == [("mr1", "VwapReverted")]
    assert [p.order_id for p in monitor.open_positions()] == ["ob1"]


def test_strategy_rule_ranks_between_stop_loss_and_time_stop(monitor, wall_clock):
    monitor.add_rule("mean_reversion", "VwapReverted", lambda price: True)
    monitor.track("mr1", "BTCUSDT", Side.BUY, 50000.0, 0.1, strategy="mean_reversion")
    wall_clock.advance(1000)
    assert [e.reason for e in monitor.check_exits(49000.0)] == ["StopLoss"]

    monitor.track("mr2", "BTCUSDT", Side.BUY, 50000.0, 0.1, strategy="mean_reversion")
    wall_clock.advance(1000)
    assert [e.reason for e in monitor.check_exits(50000.0)] == ["VwapReverted"]
