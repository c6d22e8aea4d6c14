import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# 确保项目根目录在 sys.path，便于测试内直接以顶层包名导入
ROOT = Path(__file__).resolve().parents[1]
root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)

from shared.models.models import Level, MarketSnapshot  # noqa: E402

T0 = datetime(2024, 3, 5, 15, 0, tzinfo=timezone.utc)  # 纽约 10:00，非 off-hours


def make_snapshot(
    price: float = 50000.0,
    spread: float = 1.0,
    bid_qty: float = 5.0,
    ask_qty: float = 5.0,
    volume: float = 10.0,
    levels: int = 5,
    symbol: str = "BTCUSDT",
    ts: datetime | None = None,
    last_price: float | None = None,
) -> MarketSnapshot:
    """构造快照：bid_qty/ask_qty 为 levels 档合计，均匀分配到每档。"""
    bid = price - spread / 2.0
    ask = price + spread / 2.0
    bid_levels = [Level(bid - i, bid_qty / levels) for i in range(levels)]
    ask_levels = [Level(ask + i, ask_qty / levels) for i in range(levels)]
    return MarketSnapshot(
        symbol=symbol,
        ts=ts or T0,
        best_bid=bid,
        best_ask=ask,
        bid_size=bid_levels[0].qty,
        ask_size=ask_levels[0].qty,
        last_price=price if last_price is None else last_price,
        volume=volume,
        bid_levels=bid_levels,
        ask_levels=ask_levels,
    )


class FakeClock:
    """可手动推进的时钟（monotonic 秒）。"""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeWallClock:
    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def snapshot_factory():
    return make_snapshot


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def wall_clock():
    return FakeWallClock()
