import asyncio
from datetime import timedelta

import pytest

from algo.risk.ledger import RiskLedger
from conftest import T0
from engine.coordinator import PerformanceBook
from engine.ingestion import IngestionWorker
from engine.order_index import OrderIndex
from shared.models.models import Fill, Order, OrderStatus, OrderUpdate, Side


def _order(cid: str, exchange_id: str, strategy: str = "imbalance") -> Order:
    return Order(
        client_order_id=cid,
        symbol="BTCUSDT",
        side=Side.BUY,
        price=100.0,
        qty=1.0,
        created_at=T0,
        status=OrderStatus.NEW,
        strategy=strategy,
        exchange_order_id=exchange_id,
    )


def _fill(order_id: str, side: Side, price: float, n: int) -> Fill:
    return Fill(order_id=order_id, symbol="BTCUSDT", side=side, price=price, qty=1.0, ts=T0 + timedelta(seconds=n))


@pytest.fixture
def worker():
    ledger = RiskLedger(max_daily_loss=1000.0, trailing_stop_fraction=0.5, max_position_notional=5000.0)
    index = OrderIndex()
    index.track(_order("c-open", "x-open"))
    index.track(_order("c-close", "x-close", strategy="mean_reversion"))
    return IngestionWorker(ledger, index, PerformanceBook())


def test_fill_realizing_pnl_is_attributed_to_strategy(worker):
    assert worker.handle_fill(_fill("x-open", Side.BUY, 100.0, 0)) == 0.0
    assert worker.handle_fill(_fill("x-close", Side.SELL, 103.0, 1)) == pytest.approx(3.0)

    books = worker.performance.snapshot()
    assert list(books) == ["mean_reversion"]
    assert books["mean_reversion"].pnl == pytest.approx(3.0)
    assert books["mean_reversion"].wins == 1


def test_fill_for_unknown_order_still_updates_ledger(worker):
    worker.handle_fill(_fill("ghost-1", Side.BUY, 100.0, 0))
    worker.handle_fill(_fill("ghost-2", Side.SELL, 99.0, 1))

    assert worker.ledger.stats().daily_pnl == pytest.approx(-1.0)
    assert worker.performance.snapshot() == {}


def test_order_update_marks_terminal_and_ignores_unknown(worker):
    updated = worker.handle_order_update(OrderUpdate("x-open", OrderStatus.FILLED, filled_qty=1.0, ts=T0))
    assert updated.status == OrderStatus.FILLED
    assert updated.completed_at == T0
    assert worker.order_index.active_count == 1

    assert worker.handle_order_update(OrderUpdate("nope", OrderStatus.CANCELED)) is None


@pytest.mark.asyncio
async def test_run_consumes_queue_and_skips_bad_events(worker):
    queue: asyncio.Queue = asyncio.Queue()
    task = asyncio.create_task(worker.run(queue))

    await queue.put(_fill("x-open", Side.BUY, 100.0, 0))
    await queue.put("not an event")
    await queue.put(OrderUpdate("c-open", OrderStatus.FILLED, filled_qty=1.0, ts=T0))
    await queue.put(_fill("x-close", Side.SELL, 101.0, 1))
    await queue.join()

    worker.stop()
    await asyncio.wait_for(task, timeout=1.0)

    assert worker.processed == 3
    assert worker.failed == 1
    assert worker.running is False
    assert worker.ledger.position("BTCUSDT").is_flat
    assert worker.order_index.get("c-open").status == OrderStatus.FILLED
    assert worker.performance.snapshot()["mean_reversion"].pnl == pytest.approx(1.0)


@pytest.mark.asyncio
async def test_run_stops_on_sentinel(worker):
    queue: asyncio.Queue = asyncio.Queue()
    await queue.put(None)
    await asyncio.wait_for(worker.run(queue), timeout=1.0)
    assert worker.processed == 0
