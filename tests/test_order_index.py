import threading
from datetime import timedelta

from conftest import T0
from engine.order_index import OrderIndex
from shared.models.models import Order, OrderStatus, Side


def _order(cid: str, status: OrderStatus = OrderStatus.NEW, exchange_id: str | None = None, symbol: str = "BTCUSDT", completed_s: float | None = None) -> Order:
    return Order(
        client_order_id=cid,
        symbol=symbol,
        side=Side.BUY,
        price=50000.0,
        qty=0.01,
        created_at=T0,
        status=status,
        completed_at=T0 + timedelta(seconds=completed_s) if completed_s is not None else None,
        strategy="imbalance",
        exchange_order_id=exchange_id,
    )


def test_track_and_resolve_by_either_id():
    index = OrderIndex()
    index.track(_order("c1", exchange_id="x1"))
    index.track(_order("c2", symbol="ETHUSDT"))

    assert index.resolve_symbol("x1") == "BTCUSDT"
    assert index.resolve_symbol("c1") == "BTCUSDT"
    assert index.resolve_symbol("c2") == "ETHUSDT"
    assert index.resolve_symbol("nope") is None
    assert index.find("x1").client_order_id == "c1"
    assert len(index) == 2
    assert index.active_count == 2


def test_pending_order_is_not_active_until_new():
    index = OrderIndex()
    order = _order("c1", status=OrderStatus.PENDING)
    index.track(order)
    assert index.active_orders() == []

    index.update("c1", _order("c1", status=OrderStatus.NEW))
    assert [o.client_order_id for o in index.active_orders()] == ["c1"]


def test_update_reflects_terminal_transition_and_ignores_unknown():
    index = OrderIndex()
    index.track(_order("c1"))

    assert index.update("missing", _order("missing", status=OrderStatus.FILLED)) is False
    assert index.update("c1", _order("c1", status=OrderStatus.FILLED, completed_s=1)) is True
    assert index.active_count == 0
    assert index.get("c1").status == OrderStatus.FILLED


def test_update_status_sets_completed_at_for_terminal_states():
    index = OrderIndex()
    index.track(_order("c1", exchange_id="x1"))

    partial = index.update_status("x1", OrderStatus.PARTIALLY_FILLED, filled_qty=0.004)
    assert partial.filled_qty == 0.004
    assert partial.completed_at is None
    assert index.active_count == 1

    done = index.update_status("c1", OrderStatus.CANCELED, ts=T0 + timedelta(seconds=3))
    assert done.completed_at == T0 + timedelta(seconds=3)
    assert done.filled_qty == 0.004
    assert index.active_count == 0
    assert index.update_status("ghost", OrderStatus.FILLED) is None


def test_retracking_same_client_id_does_not_duplicate():
    index = OrderIndex()
    index.track(_order("c1"))
    index.track(_order("c1", status=OrderStatus.FILLED, completed_s=1))

    assert len(index.orders_for_symbol("BTCUSDT")) == 1
    assert index.active_count == 0


def test_retracking_moves_symbol_and_exchange_id():
    index = OrderIndex()
    index.track(_order("c1", exchange_id="x1"))
    index.track(_order("c1", exchange_id="x2", symbol="ETHUSDT"))

    assert index.orders_for_symbol("BTCUSDT") == []
    assert [o.symbol for o in index.orders_for_symbol("ETHUSDT")] == ["ETHUSDT"]
    assert index.resolve_symbol("x1") is None
    assert index.resolve_symbol("x2") == "ETHUSDT"
    assert len(index) == 1


def test_update_indexes_exchange_id_assigned_later():
    index = OrderIndex()
    index.track(_order("c1", status=OrderStatus.PENDING))
    index.update("c1", _order("c1", exchange_id="x9"))

    assert index.find("x9").client_order_id == "c1"
    assert index.update_status("x9", OrderStatus.FILLED, ts=T0).completed_at == T0


def test_lookups_return_copies():
    index = OrderIndex()
    tracked = _order("c1", exchange_id="x1")
    index.track(tracked)
    tracked.status = OrderStatus.CANCELED

    index.get("c1").status = OrderStatus.FILLED
    index.find("x1").filled_qty = 1.0
    index.active_orders()[0].status = OrderStatus.REJECTED
    index.orders_for_symbol("BTCUSDT")[0].symbol = "ETHUSDT"

    order = index.get("c1")
    assert order.status == OrderStatus.NEW
    assert order.filled_qty == 0.0
    assert order.symbol == "BTCUSDT"
    assert index.active_count == 1


def test_eviction_at_capacity_removes_oldest_completed():
    capacity = 100_000
    index = OrderIndex(capacity=capacity, eviction_batch=1000)

    # 第 1 笔完成最早；另有 1999 笔终态订单
    index.track(_order("c0", status=OrderStatus.FILLED, exchange_id="x0", completed_s=0))
    for i in range(1, 2000):
        index.track(_order(f"c{i}", status=OrderStatus.FILLED, completed_s=i))
    for i in range(2000, capacity):
        index.track(_order(f"c{i}"))
    assert len(index) == capacity

    index.track(_order("c-new"))

    assert index.evicted_total == 1000
    assert len(index) == capacity - 1000 + 1
    assert len(index) <= capacity
    assert index.get("c0") is None
    assert index.resolve_symbol("x0") is None
    assert index.get("c999") is None
    assert index.get("c1000") is not None
    assert index.get("c-new") is not None
    assert len(index.orders_for_symbol("BTCUSDT")) == len(index)


def test_eviction_never_removes_active_orders():
    index = OrderIndex(capacity=10, eviction_batch=5)
    for i in range(10):
        index.track(_order(f"c{i}"))
    index.track(_order("c10"))

    assert index.evicted_total == 0
    assert index.active_count == 11


def test_concurrent_tracking_and_updates():
    index = OrderIndex(capacity=50_000, eviction_batch=1000)
    n = 5000

    def writer():
        for i in range(n):
            index.track(_order(f"c{i}", exchange_id=f"x{i}"))

    def updater():
        for i in range(n):
            index.update_status(f"x{i}", OrderStatus.FILLED, ts=T0 + timedelta(seconds=i))
            index.resolve_symbol(f"c{i}")

    w = threading.Thread(target=writer)
    u = threading.Thread(target=updater)
    w.start()
    u.start()
    w.join()
    u.join()

    assert len(index) == n
    filled = sum(1 for o in index.orders_for_symbol("BTCUSDT") if o.status == OrderStatus.FILLED)
    assert index.active_count == n - filled
