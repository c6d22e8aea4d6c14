"""订单生命周期索引：client id / exchange id 双键 O(1) 查询 + 有界内存淘汰。"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from datetime import datetime, timezone

from shared.models.models import Order, OrderStatus
from shared.utils.logging import component_logger


class OrderIndex:
    """线程安全的订单索引。

    维护四个结构（同一把锁保护）：
    - 主表：client_order_id -> Order
    - 二级表：exchange_order_id -> client_order_id（`track`/`update` 写入时登记，旧 id 随之移除）
    - 按品种的 client id 列表（插入顺序）
    - 活跃订单集合（NEW / PARTIALLY_FILLED）

    容量达到 `capacity` 时，插入前先淘汰最早完成的 `eviction_batch` 笔终态订单；
    淘汰与插入在同一把锁内执行，不会淘汰正在被更新的订单。
    写入时保存副本，查询返回副本；调用方修改返回值不影响索引。

    Parameters
    ----------
    capacity:
        最大订单数。
    eviction_batch:
        每次淘汰的终态订单数。
    """

    def __init__(
        self,
        capacity: int = 100_000,
        eviction_batch: int = 1000,
        logger: logging.Logger | None = None,
    ):
        if capacity <= 0 or eviction_batch <= 0:
            raise ValueError("capacity and eviction_batch must be > 0")
        self.capacity = int(capacity)
        self.eviction_batch = int(eviction_batch)
        self.logger = component_logger("orders", logger)

        self._lock = threading.Lock()
        self._orders: dict[str, Order] = {}
        self._exchange_to_client: dict[str, str] = {}
        self._by_symbol: dict[str, list[str]] = {}
        self._active: set[str] = set()
        self.evicted_total = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._orders)

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._active)

    # ----- 写入 -----

    def track(self, order: Order) -> None:
        evicted = 0
        with self._lock:
            cid = order.client_order_id
            if cid not in self._orders and len(self._orders) >= self.capacity:
                evicted = self._evict_locked(self.eviction_batch)

            self._store_locked(cid, replace(order))
            size = len(self._orders)

        if evicted:
            self.logger.info(f"Evicted {evicted} completed orders (tracked={size})")
        elif size > self.capacity:
            self.logger.warning(f"Order index over capacity ({size}/{self.capacity}): no completed orders to evict")

    def _store_locked(self, cid: str, order: Order) -> None:
        """写入主表并同步二级表、品种列表与活跃集合；已存在的 id 先摘掉旧的索引项。"""
        existing = self._orders.get(cid)
        if existing is None:
            self._by_symbol.setdefault(order.symbol, []).append(cid)
        else:
            if existing.symbol != order.symbol:
                self._unlist_symbol_locked(existing.symbol, cid)
                self._by_symbol.setdefault(order.symbol, []).append(cid)
            old_xid = existing.exchange_order_id
            if old_xid and old_xid != order.exchange_order_id and self._exchange_to_client.get(old_xid) == cid:
                del self._exchange_to_client[old_xid]

        self._orders[cid] = order
        if order.exchange_order_id:
            self._exchange_to_client[order.exchange_order_id] = cid
        if order.is_active:
            self._active.add(cid)
        else:
            self._active.discard(cid)

    def _unlist_symbol_locked(self, symbol: str, cid: str) -> None:
        ids = self._by_symbol.get(symbol)
        if not ids:
            return
        if cid in ids:
            ids.remove(cid)
        if not ids:
            del self._by_symbol[symbol]

    def update(self, client_order_id: str, updated: Order) -> bool:
        """用调用方给出的新状态替换订单；只反映调用方断言的状态变化。

        未知 client id 为 no-op，返回 False。
        """
        with self._lock:
            if client_order_id not in self._orders:
                return False
            self._store_locked(client_order_id, replace(updated))
            return True

    def update_status(
        self,
        order_id: str,
        status: OrderStatus,
        filled_qty: float | None = None,
        ts: datetime | None = None,
    ) -> Order | None:
        """按任一 id 更新状态；终态时写入 completed_at。未知 id 返回 None。"""
        with self._lock:
            cid = self._resolve_client_id_locked(order_id)
            if cid is None:
                return None
            existing = self._orders[cid]
            updated = replace(
                existing,
                status=status,
                filled_qty=existing.filled_qty if filled_qty is None else filled_qty,
                completed_at=(ts or datetime.now(timezone.utc)) if status.is_terminal else existing.completed_at,
            )
            self._store_locked(cid, updated)
            return replace(updated)

    # ----- 查询 -----

    def _resolve_client_id_locked(self, order_id: str) -> str | None:
        cid = self._exchange_to_client.get(order_id)
        if cid is not None and cid in self._orders:
            return cid
        if order_id in self._orders:
            return order_id
        return None

    def resolve_symbol(self, order_id: str) -> str | None:
        """先按 exchange id 解析，再按 client id；都不存在时返回 None。"""
        with self._lock:
            cid = self._resolve_client_id_locked(order_id)
            return self._orders[cid].symbol if cid is not None else None

    def get(self, client_order_id: str) -> Order | None:
        with self._lock:
            order = self._orders.get(client_order_id)
            return replace(order) if order is not None else None

    def find(self, order_id: str) -> Order | None:
        """按 exchange id 或 client id 查找订单。"""
        with self._lock:
            cid = self._resolve_client_id_locked(order_id)
            return replace(self._orders[cid]) if cid is not None else None

    def active_orders(self) -> list[Order]:
        with self._lock:
            return [replace(self._orders[cid]) for cid in self._active if cid in self._orders]

    def orders_for_symbol(self, symbol: str) -> list[Order]:
        with self._lock:
            return [replace(self._orders[cid]) for cid in self._by_symbol.get(symbol, []) if cid in self._orders]

    # ----- 淘汰 -----

    def _evict_locked(self, count: int) -> int:
        completed = sorted(
            (o for o in self._orders.values() if o.is_complete and o.completed_at is not None),
            key=lambda o: o.completed_at,
        )[:count]
        if not completed:
            return 0

        removed: set[str] = set()
        for order in completed:
            cid = order.client_order_id
            self._orders.pop(cid, None)
            if order.exchange_order_id:
                self._exchange_to_client.pop(order.exchange_order_id, None)
            self._active.discard(cid)
            removed.add(cid)

        for symbol in {o.symbol for o in completed}:
            remaining = [cid for cid in self._by_symbol.get(symbol, []) if cid not in removed]
            if remaining:
                self._by_symbol[symbol] = remaining
            else:
                self._by_symbol.pop(symbol, None)

        self.evicted_total += len(removed)
        return len(removed)
