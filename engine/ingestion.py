"""成交 / 订单状态接入（第二条调用路径，与决策线程并发）。"""

from __future__ import annotations

import asyncio
import logging
from typing import Union

from algo.risk.ledger import RiskLedger
from engine.coordinator import PerformanceBook
from engine.order_index import OrderIndex
from shared.models.models import Fill, Order, OrderUpdate
from shared.utils.logging import component_logger

IngestionEvent = Union[Fill, OrderUpdate]


class IngestionWorker:
    """把外部推送的 Fill / OrderUpdate 应用到 RiskLedger 与 OrderIndex。

    - 成交实现了 PnL 且能从 OrderIndex 解析出所属策略时，记入 PerformanceBook；
    - 未知订单 id 的状态更新为 no-op；
    - `run(queue)` 中单个事件处理失败只记日志并跳过，不中断消费。

    Fill 必须按品种时间顺序入队；本类不做重排。
    """

    def __init__(
        self,
        ledger: RiskLedger,
        order_index: OrderIndex,
        performance: PerformanceBook | None = None,
        logger: logging.Logger | None = None,
        poll_interval_s: float = 0.1,
    ):
        self.ledger = ledger
        self.order_index = order_index
        self.performance = performance
        self.logger = component_logger("ingestion", logger)
        self.poll_interval_s = poll_interval_s
        self.running = False
        self.processed = 0
        self.failed = 0

    def handle_fill(self, fill: Fill) -> float:
        realized = self.ledger.apply_fill(fill)
        if realized and self.performance is not None:
            order = self.order_index.find(fill.order_id)
            if order is not None and order.strategy:
                self.performance.record(order.strategy, realized)
        return realized

    def handle_order_update(self, update: OrderUpdate) -> Order | None:
        order = self.order_index.update_status(
            update.order_id, update.status, filled_qty=update.filled_qty, ts=update.ts
        )
        if order is None:
            self.logger.debug(f"Ignoring update for unknown order {update.order_id}")
        return order

    def handle(self, event: IngestionEvent) -> None:
        if isinstance(event, Fill):
            self.handle_fill(event)
        elif isinstance(event, OrderUpdate):
            self.handle_order_update(event)
        else:
            raise TypeError(f"Unsupported ingestion event: {type(event).__name__}")

    async def run(self, queue: "asyncio.Queue[IngestionEvent | None]") -> None:
        """消费队列直到 `stop()`、收到 None 或任务被取消。"""
        self.running = True
        self.logger.info("Ingestion worker started")
        try:
            while self.running:
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=self.poll_interval_s)
                except asyncio.TimeoutError:
                    continue

                try:
                    if event is None:
                        break
                    self.handle(event)
                    self.processed += 1
                except Exception:
                    self.failed += 1
                    self.logger.exception(f"Failed to apply {type(event).__name__}; skipped")
                finally:
                    queue.task_done()
        finally:
            self.running = False
            self.logger.info(f"Ingestion worker stopped (processed={self.processed}, failed={self.failed})")

    def stop(self) -> None:
        self.running = False
