"""决策引擎层（engine）。

统一入口：`build_pipeline(cfg) -> TradingPipeline`；
- 决策线程：`TradingPipeline.on_snapshot(snapshot) -> list[Signal]`
- 接入路径：`TradingPipeline.ingestion`（成交 / 订单状态）
下单执行与行情传输不在本仓库内。
"""
