"""行情数据模块（market_data）。

该包只负责"进入决策管线之前"的行情处理：
- 快照合法性校验（价格区间、交叉盘口、价差、跳变，见 `market_data/validator.py`）

说明
----
行情传输（WS/REST、重连、JSON 解析）在仓库之外；这里假定调用方已把推送
转换为 `MarketSnapshot`。
"""

from market_data.validator import SnapshotValidator, ValidationStats

__all__ = [
    "SnapshotValidator",
    "ValidationStats",
]
