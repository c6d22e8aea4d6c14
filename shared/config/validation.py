"""配置校验（启动阶段尽早失败）。

目标：
- 配置错误/参数集缺失一律抛 `ConfigurationError`，且只在启动阶段出现；
- 对顶层与 trading/validator 等核心块做“未知键”检查，并给出 typo 建议；
- 数值/类型约束交给 pydantic schema（见 `shared/config/schema.py`）。
"""

from __future__ import annotations

import difflib
from typing import Any, Iterable


class ConfigurationError(ValueError):
    """配置缺失或校验失败：启动即中止，不允许带着未校验参数进入交易。"""


def _suggest_key(key: str, allowed: Iterable[str]) -> str | None:
    matches = difflib.get_close_matches(key, list(allowed), n=1, cutoff=0.75)
    return matches[0] if matches else None


def ensure_allowed_keys(block: dict[str, Any], *, allowed: set[str], ctx: str) -> None:
    unknown = [k for k in block.keys() if k not in allowed]
    if not unknown:
        return
    parts = []
    for k in sorted(unknown):
        suggestion = _suggest_key(k, allowed)
        if suggestion:
            parts.append(f"{k} (did you mean '{suggestion}'?)")
        else:
            parts.append(k)
    raise ConfigurationError(f"{ctx} contains unknown keys: {', '.join(parts)}")


def expect_dict(val: Any, *, ctx: str) -> dict[str, Any]:
    if not isinstance(val, dict):
        raise ConfigurationError(f"{ctx} must be a dict")
    return val


def validate_raw_config(cfg: Any, *, model_fields: dict[str, set[str]]) -> None:
    """校验 raw config dict（来自 YAML + env 展开后）。

    Parameters
    ----------
    cfg:
        原始配置。
    model_fields:
        `{块名: 允许的键}`，块名 "" 表示顶层。由 schema 的 pydantic 字段推导，
        避免这里维护第二份键列表。
    """
    if not isinstance(cfg, dict):
        raise ConfigurationError("Config root must be a dict")

    ensure_allowed_keys(cfg, allowed=model_fields[""], ctx="config")
    if "symbol" not in cfg:
        raise ConfigurationError("Missing required config key: symbol")

    for block, allowed in model_fields.items():
        if not block or cfg.get(block) is None:
            continue
        raw = expect_dict(cfg[block], ctx=block)
        ensure_allowed_keys(raw, allowed=allowed, ctx=block)
