"""
轻量日志封装。

Notes
-----
`setup_logger` 会避免重复添加 handler，否则多次调用会出现重复日志。
组件默认使用 `decision.<组件名>` 命名空间，方便按组件调整级别。
"""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"


def setup_logger(name: str = "decision", level: int | str = logging.INFO) -> logging.Logger:
    """
    创建或获取命名 logger。

    Parameters
    ----------
    name:
        Logger 名称。
    level:
        日志级别，默认 INFO；也接受 "DEBUG"/"WARNING" 这类字符串。

    Returns
    -------
    logging.Logger
        已配置的 logger。
    """
    logger = logging.getLogger(name)
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logger.setLevel(level)
    logger.propagate = False

    has_stream = any(isinstance(h, logging.StreamHandler) for h in logger.handlers)
    if not has_stream:
        ch = logging.StreamHandler()
        ch.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(ch)

    return logger


def component_logger(component: str, logger: logging.Logger | None = None) -> logging.Logger:
    """
    组件构造时的 logger 注入点：优先使用调用方传入的 logger。

    否则返回 `decision.<component>` 子 logger，不设级别与 handler，
    级别和输出继承自 `setup_logger("decision", ...)` 配置的父 logger。
    """
    if logger is not None:
        return logger
    return logging.getLogger(f"decision.{component}")
