"""统一日志配置模块。

提供标准化的日志工厂函数和根 logger 配置，确保整个编排引擎使用一致的日志格式和命名规范。
所有 logger 名称遵循 ``academic_orchestrator.{module_name}`` 的层级命名约定。
"""

import logging
from typing import Optional, Union

# 默认日志格式：时间戳 [级别] 模块名: 消息
DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
# 默认日期格式
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
# 根 logger 名称前缀
_ROOT_LOGGER_NAME = "academic_orchestrator"


def get_logger(module_name: Optional[str], level: Optional[int] = None) -> logging.Logger:
    """获取标准化的 logger 实例。

    名称格式为 ``academic_orchestrator.{module_name}``。``module_name`` 为空字符串
    或 ``None`` 时回退到根名称 ``academic_orchestrator``。已带有根前缀的名称
    （例如直接传入 ``__name__``）不会重复拼接。

    Args:
        module_name: 模块名称，将作为 logger 名称的一部分。
        level: 日志级别，默认不设置（继承父 logger 级别）。

    Returns:
        配置好的 Logger 实例。
    """
    if not module_name:
        logger_name = _ROOT_LOGGER_NAME
    elif module_name == _ROOT_LOGGER_NAME or module_name.startswith(_ROOT_LOGGER_NAME + "."):
        logger_name = module_name
    else:
        logger_name = f"{_ROOT_LOGGER_NAME}.{module_name}"

    logger = logging.getLogger(logger_name)

    if level is not None:
        logger.setLevel(level)

    return logger


def parse_level(level: Union[int, str]) -> int:
    """把 ``"DEBUG"`` / ``"info"`` / ``10`` 之类的输入转换为 logging 级别。"""
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level}")
    return resolved


def configure_root_logger(
    level: Union[int, str] = logging.INFO,
    format_str: str = DEFAULT_FORMAT,
    date_format: str = DEFAULT_DATE_FORMAT,
) -> None:
    """配置根 logger。

    为 ``academic_orchestrator`` 根 logger 添加 StreamHandler 并设置统一的日志格式。
    如果根 logger 已有 handler，则不会重复添加。

    Args:
        level: 日志级别，默认为 ``logging.INFO``，也接受级别名称字符串。
        format_str: 日志格式字符串，默认包含时间戳、级别、模块名和消息。
        date_format: 日期格式字符串，默认为 ``%Y-%m-%d %H:%M:%S``。
    """
    numeric_level = parse_level(level)
    root_logger = logging.getLogger(_ROOT_LOGGER_NAME)
    root_logger.setLevel(numeric_level)

    # 避免重复添加 handler
    if not root_logger.handlers:
        handler = logging.StreamHandler()
        handler.setLevel(numeric_level)
        formatter = logging.Formatter(format_str, datefmt=date_format)
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)
