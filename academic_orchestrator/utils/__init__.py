"""工具模块包。

提供项目通用的工具函数和辅助模块：
- 日志工具：统一的 logger 工厂函数和根 logger 配置
"""

from academic_orchestrator.utils.logging import configure_root_logger, get_logger, parse_level

__all__ = [
    "get_logger",
    "configure_root_logger",
    "parse_level",
]
