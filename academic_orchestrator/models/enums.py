"""Enumeration types for the orchestration engine."""

from enum import Enum
from typing import Optional


class WorkflowMode(Enum):
    """工作流执行模式"""
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"
    CONDITIONAL = "conditional"
    DAG = "dag"


class RetryPolicy(Enum):
    """重试策略"""
    NONE = "none"
    FIXED = "fixed"
    EXPONENTIAL = "exponential"


class AgentExecutionMode(Enum):
    """智能体声明的执行方式"""
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"
    FORK = "fork"  # 隔离上下文执行


class MessageType(Enum):
    """消息类型枚举"""
    REQUEST = "request"
    RESPONSE = "response"
    NOTIFICATION = "notification"
    ERROR = "error"


class MessageDeliveryStatus(Enum):
    """消息投递状态枚举"""
    DELIVERED = "delivered"
    NO_HANDLER = "no_handler"
    FAILED = "failed"


class FailureKind(Enum):
    """失败结果的类别"""
    EXECUTION = "execution"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


class TaskType(Enum):
    """用户请求的任务类型（封闭集合）"""
    LITERATURE = "literature"
    WRITING = "writing"
    ANALYSIS = "analysis"
    REVIEW = "review"
    SUBMISSION = "submission"
    COMPREHENSIVE = "comprehensive"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["TaskType"]:
        """宽松解析：大小写、首尾空白和标点不敏感，无法识别时返回 None"""
        if value is None:
            return None
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().strip(".,:;!\"'`*").lower()
        for member in cls:
            if member.value == normalized:
                return member
        return None
