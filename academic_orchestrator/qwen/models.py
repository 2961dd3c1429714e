"""Qwen chat data structures."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class QwenModel(Enum):
    """Qwen 模型枚举"""
    QWEN_TURBO = "qwen-turbo"
    QWEN_PLUS = "qwen-plus"
    QWEN_MAX = "qwen-max"
    QWEN_MAX_LONGCONTEXT = "qwen-max-longcontext"
    QWEN2_5_72B = "qwen2.5-72b-instruct"
    QWEN3_MAX = "qwen3-max"

    @classmethod
    def parse(cls, value: Any) -> "QwenModel":
        """按名称解析模型，无法识别时回退到 qwen-plus"""
        if isinstance(value, cls):
            return value
        for m in cls:
            if m.value == value:
                return m
        return cls.QWEN_PLUS

    def supports_thinking(self) -> bool:
        """是否支持 enable_thinking 参数"""
        return self == QwenModel.QWEN3_MAX


@dataclass
class QwenConfig:
    """Qwen 模型配置"""
    model: QwenModel = QwenModel.QWEN_PLUS
    api_key: Optional[str] = None
    temperature: float = 0.7
    max_tokens: Optional[int] = None
    timeout: float = 120.0  # 秒
    retry_attempts: int = 3
    top_p: float = 0.8
    enable_search: bool = False
    enable_thinking: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """序列化为字典（不含 api_key）"""
        return {
            "model": self.model.value,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "timeout": self.timeout,
            "retry_attempts": self.retry_attempts,
            "top_p": self.top_p,
            "enable_search": self.enable_search,
            "enable_thinking": self.enable_thinking,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QwenConfig":
        """从字典反序列化"""
        return cls(
            model=QwenModel.parse(data.get("model", "qwen-plus")),
            api_key=data.get("api_key"),
            temperature=data.get("temperature", 0.7),
            max_tokens=data.get("max_tokens"),
            timeout=data.get("timeout", 120.0),
            retry_attempts=data.get("retry_attempts", 3),
            top_p=data.get("top_p", 0.8),
            enable_search=data.get("enable_search", False),
            enable_thinking=data.get("enable_thinking", False),
        )


@dataclass
class Message:
    """聊天消息"""
    role: str  # "system", "user", "assistant"
    content: str

    def to_dict(self) -> Dict[str, Any]:
        """转换为 API 格式"""
        return {"role": self.role, "content": self.content}


@dataclass
class QwenResponse:
    """Qwen 响应数据结构"""
    content: str
    finish_reason: str = "stop"
    usage: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content": self.content,
            "finish_reason": self.finish_reason,
            "usage": dict(self.usage),
        }
