"""Message-related data models for inter-agent communication.

Messages are appended to the execution context history in insertion order;
the history is the audit trail used for replay and export.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from .enums import MessageDeliveryStatus, MessageType


@dataclass
class Message:
    """消息数据结构

    Attributes:
        id: 唯一消息 ID
        sender: 发送者智能体 ID（导出格式中的 ``from``）
        to: 接收者，单个智能体 ID 或 ID 列表
        msg_type: 消息类型
        content: 消息内容
        timestamp: 发送时间戳
    """
    id: str
    sender: str
    to: Union[str, List[str]]
    msg_type: MessageType
    content: Any
    timestamp: float

    @property
    def recipients(self) -> List[str]:
        if isinstance(self.to, (list, tuple)):
            return list(self.to)
        return [self.to]

    def to_dict(self) -> Dict[str, Any]:
        """序列化为字典"""
        return {
            "id": self.id,
            "from": self.sender,
            "to": list(self.to) if isinstance(self.to, (list, tuple)) else self.to,
            "type": self.msg_type.value,
            "content": self.content,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        """从字典反序列化"""
        return cls(
            id=data["id"],
            sender=data.get("from", data.get("sender", "")),
            to=data.get("to", []),
            msg_type=MessageType(data.get("type", data.get("msg_type", MessageType.NOTIFICATION.value))),
            content=data.get("content"),
            timestamp=data.get("timestamp", 0.0),
        )


@dataclass
class MessageDeliveryResult:
    """消息投递结果（每个接收者一条）

    Attributes:
        message_id: 消息 ID
        recipient: 接收者智能体 ID
        status: 投递状态
        handlers_invoked: 成功调用的处理器数量
        error: 错误信息（处理器抛出异常时）
    """
    message_id: str
    recipient: str
    status: MessageDeliveryStatus
    handlers_invoked: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """序列化为字典"""
        return {
            "message_id": self.message_id,
            "recipient": self.recipient,
            "status": self.status.value,
            "handlers_invoked": self.handlers_invoked,
            "error": self.error,
        }

