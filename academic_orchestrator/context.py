"""Shared execution context.

``ExecutionContext`` is the keyed store, message log and participant set that
is threaded through every step of one workflow run. It is created by whoever
starts the run and passed by reference; it is never shared across runs.
"""

import copy
import inspect
import json
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple, Union

from .errors import ContextImportError
from .models.enums import MessageDeliveryStatus, MessageType
from .models.message import Message, MessageDeliveryResult
from .models.result import ExecutionOutcome
from .utils.logging import get_logger

logger = get_logger("context")

MessageHandler = Callable[[Message], Union[Awaitable[None], None]]


@dataclass
class ContextSnapshot:
    """上下文快照（不包含消息历史）

    Attributes:
        data: 键值数据的深拷贝
        agents: 参与的智能体列表（注册顺序）
        message_count: 快照时的消息数量
    """
    data: Dict[str, Any] = field(default_factory=dict)
    agents: List[str] = field(default_factory=list)
    message_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "data": copy.deepcopy(self.data),
            "agents": list(self.agents),
            "messageCount": self.message_count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ContextSnapshot":
        return cls(
            data=copy.deepcopy(data.get("data") or {}),
            agents=list(data.get("agents") or []),
            message_count=int(data.get("messageCount", data.get("message_count", 0)) or 0),
        )


class ExecutionContext:
    """执行上下文

    共享数据的写入是 last-writer-wins；并发批次中的写入由调度器先暂存，
    批次结束后按步骤声明顺序统一应用。

    Attributes:
        previous_results: 本次运行中已成功的结果（条件谓词使用）
        failures: 本次运行中失败的结果
    """

    def __init__(self, data: Optional[Dict[str, Any]] = None) -> None:
        self._data: Dict[str, Any] = dict(data or {})
        self._history: List[Message] = []
        # dict 保持注册顺序
        self._agents: Dict[str, None] = {}
        self._handlers: Dict[str, List[MessageHandler]] = {}
        self.previous_results: List[ExecutionOutcome] = []
        self.failures: List[ExecutionOutcome] = []

    # ------------------------------------------------------------------
    # 键值数据
    # ------------------------------------------------------------------

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value
        logger.debug("Context updated: %s", key)

    def delete(self, key: str) -> bool:
        """删除键，返回键是否存在"""
        if key not in self._data:
            return False
        del self._data[key]
        logger.debug("Context key deleted: %s", key)
        return True

    def has(self, key: str) -> bool:
        return key in self._data

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)

    def keys(self) -> List[str]:
        return list(self._data.keys())

    def values(self) -> List[Any]:
        return list(self._data.values())

    def items(self) -> List[Tuple[str, Any]]:
        return list(self._data.items())

    @property
    def data(self) -> Dict[str, Any]:
        """数据的浅拷贝视图"""
        return dict(self._data)

    def update(self, updates: Dict[str, Any]) -> None:
        """批量写入

        写入前先复制映射，构造阶段不会失败，因此对调用方而言是原子的。
        """
        staged = dict(updates)
        self._data.update(staged)
        logger.debug("Context bulk update: %d keys", len(staged))

    def merge(self, partial: Dict[str, Any]) -> None:
        """按键浅合并：已有值与新值都是 dict 时合并，否则覆盖"""
        for key, value in partial.items():
            existing = self._data.get(key)
            if isinstance(existing, dict) and isinstance(value, dict):
                merged = dict(existing)
                merged.update(value)
                self._data[key] = merged
            else:
                self._data[key] = value
        logger.debug("Merged %d keys into context", len(partial))

    def clear(self) -> None:
        """清空数据、消息历史和运行状态（保留参与者和消息处理器）"""
        self._data.clear()
        self._history = []
        self.reset_run_state()
        logger.debug("Context cleared")

    # ------------------------------------------------------------------
    # 参与者
    # ------------------------------------------------------------------

    def register_agent(self, agent_name: str) -> None:
        if agent_name not in self._agents:
            self._agents[agent_name] = None
            logger.debug("Agent registered in context: %s", agent_name)

    def unregister_agent(self, agent_name: str) -> None:
        self._agents.pop(agent_name, None)

    def get_agents(self) -> List[str]:
        return list(self._agents)

    # ------------------------------------------------------------------
    # 消息
    # ------------------------------------------------------------------

    def register_message_handler(self, agent_name: str, handler: MessageHandler) -> None:
        """为智能体注册消息处理器（同一接收者可注册多个，按注册顺序调用）"""
        self._handlers.setdefault(agent_name, []).append(handler)

    def unregister_message_handler(
        self, agent_name: str, handler: Optional[MessageHandler] = None
    ) -> None:
        """注销处理器；未指定 handler 时注销该智能体的全部处理器"""
        if handler is None:
            self._handlers.pop(agent_name, None)
            return
        handlers = self._handlers.get(agent_name, [])
        if handler in handlers:
            handlers.remove(handler)
        if not handlers:
            self._handlers.pop(agent_name, None)

    async def send_message(
        self,
        sender: str,
        to: Union[str, List[str]],
        content: Any,
        msg_type: MessageType = MessageType.NOTIFICATION,
    ) -> List[MessageDeliveryResult]:
        """发送消息

        先追加到历史，再按接收者顺序调用其处理器。处理器抛出的异常会被记录并
        反映在投递结果中，不影响其他处理器。

        Args:
            sender: 发送者
            to: 接收者或接收者列表
            content: 消息内容
            msg_type: 消息类型

        Returns:
            每个接收者一条投递结果
        """
        message = Message(
            id=f"msg_{uuid.uuid4().hex[:12]}",
            sender=sender,
            to=list(to) if isinstance(to, (list, tuple)) else to,
            msg_type=msg_type,
            content=content,
            timestamp=time.time(),
        )
        self._history.append(message)
        logger.debug("Message: %s -> %s (%s)", sender, to, msg_type.value)

        deliveries = []
        for recipient in message.recipients:
            deliveries.append(await self._deliver(message, recipient))
        return deliveries

    async def _deliver(self, message: Message, recipient: str) -> MessageDeliveryResult:
        handlers = list(self._handlers.get(recipient, []))
        if not handlers:
            return MessageDeliveryResult(
                message_id=message.id,
                recipient=recipient,
                status=MessageDeliveryStatus.NO_HANDLER,
            )

        invoked = 0
        errors = []
        for handler in handlers:
            try:
                result = handler(message)
                if inspect.isawaitable(result):
                    await result
                invoked += 1
            except Exception as e:
                logger.error("Message handler for %s failed: %s", recipient, e)
                errors.append(str(e))

        return MessageDeliveryResult(
            message_id=message.id,
            recipient=recipient,
            status=MessageDeliveryStatus.FAILED if errors else MessageDeliveryStatus.DELIVERED,
            handlers_invoked=invoked,
            error="; ".join(errors) if errors else None,
        )

    def get_history(
        self,
        sender: Optional[str] = None,
        to: Optional[Union[str, List[str]]] = None,
        msg_type: Optional[MessageType] = None,
        limit: Optional[int] = None,
    ) -> List[Message]:
        """
        查询消息历史（插入顺序）

        Args:
            sender: 只保留该发送者的消息
            to: 只保留发送给任一指定接收者的消息
            msg_type: 只保留该类型的消息
            limit: 只保留最后 N 条

        Returns:
            过滤后的消息列表
        """
        messages = list(self._history)
        if sender:
            messages = [m for m in messages if m.sender == sender]
        if to:
            wanted = set(to) if isinstance(to, (list, tuple)) else {to}
            messages = [m for m in messages if wanted.intersection(m.recipients)]
        if msg_type is not None:
            messages = [m for m in messages if m.msg_type == msg_type]
        if limit:
            messages = messages[-limit:]
        return messages

    @property
    def history(self) -> List[Message]:
        return list(self._history)

    # ------------------------------------------------------------------
    # 快照与导入导出
    # ------------------------------------------------------------------

    def get_snapshot(self) -> ContextSnapshot:
        return ContextSnapshot(
            data=copy.deepcopy(self._data),
            agents=self.get_agents(),
            message_count=len(self._history),
        )

    def restore_snapshot(self, snapshot: Union[ContextSnapshot, Dict[str, Any]]) -> None:
        """从快照恢复数据和参与者（消息历史保持不变）"""
        if isinstance(snapshot, dict):
            snapshot = ContextSnapshot.from_dict(snapshot)
        self._data = copy.deepcopy(snapshot.data)
        self._agents = dict.fromkeys(snapshot.agents)
        logger.debug("Context restored from snapshot")

    def to_export_dict(self) -> Dict[str, Any]:
        return {
            "data": copy.deepcopy(self._data),
            "agents": self.get_agents(),
            "messages": [m.to_dict() for m in self._history],
            "exportedAt": datetime.now(timezone.utc).isoformat(),
        }

    def export_json(self, indent: Optional[int] = 2) -> str:
        """导出为 JSON（包含消息历史）"""
        return json.dumps(self.to_export_dict(), indent=indent, ensure_ascii=False, default=str)

    def import_json(self, payload: Union[str, Dict[str, Any]]) -> None:
        """
        从 JSON 导入，替换数据、参与者和消息历史

        缺失的 data / agents / messages 字段按空值处理。

        Raises:
            ContextImportError: JSON 无法解析或消息格式错误
        """
        try:
            raw = json.loads(payload) if isinstance(payload, str) else payload
            if not isinstance(raw, dict):
                raise ValueError("top-level value must be an object")
            data = dict(raw.get("data") or {})
            agents = list(raw.get("agents") or [])
            messages = [Message.from_dict(m) for m in raw.get("messages") or []]
        except (ValueError, TypeError, KeyError) as e:
            raise ContextImportError(f"Failed to import context: {e}") from e

        self._data = data
        self._agents = dict.fromkeys(agents)
        self._history = messages
        logger.info("Context imported: %d keys, %d messages", len(data), len(messages))

    # ------------------------------------------------------------------
    # 派生上下文
    # ------------------------------------------------------------------

    def create_scope(self, keys: Iterable[str]) -> "ExecutionContext":
        """创建只包含指定键的子上下文（浅拷贝值）"""
        return ExecutionContext({key: self._data[key] for key in keys if key in self._data})

    def clone(self) -> "ExecutionContext":
        """复制数据、参与者和消息历史（不复制处理器和运行状态）"""
        cloned = ExecutionContext()
        cloned.restore_snapshot(self.get_snapshot())
        cloned._history = list(self._history)
        return cloned

    def get_statistics(self) -> Dict[str, Any]:
        return {
            "data_keys": len(self._data),
            "agents": len(self._agents),
            "messages": len(self._history),
            "last_message_time": self._history[-1].timestamp if self._history else None,
        }

    # ------------------------------------------------------------------
    # 运行状态
    # ------------------------------------------------------------------

    def reset_run_state(self) -> None:
        self.previous_results = []
        self.failures = []

    def record_outcome(self, outcome: ExecutionOutcome) -> None:
        """把步骤结果记入运行状态（成功进 previous_results，失败进 failures）"""
        if outcome.success:
            self.previous_results.append(outcome)
        else:
            self.failures.append(outcome)
