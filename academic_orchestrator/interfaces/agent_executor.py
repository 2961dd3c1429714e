"""Agent executor interface.

The orchestration core treats every agent as an opaque executor. It never
interprets ``ExecutionResponse.content`` beyond storing it or passing it on;
structured extraction belongs to the calling stage or to the executor itself
(via ``ExecutionResponse.data``).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class ExecutionRequest:
    """智能体调用请求"""
    prompt: str
    allowed_capabilities: List[str] = field(default_factory=list)
    timeout_ms: Optional[int] = None
    agent_name: Optional[str] = None
    system_prompt: Optional[str] = None
    task_id: Optional[str] = None


@dataclass
class ExecutionResponse:
    """智能体调用响应

    Attributes:
        content: 不透明的文本输出
        data: 执行器已解析好的结构化数据（可选）
        raw: 底层服务的原始响应（可选）
        context_updates: 需要写入共享上下文的键值（可选）
    """
    content: str
    data: Any = None
    raw: Any = None
    context_updates: Dict[str, Any] = field(default_factory=dict)


class IAgentExecutor(ABC):
    """智能体执行器接口"""

    @abstractmethod
    async def execute(self, request: ExecutionRequest) -> ExecutionResponse:
        """
        执行一次智能体调用

        Args:
            request: 调用请求

        Returns:
            执行响应

        Raises:
            AgentExecutionError: 调用失败（其他异常也会被调用方视为执行失败）
        """
        pass
