"""IAgentExecutor backed by a Qwen chat client."""

import asyncio
import dataclasses
from typing import List, Optional

from ..errors import AgentExecutionError, AgentTimeoutError
from ..interfaces.agent_executor import ExecutionRequest, ExecutionResponse, IAgentExecutor
from ..utils.logging import get_logger
from .interface import IQwenClient
from .models import Message, QwenConfig

logger = get_logger("qwen.executor")

DEFAULT_SYSTEM_PROMPT = "You are a helpful academic research assistant."


class QwenAgentExecutor(IAgentExecutor):
    """把一次智能体调用转换为一次 Qwen 聊天请求

    system 消息取自 ``request.system_prompt``（否则使用默认提示词），
    允许的能力列表附加在 system 消息末尾。返回内容原样放入 ``content``。
    """

    def __init__(self, client: IQwenClient, config: Optional[QwenConfig] = None):
        self._client = client
        self._config = config

    def build_messages(self, request: ExecutionRequest) -> List[Message]:
        system = request.system_prompt or DEFAULT_SYSTEM_PROMPT
        if request.allowed_capabilities:
            system += "\n\nAvailable tools: " + ", ".join(request.allowed_capabilities)
        return [
            Message(role="system", content=system),
            Message(role="user", content=request.prompt),
        ]

    def _effective_config(self, request: ExecutionRequest) -> Optional[QwenConfig]:
        if request.timeout_ms is None:
            return self._config
        base = self._config or QwenConfig()
        return dataclasses.replace(base, timeout=request.timeout_ms / 1000.0)

    async def execute(self, request: ExecutionRequest) -> ExecutionResponse:
        agent = request.agent_name or "qwen"
        logger.debug("Calling Qwen for %s (task %s)", agent, request.task_id)
        try:
            response = await self._client.chat(
                self.build_messages(request), config=self._effective_config(request)
            )
        except asyncio.TimeoutError as e:
            raise AgentTimeoutError(
                f"Qwen call timed out for {agent}", agent_id=agent, task_id=request.task_id
            ) from e
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise AgentExecutionError(
                f"Qwen call failed for {agent}: {e}", agent_id=agent, task_id=request.task_id
            ) from e

        return ExecutionResponse(content=response.content, raw=response.to_dict())
