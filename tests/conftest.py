"""共享测试工具：可编排的假执行器和不等待的 sleep。"""

import asyncio
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import pytest

from academic_orchestrator.errors import AgentExecutionError
from academic_orchestrator.interfaces.agent_executor import (
    ExecutionRequest,
    ExecutionResponse,
    IAgentExecutor,
)

Reply = Union[str, ExecutionResponse, Callable[[ExecutionRequest], Any]]


class ScriptedExecutor(IAgentExecutor):
    """按 task_id / agent_name 编排返回值、失败和延迟的执行器

    Args:
        replies: key -> 字符串、ExecutionResponse 或 ``f(request)``
        failures: key -> True（总是失败）或 N（前 N 次失败）
        delays: key -> 秒
        default_delay: 未指定 key 时的延迟
    """

    def __init__(
        self,
        replies: Optional[Dict[str, Reply]] = None,
        failures: Optional[Dict[str, Union[bool, int]]] = None,
        delays: Optional[Dict[str, float]] = None,
        default_delay: float = 0.0,
    ):
        self.replies = dict(replies or {})
        self.failures = dict(failures or {})
        self.delays = dict(delays or {})
        self.default_delay = default_delay
        self.requests: List[ExecutionRequest] = []
        self.attempts: Dict[str, int] = {}
        self.events: List[Tuple[str, str]] = []
        self.in_flight = 0
        self.peak = 0

    @staticmethod
    def _key(request: ExecutionRequest) -> str:
        return request.task_id or request.agent_name or "?"

    def _lookup(self, table: Dict[str, Any], request: ExecutionRequest) -> Any:
        for key in (request.task_id, request.agent_name):
            if key is not None and key in table:
                return table[key]
        return None

    @property
    def started(self) -> List[str]:
        return [key for event, key in self.events if event == "start"]

    def event_index(self, event: str, key: str) -> int:
        return self.events.index((event, key))

    async def execute(self, request: ExecutionRequest) -> ExecutionResponse:
        key = self._key(request)
        self.requests.append(request)
        self.attempts[key] = self.attempts.get(key, 0) + 1
        self.events.append(("start", key))
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            delay = self._lookup(self.delays, request)
            delay = self.default_delay if delay is None else delay
            if delay:
                await asyncio.sleep(delay)

            failure = self._lookup(self.failures, request)
            if failure is True or (
                isinstance(failure, int) and not isinstance(failure, bool)
                and self.attempts[key] <= failure
            ):
                raise AgentExecutionError(f"{key} failed", agent_id=request.agent_name, task_id=request.task_id)

            reply = self._lookup(self.replies, request)
            if callable(reply):
                reply = reply(request)
            if reply is None:
                reply = f"output of {key}"
            if isinstance(reply, ExecutionResponse):
                return reply
            return ExecutionResponse(content=str(reply))
        finally:
            self.in_flight -= 1
            self.events.append(("end", key))


class RecordingSleep:
    """记录等待时长但不真正等待"""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def executor():
    return ScriptedExecutor()


@pytest.fixture
def no_sleep():
    return RecordingSleep()
