"""Agent invocation with timeout, cancellation and retry.

``AgentInvoker`` is the single boundary where agent exceptions are turned into
``ExecutionOutcome`` records. Everything above it (workflow engine, subagent
service, router) only ever sees outcomes for per-task failures.
"""

import asyncio
import time
from typing import Awaitable, Callable, Optional

from .cancellation import CancellationToken, run_with_deadline
from .errors import AgentExecutionError, ExecutionCancelledError
from .interfaces.agent_executor import ExecutionRequest, ExecutionResponse, IAgentExecutor
from .models.enums import FailureKind
from .models.result import ExecutionOutcome
from .models.task import Task
from .retry import RetryConfig
from .utils.logging import get_logger

logger = get_logger("invoker")

SleepFunc = Callable[[float], Awaitable[None]]


def _failure_kind(error: BaseException) -> FailureKind:
    if isinstance(error, AgentExecutionError):
        return FailureKind(error.kind)
    return FailureKind.EXECUTION


class AgentInvoker:
    """智能体调用器

    Attributes:
        active_count: 当前进行中的调用数
        peak_concurrency: 观察到的最大并发调用数
        completed_count: 已结束的任务数（按最终结果计）
    """

    def __init__(
        self,
        executor: IAgentExecutor,
        default_timeout_ms: Optional[int] = None,
        sleep: SleepFunc = asyncio.sleep,
    ):
        """
        初始化调用器

        Args:
            executor: 智能体执行器
            default_timeout_ms: 任务未声明超时时使用的默认值
            sleep: 重试等待函数（测试时可替换）
        """
        self._executor = executor
        self._default_timeout_ms = default_timeout_ms
        self._sleep = sleep
        self.active_count = 0
        self.peak_concurrency = 0
        self.completed_count = 0

    def _timeout_seconds(self, task: Task) -> Optional[float]:
        timeout_ms = task.timeout_ms if task.timeout_ms is not None else self._default_timeout_ms
        if timeout_ms is None or timeout_ms <= 0:
            return None
        return timeout_ms / 1000.0

    async def invoke_once(
        self,
        task: Task,
        agent_name: Optional[str] = None,
        system_prompt: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ExecutionOutcome:
        """
        执行一次尝试，总是返回结果而不是抛出执行错误

        Args:
            task: 任务
            agent_name: 执行该任务的智能体名称
            system_prompt: 智能体系统提示词
            cancel_token: 取消令牌

        Returns:
            ExecutionOutcome: 本次尝试的结果
        """
        timeout = self._timeout_seconds(task)
        request = ExecutionRequest(
            prompt=task.prompt or task.name,
            allowed_capabilities=list(task.allowed_capabilities),
            timeout_ms=int(timeout * 1000) if timeout is not None else None,
            agent_name=agent_name,
            system_prompt=system_prompt,
            task_id=task.id,
        )

        self.active_count += 1
        self.peak_concurrency = max(self.peak_concurrency, self.active_count)
        started_at = time.time()
        start = time.perf_counter()
        try:
            response: ExecutionResponse = await run_with_deadline(
                self._executor.execute(request), timeout, cancel_token
            )
            return ExecutionOutcome(
                task_id=task.id,
                success=True,
                value=response.data if response.data is not None else response.content,
                execution_time_ms=(time.perf_counter() - start) * 1000,
                agent_id=agent_name,
                started_at=started_at,
                finished_at=time.time(),
                context_updates=dict(response.context_updates or {}),
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            kind = _failure_kind(e)
            if kind == FailureKind.EXECUTION:
                logger.warning("Task %s (%s) failed: %s", task.id, agent_name or "-", e)
            else:
                logger.warning("Task %s (%s) %s: %s", task.id, agent_name or "-", kind.value, e)
            return ExecutionOutcome(
                task_id=task.id,
                success=False,
                error=str(e) or e.__class__.__name__,
                error_kind=kind,
                execution_time_ms=(time.perf_counter() - start) * 1000,
                agent_id=agent_name,
                started_at=started_at,
                finished_at=time.time(),
            )
        finally:
            self.active_count -= 1

    async def invoke(
        self,
        task: Task,
        retry: Optional[RetryConfig] = None,
        agent_name: Optional[str] = None,
        system_prompt: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ExecutionOutcome:
        """
        按重试策略执行任务，只返回最后一次尝试的结果

        Args:
            task: 任务
            retry: 重试配置（默认不重试）
            agent_name: 智能体名称
            system_prompt: 系统提示词
            cancel_token: 取消令牌

        Returns:
            ExecutionOutcome: 最后一次尝试的结果，attempts 为实际尝试次数
        """
        retry_cfg = retry or RetryConfig()
        total_start = time.perf_counter()
        attempt = 0

        while True:
            outcome = await self.invoke_once(task, agent_name, system_prompt, cancel_token)
            if outcome.success or not retry_cfg.should_retry(attempt, outcome.error_kind):
                break

            delay = retry_cfg.get_delay(attempt)
            logger.info(
                "Retrying %s (attempt %d/%d) in %.2fs",
                task.id, attempt + 2, retry_cfg.max_attempts, delay,
            )
            try:
                await run_with_deadline(self._sleep(delay), None, cancel_token)
            except ExecutionCancelledError as e:
                logger.info("Task %s cancelled during retry backoff", task.id)
                outcome.error = str(e)
                outcome.error_kind = FailureKind.CANCELLED
                break
            attempt += 1

        outcome.attempts = attempt + 1
        outcome.execution_time_ms = (time.perf_counter() - total_start) * 1000
        self.completed_count += 1
        return outcome
