"""Task-centric executor for ad-hoc batches.

``SubagentExecutionService`` runs lists of ``Task`` objects that are not
registered workflows. Parallel execution is bounded: tasks are cut into
batches of ``max_concurrent`` and each batch is fully awaited before the next
one starts. Sequential and DAG execution feed earlier outputs into later
prompts and skip tasks whose dependencies did not succeed.
"""

import asyncio
import dataclasses
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from .cancellation import CancellationToken
from .errors import CircularDependencyError, WorkflowValidationError
from .graph import DependencyGraph
from .interfaces.agent_executor import IAgentExecutor
from .invoker import AgentInvoker
from .models.enums import RetryPolicy
from .models.result import ExecutionOutcome
from .models.task import Task
from .prompts import enrich_prompt_with_context
from .retry import RetryConfig
from .utils.logging import get_logger

logger = get_logger("subagent_executor")


@dataclass
class SubagentExecutionConfig:
    """子任务执行配置

    Attributes:
        max_concurrent: 每批最多并发的任务数（唯一的准入控制）
        timeout_ms: 任务未声明超时时使用的默认值
        retry_policy: 重试策略
        max_retries: 最大重试次数
        retry_delay: 第一次重试前的等待（秒）
        max_retry_delay: 单次等待上限（秒）
        retry_on_timeout: 超时是否重试
    """
    max_concurrent: int = 5
    timeout_ms: Optional[int] = 120000
    retry_policy: RetryPolicy = RetryPolicy.NONE
    max_retries: int = 1
    retry_delay: float = 1.0
    max_retry_delay: float = 30.0
    retry_on_timeout: bool = True

    def __post_init__(self):
        if self.max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")

    def to_retry_config(self) -> RetryConfig:
        return RetryConfig(
            policy=self.retry_policy,
            max_retries=self.max_retries,
            initial_delay=self.retry_delay,
            max_delay=self.max_retry_delay,
            retry_on_timeout=self.retry_on_timeout,
        )


@dataclass
class ExecutionSummary:
    """结果汇总"""
    successful: List[ExecutionOutcome] = field(default_factory=list)
    failed: List[ExecutionOutcome] = field(default_factory=list)
    summary: str = ""
    total_time_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "successful": [o.to_dict() for o in self.successful],
            "failed": [o.to_dict() for o in self.failed],
            "summary": self.summary,
            "total_time_ms": self.total_time_ms,
        }


class SubagentExecutionService:
    """子任务执行服务"""

    def __init__(
        self,
        executor: IAgentExecutor,
        config: Optional[SubagentExecutionConfig] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        初始化执行服务

        Args:
            executor: 智能体执行器
            config: 默认执行配置
            sleep: 重试等待函数（测试时可替换）
        """
        self._config = config or SubagentExecutionConfig()
        self._invoker = AgentInvoker(executor, sleep=sleep)
        self._skipped_count = 0

    @property
    def config(self) -> SubagentExecutionConfig:
        return self._config

    def _prepare(self, task: Task, config: SubagentExecutionConfig, prompt: Optional[str] = None) -> Task:
        changes: Dict[str, Any] = {}
        if task.timeout_ms is None and config.timeout_ms is not None:
            changes["timeout_ms"] = config.timeout_ms
        if prompt is not None:
            changes["prompt"] = prompt
        return dataclasses.replace(task, **changes) if changes else task

    async def execute_task(
        self,
        task: Task,
        config: Optional[SubagentExecutionConfig] = None,
        cancel_token: Optional[CancellationToken] = None,
        prompt: Optional[str] = None,
    ) -> ExecutionOutcome:
        """
        执行单个任务（含超时和重试）

        Args:
            task: 任务
            config: 执行配置（默认使用服务配置）
            cancel_token: 取消令牌
            prompt: 覆盖任务提示词（用于上下文增强）

        Returns:
            ExecutionOutcome: 最后一次尝试的结果
        """
        cfg = config or self._config
        prepared = self._prepare(task, cfg, prompt)
        logger.debug("Executing task %s (%s)", task.id, task.name)
        outcome = await self._invoker.invoke(
            prepared, retry=cfg.to_retry_config(), cancel_token=cancel_token
        )
        if outcome.success:
            logger.debug("Task completed: %s in %.0fms", task.name, outcome.execution_time_ms)
        return outcome

    async def _run_chunked(
        self,
        tasks: Sequence[Task],
        cfg: SubagentExecutionConfig,
        cancel_token: Optional[CancellationToken],
        prompts: Optional[Dict[str, str]] = None,
    ) -> List[ExecutionOutcome]:
        outcomes: List[ExecutionOutcome] = []
        for start in range(0, len(tasks), cfg.max_concurrent):
            if cancel_token is not None and cancel_token.cancelled:
                logger.info("Cancelled; %d task(s) not started", len(tasks) - start)
                break
            batch = tasks[start:start + cfg.max_concurrent]
            batch_outcomes = await asyncio.gather(*[
                self.execute_task(
                    task, cfg, cancel_token,
                    prompt=(prompts or {}).get(task.id),
                )
                for task in batch
            ])
            outcomes.extend(batch_outcomes)
        return outcomes

    async def execute_tasks_parallel(
        self,
        tasks: Sequence[Task],
        config: Optional[SubagentExecutionConfig] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> List[ExecutionOutcome]:
        """
        分批并发执行任务

        每批最多 ``max_concurrent`` 个任务，整批结束后才启动下一批。

        Returns:
            按任务提交顺序排列的结果
        """
        cfg = config or self._config
        logger.info("Executing %d tasks in parallel (max_concurrent=%d)", len(tasks), cfg.max_concurrent)
        outcomes = await self._run_chunked(list(tasks), cfg, cancel_token)
        successful = sum(1 for o in outcomes if o.success)
        logger.info("Parallel execution complete: %d/%d successful", successful, len(tasks))
        return outcomes

    async def execute_tasks_sequential(
        self,
        tasks: Sequence[Task],
        config: Optional[SubagentExecutionConfig] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> List[ExecutionOutcome]:
        """
        按顺序执行任务，前序成功输出追加到后续提示词

        依赖未成功（或不在本批中）的任务被跳过，不出现在结果中。
        """
        cfg = config or self._config
        logger.info("Executing %d tasks sequentially", len(tasks))
        outcomes: List[ExecutionOutcome] = []
        succeeded: Dict[str, Any] = {}

        for task in tasks:
            if cancel_token is not None and cancel_token.cancelled:
                logger.info("Cancelled before task %s", task.id)
                break
            if any(dep not in succeeded for dep in task.dependencies):
                logger.info("Skipping %s: dependencies not met", task.name)
                self._skipped_count += 1
                continue

            prompt = enrich_prompt_with_context(task.prompt, succeeded)
            outcome = await self.execute_task(task, cfg, cancel_token, prompt=prompt)
            outcomes.append(outcome)
            if outcome.success:
                succeeded[task.id] = outcome.value

        logger.info(
            "Sequential execution complete: %d/%d successful", len(succeeded), len(tasks)
        )
        return outcomes

    async def execute_tasks_dag(
        self,
        tasks: Sequence[Task],
        config: Optional[SubagentExecutionConfig] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> List[ExecutionOutcome]:
        """
        按依赖拓扑分轮执行

        执行前检测循环；每轮的就绪任务按 ``max_concurrent`` 分块并发执行，
        提示词追加其依赖任务的输出。依赖未成功的任务被跳过。

        Raises:
            CircularDependencyError: 依赖图中存在循环
            WorkflowValidationError: 任务 ID 重复
        """
        cfg = config or self._config
        tasks = list(tasks)
        ids = [t.id for t in tasks]
        if len(set(ids)) != len(ids):
            raise WorkflowValidationError("Duplicate task ids in DAG batch")

        graph = DependencyGraph(tasks)
        cycle = graph.find_cycle()
        if cycle:
            raise CircularDependencyError(
                f"Circular dependency detected involving {cycle[0]}: {' -> '.join(cycle)}",
                cycle=cycle,
            )

        logger.info("Executing %d tasks as DAG", len(tasks))
        outcomes: List[ExecutionOutcome] = []
        values: Dict[str, Any] = {}
        settled = set()
        succeeded = set()

        while len(settled) < len(tasks):
            if cancel_token is not None and cancel_token.cancelled:
                logger.info("Cancelled with %d task(s) pending", len(tasks) - len(settled))
                break

            blocked = graph.blocked(settled, succeeded)
            if blocked:
                for i in blocked:
                    logger.info("Skipping %s: dependencies not met", tasks[i].name)
                    self._skipped_count += 1
                    settled.add(ids[i])
                continue

            ready = [tasks[i] for i in graph.ready(settled, succeeded)]
            if not ready:
                raise CircularDependencyError("No task is ready in DAG batch")

            prompts = {
                task.id: enrich_prompt_with_context(task.prompt, values)
                for task in ready
            }
            round_outcomes = await self._run_chunked(ready, cfg, cancel_token, prompts)
            outcomes.extend(round_outcomes)
            for outcome in round_outcomes:
                settled.add(outcome.task_id)
                if outcome.success:
                    succeeded.add(outcome.task_id)
                    values[outcome.task_id] = outcome.value

        logger.info("DAG execution complete: %d/%d successful", len(succeeded), len(tasks))
        return outcomes

    def aggregate_results(self, outcomes: Sequence[ExecutionOutcome]) -> ExecutionSummary:
        """汇总成功/失败结果并生成文本摘要"""
        successful = [o for o in outcomes if o.success]
        failed = [o for o in outcomes if not o.success]
        total_ms = sum(o.execution_time_ms for o in outcomes)
        average_ms = round(total_ms / len(outcomes)) if outcomes else 0

        summary = "\n".join([
            "Subagent Execution Summary",
            "─" * 25,
            f"Total Tasks: {len(outcomes)}",
            f"Successful: {len(successful)}",
            f"Failed: {len(failed)}",
            f"Total Time: {round(total_ms)}ms",
            f"Average Time: {average_ms}ms",
        ])
        return ExecutionSummary(
            successful=successful, failed=failed, summary=summary, total_time_ms=total_ms
        )

    def get_statistics(self) -> Dict[str, int]:
        return {
            "active_tasks": self._invoker.active_count,
            "completed_tasks": self._invoker.completed_count,
            "skipped_tasks": self._skipped_count,
            "peak_concurrency": self._invoker.peak_concurrency,
        }
