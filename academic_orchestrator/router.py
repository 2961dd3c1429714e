"""Agent router.

classify -> static task-type table -> registry lookup -> execution mode ->
workflow engine primitive. Each selected agent becomes one step whose timeout
and retry policy come from the agent's ``execution`` config.
"""

import time
from typing import Dict, List, Optional

from .cancellation import CancellationToken
from .context import ExecutionContext
from .errors import NoAgentFoundError
from .interfaces.agent_registry import IAgentRegistry
from .interfaces.task_classifier import ITaskClassifier
from .models.agent import AgentMetadata
from .models.enums import AgentExecutionMode, TaskType, WorkflowMode
from .models.request import RouteResult, UserRequest
from .models.task import Step
from .prompts import build_agent_prompt
from .utils.logging import get_logger
from .workflow_engine import WorkflowEngine

logger = get_logger("router")

TASK_AGENT_MAP: Dict[TaskType, List[str]] = {
    TaskType.LITERATURE: ["literature-agent"],
    TaskType.WRITING: ["writing-agent"],
    TaskType.ANALYSIS: ["analysis-agent"],
    TaskType.REVIEW: ["review-agent"],
    TaskType.SUBMISSION: ["submission-agent"],
    TaskType.COMPREHENSIVE: ["literature-agent", "writing-agent", "review-agent"],
}


def determine_execution_mode(agents: List[AgentMetadata]) -> WorkflowMode:
    """
    根据智能体元数据选择执行模式

    单个智能体、任一智能体声明依赖、或执行方式不统一时串行；
    全部为 parallel 或全部为 fork 时并行。
    """
    if len(agents) <= 1:
        return WorkflowMode.SEQUENTIAL
    if any(agent.dependencies for agent in agents):
        return WorkflowMode.SEQUENTIAL
    modes = {agent.execution.mode for agent in agents}
    if modes == {AgentExecutionMode.PARALLEL} or modes == {AgentExecutionMode.FORK}:
        return WorkflowMode.PARALLEL
    return WorkflowMode.SEQUENTIAL


class AgentRouter:
    """智能体路由器"""

    def __init__(
        self,
        registry: IAgentRegistry,
        engine: WorkflowEngine,
        classifier: ITaskClassifier,
        task_agent_map: Optional[Dict[TaskType, List[str]]] = None,
    ):
        self._registry = registry
        self._engine = engine
        self._classifier = classifier
        self._task_agent_map = task_agent_map or TASK_AGENT_MAP

    def select_agents(self, task_type: TaskType) -> List[AgentMetadata]:
        """
        按任务类型选择智能体（未注册的名称被忽略）

        Raises:
            NoAgentFoundError: 没有任何可用智能体
        """
        agents = []
        for name in self._task_agent_map.get(task_type, []):
            agent = self._registry.get(name)
            if agent is None:
                logger.warning("Agent %s is not registered; dropped", name)
                continue
            agents.append(agent)
        if not agents:
            raise NoAgentFoundError(
                f"No agent found for task type: {task_type.value}", task_type=task_type.value
            )
        return agents

    @staticmethod
    def build_steps(
        agents: List[AgentMetadata], request: UserRequest, stop_on_failure: bool = False
    ) -> List[Step]:
        steps = []
        for agent in agents:
            steps.append(Step(
                id=agent.name,
                name=agent.name,
                prompt=build_agent_prompt(agent, request.text),
                allowed_capabilities=list(agent.skills),
                timeout_ms=agent.execution.timeout_ms,
                agent=agent.name,
                stop_on_failure=stop_on_failure,
                retry_policy=agent.execution.retry_policy,
                max_retries=agent.execution.max_retries,
            ))
        return steps

    async def route(
        self,
        request: UserRequest,
        context: Optional[ExecutionContext] = None,
        stop_on_failure: bool = False,
        cancel_token: Optional[CancellationToken] = None,
    ) -> RouteResult:
        """
        路由并执行用户请求

        Args:
            request: 用户请求
            context: 执行上下文（默认新建）
            stop_on_failure: 串行模式下某个智能体失败后是否终止
            cancel_token: 取消令牌

        Returns:
            RouteResult: 任务类型、选中的智能体和执行结果

        Raises:
            NoAgentFoundError: 没有可用智能体
        """
        start = time.perf_counter()
        logger.info("Routing request: %s", request.text[:50])

        task_type = await self._classifier.classify(request)
        agents = self.select_agents(task_type)
        mode = determine_execution_mode(agents)
        logger.info(
            "Selected %d agent(s) for %s (%s): %s",
            len(agents), task_type.value, mode.value, ", ".join(a.name for a in agents),
        )

        ctx = context if context is not None else ExecutionContext()
        steps = self.build_steps(agents, request, stop_on_failure=stop_on_failure)
        name = f"route:{task_type.value}"
        if mode == WorkflowMode.PARALLEL:
            result = await self._engine.execute_parallel(steps, ctx, cancel_token, name=name)
        else:
            result = await self._engine.execute_sequential(steps, ctx, cancel_token, name=name)

        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info("Routing complete in %.0fms", elapsed_ms)
        return RouteResult(
            task_type=task_type,
            agents=[a.name for a in agents],
            result=result,
            execution_time_ms=elapsed_ms,
        )
