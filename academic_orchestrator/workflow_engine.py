"""Workflow engine.

Runs a named ``Workflow`` under one of four modes:

- sequential: steps in declaration order, each outcome recorded before the
  next step starts; ``stop_on_failure`` ends the run.
- parallel: all steps at once with settle-all semantics.
- conditional: like sequential, but each step's named condition is evaluated
  against the current context first; a false condition skips the step and
  an unregistered one counts as met.
- dag: topological rounds; each round's ready set runs concurrently; steps
  downstream of a failed or skipped step are skipped.

Context writes from a concurrent batch (parallel mode, one DAG round) are
staged per step and applied after the batch, in step declaration order, so
the final context is deterministic regardless of completion order.
"""

import asyncio
import dataclasses
import json
import time
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

import yaml

from .cancellation import CancellationToken
from .conditions import ConditionRegistry
from .context import ExecutionContext
from .errors import (
    CircularDependencyError,
    UnknownConditionError,
    WorkflowNotFoundError,
    WorkflowValidationError,
)
from .graph import DependencyGraph
from .interfaces.agent_executor import IAgentExecutor
from .interfaces.agent_registry import IAgentRegistry
from .interfaces.workflow_engine import IWorkflowEngine
from .invoker import AgentInvoker
from .models.enums import RetryPolicy, WorkflowMode
from .models.result import ExecutionOutcome, ValidationResult, WorkflowResult
from .models.task import Step, Workflow
from .prompts import enrich_prompt_with_context
from .retry import RetryConfig
from .utils.logging import get_logger

logger = get_logger("workflow_engine")


class _Run:
    """单次运行的可变状态"""

    def __init__(self, workflow: Workflow, context: ExecutionContext, token: CancellationToken):
        self.workflow = workflow
        self.context = context
        self.token = token
        self.results: List[ExecutionOutcome] = []
        self.failures: List[ExecutionOutcome] = []
        self.skipped: List[str] = []
        self.outcomes: Dict[str, ExecutionOutcome] = {}

    def record(self, outcome: ExecutionOutcome) -> None:
        self.outcomes[outcome.task_id] = outcome
        if outcome.success:
            self.results.append(outcome)
        else:
            self.failures.append(outcome)


class WorkflowEngine(IWorkflowEngine):
    """工作流引擎实现"""

    def __init__(
        self,
        executor: IAgentExecutor,
        conditions: Optional[ConditionRegistry] = None,
        registry: Optional[IAgentRegistry] = None,
        default_timeout_ms: Optional[int] = None,
        retry_config: Optional[RetryConfig] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        初始化工作流引擎

        Args:
            executor: 智能体执行器
            conditions: 条件谓词注册表（默认只含内置谓词）
            registry: 智能体注册表，用于查找步骤智能体的系统提示词（可选）
            default_timeout_ms: 步骤和工作流都未声明超时时使用的默认值
            retry_config: 重试的等待参数（策略和次数由工作流/步骤决定）
            sleep: 重试等待函数（测试时可替换）
        """
        self._invoker = AgentInvoker(executor, default_timeout_ms=default_timeout_ms, sleep=sleep)
        self._conditions = conditions or ConditionRegistry()
        self._registry = registry
        self._retry_base = retry_config or RetryConfig()
        self._workflows: Dict[str, Workflow] = {}

    @property
    def conditions(self) -> ConditionRegistry:
        return self._conditions

    # ------------------------------------------------------------------
    # 工作流注册表
    # ------------------------------------------------------------------

    def register(self, workflow: Workflow) -> None:
        self._workflows[workflow.name] = workflow
        logger.debug("Workflow registered: %s", workflow.name)

    def unregister(self, name: str) -> bool:
        return self._workflows.pop(name, None) is not None

    def get(self, name: str) -> Optional[Workflow]:
        return self._workflows.get(name)

    def list_workflows(self) -> List[Workflow]:
        return list(self._workflows.values())

    # ------------------------------------------------------------------
    # 定义与校验
    # ------------------------------------------------------------------

    def create_workflow(self, definition: Optional[Dict[str, Any]] = None, **kwargs: Any) -> Workflow:
        """
        由部分定义创建工作流并填充默认值

        默认值：name ``unnamed``，mode ``sequential``，retry_policy ``none``。
        ``steps`` 可以是 ``Step`` 对象或字典。
        """
        data = dict(definition or {})
        data.update(kwargs)
        steps = data.pop("steps", None) or []
        data.setdefault("name", "unnamed")
        mode = data.pop("type", None) if "mode" not in data else data["mode"]
        mode = mode or WorkflowMode.SEQUENTIAL
        retry_policy = data.get("retry_policy", data.get("retryPolicy", RetryPolicy.NONE))
        data["mode"] = mode.value if isinstance(mode, WorkflowMode) else mode
        data["retry_policy"] = (
            retry_policy.value if isinstance(retry_policy, RetryPolicy) else retry_policy
        )
        data.pop("retryPolicy", None)

        workflow = Workflow.from_dict(data)
        workflow.steps = [s if isinstance(s, Step) else Step.from_dict(s) for s in steps]
        return workflow

    def validate(self, workflow: Workflow) -> ValidationResult:
        errors: List[str] = []
        cycle: List[str] = []

        if not workflow.name:
            errors.append("Workflow name is required")
        if not workflow.steps:
            errors.append("Workflow must have at least one step")

        seen = set()
        for step in workflow.steps:
            if step.id in seen:
                errors.append(f"Duplicate step id: {step.id}")
            seen.add(step.id)

        graph = DependencyGraph(workflow.steps)
        for index, missing in graph.unknown.items():
            for dep in missing:
                errors.append(f"Step {graph.ids[index]} depends on unknown step: {dep}")

        if workflow.mode == WorkflowMode.DAG:
            cycle = graph.find_cycle() or []
            if cycle:
                errors.append(f"Circular dependency detected: {' -> '.join(cycle)}")

        return ValidationResult(valid=not errors, errors=errors, cycle=cycle)

    def _ensure_valid(self, workflow: Workflow) -> None:
        validation = self.validate(workflow)
        if validation.valid:
            return
        if validation.cycle:
            raise CircularDependencyError(
                f"Circular dependency in workflow '{workflow.name}': {' -> '.join(validation.cycle)}",
                cycle=validation.cycle,
            )
        raise WorkflowValidationError(
            f"Invalid workflow '{workflow.name}': {'; '.join(validation.errors)}",
            errors=validation.errors,
        )

    # ------------------------------------------------------------------
    # 加载与导出
    # ------------------------------------------------------------------

    def load_workflow(self, source: Union[str, Dict[str, Any]], register: bool = True) -> Workflow:
        """
        从 JSON 字符串或字典加载工作流定义

        Raises:
            WorkflowValidationError: 无法解析或字段取值无效
        """
        try:
            data = json.loads(source) if isinstance(source, str) else dict(source)
            workflow = self.create_workflow(data)
        except (ValueError, TypeError, KeyError) as e:
            raise WorkflowValidationError(f"Failed to load workflow: {e}") from e
        if register:
            self.register(workflow)
        return workflow

    def load_workflow_file(self, path: Union[str, Path], register: bool = True) -> Workflow:
        """从 .json / .yaml / .yml 文件加载工作流定义"""
        path = Path(path)
        with open(path, "r", encoding="utf-8") as f:
            if path.suffix.lower() in (".yaml", ".yml"):
                try:
                    data = yaml.safe_load(f) or {}
                except yaml.YAMLError as e:
                    raise WorkflowValidationError(f"Failed to load workflow: {e}") from e
                return self.load_workflow(data, register=register)
            return self.load_workflow(f.read(), register=register)

    @staticmethod
    def dump_workflow(workflow: Workflow, indent: Optional[int] = 2) -> str:
        return json.dumps(workflow.to_dict(), indent=indent, ensure_ascii=False)

    # ------------------------------------------------------------------
    # 执行
    # ------------------------------------------------------------------

    async def execute(
        self,
        workflow: Union[Workflow, str],
        context: ExecutionContext,
        cancel_token: Optional[CancellationToken] = None,
    ) -> WorkflowResult:
        if isinstance(workflow, str):
            found = self._workflows.get(workflow)
            if found is None:
                raise WorkflowNotFoundError(f"Workflow not found: {workflow}")
            workflow = found

        self._ensure_valid(workflow)

        token = cancel_token.child() if cancel_token is not None else CancellationToken()
        run = _Run(workflow, context, token)
        context.reset_run_state()

        logger.info(
            "Executing workflow %s (mode=%s, steps=%d)",
            workflow.name, workflow.mode.value, len(workflow.steps),
        )
        start = time.perf_counter()

        try:
            if workflow.mode == WorkflowMode.SEQUENTIAL:
                await self._run_sequential(run, use_conditions=False)
            elif workflow.mode == WorkflowMode.CONDITIONAL:
                await self._run_sequential(run, use_conditions=True)
            elif workflow.mode == WorkflowMode.PARALLEL:
                await self._run_batch(run, list(workflow.steps), enrich=False)
            else:
                await self._run_dag(run)
        finally:
            token.release()

        elapsed_ms = (time.perf_counter() - start) * 1000
        result = WorkflowResult(
            results=tuple(run.results),
            failures=tuple(run.failures),
            execution_time_ms=elapsed_ms,
            mode=workflow.mode,
            workflow_name=workflow.name,
            skipped=tuple(run.skipped),
            cancelled=token.cancelled,
        )
        logger.info(
            "Workflow %s complete in %.0fms: %d succeeded, %d failed, %d skipped%s",
            workflow.name, elapsed_ms, len(result.results), len(result.failures),
            len(result.skipped), " (cancelled)" if result.cancelled else "",
        )
        return result

    async def execute_sequential(
        self,
        steps: Sequence[Step],
        context: ExecutionContext,
        cancel_token: Optional[CancellationToken] = None,
        name: str = "sequential",
    ) -> WorkflowResult:
        """按顺序执行一组临时步骤（不注册工作流）"""
        workflow = Workflow(name=name, mode=WorkflowMode.SEQUENTIAL, steps=list(steps))
        return await self.execute(workflow, context, cancel_token)

    async def execute_parallel(
        self,
        steps: Sequence[Step],
        context: ExecutionContext,
        cancel_token: Optional[CancellationToken] = None,
        name: str = "parallel",
    ) -> WorkflowResult:
        """并发执行一组临时步骤（不注册工作流）"""
        workflow = Workflow(name=name, mode=WorkflowMode.PARALLEL, steps=list(steps))
        return await self.execute(workflow, context, cancel_token)

    def _condition_met(self, step: Step, context: ExecutionContext) -> bool:
        """未注册的条件按满足处理"""
        try:
            return self._conditions.evaluate(step.condition, context)
        except UnknownConditionError:
            logger.warning(
                "Step %s has unknown condition %s; treating it as met", step.id, step.condition
            )
            return True

    async def _run_sequential(self, run: _Run, use_conditions: bool) -> None:
        for index, step in enumerate(run.workflow.steps):
            if run.token.cancelled:
                logger.info("Workflow %s cancelled before step %s", run.workflow.name, step.id)
                break

            if use_conditions and step.condition:
                if not self._condition_met(step, run.context):
                    logger.info("Skipping step %s (condition %s not met)", step.id, step.condition)
                    run.skipped.append(step.id)
                    continue

            prior = {o.task_id: o.value for o in run.context.previous_results}
            outcome = await self._invoke_step(run, step, prior)
            self._apply(run, step, outcome)

            if not outcome.success and step.stop_on_failure:
                logger.info(
                    "Step %s failed with stop_on_failure; %d step(s) not run",
                    step.id, len(run.workflow.steps) - index - 1,
                )
                break

    async def _run_dag(self, run: _Run) -> None:
        steps = run.workflow.steps
        graph = DependencyGraph(steps)
        settled = set()
        succeeded = set()
        round_number = 0

        while len(settled) < len(steps):
            if run.token.cancelled:
                logger.info("Workflow %s cancelled after round %d", run.workflow.name, round_number)
                break

            blocked = graph.blocked(settled, succeeded)
            if blocked:
                for i in blocked:
                    logger.info("Skipping step %s (dependency did not succeed)", graph.ids[i])
                    run.skipped.append(graph.ids[i])
                    settled.add(graph.ids[i])
                continue

            ready = graph.ready(settled, succeeded)
            if not ready:
                remaining = [task_id for task_id in graph.ids if task_id not in settled]
                cycle = graph.find_cycle() or remaining
                raise CircularDependencyError(
                    f"No step is ready in workflow '{run.workflow.name}'; remaining: {', '.join(remaining)}",
                    cycle=cycle,
                )

            round_number += 1
            batch = [steps[i] for i in ready]
            logger.debug("DAG round %d: %s", round_number, [s.id for s in batch])
            await self._run_batch(run, batch, enrich=True)

            for step in batch:
                settled.add(step.id)
                outcome = run.outcomes.get(step.id)
                if outcome is not None and outcome.success:
                    succeeded.add(step.id)

    async def _run_batch(self, run: _Run, batch: List[Step], enrich: bool) -> None:
        """并发执行一批步骤，结束后按声明顺序应用写入"""
        coros = []
        for step in batch:
            upstream: Dict[str, Any] = {}
            if enrich:
                for dep in step.dependencies:
                    dep_outcome = run.outcomes.get(dep)
                    if dep_outcome is not None and dep_outcome.success:
                        upstream[dep] = dep_outcome.value
            coros.append(self._invoke_step(run, step, upstream))

        outcomes = await asyncio.gather(*coros)
        for step, outcome in zip(batch, outcomes):
            self._apply(run, step, outcome)

    async def _invoke_step(
        self, run: _Run, step: Step, upstream: Dict[str, Any]
    ) -> ExecutionOutcome:
        workflow = run.workflow
        if step.agent:
            run.context.register_agent(step.agent)

        timeout_ms = step.timeout_ms if step.timeout_ms is not None else workflow.timeout_ms
        prompt = enrich_prompt_with_context(step.prompt or step.name, upstream)
        task = dataclasses.replace(step, prompt=prompt, timeout_ms=timeout_ms)

        retry = self._retry_base.with_overrides(
            policy=step.retry_policy if step.retry_policy is not None else workflow.retry_policy,
            max_retries=step.max_retries if step.max_retries is not None else workflow.max_retries,
        )

        system_prompt = None
        if self._registry is not None and step.agent:
            agent = self._registry.get(step.agent)
            if agent is not None:
                system_prompt = agent.system_prompt or None

        logger.debug("Step %s -> %s", step.id, step.agent or "-")
        return await self._invoker.invoke(
            task,
            retry=retry,
            agent_name=step.agent or None,
            system_prompt=system_prompt,
            cancel_token=run.token,
        )

    @staticmethod
    def _apply(run: _Run, step: Step, outcome: ExecutionOutcome) -> None:
        run.record(outcome)
        run.context.record_outcome(outcome)
        if outcome.success:
            run.context.set(step.context_key, outcome.value)
            if outcome.context_updates:
                run.context.update(outcome.context_updates)


def register_default_workflows(engine: WorkflowEngine) -> None:
    """注册预定义工作流"""
    engine.register(Workflow(
        name="literature-review",
        description="Comprehensive literature review process",
        mode=WorkflowMode.SEQUENTIAL,
        steps=[
            Step(id="search", name="Search Literature", agent="literature-agent",
                 allowed_capabilities=["literature-search"]),
            Step(id="analyze", name="Analyze Papers", agent="literature-agent",
                 allowed_capabilities=["literature-analysis"], dependencies=["search"]),
            Step(id="synthesize", name="Synthesize Findings", agent="writing-agent",
                 allowed_capabilities=["literature-synthesis"], dependencies=["analyze"]),
        ],
    ))

    engine.register(Workflow(
        name="paper-writing",
        description="Complete academic paper writing process",
        mode=WorkflowMode.DAG,
        steps=[
            Step(id="structure", name="Create Structure", agent="writing-agent",
                 allowed_capabilities=["paper-structure"]),
            Step(id="literature", name="Literature Review", agent="literature-agent",
                 allowed_capabilities=["literature-review"]),
            Step(id="methods", name="Write Methods", agent="writing-agent",
                 allowed_capabilities=["academic-writing"], dependencies=["structure"]),
            Step(id="results", name="Write Results", agent="writing-agent",
                 allowed_capabilities=["academic-writing"], dependencies=["structure"]),
            Step(id="discussion", name="Write Discussion", agent="writing-agent",
                 allowed_capabilities=["academic-writing"], dependencies=["methods", "results"]),
            Step(id="review", name="Review Paper", agent="review-agent",
                 allowed_capabilities=["peer-review"], dependencies=["discussion"]),
        ],
    ))

    engine.register(Workflow(
        name="parallel-analysis",
        description="Run multiple analyses in parallel",
        mode=WorkflowMode.PARALLEL,
        steps=[
            Step(id="grammar", name="Grammar Check", agent="review-agent",
                 allowed_capabilities=["grammar-check"]),
            Step(id="quality", name="Quality Assessment", agent="review-agent",
                 allowed_capabilities=["quality-assessment"]),
            Step(id="citation", name="Citation Check", agent="literature-agent",
                 allowed_capabilities=["citation-validation"]),
        ],
    ))

    engine.register(Workflow(
        name="conditional-submission",
        description="Journal submission with quality gates",
        mode=WorkflowMode.CONDITIONAL,
        steps=[
            Step(id="check", name="Quality Check", agent="review-agent",
                 allowed_capabilities=["quality-check"]),
            Step(id="improve", name="Improve if Needed", agent="writing-agent",
                 allowed_capabilities=["text-improvement"], condition="hasFailures",
                 dependencies=["check"]),
            Step(id="select", name="Select Journal", agent="submission-agent",
                 allowed_capabilities=["journal-selection"], dependencies=["improve"]),
            Step(id="submit", name="Prepare Submission", agent="submission-agent",
                 allowed_capabilities=["submission-prep"], dependencies=["select"]),
        ],
    ))
    logger.debug("Registered %d default workflows", len(engine.list_workflows()))


def create_workflow_engine(executor: IAgentExecutor, **kwargs: Any) -> WorkflowEngine:
    """创建引擎并注册预定义工作流"""
    engine = WorkflowEngine(executor, **kwargs)
    register_default_workflows(engine)
    return engine
