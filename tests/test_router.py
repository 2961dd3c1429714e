"""AgentRouter 与 AgentRegistry 测试。"""

import json

import pytest

from academic_orchestrator.agent_registry import (
    DEFAULT_AGENTS,
    PIPELINE_AGENTS,
    AgentRegistry,
    create_agent_registry,
)
from academic_orchestrator.classifier import TaskClassifier
from academic_orchestrator.context import ExecutionContext
from academic_orchestrator.errors import ConfigurationError, NoAgentFoundError
from academic_orchestrator.models.agent import AgentExecutionConfig, AgentMetadata
from academic_orchestrator.models.enums import AgentExecutionMode, RetryPolicy, TaskType, WorkflowMode
from academic_orchestrator.models.request import UserRequest
from academic_orchestrator.router import AgentRouter, determine_execution_mode
from academic_orchestrator.workflow_engine import WorkflowEngine

from conftest import ScriptedExecutor


def _agent(name, mode=AgentExecutionMode.SEQUENTIAL, dependencies=None):
    return AgentMetadata(
        name=name,
        execution=AgentExecutionConfig(mode=mode),
        dependencies=list(dependencies or []),
    )


def _make_router(executor, sleep, task_agent_map=None, registry=None):
    registry = registry if registry is not None else create_agent_registry()
    engine = WorkflowEngine(executor, registry=registry, sleep=sleep)
    return AgentRouter(registry, engine, TaskClassifier(executor=None), task_agent_map=task_agent_map)


class TestExecutionMode:
    """执行模式选择测试"""

    def test_single_agent_is_sequential(self):
        assert determine_execution_mode([_agent("a", AgentExecutionMode.PARALLEL)]) == WorkflowMode.SEQUENTIAL

    def test_all_parallel(self):
        agents = [_agent("a", AgentExecutionMode.PARALLEL), _agent("b", AgentExecutionMode.PARALLEL)]
        assert determine_execution_mode(agents) == WorkflowMode.PARALLEL

    def test_all_fork(self):
        agents = [_agent("a", AgentExecutionMode.FORK), _agent("b", AgentExecutionMode.FORK)]
        assert determine_execution_mode(agents) == WorkflowMode.PARALLEL

    def test_mixed_modes(self):
        agents = [_agent("a", AgentExecutionMode.PARALLEL), _agent("b", AgentExecutionMode.FORK)]
        assert determine_execution_mode(agents) == WorkflowMode.SEQUENTIAL

    def test_dependencies_force_sequential(self):
        agents = [
            _agent("a", AgentExecutionMode.PARALLEL),
            _agent("b", AgentExecutionMode.PARALLEL, dependencies=["a"]),
        ]
        assert determine_execution_mode(agents) == WorkflowMode.SEQUENTIAL


class TestRoute:
    """路由执行测试"""

    @pytest.mark.asyncio
    async def test_literature_request(self, executor, no_sleep):
        router = _make_router(executor, no_sleep)
        routed = await router.route(UserRequest(text="search for papers about transformers"))

        assert routed.task_type == TaskType.LITERATURE
        assert routed.agents == ["literature-agent"]
        assert routed.result.mode == WorkflowMode.SEQUENTIAL
        assert routed.result.success
        request = executor.requests[0]
        assert request.agent_name == "literature-agent"
        assert request.timeout_ms == 120000
        assert "search for papers about transformers" in request.prompt
        assert request.allowed_capabilities == DEFAULT_AGENTS[0].skills

    @pytest.mark.asyncio
    async def test_comprehensive_runs_sequentially(self, executor, no_sleep):
        router = _make_router(executor, no_sleep)
        context = ExecutionContext()
        routed = await router.route(UserRequest(text="help with my thesis"), context=context)

        assert routed.task_type == TaskType.COMPREHENSIVE
        assert routed.agents == ["literature-agent", "writing-agent", "review-agent"]
        assert routed.result.mode == WorkflowMode.SEQUENTIAL
        assert context.get("writing-agent") == "output of writing-agent"
        assert "### literature-agent" in executor.requests[1].prompt

    @pytest.mark.asyncio
    async def test_parallel_agents(self, no_sleep):
        executor = ScriptedExecutor(default_delay=0.01)
        router = _make_router(
            executor, no_sleep,
            task_agent_map={TaskType.REVIEW: ["literature-agent", "review-agent"]},
        )
        routed = await router.route(UserRequest(text="x", type=TaskType.REVIEW))
        assert routed.result.mode == WorkflowMode.PARALLEL
        assert executor.peak == 2

    @pytest.mark.asyncio
    async def test_agent_retry_policy_applies(self, no_sleep):
        executor = ScriptedExecutor(failures={"writing-agent": 1})
        router = _make_router(executor, no_sleep)
        routed = await router.route(UserRequest(text="write an abstract"))
        assert routed.result.success
        assert routed.result.results[0].attempts == 2
        assert no_sleep.delays == [1.0]

    @pytest.mark.asyncio
    async def test_stop_on_failure(self, no_sleep):
        executor = ScriptedExecutor(failures={"literature-agent": True})
        router = _make_router(executor, no_sleep)
        routed = await router.route(UserRequest(text="my thesis"), stop_on_failure=True)
        assert len(routed.result.failures) == 1
        assert "writing-agent" not in executor.started

    @pytest.mark.asyncio
    async def test_no_agent_found(self, executor, no_sleep):
        router = _make_router(executor, no_sleep, registry=AgentRegistry())
        with pytest.raises(NoAgentFoundError) as exc_info:
            await router.route(UserRequest(text="search papers"))
        assert exc_info.value.task_type == "literature"

    def test_unknown_names_dropped(self, executor, no_sleep):
        router = _make_router(
            executor, no_sleep,
            task_agent_map={TaskType.ANALYSIS: ["ghost-agent", "analysis-agent"]},
        )
        assert [a.name for a in router.select_agents(TaskType.ANALYSIS)] == ["analysis-agent"]


class TestAgentRegistry:
    """智能体注册表测试"""

    def test_defaults(self):
        registry = create_agent_registry()
        assert len(registry) == len(DEFAULT_AGENTS) + len(PIPELINE_AGENTS)
        assert "peer-reviewer" in registry
        assert registry.get("analysis-agent").execution.mode == AgentExecutionMode.FORK

    def test_without_pipeline_agents(self):
        registry = create_agent_registry(include_pipeline=False)
        assert registry.get("academic-writer") is None

    def test_registries_do_not_share_agents(self):
        """修改一个注册表里的智能体不影响其他注册表和内置定义"""
        first = create_agent_registry()
        second = create_agent_registry()

        first.get("literature-agent").execution.max_retries = 99
        first.get("literature-agent").skills.append("extra")

        assert second.get("literature-agent").execution.max_retries == 3
        assert "extra" not in second.get("literature-agent").skills
        assert DEFAULT_AGENTS[0].execution.max_retries == 3

    def test_get_unknown_is_none(self):
        assert AgentRegistry().get("missing") is None

    def test_require(self):
        with pytest.raises(NoAgentFoundError):
            AgentRegistry().require("missing")

    def test_find_by_capability_and_skill(self):
        registry = create_agent_registry()
        assert [a.name for a in registry.find("WebFetch")] == ["literature-searcher", "literature-reviewer"]
        assert [a.name for a in registry.get_by_skill("peer-review")] == ["review-agent"]

    def test_unregister(self):
        registry = create_agent_registry()
        assert registry.unregister("review-agent")
        assert not registry.unregister("review-agent")

    def test_load_yaml_definitions(self, tmp_path):
        path = tmp_path / "agents.yaml"
        path.write_text(
            "agents:\n"
            "  - name: stats-agent\n"
            "    description: Statistics helper\n"
            "    skills: [statistics]\n"
            "    execution:\n"
            "      mode: fork\n"
            "      timeoutMs: 5000\n"
            "      retryPolicy: exponential\n"
            "      maxRetries: 2\n",
            encoding="utf-8",
        )
        registry = AgentRegistry()
        loaded = registry.load_definitions(path)

        assert [a.name for a in loaded] == ["stats-agent"]
        agent = registry.get("stats-agent")
        assert agent.execution.mode == AgentExecutionMode.FORK
        assert agent.execution.timeout_ms == 5000
        assert agent.execution.retry_policy == RetryPolicy.EXPONENTIAL

    def test_load_json_list(self, tmp_path):
        path = tmp_path / "agents.json"
        path.write_text(json.dumps([{"name": "a"}, {"name": "b"}]), encoding="utf-8")
        registry = AgentRegistry()
        registry.load_definitions(path)
        assert [a.name for a in registry.list_all()] == ["a", "b"]

    def test_load_invalid_definitions(self, tmp_path):
        path = tmp_path / "agents.yaml"
        path.write_text("agents:\n  - description: no name\n", encoding="utf-8")
        with pytest.raises(ConfigurationError):
            AgentRegistry().load_definitions(path)

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            AgentRegistry().load_definitions(tmp_path / "missing.yaml")
