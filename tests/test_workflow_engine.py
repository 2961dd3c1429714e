"""Tests for WorkflowEngine: validation, the four execution modes, timeouts,
cancellation, retry and loading definitions."""

import asyncio
import json

import pytest

from academic_orchestrator.agent_registry import create_agent_registry
from academic_orchestrator.cancellation import CancellationToken
from academic_orchestrator.context import ExecutionContext
from academic_orchestrator.errors import (
    CircularDependencyError,
    WorkflowNotFoundError,
    WorkflowValidationError,
)
from academic_orchestrator.interfaces.agent_executor import ExecutionResponse
from academic_orchestrator.models.enums import FailureKind, RetryPolicy, WorkflowMode
from academic_orchestrator.models.task import Step, Workflow
from academic_orchestrator.prompts import CONTEXT_SECTION_HEADER
from academic_orchestrator.workflow_engine import WorkflowEngine, create_workflow_engine

from conftest import ScriptedExecutor


def _make_engine(executor, **kwargs):
    return WorkflowEngine(executor, **kwargs)


def _diamond(mode=WorkflowMode.DAG):
    return Workflow(
        name="diamond",
        mode=mode,
        steps=[
            Step(id="A", name="A"),
            Step(id="B", name="B", dependencies=["A"]),
            Step(id="C", name="C", dependencies=["A"]),
            Step(id="D", name="D", dependencies=["B", "C"]),
        ],
    )


class TestValidate:
    """validate() 测试"""

    def test_valid_workflow(self, executor):
        result = _make_engine(executor).validate(_diamond())
        assert result.valid
        assert result.errors == []

    def test_self_dependency_is_invalid(self, executor):
        """自依赖的工作流无效"""
        workflow = Workflow(name="self", mode=WorkflowMode.DAG, steps=[
            Step(id="A", name="A", dependencies=["A"]),
        ])
        result = _make_engine(executor).validate(workflow)
        assert result.valid is False
        assert result.cycle == ["A", "A"]
        assert "Circular dependency detected: A -> A" in result.errors

    def test_missing_name_and_steps(self, executor):
        result = _make_engine(executor).validate(Workflow(name=""))
        assert not result.valid
        assert "Workflow name is required" in result.errors
        assert "Workflow must have at least one step" in result.errors

    def test_unknown_dependency(self, executor):
        workflow = Workflow(name="w", steps=[Step(id="a", name="a", dependencies=["ghost"])])
        result = _make_engine(executor).validate(workflow)
        assert "Step a depends on unknown step: ghost" in result.errors

    def test_duplicate_step_id(self, executor):
        workflow = Workflow(name="w", steps=[Step(id="a", name="a"), Step(id="a", name="again")])
        result = _make_engine(executor).validate(workflow)
        assert "Duplicate step id: a" in result.errors

    @pytest.mark.asyncio
    async def test_unknown_condition_is_treated_as_met(self, executor):
        """未注册的条件不是校验错误，步骤照常执行"""
        workflow = Workflow(name="w", mode=WorkflowMode.CONDITIONAL, steps=[
            Step(id="a", name="a", condition="hasApproval"),
        ])
        engine = _make_engine(executor)
        assert engine.validate(workflow).valid

        result = await engine.execute(workflow, ExecutionContext())
        assert [o.task_id for o in result.results] == ["a"]
        assert result.skipped == ()
        assert executor.started == ["a"]

    def test_custom_condition_is_accepted(self, executor):
        engine = _make_engine(executor)
        engine.conditions.register("isFullMoon", lambda ctx: False)
        workflow = Workflow(name="w", mode=WorkflowMode.CONDITIONAL, steps=[
            Step(id="a", name="a", condition="isFullMoon"),
        ])
        assert engine.validate(workflow).valid

    def test_cycle_only_checked_in_dag_mode(self, executor):
        """非 DAG 模式下依赖不参与调度，不检测循环"""
        workflow = Workflow(name="w", mode=WorkflowMode.SEQUENTIAL, steps=[
            Step(id="a", name="a", dependencies=["b"]),
            Step(id="b", name="b", dependencies=["a"]),
        ])
        assert _make_engine(executor).validate(workflow).valid


class TestSequential:
    """串行模式测试"""

    @pytest.mark.asyncio
    async def test_stop_on_failure(self):
        """第 2 步失败且 stop_on_failure 时，第 3 步不执行"""
        executor = ScriptedExecutor(failures={"s2": True})
        workflow = Workflow(name="w", steps=[
            Step(id="s1", name="s1"),
            Step(id="s2", name="s2", stop_on_failure=True),
            Step(id="s3", name="s3"),
        ])
        result = await _make_engine(executor).execute(workflow, ExecutionContext())

        assert len(result.results) == 1
        assert len(result.failures) == 1
        assert result.failures[0].task_id == "s2"
        assert "s3" not in executor.started

    @pytest.mark.asyncio
    async def test_continues_after_failure_by_default(self):
        executor = ScriptedExecutor(failures={"s2": True})
        workflow = Workflow(name="w", steps=[
            Step(id="s1", name="s1"),
            Step(id="s2", name="s2"),
            Step(id="s3", name="s3"),
        ])
        result = await _make_engine(executor).execute(workflow, ExecutionContext())
        assert [o.task_id for o in result.results] == ["s1", "s3"]
        assert not result.success

    @pytest.mark.asyncio
    async def test_previous_outputs_are_appended_to_prompt(self, executor):
        workflow = Workflow(name="w", steps=[
            Step(id="first", name="first", prompt="do first"),
            Step(id="second", name="second", prompt="do second"),
        ])
        context = ExecutionContext()
        await _make_engine(executor).execute(workflow, context)

        first_prompt = executor.requests[0].prompt
        second_prompt = executor.requests[1].prompt
        assert first_prompt == "do first"
        assert second_prompt.startswith("do second\n\n" + CONTEXT_SECTION_HEADER)
        assert '### first\n"output of first"' in second_prompt

    @pytest.mark.asyncio
    async def test_outputs_written_to_context(self, executor):
        workflow = Workflow(name="w", steps=[
            Step(id="a", name="a"),
            Step(id="b", name="b", output_key="draft"),
        ])
        context = ExecutionContext()
        await _make_engine(executor).execute(workflow, context)
        assert context.get("a") == "output of a"
        assert context.get("draft") == "output of b"
        assert [o.task_id for o in context.previous_results] == ["a", "b"]


class TestParallel:
    """并行模式测试"""

    @pytest.mark.asyncio
    async def test_partial_failure_is_contained(self):
        executor = ScriptedExecutor(failures={"b": True}, default_delay=0.01)
        workflow = Workflow(name="w", mode=WorkflowMode.PARALLEL, steps=[
            Step(id="a", name="a"), Step(id="b", name="b"), Step(id="c", name="c"),
        ])
        result = await _make_engine(executor).execute(workflow, ExecutionContext())

        assert sorted(o.task_id for o in result.results) == ["a", "c"]
        assert [o.task_id for o in result.failures] == ["b"]
        assert executor.peak == 3

    @pytest.mark.asyncio
    async def test_writes_applied_in_declaration_order(self):
        """并发兄弟步骤写同一个键时，声明顺序靠后的写入生效"""
        executor = ScriptedExecutor(
            replies={
                "slow": ExecutionResponse(content="slow", context_updates={"note": "slow"}),
                "fast": ExecutionResponse(content="fast", context_updates={"note": "fast"}),
            },
            delays={"slow": 0.05, "fast": 0.0},
        )
        workflow = Workflow(name="w", mode=WorkflowMode.PARALLEL, steps=[
            Step(id="slow", name="slow", output_key="shared"),
            Step(id="fast", name="fast", output_key="shared"),
        ])
        context = ExecutionContext()
        await _make_engine(executor).execute(workflow, context)

        assert executor.events.index(("end", "fast")) < executor.events.index(("end", "slow"))
        assert context.get("shared") == "fast"
        assert context.get("note") == "fast"


class TestConditional:
    """条件模式测试"""

    @pytest.mark.asyncio
    async def test_false_condition_skips_step(self, executor):
        engine = create_workflow_engine(executor)
        result = await engine.execute("conditional-submission", ExecutionContext())

        assert result.skipped == ("improve",)
        assert result.get("improve") is None
        assert [o.task_id for o in result.results] == ["check", "select", "submit"]
        assert result.failures == ()

    @pytest.mark.asyncio
    async def test_true_condition_runs_step(self):
        executor = ScriptedExecutor(failures={"check": True})
        engine = create_workflow_engine(executor)
        result = await engine.execute("conditional-submission", ExecutionContext())

        assert result.skipped == ()
        assert "improve" in executor.started
        assert [o.task_id for o in result.failures] == ["check"]

    @pytest.mark.asyncio
    async def test_is_first_condition(self, executor):
        workflow = Workflow(name="w", mode=WorkflowMode.CONDITIONAL, steps=[
            Step(id="a", name="a", condition="isFirst"),
            Step(id="b", name="b", condition="isFirst"),
            Step(id="c", name="c", condition="hasResults"),
        ])
        result = await _make_engine(executor).execute(workflow, ExecutionContext())
        assert [o.task_id for o in result.results] == ["a", "c"]
        assert result.skipped == ("b",)


class TestDag:
    """DAG 模式测试"""

    @pytest.mark.asyncio
    async def test_diamond_runs_in_rounds(self):
        """A -> {B, C} -> D，D 在 B 和 C 都结束后才开始"""
        executor = ScriptedExecutor(default_delay=0.01)
        result = await _make_engine(executor).execute(_diamond(), ExecutionContext())

        assert result.success
        assert executor.started[0] == "A"
        assert set(executor.started[1:3]) == {"B", "C"}
        assert executor.started[3] == "D"
        end_a = executor.event_index("end", "A")
        assert executor.event_index("start", "B") > end_a
        assert executor.event_index("start", "C") > end_a
        start_d = executor.event_index("start", "D")
        assert start_d > executor.event_index("end", "B")
        assert start_d > executor.event_index("end", "C")
        assert executor.peak == 2

    @pytest.mark.asyncio
    async def test_dependency_outputs_enrich_prompt(self, executor):
        await _make_engine(executor).execute(_diamond(), ExecutionContext())
        prompt_d = next(r.prompt for r in executor.requests if r.task_id == "D")
        prompt_a = next(r.prompt for r in executor.requests if r.task_id == "A")
        assert "### B" in prompt_d and "### C" in prompt_d
        assert "### A" not in prompt_d
        assert CONTEXT_SECTION_HEADER not in prompt_a

    @pytest.mark.asyncio
    async def test_dependents_of_failed_step_are_skipped(self):
        executor = ScriptedExecutor(failures={"A": True})
        workflow = Workflow(name="w", mode=WorkflowMode.DAG, steps=[
            Step(id="A", name="A"),
            Step(id="B", name="B", dependencies=["A"]),
            Step(id="C", name="C", dependencies=["B"]),
            Step(id="E", name="E"),
        ])
        result = await _make_engine(executor).execute(workflow, ExecutionContext())

        assert [o.task_id for o in result.failures] == ["A"]
        assert [o.task_id for o in result.results] == ["E"]
        assert set(result.skipped) == {"B", "C"}
        assert "B" not in executor.started

    @pytest.mark.asyncio
    async def test_cycle_raises_before_execution(self, executor):
        workflow = Workflow(name="w", mode=WorkflowMode.DAG, steps=[
            Step(id="a", name="a", dependencies=["b"]),
            Step(id="b", name="b", dependencies=["a"]),
        ])
        with pytest.raises(CircularDependencyError) as exc_info:
            await _make_engine(executor).execute(workflow, ExecutionContext())
        assert set(exc_info.value.cycle) == {"a", "b"}
        assert executor.requests == []

    @pytest.mark.asyncio
    async def test_paper_writing_workflow(self, executor):
        engine = create_workflow_engine(executor)
        result = await engine.execute("paper-writing", ExecutionContext())
        assert len(result.results) == 6
        assert executor.started[:2] == ["structure", "literature"]
        assert executor.started[-1] == "review"


class TestTimeoutsAndCancellation:
    """超时与取消测试"""

    @pytest.mark.asyncio
    async def test_step_timeout_becomes_failure(self):
        executor = ScriptedExecutor(delays={"slow": 1.0})
        workflow = Workflow(name="w", mode=WorkflowMode.PARALLEL, steps=[
            Step(id="slow", name="slow", timeout_ms=20),
            Step(id="quick", name="quick"),
        ])
        result = await _make_engine(executor).execute(workflow, ExecutionContext())

        failure = result.get("slow")
        assert failure.success is False
        assert failure.error_kind == FailureKind.TIMEOUT
        assert result.get("quick").success
        assert result.cancelled is False

    @pytest.mark.asyncio
    async def test_workflow_timeout_applies_to_steps(self):
        executor = ScriptedExecutor(delays={"slow": 1.0})
        workflow = Workflow(name="w", timeout_ms=20, steps=[Step(id="slow", name="slow")])
        result = await _make_engine(executor).execute(workflow, ExecutionContext())
        assert result.failures[0].timed_out

    @pytest.mark.asyncio
    async def test_cancel_between_steps(self):
        token = CancellationToken()

        def cancel_after(request):
            token.cancel("user abort")
            return "done"

        executor = ScriptedExecutor(replies={"b": cancel_after})
        workflow = Workflow(name="w", steps=[
            Step(id="a", name="a"), Step(id="b", name="b"), Step(id="c", name="c"),
        ])
        result = await _make_engine(executor).execute(workflow, ExecutionContext(), token)

        assert result.cancelled
        assert not result.success
        assert "c" not in executor.started
        assert result.get("c") is None

    @pytest.mark.asyncio
    async def test_cancel_in_flight_steps(self):
        executor = ScriptedExecutor(default_delay=1.0)
        workflow = Workflow(name="w", mode=WorkflowMode.PARALLEL, steps=[
            Step(id="a", name="a"), Step(id="b", name="b"),
        ])
        token = CancellationToken()

        async def cancel_soon():
            await asyncio.sleep(0.02)
            token.cancel()

        canceller = asyncio.ensure_future(cancel_soon())
        result = await _make_engine(executor).execute(workflow, ExecutionContext(), token)
        await canceller

        assert result.cancelled
        assert len(result.failures) == 2
        assert all(o.error_kind == FailureKind.CANCELLED for o in result.failures)
        assert executor.in_flight == 0

    @pytest.mark.asyncio
    async def test_session_token_keeps_no_finished_runs(self, executor):
        """同一个会话令牌驱动多次运行，运行结束后不再挂着子令牌"""
        session = CancellationToken()
        engine = _make_engine(executor)
        workflow = Workflow(name="w", steps=[Step(id="a", name="a")])

        for _ in range(3):
            result = await engine.execute(workflow, ExecutionContext(), cancel_token=session)
            assert result.success

        assert session.children == []


class TestRetry:
    """重试测试"""

    @pytest.mark.asyncio
    async def test_retry_keeps_only_last_outcome(self, no_sleep):
        executor = ScriptedExecutor(failures={"flaky": 2})
        workflow = Workflow(name="w", steps=[
            Step(id="flaky", name="flaky", retry_policy=RetryPolicy.FIXED, max_retries=3),
        ])
        result = await _make_engine(executor, sleep=no_sleep).execute(workflow, ExecutionContext())

        assert len(result.outcomes) == 1
        assert result.results[0].attempts == 3
        assert executor.attempts["flaky"] == 3
        assert no_sleep.delays == [1.0, 1.0]

    @pytest.mark.asyncio
    async def test_workflow_level_exponential_policy(self, no_sleep):
        executor = ScriptedExecutor(failures={"flaky": True})
        workflow = Workflow(
            name="w",
            retry_policy=RetryPolicy.EXPONENTIAL,
            max_retries=2,
            steps=[Step(id="flaky", name="flaky")],
        )
        result = await _make_engine(executor, sleep=no_sleep).execute(workflow, ExecutionContext())

        assert result.failures[0].attempts == 3
        assert no_sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_no_retry_by_default(self, no_sleep):
        executor = ScriptedExecutor(failures={"a": True})
        workflow = Workflow(name="w", steps=[Step(id="a", name="a")])
        await _make_engine(executor, sleep=no_sleep).execute(workflow, ExecutionContext())
        assert executor.attempts["a"] == 1
        assert no_sleep.delays == []


class TestRegistryAndLoading:
    """工作流注册表与加载测试"""

    def test_default_workflows_registered(self, executor):
        engine = create_workflow_engine(executor)
        names = [w.name for w in engine.list_workflows()]
        assert names == [
            "literature-review", "paper-writing", "parallel-analysis", "conditional-submission",
        ]
        assert engine.get("paper-writing").mode == WorkflowMode.DAG

    @pytest.mark.asyncio
    async def test_unknown_workflow_name(self, executor):
        with pytest.raises(WorkflowNotFoundError):
            await _make_engine(executor).execute("missing", ExecutionContext())

    def test_create_workflow_defaults(self, executor):
        workflow = _make_engine(executor).create_workflow(steps=[{"id": "a"}])
        assert workflow.name == "unnamed"
        assert workflow.mode == WorkflowMode.SEQUENTIAL
        assert workflow.retry_policy == RetryPolicy.NONE
        assert workflow.steps[0].name == "a"

    def test_load_json_definition(self, executor):
        engine = _make_engine(executor)
        source = json.dumps({
            "name": "review-flow",
            "type": "dag",
            "steps": [
                {"id": "search", "agent": "literature-agent", "timeoutMs": 5000},
                {"id": "write", "dependencies": ["search"], "stopOnFailure": True,
                 "outputKey": "draft", "retryPolicy": "fixed", "maxRetries": 2},
            ],
        })
        workflow = engine.load_workflow(source)

        assert engine.get("review-flow") is workflow
        assert workflow.mode == WorkflowMode.DAG
        write = workflow.get_step("write")
        assert write.stop_on_failure is True
        assert write.output_key == "draft"
        assert write.retry_policy == RetryPolicy.FIXED
        assert workflow.get_step("search").timeout_ms == 5000

    def test_dump_and_reload(self, executor):
        engine = create_workflow_engine(executor)
        dumped = engine.dump_workflow(engine.get("conditional-submission"))
        reloaded = engine.load_workflow(dumped, register=False)
        assert reloaded.to_dict() == engine.get("conditional-submission").to_dict()

    def test_load_invalid_json(self, executor):
        with pytest.raises(WorkflowValidationError):
            _make_engine(executor).load_workflow("{not json")

    def test_load_invalid_mode(self, executor):
        with pytest.raises(WorkflowValidationError):
            _make_engine(executor).load_workflow({"name": "w", "mode": "random"})

    def test_load_yaml_file(self, executor, tmp_path):
        path = tmp_path / "flow.yaml"
        path.write_text(
            "name: yaml-flow\n"
            "mode: parallel\n"
            "steps:\n"
            "  - id: a\n"
            "  - id: b\n",
            encoding="utf-8",
        )
        workflow = _make_engine(executor).load_workflow_file(path)
        assert workflow.name == "yaml-flow"
        assert [s.id for s in workflow.steps] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_registry_system_prompt_is_passed(self, executor):
        engine = _make_engine(executor, registry=create_agent_registry())
        workflow = Workflow(name="w", steps=[Step(id="r", name="r", agent="peer-reviewer")])
        context = ExecutionContext()
        await engine.execute(workflow, context)

        assert executor.requests[0].system_prompt.startswith("You are an experienced peer reviewer")
        assert context.get_agents() == ["peer-reviewer"]

    def test_unregister(self, executor):
        engine = create_workflow_engine(executor)
        assert engine.unregister("paper-writing") is True
        assert engine.unregister("paper-writing") is False
        assert engine.get("paper-writing") is None
