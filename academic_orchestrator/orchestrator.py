"""
编排服务
把分类、路由、工作流引擎组合成应用级流程，并实现四阶段文献综述流水线：
search -> analyze (并发) -> gap identification -> synthesis
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from .agent_registry import AgentRegistry, create_agent_registry
from .cancellation import CancellationToken
from .classifier import TaskClassifier
from .config import ConfigLoader, OrchestratorConfig
from .context import ExecutionContext
from .errors import (
    AgentExecutionError,
    AgentTimeoutError,
    ConfigurationError,
    ExecutionCancelledError,
)
from .interfaces.agent_executor import IAgentExecutor
from .interfaces.task_classifier import ITaskClassifier
from .invoker import AgentInvoker
from .metrics import MetricsCollector, estimate_tokens
from .models.enums import FailureKind, MessageType
from .models.request import RouteResult, UserRequest
from .models.result import ExecutionOutcome, WorkflowResult
from .models.task import Task, Workflow
from .parsing import extract_json_array, parse_numbered_list
from .prompts import (
    build_gap_prompt,
    build_review_prompt,
    build_search_prompt,
    build_synthesis_prompt,
)
from .qwen import DashScopeClient, QwenAgentExecutor, QwenConfig, QwenModel
from .router import AgentRouter
from .subagent_executor import SubagentExecutionService
from .utils.logging import configure_root_logger, get_logger
from .workflow_engine import WorkflowEngine, create_workflow_engine

logger = get_logger("orchestrator")

SEARCH_AGENT = "literature-searcher"
ANALYSIS_AGENT = "peer-reviewer"
GAP_AGENT = "literature-reviewer"
SYNTHESIS_AGENT = "academic-writer"

ORCHESTRATOR_ID = "orchestrator"
GAP_FALLBACK = "Failed to identify research gaps due to an error"


@dataclass
class Paper:
    """论文信息"""
    id: str
    title: str
    authors: List[str] = field(default_factory=list)
    abstract: Optional[str] = None
    year: Optional[int] = None
    venue: Optional[str] = None
    url: str = ""
    pdf_url: Optional[str] = None
    citation_count: Optional[int] = None
    doi: Optional[str] = None
    relevance_score: Optional[float] = None
    source: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """序列化为字典"""
        return {
            "id": self.id,
            "title": self.title,
            "authors": list(self.authors),
            "abstract": self.abstract,
            "year": self.year,
            "venue": self.venue,
            "url": self.url,
            "pdf_url": self.pdf_url,
            "citation_count": self.citation_count,
            "doi": self.doi,
            "relevance_score": self.relevance_score,
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], index: int = 0) -> "Paper":
        """从字典反序列化（兼容 camelCase 字段）"""
        authors = data.get("authors") or []
        if isinstance(authors, str):
            authors = [a.strip() for a in authors.split(",") if a.strip()]
        return cls(
            id=str(data.get("id") or f"paper-{index + 1}"),
            title=data.get("title") or "Untitled",
            authors=list(authors),
            abstract=data.get("abstract"),
            year=data.get("year"),
            venue=data.get("venue"),
            url=data.get("url") or "",
            pdf_url=data.get("pdf_url", data.get("pdfUrl")),
            citation_count=data.get("citation_count", data.get("citationCount")),
            doi=data.get("doi"),
            relevance_score=data.get("relevance_score", data.get("relevanceScore")),
            source=data.get("source"),
        )


@dataclass
class LiteratureReviewResult:
    """文献综述结果"""
    topic: str
    papers: List[Paper]
    analyses: List[str]
    gaps: List[str]
    synthesis: str
    duration_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "topic": self.topic,
            "papers": [p.to_dict() for p in self.papers],
            "analyses": list(self.analyses),
            "gaps": list(self.gaps),
            "synthesis": self.synthesis,
            "metadata": {
                "total_papers": len(self.papers),
                "analysis_count": len(self.analyses),
                "gap_count": len(self.gaps),
                "duration_ms": self.duration_ms,
            },
        }


def _stage_error(stage: str, outcome: ExecutionOutcome) -> AgentExecutionError:
    message = f"{stage} step failed: {outcome.error}"
    if outcome.error_kind == FailureKind.CANCELLED:
        return ExecutionCancelledError(message, agent_id=outcome.agent_id, task_id=outcome.task_id)
    if outcome.error_kind == FailureKind.TIMEOUT:
        return AgentTimeoutError(message, agent_id=outcome.agent_id, task_id=outcome.task_id)
    return AgentExecutionError(message, agent_id=outcome.agent_id, task_id=outcome.task_id)


class OrchestratorService:
    """编排服务

    所有协作者都通过构造函数注入；未注入时按配置创建默认实现。
    """

    def __init__(
        self,
        executor: IAgentExecutor,
        config: Optional[OrchestratorConfig] = None,
        registry: Optional[AgentRegistry] = None,
        engine: Optional[WorkflowEngine] = None,
        classifier: Optional[ITaskClassifier] = None,
        router: Optional[AgentRouter] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        """
        初始化编排服务

        Args:
            executor: 智能体执行器
            config: 编排配置
            registry: 智能体注册表（默认包含预定义智能体）
            engine: 工作流引擎（默认包含预定义工作流）
            classifier: 任务分类器
            router: 路由器
            metrics: 指标收集器
        """
        self._config = config or OrchestratorConfig()
        cfg = self._config

        if registry is None:
            registry = create_agent_registry()
            if cfg.agent_definitions:
                registry.load_definitions(cfg.agent_definitions)
        self._registry = registry

        self._engine = engine or create_workflow_engine(
            executor,
            registry=self._registry,
            default_timeout_ms=cfg.default_timeout_ms,
            retry_config=cfg.to_retry_config(),
        )
        classifier = classifier or TaskClassifier(
            executor, enabled=cfg.classifier_enabled, timeout_ms=cfg.classifier_timeout_ms
        )
        self._router = router or AgentRouter(self._registry, self._engine, classifier)
        self._metrics = metrics or MetricsCollector()
        self._invoker = AgentInvoker(executor, default_timeout_ms=cfg.default_timeout_ms)
        self._retry = cfg.to_retry_config()
        self._subagents = SubagentExecutionService(executor, cfg.to_subagent_config())

    @property
    def metrics(self) -> MetricsCollector:
        return self._metrics

    @property
    def engine(self) -> WorkflowEngine:
        return self._engine

    @property
    def registry(self) -> AgentRegistry:
        return self._registry

    @property
    def subagents(self) -> SubagentExecutionService:
        """按 max_concurrent 分批的子智能体执行服务"""
        return self._subagents

    # ------------------------------------------------------------------
    # 委托
    # ------------------------------------------------------------------

    async def process_request(
        self,
        request: Union[UserRequest, str],
        context: Optional[ExecutionContext] = None,
        stop_on_failure: bool = False,
        cancel_token: Optional[CancellationToken] = None,
    ) -> RouteResult:
        """分类并路由用户请求"""
        if isinstance(request, str):
            request = UserRequest(text=request)
        return await self._router.route(
            request, context=context, stop_on_failure=stop_on_failure, cancel_token=cancel_token
        )

    async def run_workflow(
        self,
        workflow: Union[Workflow, str],
        context: Optional[ExecutionContext] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> WorkflowResult:
        """执行已注册（或临时定义）的工作流"""
        ctx = context if context is not None else ExecutionContext()
        return await self._engine.execute(workflow, ctx, cancel_token)

    # ------------------------------------------------------------------
    # 文献综述流水线
    # ------------------------------------------------------------------

    async def conduct_literature_review(
        self,
        topic: str,
        max_papers: int = 50,
        analyze_top: int = 20,
        context: Optional[ExecutionContext] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> LiteratureReviewResult:
        """
        执行文献综述

        Args:
            topic: 研究主题
            max_papers: 检索的最大论文数
            analyze_top: 并发分析的前 N 篇
            context: 执行上下文（默认新建），各阶段输出写入其中
            cancel_token: 取消令牌

        Returns:
            LiteratureReviewResult

        Raises:
            AgentExecutionError: 检索或综合阶段失败
            NoAgentFoundError: 流水线智能体未注册
        """
        ctx = context if context is not None else ExecutionContext()
        start = time.perf_counter()
        logger.info(
            "Starting literature review: %s (max_papers=%d, analyze_top=%d)",
            topic, max_papers, analyze_top,
        )
        ctx.set("topic", topic)

        try:
            papers = await self._search(topic, max_papers, ctx, cancel_token)
            logger.info("Found %d papers", len(papers))

            analyses = await self._analyze(papers[:max(0, analyze_top)], ctx, cancel_token)
            logger.info("Analyzed %d papers", len(analyses))

            gaps = await self._identify_gaps(topic, papers, analyses, ctx, cancel_token)
            logger.info("Identified %d research gaps", len(gaps))

            synthesis = await self._synthesize(topic, papers, analyses, gaps, ctx, cancel_token)
        except Exception as e:
            logger.error("Literature review failed: %s", e)
            raise

        duration_ms = (time.perf_counter() - start) * 1000
        logger.info("Literature review completed in %.0fms", duration_ms)
        return LiteratureReviewResult(
            topic=topic,
            papers=papers,
            analyses=analyses,
            gaps=gaps,
            synthesis=synthesis,
            duration_ms=duration_ms,
        )

    async def _call_agent(
        self,
        agent_name: str,
        prompt: str,
        task_id: str,
        context: ExecutionContext,
        cancel_token: Optional[CancellationToken],
    ) -> ExecutionOutcome:
        agent = self._registry.require(agent_name)
        context.register_agent(agent_name)
        task = Task(
            id=task_id,
            name=agent_name,
            prompt=prompt,
            allowed_capabilities=list(agent.capabilities),
            timeout_ms=agent.execution.timeout_ms,
        )
        retry = self._retry.with_overrides(
            policy=agent.execution.retry_policy, max_retries=agent.execution.max_retries
        )
        outcome = await self._invoker.invoke(
            task,
            retry=retry,
            agent_name=agent_name,
            system_prompt=agent.system_prompt or None,
            cancel_token=cancel_token,
        )
        tokens = estimate_tokens(outcome.value if isinstance(outcome.value, str) else str(outcome.value or ""))
        self._metrics.record_agent_call(
            agent_name, outcome.execution_time_ms, tokens, success=outcome.success
        )
        return outcome

    async def _report(
        self, context: ExecutionContext, agent_name: str, stage: str, content: Any, ok: bool = True
    ) -> None:
        await context.send_message(
            sender=agent_name,
            to=ORCHESTRATOR_ID,
            content={"stage": stage, "result": content},
            msg_type=MessageType.RESPONSE if ok else MessageType.ERROR,
        )

    async def _search(
        self,
        topic: str,
        max_papers: int,
        context: ExecutionContext,
        cancel_token: Optional[CancellationToken],
    ) -> List[Paper]:
        outcome = await self._call_agent(
            SEARCH_AGENT, build_search_prompt(topic, max_papers), "search", context, cancel_token
        )
        if not outcome.success:
            await self._report(context, SEARCH_AGENT, "search", outcome.error, ok=False)
            raise _stage_error("Search", outcome)

        raw = outcome.value
        if isinstance(raw, str):
            raw = extract_json_array(raw) or []
        elif not isinstance(raw, list):
            raw = []

        papers = [
            Paper.from_dict(item, index)
            for index, item in enumerate(raw)
            if isinstance(item, dict)
        ][:max(0, max_papers)]

        context.set("papers", [p.to_dict() for p in papers])
        await self._report(context, SEARCH_AGENT, "search", {"paper_count": len(papers)})
        return papers

    async def _analyze_paper(
        self,
        paper: Paper,
        index: int,
        context: ExecutionContext,
        cancel_token: Optional[CancellationToken],
    ) -> str:
        outcome = await self._call_agent(
            ANALYSIS_AGENT,
            build_review_prompt(paper.to_dict(), index),
            f"analyze-{index + 1}",
            context,
            cancel_token,
        )
        if not outcome.success:
            logger.warning("Failed to analyze paper #%d (%s): %s", index + 1, paper.title, outcome.error)
            return f"Analysis failed for paper: {paper.title}"
        value = outcome.value
        return value if isinstance(value, str) else str(value)

    async def _analyze(
        self,
        papers: List[Paper],
        context: ExecutionContext,
        cancel_token: Optional[CancellationToken],
    ) -> List[str]:
        size = self._config.max_concurrent
        analyses: List[str] = []
        for start in range(0, len(papers), size):
            analyses.extend(await asyncio.gather(*[
                self._analyze_paper(paper, index, context, cancel_token)
                for index, paper in enumerate(papers[start:start + size], start)
            ]))
        context.set("analyses", analyses)
        await self._report(context, ANALYSIS_AGENT, "analyze", {"analysis_count": len(analyses)})
        return analyses

    async def _identify_gaps(
        self,
        topic: str,
        papers: List[Paper],
        analyses: List[str],
        context: ExecutionContext,
        cancel_token: Optional[CancellationToken],
    ) -> List[str]:
        prompt = build_gap_prompt(topic, [p.to_dict() for p in papers], analyses)
        outcome = await self._call_agent(GAP_AGENT, prompt, "gaps", context, cancel_token)
        if not outcome.success:
            logger.error("Gap identification failed: %s", outcome.error)
            gaps = [GAP_FALLBACK]
            await self._report(context, GAP_AGENT, "gaps", outcome.error, ok=False)
        else:
            value = outcome.value
            if isinstance(value, list):
                gaps = [str(item) for item in value]
            else:
                gaps = parse_numbered_list(str(value or ""))
            await self._report(context, GAP_AGENT, "gaps", {"gap_count": len(gaps)})
        context.set("gaps", gaps)
        return gaps

    async def _synthesize(
        self,
        topic: str,
        papers: List[Paper],
        analyses: List[str],
        gaps: List[str],
        context: ExecutionContext,
        cancel_token: Optional[CancellationToken],
    ) -> str:
        prompt = build_synthesis_prompt(topic, [p.to_dict() for p in papers], analyses, gaps)
        outcome = await self._call_agent(SYNTHESIS_AGENT, prompt, "synthesis", context, cancel_token)
        if not outcome.success:
            await self._report(context, SYNTHESIS_AGENT, "synthesis", outcome.error, ok=False)
            raise _stage_error("Synthesis", outcome)
        synthesis = outcome.value if isinstance(outcome.value, str) else str(outcome.value)
        context.set("synthesis", synthesis)
        await self._report(context, SYNTHESIS_AGENT, "synthesis", {"length": len(synthesis)})
        return synthesis


def create_orchestrator(
    executor: Optional[IAgentExecutor] = None,
    config: Optional[OrchestratorConfig] = None,
    config_file: Optional[str] = None,
    env_file: Optional[str] = None,
) -> OrchestratorService:
    """
    按配置创建编排服务

    未提供执行器时使用 DashScope 支持的 Qwen 执行器（需要 DASHSCOPE_API_KEY）。

    Raises:
        ConfigurationError: 配置校验失败
    """
    if config is None:
        loader = ConfigLoader(config_file=config_file, env_file=env_file)
        errors = loader.validate()
        if errors:
            raise ConfigurationError("Invalid configuration: " + "; ".join(errors))
        config = loader.config

    configure_root_logger(config.log_level)

    if executor is None:
        client = DashScopeClient(QwenConfig(model=QwenModel.parse(config.model)))
        executor = QwenAgentExecutor(client)
    return OrchestratorService(executor, config=config)
