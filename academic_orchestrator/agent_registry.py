"""
智能体注册表
按名称管理智能体定义，支持按能力、技能查找，以及从 YAML/JSON 文件批量加载
"""

import copy
import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from .errors import ConfigurationError, NoAgentFoundError
from .interfaces.agent_registry import IAgentRegistry
from .models.agent import AgentExecutionConfig, AgentMetadata
from .models.enums import AgentExecutionMode, RetryPolicy
from .utils.logging import get_logger

logger = get_logger("agent_registry")


class AgentRegistry(IAgentRegistry):
    """智能体注册表实现（保持注册顺序）"""

    def __init__(self) -> None:
        self._agents: Dict[str, AgentMetadata] = {}

    def register(self, agent: AgentMetadata) -> None:
        self._agents[agent.name] = agent
        logger.debug("Registering agent: %s", agent.name)

    def unregister(self, name: str) -> bool:
        removed = self._agents.pop(name, None) is not None
        if removed:
            logger.debug("Unregistered agent: %s", name)
        return removed

    def get(self, name: str) -> Optional[AgentMetadata]:
        return self._agents.get(name)

    def require(self, name: str) -> AgentMetadata:
        """
        按名称获取智能体

        Raises:
            NoAgentFoundError: 未注册
        """
        agent = self._agents.get(name)
        if agent is None:
            raise NoAgentFoundError(f"Agent definition not found: {name}")
        return agent

    def find(self, capability: str) -> List[AgentMetadata]:
        return [a for a in self._agents.values() if capability in a.capabilities]

    def get_by_skill(self, skill: str) -> List[AgentMetadata]:
        return [a for a in self._agents.values() if skill in a.skills]

    def list_all(self) -> List[AgentMetadata]:
        return list(self._agents.values())

    def __len__(self) -> int:
        return len(self._agents)

    def __contains__(self, name: object) -> bool:
        return name in self._agents

    def load_definitions(self, path: Union[str, Path]) -> List[AgentMetadata]:
        """
        从文件加载智能体定义

        文件可以是 YAML 或 JSON，顶层为列表，或包含 ``agents`` 列表的字典。

        Returns:
            新注册的智能体定义

        Raises:
            ConfigurationError: 文件格式错误
        """
        path = Path(path)
        try:
            with open(path, "r", encoding="utf-8") as f:
                if path.suffix.lower() == ".json":
                    raw: Any = json.load(f)
                else:
                    raw = yaml.safe_load(f)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to load agent definitions from {path}: {e}") from e

        entries = raw.get("agents", []) if isinstance(raw, dict) else raw
        if not isinstance(entries, list):
            raise ConfigurationError(f"Agent definitions in {path} must be a list")

        loaded = []
        for entry in entries:
            try:
                agent = AgentMetadata.from_dict(entry)
            except (KeyError, ValueError, TypeError, AttributeError) as e:
                raise ConfigurationError(f"Invalid agent definition in {path}: {e}") from e
            self.register(agent)
            loaded.append(agent)
        logger.info("Loaded %d agent definitions from %s", len(loaded), path)
        return loaded


# 路由使用的领域智能体
DEFAULT_AGENTS: List[AgentMetadata] = [
    AgentMetadata(
        name="literature-agent",
        description="Specialized agent for literature search and analysis",
        skills=["literature-search", "pdf-analyzer", "citation-graph", "semantic-search"],
        capabilities=[
            "Search across multiple academic databases",
            "Extract and analyze PDF content",
            "Generate citation graphs",
            "Perform semantic similarity search",
        ],
        input_format="Research topic or query",
        output_format="Literature review with citations and graph",
        execution=AgentExecutionConfig(
            mode=AgentExecutionMode.PARALLEL,
            timeout_ms=120000,
            retry_policy=RetryPolicy.EXPONENTIAL,
            max_retries=3,
        ),
    ),
    AgentMetadata(
        name="writing-agent",
        description="Specialized agent for academic writing assistance",
        skills=["paper-structure", "academic-polisher", "conversational-editor", "creative-expander"],
        capabilities=[
            "Generate paper structure",
            "Polish academic language",
            "Interactive writing assistance",
            "Creative expansion of ideas",
        ],
        input_format="Research topic or partial draft",
        output_format="Complete or expanded academic text",
        execution=AgentExecutionConfig(
            mode=AgentExecutionMode.SEQUENTIAL,
            timeout_ms=180000,
            retry_policy=RetryPolicy.FIXED,
            max_retries=2,
        ),
    ),
    AgentMetadata(
        name="analysis-agent",
        description="Specialized agent for data analysis and experimentation",
        skills=["data-analyzer", "experiment-runner", "data-analysis"],
        capabilities=[
            "Statistical analysis",
            "Experiment execution",
            "Visualization generation",
            "Report writing",
        ],
        input_format="Dataset or experiment code",
        output_format="Analysis report with visualizations",
        execution=AgentExecutionConfig(
            mode=AgentExecutionMode.FORK,
            timeout_ms=300000,
            retry_policy=RetryPolicy.EXPONENTIAL,
            max_retries=2,
        ),
    ),
    AgentMetadata(
        name="review-agent",
        description="Specialized agent for peer review simulation",
        skills=["peer-review", "writing-quality", "plagiarism-checker"],
        capabilities=[
            "Simulate peer review process",
            "Check writing quality",
            "Detect potential plagiarism",
            "Provide improvement suggestions",
        ],
        input_format="Complete manuscript",
        output_format="Review report with decision",
        execution=AgentExecutionConfig(
            mode=AgentExecutionMode.PARALLEL,
            timeout_ms=60000,
            retry_policy=RetryPolicy.NONE,
        ),
    ),
    AgentMetadata(
        name="submission-agent",
        description="Specialized agent for journal submission",
        skills=["journal-submission", "journal-matchmaker", "citation-manager"],
        capabilities=[
            "Match suitable journals",
            "Generate cover letters",
            "Format citations",
            "Prepare submission package",
        ],
        input_format="Final manuscript",
        output_format="Submission-ready package",
        execution=AgentExecutionConfig(
            mode=AgentExecutionMode.SEQUENTIAL,
            timeout_ms=90000,
            retry_policy=RetryPolicy.FIXED,
            max_retries=2,
        ),
    ),
]

# 文献综述流水线使用的智能体
PIPELINE_AGENTS: List[AgentMetadata] = [
    AgentMetadata(
        name="literature-searcher",
        description=(
            "Expert in academic literature search across multiple databases "
            "(ArXiv, Semantic Scholar, PubMed, ACL Anthology)"
        ),
        capabilities=["WebSearch", "WebFetch"],
        system_prompt=(
            "You are an expert academic literature researcher with access to multiple databases. "
            "Extract title, authors, year, venue, abstract and citation count for each paper."
        ),
    ),
    AgentMetadata(
        name="peer-reviewer",
        description="Expert academic peer reviewer for scientific papers",
        capabilities=["Read", "WebSearch"],
        execution=AgentExecutionConfig(mode=AgentExecutionMode.PARALLEL),
        system_prompt=(
            "You are an experienced peer reviewer for top-tier journals. "
            "Evaluate novelty, significance, methodology, results and clarity."
        ),
    ),
    AgentMetadata(
        name="literature-reviewer",
        description="Expert in conducting comprehensive literature reviews and synthesizing research",
        capabilities=["WebSearch", "WebFetch", "Read"],
        system_prompt="You are an expert in conducting literature reviews.",
    ),
    AgentMetadata(
        name="academic-writer",
        description="Expert in academic writing, editing, and coaching for research papers",
        capabilities=["Read", "Edit", "WebSearch"],
        system_prompt="You are an expert academic writing coach.",
    ),
]


def register_default_agents(registry: IAgentRegistry, include_pipeline: bool = True) -> None:
    """注册预定义智能体"""
    for agent in DEFAULT_AGENTS:
        registry.register(copy.deepcopy(agent))
    if include_pipeline:
        for agent in PIPELINE_AGENTS:
            registry.register(copy.deepcopy(agent))
    logger.info("Registered %d default agents", len(registry.list_all()))


def create_agent_registry(include_pipeline: bool = True) -> AgentRegistry:
    registry = AgentRegistry()
    register_default_agents(registry, include_pipeline=include_pipeline)
    return registry
