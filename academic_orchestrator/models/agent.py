"""Agent metadata models."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .enums import AgentExecutionMode, RetryPolicy


@dataclass
class AgentExecutionConfig:
    """智能体执行配置"""
    mode: AgentExecutionMode = AgentExecutionMode.SEQUENTIAL
    timeout_ms: Optional[int] = None
    retry_policy: RetryPolicy = RetryPolicy.NONE
    max_retries: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "timeout_ms": self.timeout_ms,
            "retry_policy": self.retry_policy.value,
            "max_retries": self.max_retries,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AgentExecutionConfig":
        return cls(
            mode=AgentExecutionMode(data.get("mode", AgentExecutionMode.SEQUENTIAL.value)),
            timeout_ms=data.get("timeout_ms", data.get("timeoutMs", data.get("timeout"))),
            retry_policy=RetryPolicy(data.get("retry_policy", data.get("retryPolicy", RetryPolicy.NONE.value))),
            max_retries=int(data.get("max_retries", data.get("maxRetries", 0)) or 0),
        )


@dataclass
class AgentMetadata:
    """注册表中的智能体定义

    路由只使用 ``dependencies`` 和 ``execution.mode`` 选择串行或并行；
    其余字段用于构造提示词和能力查询。
    """
    name: str
    description: str = ""
    skills: List[str] = field(default_factory=list)
    capabilities: List[str] = field(default_factory=list)
    input_format: str = ""
    output_format: str = ""
    execution: AgentExecutionConfig = field(default_factory=AgentExecutionConfig)
    dependencies: List[str] = field(default_factory=list)
    provides: List[str] = field(default_factory=list)
    system_prompt: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """序列化为字典"""
        return {
            "name": self.name,
            "description": self.description,
            "skills": list(self.skills),
            "capabilities": list(self.capabilities),
            "input_format": self.input_format,
            "output_format": self.output_format,
            "execution": self.execution.to_dict(),
            "dependencies": list(self.dependencies),
            "provides": list(self.provides),
            "system_prompt": self.system_prompt,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AgentMetadata":
        """从字典反序列化"""
        return cls(
            name=data["name"],
            description=data.get("description", ""),
            skills=list(data.get("skills") or []),
            capabilities=list(data.get("capabilities") or []),
            input_format=data.get("input_format", data.get("inputFormat", "")),
            output_format=data.get("output_format", data.get("outputFormat", "")),
            execution=AgentExecutionConfig.from_dict(data.get("execution") or {}),
            dependencies=list(data.get("dependencies") or []),
            provides=list(data.get("provides") or []),
            system_prompt=data.get("system_prompt", data.get("prompt", "")),
        )
