"""Task, Step and Workflow data models.

These are the units handed to the scheduler. ``Task`` and ``Step`` are frozen:
once submitted, a task is never mutated; prompt enrichment produces a copy via
``dataclasses.replace``.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .enums import RetryPolicy, WorkflowMode


def _pick(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    """按顺序返回第一个存在的键值（兼容 snake_case 与 camelCase 定义）"""
    for key in keys:
        if key in data:
            return data[key]
    return default


@dataclass(frozen=True)
class Task:
    """提交给调度器的任务"""
    id: str
    name: str
    prompt: str = ""
    allowed_capabilities: List[str] = field(default_factory=list)
    timeout_ms: Optional[int] = None
    dependencies: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """序列化为字典"""
        return {
            "id": self.id,
            "name": self.name,
            "prompt": self.prompt,
            "allowed_capabilities": list(self.allowed_capabilities),
            "timeout_ms": self.timeout_ms,
            "dependencies": list(self.dependencies),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        """从字典反序列化"""
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            prompt=data.get("prompt", ""),
            allowed_capabilities=list(
                _pick(data, "allowed_capabilities", "allowedCapabilities", "capabilities", default=[])
            ),
            timeout_ms=_pick(data, "timeout_ms", "timeoutMs", "timeout"),
            dependencies=list(data.get("dependencies") or []),
        )


@dataclass(frozen=True)
class Step(Task):
    """工作流中的步骤

    Attributes:
        agent: 执行该步骤的智能体名称
        condition: 条件谓词名称（仅 conditional 模式生效）
        stop_on_failure: 失败后是否终止后续步骤（sequential/conditional 模式）
        output_key: 结果写入上下文时使用的键，默认为步骤 ID
        retry_policy: 覆盖工作流级别的重试策略
        max_retries: 覆盖工作流级别的最大重试次数
    """
    agent: str = ""
    condition: Optional[str] = None
    stop_on_failure: bool = False
    output_key: Optional[str] = None
    retry_policy: Optional[RetryPolicy] = None
    max_retries: Optional[int] = None

    @property
    def context_key(self) -> str:
        return self.output_key or self.id

    def to_dict(self) -> Dict[str, Any]:
        """序列化为字典"""
        data = super().to_dict()
        data.update({
            "agent": self.agent,
            "condition": self.condition,
            "stop_on_failure": self.stop_on_failure,
            "output_key": self.output_key,
            "retry_policy": self.retry_policy.value if self.retry_policy else None,
            "max_retries": self.max_retries,
        })
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Step":
        """从字典反序列化"""
        retry_policy = _pick(data, "retry_policy", "retryPolicy")
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            prompt=data.get("prompt", ""),
            allowed_capabilities=list(
                _pick(data, "allowed_capabilities", "allowedCapabilities", "capabilities", default=[])
            ),
            timeout_ms=_pick(data, "timeout_ms", "timeoutMs", "timeout"),
            dependencies=list(data.get("dependencies") or []),
            agent=data.get("agent") or "",
            condition=data.get("condition"),
            stop_on_failure=bool(_pick(data, "stop_on_failure", "stopOnFailure", default=False)),
            output_key=_pick(data, "output_key", "outputKey"),
            retry_policy=RetryPolicy(retry_policy) if retry_policy else None,
            max_retries=_pick(data, "max_retries", "maxRetries"),
        )


@dataclass
class Workflow:
    """命名的工作流定义"""
    name: str
    mode: WorkflowMode = WorkflowMode.SEQUENTIAL
    steps: List[Step] = field(default_factory=list)
    description: str = ""
    retry_policy: RetryPolicy = RetryPolicy.NONE
    max_retries: int = 0
    timeout_ms: Optional[int] = None

    def get_step(self, step_id: str) -> Optional[Step]:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def to_dict(self) -> Dict[str, Any]:
        """序列化为字典"""
        return {
            "name": self.name,
            "description": self.description,
            "mode": self.mode.value,
            "steps": [step.to_dict() for step in self.steps],
            "retry_policy": self.retry_policy.value,
            "max_retries": self.max_retries,
            "timeout_ms": self.timeout_ms,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Workflow":
        """从字典反序列化

        Raises:
            ValueError: mode 或 retry_policy 取值无效
        """
        mode = _pick(data, "mode", "type", default=WorkflowMode.SEQUENTIAL.value)
        retry_policy = _pick(data, "retry_policy", "retryPolicy", default=RetryPolicy.NONE.value)
        return cls(
            name=data.get("name") or "",
            description=data.get("description", ""),
            mode=WorkflowMode(mode),
            steps=[Step.from_dict(step) for step in data.get("steps") or []],
            retry_policy=RetryPolicy(retry_policy),
            max_retries=int(_pick(data, "max_retries", "maxRetries", default=0) or 0),
            timeout_ms=_pick(data, "timeout_ms", "timeoutMs", "timeout"),
        )
