"""User request and routing result models."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .enums import TaskType
from .result import WorkflowResult


@dataclass
class UserRequest:
    """用户请求

    ``type`` 显式给出时分类器直接使用，不做推断。
    """
    text: str
    type: Optional[TaskType] = None
    options: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserRequest":
        """从字典反序列化

        Raises:
            ValueError: ``type`` 不是已知的任务类型
        """
        raw_type = data.get("type")
        task_type = None
        if raw_type is not None:
            task_type = TaskType.parse(raw_type)
            if task_type is None:
                raise ValueError(f"Unknown task type: {raw_type}")
        return cls(
            text=data.get("text", ""),
            type=task_type,
            options=dict(data.get("options") or {}),
        )


@dataclass
class RouteResult:
    """路由结果"""
    task_type: TaskType
    agents: List[str]
    result: WorkflowResult
    execution_time_ms: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_type": self.task_type.value,
            "agents": list(self.agents),
            "result": self.result.to_dict(),
            "execution_time_ms": self.execution_time_ms,
        }
