"""Result-related data models."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .enums import FailureKind, WorkflowMode


@dataclass
class ExecutionOutcome:
    """单个任务（最后一次尝试）的执行结果

    Attributes:
        task_id: 任务/步骤 ID
        success: 是否成功
        value: 成功时智能体返回的内容
        error: 失败时的错误信息
        error_kind: 失败类别（execution / timeout / cancelled）
        execution_time_ms: 所有尝试累计耗时（毫秒）
        agent_id: 执行该任务的智能体
        attempts: 实际尝试次数
        started_at: 最后一次尝试的开始时间戳
        finished_at: 最后一次尝试的结束时间戳
    """
    task_id: str
    success: bool
    value: Any = None
    error: Optional[str] = None
    error_kind: Optional[FailureKind] = None
    execution_time_ms: float = 0.0
    agent_id: Optional[str] = None
    attempts: int = 1
    started_at: float = 0.0
    finished_at: float = 0.0
    context_updates: Dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def timed_out(self) -> bool:
        return self.error_kind == FailureKind.TIMEOUT

    @property
    def cancelled(self) -> bool:
        return self.error_kind == FailureKind.CANCELLED

    def to_dict(self) -> Dict[str, Any]:
        """序列化为字典"""
        return {
            "task_id": self.task_id,
            "success": self.success,
            "value": self.value,
            "error": self.error,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "execution_time_ms": self.execution_time_ms,
            "agent_id": self.agent_id,
            "attempts": self.attempts,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExecutionOutcome":
        """从字典反序列化"""
        error_kind = data.get("error_kind")
        return cls(
            task_id=data["task_id"],
            success=data["success"],
            value=data.get("value"),
            error=data.get("error"),
            error_kind=FailureKind(error_kind) if error_kind else None,
            execution_time_ms=data.get("execution_time_ms", 0.0),
            agent_id=data.get("agent_id"),
            attempts=data.get("attempts", 1),
            started_at=data.get("started_at", 0.0),
            finished_at=data.get("finished_at", 0.0),
        )


@dataclass(frozen=True)
class WorkflowResult:
    """一次工作流运行的汇总结果（返回后不可变）"""
    results: Tuple[ExecutionOutcome, ...]
    failures: Tuple[ExecutionOutcome, ...]
    execution_time_ms: float
    mode: WorkflowMode
    workflow_name: str = ""
    skipped: Tuple[str, ...] = ()
    cancelled: bool = False

    @property
    def success(self) -> bool:
        return not self.failures and not self.cancelled

    @property
    def outcomes(self) -> List[ExecutionOutcome]:
        return list(self.results) + list(self.failures)

    def get(self, task_id: str) -> Optional[ExecutionOutcome]:
        for outcome in self.outcomes:
            if outcome.task_id == task_id:
                return outcome
        return None

    def to_dict(self) -> Dict[str, Any]:
        """序列化为字典"""
        return {
            "workflow_name": self.workflow_name,
            "mode": self.mode.value,
            "results": [r.to_dict() for r in self.results],
            "failures": [f.to_dict() for f in self.failures],
            "skipped": list(self.skipped),
            "execution_time_ms": self.execution_time_ms,
            "cancelled": self.cancelled,
        }


@dataclass
class ValidationResult:
    """工作流校验结果"""
    valid: bool
    errors: List[str] = field(default_factory=list)
    cycle: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"valid": self.valid, "errors": list(self.errors)}
