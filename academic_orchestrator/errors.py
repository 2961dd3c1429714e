"""Error taxonomy for the orchestration engine.

Structural problems (cycles, unknown workflows, missing agents) are raised to
the caller. Per-task problems (``AgentExecutionError`` and its subclasses) are
caught at the invocation boundary and recorded as failed outcomes.
"""

from typing import List, Optional, Sequence


class OrchestrationError(Exception):
    """编排引擎错误基类"""
    pass


class ClassificationError(OrchestrationError):
    """任务分类失败（由关键词回退处理，不会抛给调用方）"""
    pass


class NoAgentFoundError(OrchestrationError):
    """没有可用的智能体处理该任务类型"""

    def __init__(self, message: str, task_type: Optional[str] = None):
        super().__init__(message)
        self.task_type = task_type


class AgentExecutionError(OrchestrationError):
    """单个智能体调用失败"""

    kind = "execution"

    def __init__(
        self,
        message: str,
        agent_id: Optional[str] = None,
        task_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.agent_id = agent_id
        self.task_id = task_id


class AgentTimeoutError(AgentExecutionError):
    """智能体调用超时"""

    kind = "timeout"


class ExecutionCancelledError(AgentExecutionError):
    """工作流运行被取消，进行中的调用被放弃"""

    kind = "cancelled"


class WorkflowValidationError(OrchestrationError):
    """工作流定义无效"""

    def __init__(self, message: str, errors: Optional[Sequence[str]] = None):
        super().__init__(message)
        self.errors: List[str] = list(errors or [message])


class CircularDependencyError(WorkflowValidationError):
    """依赖图中存在循环"""

    def __init__(self, message: str, cycle: Optional[Sequence[str]] = None):
        super().__init__(message)
        self.cycle: List[str] = list(cycle or [])


class UnknownConditionError(WorkflowValidationError):
    """条件谓词未注册"""
    pass


class WorkflowNotFoundError(OrchestrationError):
    """按名称查找的工作流不存在"""
    pass


class ContextImportError(OrchestrationError):
    """上下文导入失败"""
    pass


class ConfigurationError(OrchestrationError):
    """配置无效"""
    pass
