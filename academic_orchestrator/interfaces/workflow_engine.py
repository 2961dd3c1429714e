"""Workflow engine interface."""

from abc import ABC, abstractmethod
from typing import Optional, Union

from ..cancellation import CancellationToken
from ..context import ExecutionContext
from ..models.result import ValidationResult, WorkflowResult
from ..models.task import Workflow


class IWorkflowEngine(ABC):
    """工作流引擎接口

    支持四种执行模式：
    - sequential: 按数组顺序逐个执行
    - parallel: 全部并发执行，settle-all 语义
    - conditional: 执行前评估条件谓词，不满足则跳过
    - dag: 按依赖拓扑分轮执行，每轮内部并发
    """

    @abstractmethod
    async def execute(
        self,
        workflow: Union[Workflow, str],
        context: ExecutionContext,
        cancel_token: Optional[CancellationToken] = None,
    ) -> WorkflowResult:
        """
        执行工作流

        Args:
            workflow: 工作流定义或已注册的工作流名称
            context: 本次运行共享的执行上下文
            cancel_token: 取消令牌（可选，未提供时为本次运行创建一个）

        Returns:
            WorkflowResult: 形状合法的工作流总会返回结果，即使所有步骤都失败

        Raises:
            WorkflowNotFoundError: 名称未注册
            WorkflowValidationError: 定义无效（包括循环依赖）
        """
        pass

    @abstractmethod
    def validate(self, workflow: Workflow) -> ValidationResult:
        """
        校验工作流定义（在执行前发现循环依赖）

        Returns:
            ValidationResult: 是否有效及错误列表
        """
        pass
