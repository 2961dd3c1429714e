"""Task classifier interface."""

from abc import ABC, abstractmethod

from ..models.enums import TaskType
from ..models.request import UserRequest


class ITaskClassifier(ABC):
    """任务分类器接口"""

    @abstractmethod
    async def classify(self, request: UserRequest) -> TaskType:
        """
        将用户请求映射为任务类型

        必须是全函数：任何失败都回退到关键词启发式，不向调用方抛出。

        Args:
            request: 用户请求

        Returns:
            TaskType: 任务类型
        """
        pass
