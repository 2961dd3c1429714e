"""Agent registry interface."""

from abc import ABC, abstractmethod
from typing import List, Optional

from ..models.agent import AgentMetadata


class IAgentRegistry(ABC):
    """智能体注册表接口"""

    @abstractmethod
    def register(self, agent: AgentMetadata) -> None:
        """注册智能体（同名覆盖）"""
        pass

    @abstractmethod
    def unregister(self, name: str) -> bool:
        """注销智能体，返回是否存在"""
        pass

    @abstractmethod
    def get(self, name: str) -> Optional[AgentMetadata]:
        """
        按名称查找智能体

        Returns:
            智能体定义，未注册时返回 None
        """
        pass

    @abstractmethod
    def find(self, capability: str) -> List[AgentMetadata]:
        """按能力查找智能体"""
        pass

    @abstractmethod
    def list_all(self) -> List[AgentMetadata]:
        """列出所有已注册智能体"""
        pass
