"""Qwen client interface."""

from abc import ABC, abstractmethod
from typing import List, Optional

from .models import Message, QwenConfig, QwenResponse


class IQwenClient(ABC):
    """Qwen 模型客户端接口"""

    @abstractmethod
    async def chat(
        self,
        messages: List[Message],
        config: Optional[QwenConfig] = None,
    ) -> QwenResponse:
        """
        发送聊天请求

        Args:
            messages: 消息历史
            config: 模型配置（覆盖默认配置）

        Returns:
            模型响应
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """检查模型服务健康状态"""
        pass

    @abstractmethod
    def get_token_count(self, text: str) -> int:
        """估算文本的 token 数量"""
        pass

    @abstractmethod
    def get_context_window(self) -> int:
        """获取当前模型的上下文窗口大小（token 数）"""
        pass
