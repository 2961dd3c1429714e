"""Qwen model client and agent executor."""

from .models import QwenModel, QwenConfig, Message, QwenResponse
from .interface import IQwenClient
from .dashscope_client import DashScopeClient, DashScopeAPIError, MODEL_CONTEXT_WINDOWS
from .executor import QwenAgentExecutor

__all__ = [
    # Models
    "QwenModel",
    "QwenConfig",
    "Message",
    "QwenResponse",
    # Interface
    "IQwenClient",
    # Clients
    "DashScopeClient",
    "DashScopeAPIError",
    "MODEL_CONTEXT_WINDOWS",
    # Executor
    "QwenAgentExecutor",
]
