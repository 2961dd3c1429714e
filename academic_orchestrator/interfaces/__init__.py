"""Interfaces for the academic agent orchestrator."""

from .agent_executor import IAgentExecutor, ExecutionRequest, ExecutionResponse
from .agent_registry import IAgentRegistry
from .task_classifier import ITaskClassifier
from .workflow_engine import IWorkflowEngine

__all__ = [
    "IAgentExecutor",
    "ExecutionRequest",
    "ExecutionResponse",
    "IAgentRegistry",
    "ITaskClassifier",
    "IWorkflowEngine",
]
