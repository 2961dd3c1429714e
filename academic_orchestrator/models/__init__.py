"""Data models for the academic agent orchestrator."""

from .enums import (
    WorkflowMode,
    RetryPolicy,
    AgentExecutionMode,
    MessageType,
    MessageDeliveryStatus,
    FailureKind,
    TaskType,
)
from .task import Task, Step, Workflow
from .result import ExecutionOutcome, WorkflowResult, ValidationResult
from .message import Message, MessageDeliveryResult
from .agent import AgentExecutionConfig, AgentMetadata
from .request import UserRequest, RouteResult

__all__ = [
    # Enums
    "WorkflowMode",
    "RetryPolicy",
    "AgentExecutionMode",
    "MessageType",
    "MessageDeliveryStatus",
    "FailureKind",
    "TaskType",
    # Task models
    "Task",
    "Step",
    "Workflow",
    # Result models
    "ExecutionOutcome",
    "WorkflowResult",
    "ValidationResult",
    # Messaging
    "Message",
    "MessageDeliveryResult",
    # Agents
    "AgentExecutionConfig",
    "AgentMetadata",
    # Requests
    "UserRequest",
    "RouteResult",
]
