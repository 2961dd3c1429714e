"""
Academic Orchestrator - 学术研究智能体编排引擎

This package coordinates specialised research agents:
- Classifies free-text requests into a closed set of task types
- Routes each type to registered agents and picks sequential or parallel execution
- Runs declarative workflows in sequential, parallel, conditional and DAG modes
- Executes ad-hoc task batches with bounded concurrency
- Shares data and messages between agents through an ExecutionContext
- Runs a four-stage literature review pipeline

Usage:
    from academic_orchestrator import create_orchestrator

    orchestrator = create_orchestrator()
    review = await orchestrator.conduct_literature_review("graph neural networks")
"""

__version__ = "0.1.0"

from .models import (
    # Enums
    WorkflowMode,
    RetryPolicy,
    AgentExecutionMode,
    MessageType,
    MessageDeliveryStatus,
    FailureKind,
    TaskType,
    # Models
    Task,
    Step,
    Workflow,
    ExecutionOutcome,
    WorkflowResult,
    ValidationResult,
    Message,
    MessageDeliveryResult,
    AgentExecutionConfig,
    AgentMetadata,
    UserRequest,
    RouteResult,
)
from .errors import (
    OrchestrationError,
    ClassificationError,
    NoAgentFoundError,
    AgentExecutionError,
    AgentTimeoutError,
    ExecutionCancelledError,
    WorkflowValidationError,
    CircularDependencyError,
    UnknownConditionError,
    WorkflowNotFoundError,
    ContextImportError,
    ConfigurationError,
)
from .interfaces import (
    IAgentExecutor,
    ExecutionRequest,
    ExecutionResponse,
    IAgentRegistry,
    ITaskClassifier,
    IWorkflowEngine,
)
from .cancellation import CancellationToken
from .retry import RetryConfig
from .context import ExecutionContext, ContextSnapshot
from .graph import DependencyGraph, detect_cycle
from .conditions import ConditionRegistry
from .workflow_engine import WorkflowEngine, create_workflow_engine
from .subagent_executor import (
    SubagentExecutionConfig,
    SubagentExecutionService,
    ExecutionSummary,
)
from .classifier import TaskClassifier
from .agent_registry import AgentRegistry, create_agent_registry
from .router import AgentRouter
from .metrics import MetricsCollector
from .config import OrchestratorConfig, ConfigLoader, load_config
from .orchestrator import (
    OrchestratorService,
    Paper,
    LiteratureReviewResult,
    create_orchestrator,
)
from .utils.logging import get_logger, configure_root_logger

__all__ = [
    "__version__",
    # Enums
    "WorkflowMode",
    "RetryPolicy",
    "AgentExecutionMode",
    "MessageType",
    "MessageDeliveryStatus",
    "FailureKind",
    "TaskType",
    # Models
    "Task",
    "Step",
    "Workflow",
    "ExecutionOutcome",
    "WorkflowResult",
    "ValidationResult",
    "Message",
    "MessageDeliveryResult",
    "AgentExecutionConfig",
    "AgentMetadata",
    "UserRequest",
    "RouteResult",
    # Errors
    "OrchestrationError",
    "ClassificationError",
    "NoAgentFoundError",
    "AgentExecutionError",
    "AgentTimeoutError",
    "ExecutionCancelledError",
    "WorkflowValidationError",
    "CircularDependencyError",
    "UnknownConditionError",
    "WorkflowNotFoundError",
    "ContextImportError",
    "ConfigurationError",
    # Interfaces
    "IAgentExecutor",
    "ExecutionRequest",
    "ExecutionResponse",
    "IAgentRegistry",
    "ITaskClassifier",
    "IWorkflowEngine",
    # Core
    "CancellationToken",
    "RetryConfig",
    "ExecutionContext",
    "ContextSnapshot",
    "DependencyGraph",
    "detect_cycle",
    "ConditionRegistry",
    "WorkflowEngine",
    "create_workflow_engine",
    "SubagentExecutionConfig",
    "SubagentExecutionService",
    "ExecutionSummary",
    "TaskClassifier",
    "AgentRegistry",
    "create_agent_registry",
    "AgentRouter",
    "MetricsCollector",
    # Configuration
    "OrchestratorConfig",
    "ConfigLoader",
    "load_config",
    # Application
    "OrchestratorService",
    "Paper",
    "LiteratureReviewResult",
    "create_orchestrator",
    # Logging
    "get_logger",
    "configure_root_logger",
]
