"""Core workflow orchestrator components."""

from .exceptions import (
    WorkflowEngineError,
    GraphValidationError,
    CircularDependencyError,
    StateManagementError,
    ExecutionNotFoundError,
    DuplicateExecutionError,
    IllegalTransitionError,
    ExecutorRegistryError,
    ActionExecutionError,
    TransientError,
    ConfigurationError,
)
from .logging import setup_logging, get_logger
from .result import Result
from .graph_manager import GraphManager
from .state_manager import BaseExecutionStateStore, ExecutionControl, ExecutionStateStore
from .action_executors import (
    ActionExecutor,
    ActionExecutorRegistry,
    ActionOutcome,
    ExternalCallExecutor,
    KnowledgeLookupExecutor,
    NestedWorkflowExecutor,
    NodeOutcome,
)
from .event_gateway import EventBus, EventGateway, InMemoryEventBus
from .execution_engine import ExecutionEngine, all_previous_succeeded

__all__ = [
    "WorkflowEngineError",
    "GraphValidationError",
    "CircularDependencyError",
    "StateManagementError",
    "ExecutionNotFoundError",
    "DuplicateExecutionError",
    "IllegalTransitionError",
    "ExecutorRegistryError",
    "ActionExecutionError",
    "TransientError",
    "ConfigurationError",
    "setup_logging",
    "get_logger",
    "Result",
    "GraphManager",
    "BaseExecutionStateStore",
    "ExecutionControl",
    "ExecutionStateStore",
    "ActionExecutor",
    "ActionExecutorRegistry",
    "ActionOutcome",
    "ExternalCallExecutor",
    "KnowledgeLookupExecutor",
    "NestedWorkflowExecutor",
    "NodeOutcome",
    "EventBus",
    "EventGateway",
    "InMemoryEventBus",
    "ExecutionEngine",
    "all_previous_succeeded",
]
