"""Data models for the workflow orchestrator."""

from .core import (
    ActionKind,
    ActionNode,
    ContainerNode,
    ContainerNodeType,
    DomainEvent,
    EventType,
    ExecutionContext,
    ExecutionLevel,
    ExecutionMode,
    ExecutionResult,
    ExecutionState,
    ExecutionStatusEnum,
    ExternalCallPayload,
    FailureCascadePolicy,
    KnowledgeLookupPayload,
    NestedWorkflowPayload,
    NodeFailure,
    RetryPolicy,
    RetryStrategy,
    ValidationResult,
    WorkflowGraph,
    utc_now,
)

__all__ = [
    "ActionKind",
    "ActionNode",
    "ContainerNode",
    "ContainerNodeType",
    "DomainEvent",
    "EventType",
    "ExecutionContext",
    "ExecutionLevel",
    "ExecutionMode",
    "ExecutionResult",
    "ExecutionState",
    "ExecutionStatusEnum",
    "ExternalCallPayload",
    "FailureCascadePolicy",
    "KnowledgeLookupPayload",
    "NestedWorkflowPayload",
    "NodeFailure",
    "RetryPolicy",
    "RetryStrategy",
    "ValidationResult",
    "WorkflowGraph",
    "utc_now",
]
