"""Core Pydantic models for the workflow orchestrator."""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Set, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def utc_now() -> datetime:
    """Timezone-aware current UTC time used for every timestamp."""
    return datetime.now(timezone.utc)


class ExecutionMode(str, Enum):
    """Concurrency policy among sibling actions or nodes."""
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"
    CONDITIONAL = "conditional"


class ActionKind(str, Enum):
    """Closed set of executable action variants."""
    EXTERNAL_CALL = "external_call"
    KNOWLEDGE_LOOKUP = "knowledge_lookup"
    NESTED_WORKFLOW = "nested_workflow"


class ContainerNodeType(str, Enum):
    """Structural role of a container node."""
    STAGE = "stage"
    INPUT = "input"
    OUTPUT = "output"


class RetryStrategy(str, Enum):
    """Delay strategies between retry attempts."""
    IMMEDIATE = "immediate"
    CONSTANT = "constant"
    LINEAR = "linear"
    EXPONENTIAL = "exponential"


class ExecutionStatusEnum(str, Enum):
    """Enumeration of workflow execution statuses."""
    PENDING = "pending"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"
    COMPLETED = "completed"
    FAILED = "failed"


class FailureCascadePolicy(str, Enum):
    """What happens to the dependents of a node that failed after retries."""
    ISOLATE = "isolate"
    SKIP_DEPENDENTS = "skip_dependents"


class EventType(str, Enum):
    """Enumeration of domain event types published during a run."""
    WORKFLOW_EXECUTION_STARTED = "WorkflowExecutionStarted"
    WORKFLOW_EXECUTION_COMPLETED = "WorkflowExecutionCompleted"
    WORKFLOW_EXECUTION_FAILED = "WorkflowExecutionFailed"
    WORKFLOW_EXECUTION_PAUSED = "WorkflowExecutionPaused"
    WORKFLOW_EXECUTION_RESUMED = "WorkflowExecutionResumed"
    WORKFLOW_EXECUTION_STOPPED = "WorkflowExecutionStopped"
    NODE_EXECUTION_STARTED = "NodeExecutionStarted"
    NODE_EXECUTION_COMPLETED = "NodeExecutionCompleted"
    NODE_EXECUTION_FAILED = "NodeExecutionFailed"
    NODE_EXECUTION_SKIPPED = "NodeExecutionSkipped"
    ACTION_EXECUTION_STARTED = "ActionExecutionStarted"
    ACTION_EXECUTION_COMPLETED = "ActionExecutionCompleted"
    ACTION_EXECUTION_FAILED = "ActionExecutionFailed"
    ACTION_EXECUTION_SKIPPED = "ActionExecutionSkipped"
    ACTION_RETRY_ATTEMPTED = "ActionRetryAttempted"
    EXECUTION_RECOVERY_SUCCEEDED = "ExecutionRecoverySucceeded"
    EXECUTION_RECOVERY_FAILED = "ExecutionRecoveryFailed"


class ValidationResult(BaseModel):
    """Result of graph validation."""
    is_valid: bool = Field(..., description="Whether the graph is valid")
    errors: List[str] = Field(default_factory=list, description="List of validation errors")
    warnings: List[str] = Field(default_factory=list, description="List of validation warnings")


class RetryPolicy(BaseModel):
    """Retry behaviour of an action, interpreted uniformly by the engine."""
    model_config = ConfigDict(frozen=True)

    strategy: RetryStrategy = Field(RetryStrategy.EXPONENTIAL, description="Delay strategy")
    max_attempts: int = Field(3, description="Total attempts including the first one")
    base_delay_seconds: float = Field(1.0, description="Delay before the first retry")
    max_delay_seconds: float = Field(30.0, description="Upper bound for any delay")
    multiplier: float = Field(2.0, description="Growth factor for exponential backoff")
    enabled: bool = Field(True, description="Whether failed attempts are retried at all")

    @field_validator('max_attempts')
    @classmethod
    def validate_max_attempts(cls, max_attempts):
        if max_attempts < 0:
            raise ValueError("Max attempts must be non-negative")
        if max_attempts > 100:
            raise ValueError("Max attempts cannot exceed 100")
        return max_attempts

    @field_validator('base_delay_seconds', 'max_delay_seconds')
    @classmethod
    def validate_delays(cls, delay):
        if delay < 0:
            raise ValueError("Delays must be non-negative")
        return delay

    @field_validator('multiplier')
    @classmethod
    def validate_multiplier(cls, multiplier):
        if multiplier < 1:
            raise ValueError("Multiplier must be at least 1")
        return multiplier

    @model_validator(mode='after')
    def validate_delay_bounds(self):
        if self.base_delay_seconds > self.max_delay_seconds:
            raise ValueError("Base delay cannot exceed max delay")
        return self

    @classmethod
    def default(cls) -> "RetryPolicy":
        return cls()

    @classmethod
    def none(cls) -> "RetryPolicy":
        """A policy that never retries."""
        return cls(
            strategy=RetryStrategy.IMMEDIATE,
            max_attempts=1,
            base_delay_seconds=0.0,
            max_delay_seconds=0.0,
            enabled=False
        )

    @property
    def total_attempts(self) -> int:
        """Attempts the engine will actually make, never less than one."""
        if not self.enabled:
            return 1
        return max(1, self.max_attempts)

    def get_delay(self, attempt: int) -> float:
        """Seconds to wait before retry number ``attempt`` (1-based)."""
        if self.strategy == RetryStrategy.IMMEDIATE or attempt <= 0:
            return 0.0
        if self.strategy == RetryStrategy.CONSTANT:
            delay = self.base_delay_seconds
        elif self.strategy == RetryStrategy.LINEAR:
            delay = self.base_delay_seconds * attempt
        else:
            delay = self.base_delay_seconds * (self.multiplier ** (attempt - 1))
        return min(delay, self.max_delay_seconds)


class ExternalCallPayload(BaseModel):
    """Call into an external system."""
    kind: Literal["external_call"] = "external_call"
    reference_id: str = Field(..., description="Identifier of the external integration")
    reference: str = Field("", description="Human readable reference of the call target")
    execution_parameters: Dict[str, Any] = Field(default_factory=dict)
    output_mapping: Dict[str, str] = Field(default_factory=dict)
    timeout_seconds: Optional[float] = Field(None, description="Per-attempt timeout")

    @field_validator('timeout_seconds')
    @classmethod
    def validate_timeout(cls, timeout):
        if timeout is not None and timeout <= 0:
            raise ValueError("Timeout must be positive")
        return timeout


class KnowledgeLookupPayload(BaseModel):
    """Lookup against a knowledge base entry."""
    kind: Literal["knowledge_lookup"] = "knowledge_lookup"
    kb_reference_id: str = Field(..., description="Knowledge base entry identifier")
    short_description: str = Field("", description="Summary of the entry")
    search_keywords: List[str] = Field(default_factory=list)
    documentation_context: Optional[str] = None


class NestedWorkflowPayload(BaseModel):
    """Invocation of another workflow model."""
    kind: Literal["nested_workflow"] = "nested_workflow"
    nested_model_id: str = Field(..., description="Model id of the nested workflow")
    context_mapping: Dict[str, Any] = Field(default_factory=dict)
    extract_outputs: List[str] = Field(default_factory=list)


ActionPayload = Annotated[
    Union[ExternalCallPayload, KnowledgeLookupPayload, NestedWorkflowPayload],
    Field(discriminator="kind")
]


class ContainerNode(BaseModel):
    """A structural workflow node grouping zero or more actions."""
    id: str = Field(..., description="Unique identifier for the node")
    name: str = Field("", description="Display name")
    node_type: ContainerNodeType = Field(ContainerNodeType.STAGE)
    dependencies: Set[str] = Field(default_factory=set, description="Ids of nodes that must complete first")
    execution_mode: ExecutionMode = Field(ExecutionMode.SEQUENTIAL)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator('id')
    @classmethod
    def validate_id(cls, id_value):
        if not id_value or not id_value.strip():
            raise ValueError("Node ID cannot be empty")
        return id_value.strip()

    @model_validator(mode='after')
    def validate_self_dependency(self):
        if self.id in self.dependencies:
            raise ValueError(f"Node {self.id} cannot depend on itself")
        return self

    @property
    def is_critical(self) -> bool:
        return self.metadata.get("critical") is True


class ActionNode(BaseModel):
    """An executable unit attached to a container node."""
    id: str = Field(..., description="Unique identifier for the action")
    parent_container_id: str = Field(..., description="Container this action belongs to")
    name: str = Field("")
    execution_order: int = Field(..., description="Position among the container's actions")
    execution_mode: ExecutionMode = Field(ExecutionMode.SEQUENTIAL)
    payload: ActionPayload
    retry_policy: RetryPolicy = Field(default_factory=RetryPolicy.none)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator('id', 'parent_container_id')
    @classmethod
    def validate_ids(cls, value):
        if not value or not value.strip():
            raise ValueError("Action and parent ids cannot be empty")
        return value.strip()

    @property
    def kind(self) -> ActionKind:
        return ActionKind(self.payload.kind)


class WorkflowGraph(BaseModel):
    """Container and action nodes of one workflow model."""
    model_config = ConfigDict(protected_namespaces=())

    model_id: str = Field(..., description="Identifier of the workflow model")
    name: str = Field("", description="Name of the workflow")
    containers: List[ContainerNode] = Field(default_factory=list)
    actions: List[ActionNode] = Field(default_factory=list)

    @field_validator('containers')
    @classmethod
    def validate_unique_container_ids(cls, containers):
        ids = [node.id for node in containers]
        if len(ids) != len(set(ids)):
            raise ValueError("All container node IDs must be unique")
        return containers

    @field_validator('actions')
    @classmethod
    def validate_unique_action_ids(cls, actions):
        ids = [action.id for action in actions]
        if len(ids) != len(set(ids)):
            raise ValueError("All action node IDs must be unique")
        return actions

    @model_validator(mode='after')
    def validate_action_placement(self):
        container_ids = {node.id for node in self.containers}
        seen_orders: Dict[str, Set[int]] = {}

        for action in self.actions:
            if action.parent_container_id not in container_ids:
                raise ValueError(
                    f"Action {action.id} references non-existent container: {action.parent_container_id}"
                )
            orders = seen_orders.setdefault(action.parent_container_id, set())
            if action.execution_order in orders:
                raise ValueError(
                    f"Duplicate execution order {action.execution_order} "
                    f"in container {action.parent_container_id}"
                )
            orders.add(action.execution_order)

        return self

    @property
    def node_ids(self) -> Set[str]:
        return {node.id for node in self.containers}

    def get_container(self, node_id: str) -> Optional[ContainerNode]:
        for node in self.containers:
            if node.id == node_id:
                return node
        return None

    def actions_for(self, container_id: str) -> List[ActionNode]:
        """Actions of a container in ascending execution order."""
        return sorted(
            (action for action in self.actions if action.parent_container_id == container_id),
            key=lambda action: action.execution_order
        )

    def validate_structure(self) -> ValidationResult:
        """Check the references pydantic validation cannot see on its own."""
        errors = []
        if not self.containers:
            errors.append("Workflow must contain at least one container node")

        node_ids = self.node_ids
        for node in self.containers:
            for dependency in sorted(node.dependencies):
                if dependency not in node_ids:
                    errors.append(f"Node {node.id} depends on non-existent node: {dependency}")

        return ValidationResult(is_valid=not errors, errors=errors)


class ExecutionContext(BaseModel):
    """Caller-supplied, read-only context of one run."""
    model_config = ConfigDict(frozen=True, protected_namespaces=())

    model_id: str
    execution_id: str
    start_time: datetime = Field(default_factory=utc_now)
    user_id: Optional[str] = None
    environment: Literal["development", "staging", "production"] = "development"
    parameters: Dict[str, Any] = Field(default_factory=dict)
    parent_model_ids: Tuple[str, ...] = Field((), description="Model ids of the enclosing workflows, outermost first")

    @field_validator('execution_id', 'model_id')
    @classmethod
    def validate_ids(cls, value):
        if not value or not value.strip():
            raise ValueError("Execution and model ids cannot be empty")
        return value.strip()


class NodeFailure(BaseModel):
    """A failed container node and the reason it failed."""
    node_id: str
    error: str


class ExecutionState(BaseModel):
    """Lifecycle snapshot of one execution."""
    model_config = ConfigDict(protected_namespaces=())

    execution_id: str
    model_id: str = ""
    status: ExecutionStatusEnum = ExecutionStatusEnum.PENDING
    progress: int = Field(0, ge=0, le=100)
    current_nodes: Set[str] = Field(default_factory=set)
    completed_nodes: List[str] = Field(default_factory=list)
    failed_nodes: List[NodeFailure] = Field(default_factory=list)
    start_time: datetime = Field(default_factory=utc_now)
    end_time: Optional[datetime] = None
    error: Optional[str] = None
    stop_reason: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (
            ExecutionStatusEnum.COMPLETED,
            ExecutionStatusEnum.STOPPED,
            ExecutionStatusEnum.FAILED,
        )


class ExecutionResult(BaseModel):
    """Outcome of a run, produced once at its terminal transition."""
    model_config = ConfigDict(frozen=True)

    success: bool
    status: ExecutionStatusEnum
    completed_nodes: List[str] = Field(default_factory=list)
    failed_nodes: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    execution_time: float = Field(0.0, description="Wall-clock duration in milliseconds")


class DomainEvent(BaseModel):
    """Immutable audit record of a state transition."""
    model_config = ConfigDict(frozen=True)

    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    event_type: EventType
    aggregate_id: str
    event_data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utc_now)
    user_id: Optional[str] = None


class ExecutionLevel(BaseModel):
    """Nodes whose dependencies are all satisfied by earlier levels."""
    index: int
    node_ids: List[str]
