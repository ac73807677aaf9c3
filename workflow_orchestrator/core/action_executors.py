"""Executors for the action kinds and the registry that dispatches to them."""

import asyncio
import inspect
import uuid
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Union, runtime_checkable

from pydantic import BaseModel, Field

from ..models.core import (
    ActionKind,
    ActionNode,
    ExecutionContext,
    ExecutionResult,
    ExternalCallPayload,
    KnowledgeLookupPayload,
    NestedWorkflowPayload,
    WorkflowGraph,
)
from .exceptions import ActionExecutionError, ExecutorRegistryError
from .logging import get_logger
from .result import Result

logger = get_logger(__name__)


class ActionOutcome(BaseModel):
    """Outcome of one action within a node."""
    action_id: str
    success: bool
    output: Any = None
    error: Optional[str] = None
    attempts: int = 0
    skipped: bool = False
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    duration_ms: float = 0.0


class NodeOutcome(BaseModel):
    """Outcome of a container node, aggregated from its actions."""
    node_id: str
    success: bool
    action_outcomes: List[ActionOutcome] = Field(default_factory=list)
    error: Optional[str] = None
    skipped: bool = False
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None


@runtime_checkable
class ActionExecutor(Protocol):
    """Runs one action of a given kind. Raises on failure."""

    async def execute(self, action: ActionNode, context: ExecutionContext) -> Any:
        ...


ExternalCaller = Callable[[ExternalCallPayload, ExecutionContext], Union[Any, Awaitable[Any]]]
KnowledgeLookup = Callable[[KnowledgeLookupPayload, ExecutionContext], Union[Any, Awaitable[Any]]]
WorkflowResolver = Callable[[str], Union[Optional[WorkflowGraph], Awaitable[Optional[WorkflowGraph]]]]
WorkflowRunner = Callable[[WorkflowGraph, ExecutionContext], Awaitable[Result[ExecutionResult]]]


async def _call(function: Callable, *args) -> Any:
    """Invoke a sync or async callable and return its result."""
    result = function(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class ExternalCallExecutor:
    """Executes external-call actions through a caller-supplied integration callable."""

    def __init__(self, caller: Optional[ExternalCaller] = None):
        self._caller = caller

    async def execute(self, action: ActionNode, context: ExecutionContext) -> Any:
        payload: ExternalCallPayload = action.payload
        logger.debug(f"Calling {payload.reference_id} for action {action.id}")

        if self._caller is None:
            return {
                "referenceId": payload.reference_id,
                "reference": payload.reference,
                "parameters": dict(payload.execution_parameters),
                "status": "completed",
            }

        try:
            if payload.timeout_seconds is not None:
                response = await asyncio.wait_for(
                    _call(self._caller, payload, context),
                    timeout=payload.timeout_seconds
                )
            else:
                response = await _call(self._caller, payload, context)
        except asyncio.TimeoutError:
            raise ActionExecutionError(
                f"External call {payload.reference_id} timed out after {payload.timeout_seconds}s",
                action_id=action.id,
                execution_id=context.execution_id
            )

        return self._map_output(response, payload.output_mapping)

    def _map_output(self, response: Any, output_mapping: Dict[str, str]) -> Any:
        """Rename response fields as ``{response_key: output_key}``; unmapped responses pass through."""
        if not output_mapping or not isinstance(response, dict):
            return response
        return {
            output_key: response.get(response_key)
            for response_key, output_key in output_mapping.items()
        }


class KnowledgeLookupExecutor:
    """Executes knowledge-base lookups."""

    def __init__(self, lookup: Optional[KnowledgeLookup] = None):
        self._lookup = lookup

    async def execute(self, action: ActionNode, context: ExecutionContext) -> Any:
        payload: KnowledgeLookupPayload = action.payload
        if self._lookup is not None:
            return await _call(self._lookup, payload, context)

        return {
            "kbReferenceId": payload.kb_reference_id,
            "shortDescription": payload.short_description,
            "searchKeywords": list(payload.search_keywords),
            "documentationContext": payload.documentation_context,
        }


class NestedWorkflowExecutor:
    """
    Executes another workflow model as a single action.

    The nested graph is obtained from ``resolver`` and run through ``runner``
    (normally ``ExecutionEngine.execute``) under a derived execution id. Without
    a resolver the action only records the reference.
    """

    def __init__(self, resolver: Optional[WorkflowResolver] = None, runner: Optional[WorkflowRunner] = None):
        self._resolver = resolver
        self._runner = runner

    @property
    def has_runner(self) -> bool:
        return self._runner is not None

    def bind_runner(self, runner: WorkflowRunner) -> None:
        self._runner = runner

    async def execute(self, action: ActionNode, context: ExecutionContext) -> Any:
        payload: NestedWorkflowPayload = action.payload

        if payload.nested_model_id == context.model_id:
            raise ActionExecutionError(
                f"Workflow {context.model_id} cannot nest itself",
                action_id=action.id,
                execution_id=context.execution_id,
                recoverable=False
            )
        if payload.nested_model_id in context.parent_model_ids:
            chain = " → ".join(context.parent_model_ids + (context.model_id, payload.nested_model_id))
            raise ActionExecutionError(
                f"Circular workflow nesting detected: {chain}",
                action_id=action.id,
                execution_id=context.execution_id,
                recoverable=False
            )

        if self._resolver is None or self._runner is None:
            return {
                "nestedModelId": payload.nested_model_id,
                "contextMapping": dict(payload.context_mapping),
                "extractOutputs": list(payload.extract_outputs),
                "status": "referenced",
            }

        graph = await _call(self._resolver, payload.nested_model_id)
        if graph is None:
            raise ActionExecutionError(
                f"Nested workflow {payload.nested_model_id} not found",
                action_id=action.id,
                execution_id=context.execution_id,
                recoverable=False
            )

        nested_context = ExecutionContext(
            model_id=graph.model_id,
            execution_id=f"{context.execution_id}:{action.id}:{uuid.uuid4().hex[:8]}",
            user_id=context.user_id,
            environment=context.environment,
            parameters={**context.parameters, **payload.context_mapping},
            parent_model_ids=context.parent_model_ids + (context.model_id,)
        )
        logger.info(f"Running nested workflow {graph.model_id} as {nested_context.execution_id}")

        result = await self._runner(graph, nested_context)
        if result.is_failure:
            raise ActionExecutionError(
                f"Nested workflow {graph.model_id} failed: {result.error}",
                action_id=action.id,
                execution_id=context.execution_id
            )

        nested = result.value
        if not nested.success:
            raise ActionExecutionError(
                f"Nested workflow {graph.model_id} finished with status {nested.status.value}",
                action_id=action.id,
                execution_id=context.execution_id
            )

        summary = nested.model_dump(mode="json")
        output = {
            "nestedModelId": graph.model_id,
            "executionId": nested_context.execution_id,
            "status": nested.status.value,
        }
        if payload.extract_outputs:
            output["outputs"] = {key: summary.get(key) for key in payload.extract_outputs}
        return output


class ActionExecutorRegistry:
    """Handler table mapping each action kind to its executor."""

    def __init__(self):
        self._executors: Dict[ActionKind, ActionExecutor] = {}

    @classmethod
    def create_default(
        cls,
        caller: Optional[ExternalCaller] = None,
        lookup: Optional[KnowledgeLookup] = None,
        resolver: Optional[WorkflowResolver] = None,
        runner: Optional[WorkflowRunner] = None
    ) -> "ActionExecutorRegistry":
        """Build a registry with the built-in executor for every action kind."""
        registry = cls()
        registry.register(ActionKind.EXTERNAL_CALL, ExternalCallExecutor(caller))
        registry.register(ActionKind.KNOWLEDGE_LOOKUP, KnowledgeLookupExecutor(lookup))
        registry.register(ActionKind.NESTED_WORKFLOW, NestedWorkflowExecutor(resolver, runner))
        return registry

    def register(self, kind: Union[ActionKind, str], executor: ActionExecutor, replace: bool = False) -> None:
        """Register the executor of an action kind.

        Args:
            kind: Action kind the executor handles
            executor: Object with an async ``execute(action, context)`` method
            replace: Whether an existing executor for the kind may be replaced

        Raises:
            ExecutorRegistryError: If the kind is unknown, the executor is invalid,
                or the kind is already registered and ``replace`` is False
        """
        kind = self._coerce_kind(kind, "register")

        if not callable(getattr(executor, "execute", None)):
            raise ExecutorRegistryError(
                f"Executor for '{kind.value}' must define an execute method",
                kind=kind.value,
                operation="register"
            )

        if kind in self._executors and not replace:
            raise ExecutorRegistryError(
                f"Executor for '{kind.value}' is already registered",
                kind=kind.value,
                operation="register"
            )

        self._executors[kind] = executor
        logger.info(f"Registered executor {type(executor).__name__} for '{kind.value}'")

    def get(self, kind: Union[ActionKind, str]) -> ActionExecutor:
        """Retrieve the executor of an action kind.

        Raises:
            ExecutorRegistryError: If no executor is registered for the kind
        """
        kind = self._coerce_kind(kind, "get")
        executor = self._executors.get(kind)
        if executor is None:
            raise ExecutorRegistryError(
                f"No executor registered for '{kind.value}'",
                kind=kind.value,
                operation="get"
            )
        return executor

    def unregister(self, kind: Union[ActionKind, str]) -> bool:
        """Remove the executor of a kind; returns False if none was registered."""
        kind = self._coerce_kind(kind, "unregister")
        return self._executors.pop(kind, None) is not None

    def list_executors(self) -> Dict[str, str]:
        """Map each registered kind to the class name of its executor."""
        return {kind.value: type(executor).__name__ for kind, executor in self._executors.items()}

    def bind_runner(self, runner: WorkflowRunner) -> None:
        """Hand the workflow runner to executors that run nested workflows."""
        for executor in self._executors.values():
            if isinstance(executor, NestedWorkflowExecutor) and not executor.has_runner:
                executor.bind_runner(runner)

    def _coerce_kind(self, kind: Union[ActionKind, str], operation: str) -> ActionKind:
        try:
            return ActionKind(kind)
        except ValueError:
            raise ExecutorRegistryError(
                f"Unknown action kind '{kind}'",
                kind=str(kind),
                operation=operation
            )
