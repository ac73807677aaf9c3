"""Pytest configuration and fixtures."""

import asyncio
from typing import Dict, List, Optional

import pytest

from workflow_orchestrator.config import get_testing_config, reset_config
from workflow_orchestrator.core.action_executors import ActionExecutorRegistry
from workflow_orchestrator.core.event_gateway import InMemoryEventBus
from workflow_orchestrator.core.execution_engine import ExecutionEngine
from workflow_orchestrator.models.core import (
    ActionNode,
    ContainerNode,
    ExecutionContext,
    ExecutionMode,
    ExternalCallPayload,
    RetryPolicy,
    WorkflowGraph,
)


class ScriptedCaller:
    """External-call integration whose behaviour is scripted per reference id."""

    def __init__(self):
        self.calls: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._failures: Dict[str, int] = {}
        self._delays: Dict[str, float] = {}
        self._gates: Dict[str, asyncio.Event] = {}
        self._started: Dict[str, asyncio.Event] = {}

    def fail(self, reference_id: str, times: Optional[int] = None) -> None:
        """Fail the next ``times`` calls of a reference, or every call when None."""
        self._failures[reference_id] = -1 if times is None else times

    def delay(self, reference_id: str, seconds: float) -> None:
        self._delays[reference_id] = seconds

    def block(self, reference_id: str) -> asyncio.Event:
        """Hold calls of a reference until the returned event is set."""
        gate = asyncio.Event()
        self._gates[reference_id] = gate
        return gate

    async def wait_started(self, reference_id: str, timeout: float = 2.0) -> None:
        await asyncio.wait_for(self._started_event(reference_id).wait(), timeout)

    def _started_event(self, reference_id: str) -> asyncio.Event:
        if reference_id not in self._started:
            self._started[reference_id] = asyncio.Event()
        return self._started[reference_id]

    async def __call__(self, payload: ExternalCallPayload, context: ExecutionContext):
        reference_id = payload.reference_id
        self.calls.append(reference_id)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        self._started_event(reference_id).set()
        try:
            if reference_id in self._gates:
                await self._gates[reference_id].wait()
            if reference_id in self._delays:
                await asyncio.sleep(self._delays[reference_id])

            remaining = self._failures.get(reference_id, 0)
            if remaining != 0:
                if remaining > 0:
                    self._failures[reference_id] = remaining - 1
                raise RuntimeError(f"{reference_id} failed")

            return {"reference": reference_id, "execution": context.execution_id}
        finally:
            self.in_flight -= 1


def make_container(
    node_id: str,
    dependencies=(),
    mode: ExecutionMode = ExecutionMode.SEQUENTIAL,
    critical: bool = False
) -> ContainerNode:
    metadata = {"critical": True} if critical else {}
    return ContainerNode(
        id=node_id,
        name=node_id.upper(),
        dependencies=set(dependencies),
        execution_mode=mode,
        metadata=metadata
    )


def make_action(
    action_id: str,
    parent: str,
    order: int = 0,
    retry_policy: Optional[RetryPolicy] = None,
    **metadata
) -> ActionNode:
    """External-call action whose reference id equals its own id."""
    fields = dict(
        id=action_id,
        parent_container_id=parent,
        name=action_id,
        execution_order=order,
        payload=ExternalCallPayload(reference_id=action_id),
        metadata=metadata
    )
    if retry_policy is not None:
        fields["retry_policy"] = retry_policy
    return ActionNode(**fields)


def make_graph(containers, actions=(), model_id: str = "model-1") -> WorkflowGraph:
    return WorkflowGraph(
        model_id=model_id,
        name=f"Workflow {model_id}",
        containers=list(containers),
        actions=list(actions)
    )


def make_context(execution_id: str = "exec-1", model_id: str = "model-1", **kwargs) -> ExecutionContext:
    return ExecutionContext(model_id=model_id, execution_id=execution_id, **kwargs)


def chain_graph(*node_ids: str, model_id: str = "model-1") -> WorkflowGraph:
    """Linear workflow where each node depends on the previous one and holds one action."""
    containers = []
    actions = []
    previous = None
    for node_id in node_ids:
        containers.append(make_container(node_id, [previous] if previous else []))
        actions.append(make_action(f"{node_id}1", node_id))
        previous = node_id
    return make_graph(containers, actions, model_id=model_id)


@pytest.fixture(autouse=True)
def isolated_config():
    """Keep the process-wide configuration from leaking between tests."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def testing_config():
    return get_testing_config()


@pytest.fixture
def caller():
    return ScriptedCaller()


@pytest.fixture
def event_bus():
    return InMemoryEventBus()


@pytest.fixture
def executor_registry(caller):
    return ActionExecutorRegistry.create_default(caller=caller)


@pytest.fixture
def engine(event_bus, executor_registry, testing_config):
    """Create an ExecutionEngine wired to the scripted caller and an in-memory bus."""
    return ExecutionEngine(
        event_bus=event_bus,
        executor_registry=executor_registry,
        config=testing_config
    )
