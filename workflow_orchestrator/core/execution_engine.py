"""Execution Engine driving workflow runs level by level."""

import asyncio
import time
from typing import Any, Callable, Dict, List, Optional, Set

from ..config import OrchestratorConfig, get_config
from ..models.core import (
    ActionNode,
    ContainerNode,
    EventType,
    ExecutionContext,
    ExecutionLevel,
    ExecutionMode,
    ExecutionResult,
    ExecutionState,
    ExecutionStatusEnum,
    FailureCascadePolicy,
    NodeFailure,
    RetryPolicy,
    WorkflowGraph,
    utc_now,
)
from .action_executors import ActionExecutorRegistry, ActionOutcome, NodeOutcome, WorkflowResolver
from .error_recovery import execute_with_policy
from .event_gateway import EventBus, EventGateway, InMemoryEventBus
from .exceptions import (
    ExecutionNotFoundError,
    GraphValidationError,
    IllegalTransitionError,
    StateManagementError,
)
from .graph_manager import GraphManager
from .logging import clear_logging_context, get_logger, set_logging_context
from .result import Result
from .state_manager import BaseExecutionStateStore, ExecutionControl, ExecutionStateStore

logger = get_logger(__name__)


# (container, action, context, outcomes of the container's earlier actions) -> run the action?
ActionCondition = Callable[[ContainerNode, ActionNode, ExecutionContext, List[ActionOutcome]], bool]


def all_previous_succeeded(
    container: ContainerNode,
    action: ActionNode,
    context: ExecutionContext,
    previous: List[ActionOutcome]
) -> bool:
    """Default condition: run an action only while every executed predecessor succeeded."""
    return all(outcome.success for outcome in previous if not outcome.skipped)


class _WorkflowRun:
    """Bookkeeping of one in-flight execution."""

    def __init__(
        self,
        graph: WorkflowGraph,
        context: ExecutionContext,
        levels: List[ExecutionLevel],
        control: ExecutionControl
    ):
        self.graph = graph
        self.context = context
        self.levels = levels
        self.control = control
        self.total_nodes = len(graph.containers)
        # Nodes that failed or were skipped, consulted by the cascade policy
        self.unsuccessful: Set[str] = set()
        self._started = time.perf_counter()

    @property
    def execution_id(self) -> str:
        return self.context.execution_id

    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self._started) * 1000


class ExecutionEngine:
    """
    Engine executing workflow graphs with dependency ordering, retries and cooperative control.

    Container nodes run level by level; a level starts only after every node of
    the previous level finished. Pause and stop requests take effect at level
    boundaries, never interrupting an action in flight. Every public operation
    returns a ``Result`` instead of raising.
    """

    def __init__(
        self,
        event_bus: Optional[EventBus] = None,
        state_store: Optional[BaseExecutionStateStore] = None,
        executor_registry: Optional[ActionExecutorRegistry] = None,
        graph_manager: Optional[GraphManager] = None,
        config: Optional[OrchestratorConfig] = None,
        condition: Optional[ActionCondition] = None,
        failure_cascade: Optional[FailureCascadePolicy] = None,
        workflow_resolver: Optional[WorkflowResolver] = None
    ):
        """Initialize the execution engine.

        Args:
            event_bus: Destination of domain events, an in-memory bus by default
            state_store: Registry of execution states
            executor_registry: Executors per action kind, the built-in ones by default
            graph_manager: Analyzer computing the execution order
            config: Orchestrator settings, the process-wide configuration by default
            condition: Predicate selecting actions of conditional containers
            failure_cascade: Treatment of nodes whose dependencies failed
            workflow_resolver: Lookup of nested workflow graphs by model id
        """
        self.config = config or get_config()
        self.graph_manager = graph_manager or GraphManager()
        self.state_store = state_store or ExecutionStateStore()
        self.event_bus = event_bus or InMemoryEventBus()
        self.event_gateway = EventGateway(self.event_bus, self.config.event_publish_timeout)
        self.executor_registry = executor_registry or ActionExecutorRegistry.create_default(
            resolver=workflow_resolver
        )
        self.executor_registry.bind_runner(self.execute)
        self.condition = condition or all_previous_succeeded
        self.failure_cascade = failure_cascade or self.config.failure_cascade

        self._contexts: Dict[str, ExecutionContext] = {}
        self._tasks: Dict[str, asyncio.Task] = {}

        logger.info(
            f"ExecutionEngine initialized with failure_cascade={self.failure_cascade.value}, "
            f"max_concurrent_executions={self.config.max_concurrent_executions}"
        )

    async def execute(self, graph: WorkflowGraph, context: ExecutionContext) -> Result[ExecutionResult]:
        """
        Execute a workflow graph to completion.

        Args:
            graph: The workflow graph to run
            context: Caller-supplied context; its execution id must be unused

        Returns:
            Result wrapping the ExecutionResult of a finished, failed or stopped run,
            or a failure message if the run could not start or broke internally
        """
        prepared = self._prepare(graph, context)
        if prepared.is_failure:
            return Result.fail(prepared.error)
        levels = prepared.value

        try:
            self.state_store.create(context.execution_id, context.model_id, context.start_time)
        except StateManagementError as e:
            logger.warning(f"Cannot start execution {context.execution_id}: {e.message}")
            return Result.fail(e.message)

        run = _WorkflowRun(graph, context, levels, self.state_store.control(context.execution_id))
        self._contexts[context.execution_id] = context
        token = set_logging_context(execution_id=context.execution_id, model_id=context.model_id)

        try:
            return await self._run(run)
        except asyncio.CancelledError:
            self._handle_cancellation(run)
            raise
        except Exception as e:
            logger.error(f"Unexpected error in execution {run.execution_id}: {e}", exc_info=True)
            await self._fail_internal(run, e)
            return Result.fail(f"Execution failed: {e}")
        finally:
            self._contexts.pop(context.execution_id, None)
            clear_logging_context(token)

    async def start(self, graph: WorkflowGraph, context: ExecutionContext) -> Result[asyncio.Task]:
        """
        Schedule a run on the running event loop and return its task.

        The run's state exists once this returns, so it can be paused, resumed or
        stopped concurrently. The task resolves to the same Result as ``execute``.
        """
        prepared = self._prepare(graph, context)
        if prepared.is_failure:
            return Result.fail(prepared.error)

        execution_id = context.execution_id
        if self.state_store.exists(execution_id) or execution_id in self._tasks:
            return Result.fail(f"Execution {execution_id} already exists")

        task = asyncio.create_task(self.execute(graph, context), name=f"workflow-{execution_id}")
        self._tasks[execution_id] = task
        task.add_done_callback(lambda _: self._tasks.pop(execution_id, None))

        # Let the run register its state before the caller gets control back
        await asyncio.sleep(0)
        return Result.ok(task)

    async def pause_execution(self, execution_id: str) -> Result[None]:
        """Request a pause; the run halts at its next level boundary."""
        state = self._find_state(execution_id)
        if state is None:
            return Result.fail("Execution not found")
        if state.status != ExecutionStatusEnum.RUNNING:
            return Result.fail("Can only pause running executions")

        def pause(s: ExecutionState) -> None:
            s.status = ExecutionStatusEnum.PAUSED

        try:
            state = self.state_store.transition(execution_id, pause)
        except IllegalTransitionError:
            return Result.fail("Can only pause running executions")

        logger.info(f"Paused execution {execution_id}")
        await self.event_gateway.emit(EventType.WORKFLOW_EXECUTION_PAUSED, self._context_for(state), {
            "pausedAt": utc_now().isoformat(),
            "completedNodes": list(state.completed_nodes),
            "progress": state.progress,
        })
        return Result.ok()

    async def resume_execution(self, execution_id: str) -> Result[None]:
        """Resume a paused run."""
        state = self._find_state(execution_id)
        if state is None:
            return Result.fail("Execution not found")
        if state.status != ExecutionStatusEnum.PAUSED:
            return Result.fail("Can only resume paused executions")

        def resume(s: ExecutionState) -> None:
            s.status = ExecutionStatusEnum.RUNNING

        try:
            state = self.state_store.transition(execution_id, resume)
        except IllegalTransitionError:
            return Result.fail("Can only resume paused executions")

        logger.info(f"Resumed execution {execution_id}")
        await self.event_gateway.emit(EventType.WORKFLOW_EXECUTION_RESUMED, self._context_for(state), {
            "resumedAt": utc_now().isoformat(),
            "progress": state.progress,
        })
        return Result.ok()

    async def stop_execution(self, execution_id: str) -> Result[None]:
        """Stop a running or paused run; nodes not yet started are left untouched."""
        state = self._find_state(execution_id)
        if state is None:
            return Result.fail("Execution not found")
        if state.status not in (ExecutionStatusEnum.RUNNING, ExecutionStatusEnum.PAUSED):
            return Result.fail("Execution is already completed or stopped")

        def stop(s: ExecutionState) -> None:
            s.status = ExecutionStatusEnum.STOPPED
            s.stop_reason = "user_requested"
            s.end_time = utc_now()

        try:
            state = self.state_store.transition(execution_id, stop)
        except IllegalTransitionError:
            return Result.fail("Execution is already completed or stopped")

        logger.info(f"Stopped execution {execution_id}")
        await self.event_gateway.emit(EventType.WORKFLOW_EXECUTION_STOPPED, self._context_for(state), {
            "reason": state.stop_reason,
            "stoppedAt": state.end_time.isoformat(),
            "completedNodes": list(state.completed_nodes),
            "progress": state.progress,
        })
        return Result.ok()

    async def get_execution_status(self, execution_id: str) -> Result[ExecutionState]:
        """Return a snapshot of an execution's state."""
        state = self._find_state(execution_id)
        if state is None:
            return Result.fail("Execution not found")
        return Result.ok(state)

    def list_active_executions(self) -> List[str]:
        """Ids of executions that have not reached a terminal status."""
        active = []
        for execution_id in self.state_store.list_executions():
            state = self._find_state(execution_id)
            if state is not None and not state.is_terminal:
                active.append(execution_id)
        return active

    def _prepare(self, graph: WorkflowGraph, context: ExecutionContext) -> Result[List[ExecutionLevel]]:
        """Validate the graph, compute its levels and check capacity; no state is created."""
        validation = graph.validate_structure()
        if not validation.is_valid:
            return Result.fail(f"Cannot execute invalid workflow: {'; '.join(validation.errors)}")

        try:
            levels = self.graph_manager.compute_order(graph)
        except GraphValidationError as e:
            return Result.fail(e.message)

        if len(self.list_active_executions()) >= self.config.max_concurrent_executions:
            return Result.fail(
                f"Maximum concurrent executions reached ({self.config.max_concurrent_executions})"
            )

        return Result.ok(levels)

    async def _run(self, run: _WorkflowRun) -> Result[ExecutionResult]:
        def begin(s: ExecutionState) -> None:
            s.status = ExecutionStatusEnum.RUNNING

        self.state_store.transition(run.execution_id, begin)
        logger.info(
            f"Starting execution {run.execution_id} of {run.context.model_id}: "
            f"{run.total_nodes} nodes in {len(run.levels)} levels"
        )
        await self._emit(run, EventType.WORKFLOW_EXECUTION_STARTED, {
            "userId": run.context.user_id,
            "environment": run.context.environment,
            "startTime": run.context.start_time.isoformat(),
            "totalNodes": run.total_nodes,
            "totalLevels": len(run.levels),
            "progress": 0,
        })

        for level in run.levels:
            if not await self._await_level_boundary(run):
                return self._stopped_result(run)

            logger.debug(f"Executing level {level.index}: {level.node_ids}")
            fatal_error = await self._execute_level(run, level)

            if fatal_error is not None:
                # A pause requested during the level is honoured before failing
                if not await self._await_level_boundary(run):
                    return self._stopped_result(run)
                return await self._fail_fast(run, fatal_error)

        if not await self._await_level_boundary(run):
            return self._stopped_result(run)
        return await self._complete(run)

    async def _await_level_boundary(self, run: _WorkflowRun) -> bool:
        """Block while paused; returns False once a stop was requested."""
        while True:
            if run.control.stop_requested:
                logger.info(f"Execution {run.execution_id} stopped at level boundary")
                return False
            if not run.control.is_paused:
                return True
            logger.info(f"Execution {run.execution_id} paused at level boundary")
            await run.control.wait_until_runnable()

    async def _execute_level(self, run: _WorkflowRun, level: ExecutionLevel) -> Optional[str]:
        """Run every node of a level; returns the error of a failed critical node, if any."""
        containers = [run.graph.get_container(node_id) for node_id in level.node_ids]

        if len(containers) > 1 and all(c.execution_mode == ExecutionMode.PARALLEL for c in containers):
            outcomes = await self._gather_nodes(run, containers)
            for container, outcome in zip(containers, outcomes):
                if self._is_fatal(container, outcome):
                    return outcome.error
            return None

        for container in containers:
            if run.control.stop_requested:
                logger.info(f"Execution {run.execution_id} stopped before node {container.id}")
                return None
            outcome = await self._execute_node(run, container)
            if self._is_fatal(container, outcome):
                return outcome.error
        return None

    async def _gather_nodes(self, run: _WorkflowRun, containers: List[ContainerNode]) -> List[NodeOutcome]:
        """Run containers concurrently; if one raises, the others are cancelled before re-raising."""
        tasks = [asyncio.create_task(self._execute_node(run, c)) for c in containers]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    def _is_fatal(self, container: ContainerNode, outcome: NodeOutcome) -> bool:
        return container.is_critical and not outcome.success and not outcome.skipped

    async def _execute_node(self, run: _WorkflowRun, container: ContainerNode) -> NodeOutcome:
        if self.failure_cascade == FailureCascadePolicy.SKIP_DEPENDENTS:
            blocked_by = sorted(container.dependencies & run.unsuccessful)
            if blocked_by:
                return await self._skip_node(run, container, blocked_by)

        def enter(s: ExecutionState) -> None:
            s.current_nodes.add(container.id)

        self.state_store.transition(run.execution_id, enter)
        await self._emit(run, EventType.NODE_EXECUTION_STARTED, {
            "nodeId": container.id,
            "nodeName": container.name,
            "nodeType": container.node_type.value,
            "executionMode": container.execution_mode.value,
            "dependencies": sorted(container.dependencies),
            "dependenciesSatisfied": True,
        })

        started_at = utc_now()
        actions = run.graph.actions_for(container.id)
        if container.execution_mode == ExecutionMode.PARALLEL:
            action_outcomes = await self._run_parallel(run, container, actions)
        elif container.execution_mode == ExecutionMode.CONDITIONAL:
            action_outcomes = await self._run_conditional(run, container, actions)
        else:
            action_outcomes = await self._run_sequential(run, container, actions)

        failed = [outcome for outcome in action_outcomes if not outcome.success and not outcome.skipped]
        outcome = NodeOutcome(
            node_id=container.id,
            success=not failed,
            action_outcomes=action_outcomes,
            error=failed[0].error if failed else None,
            started_at=started_at,
            finished_at=utc_now()
        )
        duration_ms = (outcome.finished_at - started_at).total_seconds() * 1000

        if outcome.success:
            def complete(s: ExecutionState) -> None:
                s.current_nodes.discard(container.id)
                s.completed_nodes.append(container.id)
                s.progress = int(len(s.completed_nodes) * 100 / run.total_nodes)

            state = self.state_store.transition(run.execution_id, complete)
            logger.info(f"Node {container.id} completed ({state.progress}%)")
            await self._emit(run, EventType.NODE_EXECUTION_COMPLETED, {
                "nodeId": container.id,
                "executedActions": sum(1 for o in action_outcomes if not o.skipped),
                "skippedActions": sum(1 for o in action_outcomes if o.skipped),
                "duration": duration_ms,
                "progress": state.progress,
            })
            return outcome

        run.unsuccessful.add(container.id)

        def record_failure(s: ExecutionState) -> None:
            s.current_nodes.discard(container.id)
            s.failed_nodes.append(NodeFailure(node_id=container.id, error=outcome.error))

        self.state_store.transition(run.execution_id, record_failure)
        logger.warning(f"Node {container.id} failed: {outcome.error}")
        await self._emit(run, EventType.NODE_EXECUTION_FAILED, {
            "nodeId": container.id,
            "error": outcome.error,
            "critical": container.is_critical,
            "failedActions": [o.action_id for o in failed],
            "duration": duration_ms,
        })
        return outcome

    async def _skip_node(self, run: _WorkflowRun, container: ContainerNode, blocked_by: List[str]) -> NodeOutcome:
        error = f"Dependency {blocked_by[0]} failed"
        run.unsuccessful.add(container.id)

        def record_skip(s: ExecutionState) -> None:
            s.failed_nodes.append(NodeFailure(node_id=container.id, error=error))

        self.state_store.transition(run.execution_id, record_skip)
        logger.info(f"Skipping node {container.id}: {error}")
        await self._emit(run, EventType.NODE_EXECUTION_SKIPPED, {
            "nodeId": container.id,
            "reason": error,
            "blockedBy": blocked_by,
        })
        return NodeOutcome(node_id=container.id, success=False, skipped=True, error=error)

    async def _run_sequential(
        self,
        run: _WorkflowRun,
        container: ContainerNode,
        actions: List[ActionNode]
    ) -> List[ActionOutcome]:
        outcomes = []
        for action in actions:
            outcome = await self._execute_action(run, container, action)
            outcomes.append(outcome)
            if not outcome.success:
                break
        return outcomes

    async def _run_parallel(
        self,
        run: _WorkflowRun,
        container: ContainerNode,
        actions: List[ActionNode]
    ) -> List[ActionOutcome]:
        if not actions:
            return []
        outcomes = await asyncio.gather(*(self._execute_action(run, container, a) for a in actions))
        return list(outcomes)

    async def _run_conditional(
        self,
        run: _WorkflowRun,
        container: ContainerNode,
        actions: List[ActionNode]
    ) -> List[ActionOutcome]:
        outcomes: List[ActionOutcome] = []
        for action in actions:
            if self.condition(container, action, run.context, list(outcomes)):
                outcomes.append(await self._execute_action(run, container, action))
                continue

            logger.debug(f"Condition not met, skipping action {action.id}")
            await self._emit(run, EventType.ACTION_EXECUTION_SKIPPED, {
                "actionId": action.id,
                "nodeId": container.id,
                "reason": "condition_not_met",
            })
            outcomes.append(ActionOutcome(action_id=action.id, success=False, skipped=True))
        return outcomes

    def _retry_policy_for(self, container: ContainerNode, action: ActionNode) -> RetryPolicy:
        # Critical nodes fail fast
        if container.is_critical:
            return RetryPolicy.none()
        if "retry_policy" in action.model_fields_set:
            return action.retry_policy
        return self.config.default_retry_policy()

    async def _execute_action(self, run: _WorkflowRun, container: ContainerNode, action: ActionNode) -> ActionOutcome:
        await self._emit(run, EventType.ACTION_EXECUTION_STARTED, {
            "actionId": action.id,
            "nodeId": container.id,
            "actionName": action.name,
            "actionType": action.kind.value,
            "executionOrder": action.execution_order,
        })

        policy = self._retry_policy_for(container, action)
        started_at = utc_now()
        started = time.perf_counter()

        async def attempt() -> Any:
            executor = self.executor_registry.get(action.kind)
            return await executor.execute(action, run.context)

        async def on_retry(retry_attempt: int, max_retries: int, delay: float, error: Exception) -> None:
            await self._emit(run, EventType.ACTION_RETRY_ATTEMPTED, {
                "actionId": action.id,
                "nodeId": container.id,
                "retryAttempt": retry_attempt,
                "maxRetries": max_retries,
                "delay": delay,
                "error": str(error),
            })

        retry = await execute_with_policy(attempt, policy, f"action {action.id}", on_retry=on_retry)
        duration_ms = (time.perf_counter() - started) * 1000
        error = None if retry.success else (str(retry.error) or type(retry.error).__name__)

        outcome = ActionOutcome(
            action_id=action.id,
            success=retry.success,
            output=retry.value,
            error=error,
            attempts=retry.attempts,
            started_at=started_at,
            finished_at=utc_now(),
            duration_ms=duration_ms
        )

        if outcome.success:
            if retry.recovered:
                await self._emit(run, EventType.EXECUTION_RECOVERY_SUCCEEDED, {
                    "actionId": action.id,
                    "nodeId": container.id,
                    "recoveredAfterAttempts": retry.attempts,
                })
            await self._emit(run, EventType.ACTION_EXECUTION_COMPLETED, {
                "actionId": action.id,
                "nodeId": container.id,
                "attempts": retry.attempts,
                "duration": duration_ms,
                "output": retry.value,
            })
            return outcome

        if retry.attempts > 1:
            await self._emit(run, EventType.EXECUTION_RECOVERY_FAILED, {
                "actionId": action.id,
                "nodeId": container.id,
                "attempts": retry.attempts,
                "error": error,
            })
        await self._emit(run, EventType.ACTION_EXECUTION_FAILED, {
            "actionId": action.id,
            "nodeId": container.id,
            "attempts": retry.attempts,
            "error": error,
            "duration": duration_ms,
        })
        return outcome

    async def _complete(self, run: _WorkflowRun) -> Result[ExecutionResult]:
        def complete(s: ExecutionState) -> None:
            s.status = ExecutionStatusEnum.COMPLETED
            s.progress = 100
            s.end_time = utc_now()
            s.current_nodes.clear()

        state = self.state_store.transition(run.execution_id, complete)
        result = self._build_result(state, run)
        logger.info(
            f"Execution {run.execution_id} completed: {len(result.completed_nodes)} completed, "
            f"{len(result.failed_nodes)} failed in {result.execution_time:.1f}ms"
        )

        await self._emit(run, EventType.WORKFLOW_EXECUTION_COMPLETED, {
            "completedNodes": result.completed_nodes,
            "failedNodes": result.failed_nodes,
            "totalNodes": run.total_nodes,
            "executionTime": result.execution_time,
            "success": result.success,
            "progress": 100,
        })
        return Result.ok(result)

    async def _fail_fast(self, run: _WorkflowRun, error: str) -> Result[ExecutionResult]:
        def fail(s: ExecutionState) -> None:
            s.status = ExecutionStatusEnum.FAILED
            s.error = error
            s.stop_reason = "fail_fast"
            s.end_time = utc_now()
            s.current_nodes.clear()

        state = self.state_store.transition(run.execution_id, fail)
        result = self._build_result(state, run)
        logger.error(f"Execution {run.execution_id} failed on a critical node: {error}")

        await self._emit(run, EventType.WORKFLOW_EXECUTION_FAILED, {
            "error": error,
            "failureType": "critical_node_failure",
            "stopReason": "fail_fast",
            "completedNodes": result.completed_nodes,
            "failedNodes": result.failed_nodes,
            "executionTime": result.execution_time,
        })
        return Result.ok(result)

    def _stopped_result(self, run: _WorkflowRun) -> Result[ExecutionResult]:
        state = self.state_store.get(run.execution_id)
        result = self._build_result(state, run, extra_errors=["Execution was stopped"])
        return Result.ok(result)

    def _build_result(
        self,
        state: ExecutionState,
        run: _WorkflowRun,
        extra_errors: Optional[List[str]] = None
    ) -> ExecutionResult:
        errors = [f"{failure.node_id}: {failure.error}" for failure in state.failed_nodes]
        errors.extend(extra_errors or [])
        success = state.status == ExecutionStatusEnum.COMPLETED and not state.failed_nodes
        return ExecutionResult(
            success=success,
            status=state.status,
            completed_nodes=list(state.completed_nodes),
            failed_nodes=[failure.node_id for failure in state.failed_nodes],
            errors=errors,
            execution_time=run.elapsed_ms()
        )

    async def _fail_internal(self, run: _WorkflowRun, error: Exception) -> None:
        """Move a run broken by an unexpected error into a terminal status."""
        message = str(error) or type(error).__name__

        def fail(s: ExecutionState) -> None:
            if s.status == ExecutionStatusEnum.RUNNING:
                s.status = ExecutionStatusEnum.FAILED
            elif s.status == ExecutionStatusEnum.PAUSED:
                s.status = ExecutionStatusEnum.STOPPED
                s.stop_reason = "internal_error"
            s.error = message
            s.end_time = s.end_time or utc_now()

        try:
            self.state_store.transition(run.execution_id, fail)
        except StateManagementError as e:
            logger.error(f"Could not record failure of execution {run.execution_id}: {e.message}")

        await self._emit(run, EventType.WORKFLOW_EXECUTION_FAILED, {
            "error": message,
            "failureType": "internal_error",
            "executionTime": run.elapsed_ms(),
        })

    def _handle_cancellation(self, run: _WorkflowRun) -> None:
        def cancel(s: ExecutionState) -> None:
            if s.status in (ExecutionStatusEnum.RUNNING, ExecutionStatusEnum.PAUSED):
                s.status = ExecutionStatusEnum.STOPPED
                s.stop_reason = "cancelled"
                s.end_time = utc_now()

        try:
            self.state_store.transition(run.execution_id, cancel)
        except StateManagementError as e:
            logger.error(f"Could not record cancellation of execution {run.execution_id}: {e.message}")
        logger.warning(f"Execution {run.execution_id} was cancelled")

    async def _emit(self, run: _WorkflowRun, event_type: EventType, data: Dict[str, Any]) -> None:
        await self.event_gateway.emit(event_type, run.context, data)

    def _find_state(self, execution_id: str) -> Optional[ExecutionState]:
        try:
            return self.state_store.get(execution_id)
        except ExecutionNotFoundError:
            return None

    def _context_for(self, state: ExecutionState) -> ExecutionContext:
        """Context used to stamp control events of an execution."""
        context = self._contexts.get(state.execution_id)
        if context is not None:
            return context
        return ExecutionContext(
            model_id=state.model_id or "unknown",
            execution_id=state.execution_id,
            start_time=state.start_time
        )
