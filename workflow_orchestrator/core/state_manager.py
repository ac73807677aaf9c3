"""In-memory execution state store with an enforced lifecycle state machine."""

import asyncio
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, Dict, List, Optional, Set

from ..models.core import ExecutionState, ExecutionStatusEnum, utc_now
from .exceptions import (
    DuplicateExecutionError,
    ExecutionNotFoundError,
    IllegalTransitionError,
    StateManagementError,
)
from .logging import get_logger

logger = get_logger(__name__)


ALLOWED_TRANSITIONS: Dict[ExecutionStatusEnum, Set[ExecutionStatusEnum]] = {
    ExecutionStatusEnum.PENDING: {ExecutionStatusEnum.RUNNING},
    ExecutionStatusEnum.RUNNING: {
        ExecutionStatusEnum.PAUSED,
        ExecutionStatusEnum.STOPPED,
        ExecutionStatusEnum.COMPLETED,
        ExecutionStatusEnum.FAILED,
    },
    ExecutionStatusEnum.PAUSED: {ExecutionStatusEnum.RUNNING, ExecutionStatusEnum.STOPPED},
    ExecutionStatusEnum.STOPPED: set(),
    ExecutionStatusEnum.COMPLETED: set(),
    ExecutionStatusEnum.FAILED: set(),
}


def can_transition(current: ExecutionStatusEnum, target: ExecutionStatusEnum) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


StateMutation = Callable[[ExecutionState], None]


class ExecutionControl:
    """Cooperative pause/stop token of a single execution.

    The run loop awaits ``wait_until_runnable`` at level boundaries; status
    transitions made through the store flip the token.
    """

    def __init__(self):
        self._runnable = asyncio.Event()
        self._runnable.set()
        self._stop_requested = False

    @property
    def is_paused(self) -> bool:
        return not self._runnable.is_set()

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested

    def pause(self) -> None:
        self._runnable.clear()

    def resume(self) -> None:
        self._runnable.set()

    def stop(self) -> None:
        self._stop_requested = True
        # Wake a loop blocked on pause so it can observe the stop
        self._runnable.set()

    async def wait_until_runnable(self) -> None:
        await self._runnable.wait()

    def apply_status(self, status: ExecutionStatusEnum) -> None:
        if status == ExecutionStatusEnum.PAUSED:
            self.pause()
        elif status == ExecutionStatusEnum.RUNNING:
            self.resume()
        elif status == ExecutionStatusEnum.STOPPED:
            self.stop()
        elif status in (ExecutionStatusEnum.COMPLETED, ExecutionStatusEnum.FAILED):
            self.resume()


class BaseExecutionStateStore(ABC):
    """Interface of an execution registry keyed by execution id."""

    @abstractmethod
    def create(self, execution_id: str, model_id: str = "", start_time: Optional[datetime] = None) -> ExecutionState:
        """Register a new pending execution."""

    @abstractmethod
    def get(self, execution_id: str) -> ExecutionState:
        """Return an independent copy of an execution's state."""

    @abstractmethod
    def transition(self, execution_id: str, mutation: StateMutation) -> ExecutionState:
        """Atomically apply a mutation, enforcing the lifecycle state machine."""

    @abstractmethod
    def control(self, execution_id: str) -> ExecutionControl:
        """Return the pause/stop token of an execution."""

    @abstractmethod
    def exists(self, execution_id: str) -> bool:
        """Whether an execution is registered."""

    @abstractmethod
    def list_executions(self) -> List[str]:
        """Ids of every registered execution."""

    @abstractmethod
    def remove(self, execution_id: str) -> None:
        """Forget a finished execution."""


class _StoreEntry:
    def __init__(self, state: ExecutionState):
        self.state = state
        self.lock = threading.RLock()
        self.control = ExecutionControl()


class ExecutionStateStore(BaseExecutionStateStore):
    """Manages execution state isolation and consistency in memory."""

    def __init__(self):
        """Initialize the ExecutionStateStore."""
        self._entries: Dict[str, _StoreEntry] = {}
        self._state_lock_manager = threading.RLock()
        logger.info("ExecutionStateStore initialized")

    def create(self, execution_id: str, model_id: str = "", start_time: Optional[datetime] = None) -> ExecutionState:
        """
        Register a new execution in the pending state.

        Args:
            execution_id: Caller-supplied unique identifier of the run
            model_id: Identifier of the workflow model being executed
            start_time: Start time of the run, defaults to now

        Returns:
            A copy of the freshly created state

        Raises:
            StateManagementError: If the execution id is empty
            DuplicateExecutionError: If the execution id is already registered
        """
        if not execution_id or not execution_id.strip():
            raise StateManagementError(
                "Execution ID cannot be empty",
                execution_id=execution_id,
                operation="create"
            )

        state = ExecutionState(
            execution_id=execution_id,
            model_id=model_id,
            status=ExecutionStatusEnum.PENDING,
            start_time=start_time or utc_now()
        )

        with self._state_lock_manager:
            if execution_id in self._entries:
                raise DuplicateExecutionError(execution_id, operation="create")
            self._entries[execution_id] = _StoreEntry(state)

        logger.info(f"Created execution state for {execution_id}")
        return state.model_copy(deep=True)

    def get(self, execution_id: str) -> ExecutionState:
        """
        Get the current state of an execution.

        Returns:
            A deep copy; mutating it never affects the store

        Raises:
            ExecutionNotFoundError: If the execution is not registered
        """
        entry = self._get_entry(execution_id)
        with entry.lock:
            return entry.state.model_copy(deep=True)

    def transition(self, execution_id: str, mutation: StateMutation) -> ExecutionState:
        """
        Apply a mutation to an execution's state.

        The mutation runs against a working copy under the entry's lock and is
        committed only if the resulting status change is allowed, so readers
        never observe a half-applied transition.

        Raises:
            ExecutionNotFoundError: If the execution is not registered
            IllegalTransitionError: If the status change is not allowed
            StateManagementError: If the mutation leaves the state inconsistent
        """
        entry = self._get_entry(execution_id)
        with entry.lock:
            current = entry.state
            working = current.model_copy(deep=True)
            mutation(working)

            if working.execution_id != current.execution_id:
                raise StateManagementError(
                    "Execution ID cannot be changed",
                    execution_id=execution_id,
                    operation="transition"
                )
            if not 0 <= working.progress <= 100:
                raise StateManagementError(
                    f"Progress must be between 0 and 100, got {working.progress}",
                    execution_id=execution_id,
                    operation="transition"
                )

            if working.status != current.status:
                if not can_transition(current.status, working.status):
                    raise IllegalTransitionError(
                        f"Illegal transition {current.status.value} -> {working.status.value}",
                        execution_id=execution_id,
                        from_status=current.status.value,
                        to_status=working.status.value
                    )
                entry.control.apply_status(working.status)
                logger.debug(
                    f"Execution {execution_id} transitioned {current.status.value} -> {working.status.value}"
                )

            entry.state = working
            return working.model_copy(deep=True)

    def control(self, execution_id: str) -> ExecutionControl:
        return self._get_entry(execution_id).control

    def exists(self, execution_id: str) -> bool:
        with self._state_lock_manager:
            return execution_id in self._entries

    def list_executions(self) -> List[str]:
        with self._state_lock_manager:
            return list(self._entries.keys())

    def remove(self, execution_id: str) -> None:
        """
        Forget a finished execution.

        Raises:
            ExecutionNotFoundError: If the execution is not registered
            StateManagementError: If the execution has not reached a terminal status
        """
        entry = self._get_entry(execution_id)
        with entry.lock:
            if not entry.state.is_terminal:
                raise StateManagementError(
                    f"Cannot remove execution in status {entry.state.status.value}",
                    execution_id=execution_id,
                    operation="remove"
                )
            with self._state_lock_manager:
                self._entries.pop(execution_id, None)
        logger.debug(f"Removed execution state for {execution_id}")

    def _get_entry(self, execution_id: str) -> _StoreEntry:
        with self._state_lock_manager:
            entry = self._entries.get(execution_id)
        if entry is None:
            raise ExecutionNotFoundError(execution_id)
        return entry
