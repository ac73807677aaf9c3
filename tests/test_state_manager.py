"""Tests for the execution state store and its state machine."""

import threading

import pytest

from workflow_orchestrator.core.exceptions import (
    DuplicateExecutionError,
    ExecutionNotFoundError,
    IllegalTransitionError,
    StateManagementError,
)
from workflow_orchestrator.core.state_manager import (
    ALLOWED_TRANSITIONS,
    ExecutionStateStore,
    can_transition,
)
from workflow_orchestrator.models.core import ExecutionStatusEnum, NodeFailure


@pytest.fixture
def store():
    """Create an ExecutionStateStore instance for testing."""
    return ExecutionStateStore()


def set_status(status):
    def mutation(state):
        state.status = status
    return mutation


class TestExecutionStateStore:
    """Test cases for ExecutionStateStore."""

    def test_create_and_get(self, store):
        created = store.create("exec-1", "model-1")
        state = store.get("exec-1")
        assert state.status == ExecutionStatusEnum.PENDING
        assert state.model_id == "model-1"
        assert state.progress == 0
        assert state.start_time == created.start_time
        assert store.exists("exec-1")

    def test_duplicate_execution_rejected(self, store):
        store.create("exec-1", "model-1")
        with pytest.raises(DuplicateExecutionError):
            store.create("exec-1", "model-2")
        assert store.get("exec-1").model_id == "model-1"

    def test_empty_execution_id_rejected(self, store):
        with pytest.raises(StateManagementError):
            store.create("  ")

    def test_missing_execution(self, store):
        with pytest.raises(ExecutionNotFoundError, match="Execution not found"):
            store.get("nope")
        with pytest.raises(ExecutionNotFoundError):
            store.transition("nope", set_status(ExecutionStatusEnum.RUNNING))

    def test_get_returns_independent_copy(self, store):
        store.create("exec-1")
        snapshot = store.get("exec-1")
        snapshot.completed_nodes.append("a")
        snapshot.current_nodes.add("b")
        snapshot.status = ExecutionStatusEnum.COMPLETED

        state = store.get("exec-1")
        assert state.completed_nodes == []
        assert state.current_nodes == set()
        assert state.status == ExecutionStatusEnum.PENDING

    def test_transition_applies_mutation(self, store):
        store.create("exec-1")

        def start(state):
            state.status = ExecutionStatusEnum.RUNNING
            state.current_nodes.add("a")

        returned = store.transition("exec-1", start)
        assert returned.status == ExecutionStatusEnum.RUNNING
        assert store.get("exec-1").current_nodes == {"a"}

    def test_illegal_transition_leaves_store_unchanged(self, store):
        store.create("exec-1")

        def jump_to_completed(state):
            state.completed_nodes.append("a")
            state.status = ExecutionStatusEnum.COMPLETED

        with pytest.raises(IllegalTransitionError) as exc_info:
            store.transition("exec-1", jump_to_completed)

        assert exc_info.value.from_status == "pending"
        assert exc_info.value.to_status == "completed"
        state = store.get("exec-1")
        assert state.status == ExecutionStatusEnum.PENDING
        assert state.completed_nodes == []

    def test_terminal_status_is_final(self, store):
        store.create("exec-1")
        store.transition("exec-1", set_status(ExecutionStatusEnum.RUNNING))
        store.transition("exec-1", set_status(ExecutionStatusEnum.COMPLETED))
        for target in (ExecutionStatusEnum.RUNNING, ExecutionStatusEnum.PAUSED, ExecutionStatusEnum.STOPPED):
            with pytest.raises(IllegalTransitionError):
                store.transition("exec-1", set_status(target))

    def test_mutation_without_status_change_allowed_when_paused(self, store):
        store.create("exec-1")
        store.transition("exec-1", set_status(ExecutionStatusEnum.RUNNING))
        store.transition("exec-1", set_status(ExecutionStatusEnum.PAUSED))

        def record(state):
            state.failed_nodes.append(NodeFailure(node_id="a", error="boom"))

        state = store.transition("exec-1", record)
        assert state.status == ExecutionStatusEnum.PAUSED
        assert state.failed_nodes[0].node_id == "a"

    def test_progress_out_of_range_rejected(self, store):
        store.create("exec-1")

        def overflow(state):
            state.progress = 150

        with pytest.raises(StateManagementError):
            store.transition("exec-1", overflow)
        assert store.get("exec-1").progress == 0

    def test_control_token_follows_status(self, store):
        store.create("exec-1")
        control = store.control("exec-1")
        store.transition("exec-1", set_status(ExecutionStatusEnum.RUNNING))
        assert control.is_paused is False

        store.transition("exec-1", set_status(ExecutionStatusEnum.PAUSED))
        assert control.is_paused is True

        store.transition("exec-1", set_status(ExecutionStatusEnum.RUNNING))
        assert control.is_paused is False
        assert control.stop_requested is False

        store.transition("exec-1", set_status(ExecutionStatusEnum.STOPPED))
        assert control.stop_requested is True
        assert control.is_paused is False

    def test_remove_only_terminal_executions(self, store):
        store.create("exec-1")
        store.transition("exec-1", set_status(ExecutionStatusEnum.RUNNING))
        with pytest.raises(StateManagementError):
            store.remove("exec-1")

        store.transition("exec-1", set_status(ExecutionStatusEnum.FAILED))
        store.remove("exec-1")
        assert not store.exists("exec-1")
        assert store.list_executions() == []

    def test_list_executions(self, store):
        store.create("exec-1")
        store.create("exec-2")
        assert sorted(store.list_executions()) == ["exec-1", "exec-2"]

    def test_concurrent_transitions_are_not_lost(self, store):
        """Test that mutations from many threads are all applied."""
        store.create("exec-1")
        store.transition("exec-1", set_status(ExecutionStatusEnum.RUNNING))

        def worker(worker_id):
            for i in range(50):
                node_id = f"w{worker_id}-{i}"
                store.transition("exec-1", lambda state: state.completed_nodes.append(node_id))

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        completed = store.get("exec-1").completed_nodes
        assert len(completed) == 400
        assert len(set(completed)) == 400


class TestStateMachine:
    """Test cases for the allowed status transitions."""

    @pytest.mark.parametrize("current,target", [
        ("pending", "running"),
        ("running", "paused"),
        ("paused", "running"),
        ("running", "stopped"),
        ("paused", "stopped"),
        ("running", "completed"),
        ("running", "failed"),
    ])
    def test_allowed(self, current, target):
        assert can_transition(ExecutionStatusEnum(current), ExecutionStatusEnum(target))

    @pytest.mark.parametrize("current,target", [
        ("pending", "paused"),
        ("pending", "completed"),
        ("paused", "completed"),
        ("paused", "failed"),
        ("stopped", "running"),
        ("failed", "running"),
        ("completed", "failed"),
    ])
    def test_rejected(self, current, target):
        assert not can_transition(ExecutionStatusEnum(current), ExecutionStatusEnum(target))

    def test_terminal_statuses_have_no_exits(self):
        for status in (ExecutionStatusEnum.COMPLETED, ExecutionStatusEnum.STOPPED, ExecutionStatusEnum.FAILED):
            assert ALLOWED_TRANSITIONS[status] == set()
