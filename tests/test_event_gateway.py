"""Tests for event publication."""

import asyncio
import time

import pytest

from workflow_orchestrator.core.event_gateway import EventGateway, InMemoryEventBus
from workflow_orchestrator.models.core import EventType

from conftest import make_context


class ExplodingBus:
    async def publish(self, event):
        raise ConnectionError("bus unavailable")


class SyncExplodingBus:
    def publish(self, event):
        raise RuntimeError("sync failure")


class SlowBus:
    async def publish(self, event):
        await asyncio.sleep(5)


class SyncRecordingBus:
    def __init__(self):
        self.events = []

    def publish(self, event):
        self.events.append(event)


class TestEventGateway:
    """Test cases for EventGateway."""

    def test_build_event_stamps_context(self):
        gateway = EventGateway(InMemoryEventBus())
        context = make_context("exec-5", "model-5", user_id="user-1")

        event = gateway.build_event(EventType.NODE_EXECUTION_STARTED, context, {"nodeId": "a"})

        assert event.aggregate_id == "model-5"
        assert event.user_id == "user-1"
        assert event.event_data == {"executionId": "exec-5", "modelId": "model-5", "nodeId": "a"}

    @pytest.mark.asyncio
    async def test_publish_to_in_memory_bus(self):
        bus = InMemoryEventBus()
        gateway = EventGateway(bus)

        assert await gateway.emit(EventType.WORKFLOW_EXECUTION_STARTED, make_context()) is True

        events = bus.get_published_events()
        assert [event.event_type for event in events] == [EventType.WORKFLOW_EXECUTION_STARTED]
        assert gateway.get_stats() == {"published": 1, "dropped": 0}

    @pytest.mark.asyncio
    async def test_sync_bus_supported(self):
        bus = SyncRecordingBus()
        gateway = EventGateway(bus)
        await gateway.emit(EventType.WORKFLOW_EXECUTION_PAUSED, make_context())
        assert len(bus.events) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bus", [ExplodingBus(), SyncExplodingBus()])
    async def test_bus_errors_are_swallowed(self, bus):
        gateway = EventGateway(bus)
        published = await gateway.emit(EventType.WORKFLOW_EXECUTION_STARTED, make_context())
        assert published is False
        assert gateway.get_stats() == {"published": 0, "dropped": 1}

    @pytest.mark.asyncio
    async def test_slow_bus_is_bounded_by_timeout(self):
        gateway = EventGateway(SlowBus(), publish_timeout=0.05)
        started = time.perf_counter()
        published = await gateway.emit(EventType.WORKFLOW_EXECUTION_STARTED, make_context())
        assert published is False
        assert time.perf_counter() - started < 1.0
        assert gateway.get_stats()["dropped"] == 1

    def test_invalid_timeout_rejected(self):
        with pytest.raises(ValueError):
            EventGateway(InMemoryEventBus(), publish_timeout=0)


class TestInMemoryEventBus:
    """Test cases for InMemoryEventBus."""

    @pytest.mark.asyncio
    async def test_filter_and_clear(self):
        bus = InMemoryEventBus()
        gateway = EventGateway(bus)
        context = make_context()
        await gateway.emit(EventType.NODE_EXECUTION_STARTED, context, {"nodeId": "a"})
        await gateway.emit(EventType.NODE_EXECUTION_COMPLETED, context, {"nodeId": "a"})

        completed = bus.get_published_events(EventType.NODE_EXECUTION_COMPLETED)
        assert len(completed) == 1
        assert completed[0].event_data["nodeId"] == "a"

        bus.clear()
        assert bus.get_published_events() == []

    @pytest.mark.asyncio
    async def test_subscribers_notified(self):
        bus = InMemoryEventBus()
        every_event = []
        stopped_events = []

        async def on_stop(event):
            stopped_events.append(event)

        bus.subscribe(every_event.append)
        bus.subscribe(on_stop, EventType.WORKFLOW_EXECUTION_STOPPED)

        gateway = EventGateway(bus)
        await gateway.emit(EventType.WORKFLOW_EXECUTION_STARTED, make_context())
        await gateway.emit(EventType.WORKFLOW_EXECUTION_STOPPED, make_context())

        assert len(every_event) == 2
        assert [event.event_type for event in stopped_events] == [EventType.WORKFLOW_EXECUTION_STOPPED]

    @pytest.mark.asyncio
    async def test_failing_subscriber_does_not_break_gateway(self):
        bus = InMemoryEventBus()

        def broken(event):
            raise ValueError("subscriber bug")

        bus.subscribe(broken)
        gateway = EventGateway(bus)

        assert await gateway.emit(EventType.WORKFLOW_EXECUTION_STARTED, make_context()) is False
        assert len(bus.get_published_events()) == 1
