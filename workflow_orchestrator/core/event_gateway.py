"""Fire-and-forget publication of domain events to an event bus."""

import asyncio
import inspect
import threading
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Union, runtime_checkable

from ..models.core import DomainEvent, EventType, ExecutionContext
from .logging import get_logger

logger = get_logger(__name__)


@runtime_checkable
class EventBus(Protocol):
    """Destination of domain events. ``publish`` may be sync or async."""

    def publish(self, event: DomainEvent) -> Union[None, Awaitable[None]]:
        ...


EventHandler = Callable[[DomainEvent], Union[None, Awaitable[None]]]


class InMemoryEventBus:
    """Event bus that keeps every published event and notifies subscribers."""

    def __init__(self):
        self._events: List[DomainEvent] = []
        self._subscribers: Dict[Optional[EventType], List[EventHandler]] = {}
        self._lock = threading.Lock()

    def subscribe(self, handler: EventHandler, event_type: Optional[EventType] = None) -> None:
        """Register a handler for one event type, or for all events when ``event_type`` is None."""
        self._subscribers.setdefault(event_type, []).append(handler)

    async def publish(self, event: DomainEvent) -> None:
        with self._lock:
            self._events.append(event)

        handlers = self._subscribers.get(event.event_type, []) + self._subscribers.get(None, [])
        for handler in handlers:
            result = handler(event)
            if inspect.isawaitable(result):
                await result

    def get_published_events(self, event_type: Optional[EventType] = None) -> List[DomainEvent]:
        """Events in publication order, optionally filtered by type."""
        with self._lock:
            events = list(self._events)
        if event_type is None:
            return events
        return [event for event in events if event.event_type == event_type]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()


class EventGateway:
    """
    Publishes domain events without ever failing the caller.

    Async bus calls are bounded by ``publish_timeout``; errors and timeouts are
    logged and the event is dropped.
    """

    def __init__(self, event_bus: EventBus, publish_timeout: float = 5.0):
        if publish_timeout <= 0:
            raise ValueError("Publish timeout must be positive")
        self._event_bus = event_bus
        self._publish_timeout = publish_timeout
        self._published = 0
        self._dropped = 0

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus

    def build_event(
        self,
        event_type: EventType,
        context: ExecutionContext,
        data: Optional[Dict[str, Any]] = None
    ) -> DomainEvent:
        """
        Build an event stamped from the execution context.

        Args:
            event_type: Type of the event
            context: Context of the run the event belongs to
            data: Event specific payload

        Returns:
            DomainEvent: Event with aggregate id set to the model id; ``executionId``
            and ``modelId`` are always present in its data
        """
        event_data = {
            "executionId": context.execution_id,
            "modelId": context.model_id,
        }
        if data:
            event_data.update(data)

        return DomainEvent(
            event_type=event_type,
            aggregate_id=context.model_id,
            event_data=event_data,
            user_id=context.user_id
        )

    async def publish(self, event: DomainEvent) -> bool:
        """
        Publish an event to the bus.

        Returns:
            True if the bus accepted the event, False if it was dropped
        """
        try:
            result = self._event_bus.publish(event)
            if inspect.isawaitable(result):
                await asyncio.wait_for(result, timeout=self._publish_timeout)
        except asyncio.CancelledError:
            raise
        except asyncio.TimeoutError:
            self._dropped += 1
            logger.warning(
                f"Publishing {event.event_type.value} for {event.aggregate_id} "
                f"timed out after {self._publish_timeout}s"
            )
            return False
        except Exception as e:
            self._dropped += 1
            logger.warning(f"Failed to publish {event.event_type.value} for {event.aggregate_id}: {e}")
            return False

        self._published += 1
        logger.debug(f"Published {event.event_type.value} for {event.aggregate_id}")
        return True

    async def emit(
        self,
        event_type: EventType,
        context: ExecutionContext,
        data: Optional[Dict[str, Any]] = None
    ) -> bool:
        """Build and publish an event in one step."""
        return await self.publish(self.build_event(event_type, context, data))

    def get_stats(self) -> Dict[str, int]:
        return {"published": self._published, "dropped": self._dropped}
