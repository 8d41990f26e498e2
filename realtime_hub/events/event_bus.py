"""
Event bus for the realtime hub.

This module provides the EventBus class, an in-memory asyncio pub/sub system
that business logic publishes domain events to. Publishing is non-blocking:
events are queued and delivered to subscribers by a background task, so a
slow or failing subscriber never holds up the publisher.
"""

import asyncio
import inspect
from collections import defaultdict
from collections.abc import Callable
from typing import Any, TypeVar

from ..structured_logging.enhanced_logging_config import get_logger
from .event_types import BaseEvent

T = TypeVar("T", bound=BaseEvent)

logger = get_logger(__name__)


class EventBus:
    """
    Pure asyncio event bus.

    Subscribers register per event class. Sync subscribers run inline in the
    processing task; async subscribers for one event run concurrently. An
    exception in any subscriber is logged and does not affect the others.
    """

    def __init__(self, max_queue_size: int = 0) -> None:
        """
        Initialize the event bus.

        Args:
            max_queue_size: Bound on queued events; 0 means unbounded
        """
        self._subscribers: dict[type[BaseEvent], list[Callable[[Any], Any]]] = defaultdict(list)
        self._event_queue: asyncio.Queue[BaseEvent | None] = asyncio.Queue(maxsize=max_queue_size)
        self._running: bool = False
        self._processing_task: asyncio.Task | None = None
        self._main_loop: asyncio.AbstractEventLoop | None = None
        self._dropped_events = 0

    def set_main_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        """Set the loop that events published from other threads are handed to."""
        self._main_loop = loop
        logger.info("Main event loop set for EventBus")

    def _ensure_async_processing(self) -> None:
        """Start the processing task on demand, within a running event loop."""
        if self._running and self._processing_task is not None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("EventBus will start processing on first publish when an event loop is available")
            return
        self._running = True
        self._processing_task = loop.create_task(self._process_events_async())
        logger.info("EventBus processing started")

    async def _process_events_async(self) -> None:
        """Drain the queue until shutdown."""
        try:
            while True:
                event = await self._event_queue.get()
                try:
                    if event is None:
                        break
                    await self._handle_event_async(event)
                except Exception as e:  # pylint: disable=broad-exception-caught  # Reason: Processing loop must survive any subscriber failure
                    logger.error("Error processing event", error=str(e), exc_info=True)
                finally:
                    self._event_queue.task_done()
        except asyncio.CancelledError:
            logger.debug("EventBus processing task cancelled")
            raise
        finally:
            logger.info("EventBus processing stopped")

    async def _handle_event_async(self, event: BaseEvent) -> None:
        """Call every subscriber registered for the event's class."""
        event_type = type(event)
        subscribers = list(self._subscribers.get(event_type, []))

        if not subscribers:
            logger.debug("No subscribers for event type", event_type=event_type.__name__)
            return

        pending: list[tuple[Callable[[Any], Any], Any]] = []
        for subscriber in subscribers:
            try:
                result = subscriber(event)
            except Exception as e:  # pylint: disable=broad-exception-caught  # Reason: Subscriber errors are isolated per subscriber
                logger.error(
                    "Error in sync event subscriber",
                    subscriber_name=getattr(subscriber, "__name__", "unknown"),
                    error=str(e),
                )
                continue
            if inspect.isawaitable(result):
                pending.append((subscriber, result))

        # Async subscribers for one event run concurrently
        if pending:
            results = await asyncio.gather(*(awaitable for _, awaitable in pending), return_exceptions=True)
            for (subscriber, _), result in zip(pending, results, strict=True):
                if isinstance(result, BaseException):
                    logger.error(
                        "Error in async event subscriber",
                        subscriber_name=getattr(subscriber, "__name__", "unknown"),
                        error=str(result),
                        error_type=type(result).__name__,
                    )

    def _enqueue(self, event: BaseEvent) -> None:
        self._ensure_async_processing()
        try:
            self._event_queue.put_nowait(event)
        except asyncio.QueueFull:
            self._dropped_events += 1
            logger.warning("Event queue at capacity - dropping event", event_type=type(event).__name__)
            return
        logger.debug("Published event to queue", event_type=type(event).__name__, queue_size=self._event_queue.qsize())

    def publish(self, event: BaseEvent) -> None:
        """
        Publish an event.

        Never blocks and never raises because of a subscriber or a full queue.
        Safe to call from a worker thread once set_main_loop() has been called.

        Args:
            event: The event to publish

        Raises:
            ValueError: If event is not a BaseEvent
        """
        if not isinstance(event, BaseEvent):
            raise ValueError("Event must inherit from BaseEvent")

        try:
            asyncio.get_running_loop()
            in_loop = True
        except RuntimeError:
            in_loop = False

        if not in_loop and self._main_loop is not None and self._main_loop.is_running():
            self._main_loop.call_soon_threadsafe(self._enqueue, event)
            return
        self._enqueue(event)

    def subscribe(self, event_type: type[T], handler: Callable[[T], Any]) -> None:
        """
        Subscribe to events of a specific type.

        Args:
            event_type: The event class to subscribe to
            handler: Sync or async callable invoked with each event
        """
        if not (isinstance(event_type, type) and issubclass(event_type, BaseEvent)):
            raise ValueError("Event type must inherit from BaseEvent")
        if not callable(handler):
            raise ValueError("Handler must be callable")

        self._subscribers[event_type].append(handler)
        logger.debug("Added subscriber for event type", event_type=event_type.__name__)

    def unsubscribe(self, event_type: type[T], handler: Callable[[T], Any]) -> bool:
        """
        Unsubscribe a handler.

        Returns:
            True if the handler was found and removed, False otherwise
        """
        subscribers = self._subscribers.get(event_type, [])
        try:
            subscribers.remove(handler)
        except ValueError:
            return False
        return True

    def get_subscriber_count(self, event_type: type[BaseEvent]) -> int:
        """Get the number of subscribers for a specific event type."""
        return len(self._subscribers.get(event_type, []))

    def get_all_subscriber_counts(self) -> dict[str, int]:
        """Get subscriber counts keyed by event class name."""
        return {event_type.__name__: len(subscribers) for event_type, subscribers in self._subscribers.items()}

    @property
    def dropped_events(self) -> int:
        """Events dropped because the queue was full."""
        return self._dropped_events

    async def wait_until_idle(self) -> None:
        """Wait until every queued event has been handled."""
        await self._event_queue.join()

    async def shutdown(self) -> None:
        """Stop processing, letting already queued events finish first."""
        if not self._running:
            return
        logger.info("Shutting down EventBus")
        self._running = False
        task = self._processing_task
        self._processing_task = None
        if task is None or task.done():
            return
        try:
            self._event_queue.put_nowait(None)
        except asyncio.QueueFull:
            task.cancel()
        try:
            await asyncio.wait_for(task, timeout=5.0)
        except (TimeoutError, asyncio.CancelledError):
            logger.warning("EventBus processing task did not stop cleanly")
