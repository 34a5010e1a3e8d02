"""Fan-out of state changes to every listening context."""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Set

logger = logging.getLogger(__name__)

Listener = Callable[[Dict[str, Any]], Awaitable[None]]


class BroadcastManager:
    """Delivers state deltas to registered listeners and subscriber queues."""

    def __init__(self, queue_size: int = 100):
        self._listeners: List[Listener] = []
        self._queues: Set[asyncio.Queue] = set()
        self._queue_size = queue_size

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def subscribe(self) -> asyncio.Queue:
        """Create a queue receiving every subsequent broadcast."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_size)
        self._queues.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self._queues.discard(queue)

    @property
    def subscriber_count(self) -> int:
        return len(self._listeners) + len(self._queues)

    async def broadcast(self, message: Dict[str, Any]) -> None:
        """Send ``message`` to everyone listening. Never raises."""
        logger.debug(f"Broadcasting {message}")
        for queue in list(self._queues):
            try:
                queue.put_nowait(dict(message))
            except asyncio.QueueFull:
                logger.warning("Dropping broadcast for a slow subscriber")
        for listener in list(self._listeners):
            try:
                await listener(dict(message))
            except Exception as e:
                logger.error(f"Error delivering broadcast: {e}")
