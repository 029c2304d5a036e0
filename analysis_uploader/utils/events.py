import asyncio
import inspect
import logging
from typing import Callable, Dict, List, Set

logger = logging.getLogger(__name__)


class EventEmitter:
    """
    Simple event emitter for orchestrator events.

    Plain callbacks run inline; coroutine callbacks are scheduled on the
    running loop. A failing listener is logged and never breaks the emitter.
    """

    def __init__(self):
        self._listeners: Dict[str, List[Callable]] = {}
        self._pending: Set[asyncio.Task] = set()

    def on(self, event_name: str, callback: Callable):
        """Subscribe to an event."""
        listeners = self._listeners.setdefault(event_name, [])
        if callback not in listeners:
            listeners.append(callback)

    def off(self, event_name: str, callback: Callable):
        """Unsubscribe from an event."""
        listeners = self._listeners.get(event_name, [])
        if callback in listeners:
            listeners.remove(callback)

    def emit(self, event_name: str, *args, **kwargs):
        """Emit an event to all listeners."""
        for callback in self._listeners.get(event_name, [])[:]:
            try:
                if inspect.iscoroutinefunction(callback):
                    task = asyncio.get_running_loop().create_task(callback(*args, **kwargs))
                    self._pending.add(task)
                    task.add_done_callback(self._listener_done)
                else:
                    callback(*args, **kwargs)
            except Exception as e:
                logger.error(f"Error in event listener for {event_name}: {e}")

    def _listener_done(self, task: asyncio.Task):
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Error in async event listener: {task.exception()}")
