import logging
import threading
from typing import Type, Callable, List, Dict, Any, Optional
from vtp.domain.events import Event

class EventBus:
    """A synchronous event bus shared by the job worker threads.

    Callbacks run on the publishing thread. A failing subscriber is logged and
    does not stop delivery to the others or break the publishing job.
    """

    def __init__(self):
        self._subscribers: Dict[Type[Event], List[Callable[[Any], None]]] = {}
        self._lock = threading.Lock()
        self.logger = logging.getLogger(__name__)

    def subscribe(self, event_type: Type[Event], callback: Optional[Callable[[Any], None]] = None):
        """Subscribes a callback to an event type (or its subclasses). Can be used as a decorator."""
        if callback is None:
            def decorator(func: Callable[[Any], None]):
                self.subscribe(event_type, func)
                return func
            return decorator

        with self._lock:
            self._subscribers.setdefault(event_type, []).append(callback)
        return callback

    def unsubscribe(self, event_type: Type[Event], callback: Callable[[Any], None]):
        with self._lock:
            callbacks = self._subscribers.get(event_type, [])
            if callback in callbacks:
                callbacks.remove(callback)

    def publish(self, event: Event):
        """Publishes an event to subscribers of its type and of its base types."""
        with self._lock:
            targets = [
                callback
                for event_type, callbacks in self._subscribers.items()
                if isinstance(event, event_type)
                for callback in callbacks
            ]
        for callback in targets:
            try:
                callback(event)
            except Exception:
                self.logger.exception(f"Event subscriber failed for {type(event).__name__}")
