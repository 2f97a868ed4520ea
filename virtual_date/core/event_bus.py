"""
Event Bus - carries date events from the chat controller to the render
layer, audio playback and console.

Only the events listed in DATE_EVENTS can be subscribed to or emitted.
"""

import logging
import inspect
from collections import Counter, defaultdict
from typing import Callable, Dict, List

logger = logging.getLogger(__name__)

# Input box locked (False) while a round trip is pending, unlocked (True) after
INPUT_ENABLED = "input_enabled"
# Filtered reply text
REPLY_READY = "reply_ready"
# Expression to show on the character
EXPRESSION_CHANGED = "expression_changed"
# Synthesized audio bytes for the reply
SPEECH_READY = "speech_ready"

DATE_EVENTS = (INPUT_ENABLED, REPLY_READY, EXPRESSION_CHANGED, SPEECH_READY)

class EventBus:
    """Async pub/sub for the date events."""

    def __init__(self):
        self.listeners: Dict[str, List[Callable]] = defaultdict(list)
        self.emitted: Counter = Counter()
        self.running = False

    async def initialize(self):
        self.running = True
        logger.info("Event bus initialized")

    def _check(self, event_name: str):
        if event_name not in DATE_EVENTS:
            raise ValueError(f"Unknown event: {event_name}")

    def subscribe(self, event_name: str, callback: Callable) -> Callable[[], None]:
        """Register callback; returns a function that removes it again."""
        self._check(event_name)
        self.listeners[event_name].append(callback)
        logger.debug(f"Subscribed to event: {event_name}")

        def unsubscribe():
            if callback in self.listeners[event_name]:
                self.listeners[event_name].remove(callback)
                logger.debug(f"Unsubscribed from event: {event_name}")

        return unsubscribe

    async def emit(self, event_name: str, *args):
        """Deliver an event to every listener, in subscription order.

        A failing listener is logged and skipped.
        """
        self._check(event_name)
        if not self.running:
            return

        self.emitted[event_name] += 1
        for callback in list(self.listeners[event_name]):
            try:
                if inspect.iscoroutinefunction(callback):
                    await callback(*args)
                else:
                    callback(*args)
            except Exception as e:
                logger.error(f"Error in {event_name} listener: {e}", exc_info=True)

    async def shutdown(self):
        self.running = False
        self.listeners.clear()
        logger.info(f"Event bus shutdown ({sum(self.emitted.values())} events emitted)")
