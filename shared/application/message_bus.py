"""
Message Bus

Views dispatch commands through it; the unit of work publishes domain
events through it after commit. Handlers are registered once, from
``AppConfig.ready()``.
"""

from typing import Dict, List, Callable, Type, Any
import logging

from shared.domain.base import DomainEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[DomainEvent], None]


class MessageBus:
    """
    Commands have exactly one handler; events fan out to any number.
    """

    def __init__(self):
        self._subscribers: Dict[Type[DomainEvent], List[EventHandler]] = {}
        self._handlers: Dict[Type, Callable[[Any], Any]] = {}

    def register_event_handler(self, event_type: Type[DomainEvent], handler: EventHandler):
        """
        Subscribe ``handler`` to ``event_type``

        A handler already subscribed is ignored, since Django may call
        ``ready()`` more than once.
        """
        subscribers = self._subscribers.setdefault(event_type, [])
        if handler not in subscribers:
            subscribers.append(handler)
            logger.debug("Subscribed %r to %s", handler, event_type.__name__)

    def register_command_handler(self, command_type: Type, handler: Callable[[Any], Any]):
        if command_type in self._handlers:
            raise ValueError(f"{command_type.__name__} already has a handler")
        self._handlers[command_type] = handler

    def has_command_handler(self, command_type: Type) -> bool:
        return command_type in self._handlers

    def handle_command(self, command: Any) -> Any:
        """Run the command's handler and return its result"""
        name = type(command).__name__
        handler = self._handlers.get(type(command))
        if handler is None:
            raise ValueError(f"No handler registered for command {name}")

        logger.info("Handling command %s", name)
        try:
            return handler(command)
        except Exception as exc:
            logger.warning("Command %s failed: %s", name, exc)
            raise

    def publish_events(self, events: List[DomainEvent]):
        """
        Deliver each event to its subscribers, in order

        A failing subscriber is logged; the remaining ones still run.
        """
        for event in events:
            name = type(event).__name__
            for handler in self._subscribers.get(type(event), []):
                try:
                    handler(event)
                except Exception:
                    logger.exception("Subscriber %r failed on %s (%s)", handler, name, event.event_id)


message_bus = MessageBus()
