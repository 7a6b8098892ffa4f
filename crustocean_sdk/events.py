"""
Event registry for the Crustocean agent session.

Handlers are kept per event name in registration order. The registry
outlives any single channel: every time the session opens a channel it
calls :meth:`ListenerRegistry.attach` to replay the handlers onto it.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Coroutine, Iterator

if TYPE_CHECKING:
    from crustocean_sdk.channel import Channel

logger = logging.getLogger(__name__)

# Type alias for event handlers (sync or async, called with the event payload)
EventHandler = Callable[..., Coroutine[Any, Any, None] | None]


class AgentEvent(str, Enum):
    """Server-to-client events an agent can subscribe to.

    Any other string is accepted as an event name as well.
    """

    MESSAGE = "message"
    MEMBERS_UPDATED = "members-updated"
    MEMBER_PRESENCE = "member-presence"
    AGENT_STATUS = "agent-status"
    # payload: {"agencyId": ..., "agency": {"id", "name", "slug"}}
    AGENCY_INVITED = "agency-invited"
    ERROR = "error"
    DISCONNECT = "disconnect"


def event_name(event: AgentEvent | str) -> str:
    """Normalise an :class:`AgentEvent` or plain string to the wire name."""
    if isinstance(event, AgentEvent):
        return event.value
    return str(event)


class ListenerRegistry:
    """Ordered handler lists keyed by event name."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)

    def add(self, event: AgentEvent | str, handler: EventHandler) -> None:
        """Append a handler. The same handler may be registered more than once."""
        self._handlers[event_name(event)].append(handler)

    def remove(self, event: AgentEvent | str, handler: EventHandler) -> bool:
        """Remove the first registration of ``handler`` for ``event``."""
        handlers = self._handlers.get(event_name(event))
        if not handlers:
            return False
        try:
            handlers.remove(handler)
        except ValueError:
            return False
        return True

    def handlers(self, event: AgentEvent | str) -> list[EventHandler]:
        return list(self._handlers.get(event_name(event), []))

    def attach(self, channel: Channel) -> int:
        """Register every handler on ``channel``, preserving order.

        Returns the number of handlers attached.
        """
        count = 0
        for name, handlers in self._handlers.items():
            for handler in handlers:
                channel.on(name, handler)
                count += 1
        logger.debug("Attached %d listener(s) to channel", count)
        return count

    def clear(self) -> None:
        self._handlers.clear()

    def __iter__(self) -> Iterator[tuple[str, list[EventHandler]]]:
        for name, handlers in self._handlers.items():
            yield name, list(handlers)

    def __len__(self) -> int:
        return sum(len(h) for h in self._handlers.values())
