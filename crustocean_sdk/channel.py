"""
Real-time channel for the Crustocean agent session.

The platform speaks Socket.IO. :class:`SocketIOChannel` wraps
``socketio.AsyncClient`` and adds what the session needs on top of it:
several ordered handlers per event, and removal of a single handler.
Reconnection is disabled; a dropped channel stays dropped until the
caller connects again.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any, Callable, Protocol, Sequence, runtime_checkable

import socketio
from socketio.exceptions import ConnectionError as SocketConnectionError

from crustocean_sdk.errors import TransportError
from crustocean_sdk.events import EventHandler

logger = logging.getLogger(__name__)


@runtime_checkable
class Channel(Protocol):
    """What the session requires from a bidirectional event channel."""

    @property
    def connected(self) -> bool: ...

    async def connect(self) -> None: ...

    def on(self, event: str, handler: EventHandler) -> None: ...

    def off(self, event: str, handler: EventHandler) -> None: ...

    async def emit(self, event: str, data: Any = None) -> None: ...

    async def disconnect(self) -> None: ...


# (url, session token, transports, connect timeout) -> Channel
ChannelFactory = Callable[[str, str, Sequence[str], float], Channel]


class SocketIOChannel:
    """Socket.IO channel authenticated with a session token."""

    def __init__(
        self,
        url: str,
        token: str,
        transports: Sequence[str] = ("websocket", "polling"),
        timeout: float = 30.0,
    ) -> None:
        self.url = url
        self._token = token
        self._transports = list(transports)
        self._timeout = timeout
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)

        self._sio = socketio.AsyncClient(reconnection=False)
        self._sio.on("*", self._on_any)
        self._sio.on("disconnect", self._on_disconnect)

    @property
    def connected(self) -> bool:
        return self._sio.connected

    async def connect(self) -> None:
        """Open the channel. Raises :class:`TransportError` on failure."""
        try:
            await self._sio.connect(
                self.url,
                auth={"token": self._token},
                transports=self._transports,
                wait_timeout=self._timeout,
            )
        except SocketConnectionError as e:
            raise TransportError(f"Socket connection failed: {e}") from e
        logger.info("Socket connected to %s via %s", self.url, self._sio.transport())

    def on(self, event: str, handler: EventHandler) -> None:
        self._handlers[event].append(handler)

    def off(self, event: str, handler: EventHandler) -> None:
        handlers = self._handlers.get(event)
        if handlers and handler in handlers:
            handlers.remove(handler)

    async def emit(self, event: str, data: Any = None) -> None:
        logger.debug("Emitting %s", event)
        await self._sio.emit(event, data)

    async def disconnect(self) -> None:
        await self._sio.disconnect()

    async def _on_any(self, event: str, *args: Any) -> None:
        await self._dispatch(event, *args)

    async def _on_disconnect(self, *args: Any) -> None:
        logger.info("Socket disconnected from %s", self.url)
        await self._dispatch("disconnect", *args)

    async def _dispatch(self, event: str, *args: Any) -> None:
        """Call every handler for ``event`` in registration order."""
        for handler in list(self._handlers.get(event, [])):
            try:
                result = handler(*args)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception("Error in event handler for %s", event)


def socketio_channel(
    url: str, token: str, transports: Sequence[str], timeout: float
) -> Channel:
    """Default :data:`ChannelFactory`."""
    return SocketIOChannel(url, token, transports=transports, timeout=timeout)
