"""
Shared fixtures: an in-memory spy channel standing in for Socket.IO.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Any, Callable, Sequence

import pytest

from crustocean_sdk.errors import TransportError

API_URL = "https://api.test"
AGENT_TOKEN = "sk_agent_token_for_unit_tests"

AUTH_RESPONSE = {
    "token": "jwt-1",
    "user": {"id": "u1", "username": "testbot", "display_name": "Test Bot"},
}

AGENCIES = [
    {"id": "r1", "slug": "lobby", "name": "Lobby", "isMember": True},
    {"id": "r2", "slug": "dev", "name": "Dev", "isMember": False},
]

# (event, payload) -> (reply_event, reply_payload) or None
Responder = Callable[[str, Any], "tuple[str, Any] | None"]


def ack_joins(event: str, data: Any) -> tuple[str, Any] | None:
    """Acknowledge every join request, echoing its requestId."""
    if event == "join-agency":
        return "agency-joined", {
            "agencyId": data["agencyId"],
            "members": [{"username": "testbot"}],
            "requestId": data["requestId"],
        }
    return None


class FakeChannel:
    """Records emits and delivers events to handlers in registration order."""

    def __init__(self, url: str, token: str, transports: Sequence[str], timeout: float) -> None:
        self.url = url
        self.token = token
        self.transports = list(transports)
        self.timeout = timeout
        self.connected = False
        self.emitted: list[tuple[str, Any]] = []
        self.handlers: dict[str, list[Any]] = defaultdict(list)
        self.responder: Responder | None = ack_joins
        self.connect_error: Exception | None = None
        self.disconnect_calls = 0

    async def connect(self) -> None:
        if self.connect_error is not None:
            raise self.connect_error
        self.connected = True

    def on(self, event: str, handler: Any) -> None:
        self.handlers[event].append(handler)

    def off(self, event: str, handler: Any) -> None:
        if handler in self.handlers.get(event, []):
            self.handlers[event].remove(handler)

    async def emit(self, event: str, data: Any = None) -> None:
        self.emitted.append((event, data))
        if self.responder is not None:
            reply = self.responder(event, data)
            if reply is not None:
                await self.deliver(*reply)

    async def deliver(self, event: str, *args: Any) -> None:
        for handler in list(self.handlers.get(event, [])):
            result = handler(*args)
            if asyncio.iscoroutine(result):
                await result

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        self.connected = False


class ChannelFactory:
    """Channel factory that keeps every channel it built."""

    def __init__(self) -> None:
        self.channels: list[FakeChannel] = []
        self.responder: Responder | None = ack_joins
        self.connect_error: Exception | None = None

    def __call__(self, url: str, token: str, transports: Sequence[str], timeout: float) -> FakeChannel:
        channel = FakeChannel(url, token, transports, timeout)
        channel.responder = self.responder
        channel.connect_error = self.connect_error
        self.channels.append(channel)
        return channel

    @property
    def last(self) -> FakeChannel:
        return self.channels[-1]


@pytest.fixture
def channels() -> ChannelFactory:
    return ChannelFactory()


@pytest.fixture
def refused_channels() -> ChannelFactory:
    factory = ChannelFactory()
    factory.connect_error = TransportError("Socket connection failed: refused")
    return factory
