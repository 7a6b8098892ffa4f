"""
Unit tests for the listener registry.
"""

from __future__ import annotations

from crustocean_sdk.events import AgentEvent, ListenerRegistry, event_name

from tests.conftest import FakeChannel


def _handler(calls: list, tag: str):
    def handler(payload=None) -> None:
        calls.append((tag, payload))

    return handler


def test_event_name_accepts_enum_and_string() -> None:
    assert event_name(AgentEvent.AGENCY_INVITED) == "agency-invited"
    assert event_name("custom-event") == "custom-event"


def test_remove_takes_first_registration_only() -> None:
    registry = ListenerRegistry()
    calls: list = []
    h = _handler(calls, "h")

    registry.add(AgentEvent.MESSAGE, h)
    registry.add("message", h)

    assert registry.remove("message", h) is True
    assert registry.handlers(AgentEvent.MESSAGE) == [h]
    assert len(registry) == 1


def test_remove_unknown_handler_is_noop() -> None:
    registry = ListenerRegistry()
    calls: list = []

    assert registry.remove("message", _handler(calls, "x")) is False
    assert len(registry) == 0


def test_attach_preserves_order() -> None:
    registry = ListenerRegistry()
    calls: list = []
    first, second = _handler(calls, "first"), _handler(calls, "second")
    registry.add("message", first)
    registry.add("message", second)
    registry.add("agent-status", first)

    channel = FakeChannel("https://api.test", "jwt", ["websocket"], 1.0)
    assert registry.attach(channel) == 3

    assert channel.handlers["message"] == [first, second]
    assert channel.handlers["agent-status"] == [first]


def test_handlers_returns_copy() -> None:
    registry = ListenerRegistry()
    calls: list = []
    registry.add("message", _handler(calls, "a"))

    registry.handlers("message").clear()
    assert len(registry) == 1
