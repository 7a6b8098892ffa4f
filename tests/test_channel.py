"""
Unit tests for the Socket.IO channel wrapper.

No server is involved: the underlying ``socketio.AsyncClient`` is never
connected, and events are pushed through the catch-all handler.
"""

from __future__ import annotations

import logging

import pytest
from socketio.exceptions import ConnectionError as SocketConnectionError

from crustocean_sdk import Channel, SocketIOChannel, TransportError


@pytest.mark.asyncio
async def test_socketio_channel_satisfies_protocol() -> None:
    channel = SocketIOChannel("https://api.test", "jwt")
    assert isinstance(channel, Channel)
    assert channel.connected is False


@pytest.mark.asyncio
async def test_dispatch_in_registration_order() -> None:
    channel = SocketIOChannel("https://api.test", "jwt")
    calls: list = []

    async def second(payload) -> None:
        calls.append(("second", payload))

    channel.on("message", lambda payload: calls.append(("first", payload)))
    channel.on("message", second)

    await channel._on_any("message", {"content": "hi"})

    assert calls == [("first", {"content": "hi"}), ("second", {"content": "hi"})]


@pytest.mark.asyncio
async def test_off_removes_single_handler() -> None:
    channel = SocketIOChannel("https://api.test", "jwt")
    calls: list = []
    channel.on("message", calls.append)
    channel.on("message", calls.append)

    channel.off("message", calls.append)
    channel.off("unknown", calls.append)
    await channel._on_any("message", "m")

    assert calls == ["m"]


@pytest.mark.asyncio
async def test_handler_errors_are_logged_not_raised(caplog) -> None:
    channel = SocketIOChannel("https://api.test", "jwt")
    calls: list = []

    def broken(payload) -> None:
        raise RuntimeError("handler bug")

    channel.on("agent-status", broken)
    channel.on("agent-status", calls.append)

    with caplog.at_level(logging.ERROR, logger="crustocean_sdk.channel"):
        await channel._on_any("agent-status", {"status": "idle"})

    assert calls == [{"status": "idle"}]
    assert "Error in event handler for agent-status" in caplog.text


@pytest.mark.asyncio
async def test_disconnect_event_reaches_handlers() -> None:
    channel = SocketIOChannel("https://api.test", "jwt")
    calls: list = []
    channel.on("disconnect", lambda *args: calls.append(args))

    await channel._on_disconnect("io server disconnect")

    assert calls == [("io server disconnect",)]


@pytest.mark.asyncio
async def test_connect_passes_auth_and_transports(monkeypatch) -> None:
    channel = SocketIOChannel("https://api.test", "jwt", transports=["websocket"], timeout=5.0)
    seen: dict = {}

    async def fake_connect(url, **kwargs) -> None:
        seen["url"] = url
        seen.update(kwargs)

    monkeypatch.setattr(channel._sio, "connect", fake_connect)
    monkeypatch.setattr(channel._sio, "transport", lambda: "websocket")

    await channel.connect()

    assert seen["url"] == "https://api.test"
    assert seen["auth"] == {"token": "jwt"}
    assert seen["transports"] == ["websocket"]
    assert seen["wait_timeout"] == 5.0


@pytest.mark.asyncio
async def test_connect_failure_raises_transport_error(monkeypatch) -> None:
    channel = SocketIOChannel("https://api.test", "jwt")

    async def refuse(url, **kwargs) -> None:
        raise SocketConnectionError("Unauthorized")

    monkeypatch.setattr(channel._sio, "connect", refuse)

    with pytest.raises(TransportError, match="Unauthorized"):
        await channel.connect()


@pytest.mark.asyncio
async def test_incoming_event_fans_out_through_socketio_client() -> None:
    channel = SocketIOChannel("https://api.test", "jwt")
    calls: list = []

    async def second(payload) -> None:
        calls.append(("second", payload))

    channel.on("message", lambda payload: calls.append(("first", payload)))
    channel.on("message", second)
    channel.on("agent-status", lambda payload: calls.append(("status", payload)))

    await channel._sio._trigger_event("message", "/", {"content": "hi"})

    assert calls == [("first", {"content": "hi"}), ("second", {"content": "hi"})]


@pytest.mark.asyncio
async def test_disconnect_through_socketio_client() -> None:
    channel = SocketIOChannel("https://api.test", "jwt")
    calls: list = []
    channel.on("disconnect", lambda *args: calls.append(args))

    await channel._sio._trigger_event("disconnect", "/", "io server disconnect")

    assert calls == [("io server disconnect",)]


def test_async_transport_is_installed() -> None:
    from engineio import async_client

    assert async_client.aiohttp is not None
