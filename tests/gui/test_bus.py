"""Tests for EventBus delivery, dedupe and fault isolation."""

from __future__ import annotations

import asyncio

import pytest

from datamanager.gui.bus import EventBus


def test_delivery_in_registration_order(bus: EventBus) -> None:
    received = []
    bus.on("ready", lambda dm: received.append(("first", dm)))
    bus.on("ready", lambda dm: received.append(("second", dm)))

    bus.invoke("ready", "dm")

    assert received == [("first", "dm"), ("second", "dm")]


def test_same_callback_registered_once(bus: EventBus) -> None:
    received = []

    def handler(mode: str) -> None:
        received.append(mode)

    bus.on("modeChanged", handler)
    bus.on("modeChanged", handler)
    bus.invoke("modeChanged", "labelstream")

    assert received == ["labelstream"]
    assert len(bus.handlers("modeChanged")) == 1


def test_failing_handler_does_not_stop_delivery(bus: EventBus) -> None:
    received = []

    def bad(*args) -> None:
        raise RuntimeError("host bug")

    bus.on("ready", bad)
    bus.on("ready", lambda *args: received.append(args))

    bus.invoke("ready", 1, 2)

    assert received == [(1, 2)]


def test_off_single_and_all(bus: EventBus) -> None:
    def a() -> None:
        pass

    def b() -> None:
        pass

    bus.on("x", a)
    bus.on("x", b)
    bus.off("x", a)
    assert bus.handlers("x") == [b]

    bus.off("x")
    assert bus.has_handler("x") is False

    bus.off("unknown")
    bus.off("x", a)


def test_has_handler(bus: EventBus) -> None:
    assert bus.has_handler("ready") is False
    bus.on("ready", lambda: None)
    assert bus.has_handler("ready") is True


def test_clear_drops_everything(bus: EventBus) -> None:
    received = []
    bus.on("ready", lambda: received.append(1))
    bus.clear()
    bus.invoke("ready")
    assert received == []


@pytest.mark.asyncio
async def test_async_handler_is_scheduled(bus: EventBus) -> None:
    received = []

    async def handler(value) -> None:
        await asyncio.sleep(0)
        received.append(value)

    async def failing(value) -> None:
        raise RuntimeError("async host bug")

    bus.on("ready", failing)
    bus.on("ready", handler)
    bus.invoke("ready", 5)
    await bus.drain()

    assert received == [5]


def test_async_handler_without_loop_is_dropped(bus: EventBus) -> None:
    received = []

    async def handler() -> None:
        received.append(1)

    bus.on("ready", handler)
    bus.invoke("ready")

    assert received == []
