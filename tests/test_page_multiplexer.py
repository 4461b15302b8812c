from __future__ import annotations

import asyncio
from typing import Any

import pytest

from edgeplex.app.artifacts import ConsoleLogBuffer
from edgeplex.app.event_bus import EventBus
from edgeplex.app.page_multiplexer import PageMultiplexer
from edgeplex.app.session_registry import SessionRegistry
from edgeplex.core.events import ConsoleLogEvent


class _FakeMessage:
    def __init__(self, type_: str, text: str) -> None:
        self.type = type_
        self.text = text


class _FakePage:
    def __init__(self, number: int) -> None:
        self.number = number
        self.alive = True
        self.hang = False
        self.closed = False
        self.fail_close = False
        self.listeners: dict[str, Any] = {}

    def on(self, event: str, handler: Any) -> None:
        self.listeners[event] = handler

    async def evaluate(self, script: str) -> bool:
        del script
        if self.hang:
            await asyncio.sleep(10)
        if not self.alive:
            raise RuntimeError("Target closed")
        return True

    async def close(self) -> None:
        if self.fail_close:
            raise RuntimeError("close failed")
        self.closed = True


class _FakeContext:
    def __init__(self) -> None:
        self.pages: list[_FakePage] = []

    async def new_page(self) -> _FakePage:
        page = _FakePage(len(self.pages) + 1)
        self.pages.append(page)
        return page

    async def close(self) -> None:
        return None


class _FakeBrowser:
    def __init__(self) -> None:
        self.context = _FakeContext()

    def is_connected(self) -> bool:
        return True

    def on(self, event: str, handler: Any) -> None:
        del event, handler

    async def new_context(self) -> _FakeContext:
        return self.context

    async def close(self) -> None:
        return None


class _FakeConnector:
    async def connect(self, edge_id: str | None = None) -> _FakeBrowser:
        del edge_id
        return _FakeBrowser()


def _build(probe_timeout: float = 0.05) -> tuple[PageMultiplexer, SessionRegistry, ConsoleLogBuffer, EventBus]:
    bus = EventBus()
    registry = SessionRegistry(_FakeConnector(), bus)
    logs = ConsoleLogBuffer()
    pages = PageMultiplexer(registry, logs, bus, probe_timeout_seconds=probe_timeout)
    return pages, registry, logs, bus


@pytest.mark.asyncio
async def test_page_is_reused_while_alive() -> None:
    pages, registry, _, _ = _build()

    first = await pages.get_or_create_page("a", "alice")
    second = await pages.get_or_create_page("a", "alice")

    assert first is second
    assert list(registry.get("a").pages) == ["a-alice"]


@pytest.mark.asyncio
async def test_unresponsive_page_is_replaced_after_probe_timeout() -> None:
    pages, registry, _, _ = _build(probe_timeout=0.01)
    first = await pages.get_or_create_page("a", "alice")
    first.hang = True

    second = await pages.get_or_create_page("a", "alice")

    assert second is not first
    assert registry.get("a").pages["a-alice"] is second


@pytest.mark.asyncio
async def test_is_page_alive_treats_errors_as_dead() -> None:
    pages, _, _, _ = _build()
    page = _FakePage(1)
    page.alive = False

    assert await pages.is_page_alive(page) is False


@pytest.mark.asyncio
async def test_console_messages_are_buffered_and_published() -> None:
    pages, _, logs, bus = _build()
    subscription = bus.subscribe(ConsoleLogEvent)
    page = await pages.get_or_create_page("a")

    await page.listeners["console"](_FakeMessage("warning", "slow script"))
    await subscription.close()

    events = [event async for event in subscription]
    assert logs.lines == ["[a][warning] slow script"]
    assert events[0].page_key == "a"
    assert events[0].line == "[a][warning] slow script"


@pytest.mark.asyncio
async def test_resolve_page_prefers_named_then_default_then_new_tab() -> None:
    pages, registry, _, _ = _build()
    worker_page = await pages.get_or_create_page("a", "alice")

    named, named_key = await pages.resolve_page("a", "a-alice")
    created, created_key = await pages.resolve_page("a", "missing")
    default, default_key = await pages.resolve_page("a")

    assert (named, named_key) == (worker_page, "a-alice")
    assert created_key == "a"
    assert default is created
    assert default_key == "a"
    assert sorted(registry.get("a").pages) == ["a", "a-alice"]


@pytest.mark.asyncio
async def test_cleanup_closes_only_work_item_pages_and_is_idempotent() -> None:
    pages, registry, _, _ = _build()
    default, _ = await pages.resolve_page("a")
    alice = await pages.get_or_create_page("a", "alice")
    bob = await pages.get_or_create_page("a", "bob")

    await pages.cleanup_pages(["alice"])
    await pages.cleanup_pages(["alice"])

    assert alice.closed is True
    assert bob.closed is False
    assert default.closed is False
    assert sorted(registry.get("a").pages) == ["a", "a-bob"]


@pytest.mark.asyncio
async def test_cleanup_keeps_page_when_close_fails() -> None:
    pages, registry, _, _ = _build()
    alice = await pages.get_or_create_page("a", "alice")
    alice.fail_close = True

    await pages.cleanup_pages(["alice"])

    assert "a-alice" in registry.get("a").pages
