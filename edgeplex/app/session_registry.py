from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass, field
import logging
from typing import Any, Protocol
from uuid import uuid4

from edgeplex.app.event_bus import EventBus, EventSubscription
from edgeplex.core.events import SessionDisconnectedEvent


class BrowserConnector(Protocol):
    async def connect(self, edge_id: str | None = None) -> Any: ...


@dataclass
class EdgeSession:
    edge_id: str
    browser: Any
    context: Any
    session_id: str = field(default_factory=lambda: uuid4().hex)
    pages: dict[str, Any] = field(default_factory=dict)


class SessionRegistry:
    """Owns the edge -> {browser, context, pages} mapping.

    At most one session is registered per edge. Access for one edge is
    serialized so concurrent callers share a single launch.
    """

    def __init__(self, connector: BrowserConnector, event_bus: EventBus) -> None:
        self._connector = connector
        self._event_bus = event_bus
        self._sessions: dict[str, EdgeSession] = {}
        self._edge_locks: dict[str, asyncio.Lock] = {}
        self._subscription: EventSubscription | None = None
        self._task: asyncio.Task[None] | None = None
        self._logger = logging.getLogger("edgeplex.registry")

    async def start(self) -> None:
        if self._task and not self._task.done():
            return
        self._subscription = self._event_bus.subscribe(SessionDisconnectedEvent)
        self._task = asyncio.create_task(self._run(self._subscription))

    async def stop(self) -> None:
        if self._subscription is not None:
            await self._subscription.close()
            self._subscription = None
        if self._task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

    async def get_or_create_session(self, edge_id: str) -> EdgeSession:
        async with self._edge_lock(edge_id):
            existing = self._sessions.get(edge_id)
            if existing is not None:
                if _is_connected(existing.browser):
                    self._logger.info("using existing browser", extra={"edge_id": edge_id})
                    return existing
                self._logger.warning("browser no longer responsive, relaunching", extra={"edge_id": edge_id})
                await _close_quietly(existing)
                self._sessions.pop(edge_id, None)
            return await self._launch(edge_id)

    def get(self, edge_id: str) -> EdgeSession | None:
        return self._sessions.get(edge_id)

    @property
    def edge_ids(self) -> list[str]:
        return list(self._sessions)

    def sessions(self) -> list[EdgeSession]:
        return list(self._sessions.values())

    def inventory(self) -> list[dict[str, Any]]:
        return [
            {
                "edgeId": edge_id,
                "pageCount": len(session.pages),
                "pageIds": list(session.pages),
                "isConnected": _is_connected(session.browser),
            }
            for edge_id, session in self._sessions.items()
        ]

    async def close_all(self) -> None:
        self._logger.info("closing all browser instances", extra={"count": len(self._sessions)})
        for edge_id, session in list(self._sessions.items()):
            try:
                await session.context.close()
                await session.browser.close()
                self._logger.info("browser instance closed", extra={"edge_id": edge_id})
            except Exception as exc:  # noqa: BLE001
                self._logger.error(
                    "error closing browser instance",
                    extra={"edge_id": edge_id, "error": str(exc)},
                )
        # partially closed sessions are no longer tracked even if the remote end leaked
        self._sessions.clear()

    async def _launch(self, edge_id: str) -> EdgeSession:
        self._logger.info("launching new browser", extra={"edge_id": edge_id})
        browser = await self._connector.connect(edge_id)
        context = await browser.new_context()
        session = EdgeSession(edge_id=edge_id, browser=browser, context=context)

        async def _on_disconnected(*_: Any) -> None:
            self._logger.warning("browser disconnected", extra={"edge_id": edge_id})
            await self._event_bus.publish(
                SessionDisconnectedEvent(edge_id=edge_id, session_id=session.session_id)
            )

        browser.on("disconnected", _on_disconnected)
        self._sessions[edge_id] = session
        self._logger.info("browser launched", extra={"edge_id": edge_id, "session_id": session.session_id})
        return session

    async def _run(self, subscription: EventSubscription) -> None:
        async for event in subscription:
            if isinstance(event, SessionDisconnectedEvent):
                self._forget(event.edge_id, event.session_id)

    def _forget(self, edge_id: str, session_id: str) -> None:
        current = self._sessions.get(edge_id)
        if current is None or current.session_id != session_id:
            return
        self._sessions.pop(edge_id, None)
        self._logger.info("removed disconnected browser", extra={"edge_id": edge_id})

    def _edge_lock(self, edge_id: str) -> asyncio.Lock:
        lock = self._edge_locks.get(edge_id)
        if lock is None:
            lock = asyncio.Lock()
            self._edge_locks[edge_id] = lock
        return lock

    def __contains__(self, edge_id: object) -> bool:
        return edge_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)


def _is_connected(browser: Any) -> bool:
    try:
        return bool(browser.is_connected())
    except Exception:  # noqa: BLE001
        return False


async def _close_quietly(session: EdgeSession) -> None:
    # the remote end may already be gone
    try:
        await session.context.close()
    except Exception:  # noqa: BLE001
        pass
    try:
        await session.browser.close()
    except Exception:  # noqa: BLE001
        pass
