from __future__ import annotations

import asyncio
import logging
from typing import Any, Sequence

from edgeplex.app.artifacts import ConsoleLogBuffer
from edgeplex.app.event_bus import EventBus
from edgeplex.app.session_registry import EdgeSession, SessionRegistry
from edgeplex.core.edges import matches_work_item, page_key
from edgeplex.core.events import ConsoleLogEvent


class PageMultiplexer:
    def __init__(
        self,
        registry: SessionRegistry,
        console_logs: ConsoleLogBuffer,
        event_bus: EventBus,
        *,
        probe_timeout_seconds: float = 5.0,
    ) -> None:
        self._registry = registry
        self._console_logs = console_logs
        self._event_bus = event_bus
        self._probe_timeout_seconds = probe_timeout_seconds
        self._page_locks: dict[str, asyncio.Lock] = {}
        self._logger = logging.getLogger("edgeplex.pages")

    async def get_or_create_page(self, edge_id: str, work_item: str | None = None) -> Any:
        key = page_key(edge_id, work_item)
        async with self._page_lock(key):
            session = await self._registry.get_or_create_session(edge_id)
            page = session.pages.get(key)
            if page is not None:
                if await self.is_page_alive(page):
                    self._logger.info("using existing page", extra={"page_key": key})
                    return page
                self._logger.warning("page no longer responsive, creating new page", extra={"page_key": key})
                session.pages.pop(key, None)
            return await self._open_page(session, key)

    async def resolve_page(self, edge_id: str, page_id: str | None = None) -> tuple[Any, str]:
        async with self._page_lock(edge_id):
            session = await self._registry.get_or_create_session(edge_id)
            if page_id and page_id in session.pages:
                return session.pages[page_id], page_id
            if edge_id in session.pages:
                return session.pages[edge_id], edge_id
            page = await self._open_page(session, edge_id)
            self._logger.info("created new default tab", extra={"edge_id": edge_id})
            return page, edge_id

    async def is_page_alive(self, page: Any) -> bool:
        try:
            return bool(await asyncio.wait_for(page.evaluate("() => true"), timeout=self._probe_timeout_seconds))
        except Exception:  # noqa: BLE001
            return False

    async def cleanup_pages(self, work_items: Sequence[str]) -> None:
        self._logger.info("cleaning up work item pages", extra={"work_items": list(work_items)})
        for session in self._registry.sessions():
            to_close = [
                key
                for key in session.pages
                if any(matches_work_item(key, session.edge_id, item) for item in work_items)
            ]
            for key in to_close:
                page = session.pages.get(key)
                if page is None:
                    continue
                try:
                    await page.close()
                    session.pages.pop(key, None)
                    self._logger.info("closed work item page", extra={"page_key": key})
                except Exception as exc:  # noqa: BLE001
                    self._logger.warning("error closing page", extra={"page_key": key, "error": str(exc)})

    async def _open_page(self, session: EdgeSession, key: str) -> Any:
        self._logger.info("creating new tab", extra={"page_key": key})
        page = await session.context.new_page()
        page.on("console", self._console_listener(key))
        session.pages[key] = page
        return page

    def _console_listener(self, key: str):
        async def _on_console(message: Any) -> None:
            level = str(message.type)
            text = str(message.text)
            line = f"[{key}][{level}] {text}"
            self._console_logs.append(line)
            await self._event_bus.publish(ConsoleLogEvent(page_key=key, level=level, text=text, line=line))

        return _on_console

    def _page_lock(self, key: str) -> asyncio.Lock:
        lock = self._page_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._page_locks[key] = lock
        return lock
