from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import logging
from typing import Any, Awaitable, Callable, Sequence

from edgeplex.app.page_multiplexer import PageMultiplexer
from edgeplex.app.session_registry import SessionRegistry
from edgeplex.core.edges import EdgeDirectory, assign_round_robin
from edgeplex.core.errors import format_error

WorkRoutine = Callable[[Any, str], Awaitable[Any]]


@dataclass(frozen=True)
class BatchItemResult:
    item: str
    edge_id: str
    content: Any
    ok: bool = True


@dataclass
class BatchReport:
    results: list[BatchItemResult]
    active_edge_ids: list[str]
    browser_info: list[dict[str, Any]] = field(default_factory=list)

    @property
    def failed_items(self) -> list[str]:
        return [result.item for result in self.results if not result.ok]

    def to_payload(self) -> dict[str, Any]:
        return {
            "tweets": [{"kol": result.item, "content": result.content} for result in self.results],
            "activeEdgeIds": list(self.active_edge_ids),
            "browserInfo": list(self.browser_info),
        }


class FanoutScheduler:
    def __init__(self, registry: SessionRegistry, pages: PageMultiplexer, directory: EdgeDirectory) -> None:
        self._registry = registry
        self._pages = pages
        self._directory = directory
        self._logger = logging.getLogger("edgeplex.fanout")

    async def run_batch(self, items: Sequence[str], routine: WorkRoutine) -> BatchReport:
        work_items = list(items)
        configured = self._directory.identities
        self._logger.info(
            "processing batch",
            extra={"items": len(work_items), "edge_ids": len(configured)},
        )
        try:
            pool = await self.healthy_pool(configured)
            assignments = assign_round_robin(work_items, pool)
            self._logger.info("waiting for concurrent operations", extra={"count": len(assignments)})
            results = await asyncio.gather(
                *(self._run_item(item, edge_id, routine) for item, edge_id in assignments)
            )
            self._logger.info("active browsers", extra={"browsers": self._registry.inventory()})
        finally:
            await self._pages.cleanup_pages(work_items)
            await self._registry.close_all()
        browser_info = self._registry.inventory()
        self._logger.info("browsers after cleanup", extra={"browsers": browser_info})
        return BatchReport(results=list(results), active_edge_ids=pool, browser_info=browser_info)

    async def healthy_pool(self, configured: Sequence[str]) -> list[str]:
        healthy: list[str] = []
        for edge_id in configured:
            try:
                await self._registry.get_or_create_session(edge_id)
            except Exception as exc:  # noqa: BLE001
                self._logger.warning(
                    "failed to create browser, removing from pool",
                    extra={"edge_id": edge_id, "error": format_error(exc)},
                )
                continue
            self._logger.info("browser ready", extra={"edge_id": edge_id})
            healthy.append(edge_id)
        if not healthy:
            self._logger.warning("no healthy browsers, falling back to configured list")
            return list(configured)
        return healthy

    async def _run_item(self, item: str, edge_id: str, routine: WorkRoutine) -> BatchItemResult:
        try:
            self._logger.info("processing item", extra={"item": item, "edge_id": edge_id})
            page = await self._pages.get_or_create_page(edge_id, item)
            content = await routine(page, item)
            self._logger.info("completed item", extra={"item": item, "edge_id": edge_id})
            return BatchItemResult(item=item, edge_id=edge_id, content=content)
        except Exception as exc:  # noqa: BLE001
            message = format_error(exc)
            self._logger.error("error processing item", extra={"item": item, "edge_id": edge_id, "error": message})
            return BatchItemResult(item=item, edge_id=edge_id, content=f"Error: {message}", ok=False)
