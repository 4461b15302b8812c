from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable
from urllib.parse import quote

UrlBuilder = Callable[[str | None], str]

# characters encodeURIComponent leaves untouched besides alphanumerics and "-_."
_URI_COMPONENT_SAFE = "!~*'()"


def _load_playwright() -> Callable[[], Any]:
    try:
        from playwright.async_api import async_playwright
    except ModuleNotFoundError as exc:
        raise RuntimeError("Playwright dependency is not installed. Install with: pip install playwright") from exc

    return async_playwright


def edge_launch_options(api_key: str, edge_id: str | None) -> dict[str, Any]:
    args = [f"--datascaler-apikey={api_key}"]
    if edge_id and edge_id != "undefined":
        args.append(f"--datascaler-select-node={edge_id}")
    return {"args": args}


def cluster_launch_options(api_key: str) -> dict[str, Any]:
    return {"_apikey": api_key}


def build_connect_url(server_url: str, options: dict[str, Any]) -> str:
    encoded = quote(json.dumps(options, separators=(",", ":")), safe=_URI_COMPONENT_SAFE)
    return f"{server_url}?launch-options={encoded}"


def edge_url_builder(server_url: str, api_key: str) -> UrlBuilder:
    def _build(edge_id: str | None) -> str:
        return build_connect_url(server_url, edge_launch_options(api_key, edge_id))

    return _build


def cluster_url_builder(server_url: str, api_key: str) -> UrlBuilder:
    def _build(_: str | None) -> str:
        return build_connect_url(server_url, cluster_launch_options(api_key))

    return _build


class RemoteBrowserFactory:
    def __init__(self, url_builder: UrlBuilder, *, connect_timeout_seconds: float = 60.0) -> None:
        self._url_builder = url_builder
        self._connect_timeout_ms = connect_timeout_seconds * 1000
        self._playwright: Any = None
        self._start_lock = asyncio.Lock()
        self._logger = logging.getLogger("edgeplex.remote")

    async def connect(self, edge_id: str | None = None) -> Any:
        playwright = await self._ensure_started()
        url = self._url_builder(edge_id)
        self._logger.debug("connecting remote browser", extra={"edge_id": edge_id or "any"})
        browser = await playwright.chromium.connect(url, timeout=self._connect_timeout_ms)
        self._logger.info("remote browser connected", extra={"edge_id": edge_id or "any"})
        return browser

    async def stop(self) -> None:
        async with self._start_lock:
            playwright = self._playwright
            self._playwright = None
        if playwright is None:
            return
        try:
            await playwright.stop()
        except Exception as exc:  # noqa: BLE001
            self._logger.warning("playwright stop failed", extra={"error": str(exc)})

    async def _ensure_started(self) -> Any:
        async with self._start_lock:
            if self._playwright is None:
                manager = _load_playwright()()
                self._playwright = await manager.start()
            return self._playwright
