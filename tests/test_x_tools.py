from __future__ import annotations

import json
from typing import Any

import pytest

from edgeplex.adapters.config.schema import XAccountConfig
from edgeplex.app.fanout import BatchItemResult, BatchReport
from edgeplex.tools import x as x_tools
from edgeplex.tools.base import ToolFailure
from edgeplex.tools.x import XTool


class _FakeFanout:
    def __init__(self, error: Exception | None = None) -> None:
        self._error = error
        self.items: list[str] = []

    async def run_batch(self, items, routine) -> BatchReport:
        if self._error is not None:
            raise self._error
        self.items = list(items)
        results = []
        for index, item in enumerate(items):
            edge_id = f"edge-{index % 2}"
            results.append(BatchItemResult(item=item, edge_id=edge_id, content=await routine(object(), item)))
        return BatchReport(results=results, active_edge_ids=["edge-0", "edge-1"], browser_info=[{"edgeId": "edge-0"}])


class _FakeRegistry:
    def __init__(self) -> None:
        self.close_all_calls = 0

    async def close_all(self) -> None:
        self.close_all_calls += 1


class _FakePages:
    def __init__(self) -> None:
        self.requested: list[tuple[str, str | None]] = []
        self.cleaned: list[list[str]] = []

    async def get_or_create_page(self, edge_id: str, work_item: str | None = None) -> str:
        self.requested.append((edge_id, work_item))
        return "page"

    async def cleanup_pages(self, work_items) -> None:
        self.cleaned.append(list(work_items))


def _handler(tool: XTool, name: str):
    return {binding.name: binding.handler for binding in tool.bindings()}[name]


def _tool(account: XAccountConfig, fanout: _FakeFanout | None = None):
    registry = _FakeRegistry()
    pages = _FakePages()
    return XTool(account=account, fanout=fanout or _FakeFanout(), registry=registry, pages=pages), registry, pages


@pytest.mark.asyncio
async def test_get_kol_tweets_returns_pretty_json(monkeypatch: pytest.MonkeyPatch) -> None:
    seen: list[tuple[str, dict[str, Any]]] = []

    async def _fake_latest(page: Any, username: str, **kwargs: Any) -> str:
        del page
        seen.append((username, kwargs))
        return f"latest from {username} ✨"

    monkeypatch.setattr(x_tools, "latest_post_text", _fake_latest)
    fanout = _FakeFanout()
    tool, _, _ = _tool(XAccountConfig(base_url="https://x.test"), fanout)

    result = await _handler(tool, "get_kol_tweets")({"kolNames": " alice, ,bob "})

    payload = json.loads(result[0].text)
    assert fanout.items == ["alice", "bob"]
    assert payload["tweets"] == [
        {"kol": "alice", "content": "latest from alice ✨"},
        {"kol": "bob", "content": "latest from bob ✨"},
    ]
    assert payload["activeEdgeIds"] == ["edge-0", "edge-1"]
    assert "✨" in result[0].text
    assert result[0].text.startswith("{\n  ")
    assert seen[0][1]["base_url"] == "https://x.test"


@pytest.mark.asyncio
async def test_get_kol_tweets_rejects_blank_names() -> None:
    tool, _, _ = _tool(XAccountConfig())

    with pytest.raises(ValueError):
        await _handler(tool, "get_kol_tweets")({"kolNames": " , "})
    with pytest.raises(ValueError):
        await _handler(tool, "get_kol_tweets")({})


@pytest.mark.asyncio
async def test_get_kol_tweets_batch_failure_is_tool_failure() -> None:
    tool, _, _ = _tool(XAccountConfig(), _FakeFanout(error=RuntimeError("no healthy edges")))

    with pytest.raises(ToolFailure, match="Failed to get kol tweets: no healthy edges"):
        await _handler(tool, "get_kol_tweets")({"kolNames": "alice"})


@pytest.mark.asyncio
async def test_send_tweet_without_edge_id_still_cleans_up() -> None:
    tool, registry, pages = _tool(XAccountConfig(email="me@example.com", password="pw"))

    with pytest.raises(ToolFailure, match="Failed to send tweet: X_EDGEID is not set"):
        await _handler(tool, "send_tweet")({"tweet": "gm"})

    assert pages.requested == []
    assert pages.cleaned == [["send_tweet"]]
    assert registry.close_all_calls == 1


@pytest.mark.asyncio
async def test_send_tweet_uses_dedicated_page(monkeypatch: pytest.MonkeyPatch) -> None:
    sent: list[tuple[Any, str]] = []

    async def _fake_send(page: Any, account: XAccountConfig, text: str, **kwargs: Any) -> None:
        del account, kwargs
        sent.append((page, text))

    monkeypatch.setattr(x_tools, "send_post", _fake_send)
    account = XAccountConfig(edge_id="edge-x", email="me@example.com", password="pw")
    tool, registry, pages = _tool(account)

    result = await _handler(tool, "send_tweet")({"tweet": "gm frens"})

    assert result[0].text == "Sending tweet: gm frens"
    assert pages.requested == [("edge-x", "send_tweet")]
    assert sent == [("page", "gm frens")]
    assert pages.cleaned == [["send_tweet"]]
    assert registry.close_all_calls == 1


@pytest.mark.asyncio
async def test_send_tweet_requires_text() -> None:
    tool, registry, _ = _tool(XAccountConfig(edge_id="edge-x"))

    with pytest.raises(ValueError):
        await _handler(tool, "send_tweet")({"tweet": "   "})
    assert registry.close_all_calls == 0
