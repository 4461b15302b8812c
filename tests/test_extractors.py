from __future__ import annotations

from typing import Any

import pytest

from edgeplex.automation.extractors import (
    AttributeText,
    SelectorText,
    extract_or_empty,
    first_non_empty,
    first_successful,
)


class _FakeElement:
    def __init__(self, text: str | None = None, attributes: dict[str, str] | None = None) -> None:
        self._text = text
        self._attributes = attributes or {}

    async def text_content(self) -> str | None:
        return self._text

    async def get_attribute(self, name: str) -> str | None:
        return self._attributes.get(name)


class _FakeScope:
    def __init__(self, elements: dict[str, Any]) -> None:
        self._elements = elements

    async def query_selector(self, selector: str) -> Any:
        element = self._elements.get(selector)
        if isinstance(element, Exception):
            raise element
        return element


@pytest.mark.asyncio
async def test_selector_text_trims_and_clips() -> None:
    scope = _FakeScope({"h2": _FakeElement("  Alice Example  ")})

    assert await SelectorText("h2", max_chars=5).extract(scope) == "Alice"
    assert await SelectorText("missing").extract(scope) is None


@pytest.mark.asyncio
async def test_first_non_empty_skips_blank_and_failing_candidates() -> None:
    scope = _FakeScope(
        {
            "broken": RuntimeError("detached"),
            "blank": _FakeElement("   "),
            "time": _FakeElement(attributes={"datetime": "2024-05-01T10:00:00Z"}),
        }
    )
    extractor = first_non_empty(
        SelectorText("broken"),
        SelectorText("blank"),
        AttributeText("time", "datetime"),
        max_chars=10,
    )

    assert await extractor.extract(scope) == "2024-05-01"


@pytest.mark.asyncio
async def test_extract_or_empty_never_raises() -> None:
    scope = _FakeScope({"broken": RuntimeError("detached")})

    assert await extract_or_empty(SelectorText("broken"), scope) == ""


@pytest.mark.asyncio
async def test_first_successful_returns_first_working_strategy() -> None:
    calls: list[str] = []

    async def _fail() -> None:
        calls.append("fail")
        raise TimeoutError("not clickable")

    async def _ok() -> None:
        calls.append("ok")

    async def _never() -> None:
        calls.append("never")

    used = await first_successful([("first", _fail), ("second", _ok), ("third", _never)])

    assert used == "second"
    assert calls == ["fail", "ok"]


@pytest.mark.asyncio
async def test_first_successful_returns_none_when_everything_fails() -> None:
    async def _fail() -> None:
        raise RuntimeError("nope")

    assert await first_successful([("only", _fail)]) is None
