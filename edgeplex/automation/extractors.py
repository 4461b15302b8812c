from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Awaitable, Callable, Protocol, Sequence

ClickAction = Callable[[], Awaitable[Any]]

_logger = logging.getLogger("edgeplex.extractors")


class Extractor(Protocol):
    async def extract(self, scope: Any) -> str | None: ...


@dataclass(frozen=True)
class SelectorText:
    """Trimmed text content of the first element matching ``selector``."""

    selector: str
    max_chars: int | None = None

    async def extract(self, scope: Any) -> str | None:
        element = await scope.query_selector(self.selector)
        if element is None:
            return None
        return _clip(await element.text_content(), self.max_chars)


@dataclass(frozen=True)
class AttributeText:
    selector: str
    attribute: str
    max_chars: int | None = None

    async def extract(self, scope: Any) -> str | None:
        element = await scope.query_selector(self.selector)
        if element is None:
            return None
        return _clip(await element.get_attribute(self.attribute), self.max_chars)


@dataclass(frozen=True)
class FirstNonEmpty:
    """Tries candidates in order; a failing candidate counts as empty."""

    candidates: tuple[Extractor, ...]
    max_chars: int | None = None

    async def extract(self, scope: Any) -> str | None:
        for candidate in self.candidates:
            try:
                value = await candidate.extract(scope)
            except Exception as exc:  # noqa: BLE001
                _logger.debug("extractor candidate failed", extra={"candidate": repr(candidate), "error": str(exc)})
                continue
            if value:
                return _clip(value, self.max_chars)
        return None


def first_non_empty(*candidates: Extractor, max_chars: int | None = None) -> FirstNonEmpty:
    return FirstNonEmpty(candidates=tuple(candidates), max_chars=max_chars)


async def extract_or_empty(extractor: Extractor, scope: Any) -> str:
    try:
        return await extractor.extract(scope) or ""
    except Exception as exc:  # noqa: BLE001
        _logger.debug("extractor failed", extra={"extractor": repr(extractor), "error": str(exc)})
        return ""


async def first_successful(strategies: Sequence[tuple[str, ClickAction]]) -> str | None:
    """Runs actions in order until one completes; returns its name or None."""
    for name, action in strategies:
        try:
            await action()
        except Exception as exc:  # noqa: BLE001
            _logger.debug("strategy failed", extra={"strategy": name, "error": str(exc)})
            continue
        return name
    return None


def _clip(value: str | None, max_chars: int | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    if not stripped:
        return None
    if max_chars is not None:
        return stripped[:max_chars]
    return stripped
