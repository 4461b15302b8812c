from __future__ import annotations

from typing import Sequence, TypeVar

T = TypeVar("T")


class EdgeDirectory:
    """Process-wide list of remote browser identities.

    Readers always get a copy; the list only changes through ``set_identities``.
    """

    def __init__(self, identities: Sequence[str]) -> None:
        self._identities: list[str] = []
        self.set_identities(identities)

    @property
    def identities(self) -> list[str]:
        return list(self._identities)

    def set_identities(self, identities: Sequence[str]) -> None:
        normalized = [identity.strip() for identity in identities if identity and identity.strip()]
        normalized = list(dict.fromkeys(normalized))
        if not normalized:
            raise ValueError("at least one edge identity is required")
        self._identities = normalized

    def __len__(self) -> int:
        return len(self._identities)


def page_key(edge_id: str, work_item: str | None = None) -> str:
    if not work_item:
        return edge_id
    return f"{edge_id}-{work_item}"


def matches_work_item(key: str, edge_id: str, work_item: str) -> bool:
    if key == edge_id:
        return False
    return f"-{work_item}" in key


def assign_round_robin(items: Sequence[T], pool: Sequence[str]) -> list[tuple[T, str]]:
    if not pool:
        raise ValueError("round-robin pool cannot be empty")
    return [(item, pool[index % len(pool)]) for index, item in enumerate(items)]


def split_names(value: str) -> list[str]:
    return [name.strip() for name in value.split(",") if name.strip()]
