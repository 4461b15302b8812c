from __future__ import annotations

from edgeplex.core.errors import ResourceNotFoundError

CONSOLE_LOGS_URI = "console://logs"
SCREENSHOT_URI_PREFIX = "screenshot://"


class ConsoleLogBuffer:
    """Append-only console transcript shared by every page.

    Retention is unbounded for the lifetime of the process.
    """

    def __init__(self) -> None:
        self._lines: list[str] = []

    def append(self, line: str) -> None:
        self._lines.append(line)

    @property
    def lines(self) -> list[str]:
        return list(self._lines)

    def text(self) -> str:
        return "\n".join(self._lines)

    def __len__(self) -> int:
        return len(self._lines)


class ScreenshotStore:
    def __init__(self) -> None:
        self._images: dict[str, bytes] = {}

    def put(self, name: str, image: bytes) -> None:
        self._images[name] = image

    def get(self, name: str) -> bytes:
        try:
            return self._images[name]
        except KeyError:
            raise ResourceNotFoundError(screenshot_uri(name)) from None

    def names(self) -> list[str]:
        return list(self._images)

    def __contains__(self, name: object) -> bool:
        return name in self._images

    def __len__(self) -> int:
        return len(self._images)


def screenshot_uri(name: str) -> str:
    return f"{SCREENSHOT_URI_PREFIX}{name}"


def screenshot_name_from_uri(uri: str) -> str | None:
    if not uri.startswith(SCREENSHOT_URI_PREFIX):
        return None
    return uri[len(SCREENSHOT_URI_PREFIX) :]
