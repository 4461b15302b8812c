from __future__ import annotations


class EdgeplexError(Exception):
    pass


class ConfigurationMissingError(EdgeplexError):
    def __init__(self, name: str) -> None:
        super().__init__(f"{name} is not set")
        self.name = name


class ResourceNotFoundError(EdgeplexError):
    def __init__(self, uri: str) -> None:
        super().__init__(f"Resource not found: {uri}")
        self.uri = uri


class AttemptCancelledError(EdgeplexError):
    """Raised inside a racing attempt once a sibling attempt already won."""

    def __init__(self, target: str) -> None:
        super().__init__(f"attempt for {target} cancelled after another attempt succeeded")
        self.target = target


def format_error(error: BaseException) -> str:
    message = str(error)
    return message or error.__class__.__name__


def is_timeout_error(error: BaseException) -> bool:
    if isinstance(error, TimeoutError):
        return True
    if "timeout" in error.__class__.__name__.lower():
        return True
    return "timeout" in str(error).lower()
