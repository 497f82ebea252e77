"""Error taxonomy shared by the registry, the processor and the HTTP layer."""

from __future__ import annotations


class SlackcastError(Exception):
    """Base class for domain errors."""


class ValidationError(SlackcastError):
    """Bad schedule or job input. Surfaced as a 4xx; no run is created."""


class NotFoundError(SlackcastError):
    """Schedule, message or token missing. Fails the run."""


class DependencyError(SlackcastError):
    """An external collaborator (warehouse, renderer, object store, Slack) failed."""

    def __init__(self, dependency: str, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.dependency = dependency
        self.code = code

    def __str__(self) -> str:
        return f"{self.dependency}: {self.args[0]}"


def describe_error(err: object) -> str:
    """Stringify an error for storage, tolerating objects without a message.

    Order: a ``data`` attribute (HTTP client errors carry the response body
    there), then ``str(err)``, then the first argument, then the type name.
    """
    if err is None:
        return "Unknown error"
    data = getattr(err, "data", None)
    if data:
        return str(data)
    try:
        text = str(err)
    except Exception:
        text = ""
    if text:
        return text
    args = getattr(err, "args", None)
    if args:
        return repr(args[0])
    return type(err).__name__
