from __future__ import annotations

from typing import Optional


class HomebotError(Exception):
    """Base class for chatbot pipeline errors."""


class LookupFailure(HomebotError):
    """A training-data sub-search could not be completed."""

    def __init__(self, section: str, message: str) -> None:
        super().__init__(f"{section}: {message}")
        self.section = section


class GenerationError(HomebotError):
    """The generative model was unreachable or returned something unusable."""


class TransportError(HomebotError):
    """The client could not get a usable reply from the server."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class StorageError(HomebotError):
    """Client-side cache read or write failed."""


class TurnInProgressError(HomebotError):
    """A second send was issued while a turn is still in flight."""
