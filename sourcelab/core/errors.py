from __future__ import annotations


class SourceLabError(RuntimeError):
    """Base class for errors surfaced by the annotation client."""


class NotFound(SourceLabError):
    """Unknown share token or annotation id."""


class ValidationFailure(SourceLabError):
    """Input rejected before it reached the store or the server (empty text, bad upload)."""


class TransportFailure(SourceLabError):
    """Network or server error on a remote call."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
