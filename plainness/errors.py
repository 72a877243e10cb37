"""Error taxonomy for the annotation and versioning core.

None of these are fatal to the process. Callers turn them into a message
and leave the document and suggestion set untouched.
"""

from __future__ import annotations

from typing import Any


class PlainnessError(Exception):
    """Base class for all plainness errors."""


class ServiceError(PlainnessError):
    """The text-completion service failed or returned a non-success status.

    ``status`` is the upstream HTTP status (or agent exit code), ``None``
    when the request never got a response.
    """

    def __init__(
        self,
        message: str,
        status: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.details = details or {}


class MalformedResponse(PlainnessError):
    """Model output did not contain a parseable JSON array."""

    def __init__(self, message: str, preview: str = "") -> None:
        super().__init__(message)
        self.preview = preview


class AnchorMiss(PlainnessError):
    """A proposed edit's original text could not be located in the document."""

    def __init__(self, original: str, reason: str = "not found") -> None:
        super().__init__(f"Cannot anchor {original[:50]!r}: {reason}")
        self.original = original
        self.reason = reason


class PersistenceFailure(PlainnessError):
    """A storage read or write failed."""


class SessionBusy(PlainnessError):
    """An annotation request is already in flight for this session."""


class EmptyDocument(PlainnessError):
    """The operation needs document content and there is none."""
