"""Error taxonomy shared by the qualification core, pipelines and API."""
from __future__ import annotations

from typing import Any


class QualificationError(Exception):
    """Base class for errors surfaced to API callers."""

    error_code = "qualification_error"

    def __init__(self, message: str, *, detail: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail


class ValidationError(QualificationError):
    """Malformed or missing input."""

    error_code = "validation_error"

    def __init__(
        self,
        message: str,
        *,
        errors: list[dict[str, Any]] | None = None,
        detail: str | None = None,
    ) -> None:
        super().__init__(message, detail=detail)
        self.errors = errors or []


class NotFoundError(QualificationError):
    """Unknown conversation, round or prospect."""

    error_code = "not_found"


class UpstreamError(QualificationError):
    """An extractor, scorer or storage collaborator failed."""

    error_code = "upstream_error"


class StateConflictError(QualificationError):
    """Operation not allowed in the round's current state."""

    error_code = "state_conflict"

    def __init__(
        self,
        message: str,
        *,
        current_step: int | None = None,
        progress: int | None = None,
        reason: str | None = None,
        detail: str | None = None,
    ) -> None:
        super().__init__(message, detail=detail)
        self.current_step = current_step
        self.progress = progress
        self.reason = reason
