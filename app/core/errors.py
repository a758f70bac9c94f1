"""
Typed failures raised by the triage core.

The HTTP layer maps each family to a status code (see app.main):
- ValidationError      -> 400, never retried
- NotFound             -> 404, nothing was written
- InvariantViolation   -> 409, rejected before any write
- ProviderUnavailable  -> 503, caller applies its fallback
"""

from typing import Optional


class TriageError(Exception):
    """Base class for every failure the triage core raises on purpose."""

    status_code = 500

    def __init__(self, message: str, detail: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or {}

    def to_dict(self) -> dict:
        result = {
            "success": False,
            "error": self.message,
            "error_type": type(self).__name__,
        }
        if self.detail:
            result["detail"] = self.detail
        return result


class ValidationError(TriageError):
    """Malformed coordinate, vector dimension mismatch, bad merge target."""

    status_code = 400


class NotFound(TriageError):
    """A report or administrative unit id does not exist."""

    status_code = 404


class InvariantViolation(TriageError):
    """Self-merge, merge cycle or re-merge of an existing duplicate."""

    status_code = 409


class ProviderUnavailable(TriageError):
    """An external provider timed out or answered with a failure."""

    status_code = 503
    provider = "unknown"


class EmbeddingUnavailable(ProviderUnavailable):
    provider = "embedding"


class RouteUnavailableError(ProviderUnavailable):
    provider = "routing"


class ClassifierUnavailable(ProviderUnavailable):
    provider = "classifier"
