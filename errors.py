"""Error taxonomy for the asset pipeline.

Every error carries a kind, a human-readable message and a structured
details dict so callers can decide whether to fix input and retry or to
stop on a hard dependency failure. None of these are retried automatically.
"""

from typing import Any, Dict, Optional


class PipelineError(Exception):
    """Base class for all pipeline errors."""

    kind = "pipeline"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    @property
    def error_code(self) -> str:
        return self.kind.upper()

    def to_dict(self) -> Dict[str, Any]:
        """Serialize into the error dict shape returned by the tool layer."""
        return {
            "error": self.message,
            "error_code": self.error_code,
            **self.details,
        }


class ValidationError(PipelineError):
    """Missing or malformed input. No state was mutated."""

    kind = "validation_error"


class NotFoundError(PipelineError):
    """Referenced asset, template or configuration does not exist."""

    kind = "not_found"


class DependencyError(PipelineError):
    """A precondition on another entity's state is unmet."""

    kind = "dependency_error"


class ConflictError(DependencyError):
    """The record changed underneath the caller (optimistic version check)."""

    kind = "conflict"


class ExternalServiceError(PipelineError):
    """The generation or background-removal service failed or timed out."""

    kind = "external_service_error"


class StorageError(PipelineError):
    """A blob-store read or write failed."""

    kind = "storage_error"
