"""
Error taxonomy for the connector operator.

ValidationError is raised at admission time, UpstreamError for anything
that goes wrong talking to the Kafka Connect REST API, and
FinalizerConsistencyError when the deletion guard would be released
without a confirmed external delete.
"""

from dataclasses import dataclass
from typing import Any, List, Optional


@dataclass
class FieldError:
    """A single field-level validation failure."""

    path: str
    message: str
    value: Any = None

    def __str__(self) -> str:
        return f"{self.path}: {self.message}"


class ValidationError(Exception):
    """Raised when a desired-state record is malformed or rejected upstream."""

    def __init__(self, errors: List[FieldError]):
        self.errors = errors
        super().__init__("; ".join(str(e) for e in errors))

    @property
    def message(self) -> str:
        return str(self)


class UpstreamError(Exception):
    """
    Raised on an unexpected HTTP status or transport failure.

    ``status`` is None when no response was received (connection refused,
    timeout). Always retryable.
    """

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        body: str = "",
        method: str = "",
        url: str = "",
    ):
        self.status = status
        self.body = body
        self.method = method
        self.url = url
        super().__init__(message)

    @property
    def is_not_found(self) -> bool:
        return self.status == 404


class FinalizerConsistencyError(RuntimeError):
    """Raised when releasing a finalizer without confirmed external deletion."""
