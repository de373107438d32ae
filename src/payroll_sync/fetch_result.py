"""
Result kinds returned by dependent fetches
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from .exceptions import (
    AuthError,
    DeserializationError,
    HttpStatusError,
    SyncCancelledError,
    SyncError,
    TransportError,
)


class FetchStatus(Enum):
    OK = "ok"
    RECOVERABLE = "recoverable"
    FATAL = "fatal"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class PerParentFailure:
    """Why one parent contributed no records; logged and counted, never raised"""
    parent_key: str
    level: str
    category: str
    message: str
    status_code: Optional[int] = None


@dataclass(frozen=True)
class FetchResult:
    """Outcome of one dependent fetch: data, a recoverable failure, or a fatal error"""
    status: FetchStatus
    data: Any = None
    error: Optional[SyncError] = None

    @property
    def ok(self) -> bool:
        return self.status is FetchStatus.OK

    @classmethod
    def success(cls, data: Any) -> 'FetchResult':
        return cls(FetchStatus.OK, data=data)

    @classmethod
    def from_error(cls, error: SyncError) -> 'FetchResult':
        """
        Classify an error raised by the gateway

        Transport, status and body-shape errors only affect the parent being
        processed. Authentication failures affect every parent and abort the pass.
        """
        if isinstance(error, SyncCancelledError):
            return cls(FetchStatus.CANCELLED, error=error)
        if isinstance(error, AuthError):
            return cls(FetchStatus.FATAL, error=error)
        if isinstance(error, (TransportError, HttpStatusError, DeserializationError)):
            return cls(FetchStatus.RECOVERABLE, error=error)
        return cls(FetchStatus.FATAL, error=error)

    def to_failure(self, parent_key: str, level: str) -> PerParentFailure:
        error = self.error
        return PerParentFailure(
            parent_key=parent_key,
            level=level,
            category=error.category if error is not None else 'no_data',
            message=str(error) if error is not None else 'No usable data returned',
            status_code=error.status_code if error is not None else None,
        )
