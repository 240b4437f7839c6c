"""
Catalog Errors
==============
Structured error taxonomy shared by services and routes.

Every error carries an ErrorKind tag set where the failure happens.
The HTTP layer maps errors to status codes by kind (see catalog.main),
never by comparing message text.

Kinds:
- NOT_FOUND: unknown title referenced by a read or a rating submission
- CONFLICT: duplicate title on create
- INVALID_ARGUMENT: malformed date, off-grid rating, malformed cursor
- UNAVAILABLE: durable store unreachable (fatal to the request)
- DEGRADED_DEPENDENCY: cache/ranking/enrichment trouble (never surfaced)
"""
from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    INVALID_ARGUMENT = "invalid_argument"
    UNAVAILABLE = "unavailable"
    DEGRADED_DEPENDENCY = "degraded_dependency"


class CatalogError(Exception):
    """Base class for all catalog errors."""

    kind: ErrorKind = ErrorKind.UNAVAILABLE

    def __init__(self, message: str, kind: Optional[ErrorKind] = None):
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind

    def __repr__(self):
        return f"<{self.__class__.__name__}(kind={self.kind.value}, message={self.message!r})>"


class NotFoundError(CatalogError):
    kind = ErrorKind.NOT_FOUND


class ConflictError(CatalogError):
    kind = ErrorKind.CONFLICT


class InvalidArgumentError(CatalogError):
    kind = ErrorKind.INVALID_ARGUMENT


class InvalidCursorError(InvalidArgumentError):
    """Raised when a pagination cursor cannot be decoded."""


class UnavailableError(CatalogError):
    kind = ErrorKind.UNAVAILABLE


class DegradedDependencyError(CatalogError):
    """Optional dependency failed. Absorbed by the component that raised it."""

    kind = ErrorKind.DEGRADED_DEPENDENCY
