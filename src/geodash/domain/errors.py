"""
Typed query failures.

Decoders never raise; they return `LoadError` values. Query orchestration instead raises
one of these exceptions, each carrying an `ErrorKind` and a user-facing message, so the
CLI and API can map failures without string matching.
"""

from __future__ import annotations

from geodash.domain.models import ErrorKind


class QueryError(Exception):
    """Base class for terminal query failures (never retried)."""

    kind: ErrorKind = ErrorKind.TRANSPORT_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class PlaceNotFound(QueryError):
    kind = ErrorKind.PLACE_NOT_FOUND


class NoRouteFound(QueryError):
    kind = ErrorKind.NO_ROUTE_FOUND


class NoBasePoint(QueryError):
    kind = ErrorKind.NO_BASE_POINT


class TransportError(QueryError):
    kind = ErrorKind.TRANSPORT_ERROR


class InvalidQuery(ValueError):
    """Blank or malformed user input, rejected before any network call."""
