# mapfulfillment/core/exceptions.py
"""
Error taxonomy for the map fulfillment pipeline.

Every error carries a ``warnings`` list. Non-fatal failures that happened
while handling the error (lifecycle transition, audit record) are appended to
it so callers can surface them without losing the original failure.
"""

from typing import List, Optional


class MapFulfillmentError(Exception):
    """Base class for all pipeline errors."""

    def __init__(self, message: str, *, warnings: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.warnings: List[str] = list(warnings or [])


class InvalidInput(MapFulfillmentError):
    """An argument is malformed (bad polyline, non-numeric activity id...)."""


class EmptyRoute(MapFulfillmentError):
    """A geometry operation received no coordinates."""


class ConfigurationInvalid(MapFulfillmentError):
    """A strategy produced data that failed validation and could not be repaired."""

    def __init__(
        self,
        message: str,
        *,
        errors: Optional[List[str]] = None,
        warnings: Optional[List[str]] = None,
    ):
        super().__init__(message, warnings=warnings)
        self.errors: List[str] = list(errors or [])


class ConfigurationUnresolved(MapFulfillmentError):
    """All resolution strategies were exhausted without a valid configuration."""

    def __init__(
        self,
        message: str,
        *,
        attempts: Optional[List[str]] = None,
        warnings: Optional[List[str]] = None,
    ):
        super().__init__(message, warnings=warnings)
        self.attempts: List[str] = list(attempts or [])


class ExternalFetchFailed(MapFulfillmentError):
    """A configuration store, session store or activity API call failed."""

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        warnings: Optional[List[str]] = None,
    ):
        super().__init__(message, warnings=warnings)
        self.status = status


class RenderFailed(MapFulfillmentError):
    """The renderer returned no output or the output file does not exist."""


class GenerationTimeout(MapFulfillmentError):
    """The overall resolve + render deadline was exceeded."""

    def __init__(
        self,
        message: str,
        *,
        timeout_seconds: Optional[float] = None,
        warnings: Optional[List[str]] = None,
    ):
        super().__init__(message, warnings=warnings)
        self.timeout_seconds = timeout_seconds
