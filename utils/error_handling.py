"""Error taxonomy for the price-monitoring pipeline."""

from __future__ import annotations

from typing import Any, Dict, Optional


class MonitorError(Exception):
    """Base exception for all monitoring pipeline errors"""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.context = context or {}


class FetchFailure(MonitorError):
    """Network error, timeout or non-2xx response from the target site"""

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, context)
        self.url = url
        self.status_code = status_code


class ExtractionFailure(MonitorError):
    """Input could not be tokenized as an HTML document"""

    pass


class PersistenceFailure(MonitorError):
    """Store unavailable or constraint violation"""

    pass


class NotificationFailure(MonitorError):
    """Notification transport error"""

    pass


class DuplicateError(PersistenceFailure):
    """Unique constraint violated (e.g. list already added by this user)"""

    pass


class NotFoundError(MonitorError):
    """Requested item, list or relation does not exist"""

    pass


class PolicyViolation(MonitorError):
    """Operation refused by a plan/eligibility policy"""

    pass


class ConfigurationError(MonitorError):
    """Configuration-related errors"""

    pass


ERROR_KIND_FETCH = "fetch"
ERROR_KIND_EXTRACTION = "extraction"
ERROR_KIND_PERSISTENCE = "persistence"
ERROR_KIND_NOTIFICATION = "notification"
ERROR_KIND_INTERNAL = "internal"


def classify_error(error: BaseException) -> str:
    """Map an exception onto the error kind reported in unit outcomes."""
    if isinstance(error, FetchFailure):
        return ERROR_KIND_FETCH
    if isinstance(error, ExtractionFailure):
        return ERROR_KIND_EXTRACTION
    if isinstance(error, PersistenceFailure):
        return ERROR_KIND_PERSISTENCE
    if isinstance(error, NotificationFailure):
        return ERROR_KIND_NOTIFICATION
    return ERROR_KIND_INTERNAL


def describe_error(error: BaseException) -> str:
    """One-line description used in batch summaries and logs."""
    message = str(error) or error.__class__.__name__
    return f"{type(error).__name__}: {message}"
