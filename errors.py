"""
Error taxonomy for the detection dashboard.

Every error here is recoverable by a user action (sign in, refresh, retry);
``app.py`` maps them onto HTTP responses.
"""
from typing import Any, Dict, Optional


class DashboardError(Exception):
    """Base exception for dashboard errors"""
    def __init__(self, message: str, code: str = "DASHBOARD_ERROR",
                 details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


class NotAuthenticatedError(DashboardError):
    """No signed-in user; never retried"""
    def __init__(self, message: str = "Please sign in to view your AI history."):
        super().__init__(message, "NOT_AUTHENTICATED")


class SubscriptionFailedError(DashboardError):
    """Live query still failing after every retry"""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "SUBSCRIPTION_FAILED", details)


class DeleteFailedError(DashboardError):
    """Single or bulk delete rejected by the store"""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "DELETE_FAILED", details)


class ConfirmationMismatchError(DashboardError):
    """Bulk delete confirmation text did not match"""
    def __init__(self, message: str = "Please enter the correct confirmation text."):
        super().__init__(message, "CONFIRMATION_MISMATCH")


class InvalidPaginationError(DashboardError):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "INVALID_PAGINATION", details)


class UnknownChartKindError(DashboardError):
    def __init__(self, kind: str):
        super().__init__(f"Unknown chart type: {kind}", "UNKNOWN_CHART_KIND", {"kind": kind})


class ExportError(DashboardError):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "EXPORT_ERROR", details)
