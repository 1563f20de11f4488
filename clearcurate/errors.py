"""Error taxonomy for ClearCurate."""

from typing import Any, Dict, List, Optional


class CurateError(Exception):
    """Base class for all ClearCurate errors."""


class LicenseExpressionError(CurateError, ValueError):
    """A license expression could not be parsed."""

    def __init__(self, message: str, expression: str = "", position: Optional[int] = None):
        super().__init__(message)
        self.expression = expression
        self.position = position


class ValidationError(CurateError):
    """
    One or more curations failed schema or license validation.

    Each issue is a dict with at least ``path`` and ``reason``.
    """

    def __init__(self, message: str, issues: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.issues = issues or []


class PreconditionError(CurateError):
    """A contribution was rejected before anything was written."""

    def __init__(self, message: str, missing: Optional[List[str]] = None):
        super().__init__(message)
        self.missing = missing or []


class UpstreamError(CurateError):
    """The backing repository API failed."""

    def __init__(self, message: str, status_code: Optional[int] = None, operation: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.operation = operation


class PartialComputeError(CurateError):
    """Recomputing one of several affected definitions failed."""

    def __init__(self, coordinates: str, cause: BaseException):
        super().__init__(f"Failed to compute/store {coordinates}: {cause}")
        self.coordinates = coordinates
        self.cause = cause


class InvalidTransitionError(CurateError):
    """A contribution lifecycle event is not allowed from the current state."""
