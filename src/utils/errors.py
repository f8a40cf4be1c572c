"""
Custom Exceptions
Estimator error handling

The calculation path itself never raises: malformed numbers are sanitized.
These errors cover structurally invalid requests only.
"""

from typing import Any

from pydantic import ValidationError


class EstimatorError(Exception):
    """Base exception for cost estimator errors."""

    pass


class EstimateRequestError(EstimatorError):
    """Raised when an estimate payload is structurally invalid."""

    def __init__(self, detail: str = "Invalid estimate request", errors: list[dict[str, Any]] | None = None):
        super().__init__(detail)
        self.detail = detail
        self.errors = errors or []

    @classmethod
    def from_validation_error(cls, exc: ValidationError) -> "EstimateRequestError":
        """Wrap a pydantic ValidationError, keeping its error list."""
        errors = exc.errors(include_url=False)
        locations = sorted({".".join(str(part) for part in err["loc"]) for err in errors})
        detail = f"Invalid estimate request: {', '.join(locations)}" if locations else "Invalid estimate request"
        return cls(detail=detail, errors=errors)
