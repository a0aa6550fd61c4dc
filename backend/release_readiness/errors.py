"""
Errors raised by the Release Readiness engine.
"""

from typing import Optional


class ReleaseValidationError(ValueError):
    """Rejected input; raised before anything is persisted."""

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field

    def to_dict(self) -> dict:
        return {"detail": str(self), "field": self.field}
