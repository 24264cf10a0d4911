from __future__ import annotations

from typing import Any, Dict, Optional


class ConstraintViolation(Exception):
    """Raised when a storage-layer uniqueness or FK constraint is violated."""

    def __init__(self, message: str, detail: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or {}


class StoreUnavailable(Exception):
    """Raised when the backing store cannot be reached or fails mid-operation.

    Callers surface this as a 503 and never retry on their own.
    """

    def __init__(self, message: str = "store unavailable", detail: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or {}


__all__ = ["ConstraintViolation", "StoreUnavailable"]
