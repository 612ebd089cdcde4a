"""
Shared building blocks for the lease engine services.

This package holds:
    - The server clock and deadline checks
    - The match expiry policy
    - The typed error taxonomy returned to callers
    - Immutable snapshot value objects
"""

from .clock import SystemClock, check_deadline
from .expiry import ExpiryPolicy, DEFAULT_EXPIRY_WINDOW
from .results import EngineResult
from .exceptions import (
    LeaseEngineError,
    NotFoundError,
    ForbiddenError,
    InvalidTransitionError,
    ExpiredError,
    AlreadySignedError,
    AlreadyRatedError,
    ConflictError,
    PreconditionError,
    OperationTimeoutError,
)

__all__ = [
    "SystemClock",
    "check_deadline",
    "ExpiryPolicy",
    "DEFAULT_EXPIRY_WINDOW",
    "EngineResult",
    "LeaseEngineError",
    "NotFoundError",
    "ForbiddenError",
    "InvalidTransitionError",
    "ExpiredError",
    "AlreadySignedError",
    "AlreadyRatedError",
    "ConflictError",
    "PreconditionError",
    "OperationTimeoutError",
]
