"""
Domain error taxonomy.

Services raise these; the API layer maps them to HTTP responses:

    ValidationError  -> 400  bad input, nothing mutated
    NotFoundError    -> 404  order/branch/batch absent, nothing mutated
    ConflictError    -> 409  illegal state transition or lost compare-and-swap
    PermissionDeniedError -> 403  role may not perform the action
    AtomicityError   -> 500  a multi-row write did not commit as a unit
"""
from typing import Any, Dict, Optional


class CleanOpsError(Exception):
    """Base class for domain errors."""
    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(CleanOpsError):
    status_code = 400


class NotFoundError(CleanOpsError):
    status_code = 404


class ConflictError(CleanOpsError):
    status_code = 409


class AtomicityError(CleanOpsError):
    status_code = 500


class PermissionDeniedError(CleanOpsError):
    status_code = 403
