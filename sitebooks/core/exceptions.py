"""
Settlement error taxonomy.

Services raise these (they are ``ValueError`` subclasses, matching the way the
rest of the service layer reports bad input); routes and the global handler
translate them into HTTP responses.
"""
from typing import Any, Dict, Optional


class SettlementError(ValueError):
    """Base class for caller-correctable settlement errors."""

    code = "ERROR"
    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        body = {"code": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationFailure(SettlementError):
    """Precondition violated by caller input (over-allocation, wrong owner, ...)."""

    code = "VALIDATION"
    status_code = 400


class NotFoundError(SettlementError):
    """Referenced row does not exist in the caller's tenant."""

    code = "NOT_FOUND"
    status_code = 404
