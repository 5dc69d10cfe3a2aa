"""
Shared error handling for the Observer Rules service.
"""

from typing import Dict, Any, List, Optional
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class ObserverRulesException(Exception):
    """Base exception for Observer Rules components."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self, request_id: Optional[str] = None) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=request_id,
            code=self.code,
            message=self.message,
            details=self.details
        )


class ValidationError(ObserverRulesException):
    """Validation-related errors."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class InvalidRuleConfiguration(ObserverRulesException):
    """Raised when an observer's rule configuration fails validation.

    Carries every validation message collected in the failing pass, not
    just the first one.
    """

    def __init__(
        self,
        validation_errors: Optional[List[str]] = None,
        message: str = "Rule configuration validation failed",
    ):
        self.validation_errors = list(validation_errors or [])
        super().__init__(
            "INVALID_RULE_CONFIGURATION",
            message,
            {"validation_errors": self.validation_errors},
        )


class RuleRegistrationError(ObserverRulesException):
    """A rule implementation cannot be registered (bad or duplicate name)."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("RULE_REGISTRATION_ERROR", message, details)


class ServiceError(ObserverRulesException):
    """Service-related errors."""

    def __init__(self, message: str = "Service error", details: Optional[Dict[str, Any]] = None):
        super().__init__("SERVICE_ERROR", message, details)


class PersistenceError(ObserverRulesException):
    """Storage collaborator errors."""

    def __init__(self, message: str = "Persistence error", details: Optional[Dict[str, Any]] = None):
        super().__init__("PERSISTENCE_ERROR", message, details)


class StatePersistenceError(ObserverRulesException):
    """Writing updated rule state back onto an observer failed."""

    def __init__(self, message: str = "Failed to persist rule state", details: Optional[Dict[str, Any]] = None):
        super().__init__("STATE_PERSISTENCE_ERROR", message, details)


class ObserverNotFoundError(ObserverRulesException):
    """Observer lookup failed."""

    def __init__(self, message: str = "Observer not found", details: Optional[Dict[str, Any]] = None):
        super().__init__("OBSERVER_NOT_FOUND", message, details)


class QueryBuildError(ObserverRulesException):
    """A composed geo-object query cannot be rendered."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("QUERY_BUILD_ERROR", message, details)
