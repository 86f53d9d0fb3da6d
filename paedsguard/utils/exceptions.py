"""
Custom Exception Hierarchy

Typed failures surfaced to the request layer. Every error carries a
machine-readable code and a details dict so callers can map it onto their
own response format without parsing messages.
"""
from typing import Optional, Dict, Any


class ClinicalEngineError(Exception):
    """Base exception for all decision-support engine errors."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details
        }


class ValidationError(ClinicalEngineError):
    """Malformed input: non-positive weight, negative age, bad step number."""

    def __init__(
        self,
        message: str,
        field: str = "unknown",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code="VALIDATION_ERROR",
            details={"field": field, **(details or {})}
        )
        self.field = field


class NotFoundError(ClinicalEngineError):
    """An id references no known rule, protocol, step or record."""

    def __init__(
        self,
        message: str,
        kind: str = "unknown",
        identifier: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code="NOT_FOUND",
            details={"kind": kind, "id": identifier, **(details or {})}
        )
        self.kind = kind
        self.identifier = identifier


class InvalidStateError(ClinicalEngineError):
    """Operation not permitted in the current state (e.g. terminal record)."""

    def __init__(
        self,
        message: str,
        state: str = "unknown",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code="INVALID_STATE",
            details={"state": state, **(details or {})}
        )
        self.state = state


class ConcurrentUpdateError(InvalidStateError):
    """The store rejected a compare-and-swap because the record moved on."""

    def __init__(
        self,
        message: str,
        record_id: str,
        expected_version: int,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            state="stale",
            details={
                "record_id": record_id,
                "expected_version": expected_version,
                **(details or {})
            }
        )
        self.code = "CONCURRENT_UPDATE"
        self.record_id = record_id
        self.expected_version = expected_version


class RuleConfigurationError(ClinicalEngineError):
    """Configuration tables are malformed or miss a required entry."""

    def __init__(
        self,
        message: str,
        table: str = "unknown",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code="RULE_CONFIG_ERROR",
            details={"table": table, **(details or {})}
        )
        self.table = table
