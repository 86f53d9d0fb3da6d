"""
Utilities Package - Logging and Exception Handling
"""
from .logging import get_logger, setup_logging
from .exceptions import (
    ClinicalEngineError,
    ValidationError,
    NotFoundError,
    InvalidStateError,
    ConcurrentUpdateError,
    RuleConfigurationError,
)

__all__ = [
    "get_logger",
    "setup_logging",
    "ClinicalEngineError",
    "ValidationError",
    "NotFoundError",
    "InvalidStateError",
    "ConcurrentUpdateError",
    "RuleConfigurationError",
]
