"""Shared krunk infrastructure: exceptions and error classification."""

from .error_handling import (
    KrunkException,
    ConfigurationError,
    ProvisioningFailure,
    StepExecutionError,
    StateTransitionError,
    ErrorKind,
    ErrorSeverity,
    ErrorContext,
    classify_error,
    log_error,
)

__all__ = [
    "KrunkException",
    "ConfigurationError",
    "ProvisioningFailure",
    "StepExecutionError",
    "StateTransitionError",
    "ErrorKind",
    "ErrorSeverity",
    "ErrorContext",
    "classify_error",
    "log_error",
]
