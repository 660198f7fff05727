"""
Centralized Error Handling

Provides the krunk exception hierarchy, error classification and structured
error logging shared by the loader, the engine and the CLI.
"""

import logging
from typing import Any, Dict, Optional, Sequence, TYPE_CHECKING
from enum import Enum
from dataclasses import dataclass
from datetime import datetime

if TYPE_CHECKING:
    from krunk.engine.executor import ExecutionResult

logger = logging.getLogger(__name__)


# ============================================================================
# Custom Exception Hierarchy
# ============================================================================

class KrunkException(Exception):
    """Base exception for all krunk-specific errors."""

    def __init__(self, message: str, component: str = "unknown",
                 context: Optional[Dict[str, Any]] = None):
        """Initialize krunk exception with metadata.

        Args:
            message: Error message
            component: Component where error occurred
            context: Additional context data
        """
        self.message = message
        self.component = component
        self.context = context or {}
        self.timestamp = datetime.now()
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to structured log format."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "component": self.component,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }


class ConfigurationError(KrunkException):
    """Raised when the scene or the command line is unusable."""

    def __init__(self, message: str, component: str = "config",
                 context: Optional[Dict[str, Any]] = None):
        super().__init__(message, component, context)


class StateTransitionError(KrunkException):
    """Raised when the runner is asked to make an illegal state change."""
    pass


class ErrorKind(str, Enum):
    """Classification of a failed step execution."""
    NON_ZERO_EXIT = "non_zero_exit"
    TIMEOUT = "timeout"
    UNSUPPORTED_VARIANT = "unsupported_variant"
    LAUNCH_FAILED = "launch_failed"


class StepExecutionError(KrunkException):
    """
    Raised when a step (or provisioning command) does not complete cleanly.

    Attributes:
        kind: ErrorKind classification
        argv: Argument vector that was executed (empty if never resolved)
        stderr: Captured stderr text
        result: ExecutionResult when the process ran to completion
    """

    def __init__(
        self,
        kind: ErrorKind,
        argv: Sequence[str] = (),
        stderr: str = "",
        result: Optional["ExecutionResult"] = None,
        message: Optional[str] = None,
        component: str = "executor",
    ):
        self.kind = kind
        self.argv = tuple(argv)
        self.stderr = stderr
        self.result = result
        if message is None:
            message = f"{list(self.argv)}: {kind.value}"
            if result is not None:
                message += f" (exit code {result.exit_code})"
            if stderr:
                message += f", stderr={stderr.strip()}"
        super().__init__(
            message,
            component,
            {"kind": kind.value, "argv": list(self.argv)},
        )

    @property
    def exit_code(self) -> Optional[int]:
        """Exit code of the failed process, if it exited on its own."""
        if self.result is None:
            return None
        return self.result.exit_code


class ProvisioningFailure(KrunkException):
    """Raised when the target cluster could not be brought up or validated."""

    def __init__(self, message: str, cause: Optional[StepExecutionError] = None):
        self.cause = cause
        context = {"kind": cause.kind.value} if cause is not None else {}
        super().__init__(message, "provisioner", context)


# ============================================================================
# Error Classification & Handling
# ============================================================================

class ErrorSeverity(Enum):
    """Severity levels for errors."""
    CRITICAL = "critical"      # Run cannot start or continue
    HIGH = "high"              # Foreground failure, run aborted
    MEDIUM = "medium"          # Recoverable or background failure
    LOW = "low"                # Informational


@dataclass
class ErrorContext:
    """Structured representation of an error occurrence."""
    error_type: str
    component: str
    message: str
    severity: ErrorSeverity
    original_exception: Optional[Exception] = None
    context_data: Dict[str, Any] = None
    timestamp: datetime = None

    def __post_init__(self):
        if self.context_data is None:
            self.context_data = {}
        if self.timestamp is None:
            self.timestamp = datetime.now()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to structured log format."""
        return {
            "error_type": self.error_type,
            "component": self.component,
            "message": self.message,
            "severity": self.severity.value,
            "context": self.context_data,
            "timestamp": self.timestamp.isoformat(),
        }


def classify_error(exc: Exception, component: str,
                   context: Optional[Dict[str, Any]] = None) -> ErrorContext:
    """
    Classify an exception and return structured error context.

    Args:
        exc: The exception to classify
        component: Name of the component where error occurred
        context: Optional context data about the error

    Returns:
        ErrorContext with classification and metadata
    """
    context = dict(context or {})
    if isinstance(exc, KrunkException):
        context = {**exc.context, **context}

    severity_map = {
        ConfigurationError: ErrorSeverity.CRITICAL,
        ProvisioningFailure: ErrorSeverity.CRITICAL,
        StateTransitionError: ErrorSeverity.CRITICAL,
        StepExecutionError: ErrorSeverity.HIGH,
        ValueError: ErrorSeverity.MEDIUM,
        Exception: ErrorSeverity.HIGH,
    }

    severity = ErrorSeverity.HIGH
    for exc_type, sev in severity_map.items():
        if isinstance(exc, exc_type):
            severity = sev
            break

    return ErrorContext(
        error_type=exc.__class__.__name__,
        component=component,
        message=str(exc),
        severity=severity,
        original_exception=exc,
        context_data=context,
    )


def log_error(error_ctx: ErrorContext, logger_obj: Optional[logging.Logger] = None):
    """
    Log an error with structured format.

    Args:
        error_ctx: ErrorContext to log
        logger_obj: Logger instance (defaults to module logger)
    """
    if logger_obj is None:
        logger_obj = logger

    log_data = error_ctx.to_dict()
    # 'message' is reserved on LogRecord
    log_data_extra = {k: v for k, v in log_data.items() if k != 'message'}

    if error_ctx.severity == ErrorSeverity.CRITICAL:
        logger_obj.critical(f"{error_ctx.component}: {error_ctx.message}",
                            extra=log_data_extra)
    elif error_ctx.severity == ErrorSeverity.HIGH:
        logger_obj.error(f"{error_ctx.component}: {error_ctx.message}",
                         extra=log_data_extra)
    elif error_ctx.severity == ErrorSeverity.MEDIUM:
        logger_obj.warning(f"{error_ctx.component}: {error_ctx.message}",
                           extra=log_data_extra)
    else:
        logger_obj.info(f"{error_ctx.component}: {error_ctx.message}",
                        extra=log_data_extra)
