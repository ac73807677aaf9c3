"""Custom exceptions for the workflow orchestrator with detailed error information."""

from typing import Optional, Dict, Any, List
from enum import Enum

from ..models.core import utc_now


class ErrorSeverity(Enum):
    """Error severity levels for categorizing exceptions."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Categories of errors for better classification."""
    VALIDATION = "validation"
    EXECUTION = "execution"
    STATE = "state"
    CONTROL = "control"
    CONFIGURATION = "configuration"
    EVENTS = "events"


class WorkflowEngineError(Exception):
    """Base exception for all orchestrator errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.EXECUTION,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = False,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.severity = severity
        self.category = category
        self.details = details or {}
        self.recoverable = recoverable
        self.context = context or {}
        self.timestamp = utc_now()

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "severity": self.severity.value,
            "category": self.category.value,
            "details": self.details,
            "recoverable": self.recoverable,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "exception_type": self.__class__.__name__
        }

    def add_context(self, **kwargs):
        """Add additional context to the exception."""
        self.context.update(kwargs)
        return self

    def add_details(self, **kwargs):
        """Add additional details to the exception."""
        self.details.update(kwargs)
        return self


class GraphValidationError(WorkflowEngineError):
    """Raised when a workflow graph cannot be executed as given."""

    def __init__(
        self,
        message: str,
        validation_errors: Optional[List[str]] = None,
        model_id: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.MEDIUM,
            category=ErrorCategory.VALIDATION,
            **kwargs
        )
        self.validation_errors = validation_errors or []
        if model_id:
            self.add_context(model_id=model_id)
        if validation_errors:
            self.add_details(validation_errors=validation_errors)


class CircularDependencyError(GraphValidationError):
    """Raised when container dependencies form a cycle."""

    def __init__(self, cycle: List[str], **kwargs):
        message = f"Circular dependency detected: {' → '.join(cycle)}"
        super().__init__(message, **kwargs)
        self.cycle = list(cycle)
        self.add_details(cycle=self.cycle)


class StateManagementError(WorkflowEngineError):
    """Raised when execution state operations fail."""

    def __init__(
        self,
        message: str,
        execution_id: Optional[str] = None,
        operation: Optional[str] = None,
        **kwargs
    ):
        kwargs.setdefault("severity", ErrorSeverity.HIGH)
        kwargs.setdefault("category", ErrorCategory.STATE)
        super().__init__(message, **kwargs)
        self.execution_id = execution_id
        if execution_id:
            self.add_context(execution_id=execution_id)
        if operation:
            self.add_context(operation=operation)


class ExecutionNotFoundError(StateManagementError):
    """Raised when no execution is registered under the given id."""

    def __init__(self, execution_id: str, **kwargs):
        super().__init__(
            "Execution not found",
            execution_id=execution_id,
            severity=ErrorSeverity.LOW,
            category=ErrorCategory.CONTROL,
            **kwargs
        )


class DuplicateExecutionError(StateManagementError):
    """Raised when an execution id is already in use."""

    def __init__(self, execution_id: str, **kwargs):
        super().__init__(
            f"Execution {execution_id} already exists",
            execution_id=execution_id,
            **kwargs
        )


class IllegalTransitionError(StateManagementError):
    """Raised when a status change is not allowed by the execution state machine."""

    def __init__(
        self,
        message: str,
        execution_id: Optional[str] = None,
        from_status: Optional[str] = None,
        to_status: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            message,
            execution_id=execution_id,
            severity=ErrorSeverity.MEDIUM,
            category=ErrorCategory.CONTROL,
            **kwargs
        )
        self.from_status = from_status
        self.to_status = to_status
        self.add_details(from_status=from_status, to_status=to_status)


class ExecutorRegistryError(WorkflowEngineError):
    """Raised when action executor registry operations fail."""

    def __init__(
        self,
        message: str,
        kind: Optional[str] = None,
        operation: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.MEDIUM,
            category=ErrorCategory.CONFIGURATION,
            **kwargs
        )
        if kind:
            self.add_context(kind=kind)
        if operation:
            self.add_context(operation=operation)


class ActionExecutionError(WorkflowEngineError):
    """Raised when an action fails to execute."""

    def __init__(
        self,
        message: str,
        action_id: Optional[str] = None,
        execution_id: Optional[str] = None,
        **kwargs
    ):
        kwargs.setdefault("recoverable", True)
        super().__init__(
            message,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.EXECUTION,
            **kwargs
        )
        if action_id:
            self.add_context(action_id=action_id)
        if execution_id:
            self.add_context(execution_id=execution_id)


class TransientError(WorkflowEngineError):
    """Raised for transient errors that should be retried."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            severity=ErrorSeverity.MEDIUM,
            recoverable=True,
            **kwargs
        )


class ConfigurationError(WorkflowEngineError):
    """Raised when configuration is invalid or missing."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.CONFIGURATION,
            **kwargs
        )
        if config_key:
            self.add_context(config_key=config_key)
