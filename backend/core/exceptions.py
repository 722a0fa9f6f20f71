"""Custom exceptions for the workflow automation engine."""


class WorkflowEngineError(Exception):
    """Base exception for the workflow automation engine."""

    def __init__(self, message: str, status_code: int = 500):
        """Initialize exception with message and status code.

        Args:
            message: Exception message
            status_code: HTTP status code
        """
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class NotFoundError(WorkflowEngineError):
    """Resource not found exception."""

    def __init__(self, message: str = "Resource not found"):
        """Initialize NotFoundError with 404 status code."""
        super().__init__(message, 404)


class ValidationError(WorkflowEngineError):
    """Validation error exception."""

    def __init__(self, message: str = "Validation failed"):
        """Initialize ValidationError with 422 status code."""
        super().__init__(message, 422)


class ConflictError(WorkflowEngineError):
    """Resource conflict exception."""

    def __init__(self, message: str = "Resource conflict"):
        """Initialize ConflictError with 409 status code."""
        super().__init__(message, 409)


class UnknownActionTypeError(ValidationError):
    """Workflow references an action type the dispatcher does not handle.

    Always aborts the action batch, even for non-critical actions.
    """

    def __init__(self, action_type):
        self.action_type = action_type
        super().__init__(f"Unknown action type: {action_type}")


class ActionConfigError(ValidationError):
    """Action config is missing a value or names a disallowed entity/column."""


class ExecutionNotFoundError(NotFoundError):
    """Workflow execution does not exist (or belongs to another tenant)."""

    def __init__(self, execution_id: str):
        self.execution_id = execution_id
        super().__init__(f"Execution not found: {execution_id}")


class ExecutionConflictError(ConflictError):
    """Another runner already claimed the execution row."""

    def __init__(self, execution_id: str, message: str = None):
        self.execution_id = execution_id
        super().__init__(message or f"Execution {execution_id} is not in a retryable state")
