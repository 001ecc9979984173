"""Custom exceptions for the DB processing orchestrator."""


class OrchestratorException(Exception):
    """Base exception for the orchestrator."""

    def __init__(self, message: str, status_code: int = 500):
        """Initialize exception with message and status code.

        Args:
            message: Exception message
            status_code: HTTP status code
        """
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class NotFoundError(OrchestratorException):
    """Resource not found exception."""

    def __init__(self, message: str = "Resource not found"):
        """Initialize NotFoundError with 404 status code."""
        super().__init__(message, 404)


# ─── Task registry ────────────────────────────────────────────

class TaskRegistryError(OrchestratorException):
    """Base class for task registry failures."""


class UnknownTaskError(TaskRegistryError):
    """A task name or handler reference is not registered."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown task: {name}", 404)


class DuplicateTaskNameError(TaskRegistryError):
    """A task with the same name is already registered."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Task already registered: {name}", 409)


# ─── Workflow compilation ─────────────────────────────────────

class WorkflowCompileError(OrchestratorException):
    """Base class for errors that keep a workflow from becoming executable."""

    def __init__(self, message: str):
        super().__init__(message, 422)


class UnresolvedTaskError(WorkflowCompileError):
    """A stage references a task name missing from the registry."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unresolved task reference: {name}")


class DuplicateNodeReferenceError(WorkflowCompileError):
    """The same task name appears more than once in a workflow."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Task referenced more than once: {name}")


class InvalidStageError(WorkflowCompileError):
    """A stage descriptor is malformed."""


# ─── Runtime ──────────────────────────────────────────────────

class HandlerError(OrchestratorException):
    """Raised by task handlers to report a failure with a readable reason."""

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(detail, 502)


class RunSchedulingFailure(OrchestratorException):
    """A run could not be scheduled."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Run could not be scheduled: {reason}", 503)


class InvalidStatusTransition(OrchestratorException):
    """A run status change would move backwards or skip a state."""

    def __init__(self, current: str, new: str):
        self.current = current
        self.new = new
        super().__init__(f"Invalid run status transition: {current} -> {new}", 409)
