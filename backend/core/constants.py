"""Constants and enums for the DB processing orchestrator."""

from enum import Enum


class RunStatus(str, Enum):
    """Workflow run status."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.SUCCEEDED, RunStatus.FAILED)


class TaskOutcome(str, Enum):
    """Outcome of a single task invocation."""

    SUCCESS = "success"
    FAILURE = "failure"


class FailureKind(str, Enum):
    """Why a task invocation failed."""

    TIMEOUT = "timeout"
    HANDLER_ERROR = "handler_error"


class NodeKind(str, Enum):
    """Workflow node variants."""

    TASK = "task"
    SEQUENCE = "sequence"
    PARALLEL = "parallel"


class CommandChannelType(str, Enum):
    """Transports for the remote command channel."""

    CELERY = "celery"
    HTTP = "http"
    LOCAL = "local"


# Allowed run status transitions; anything else is a regression.
RUN_STATUS_TRANSITIONS: dict[RunStatus, frozenset[RunStatus]] = {
    RunStatus.PENDING: frozenset({RunStatus.RUNNING}),
    RunStatus.RUNNING: frozenset({RunStatus.SUCCEEDED, RunStatus.FAILED}),
    RunStatus.SUCCEEDED: frozenset(),
    RunStatus.FAILED: frozenset(),
}

# Parameters handed to task handlers from the parameter store.
DATASET_PARAMETER_NAMES = ("DB_HOST", "DB_USER", "DB_NAME", "DB_PASS", "PORT")
