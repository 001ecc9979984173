"""
Task Registry — maps task names to remote handler references.

Registration is append-only: a name can be registered once and is never
removed for the lifetime of the process. The Workflow Compiler resolves
stage names here and the Task Invoker looks handlers up by reference.
"""

from typing import Dict, Optional

from app.config import Settings, get_settings
from core.exceptions import DuplicateTaskNameError, UnknownTaskError
from tasks.base_task import BaseTaskHandler
from workflow.nodes import TaskSpec


class TaskRegistry:
    """Central registry of task specs and their handlers."""

    def __init__(self, settings: Optional[Settings] = None):
        self._settings = settings or get_settings()
        self._specs: Dict[str, TaskSpec] = {}
        self._handlers: Dict[str, BaseTaskHandler] = {}

    def register(
        self,
        name: str,
        handler: BaseTaskHandler,
        timeout: Optional[float] = None,
        handler_ref: Optional[str] = None,
    ) -> TaskSpec:
        """Register a task under a unique name.

        Raises:
            DuplicateTaskNameError: If the name (or handler reference) is taken
        """
        if name in self._specs:
            raise DuplicateTaskNameError(name)

        ref = handler_ref or f"{self._settings.handler_namespace}:{name}"
        if ref in self._handlers:
            raise DuplicateTaskNameError(ref)

        if timeout is None:
            timeout = self._settings.DEFAULT_TASK_TIMEOUT
        if timeout <= 0:
            raise ValueError(f"Task timeout must be positive, got {timeout} for '{name}'")

        spec = TaskSpec(name=name, handler_ref=ref, timeout=float(timeout))
        self._specs[name] = spec
        self._handlers[ref] = handler
        return spec

    def resolve(self, name: str) -> str:
        """Return the handler reference registered for a task name."""
        return self.get_spec(name).handler_ref

    def get_spec(self, name: str) -> TaskSpec:
        spec = self._specs.get(name)
        if spec is None:
            raise UnknownTaskError(name)
        return spec

    def get_handler(self, handler_ref: str) -> BaseTaskHandler:
        handler = self._handlers.get(handler_ref)
        if handler is None:
            raise UnknownTaskError(handler_ref)
        return handler

    def __contains__(self, name: str) -> bool:
        return name in self._specs

    def __len__(self) -> int:
        return len(self._specs)

    @property
    def names(self) -> list:
        return list(self._specs.keys())

    def list_all(self) -> list:
        """List all registered tasks with metadata."""
        return [
            {
                "name": spec.name,
                "handler_ref": spec.handler_ref,
                "timeout": spec.timeout,
                "display_name": self._handlers[spec.handler_ref].display_name,
                "description": self._handlers[spec.handler_ref].description,
            }
            for spec in self._specs.values()
        ]


# Singleton
_registry: Optional[TaskRegistry] = None


def get_task_registry() -> TaskRegistry:
    """Get or create the process-wide task registry."""
    global _registry
    if _registry is None:
        _registry = TaskRegistry()
    return _registry
