"""Workflow Compiler — builds an immutable WorkflowDefinition from stages.

Stage descriptor syntax (plain data, JSON friendly):

    [
        "resetCases",                                   # single task
        "parseInvalidCharacters",
        {"parallel": [                                  # parallel group
            "parseFootnotes",                           # branch of one task
            ["parseEmptyCitations", "parseCourts"],     # branch sequence
            [{"parallel": [...]}, "linkCases"],         # nesting is unbounded
        ]},
    ]

Every referenced name must be registered and may appear only once.
Validation happens before anything is returned: a failed compile never
produces a partial definition.
"""

import logging
from typing import Any, Optional

from app.config import Settings, get_settings
from core.exceptions import (
    DuplicateNodeReferenceError,
    InvalidStageError,
    UnresolvedTaskError,
)
from tasks.registry import TaskRegistry
from workflow.nodes import (
    ParallelNode,
    SequenceNode,
    TaskNode,
    WorkflowDefinition,
    WorkflowNode,
)

logger = logging.getLogger(__name__)

PARALLEL_KEY = "parallel"


class WorkflowCompiler:
    """Validates stage lists against a TaskRegistry and compiles them."""

    def __init__(self, registry: TaskRegistry, settings: Optional[Settings] = None):
        self._registry = registry
        self._settings = settings or get_settings()

    def compile(self, stages: list, name: Optional[str] = None) -> WorkflowDefinition:
        """Compile an ordered stage list into a WorkflowDefinition.

        Raises:
            UnresolvedTaskError: A task name is not in the registry
            DuplicateNodeReferenceError: A task name appears twice
            InvalidStageError: A descriptor is malformed
        """
        workflow_name = name or self._settings.WORKFLOW_NAME
        seen: set[str] = set()
        root = self._compile_sequence(stages, seen, path="stages")
        definition = WorkflowDefinition(name=workflow_name, root=root)
        logger.info(
            f"Compiled workflow '{workflow_name}' with {len(seen)} task(s)"
        )
        return definition

    def _compile_sequence(self, stages: Any, seen: set[str], path: str) -> SequenceNode:
        if not isinstance(stages, (list, tuple)):
            raise InvalidStageError(f"{path}: expected a list of stages, got {type(stages).__name__}")
        if not stages:
            raise InvalidStageError(f"{path}: stage list is empty")
        children = tuple(
            self._compile_stage(stage, seen, f"{path}[{i}]")
            for i, stage in enumerate(stages)
        )
        return SequenceNode(children=children)

    def _compile_stage(self, stage: Any, seen: set[str], path: str) -> WorkflowNode:
        if isinstance(stage, str):
            return self._compile_task(stage, seen)

        if isinstance(stage, dict):
            if set(stage.keys()) != {PARALLEL_KEY}:
                raise InvalidStageError(
                    f"{path}: a stage mapping must have exactly one key '{PARALLEL_KEY}', "
                    f"got {sorted(stage.keys())}"
                )
            return self._compile_parallel(stage[PARALLEL_KEY], seen, f"{path}.{PARALLEL_KEY}")

        if isinstance(stage, (list, tuple)):
            return self._compile_sequence(stage, seen, path)

        raise InvalidStageError(f"{path}: unsupported stage type {type(stage).__name__}")

    def _compile_parallel(self, branches: Any, seen: set[str], path: str) -> ParallelNode:
        if not isinstance(branches, (list, tuple)):
            raise InvalidStageError(f"{path}: expected a list of branches")
        if not branches:
            raise InvalidStageError(f"{path}: parallel group has no branches")

        compiled = []
        for i, branch in enumerate(branches):
            branch_path = f"{path}[{i}]"
            if isinstance(branch, (str, dict)):
                branch = [branch]
            compiled.append(self._compile_sequence(branch, seen, branch_path))
        return ParallelNode(branches=tuple(compiled))

    def _compile_task(self, name: str, seen: set[str]) -> TaskNode:
        if name not in self._registry:
            raise UnresolvedTaskError(name)
        if name in seen:
            raise DuplicateNodeReferenceError(name)
        seen.add(name)
        return TaskNode(spec=self._registry.get_spec(name))
