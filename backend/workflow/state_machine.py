"""Render compiled workflows as a States Language document.

The output mirrors the state machine definition the pipeline was
originally deployed as:

    {
        "Comment": "DB Processing",
        "StartAt": "resetCases",
        "States": {
            "resetCases": {"Type": "Task", "Resource": "<handler_ref>", "Next": "..."},
            "parallelGroup1": {"Type": "Parallel", "Next": "...", "Branches": [...]},
            ...
        }
    }

Parallel states are numbered parallelGroup1..N in document order. A
number whose name is already taken by a task is skipped.
"""

import itertools
from typing import Iterator

from workflow.nodes import SequenceNode, TaskNode, WorkflowDefinition


def render_state_machine(definition: WorkflowDefinition, comment: str = "DB Processing") -> dict:
    group_names = _group_names(set(definition.task_names))
    document = _render_sequence(definition.root, group_names)
    return {"Comment": comment, **document}


def _group_names(taken: set) -> Iterator[str]:
    for number in itertools.count(1):
        name = f"parallelGroup{number}"
        if name not in taken:
            yield name


def _render_sequence(node: SequenceNode, group_names: Iterator[str]) -> dict:
    states: dict = {}
    names: list[str] = []
    for child in _flatten(node):
        if isinstance(child, TaskNode):
            name = child.name
            states[name] = {"Type": "Task", "Resource": child.spec.handler_ref}
        else:
            name = next(group_names)
            states[name] = {
                "Type": "Parallel",
                "Branches": [_render_sequence(branch, group_names) for branch in child.branches],
            }
        names.append(name)

    for current, following in zip(names, names[1:] + [None]):
        if following is None:
            states[current]["End"] = True
        else:
            states[current]["Next"] = following

    return {"StartAt": names[0], "States": states}


def _flatten(node: SequenceNode):
    """Inline nested sequences; States Language chains states with Next."""
    for child in node.children:
        if isinstance(child, SequenceNode):
            yield from _flatten(child)
        else:
            yield child
