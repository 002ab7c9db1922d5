"""Nested view of the flat task table.

The store keeps tasks as flat rows linked by ``parent_id``. Everything that
displays tasks works on a forest of ``TodoHierarchy`` nodes instead. The
forest is derived and disposable: it is rebuilt from a fresh fetch after
most operations, and patched in place (``insert_task`` / ``apply_toggle``)
only when the result of a mutation is already known.

Ordering convention: children and roots keep the relative order of the
input. The store returns rows ordered by id, so in practice the tree comes
out in primary-key order.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Iterator, List, Optional, Union

from .models import Task, TaskRead

# stored rows on the server, API payloads in the desktop client
TaskLike = Union[Task, TaskRead]


@dataclass
class TodoHierarchy:
    task: TaskLike
    children: List["TodoHierarchy"] = field(default_factory=list)

    def toggle_with_children(self, state: bool) -> None:
        """Force ``state`` onto this node and every descendant."""
        self.task.done = state
        for child in self.children:
            child.toggle_with_children(state)

    def walk(self) -> Iterator["TodoHierarchy"]:
        yield self
        for child in self.children:
            yield from child.walk()

    def to_dict(self) -> dict:
        task = self.task.model_dump(mode='json')
        return {'task': task, 'children': [c.to_dict() for c in self.children]}


def _cycle_roots(nodes: dict, position: dict) -> set:
    """Ids that must become roots to break parent cycles.

    The store refuses cycle-creating updates, but a forest can be built from
    any list of tasks. For every cycle, the member that comes first in the
    input is promoted to root so no task is dropped.
    """
    state: dict = {}
    promoted = set()
    for start in nodes:
        if start in state:
            continue
        path = []
        cur = start
        while cur in nodes and cur not in state:
            state[cur] = 'visiting'
            path.append(cur)
            cur = nodes[cur].task.parent_id
        if cur in nodes and state.get(cur) == 'visiting':
            cycle = path[path.index(cur):]
            promoted.add(min(cycle, key=position.__getitem__))
        for tid in path:
            state[tid] = 'done'
    return promoted


def build_hierarchy(tasks: Iterable[TaskLike]) -> List[TodoHierarchy]:
    """Turn flat tasks into an ordered forest.

    A task whose ``parent_id`` is absent from ``tasks`` is a root (orphan
    tolerance). The input is not modified; node objects wrap the given task
    objects.
    """
    tasks = list(tasks)
    nodes: dict = {}
    position: dict = {}
    for index, task in enumerate(tasks):
        nodes[task.id] = TodoHierarchy(task)
        position.setdefault(task.id, index)

    promoted = _cycle_roots(nodes, position)

    roots: List[TodoHierarchy] = []
    for task in tasks:
        node = nodes[task.id]
        parent = nodes.get(task.parent_id) if task.parent_id is not None else None
        if parent is None or task.id in promoted:
            roots.append(node)
        else:
            parent.children.append(node)
    return roots


def flatten(forest: List[TodoHierarchy]) -> List[TaskLike]:
    """Tasks of the forest in depth-first pre-order."""
    return [node.task for root in forest for node in root.walk()]


def find_path(forest: List[TodoHierarchy], task_id: int) -> Optional[List[int]]:
    """Index path from the roots down to the node holding ``task_id``.

    Explicit depth-first search. ``[2, 0]`` means ``forest[2].children[0]``.
    """
    # pushed in reverse so the leftmost subtree is searched first
    stack = [(forest[i], [i]) for i in range(len(forest) - 1, -1, -1)]
    while stack:
        node, path = stack.pop()
        if node.task.id == task_id:
            return path
        for index in range(len(node.children) - 1, -1, -1):
            stack.append((node.children[index], path + [index]))
    return None


def node_at(forest: List[TodoHierarchy], path: List[int]) -> TodoHierarchy:
    node = forest[path[0]]
    for index in path[1:]:
        node = node.children[index]
    return node


def find_node(forest: List[TodoHierarchy], task_id: int) -> Optional[TodoHierarchy]:
    path = find_path(forest, task_id)
    if path is None:
        return None
    return node_at(forest, path)


def insert_task(forest: List[TodoHierarchy], task: TaskLike) -> TodoHierarchy:
    """Add a freshly created task without rebuilding the forest.

    The task becomes the last child of its parent when the parent is in the
    forest, otherwise the last root.
    """
    node = TodoHierarchy(task)
    parent = find_node(forest, task.parent_id) if task.parent_id is not None else None
    if parent is not None:
        parent.children.append(node)
    else:
        forest.append(node)
    return node


def apply_toggle(forest: List[TodoHierarchy], task_id: int, state: bool) -> bool:
    """Mirror a server-side cascade toggle locally.

    Returns False when ``task_id`` is not in the forest.
    """
    node = find_node(forest, task_id)
    if node is None:
        return False
    node.toggle_with_children(state)
    return True
