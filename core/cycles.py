"""
CYCLE DETECTOR - Depth-First Search over the Dependency Graph

Two entry points:
1. would_create_cycle: pre-flight check for a single candidate edge
2. find_all_cycles: whole-graph scan used by the auditor

Mutation checks are local to the candidate edge. A collection that already
holds an unrelated cycle does not make an unrelated add fail; only the
audit reports pre-existing cycles.

All traversals use explicit stacks and follow the ordered adjacency, so
reported paths are stable for a given collection.
"""
import logging
from dataclasses import dataclass, field
from typing import Iterator, List, Set

from core.graph_model import DependencyGraph

logger = logging.getLogger(__name__)


# =============================================================================
# RESULTS
# =============================================================================

@dataclass
class CycleCheck:
    """Result of a pre-flight cycle check."""
    has_cycle: bool
    cycle_path: List[str] = field(default_factory=list)


# =============================================================================
# SINGLE-EDGE CHECK
# =============================================================================

def would_create_cycle(graph: DependencyGraph, from_id: str, to_id: str) -> CycleCheck:
    """
    Check whether adding from_id -> to_id would close a cycle.

    The edge closes a cycle iff to_id already reaches from_id. The rust
    mirror answers that first; only then is the ordered path walked.

    The reported path starts and ends at the same task and begins at the
    member that comes first in collection order:
        chain A -> B -> C, candidate C -> A  =>  [A, B, C, A]

    Args:
        graph: The dependency graph (not modified)
        from_id: Task that would gain the dependency
        to_id: Task it would depend on

    Returns:
        CycleCheck with has_cycle and the closed cycle path
    """
    if from_id == to_id:
        return CycleCheck(has_cycle=True, cycle_path=[from_id, from_id])

    if not graph.reaches(to_id, from_id):
        return CycleCheck(has_cycle=False)

    path = _find_path(graph, to_id, from_id)
    if not path:
        return CycleCheck(has_cycle=False)

    members = [from_id] + path[:-1]
    start = min(range(len(members)), key=lambda i: graph.position(members[i]))
    rotated = members[start:] + members[:start]
    cycle_path = rotated + [rotated[0]]

    logger.debug(f"Edge {from_id} -> {to_id} would close cycle {cycle_path}")
    return CycleCheck(has_cycle=True, cycle_path=cycle_path)


def _find_path(graph: DependencyGraph, source: str, target: str) -> List[str]:
    """Ordered DFS path source -> ... -> target, or [] if none."""
    visited: Set[str] = {source}
    path: List[str] = [source]
    stack: List[Iterator[str]] = [iter(graph.neighbors(source))]

    while stack:
        nxt = next(stack[-1], None)
        if nxt is None:
            stack.pop()
            path.pop()
            continue
        if nxt == target:
            return path + [nxt]
        if nxt in visited or not graph.task_exists(nxt):
            continue
        visited.add(nxt)
        path.append(nxt)
        stack.append(iter(graph.neighbors(nxt)))

    return []


# =============================================================================
# WHOLE-GRAPH SCAN
# =============================================================================

def find_all_cycles(graph: DependencyGraph) -> List[List[str]]:
    """
    Find cycles with one DFS pass over the whole graph.

    DFS starts from every unvisited task in collection order. Each back
    edge to a task on the current stack yields the stack slice from that
    task to the current one, closed by repeating the task. The same cycle
    may be reported more than once when it is entered from different
    back edges; no deduplication is attempted.

    Complexity: O(V+E) for the walk itself. Acyclic graphs return
    immediately via rustworkx.
    """
    if graph.is_acyclic():
        return []

    cycles: List[List[str]] = []
    visited: Set[str] = set()

    for start in graph.task_ids():
        if start in visited:
            continue

        visited.add(start)
        path: List[str] = [start]
        on_stack: Set[str] = {start}
        stack: List[Iterator[str]] = [iter(graph.neighbors(start))]

        while stack:
            nxt = next(stack[-1], None)
            if nxt is None:
                stack.pop()
                on_stack.discard(path.pop())
                continue
            if nxt in on_stack:
                idx = path.index(nxt)
                cycles.append(path[idx:] + [nxt])
            elif nxt not in visited and graph.task_exists(nxt):
                visited.add(nxt)
                on_stack.add(nxt)
                path.append(nxt)
                stack.append(iter(graph.neighbors(nxt)))

    logger.debug(f"Cycle scan found {len(cycles)} cycle(s)")
    return cycles
