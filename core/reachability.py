"""
REACHABILITY ANALYZER - Paths, Chains and Impact

Answers "can A reach B" style questions over the ordered adjacency:
- Indirect paths (redundant dependency detection)
- Alternate paths around excluded tasks (orphaning on removal)
- Dependency chain depth and membership
- Per-task impact metrics

Traversals are breadth-first for path existence and depth-first with an
explicit stack for chains. Dangling dependency ids are treated as leaves.
"""
import logging
from collections import deque
from typing import Dict, Iterable, List, Optional, Set

import msgspec

from core.graph_model import DependencyGraph

logger = logging.getLogger(__name__)


# =============================================================================
# PATH EXISTENCE
# =============================================================================

def find_indirect_path(
    graph: DependencyGraph,
    from_id: str,
    to_id: str,
    exclude_direct_edge: bool = True,
) -> List[str]:
    """
    Shortest path from_id -> ... -> to_id found by BFS.

    With exclude_direct_edge the edge from_id -> to_id itself is skipped,
    so any path returned has at least two edges. That is what makes a
    direct edge redundant.

    Returns:
        The path including both endpoints, or [] if none exists
    """
    parent: Dict[str, Optional[str]] = {from_id: None}
    queue = deque([from_id])

    while queue:
        current = queue.popleft()
        for dep in graph.neighbors(current):
            if exclude_direct_edge and current == from_id and dep == to_id:
                continue
            if dep == to_id:
                path = [dep]
                node: Optional[str] = current
                while node is not None:
                    path.append(node)
                    node = parent[node]
                path.reverse()
                return path
            if dep not in parent:
                parent[dep] = current
                queue.append(dep)

    return []


def has_path(
    graph: DependencyGraph,
    from_id: str,
    to_id: str,
    exclude_direct_edge: bool = True,
) -> bool:
    """True if find_indirect_path finds anything."""
    return bool(find_indirect_path(graph, from_id, to_id, exclude_direct_edge))


def has_alternate_path(
    graph: DependencyGraph,
    from_id: str,
    to_id: str,
    exclude: Iterable[str] = (),
) -> bool:
    """
    BFS from from_id to to_id that never expands the excluded tasks.

    An excluded task can still be the target itself; it is just never
    walked through.
    """
    visited: Set[str] = set(exclude)
    queue = deque([from_id])

    while queue:
        current = queue.popleft()
        if current in visited:
            continue
        visited.add(current)
        for dep in graph.neighbors(current):
            if dep == to_id:
                return True
            if dep not in visited:
                queue.append(dep)

    return False


# =============================================================================
# CHAINS
# =============================================================================

def chain_length(graph: DependencyGraph, task_id: str) -> int:
    """
    Longest dependency chain depth starting at task_id.

    - Leaf tasks, dangling ids and unknown ids count as 1
    - The members of a cycle count once each (see chain_lengths)
    """
    return chain_lengths(graph).get(task_id, 1)


def chain_lengths(graph: DependencyGraph) -> Dict[str, int]:
    """
    chain_length for every task, in collection order.

    Works on the condensation: each strongly connected component is one
    node weighted by its size, so on a DAG this is the longest path in
    tasks and a cycle contributes its members once. Runs in O(V + E)
    with an explicit stack.
    """
    components = graph.strong_components()
    component_of = {tid: ci for ci, members in enumerate(components) for tid in members}

    successors: List[Set[int]] = []
    dangling: List[bool] = []
    for ci, members in enumerate(components):
        targets: Set[int] = set()
        has_dangling = False
        for tid in members:
            for dep in graph.neighbors(tid):
                if dep not in component_of:
                    has_dangling = True
                elif component_of[dep] != ci:
                    targets.add(component_of[dep])
        successors.append(targets)
        dangling.append(has_dangling)

    depth: Dict[int, int] = {}
    for root in range(len(components)):
        if root in depth:
            continue
        stack = [root]
        while stack:
            ci = stack[-1]
            if ci in depth:
                stack.pop()
                continue
            pending = [s for s in successors[ci] if s not in depth]
            if pending:
                stack.extend(pending)
                continue
            stack.pop()
            below = [depth[s] for s in successors[ci]]
            if dangling[ci]:
                below.append(1)
            depth[ci] = len(components[ci]) + max(below, default=0)

    return {tid: depth[component_of[tid]] for tid in graph.task_ids()}


def dependency_chain(graph: DependencyGraph, task_id: str) -> List[str]:
    """
    Distinct transitive dependencies of task_id in DFS discovery order.

    Dangling ids are listed but not expanded. On a cyclic graph the task
    itself can show up in its own chain.
    """
    chain: List[str] = []
    listed: Set[str] = set()
    expanded: Set[str] = {task_id}
    stack = [iter(graph.neighbors(task_id))]

    while stack:
        dep = next(stack[-1], None)
        if dep is None:
            stack.pop()
            continue
        if dep not in listed:
            listed.add(dep)
            chain.append(dep)
        if dep not in expanded:
            expanded.add(dep)
            stack.append(iter(graph.neighbors(dep)))

    return chain


# =============================================================================
# IMPACT
# =============================================================================

class TaskImpact(msgspec.Struct, kw_only=True, rename="camel"):
    """How much of the graph hangs off one task."""
    direct_dependencies: int
    direct_dependents: int
    total_impact: int
    impact_score: int
    is_critical: bool


def impact_analysis(
    graph: DependencyGraph,
    critical_dependents: int = 3,
    critical_impact: int = 5,
) -> Dict[str, TaskImpact]:
    """
    Impact metrics for every task.

    total_impact counts distinct transitive dependents (via rustworkx
    ancestors), so diamond-shaped graphs are not double counted.
    """
    impacts: Dict[str, TaskImpact] = {}
    for task_id in graph.task_ids():
        direct = len(graph.dependents(task_id))
        total = len(graph.transitive_dependents(task_id))
        impacts[task_id] = TaskImpact(
            direct_dependencies=len(graph.neighbors(task_id)),
            direct_dependents=direct,
            total_impact=total,
            impact_score=direct * 2 + total,
            is_critical=direct >= critical_dependents or total >= critical_impact,
        )
    return impacts
