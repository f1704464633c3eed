"""
DEPENDENCY GRAPH MODEL - The Rust-Accelerated Adjacency

Exposes a TaskCollection as a directed graph (task -> depends_on) and keeps
two synchronized views of the same edges:

Architecture (The Bridge Pattern):
  Python Layer (Ordered Adjacency)
  - _adj: Dict[str, List[str]]   task id -> dependencies, insertion order
  - _rev: Dict[str, Set[str]]    task id -> dependents
  - Includes dangling edges (targets that are not in the collection)
  - Every ordered traversal (DFS paths, reported cycles) walks this view

  Bridge Layer
  - _node_map: Dict[str, int]  (task id -> index)
  - _inv_map: Dict[int, str]   (index -> task id)

  Rust Layer (rustworkx.PyDiGraph)
  - Only edges between known tasks
  - Order-independent questions: has_path, ancestors, descendants,
    acyclicity, weak components

The model is built fresh from a collection for one operation and thrown
away afterwards. It never writes task records; the mutator does that and
calls add_edge/remove_edge so both views stay in sync.
"""
import rustworkx as rx
import polars as pl
import logging
from collections import deque
from typing import Dict, List, Optional, Set, Tuple, Any, Iterator

from core.ontology import ErrorKind
from core.schemas import TaskCollection, TaskData, DependencyError

logger = logging.getLogger(__name__)


# =============================================================================
# CUSTOM EXCEPTIONS
# =============================================================================

class GraphError(Exception):
    """
    Base exception for graph operations.

    Subclasses set `kind` (an ErrorKind) and the ids involved, so the
    public API can turn any of them into a structured DependencyError.
    """
    kind: Optional[ErrorKind] = None
    task_id: Optional[str] = None
    depends_on: Optional[str] = None

    def to_error(self) -> DependencyError:
        """Render this exception as a structured failure record."""
        return DependencyError(
            kind=self.kind.value if self.kind else type(self).__name__,
            message=str(self),
            task_id=self.task_id,
            depends_on=self.depends_on,
        )


class TaskNotFoundError(GraphError):
    """Raised when a task id is not in the collection."""
    kind = ErrorKind.TASK_NOT_FOUND

    def __init__(self, task_id: str, depends_on: Optional[str] = None):
        self.task_id = task_id
        self.depends_on = depends_on
        super().__init__(f"Task not found: {task_id}")


# =============================================================================
# DEPENDENCY GRAPH
# =============================================================================

class DependencyGraph:
    """
    In-memory dependency graph over a task collection.

    Usage:
        graph = DependencyGraph(collection)

        graph.neighbors("T3")          # ["T2"] - what T3 depends on
        graph.dependents("T1")         # ["T2"] - what depends on T1
        graph.reaches("T3", "T1")      # True
        graph.missing_references()     # [(task_id, dangling_id), ...]

    Thread Safety:
        NOT thread-safe. One graph per operation.
    """

    def __init__(self, collection: TaskCollection):
        self.collection = collection

        # Core storage: Rust-native directed graph
        self._graph: rx.PyDiGraph = rx.PyDiGraph(multigraph=False)

        # The Bridge
        self._node_map: Dict[str, int] = {}
        self._inv_map: Dict[int, str] = {}

        # Ordered Python view
        self._tasks: Dict[str, TaskData] = {}
        self._position: Dict[str, int] = {}
        self._adj: Dict[str, List[str]] = {}
        self._rev: Dict[str, Set[str]] = {}

        self._build()

    def _build(self) -> None:
        for task in self.collection.tasks:
            if task.id in self._tasks:
                logger.warning(f"Duplicate task id ignored: {task.id}")
                continue
            self._tasks[task.id] = task
            self._position[task.id] = len(self._position)
            self._adj[task.id] = []
            idx = self._graph.add_node(task.id)
            self._node_map[task.id] = idx
            self._inv_map[idx] = task.id

        for task_id, task in self._tasks.items():
            for dep_id in task.dependencies:
                self._link(task_id, dep_id)

        logger.debug(f"Built {self!r}")

    def _link(self, task_id: str, dep_id: str) -> bool:
        adj = self._adj[task_id]
        if dep_id in adj:
            return False
        adj.append(dep_id)
        self._rev.setdefault(dep_id, set()).add(task_id)
        if dep_id in self._node_map:
            self._graph.add_edge(self._node_map[task_id], self._node_map[dep_id], None)
        return True

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def node_count(self) -> int:
        """Number of tasks in the graph."""
        return len(self._tasks)

    @property
    def edge_count(self) -> int:
        """Number of dependency edges, dangling ones included."""
        return sum(len(deps) for deps in self._adj.values())

    # =========================================================================
    # TASK QUERIES
    # =========================================================================

    def task_exists(self, task_id: str) -> bool:
        """Check if a task id is in the collection."""
        return task_id in self._tasks

    def all_task_ids(self) -> Set[str]:
        return set(self._tasks)

    def task_ids(self) -> List[str]:
        """Task ids in collection order."""
        return list(self._tasks)

    def iter_tasks(self) -> Iterator[TaskData]:
        return iter(self._tasks.values())

    def get_task(self, task_id: str) -> TaskData:
        """
        Retrieve a task by id.

        Raises:
            TaskNotFoundError: If the task doesn't exist
        """
        if task_id not in self._tasks:
            raise TaskNotFoundError(task_id)
        return self._tasks[task_id]

    def find_task(self, task_id: str) -> Optional[TaskData]:
        """Like get_task, but returns None for unknown ids."""
        return self._tasks.get(task_id)

    def position(self, task_id: str) -> int:
        """Collection index of a task; dangling ids sort last."""
        return self._position.get(task_id, len(self._position))

    # =========================================================================
    # EDGE QUERIES
    # =========================================================================

    def neighbors(self, task_id: str) -> List[str]:
        """
        Dependencies of a task in insertion order.

        Dangling ids are included. Unknown task ids have no neighbors.
        """
        return list(self._adj.get(task_id, ()))

    def dependents(self, task_id: str) -> List[str]:
        """Tasks that depend directly on task_id, in collection order."""
        return sorted(self._rev.get(task_id, ()), key=self.position)

    def has_edge(self, task_id: str, depends_on: str) -> bool:
        return depends_on in self._adj.get(task_id, ())

    def edges(self) -> List[Tuple[str, str]]:
        """All (task_id, depends_on) pairs in collection then insertion order."""
        return [(t, d) for t, deps in self._adj.items() for d in deps]

    def missing_references(self) -> List[Tuple[str, str]]:
        """Edges whose target is not a task in the collection."""
        return [(t, d) for t, d in self.edges() if d not in self._tasks]

    # =========================================================================
    # EDGE OPERATIONS
    # =========================================================================

    def add_edge(self, task_id: str, depends_on: str) -> bool:
        """
        Add task_id -> depends_on to the adjacency and the rust mirror.

        Does not check cycles and does not touch the task record.

        Returns:
            False if the edge was already present
        """
        if task_id not in self._tasks:
            raise TaskNotFoundError(task_id, depends_on)
        return self._link(task_id, depends_on)

    def remove_edge(self, task_id: str, depends_on: str) -> bool:
        """
        Remove task_id -> depends_on from both views.

        Returns:
            False if the edge was not present
        """
        adj = self._adj.get(task_id)
        if adj is None or depends_on not in adj:
            return False
        adj.remove(depends_on)
        dependents = self._rev.get(depends_on)
        if dependents is not None:
            dependents.discard(task_id)
        if depends_on in self._node_map:
            src_idx = self._node_map[task_id]
            tgt_idx = self._node_map[depends_on]
            if self._graph.has_edge(src_idx, tgt_idx):
                self._graph.remove_edge(src_idx, tgt_idx)
        return True

    # =========================================================================
    # RUST-ACCELERATED QUERIES
    # =========================================================================

    def reaches(self, source_id: str, target_id: str) -> bool:
        """
        True if a dependency path source -> ... -> target exists.

        Dangling ids reach nothing and are reached by nothing here.
        """
        if source_id not in self._node_map or target_id not in self._node_map:
            return False
        if source_id == target_id:
            return True
        return rx.has_path(
            self._graph, self._node_map[source_id], self._node_map[target_id]
        )

    def is_acyclic(self) -> bool:
        """True if the known-task subgraph is a DAG."""
        return rx.is_directed_acyclic_graph(self._graph)

    def transitive_dependents(self, task_id: str) -> List[str]:
        """Every task with a path to task_id, in collection order."""
        idx = self._get_index(task_id)
        found = [self._inv_map[i] for i in rx.ancestors(self._graph, idx) if i != idx]
        return sorted(found, key=self.position)

    def transitive_dependencies(self, task_id: str) -> List[str]:
        """Every known task reachable from task_id, in collection order."""
        idx = self._get_index(task_id)
        found = [self._inv_map[i] for i in rx.descendants(self._graph, idx) if i != idx]
        return sorted(found, key=self.position)

    def strong_components(self) -> List[List[str]]:
        """
        Strongly connected components of the known-task subgraph.

        Every known task lands in exactly one component; a task on no
        cycle is a component of its own.
        """
        return [
            sorted((self._inv_map[i] for i in component), key=self.position)
            for component in rx.strongly_connected_components(self._graph)
        ]

    def weak_components(self) -> int:
        if self.node_count == 0:
            return 0
        return rx.number_weakly_connected_components(self._graph)

    # =========================================================================
    # NEIGHBORHOOD
    # =========================================================================

    def subgraph(self, focus_id: str, max_depth: int = 0) -> List[str]:
        """
        Tasks within max_depth hops of focus_id in either direction.

        Walks dependencies and dependents breadth-first. max_depth=0 means
        unlimited. The focus task is included. Result is in collection order.

        Raises:
            TaskNotFoundError: If focus_id is unknown
        """
        if focus_id not in self._tasks:
            raise TaskNotFoundError(focus_id)

        seen: Set[str] = {focus_id}
        queue = deque([(focus_id, 0)])
        while queue:
            current, depth = queue.popleft()
            if max_depth and depth >= max_depth:
                continue
            for nxt in self.neighbors(current) + self.dependents(current):
                if nxt in self._tasks and nxt not in seen:
                    seen.add(nxt)
                    queue.append((nxt, depth + 1))

        return sorted(seen, key=self.position)

    # =========================================================================
    # EXPORT (Polars)
    # =========================================================================

    def to_polars_tasks(self) -> pl.DataFrame:
        """Export tasks with their edge counts to a Polars DataFrame."""
        tasks = list(self._tasks.values())
        return pl.DataFrame(
            {
                "id": [t.id for t in tasks],
                "title": [t.title for t in tasks],
                "status": [t.status for t in tasks],
                "priority": [t.priority for t in tasks],
                "dependency_count": [len(self._adj[t.id]) for t in tasks],
                "dependent_count": [len(self._rev.get(t.id, ())) for t in tasks],
            },
            schema={
                "id": pl.Utf8,
                "title": pl.Utf8,
                "status": pl.Utf8,
                "priority": pl.Utf8,
                "dependency_count": pl.Int64,
                "dependent_count": pl.Int64,
            },
        )

    def to_polars_edges(self) -> pl.DataFrame:
        """Export dependency edges to a Polars DataFrame."""
        edges = self.edges()
        return pl.DataFrame(
            {
                "task_id": [t for t, _ in edges],
                "depends_on": [d for _, d in edges],
                "type": [self._tasks[t].dependency_type_of(d) for t, d in edges],
                "dangling": [d not in self._tasks for _, d in edges],
            },
            schema={
                "task_id": pl.Utf8,
                "depends_on": pl.Utf8,
                "type": pl.Utf8,
                "dangling": pl.Boolean,
            },
        )

    def stats(self) -> Dict[str, Any]:
        """Basic structural metrics."""
        return {
            "node_count": self.node_count,
            "edge_count": self.edge_count,
            "dangling_edges": len(self.missing_references()),
            "weak_components": self.weak_components(),
            "is_dag": self.is_acyclic(),
        }

    # =========================================================================
    # INTERNAL UTILITIES
    # =========================================================================

    def _get_index(self, task_id: str) -> int:
        if task_id not in self._node_map:
            raise TaskNotFoundError(task_id)
        return self._node_map[task_id]

    def __len__(self) -> int:
        return self.node_count

    def __contains__(self, task_id: str) -> bool:
        return task_id in self._tasks

    def __repr__(self) -> str:
        return f"DependencyGraph(tasks={self.node_count}, edges={self.edge_count})"


# =============================================================================
# FACTORY FUNCTIONS
# =============================================================================

def build_graph(collection: TaskCollection) -> DependencyGraph:
    """Create a DependencyGraph over a collection."""
    return DependencyGraph(collection)
