"""
GRAPH MUTATOR - Guarded Single-Edge Changes

The only component that writes dependency edges into task records.

add_dependency:
    self-check -> existence -> duplicate -> cycle check -> type rules
    -> write (simple + detailed) -> counter -> change event -> impact

remove_dependency:
    existence -> removal impact -> write -> cascade -> counter -> event

Failure Semantics:
- Internally, every rejection is a GraphError subclass
- The public methods catch them and return MutationResult(success=False)
  carrying a structured DependencyError; nothing engine-related escapes
- Nothing is written on a failure path
- force=True turns circular, type and removal-warning rejections into
  successful mutations with warnings. It never overrides self-dependency
  or missing tasks. Every forced override is logged at WARNING.
"""
import logging
from typing import Any, Dict, List, Optional

import msgspec

from core.cycles import would_create_cycle
from core.edge_rules import validate_dependency_type
from core.graph_model import DependencyGraph, GraphError
from core.heuristics import (
    check_logical_dependency,
    is_on_critical_path,
    shared_skills,
    would_unblock_prematurely,
)
from core.ontology import ChangeAction, ErrorKind, FORCEABLE_ERRORS
from core.reachability import dependency_chain, has_alternate_path
from core.schemas import DependencyDetail, DependencyError, TaskCollection, TaskData
from infrastructure.changelog import ChangeLog
from infrastructure.config import EngineConfig

logger = logging.getLogger(__name__)


# =============================================================================
# MUTATION ERRORS
# =============================================================================

class SelfDependencyError(GraphError):
    """A task cannot depend on itself."""
    kind = ErrorKind.SELF_DEPENDENCY

    def __init__(self, task_id: str):
        self.task_id = task_id
        self.depends_on = task_id
        super().__init__(f"Task cannot depend on itself: {task_id}")


class CircularDependencyError(GraphError):
    """The edge would close a cycle."""
    kind = ErrorKind.CIRCULAR_DEPENDENCY

    def __init__(self, task_id: str, depends_on: str, cycle_path: List[str]):
        self.task_id = task_id
        self.depends_on = depends_on
        self.cycle_path = cycle_path
        super().__init__(
            f"Adding {task_id} -> {depends_on} would create a circular dependency: "
            f"{' -> '.join(cycle_path)}"
        )

    def to_error(self) -> DependencyError:
        error = super().to_error()
        error.cycle_path = list(self.cycle_path)
        return error


class DependencyTypeError(GraphError):
    """The edge type rejects this status/priority pairing."""
    kind = ErrorKind.DEPENDENCY_TYPE

    def __init__(self, task_id: str, depends_on: str, reason: str):
        self.task_id = task_id
        self.depends_on = depends_on
        self.reason = reason
        super().__init__(f"Cannot add dependency: {reason}")

    def to_error(self) -> DependencyError:
        error = super().to_error()
        error.reason = self.reason
        return error


class RemovalWarningError(GraphError):
    """Removing the edge raised warnings and force was not set."""
    kind = ErrorKind.REMOVAL_WARNING

    def __init__(self, task_id: str, depends_on: str, warnings: List[str]):
        self.task_id = task_id
        self.depends_on = depends_on
        self.warnings = warnings
        super().__init__(
            f"Removing {task_id} -> {depends_on} has warnings: {'; '.join(warnings)}"
        )

    def to_error(self) -> DependencyError:
        error = super().to_error()
        error.warnings = list(self.warnings)
        return error


def raise_unless_forced(error: GraphError, force: bool) -> None:
    """Raise error unless force is set and its kind is one force may downgrade."""
    if not (force and error.kind in FORCEABLE_ERRORS):
        raise error


# =============================================================================
# RESULTS
# =============================================================================

class ImpactSummary(msgspec.Struct, kw_only=True, rename="camel"):
    """What an added edge touches."""
    dependent_count: int        # Tasks depending directly on task_id
    chain_size: int             # Distinct transitive dependencies of depends_on
    affected_tasks: int         # dependent_count + chain_size
    on_critical_path: bool


class RemovalImpact(msgspec.Struct, kw_only=True, rename="camel"):
    """
    What removing an edge might break.

    Only `warnings` gate the removal; the other lists are informational.
    """
    warnings: List[str] = msgspec.field(default_factory=list)
    premature_unblock: bool = False
    logical_reason: Optional[str] = None
    orphaned_tasks: List[str] = msgspec.field(default_factory=list)
    affects_critical_path: bool = False
    cascade_effects: List[str] = msgspec.field(default_factory=list)
    shared_skills: List[str] = msgspec.field(default_factory=list)

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)


class CascadeRemoval(msgspec.Struct, kw_only=True, rename="camel"):
    """One edge removed by cascade."""
    task_id: str
    from_task: str
    removed_dep: str
    reason: str = "Redundant dependency removed"


class MutationResult(msgspec.Struct, kw_only=True, rename="camel", omit_defaults=True):
    """Outcome of add_dependency / remove_dependency."""
    success: bool
    action: str
    task_id: str
    depends_on: str
    dependency_type: Optional[str] = None
    already_exists: bool = False
    not_found: bool = False
    forced_cycle: bool = False
    warnings: List[str] = msgspec.field(default_factory=list)
    impact: Optional[ImpactSummary] = None
    removal_impact: Optional[RemovalImpact] = None
    cascade_results: List[CascadeRemoval] = msgspec.field(default_factory=list)
    error: Optional[DependencyError] = None

    @property
    def error_kind(self) -> Optional[str]:
        return self.error.kind if self.error else None

    def to_dict(self) -> Dict[str, Any]:
        return msgspec.to_builtins(self)


# =============================================================================
# GRAPH MUTATOR
# =============================================================================

class GraphMutator:
    """
    Adds and removes dependency edges on a loaded collection.

    The collection is mutated in place. A fresh DependencyGraph is built
    for every operation, so edits made to the collection between calls
    are always seen.

    Usage:
        mutator = GraphMutator(collection, changelog=ChangeLog())
        result = mutator.add_dependency("T3", "T2", "finish-to-start")
        if not result.success:
            print(result.error.kind, result.error.message)
    """

    def __init__(
        self,
        collection: TaskCollection,
        changelog: Optional[ChangeLog] = None,
        config: Optional[EngineConfig] = None,
    ):
        self.collection = collection
        self.changelog = changelog
        self.config = config or EngineConfig()

    def _graph(self) -> DependencyGraph:
        return DependencyGraph(self.collection)

    # =========================================================================
    # ADD
    # =========================================================================

    def add_dependency(
        self,
        task_id: str,
        depends_on: str,
        dep_type: Optional[str] = None,
        *,
        force: bool = False,
        validate_cycles: bool = True,
        reason: Optional[str] = None,
    ) -> MutationResult:
        """
        Make task_id depend on depends_on.

        Args:
            task_id: The dependent task
            depends_on: The task it will depend on
            dep_type: Dependency type (config default when None)
            force: Push past cycle and type rejections
            validate_cycles: Run the cycle pre-check
            reason: Free text stored on the detailed entry and the event

        Returns:
            MutationResult with an ImpactSummary on success
        """
        dep_type = dep_type or self.config.default_dependency_type
        try:
            return self._add(task_id, depends_on, dep_type, force, validate_cycles, reason)
        except GraphError as e:
            logger.info(f"[ADD] Rejected {task_id} -> {depends_on}: {e}")
            return self._failure(ChangeAction.ADD.value, task_id, depends_on, e, dep_type)

    def _add(
        self,
        task_id: str,
        depends_on: str,
        dep_type: str,
        force: bool,
        validate_cycles: bool,
        reason: Optional[str],
    ) -> MutationResult:
        if task_id == depends_on:
            raise_unless_forced(SelfDependencyError(task_id), force)

        graph = self._graph()
        task = graph.get_task(task_id)
        dep_task = graph.get_task(depends_on)

        if graph.has_edge(task_id, depends_on):
            logger.debug(f"[ADD] {task_id} -> {depends_on} already exists")
            return MutationResult(
                success=True,
                action=ChangeAction.ADD.value,
                task_id=task_id,
                depends_on=depends_on,
                dependency_type=task.dependency_type_of(depends_on),
                already_exists=True,
            )

        warnings: List[str] = []
        forced_cycle = False

        if validate_cycles:
            check = would_create_cycle(graph, task_id, depends_on)
            if check.has_cycle:
                raise_unless_forced(
                    CircularDependencyError(task_id, depends_on, check.cycle_path), force
                )
                forced_cycle = True
                message = f"Forced circular dependency: {' -> '.join(check.cycle_path)}"
                warnings.append(message)
                logger.warning(f"[ADD] {task_id} -> {depends_on}: {message}")

        validation = validate_dependency_type(task, dep_task, dep_type)
        if not validation.is_valid:
            raise_unless_forced(DependencyTypeError(task_id, depends_on, validation.reason), force)
            message = f"Forced {dep_type} dependency: {validation.reason}"
            warnings.append(message)
            logger.warning(f"[ADD] {task_id} -> {depends_on}: {message}")

        # === Write ===
        task.dependencies.append(depends_on)
        if self.collection.use_detailed_dependencies:
            task.detailed_dependencies.append(DependencyDetail.create(
                depends_on,
                type=dep_type,
                reason=reason,
                added_by=self.config.added_by,
            ))
        task.touch()
        self.collection.bump_dependency_counter(+1)
        graph.add_edge(task_id, depends_on)

        if self.changelog is not None:
            self.changelog.record_add(
                task_id,
                depends_on,
                dep_type,
                reason=reason,
                forced=bool(warnings),
                warnings=warnings,
            )

        logger.info(f"[ADD] {task_id} -> {depends_on} ({dep_type})")

        return MutationResult(
            success=True,
            action=ChangeAction.ADD.value,
            task_id=task_id,
            depends_on=depends_on,
            dependency_type=dep_type,
            forced_cycle=forced_cycle,
            warnings=warnings,
            impact=self._impact_summary(graph, task_id, depends_on),
        )

    def _impact_summary(self, graph: DependencyGraph, task_id: str, depends_on: str) -> ImpactSummary:
        dependent_count = len(graph.dependents(task_id))
        chain_size = len(dependency_chain(graph, depends_on))
        return ImpactSummary(
            dependent_count=dependent_count,
            chain_size=chain_size,
            affected_tasks=dependent_count + chain_size,
            on_critical_path=(
                is_on_critical_path(graph, task_id) or is_on_critical_path(graph, depends_on)
            ),
        )

    # =========================================================================
    # REMOVE
    # =========================================================================

    def remove_dependency(
        self,
        task_id: str,
        depends_on: str,
        *,
        force: bool = False,
        cascade_removal: bool = False,
        analyze_impact: bool = True,
        reason: Optional[str] = None,
    ) -> MutationResult:
        """
        Remove the edge task_id -> depends_on.

        Args:
            force: Remove even when the impact analysis raises warnings
            cascade_removal: Also drop depends_on from tasks that depend on
                both task_id and depends_on
            analyze_impact: Run the removal impact checks
            reason: Free text recorded on the change event

        Returns:
            MutationResult with the RemovalImpact and any cascade removals
        """
        try:
            return self._remove(task_id, depends_on, force, cascade_removal, analyze_impact, reason)
        except GraphError as e:
            logger.info(f"[REMOVE] Rejected {task_id} -> {depends_on}: {e}")
            return self._failure(ChangeAction.REMOVE.value, task_id, depends_on, e)

    def _remove(
        self,
        task_id: str,
        depends_on: str,
        force: bool,
        cascade_removal: bool,
        analyze_impact: bool,
        reason: Optional[str],
    ) -> MutationResult:
        graph = self._graph()
        task = graph.get_task(task_id)

        if not graph.has_edge(task_id, depends_on):
            logger.debug(f"[REMOVE] {task_id} -> {depends_on} does not exist")
            return MutationResult(
                success=True,
                action=ChangeAction.REMOVE.value,
                task_id=task_id,
                depends_on=depends_on,
                not_found=True,
            )

        dep_type = task.dependency_type_of(depends_on)
        dep_task = graph.find_task(depends_on)
        impact: Optional[RemovalImpact] = None
        warnings: List[str] = []

        # Dangling edges have nothing to analyze
        if analyze_impact and dep_task is not None:
            impact = self._removal_impact(graph, task, dep_task)
            if impact.has_warnings:
                raise_unless_forced(RemovalWarningError(task_id, depends_on, impact.warnings), force)
                warnings = list(impact.warnings)
                logger.warning(
                    f"[REMOVE] Forced {task_id} -> {depends_on} despite: {'; '.join(warnings)}"
                )

        # === Write ===
        self._drop_edge(graph, task, depends_on)

        cascade_results: List[CascadeRemoval] = []
        if cascade_removal:
            cascade_results = self._cascade(graph, task_id, depends_on)

        if self.changelog is not None:
            self.changelog.record_remove(
                task_id,
                depends_on,
                reason=reason,
                forced=bool(warnings),
                warnings=warnings,
                cascade_results=[msgspec.to_builtins(c) for c in cascade_results],
            )
            for c in cascade_results:
                self.changelog.record_remove(c.task_id, c.removed_dep, reason=c.reason)

        logger.info(
            f"[REMOVE] {task_id} -> {depends_on}"
            + (f" (+{len(cascade_results)} cascaded)" if cascade_results else "")
        )

        return MutationResult(
            success=True,
            action=ChangeAction.REMOVE.value,
            task_id=task_id,
            depends_on=depends_on,
            dependency_type=dep_type,
            warnings=warnings,
            removal_impact=impact,
            cascade_results=cascade_results,
        )

    def _drop_edge(self, graph: DependencyGraph, task: TaskData, depends_on: str) -> None:
        task.drop_dependency(depends_on)
        task.touch()
        self.collection.bump_dependency_counter(-1)
        graph.remove_edge(task.id, depends_on)

    def _cascade(self, graph: DependencyGraph, task_id: str, depends_on: str) -> List[CascadeRemoval]:
        """Drop depends_on from every other task that also depends on task_id."""
        results: List[CascadeRemoval] = []
        for other_id in graph.dependents(depends_on):
            if other_id == task_id or not graph.has_edge(other_id, task_id):
                continue
            other = graph.get_task(other_id)
            self._drop_edge(graph, other, depends_on)
            results.append(CascadeRemoval(
                task_id=other_id,
                from_task=other.title or other_id,
                removed_dep=depends_on,
            ))
            logger.info(f"[REMOVE] Cascade {other_id} -> {depends_on}")
        return results

    # =========================================================================
    # REMOVAL IMPACT
    # =========================================================================

    def analyze_removal_impact(self, task_id: str, depends_on: str) -> RemovalImpact:
        """
        Removal impact without removing anything.

        Raises:
            TaskNotFoundError: If either task is unknown
        """
        graph = self._graph()
        return self._removal_impact(graph, graph.get_task(task_id), graph.get_task(depends_on))

    def _removal_impact(self, graph: DependencyGraph, task: TaskData, dep_task: TaskData) -> RemovalImpact:
        impact = RemovalImpact()

        if would_unblock_prematurely(task, dep_task):
            impact.premature_unblock = True
            impact.warnings.append("Task may become unblocked prematurely")

        logical = check_logical_dependency(task, dep_task)
        if logical.is_logical:
            impact.logical_reason = logical.reason
            impact.warnings.append(f"Logical dependency exists: {logical.reason}")

        for other_id in graph.dependents(task.id):
            if not has_alternate_path(graph, other_id, dep_task.id, exclude=[task.id]):
                impact.orphaned_tasks.append(other_id)

        if is_on_critical_path(graph, task.id) and is_on_critical_path(graph, dep_task.id):
            impact.affects_critical_path = True
            impact.warnings.append("Affects critical path")

        impact.cascade_effects = [
            other_id for other_id in graph.dependents(task.id)
            if graph.has_edge(other_id, dep_task.id)
        ]
        impact.shared_skills = shared_skills(task, dep_task)
        return impact

    # =========================================================================
    # INTERNAL UTILITIES
    # =========================================================================

    def _failure(
        self,
        action: str,
        task_id: str,
        depends_on: str,
        exc: GraphError,
        dep_type: Optional[str] = None,
    ) -> MutationResult:
        error = exc.to_error()
        error.task_id = task_id
        error.depends_on = depends_on
        return MutationResult(
            success=False,
            action=action,
            task_id=task_id,
            depends_on=depends_on,
            dependency_type=dep_type,
            error=error,
        )
