"""
GRAPH AUDITOR - Whole-Graph Validation and Auto-Fix

Where the mutator checks one edge, the auditor checks everything:

Checks (run in this order):
1. cycles        - every cycle found by the DFS scan (critical)
2. logical       - missing references (critical), keyword-ordering
                   smells, status and priority mismatches
3. orphans       - tasks with no edges at all (info)
4. redundant     - direct edges implied by a longer path (info)
5. critical-path - bottlenecks (warning) and long chains (info)

Auto-fix:
- Missing references: drop the dangling edge
- Priority mismatch: raise the dependency one priority level
- Redundant edge: drop the direct edge
Each fix is checked against the current state first and then applied
whole, or not at all. After any applied fix the same checks run again so
the report describes the repaired graph.

Metrics are computed with polars from the graph's tabular export.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional, Set, Union

import msgspec
import polars as pl

from core.cycles import find_all_cycles
from core.graph_model import DependencyGraph, GraphError
from core.heuristics import is_implementation_before_setup, is_questionable_order
from core.ontology import (
    AuditCheck,
    ErrorKind,
    FixAction,
    IssueSeverity,
    IssueType,
    SEVERITY_RANK,
    TaskPriority,
    TaskStatus,
    next_priority,
)
from core.reachability import chain_lengths, find_indirect_path
from core.schemas import DependencyError, TaskCollection, TaskData
from infrastructure.config import EngineConfig

logger = logging.getLogger(__name__)

# Order checks run in when several are requested
CHECK_ORDER = (
    AuditCheck.CYCLES.value,
    AuditCheck.LOGICAL.value,
    AuditCheck.ORPHANS.value,
    AuditCheck.REDUNDANT.value,
    AuditCheck.CRITICAL_PATH.value,
)


# =============================================================================
# AUDIT ERRORS
# =============================================================================

class MissingReferenceError(GraphError):
    """An edge points at a task that is not in the collection."""
    kind = ErrorKind.MISSING_REFERENCE

    def __init__(self, task_id: str, missing_id: str):
        self.task_id = task_id
        self.depends_on = missing_id
        super().__init__(f"Task {task_id} depends on non-existent task: {missing_id}")


# =============================================================================
# REPORT RECORDS
# =============================================================================

class AuditIssue(msgspec.Struct, kw_only=True, rename="camel", omit_defaults=True):
    """
    One finding.

    Wire form always carries type, severity, title, description,
    affectedTasks, suggestion and autoFixable; the rest only when set.
    """
    type: str
    severity: str
    title: str
    description: str
    affected_tasks: List[str]
    suggestion: str
    auto_fixable: bool
    auto_fix_action: Optional[str] = None
    cycle_path: List[str] = msgspec.field(default_factory=list)
    missing_task_id: Optional[str] = None
    redundant_dep: Optional[str] = None
    path: List[str] = msgspec.field(default_factory=list)
    error: Optional[DependencyError] = None


class FixResult(msgspec.Struct, kw_only=True, rename="camel"):
    """Outcome of one auto-fix attempt."""
    issue_type: str
    applied: bool
    reason: str


class AuditReport(msgspec.Struct, kw_only=True, rename="camel", omit_defaults=True):
    """Issues, numeric summary, optional metrics and fix results."""
    checks: List[str]
    issues: List[AuditIssue]
    summary: Dict[str, int]
    metrics: Optional[Dict[str, Any]] = None
    fixes: List[FixResult] = msgspec.field(default_factory=list)

    def by_type(self, issue_type: str) -> List[AuditIssue]:
        return [i for i in self.issues if i.type == issue_type]

    def by_severity(self, severity: str) -> List[AuditIssue]:
        return [i for i in self.issues if i.severity == severity]

    @property
    def fixes_applied(self) -> int:
        return sum(1 for f in self.fixes if f.applied)

    def to_dict(self) -> Dict[str, Any]:
        return msgspec.to_builtins(self)


# =============================================================================
# GRAPH AUDITOR
# =============================================================================

class GraphAuditor:
    """
    Runs audit checks over a collection and optionally repairs it.

    Usage:
        auditor = GraphAuditor(collection)
        report = auditor.audit("full")
        report = auditor.audit(["redundant", "orphans"], fix=True)
        report = auditor.audit(min_severity="warning")
    """

    def __init__(self, collection: TaskCollection, config: Optional[EngineConfig] = None):
        self.collection = collection
        self.config = config or EngineConfig()

    def audit(
        self,
        checks: Union[str, Iterable[str]] = "full",
        *,
        fix: bool = False,
        min_severity: str = "all",
        include_metrics: bool = True,
    ) -> AuditReport:
        """
        Run the requested checks.

        Args:
            checks: One check name or several ("full" means all)
            fix: Apply auto-fixes to reported issues, then re-run
            min_severity: all | info | warning | critical
            include_metrics: Attach dependency metrics

        Raises:
            ValueError: On an unknown check name or severity
        """
        selected = normalize_checks(checks)
        if min_severity not in SEVERITY_RANK:
            raise ValueError(f"Unknown severity: {min_severity}")

        graph = DependencyGraph(self.collection)
        issues = self._run_checks(graph, selected)
        reported = filter_by_severity(issues, min_severity)

        fixes: List[FixResult] = []
        if fix:
            fixes = self.apply_fixes(graph, reported)
            if any(f.applied for f in fixes):
                graph = DependencyGraph(self.collection)
                issues = self._run_checks(graph, selected)
                reported = filter_by_severity(issues, min_severity)

        tasks_df = graph.to_polars_tasks()
        metrics = self.compute_metrics(graph, tasks_df) if include_metrics else None
        summary = self._summary(issues, reported, _task_counts(tasks_df))

        logger.info(
            f"[AUDIT] {','.join(selected)}: {summary['total']} issue(s) "
            f"({summary['critical']} critical, {summary['warning']} warning, {summary['info']} info)"
        )

        return AuditReport(
            checks=selected,
            issues=reported,
            summary=summary,
            metrics=metrics,
            fixes=fixes,
        )

    def _run_checks(self, graph: DependencyGraph, selected: List[str]) -> List[AuditIssue]:
        issues: List[AuditIssue] = []
        if AuditCheck.CYCLES.value in selected:
            issues.extend(self.check_cycles(graph))
        if AuditCheck.LOGICAL.value in selected:
            issues.extend(self.check_logical(graph))
        if AuditCheck.ORPHANS.value in selected:
            issues.extend(self.check_orphans(graph))
        if AuditCheck.REDUNDANT.value in selected:
            issues.extend(self.check_redundant(graph))
        if AuditCheck.CRITICAL_PATH.value in selected:
            issues.extend(self.check_critical_path(graph))
        return issues

    # =========================================================================
    # CHECKS
    # =========================================================================

    def check_cycles(self, graph: DependencyGraph) -> List[AuditIssue]:
        issues = []
        for cycle in find_all_cycles(graph):
            issues.append(AuditIssue(
                type=IssueType.CYCLE.value,
                severity=IssueSeverity.CRITICAL.value,
                title="Circular Dependency Detected",
                description=f"Circular dependency found in task chain: {' -> '.join(cycle)}",
                affected_tasks=list(dict.fromkeys(cycle)),
                suggestion="Remove one or more dependencies to break the cycle",
                auto_fixable=False,
                cycle_path=cycle,
            ))
        return issues

    def check_logical(self, graph: DependencyGraph) -> List[AuditIssue]:
        """Missing references, ordering smells, status and priority mismatches."""
        issues = []
        for task in graph.iter_tasks():
            for dep_id in graph.neighbors(task.id):
                dep = graph.find_task(dep_id)
                if dep is None:
                    issues.append(self._missing_issue(task, dep_id))
                    continue
                issues.extend(self._edge_issues(task, dep))
        return issues

    def _missing_issue(self, task: TaskData, dep_id: str) -> AuditIssue:
        return AuditIssue(
            type=IssueType.MISSING_DEPENDENCY.value,
            severity=IssueSeverity.CRITICAL.value,
            title="Missing Dependency Task",
            description=f'Task "{task.title or task.id}" depends on non-existent task: {dep_id}',
            affected_tasks=[task.id],
            suggestion="Remove the dependency or create the missing task",
            auto_fixable=True,
            auto_fix_action=FixAction.REMOVE_DEPENDENCY.value,
            missing_task_id=dep_id,
            error=MissingReferenceError(task.id, dep_id).to_error(),
        )

    def _edge_issues(self, task: TaskData, dep: TaskData) -> List[AuditIssue]:
        issues = []
        task_title = task.title or task.id
        dep_title = dep.title or dep.id

        if is_questionable_order(task, dep):
            issues.append(AuditIssue(
                type=IssueType.LOGICAL_INCONSISTENCY.value,
                severity=IssueSeverity.WARNING.value,
                title="Questionable Dependency Order",
                description=(
                    f'Testing task "{task_title}" depends on implementation task '
                    f'"{dep_title}" - this may be backwards'
                ),
                affected_tasks=[task.id, dep.id],
                suggestion="Consider if the implementation should depend on the test specification instead",
                auto_fixable=False,
            ))

        if is_implementation_before_setup(task, dep):
            issues.append(AuditIssue(
                type=IssueType.LOGICAL_INCONSISTENCY.value,
                severity=IssueSeverity.WARNING.value,
                title="Implementation Completed Before Setup",
                description=(
                    f'Implementation task "{task_title}" is completed but setup '
                    f'dependency "{dep_title}" is still pending'
                ),
                affected_tasks=[task.id, dep.id],
                suggestion="Verify if the setup was actually completed and update task status",
                auto_fixable=False,
            ))

        finished = (TaskStatus.COMPLETED.value, TaskStatus.CANCELLED.value)
        if task.status == TaskStatus.COMPLETED.value and dep.status not in finished:
            issues.append(AuditIssue(
                type=IssueType.STATUS_INCONSISTENCY.value,
                severity=IssueSeverity.WARNING.value,
                title="Completed Task with Incomplete Dependency",
                description=f'Task "{task_title}" is completed but dependency "{dep_title}" is {dep.status}',
                affected_tasks=[task.id, dep.id],
                suggestion="Verify task completion or update dependency status",
                auto_fixable=False,
            ))
        elif task.status == TaskStatus.IN_PROGRESS.value and dep.status == TaskStatus.PENDING.value:
            issues.append(AuditIssue(
                type=IssueType.STATUS_INCONSISTENCY.value,
                severity=IssueSeverity.INFO.value,
                title="Task Started Before Dependency",
                description=f'Task "{task_title}" is in progress but dependency "{dep_title}" is still pending',
                affected_tasks=[task.id, dep.id],
                suggestion="Consider starting the dependency task if this is a blocking relationship",
                auto_fixable=False,
            ))

        if task.priority == TaskPriority.HIGH.value and dep.priority == TaskPriority.LOW.value:
            issues.append(AuditIssue(
                type=IssueType.PRIORITY_INCONSISTENCY.value,
                severity=IssueSeverity.INFO.value,
                title="Priority Mismatch",
                description=f'High priority task "{task_title}" depends on low priority task "{dep_title}"',
                affected_tasks=[task.id, dep.id],
                suggestion="Consider increasing dependency priority or reviewing task priorities",
                auto_fixable=True,
                auto_fix_action=FixAction.ADJUST_PRIORITY.value,
            ))

        return issues

    def check_orphans(self, graph: DependencyGraph) -> List[AuditIssue]:
        issues = []
        for task in graph.iter_tasks():
            if graph.neighbors(task.id) or graph.dependents(task.id):
                continue
            issues.append(AuditIssue(
                type=IssueType.ORPHANED_TASK.value,
                severity=IssueSeverity.INFO.value,
                title="Orphaned Task",
                description=f'Task "{task.title or task.id}" has no dependencies and no other tasks depend on it',
                affected_tasks=[task.id],
                suggestion="Review if this task needs dependencies or if other tasks should depend on it",
                auto_fixable=False,
            ))
        return issues

    def check_redundant(self, graph: DependencyGraph) -> List[AuditIssue]:
        """Direct edges that a path of two or more edges already implies."""
        issues = []
        for task in graph.iter_tasks():
            deps = graph.neighbors(task.id)
            if len(deps) <= 1:
                continue
            for dep_id in deps:
                path = find_indirect_path(graph, task.id, dep_id, exclude_direct_edge=True)
                if not path:
                    continue
                dep = graph.find_task(dep_id)
                dep_title = dep.title if dep and dep.title else dep_id
                issues.append(AuditIssue(
                    type=IssueType.REDUNDANT_DEPENDENCY.value,
                    severity=IssueSeverity.INFO.value,
                    title="Redundant Dependency",
                    description=(
                        f'Task "{task.title or task.id}" has redundant dependency on '
                        f'"{dep_title}" via path: {" -> ".join(path)}'
                    ),
                    affected_tasks=[task.id, dep_id],
                    suggestion="Consider removing the direct dependency as an indirect path exists",
                    auto_fixable=True,
                    auto_fix_action=FixAction.REMOVE_REDUNDANT_DEPENDENCY.value,
                    redundant_dep=dep_id,
                    path=path,
                ))
        return issues

    def check_critical_path(self, graph: DependencyGraph) -> List[AuditIssue]:
        """Bottlenecks and long chains."""
        issues = []
        for task in graph.iter_tasks():
            dependent_count = len(graph.dependents(task.id))
            if dependent_count >= self.config.bottleneck_threshold:
                issues.append(AuditIssue(
                    type=IssueType.CRITICAL_PATH.value,
                    severity=IssueSeverity.WARNING.value,
                    title="Potential Bottleneck",
                    description=(
                        f'Task "{task.title or task.id}" has {dependent_count} dependent tasks, '
                        f"creating a potential bottleneck"
                    ),
                    affected_tasks=[task.id],
                    suggestion="Consider parallelizing some dependent tasks or breaking down this task",
                    auto_fixable=False,
                ))

        for task_id, length in chain_lengths(graph).items():
            if length >= self.config.long_chain_threshold:
                task = graph.get_task(task_id)
                issues.append(AuditIssue(
                    type=IssueType.CRITICAL_PATH.value,
                    severity=IssueSeverity.INFO.value,
                    title="Long Dependency Chain",
                    description=f'Task "{task.title or task_id}" has a dependency chain of {length} tasks',
                    affected_tasks=[task_id],
                    suggestion="Review if some dependencies can be parallelized",
                    auto_fixable=False,
                ))
        return issues

    # =========================================================================
    # AUTO-FIX
    # =========================================================================

    def apply_fixes(self, graph: DependencyGraph, issues: List[AuditIssue]) -> List[FixResult]:
        """
        Try every issue in order; one FixResult per issue.

        The graph is kept in sync with each applied edge removal so later
        fixes see earlier ones.
        """
        results = []
        for issue in issues:
            if not issue.auto_fixable:
                results.append(FixResult(
                    issue_type=issue.type,
                    applied=False,
                    reason="Issue is not auto-fixable",
                ))
                continue
            try:
                reason = self._apply_fix(graph, issue)
            except GraphError as e:
                logger.warning(f"[FIX] {issue.type} failed: {e}")
                results.append(FixResult(issue_type=issue.type, applied=False, reason=f"Auto-fix error: {e}"))
                continue

            applied = reason is None
            results.append(FixResult(
                issue_type=issue.type,
                applied=applied,
                reason="Auto-fix applied successfully" if applied else reason,
            ))
        return results

    def _apply_fix(self, graph: DependencyGraph, issue: AuditIssue) -> Optional[str]:
        """Apply one fix. Returns None on success, else why it was skipped."""
        action = issue.auto_fix_action

        if action == FixAction.REMOVE_DEPENDENCY.value:
            task_id, dep_id = issue.affected_tasks[0], issue.missing_task_id
            if not graph.has_edge(task_id, dep_id):
                return "Dependency is no longer present"
            self._drop_edge(graph, task_id, dep_id)
            return None

        if action == FixAction.ADJUST_PRIORITY.value:
            task = graph.get_task(issue.affected_tasks[0])
            dep = graph.get_task(issue.affected_tasks[1])
            if task.priority != TaskPriority.HIGH.value or dep.priority != TaskPriority.LOW.value:
                return "Priority mismatch no longer present"
            dep.priority = next_priority(dep.priority)
            dep.touch()
            logger.info(f"[FIX] Raised {dep.id} priority to {dep.priority}")
            return None

        if action == FixAction.REMOVE_REDUNDANT_DEPENDENCY.value:
            task_id, dep_id = issue.affected_tasks[0], issue.redundant_dep
            if not graph.has_edge(task_id, dep_id):
                return "Dependency is no longer present"
            if not find_indirect_path(graph, task_id, dep_id, exclude_direct_edge=True):
                return "Dependency is no longer redundant"
            self._drop_edge(graph, task_id, dep_id)
            return None

        return f"Unknown auto-fix action: {action}"

    def _drop_edge(self, graph: DependencyGraph, task_id: str, dep_id: str) -> None:
        task = graph.get_task(task_id)
        task.drop_dependency(dep_id)
        task.touch()
        self.collection.bump_dependency_counter(-1)
        graph.remove_edge(task_id, dep_id)
        logger.info(f"[FIX] Removed {task_id} -> {dep_id}")

    # =========================================================================
    # SUMMARY & METRICS
    # =========================================================================

    def _summary(
        self,
        issues: List[AuditIssue],
        reported: List[AuditIssue],
        counts_by_table: Dict[str, int],
    ) -> Dict[str, int]:
        counts = {s.value: 0 for s in IssueSeverity}
        for issue in reported:
            counts[issue.severity] = counts.get(issue.severity, 0) + 1

        return {
            "critical": counts[IssueSeverity.CRITICAL.value],
            "warning": counts[IssueSeverity.WARNING.value],
            "info": counts[IssueSeverity.INFO.value],
            "total": len(reported),
            **counts_by_table,
            "cyclesFound": sum(1 for i in issues if i.type == IssueType.CYCLE.value),
            "orphanedTasks": sum(1 for i in issues if i.type == IssueType.ORPHANED_TASK.value),
            "redundantDependencies": sum(
                1 for i in issues if i.type == IssueType.REDUNDANT_DEPENDENCY.value
            ),
        }

    def compute_metrics(
        self,
        graph: DependencyGraph,
        df: Optional[pl.DataFrame] = None,
    ) -> Dict[str, Any]:
        """Dependency metrics from the polars task table."""
        if df is None:
            df = graph.to_polars_tasks()
        counts = _task_counts(df)
        total_tasks = counts["totalTasks"]
        total_deps = counts["totalDependencies"]

        distribution = (
            df.group_by("dependency_count")
            .agg(pl.len().alias("tasks"))
            .sort("dependency_count")
        )
        lengths = chain_lengths(graph)

        return {
            **counts,
            "averageDependenciesPerTask": round(total_deps / total_tasks, 2) if total_tasks else 0,
            "maxDependencies": int(df["dependency_count"].max() or 0),
            "tasksWithNoDependencies": df.filter(pl.col("dependency_count") == 0).height,
            "tasksWithNoDependents": df.filter(pl.col("dependent_count") == 0).height,
            "longestDependencyChain": max(lengths.values(), default=0),
            "dependencyDistribution": {
                str(row["dependency_count"]): row["tasks"]
                for row in distribution.iter_rows(named=True)
            },
        }


# =============================================================================
# HELPERS
# =============================================================================

def _task_counts(df: pl.DataFrame) -> Dict[str, int]:
    """Task and edge totals shared by the summary and the metrics."""
    return {
        "totalTasks": df.height,
        "tasksWithDependencies": df.filter(pl.col("dependency_count") > 0).height,
        "totalDependencies": int(df["dependency_count"].sum() or 0),
    }


def normalize_checks(checks: Union[str, Iterable[str]]) -> List[str]:
    """
    Expand a check selection into the ordered list of checks to run.

    Raises:
        ValueError: On an unknown check name
    """
    requested: Set[str] = {checks} if isinstance(checks, str) else set(checks)
    known = {c.value for c in AuditCheck}
    unknown = sorted(requested - known)
    if unknown:
        raise ValueError(f"Unknown audit check(s): {', '.join(unknown)}")
    if not requested or AuditCheck.FULL.value in requested:
        return list(CHECK_ORDER)
    return [c for c in CHECK_ORDER if c in requested]


def filter_by_severity(issues: List[AuditIssue], min_severity: str) -> List[AuditIssue]:
    """Keep issues at or above min_severity ("all" keeps everything)."""
    floor = SEVERITY_RANK[min_severity]
    return [i for i in issues if SEVERITY_RANK.get(i.severity, 1) >= floor]


def audit_collection(
    collection: TaskCollection,
    checks: Union[str, Iterable[str]] = "full",
    config: Optional[EngineConfig] = None,
    **kwargs: Any,
) -> AuditReport:
    """Convenience wrapper: GraphAuditor(collection).audit(...)."""
    return GraphAuditor(collection, config=config).audit(checks, **kwargs)
