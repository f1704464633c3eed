"""
Unit tests for core/auditor.py - GraphAuditor

Tests:
- Each check on hand-built graphs
- Severity filtering and summary counts
- Auto-fix (missing reference, priority mismatch, redundant edge)
- Fix idempotence and re-audit after fixing
- Polars-backed metrics
"""
import time

import pytest

from core.auditor import (
    GraphAuditor,
    audit_collection,
    filter_by_severity,
    normalize_checks,
)
from core.mutator import GraphMutator
from core.ontology import IssueType
from core.schemas import TaskCollection

from conftest import make_layered_tasks, make_task


# =============================================================================
# FULL AUDIT ON THE SAMPLE PROJECT
# =============================================================================

def test_full_audit_of_sample(sample_collection):
    """
    Validate the findings on a small realistic project.

    Verifies:
    - The tests -> api edge is flagged as questionable ordering
    - docs is orphaned
    - frontend -> setup is redundant via api
    - Summary counts match
    """
    report = GraphAuditor(sample_collection).audit()

    assert [i.title for i in report.issues] == [
        "Questionable Dependency Order",
        "Orphaned Task",
        "Redundant Dependency",
    ]
    redundant = report.by_type(IssueType.REDUNDANT_DEPENDENCY.value)[0]
    assert redundant.affected_tasks == ["frontend", "setup"]
    assert redundant.path == ["frontend", "api", "setup"]

    summary = report.summary
    assert summary["total"] == 3
    assert summary["critical"] == 0
    assert summary["warning"] == 1
    assert summary["info"] == 2
    assert summary["cyclesFound"] == 0
    assert summary["orphanedTasks"] == 1
    assert summary["redundantDependencies"] == 1
    assert summary["totalTasks"] == 5
    assert summary["tasksWithDependencies"] == 3
    assert summary["totalDependencies"] == 4


def test_metrics_of_sample(sample_collection):
    metrics = GraphAuditor(sample_collection).audit("orphans").metrics

    assert metrics["averageDependenciesPerTask"] == 0.8
    assert metrics["maxDependencies"] == 2
    assert metrics["tasksWithNoDependencies"] == 2
    assert metrics["tasksWithNoDependents"] == 3
    assert metrics["longestDependencyChain"] == 3
    assert metrics["dependencyDistribution"] == {"0": 2, "1": 2, "2": 1}


def test_metrics_can_be_omitted(sample_collection):
    report = GraphAuditor(sample_collection).audit(include_metrics=False)

    assert report.metrics is None
    assert "metrics" not in report.to_dict()


def test_empty_collection_audits_cleanly():
    report = GraphAuditor(TaskCollection()).audit()

    assert report.issues == []
    assert report.metrics["totalTasks"] == 0
    assert report.metrics["averageDependenciesPerTask"] == 0
    assert report.metrics["longestDependencyChain"] == 0


# =============================================================================
# CHECK SELECTION & SEVERITY
# =============================================================================

def test_normalize_checks():
    assert normalize_checks("full") == ["cycles", "logical", "orphans", "redundant", "critical-path"]
    assert normalize_checks(["orphans", "cycles"]) == ["cycles", "orphans"]
    assert normalize_checks([]) == normalize_checks("full")

    with pytest.raises(ValueError):
        normalize_checks(["cycles", "vibes"])


def test_unknown_severity_is_rejected(sample_collection):
    with pytest.raises(ValueError):
        GraphAuditor(sample_collection).audit(min_severity="urgent")


def test_min_severity_filters_reported_issues(sample_collection):
    """Severity counts follow the filter; type counters do not."""
    report = GraphAuditor(sample_collection).audit(min_severity="warning")

    assert [i.severity for i in report.issues] == ["warning"]
    assert report.summary["total"] == 1
    assert report.summary["info"] == 0
    assert report.summary["orphanedTasks"] == 1
    assert report.summary["redundantDependencies"] == 1


def test_filter_by_severity_all_keeps_everything(sample_collection):
    issues = GraphAuditor(sample_collection).audit().issues

    assert filter_by_severity(issues, "all") == issues
    assert filter_by_severity(issues, "critical") == []


# =============================================================================
# INDIVIDUAL CHECKS
# =============================================================================

def test_forced_cycle_yields_exactly_one_cycle_issue(chain_collection):
    GraphMutator(chain_collection).add_dependency("C", "A", force=True)

    report = GraphAuditor(chain_collection).audit("cycles")

    assert len(report.issues) == 1
    issue = report.issues[0]
    assert issue.severity == "critical"
    assert issue.cycle_path == ["A", "B", "C", "A"]
    assert issue.affected_tasks == ["A", "B", "C"]
    assert issue.description == "Circular dependency found in task chain: A -> B -> C -> A"
    assert report.summary["cyclesFound"] == 1


def test_missing_reference_is_critical_and_fixable():
    collection = TaskCollection.of(make_task("A", ["ghost"]))

    issue = GraphAuditor(collection).audit("logical").issues[0]

    assert issue.type == IssueType.MISSING_DEPENDENCY.value
    assert issue.severity == "critical"
    assert issue.missing_task_id == "ghost"
    assert issue.auto_fixable
    assert issue.error.kind == "MissingReferenceError"
    assert issue.error.message == "Task A depends on non-existent task: ghost"


def test_status_inconsistencies():
    """
    Verifies:
    - completed -> pending is a warning
    - in-progress -> pending is info
    - completed -> cancelled is fine
    """
    collection = TaskCollection.of(
        make_task("done", ["todo"], status="completed"),
        make_task("doing", ["todo"], status="in-progress"),
        make_task("closed", ["dropped"], status="completed"),
        make_task("todo"),
        make_task("dropped", status="cancelled"),
    )

    issues = GraphAuditor(collection).audit("logical").issues

    assert [(i.title, i.severity) for i in issues] == [
        ("Completed Task with Incomplete Dependency", "warning"),
        ("Task Started Before Dependency", "info"),
    ]


def test_implementation_completed_before_setup():
    collection = TaskCollection.of(
        make_task("impl", ["cfg"], title="Implement sync", status="completed"),
        make_task("cfg", title="Configure queue"),
    )

    titles = [i.title for i in GraphAuditor(collection).audit("logical").issues]

    assert "Implementation Completed Before Setup" in titles
    assert "Completed Task with Incomplete Dependency" in titles


def test_orphan_flag_cleared_by_adding_edge(sample_collection):
    auditor = GraphAuditor(sample_collection)
    assert auditor.audit("orphans").issues[0].affected_tasks == ["docs"]

    GraphMutator(sample_collection).add_dependency("frontend", "docs")

    assert auditor.audit("orphans").issues == []


def test_single_dependency_is_never_redundant(chain_collection):
    assert GraphAuditor(chain_collection).audit("redundant").issues == []


def test_bottleneck_and_long_chain():
    """
    hub has three dependents; a 5-task chain ends at hub.
    """
    collection = TaskCollection.of(
        make_task("hub"),
        make_task("a", ["hub"]),
        make_task("b", ["hub"]),
        make_task("c", ["hub"]),
        make_task("d", ["c"]),
        make_task("e", ["d"]),
        make_task("f", ["e"]),
    )

    issues = GraphAuditor(collection).audit("critical-path").issues

    bottlenecks = [i for i in issues if i.title == "Potential Bottleneck"]
    chains = [i for i in issues if i.title == "Long Dependency Chain"]
    assert [i.affected_tasks for i in bottlenecks] == [["hub"]]
    assert bottlenecks[0].severity == "warning"
    assert [i.affected_tasks for i in chains] == [["f"]]
    assert chains[0].description == 'Task "Task f" has a dependency chain of 5 tasks'


def test_thresholds_come_from_config(chain_collection, engine_config):
    config = engine_config.with_overrides(long_chain_threshold=3)

    issues = audit_collection(chain_collection, "critical-path", config=config).issues

    assert [i.affected_tasks for i in issues] == [["A"]]


# =============================================================================
# AUTO-FIX
# =============================================================================

def test_fix_redundant_edge_is_idempotent(sample_collection):
    """
    Validate that fixing twice equals fixing once.

    Verifies:
    - The redundant frontend -> setup edge is removed once
    - The counter is decremented
    - Non-fixable issues report why they were skipped
    - A second fix pass applies nothing
    """
    auditor = GraphAuditor(sample_collection)

    first = auditor.audit(fix=True)

    assert first.fixes_applied == 1
    assert [f.reason for f in first.fixes] == [
        "Issue is not auto-fixable",
        "Issue is not auto-fixable",
        "Auto-fix applied successfully",
    ]
    assert sample_collection.get_task("frontend").dependencies == ["api"]
    assert sample_collection.total_dependencies == 3
    assert first.by_type(IssueType.REDUNDANT_DEPENDENCY.value) == []

    second = auditor.audit(fix=True)

    assert second.fixes_applied == 0
    assert sample_collection.get_task("frontend").dependencies == ["api"]
    assert sample_collection.total_dependencies == 3


def test_fix_missing_reference():
    collection = TaskCollection.of(make_task("A", ["ghost", "B"]), make_task("B"))

    report = GraphAuditor(collection).audit("logical", fix=True)

    assert report.fixes_applied == 1
    assert collection.get_task("A").dependencies == ["B"]
    assert report.issues == []


def test_fix_priority_mismatch_raises_dependency_priority():
    collection = TaskCollection.of(
        make_task("hi", ["lo"], priority="high"),
        make_task("lo", priority="low"),
    )

    report = GraphAuditor(collection).audit("logical", fix=True)

    assert report.fixes_applied == 1
    assert collection.get_task("lo").priority == "medium"
    assert report.issues == []


def test_fix_only_touches_reported_issues(sample_collection):
    """With min_severity=warning the info-level redundant edge is left alone."""
    report = GraphAuditor(sample_collection).audit(fix=True, min_severity="warning")

    assert report.fixes_applied == 0
    assert sample_collection.get_task("frontend").dependencies == ["api", "setup"]


def test_redundant_fix_rechecks_before_removing():
    """
    A -> B and A -> C each look redundant because B and C reach each
    other. Once A -> B is dropped, A -> C is the only route and stays.
    """
    collection = TaskCollection.of(
        make_task("A", ["B", "C"]),
        make_task("B", ["C"]),
        make_task("C", ["B"]),
    )

    report = GraphAuditor(collection).audit("redundant", fix=True)

    assert [f.reason for f in report.fixes] == [
        "Auto-fix applied successfully",
        "Dependency is no longer redundant",
    ]
    assert collection.get_task("A").dependencies == ["C"]
    assert report.issues == []


# =============================================================================
# SCALE
# =============================================================================

@pytest.mark.parametrize("checks", ["cycles", "full"])
def test_audit_of_large_cyclic_graph_is_fast(checks):
    """
    Validate the audit on 300 tasks in 150 fully connected layers with
    one back edge, which creates an exponential number of cyclic paths.

    Verifies:
    - The audit finishes well inside the time bound
    - Exactly one cycle is reported
    """
    layers = 150
    collection = TaskCollection.of(*make_layered_tasks(layers))

    start = time.perf_counter()
    report = GraphAuditor(collection).audit(checks, include_metrics=False)
    elapsed = time.perf_counter() - start

    assert elapsed < 10.0
    assert report.summary["cyclesFound"] == 1
    assert report.summary["totalTasks"] == 2 * layers
    assert report.metrics is None


def test_metrics_on_large_cyclic_graph():
    """The chain through the cycle counts every member once."""
    layers = 150
    collection = TaskCollection.of(*make_layered_tasks(layers))

    start = time.perf_counter()
    metrics = GraphAuditor(collection).audit("critical-path").metrics
    elapsed = time.perf_counter() - start

    assert elapsed < 10.0
    assert metrics["longestDependencyChain"] == 2 * layers
