"""
Keyword and priority heuristics shared by the mutator and the auditor.

None of these are exact. They read task titles, descriptions, skills and
priorities to flag edges a human should look at twice.
"""
from dataclasses import dataclass, field
from typing import List

from core.graph_model import DependencyGraph
from core.ontology import (
    TaskPriority,
    TaskStatus,
    SETUP_KEYWORDS,
    DESIGN_KEYWORDS,
    IMPLEMENTATION_KEYWORDS,
    BUILD_KEYWORDS,
    TEST_KEYWORDS,
    SHARED_COMPONENT_KEYWORDS,
)
from core.schemas import TaskData

# Narrower setup set used when auditing completed implementations
_AUDIT_SETUP_KEYWORDS = ("setup", "configure")


@dataclass
class LogicalDependency:
    """Whether an edge looks logically required, and why."""
    is_logical: bool
    reason: str = ""
    shared_components: List[str] = field(default_factory=list)


def _contains_any(text: str, keywords) -> bool:
    return any(kw in text for kw in keywords)


# =============================================================================
# CRITICAL PATH
# =============================================================================

def is_on_critical_path(graph: DependencyGraph, task_id: str) -> bool:
    """
    High priority AND at least one dependency or dependent.

    Not a CPM calculation. Unknown ids are never critical.
    """
    task = graph.find_task(task_id)
    if task is None:
        return False
    if task.priority != TaskPriority.HIGH.value:
        return False
    return bool(graph.neighbors(task_id)) or bool(graph.dependents(task_id))


# =============================================================================
# REMOVAL INFERENCE
# =============================================================================

def find_shared_components(task_text: str, dep_text: str) -> List[str]:
    """Component keywords present in both texts."""
    task_text = task_text.lower()
    dep_text = dep_text.lower()
    return [c for c in SHARED_COMPONENT_KEYWORDS if c in task_text and c in dep_text]


def check_logical_dependency(task: TaskData, dependency_task: TaskData) -> LogicalDependency:
    """
    Guess whether `task` genuinely needs `dependency_task`.

    Checked in order: setup before implementation, design before
    implementation, then component keywords shared by both descriptions.
    """
    task_title = task.title.lower()
    dep_title = dependency_task.title.lower()

    if _contains_any(dep_title, SETUP_KEYWORDS) and _contains_any(task_title, IMPLEMENTATION_KEYWORDS):
        return LogicalDependency(
            is_logical=True,
            reason="Setup/configuration tasks typically should complete before implementation",
        )

    if _contains_any(dep_title, DESIGN_KEYWORDS) and _contains_any(task_title, BUILD_KEYWORDS):
        return LogicalDependency(
            is_logical=True,
            reason="Design tasks should typically complete before implementation",
        )

    shared = find_shared_components(task.description or "", dependency_task.description or "")
    if shared:
        return LogicalDependency(
            is_logical=True,
            reason=f"Tasks share common components: {', '.join(shared)}",
            shared_components=shared,
        )

    return LogicalDependency(is_logical=False)


def shared_skills(task: TaskData, dependency_task: TaskData) -> List[str]:
    """Skills listed on both tasks, in the task's order."""
    dep_skills = set(dependency_task.skills or [])
    return [s for s in (task.skills or []) if s in dep_skills]


def would_unblock_prematurely(task: TaskData, dependency_task: TaskData) -> bool:
    """Removing the edge frees a waiting task before its dependency is done."""
    waiting = task.status in (TaskStatus.PENDING.value, TaskStatus.BLOCKED.value)
    return waiting and dependency_task.status != TaskStatus.COMPLETED.value


# =============================================================================
# AUDIT CHECKS
# =============================================================================

def is_questionable_order(task: TaskData, dependency_task: TaskData) -> bool:
    """A testing task depending on an implementation task."""
    return (
        _contains_any(task.title.lower(), TEST_KEYWORDS)
        and _contains_any(dependency_task.title.lower(), IMPLEMENTATION_KEYWORDS)
    )


def is_implementation_before_setup(task: TaskData, dependency_task: TaskData) -> bool:
    """A completed implementation whose setup dependency is still pending."""
    return (
        "implement" in task.title.lower()
        and _contains_any(dependency_task.title.lower(), _AUDIT_SETUP_KEYWORDS)
        and task.status == TaskStatus.COMPLETED.value
        and dependency_task.status == TaskStatus.PENDING.value
    )
