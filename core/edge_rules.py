"""
EDGE TYPE VALIDATOR - Semantic Rules per Dependency Type

Each dependency type constrains the status/priority pairing of its two
endpoints. A rule receives (task, dependency_task) and returns a reason
string when the pairing is rejected, or None when it is fine.

Rules are advisory: the mutator lets `force` carry an edge past a
rejection.
"""
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from core.ontology import DependencyType, TaskPriority, TaskStatus
from core.schemas import TaskData


@dataclass
class TypeValidation:
    """Outcome of a dependency-type check."""
    is_valid: bool
    reason: str = ""


EdgeRule = Callable[[TaskData, TaskData], Optional[str]]


# =============================================================================
# RULES
# =============================================================================

def _blocking(task: TaskData, dep: TaskData) -> Optional[str]:
    if task.priority == TaskPriority.HIGH.value and dep.priority == TaskPriority.LOW.value:
        return "High priority task should not be blocked by low priority task"
    return None


def _finish_to_start(task: TaskData, dep: TaskData) -> Optional[str]:
    if dep.status == TaskStatus.PENDING.value and task.status == TaskStatus.COMPLETED.value:
        return (
            "Cannot create finish-to-start dependency: "
            "dependent task is completed while dependency is pending"
        )
    return None


def _start_to_start(task: TaskData, dep: TaskData) -> Optional[str]:
    if task.status != TaskStatus.PENDING.value and dep.status == TaskStatus.PENDING.value:
        return (
            "Cannot create start-to-start dependency: "
            "task has started but dependency has not"
        )
    return None


def _finish_to_finish(task: TaskData, dep: TaskData) -> Optional[str]:
    if task.status == TaskStatus.COMPLETED.value and dep.status != TaskStatus.COMPLETED.value:
        return (
            "Cannot create finish-to-finish dependency: "
            "task is completed but dependency is not"
        )
    return None


def _start_to_finish(task: TaskData, dep: TaskData) -> Optional[str]:
    if task.status == TaskStatus.COMPLETED.value and dep.status == TaskStatus.PENDING.value:
        return (
            "Cannot create start-to-finish dependency: "
            "task is completed but dependency has not started"
        )
    return None


def _informational(task: TaskData, dep: TaskData) -> Optional[str]:
    return None


EDGE_RULES: Dict[str, EdgeRule] = {
    DependencyType.BLOCKING.value: _blocking,
    DependencyType.FINISH_TO_START.value: _finish_to_start,
    DependencyType.START_TO_START.value: _start_to_start,
    DependencyType.FINISH_TO_FINISH.value: _finish_to_finish,
    DependencyType.START_TO_FINISH.value: _start_to_finish,
    DependencyType.RELATED.value: _informational,
    DependencyType.OPTIONAL.value: _informational,
}


# =============================================================================
# VALIDATION
# =============================================================================

def validate_dependency_type(
    task: TaskData,
    dependency_task: TaskData,
    dep_type: str,
) -> TypeValidation:
    """
    Check whether `task` may depend on `dependency_task` with `dep_type`.

    Unrecognized types are always rejected.
    """
    rule = EDGE_RULES.get(dep_type)
    if rule is None:
        return TypeValidation(is_valid=False, reason=f"Unknown dependency type: {dep_type}")

    reason = rule(task, dependency_task)
    if reason:
        return TypeValidation(is_valid=False, reason=reason)
    return TypeValidation(is_valid=True)
