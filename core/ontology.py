"""
DEPENDENCY ONTOLOGY - The Dictionary of the Engine

If schemas.py is the Grammar (how records are structured on the wire),
ontology.py is the Dictionary (the words the engine understands).

This module defines:
- Enums: task statuses, priorities, dependency types
- Audit vocabulary: check names, issue types, severities, fix actions
- Error kinds: the stable names callers branch on
- Keyword tables used by the logical-dependency heuristics

Tasks carry status/priority as plain strings. The engine compares against
the enum values but never rejects an unfamiliar status - the task payload
belongs to the store, not to this engine.
"""
from typing import Dict, Optional, Tuple
from enum import Enum


# =============================================================================
# TASK VOCABULARY
# =============================================================================

class TaskStatus(str, Enum):
    """Lifecycle states of a task."""
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    BLOCKED = "blocked"
    CANCELLED = "cancelled"


class TaskPriority(str, Enum):
    """Task priority levels."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class DependencyType(str, Enum):
    """Semantics of a dependency edge (task -> depends_on)."""
    BLOCKING = "blocking"                  # Default
    RELATED = "related"                    # Informational only
    OPTIONAL = "optional"                  # Informational only
    FINISH_TO_START = "finish-to-start"
    START_TO_START = "start-to-start"
    FINISH_TO_FINISH = "finish-to-finish"
    START_TO_FINISH = "start-to-finish"


DEFAULT_DEPENDENCY_TYPE = DependencyType.BLOCKING.value

# low -> medium -> high; used by the priority auto-fix
PRIORITY_LADDER: Tuple[str, ...] = (
    TaskPriority.LOW.value,
    TaskPriority.MEDIUM.value,
    TaskPriority.HIGH.value,
)


def next_priority(priority: str) -> Optional[str]:
    """Return the priority one level above, or None at the top/unknown."""
    if priority not in PRIORITY_LADDER:
        return None
    idx = PRIORITY_LADDER.index(priority)
    if idx + 1 >= len(PRIORITY_LADDER):
        return None
    return PRIORITY_LADDER[idx + 1]


def is_known_dependency_type(type_str: str) -> bool:
    """Check if a string is a valid DependencyType value."""
    return type_str in {dt.value for dt in DependencyType}


# =============================================================================
# AUDIT VOCABULARY
# =============================================================================

class AuditCheck(str, Enum):
    """Check subsets the auditor can run."""
    FULL = "full"
    CYCLES = "cycles"
    LOGICAL = "logical"
    ORPHANS = "orphans"
    REDUNDANT = "redundant"
    CRITICAL_PATH = "critical-path"


class IssueSeverity(str, Enum):
    """Severity of an audit issue."""
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


# Ordering for min-severity filtering ("all" lets everything through)
SEVERITY_RANK: Dict[str, int] = {
    "all": 0,
    IssueSeverity.INFO.value: 1,
    IssueSeverity.WARNING.value: 2,
    IssueSeverity.CRITICAL.value: 3,
}


class IssueType(str, Enum):
    """Categories of audit issues."""
    CYCLE = "cycle"
    MISSING_DEPENDENCY = "missing-dependency"
    LOGICAL_INCONSISTENCY = "logical-inconsistency"
    STATUS_INCONSISTENCY = "status-inconsistency"
    PRIORITY_INCONSISTENCY = "priority-inconsistency"
    ORPHANED_TASK = "orphaned-task"
    REDUNDANT_DEPENDENCY = "redundant-dependency"
    CRITICAL_PATH = "critical-path"


class FixAction(str, Enum):
    """Mechanical remediations the auditor knows how to apply."""
    REMOVE_DEPENDENCY = "remove-dependency"
    ADJUST_PRIORITY = "adjust-priority"
    REMOVE_REDUNDANT_DEPENDENCY = "remove-redundant-dependency"


class ChangeAction(str, Enum):
    """Change-log actions."""
    ADD = "add"
    REMOVE = "remove"


# =============================================================================
# ERROR KINDS
# =============================================================================

class ErrorKind(str, Enum):
    """Stable error names carried by structured failure results."""
    SELF_DEPENDENCY = "SelfDependencyError"
    TASK_NOT_FOUND = "TaskNotFoundError"
    CIRCULAR_DEPENDENCY = "CircularDependencyError"
    DEPENDENCY_TYPE = "DependencyTypeError"
    REMOVAL_WARNING = "RemovalWarningError"
    MISSING_REFERENCE = "MissingReferenceError"


# Kinds that force=True may downgrade to warnings
FORCEABLE_ERRORS = frozenset({
    ErrorKind.CIRCULAR_DEPENDENCY,
    ErrorKind.DEPENDENCY_TYPE,
    ErrorKind.REMOVAL_WARNING,
})


# =============================================================================
# KEYWORD TABLES (Logical dependency heuristics)
# =============================================================================

SETUP_KEYWORDS: Tuple[str, ...] = ("setup", "configure", "install", "initialize")
DESIGN_KEYWORDS: Tuple[str, ...] = ("design", "architecture", "plan")
IMPLEMENTATION_KEYWORDS: Tuple[str, ...] = ("implement", "develop")
BUILD_KEYWORDS: Tuple[str, ...] = ("implement", "build")
TEST_KEYWORDS: Tuple[str, ...] = ("test",)

# Domain words that suggest two tasks touch the same component
SHARED_COMPONENT_KEYWORDS: Tuple[str, ...] = (
    "database",
    "api",
    "service",
    "interface",
    "component",
    "module",
    "system",
)
