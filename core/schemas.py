"""
DEPENDENCY SCHEMAS - The Grammar of the Task Collection

If ontology.py is the Dictionary (the words we can use),
schemas.py is the Grammar (how records are laid out on the wire).

This module defines the records the engine reads and writes:
- DependencyDetail: metadata entry parallel to a simple dependency id
- TaskData: a task record (minimal known fields + opaque passthrough)
- TaskCollection: {metadata, tasks} document loaded from the store
- DependencyError: structured failure returned across the public API
- Serialization helpers for the collection document

Design Principles:
1. msgspec.Struct for every record that crosses the engine boundary
2. KW_ONLY: keyword arguments everywhere, no positional mix-ups
3. PASSTHROUGH: unknown task keys land in `extra` and are written back
   verbatim, so collaborators keep whatever they stored
4. Task keys are snake_case; detailed dependency entries and error/event
   records are camelCase (rename="camel") to match the stored shape
"""
import msgspec
from msgspec import UNSET, UnsetType
from typing import Optional, Dict, Any, List, Union
from datetime import datetime, timezone

from core.ontology import (
    TaskStatus,
    TaskPriority,
    DEFAULT_DEPENDENCY_TYPE,
)


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

def now_utc() -> str:
    """Fast UTC timestamp as ISO8601 string."""
    return datetime.now(timezone.utc).isoformat()


class SchemaError(ValueError):
    """Raised when a document does not have the task-collection shape."""
    pass


# =============================================================================
# DEPENDENCY DETAIL
# =============================================================================

class DependencyDetail(msgspec.Struct, kw_only=True, rename="camel"):
    """
    Metadata for one simple dependency id.

    Stored in `detailed_dependencies`, one entry per id in `dependencies`.
    Optional fields stay UNSET when absent and None when stored as null,
    so a record round-trips without gaining or losing keys. Keys the
    engine does not know are kept in `extra`.
    """
    task_id: str
    type: Union[str, None, UnsetType] = UNSET
    added_at: Union[str, None, UnsetType] = UNSET
    reason: Union[str, None, UnsetType] = UNSET
    added_by: Union[str, None, UnsetType] = UNSET
    extra: Dict[str, Any] = msgspec.field(default_factory=dict)

    @property
    def dependency_type(self) -> str:
        """The edge type, defaulting to blocking when not recorded."""
        return self.type or DEFAULT_DEPENDENCY_TYPE

    @classmethod
    def create(
        cls,
        task_id: str,
        type: str = DEFAULT_DEPENDENCY_TYPE,
        reason: Optional[str] = None,
        added_by: Optional[str] = None,
    ) -> "DependencyDetail":
        """Factory for a freshly added dependency."""
        return cls(
            task_id=task_id,
            type=type,
            added_at=now_utc(),
            reason=reason if reason is not None else f"{type} dependency",
            added_by=added_by if added_by is not None else UNSET,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Wire form: camelCase known keys + passthrough keys."""
        data = msgspec.to_builtins(self)
        merged = dict(self.extra)
        data.pop("extra", None)
        merged.update(data)
        return merged

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DependencyDetail":
        """Build an entry from its stored form, keeping unknown keys in `extra`."""
        if not isinstance(data, dict):
            raise SchemaError(f"Detailed dependency must be an object: {data!r}")
        known = {k: v for k, v in data.items() if k in _DETAIL_KEYS}
        try:
            detail = msgspec.convert(known, cls)
        except msgspec.ValidationError as e:
            raise SchemaError(f"Invalid detailed dependency {data!r}: {e}") from e
        detail.extra = {k: v for k, v in data.items() if k not in _DETAIL_KEYS}
        return detail


# Wire names owned by DependencyDetail
_DETAIL_KEYS = frozenset({"taskId", "type", "addedAt", "reason", "addedBy"})


# =============================================================================
# TASK DATA
# =============================================================================

# Keys owned by TaskData; everything else is passthrough
_TASK_FIELDS = frozenset({
    "id",
    "title",
    "description",
    "status",
    "priority",
    "effort",
    "skills",
    "dependencies",
    "detailed_dependencies",
    "created_at",
    "updated_at",
})

# Values a field holds when the stored record did not set it
_TASK_DEFAULTS = {
    "title": "",
    "status": TaskStatus.PENDING.value,
    "priority": TaskPriority.MEDIUM.value,
    "dependencies": [],
    "detailed_dependencies": [],
}


def _is_set(key: str, value: Any) -> bool:
    return value is not UNSET and value != _TASK_DEFAULTS.get(key, UNSET)


class TaskData(msgspec.Struct, kw_only=True):
    """
    A task record - one node of the dependency graph.

    Only `id` and `dependencies` carry meaning for the graph itself.
    Title, status, priority, effort and skills are opaque payload that the
    validators and heuristics read but never own.

    Architecture Notes:
    - `dependencies`: ordered outgoing edges (insertion order)
    - `detailed_dependencies`: parallel metadata, kept aligned by task id
    - `extra`: unknown keys from the stored record, written back verbatim
    - `source_keys` / `null_keys`: key order and nulls of the stored record
    """
    # === Identity ===
    id: str

    # === Payload (read-only for the engine) ===
    title: str = ""
    status: str = TaskStatus.PENDING.value
    priority: str = TaskPriority.MEDIUM.value
    description: Union[str, UnsetType] = UNSET
    effort: Union[int, float, UnsetType] = UNSET
    skills: Union[List[str], UnsetType] = UNSET

    # === Edges ===
    dependencies: List[str] = msgspec.field(default_factory=list)
    detailed_dependencies: List[DependencyDetail] = msgspec.field(default_factory=list)

    # === Provenance ===
    created_at: Union[str, UnsetType] = UNSET
    updated_at: Union[str, UnsetType] = UNSET

    # === Passthrough ===
    extra: Dict[str, Any] = msgspec.field(default_factory=dict)

    # === Stored shape (set by from_dict) ===
    source_keys: Union[List[str], UnsetType] = UNSET
    null_keys: List[str] = msgspec.field(default_factory=list)

    def touch(self) -> None:
        """Refresh the modification timestamp."""
        self.updated_at = now_utc()

    def detail_for(self, dependency_id: str) -> Optional[DependencyDetail]:
        """Detailed entry for a dependency id, if one is recorded."""
        for detail in self.detailed_dependencies:
            if detail.task_id == dependency_id:
                return detail
        return None

    def dependency_type_of(self, dependency_id: str) -> str:
        """Edge type of a dependency (blocking when no detail exists)."""
        detail = self.detail_for(dependency_id)
        return detail.dependency_type if detail else DEFAULT_DEPENDENCY_TYPE

    def drop_dependency(self, dependency_id: str) -> bool:
        """
        Remove a dependency id and its detailed counterpart.

        Returns:
            True if the simple dependency was present
        """
        present = dependency_id in self.dependencies
        self.dependencies = [d for d in self.dependencies if d != dependency_id]
        self.detailed_dependencies = [
            d for d in self.detailed_dependencies if d.task_id != dependency_id
        ]
        return present

    def to_dict(self) -> Dict[str, Any]:
        """
        Wire form: known fields + passthrough keys.

        A task loaded from a stored record re-emits exactly the keys it was
        loaded with, in the same order, nulls included. Fields the engine
        set after loading are appended. Tasks built in code emit every
        field that is set.
        """
        data = msgspec.to_builtins(self)
        for key in ("extra", "source_keys", "null_keys"):
            data.pop(key, None)
        data["detailed_dependencies"] = [d.to_dict() for d in self.detailed_dependencies]

        if self.source_keys is UNSET:
            if not self.detailed_dependencies:
                data.pop("detailed_dependencies")
            merged = dict(self.extra)
            merged.update(data)
            return merged

        merged = {}
        for key in self.source_keys:
            if key not in _TASK_FIELDS:
                if key in self.extra:
                    merged[key] = self.extra[key]
            elif key in self.null_keys and not _is_set(key, data.get(key, UNSET)):
                merged[key] = None
            elif key in data:
                merged[key] = data[key]
        for key, value in data.items():
            if key not in merged and _is_set(key, value):
                merged[key] = value
        for key, value in self.extra.items():
            merged.setdefault(key, value)
        return merged

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TaskData":
        """Build a TaskData, keeping unknown keys in `extra`."""
        if not isinstance(data, dict) or "id" not in data:
            raise SchemaError(f"Task record must be an object with an 'id': {data!r}")
        known = {
            k: v for k, v in data.items()
            if k in _TASK_FIELDS and v is not None and k != "detailed_dependencies"
        }
        try:
            task = msgspec.convert(known, cls)
        except msgspec.ValidationError as e:
            raise SchemaError(f"Invalid task {data.get('id')!r}: {e}") from e

        details = data.get("detailed_dependencies")
        if details is not None:
            if not isinstance(details, list):
                raise SchemaError(f"Invalid task {data.get('id')!r}: 'detailed_dependencies' must be a list")
            task.detailed_dependencies = [DependencyDetail.from_dict(d) for d in details]

        task.extra = {k: v for k, v in data.items() if k not in _TASK_FIELDS}
        task.source_keys = list(data)
        task.null_keys = [k for k, v in data.items() if k in _TASK_FIELDS and v is None]
        return task

    @classmethod
    def create(cls, id: str, title: str = "", **kwargs) -> "TaskData":
        """Factory method for building tasks in code."""
        return cls(id=id, title=title, **kwargs)


# =============================================================================
# TASK COLLECTION
# =============================================================================

class TaskCollection(msgspec.Struct, kw_only=True):
    """
    The whole stored document: `{metadata: {...}, tasks: [...]}`.

    The dependency aggregate lives at metadata.dependencies:
        {"totalDependencies": int, "lastUpdated": iso8601}
    It is owned by whichever caller loaded the collection.
    """
    metadata: Dict[str, Any] = msgspec.field(default_factory=dict)
    tasks: List[TaskData] = msgspec.field(default_factory=list)
    extra: Dict[str, Any] = msgspec.field(default_factory=dict)
    # How metadata appeared in the stored document: "object", "null" or "absent"
    metadata_source: str = "object"

    def get_task(self, task_id: str) -> Optional[TaskData]:
        """Get a task by id (linear scan, first match)."""
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    @property
    def use_detailed_dependencies(self) -> bool:
        """Whether additions record a detailed entry (default True)."""
        return self.metadata.get("useDetailedDependencies") is not False

    @property
    def total_dependencies(self) -> int:
        """The stored aggregate counter (0 when absent)."""
        return int(self.metadata.get("dependencies", {}).get("totalDependencies", 0))

    def bump_dependency_counter(self, delta: int) -> int:
        """Adjust metadata.dependencies.totalDependencies and stamp lastUpdated."""
        stats = self.metadata.setdefault("dependencies", {
            "totalDependencies": 0,
            "lastUpdated": now_utc(),
        })
        stats["totalDependencies"] = max(0, int(stats.get("totalDependencies", 0)) + delta)
        stats["lastUpdated"] = now_utc()
        return stats["totalDependencies"]

    def to_dict(self) -> Dict[str, Any]:
        """Wire form of the whole document."""
        data = dict(self.extra)
        if self.metadata or self.metadata_source == "object":
            data["metadata"] = msgspec.to_builtins(self.metadata)
        elif self.metadata_source == "null":
            data["metadata"] = None
        data["tasks"] = [t.to_dict() for t in self.tasks]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TaskCollection":
        """Build a collection from a decoded document."""
        if not isinstance(data, dict):
            raise SchemaError("Task collection must be a JSON object")
        tasks = data.get("tasks")
        if not isinstance(tasks, list):
            raise SchemaError("Invalid tasks file format: 'tasks' must be a list")
        metadata = data.get("metadata")
        if "metadata" not in data:
            source = "absent"
        elif metadata is None:
            source = "null"
        else:
            source = "object"
        if metadata is None:
            metadata = {}
        if not isinstance(metadata, dict):
            raise SchemaError("'metadata' must be an object")
        return cls(
            metadata=metadata,
            tasks=[TaskData.from_dict(t) for t in tasks],
            extra={k: v for k, v in data.items() if k not in ("metadata", "tasks")},
            metadata_source=source,
        )

    @classmethod
    def of(cls, *tasks: TaskData, **metadata: Any) -> "TaskCollection":
        """Convenience constructor for in-code collections."""
        return cls(metadata=dict(metadata), tasks=list(tasks))


# =============================================================================
# STRUCTURED ERRORS (Public API failures)
# =============================================================================

class DependencyError(msgspec.Struct, kw_only=True, rename="camel", omit_defaults=True):
    """
    Structured failure returned instead of raising across the API.

    `kind` is an ErrorKind value, so callers branch on it without
    parsing the message.
    """
    kind: str
    message: str
    task_id: Optional[str] = None
    depends_on: Optional[str] = None
    cycle_path: List[str] = msgspec.field(default_factory=list)
    reason: Optional[str] = None
    warnings: List[str] = msgspec.field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return msgspec.to_builtins(self)


# =============================================================================
# SERIALIZATION HELPERS
# =============================================================================

# Pre-compiled encoder; reuse across calls
_encoder = msgspec.json.Encoder()


def collection_to_dict(collection: TaskCollection) -> Dict[str, Any]:
    """Convert a collection to builtin dicts/lists."""
    return collection.to_dict()


def collection_from_dict(data: Dict[str, Any]) -> TaskCollection:
    """Build a collection from builtin dicts/lists."""
    return TaskCollection.from_dict(data)


def encode_collection(collection: TaskCollection) -> bytes:
    """Serialize a collection to JSON bytes."""
    return _encoder.encode(collection.to_dict())


def decode_collection(data: Union[bytes, str]) -> TaskCollection:
    """
    Deserialize JSON bytes to a TaskCollection.

    Raises:
        SchemaError: If the bytes are not JSON or lack the collection shape
    """
    try:
        raw = msgspec.json.decode(data)
    except msgspec.DecodeError as e:
        raise SchemaError(f"Failed to decode task collection: {e}") from e
    return TaskCollection.from_dict(raw)
