"""
DEPENDENCY CHANGE LOG - Append-Only Record of Edge Mutations

Every successful add/remove performed by the mutator becomes one
ChangeEvent. The engine only appends; nothing in the engine reads the log
back to make decisions.

Architecture:
- ChangeEvent: msgspec record, camelCase on the wire
- EventBuffer: in-memory ring buffer for recent events
- FileSink: newline-delimited JSON appended to dependencies.log
- ChangeLog: fan-out to buffer, file sink and subscribers

Usage:
    with ChangeLog(ChangeLogConfig(log_path=Path("./logs"))) as changelog:
        mutator = GraphMutator(collection, changelog=changelog)
        mutator.add_dependency("T2", "T1")

        for event in changelog.get_recent_events(10):
            print(f"{event.timestamp}: {event.action} {event.task_id} -> {event.depends_on}")

Design:
- Sink failures are logged and swallowed; they never fail a mutation
- Thread-safe buffer so a reader can poll while a mutation appends
"""
import logging
import msgspec
from typing import Optional, Dict, List, Any, Callable
from dataclasses import dataclass
from pathlib import Path
from collections import deque
import threading
import io

from core.ontology import ChangeAction
from core.schemas import now_utc

logger = logging.getLogger(__name__)


# =============================================================================
# EVENT
# =============================================================================

class ChangeEvent(msgspec.Struct, kw_only=True, rename="camel", omit_defaults=True):
    """
    One dependency mutation.

    Wire form:
        {action, taskId, dependsOn, type?, reason?, forced?, warnings?,
         cascadeResults?, timestamp, sequence}
    """
    action: str
    task_id: str
    depends_on: str
    timestamp: str
    sequence: int = 0
    type: Optional[str] = None
    reason: Optional[str] = None
    forced: bool = False
    warnings: List[str] = msgspec.field(default_factory=list)
    cascade_results: List[Dict[str, Any]] = msgspec.field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return msgspec.to_builtins(self)


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass
class ChangeLogConfig:
    """Configuration for the change log."""
    enable_file_log: bool = False       # Append events to a JSONL file
    log_path: Optional[Path] = None     # Directory for the log file
    filename: str = "dependencies.log"
    buffer_size: int = 10000            # In-memory buffer size

    def __post_init__(self):
        if self.log_path is not None:
            self.log_path = Path(self.log_path)
            self.enable_file_log = True


# =============================================================================
# EVENT BUFFER
# =============================================================================

class EventBuffer:
    """
    Thread-safe ring buffer for recent change events.

    Oldest events fall off once max_size is reached.
    """

    def __init__(self, max_size: int = 10000):
        self._buffer: deque = deque(maxlen=max_size)
        self._lock = threading.RLock()
        self._sequence = 0

    def append(self, event: ChangeEvent) -> None:
        with self._lock:
            self._buffer.append(event)

    def get_since(self, timestamp: str) -> List[ChangeEvent]:
        """Get all events at or after a timestamp."""
        with self._lock:
            return [e for e in self._buffer if e.timestamp >= timestamp]

    def get_last(self, n: int) -> List[ChangeEvent]:
        with self._lock:
            items = list(self._buffer)
            return items[-n:] if n > 0 else []

    def get_by_task(self, task_id: str) -> List[ChangeEvent]:
        """Events where task_id is either endpoint."""
        with self._lock:
            return [e for e in self._buffer if task_id in (e.task_id, e.depends_on)]

    def get_by_action(self, action: str) -> List[ChangeEvent]:
        with self._lock:
            return [e for e in self._buffer if e.action == action]

    def next_sequence(self) -> int:
        with self._lock:
            self._sequence += 1
            return self._sequence

    def clear(self) -> None:
        with self._lock:
            self._buffer.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._buffer)


# =============================================================================
# FILE SINK
# =============================================================================

class FileSink:
    """
    Appends events as newline-delimited JSON.

    The file is opened lazily on first write and kept open until close().
    """

    def __init__(self, log_dir: Path, filename: str = "dependencies.log"):
        self._path = Path(log_dir) / filename
        self._file: Optional[io.TextIOWrapper] = None
        self._lock = threading.Lock()
        self._encoder = msgspec.json.Encoder()

        self._path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def path(self) -> Path:
        return self._path

    def write(self, event: ChangeEvent) -> None:
        """Append one event. Errors are logged, not raised."""
        with self._lock:
            try:
                if self._file is None:
                    self._file = open(self._path, "a", encoding="utf-8")
                self._file.write(self._encoder.encode(event).decode("utf-8") + "\n")
                self._file.flush()
            except OSError as e:
                logger.error(f"Change log write failed ({self._path}): {e}")

    def close(self) -> None:
        with self._lock:
            if self._file:
                self._file.close()
                self._file = None

    def read_events(self) -> List[ChangeEvent]:
        """Read every event back (for inspection; the engine never does)."""
        if not self._path.exists():
            return []

        events = []
        decoder = msgspec.json.Decoder(type=ChangeEvent)
        with open(self._path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    events.append(decoder.decode(line.encode()))
                except msgspec.DecodeError as e:
                    logger.warning(f"Skipping unreadable change log line: {e}")
        return events


# =============================================================================
# CHANGE LOG (Main Interface)
# =============================================================================

class ChangeLog:
    """
    Fan-out sink for dependency change events.

    Events always go to the in-memory buffer; optionally to a JSONL file;
    and to any subscribed callbacks.
    """

    def __init__(self, config: Optional[ChangeLogConfig] = None):
        self.config = config or ChangeLogConfig()

        self._buffer = EventBuffer(self.config.buffer_size)
        self._file_sink: Optional[FileSink] = None
        if self.config.enable_file_log and self.config.log_path:
            self._file_sink = FileSink(self.config.log_path, self.config.filename)

        self._subscribers: List[Callable[[ChangeEvent], None]] = []

    @property
    def file_sink(self) -> Optional[FileSink]:
        return self._file_sink

    def _emit(self, event: ChangeEvent) -> None:
        self._buffer.append(event)

        if self._file_sink:
            self._file_sink.write(event)

        for subscriber in self._subscribers:
            try:
                subscriber(event)
            except Exception as e:
                logger.error(f"Change log subscriber error: {e}")

    # =========================================================================
    # LOGGING METHODS
    # =========================================================================

    def record_add(
        self,
        task_id: str,
        depends_on: str,
        dep_type: str,
        reason: Optional[str] = None,
        forced: bool = False,
        warnings: Optional[List[str]] = None,
    ) -> ChangeEvent:
        """Record an added dependency."""
        event = ChangeEvent(
            action=ChangeAction.ADD.value,
            task_id=task_id,
            depends_on=depends_on,
            type=dep_type,
            reason=reason,
            forced=forced,
            warnings=list(warnings or []),
            timestamp=now_utc(),
            sequence=self._buffer.next_sequence(),
        )
        self._emit(event)
        return event

    def record_remove(
        self,
        task_id: str,
        depends_on: str,
        reason: Optional[str] = None,
        forced: bool = False,
        warnings: Optional[List[str]] = None,
        cascade_results: Optional[List[Dict[str, Any]]] = None,
    ) -> ChangeEvent:
        """Record a removed dependency."""
        event = ChangeEvent(
            action=ChangeAction.REMOVE.value,
            task_id=task_id,
            depends_on=depends_on,
            reason=reason,
            forced=forced,
            warnings=list(warnings or []),
            cascade_results=list(cascade_results or []),
            timestamp=now_utc(),
            sequence=self._buffer.next_sequence(),
        )
        self._emit(event)
        return event

    # =========================================================================
    # QUERY METHODS
    # =========================================================================

    def get_recent_events(self, n: int = 100) -> List[ChangeEvent]:
        return self._buffer.get_last(n)

    def get_events_since(self, timestamp: str) -> List[ChangeEvent]:
        return self._buffer.get_since(timestamp)

    def get_events_for_task(self, task_id: str) -> List[ChangeEvent]:
        return self._buffer.get_by_task(task_id)

    def get_events_by_action(self, action: str) -> List[ChangeEvent]:
        return self._buffer.get_by_action(action)

    def __len__(self) -> int:
        return len(self._buffer)

    # =========================================================================
    # SUBSCRIPTION
    # =========================================================================

    def subscribe(self, callback: Callable[[ChangeEvent], None]) -> None:
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[ChangeEvent], None]) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def close(self) -> None:
        if self._file_sink:
            self._file_sink.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
