"""
DEPENDENCY ENGINE INFRASTRUCTURE - Collaborator-Facing Modules

This package contains:
- changelog: append-only change events (buffer, JSONL sink, subscribers)
- config: EngineConfig loaded from config/depgraph.toml
- store: atomic JSON persistence of the task collection
"""

from infrastructure.changelog import ChangeLog, ChangeLogConfig, ChangeEvent
from infrastructure.config import EngineConfig, load_config
from infrastructure.store import (
    TaskStore,
    StoreError,
    StaleCollectionError,
    CollectionFormatError,
)

__all__ = [
    "ChangeLog",
    "ChangeLogConfig",
    "ChangeEvent",
    "EngineConfig",
    "load_config",
    "TaskStore",
    "StoreError",
    "StaleCollectionError",
    "CollectionFormatError",
]
