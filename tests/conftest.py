"""
Pytest configuration and shared fixtures for the dependency engine suite.
"""
import sys
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))


def make_task(task_id, deps=(), **fields):
    """Build a TaskData with sensible defaults for tests."""
    from core.schemas import TaskData

    fields.setdefault("title", f"Task {task_id}")
    return TaskData(id=task_id, dependencies=list(deps), **fields)


def make_layered_tasks(layers, width=2):
    """
    `layers` layers of `width` tasks, each task depending on every task of
    the next layer. The first task of the last layer depends back on the
    first task of the first layer, closing exactly one back edge.
    """
    def tid(layer, slot):
        return f"L{layer}-{slot}"

    tasks = []
    for layer in range(layers):
        for slot in range(width):
            if layer + 1 < layers:
                deps = [tid(layer + 1, s) for s in range(width)]
            else:
                deps = [tid(0, 0)] if slot == 0 else []
            tasks.append(make_task(tid(layer, slot), deps))
    return tasks


@pytest.fixture
def task_factory():
    """Expose make_task to tests."""
    return make_task


@pytest.fixture
def chain_collection():
    """
    A -> B -> C (A depends on B, B depends on C, C depends on nothing).
    """
    from core.schemas import TaskCollection

    return TaskCollection.of(
        make_task("A", ["B"]),
        make_task("B", ["C"]),
        make_task("C"),
    )


@pytest.fixture
def scenario_collection():
    """T1 (no deps), T2 -> T1, T3 -> T2."""
    from core.schemas import TaskCollection

    return TaskCollection.of(
        make_task("T1"),
        make_task("T2", ["T1"]),
        make_task("T3", ["T2"]),
    )


@pytest.fixture
def sample_collection():
    """
    A small project with realistic titles, statuses and metadata.

    setup <- api <- tests
      ^       ^
      +--- frontend
    docs (orphan)
    """
    from core.schemas import TaskCollection

    return TaskCollection.from_dict({
        "metadata": {
            "projectName": "demo",
            "dependencies": {"totalDependencies": 4, "lastUpdated": "2024-01-01T00:00:00+00:00"},
        },
        "tasks": [
            {
                "id": "setup",
                "title": "Setup database",
                "status": "completed",
                "priority": "high",
                "description": "Install and configure the database",
                "dependencies": [],
                "skills": ["sql"],
            },
            {
                "id": "api",
                "title": "Implement API",
                "status": "in-progress",
                "priority": "high",
                "description": "REST api on top of the database",
                "dependencies": ["setup"],
                "skills": ["python", "sql"],
            },
            {
                "id": "frontend",
                "title": "Build frontend",
                "status": "pending",
                "priority": "medium",
                "dependencies": ["api", "setup"],
                "estimate": "3d",
            },
            {
                "id": "tests",
                "title": "Write integration tests",
                "status": "pending",
                "priority": "medium",
                "dependencies": ["api"],
            },
            {
                "id": "docs",
                "title": "Write docs",
                "status": "pending",
                "priority": "low",
                "dependencies": [],
            },
        ],
    })


@pytest.fixture
def changelog():
    """An in-memory change log."""
    from infrastructure.changelog import ChangeLog

    with ChangeLog() as log:
        yield log


@pytest.fixture
def engine_config():
    """Default engine configuration (no TOML file involved)."""
    from infrastructure.config import EngineConfig

    return EngineConfig()
