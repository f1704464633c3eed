"""
Unit tests for core/schemas.py - task records and collection serialization

Tests:
- Round-trip of the collection document (passthrough keys and nulls included)
- Omission of unset optional fields
- Detailed dependency entries (camelCase wire names)
- Aggregate counter maintenance
- Rejection of malformed documents
"""
import msgspec
import pytest

from core.schemas import (
    DependencyDetail,
    DependencyError,
    SchemaError,
    TaskCollection,
    TaskData,
    collection_from_dict,
    collection_to_dict,
    decode_collection,
    encode_collection,
)


RAW_COLLECTION = {
    "metadata": {
        "projectName": "demo",
        "dependencies": {"totalDependencies": 1, "lastUpdated": "2024-01-01T00:00:00+00:00"},
    },
    "tasks": [
        {
            "id": "t1",
            "title": "Setup",
            "status": "completed",
            "priority": "high",
            "dependencies": [],
            "effort": 3,
            "complexity": {"score": 7},
        },
        {
            "id": "t2",
            "title": "Implement",
            "status": "pending",
            "priority": "medium",
            "dependencies": ["t1"],
            "detailed_dependencies": [
                {
                    "taskId": "t1",
                    "type": "blocking",
                    "addedAt": "2024-01-01T00:00:00+00:00",
                    "reason": "blocking dependency",
                    "addedBy": "someone",
                }
            ],
            "updated_at": "2024-01-02T00:00:00+00:00",
            "assignee": "sam",
        },
    ],
    "version": 2,
}


# =============================================================================
# ROUND-TRIP TESTS
# =============================================================================

def test_collection_round_trip_is_lossless():
    """
    Validate that decoding then encoding reproduces the same document.

    Verifies:
    - Unknown task keys survive (complexity, assignee)
    - Unknown top-level keys survive (version)
    - Detailed entries keep their camelCase keys
    """
    collection = collection_from_dict(RAW_COLLECTION)

    assert collection_to_dict(collection) == RAW_COLLECTION


def test_encode_decode_encode_is_stable():
    """Serialize, deserialize, re-serialize yields the same structure."""
    collection = collection_from_dict(RAW_COLLECTION)

    first = encode_collection(collection)
    second = encode_collection(decode_collection(first))

    assert msgspec.json.decode(first) == msgspec.json.decode(second)


def test_unknown_task_keys_land_in_extra():
    """Passthrough keys are kept out of the typed fields."""
    collection = collection_from_dict(RAW_COLLECTION)
    t2 = collection.get_task("t2")

    assert t2.extra == {"assignee": "sam"}
    assert t2.detailed_dependencies[0].added_by == "someone"


def test_absent_optional_fields_are_not_emitted():
    """A minimal task does not gain description/effort/skills keys."""
    task = TaskData.from_dict({"id": "x", "title": "X", "dependencies": []})

    data = task.to_dict()

    assert "description" not in data
    assert "effort" not in data
    assert "skills" not in data
    assert "updated_at" not in data
    assert "detailed_dependencies" not in data


def test_nulls_and_passthrough_survive_round_trip():
    """
    Validate a document with nulls, an int effort and unknown detail keys.

    Verifies:
    - Known keys stored as null are written back as null
    - An integer effort stays an integer
    - Unknown keys on a detailed entry survive
    - An explicit empty detailed_dependencies list is kept
    """
    raw = {
        "metadata": {"projectName": "demo"},
        "tasks": [
            {
                "id": "a",
                "title": "A",
                "description": None,
                "effort": 3,
                "dependencies": ["b"],
                "detailed_dependencies": [
                    {"taskId": "b", "type": "blocking", "addedBy": "x", "note": "keep me"},
                ],
            },
            {"id": "b", "title": "B", "dependencies": [], "detailed_dependencies": []},
        ],
    }

    out = collection_to_dict(collection_from_dict(raw))

    assert out == raw
    assert isinstance(out["tasks"][0]["effort"], int)


def test_null_detail_fields_load_and_round_trip():
    """A detailed entry with "reason": null loads and keeps its null."""
    raw = {
        "tasks": [
            {
                "id": "a",
                "dependencies": ["b"],
                "detailed_dependencies": [{"taskId": "b", "type": None, "reason": None}],
            },
            {"id": "b", "dependencies": []},
        ],
    }

    collection = collection_from_dict(raw)

    assert collection.get_task("a").dependency_type_of("b") == "blocking"
    assert collection_to_dict(collection) == raw


def test_null_known_keys_are_kept_until_set():
    """
    Verifies:
    - Nulls decode to the field defaults
    - The null comes back while the engine leaves the field alone
    - A value the engine sets replaces the null
    """
    task = TaskData.from_dict({
        "id": "x", "title": None, "dependencies": None, "updated_at": None, "effort": None,
    })

    assert task.title == ""
    assert task.dependencies == []
    assert task.to_dict() == {
        "id": "x", "title": None, "dependencies": None, "updated_at": None, "effort": None,
    }

    task.dependencies.append("y")
    task.touch()
    data = task.to_dict()

    assert data["dependencies"] == ["y"]
    assert data["updated_at"] == task.updated_at
    assert data["title"] is None


def test_null_and_absent_metadata_are_kept():
    assert collection_to_dict(collection_from_dict({"metadata": None, "tasks": []})) == {
        "metadata": None, "tasks": [],
    }
    assert collection_to_dict(collection_from_dict({"tasks": []})) == {"tasks": []}


def test_keys_added_after_load_are_emitted():
    """A detailed list the engine adds to an untouched record is written."""
    task = TaskData.from_dict({"id": "x", "dependencies": []})

    task.dependencies.append("y")
    task.detailed_dependencies.append(DependencyDetail.create("y"))
    data = task.to_dict()

    assert list(data) == ["id", "dependencies", "detailed_dependencies"]
    assert data["detailed_dependencies"][0]["taskId"] == "y"


def test_detail_entry_must_be_an_object():
    with pytest.raises(SchemaError):
        TaskData.from_dict({"id": "x", "detailed_dependencies": ["b"]})


# =============================================================================
# TASK HELPERS
# =============================================================================

def test_drop_dependency_removes_both_lists():
    """Simple and detailed entries are removed together."""
    task = TaskData(
        id="a",
        dependencies=["b", "c"],
        detailed_dependencies=[
            DependencyDetail(task_id="b", type="blocking"),
            DependencyDetail(task_id="c", type="related"),
        ],
    )

    assert task.drop_dependency("b") is True
    assert task.dependencies == ["c"]
    assert [d.task_id for d in task.detailed_dependencies] == ["c"]
    assert task.drop_dependency("zzz") is False


def test_dependency_type_defaults_to_blocking():
    """Edges without a detailed entry are blocking."""
    task = TaskData(
        id="a",
        dependencies=["b", "c"],
        detailed_dependencies=[DependencyDetail(task_id="c", type="optional")],
    )

    assert task.dependency_type_of("b") == "blocking"
    assert task.dependency_type_of("c") == "optional"


def test_detail_create_defaults_reason():
    """The reason defaults to '<type> dependency'."""
    detail = DependencyDetail.create("b", type="finish-to-start", added_by="tool")

    data = msgspec.to_builtins(detail)
    assert data["taskId"] == "b"
    assert data["reason"] == "finish-to-start dependency"
    assert data["addedBy"] == "tool"
    assert "addedAt" in data


# =============================================================================
# COLLECTION
# =============================================================================

def test_counter_bump_floors_at_zero():
    """totalDependencies never goes negative."""
    collection = TaskCollection()

    assert collection.bump_dependency_counter(+1) == 1
    assert collection.bump_dependency_counter(-5) == 0
    assert collection.metadata["dependencies"]["lastUpdated"]


def test_use_detailed_dependencies_flag():
    """Only an explicit False switches detailed storage off."""
    assert TaskCollection().use_detailed_dependencies is True
    assert TaskCollection(metadata={"useDetailedDependencies": False}).use_detailed_dependencies is False


@pytest.mark.parametrize("document", [
    [],
    {"tasks": "nope"},
    {"tasks": [{"title": "no id"}]},
    {"metadata": [], "tasks": []},
])
def test_malformed_documents_raise_schema_error(document):
    """Documents without the collection shape are rejected."""
    with pytest.raises(SchemaError):
        collection_from_dict(document)


def test_decode_rejects_invalid_json():
    with pytest.raises(SchemaError):
        decode_collection(b"{not json")


def test_dependency_error_wire_form_omits_empty_fields():
    """Only populated fields appear on a structured error."""
    error = DependencyError(kind="SelfDependencyError", message="nope", task_id="a")

    assert error.to_dict() == {"kind": "SelfDependencyError", "message": "nope", "taskId": "a"}
