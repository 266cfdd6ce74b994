from functools import lru_cache
from typing import Any, Dict, List

from jsonschema import Draft202012Validator, SchemaError
from packaging import version

from tierflow.logs import get_logger
from tierflow.models import StoreSnapshot
from tierflow.recovery import CorruptionError, FatalError, MigrationNeededError
from tierflow.version import APP_SCHEMA_VERSION

log = get_logger("data.validate")

@lru_cache(maxsize=1)
def snapshot_schema() -> Dict[str, Any]:
    """JSON Schema for the persisted store, generated from the StoreSnapshot model."""
    schema = StoreSnapshot.model_json_schema()
    schema["$schema"] = "https://json-schema.org/draft/2020-12/schema"
    return schema

def schema_errors(data: Any) -> List[str]:
    """
    Validate a raw (already parsed) store document against the snapshot schema.

    Args:
        data: The document as loaded from YAML or JSON.

    Returns:
        A list of human readable errors; empty when the document is valid.
    """
    try:
        validator = Draft202012Validator(snapshot_schema())
    except SchemaError as e:
        raise FatalError(f"The store schema itself is invalid: {e.message}") from e

    errors = []
    for error in sorted(validator.iter_errors(data), key=lambda e: list(e.absolute_path)):
        location = "/".join(str(part) for part in error.absolute_path) or "<root>"
        errors.append(f"{location}: {error.message}")
    return errors

def check_schema_version(found: str) -> None:
    """
    Compare the version a store was written with against the running app.

    Raises:
        MigrationNeededError: the store is older than APP_SCHEMA_VERSION.
        FatalError: the store is newer, this build cannot read it safely.
    """
    try:
        found_version = version.parse(found)
    except version.InvalidVersion as e:
        raise CorruptionError(f"Unreadable schema version {found!r}") from e

    app_version = version.parse(APP_SCHEMA_VERSION)
    log.info(f"STORE: {found}; APP: {APP_SCHEMA_VERSION};")
    if found_version < app_version:
        raise MigrationNeededError(f"Store uses schema {found}, this build expects {APP_SCHEMA_VERSION}; migrate data")
    if found_version > app_version:
        raise FatalError(f"Store uses schema {found}, which is newer than this build ({APP_SCHEMA_VERSION})")

def check_dense_ids(snapshot: StoreSnapshot) -> List[str]:
    """Every counter value N must be backed by records with ids 1..N, and nothing beyond."""
    problems = []
    counters = {(c.kind.value, c.project_id, c.milestone_id): c.value for c in snapshot.counters}

    def compare(label, counter_key, ids):
        expected = set(range(1, counters.get(counter_key, 0) + 1))
        if set(ids) != expected:
            problems.append(f"{label}: ids {sorted(ids)} do not match counter {len(expected)}")

    compare("projects", ("project", 0, 0), [p.id for p in snapshot.projects])

    milestones: Dict[int, List[int]] = {p.id: [] for p in snapshot.projects}
    for m in snapshot.milestones:
        milestones.setdefault(m.project_id, []).append(m.milestone_id)
    for project_id, ids in milestones.items():
        compare(f"project {project_id} milestones", ("milestone", project_id, 0), ids)

    tasks: Dict[tuple, List[int]] = {(m.project_id, m.milestone_id): [] for m in snapshot.milestones}
    for t in snapshot.tasks:
        tasks.setdefault((t.project_id, t.milestone_id), []).append(t.task_id)
    for (project_id, milestone_id), ids in tasks.items():
        compare(f"milestone {project_id}/{milestone_id} tasks", ("task", project_id, milestone_id), ids)

    comms: Dict[int, List[int]] = {p.id: [] for p in snapshot.projects}
    for c in snapshot.communications:
        comms.setdefault(c.project_id, []).append(c.comm_id)
    for project_id, ids in comms.items():
        compare(f"project {project_id} communications", ("communication", project_id, 0), ids)

    return problems
