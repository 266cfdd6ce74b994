"""
EntityStore - the keyed record store every workflow operation reads and writes.

Records live in one table per key type. Keys are small named tuples, so a
milestone is addressed as ``MilestoneKey(project_id, milestone_id)`` and a
membership as ``MemberKey(project_id, member)``. There is no delete: every
write is an upsert, and counters only ever move forward.
"""
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, NamedTuple, Optional, Union

from tierflow.logs import get_logger
from tierflow.models import (
    Communication, Counter, CounterKind, Milestone, Project, StoreSnapshot,
    Task, TeamMembership,
)
from tierflow.version import APP_SCHEMA_VERSION

log = get_logger("data.core")


class ProjectKey(NamedTuple):
    project_id: int

class MilestoneKey(NamedTuple):
    project_id: int
    milestone_id: int

class TaskKey(NamedTuple):
    project_id: int
    milestone_id: int
    task_id: int

class MemberKey(NamedTuple):
    project_id: int
    member: str

class CommunicationKey(NamedTuple):
    project_id: int
    comm_id: int

class CounterKey(NamedTuple):
    kind: CounterKind
    project_id: int = 0
    milestone_id: int = 0

    @classmethod
    def projects(cls) -> 'CounterKey':
        return cls(CounterKind.PROJECT)

    @classmethod
    def milestones(cls, project_id: int) -> 'CounterKey':
        return cls(CounterKind.MILESTONE, project_id)

    @classmethod
    def tasks(cls, project_id: int, milestone_id: int) -> 'CounterKey':
        return cls(CounterKind.TASK, project_id, milestone_id)

    @classmethod
    def communications(cls, project_id: int) -> 'CounterKey':
        return cls(CounterKind.COMMUNICATION, project_id)


Key = Union[ProjectKey, MilestoneKey, TaskKey, MemberKey, CommunicationKey]
Record = Union[Project, Milestone, Task, TeamMembership, Communication]

RECORD_TYPES = {
    ProjectKey: Project,
    MilestoneKey: Milestone,
    TaskKey: Task,
    MemberKey: TeamMembership,
    CommunicationKey: Communication,
}


def key_for(record: Record) -> Key:
    """Derive the storage key of a record from its own id fields."""
    if isinstance(record, Project):
        return ProjectKey(record.id)
    if isinstance(record, Milestone):
        return MilestoneKey(record.project_id, record.milestone_id)
    if isinstance(record, Task):
        return TaskKey(record.project_id, record.milestone_id, record.task_id)
    if isinstance(record, TeamMembership):
        return MemberKey(record.project_id, record.member)
    if isinstance(record, Communication):
        return CommunicationKey(record.project_id, record.comm_id)
    raise TypeError(f"Not a storable record: {type(record).__name__}")


class EntityStore:
    """
    In-memory authoritative store.

    A single re-entrant lock serializes writers, and readers take the same
    lock, so a read always observes the state between two complete writes.
    Operations that must read-check-write atomically wrap themselves in
    ``transaction()``.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._tables: Dict[type, Dict[Key, Record]] = {key_type: {} for key_type in RECORD_TYPES}
        self._counters: Dict[CounterKey, int] = {}

    @contextmanager
    def transaction(self) -> Iterator['EntityStore']:
        with self._lock:
            yield self

    def get(self, key: Key) -> Optional[Record]:
        with self._lock:
            return self._table(key).get(key)

    def put(self, key: Key, record: Record) -> None:
        expected = RECORD_TYPES.get(type(key))
        if expected is None or not isinstance(record, expected):
            raise TypeError(f"{type(key).__name__} cannot hold a {type(record).__name__}")
        if key_for(record) != key:
            raise ValueError(f"Record ids {tuple(key_for(record))} do not match key {tuple(key)}")
        with self._lock:
            self._tables[type(key)][key] = record

    def records(self, key_type: type, project_id: Optional[int] = None) -> List[Record]:
        """All records of one table, optionally limited to a single project."""
        with self._lock:
            table = self._tables.get(key_type)
            if table is None:
                raise TypeError(f"Unsupported key type: {key_type.__name__}")
            return [record for key, record in table.items()
                    if project_id is None or key.project_id == project_id]

    def exists(self, key: Key) -> bool:
        return self.get(key) is not None

    def next_id(self, key: CounterKey) -> int:
        """Advance the counter and return the new value (previous + 1)."""
        with self._lock:
            value = self._counters.get(key, 0) + 1
            self._counters[key] = value
            return value

    def count(self, key: CounterKey) -> int:
        """Current counter value, i.e. how many ids have been handed out."""
        with self._lock:
            return self._counters.get(key, 0)

    def init_counter(self, key: CounterKey) -> None:
        """Create a counter at 0. An existing counter is left untouched."""
        with self._lock:
            self._counters.setdefault(key, 0)

    def _table(self, key: Key) -> Dict[Key, Record]:
        table = self._tables.get(type(key))
        if table is None:
            raise TypeError(f"Unsupported key type: {type(key).__name__}")
        return table

    # --- persistence -----------------------------------------------------

    def to_snapshot(self) -> StoreSnapshot:
        with self._lock:
            return StoreSnapshot(
                schema_version=APP_SCHEMA_VERSION,
                projects=list(self._tables[ProjectKey].values()),
                milestones=list(self._tables[MilestoneKey].values()),
                tasks=list(self._tables[TaskKey].values()),
                memberships=list(self._tables[MemberKey].values()),
                communications=list(self._tables[CommunicationKey].values()),
                counters=[
                    Counter(kind=key.kind, project_id=key.project_id,
                            milestone_id=key.milestone_id, value=value)
                    for key, value in self._counters.items()
                ],
            )

    @classmethod
    def from_snapshot(cls, snapshot: StoreSnapshot) -> 'EntityStore':
        store = cls()
        records = (snapshot.projects + snapshot.milestones + snapshot.tasks
                   + snapshot.memberships + snapshot.communications)
        for record in records:
            store.put(key_for(record), record)
        for counter in snapshot.counters:
            store._counters[CounterKey(counter.kind, counter.project_id, counter.milestone_id)] = counter.value
        log.debug(f"Loaded store with {len(records)} records and {len(snapshot.counters)} counters")
        return store
