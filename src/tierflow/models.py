from pydantic import BaseModel, ConfigDict, Field, field_validator
from enum import Enum, IntEnum
from typing import Optional, List, Tuple, Union
import yaml

from .recovery import InvalidRole, InvalidStatus

MAX_NAME_BYTES = 100
MAX_DESCRIPTION_CHARS = 500
MAX_MESSAGE_CHARS = 500
MAX_DEPENDENCIES = 10

class Status(Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    DELAYED = "delayed"
    CANCELLED = "cancelled"

    @classmethod
    def parse(cls, value: Union['Status', str]) -> 'Status':
        """Accept a Status or its value ('in_progress', 'In Progress', 'in-progress')."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip().lower().replace('-', '_').replace(' ', '_')
            for status in cls:
                if status.value == key:
                    return status
        raise InvalidStatus(f"Invalid status: {value!r}")

    @property
    def terminal_complete(self) -> bool:
        """Counts as done when deciding whether a parent container is finished."""
        return self in TERMINAL_COMPLETE

    @property
    def dependency_complete(self) -> bool:
        """Counts as done when unblocking a dependent task. Cancelled does not."""
        return self in DEPENDENCY_COMPLETE

TERMINAL_COMPLETE = frozenset({Status.COMPLETED, Status.CANCELLED})
DEPENDENCY_COMPLETE = frozenset({Status.COMPLETED})

class Role(IntEnum):
    """
    Team roles ordered by privilege.

    The numeric value runs opposite to privilege: ADMIN (1) is the most
    privileged, VIEWER (3) the least. NONE is the sentinel for "no membership
    row" and is never stored; it is numerically larger than every real role so
    it fails every check.
    """
    ADMIN = 1
    MEMBER = 2
    VIEWER = 3
    NONE = 255

    def satisfies(self, required: 'Role') -> bool:
        """True when this role is at least as privileged as `required`."""
        return self.value <= required.value

    @classmethod
    def parse(cls, value: Union['Role', str, int]) -> 'Role':
        """Parse a storable role from a Role, its name ('admin') or its number (1)."""
        role = None
        if isinstance(value, cls):
            role = value
        elif isinstance(value, int) and not isinstance(value, bool):
            role = cls._value2member_map_.get(value)
        elif isinstance(value, str):
            key = value.strip()
            if key.isdigit():
                role = cls._value2member_map_.get(int(key))
            else:
                role = cls.__members__.get(key.upper())

        if role is None or role == cls.NONE:
            raise InvalidRole(f"Invalid role: {value!r}")
        return role

class ContextType(Enum):
    PROJECT = "project"
    MILESTONE = "milestone"
    TASK = "task"

class CounterKind(Enum):
    PROJECT = "project"
    MILESTONE = "milestone"
    TASK = "task"
    COMMUNICATION = "communication"

class BaseYAMLModel(BaseModel):
    """Pydantic model that round-trips through YAML documents."""

    # records handed out by queries are shared with the store; change them with model_copy
    model_config = ConfigDict(frozen=True)

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.model_dump(mode='json'), default_flow_style=False,
                              sort_keys=False, indent=2, allow_unicode=True)

    @classmethod
    def from_yaml(cls, text: str):
        return cls.model_validate(yaml.safe_load(text) or {})

class NamedRecord(BaseYAMLModel):
    """Shared name/description fields of projects, milestones and tasks."""

    name: str = Field(description="Human readable name, at most 100 UTF-8 bytes")
    description: str = Field(default="", description="Free text, at most 500 characters")

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("name must not be empty")
        if len(v.encode('utf-8')) > MAX_NAME_BYTES:
            raise ValueError(f"name exceeds {MAX_NAME_BYTES} bytes")
        return v

    @field_validator('description')
    @classmethod
    def validate_description(cls, v):
        if len(v) > MAX_DESCRIPTION_CHARS:
            raise ValueError(f"description exceeds {MAX_DESCRIPTION_CHARS} characters")
        return v

class Project(NamedRecord):
    """Top of the hierarchy. Only `status` changes after creation."""

    id: int = Field(ge=1, description="Globally unique, increasing project id")
    creator: str = Field(description="Identity that created the project; always admin-equivalent")
    created_at: int = Field(ge=0, description="Logical time of creation")
    status: Status = Field(default=Status.PENDING, description="Current status of the project")
    deadline: int = Field(ge=0, description="Logical time the project is due")

class Milestone(NamedRecord):
    project_id: int = Field(ge=1, description="Owning project")
    milestone_id: int = Field(ge=1, description="Sequential per project, starting at 1")
    deadline: int = Field(ge=0, description="Logical time the milestone is due")
    status: Status = Field(default=Status.PENDING, description="Current status of the milestone")

class Task(NamedRecord):
    project_id: int = Field(ge=1, description="Owning project")
    milestone_id: int = Field(ge=1, description="Owning milestone")
    task_id: int = Field(ge=1, description="Sequential per milestone, starting at 1")
    assignee: Optional[str] = Field(default=None, description="Identity responsible for the task")
    deadline: int = Field(ge=0, description="Logical time the task is due")
    status: Status = Field(default=Status.PENDING, description="Current status of the task")
    dependencies: Tuple[int, ...] = Field(
        default=(),
        description="Task ids in the same milestone that must be completed first"
    )

    @field_validator('dependencies')
    @classmethod
    def validate_dependencies(cls, v):
        if any(dep < 1 for dep in v):
            raise ValueError("dependency ids must be positive")
        # ordered set
        deduped = tuple(dict.fromkeys(v))
        if len(deduped) > MAX_DEPENDENCIES:
            raise ValueError(f"a task can have at most {MAX_DEPENDENCIES} dependencies")
        return deduped

class TeamMembership(BaseYAMLModel):
    project_id: int = Field(ge=1, description="Project the membership belongs to")
    member: str = Field(min_length=1, description="Identity of the team member")
    role: Role = Field(description="Role held in the project")

    @field_validator('role')
    @classmethod
    def validate_role(cls, v):
        if v == Role.NONE:
            raise ValueError("the NONE role cannot be stored")
        return v

class Communication(BaseYAMLModel):
    project_id: int = Field(ge=1, description="Project the message was posted to")
    comm_id: int = Field(ge=1, description="Sequential per project, starting at 1")
    sender: str = Field(min_length=1, description="Identity that posted the message")
    timestamp: int = Field(ge=0, description="Logical time the message was posted")
    message: str = Field(description="Message body")
    context_type: ContextType = Field(description="Kind of entity the message is about")
    context_id: str = Field(description="Id of that entity: '3' for a milestone, '3/2' for a task")

    @field_validator('message')
    @classmethod
    def validate_message(cls, v):
        if not v or not v.strip():
            raise ValueError("message must not be empty")
        if len(v) > MAX_MESSAGE_CHARS:
            raise ValueError(f"message exceeds {MAX_MESSAGE_CHARS} characters")
        return v

class Counter(BaseYAMLModel):
    kind: CounterKind = Field(description="What the counter numbers")
    project_id: int = Field(default=0, ge=0, description="Scope project, 0 for the global project counter")
    milestone_id: int = Field(default=0, ge=0, description="Scope milestone, 0 unless kind is task")
    value: int = Field(default=0, ge=0, description="Last id handed out")

class StoreSnapshot(BaseYAMLModel):
    """Everything the entity store holds, in persisted form."""

    schema_version: str = Field(description="Schema version the snapshot was written with")
    projects: List[Project] = Field(default_factory=list)
    milestones: List[Milestone] = Field(default_factory=list)
    tasks: List[Task] = Field(default_factory=list)
    memberships: List[TeamMembership] = Field(default_factory=list)
    communications: List[Communication] = Field(default_factory=list)
    counters: List[Counter] = Field(default_factory=list)
