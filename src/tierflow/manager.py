"""
WorkflowManager - entry points for every mutation and query on the hierarchy.

Every operation runs to completion inside one store transaction. Checks are
made in a fixed order: existence, then authorization, then argument
validation, then preconditions, and only then is anything written.
"""
from typing import Callable, Iterable, List, Optional, Tuple, Union

from pydantic import ValidationError

from tierflow.auth import AuthorizationEngine
from tierflow.cascade import StatusCascadeEngine
from tierflow.clock import Clock, SystemClock
from tierflow.data import (
    CommunicationKey, CounterKey, EntityStore, MemberKey, MilestoneKey,
    ProjectKey, TaskKey, key_for,
)
from tierflow.dependencies import DependencyResolver
from tierflow.logs import get_logger
from tierflow.models import (
    Communication, ContextType, Milestone, Project, Role, Status, Task,
    TeamMembership,
)
from tierflow.recovery import (
    AlreadyExists, DependencyIncomplete, IntegrityError, InvalidDeadline,
    InvalidInput, MilestoneNotFound, NotAuthorized, ProjectNotFound,
    TaskNotFound, UserNotFound,
)

log = get_logger("manager")

StatusLike = Union[Status, str]
RoleLike = Union[Role, str, int]


class WorkflowManager:
    """Creates and mutates projects, milestones and tasks on behalf of an actor."""

    def __init__(self, store: Optional[EntityStore] = None, clock: Optional[Clock] = None):
        self.store = store if store is not None else EntityStore()
        self.clock = clock if clock is not None else SystemClock()
        self.auth = AuthorizationEngine(self.store)
        self.resolver = DependencyResolver(self.store)
        self.cascade = StatusCascadeEngine(self.store)

    # --- helpers ---------------------------------------------------------

    @staticmethod
    def _check_identity(identity: str, what: str = "actor") -> str:
        if not isinstance(identity, str) or not identity.strip():
            raise InvalidInput(f"{what} must be a non-empty identity")
        return identity

    def _check_deadline(self, deadline: int) -> int:
        if not isinstance(deadline, int) or isinstance(deadline, bool):
            raise InvalidInput(f"Deadline must be an integer logical time, got {deadline!r}")
        now = self.clock.now()
        if deadline <= now:
            raise InvalidDeadline(deadline, now)
        return deadline

    @staticmethod
    def _build(model, **fields):
        try:
            return model(**fields)
        except ValidationError as e:
            problems = "; ".join(err['msg'] for err in e.errors())
            raise InvalidInput(f"Invalid {model.__name__.lower()}: {problems}") from e

    def _allocate(self, counter: CounterKey, build: Callable[[int], object]):
        """Build the record for the next id first, so a rejected record never burns an id."""
        record = build(self.store.count(counter) + 1)
        self.store.next_id(counter)
        self.store.put(key_for(record), record)
        return record

    def _project(self, project_id: int) -> Project:
        project = self.store.get(ProjectKey(project_id))
        if project is None:
            raise ProjectNotFound(project_id)
        return project

    def _milestone(self, project_id: int, milestone_id: int) -> Milestone:
        milestone = self.store.get(MilestoneKey(project_id, milestone_id))
        if milestone is None:
            raise MilestoneNotFound(project_id, milestone_id)
        return milestone

    def _task(self, project_id: int, milestone_id: int, task_id: int) -> Task:
        task = self.store.get(TaskKey(project_id, milestone_id, task_id))
        if task is None:
            raise TaskNotFound(project_id, milestone_id, task_id)
        return task

    def _require_admin_or_assignee(self, task: Task, actor: str, action: str) -> None:
        if task.assignee is not None and task.assignee == actor:
            return
        self.auth.require(task.project_id, actor, Role.ADMIN, action)

    def _dense(self, counter: CounterKey, key_of: Callable[[int], tuple]) -> list:
        records = []
        for child_id in range(1, self.store.count(counter) + 1):
            record = self.store.get(key_of(child_id))
            if record is None:
                msg = f"Store integrity violated: {type(key_of(child_id)).__name__}{tuple(key_of(child_id))} is missing"
                log.critical(msg)
                raise IntegrityError(msg)
            records.append(record)
        return records

    # --- mutations -------------------------------------------------------

    def create_project(self, actor: str, name: str, description: str, deadline: int) -> int:
        """Create a project owned by `actor`, who also becomes its first ADMIN."""
        self._check_identity(actor)
        with self.store.transaction():
            self._check_deadline(deadline)
            project = self._allocate(CounterKey.projects(), lambda new_id: self._build(
                Project, id=new_id, name=name, description=description, creator=actor,
                created_at=self.clock.now(), status=Status.PENDING, deadline=deadline,
            ))
            self.store.init_counter(CounterKey.milestones(project.id))
            self.store.init_counter(CounterKey.communications(project.id))
            membership = TeamMembership(project_id=project.id, member=actor, role=Role.ADMIN)
            self.store.put(key_for(membership), membership)
        log.info(f"'{actor}' created project {project.id} '{project.name}'")
        return project.id

    def add_team_member(self, actor: str, project_id: int, member: str, role: RoleLike) -> None:
        self._check_identity(actor)
        with self.store.transaction():
            self._project(project_id)
            self.auth.require(project_id, actor, Role.ADMIN, "add team members")
            role = Role.parse(role)
            self._check_identity(member, "member")
            if self.store.exists(MemberKey(project_id, member)):
                raise AlreadyExists(f"'{member}' is already a member of project {project_id}")
            membership = TeamMembership(project_id=project_id, member=member, role=role)
            self.store.put(key_for(membership), membership)
        log.info(f"'{actor}' added '{member}' to project {project_id} as {role.name}")

    def create_milestone(self, actor: str, project_id: int, name: str, description: str, deadline: int) -> int:
        self._check_identity(actor)
        with self.store.transaction():
            self._project(project_id)
            self.auth.require(project_id, actor, Role.ADMIN, "create milestones")
            self._check_deadline(deadline)
            milestone = self._allocate(CounterKey.milestones(project_id), lambda new_id: self._build(
                Milestone, project_id=project_id, milestone_id=new_id, name=name,
                description=description, deadline=deadline, status=Status.PENDING,
            ))
            self.store.init_counter(CounterKey.tasks(project_id, milestone.milestone_id))
        log.info(f"'{actor}' created milestone {project_id}/{milestone.milestone_id} '{milestone.name}'")
        return milestone.milestone_id

    def create_task(self, actor: str, project_id: int, milestone_id: int, name: str, description: str,
                    deadline: int, dependencies: Iterable[int] = ()) -> int:
        """
        Create an unassigned task. Dependency ids are stored as given; whether
        they exist is only checked when the task is completed.
        """
        self._check_identity(actor)
        with self.store.transaction():
            self._project(project_id)
            self._milestone(project_id, milestone_id)
            self.auth.require(project_id, actor, Role.MEMBER, "create tasks")
            self._check_deadline(deadline)
            task = self._allocate(CounterKey.tasks(project_id, milestone_id), lambda new_id: self._build(
                Task, project_id=project_id, milestone_id=milestone_id, task_id=new_id,
                name=name, description=description, assignee=None, deadline=deadline,
                status=Status.PENDING, dependencies=tuple(dependencies),
            ))
        log.info(f"'{actor}' created task {project_id}/{milestone_id}/{task.task_id} '{task.name}'")
        return task.task_id

    def assign_task(self, actor: str, project_id: int, milestone_id: int, task_id: int, assignee: str) -> None:
        self._check_identity(actor)
        with self.store.transaction():
            self._project(project_id)
            task = self._task(project_id, milestone_id, task_id)
            self._require_admin_or_assignee(task, actor, "assign tasks")
            self._check_identity(assignee, "assignee")
            if not self.store.exists(MemberKey(project_id, assignee)):
                raise UserNotFound(project_id, assignee)
            self.store.put(key_for(task), task.model_copy(update={'assignee': assignee}))
        log.info(f"'{actor}' assigned task {project_id}/{milestone_id}/{task_id} to '{assignee}'")

    def update_task_status(self, actor: str, project_id: int, milestone_id: int, task_id: int,
                           new_status: StatusLike) -> None:
        """
        Move a task to any status. Completing it requires every dependency to be
        COMPLETED, and may complete the milestone and then the project.
        """
        self._check_identity(actor)
        with self.store.transaction():
            self._project(project_id)
            task = self._task(project_id, milestone_id, task_id)
            self._require_admin_or_assignee(task, actor, "change task status")
            status = Status.parse(new_status)

            if status == Status.COMPLETED:
                pending = self.resolver.unsatisfied(project_id, milestone_id, task.dependencies)
                if pending:
                    log.warning(f"Task {project_id}/{milestone_id}/{task_id} blocked by {pending}")
                    raise DependencyIncomplete(task_id, pending)

            self.store.put(key_for(task), task.model_copy(update={'status': status}))
            log.info(f"'{actor}' set task {project_id}/{milestone_id}/{task_id} {task.status.value} -> {status.value}")

            if status == Status.COMPLETED:
                self.cascade.on_task_completed(project_id, milestone_id)

    def update_milestone_status(self, actor: str, project_id: int, milestone_id: int,
                                new_status: StatusLike) -> None:
        self._check_identity(actor)
        with self.store.transaction():
            self._project(project_id)
            milestone = self._milestone(project_id, milestone_id)
            self.auth.require(project_id, actor, Role.ADMIN, "change milestone status")
            status = Status.parse(new_status)

            self.store.put(key_for(milestone), milestone.model_copy(update={'status': status}))
            log.info(f"'{actor}' set milestone {project_id}/{milestone_id} {milestone.status.value} -> {status.value}")

            if status == Status.COMPLETED:
                self.cascade.on_milestone_completed(project_id)

    def add_communication(self, actor: str, project_id: int, message: str,
                          context_type: Union[ContextType, str],
                          context_id: Union[int, str, Tuple[int, int]]) -> int:
        """
        Append a message to the project log. Any team member may post.

        Args:
            context_type: project, milestone or task
            context_id: the project id, a milestone id, or a task as
                ``(milestone_id, task_id)`` / ``"milestone_id/task_id"``

        Returns:
            The new communication id
        """
        self._check_identity(actor)
        with self.store.transaction():
            self._project(project_id)
            if self.auth.effective_role(project_id, actor) == Role.NONE:
                log.warning(f"'{actor}' denied posting to project {project_id}: not a member")
                raise NotAuthorized(f"'{actor}' is not a member of project {project_id}")
            context_type = self._context_type(context_type)
            context = self._resolve_context(project_id, context_type, context_id)
            comm = self._allocate(CounterKey.communications(project_id), lambda new_id: self._build(
                Communication, project_id=project_id, comm_id=new_id, sender=actor,
                timestamp=self.clock.now(), message=message, context_type=context_type,
                context_id=context,
            ))
        log.info(f"'{actor}' posted communication {project_id}/{comm.comm_id} on {context_type.value} {context}")
        return comm.comm_id

    @staticmethod
    def _context_type(value: Union[ContextType, str]) -> ContextType:
        if isinstance(value, ContextType):
            return value
        try:
            return ContextType(str(value).strip().lower())
        except ValueError as e:
            raise InvalidInput(f"Invalid context type: {value!r}") from e

    def _resolve_context(self, project_id: int, context_type: ContextType, context_id) -> str:
        """Check the referenced entity exists in this project and return its canonical id."""
        try:
            if context_type == ContextType.TASK:
                if isinstance(context_id, str):
                    milestone_part, task_part = context_id.split("/")
                else:
                    milestone_part, task_part = context_id
                milestone_id, task_id = int(milestone_part), int(task_part)
            else:
                target_id = int(context_id)
        except (TypeError, ValueError) as e:
            raise InvalidInput(f"Invalid {context_type.value} context id: {context_id!r}") from e

        if context_type == ContextType.PROJECT:
            if target_id != project_id:
                raise InvalidInput(f"Project context id {target_id} does not match project {project_id}")
            return str(project_id)
        if context_type == ContextType.MILESTONE:
            self._milestone(project_id, target_id)
            return str(target_id)
        self._task(project_id, milestone_id, task_id)
        return f"{milestone_id}/{task_id}"

    # --- queries ---------------------------------------------------------

    def get_project(self, project_id: int) -> Project:
        return self._project(project_id)

    def get_milestone(self, project_id: int, milestone_id: int) -> Milestone:
        with self.store.transaction():
            self._project(project_id)
            return self._milestone(project_id, milestone_id)

    def get_task(self, project_id: int, milestone_id: int, task_id: int) -> Task:
        with self.store.transaction():
            self._project(project_id)
            return self._task(project_id, milestone_id, task_id)

    def get_member_role(self, project_id: int, member: str) -> Optional[Role]:
        """The member's stored role, or None when they have no membership row."""
        with self.store.transaction():
            self._project(project_id)
            membership = self.store.get(MemberKey(project_id, member))
            return membership.role if membership is not None else None

    def list_team_members(self, project_id: int) -> List[TeamMembership]:
        with self.store.transaction():
            self._project(project_id)
            members = self.store.records(MemberKey, project_id)
        return sorted(members, key=lambda m: (m.role.value, m.member))

    def list_milestones(self, project_id: int) -> List[Milestone]:
        with self.store.transaction():
            self._project(project_id)
            return self._dense(CounterKey.milestones(project_id),
                               lambda milestone_id: MilestoneKey(project_id, milestone_id))

    def list_tasks(self, project_id: int, milestone_id: int) -> List[Task]:
        with self.store.transaction():
            self._project(project_id)
            self._milestone(project_id, milestone_id)
            return self._dense(CounterKey.tasks(project_id, milestone_id),
                               lambda task_id: TaskKey(project_id, milestone_id, task_id))

    def list_communications(self, project_id: int) -> List[Communication]:
        with self.store.transaction():
            self._project(project_id)
            return self._dense(CounterKey.communications(project_id),
                               lambda comm_id: CommunicationKey(project_id, comm_id))

    def all_tasks(self, project_id: int) -> List[Task]:
        """Every task of the project, milestone by milestone."""
        with self.store.transaction():
            tasks = []
            for milestone in self.list_milestones(project_id):
                tasks.extend(self.list_tasks(project_id, milestone.milestone_id))
            return tasks

    def tasks_by_assignee(self, project_id: int, assignee: str) -> List[Task]:
        return [task for task in self.all_tasks(project_id) if task.assignee == assignee]

    def upcoming_deadlines(self, project_id: int, window: int) -> List[Task]:
        """Open tasks due strictly between now and now + window."""
        if not isinstance(window, int) or isinstance(window, bool) or window < 0:
            raise InvalidInput(f"Window must be a non-negative integer, got {window!r}")
        with self.store.transaction():
            now = self.clock.now()
            return [
                task for task in self.all_tasks(project_id)
                if now < task.deadline < now + window and not task.status.terminal_complete
            ]
