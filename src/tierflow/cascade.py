"""
Status cascade engine.

Completing the last open task of a milestone completes the milestone, and
completing the last open milestone of a project completes the project. Each
trigger re-scans the whole dense sibling range 1..count, so the outcome only
depends on the current sibling statuses, never on the order of updates.
"""
from tierflow.data import CounterKey, EntityStore, MilestoneKey, ProjectKey, TaskKey
from tierflow.logs import get_logger
from tierflow.models import Status
from tierflow.recovery import IntegrityError

log = get_logger("cascade")


class StatusCascadeEngine:
    def __init__(self, store: EntityStore):
        self.store = store

    def _missing(self, what: str) -> IntegrityError:
        msg = f"Store integrity violated: {what} is missing"
        log.critical(msg)
        return IntegrityError(msg)

    def milestone_finished(self, project_id: int, milestone_id: int) -> bool:
        """True when every task of the milestone is COMPLETED or CANCELLED."""
        count = self.store.count(CounterKey.tasks(project_id, milestone_id))
        tasks = []
        for task_id in range(1, count + 1):
            task = self.store.get(TaskKey(project_id, milestone_id, task_id))
            if task is None:
                raise self._missing(f"task {project_id}/{milestone_id}/{task_id}")
            tasks.append(task)
        return all(task.status.terminal_complete for task in tasks)

    def project_finished(self, project_id: int) -> bool:
        """True when every milestone of the project is COMPLETED or CANCELLED."""
        count = self.store.count(CounterKey.milestones(project_id))
        milestones = []
        for milestone_id in range(1, count + 1):
            milestone = self.store.get(MilestoneKey(project_id, milestone_id))
            if milestone is None:
                raise self._missing(f"milestone {project_id}/{milestone_id}")
            milestones.append(milestone)
        return all(milestone.status.terminal_complete for milestone in milestones)

    def on_task_completed(self, project_id: int, milestone_id: int) -> bool:
        """
        Re-evaluate the parent milestone after one of its tasks was completed.

        Returns:
            True if the milestone is COMPLETED afterwards (newly or already).
        """
        milestone = self.store.get(MilestoneKey(project_id, milestone_id))
        if milestone is None:
            raise self._missing(f"milestone {project_id}/{milestone_id}")
        if not self.milestone_finished(project_id, milestone_id):
            return False

        if milestone.status != Status.COMPLETED:
            self.store.put(MilestoneKey(project_id, milestone_id),
                           milestone.model_copy(update={'status': Status.COMPLETED}))
            log.info(f"Milestone {project_id}/{milestone_id} auto-completed: all tasks done")
        self.on_milestone_completed(project_id)
        return True

    def on_milestone_completed(self, project_id: int) -> bool:
        """
        Re-evaluate the project after one of its milestones was completed.

        Returns:
            True if the project is COMPLETED afterwards (newly or already).
        """
        project = self.store.get(ProjectKey(project_id))
        if project is None:
            raise self._missing(f"project {project_id}")
        if not self.project_finished(project_id):
            return False

        if project.status != Status.COMPLETED:
            self.store.put(ProjectKey(project_id), project.model_copy(update={'status': Status.COMPLETED}))
            log.info(f"Project {project_id} auto-completed: all milestones done")
        return True
