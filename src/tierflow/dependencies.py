from typing import Iterable, List

from tierflow.data import EntityStore, TaskKey
from tierflow.models import Status


class DependencyResolver:
    """
    Decides whether a task's declared dependencies are done.

    A dependency is satisfied only by an existing task whose status is exactly
    COMPLETED. A cancelled or never-created dependency keeps the task blocked.
    """

    def __init__(self, store: EntityStore):
        self.store = store

    def unsatisfied(self, project_id: int, milestone_id: int, deps: Iterable[int]) -> List[int]:
        """Dependency ids that still block completion, in declaration order."""
        pending = []
        for dep_id in deps:
            task = self.store.get(TaskKey(project_id, milestone_id, dep_id))
            if task is None or not task.status.dependency_complete:
                pending.append(dep_id)
        return pending

    def dependencies_satisfied(self, project_id: int, milestone_id: int, deps: Iterable[int]) -> bool:
        return not self.unsatisfied(project_id, milestone_id, deps)
