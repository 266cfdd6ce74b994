"""
Authorization engine: resolves an actor's effective role on a project.
"""
from tierflow.data import EntityStore, MemberKey, ProjectKey
from tierflow.logs import get_logger
from tierflow.models import Role
from tierflow.recovery import NotAuthorized, ProjectNotFound

log = get_logger("auth")


class AuthorizationEngine:
    def __init__(self, store: EntityStore):
        self.store = store

    def effective_role(self, project_id: int, actor: str) -> Role:
        """
        The actor's role on the project: ADMIN for the creator, the membership
        row otherwise, Role.NONE when there is no row.

        Raises:
            ProjectNotFound: the project does not exist.
        """
        project = self.store.get(ProjectKey(project_id))
        if project is None:
            raise ProjectNotFound(project_id)
        if project.creator == actor:
            return Role.ADMIN
        membership = self.store.get(MemberKey(project_id, actor))
        return membership.role if membership is not None else Role.NONE

    def is_authorized(self, project_id: int, actor: str, required: Role) -> bool:
        """True when the actor's role is at least as privileged as `required`."""
        return self.effective_role(project_id, actor).satisfies(required)

    def require(self, project_id: int, actor: str, required: Role, action: str) -> None:
        if not self.is_authorized(project_id, actor, required):
            log.warning(f"'{actor}' denied {action} on project {project_id} (needs {required.name})")
            raise NotAuthorized(f"'{actor}' needs {required.name} privilege to {action} in project {project_id}")
