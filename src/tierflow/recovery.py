class TierflowError(Exception):
    """Base exception for all tierflow errors."""
    pass

class RecoverableError(TierflowError):
    """An error that can be recovered from without data loss."""
    pass

class FatalError(TierflowError):
    """An error that requires application termination or major intervention."""
    pass

class CorruptionError(FatalError):
    """Corrupted Data Error - from syntax errors in data formats, to just unknown data"""
    pass

class IntegrityError(FatalError):
    """The store contradicts its own invariants, e.g. a parent record is missing."""
    pass

class FileOperationError(RecoverableError):
    """File operation failed but can be retried."""
    pass

class MigrationNeededError(RecoverableError):
    """ Data is valid, but was written by an older schema """
    pass

# --- Workflow operation failures ---

class WorkflowError(RecoverableError):
    """An operation was refused; the store was left untouched."""
    pass

class NotFoundError(WorkflowError):
    pass

class ProjectNotFound(NotFoundError):
    def __init__(self, project_id):
        super().__init__(f"Project {project_id} not found")
        self.project_id = project_id

class MilestoneNotFound(NotFoundError):
    def __init__(self, project_id, milestone_id):
        super().__init__(f"Milestone {project_id}/{milestone_id} not found")
        self.project_id = project_id
        self.milestone_id = milestone_id

class TaskNotFound(NotFoundError):
    def __init__(self, project_id, milestone_id, task_id):
        super().__init__(f"Task {project_id}/{milestone_id}/{task_id} not found")
        self.project_id = project_id
        self.milestone_id = milestone_id
        self.task_id = task_id

class UserNotFound(NotFoundError):
    def __init__(self, project_id, member):
        super().__init__(f"'{member}' is not a member of project {project_id}")
        self.project_id = project_id
        self.member = member

class NotAuthorized(WorkflowError):
    pass

class InvalidDeadline(WorkflowError):
    def __init__(self, deadline, now):
        super().__init__(f"Deadline {deadline} must be later than the current time {now}")
        self.deadline = deadline
        self.now = now

class InvalidRole(WorkflowError):
    pass

class InvalidStatus(WorkflowError):
    pass

class AlreadyExists(WorkflowError):
    pass

class DependencyIncomplete(WorkflowError):
    def __init__(self, task_id, pending):
        listing = ", ".join(str(dep) for dep in pending)
        super().__init__(f"Task {task_id} cannot be completed before task(s) {listing}")
        self.task_id = task_id
        self.pending = list(pending)

class InvalidInput(WorkflowError, ValueError):
    """Malformed argument: text too long, too many dependencies, empty identity..."""
    pass
