"""Unit tests for the StatusCascadeEngine."""

import pytest

from tierflow.cascade import StatusCascadeEngine
from tierflow.data import CounterKey, MilestoneKey, ProjectKey, TaskKey
from tierflow.models import Status
from tierflow.recovery import IntegrityError

from conftest import OWNER, MEMBER


@pytest.fixture()
def cascade(store):
    return StatusCascadeEngine(store)


class TestTaskToMilestone:
    """Test completion propagating from tasks to their milestone."""

    def test_non_last_task_leaves_milestone(self, mgr, project):
        """Test that completing one of two open tasks changes nothing upward."""
        mgr.create_task(OWNER, project, 1, "A", "", 500)
        mgr.create_task(OWNER, project, 1, "B", "", 500)

        mgr.update_task_status(OWNER, project, 1, 1, Status.COMPLETED)
        assert mgr.get_milestone(project, 1).status == Status.PENDING
        assert mgr.get_project(project).status == Status.PENDING

    def test_last_task_completes_milestone(self, mgr, project):
        """Test that completing the last open task completes the milestone."""
        mgr.create_task(OWNER, project, 1, "A", "", 500)
        mgr.create_task(OWNER, project, 1, "B", "", 500)
        mgr.update_task_status(OWNER, project, 1, 1, Status.COMPLETED)
        mgr.update_task_status(OWNER, project, 1, 2, Status.COMPLETED)
        assert mgr.get_milestone(project, 1).status == Status.COMPLETED

    def test_cancelled_siblings_count_as_done(self, mgr, project):
        """Test that cancelled tasks do not hold the milestone open."""
        mgr.create_task(OWNER, project, 1, "A", "", 500)
        mgr.create_task(OWNER, project, 1, "B", "", 500)
        mgr.update_task_status(OWNER, project, 1, 1, Status.CANCELLED)
        assert mgr.get_milestone(project, 1).status == Status.PENDING

        mgr.update_task_status(OWNER, project, 1, 2, Status.COMPLETED)
        assert mgr.get_milestone(project, 1).status == Status.COMPLETED

    def test_cancelling_does_not_trigger(self, mgr, project):
        """Test that only a transition into COMPLETED re-evaluates the parent."""
        mgr.create_task(OWNER, project, 1, "A", "", 500)
        mgr.create_task(OWNER, project, 1, "B", "", 500)
        mgr.update_task_status(OWNER, project, 1, 1, Status.COMPLETED)
        mgr.update_task_status(OWNER, project, 1, 2, Status.CANCELLED)
        assert mgr.get_milestone(project, 1).status == Status.PENDING

    def test_order_independent(self, mgr, project):
        """Test that the outcome depends on sibling states, not update order."""
        for name in "ABC":
            mgr.create_task(OWNER, project, 1, name, "", 500)
        for task_id in (3, 1, 2):
            mgr.update_task_status(OWNER, project, 1, task_id, Status.COMPLETED)
        assert mgr.get_milestone(project, 1).status == Status.COMPLETED

    def test_reopened_task_is_not_auto_reverted(self, mgr, project):
        """Test that the cascade never downgrades a completed milestone."""
        mgr.create_task(OWNER, project, 1, "A", "", 500)
        mgr.update_task_status(OWNER, project, 1, 1, Status.COMPLETED)
        mgr.update_task_status(OWNER, project, 1, 1, Status.PENDING)
        assert mgr.get_task(project, 1, 1).status == Status.PENDING
        assert mgr.get_milestone(project, 1).status == Status.COMPLETED

    def test_milestone_with_many_tasks(self, mgr, project):
        """Test the sibling scan beyond any small fixed range."""
        for i in range(25):
            mgr.create_task(OWNER, project, 1, f"T{i}", "", 500)
        for task_id in range(1, 25):
            mgr.update_task_status(OWNER, project, 1, task_id, Status.COMPLETED)
        assert mgr.get_milestone(project, 1).status == Status.PENDING
        mgr.update_task_status(OWNER, project, 1, 25, Status.COMPLETED)
        assert mgr.get_milestone(project, 1).status == Status.COMPLETED


class TestMilestoneToProject:
    """Test completion propagating from milestones to the project."""

    def test_last_milestone_completes_project(self, mgr, project):
        """Test that the project completes once every milestone is done."""
        mgr.create_milestone(OWNER, project, "Build", "", 900)
        mgr.create_task(OWNER, project, 1, "A", "", 500)
        mgr.create_task(OWNER, project, 2, "B", "", 500)

        mgr.update_task_status(OWNER, project, 1, 1, Status.COMPLETED)
        assert mgr.get_milestone(project, 1).status == Status.COMPLETED
        assert mgr.get_project(project).status == Status.PENDING

        mgr.update_task_status(OWNER, project, 2, 1, Status.COMPLETED)
        assert mgr.get_project(project).status == Status.COMPLETED

    def test_manual_milestone_completion_cascades(self, mgr, project):
        """Test that completing a milestone by hand re-evaluates the project."""
        mgr.create_milestone(OWNER, project, "Build", "", 900)
        mgr.update_milestone_status(OWNER, project, 1, Status.CANCELLED)
        assert mgr.get_project(project).status == Status.PENDING

        mgr.update_milestone_status(OWNER, project, 2, Status.COMPLETED)
        assert mgr.get_project(project).status == Status.COMPLETED

    def test_open_milestone_blocks_project(self, mgr, project):
        """Test that one open milestone keeps the project open."""
        mgr.create_milestone(OWNER, project, "Build", "", 900)
        mgr.update_milestone_status(OWNER, project, 1, Status.COMPLETED)
        mgr.update_milestone_status(OWNER, project, 2, Status.DELAYED)
        assert mgr.get_project(project).status == Status.PENDING


class TestIntegrity:
    """Test that store inconsistencies surface as fatal errors."""

    def test_missing_sibling(self, cascade, store, mgr, project):
        """Test a counter that points past the stored tasks."""
        mgr.create_task(OWNER, project, 1, "A", "", 500)
        store.next_id(CounterKey.tasks(project, 1))
        with pytest.raises(IntegrityError, match="missing"):
            cascade.milestone_finished(project, 1)

    def test_missing_milestone_after_open_sibling(self, cascade, store, project):
        """Test that a gap is reported even when an earlier milestone is still open."""
        store.next_id(CounterKey.milestones(project))
        with pytest.raises(IntegrityError, match="milestone 1/2"):
            cascade.project_finished(project)

    def test_missing_parent_milestone(self, cascade, project):
        """Test re-evaluating a milestone that does not exist."""
        with pytest.raises(IntegrityError, match="milestone 1/9"):
            cascade.on_task_completed(project, 9)

    def test_missing_project(self, cascade):
        """Test re-evaluating a project that does not exist."""
        with pytest.raises(IntegrityError, match="project 5"):
            cascade.on_milestone_completed(5)

    def test_already_completed_parent_is_untouched(self, cascade, store, mgr, project):
        """Test that re-evaluating a completed milestone keeps its record as is."""
        mgr.create_task(MEMBER, project, 1, "A", "", 500)
        mgr.update_task_status(OWNER, project, 1, 1, Status.COMPLETED)
        before = store.get(MilestoneKey(project, 1))
        assert cascade.on_task_completed(project, 1) is True
        assert store.get(MilestoneKey(project, 1)) is before
        assert store.get(ProjectKey(project)).status == Status.COMPLETED
        assert store.get(TaskKey(project, 1, 1)).status == Status.COMPLETED
