"""Shared fixtures for tierflow tests."""

import os
import tempfile

# Keep test runs out of the user's real log directory; must happen before tierflow is imported.
os.environ.setdefault("TIERFLOW_LOG_DIR", tempfile.mkdtemp(prefix="tierflow-logs-"))

import pytest

from tierflow.clock import LogicalClock
from tierflow.data import EntityStore
from tierflow.manager import WorkflowManager
from tierflow.models import Role

OWNER = "alice"
MEMBER = "bob"
VIEWER = "carol"
STRANGER = "mallory"


@pytest.fixture()
def clock():
    return LogicalClock(start=0)


@pytest.fixture()
def store():
    return EntityStore()


@pytest.fixture()
def mgr(store, clock):
    return WorkflowManager(store, clock)


@pytest.fixture()
def project(mgr):
    """Project 1 owned by alice, with bob as MEMBER and carol as VIEWER, and one milestone."""
    project_id = mgr.create_project(OWNER, "Apollo", "Moon shot", 1000)
    mgr.add_team_member(OWNER, project_id, MEMBER, Role.MEMBER)
    mgr.add_team_member(OWNER, project_id, VIEWER, Role.VIEWER)
    mgr.create_milestone(OWNER, project_id, "Design", "", 900)
    return project_id
