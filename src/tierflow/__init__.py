"""
tierflow - a hierarchical workflow store.

Projects contain milestones, milestones contain tasks. Completing the last
open task of a milestone completes it, and completing the last open
milestone completes the project:
Project → Milestone → Task
"""

from .version import VERSION, APP_SCHEMA_VERSION
from .models import (
    Status,
    Role,
    ContextType,
    Project,
    Milestone,
    Task,
    TeamMembership,
    Communication,
    StoreSnapshot,
)
from .clock import Clock, LogicalClock, SystemClock
from .data import EntityStore, load_store, save_store
from .manager import WorkflowManager

__version__ = VERSION

__all__ = [
    "VERSION",
    "APP_SCHEMA_VERSION",
    "Status",
    "Role",
    "ContextType",
    "Project",
    "Milestone",
    "Task",
    "TeamMembership",
    "Communication",
    "StoreSnapshot",
    "Clock",
    "LogicalClock",
    "SystemClock",
    "EntityStore",
    "load_store",
    "save_store",
    "WorkflowManager",
]
