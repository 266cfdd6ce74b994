"""
Data management submodule: the entity store and its persistence.
"""

from .core import (
    EntityStore,
    ProjectKey,
    MilestoneKey,
    TaskKey,
    MemberKey,
    CommunicationKey,
    CounterKey,
    key_for,
)
from .io import save_store, load_store, atomic_write, DATA_YAML, DATA_JSON

__all__ = [
    'EntityStore',
    'ProjectKey',
    'MilestoneKey',
    'TaskKey',
    'MemberKey',
    'CommunicationKey',
    'CounterKey',
    'key_for',
    'save_store',
    'load_store',
    'atomic_write',
    'DATA_YAML',
    'DATA_JSON',
]
