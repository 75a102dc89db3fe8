"""
Delivery: state storage and revision scheduling.

- state_store: versioned in-memory store of states, revisions and path entries
- scheduler: spaced-repetition revision scheduler
"""

from fastrev.delivery.scheduler import (
    RevisionScheduler,
    SchedulerConfig,
    backoff_days,
    growth_days,
    revision_priority,
)
from fastrev.delivery.state_store import (
    LearningPathEntry,
    LearningPathStatus,
    PriorityBand,
    RevisionEvent,
    RevisionItem,
    RevisionStatus,
    StateStore,
)

__all__ = [
    "RevisionScheduler",
    "SchedulerConfig",
    "backoff_days",
    "growth_days",
    "revision_priority",
    "LearningPathEntry",
    "LearningPathStatus",
    "PriorityBand",
    "RevisionEvent",
    "RevisionItem",
    "RevisionStatus",
    "StateStore",
]
