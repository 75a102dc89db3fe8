"""
In-memory State Store for the adaptive engine.

Holds, per enrolled student:
- Competence states (versioned, optimistic concurrency)
- Revision items with their event history
- Learning path entries (derived cache)

The store is the boundary with persistence: callers that keep state in a
database load it into a store, run engine operations, and write back the
records the operations returned. All reads return copies, so a record can
only change through an explicit save.
"""

from __future__ import annotations

import copy
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum

from loguru import logger

from fastrev.core.errors import ConcurrencyConflict, InvalidRevisionUpdate, NotFoundError
from fastrev.core.mastery import CompetenceState

# =============================================================================
# Data Classes
# =============================================================================


class RevisionStatus(str, Enum):
    """Lifecycle of a revision item."""

    PENDING = "pending"
    CANCELLED = "cancelled"


class PriorityBand(str, Enum):
    """Display band of a revision priority score."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"

    @classmethod
    def from_priority(cls, priority: float) -> PriorityBand:
        if priority >= 50:
            return cls.URGENT
        elif priority >= 30:
            return cls.HIGH
        elif priority >= 15:
            return cls.NORMAL
        else:
            return cls.LOW


@dataclass
class RevisionEvent:
    """A single change to a revision item, kept for analytics."""

    kind: str  # scheduled, rescheduled, postponed, cancelled
    at: datetime
    scheduled_for: datetime
    reason: str | None = None


@dataclass
class RevisionItem:
    """Spaced-repetition record for one (student, competence) pair."""

    revision_id: str
    student_id: str
    competence_code: str
    scheduled_for: datetime
    status: RevisionStatus = RevisionStatus.PENDING
    failure_count: int = 0
    last_evaluation_ref: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    history: list[RevisionEvent] = field(default_factory=list)

    # Derived on read, never a source of truth
    priority: float = 0.0

    @property
    def is_active(self) -> bool:
        return self.status is RevisionStatus.PENDING

    @property
    def priority_band(self) -> PriorityBand:
        return PriorityBand.from_priority(self.priority)


class LearningPathStatus(str, Enum):
    """Status of a competence in a student's learning path."""

    LOCKED = "locked"
    AVAILABLE = "available"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    SKIPPED = "skipped"


@dataclass
class LearningPathEntry:
    """Cached learning path position of one competence for one student."""

    student_id: str
    competence_code: str
    status: LearningPathStatus = LearningPathStatus.LOCKED
    blocking_reasons: set[str] = field(default_factory=set)
    order_index: int = 0
    unlocked_at: datetime | None = None
    updated_at: datetime | None = None
    note: str | None = None  # Reason given for skip / re-lock

    @property
    def is_blocked(self) -> bool:
        return self.status is LearningPathStatus.LOCKED


# =============================================================================
# State Store
# =============================================================================


class StateStore:
    """
    Thread-safe in-memory persistence for engine records.

    Handles:
    - Student enrollment
    - Competence states with version checks
    - Revision items (one active item per student/competence)
    - Learning path entries
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._students: set[str] = set()
        self._states: dict[tuple[str, str], CompetenceState] = {}
        self._revisions: dict[str, RevisionItem] = {}
        self._active_revisions: dict[tuple[str, str], str] = {}
        self._path_entries: dict[tuple[str, str], LearningPathEntry] = {}

    # -------------------------------------------------------------------------
    # Students
    # -------------------------------------------------------------------------

    def enroll_student(self, student_id: str) -> None:
        with self._lock:
            if student_id not in self._students:
                self._students.add(student_id)
                logger.debug(f"Student {student_id} enrolled")

    def has_student(self, student_id: str) -> bool:
        with self._lock:
            return student_id in self._students

    def require_student(self, student_id: str) -> None:
        """Raise NotFoundError unless the student is enrolled."""
        if not self.has_student(student_id):
            raise NotFoundError("student", student_id)

    @property
    def students(self) -> list[str]:
        with self._lock:
            return sorted(self._students)

    # -------------------------------------------------------------------------
    # Competence states
    # -------------------------------------------------------------------------

    def get_state(self, student_id: str, competence_code: str) -> CompetenceState | None:
        with self._lock:
            state = self._states.get((student_id, competence_code))
            return replace(state) if state is not None else None

    def get_student_states(self, student_id: str) -> dict[str, CompetenceState]:
        """All states of a student keyed by competence code."""
        with self._lock:
            return {
                code: replace(state)
                for (owner, code), state in self._states.items()
                if owner == student_id
            }

    def save_state(self, state: CompetenceState, expected_version: int) -> CompetenceState:
        """
        Store a new competence state if nobody stored one since it was read.

        Args:
            state: New state to store
            expected_version: Version of the state the update was computed from

        Returns:
            Stored copy with its version incremented

        Raises:
            ConcurrencyConflict: When the stored version moved on
        """
        key = (state.student_id, state.competence_code)
        with self._lock:
            current = self._states.get(key)
            actual = current.version if current is not None else 0
            if actual != expected_version:
                raise ConcurrencyConflict(
                    state.student_id, state.competence_code, expected_version, actual
                )
            stored = replace(state, version=actual + 1)
            self._states[key] = stored
            return replace(stored)

    # -------------------------------------------------------------------------
    # Revision items
    # -------------------------------------------------------------------------

    def get_revision(self, revision_id: str) -> RevisionItem:
        with self._lock:
            item = self._revisions.get(revision_id)
            if item is None:
                raise NotFoundError("revision", revision_id)
            return copy.deepcopy(item)

    def get_active_revision(self, student_id: str, competence_code: str) -> RevisionItem | None:
        with self._lock:
            revision_id = self._active_revisions.get((student_id, competence_code))
            if revision_id is None:
                return None
            return copy.deepcopy(self._revisions[revision_id])

    def save_revision(self, item: RevisionItem) -> RevisionItem:
        """Insert or replace a revision item and keep the active index in sync."""
        key = (item.student_id, item.competence_code)
        with self._lock:
            active_id = self._active_revisions.get(key)
            if item.is_active:
                if active_id is not None and active_id != item.revision_id:
                    raise InvalidRevisionUpdate(
                        f"{item.student_id}/{item.competence_code} already has "
                        f"active revision {active_id}"
                    )
                self._active_revisions[key] = item.revision_id
            elif active_id == item.revision_id:
                del self._active_revisions[key]
            self._revisions[item.revision_id] = copy.deepcopy(item)
            return copy.deepcopy(item)

    def revisions_for(self, student_id: str, include_cancelled: bool = True) -> list[RevisionItem]:
        with self._lock:
            return [
                copy.deepcopy(item)
                for item in self._revisions.values()
                if item.student_id == student_id and (include_cancelled or item.is_active)
            ]

    # -------------------------------------------------------------------------
    # Learning path entries
    # -------------------------------------------------------------------------

    def get_path_entry(self, student_id: str, competence_code: str) -> LearningPathEntry | None:
        with self._lock:
            entry = self._path_entries.get((student_id, competence_code))
            return copy.deepcopy(entry) if entry is not None else None

    def save_path_entry(self, entry: LearningPathEntry) -> LearningPathEntry:
        with self._lock:
            self._path_entries[(entry.student_id, entry.competence_code)] = copy.deepcopy(entry)
            return copy.deepcopy(entry)

    def path_entries_for(self, student_id: str) -> dict[str, LearningPathEntry]:
        with self._lock:
            return {
                code: copy.deepcopy(entry)
                for (owner, code), entry in self._path_entries.items()
                if owner == student_id
            }
