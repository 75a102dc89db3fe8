"""
Spaced-Repetition Revision Scheduler.

Implements:
- Exponential failure backoff (1d, 2d, 4d ... capped at 14d)
- Growing reinforcement intervals after successes (2d * 1.8^n)
- Postpone / cancel actions with an event history
- Priority-ordered due queue

Priority formula:
    priority = overdue_days * 2 + failure_count * 3 + competence_weight

where competence_weight is the heaviest recommended prerequisite edge
pointing at the competence, so curriculum authors can bias skills upward.
"""

from __future__ import annotations

import math
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from loguru import logger

from fastrev.core.errors import InvalidRevisionUpdate
from fastrev.delivery.state_store import RevisionEvent, RevisionItem, RevisionStatus, StateStore

if TYPE_CHECKING:
    from config import Settings

SECONDS_PER_DAY = 86400.0

# =============================================================================
# Interval formulas
# =============================================================================


@dataclass
class SchedulerConfig:
    """Configuration for revision scheduling (all durations in days)."""

    base_delay_days: float = 1.0  # First retry after a failure
    max_delay_days: float = 14.0  # Backoff cap
    base_interval_days: float = 2.0  # First reinforcement after a success
    growth_factor: float = 1.8  # Interval growth per consecutive success
    max_interval_days: float = 180.0  # Reinforcement cap

    @classmethod
    def from_settings(cls, settings: Settings) -> SchedulerConfig:
        return cls(**settings.get_revision_config())


def _capped_exponential(base: float, factor: float, exponent: int, cap: float) -> float:
    """base * factor ** exponent, saturating at cap instead of overflowing."""
    if base <= 0:
        return 0.0
    if base >= cap:
        return cap
    exponent = max(exponent, 0)
    if factor <= 1.0:
        return min(base * factor**exponent, cap)
    if exponent * math.log(factor) >= math.log(cap / base):
        return cap
    return base * factor**exponent


def backoff_days(failure_count: int, config: SchedulerConfig | None = None) -> float:
    """
    Delay before retrying after the n-th consecutive failure.

    backoff(n) = min(base_delay * 2^(n-1), max_delay), with n < 1 treated as 1.
    """
    config = config or SchedulerConfig()
    return _capped_exponential(
        config.base_delay_days, 2.0, max(failure_count, 1) - 1, config.max_delay_days
    )


def growth_days(consecutive_successes: int, config: SchedulerConfig | None = None) -> float:
    """
    Reinforcement interval after a success.

    growth(n) = base_interval * growth_factor^n, capped at max_interval.
    """
    config = config or SchedulerConfig()
    return _capped_exponential(
        config.base_interval_days,
        config.growth_factor,
        consecutive_successes,
        config.max_interval_days,
    )


def revision_priority(
    scheduled_for: datetime,
    failure_count: int,
    as_of: datetime,
    competence_weight: float = 0.0,
) -> float:
    """
    Priority of a revision item at `as_of`.

    Args:
        scheduled_for: When the revision was due
        failure_count: Stored failure count of the item
        as_of: Reference time
        competence_weight: Max recommended-edge weight into the competence

    Returns:
        overdue_days * 2 + failure_count * 3 + competence_weight
    """
    overdue_days = max(0.0, (as_of - scheduled_for).total_seconds() / SECONDS_PER_DAY)
    return overdue_days * 2 + failure_count * 3 + competence_weight


def ensure_aware(moment: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Revision Scheduler
# =============================================================================


class RevisionScheduler:
    """
    Creates and updates revision items for the students of a StateStore.

    One active item per (student, competence): a new outcome reschedules the
    existing item instead of adding another one.
    """

    def __init__(
        self,
        store: StateStore,
        config: SchedulerConfig | None = None,
        clock: Callable[[], datetime] | None = None,
        weight_of: Callable[[str], float] | None = None,
        subject_of: Callable[[str], str] | None = None,
    ):
        """
        Initialize the scheduler.

        Args:
            store: StateStore holding revision items
            config: Interval configuration (uses defaults if None)
            clock: Returns the current time (UTC now if None)
            weight_of: Competence weight lookup used by the priority formula
            subject_of: Competence subject lookup used to filter the due queue
        """
        self.store = store
        self.config = config or SchedulerConfig()
        self._clock = clock or utc_now
        self._weight_of = weight_of or (lambda code: 0.0)
        self._subject_of = subject_of or (lambda code: "")

    def now(self) -> datetime:
        return ensure_aware(self._clock())

    # -------------------------------------------------------------------------
    # Outcomes
    # -------------------------------------------------------------------------

    def on_failure(
        self,
        student_id: str,
        competence_code: str,
        failure_count: int | None = None,
        evaluation_ref: str | None = None,
    ) -> RevisionItem:
        """
        Schedule a retry after a failed attempt.

        Args:
            student_id: Student identifier
            competence_code: Competence that was failed
            failure_count: Consecutive failure count; when omitted the stored
                count is incremented
            evaluation_ref: Reference to the evaluation that caused this

        Returns:
            The pending RevisionItem
        """
        now = self.now()
        item, kind = self._active_or_new(student_id, competence_code, now)

        count = failure_count if failure_count is not None else item.failure_count + 1
        count = max(count, 1)
        delay = backoff_days(count, self.config)

        item.failure_count = count
        item.scheduled_for = now + timedelta(days=delay)
        item = self._record(item, kind, now, evaluation_ref, reason=f"failure #{count}")

        logger.debug(
            f"Revision {item.revision_id} for {student_id}/{competence_code}: "
            f"failure #{count}, retry in {delay:g}d"
        )
        return item

    def on_success(
        self,
        student_id: str,
        competence_code: str,
        consecutive_successes: int,
        evaluation_ref: str | None = None,
    ) -> RevisionItem:
        """
        Schedule reinforcement after a successful attempt.

        The interval grows with the success streak; the failure count resets.
        """
        now = self.now()
        item, kind = self._active_or_new(student_id, competence_code, now)

        interval = growth_days(consecutive_successes, self.config)

        item.failure_count = 0
        item.scheduled_for = now + timedelta(days=interval)
        item = self._record(
            item, kind, now, evaluation_ref, reason=f"success streak {consecutive_successes}"
        )

        logger.debug(
            f"Revision {item.revision_id} for {student_id}/{competence_code}: "
            f"streak {consecutive_successes}, reinforce in {interval:.1f}d"
        )
        return item

    # -------------------------------------------------------------------------
    # Student / operator actions
    # -------------------------------------------------------------------------

    def postpone(self, revision_id: str, new_date: datetime, reason: str | None = None) -> RevisionItem:
        """
        Move a pending revision later.

        Raises:
            NotFoundError: Unknown revision
            InvalidRevisionUpdate: Cancelled item, or a date before the current one
        """
        item = self.store.get_revision(revision_id)
        if not item.is_active:
            raise InvalidRevisionUpdate(f"Revision {revision_id} is cancelled")

        new_date = ensure_aware(new_date)
        if new_date < item.scheduled_for:
            raise InvalidRevisionUpdate(
                f"Revision {revision_id} can only move forward: "
                f"{new_date.isoformat()} < {item.scheduled_for.isoformat()}"
            )

        now = self.now()
        item.scheduled_for = new_date
        item.updated_at = now
        item.history.append(RevisionEvent("postponed", now, new_date, reason))
        logger.info(f"Revision {revision_id} postponed to {new_date.isoformat()} ({reason})")
        return self.store.save_revision(item)

    def cancel(self, revision_id: str, reason: str | None = None) -> RevisionItem:
        """Cancel a revision; it leaves the due queue but stays in the history."""
        item = self.store.get_revision(revision_id)
        if not item.is_active:
            return item

        now = self.now()
        item.status = RevisionStatus.CANCELLED
        item.updated_at = now
        item.history.append(RevisionEvent("cancelled", now, item.scheduled_for, reason))
        logger.info(f"Revision {revision_id} cancelled ({reason})")
        return self.store.save_revision(item)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def due_items(
        self,
        student_id: str,
        as_of: datetime | None = None,
        limit: int | None = None,
        min_priority: float | None = None,
        subject: str | None = None,
    ) -> list[RevisionItem]:
        """
        Pending items due at `as_of`, most urgent first.

        Ordering: priority descending, then earliest scheduled_for, then
        highest failure count. `min_priority` drops items below that
        priority and `subject` keeps only competences of that subject;
        both apply before `limit`.
        """
        as_of = ensure_aware(as_of) if as_of is not None else self.now()

        due = []
        for item in self.store.revisions_for(student_id, include_cancelled=False):
            if item.scheduled_for > as_of:
                continue
            item.priority = revision_priority(
                item.scheduled_for,
                item.failure_count,
                as_of,
                self._weight_of(item.competence_code),
            )
            if min_priority is not None and item.priority < min_priority:
                continue
            if subject is not None and self._subject_of(item.competence_code) != subject:
                continue
            due.append(item)

        due.sort(key=lambda i: (-i.priority, i.scheduled_for, -i.failure_count))
        if limit is not None:
            due = due[: max(limit, 0)]
        return due

    def revision_stats(self, student_id: str, as_of: datetime | None = None) -> dict[str, int]:
        """Counts of pending, due and cancelled items for a student."""
        as_of = ensure_aware(as_of) if as_of is not None else self.now()
        items = self.store.revisions_for(student_id)
        pending = [i for i in items if i.is_active]
        return {
            "total": len(items),
            "pending": len(pending),
            "due": sum(1 for i in pending if i.scheduled_for <= as_of),
            "cancelled": len(items) - len(pending),
        }

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _active_or_new(
        self, student_id: str, competence_code: str, now: datetime
    ) -> tuple[RevisionItem, str]:
        item = self.store.get_active_revision(student_id, competence_code)
        if item is not None:
            return item, "rescheduled"
        item = RevisionItem(
            revision_id=str(uuid.uuid4()),
            student_id=student_id,
            competence_code=competence_code,
            scheduled_for=now,
            created_at=now,
        )
        return item, "scheduled"

    def _record(
        self,
        item: RevisionItem,
        kind: str,
        now: datetime,
        evaluation_ref: str | None,
        reason: str,
    ) -> RevisionItem:
        item.status = RevisionStatus.PENDING
        item.updated_at = now
        if evaluation_ref is not None:
            item.last_evaluation_ref = evaluation_ref
        item.history.append(RevisionEvent(kind, now, item.scheduled_for, reason))
        return self.store.save_revision(item)
