"""
Learning Engine.

Single entry point of the adaptive core:

    record_attempt      evaluate -> update state -> schedule -> cascade
    get_due_revisions   revision queue (read-only)
    get_learning_path   interleaved recommendations (read-only)
    postpone_revision / cancel_revision

Attempts for the same (student, competence) are serialized with a keyed
lock; unrelated pairs proceed in parallel. State writes also carry an
optimistic version check, so a store shared with another writer surfaces
a ConcurrencyConflict instead of losing an update. The engine never
retries: callers re-submit the attempt with fresh state.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Hashable, Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import TYPE_CHECKING

from loguru import logger

from fastrev.adaptive.evaluator import MasteryEvaluator, scoring_defaults
from fastrev.adaptive.models import AttemptOutcome, AttemptResult
from fastrev.adaptive.path_sequencer import LearningPathBuilder, Recommendation
from fastrev.adaptive.scoring import ScoringCatalog
from fastrev.core.mastery import CompetenceState
from fastrev.delivery.scheduler import RevisionScheduler, SchedulerConfig, utc_now
from fastrev.delivery.state_store import LearningPathEntry, LearningPathStatus, RevisionItem, StateStore
from fastrev.graph.competence_graph import (
    CompetenceGraph,
    CompetenceNode,
    GraphRegistry,
    PrerequisiteEdge,
)
from fastrev.graph.curriculum_loader import load_curriculum

if TYPE_CHECKING:
    from config import Settings


class KeyedLock:
    """One mutex per key, kept only while some caller holds or waits on it."""

    def __init__(self):
        self._guard = threading.Lock()
        # key -> [lock, number of holders and waiters]
        self._locks: dict[Hashable, list] = {}

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            slot = self._locks.setdefault(key, [threading.Lock(), 0])
            slot[1] += 1
        try:
            with slot[0]:
                yield
        finally:
            with self._guard:
                slot[1] -= 1
                if slot[1] == 0:
                    del self._locks[key]


class LearningEngine:
    """
    Facade over the graph, evaluator, scheduler and path builder.

    Usage:
        engine = LearningEngine(graph)
        engine.enroll_student("s1")
        outcome = engine.record_attempt(attempt)
        queue = engine.get_learning_path("s1", max_items=5)
    """

    def __init__(
        self,
        graph: CompetenceGraph | GraphRegistry,
        store: StateStore | None = None,
        evaluator: MasteryEvaluator | None = None,
        scheduler_config: SchedulerConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.registry = graph if isinstance(graph, GraphRegistry) else GraphRegistry(graph)
        self.store = store or StateStore()
        self._clock = clock or utc_now

        self.evaluator = evaluator or MasteryEvaluator(clock=self._clock)
        self.scheduler = RevisionScheduler(
            self.store,
            config=scheduler_config,
            clock=self._clock,
            weight_of=self._competence_weight,
            subject_of=self._competence_subject,
        )
        self.paths = LearningPathBuilder(self.store, self.registry, self.scheduler)
        self._locks = KeyedLock()

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> LearningEngine:
        """Load the configured curriculum and wire every component from settings."""
        if settings is None:
            from config import get_settings

            settings = get_settings()

        curriculum = load_curriculum(settings.curriculum_path)
        catalog = ScoringCatalog.from_config(curriculum.scoring_profiles, defaults=scoring_defaults(settings))
        return cls(
            curriculum.graph,
            evaluator=MasteryEvaluator.from_settings(settings, catalog=catalog, clock=clock),
            scheduler_config=SchedulerConfig.from_settings(settings),
            clock=clock,
        )

    @property
    def graph(self) -> CompetenceGraph:
        return self.registry.current

    def _competence_weight(self, code: str) -> float:
        graph = self.graph
        return graph.competence_weight(code) if code in graph else 0.0

    def _competence_subject(self, code: str) -> str:
        graph = self.graph
        return graph.node(code).subject if code in graph else ""

    def _require(self, student_id: str, competence_code: str | None = None) -> None:
        self.store.require_student(student_id)
        if competence_code is not None:
            self.graph.require(competence_code)

    # -------------------------------------------------------------------------
    # Students
    # -------------------------------------------------------------------------

    def enroll_student(self, student_id: str) -> list[LearningPathEntry]:
        """Register a student and materialize their learning path."""
        self.store.enroll_student(student_id)
        self.paths.refresh(student_id)
        return self.paths.entries(student_id)

    def get_state(self, student_id: str, competence_code: str) -> CompetenceState:
        """Current state, or a fresh not-started state when none exists yet."""
        self._require(student_id, competence_code)
        state = self.store.get_state(student_id, competence_code)
        return state or CompetenceState(student_id, competence_code)

    # -------------------------------------------------------------------------
    # Attempts
    # -------------------------------------------------------------------------

    def record_attempt(self, attempt: AttemptResult) -> AttemptOutcome:
        """
        Evaluate an attempt and apply everything that follows from it.

        Returns:
            AttemptOutcome with the evaluation, the stored state, the
            competences unlocked by the cascade and the revision item

        Raises:
            NotFoundError: Unenrolled student or unknown competence
            ConcurrencyConflict: The state changed since it was read
        """
        student_id, code = attempt.student_id, attempt.competence_code
        self.store.require_student(student_id)
        # One graph version for the whole attempt, even if a new one is published meanwhile
        graph = self.graph
        graph.require(code)

        with self._locks.hold((student_id, code)):
            current = self.store.get_state(student_id, code) or CompetenceState(student_id, code)
            evaluation = self.evaluator.evaluate(attempt)
            if evaluation.rejected:
                return AttemptOutcome(
                    evaluation=evaluation,
                    new_state=current,
                    previous_level=current.mastery_level,
                )

            entry = self.paths.entry(student_id, code, graph)
            if entry.status is LearningPathStatus.LOCKED:
                logger.warning(
                    f"Attempt on locked competence {student_id}/{code} "
                    f"(blocked by {', '.join(sorted(entry.blocking_reasons))})"
                )

            updated = self.evaluator.apply_evaluation(current, evaluation)
            stored = self.store.save_state(updated, expected_version=current.version)

            passed = evaluation.composite >= self.evaluator.pass_threshold_for(evaluation.profile_family)
            if passed:
                revision = self.scheduler.on_success(
                    student_id, code, stored.consecutive_successes, evaluation_ref=evaluation.evaluation_id
                )
            else:
                revision = self.scheduler.on_failure(
                    student_id, code, stored.consecutive_failures, evaluation_ref=evaluation.evaluation_id
                )

            if stored.is_mastered and not current.is_mastered:
                unlocked = self.paths.on_mastered(student_id, code, graph)
            else:
                self.paths.mark_in_progress(student_id, code, graph)
                unlocked = []
                if stored.progress_percent > current.progress_percent:
                    unlocked = self.paths.cascade_unlocks(student_id, code, graph)

        return AttemptOutcome(
            evaluation=evaluation,
            new_state=stored,
            unlocked=unlocked,
            revision=revision,
            previous_level=current.mastery_level,
        )

    # -------------------------------------------------------------------------
    # Revisions
    # -------------------------------------------------------------------------

    def get_due_revisions(
        self,
        student_id: str,
        limit: int | None = None,
        as_of: datetime | None = None,
        min_priority: float | None = None,
        subject: str | None = None,
    ) -> list[RevisionItem]:
        """Due revisions, most urgent first, optionally filtered by priority and subject."""
        self._require(student_id)
        return self.scheduler.due_items(
            student_id, as_of=as_of, limit=limit, min_priority=min_priority, subject=subject
        )

    def postpone_revision(
        self, revision_id: str, new_date: datetime, reason: str | None = None
    ) -> RevisionItem:
        return self.scheduler.postpone(revision_id, new_date, reason)

    def cancel_revision(self, revision_id: str, reason: str | None = None) -> RevisionItem:
        return self.scheduler.cancel(revision_id, reason)

    def revision_stats(self, student_id: str, as_of: datetime | None = None) -> dict[str, int]:
        self._require(student_id)
        return self.scheduler.revision_stats(student_id, as_of=as_of)

    # -------------------------------------------------------------------------
    # Learning path
    # -------------------------------------------------------------------------

    def get_learning_path(
        self,
        student_id: str,
        max_items: int = 10,
        as_of: datetime | None = None,
    ) -> list[Recommendation]:
        self._require(student_id)
        return self.paths.recommend(student_id, max_items, as_of=as_of)

    def get_path_entries(self, student_id: str) -> list[LearningPathEntry]:
        self._require(student_id)
        return self.paths.entries(student_id)

    def start_competence(self, student_id: str, competence_code: str) -> LearningPathEntry:
        self._require(student_id, competence_code)
        return self.paths.start(student_id, competence_code)

    def skip_competence(
        self, student_id: str, competence_code: str, reason: str | None = None
    ) -> LearningPathEntry:
        self._require(student_id, competence_code)
        return self.paths.skip(student_id, competence_code, reason)

    def relock_competence(self, student_id: str, competence_code: str, reason: str) -> LearningPathEntry:
        self._require(student_id, competence_code)
        return self.paths.relock(student_id, competence_code, reason)

    # -------------------------------------------------------------------------
    # Curriculum updates
    # -------------------------------------------------------------------------

    def publish_graph(
        self,
        nodes: Iterable[CompetenceNode],
        edges: Iterable[PrerequisiteEdge],
    ) -> CompetenceGraph:
        """
        Swap in a new curriculum graph and re-check every student's path.

        Raises:
            ConfigurationError: The new graph is invalid (the old one stays)
        """
        graph = self.registry.publish(nodes, edges)
        for student_id in self.store.students:
            self.paths.refresh(student_id)
        return graph
