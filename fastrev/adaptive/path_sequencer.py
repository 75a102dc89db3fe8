"""
Learning Path Builder.

Combines the competence graph unlock state with the revision due queue
into one ordered recommendation list per student.

Entry status machine:
    locked -> available -> in_progress -> completed
    available | in_progress -> skipped
    available | in_progress | skipped -> locked   (explicit re-lock)

Leaving `locked` only happens through the unlock routine shared by
cascade_unlocks() and refresh(), which re-checks required prerequisites
against the student's competence states.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from datetime import datetime

from loguru import logger

from fastrev.core.errors import InvalidTransitionError
from fastrev.core.mastery import CompetenceState
from fastrev.delivery.scheduler import RevisionScheduler
from fastrev.delivery.state_store import LearningPathEntry, LearningPathStatus, RevisionItem, StateStore
from fastrev.graph.competence_graph import CompetenceGraph, GraphRegistry

_ALLOWED_TRANSITIONS: dict[LearningPathStatus, set[LearningPathStatus]] = {
    LearningPathStatus.LOCKED: set(),
    LearningPathStatus.AVAILABLE: {
        LearningPathStatus.IN_PROGRESS,
        LearningPathStatus.COMPLETED,
        LearningPathStatus.SKIPPED,
        LearningPathStatus.LOCKED,
    },
    LearningPathStatus.IN_PROGRESS: {
        LearningPathStatus.COMPLETED,
        LearningPathStatus.SKIPPED,
        LearningPathStatus.LOCKED,
    },
    LearningPathStatus.COMPLETED: set(),
    LearningPathStatus.SKIPPED: {LearningPathStatus.LOCKED},
}

_OPEN_STATUSES = (LearningPathStatus.AVAILABLE, LearningPathStatus.IN_PROGRESS)

Recommendation = LearningPathEntry | RevisionItem


class LearningPathBuilder:
    """
    Maintains learning path entries and produces recommendations.

    Entries are a cache derived from competence states and the graph: they
    are created lazily, and refresh() recomputes them for a new graph.
    """

    def __init__(
        self,
        store: StateStore,
        registry: GraphRegistry,
        scheduler: RevisionScheduler,
        clock: Callable[[], datetime] | None = None,
    ):
        self.store = store
        self.registry = registry
        self.scheduler = scheduler
        self._clock = clock or scheduler.now

    @property
    def graph(self) -> CompetenceGraph:
        return self.registry.current

    # -------------------------------------------------------------------------
    # Entries
    # -------------------------------------------------------------------------

    def entry(
        self, student_id: str, competence_code: str, graph: CompetenceGraph | None = None
    ) -> LearningPathEntry:
        """Get the entry for a competence, creating it on first access."""
        graph = graph if graph is not None else self.graph
        graph.require(competence_code)
        entry = self.store.get_path_entry(student_id, competence_code)
        if entry is not None:
            return entry
        return self._create_entry(
            student_id, competence_code, self.store.get_student_states(student_id), graph
        )

    def entries(self, student_id: str) -> list[LearningPathEntry]:
        """All entries of a student in topological order."""
        existing = self.store.path_entries_for(student_id)
        states = self.store.get_student_states(student_id)
        result = []
        for code in self.graph.topological_order:
            entry = existing.get(code)
            if entry is None:
                entry = self._create_entry(student_id, code, states)
            result.append(entry)
        return result

    def _create_entry(
        self,
        student_id: str,
        competence_code: str,
        states: Mapping[str, CompetenceState],
        graph: CompetenceGraph | None = None,
    ) -> LearningPathEntry:
        graph = graph if graph is not None else self.graph
        now = self._clock()
        blocking = graph.blocking_reasons(states, competence_code)
        state = states.get(competence_code)

        if state is not None and state.is_mastered:
            status = LearningPathStatus.COMPLETED
        elif blocking:
            status = LearningPathStatus.LOCKED
        else:
            status = LearningPathStatus.AVAILABLE

        entry = LearningPathEntry(
            student_id=student_id,
            competence_code=competence_code,
            status=status,
            blocking_reasons=blocking,
            order_index=graph.order_index(competence_code),
            unlocked_at=None if blocking else now,
            updated_at=now,
        )
        return self.store.save_path_entry(entry)

    # -------------------------------------------------------------------------
    # Unlocking
    # -------------------------------------------------------------------------

    def _unlock(
        self, student_id: str, codes: Iterable[str], graph: CompetenceGraph | None = None
    ) -> list[str]:
        """
        Re-check locked entries and open those whose prerequisites are met.

        Returns:
            Codes that moved to `available`, in topological order
        """
        graph = graph if graph is not None else self.graph
        states = self.store.get_student_states(student_id)
        now = self._clock()
        unlocked = []

        for code in sorted(set(codes), key=graph.order_index):
            entry = self.store.get_path_entry(student_id, code)
            if entry is None:
                entry = self._create_entry(student_id, code, states, graph)
                if entry.status is LearningPathStatus.AVAILABLE:
                    unlocked.append(code)
                continue

            if entry.order_index != graph.order_index(code):
                entry.order_index = graph.order_index(code)
                entry.updated_at = now
                self.store.save_path_entry(entry)

            if entry.status is not LearningPathStatus.LOCKED:
                continue

            blocking = graph.blocking_reasons(states, code)
            if blocking == entry.blocking_reasons and blocking:
                continue

            entry.blocking_reasons = blocking
            entry.updated_at = now
            if not blocking:
                entry.status = LearningPathStatus.AVAILABLE
                entry.unlocked_at = now
                entry.note = None
                unlocked.append(code)
            self.store.save_path_entry(entry)

        if unlocked:
            logger.info(f"Unlocked for {student_id}: {', '.join(unlocked)}")
        return unlocked

    def cascade_unlocks(
        self, student_id: str, competence_code: str, graph: CompetenceGraph | None = None
    ) -> list[str]:
        """Re-check the dependents of a competence after its progress changed."""
        graph = graph if graph is not None else self.graph
        return self._unlock(student_id, graph.dependents_of(competence_code), graph)

    def refresh(self, student_id: str) -> list[str]:
        """Re-check every competence (after enrollment or a new graph version)."""
        return self._unlock(student_id, self.graph.topological_order)

    def on_mastered(
        self, student_id: str, competence_code: str, graph: CompetenceGraph | None = None
    ) -> list[str]:
        """
        Complete a mastered competence and cascade unlocks to its dependents.

        Returns:
            Dependents that became available
        """
        entry = self.entry(student_id, competence_code, graph)
        if entry.status is not LearningPathStatus.COMPLETED:
            entry.status = LearningPathStatus.COMPLETED
            entry.blocking_reasons = set()
            entry.updated_at = self._clock()
            self.store.save_path_entry(entry)
            logger.info(f"{student_id} completed {competence_code}")
        return self.cascade_unlocks(student_id, competence_code, graph)

    # -------------------------------------------------------------------------
    # Explicit transitions
    # -------------------------------------------------------------------------

    def _transition(
        self,
        student_id: str,
        competence_code: str,
        target: LearningPathStatus,
        note: str | None = None,
        graph: CompetenceGraph | None = None,
    ) -> LearningPathEntry:
        entry = self.entry(student_id, competence_code, graph)
        if target not in _ALLOWED_TRANSITIONS[entry.status]:
            raise InvalidTransitionError(
                f"{student_id}/{competence_code}: cannot go from "
                f"{entry.status.value} to {target.value}"
            )

        entry.status = target
        entry.updated_at = self._clock()
        if note is not None:
            entry.note = note
        if target is LearningPathStatus.LOCKED:
            entry.blocking_reasons = self._relock_reasons(student_id, competence_code, graph)

        logger.debug(f"Path entry {student_id}/{competence_code} -> {target.value}")
        return self.store.save_path_entry(entry)

    def _relock_reasons(
        self, student_id: str, competence_code: str, graph: CompetenceGraph | None = None
    ) -> set[str]:
        """Unmet prerequisites, or every required one when all are currently met."""
        graph = graph if graph is not None else self.graph
        blocking = graph.blocking_reasons(self.store.get_student_states(student_id), competence_code)
        if blocking:
            return blocking
        return {edge.source for edge in graph.prerequisites_of(competence_code) if edge.is_required}

    def start(self, student_id: str, competence_code: str) -> LearningPathEntry:
        return self._transition(student_id, competence_code, LearningPathStatus.IN_PROGRESS)

    def complete(self, student_id: str, competence_code: str) -> LearningPathEntry:
        return self._transition(student_id, competence_code, LearningPathStatus.COMPLETED)

    def skip(self, student_id: str, competence_code: str, reason: str | None = None) -> LearningPathEntry:
        return self._transition(student_id, competence_code, LearningPathStatus.SKIPPED, note=reason)

    def relock(self, student_id: str, competence_code: str, reason: str) -> LearningPathEntry:
        """Administrative correction: lock a competence again."""
        entry = self._transition(student_id, competence_code, LearningPathStatus.LOCKED, note=reason)
        logger.warning(f"{student_id}/{competence_code} re-locked: {reason}")
        return entry

    def mark_in_progress(
        self, student_id: str, competence_code: str, graph: CompetenceGraph | None = None
    ) -> None:
        """Move an available entry to in_progress; other statuses are left alone."""
        entry = self.entry(student_id, competence_code, graph)
        if entry.status is LearningPathStatus.AVAILABLE:
            self._transition(student_id, competence_code, LearningPathStatus.IN_PROGRESS, graph=graph)

    # -------------------------------------------------------------------------
    # Recommendations
    # -------------------------------------------------------------------------

    def new_skill_candidates(self, student_id: str) -> list[LearningPathEntry]:
        """
        Open, not yet mastered competences without an active revision.

        Ordered by topological level, then recommended-edge weight
        descending, then code.
        """
        graph = self.graph
        states = self.store.get_student_states(student_id)
        candidates = []
        for entry in self.entries(student_id):
            if entry.status not in _OPEN_STATUSES:
                continue
            state = states.get(entry.competence_code)
            if state is not None and state.is_mastered:
                continue
            if self.store.get_active_revision(student_id, entry.competence_code) is not None:
                continue
            candidates.append(entry)

        candidates.sort(
            key=lambda e: (
                graph.level_of(e.competence_code),
                -graph.competence_weight(e.competence_code),
                e.competence_code,
            )
        )
        return candidates

    def recommend(
        self,
        student_id: str,
        max_items: int,
        as_of: datetime | None = None,
    ) -> list[Recommendation]:
        """
        Interleave new skills and due revisions, new skill first.

        When one list runs out the rest of the other is appended, up to
        max_items in total.
        """
        if max_items <= 0:
            return []

        new_skills = self.new_skill_candidates(student_id)
        revisions = self.scheduler.due_items(student_id, as_of=as_of)

        result: list[Recommendation] = []
        i = j = 0
        while i < len(new_skills) and j < len(revisions) and len(result) < max_items:
            result.append(new_skills[i])
            i += 1
            if len(result) < max_items:
                result.append(revisions[j])
                j += 1

        remaining: list[Recommendation] = [*new_skills[i:], *revisions[j:]]
        result.extend(remaining[: max_items - len(result)])
        return result
