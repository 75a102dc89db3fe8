"""
Mastery Evaluator.

Turns an attempt into an AttemptEvaluation, then folds the evaluation into
the student's CompetenceState:

- Counters and cumulative mean score
- Success / failure streaks
- Adaptive difficulty multiplier
- Progress percent (non-decreasing)
- Mastery level state machine with a single regression rule

apply_evaluation() is a pure function: it returns a new state and never
touches the one it was given.
"""

from __future__ import annotations

import math
import uuid
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime
from typing import TYPE_CHECKING

from loguru import logger

from fastrev.adaptive.models import AttemptEvaluation, AttemptResult
from fastrev.adaptive.scoring import (
    ACCURACY_AXIS,
    TRACE_AXES,
    ScoringCatalog,
    ScoringProfile,
    next_step,
    score_trace,
    trace_feedback,
    validate_trace,
)
from fastrev.core.errors import InvalidAttemptError
from fastrev.core.mastery import CompetenceState, MasteryConfig, MasteryLevel
from fastrev.delivery.scheduler import ensure_aware, utc_now

if TYPE_CHECKING:
    from config import Settings

DEFAULT_PASS_THRESHOLD = 70.0


def scoring_defaults(settings: Settings) -> dict[str, int]:
    """Profile fields taken from settings unless a curriculum profile overrides them."""
    return {"min_samples": settings.min_trace_samples}


# =============================================================================
# State update
# =============================================================================


def _progress_for(successes: int, required: int) -> int:
    """round-half-up(successes / required * 100), capped at 100."""
    return min(100, math.floor(successes * 100 / required + 0.5))


def _adjust_difficulty(state: CompetenceState, passed: bool, config: MasteryConfig) -> float:
    multiplier = state.difficulty_multiplier
    if passed and state.consecutive_successes % config.success_streak_for_harder == 0:
        multiplier = min(config.difficulty_max, multiplier + config.difficulty_step_up)
    elif not passed and state.consecutive_failures % config.failure_streak_for_easier == 0:
        multiplier = max(config.difficulty_min, multiplier - config.difficulty_step_down)
    return round(multiplier, 2)


def _next_level(state: CompetenceState, passed: bool, config: MasteryConfig) -> MasteryLevel:
    level = state.mastery_level

    if passed:
        target = level.next_level
        if target is None or state.progress_percent < config.threshold_for(target):
            return level
        if target is MasteryLevel.MASTERED and state.consecutive_successes < config.mastered_min_streak:
            return level
        return target

    if level.can_regress and state.consecutive_failures % config.regression_failure_streak == 0:
        return level.previous_level
    return level


def apply_evaluation(
    state: CompetenceState,
    evaluation: AttemptEvaluation,
    pass_threshold: float = DEFAULT_PASS_THRESHOLD,
    config: MasteryConfig | None = None,
) -> CompetenceState:
    """
    Fold one evaluation into a competence state.

    Args:
        state: Current state (left untouched)
        evaluation: Evaluation of the attempt
        pass_threshold: Composite score counted as a success
        config: Mastery thresholds (defaults if None)

    Returns:
        The new state. A rejected evaluation returns an unchanged copy.
    """
    config = config or MasteryConfig()
    new = replace(state)
    if evaluation.rejected:
        return new

    passed = evaluation.composite >= pass_threshold
    at = evaluation.evaluated_at

    new.total_attempts += 1
    new.average_score = state.average_score + (evaluation.composite - state.average_score) / new.total_attempts
    if passed:
        new.successful_attempts += 1
        new.consecutive_successes += 1
        new.consecutive_failures = 0
    else:
        new.consecutive_successes = 0
        new.consecutive_failures += 1

    new.total_time_spent = state.total_time_spent + evaluation.time_spent_seconds
    new.average_time_per_attempt = new.total_time_spent / new.total_attempts
    new.first_attempt_at = state.first_attempt_at or at
    new.last_attempt_at = at or state.last_attempt_at

    new.difficulty_multiplier = _adjust_difficulty(new, passed, config)

    # First accepted attempt, pass or fail
    if new.mastery_level is MasteryLevel.NOT_STARTED:
        new.mastery_level = MasteryLevel.DISCOVERING

    required = config.required_successes_for(new.mastery_level)
    new.progress_percent = max(state.progress_percent, _progress_for(new.successful_attempts, required))

    new.mastery_level = _next_level(new, passed, config)
    if new.is_mastered and not state.is_mastered:
        new.mastered_at = at

    return new


# =============================================================================
# Evaluator
# =============================================================================


class MasteryEvaluator:
    """
    Scores attempts and applies them to competence states.

    Usage:
        evaluator = MasteryEvaluator(catalog)
        evaluation = evaluator.evaluate(attempt)
        new_state = evaluator.apply_evaluation(state, evaluation)
    """

    def __init__(
        self,
        catalog: ScoringCatalog | None = None,
        config: MasteryConfig | None = None,
        pass_threshold: float = DEFAULT_PASS_THRESHOLD,
        clock: Callable[[], datetime] | None = None,
    ):
        self.catalog = catalog or ScoringCatalog()
        self.config = config or MasteryConfig()
        self.pass_threshold = pass_threshold
        self._clock = clock or utc_now

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        catalog: ScoringCatalog | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> MasteryEvaluator:
        """
        Build an evaluator from settings.

        When no catalog is given, the default profile takes its minimum
        trace length from settings.
        """
        if catalog is None:
            catalog = ScoringCatalog.from_config(None, defaults=scoring_defaults(settings))
        return cls(
            catalog=catalog,
            config=MasteryConfig.from_settings(settings),
            pass_threshold=settings.pass_threshold,
            clock=clock,
        )

    def pass_threshold_for(self, family: str | None) -> float:
        """Family-specific pass threshold, falling back to the global one."""
        profile = self.catalog.get(family)
        if profile.pass_threshold is not None:
            return profile.pass_threshold
        return self.pass_threshold

    # -------------------------------------------------------------------------
    # Evaluation
    # -------------------------------------------------------------------------

    def evaluate(self, attempt: AttemptResult) -> AttemptEvaluation:
        """
        Score an attempt.

        Malformed attempts (short trace, score outside 0-100) come back as a
        rejected evaluation with composite 0 and a reason; they never raise.
        """
        profile = self.catalog.get(attempt.exercise_family)
        evaluation = AttemptEvaluation(
            evaluation_id=str(uuid.uuid4()),
            student_id=attempt.student_id,
            competence_code=attempt.competence_code,
            exercise_id=attempt.exercise_id,
            composite=0.0,
            profile_family=profile.family,
            profile_version=profile.version,
            time_spent_seconds=max(attempt.time_spent_seconds, 0.0),
            evaluated_at=ensure_aware(attempt.submitted_at or self._clock()),
        )

        try:
            if attempt.is_trace:
                self._score_trace(attempt, profile, evaluation)
            else:
                self._score_correctness(attempt, profile, evaluation)
        except InvalidAttemptError as e:
            self._reject(attempt, evaluation, str(e))
            return evaluation

        evaluation.next_step = next_step(evaluation.validated, evaluation.composite)
        logger.debug(
            f"Evaluated {attempt.exercise_id} for {attempt.student_id}/{attempt.competence_code}: "
            f"composite={evaluation.composite:.1f} validated={evaluation.validated}"
        )
        return evaluation

    def _score_correctness(
        self, attempt: AttemptResult, profile: ScoringProfile, evaluation: AttemptEvaluation
    ) -> None:
        if not 0 <= attempt.score <= 100:
            raise InvalidAttemptError(f"score {attempt.score} outside 0-100")
        evaluation.axes = {ACCURACY_AXIS: float(attempt.score)}
        evaluation.composite = float(attempt.score)
        minimum = profile.axis_minimums.get(ACCURACY_AXIS, 0.0)
        evaluation.validated = attempt.success and attempt.score >= minimum

    def _score_trace(
        self, attempt: AttemptResult, profile: ScoringProfile, evaluation: AttemptEvaluation
    ) -> None:
        trace = attempt.trace or []
        if not 0 <= attempt.score <= 100:
            raise InvalidAttemptError(f"score {attempt.score} outside 0-100")
        validate_trace(trace, attempt.reference, profile)

        axes, composite = score_trace(trace, attempt.reference, attempt.time_spent_seconds, profile)
        meets_minimums = all(
            axes.get(axis, 0.0) >= minimum
            for axis, minimum in profile.axis_minimums.items()
            if axis in TRACE_AXES
        )
        evaluation.axes = axes
        evaluation.composite = composite
        evaluation.validated = meets_minimums and composite >= self.pass_threshold_for(profile.family)
        evaluation.comments, evaluation.recommendations = trace_feedback(axes)

    def _reject(self, attempt: AttemptResult, evaluation: AttemptEvaluation, reason: str) -> None:
        evaluation.reason = reason
        evaluation.composite = 0.0
        evaluation.validated = False
        evaluation.axes = {axis: 0.0 for axis in TRACE_AXES} if attempt.is_trace else {ACCURACY_AXIS: 0.0}
        evaluation.comments = [reason.capitalize()]
        evaluation.recommendations = (
            ["Trace the whole letter"] if attempt.is_trace and reason == "trace too short" else []
        )
        evaluation.next_step = next_step(False, 0.0)
        logger.warning(
            f"Rejected attempt {attempt.exercise_id} for "
            f"{attempt.student_id}/{attempt.competence_code}: {reason}"
        )

    # -------------------------------------------------------------------------
    # State update
    # -------------------------------------------------------------------------

    def apply_evaluation(self, state: CompetenceState, evaluation: AttemptEvaluation) -> CompetenceState:
        """apply_evaluation() with this evaluator's thresholds, logging level changes."""
        threshold = self.pass_threshold_for(evaluation.profile_family)
        new = apply_evaluation(state, evaluation, threshold, self.config)
        if new.mastery_level is not state.mastery_level:
            logger.info(
                f"{state.student_id}/{state.competence_code}: "
                f"{state.mastery_level.value} -> {new.mastery_level.value} "
                f"(progress {new.progress_percent}%)"
            )
        return new
