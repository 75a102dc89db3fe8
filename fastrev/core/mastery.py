"""
Core Mastery Module.

Shared mastery primitives used by the evaluator, the learning path
builder and the engine facade.

Design:
- MasteryLevel: ordered enum for the mastery state machine
- CompetenceState: per (student, competence) progress record
- MasteryConfig: thresholds and adaptive-difficulty parameters
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from config import Settings


class MasteryLevel(str, Enum):
    """
    Mastery level of a student on one competence.

    not_started -> discovering -> practicing -> mastering -> mastered
    """

    NOT_STARTED = "not_started"
    DISCOVERING = "discovering"
    PRACTICING = "practicing"
    MASTERING = "mastering"
    MASTERED = "mastered"

    @property
    def rank(self) -> int:
        """Position in the progression (0 = not started)."""
        return _LEVEL_ORDER.index(self)

    @property
    def next_level(self) -> MasteryLevel | None:
        """Level reached by a forward transition, None when terminal."""
        if self is MasteryLevel.MASTERED:
            return None
        return _LEVEL_ORDER[self.rank + 1]

    @property
    def previous_level(self) -> MasteryLevel:
        """Level reached by a regression (never below discovering)."""
        if self.rank <= MasteryLevel.DISCOVERING.rank:
            return self
        return _LEVEL_ORDER[self.rank - 1]

    @property
    def can_regress(self) -> bool:
        """Only practicing and mastering are subject to forgetting."""
        return self in (MasteryLevel.PRACTICING, MasteryLevel.MASTERING)

    @property
    def display_name(self) -> str:
        """Human-readable name."""
        return self.value.replace("_", " ").title()

    @property
    def emoji(self) -> str:
        """Status emoji for CLI/UI display."""
        return {
            MasteryLevel.NOT_STARTED: "○",
            MasteryLevel.DISCOVERING: "◔",
            MasteryLevel.PRACTICING: "◑",
            MasteryLevel.MASTERING: "◕",
            MasteryLevel.MASTERED: "●",
        }[self]

    @property
    def color(self) -> str:
        """Rich color for CLI display."""
        return {
            MasteryLevel.NOT_STARTED: "dim",
            MasteryLevel.DISCOVERING: "red",
            MasteryLevel.PRACTICING: "yellow",
            MasteryLevel.MASTERING: "cyan",
            MasteryLevel.MASTERED: "green",
        }[self]


_LEVEL_ORDER: list[MasteryLevel] = [
    MasteryLevel.NOT_STARTED,
    MasteryLevel.DISCOVERING,
    MasteryLevel.PRACTICING,
    MasteryLevel.MASTERING,
    MasteryLevel.MASTERED,
]


@dataclass
class CompetenceState:
    """
    Progress of one student on one competence.

    Created lazily on the first attempt and only ever replaced by the
    mastery evaluator; `version` increases with every stored revision.
    """

    student_id: str
    competence_code: str

    mastery_level: MasteryLevel = MasteryLevel.NOT_STARTED
    progress_percent: int = 0  # 0-100, non-decreasing

    # Attempt counters
    total_attempts: int = 0
    successful_attempts: int = 0
    average_score: float = 0.0  # Cumulative mean of composite scores

    # Adaptive difficulty
    difficulty_multiplier: float = 1.0  # Bounded [0.5, 2.0]
    consecutive_successes: int = 0
    consecutive_failures: int = 0

    # Time tracking (seconds)
    total_time_spent: float = 0.0
    average_time_per_attempt: float = 0.0

    # Timestamps
    first_attempt_at: datetime | None = None
    last_attempt_at: datetime | None = None
    mastered_at: datetime | None = None

    version: int = 0

    @property
    def is_mastered(self) -> bool:
        return self.mastery_level is MasteryLevel.MASTERED

    @property
    def success_rate(self) -> float:
        """Share of successful attempts (0-1)."""
        if self.total_attempts == 0:
            return 0.0
        return self.successful_attempts / self.total_attempts


@dataclass
class MasteryConfig:
    """Thresholds driving the mastery state machine and difficulty adaptation."""

    # Progress percent needed to enter each level
    level_thresholds: dict[MasteryLevel, int] = field(
        default_factory=lambda: {
            MasteryLevel.PRACTICING: 40,
            MasteryLevel.MASTERING: 70,
            MasteryLevel.MASTERED: 90,
        }
    )
    # Successful attempts that count as 100% progress towards each level
    required_successes: dict[MasteryLevel, int] = field(
        default_factory=lambda: {
            MasteryLevel.DISCOVERING: 8,
            MasteryLevel.PRACTICING: 8,
            MasteryLevel.MASTERING: 10,
            MasteryLevel.MASTERED: 10,
        }
    )
    mastered_min_streak: int = 3
    regression_failure_streak: int = 2

    difficulty_step_up: float = 0.1
    difficulty_step_down: float = 0.15
    difficulty_min: float = 0.5
    difficulty_max: float = 2.0
    success_streak_for_harder: int = 3
    failure_streak_for_easier: int = 2

    @classmethod
    def from_settings(cls, settings: Settings) -> MasteryConfig:
        """Build the configuration from application settings."""
        return cls(
            level_thresholds={
                MasteryLevel.PRACTICING: settings.practicing_threshold,
                MasteryLevel.MASTERING: settings.mastering_threshold,
                MasteryLevel.MASTERED: settings.mastered_threshold,
            },
            mastered_min_streak=settings.mastered_min_streak,
            regression_failure_streak=settings.regression_failure_streak,
            difficulty_step_up=settings.difficulty_step_up,
            difficulty_step_down=settings.difficulty_step_down,
            difficulty_min=settings.difficulty_min,
            difficulty_max=settings.difficulty_max,
            success_streak_for_harder=settings.success_streak_for_harder,
            failure_streak_for_easier=settings.failure_streak_for_easier,
        )

    def required_successes_for(self, level: MasteryLevel) -> int:
        """
        Successes counted as full progress while at `level`.

        The divisor belongs to the level being approached, so a mastered
        state keeps using the mastered divisor.
        """
        target = level.next_level or MasteryLevel.MASTERED
        return max(1, self.required_successes.get(target, 10))

    def threshold_for(self, level: MasteryLevel) -> int:
        """Progress percent needed to enter `level` (0 for the entry levels)."""
        return self.level_thresholds.get(level, 0)
