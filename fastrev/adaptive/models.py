"""
Adaptive engine data models.

Input and output records of the learning engine:
- TraceSample / ReferencePath: fine-motor (handwriting) telemetry
- AttemptResult: one completed exercise attempt
- AttemptEvaluation: multi-axis scoring of an attempt
- AttemptOutcome: everything record_attempt changed
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from fastrev.core.mastery import CompetenceState, MasteryLevel
from fastrev.delivery.state_store import RevisionItem


@dataclass(frozen=True)
class TraceSample:
    """One stylus sample: position in px, pressure 0-1, time in ms."""

    x: float
    y: float
    pressure: float = 0.0
    timestamp_ms: float = 0.0


@dataclass(frozen=True)
class ReferencePath:
    """Model stroke the student traces over."""

    points: tuple[tuple[float, float], ...]
    speed_target_seconds: float = 3.0
    inclination_angle: float = 15.0  # Degrees, cursive slant
    target_letter: str = ""


@dataclass
class AttemptResult:
    """
    A completed exercise attempt as reported by the exercise runner.

    Correctness exercises only fill `success`/`score`; handwriting exercises
    also send the trace and the reference path it was drawn against.
    """

    student_id: str
    competence_code: str
    exercise_id: str
    success: bool
    score: float  # 0-100
    time_spent_seconds: float = 0.0
    trace: list[TraceSample] | None = None
    reference: ReferencePath | None = None
    exercise_family: str = "default"
    submitted_at: datetime | None = None

    @property
    def is_trace(self) -> bool:
        return self.trace is not None


@dataclass
class AttemptEvaluation:
    """Scoring of one attempt."""

    evaluation_id: str
    student_id: str
    competence_code: str
    exercise_id: str
    composite: float
    axes: dict[str, float] = field(default_factory=dict)
    validated: bool = False
    reason: str | None = None  # Set only when the attempt was rejected
    comments: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    next_step: str = ""
    profile_family: str = "default"
    profile_version: int = 1
    time_spent_seconds: float = 0.0
    evaluated_at: datetime | None = None

    @property
    def rejected(self) -> bool:
        return self.reason is not None


@dataclass
class AttemptOutcome:
    """Result of LearningEngine.record_attempt."""

    evaluation: AttemptEvaluation
    new_state: CompetenceState
    unlocked: list[str] = field(default_factory=list)
    revision: RevisionItem | None = None
    previous_level: MasteryLevel = MasteryLevel.NOT_STARTED

    @property
    def level_changed(self) -> bool:
        return self.new_state.mastery_level is not self.previous_level

    @property
    def mastered_now(self) -> bool:
        return self.level_changed and self.new_state.is_mastered
