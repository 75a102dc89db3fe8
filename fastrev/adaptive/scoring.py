"""
Exercise Scoring Profiles.

Versioned scoring configuration per exercise family, and the axis
functions for handwriting traces:

- precision:   distance to the reference stroke, bucketed per sample
- speed:       full marks up to the target time, linear decay after it
- fluidity:    penalty on the variance of inter-sample step lengths
- inclination: deviation of the overall stroke angle from the target slant
- pressure:    blend of distance to the ideal pressure and its variance

All constants live on ScoringProfile so an evaluation can always be
reproduced from (profile family, profile version, attempt).
"""

from __future__ import annotations

import math
import statistics
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from loguru import logger
from pydantic import BaseModel, Field, field_validator, model_validator

from fastrev.adaptive.models import ReferencePath, TraceSample
from fastrev.core.errors import ConfigurationError, InvalidAttemptError

TRACE_AXES = ("precision", "speed", "fluidity", "inclination", "pressure")
ACCURACY_AXIS = "accuracy"
WEIGHT_TOLERANCE = 1e-6

# =============================================================================
# Profiles
# =============================================================================


class ScoringWeights(BaseModel):
    """Composite weights of the trace axes (must sum to 1.0)."""

    precision: float = Field(0.35, ge=0, le=1)
    speed: float = Field(0.20, ge=0, le=1)
    fluidity: float = Field(0.25, ge=0, le=1)
    inclination: float = Field(0.15, ge=0, le=1)
    pressure: float = Field(0.05, ge=0, le=1)

    @model_validator(mode="after")
    def check_total(self) -> ScoringWeights:
        total = sum(self.as_dict().values())
        if abs(total - 1.0) > WEIGHT_TOLERANCE:
            raise ValueError(f"Scoring weights must sum to 1.0, got {total:.6f}")
        return self

    def as_dict(self) -> dict[str, float]:
        return {axis: getattr(self, axis) for axis in TRACE_AXES}


class ScoringProfile(BaseModel):
    """Every constant used to score one exercise family."""

    family: str = "default"
    version: int = Field(1, ge=1)
    weights: ScoringWeights = Field(default_factory=ScoringWeights)

    # Precision: (max distance px, credit) buckets, checked in order
    distance_buckets: list[tuple[float, float]] = Field(
        default_factory=lambda: [(15.0, 1.0), (25.0, 0.7), (35.0, 0.4)]
    )
    speed_decay_per_second: float = Field(20.0, ge=0)
    fluidity_penalty_factor: float = Field(2.0, ge=0)
    inclination_factor: float = Field(4.0, ge=0)
    ideal_pressure: float = Field(0.5, ge=0, le=1)
    pressure_deviation_factor: float = Field(200.0, ge=0)
    pressure_variance_factor: float = Field(1000.0, ge=0)

    min_samples: int = Field(5, ge=1)
    min_inclination_samples: int = Field(10, ge=1)  # Axis needs more samples than this
    min_pressure_samples: int = Field(5, ge=1)  # ...and more positive readings than this
    neutral_score: float = Field(50.0, ge=0, le=100)

    # Per-axis validation minimums and an optional family pass threshold
    axis_minimums: dict[str, float] = Field(default_factory=dict)
    pass_threshold: float | None = Field(None, ge=0, le=100)

    @field_validator("distance_buckets")
    @classmethod
    def check_buckets(cls, buckets: list[tuple[float, float]]) -> list[tuple[float, float]]:
        distances = [distance for distance, _ in buckets]
        if distances != sorted(distances):
            raise ValueError("distance_buckets must be sorted by distance")
        return buckets

    @field_validator("axis_minimums")
    @classmethod
    def check_axis_names(cls, minimums: dict[str, float]) -> dict[str, float]:
        unknown = set(minimums) - set(TRACE_AXES) - {ACCURACY_AXIS}
        if unknown:
            raise ValueError(f"Unknown scoring axes: {sorted(unknown)}")
        return minimums


class ScoringCatalog:
    """
    Exercise family -> ScoringProfile.

    Families without their own profile use the default one.
    """

    def __init__(
        self,
        profiles: Iterable[ScoringProfile] = (),
        default: ScoringProfile | None = None,
    ):
        self.default = default or ScoringProfile()
        self._profiles = {profile.family: profile for profile in profiles}

    @classmethod
    def from_config(
        cls,
        raw: Mapping[str, Mapping[str, Any]] | None,
        defaults: Mapping[str, Any] | None = None,
    ) -> ScoringCatalog:
        """
        Build a catalog from a `scoring_profiles:` mapping.

        Args:
            raw: Family -> profile fields
            defaults: Fields applied to every profile that does not set them
                (including the implicit default profile)

        Raises:
            ConfigurationError: When a profile does not validate
        """
        defaults = dict(defaults or {})
        profiles = []
        for family, body in (raw or {}).items():
            try:
                profiles.append(ScoringProfile.model_validate({**defaults, **body, "family": family}))
            except ValueError as e:
                raise ConfigurationError(f"Invalid scoring profile '{family}': {e}") from e

        default = next((p for p in profiles if p.family == "default"), None)
        if default is None and defaults:
            try:
                default = ScoringProfile.model_validate(defaults)
            except ValueError as e:
                raise ConfigurationError(f"Invalid scoring defaults: {e}") from e
        catalog = cls([p for p in profiles if p.family != "default"], default=default)
        logger.debug(f"Scoring catalog loaded: {sorted(catalog.families)}")
        return catalog

    @property
    def families(self) -> list[str]:
        return ["default", *self._profiles]

    def get(self, family: str | None) -> ScoringProfile:
        if family is None:
            return self.default
        return self._profiles.get(family, self.default)


# =============================================================================
# Trace axes
# =============================================================================


def _distance(ax: float, ay: float, bx: float, by: float) -> float:
    return math.hypot(ax - bx, ay - by)


def _distance_to_segment(
    px: float, py: float, start: tuple[float, float], end: tuple[float, float]
) -> float:
    (ax, ay), (bx, by) = start, end
    dx, dy = bx - ax, by - ay
    length_sq = dx * dx + dy * dy
    if length_sq == 0:
        return _distance(px, py, ax, ay)
    t = max(0.0, min(1.0, ((px - ax) * dx + (py - ay) * dy) / length_sq))
    return _distance(px, py, ax + t * dx, ay + t * dy)


def distance_to_path(sample: TraceSample, points: Sequence[tuple[float, float]]) -> float:
    """Distance from a sample to the nearest point of the reference polyline."""
    if len(points) == 1:
        return _distance(sample.x, sample.y, *points[0])
    return min(
        _distance_to_segment(sample.x, sample.y, points[i - 1], points[i])
        for i in range(1, len(points))
    )


def precision_score(
    trace: Sequence[TraceSample], reference: ReferencePath, profile: ScoringProfile
) -> float:
    credit = 0.0
    for sample in trace:
        distance = distance_to_path(sample, reference.points)
        credit += next(
            (value for limit, value in profile.distance_buckets if distance < limit), 0.0
        )
    return min(100.0, credit / len(trace) * 100)


def speed_score(time_spent: float, reference: ReferencePath, profile: ScoringProfile) -> float:
    overtime = time_spent - reference.speed_target_seconds
    if overtime <= 0:
        return 100.0
    return max(0.0, 100.0 - overtime * profile.speed_decay_per_second)


def fluidity_score(trace: Sequence[TraceSample], profile: ScoringProfile) -> float:
    """Jerky strokes have uneven step lengths between consecutive samples."""
    if len(trace) <= 3:
        return 100.0
    steps = [
        _distance(trace[i].x, trace[i].y, trace[i - 1].x, trace[i - 1].y)
        for i in range(1, len(trace))
    ]
    variance = statistics.pvariance(steps)
    return max(0.0, 100.0 - variance * profile.fluidity_penalty_factor)


def inclination_score(
    trace: Sequence[TraceSample], reference: ReferencePath, profile: ScoringProfile
) -> float:
    if len(trace) <= profile.min_inclination_samples:
        return profile.neutral_score
    first, last = trace[0], trace[-1]
    angle = math.degrees(math.atan2(last.y - first.y, last.x - first.x))
    deviation = abs(angle - reference.inclination_angle)
    return max(0.0, 100.0 - deviation * profile.inclination_factor)


def pressure_score(trace: Sequence[TraceSample], profile: ScoringProfile) -> float:
    pressures = [sample.pressure for sample in trace if sample.pressure > 0]
    if len(pressures) <= profile.min_pressure_samples:
        return profile.neutral_score
    mean = statistics.fmean(pressures)
    variance = statistics.pvariance(pressures, mu=mean)
    quality = max(0.0, 100.0 - abs(mean - profile.ideal_pressure) * profile.pressure_deviation_factor)
    steadiness = max(0.0, 100.0 - variance * profile.pressure_variance_factor)
    return (quality + steadiness) / 2


def validate_trace(
    trace: Sequence[TraceSample], reference: ReferencePath | None, profile: ScoringProfile
) -> None:
    """
    Raises:
        InvalidAttemptError: Too few samples or no reference path
    """
    if len(trace) < profile.min_samples:
        raise InvalidAttemptError("trace too short")
    if reference is None or not reference.points:
        raise InvalidAttemptError("missing reference path")


def score_trace(
    trace: Sequence[TraceSample],
    reference: ReferencePath,
    time_spent: float,
    profile: ScoringProfile,
) -> tuple[dict[str, float], float]:
    """
    Score a validated trace.

    Returns:
        (axis scores rounded to 2 decimals, weighted composite)
    """
    axes = {
        "precision": precision_score(trace, reference, profile),
        "speed": speed_score(time_spent, reference, profile),
        "fluidity": fluidity_score(trace, profile),
        "inclination": inclination_score(trace, reference, profile),
        "pressure": pressure_score(trace, profile),
    }
    weights = profile.weights.as_dict()
    composite = sum(axes[axis] * weights[axis] for axis in TRACE_AXES)
    return {axis: round(value, 2) for axis, value in axes.items()}, round(composite, 2)


# =============================================================================
# Feedback
# =============================================================================

# axis -> (low limit, low comment, advice, high limit, high comment)
_AXIS_FEEDBACK: dict[str, tuple[float, str, str, float, str]] = {
    "precision": (70, "Stroke needs work", "Follow the model more closely", 90, "Very precise stroke!"),
    "speed": (60, "A little slow", "Try to go a bit faster", 90, "Great speed!"),
    "fluidity": (70, "Jerky movement", "Write more smoothly", 90, "Very smooth movement!"),
    "inclination": (60, "Slant needs fixing", "Lean more to the right (15°)", 85, "Perfect cursive slant!"),
    "pressure": (60, "Uneven pressure", "Keep the same pressure", 85, "Excellent stylus control!"),
}

NEXT_STEP_VALIDATED = "Competence validated! Move on to the next one"
NEXT_STEP_ALMOST = "Almost there! One more try"
NEXT_STEP_RETRY = "Start again with the tips"
ALMOST_SCORE = 70.0


def trace_feedback(axes: Mapping[str, float]) -> tuple[list[str], list[str]]:
    """Child-facing comments and recommendations for each trace axis."""
    comments: list[str] = []
    recommendations: list[str] = []
    for axis, (low, low_comment, advice, high, high_comment) in _AXIS_FEEDBACK.items():
        score = axes.get(axis)
        if score is None:
            continue
        if score < low:
            comments.append(low_comment)
            recommendations.append(advice)
        elif score >= high:
            comments.append(high_comment)
    return comments, recommendations


def next_step(validated: bool, composite: float) -> str:
    if validated:
        return NEXT_STEP_VALIDATED
    if composite >= ALMOST_SCORE:
        return NEXT_STEP_ALMOST
    return NEXT_STEP_RETRY
