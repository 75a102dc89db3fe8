"""
Unit tests for exercise scoring profiles and trace axes.

Tests:
- Weight validation
- Scoring catalog lookup and loading
- Precision, speed, fluidity, inclination and pressure axes
- Child-facing feedback
"""

import pytest
from pydantic import ValidationError

from fastrev.adaptive.models import ReferencePath, TraceSample
from fastrev.adaptive.scoring import (
    NEXT_STEP_ALMOST,
    NEXT_STEP_RETRY,
    NEXT_STEP_VALIDATED,
    ScoringCatalog,
    ScoringProfile,
    ScoringWeights,
    distance_to_path,
    fluidity_score,
    inclination_score,
    next_step,
    precision_score,
    pressure_score,
    score_trace,
    speed_score,
    trace_feedback,
    validate_trace,
)
from fastrev.core.errors import ConfigurationError, InvalidAttemptError

HORIZONTAL = ReferencePath(points=((0.0, 0.0), (100.0, 0.0)), speed_target_seconds=3.0, inclination_angle=0.0)


def line_trace(count: int = 12, y: float = 0.0, step: float = 10.0, pressure: float = 0.5):
    return [TraceSample(x=i * step, y=y, pressure=pressure, timestamp_ms=i * 50) for i in range(count)]


@pytest.fixture
def profile():
    return ScoringProfile()


class TestScoringWeights:
    """Tests for composite weight validation."""

    def test_defaults_sum_to_one(self):
        weights = ScoringWeights()

        assert sum(weights.as_dict().values()) == pytest.approx(1.0)
        assert weights.precision == 0.35

    def test_weights_must_sum_to_one(self):
        with pytest.raises(ValidationError, match="sum to 1.0"):
            ScoringWeights(precision=0.5)

    def test_custom_weights_accepted(self):
        weights = ScoringWeights(precision=0.4, speed=0.15, fluidity=0.25, inclination=0.15, pressure=0.05)

        assert weights.precision == 0.4

    def test_unknown_axis_minimum_rejected(self):
        with pytest.raises(ValidationError, match="Unknown scoring axes"):
            ScoringProfile(axis_minimums={"elegance": 50})


class TestScoringCatalog:
    """Tests for family -> profile lookup."""

    def test_unknown_family_uses_default(self):
        catalog = ScoringCatalog([ScoringProfile(family="handwriting", version=2)])

        assert catalog.get("handwriting").version == 2
        assert catalog.get("dictation").family == "default"
        assert catalog.get(None).family == "default"

    def test_from_config(self):
        catalog = ScoringCatalog.from_config(
            {
                "default": {"min_samples": 8},
                "handwriting": {"version": 3, "pass_threshold": 75},
            }
        )

        assert catalog.default.min_samples == 8
        assert catalog.get("handwriting").pass_threshold == 75
        assert catalog.get("handwriting").family == "handwriting"
        assert catalog.families == ["default", "handwriting"]

    def test_from_config_rejects_bad_weights(self):
        with pytest.raises(ConfigurationError, match="handwriting"):
            ScoringCatalog.from_config({"handwriting": {"weights": {"precision": 0.9}}})

    def test_from_config_empty(self):
        assert ScoringCatalog.from_config(None).families == ["default"]

    def test_defaults_fill_unset_fields(self):
        """Defaults reach the implicit default profile and profiles that leave the field unset."""
        catalog = ScoringCatalog.from_config(
            {"handwriting": {"version": 2}, "tracing": {"min_samples": 7}},
            defaults={"min_samples": 3},
        )

        assert catalog.default.min_samples == 3
        assert catalog.get("handwriting").min_samples == 3
        assert catalog.get("tracing").min_samples == 7

    def test_defaults_without_profiles(self):
        catalog = ScoringCatalog.from_config(None, defaults={"min_samples": 3})

        assert catalog.families == ["default"]
        assert catalog.default.min_samples == 3

    def test_invalid_defaults_rejected(self):
        with pytest.raises(ConfigurationError, match="defaults"):
            ScoringCatalog.from_config(None, defaults={"min_samples": 0})


class TestPrecision:
    """Tests for the distance-bucket precision axis."""

    def test_distance_uses_segments_not_vertices(self):
        """Distance is measured to the polyline, not to its points."""
        assert distance_to_path(TraceSample(50, 10), HORIZONTAL.points) == pytest.approx(10.0)

    def test_distance_to_single_point_path(self):
        assert distance_to_path(TraceSample(3, 4), ((0.0, 0.0),)) == pytest.approx(5.0)

    def test_on_path_trace_is_perfect(self, profile):
        assert precision_score(line_trace(), HORIZONTAL, profile) == pytest.approx(100.0)

    @pytest.mark.parametrize(
        ("offset", "expected"),
        [(10, 100.0), (20, 70.0), (30, 40.0), (40, 0.0)],
    )
    def test_buckets(self, profile, offset, expected):
        trace = line_trace(count=11, y=offset)

        assert precision_score(trace, HORIZONTAL, profile) == pytest.approx(expected)


class TestOtherAxes:
    """Tests for speed, fluidity, inclination and pressure."""

    def test_speed_within_target(self, profile):
        assert speed_score(3.0, HORIZONTAL, profile) == 100.0

    def test_speed_decays_20_points_per_second(self, profile):
        assert speed_score(5.0, HORIZONTAL, profile) == pytest.approx(60.0)

    def test_speed_floors_at_zero(self, profile):
        assert speed_score(60.0, HORIZONTAL, profile) == 0.0

    def test_fluidity_even_steps(self, profile):
        assert fluidity_score(line_trace(), profile) == pytest.approx(100.0)

    def test_fluidity_penalizes_uneven_steps(self, profile):
        """Steps alternating 5px and 15px have variance 25 -> 100 - 2 * 25."""
        xs = [0.0]
        for i in range(10):
            xs.append(xs[-1] + (5.0 if i % 2 == 0 else 15.0))
        trace = [TraceSample(x=x, y=0.0) for x in xs]

        assert fluidity_score(trace, profile) == pytest.approx(50.0)

    def test_inclination_matches_target(self, profile):
        assert inclination_score(line_trace(), HORIZONTAL, profile) == pytest.approx(100.0)

    def test_inclination_deviation(self, profile):
        slanted = ReferencePath(points=HORIZONTAL.points, inclination_angle=15.0)

        assert inclination_score(line_trace(), slanted, profile) == pytest.approx(40.0)

    def test_inclination_neutral_on_short_trace(self, profile):
        assert inclination_score(line_trace(count=10), HORIZONTAL, profile) == 50.0

    def test_pressure_ideal_and_steady(self, profile):
        assert pressure_score(line_trace(pressure=0.5), profile) == pytest.approx(100.0)

    def test_pressure_off_ideal(self, profile):
        """Constant 0.7 is 0.2 from ideal: quality 60, steadiness 100."""
        assert pressure_score(line_trace(pressure=0.7), profile) == pytest.approx(80.0)

    def test_pressure_neutral_without_readings(self, profile):
        assert pressure_score(line_trace(pressure=0.0), profile) == 50.0


class TestScoreTrace:
    """Tests for validation and the weighted composite."""

    def test_short_trace_rejected(self, profile):
        with pytest.raises(InvalidAttemptError, match="trace too short"):
            validate_trace(line_trace(count=3), HORIZONTAL, profile)

    def test_missing_reference_rejected(self, profile):
        with pytest.raises(InvalidAttemptError, match="reference"):
            validate_trace(line_trace(), None, profile)

    def test_perfect_trace(self, profile):
        axes, composite = score_trace(line_trace(), HORIZONTAL, 2.0, profile)

        assert set(axes) == {"precision", "speed", "fluidity", "inclination", "pressure"}
        assert composite == pytest.approx(100.0)

    def test_composite_is_weighted_sum(self, profile):
        """Slow trace: speed 60, everything else 100 -> 100 - 0.20 * 40."""
        axes, composite = score_trace(line_trace(), HORIZONTAL, 5.0, profile)

        assert axes["speed"] == pytest.approx(60.0)
        assert composite == pytest.approx(92.0)


class TestFeedback:
    """Tests for comments, recommendations and next step."""

    def test_low_and_high_bands(self):
        comments, recommendations = trace_feedback(
            {"precision": 50, "speed": 95, "fluidity": 80, "inclination": 70, "pressure": 90}
        )

        assert "Stroke needs work" in comments
        assert "Follow the model more closely" in recommendations
        assert "Great speed!" in comments
        assert "Excellent stylus control!" in comments
        assert len(recommendations) == 1

    def test_next_step(self):
        assert next_step(True, 95) == NEXT_STEP_VALIDATED
        assert next_step(False, 72) == NEXT_STEP_ALMOST
        assert next_step(False, 40) == NEXT_STEP_RETRY
