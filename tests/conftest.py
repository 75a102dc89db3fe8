"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from fastrev.adaptive.learning_engine import LearningEngine  # noqa: E402
from fastrev.delivery.scheduler import RevisionScheduler  # noqa: E402
from fastrev.delivery.state_store import StateStore  # noqa: E402
from fastrev.graph.competence_graph import (  # noqa: E402
    CompetenceGraph,
    CompetenceNode,
    PrerequisiteEdge,
    PrerequisiteKind,
)

START = datetime(2025, 9, 1, 9, 0, tzinfo=timezone.utc)


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = START):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


def node(code: str, label: str = "") -> CompetenceNode:
    return CompetenceNode(code=code, label=label or code)


def required(target: str, source: str, threshold: int = 80, weight: float = 1.0) -> PrerequisiteEdge:
    return PrerequisiteEdge(target=target, source=source, threshold=threshold, weight=weight)


def recommended(target: str, source: str, weight: float = 1.0) -> PrerequisiteEdge:
    return PrerequisiteEdge(
        target=target, source=source, kind=PrerequisiteKind.RECOMMENDED, threshold=70, weight=weight
    )


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def clock():
    """Frozen clock starting 2025-09-01 09:00 UTC."""
    return FrozenClock()


@pytest.fixture
def store():
    """Empty in-memory state store."""
    return StateStore()


@pytest.fixture
def scheduler(store, clock):
    """Revision scheduler with default intervals and no competence weights."""
    return RevisionScheduler(store, clock=clock)


@pytest.fixture
def math_graph():
    """
    Small maths curriculum.

        N1.1 --(required 80)--> N1.4 --(required 75)--> N2.3
        N2.3 --(recommended 2.5)--> N3.1
        L1.1 (independent)
    """
    return CompetenceGraph.build(
        [
            node("CP.MA.N1.1", "Count up to 20"),
            node("CP.MA.N1.4", "Numbers up to 100"),
            node("CP.MA.N2.3", "Decompose numbers"),
            node("CP.MA.N3.1", "Mental calculation"),
            node("CP.FR.L1.1", "Grapheme-phoneme correspondences"),
        ],
        [
            required("CP.MA.N1.4", "CP.MA.N1.1", threshold=80),
            required("CP.MA.N2.3", "CP.MA.N1.4", threshold=75),
            recommended("CP.MA.N3.1", "CP.MA.N2.3", weight=2.5),
        ],
    )


@pytest.fixture
def engine(math_graph, clock):
    """Learning engine over the maths curriculum with one enrolled student."""
    engine = LearningEngine(math_graph, clock=clock)
    engine.enroll_student("s1")
    return engine
