"""
Adaptive Learning Engine.

Decides, for any student at any moment, which competence to unlock,
which one to revise and how difficulty should adapt.

Components:
- MasteryEvaluator: Scores attempts and drives the mastery state machine
- ScoringCatalog: Versioned scoring profiles per exercise family
- LearningPathBuilder: Unlock cascades and interleaved recommendations
- LearningEngine: Main orchestration layer
"""
from fastrev.adaptive.evaluator import MasteryEvaluator, apply_evaluation
from fastrev.adaptive.learning_engine import KeyedLock, LearningEngine
from fastrev.adaptive.models import (
    AttemptEvaluation,
    AttemptOutcome,
    AttemptResult,
    ReferencePath,
    TraceSample,
)
from fastrev.adaptive.path_sequencer import LearningPathBuilder
from fastrev.adaptive.scoring import ScoringCatalog, ScoringProfile, ScoringWeights

__all__ = [
    # Main engine
    "LearningEngine",
    "KeyedLock",
    # Component classes
    "MasteryEvaluator",
    "LearningPathBuilder",
    "ScoringCatalog",
    "ScoringProfile",
    "ScoringWeights",
    "apply_evaluation",
    # Data models
    "AttemptEvaluation",
    "AttemptOutcome",
    "AttemptResult",
    "ReferencePath",
    "TraceSample",
]
