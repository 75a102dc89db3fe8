"""
Core Module - Shared domain primitives and errors.

Components:
- mastery: MasteryLevel, CompetenceState, MasteryConfig
- errors: engine error hierarchy

Design Principle:
The graph, delivery and adaptive packages import shared concepts from
fastrev.core rather than redefining them.
"""

from fastrev.core.errors import (
    ConcurrencyConflict,
    ConfigurationError,
    EngineError,
    InvalidAttemptError,
    InvalidRevisionUpdate,
    InvalidTransitionError,
    NotFoundError,
)
from fastrev.core.mastery import CompetenceState, MasteryConfig, MasteryLevel

__all__ = [
    # Mastery
    "CompetenceState",
    "MasteryConfig",
    "MasteryLevel",
    # Errors
    "EngineError",
    "ConfigurationError",
    "NotFoundError",
    "InvalidAttemptError",
    "ConcurrencyConflict",
    "InvalidTransitionError",
    "InvalidRevisionUpdate",
]
