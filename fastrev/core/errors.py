"""
Engine error hierarchy.

- ConfigurationError: invalid curriculum graph (fatal at startup)
- NotFoundError: unknown competence, student or revision reference
- InvalidAttemptError: malformed attempt telemetry (converted to a rejected evaluation)
- ConcurrencyConflict: optimistic version mismatch on a competence state
- InvalidTransitionError: illegal learning path status change
- InvalidRevisionUpdate: illegal change to a revision item
"""

from __future__ import annotations


class EngineError(Exception):
    """Base class for all adaptive engine errors."""

    pass


class ConfigurationError(EngineError):
    """Raised when a competence graph cannot be built."""

    def __init__(self, message: str, cycle: list[str] | None = None):
        super().__init__(message)
        self.cycle = cycle or []


class NotFoundError(EngineError, KeyError):
    """Raised when an operation references an unknown entity."""

    def __init__(self, kind: str, key: str):
        super().__init__(f"Unknown {kind}: {key}")
        self.kind = kind
        self.key = key

    def __str__(self) -> str:
        return self.args[0]


class InvalidAttemptError(EngineError, ValueError):
    """Raised when an attempt cannot be scored."""

    pass


class ConcurrencyConflict(EngineError):
    """Raised when a competence state changed since it was read."""

    def __init__(self, student_id: str, competence_code: str, expected: int, actual: int):
        super().__init__(
            f"Competence state {student_id}/{competence_code} is at version {actual}, "
            f"expected {expected}"
        )
        self.student_id = student_id
        self.competence_code = competence_code
        self.expected = expected
        self.actual = actual


class InvalidTransitionError(EngineError, ValueError):
    """Raised on a learning path status change the state machine forbids."""

    pass


class InvalidRevisionUpdate(EngineError, ValueError):
    """Raised when a revision item update is not allowed."""

    pass
