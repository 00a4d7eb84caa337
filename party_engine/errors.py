from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    invalid_state = "invalid_state"
    content_exhausted = "content_exhausted"
    structural_impossibility = "structural_impossibility"
    unsupported_snapshot = "unsupported_snapshot"


class EngineError(ValueError):
    """Base class for recoverable engine errors.

    These never escape the public `GameEngine` methods: they are converted into
    `EngineResult(success=False, error=...)` at the boundary.
    """

    code: ErrorCode = ErrorCode.invalid_state

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidStateError(EngineError):
    """Operation attempted in a phase that forbids it."""

    code = ErrorCode.invalid_state


class ContentExhaustedError(EngineError):
    """No dynamic has a remaining question."""

    code = ErrorCode.content_exhausted


class StructuralImpossibilityError(EngineError):
    """Targeting constraints cannot be satisfied with the current roster."""

    code = ErrorCode.structural_impossibility


class SnapshotVersionError(EngineError):
    code = ErrorCode.unsupported_snapshot


class ContentLoadError(RuntimeError):
    """Malformed or missing content. Raised at load time, never mid-game."""


class SessionBusyError(RuntimeError):
    pass


class SessionNotFoundError(LookupError):
    pass
