"""
Error Taxonomy
==============

Every failure raised by the engine derives from ShiftError and carries an
ErrorKind, so callers can branch on "retry", "bug" or "conflict" without
parsing message text.

Domain errors raised by request capabilities (row mutators, metadata and
validation hooks) are never wrapped; they reach the caller unchanged.
"""

from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    """Stable error kinds"""
    UNKNOWN_STATUS = "unknown_status"
    INVALID_TYPE = "invalid_type"
    INVALID_STATE_TRANSITION = "invalid_state_transition"
    ROW_COUNT = "row_count"
    GRAPH_BUILD = "graph_build"
    VERIFICATION = "verification"


class ShiftError(Exception):
    """
    Base class for all engine errors.

    Attributes:
        kind: The ErrorKind of this error.
        message: Human-readable error message.
        details: Structured context (status ordinals, counts, ...).
        retryable: True when re-reading and re-attempting may succeed.
    """

    kind: ErrorKind = ErrorKind.INVALID_TYPE
    retryable: bool = False

    def __init__(self, message: str, **details: Any):
        self.message = message
        self.details = details
        super().__init__(message)

    def __str__(self) -> str:
        if not self.details:
            return self.message
        context = ", ".join(f"{k}={v!r}" for k, v in sorted(self.details.items()))
        return f"{self.message} ({context})"


class UnknownStatusError(ShiftError):
    """Raised when a referenced status was never declared in the graph."""

    kind = ErrorKind.UNKNOWN_STATUS

    def __init__(self, status: Any, message: Optional[str] = None):
        self.status = status
        super().__init__(
            message or "unknown status",
            status=getattr(status, "ordinal", status),
        )


class InvalidTypeError(ShiftError):
    """
    Raised when a request does not fit the attempted transition.

    Covers a request bound to a different status, a required capability
    (metadata or validation) that the request does not provide, and values
    of the wrong shape (identifier kind, metadata bytes).
    """

    kind = ErrorKind.INVALID_TYPE


class InvalidStateTransitionError(ShiftError):
    """Raised when (from, to) is not a declared edge of the graph."""

    kind = ErrorKind.INVALID_STATE_TRANSITION

    def __init__(self, from_status: Any, to_status: Any, message: Optional[str] = None):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            message or "invalid state transition",
            from_status=getattr(from_status, "ordinal", from_status),
            to_status=getattr(to_status, "ordinal", to_status),
        )


class RowCountError(ShiftError):
    """
    Raised when a row mutation affected a number of rows other than one.

    Usually the row is no longer in the expected from status because a
    concurrent transition won the race, or the identifier does not exist.
    Both causes share this error; `count` holds the observed row count.
    """

    kind = ErrorKind.ROW_COUNT
    retryable = True

    def __init__(self, count: int, request: Optional[str] = None):
        self.count = count
        details = {"count": count}
        if request:
            details["request"] = request
        super().__init__("unexpected number of rows updated", **details)


class GraphBuildError(ShiftError):
    """
    Raised by builders on a static configuration mistake.

    Graphs are declared once at startup, so these errors are meant to abort
    process initialisation rather than be handled.
    """

    kind = ErrorKind.GRAPH_BUILD


class VerificationError(ShiftError):
    """Raised by the reachability verifier."""

    kind = ErrorKind.VERIFICATION
