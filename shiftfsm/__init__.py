"""
shiftfsm - Transactional State Machines
=======================================

Persists entity state changes together with an outbox event in a single
database transaction:
- Declare statuses and allowed transitions once, with GraphBuilder
- Drive rows through them with FSM (or ArcFSM for per-arc requests)
- Consume the events table, optionally woken by post-commit notifications
- Prove every status is reachable with verify_fsm
"""

__version__ = "0.1.0"

from .errors import (
    ErrorKind,
    GraphBuildError,
    InvalidStateTransitionError,
    InvalidTypeError,
    RowCountError,
    ShiftError,
    UnknownStatusError,
    VerificationError,
)
from .requests import (
    FieldKind,
    Identifier,
    InsertRequest,
    SupportsMetadata,
    SupportsValidation,
    UpdateRequest,
    check_rowcount,
    shift_field,
)
from .state import (
    FSM,
    ArcBuilder,
    ArcFSM,
    EventsTable,
    GraphBuilder,
    IdKind,
    LocalNotifyBus,
    RedisNotifyBus,
    ShiftDatabase,
    TransitionGraph,
)
from .status import BasicStatus, Status, StatusEnum
from .verify import VerificationReport, verify_arc_fsm, verify_fsm

__all__ = [
    "ErrorKind",
    "GraphBuildError",
    "InvalidStateTransitionError",
    "InvalidTypeError",
    "RowCountError",
    "ShiftError",
    "UnknownStatusError",
    "VerificationError",
    "FieldKind",
    "Identifier",
    "InsertRequest",
    "SupportsMetadata",
    "SupportsValidation",
    "UpdateRequest",
    "check_rowcount",
    "shift_field",
    "FSM",
    "ArcBuilder",
    "ArcFSM",
    "EventsTable",
    "GraphBuilder",
    "IdKind",
    "LocalNotifyBus",
    "RedisNotifyBus",
    "ShiftDatabase",
    "TransitionGraph",
    "BasicStatus",
    "Status",
    "StatusEnum",
    "VerificationReport",
    "verify_arc_fsm",
    "verify_fsm",
]
