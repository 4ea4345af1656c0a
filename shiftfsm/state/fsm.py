"""
Transactional Executor
======================

Applies requests to a TransitionGraph. Every insert and update runs the same
protocol inside one database transaction:

1. row mutation (the request's insert() / update())
2. metadata derivation (if the graph requires metadata)
3. event emission through the EventSink
4. validation (if the graph requires validation)

The *_tx variants run inside a transaction owned by the caller and return
the Notifier; the caller must invoke it only after committing. The plain
variants open their own transaction, commit it, then notify.

Validation runs after the event is staged; when it fails, the row and the
event are rolled back together.
"""

import logging
from contextlib import contextmanager
from typing import Callable, Generic, Iterator, TypeVar

from sqlalchemy import Connection, Engine

from ..errors import InvalidStateTransitionError, InvalidTypeError
from ..requests import Identifier, InsertRequest, SupportsMetadata, SupportsValidation, UpdateRequest
from ..status import Status, status_key, status_name
from .events import EventSink, Notifier
from .graph import GraphOptions, TransitionGraph


logger = logging.getLogger(__name__)

IdT = TypeVar("IdT", int, str)


class FSM(Generic[IdT]):
    """
    Executor for a TransitionGraph.

    Stateless apart from its graph and event sink, so one instance may be
    shared by many threads, each using its own connection.

    Example:
        >>> fsm = FSM(graph, events)
        >>> order_id = fsm.insert(engine, CreateOrder(customer="ada"))
        >>> fsm.update(engine, OrderStatus.CREATED, OrderStatus.PAID,
        ...            PayOrder(id=order_id, amount=12.5))
    """

    def __init__(self, graph: TransitionGraph, events: EventSink):
        self.graph = graph
        self.events = events

    @property
    def options(self) -> GraphOptions:
        return self.graph.options

    # =========================================================================
    # Insert
    # =========================================================================

    def insert_tx(self, conn: Connection, request: InsertRequest) -> tuple[IdT, Notifier]:
        """
        Insert a new row in the insert status within the caller's transaction.

        Returns:
            (identifier, notifier) - invoke the notifier after commit.

        Raises:
            InvalidTypeError: If the request is not bound to the insert status
                or lacks a required capability.
        """
        node = self.graph.insert_node
        if getattr(request, "request_tag", None) != node.request_tag:
            raise InvalidTypeError(
                "inserter can't be used for this transition",
                status=node.ordinal,
                expected=node.request_tag,
                got=getattr(request, "request_tag", type(request).__name__),
            )

        return run_insert(conn, node.status, request, self.events, node.status.event_type, self.options)

    def insert(self, engine: Engine, request: InsertRequest) -> IdT:
        """Insert in a new transaction, commit, then notify. Returns the identifier."""
        with transaction(engine) as conn:
            identifier, notify = self.insert_tx(conn, request)
        announce(notify)
        return identifier

    # =========================================================================
    # Update
    # =========================================================================

    def update_tx(self, conn: Connection, from_status: Status, to_status: Status, request: UpdateRequest) -> Notifier:
        """
        Move a row from from_status to to_status within the caller's transaction.

        Raises:
            UnknownStatusError: If either status was never declared.
            InvalidTypeError: If the request is not bound to to_status.
            InvalidStateTransitionError: If to_status is not allowed after
                from_status, or is the insert status.
            RowCountError: Raised by the request when the row was not in
                from_status (or does not exist).
        """
        to_node = self.graph.node(to_status, "unknown to status")
        if getattr(request, "request_tag", None) != to_node.request_tag:
            raise InvalidTypeError(
                "updater can't be used for this transition",
                status=to_node.ordinal,
                expected=to_node.request_tag,
                got=getattr(request, "request_tag", type(request).__name__),
            )

        from_node = self.graph.node(from_status, "unknown from status")
        if not from_node.allows(to_status) or to_node.is_insert:
            logger.warning(
                "Invalid state transition attempted",
                extra={
                    "from_status": status_name(from_status),
                    "to_status": status_name(to_status),
                },
            )
            raise InvalidStateTransitionError(from_status, to_status)

        return run_update(conn, from_status, to_node.status, request, self.events, to_node.status.event_type, self.options)

    def update(self, engine: Engine, from_status: Status, to_status: Status, request: UpdateRequest) -> None:
        """Update in a new transaction, commit, then notify"""
        with transaction(engine) as conn:
            notify = self.update_tx(conn, from_status, to_status, request)
        announce(notify)


# =============================================================================
# Shared Protocol
# =============================================================================

def run_insert(
    conn: Connection,
    status: Status,
    request: InsertRequest,
    events: EventSink,
    event_type: int,
    options: GraphOptions,
) -> tuple[Identifier, Notifier]:
    """Row insert, metadata, event, validation - in that order"""
    identifier = request.insert(conn, status)
    _check_identifier(identifier, options)

    metadata = b""
    if options.require_metadata:
        if not isinstance(request, SupportsMetadata):
            raise InvalidTypeError("inserter without metadata", status=status_key(status))
        metadata = _check_metadata(request.get_metadata(conn, identifier, status))

    notify = events.insert_with_metadata(conn, identifier, event_type, metadata)

    if options.require_validation:
        if not isinstance(request, SupportsValidation):
            raise InvalidTypeError("inserter without validate method", status=status_key(status))
        request.validate(conn, identifier, status)

    logger.debug(
        "Inserted row",
        extra={"identifier": identifier, "status": status_name(status)},
    )
    return identifier, notify


def run_update(
    conn: Connection,
    from_status: Status,
    to_status: Status,
    request: UpdateRequest,
    events: EventSink,
    event_type: int,
    options: GraphOptions,
) -> Notifier:
    """Row update, metadata, event, validation - in that order"""
    identifier = request.update(conn, from_status, to_status)
    _check_identifier(identifier, options)

    metadata = b""
    if options.require_metadata:
        if not isinstance(request, SupportsMetadata):
            raise InvalidTypeError("updater without metadata", status=status_key(to_status))
        metadata = _check_metadata(request.get_metadata(conn, from_status, to_status))

    notify = events.insert_with_metadata(conn, identifier, event_type, metadata)

    if options.require_validation:
        if not isinstance(request, SupportsValidation):
            raise InvalidTypeError("updater without validate method", status=status_key(to_status))
        request.validate(conn, from_status, to_status)

    logger.debug(
        "Updated row",
        extra={
            "identifier": identifier,
            "from_status": status_name(from_status),
            "to_status": status_name(to_status),
        },
    )
    return notify


def _check_identifier(identifier: Identifier, options: GraphOptions) -> None:
    if not options.id_kind.accepts(identifier):
        raise InvalidTypeError(
            "row mutator returned an identifier of the wrong kind",
            id_kind=options.id_kind.value,
            got=type(identifier).__name__,
        )


def _check_metadata(metadata: bytes) -> bytes:
    if not isinstance(metadata, (bytes, bytearray)):
        raise InvalidTypeError("metadata must be bytes", got=type(metadata).__name__)
    return bytes(metadata)


# =============================================================================
# Transactions
# =============================================================================

@contextmanager
def transaction(engine: Engine) -> Iterator[Connection]:
    """
    Open a connection and transaction; commit on success, roll back on error.

    Code after the with block only runs if the commit succeeded.
    """
    with engine.connect() as conn:
        with conn.begin():
            yield conn


def announce(notify: Callable[[], None]) -> None:
    """
    Invoke a notifier after commit.

    The row and event are already durable, so a failing notifier is logged
    and not raised; subscribers will find the event on their next poll.
    """
    try:
        notify()
    except Exception:
        logger.warning("Post-commit notification failed", exc_info=True)
