"""
Arc FSM
=======

Unrestricted variant of the transition graph. Instead of binding one
request type per status, every arc (from, to) is declared with its own
request type, and any number of insert statuses may exist:

    graph = (
        ArcBuilder()
        .declare_insert(Status.DRAFT, CreateDraft)
        .declare_insert(Status.PUBLISHED, ImportPublished)
        .declare_arc(Status.DRAFT, Status.PUBLISHED, Publish)
        .declare_arc(Status.PUBLISHED, Status.DRAFT, Unpublish)
        .build()
    )
    fsm = ArcFSM(graph, events)

The same status may be reached from different statuses with different
requests, and transitions back into an insert status are allowed.
Execution uses the same protocol as FSM.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterator, Mapping

from sqlalchemy import Connection, Engine

from ..errors import GraphBuildError, InvalidStateTransitionError
from ..requests import Identifier, InsertRequest, UpdateRequest
from ..status import Status, status_key
from .events import EventSink, Notifier
from .fsm import announce, run_insert, run_update, transaction
from .graph import GraphOptions, IdKind


@dataclass(frozen=True)
class Arc:
    """A declared (from, to) transition and the request that drives it"""
    from_status: Status
    to_status: Status
    request_type: type
    request_tag: str


@dataclass(frozen=True)
class ArcInsert:
    """A declared insert status and the request that creates it"""
    status: Status
    request_type: type
    request_tag: str


@dataclass(frozen=True)
class ArcGraph:
    """Immutable set of declared inserts and arcs"""
    inserts: tuple[ArcInsert, ...]
    arcs: Mapping[int, tuple[Arc, ...]]
    options: GraphOptions = GraphOptions()

    def find_insert(self, status: Status, request_tag: str) -> ArcInsert:
        for declared in self.inserts:
            if status_key(declared.status) == status_key(status) and declared.request_tag == request_tag:
                return declared
        raise InvalidStateTransitionError(None, status, "invalid insert status and inserter")

    def find_arc(self, from_status: Status, to_status: Status, request_tag: str) -> Arc:
        candidates = self.arcs.get(status_key(from_status))
        if not candidates:
            raise InvalidStateTransitionError(from_status, to_status, "invalid update from status")
        for arc in candidates:
            if status_key(arc.to_status) == status_key(to_status) and arc.request_tag == request_tag:
                return arc
        raise InvalidStateTransitionError(from_status, to_status, "invalid update to status and updater")

    def all_arcs(self) -> Iterator[Arc]:
        for arcs in self.arcs.values():
            yield from arcs

    def statuses(self) -> list[Status]:
        """Every status mentioned by an insert or arc, in declaration order"""
        seen: dict[int, Status] = {}
        for declared in self.inserts:
            seen.setdefault(status_key(declared.status), declared.status)
        for arc in self.all_arcs():
            seen.setdefault(status_key(arc.from_status), arc.from_status)
            seen.setdefault(status_key(arc.to_status), arc.to_status)
        return list(seen.values())


class ArcBuilder:
    """Accumulates insert and arc declarations"""

    def __init__(
        self,
        *,
        id_kind: IdKind = IdKind.INTEGER,
        require_metadata: bool = False,
        require_validation: bool = False,
    ):
        self.options = GraphOptions(
            id_kind=IdKind(id_kind),
            require_metadata=require_metadata,
            require_validation=require_validation,
        )
        self._inserts: list[ArcInsert] = []
        self._arcs: dict[int, list[Arc]] = {}
        self._built = False

    def declare_insert(self, status: Status, request_type: type) -> "ArcBuilder":
        self._check_open()
        if not (isinstance(request_type, type) and issubclass(request_type, InsertRequest)):
            raise GraphBuildError("insert request must subclass InsertRequest", status=status_key(status))
        for declared in self._inserts:
            if status_key(declared.status) == status_key(status) and declared.request_tag == request_type.request_tag:
                raise GraphBuildError("insert already declared", status=status_key(status))
        self._inserts.append(ArcInsert(status, request_type, request_type.request_tag))
        return self

    def declare_arc(self, from_status: Status, to_status: Status, request_type: type) -> "ArcBuilder":
        self._check_open()
        if not (isinstance(request_type, type) and issubclass(request_type, UpdateRequest)):
            raise GraphBuildError(
                "arc request must subclass UpdateRequest",
                from_status=status_key(from_status),
                to_status=status_key(to_status),
            )
        arcs = self._arcs.setdefault(status_key(from_status), [])
        for arc in arcs:
            if status_key(arc.to_status) == status_key(to_status) and arc.request_tag == request_type.request_tag:
                raise GraphBuildError(
                    "arc already declared",
                    from_status=status_key(from_status),
                    to_status=status_key(to_status),
                )
        arcs.append(Arc(from_status, to_status, request_type, request_type.request_tag))
        return self

    def build(self) -> ArcGraph:
        self._check_open()
        if not self._inserts:
            raise GraphBuildError("arc graph without insert status")
        self._built = True
        return ArcGraph(
            inserts=tuple(self._inserts),
            arcs=MappingProxyType({k: tuple(v) for k, v in self._arcs.items()}),
            options=self.options,
        )

    def _check_open(self) -> None:
        if self._built:
            raise GraphBuildError("builder already built")


class ArcFSM:
    """Executor for an ArcGraph"""

    def __init__(self, graph: ArcGraph, events: EventSink):
        self.graph = graph
        self.events = events

    def insert_tx(self, conn: Connection, status: Status, request: InsertRequest) -> tuple[Identifier, Notifier]:
        declared = self.graph.find_insert(status, getattr(request, "request_tag", None))
        return run_insert(conn, declared.status, request, self.events, declared.status.event_type, self.graph.options)

    def insert(self, engine: Engine, status: Status, request: InsertRequest) -> Identifier:
        with transaction(engine) as conn:
            identifier, notify = self.insert_tx(conn, status, request)
        announce(notify)
        return identifier

    def update_tx(self, conn: Connection, from_status: Status, to_status: Status, request: UpdateRequest) -> Notifier:
        arc = self.graph.find_arc(from_status, to_status, getattr(request, "request_tag", None))
        return run_update(conn, from_status, arc.to_status, request, self.events, arc.to_status.event_type, self.graph.options)

    def update(self, engine: Engine, from_status: Status, to_status: Status, request: UpdateRequest) -> None:
        with transaction(engine) as conn:
            notify = self.update_tx(conn, from_status, to_status, request)
        announce(notify)
