"""
Transition Graph
================

The declared state machine: one node per status, each bound to the request
type allowed to drive a row into it, and the set of statuses reachable from
it.

Graphs are built once at startup with GraphBuilder and are immutable
afterwards, so a single graph can be shared by any number of threads:

    graph = (
        GraphBuilder()
        .declare_insert(OrderStatus.CREATED, CreateOrder, OrderStatus.PAID)
        .declare_update(OrderStatus.PAID, PayOrder, OrderStatus.SHIPPED)
        .declare_update(OrderStatus.SHIPPED, ShipOrder)
        .build()
    )

Targets listed in `next` may be declared later (or never); unresolved
targets only fail when a transition actually uses them.
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Iterator, Mapping, Optional

from ..errors import GraphBuildError, UnknownStatusError
from ..requests import Identifier, InsertRequest, UpdateRequest
from ..status import Status, status_key, status_name


class IdKind(str, Enum):
    """Identifier shapes supported for entity rows"""
    INTEGER = "integer"
    TEXT = "text"

    def accepts(self, value: Identifier) -> bool:
        if self is IdKind.INTEGER:
            return isinstance(value, int) and not isinstance(value, bool)
        return isinstance(value, str)


@dataclass(frozen=True)
class GraphOptions:
    """Construction-time switches"""
    id_kind: IdKind = IdKind.INTEGER
    require_metadata: bool = False
    require_validation: bool = False


@dataclass(frozen=True)
class StateNode:
    """A declared status"""
    status: Status
    request_type: type
    request_tag: str
    next: Mapping[int, Status] = field(default_factory=lambda: MappingProxyType({}))
    is_insert: bool = False

    @property
    def ordinal(self) -> int:
        return status_key(self.status)

    @property
    def is_terminal(self) -> bool:
        return not self.next

    def allows(self, to_status: Status) -> bool:
        """True if to_status is in this node's next set"""
        return status_key(to_status) in self.next


@dataclass(frozen=True)
class TransitionGraph:
    """
    Immutable graph of declared statuses.

    Use GraphBuilder to construct one.
    """
    nodes: Mapping[int, StateNode]
    insert_status: Status
    options: GraphOptions = GraphOptions()

    @property
    def insert_node(self) -> StateNode:
        return self.nodes[status_key(self.insert_status)]

    def node(self, status: Status, message: Optional[str] = None) -> StateNode:
        """Look up a node, raising UnknownStatusError if undeclared"""
        node = self.nodes.get(status_key(status))
        if node is None:
            raise UnknownStatusError(status, message)
        return node

    def is_insert_status(self, status: Status) -> bool:
        return status_key(status) == status_key(self.insert_status)

    def statuses(self) -> list[Status]:
        """All declared statuses in declaration order"""
        return [node.status for node in self.nodes.values()]

    def edges(self) -> Iterator[tuple[Status, Status]]:
        """Iterate over declared (from, to) pairs"""
        for node in self.nodes.values():
            for to_status in node.next.values():
                yield node.status, to_status

    def __contains__(self, status: object) -> bool:
        try:
            return status_key(status) in self.nodes
        except TypeError:
            return False

    def __len__(self) -> int:
        return len(self.nodes)

    def __iter__(self) -> Iterator[StateNode]:
        return iter(self.nodes.values())


class GraphBuilder:
    """
    Accumulates status declarations and produces a TransitionGraph.

    Exactly one insert declaration is required and must come first. All
    misuse raises GraphBuildError immediately.

    Args:
        id_kind: Identifier shape returned by row mutators.
        require_metadata: Every request must provide get_metadata().
        require_validation: Every request must provide validate().
        strict: Reject any next set that contains the insert status.
    """

    def __init__(
        self,
        *,
        id_kind: IdKind = IdKind.INTEGER,
        require_metadata: bool = False,
        require_validation: bool = False,
        strict: bool = False,
    ):
        self.options = GraphOptions(
            id_kind=IdKind(id_kind),
            require_metadata=require_metadata,
            require_validation=require_validation,
        )
        self.strict = strict
        self._nodes: dict[int, StateNode] = {}
        self._insert_status: Optional[Status] = None
        self._built = False

    def declare_insert(self, status: Status, request_type: type, *next_allowed: Status) -> "GraphBuilder":
        """Declare the single insert status and its allowed successors"""
        self._check_open()
        if self._insert_status is not None:
            raise GraphBuildError(
                "insert status already declared",
                existing=status_key(self._insert_status),
                status=status_key(status),
            )
        if not _is_subclass(request_type, InsertRequest):
            raise GraphBuildError("insert request must subclass InsertRequest", status=status_key(status))

        self._insert_status = status
        self._add(status, request_type, next_allowed, is_insert=True)
        return self

    def declare_update(self, status: Status, request_type: type, *next_allowed: Status) -> "GraphBuilder":
        """Declare an update status and its allowed successors"""
        self._check_open()
        if self._insert_status is None:
            raise GraphBuildError("insert status must be declared first", status=status_key(status))
        if not _is_subclass(request_type, UpdateRequest):
            raise GraphBuildError("update request must subclass UpdateRequest", status=status_key(status))

        self._add(status, request_type, next_allowed, is_insert=False)
        return self

    def build(self) -> TransitionGraph:
        """Seal the builder and return the immutable graph"""
        self._check_open()
        if self._insert_status is None:
            raise GraphBuildError("graph without insert status")
        self._built = True
        return TransitionGraph(
            nodes=MappingProxyType(dict(self._nodes)),
            insert_status=self._insert_status,
            options=self.options,
        )

    def _add(self, status: Status, request_type: type, next_allowed: tuple, is_insert: bool) -> None:
        key = status_key(status)
        if key in self._nodes:
            raise GraphBuildError("status already declared", status=key)

        next_map: dict[int, Status] = {}
        for target in next_allowed:
            target_key = status_key(target)
            if self.strict and target_key == status_key(self._insert_status):
                raise GraphBuildError(
                    "transition to the insert status is not allowed",
                    from_status=key,
                    to_status=target_key,
                )
            next_map.setdefault(target_key, target)

        self._nodes[key] = StateNode(
            status=status,
            request_type=request_type,
            request_tag=request_type.request_tag,
            next=MappingProxyType(next_map),
            is_insert=is_insert,
        )

    def _check_open(self) -> None:
        if self._built:
            raise GraphBuildError("builder already built")


def _is_subclass(value: object, base: type) -> bool:
    return isinstance(value, type) and issubclass(value, base)


def describe(graph: TransitionGraph) -> list[str]:
    """One line per status, for logs"""
    lines = []
    for node in graph:
        targets = ", ".join(status_name(s) for s in node.next.values()) or "-"
        marker = " (insert)" if node.is_insert else ""
        lines.append(f"{status_name(node.status)}{marker} -> {targets}")
    return lines
