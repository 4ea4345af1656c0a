"""
Request Types
=============

A request is the caller-supplied value that drives one state change. It
owns the row mutation for its table and may provide two optional hooks:

- get_metadata(): bytes stored with the emitted event
- validate(): runs inside the transaction after the event is staged

Requests are usually dataclasses. Each request class receives a stable
`request_tag` when it is defined; graphs bind statuses to tags, and the
executor compares tags instead of Python types:

    @dataclass
    class CreateOrder(InsertRequest):
        customer: str = shift_field(FieldKind.TEXT)

    @dataclass
    class PayOrder(UpdateRequest, tag="orders.pay"):
        id: int = shift_field(FieldKind.IDENTIFIER)
        amount: float = shift_field(FieldKind.FLOAT)

Field kinds are only used by the reachability verifier to synthesize
random requests.
"""

import dataclasses
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, ClassVar, Optional, Protocol, Union, runtime_checkable

from sqlalchemy import Connection
from sqlalchemy.engine import CursorResult

from .errors import RowCountError
from .status import Status


Identifier = Union[int, str]

FIELD_KIND_KEY = "shift_kind"


class FieldKind(str, Enum):
    """Semantic kinds of request fields"""
    IDENTIFIER = "identifier"
    INTEGER = "integer"
    FLOAT = "float"
    TEXT = "text"
    BOOLEAN = "boolean"
    BYTES = "bytes"
    TIMESTAMP = "timestamp"
    NULLABLE_TEXT = "nullable_text"
    NULLABLE_TIMESTAMP = "nullable_timestamp"


def shift_field(kind: FieldKind, **kwargs: Any) -> Any:
    """
    Declare a dataclass field with a semantic kind.

    Accepts the usual dataclasses.field() arguments. Fields get a
    kind-appropriate default when none is supplied so request classes can
    be instantiated with keyword arguments only.
    """
    if "default" not in kwargs and "default_factory" not in kwargs:
        kwargs["default"] = _KIND_DEFAULTS.get(kind)
    metadata = dict(kwargs.pop("metadata", None) or {})
    metadata[FIELD_KIND_KEY] = FieldKind(kind)
    return dataclasses.field(metadata=metadata, **kwargs)


_KIND_DEFAULTS = {
    FieldKind.INTEGER: 0,
    FieldKind.FLOAT: 0.0,
    FieldKind.TEXT: "",
    FieldKind.BOOLEAN: False,
    FieldKind.BYTES: b"",
}


def field_kind(field: dataclasses.Field) -> Optional[FieldKind]:
    """Return the declared kind of a dataclass field, if any"""
    return field.metadata.get(FIELD_KIND_KEY)


# =============================================================================
# Request Base Classes
# =============================================================================

class Request:
    """Common base assigning the stable request tag"""

    request_tag: ClassVar[str]

    def __init_subclass__(cls, tag: Optional[str] = None, **kwargs: Any):
        super().__init_subclass__(**kwargs)
        cls.request_tag = tag or f"{cls.__module__}.{cls.__qualname__}"


class InsertRequest(Request, ABC):
    """Request that creates a new row in the insert status"""

    @abstractmethod
    def insert(self, conn: Connection, status: Status) -> Identifier:
        """
        Insert a new row with the given status.

        Must not accept a caller-supplied identifier: the new identifier is
        assigned by the database (or generated here) and returned.
        """


class UpdateRequest(Request, ABC):
    """Request that moves an existing row from one status to another"""

    @abstractmethod
    def update(self, conn: Connection, from_status: Status, to_status: Status) -> Identifier:
        """
        Update the row's status and fields.

        The statement must match both the row identifier and the current
        status (== from_status), and raise RowCountError unless exactly
        one row was affected (see check_rowcount). Returns the identifier.
        """


# =============================================================================
# Optional Capabilities
# =============================================================================

@runtime_checkable
class SupportsMetadata(Protocol):
    """
    Request that derives event metadata.

    Insert requests receive (conn, identifier, status); update requests
    receive (conn, from_status, to_status).
    """

    def get_metadata(self, conn: Connection, *args: Any) -> bytes:
        ...


@runtime_checkable
class SupportsValidation(Protocol):
    """
    Request that validates the change inside the transaction.

    Called after the event is staged; raise to abort the transaction.
    Arguments mirror SupportsMetadata.
    """

    def validate(self, conn: Connection, *args: Any) -> None:
        ...


def check_rowcount(result: CursorResult, request: Optional[str] = None) -> None:
    """Raise RowCountError unless the statement affected exactly one row"""
    if result.rowcount != 1:
        raise RowCountError(result.rowcount, request=request)
