"""
Status Descriptors
==================

A status identifies one state of an entity. The engine only relies on two
attributes:

- ordinal: integer stored in the row's status column, used as map key
- event_type: integer tag written to the event log (defaults to ordinal)

Applications normally subclass StatusEnum:

    class OrderStatus(StatusEnum):
        CREATED = 1
        PAID = 2
        SHIPPED = 3
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class Status(Protocol):
    """Anything with an integer ordinal and event type"""

    @property
    def ordinal(self) -> int:
        ...

    @property
    def event_type(self) -> int:
        ...


class StatusEnum(IntEnum):
    """
    Base class for application status enums.

    Override `event_type` in a subclass to decouple event tags from the
    stored ordinal.
    """

    @property
    def ordinal(self) -> int:
        return int(self)

    @property
    def event_type(self) -> int:
        return int(self)


@dataclass(frozen=True)
class BasicStatus:
    """
    Ad-hoc status value.

    Equality and hashing only consider the ordinal, so BasicStatus(2) and
    BasicStatus(2, event_tag=20) are the same status.
    """
    ordinal: int
    event_tag: Optional[int] = field(default=None, compare=False)

    @property
    def event_type(self) -> int:
        return self.ordinal if self.event_tag is None else self.event_tag

    def __str__(self) -> str:
        return f"status({self.ordinal})"


def status_key(status: Status) -> int:
    """Return the map key for a status, rejecting non-status values"""
    ordinal = getattr(status, "ordinal", None)
    if not isinstance(ordinal, int) or isinstance(ordinal, bool):
        raise TypeError(f"not a status: {status!r}")
    return ordinal


def status_name(status: Status) -> str:
    """Readable name for logs and error messages"""
    name = getattr(status, "name", None)
    if isinstance(name, str):
        return name
    return str(status_key(status))
