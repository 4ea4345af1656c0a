"""
Event Log (Outbox)
==================

Every state change writes one event row in the same transaction as the
business row. The write returns a Notifier which the caller invokes after
commit to announce the event to subscribers.

This provides:
- EventSink: the contract the executor depends on
- EventsTable: SQLAlchemy-backed append-only events table
- Notify buses: in-process (LocalNotifyBus) or Redis pub/sub (RedisNotifyBus)

Notification is best effort. An event whose notifier never ran is still
durable and is picked up by the next read_events() poll.
"""

import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Protocol

import redis
from sqlalchemy import (
    BigInteger,
    Column,
    Connection,
    DateTime,
    Integer,
    LargeBinary,
    MetaData,
    String,
    Table,
    func,
    select,
)

from ..requests import Identifier
from ..status import Status
from .graph import IdKind


@dataclass
class Event:
    """A single event in the log"""
    id: int
    foreign_id: Identifier
    timestamp: datetime
    type: int
    metadata: bytes = b""


class Notifier:
    """
    Deferred post-commit announcement.

    Only the first call has an effect; later calls are no-ops.
    """

    def __init__(self, announce: Optional[Callable[[], None]] = None):
        self._announce = announce
        self._lock = threading.Lock()
        self.called = False

    def __call__(self) -> None:
        with self._lock:
            if self.called:
                return
            self.called = True
        if self._announce is not None:
            self._announce()


class EventSink(Protocol):
    """Contract for writing events inside the caller's transaction"""

    def insert_with_metadata(
        self,
        conn: Connection,
        foreign_id: Identifier,
        event_type: int,
        metadata: bytes,
    ) -> Notifier:
        ...


# =============================================================================
# Notify Buses
# =============================================================================

class LocalNotifyBus:
    """
    In-process notification.

    Listeners are called synchronously with the channel name; waiters
    blocked in wait() are woken on every notification.
    """

    def __init__(self):
        self._listeners: list[Callable[[str], None]] = []
        self._cond = threading.Condition()
        self._sequence = 0

    def subscribe(self, listener: Callable[[str], None]) -> Callable[[], None]:
        """Register a listener, returning a function that removes it"""
        with self._cond:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._cond:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    @property
    def sequence(self) -> int:
        """Number of notifications published so far"""
        with self._cond:
            return self._sequence

    def wait(self, after: int, timeout: Optional[float] = None) -> bool:
        """Block until sequence exceeds `after`. Returns False on timeout."""
        with self._cond:
            return self._cond.wait_for(lambda: self._sequence > after, timeout=timeout)

    def publish(self, channel: str) -> None:
        with self._cond:
            self._sequence += 1
            listeners = list(self._listeners)
            self._cond.notify_all()
        for listener in listeners:
            listener(channel)


class RedisNotifyBus:
    """Redis pub/sub notification for subscribers in other processes"""

    def __init__(self, client: Any):
        self.redis = client

    @classmethod
    def from_url(cls, redis_url: str) -> "RedisNotifyBus":
        return cls(redis.from_url(redis_url))

    def publish(self, channel: str) -> None:
        self.redis.publish(channel, "new_event")


# =============================================================================
# Events Table
# =============================================================================

class EventsTable:
    """
    Append-only events table.

    Columns: id, foreign_id, timestamp, type, metadata. Rows are never
    updated; readers poll by id.
    """

    def __init__(
        self,
        name: str,
        metadata: MetaData,
        id_kind: IdKind = IdKind.INTEGER,
        notify_bus: Any = None,
    ):
        self.name = name
        self.id_kind = IdKind(id_kind)
        self.notify_bus = notify_bus if notify_bus is not None else LocalNotifyBus()
        self.channel = f"{name}:notify"

        foreign_type = BigInteger() if self.id_kind is IdKind.INTEGER else String(255)
        self.table = Table(
            name,
            metadata,
            Column("id", Integer, primary_key=True, autoincrement=True),
            Column("foreign_id", foreign_type, nullable=False, index=True),
            Column("timestamp", DateTime(timezone=True), nullable=False),
            Column("type", Integer, nullable=False),
            Column("metadata", LargeBinary, nullable=True),
        )

    def insert_with_metadata(
        self,
        conn: Connection,
        foreign_id: Identifier,
        event_type: int,
        metadata: bytes,
    ) -> Notifier:
        """
        Insert an event inside the caller's open transaction.

        Returns the Notifier to invoke once that transaction has committed.
        """
        conn.execute(
            self.table.insert().values(
                foreign_id=foreign_id,
                timestamp=datetime.now(timezone.utc),
                type=int(event_type),
                metadata=metadata or None,
            )
        )
        return Notifier(self._announce)

    def _announce(self) -> None:
        self.notify_bus.publish(self.channel)

    # =========================================================================
    # Reads
    # =========================================================================

    def read_events(self, conn: Connection, after_id: int = 0, limit: Optional[int] = None) -> list[Event]:
        """Read events with id > after_id in id order"""
        query = select(self.table).where(self.table.c.id > after_id).order_by(self.table.c.id)
        if limit is not None:
            query = query.limit(limit)
        return [self._to_event(row) for row in conn.execute(query)]

    def find_events(
        self,
        conn: Connection,
        foreign_id: Optional[Identifier] = None,
        event_type: Optional[int | Status] = None,
    ) -> list[Event]:
        """Find events matching criteria"""
        query = select(self.table).order_by(self.table.c.id)
        if foreign_id is not None:
            query = query.where(self.table.c.foreign_id == foreign_id)
        if event_type is not None:
            type_value = getattr(event_type, "event_type", event_type)
            query = query.where(self.table.c.type == int(type_value))
        return [self._to_event(row) for row in conn.execute(query)]

    def latest_id(self, conn: Connection) -> int:
        """Highest event id, 0 when empty"""
        return conn.execute(select(func.max(self.table.c.id))).scalar() or 0

    def _to_event(self, row: Any) -> Event:
        values = row._mapping
        return Event(
            id=values["id"],
            foreign_id=values["foreign_id"],
            timestamp=values["timestamp"],
            type=values["type"],
            metadata=values["metadata"] or b"",
        )


def create_notify_bus(config: dict) -> Any:
    """Create the notify bus from config"""
    notify_config = config.get("events", {}).get("notify", {})
    backend = notify_config.get("backend", "local")

    if backend == "redis":
        redis_url = notify_config.get("redis_url", "redis://localhost:6379/0")
        return RedisNotifyBus.from_url(redis_url)
    if backend == "local":
        return LocalNotifyBus()
    raise ValueError(f"unknown notify backend: {backend}")


def create_events_table(config: dict, metadata: MetaData, notify_bus: Any = None) -> EventsTable:
    """Create the events table from config"""
    events_config = config.get("events", {})
    return EventsTable(
        events_config.get("table", "events"),
        metadata,
        id_kind=events_config.get("id_kind", IdKind.INTEGER.value),
        notify_bus=notify_bus if notify_bus is not None else create_notify_bus(config),
    )
