"""
Database Access
===============

Thin wrapper around a SQLAlchemy engine and the MetaData that entity tables
and the events table are registered on.

This provides:
- Engine creation with SQLite pragmas (WAL, foreign keys)
- In-memory SQLite support for tests (single shared connection)
- Table creation and transaction helpers
"""

from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional

from sqlalchemy import Connection, Engine, MetaData, create_engine, event
from sqlalchemy.engine.url import make_url
from sqlalchemy.pool import StaticPool


class ShiftDatabase:
    """
    Database handle shared by executors, the verifier and the CLI.

    Entity tables should be defined on `self.metadata` so create_all()
    creates them together with the events table.
    """

    def __init__(self, url: str, echo: bool = False, metadata: Optional[MetaData] = None):
        self.url = url
        self.metadata = metadata if metadata is not None else MetaData()
        self.engine = create_shift_engine(url, echo=echo)

    def create_all(self) -> None:
        """Create all tables registered on the metadata"""
        self.metadata.create_all(self.engine)

    def connect(self) -> Connection:
        return self.engine.connect()

    @contextmanager
    def begin(self) -> Iterator[Connection]:
        """Connection with an open transaction, committed on success"""
        with self.engine.begin() as conn:
            yield conn

    def dispose(self) -> None:
        self.engine.dispose()


def create_shift_engine(url: str, echo: bool = False) -> Engine:
    """
    Create an engine with backend-specific settings.

    SQLite file databases get WAL mode; in-memory SQLite uses a single
    static connection so every caller sees the same database.
    """
    parsed = make_url(url)
    if parsed.get_backend_name() != "sqlite":
        return create_engine(url, echo=echo)

    kwargs: dict[str, Any] = {
        "echo": echo,
        "connect_args": {"check_same_thread": False},
    }
    in_memory = parsed.database in (None, "", ":memory:")
    if in_memory:
        kwargs["poolclass"] = StaticPool
    else:
        Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(url, **kwargs)

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        if not in_memory:
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


def create_database(config: dict, metadata: Optional[MetaData] = None) -> ShiftDatabase:
    """Create database from config"""
    db_config = config.get("database", {})
    url = db_config.get("url", "sqlite:///./state/shiftfsm.db")
    return ShiftDatabase(url, echo=db_config.get("echo", False), metadata=metadata)
