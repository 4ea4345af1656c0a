import pytest
from sqlalchemy import func, select

from shiftfsm.state.database import create_shift_engine

from tests.app import metadata


@pytest.fixture
def engine():
    """Fresh in-memory database with all test tables"""
    engine = create_shift_engine("sqlite://")
    metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def count_rows(engine):
    """Return the number of rows in a table"""
    def count(table):
        with engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(table)).scalar()
    return count

