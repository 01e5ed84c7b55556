# Shared fixtures: a throwaway SQLite database per test and a stub maps client.
# NullPool keeps connections from being reused across event loops
# (asyncio.run in tests, the TestClient portal loop in API tests).

import asyncio

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from delivery_core.db import Base
import delivery_core.models  # registers tables
from delivery_core.services.maps_client import DistanceMatrix, MatrixElement


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def db(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.sqlite'}", poolclass=NullPool)
    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    async def _create():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    run(_create())
    yield factory
    run(engine.dispose())


def seed(factory, *objs):
    async def _seed():
        async with factory() as session:
            session.add_all(objs)
            await session.commit()
    run(_seed())


def matrix(*durations, status="OK"):
    """Distance matrix of OK elements with the given traffic-aware durations (seconds)."""
    return DistanceMatrix(elements=[
        MatrixElement(status=status, duration_s=d, duration_in_traffic_s=d) for d in durations
    ])


class FakeMaps:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = []

    def distance_matrix(self, origin, destinations):
        self.calls.append((origin, list(destinations)))
        if self.error is not None:
            raise self.error
        return self.result
