"""
Shared fixtures: an in-memory SQLite database per test, member factories and
an HTTP client wired to the same session.
"""
from __future__ import annotations

import os

# must be set before familytree.database builds its module-level engine
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from datetime import date
from typing import Optional

import httpx
import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from familytree import models  # noqa: F401  (register tables)
from familytree.database import Base, get_db
from familytree.models import Gender, Person, RelationshipEdge, RelationType


@pytest.fixture
async def engine():
    eng = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite's own transaction handling breaks SAVEPOINT; take it over
    @event.listens_for(eng.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(eng.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_maker(engine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def make_person(db):
    """Factory: `await make_person("Ann", 1950)` stores and returns a member."""

    async def _make(
        first_name: str,
        birth_year: Optional[int] = None,
        last_name: str = "Smith",
        birth_place: Optional[str] = None,
        gender: Gender = Gender.other,
    ) -> Person:
        p = Person(
            first_name=first_name,
            last_name=last_name,
            birth_date=date(birth_year, 1, 1) if birth_year else None,
            birth_place=birth_place,
            gender=gender,
        )
        db.add(p)
        await db.commit()
        return p

    return _make


@pytest.fixture
def add_edge(db):
    """Insert a single raw directed row, bypassing validation and reciprocals."""

    async def _add(from_id: int, to_id: int, kind: RelationType) -> RelationshipEdge:
        e = RelationshipEdge(from_member_id=from_id, to_member_id=to_id, relation_type=kind)
        db.add(e)
        await db.commit()
        return e

    return _add


@pytest.fixture
async def client(session_maker):
    from familytree.main import app

    async def _override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
