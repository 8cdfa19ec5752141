"""
Shared pytest configuration for backend tests.

Each test gets a fresh database. By default that is a throwaway SQLite file
(via aiosqlite) under the test's tmp_path; set TEST_DATABASE_URL to run the
suite against PostgreSQL instead.

SAFETY: a TEST_DATABASE_URL whose database name does not contain "test" is
refused, so a misconfigured environment can never drop real tables.
"""

import os

os.environ.setdefault("ENV", "test")

import pytest_asyncio  # noqa: E402
from sqlalchemy import event  # noqa: E402
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

from bingo_backend.database.db import Base  # noqa: E402
from bingo_backend.database.models import (  # noqa: E402
    Team,
    TeamMembership,
    TeamProvidedResolution,
    PersonalResolution,
    TeamRole,
    TeamStatus,
    User,
)


def _resolve_test_database_url(tmp_path) -> str:
    """Build the test database URL with safety checks."""
    url = os.getenv("TEST_DATABASE_URL", "")
    if not url:
        return f"sqlite+aiosqlite:///{tmp_path / 'bingo_test.db'}"

    db_name = url.rsplit("/", 1)[-1].split("?")[0]
    if "test" not in db_name.lower():
        raise RuntimeError(
            f"SAFETY: Refusing to run tests against database '{db_name}'. "
            f"The database name must contain 'test'."
        )
    return url


def _enable_sqlite_savepoints(engine):
    """
    Let SQLAlchemy emit BEGIN itself so SAVEPOINT/ROLLBACK TO work on SQLite.

    The sqlite3 driver otherwise manages transactions on its own and breaks
    nested transactions.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")


@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """Create a test database engine with all tables."""
    url = _resolve_test_database_url(tmp_path)
    engine = create_async_engine(url, echo=False, poolclass=NullPool)
    if url.startswith("sqlite"):
        _enable_sqlite_savepoints(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    # Code that opens its own sessions through db.AsyncSessionLocal should
    # hit the test database too
    from bingo_backend.database import db

    original_async_session_local = db.AsyncSessionLocal
    db.AsyncSessionLocal = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )

    yield engine

    db.AsyncSessionLocal = original_async_session_local

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine):
    """Create a test database session; rolled back and closed after the test."""
    async_session_maker = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.rollback()
            await session.close()


# ──────────────────────────────────────────────────────────────
# Factories
# ──────────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def make_user(db_session):
    """Factory: create a user and return its id."""
    counter = {"n": 0}

    async def _make_user(username=None):
        counter["n"] += 1
        name = username or f"user{counter['n']}"
        user = User(username=name, email=f"{name}@example.com")
        db_session.add(user)
        await db_session.flush()
        return user.id

    return _make_user


@pytest_asyncio.fixture
async def make_team(db_session):
    """Factory: create a forming team led by the first user, with the others as members."""

    async def _make_team(leader_id, member_ids=(), resolution_text="Run a marathon together"):
        team = Team(
            name="Resolutioners",
            leader_user_id=leader_id,
            team_resolution_text=resolution_text,
            status=TeamStatus.FORMING.value,
        )
        db_session.add(team)
        await db_session.flush()

        db_session.add(TeamMembership(team_id=team.id, user_id=leader_id, role=TeamRole.LEADER.value))
        for member_id in member_ids:
            db_session.add(
                TeamMembership(team_id=team.id, user_id=member_id, role=TeamRole.MEMBER.value)
            )
        await db_session.flush()
        return team.id

    return _make_team


@pytest_asyncio.fixture
async def provide(db_session):
    """Factory: record that from_user wrote a resolution for to_user."""

    async def _provide(team_id, from_user_id, to_user_id, text=None):
        resolution = TeamProvidedResolution(
            team_id=team_id,
            from_user_id=from_user_id,
            to_user_id=to_user_id,
            text=text or f"Resolution from {from_user_id} for {to_user_id}",
        )
        db_session.add(resolution)
        await db_session.flush()
        return resolution.id

    return _provide


@pytest_asyncio.fixture
async def add_personal(db_session):
    """Factory: add personal resolutions for a user, return their ids."""

    async def _add_personal(user_id, count):
        ids = []
        for i in range(count):
            resolution = PersonalResolution(user_id=user_id, text=f"Personal goal {i + 1}")
            db_session.add(resolution)
            await db_session.flush()
            ids.append(resolution.id)
        return ids

    return _add_personal


@pytest_asyncio.fixture
async def ready_team(make_user, make_team, provide):
    """
    A three-member team where everyone wrote a resolution for everyone else.

    Returns dict with team_id and user ids (alice is the leader).
    """
    alice = await make_user("alice")
    bob = await make_user("bob")
    carol = await make_user("carol")
    team_id = await make_team(alice, [bob, carol])

    members = [alice, bob, carol]
    for author in members:
        for recipient in members:
            if author != recipient:
                await provide(team_id, author, recipient)

    return {"team_id": team_id, "alice": alice, "bob": bob, "carol": carol}
