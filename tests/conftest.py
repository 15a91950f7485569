"""
Pytest fixtures for the office core test suite.

Provides:
- Structured-log capture
- A fresh database per test (SQLite file under tmp_path by default)
- A seeded tenancy hierarchy with one identity per role
- Wired services and the OfficeCore facade

Environment Variables:
- DATABASE_URL: run against another database (e.g. PostgreSQL) instead of
  the per-test SQLite file.  Tables are dropped and recreated per test.

Sessions here perform real commits.  The sequence allocator advances
counters in its own short transactions, so tests commit their own session
before allocating numbers when they have written in it.
"""

import json
import logging
import os
from dataclasses import dataclass
from io import StringIO
from typing import Generator
from uuid import UUID

import pytest
from sqlalchemy.orm import Session, sessionmaker

from office_config import get_active_config
from office_config.schema import OfficeConfig
from office_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from office_kernel.domain.clock import DeterministicClock
from office_kernel.domain.identity import Identity
from office_kernel.domain.roles import Role
from office_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from office_kernel.models.tenancy import Entity, TenantAccount, User
from office_services.core import OfficeCore
from office_services.settings_store import SettingsCache


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture office_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, core):
            core.allocate_sequence(entity_id, "job")
            logs = captured_logs()
            assert any(r["message"] == "sequence_allocated" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("office_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow_locks: mark test as potentially waiting for DB locks"
    )


# =============================================================================
# Database
# =============================================================================


def get_database_url(tmp_path) -> str:
    """DATABASE_URL from the environment, or a SQLite file for this test."""
    return os.environ.get("DATABASE_URL") or f"sqlite:///{tmp_path / 'office_test.db'}"


@pytest.fixture
def db_engine(tmp_path):
    """Engine with freshly created tables, disposed at teardown.

    Pool is large enough for the 50-thread allocation race.
    """
    engine = init_engine_from_url(
        get_database_url(tmp_path),
        pool_size=60,
        max_overflow=20,
        pool_timeout=30,
    )
    drop_tables()
    create_tables()
    yield engine
    drop_tables()
    reset_engine()


@pytest.fixture
def session_factory(db_engine) -> sessionmaker[Session]:
    return get_session_factory()


@pytest.fixture
def session(db_engine) -> Generator[Session, None, None]:
    """Session with real commits; rolled back and closed at teardown."""
    sess = get_session()
    try:
        yield sess
    finally:
        sess.rollback()
        sess.close()


# =============================================================================
# Configuration and time
# =============================================================================


@pytest.fixture
def config() -> OfficeConfig:
    return get_active_config()


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock()


@pytest.fixture
def settings_cache(clock, config) -> SettingsCache:
    return SettingsCache(config.settings_cache_ttl_seconds, clock=clock)


@pytest.fixture
def core(session, session_factory, config, settings_cache, clock) -> OfficeCore:
    return OfficeCore(
        session,
        session_factory=session_factory,
        config=config,
        settings_cache=settings_cache,
        clock=clock,
    )


# =============================================================================
# Tenancy seed
# =============================================================================


@dataclass(frozen=True)
class SeededTenancy:
    """
    Two Accounts:

        acme    -> acme_north, acme_south
        globex  -> globex_main

    Identities are homed in acme_north unless their name says otherwise.
    """

    acme: UUID
    globex: UUID
    acme_north: UUID
    acme_south: UUID
    globex_main: UUID
    platform_admin: Identity
    account_admin: Identity
    entity_admin: Identity
    entity_user: Identity
    globex_admin: Identity


def _add_user(session: Session, email: str, role: Role, home: UUID | None) -> Identity:
    user = User(email=email, name=email.split("@")[0], role=role.value, home_entity_id=home)
    session.add(user)
    session.flush()
    return Identity(identity_id=user.id, role=role, home_entity_id=home, email=email)


def seed_tenancy(session: Session) -> SeededTenancy:
    acme = TenantAccount(name="Acme Group", slug="acme")
    globex = TenantAccount(name="Globex", slug="globex")
    session.add_all([acme, globex])
    session.flush()

    north = Entity(account_id=acme.id, name="Acme North", slug="north", settings={})
    south = Entity(account_id=acme.id, name="Acme South", slug="south", settings={})
    globex_main = Entity(account_id=globex.id, name="Globex Main", slug="main", settings={})
    session.add_all([north, south, globex_main])
    session.flush()

    seeded = SeededTenancy(
        acme=acme.id,
        globex=globex.id,
        acme_north=north.id,
        acme_south=south.id,
        globex_main=globex_main.id,
        platform_admin=_add_user(session, "ops@platform.test", Role.PLATFORM_ADMIN, None),
        account_admin=_add_user(session, "owner@acme.test", Role.ACCOUNT_ADMIN, north.id),
        entity_admin=_add_user(session, "manager@acme.test", Role.ENTITY_ADMIN, north.id),
        entity_user=_add_user(session, "clerk@acme.test", Role.ENTITY_USER, north.id),
        globex_admin=_add_user(session, "manager@globex.test", Role.ENTITY_ADMIN, globex_main.id),
    )
    session.commit()
    return seeded


@pytest.fixture
def tenancy(session) -> SeededTenancy:
    return seed_tenancy(session)
