from __future__ import annotations

import os

# Keep the module-level engine off Postgres during tests; fixtures build their own.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

import pytest

from postureguard.core.config import get_settings
from postureguard.persistence.db import build_engine, build_sessionmaker, create_all
from postureguard.services import scanner, telemetry


@pytest.fixture(autouse=True)
def reset_process_state() -> None:
    # Settings, counters and account locks are process-global.
    get_settings.cache_clear()
    telemetry.reset()
    scanner._account_locks.clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
async def db_engine(tmp_path):
    # File-backed sqlite so concurrent sessions get their own connections.
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'postureguard.db'}")
    await create_all(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return build_sessionmaker(db_engine)
