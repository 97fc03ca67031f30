from __future__ import annotations

from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from postureguard.persistence.db import get_session
from postureguard.services.scanner import ScanOrchestrator


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    # One AsyncSession per request; context manager ensures close on success/error.
    async with get_session() as session:
        yield session


def get_orchestrator() -> ScanOrchestrator:
    # Probes are resolved from settings per request so tests can override them.
    return ScanOrchestrator()
