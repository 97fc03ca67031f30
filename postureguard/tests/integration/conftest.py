from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from postureguard.apps.api.deps import get_db, get_orchestrator
from postureguard.apps.api.main import create_app
from postureguard.services.scanner import ScanOrchestrator
from postureguard.tests.utils.probes import FakeProbe


@pytest.fixture
def fake_probes() -> dict[str, FakeProbe]:
    return {
        "canary": FakeProbe("guardduty", service="GuardDuty"),
        "iam": FakeProbe("iam", service="IAM"),
        "kms": FakeProbe("kms", service="KMS"),
    }


@pytest.fixture
def api_app(session_factory, fake_probes):
    app = create_app()

    async def _db():
        async with session_factory() as session:
            yield session

    def _orchestrator() -> ScanOrchestrator:
        return ScanOrchestrator(
            session_factory=session_factory,
            probes=[fake_probes["iam"], fake_probes["kms"]],
            canary=fake_probes["canary"],
        )

    # Route handlers share the test database and never reach AWS.
    app.dependency_overrides[get_db] = _db
    app.dependency_overrides[get_orchestrator] = _orchestrator
    return app


@pytest.fixture
async def client(api_app):
    transport = ASGITransport(app=api_app)
    async with AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client
