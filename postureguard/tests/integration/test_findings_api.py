from __future__ import annotations

import pytest

from postureguard.core.errors import ProbeCredentialError
from postureguard.domain.findings import Severity
from postureguard.services import scan_queue
from postureguard.tests.utils.seed import make_draft, seed_account, seed_findings


@pytest.mark.asyncio
async def test_list_findings_with_filters(client, session_factory) -> None:
    account_pk = await seed_account(session_factory, regions=("us-east-1", "eu-west-1"))
    await seed_findings(
        session_factory,
        account_pk,
        [
            make_draft(finding="Root Account MFA Not Enabled", severity=Severity.HIGH, service="IAM"),
            make_draft(finding="No KMS Keys", severity=Severity.LOW, service="KMS", region="eu-west-1"),
        ],
    )

    response = await client.get("/api/findings", params={"accountId": account_pk, "service": "KMS"})
    assert response.status_code == 200
    payload = response.json()
    assert [item["finding"] for item in payload] == ["No KMS Keys"]
    item = payload[0]
    assert item["accountId"] == account_pk
    assert item["region"] == "eu-west-1"
    assert item["resourceType"] == "TEST_RESOURCE"
    assert item["severity"] == "LOW"

    response = await client.get("/api/findings", params={"severity": "HIGH", "region": "us-east-1"})
    assert [item["finding"] for item in response.json()] == ["Root Account MFA Not Enabled"]

    response = await client.get("/api/findings", params={"limit": 1})
    assert len(response.json()) == 1


@pytest.mark.asyncio
async def test_finding_stats_shape(client, session_factory) -> None:
    account_pk = await seed_account(session_factory)
    await seed_findings(
        session_factory,
        account_pk,
        [
            make_draft(severity=Severity.HIGH, service="IAM"),
            make_draft(severity=Severity.HIGH, service="IAM"),
            make_draft(severity=Severity.MEDIUM, service="KMS"),
            make_draft(severity=Severity.LOW, service="KMS"),
        ],
    )

    response = await client.get("/api/findings/stats", params={"accountId": account_pk})

    assert response.status_code == 200
    body = response.json()
    assert body["totalFindings"] == 4
    assert {item["severity"]: item["count"] for item in body["bySeverity"]} == {"HIGH": 2, "MEDIUM": 1, "LOW": 1}
    assert {item["service"]: item["count"] for item in body["byService"]} == {"IAM": 2, "KMS": 2}


@pytest.mark.asyncio
async def test_findings_for_asset_accepts_arns(client, session_factory) -> None:
    account_pk = await seed_account(session_factory)
    arn = "arn:aws:cloudtrail:us-east-1:123456789012:trail/main"
    await seed_findings(session_factory, account_pk, [make_draft(resource_id=arn), make_draft()])

    response = await client.get(f"/api/findings/asset/{arn}")

    assert response.status_code == 200
    assert [item["resourceId"] for item in response.json()] == [arn]


@pytest.mark.asyncio
async def test_scan_account_route_persists_findings(client, session_factory, fake_probes) -> None:
    account_pk = await seed_account(session_factory, regions=("us-east-1",))

    response = await client.post(f"/api/findings/scan/{account_pk}")

    assert response.status_code == 200
    findings = response.json()
    assert {item["service"] for item in findings} == {"IAM", "KMS"}
    assert all(item["region"] == "us-east-1" for item in findings)
    assert fake_probes["canary"].calls == ["us-east-1"]
    stored = (await client.get("/api/findings", params={"accountId": account_pk})).json()
    assert len(stored) == 2


@pytest.mark.asyncio
async def test_scan_account_route_unknown_account_returns_404(client) -> None:
    response = await client.post("/api/findings/scan/4040")

    assert response.status_code == 404
    assert response.json() == {"error": "Account not found"}


@pytest.mark.asyncio
async def test_scan_account_route_credential_failure_returns_500(client, session_factory, fake_probes) -> None:
    account_pk = await seed_account(session_factory, account_name="staging")
    fake_probes["canary"].behavior["us-east-1"] = ProbeCredentialError("403")

    response = await client.post(f"/api/findings/scan/{account_pk}")

    assert response.status_code == 500
    assert response.json() == {"error": "Invalid AWS credentials for account staging"}


def _assert_outcomes(items: list[dict], *, good: int, bad: int) -> None:
    outcomes = {item["accountId"]: item for item in items}
    assert len(outcomes[good]["findings"]) == 2
    assert "error" not in outcomes[good]
    # Null finding fields stay in the payload, matching the single-account routes.
    first = outcomes[good]["findings"][0]
    assert first["resourceName"] is None
    assert "details" in first and first["details"] is None
    assert outcomes[bad] == {"accountId": bad, "error": "Invalid AWS credentials for account bad"}


@pytest.mark.asyncio
async def test_scan_all_route_reports_per_account_outcomes(client, session_factory, fake_probes) -> None:
    good = await seed_account(session_factory, account_id="111111111111", account_name="good")
    bad = await seed_account(
        session_factory,
        account_id="222222222222",
        account_name="bad",
        regions=("eu-west-1",),
    )
    fake_probes["canary"].behavior["eu-west-1"] = ProbeCredentialError("403")

    response = await client.post("/api/findings/scan")
    assert response.status_code == 200
    _assert_outcomes(response.json(), good=good, bad=bad)


@pytest.mark.asyncio
async def test_scanner_scan_all_route_wraps_outcomes(client, session_factory, fake_probes) -> None:
    good = await seed_account(session_factory, account_id="111111111111", account_name="good")
    bad = await seed_account(
        session_factory,
        account_id="222222222222",
        account_name="bad",
        regions=("eu-west-1",),
    )
    fake_probes["canary"].behavior["eu-west-1"] = ProbeCredentialError("403")

    response = await client.post("/api/scanner/scan-all")

    assert response.status_code == 200
    body = response.json()
    assert isinstance(body, dict)
    assert body["success"] is True
    _assert_outcomes(body["findings"], good=good, bad=bad)


@pytest.mark.asyncio
async def test_scanner_scan_route_wraps_findings(client, session_factory) -> None:
    account_pk = await seed_account(session_factory)

    response = await client.post(f"/api/scanner/scan/{account_pk}")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert len(body["findings"]) == 2


@pytest.mark.asyncio
async def test_scanner_scan_route_unknown_account_returns_500(client) -> None:
    response = await client.post("/api/scanner/scan/4040")

    assert response.status_code == 500
    assert response.json() == {"error": "Account 4040 not found"}


@pytest.mark.asyncio
async def test_enqueue_scan_returns_job_id(client, session_factory, monkeypatch) -> None:
    account_pk = await seed_account(session_factory)
    enqueued: list[int] = []

    async def fake_enqueue(account_id: int) -> str:
        enqueued.append(account_id)
        return f"scan-{account_id}-abc"

    monkeypatch.setattr(scan_queue, "enqueue_account_scan", fake_enqueue)

    response = await client.post(f"/api/scanner/enqueue/{account_pk}")
    assert response.status_code == 202
    assert response.json() == {"jobId": f"scan-{account_pk}-abc"}
    assert enqueued == [account_pk]

    response = await client.post("/api/scanner/enqueue/4040")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_ops_metrics_reports_scan_counters(client, session_factory) -> None:
    account_pk = await seed_account(session_factory)
    await client.post(f"/api/scanner/scan/{account_pk}")

    response = await client.get("/api/ops/metrics")

    assert response.status_code == 200
    body = response.json()
    assert body["counters"]["scan_accounts_total"] == 1
    assert "guardduty" in body["probes"]
