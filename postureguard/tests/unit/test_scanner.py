from __future__ import annotations

import asyncio

import pytest
from sqlalchemy.exc import SQLAlchemyError

from postureguard.core.errors import (
    AccountNotFoundError,
    CredentialError,
    PersistenceError,
    ProbeCredentialError,
    ProbeError,
)
from postureguard.domain.findings import FindingFilter
from postureguard.persistence.repos import findings as findings_repo
from postureguard.services.scanner import ScanOrchestrator
from postureguard.services.telemetry import get_counter
from postureguard.tests.utils.probes import FakeProbe, client_error
from postureguard.tests.utils.seed import seed_account


def _standard_probes() -> list[FakeProbe]:
    return [
        FakeProbe("iam", service="IAM"),
        FakeProbe("cloudtrail", service="CloudTrail"),
        FakeProbe("kms", service="KMS"),
    ]


async def _stored(session_factory, account_pk: int):
    async with session_factory() as session:
        return await findings_repo.get_findings(session, FindingFilter(account_id=account_pk))


@pytest.mark.asyncio
async def test_scan_account_without_enabled_regions_returns_empty(session_factory) -> None:
    account_pk = await seed_account(session_factory, regions=(), disabled_regions=("eu-west-1",))
    canary = FakeProbe("guardduty")
    probes = _standard_probes()
    orchestrator = ScanOrchestrator(session_factory=session_factory, probes=probes, canary=canary)

    findings = await orchestrator.scan_account(account_pk)

    assert findings == []
    assert canary.calls == []
    assert all(probe.calls == [] for probe in probes)
    assert await _stored(session_factory, account_pk) == []


@pytest.mark.asyncio
async def test_scan_account_missing_account_raises_not_found(session_factory) -> None:
    orchestrator = ScanOrchestrator(
        session_factory=session_factory,
        probes=_standard_probes(),
        canary=FakeProbe("guardduty"),
    )
    with pytest.raises(AccountNotFoundError):
        await orchestrator.scan_account(404)


@pytest.mark.asyncio
async def test_scan_account_stamps_region_and_persists(session_factory) -> None:
    account_pk = await seed_account(session_factory, regions=("us-east-1", "eu-west-1"))
    probes = _standard_probes()
    orchestrator = ScanOrchestrator(
        session_factory=session_factory,
        probes=probes,
        canary=FakeProbe("guardduty"),
    )

    findings = await orchestrator.scan_account(account_pk)

    assert len(findings) == 6
    # Region order is preserved; probe order within a region is not asserted.
    assert [draft.region for draft in findings[:3]] == ["us-east-1"] * 3
    assert [draft.region for draft in findings[3:]] == ["eu-west-1"] * 3
    assert {draft.service for draft in findings[:3]} == {"IAM", "CloudTrail", "KMS"}
    stored = await _stored(session_factory, account_pk)
    assert len(stored) == 6
    assert {row.region for row in stored} == {"us-east-1", "eu-west-1"}


@pytest.mark.asyncio
async def test_canary_runs_before_fan_out_and_is_discarded(session_factory) -> None:
    account_pk = await seed_account(session_factory, regions=("us-east-1",))
    canary = FakeProbe("guardduty", service="GuardDuty")
    fan_out_guardduty = FakeProbe("guardduty", service="GuardDuty")
    orchestrator = ScanOrchestrator(
        session_factory=session_factory,
        probes=[FakeProbe("iam", service="IAM"), fan_out_guardduty],
        canary=canary,
    )

    findings = await orchestrator.scan_account(account_pk)

    assert canary.calls == ["us-east-1"]
    assert fan_out_guardduty.calls == ["us-east-1"]
    # Only the fan-out copy of the GuardDuty result is kept.
    assert sum(1 for draft in findings if draft.service == "GuardDuty") == 1


@pytest.mark.asyncio
async def test_credential_failure_in_later_region_aborts_without_persisting(session_factory) -> None:
    account_pk = await seed_account(session_factory, regions=("us-east-1", "eu-west-1", "ap-south-1"))
    canary = FakeProbe(
        "guardduty",
        behavior={"eu-west-1": ProbeCredentialError("403 Forbidden")},
    )
    probes = _standard_probes()
    orchestrator = ScanOrchestrator(session_factory=session_factory, probes=probes, canary=canary)

    with pytest.raises(CredentialError) as excinfo:
        await orchestrator.scan_account(account_pk)

    assert "Invalid AWS credentials for account production" in str(excinfo.value)
    # No other region was attempted after the rejection.
    assert canary.calls == ["us-east-1", "eu-west-1"]
    assert all(probe.calls == ["us-east-1"] for probe in probes)
    assert await _stored(session_factory, account_pk) == []
    assert get_counter("scan_failures_total") == 1


@pytest.mark.asyncio
async def test_raw_credential_client_error_from_canary_is_classified(session_factory) -> None:
    account_pk = await seed_account(session_factory)
    canary = FakeProbe(
        "guardduty",
        behavior={"us-east-1": client_error("UnrecognizedClientException")},
    )
    orchestrator = ScanOrchestrator(session_factory=session_factory, probes=_standard_probes(), canary=canary)

    with pytest.raises(CredentialError):
        await orchestrator.scan_account(account_pk)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [
        ProbeError("GuardDuty scan failed: throttled"),
        RuntimeError("connection reset"),
        client_error("InternalFailure", status=500),
    ],
)
async def test_non_credential_canary_failure_is_swallowed(session_factory, error) -> None:
    account_pk = await seed_account(session_factory)
    canary = FakeProbe("guardduty", behavior={"us-east-1": error})
    orchestrator = ScanOrchestrator(session_factory=session_factory, probes=_standard_probes(), canary=canary)

    findings = await orchestrator.scan_account(account_pk)

    assert len(findings) == 3


@pytest.mark.asyncio
async def test_failing_probe_does_not_abort_siblings_or_later_regions(session_factory) -> None:
    account_pk = await seed_account(session_factory, regions=("us-east-1", "eu-west-1"))
    iam = FakeProbe("iam", service="IAM", behavior={"us-east-1": RuntimeError("boom")})
    cloudtrail = FakeProbe("cloudtrail", service="CloudTrail")
    kms = FakeProbe("kms", service="KMS")
    orchestrator = ScanOrchestrator(
        session_factory=session_factory,
        probes=[iam, cloudtrail, kms],
        canary=FakeProbe("guardduty"),
    )

    findings = await orchestrator.scan_account(account_pk)

    first_region = {draft.service for draft in findings if draft.region == "us-east-1"}
    second_region = {draft.service for draft in findings if draft.region == "eu-west-1"}
    assert first_region == {"CloudTrail", "KMS"}
    assert second_region == {"IAM", "CloudTrail", "KMS"}
    assert get_counter("probe_failures_total.iam") == 1


@pytest.mark.asyncio
async def test_probe_deadline_is_treated_as_probe_failure(session_factory) -> None:
    account_pk = await seed_account(session_factory)
    slow = FakeProbe("cloudwatch", service="CloudWatch", delay_s=1.0)
    orchestrator = ScanOrchestrator(
        session_factory=session_factory,
        probes=[slow, FakeProbe("iam", service="IAM")],
        canary=FakeProbe("guardduty"),
        probe_timeout_s=0.05,
    )

    findings = await orchestrator.scan_account(account_pk)

    assert {draft.service for draft in findings} == {"IAM"}
    assert get_counter("probe_timeouts_total") == 1


@pytest.mark.asyncio
async def test_explicit_zero_probe_timeout_is_honored(session_factory) -> None:
    account_pk = await seed_account(session_factory)
    slow = FakeProbe("iam", service="IAM", delay_s=0.05)
    orchestrator = ScanOrchestrator(
        session_factory=session_factory,
        probes=[slow],
        canary=FakeProbe("guardduty"),
        probe_timeout_s=0,
    )

    findings = await orchestrator.scan_account(account_pk)

    # A zero deadline expires immediately instead of falling back to the 60s default.
    assert findings == []
    assert get_counter("probe_timeouts_total") >= 1


@pytest.mark.asyncio
async def test_canary_timeout_does_not_abort_scan(session_factory) -> None:
    account_pk = await seed_account(session_factory)
    orchestrator = ScanOrchestrator(
        session_factory=session_factory,
        probes=[FakeProbe("iam", service="IAM")],
        canary=FakeProbe("guardduty", delay_s=1.0),
        probe_timeout_s=0.05,
    )

    findings = await orchestrator.scan_account(account_pk)

    assert [draft.service for draft in findings] == ["IAM"]


@pytest.mark.asyncio
async def test_persistence_failure_fails_scan(session_factory, monkeypatch) -> None:
    account_pk = await seed_account(session_factory)

    async def failing_store(session, account_pk, drafts):
        raise PersistenceError(f"Failed to store findings for account {account_pk}")

    monkeypatch.setattr(findings_repo, "store_findings", failing_store)
    orchestrator = ScanOrchestrator(
        session_factory=session_factory,
        probes=_standard_probes(),
        canary=FakeProbe("guardduty"),
    )

    with pytest.raises(PersistenceError):
        await orchestrator.scan_account(account_pk)


@pytest.mark.asyncio
async def test_scan_all_accounts_isolates_failures(session_factory) -> None:
    first = await seed_account(session_factory, account_id="111111111111", account_name="alpha")
    second = await seed_account(
        session_factory,
        account_id="222222222222",
        account_name="bravo",
        regions=("eu-central-1",),
    )
    third = await seed_account(session_factory, account_id="333333333333", account_name="charlie")
    canary = FakeProbe("guardduty", behavior={"eu-central-1": ProbeCredentialError("denied")})
    probes = _standard_probes()
    orchestrator = ScanOrchestrator(session_factory=session_factory, probes=probes, canary=canary)

    outcomes = await orchestrator.scan_all_accounts()

    assert [outcome.account_id for outcome in outcomes] == [first, second, third]
    assert outcomes[0].ok and len(outcomes[0].findings) == 3
    assert not outcomes[1].ok
    assert outcomes[1].findings is None
    assert "bravo" in outcomes[1].error
    assert outcomes[2].ok and len(outcomes[2].findings) == 3
    assert len(await _stored(session_factory, third)) == 3


@pytest.mark.asyncio
async def test_scan_all_accounts_raises_when_accounts_cannot_be_listed(monkeypatch) -> None:
    class BrokenSession:
        async def __aenter__(self):
            raise SQLAlchemyError("database unavailable")

        async def __aexit__(self, *exc_info):
            return False

    orchestrator = ScanOrchestrator(
        session_factory=BrokenSession,
        probes=_standard_probes(),
        canary=FakeProbe("guardduty"),
    )
    with pytest.raises(PersistenceError):
        await orchestrator.scan_all_accounts()


@pytest.mark.asyncio
async def test_concurrent_scans_of_same_account_are_serialized(session_factory) -> None:
    account_pk = await seed_account(session_factory)
    active = {"now": 0, "max": 0}

    class TrackingProbe(FakeProbe):
        async def scan(self, credentials, region):
            active["now"] += 1
            active["max"] = max(active["max"], active["now"])
            try:
                await asyncio.sleep(0.02)
                return await super().scan(credentials, region)
            finally:
                active["now"] -= 1

    orchestrator = ScanOrchestrator(
        session_factory=session_factory,
        probes=[TrackingProbe("iam", service="IAM")],
        canary=FakeProbe("guardduty"),
    )

    results = await asyncio.gather(
        orchestrator.scan_account(account_pk),
        orchestrator.scan_account(account_pk),
    )

    assert [len(findings) for findings in results] == [1, 1]
    assert active["max"] == 1
    assert len(await _stored(session_factory, account_pk)) == 2
