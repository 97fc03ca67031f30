"""Multi-account, multi-region scan orchestration.

Per account, enabled regions are scanned one after another. Each region first
runs the canary probe to validate credentials (a credential rejection aborts
the whole account), then fans out to every configured probe concurrently,
absorbing individual probe failures. Findings from all regions are persisted
in one bulk write only after every region has been scanned.

Across accounts the policy is inverted: ``scan_all_accounts`` records each
account's failure and moves on.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from postureguard.core.config import get_settings
from postureguard.core.errors import (
    AccountNotFoundError,
    CredentialError,
    PersistenceError,
    ProbeCredentialError,
    ProbeError,
)
from postureguard.domain.findings import AwsCredentials, FindingDraft, ScanOutcome
from postureguard.persistence.db import SessionLocal
from postureguard.persistence.repos import accounts as accounts_repo
from postureguard.persistence.repos import findings as findings_repo
from postureguard.persistence.repos import regions as regions_repo
from postureguard.providers.probes.base import Probe, is_credential_error
from postureguard.providers.probes.factory import get_canary_probe, get_scan_probes
from postureguard.services.resilience import with_deadline
from postureguard.services.telemetry import increment_counter


logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AsyncSession]

# In-process mutual exclusion per account; concurrent scans in separate
# processes are not coordinated. Entries are never evicted, one lock per
# registered account is kept for the life of the process.
_account_locks: dict[int, asyncio.Lock] = {}


def _account_lock(account_pk: int) -> asyncio.Lock:
    lock = _account_locks.get(account_pk)
    if lock is None:
        lock = asyncio.Lock()
        _account_locks[account_pk] = lock
    return lock


class ScanOrchestrator:
    def __init__(
        self,
        session_factory: SessionFactory | None = None,
        probes: Sequence[Probe] | None = None,
        canary: Probe | None = None,
        probe_timeout_s: float | None = None,
    ) -> None:
        self._session_factory = session_factory or SessionLocal
        # Allow injecting probes for tests without touching AWS.
        self._probes = list(probes) if probes is not None else get_scan_probes()
        self._canary = canary if canary is not None else get_canary_probe()
        self._probe_timeout_s = (
            probe_timeout_s if probe_timeout_s is not None else get_settings().scan_probe_timeout_s
        )

    @property
    def probe_names(self) -> list[str]:
        return [probe.name for probe in self._probes]

    async def scan_account(self, account_pk: int) -> list[FindingDraft]:
        async with _account_lock(account_pk):
            return await self._scan_account(account_pk)

    async def scan_all_accounts(self) -> list[ScanOutcome]:
        try:
            async with self._session_factory() as session:
                account_pks = [account.id for account in await accounts_repo.list_accounts(session)]
        except SQLAlchemyError as exc:
            raise PersistenceError("Database error while listing accounts") from exc

        logger.info("scan_all_started accounts=%s", len(account_pks))
        outcomes: list[ScanOutcome] = []
        for account_pk in account_pks:
            try:
                findings = await self.scan_account(account_pk)
            except Exception as exc:  # noqa: BLE001 - failures are isolated per account
                logger.error("scan_account_failed account_pk=%s error=%s", account_pk, exc)
                outcomes.append(
                    ScanOutcome(account_id=account_pk, error=str(exc) or exc.__class__.__name__)
                )
                continue
            outcomes.append(ScanOutcome(account_id=account_pk, findings=findings))
        logger.info(
            "scan_all_complete accounts=%s failed=%s",
            len(outcomes),
            sum(1 for outcome in outcomes if not outcome.ok),
        )
        return outcomes

    async def _scan_account(self, account_pk: int) -> list[FindingDraft]:
        start = time.monotonic()
        increment_counter("scan_accounts_total")
        try:
            async with self._session_factory() as session:
                account = await accounts_repo.get_account(session, account_pk)
                if account is None:
                    logger.error("scan_account_not_found account_pk=%s", account_pk)
                    raise AccountNotFoundError(f"Account {account_pk} not found")
                regions = [row.region for row in await regions_repo.get_enabled_regions(session, account_pk)]
                credentials = AwsCredentials.from_account(account)
                account_name = account.account_name
                external_id = account.account_id
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Database error while loading account {account_pk}") from exc

        logger.info(
            "scan_account_started account_pk=%s account_id=%s regions=%s",
            account_pk,
            external_id,
            ",".join(regions) or "-",
        )
        all_findings: list[FindingDraft] = []
        try:
            for region in regions:
                await self._check_credentials(credentials, region, account_name)
                region_findings = await self._scan_region(credentials, region)
                logger.info(
                    "scan_region_complete account_pk=%s region=%s findings=%s",
                    account_pk,
                    region,
                    len(region_findings),
                )
                all_findings.extend(region_findings)

            async with self._session_factory() as session:
                await findings_repo.store_findings(session, account_pk, all_findings)
        except Exception:
            increment_counter("scan_failures_total")
            raise

        logger.info(
            "scan_account_complete account_pk=%s findings=%s duration_ms=%.0f",
            account_pk,
            len(all_findings),
            (time.monotonic() - start) * 1000.0,
        )
        return all_findings

    async def _check_credentials(self, credentials: AwsCredentials, region: str, account_name: str) -> None:
        # The canary's findings are discarded; it only gates the fan-out.
        try:
            await with_deadline(
                self._canary.scan(credentials, region),
                timeout_s=self._probe_timeout_s,
                label=f"{self._canary.name}:{region}",
            )
        except ProbeCredentialError as exc:
            logger.error("scan_credentials_rejected account=%s region=%s", account_name, region)
            raise CredentialError(f"Invalid AWS credentials for account {account_name}") from exc
        except ProbeError as exc:
            logger.warning("canary_probe_failed region=%s error=%s", region, exc)
        except Exception as exc:  # noqa: BLE001 - only credential failures abort the scan
            if is_credential_error(exc):
                logger.error("scan_credentials_rejected account=%s region=%s", account_name, region)
                raise CredentialError(f"Invalid AWS credentials for account {account_name}") from exc
            logger.warning("canary_probe_failed region=%s error=%s", region, exc, exc_info=exc)

    async def _scan_region(self, credentials: AwsCredentials, region: str) -> list[FindingDraft]:
        results = await asyncio.gather(
            *(self._run_probe(probe, credentials, region) for probe in self._probes)
        )
        return [draft.with_region(region) for drafts in results for draft in drafts]

    async def _run_probe(self, probe: Probe, credentials: AwsCredentials, region: str) -> list[FindingDraft]:
        try:
            drafts = await with_deadline(
                probe.scan(credentials, region),
                timeout_s=self._probe_timeout_s,
                label=f"{probe.name}:{region}",
            )
        except Exception as exc:  # noqa: BLE001 - one probe never aborts its siblings
            increment_counter(f"probe_failures_total.{probe.name}")
            logger.warning("probe_failed probe=%s region=%s error=%s", probe.name, region, exc, exc_info=exc)
            return []
        return list(drafts or [])
