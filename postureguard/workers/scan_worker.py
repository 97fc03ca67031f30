from __future__ import annotations

import logging

from arq import cron
from arq.connections import RedisSettings
from arq.worker import func

from postureguard.core.config import get_settings
from postureguard.core.logging import configure_logging
from postureguard.services.scan_queue import SCAN_ACCOUNT_JOB, SCAN_ALL_JOB
from postureguard.services.scanner import ScanOrchestrator


logger = logging.getLogger(__name__)


async def scan_account_job(ctx, account_id: int) -> int:
    # Errors propagate so arq records the job as failed.
    findings = await ScanOrchestrator().scan_account(int(account_id))
    logger.info(
        "scan_job_complete job_id=%s account_pk=%s findings=%s",
        ctx.get("job_id"),
        account_id,
        len(findings),
    )
    return len(findings)


async def scan_all_job(ctx) -> dict[str, int]:
    outcomes = await ScanOrchestrator().scan_all_accounts()
    failed = sum(1 for outcome in outcomes if not outcome.ok)
    logger.info("scan_all_job_complete accounts=%s failed=%s", len(outcomes), failed)
    return {"accounts": len(outcomes), "failed": failed}


async def _startup(ctx) -> None:
    configure_logging()
    logger.info("scan_worker_started queue=%s", get_settings().scan_queue_name)


def _cron_jobs() -> list:
    settings = get_settings()
    if not settings.scan_schedule_enabled:
        return []
    return [
        cron(
            scan_all_job,
            name=f"{SCAN_ALL_JOB}_cron",
            minute=settings.scan_schedule_minute,
            run_at_startup=False,
            unique=True,
        )
    ]


class WorkerSettings:
    # Keep worker configuration as class attributes for arq CLI compatibility.
    settings = get_settings()
    redis_settings = RedisSettings.from_dsn(settings.redis_url)
    queue_name = settings.scan_queue_name
    # Scans are not idempotent with respect to stored findings; run each once.
    max_tries = 1
    # A full account scan can outlive arq's default 300s job timeout.
    job_timeout = 3600
    functions = [
        func(scan_account_job, name=SCAN_ACCOUNT_JOB),
        func(scan_all_job, name=SCAN_ALL_JOB),
    ]
    cron_jobs = _cron_jobs()
    on_startup = _startup
