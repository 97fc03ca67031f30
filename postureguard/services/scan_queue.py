from __future__ import annotations

import asyncio
import logging
from uuid import uuid4

from arq import create_pool
from arq.connections import RedisSettings

from postureguard.core.config import get_settings


logger = logging.getLogger(__name__)

SCAN_ACCOUNT_JOB = "scan_account_job"
SCAN_ALL_JOB = "scan_all_job"

_redis_pool = None
_redis_pool_loop = None
_redis_lock = asyncio.Lock()


async def get_redis_pool():
    # Cache the arq pool per event loop to avoid reconnecting on every enqueue.
    global _redis_pool, _redis_pool_loop
    current_loop = asyncio.get_running_loop()
    if _redis_pool is not None and _redis_pool_loop == current_loop:
        return _redis_pool
    if _redis_pool is not None and _redis_pool_loop != current_loop:
        # Drop loop-bound pools to avoid cross-loop errors in tests.
        _redis_pool = None
    async with _redis_lock:
        if _redis_pool is None:
            settings = get_settings()
            _redis_pool = await create_pool(
                RedisSettings.from_dsn(settings.redis_url),
                default_queue_name=settings.scan_queue_name,
            )
            _redis_pool_loop = current_loop
    return _redis_pool


async def enqueue_account_scan(account_pk: int) -> str:
    job_id = f"scan-{account_pk}-{uuid4().hex[:12]}"
    redis = await get_redis_pool()
    job = await redis.enqueue_job(
        SCAN_ACCOUNT_JOB,
        account_pk,
        _job_id=job_id,
        _queue_name=get_settings().scan_queue_name,
    )
    logger.info("scan_enqueued account_pk=%s job_id=%s", account_pk, job_id)
    # arq returns None when the job id already exists; keep tracing with the same id.
    return job.job_id if job else job_id
