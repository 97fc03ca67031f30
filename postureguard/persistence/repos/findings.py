from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from postureguard.core.errors import PersistenceError
from postureguard.domain.findings import FindingDraft, FindingFilter, FindingStats
from postureguard.domain.models import Finding


logger = logging.getLogger(__name__)


def _to_row(account_pk: int, draft: FindingDraft) -> Finding:
    if not draft.region:
        raise PersistenceError(f"finding {draft.finding!r} has no region")
    return Finding(
        account_id=account_pk,
        region=draft.region,
        resource_id=draft.resource_id,
        resource_type=draft.resource_type,
        resource_name=draft.resource_name,
        service=draft.service,
        severity=draft.severity.value,
        finding=draft.finding,
        description=draft.description,
        remediation=draft.remediation,
        details_json=dict(draft.details) if draft.details else None,
    )


async def store_findings(
    session: AsyncSession,
    account_pk: int,
    drafts: Iterable[FindingDraft],
) -> int:
    """Append findings for one account in a single transaction.

    Nothing is written unless every row is accepted. Findings are never
    deduplicated against earlier scans.
    """
    rows = [_to_row(account_pk, draft) for draft in drafts]
    try:
        session.add_all(rows)
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.error("findings_store_failed account_pk=%s count=%s", account_pk, len(rows), exc_info=exc)
        raise PersistenceError(f"Failed to store findings for account {account_pk}") from exc
    return len(rows)


async def get_findings(session: AsyncSession, filters: FindingFilter | None = None) -> list[Finding]:
    filters = filters or FindingFilter()
    stmt = select(Finding)
    if filters.account_id is not None:
        stmt = stmt.where(Finding.account_id == filters.account_id)
    if filters.region:
        stmt = stmt.where(Finding.region == filters.region)
    if filters.service:
        stmt = stmt.where(Finding.service == filters.service)
    if filters.severity:
        stmt = stmt.where(Finding.severity == filters.severity)
    # Rows from one bulk insert share a timestamp; id breaks the tie.
    stmt = stmt.order_by(Finding.created_at.desc(), Finding.id.desc())
    if filters.limit:
        stmt = stmt.limit(filters.limit)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_findings_by_resource(session: AsyncSession, resource_id: str) -> list[Finding]:
    result = await session.execute(
        select(Finding)
        .where(Finding.resource_id == resource_id)
        .order_by(Finding.created_at.desc(), Finding.id.desc())
    )
    return list(result.scalars().all())


async def get_finding_stats(session: AsyncSession, account_pk: int | None = None) -> FindingStats:
    severity_stmt = select(Finding.severity, func.count()).group_by(Finding.severity)
    service_stmt = select(Finding.service, func.count()).group_by(Finding.service)
    if account_pk is not None:
        severity_stmt = severity_stmt.where(Finding.account_id == account_pk)
        service_stmt = service_stmt.where(Finding.account_id == account_pk)

    by_severity = {str(severity): int(count) for severity, count in (await session.execute(severity_stmt)).all()}
    by_service = {str(service): int(count) for service, count in (await session.execute(service_stmt)).all()}
    return FindingStats(
        total_findings=sum(by_severity.values()),
        by_severity=by_severity,
        by_service=by_service,
    )
