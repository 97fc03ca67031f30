from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import model_serializer
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from postureguard.apps.api.deps import get_db, get_orchestrator
from postureguard.apps.api.response import CamelModel
from postureguard.core.errors import AccountNotFoundError
from postureguard.domain.findings import FindingDraft, FindingFilter, ScanOutcome
from postureguard.persistence.repos import findings as findings_repo
from postureguard.services.scanner import ScanOrchestrator


router = APIRouter(prefix="/findings", tags=["findings"])


class FindingResponse(CamelModel):
    id: int
    account_id: int
    region: str
    resource_id: str
    resource_type: str
    resource_name: str | None
    service: str
    severity: str
    finding: str
    description: str
    remediation: str
    details: dict[str, Any] | None = None
    created_at: datetime
    updated_at: datetime


class ScannedFindingResponse(CamelModel):
    region: str | None
    resource_id: str
    resource_type: str
    resource_name: str | None
    service: str
    severity: str
    finding: str
    description: str
    remediation: str
    details: dict[str, Any] | None = None


class SeverityCount(CamelModel):
    severity: str
    count: int


class ServiceCount(CamelModel):
    service: str
    count: int


class FindingStatsResponse(CamelModel):
    total_findings: int
    by_severity: list[SeverityCount]
    by_service: list[ServiceCount]


class ScanOutcomeResponse(CamelModel):
    account_id: int
    findings: list[ScannedFindingResponse] | None = None
    error: str | None = None

    @model_serializer(mode="wrap")
    def _omit_empty_branch(self, handler):
        # Each outcome carries either findings or error; nested findings keep null fields.
        data = handler(self)
        for key in ("findings", "error"):
            if data.get(key) is None:
                data.pop(key, None)
        return data


def _to_response(finding) -> FindingResponse:
    return FindingResponse(
        id=finding.id,
        account_id=finding.account_id,
        region=finding.region,
        resource_id=finding.resource_id,
        resource_type=finding.resource_type,
        resource_name=finding.resource_name,
        service=finding.service,
        severity=finding.severity,
        finding=finding.finding,
        description=finding.description,
        remediation=finding.remediation,
        details=finding.details_json,
        created_at=finding.created_at,
        updated_at=finding.updated_at,
    )


def to_scanned_response(draft: FindingDraft) -> ScannedFindingResponse:
    return ScannedFindingResponse(
        region=draft.region,
        resource_id=draft.resource_id,
        resource_type=draft.resource_type,
        resource_name=draft.resource_name,
        service=draft.service,
        severity=draft.severity.value,
        finding=draft.finding,
        description=draft.description,
        remediation=draft.remediation,
        details=draft.details,
    )


def to_outcome_response(outcome: ScanOutcome) -> ScanOutcomeResponse:
    if outcome.ok:
        return ScanOutcomeResponse(
            account_id=outcome.account_id,
            findings=[to_scanned_response(draft) for draft in outcome.findings or []],
        )
    return ScanOutcomeResponse(account_id=outcome.account_id, error=outcome.error)


@router.get("", response_model=list[FindingResponse])
async def list_findings(
    account_id: int | None = Query(default=None, alias="accountId"),
    region: str | None = None,
    service: str | None = None,
    severity: str | None = None,
    limit: int | None = Query(default=None, ge=1),
    db: AsyncSession = Depends(get_db),
) -> list[FindingResponse]:
    filters = FindingFilter(
        account_id=account_id,
        region=region,
        service=service,
        severity=severity,
        limit=limit,
    )
    try:
        findings = await findings_repo.get_findings(db, filters)
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=500, detail="Database error while listing findings") from exc
    return [_to_response(finding) for finding in findings]


@router.get("/stats", response_model=FindingStatsResponse)
async def finding_stats(
    account_id: int | None = Query(default=None, alias="accountId"),
    db: AsyncSession = Depends(get_db),
) -> FindingStatsResponse:
    try:
        stats = await findings_repo.get_finding_stats(db, account_id)
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=500, detail="Database error while computing stats") from exc
    return FindingStatsResponse(
        total_findings=stats.total_findings,
        by_severity=[SeverityCount(severity=key, count=value) for key, value in stats.by_severity.items()],
        by_service=[ServiceCount(service=key, count=value) for key, value in stats.by_service.items()],
    )


# Resource ids are often ARNs containing slashes.
@router.get("/asset/{resource_id:path}", response_model=list[FindingResponse])
async def findings_for_asset(resource_id: str, db: AsyncSession = Depends(get_db)) -> list[FindingResponse]:
    try:
        findings = await findings_repo.get_findings_by_resource(db, resource_id)
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=500, detail="Database error while listing findings") from exc
    return [_to_response(finding) for finding in findings]


@router.post("/scan/{account_id}", response_model=list[ScannedFindingResponse])
async def scan_account(
    account_id: int,
    orchestrator: ScanOrchestrator = Depends(get_orchestrator),
) -> list[ScannedFindingResponse]:
    try:
        findings = await orchestrator.scan_account(account_id)
    except AccountNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Account not found") from exc
    return [to_scanned_response(draft) for draft in findings]


@router.post("/scan", response_model=list[ScanOutcomeResponse])
async def scan_all_accounts(
    orchestrator: ScanOrchestrator = Depends(get_orchestrator),
) -> list[ScanOutcomeResponse]:
    outcomes = await orchestrator.scan_all_accounts()
    return [to_outcome_response(outcome) for outcome in outcomes]
