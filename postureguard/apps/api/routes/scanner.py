from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from postureguard.apps.api.deps import get_db, get_orchestrator
from postureguard.apps.api.response import CamelModel
from postureguard.apps.api.routes.findings import (
    ScannedFindingResponse,
    ScanOutcomeResponse,
    to_outcome_response,
    to_scanned_response,
)
from postureguard.persistence.repos import accounts as accounts_repo
from postureguard.services import scan_queue
from postureguard.services.scanner import ScanOrchestrator


router = APIRouter(prefix="/scanner", tags=["scanner"])


class ScanResultResponse(CamelModel):
    success: bool = True
    findings: list[ScannedFindingResponse]


class ScanAllResultResponse(CamelModel):
    success: bool = True
    findings: list[ScanOutcomeResponse]


class EnqueuedScanResponse(CamelModel):
    job_id: str


@router.post("/scan/{account_id}", response_model=ScanResultResponse)
async def scan_account(
    account_id: int,
    orchestrator: ScanOrchestrator = Depends(get_orchestrator),
) -> ScanResultResponse:
    # Unknown accounts surface through the domain handler as a 500 with the message.
    findings = await orchestrator.scan_account(account_id)
    return ScanResultResponse(findings=[to_scanned_response(draft) for draft in findings])


@router.post("/scan-all", response_model=ScanAllResultResponse)
async def scan_all(
    orchestrator: ScanOrchestrator = Depends(get_orchestrator),
) -> ScanAllResultResponse:
    outcomes = await orchestrator.scan_all_accounts()
    return ScanAllResultResponse(findings=[to_outcome_response(outcome) for outcome in outcomes])


@router.post("/enqueue/{account_id}", status_code=202, response_model=EnqueuedScanResponse)
async def enqueue_scan(account_id: int, db: AsyncSession = Depends(get_db)) -> EnqueuedScanResponse:
    account = await accounts_repo.get_account(db, account_id)
    if account is None:
        raise HTTPException(status_code=404, detail="Account not found")
    job_id = await scan_queue.enqueue_account_scan(account.id)
    return EnqueuedScanResponse(job_id=job_id)
