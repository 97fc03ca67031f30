from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from pydantic import Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from postureguard.apps.api.deps import get_db
from postureguard.apps.api.response import CamelModel, CreatedResponse, SuccessResponse
from postureguard.persistence.repos import accounts as accounts_repo
from postureguard.persistence.repos import regions as regions_repo


router = APIRouter(prefix="/accounts", tags=["accounts"])

_REDACTED = "********"


class AccountResponse(CamelModel):
    id: int
    account_id: str
    account_name: str
    access_key_id: str
    # Secret material is never echoed back; presence is shown as a mask.
    secret_access_key: str
    session_token: str | None
    created_at: datetime
    updated_at: datetime


class AccountCreateRequest(CamelModel):
    account_id: str = Field(min_length=1)
    account_name: str = Field(min_length=1)
    access_key_id: str = Field(min_length=1)
    secret_access_key: str = Field(min_length=1)
    session_token: str | None = None


class RegionResponse(CamelModel):
    id: int
    account_id: int
    region: str
    enabled: bool
    created_at: datetime
    updated_at: datetime


class RegionCreateRequest(CamelModel):
    region: str = Field(min_length=1)
    enabled: bool = True


class RegionPatchRequest(CamelModel):
    enabled: bool


def _to_account_response(account) -> AccountResponse:
    return AccountResponse(
        id=account.id,
        account_id=account.account_id,
        account_name=account.account_name,
        access_key_id=account.access_key_id,
        secret_access_key=_REDACTED,
        session_token=_REDACTED if account.session_token else None,
        created_at=account.created_at,
        updated_at=account.updated_at,
    )


def _to_region_response(region) -> RegionResponse:
    return RegionResponse(
        id=region.id,
        account_id=region.account_id,
        region=region.region,
        enabled=region.enabled,
        created_at=region.created_at,
        updated_at=region.updated_at,
    )


@router.get("", response_model=list[AccountResponse])
async def list_accounts(db: AsyncSession = Depends(get_db)) -> list[AccountResponse]:
    try:
        accounts = await accounts_repo.list_accounts(db)
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=500, detail="Database error while listing accounts") from exc
    return [_to_account_response(account) for account in accounts]


@router.post("", status_code=201, response_model=CreatedResponse)
async def create_account(
    payload: AccountCreateRequest,
    db: AsyncSession = Depends(get_db),
) -> CreatedResponse:
    account = await accounts_repo.create_account(
        db,
        account_id=payload.account_id,
        account_name=payload.account_name,
        access_key_id=payload.access_key_id,
        secret_access_key=payload.secret_access_key,
        session_token=payload.session_token,
    )
    return CreatedResponse(id=account.id)


@router.get("/{account_id}/regions", response_model=list[RegionResponse])
async def list_regions(account_id: int, db: AsyncSession = Depends(get_db)) -> list[RegionResponse]:
    try:
        regions = await regions_repo.list_regions(db, account_id)
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=500, detail="Database error while listing regions") from exc
    return [_to_region_response(region) for region in regions]


@router.post("/{account_id}/regions", status_code=201, response_model=CreatedResponse)
async def add_region(
    account_id: int,
    payload: RegionCreateRequest,
    db: AsyncSession = Depends(get_db),
) -> CreatedResponse:
    region = await regions_repo.add_region(
        db,
        account_pk=account_id,
        region=payload.region,
        enabled=payload.enabled,
    )
    return CreatedResponse(id=region.id)


@router.patch("/{account_id}/regions/{region_id}", response_model=SuccessResponse)
async def update_region(
    account_id: int,
    region_id: int,
    payload: RegionPatchRequest,
    db: AsyncSession = Depends(get_db),
) -> SuccessResponse:
    await regions_repo.set_region_enabled(
        db,
        region_pk=region_id,
        enabled=payload.enabled,
        account_pk=account_id,
    )
    return SuccessResponse()


@router.delete("/{account_id}", response_model=SuccessResponse)
async def delete_account(account_id: int, db: AsyncSession = Depends(get_db)) -> SuccessResponse:
    # Findings, regions and the account go in one transaction.
    await accounts_repo.delete_account_cascade(db, account_id)
    return SuccessResponse()
