from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from postureguard.core.errors import DuplicateRegionError, PersistenceError, RegionNotFoundError
from postureguard.domain.models import Region


async def list_regions(session: AsyncSession, account_pk: int) -> list[Region]:
    result = await session.execute(
        select(Region).where(Region.account_id == account_pk).order_by(Region.id)
    )
    return list(result.scalars().all())


async def get_enabled_regions(session: AsyncSession, account_pk: int) -> list[Region]:
    # Insertion order defines the scan order for an account.
    result = await session.execute(
        select(Region)
        .where(Region.account_id == account_pk, Region.enabled.is_(True))
        .order_by(Region.id)
    )
    return list(result.scalars().all())


async def add_region(
    session: AsyncSession,
    *,
    account_pk: int,
    region: str,
    enabled: bool = True,
) -> Region:
    row = Region(account_id=account_pk, region=region, enabled=enabled)
    session.add(row)
    try:
        await session.flush()
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        # Either the (account, region) pair exists or the account does not.
        raise DuplicateRegionError(
            f"Region {region} could not be added to account {account_pk}"
        ) from exc
    except SQLAlchemyError as exc:
        await session.rollback()
        raise PersistenceError("Database error while adding region") from exc
    return row


async def set_region_enabled(
    session: AsyncSession,
    *,
    region_pk: int,
    enabled: bool,
    account_pk: int | None = None,
) -> Region:
    stmt = select(Region).where(Region.id == region_pk)
    if account_pk is not None:
        stmt = stmt.where(Region.account_id == account_pk)
    try:
        result = await session.execute(stmt)
        row = result.scalar_one_or_none()
        if row is None:
            raise RegionNotFoundError(f"Region {region_pk} not found")
        row.enabled = enabled
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        raise PersistenceError("Database error while updating region") from exc
    return row
