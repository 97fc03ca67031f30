from __future__ import annotations

import logging

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from postureguard.core.errors import PersistenceError
from postureguard.domain.models import Account, Finding, Region


logger = logging.getLogger(__name__)


async def list_accounts(session: AsyncSession) -> list[Account]:
    # Stable ordering keeps scan-all iteration deterministic.
    result = await session.execute(select(Account).order_by(Account.id))
    return list(result.scalars().all())


async def get_account(session: AsyncSession, account_pk: int) -> Account | None:
    result = await session.execute(select(Account).where(Account.id == account_pk))
    return result.scalar_one_or_none()


async def create_account(
    session: AsyncSession,
    *,
    account_id: str,
    account_name: str,
    access_key_id: str,
    secret_access_key: str,
    session_token: str | None = None,
    commit: bool = True,
) -> Account:
    account = Account(
        account_id=account_id,
        account_name=account_name,
        access_key_id=access_key_id,
        secret_access_key=secret_access_key,
        session_token=session_token,
    )
    session.add(account)
    try:
        await session.flush()
        if commit:
            await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        raise PersistenceError(f"AWS account {account_id} is already registered") from exc
    except SQLAlchemyError as exc:
        await session.rollback()
        raise PersistenceError("Database error while creating account") from exc
    return account


async def delete_account_cascade(session: AsyncSession, account_pk: int) -> bool:
    """Delete an account together with its findings and regions in one transaction.

    Children go first so foreign keys hold at every step; any failure rolls the
    whole transaction back and surfaces as PersistenceError. Returns whether an
    account row was removed.
    """
    try:
        await session.execute(delete(Finding).where(Finding.account_id == account_pk))
        await session.execute(delete(Region).where(Region.account_id == account_pk))
        result = await session.execute(delete(Account).where(Account.id == account_pk))
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.error("account_delete_failed account_pk=%s", account_pk, exc_info=exc)
        raise PersistenceError(f"Failed to delete account {account_pk}") from exc
    deleted = bool(result.rowcount)
    logger.info("account_deleted account_pk=%s deleted=%s", account_pk, deleted)
    return deleted
