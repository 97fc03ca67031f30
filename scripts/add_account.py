from __future__ import annotations

import argparse
import asyncio

from postureguard.core.errors import PersistenceError
from postureguard.core.logging import configure_logging
from postureguard.persistence.db import SessionLocal, engine
from postureguard.persistence.repos import accounts as accounts_repo
from postureguard.persistence.repos import regions as regions_repo


async def _add_account(args: argparse.Namespace) -> int:
    async with SessionLocal() as session:
        try:
            account = await accounts_repo.create_account(
                session,
                account_id=args.account_id,
                account_name=args.name,
                access_key_id=args.access_key_id,
                secret_access_key=args.secret_access_key,
                session_token=args.session_token,
            )
            for region in args.region or []:
                await regions_repo.add_region(session, account_pk=account.id, region=region)
        except PersistenceError as exc:
            print(f"error={exc}")
            return 1
        print(f"account_pk={account.id}")
        print(f"regions={','.join(args.region or [])}")
    await engine.dispose()
    return 0


def main() -> None:
    # Register an AWS account (and optionally its regions) without the API.
    parser = argparse.ArgumentParser(description="Register an AWS account for scanning")
    parser.add_argument("--account-id", required=True, help="12-digit AWS account id")
    parser.add_argument("--name", required=True)
    parser.add_argument("--access-key-id", required=True)
    parser.add_argument("--secret-access-key", required=True)
    parser.add_argument("--session-token", default=None)
    parser.add_argument("--region", action="append", help="repeat for each region to enable")
    args = parser.parse_args()
    configure_logging()
    raise SystemExit(asyncio.run(_add_account(args)))


if __name__ == "__main__":
    main()
