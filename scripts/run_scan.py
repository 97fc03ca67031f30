from __future__ import annotations

import argparse
import asyncio
import json
from dataclasses import asdict

from postureguard.core.logging import configure_logging
from postureguard.domain.findings import FindingDraft
from postureguard.persistence.db import engine
from postureguard.services.scanner import ScanOrchestrator


def _draft_json(draft: FindingDraft) -> dict:
    payload = asdict(draft)
    payload["severity"] = draft.severity.value
    return payload


async def _run(account_pk: int | None) -> list[dict]:
    orchestrator = ScanOrchestrator()
    try:
        if account_pk is not None:
            findings = await orchestrator.scan_account(account_pk)
            return [_draft_json(draft) for draft in findings]
        outcomes = await orchestrator.scan_all_accounts()
        results: list[dict] = []
        for outcome in outcomes:
            if outcome.ok:
                results.append(
                    {
                        "accountId": outcome.account_id,
                        "findings": [_draft_json(draft) for draft in outcome.findings or []],
                    }
                )
            else:
                results.append({"accountId": outcome.account_id, "error": outcome.error})
        return results
    finally:
        await engine.dispose()


def main() -> None:
    # Run a scan in the foreground and print results as JSON.
    parser = argparse.ArgumentParser(description="Scan registered AWS accounts")
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--account-id", type=int, help="internal account id to scan")
    group.add_argument("--all", action="store_true", help="scan every registered account")
    args = parser.parse_args()
    configure_logging()
    results = asyncio.run(_run(None if args.all else args.account_id))
    print(json.dumps(results, indent=2, default=str))


if __name__ == "__main__":
    main()
