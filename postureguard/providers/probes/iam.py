from __future__ import annotations

from typing import Any

from postureguard.domain.findings import FindingDraft, Severity
from postureguard.providers.probes.base import BaseProbe


class IAMProbe(BaseProbe):
    """Root MFA, access key hygiene and inactive users.

    Details: ``access_key_count`` on "Multiple Access Keys".
    """

    name = "iam"
    service = "IAM"
    client_name = "iam"

    async def collect(self, client: Any, findings: list[FindingDraft]) -> None:
        summary = await self.call(client, "get_account_summary")
        if not (summary.get("SummaryMap") or {}).get("AccountMFAEnabled"):
            findings.append(
                self.draft(
                    resource_id="account",
                    resource_type="IAM_ACCOUNT",
                    resource_name="Root Account",
                    severity=Severity.HIGH,
                    finding="Root Account MFA Not Enabled",
                    description="The root account does not have Multi-Factor Authentication (MFA) enabled.",
                    remediation="Enable MFA for the root account to enhance security.",
                )
            )

        users = await self.paginate(
            client,
            "list_users",
            items_key="Users",
            request_token="Marker",
            response_token="Marker",
        )
        for user in users:
            user_name = user.get("UserName")
            user_id = user.get("UserId") or user_name
            keys = await self.call(client, "list_access_keys", UserName=user_name)
            key_count = len(keys.get("AccessKeyMetadata") or [])
            if key_count > 1:
                findings.append(
                    self.draft(
                        resource_id=user_id,
                        resource_type="IAM_USER",
                        resource_name=user_name,
                        severity=Severity.MEDIUM,
                        finding="Multiple Access Keys",
                        description=f"User {user_name} has multiple active access keys.",
                        remediation=(
                            "Review and remove unnecessary access keys. Each user should typically "
                            "have at most one active access key."
                        ),
                        details={"access_key_count": key_count},
                    )
                )
            if not user.get("PasswordLastUsed"):
                findings.append(
                    self.draft(
                        resource_id=user_id,
                        resource_type="IAM_USER",
                        resource_name=user_name,
                        severity=Severity.LOW,
                        finding="Inactive User",
                        description=f"User {user_name} has never signed in or has not signed in recently.",
                        remediation="Review and remove inactive users to maintain good security hygiene.",
                    )
                )
