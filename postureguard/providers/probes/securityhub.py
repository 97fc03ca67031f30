from __future__ import annotations

from typing import Any

from botocore.exceptions import ClientError

from postureguard.core.config import get_settings
from postureguard.domain.findings import FindingDraft, Severity
from postureguard.providers.probes.base import BaseProbe, error_code


_NOT_ENABLED_CODES = {"InvalidAccessException", "ResourceNotFoundException"}


def map_securityhub_severity(label: str | None) -> Severity:
    normalized = (label or "").upper()
    if normalized in {"CRITICAL", "HIGH"}:
        return Severity.HIGH
    if normalized == "MEDIUM":
        return Severity.MEDIUM
    return Severity.LOW


class SecurityHubProbe(BaseProbe):
    """SecurityHub enablement and active NEW findings.

    Details: ``securityhub_label`` with the label SecurityHub assigned.
    """

    name = "securityhub"
    service = "SecurityHub"
    client_name = "securityhub"

    def __init__(self, client_factory=None, *, max_results: int | None = None) -> None:
        super().__init__(client_factory)
        self._max_results = max_results or get_settings().securityhub_max_results

    async def collect(self, client: Any, findings: list[FindingDraft]) -> None:
        try:
            await self.call(client, "get_enabled_standards")
        except ClientError as exc:
            if error_code(exc) not in _NOT_ENABLED_CODES:
                raise
            findings.append(
                self.draft(
                    resource_id="account",
                    resource_type="SECURITYHUB_ACCOUNT",
                    resource_name="Account SecurityHub",
                    severity=Severity.HIGH,
                    finding="SecurityHub Not Enabled",
                    description="AWS SecurityHub is not enabled in this region.",
                    remediation="Enable SecurityHub to aggregate, organize, and prioritize security findings.",
                )
            )
            return

        response = await self.call(
            client,
            "get_findings",
            Filters={
                "RecordState": [{"Value": "ACTIVE", "Comparison": "EQUALS"}],
                "WorkflowStatus": [{"Value": "NEW", "Comparison": "EQUALS"}],
            },
            MaxResults=self._max_results,
        )
        for item in response.get("Findings") or []:
            resources = item.get("Resources") or []
            if not resources:
                continue
            resource = resources[0]
            resource_id = resource.get("Id") or "unknown"
            label = (item.get("Severity") or {}).get("Label")
            recommendation = ((item.get("Remediation") or {}).get("Recommendation") or {}).get("Text")
            findings.append(
                self.draft(
                    resource_id=resource_id,
                    resource_type=resource.get("Type") or "SECURITYHUB_FINDING",
                    resource_name=resource_id.split("/")[-1] or "Unknown Resource",
                    severity=map_securityhub_severity(label),
                    finding=item.get("Title") or "Unknown Finding",
                    description=item.get("Description") or "No description available",
                    remediation=recommendation
                    or "Review SecurityHub finding details and take appropriate action.",
                    details={"securityhub_label": label} if label else None,
                )
            )
