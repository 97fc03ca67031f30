from __future__ import annotations

from typing import Any

from postureguard.domain.findings import FindingDraft, Severity
from postureguard.providers.probes.base import BaseProbe


class CloudTrailProbe(BaseProbe):
    name = "cloudtrail"
    service = "CloudTrail"
    client_name = "cloudtrail"

    async def collect(self, client: Any, findings: list[FindingDraft]) -> None:
        trails = (await self.call(client, "describe_trails")).get("trailList") or []
        if not trails:
            findings.append(
                self.draft(
                    resource_id="account",
                    resource_type="CLOUDTRAIL_ACCOUNT",
                    resource_name="Account CloudTrail",
                    severity=Severity.HIGH,
                    finding="No CloudTrail Configured",
                    description="No CloudTrail trails are configured in this region.",
                    remediation="Configure CloudTrail to track API activity in your AWS account.",
                )
            )
            return

        for trail in trails:
            name = trail.get("Name")
            if not name:
                continue
            resource_id = trail.get("TrailARN") or name
            status = await self.call(client, "get_trail_status", Name=name)
            if not status.get("IsLogging"):
                findings.append(
                    self.draft(
                        resource_id=resource_id,
                        resource_type="CLOUDTRAIL_TRAIL",
                        resource_name=name,
                        severity=Severity.HIGH,
                        finding="CloudTrail Logging Disabled",
                        description=f"CloudTrail {name} is not actively logging.",
                        remediation="Enable logging for the CloudTrail trail to maintain audit records.",
                    )
                )
            if not trail.get("IsMultiRegionTrail"):
                findings.append(
                    self.draft(
                        resource_id=resource_id,
                        resource_type="CLOUDTRAIL_TRAIL",
                        resource_name=name,
                        severity=Severity.MEDIUM,
                        finding="Single-Region Trail",
                        description=f"CloudTrail {name} is only logging events for a single region.",
                        remediation="Consider enabling multi-region logging to capture events across all regions.",
                    )
                )
            if not trail.get("LogFileValidationEnabled"):
                findings.append(
                    self.draft(
                        resource_id=resource_id,
                        resource_type="CLOUDTRAIL_TRAIL",
                        resource_name=name,
                        severity=Severity.MEDIUM,
                        finding="Log File Validation Disabled",
                        description=f"CloudTrail {name} does not have log file validation enabled.",
                        remediation="Enable log file validation to ensure log file integrity.",
                    )
                )
