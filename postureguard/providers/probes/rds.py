from __future__ import annotations

from typing import Any

from postureguard.domain.findings import FindingDraft, Severity
from postureguard.providers.probes.base import BaseProbe


class RDSProbe(BaseProbe):
    """Public accessibility, storage encryption and backup retention.

    Details: ``engine`` on every RDS finding.
    """

    name = "rds"
    service = "RDS"
    client_name = "rds"

    async def collect(self, client: Any, findings: list[FindingDraft]) -> None:
        instances = await self.paginate(
            client,
            "describe_db_instances",
            items_key="DBInstances",
            request_token="Marker",
            response_token="Marker",
        )
        for instance in instances:
            identifier = instance.get("DBInstanceIdentifier") or "unknown"
            resource = {
                "resource_id": instance.get("DBInstanceArn") or identifier,
                "resource_type": "RDS_INSTANCE",
                "resource_name": identifier,
                "details": {"engine": instance.get("Engine") or "unknown"},
            }
            if instance.get("PubliclyAccessible"):
                findings.append(
                    self.draft(
                        **resource,
                        severity=Severity.HIGH,
                        finding="Publicly Accessible Database",
                        description=f"RDS instance {identifier} is publicly accessible.",
                        remediation="Disable public accessibility and reach the database through private networking.",
                    )
                )
            if not instance.get("StorageEncrypted"):
                findings.append(
                    self.draft(
                        **resource,
                        severity=Severity.MEDIUM,
                        finding="Unencrypted Database Storage",
                        description=f"RDS instance {identifier} does not encrypt its storage.",
                        remediation="Restore from an encrypted snapshot to enable storage encryption.",
                    )
                )
            if not instance.get("BackupRetentionPeriod"):
                findings.append(
                    self.draft(
                        **resource,
                        severity=Severity.MEDIUM,
                        finding="Automated Backups Disabled",
                        description=f"RDS instance {identifier} has no automated backup retention.",
                        remediation="Set a backup retention period of at least 7 days.",
                    )
                )
