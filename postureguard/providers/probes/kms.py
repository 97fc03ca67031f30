from __future__ import annotations

from typing import Any

from botocore.exceptions import ClientError

from postureguard.domain.findings import FindingDraft, Severity
from postureguard.providers.probes.base import BaseProbe


class KMSProbe(BaseProbe):
    """Key state, origin and rotation.

    Details: ``key_state`` on state findings, ``origin`` on key material findings.
    """

    name = "kms"
    service = "KMS"
    client_name = "kms"

    async def collect(self, client: Any, findings: list[FindingDraft]) -> None:
        keys = await self.paginate(
            client,
            "list_keys",
            items_key="Keys",
            request_token="Marker",
            response_token="NextMarker",
        )
        if not keys:
            findings.append(
                self.draft(
                    resource_id="account",
                    resource_type="KMS_ACCOUNT",
                    resource_name="Account KMS",
                    severity=Severity.LOW,
                    finding="No KMS Keys",
                    description="No KMS keys are configured in this region.",
                    remediation="Consider using KMS keys for encrypting sensitive data.",
                )
            )
            return

        for key in keys:
            key_id = key.get("KeyId")
            if not key_id:
                continue
            metadata = (await self.call(client, "describe_key", KeyId=key_id)).get("KeyMetadata")
            if not metadata:
                continue
            await self._evaluate_key(client, metadata, findings)

    async def _evaluate_key(self, client: Any, metadata: dict[str, Any], findings: list[FindingDraft]) -> None:
        key_id = metadata.get("KeyId") or "unknown"
        resource = {
            "resource_id": metadata.get("Arn") or key_id,
            "resource_type": "KMS_KEY",
            "resource_name": key_id,
        }
        state = metadata.get("KeyState")
        if state == "Disabled":
            findings.append(
                self.draft(
                    **resource,
                    severity=Severity.MEDIUM,
                    finding="Disabled KMS Key",
                    description=f"KMS key {key_id} is disabled.",
                    remediation="Review and enable important KMS keys or schedule them for deletion if no longer needed.",
                    details={"key_state": state},
                )
            )
        if state == "PendingDeletion":
            findings.append(
                self.draft(
                    **resource,
                    severity=Severity.HIGH,
                    finding="KMS Key Pending Deletion",
                    description=f"KMS key {key_id} is scheduled for deletion.",
                    remediation="Review if the key should be deleted. Cancel deletion if the key is still needed.",
                    details={"key_state": state},
                )
            )
        if metadata.get("Origin") == "AWS_KMS":
            findings.append(
                self.draft(
                    **resource,
                    severity=Severity.LOW,
                    finding="AWS Managed Key Material",
                    description=f"KMS key {key_id} uses AWS-managed key material.",
                    remediation="Consider using customer-managed key material for better control over the key lifecycle.",
                    details={"origin": "AWS_KMS"},
                )
            )

        # Rotation only applies to enabled customer-managed symmetric keys.
        if (
            state == "Enabled"
            and metadata.get("KeyManager") == "CUSTOMER"
            and metadata.get("KeySpec", "SYMMETRIC_DEFAULT") == "SYMMETRIC_DEFAULT"
        ):
            try:
                rotation = await self.call(client, "get_key_rotation_status", KeyId=key_id)
            except ClientError:
                # Rotation status is best effort per key.
                return
            if not rotation.get("KeyRotationEnabled"):
                findings.append(
                    self.draft(
                        **resource,
                        severity=Severity.MEDIUM,
                        finding="KMS Key Rotation Disabled",
                        description=f"Automatic rotation is not enabled for KMS key {key_id}.",
                        remediation="Enable automatic key rotation for customer-managed KMS keys.",
                    )
                )
