from __future__ import annotations

from typing import Any

from botocore.exceptions import ClientError

from postureguard.domain.findings import FindingDraft, Severity
from postureguard.providers.probes.base import BaseProbe, error_code


_PUBLIC_ACCESS_FLAGS = ("BlockPublicAcls", "IgnorePublicAcls", "BlockPublicPolicy", "RestrictPublicBuckets")
# Legacy location constraints that predate regional names.
_LEGACY_LOCATIONS = {"EU": "eu-west-1"}


def _bucket_region(constraint: str | None) -> str:
    # us-east-1 buckets report a null LocationConstraint.
    if not constraint:
        return "us-east-1"
    return _LEGACY_LOCATIONS.get(constraint, constraint)


class S3Probe(BaseProbe):
    """Bucket public access blocks, default encryption and versioning.

    S3 is global, so buckets are reported only in the region they live in.
    Details: ``missing_flags`` (comma list) on public access findings.
    """

    name = "s3"
    service = "S3"
    client_name = "s3"

    async def collect(self, client: Any, findings: list[FindingDraft]) -> None:
        region = getattr(getattr(client, "meta", None), "region_name", None)
        buckets = (await self.call(client, "list_buckets")).get("Buckets") or []
        for bucket in buckets:
            name = bucket.get("Name")
            if not name:
                continue
            location = await self.call(client, "get_bucket_location", Bucket=name)
            bucket_region = _bucket_region(location.get("LocationConstraint"))
            if region and bucket_region != region:
                continue
            await self._evaluate_bucket(client, name, findings)

    async def _evaluate_bucket(self, client: Any, name: str, findings: list[FindingDraft]) -> None:
        resource = {
            "resource_id": f"arn:aws:s3:::{name}",
            "resource_type": "S3_BUCKET",
            "resource_name": name,
        }
        missing = list(_PUBLIC_ACCESS_FLAGS)
        try:
            block = await self.call(client, "get_public_access_block", Bucket=name)
            config = block.get("PublicAccessBlockConfiguration") or {}
            missing = [flag for flag in _PUBLIC_ACCESS_FLAGS if not config.get(flag)]
        except ClientError as exc:
            if error_code(exc) != "NoSuchPublicAccessBlockConfiguration":
                raise
        if missing:
            findings.append(
                self.draft(
                    **resource,
                    severity=Severity.HIGH,
                    finding="Public Access Block Not Enforced",
                    description=f"Bucket {name} does not block all forms of public access.",
                    remediation="Enable all four S3 Block Public Access settings on the bucket.",
                    details={"missing_flags": ",".join(missing)},
                )
            )

        try:
            await self.call(client, "get_bucket_encryption", Bucket=name)
        except ClientError as exc:
            if error_code(exc) != "ServerSideEncryptionConfigurationNotFoundError":
                raise
            findings.append(
                self.draft(
                    **resource,
                    severity=Severity.MEDIUM,
                    finding="Default Encryption Disabled",
                    description=f"Bucket {name} has no default server-side encryption configured.",
                    remediation="Configure default SSE-S3 or SSE-KMS encryption for the bucket.",
                )
            )

        versioning = await self.call(client, "get_bucket_versioning", Bucket=name)
        if versioning.get("Status") != "Enabled":
            findings.append(
                self.draft(
                    **resource,
                    severity=Severity.LOW,
                    finding="Versioning Not Enabled",
                    description=f"Bucket {name} does not have versioning enabled.",
                    remediation="Enable versioning to protect objects against accidental deletion.",
                )
            )
