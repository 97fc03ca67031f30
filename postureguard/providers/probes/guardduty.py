from __future__ import annotations

import logging
from typing import Any

from postureguard.core.config import get_settings
from postureguard.core.errors import ProbeCredentialError, ProbeError
from postureguard.domain.findings import AwsCredentials, FindingDraft, Severity
from postureguard.providers.probes.base import BaseProbe, error_code, is_credential_error


logger = logging.getLogger(__name__)

# GuardDuty accepts at most 50 finding ids per GetFindings call.
_GET_FINDINGS_BATCH = 50


def map_guardduty_severity(score: float | None) -> Severity:
    if score is not None and score >= 7:
        return Severity.HIGH
    if score is not None and score >= 4:
        return Severity.MEDIUM
    return Severity.LOW


class GuardDutyProbe(BaseProbe):
    """Detector presence and active GuardDuty findings.

    Unlike the other probes this one never swallows errors: it doubles as the
    credential canary, so every failure is raised as ProbeCredentialError or
    ProbeError for the orchestrator to classify.

    Details: ``detector_id`` and ``guardduty_severity`` on relayed findings.
    """

    name = "guardduty"
    service = "GuardDuty"
    client_name = "guardduty"

    def __init__(self, client_factory=None, *, min_severity: int | None = None) -> None:
        super().__init__(client_factory)
        self._min_severity = min_severity if min_severity is not None else get_settings().guardduty_min_severity

    async def scan(self, credentials: AwsCredentials, region: str) -> list[FindingDraft]:
        if not credentials.access_key_id or not credentials.secret_access_key:
            raise ProbeCredentialError("Missing AWS credentials")
        findings: list[FindingDraft] = []
        try:
            client = self.client(credentials, region)
            await self.collect(client, findings)
        except ProbeError:
            raise
        except Exception as exc:  # noqa: BLE001 - every failure is re-raised typed
            logger.warning("guardduty_scan_failed region=%s code=%s", region, error_code(exc))
            if is_credential_error(exc):
                raise ProbeCredentialError(f"AWS credentials rejected by GuardDuty: {exc}") from exc
            raise ProbeError(f"GuardDuty scan failed: {exc}") from exc
        logger.info("guardduty_scan_complete region=%s findings=%s", region, len(findings))
        return findings

    async def collect(self, client: Any, findings: list[FindingDraft]) -> None:
        detector_ids = await self.paginate(client, "list_detectors", items_key="DetectorIds")
        if not detector_ids:
            findings.append(
                self.draft(
                    resource_id="account",
                    resource_type="GUARDDUTY_ACCOUNT",
                    resource_name="Account GuardDuty",
                    severity=Severity.HIGH,
                    finding="GuardDuty Not Enabled",
                    description="GuardDuty is not enabled in this region.",
                    remediation="Enable GuardDuty to detect potential security threats and unauthorized behavior.",
                )
            )
            return

        detector_id = detector_ids[0]
        finding_ids = await self.paginate(
            client,
            "list_findings",
            items_key="FindingIds",
            DetectorId=detector_id,
            FindingCriteria={"Criterion": {"severity": {"Gte": self._min_severity}}},
        )
        for start in range(0, len(finding_ids), _GET_FINDINGS_BATCH):
            batch = finding_ids[start : start + _GET_FINDINGS_BATCH]
            response = await self.call(client, "get_findings", DetectorId=detector_id, FindingIds=batch)
            for item in response.get("Findings") or []:
                findings.append(self._to_draft(detector_id, item))

    def _to_draft(self, detector_id: str, item: dict[str, Any]) -> FindingDraft:
        resource = item.get("Resource") or {}
        score = item.get("Severity")
        details: dict[str, Any] = {"detector_id": detector_id}
        if isinstance(score, (int, float)):
            details["guardduty_severity"] = float(score)
        return self.draft(
            resource_id=resource.get("Id") or "unknown",
            resource_type=resource.get("ResourceType") or resource.get("Type") or "GUARDDUTY_FINDING",
            resource_name=item.get("Title") or "Unknown Finding",
            severity=map_guardduty_severity(score if isinstance(score, (int, float)) else None),
            finding=item.get("Type") or "Unknown Finding Type",
            description=item.get("Description") or "No description available",
            remediation="Review GuardDuty finding details and take appropriate action.",
            details=details,
        )
