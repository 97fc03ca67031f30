from __future__ import annotations

from typing import Any

from postureguard.domain.findings import FindingDraft, Severity
from postureguard.providers.probes.base import BaseProbe


class ConfigProbe(BaseProbe):
    name = "config"
    service = "Config"
    client_name = "config"

    async def collect(self, client: Any, findings: list[FindingDraft]) -> None:
        recorders = (await self.call(client, "describe_configuration_recorders")).get(
            "ConfigurationRecorders"
        ) or []
        if not recorders:
            findings.append(
                self.draft(
                    resource_id="account",
                    resource_type="CONFIG_ACCOUNT",
                    resource_name="Account Config",
                    severity=Severity.HIGH,
                    finding="AWS Config Not Enabled",
                    description="No AWS Config configuration recorder exists in this region.",
                    remediation="Create a configuration recorder and delivery channel to track resource changes.",
                )
            )
            return

        statuses = (await self.call(client, "describe_configuration_recorder_status")).get(
            "ConfigurationRecordersStatus"
        ) or []
        recording = {status.get("name"): bool(status.get("recording")) for status in statuses}
        for recorder in recorders:
            name = recorder.get("name") or "default"
            if recording.get(name):
                continue
            findings.append(
                self.draft(
                    resource_id=recorder.get("roleARN") or name,
                    resource_type="CONFIG_RECORDER",
                    resource_name=name,
                    severity=Severity.MEDIUM,
                    finding="Config Recorder Not Recording",
                    description=f"AWS Config recorder {name} is not recording.",
                    remediation="Start the configuration recorder so resource changes are captured.",
                )
            )
