from __future__ import annotations

from typing import Any

from postureguard.domain.findings import FindingDraft, Severity
from postureguard.providers.probes.base import BaseProbe


def _has_actions(alarm: dict[str, Any]) -> bool:
    return bool(
        alarm.get("AlarmActions") or alarm.get("OKActions") or alarm.get("InsufficientDataActions")
    )


class CloudWatchProbe(BaseProbe):
    """Alarm coverage for the region.

    Details: ``alarm_count`` on both aggregate alarm findings.
    """

    name = "cloudwatch"
    service = "CloudWatch"
    client_name = "cloudwatch"

    async def collect(self, client: Any, findings: list[FindingDraft]) -> None:
        alarms = await self.paginate(client, "describe_alarms", items_key="MetricAlarms")
        common = {
            "resource_id": "account",
            "resource_type": "CLOUDWATCH_ACCOUNT",
            "resource_name": "Account CloudWatch",
        }
        if not alarms:
            findings.append(
                self.draft(
                    **common,
                    severity=Severity.MEDIUM,
                    finding="No CloudWatch Alarms",
                    description="No CloudWatch alarms are configured in this region.",
                    remediation="Configure CloudWatch alarms to monitor critical metrics and receive notifications.",
                )
            )
            return

        disabled = [alarm for alarm in alarms if alarm.get("ActionsEnabled") is False]
        if disabled:
            findings.append(
                self.draft(
                    **common,
                    severity=Severity.LOW,
                    finding="Disabled CloudWatch Alarms",
                    description=f"{len(disabled)} CloudWatch alarms are disabled.",
                    remediation="Review and enable important CloudWatch alarms or remove unnecessary ones.",
                    details={"alarm_count": len(disabled)},
                )
            )

        without_actions = [alarm for alarm in alarms if not _has_actions(alarm)]
        if without_actions:
            findings.append(
                self.draft(
                    **common,
                    severity=Severity.MEDIUM,
                    finding="Alarms Without Actions",
                    description=f"{len(without_actions)} CloudWatch alarms have no actions configured.",
                    remediation=(
                        "Configure actions (such as SNS notifications) for alarms to ensure proper "
                        "notification of events."
                    ),
                    details={"alarm_count": len(without_actions)},
                )
            )
