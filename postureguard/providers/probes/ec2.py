from __future__ import annotations

from typing import Any

from postureguard.domain.findings import FindingDraft, Severity
from postureguard.providers.probes.base import BaseProbe


_OPEN_CIDRS = {"0.0.0.0/0", "::/0"}
_ADMIN_PORTS = {22: "SSH", 3389: "RDP"}


def _open_to_world(permission: dict[str, Any]) -> bool:
    ipv4 = {item.get("CidrIp") for item in permission.get("IpRanges") or []}
    ipv6 = {item.get("CidrIpv6") for item in permission.get("Ipv6Ranges") or []}
    return bool((ipv4 | ipv6) & _OPEN_CIDRS)


def _exposed_ports(permission: dict[str, Any]) -> list[str]:
    # "-1" means every protocol and port.
    if permission.get("IpProtocol") == "-1":
        return ["ALL"]
    from_port = permission.get("FromPort")
    to_port = permission.get("ToPort")
    if from_port is None or to_port is None:
        return []
    if from_port == 0 and to_port == 65535:
        return ["ALL"]
    return [label for port, label in _ADMIN_PORTS.items() if from_port <= port <= to_port]


class EC2Probe(BaseProbe):
    """Security groups, EBS encryption and instance metadata options.

    Details: ``ports`` (comma list) on ingress findings, ``size_gib`` on volume
    findings.
    """

    name = "ec2"
    service = "EC2"
    client_name = "ec2"

    async def collect(self, client: Any, findings: list[FindingDraft]) -> None:
        groups = await self.paginate(client, "describe_security_groups", items_key="SecurityGroups")
        for group in groups:
            exposed: list[str] = []
            for permission in group.get("IpPermissions") or []:
                if _open_to_world(permission):
                    exposed.extend(port for port in _exposed_ports(permission) if port not in exposed)
            if exposed:
                group_id = group.get("GroupId") or "unknown"
                findings.append(
                    self.draft(
                        resource_id=group_id,
                        resource_type="EC2_SECURITY_GROUP",
                        resource_name=group.get("GroupName"),
                        severity=Severity.HIGH,
                        finding="Security Group Open To The Internet",
                        description=f"Security group {group_id} allows inbound {', '.join(exposed)} from any address.",
                        remediation="Restrict ingress rules to known CIDR ranges or use a bastion/SSM Session Manager.",
                        details={"ports": ",".join(exposed)},
                    )
                )

        volumes = await self.paginate(client, "describe_volumes", items_key="Volumes")
        for volume in volumes:
            if volume.get("Encrypted"):
                continue
            volume_id = volume.get("VolumeId") or "unknown"
            findings.append(
                self.draft(
                    resource_id=volume_id,
                    resource_type="EC2_VOLUME",
                    resource_name=volume_id,
                    severity=Severity.MEDIUM,
                    finding="Unencrypted EBS Volume",
                    description=f"EBS volume {volume_id} is not encrypted.",
                    remediation="Enable EBS encryption by default and migrate data to encrypted volumes.",
                    details={"size_gib": int(volume.get("Size") or 0)},
                )
            )

        reservations = await self.paginate(client, "describe_instances", items_key="Reservations")
        for reservation in reservations:
            for instance in reservation.get("Instances") or []:
                options = instance.get("MetadataOptions") or {}
                if options.get("HttpTokens") == "required" or options.get("HttpEndpoint") == "disabled":
                    continue
                instance_id = instance.get("InstanceId") or "unknown"
                findings.append(
                    self.draft(
                        resource_id=instance_id,
                        resource_type="EC2_INSTANCE",
                        resource_name=instance_id,
                        severity=Severity.MEDIUM,
                        finding="IMDSv1 Allowed",
                        description=f"Instance {instance_id} does not require IMDSv2 session tokens.",
                        remediation="Set HttpTokens to required on the instance metadata options.",
                    )
                )
