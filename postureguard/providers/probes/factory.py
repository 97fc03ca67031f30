from __future__ import annotations

from typing import Callable

from postureguard.core.config import get_settings, parse_probe_names
from postureguard.core.errors import ProbeConfigError
from postureguard.providers.probes.aws_config import ConfigProbe
from postureguard.providers.probes.base import ClientFactory, Probe
from postureguard.providers.probes.cloudtrail import CloudTrailProbe
from postureguard.providers.probes.cloudwatch import CloudWatchProbe
from postureguard.providers.probes.ec2 import EC2Probe
from postureguard.providers.probes.guardduty import GuardDutyProbe
from postureguard.providers.probes.iam import IAMProbe
from postureguard.providers.probes.kms import KMSProbe
from postureguard.providers.probes.rds import RDSProbe
from postureguard.providers.probes.s3 import S3Probe
from postureguard.providers.probes.securityhub import SecurityHubProbe


PROBE_REGISTRY: dict[str, Callable[..., Probe]] = {
    "iam": IAMProbe,
    "cloudtrail": CloudTrailProbe,
    "cloudwatch": CloudWatchProbe,
    "kms": KMSProbe,
    "guardduty": GuardDutyProbe,
    "securityhub": SecurityHubProbe,
    "ec2": EC2Probe,
    "s3": S3Probe,
    "rds": RDSProbe,
    "config": ConfigProbe,
}


def build_probe(name: str, client_factory: ClientFactory | None = None) -> Probe:
    factory = PROBE_REGISTRY.get(name.strip().lower())
    if factory is None:
        raise ProbeConfigError(f"Unsupported probe: {name}")
    return factory(client_factory)


def get_scan_probes(client_factory: ClientFactory | None = None) -> list[Probe]:
    names = parse_probe_names(get_settings().scan_probes)
    if not names:
        raise ProbeConfigError("SCAN_PROBES is empty")
    return [build_probe(name, client_factory) for name in names]


def get_canary_probe(client_factory: ClientFactory | None = None) -> Probe:
    return build_probe(get_settings().scan_canary_probe, client_factory)
