from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Union


class Severity(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


SEVERITY_VALUES: tuple[str, ...] = tuple(item.value for item in Severity)

# Flat key/value payload attached to a finding; nested structures are not allowed.
DetailValue = Union[str, int, float, bool]


@dataclass(frozen=True)
class AwsCredentials:
    access_key_id: str
    secret_access_key: str = field(repr=False)
    session_token: str | None = field(default=None, repr=False)

    @classmethod
    def from_account(cls, account) -> "AwsCredentials":
        return cls(
            access_key_id=account.access_key_id,
            secret_access_key=account.secret_access_key,
            session_token=account.session_token or None,
        )


@dataclass(frozen=True)
class FindingDraft:
    """A finding as produced by a probe, before it is bound to an account row.

    ``region`` is left unset by probes and stamped by the orchestrator.
    ``details`` carries the structured per-kind payload documented next to the
    rule that emits it.
    """

    resource_id: str
    resource_type: str
    service: str
    severity: Severity
    finding: str
    description: str
    remediation: str
    resource_name: str | None = None
    region: str | None = None
    details: dict[str, DetailValue] | None = None

    def __post_init__(self) -> None:
        # Reject anything outside HIGH/MEDIUM/LOW before it can reach storage.
        object.__setattr__(self, "severity", Severity(self.severity))
        if self.details is not None:
            for key, value in self.details.items():
                if not isinstance(key, str) or not isinstance(value, (str, int, float, bool)):
                    raise ValueError(f"finding detail {key!r} must be a scalar keyed by str")

    def with_region(self, region: str) -> "FindingDraft":
        return replace(self, region=region)


@dataclass(frozen=True)
class FindingFilter:
    account_id: int | None = None
    region: str | None = None
    service: str | None = None
    severity: str | None = None
    limit: int | None = None


@dataclass(frozen=True)
class FindingStats:
    total_findings: int
    by_severity: dict[str, int]
    by_service: dict[str, int]


@dataclass(frozen=True)
class ScanOutcome:
    # Exactly one of findings/error is set for each scanned account.
    account_id: int
    findings: list[FindingDraft] | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None
