from __future__ import annotations

import asyncio
from typing import Any, Callable

from botocore.exceptions import ClientError

from postureguard.domain.findings import AwsCredentials, FindingDraft, Severity


def client_error(code: str, *, status: int = 400, operation: str = "Operation") -> ClientError:
    return ClientError(
        {
            "Error": {"Code": code, "Message": f"{code} raised by test"},
            "ResponseMetadata": {"HTTPStatusCode": status},
        },
        operation,
    )


class FakeProbe:
    """In-memory probe recording every invocation.

    ``behavior`` maps a region to either a list of findings or an exception
    instance to raise; unmapped regions return ``default``.
    """

    def __init__(
        self,
        name: str,
        *,
        service: str | None = None,
        default: list[FindingDraft] | None = None,
        behavior: dict[str, Any] | None = None,
        delay_s: float = 0.0,
    ) -> None:
        self.name = name
        self.service = service or name.upper()
        self._default = default if default is not None else [finding_for(self.service)]
        self.behavior = behavior or {}
        self._delay_s = delay_s
        self.calls: list[str] = []

    async def scan(self, credentials: AwsCredentials, region: str) -> list[FindingDraft]:
        self.calls.append(region)
        if self._delay_s:
            await asyncio.sleep(self._delay_s)
        outcome = self.behavior.get(region, self._default)
        if isinstance(outcome, BaseException):
            raise outcome
        return list(outcome)


def finding_for(service: str, *, severity: Severity = Severity.MEDIUM, finding: str | None = None) -> FindingDraft:
    return FindingDraft(
        resource_id=f"{service.lower()}-resource",
        resource_type=f"{service.upper()}_RESOURCE",
        service=service,
        severity=severity,
        finding=finding or f"{service} Finding",
        description=f"{service} description",
        remediation=f"{service} remediation",
    )


class DummyClient:
    """Stand-in for a boto3 client.

    Each operation maps to a response dict, a list of response dicts served in
    order (for pagination), an exception instance, or a callable taking the
    call's kwargs.
    """

    def __init__(self, responses: dict[str, Any], *, region_name: str = "us-east-1") -> None:
        self._responses = responses
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.meta = type("Meta", (), {"region_name": region_name})()

    def __getattr__(self, operation: str) -> Callable[..., Any]:
        if operation.startswith("_"):
            raise AttributeError(operation)

        def _call(**kwargs: Any) -> Any:
            self.calls.append((operation, kwargs))
            if operation not in self._responses:
                raise AssertionError(f"unexpected call {operation}")
            response = self._responses[operation]
            if isinstance(response, list):
                response = response.pop(0) if len(response) > 1 else response[0]
            if callable(response) and not isinstance(response, BaseException):
                response = response(**kwargs)
            if isinstance(response, BaseException):
                raise response
            return response

        return _call

    def operations(self) -> list[str]:
        return [operation for operation, _kwargs in self.calls]


def client_factory_for(client: DummyClient):
    # Matches ClientFactory: (service, credentials, region) -> client.
    def _factory(service: str, credentials: AwsCredentials, region: str) -> DummyClient:
        return client

    return _factory


CREDENTIALS = AwsCredentials(access_key_id="AKIATESTKEY", secret_access_key="test-secret")
