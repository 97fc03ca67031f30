from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    EndpointConnectionError,
    NoCredentialsError,
    PartialCredentialsError,
    ReadTimeoutError,
)

from postureguard.domain.findings import AwsCredentials, FindingDraft
from postureguard.services.resilience import TransientException, retry_async
from postureguard.services.telemetry import increment_counter, record_external_call


logger = logging.getLogger(__name__)

ClientFactory = Callable[[str, AwsCredentials, str], Any]

_CREDENTIAL_ERROR_CODES = {
    "UnrecognizedClientException",
    "InvalidClientTokenId",
    "ExpiredTokenException",
    "ExpiredToken",
    "SignatureDoesNotMatch",
    "AccessDeniedException",
    "AccessDenied",
    "AuthFailure",
    "UnauthorizedOperation",
}
_THROTTLING_ERROR_CODES = {
    "Throttling",
    "ThrottlingException",
    "ThrottledException",
    "RequestLimitExceeded",
    "TooManyRequestsException",
    "RequestThrottled",
}
# botocore retries are disabled; retry_async owns the policy.
_BOTO_CONFIG = Config(retries={"max_attempts": 1, "mode": "standard"}, connect_timeout=10, read_timeout=30)


class Probe(Protocol):
    name: str
    service: str

    async def scan(self, credentials: AwsCredentials, region: str) -> list[FindingDraft]:
        ...


def error_code(exc: BaseException) -> str | None:
    if isinstance(exc, ClientError):
        return exc.response.get("Error", {}).get("Code")
    return None


def http_status(exc: BaseException) -> int | None:
    if isinstance(exc, ClientError):
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        return status if isinstance(status, int) else None
    return None


def is_credential_error(exc: BaseException) -> bool:
    """Return True when AWS rejected the caller rather than the request."""
    if isinstance(exc, (NoCredentialsError, PartialCredentialsError)):
        return True
    if http_status(exc) in {401, 403}:
        return True
    if error_code(exc) in _CREDENTIAL_ERROR_CODES:
        return True
    if exc.__class__.__name__ in _CREDENTIAL_ERROR_CODES:
        return True
    message = str(exc)
    return "credentials" in message.lower() or "AccessDenied" in message


def is_retryable_aws_error(exc: Exception) -> bool:
    if isinstance(exc, (EndpointConnectionError, ConnectTimeoutError, ReadTimeoutError)):
        return True
    if isinstance(exc, (asyncio.TimeoutError,) + TransientException):
        return True
    if isinstance(exc, ClientError):
        if error_code(exc) in _THROTTLING_ERROR_CODES:
            return True
        status = http_status(exc)
        return isinstance(status, int) and status >= 500
    return False


def build_boto3_client(service: str, credentials: AwsCredentials, region: str) -> Any:
    # A fresh session per probe invocation; nothing is shared across accounts.
    session = boto3.session.Session(
        aws_access_key_id=credentials.access_key_id,
        aws_secret_access_key=credentials.secret_access_key,
        aws_session_token=credentials.session_token,
        region_name=region,
    )
    return session.client(service, config=_BOTO_CONFIG)


class BaseProbe:
    """Shared plumbing for per-service probes.

    Subclasses set ``name``/``service``/``client_name`` and implement
    ``collect``, appending drafts to the list they are given. ``scan`` logs
    and swallows any failure, returning what was collected before it.
    """

    name: str = ""
    service: str = ""
    client_name: str = ""

    def __init__(self, client_factory: ClientFactory | None = None) -> None:
        self._client_factory = client_factory or build_boto3_client

    def client(self, credentials: AwsCredentials, region: str) -> Any:
        return self._client_factory(self.client_name, credentials, region)

    async def scan(self, credentials: AwsCredentials, region: str) -> list[FindingDraft]:
        findings: list[FindingDraft] = []
        try:
            client = self.client(credentials, region)
            await self.collect(client, findings)
        except (BotoCoreError, ClientError, TimeoutError, OSError) as exc:
            increment_counter(f"probe_errors_swallowed_total.{self.name}")
            logger.warning(
                "probe_error probe=%s region=%s code=%s collected=%s",
                self.name,
                region,
                error_code(exc),
                len(findings),
                exc_info=exc,
            )
        return findings

    async def collect(self, client: Any, findings: list[FindingDraft]) -> None:
        raise NotImplementedError

    async def call(self, client: Any, operation: str, **kwargs: Any) -> dict[str, Any]:
        # Run the blocking boto3 call off the event loop with bounded retries.
        method = getattr(client, operation)
        start = time.monotonic()
        try:
            response = await retry_async(
                lambda: asyncio.to_thread(method, **kwargs),
                retryable=is_retryable_aws_error,
            )
        except Exception:
            record_external_call(
                integration=f"aws.{self.name}",
                latency_ms=(time.monotonic() - start) * 1000.0,
                success=False,
            )
            raise
        record_external_call(
            integration=f"aws.{self.name}",
            latency_ms=(time.monotonic() - start) * 1000.0,
            success=True,
        )
        return response if isinstance(response, dict) else {}

    async def paginate(
        self,
        client: Any,
        operation: str,
        *,
        items_key: str,
        request_token: str = "NextToken",
        response_token: str = "NextToken",
        **kwargs: Any,
    ) -> list[Any]:
        # Follow continuation tokens until the listing is exhausted.
        items: list[Any] = []
        params = dict(kwargs)
        while True:
            page = await self.call(client, operation, **params)
            items.extend(page.get(items_key) or [])
            token = page.get(response_token)
            if not token:
                return items
            params[request_token] = token

    def draft(self, **fields: Any) -> FindingDraft:
        fields.setdefault("service", self.service)
        return FindingDraft(**fields)
