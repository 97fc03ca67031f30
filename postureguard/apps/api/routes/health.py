from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel

from postureguard.core.config import get_settings, parse_probe_names
from postureguard.services import telemetry


router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: str


class MetricsResponse(BaseModel):
    counters: dict[str, int]
    external_calls: dict[str, dict[str, float]]
    probes: list[str]


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(status="ok")


@router.get("/ops/metrics", response_model=MetricsResponse)
async def ops_metrics() -> MetricsResponse:
    # In-process counters only; each API replica reports its own view.
    data = telemetry.snapshot()
    return MetricsResponse(
        counters=data["counters"],
        external_calls=data["external_calls"],
        probes=parse_probe_names(get_settings().scan_probes),
    )
