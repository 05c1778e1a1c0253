# FILE: riskwiz/dispatch.py
"""
Data acquisition for one dashboard request.

Two strategies share one interface; which one a process uses is decided once
from configuration by `build_strategy`. Both hand back an *unvalidated*
mapping: the orchestrator owns validation.
"""

from __future__ import annotations

import asyncio
import datetime as _dt
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from .config import Settings
from .datasets import DatasetRegistry
from .errors import DispatchError
from .generators import ClimateService, LocationService, RiskService
from .schemas import WizardInputs

logger = logging.getLogger(__name__)

PROVENANCE_NOTE = "Combined regional anomaly modeling with local connectivity graph service."
DASHBOARD_PATH = "/wizard/dashboard"
REQUEST_ID_HEADER = "X-Request-ID"

# Upstream error bodies are kept for diagnostics, but not unbounded.
_MAX_ERROR_BODY = 4096


def _utc_now_iso() -> str:
    return _dt.datetime.now(_dt.timezone.utc).isoformat(timespec="milliseconds").replace(
        "+00:00", "Z"
    )


class AcquisitionStrategy(ABC):
    mode: str = ""

    @abstractmethod
    async def acquire(self, inputs: WizardInputs, fingerprint: str) -> Dict[str, Any]:
        """Produce the raw dashboard payload, or raise DispatchError."""

    async def aclose(self) -> None:
        return None


class SimulatedStrategy(AcquisitionStrategy):
    """
    Local generators run concurrently and joined; any failure fails the whole
    call, so a partial dashboard is never assembled.
    """

    mode = "mock"

    def __init__(
        self,
        registry: DatasetRegistry,
        *,
        latency_scale: float = 1.0,
        location: Optional[LocationService] = None,
        climate: Optional[ClimateService] = None,
        risk: Optional[RiskService] = None,
    ) -> None:
        self.registry = registry
        self.location = location or LocationService(latency_scale)
        self.climate = climate or ClimateService(latency_scale)
        self.risk = risk or RiskService(latency_scale)

    async def acquire(self, inputs: WizardInputs, fingerprint: str) -> Dict[str, Any]:
        logger.debug("dispatch.mode", extra={"event": "dispatch.mode", "mode": self.mode})
        try:
            region, baseline, chain = await asyncio.gather(
                self.location.get_region(inputs.location_key or ""),
                self.climate.get_baseline(inputs),
                self.risk.get_chain(inputs),
            )
        except Exception as exc:
            raise DispatchError(
                f"Simulated data generation failed: {exc}",
                fingerprint=fingerprint,
                mode=self.mode,
            ) from exc

        return {
            "location": region,
            "baseline": baseline,
            "risk_chain": chain,
            "metadata": {
                "as_of_timestamp": _utc_now_iso(),
                "dataset_versions": list(self.registry.records()),
                "provenance": PROVENANCE_NOTE,
            },
        }


class RemoteStrategy(AcquisitionStrategy):
    """
    One POST to the dashboard backend with the fingerprint as X-Request-ID.

    No retries here: a timeout, a transport failure or a non-2xx answer is a
    DispatchError for the caller to surface.
    """

    mode = "real"

    def __init__(
        self,
        settings: Settings,
        *,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.url = settings.endpoint_url(DASHBOARD_PATH)
        self.timeout_s = settings.timeout_s
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout_s,
                limits=httpx.Limits(max_keepalive_connections=10, max_connections=50),
            )
        return self._client

    async def acquire(self, inputs: WizardInputs, fingerprint: str) -> Dict[str, Any]:
        logger.debug(
            "dispatch.mode",
            extra={"event": "dispatch.mode", "mode": self.mode, "url": self.url},
        )
        client = self._get_client()
        try:
            response = await client.post(
                self.url,
                json=inputs.summary(),
                headers={REQUEST_ID_HEADER: fingerprint},
                timeout=self.timeout_s,
            )
        except httpx.TimeoutException as exc:
            raise DispatchError(
                f"API request timed out after {self.timeout_s:g}s",
                fingerprint=fingerprint,
                mode=self.mode,
            ) from exc
        except httpx.HTTPError as exc:
            raise DispatchError(
                f"API request failed: {exc}",
                fingerprint=fingerprint,
                mode=self.mode,
            ) from exc

        if not response.is_success:
            body = response.text[:_MAX_ERROR_BODY]
            logger.error(
                "dispatch.upstream_error",
                extra={"status": response.status_code, "body": body, "req_id": fingerprint},
            )
            raise DispatchError(
                f"API request failed: {response.status_code} {response.reason_phrase}",
                fingerprint=fingerprint,
                status=response.status_code,
                body=body,
                mode=self.mode,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise DispatchError(
                "API response is not valid JSON",
                fingerprint=fingerprint,
                status=response.status_code,
                body=response.text[:_MAX_ERROR_BODY],
                mode=self.mode,
            ) from exc

        # Shape is the validator's job; only peek at a well-formed metadata.
        meta = payload.get("metadata") if isinstance(payload, dict) else None
        logger.info(
            "dispatch.remote_ok",
            extra={
                "req_id": fingerprint,
                "as_of": meta.get("as_of_timestamp") if isinstance(meta, dict) else None,
            },
        )
        return payload

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


def build_strategy(
    settings: Settings,
    registry: DatasetRegistry,
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> AcquisitionStrategy:
    if settings.is_mock:
        return SimulatedStrategy(registry, latency_scale=settings.mock_latency_scale)
    return RemoteStrategy(settings, client=client)
