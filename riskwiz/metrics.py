# FILE: riskwiz/metrics.py
# Prometheus metrics for the dashboard orchestration service.
#
# - Each WizardMetrics owns its CollectorRegistry, so several apps (tests,
#   embedded use) can live in one process without duplicate registration.
# - Label sets are small and fixed; values are truncated to keep the
#   cardinality bounded. Fingerprints never become label values.
# - A disabled instance keeps the same surface and records nothing.

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Dict, Optional, Tuple

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)

logger = logging.getLogger(__name__)

OUTCOMES: Tuple[str, ...] = (
    "hit",
    "computed",
    "input_error",
    "dispatch_error",
    "contract_violation",
)

_LATENCY_BUCKETS = (0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0)


def _safe_str(value: Any) -> str:
    """None -> "", long values truncated to 64 characters."""
    if value is None:
        return ""
    s = str(value)
    if len(s) > 64:
        s = s[:61] + "..."
    return s


class WizardMetrics:
    """
    Metric surface of the wizard service.

        metrics = WizardMetrics(version="0.3.0", config_hash="...")
        metrics.record_outcome("computed", mode="mock")
        metrics.observe_dispatch(0.42, mode="mock", ok=True)
        body, ctype = metrics.render()
    """

    def __init__(
        self,
        *,
        version: str = "0.0.0",
        config_hash: str = "",
        enabled: bool = True,
        registry: Optional[CollectorRegistry] = None,
    ) -> None:
        self.version = str(version)
        self.config_hash_value = str(config_hash)
        self.enabled = bool(enabled)
        self.registry = registry if registry is not None else CollectorRegistry(auto_describe=True)
        self._lock = threading.Lock()

        self._build_info = Info(
            "riskwiz_build",
            "Wizard service build metadata",
            registry=self.registry,
        )
        self._build_info.info({"version": self.version, "config_hash": self.config_hash_value})

        self._outcome_counter = Counter(
            "riskwiz_dashboard_requests_total",
            "Dashboard orchestration calls by terminal outcome",
            ["outcome", "mode"],
            registry=self.registry,
        )
        self._cache_counter = Counter(
            "riskwiz_cache_lookups_total",
            "Result cache lookups",
            ["result"],
            registry=self.registry,
        )
        self._cache_size = Gauge(
            "riskwiz_cache_entries",
            "Entries currently held by the result cache (expired ones included until swept)",
            registry=self.registry,
        )
        self._dispatch_hist = Histogram(
            "riskwiz_dispatch_latency_seconds",
            "Latency of data acquisition",
            ["mode", "ok"],
            buckets=_LATENCY_BUCKETS,
            registry=self.registry,
        )
        self._validation_failures = Counter(
            "riskwiz_contract_violations_total",
            "Dispatched payloads rejected by the dashboard contract",
            ["mode"],
            registry=self.registry,
        )
        self._http_counter = Counter(
            "riskwiz_http_requests_total",
            "HTTP requests by route and status class",
            ["route", "method", "status"],
            registry=self.registry,
        )
        self._http_hist = Histogram(
            "riskwiz_http_request_seconds",
            "HTTP request latency",
            ["route"],
            buckets=_LATENCY_BUCKETS,
            registry=self.registry,
        )
        self._last_success_ts = Gauge(
            "riskwiz_last_dashboard_success_timestamp",
            "Unix time of the last successfully served dashboard",
            registry=self.registry,
        )

    # ------------------------------------------------------------------ #
    # Orchestration
    # ------------------------------------------------------------------ #

    def record_outcome(self, outcome: str, *, mode: str) -> None:
        if not self.enabled:
            return
        if outcome not in OUTCOMES:
            logger.debug("unknown orchestration outcome %r", outcome)
            return
        self._outcome_counter.labels(outcome=outcome, mode=_safe_str(mode)).inc()
        if outcome in ("hit", "computed"):
            self._last_success_ts.set(time.time())

    def record_cache(self, hit: bool, *, size: Optional[int] = None) -> None:
        if not self.enabled:
            return
        self._cache_counter.labels(result="hit" if hit else "miss").inc()
        if size is not None:
            self._cache_size.set(max(0, int(size)))

    def observe_dispatch(self, seconds: float, *, mode: str, ok: bool) -> None:
        if not self.enabled:
            return
        self._dispatch_hist.labels(mode=_safe_str(mode), ok="1" if ok else "0").observe(
            max(0.0, float(seconds))
        )

    def record_contract_violation(self, *, mode: str) -> None:
        if not self.enabled:
            return
        self._validation_failures.labels(mode=_safe_str(mode)).inc()

    # ------------------------------------------------------------------ #
    # HTTP
    # ------------------------------------------------------------------ #

    def observe_http(self, *, route: str, method: str, status: int, seconds: float) -> None:
        if not self.enabled:
            return
        self._http_counter.labels(
            route=_safe_str(route), method=_safe_str(method), status=f"{int(status) // 100}xx"
        ).inc()
        self._http_hist.labels(route=_safe_str(route)).observe(max(0.0, float(seconds)))

    # ------------------------------------------------------------------ #
    # Exposition
    # ------------------------------------------------------------------ #

    def render(self) -> Tuple[bytes, str]:
        with self._lock:
            return generate_latest(self.registry), CONTENT_TYPE_LATEST

    def sample(self, name: str, labels: Optional[Dict[str, str]] = None) -> Optional[float]:
        """Current value of one sample, or None when it has not been recorded."""
        return self.registry.get_sample_value(name, labels or {})
