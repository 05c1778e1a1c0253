# FILE: riskwiz/orchestrator.py
from __future__ import annotations

import enum
import logging
import time
from typing import Optional

from .cache import ResultCache
from .contract import validate_dashboard
from .datasets import DatasetRegistry
from .dispatch import AcquisitionStrategy
from .errors import ContractViolation, DispatchError, InputError, WizardError
from .fingerprint import fingerprint_for
from .logging import (
    bind,
    context,
    log_dashboard_complete,
    log_dashboard_failure,
    log_dashboard_request,
    reset,
)
from .metrics import WizardMetrics
from .schemas import DashboardResult, WizardInputs

logger = logging.getLogger(__name__)


class Stage(str, enum.Enum):
    VALIDATING_INPUT = "validating_input"
    COMPUTE_KEY = "compute_key"
    CACHE_LOOKUP = "cache_lookup"
    DISPATCH = "dispatch"
    VALIDATE = "validate"
    STORE = "store"
    DONE = "done"


_OUTCOME_BY_ERROR = (
    (InputError, "input_error"),
    (DispatchError, "dispatch_error"),
    (ContractViolation, "contract_violation"),
)


def _outcome_for(exc: WizardError) -> str:
    for cls, outcome in _OUTCOME_BY_ERROR:
        if isinstance(exc, cls):
            return outcome
    return "dispatch_error"


class DashboardOrchestrator:
    """
    Single entry point that turns wizard inputs into a validated dashboard.

    Order of work per call: input check, fingerprint, cache lookup; on a miss,
    dispatch, contract validation, store. A cached dashboard is returned
    as-is. Every payload that reaches the cache has passed validation, so no
    caller ever sees an unvalidated dashboard.

    Two concurrent misses for the same fingerprint both dispatch and both
    store; the later store wins. Both results are valid.
    """

    def __init__(
        self,
        registry: DatasetRegistry,
        cache: ResultCache[DashboardResult],
        strategy: AcquisitionStrategy,
        *,
        metrics: Optional[WizardMetrics] = None,
    ) -> None:
        self.registry = registry
        self.cache = cache
        self.strategy = strategy
        self.metrics = metrics

    @property
    def mode(self) -> str:
        return self.strategy.mode

    def check_inputs(self, inputs: WizardInputs) -> None:
        missing = inputs.missing_fields()
        if missing:
            raise InputError(
                "Missing required fields: " + ", ".join(missing),
                missing=missing,
            )

    def request_key(self, inputs: WizardInputs) -> str:
        """Fingerprint of complete inputs under the current dataset versions."""
        self.check_inputs(inputs)
        return fingerprint_for(inputs, self.registry)

    async def get_dashboard(self, inputs: WizardInputs) -> DashboardResult:
        saved_ctx = context()
        stage = Stage.VALIDATING_INPUT
        fingerprint: Optional[str] = None
        try:
            self.check_inputs(inputs)

            stage = Stage.COMPUTE_KEY
            fingerprint = fingerprint_for(inputs, self.registry)
            bind(req_id=fingerprint, mode=self.mode)
            log_dashboard_request(
                logger, fingerprint=fingerprint, inputs=inputs.summary(), mode=self.mode
            )

            stage = Stage.CACHE_LOOKUP
            t0 = time.perf_counter()
            cached = self.cache.get(fingerprint)
            if self.metrics is not None:
                self.metrics.record_cache(cached is not None, size=len(self.cache))
            if cached is not None:
                logger.debug("cache.hit", extra={"event": "cache.hit"})
                log_dashboard_complete(
                    logger,
                    fingerprint=fingerprint,
                    as_of_timestamp=cached.metadata.as_of_timestamp,
                    dataset_versions=[v.model_dump() for v in cached.metadata.dataset_versions],
                    node_count=len(cached.risk_chain.nodes),
                    cached=True,
                    latency_ms=(time.perf_counter() - t0) * 1000.0,
                )
                self._record("hit")
                return cached
            logger.debug("cache.miss", extra={"event": "cache.miss"})

            stage = Stage.DISPATCH
            t_dispatch = time.perf_counter()
            try:
                payload = await self.strategy.acquire(inputs, fingerprint)
            except DispatchError:
                self._observe_dispatch(t_dispatch, ok=False)
                raise
            except Exception as exc:
                self._observe_dispatch(t_dispatch, ok=False)
                raise DispatchError(
                    f"Data acquisition failed: {exc}",
                    fingerprint=fingerprint,
                    mode=self.mode,
                ) from exc
            self._observe_dispatch(t_dispatch, ok=True)

            stage = Stage.VALIDATE
            outcome = validate_dashboard(payload)
            if not outcome.ok:
                if self.metrics is not None:
                    self.metrics.record_contract_violation(mode=self.mode)
            result = outcome.raise_for_errors(fingerprint=fingerprint)

            stage = Stage.STORE
            self.cache.set(fingerprint, result)

            stage = Stage.DONE
            log_dashboard_complete(
                logger,
                fingerprint=fingerprint,
                as_of_timestamp=result.metadata.as_of_timestamp,
                dataset_versions=[v.model_dump() for v in result.metadata.dataset_versions],
                node_count=len(result.risk_chain.nodes),
                cached=False,
                latency_ms=(time.perf_counter() - t0) * 1000.0,
            )
            self._record("computed")
            return result
        except WizardError as exc:
            if exc.fingerprint is None and fingerprint is not None:
                exc.fingerprint = fingerprint
            outcome_tag = _outcome_for(exc)
            log_dashboard_failure(
                logger,
                fingerprint=fingerprint,
                inputs=inputs.summary(),
                outcome=outcome_tag,
                error=exc.to_dict(),
                stage=stage.value,
            )
            self._record(outcome_tag)
            raise
        finally:
            reset()
            if saved_ctx:
                bind(**saved_ctx)

    # ------------------------------------------------------------------ #

    def _record(self, outcome: str) -> None:
        if self.metrics is not None:
            self.metrics.record_outcome(outcome, mode=self.mode)

    def _observe_dispatch(self, t0: float, *, ok: bool) -> None:
        if self.metrics is not None:
            self.metrics.observe_dispatch(time.perf_counter() - t0, mode=self.mode, ok=ok)
