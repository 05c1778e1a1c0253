# riskwiz/tests/test_orchestrator.py
import asyncio
import copy
import logging

import pytest

from riskwiz.errors import ContractViolation, DispatchError, InputError
from riskwiz.metrics import WizardMetrics
from riskwiz.orchestrator import DashboardOrchestrator
from riskwiz.schemas import DashboardResult, WizardInputs

from conftest import CountingStrategy


def _run(orch, inputs):
    return asyncio.run(orch.get_dashboard(inputs))


def test_scenario_cache_miss_returns_valid_dashboard(orchestrator, inputs, counting):
    result = _run(orchestrator, inputs)
    assert isinstance(result, DashboardResult)
    assert len(result.risk_chain.nodes) >= 1
    assert all(0.0 <= n.severity <= 1.0 for n in result.risk_chain.nodes)
    assert result.baseline.unit == "°C"
    assert len(counting.calls) == 1


def test_scenario_cache_hit_returns_same_object(orchestrator, inputs, counting):
    first = _run(orchestrator, inputs)
    second = _run(orchestrator, inputs)
    assert second is first
    assert second.model_dump() == first.model_dump()
    assert len(counting.calls) == 1


def test_hazard_order_hits_the_same_entry(orchestrator, inputs, counting):
    _run(orchestrator, inputs)
    _run(orchestrator, inputs.model_copy(update={"selected_hazards": ("Flood", "Heat")}))
    assert len(counting.calls) == 1


def test_scenario_invalid_payload_is_rejected(registry, cache, valid_payload, inputs):
    bad = copy.deepcopy(valid_payload)
    bad["risk_chain"]["spillover"]["score"] = 1.2
    orch = DashboardOrchestrator(registry, cache, CountingStrategy(payload=bad))
    with pytest.raises(ContractViolation) as ei:
        _run(orch, inputs)
    assert any(e.startswith("risk_chain.spillover.score") for e in ei.value.errors)
    assert ei.value.fingerprint == orch.request_key(inputs)
    assert len(cache) == 0


@pytest.mark.parametrize(
    "change,missing",
    [
        ({"selected_hazards": ()}, "selected_hazards"),
        ({"location_key": None}, "location_key"),
        ({"selected_system": "  "}, "selected_system"),
    ],
)
def test_scenario_missing_input_fails_before_dispatch(orchestrator, inputs, counting, cache, change, missing):
    bad = WizardInputs(**dict(inputs.model_dump(), **change))
    with pytest.raises(InputError) as ei:
        _run(orchestrator, bad)
    assert missing in ei.value.missing
    assert ei.value.fingerprint is None
    assert counting.calls == []
    assert len(cache) == 0


def test_dispatch_error_propagates_with_fingerprint(registry, cache, inputs):
    orch = DashboardOrchestrator(
        registry, cache, CountingStrategy(exc=DispatchError("upstream 502", status=502, body="bad gateway"))
    )
    with pytest.raises(DispatchError) as ei:
        _run(orch, inputs)
    assert ei.value.status == 502
    assert ei.value.fingerprint == orch.request_key(inputs)
    assert len(cache) == 0


def test_unexpected_strategy_failure_becomes_dispatch_error(registry, cache, inputs):
    orch = DashboardOrchestrator(registry, cache, CountingStrategy(exc=KeyError("region")))
    with pytest.raises(DispatchError):
        _run(orch, inputs)


def test_failed_call_is_not_cached_and_retry_dispatches_again(registry, cache, inputs, valid_payload):
    bad = copy.deepcopy(valid_payload)
    bad["baseline"]["unit"] = "K"
    strategy = CountingStrategy(payload=bad)
    orch = DashboardOrchestrator(registry, cache, strategy)
    for _ in range(2):
        with pytest.raises(ContractViolation):
            _run(orch, inputs)
    assert len(strategy.calls) == 2


def test_expired_entry_dispatches_again(orchestrator, inputs, counting, clock):
    _run(orchestrator, inputs)
    clock.advance(3601)
    _run(orchestrator, inputs)
    assert len(counting.calls) == 2


def test_fingerprint_is_the_dispatch_correlation_id(orchestrator, inputs, counting):
    _run(orchestrator, inputs)
    assert counting.calls == [orchestrator.request_key(inputs)]


def test_concurrent_misses_both_dispatch_and_one_entry_survives(orchestrator, inputs, counting, cache):
    async def both():
        return await asyncio.gather(orchestrator.get_dashboard(inputs), orchestrator.get_dashboard(inputs))

    a, b = asyncio.run(both())
    assert len(counting.calls) == 2
    assert len(cache) == 1
    assert cache.get(orchestrator.request_key(inputs)) in (a, b)


def test_events_are_logged_with_fingerprint(orchestrator, inputs, caplog):
    caplog.set_level(logging.DEBUG, logger="riskwiz.orchestrator")
    _run(orchestrator, inputs)
    _run(orchestrator, inputs)
    fp = orchestrator.request_key(inputs)
    msgs = [(r.getMessage(), getattr(r, "req_id", None)) for r in caplog.records]
    assert ("dashboard.request", fp) in msgs
    assert ("dashboard.complete", fp) in msgs
    assert any(m == "cache.miss" for m, _ in msgs)
    assert any(m == "cache.hit" for m, _ in msgs)
    complete = [r for r in caplog.records if r.getMessage() == "dashboard.complete"]
    assert complete[0].node_count == 7
    assert complete[0].outcome == "computed"
    assert complete[1].outcome == "hit"


def test_failure_event_is_logged(orchestrator, inputs, caplog):
    caplog.set_level(logging.INFO, logger="riskwiz.orchestrator")
    with pytest.raises(InputError):
        _run(orchestrator, inputs.model_copy(update={"selected_hazards": ()}))
    failed = [r for r in caplog.records if r.getMessage() == "dashboard.failed"]
    assert failed and failed[0].outcome == "input_error"
    assert failed[0].stage == "validating_input"


def test_outcomes_are_counted(registry, cache, counting, inputs):
    metrics = WizardMetrics()
    orch = DashboardOrchestrator(registry, cache, counting, metrics=metrics)
    _run(orch, inputs)
    _run(orch, inputs)
    with pytest.raises(InputError):
        _run(orch, WizardInputs())

    def count(outcome):
        return metrics.sample(
            "riskwiz_dashboard_requests_total", {"outcome": outcome, "mode": "mock"}
        )

    assert count("computed") == 1.0
    assert count("hit") == 1.0
    assert count("input_error") == 1.0
    assert metrics.sample("riskwiz_cache_lookups_total", {"result": "miss"}) == 1.0
