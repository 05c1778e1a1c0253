# riskwiz/tests/test_wizard.py
import asyncio
import copy
import json

import pytest

from riskwiz.orchestrator import DashboardOrchestrator
from riskwiz.wizard import STEPS, WizardSession

from conftest import CountingStrategy


@pytest.fixture
def session(orchestrator):
    return WizardSession(orchestrator)


def _fill(session):
    session.update(location_key="geo_1")
    assert asyncio.run(session.next())
    session.update(selected_hazards=["Heat", "Flood"])
    assert asyncio.run(session.next())
    session.update(selected_system="Health")


def test_steps():
    assert [s.title for s in STEPS] == [
        "Location",
        "Climate Pressure",
        "System Concern",
        "Warming Baseline",
        "Risk Chain",
        "Dashboard",
    ]


def test_cannot_proceed_without_location(session):
    assert not session.can_proceed()
    assert not asyncio.run(session.next())
    assert session.current_step == 1


def test_step_three_submits_and_advances(session, counting):
    _fill(session)
    assert session.current_step == 3
    assert asyncio.run(session.next())
    assert session.current_step == 4
    assert session.dashboard is not None
    assert session.error is None
    assert len(counting.calls) == 1


def test_result_steps_need_a_dashboard(session):
    _fill(session)
    asyncio.run(session.next())
    assert asyncio.run(session.next())
    assert asyncio.run(session.next())
    assert session.current_step == 6
    assert not asyncio.run(session.next())
    assert session.progress == 100.0


def test_back_and_forward_without_changes_does_not_resubmit(session, counting):
    _fill(session)
    asyncio.run(session.next())
    assert session.back()
    assert session.current_step == 3
    assert asyncio.run(session.next())
    assert session.current_step == 4
    assert len(counting.calls) == 1


def test_edit_after_dashboard_sends_user_back(session, counting):
    _fill(session)
    asyncio.run(session.next())
    asyncio.run(session.next())
    assert session.current_step == 5

    session.update(selected_system="Power")
    assert session.current_step == 3
    assert session.dashboard is None
    assert session.notice is not None and session.notice.title == "Inputs Changed"

    assert asyncio.run(session.next())
    assert session.current_step == 4
    assert len(counting.calls) == 2


def test_failure_keeps_step_and_records_debug_context(registry, cache, valid_payload):
    bad = copy.deepcopy(valid_payload)
    bad["risk_chain"]["nodes"] = []
    session = WizardSession(DashboardOrchestrator(registry, cache, CountingStrategy(payload=bad)))
    _fill(session)

    assert not asyncio.run(session.next())
    assert session.current_step == 3
    assert session.error.startswith("Invalid dashboard structure")
    assert not session.loading

    ctx = session.debug_context()
    json.dumps(ctx)
    assert ctx["code"] == "contract_violation"
    assert ctx["inputs"]["selected_system"] == "Health"
    assert ctx["request_key"].startswith("wizard:geo_1:approximate:Flood,Heat:Health:")
    assert ctx["timestamp"]


def test_update_rejects_unknown_fields(session):
    with pytest.raises(TypeError):
        session.update(color="blue")


def test_restart(session):
    _fill(session)
    asyncio.run(session.next())
    session.restart()
    assert session.current_step == 1
    assert session.dashboard is None
    assert session.inputs.selected_hazards == ()
    assert session.debug_context() is None


class EditingStrategy(CountingStrategy):
    """Applies an input edit while the dispatch is still running."""

    def __init__(self, inner, edit):
        super().__init__(inner=inner)
        self.edit = edit

    async def acquire(self, inputs, fingerprint):
        self.edit()
        return await super().acquire(inputs, fingerprint)


def test_edit_during_submission_returns_to_collection_step(registry, cache, simulated):
    holder = {}
    strategy = EditingStrategy(simulated, lambda: holder["s"].update(selected_system="Energy"))
    session = WizardSession(DashboardOrchestrator(registry, cache, strategy))
    holder["s"] = session
    _fill(session)

    asyncio.run(session.next())
    assert session.dashboard is None
    assert session.current_step == 3
    assert session.notice is not None and session.notice.title == "Inputs Changed"
    assert session.inputs.selected_system == "Energy"
    assert len(strategy.calls) == 1
