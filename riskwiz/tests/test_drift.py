# riskwiz/tests/test_drift.py
import pytest

from riskwiz.drift import COLLECTION_STEP, STALE_NOTICE, DriftState, DriftTracker


@pytest.fixture
def tracker(orchestrator):
    return DriftTracker(orchestrator.request_key)


@pytest.fixture
def fresh(tracker, orchestrator, inputs):
    tracker.record_result(orchestrator.request_key(inputs), object())
    return tracker


def test_initial_state(tracker):
    assert tracker.state is DriftState.NO_RESULT
    assert tracker.last_key is None
    assert tracker.result is None


def test_record_result_is_fresh(fresh, orchestrator, inputs):
    assert fresh.state is DriftState.RESULT_FRESH
    assert fresh.last_key == orchestrator.request_key(inputs)
    assert fresh.is_fresh_for(inputs)


def test_identical_inputs_do_not_transition(fresh, inputs):
    decision = fresh.observe(inputs, current_step=6)
    assert not decision.invalidated
    assert fresh.state is DriftState.RESULT_FRESH


def test_reordered_hazards_do_not_transition(fresh, inputs):
    decision = fresh.observe(inputs.model_copy(update={"selected_hazards": ("Flood", "Heat")}), 5)
    assert not decision.invalidated


@pytest.mark.parametrize(
    "change",
    [
        {"location_key": "geo_2"},
        {"selected_hazards": ("Heat", "Flood", "Storm")},
        {"selected_system": "Power"},
        {"precision_level": "exact"},
    ],
)
def test_changed_inputs_go_stale_then_empty(fresh, inputs, change):
    decision = fresh.observe(inputs.model_copy(update=change), current_step=5)
    assert decision.invalidated
    assert decision.transitions == (DriftState.RESULT_STALE, DriftState.NO_RESULT)
    assert decision.notice == STALE_NOTICE
    assert decision.navigate_to == COLLECTION_STEP
    assert fresh.state is DriftState.NO_RESULT
    assert fresh.result is None
    assert fresh.last_key is None


@pytest.mark.parametrize("step", [1, 2, 3])
def test_no_navigation_when_not_past_collection_step(fresh, inputs, step):
    decision = fresh.observe(inputs.model_copy(update={"selected_system": "Power"}), step)
    assert decision.invalidated
    assert decision.navigate_to is None


def test_incomplete_inputs_count_as_a_change(fresh, inputs):
    decision = fresh.observe(inputs.model_copy(update={"selected_hazards": ()}), 4)
    assert decision.invalidated


def test_nothing_to_invalidate_without_result(tracker, inputs):
    decision = tracker.observe(inputs.model_copy(update={"location_key": "geo_9"}), 6)
    assert not decision.invalidated
    assert tracker.state is DriftState.NO_RESULT


def test_change_during_computation_is_deferred(fresh, inputs):
    fresh.begin_computation()
    decision = fresh.observe(inputs.model_copy(update={"selected_system": "Power"}), 6)
    assert decision.deferred and not decision.invalidated
    assert fresh.state is DriftState.RESULT_FRESH

    replay = fresh.end_computation()
    assert replay.invalidated
    assert replay.navigate_to == COLLECTION_STEP
    assert fresh.state is DriftState.NO_RESULT


def test_deferred_change_matching_new_result_does_not_transition(tracker, orchestrator, inputs):
    changed = inputs.model_copy(update={"selected_system": "Power"})
    tracker.begin_computation()
    tracker.observe(changed, 3)
    tracker.record_result(orchestrator.request_key(changed), object())
    assert not tracker.end_computation().invalidated
    assert tracker.state is DriftState.RESULT_FRESH


def test_only_latest_deferred_observation_is_replayed(fresh, inputs):
    fresh.begin_computation()
    fresh.observe(inputs.model_copy(update={"selected_system": "Power"}), 6)
    fresh.observe(inputs, 6)
    assert not fresh.end_computation().invalidated
    assert fresh.state is DriftState.RESULT_FRESH


def test_discard(fresh):
    fresh.discard()
    assert fresh.state is DriftState.NO_RESULT


def test_replay_uses_step_at_end_of_computation(fresh, inputs):
    fresh.begin_computation()
    fresh.observe(inputs.model_copy(update={"selected_system": "Energy"}), COLLECTION_STEP)
    replay = fresh.end_computation(COLLECTION_STEP + 1)
    assert replay.invalidated
    assert replay.navigate_to == COLLECTION_STEP
