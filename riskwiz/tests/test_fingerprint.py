# riskwiz/tests/test_fingerprint.py
import pytest

from riskwiz.datasets import DatasetRegistry
from riskwiz.fingerprint import compute_fingerprint, fingerprint_for, hazards_key
from riskwiz.schemas import WizardInputs


def _inputs(**kw):
    base = dict(
        location_key="geo_1",
        selected_hazards=("Heat", "Flood"),
        selected_system="Health",
        precision_level="approximate",
    )
    base.update(kw)
    return WizardInputs(**base)


def test_layout(registry):
    fp = fingerprint_for(_inputs(), registry)
    assert fp == f"wizard:geo_1:approximate:Flood,Heat:Health:{registry.hash()}"


def test_hazard_order_does_not_matter(registry):
    a = fingerprint_for(_inputs(selected_hazards=("Heat", "Flood", "Storm")), registry)
    b = fingerprint_for(_inputs(selected_hazards=("Storm", "Heat", "Flood")), registry)
    assert a == b


def test_duplicate_hazards_collapse(registry):
    a = fingerprint_for(_inputs(selected_hazards=("Heat", "Heat", "Flood")), registry)
    b = fingerprint_for(_inputs(selected_hazards=("Flood", "Heat")), registry)
    assert a == b


@pytest.mark.parametrize(
    "change",
    [
        {"location_key": "geo_2"},
        {"selected_hazards": ("Heat", "Flood", "Drought")},
        {"selected_hazards": ("Heat",)},
        {"selected_system": "Power"},
        {"precision_level": "exact"},
    ],
)
def test_any_input_change_changes_fingerprint(registry, change):
    assert fingerprint_for(_inputs(**change), registry) != fingerprint_for(_inputs(), registry)


def test_dataset_version_change_changes_fingerprint(registry):
    bumped = DatasetRegistry(dict(registry.current(), reanalysis="v5.2"))
    assert fingerprint_for(_inputs(), bumped) != fingerprint_for(_inputs(), registry)


def test_missing_precision_defaults_to_approximate(registry):
    assert fingerprint_for(_inputs(precision_level=None), registry) == fingerprint_for(
        _inputs(), registry
    )


def test_delimiters_in_values_cannot_collide():
    # "a:b" + "c" must not look like "a" + "b:c"
    one = compute_fingerprint(_inputs(location_key="a:b", selected_system="c"), "h")
    two = compute_fingerprint(_inputs(location_key="a", selected_system="b:c"), "h")
    assert one != two
    assert one.count(":") == two.count(":") == 5


def test_comma_in_hazard_tag_is_escaped():
    assert hazards_key(["Heat,Flood"]) != hazards_key(["Heat", "Flood"])


def test_fingerprint_is_pure(registry):
    inp = _inputs()
    assert {fingerprint_for(inp, registry) for _ in range(10)} == {fingerprint_for(inp, registry)}
