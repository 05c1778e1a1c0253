# FILE: riskwiz/generators.py
"""
Simulated data sources used by the mock acquisition strategy.

Each service is deterministic given its inputs; the only non-determinism is
the artificial latency, which mimics the response time of the real upstream
service and can be scaled down (or to zero) through configuration.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

import numpy as np

from .schemas import TEMPERATURE_UNIT, WizardInputs


class _SimulatedService:
    latency_s: float = 0.0

    def __init__(self, latency_scale: float = 1.0) -> None:
        self.latency_scale = max(0.0, float(latency_scale))

    async def _delay(self) -> None:
        delay = self.latency_s * self.latency_scale
        if delay > 0.0:
            await asyncio.sleep(delay)


# ---------------------------------------------------------------------------
# Location
# ---------------------------------------------------------------------------


class LocationService(_SimulatedService):
    latency_s = 0.3

    async def get_region(self, location_key: str) -> Dict[str, Any]:
        await self._delay()
        return {
            "location_key": location_key,
            "normalized_address": "Manhattan, New York, NY",
            "coordinates": {"lat": 40.7128, "lng": -74.006},
            "region_profile": {
                "climate_regime": "Humid Subtropical",
                "exposure_flags": ["Coastal", "Urban Heat Island"],
                "urbanicity": "urban",
            },
        }


# ---------------------------------------------------------------------------
# Warming baseline
# ---------------------------------------------------------------------------


class ClimateService(_SimulatedService):
    latency_s = 0.8

    async def get_baseline(self, inputs: WizardInputs) -> Dict[str, Any]:
        await self._delay()
        exact = inputs.effective_precision == "exact"
        return {
            "warming_estimate": 1.4 if exact else 1.2,
            "unit": TEMPERATURE_UNIT,
            "period_comparison": "vs 1850-1900 global baseline",
            "confidence": {
                "level": "High" if exact else "Medium",
                "reason": (
                    "Anchored to NOAA v5.1 modern reanalysis"
                    if exact
                    else "ERA5 reanalysis with bias correction"
                ),
            },
        }


# ---------------------------------------------------------------------------
# Risk chain
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class _NodeTemplate:
    type: str
    label: str
    description: str
    drivers: Tuple[str, ...]
    base_severity: float
    drift: Tuple[str, str, str]  # direction, magnitude, confidence
    uncertainty: str


_CHAIN: Tuple[_NodeTemplate, ...] = (
    _NodeTemplate("Risk", "Extreme {hazard} Event", "Primary hazard intensification event",
                  ("Climate Change", "Natural Variability"), 0.85, ("↑", "Strong", "High"), "Low"),
    _NodeTemplate("Impact", "Infrastructure Stress", "Physical degradation of critical assets",
                  ("Extreme Heat", "Aging Infrastructure"), 0.70, ("↑", "Moderate", "Medium"), "Medium"),
    _NodeTemplate("Stress", "{system} System Pressure", "Operational capacity near limits",
                  ("Infrastructure Stress", "Demand Surge"), 0.72, ("→", "Weak", "Medium"), "Medium"),
    _NodeTemplate("Response", "Emergency Response Activation", "Deployment of contingency resources",
                  ("System Pressure",), 0.58, ("→", "Weak", "Low"), "High"),
    _NodeTemplate("Market", "Economic Ripple Effects", "Localized financial disruption",
                  ("System Pressure", "Response Costs"), 0.45, ("↑", "Moderate", "Medium"), "High"),
    _NodeTemplate("Behavior", "Population Adaptation", "Short-term behavioral shifts",
                  ("Perceived Risk",), 0.52, ("→", "Weak", "Low"), "Very High"),
    _NodeTemplate("Feedback", "Systemic Feedback Loop", "Reinforcing cycle of vulnerability",
                  ("Economic Ripple Effects", "Population Adaptation"), 0.38, ("↑", "Strong", "Low"), "High"),
)

# Each extra co-occurring hazard compounds severities by this factor.
_COMPOUND_PER_HAZARD = 0.04
# Downstream nodes contribute less to regional spillover.
_SPILLOVER_DECAY = 0.8


def chain_severities(n_hazards: int) -> np.ndarray:
    """Node severities for a chain driven by `n_hazards` co-occurring hazards."""
    base = np.array([t.base_severity for t in _CHAIN], dtype=float)
    factor = 1.0 + _COMPOUND_PER_HAZARD * max(0, n_hazards - 1)
    return np.round(np.clip(base * factor, 0.0, 1.0), 2)


def spillover_score(severities: np.ndarray) -> float:
    """Decay-weighted mean severity, in [0, 1]."""
    if severities.size == 0:
        return 0.0
    weights = _SPILLOVER_DECAY ** np.arange(severities.size, dtype=float)
    score = float(np.average(severities, weights=weights))
    return round(min(1.0, max(0.0, score)), 2)


class RiskService(_SimulatedService):
    latency_s = 1.0

    async def get_chain(self, inputs: WizardInputs) -> Dict[str, Any]:
        await self._delay()

        # Lexicographic first, so the chain depends on the hazard set only.
        hazard = sorted(inputs.selected_hazards)[0] if inputs.selected_hazards else "Heat"
        system = inputs.selected_system or "Health"
        severities = chain_severities(len(inputs.selected_hazards))

        nodes: List[Dict[str, Any]] = []
        for i, (tpl, severity) in enumerate(zip(_CHAIN, severities), start=1):
            direction, magnitude, confidence = tpl.drift
            nodes.append(
                {
                    "id": f"node_{i}",
                    "type": tpl.type,
                    "label": tpl.label.format(hazard=hazard, system=system),
                    "severity": float(severity),
                    "description": tpl.description,
                    "drivers": list(tpl.drivers),
                    "drift": {
                        "direction": direction,
                        "magnitude": magnitude,
                        "confidence": confidence,
                    },
                    "uncertainty": tpl.uncertainty,
                }
            )

        return {
            "hazard": hazard,
            "system": system,
            "nodes": nodes,
            "spillover": {
                "score": spillover_score(severities),
                "linked_communities": ["Adjacent Metro Area", "Upstream Region", "Connected Zone"],
                "pathway": "Commuting/Labor",
            },
        }
