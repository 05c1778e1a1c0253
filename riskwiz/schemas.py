# FILE: riskwiz/schemas.py
from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


PrecisionLevel = Literal["exact", "approximate"]
ConfidenceLevel = Literal["High", "Medium", "Low"]
DriftDirection = Literal["↑", "↓", "→"]
DriftMagnitude = Literal["Strong", "Moderate", "Weak"]
NodeType = Literal["Risk", "Impact", "Stress", "Response", "Market", "Behavior", "Feedback"]
Urbanicity = Literal["urban", "suburban", "rural"]

TEMPERATURE_UNIT = "°C"


# =============================================================================
# Wizard inputs
# =============================================================================


class WizardInputs(BaseModel):
    """
    Snapshot of the questionnaire selections for one orchestration call.

    Fields may be unset while the user is still moving through the steps;
    the orchestrator rejects a snapshot that is not complete. The hazard
    selection is a set: order carries no meaning and duplicates collapse.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    location_key: Optional[str] = None
    selected_hazards: Tuple[str, ...] = ()
    selected_system: Optional[str] = None
    precision_level: Optional[PrecisionLevel] = "approximate"
    # Resolved place summary from the location step; display only, never
    # part of the fingerprint.
    normalized_location: Optional[Dict[str, Any]] = None

    @field_validator("location_key", "selected_system")
    @classmethod
    def _blank_is_unset(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None

    @field_validator("selected_hazards")
    @classmethod
    def _dedupe_hazards(cls, v: Tuple[str, ...]) -> Tuple[str, ...]:
        seen: List[str] = []
        for h in v:
            h = h.strip()
            if h and h not in seen:
                seen.append(h)
        return tuple(seen)

    @property
    def effective_precision(self) -> str:
        return self.precision_level or "approximate"

    def missing_fields(self) -> List[str]:
        missing: List[str] = []
        if not self.location_key:
            missing.append("location_key")
        if not self.selected_hazards:
            missing.append("selected_hazards")
        if not self.selected_system:
            missing.append("selected_system")
        return missing

    def summary(self) -> Dict[str, Any]:
        """Compact, log-safe view of the selections."""
        return {
            "location_key": self.location_key,
            "selected_hazards": list(self.selected_hazards),
            "selected_system": self.selected_system,
            "precision_level": self.precision_level,
        }


class DashboardRequest(BaseModel):
    """
    Body of POST /api/wizard/dashboard.

    Every field is optional at the parsing layer so that a missing field is
    reported as a 400 with `{error, message}` rather than a framework 422.
    """

    model_config = ConfigDict(extra="ignore")

    location_key: Optional[str] = None
    selected_hazards: Optional[List[str]] = None
    selected_system: Optional[str] = None
    precision_level: Optional[PrecisionLevel] = None

    def to_inputs(self) -> WizardInputs:
        return WizardInputs(
            location_key=self.location_key,
            selected_hazards=tuple(self.selected_hazards or ()),
            selected_system=self.selected_system,
            precision_level=self.precision_level or "approximate",
        )


class ErrorResponse(BaseModel):
    error: str
    message: str
    details: Optional[Dict[str, Any]] = None


# =============================================================================
# Dashboard contract
# =============================================================================


class _Contract(BaseModel):
    # strict: no silent coercion of "0.5" into 0.5 or 1 into "1".
    model_config = ConfigDict(strict=True, frozen=True, extra="ignore")


class Confidence(_Contract):
    level: ConfidenceLevel
    score: Optional[float] = Field(None, ge=0.0, le=1.0)
    reason: str = Field(..., min_length=1)


class Coordinates(_Contract):
    lat: float = Field(..., ge=-90.0, le=90.0)
    lng: float = Field(..., ge=-180.0, le=180.0)


class RegionProfile(_Contract):
    climate_regime: str = Field(..., min_length=1)
    exposure_flags: List[str]
    urbanicity: Optional[Urbanicity] = None
    elevation_band: Optional[str] = None
    vegetation_class: Optional[str] = None


class Location(_Contract):
    location_key: str = Field(..., min_length=1)
    normalized_address: str = Field(..., min_length=1)
    coordinates: Optional[Coordinates] = None
    region_profile: RegionProfile


class Baseline(_Contract):
    warming_estimate: float = Field(..., ge=0.0, le=10.0)
    unit: Literal["°C"]
    period_comparison: str = Field(..., min_length=1)
    confidence: Confidence


class Drift(_Contract):
    direction: DriftDirection
    magnitude: DriftMagnitude
    confidence: ConfidenceLevel


class RiskNode(_Contract):
    id: str = Field(..., min_length=1)
    label: str = Field(..., min_length=1)
    type: NodeType
    severity: float = Field(..., ge=0.0, le=1.0)
    description: str = Field(..., min_length=1)
    drivers: List[str]
    drift: Drift
    uncertainty: str = Field(..., min_length=1)


class Spillover(_Contract):
    score: float = Field(..., ge=0.0, le=1.0)
    linked_communities: List[str]
    pathway: str = Field(..., min_length=1)


class RiskChain(_Contract):
    hazard: str = Field(..., min_length=1)
    system: str = Field(..., min_length=1)
    nodes: List[RiskNode] = Field(..., min_length=1)
    spillover: Spillover


class DatasetVersion(_Contract):
    source_id: str = Field(..., min_length=1)
    version: str = Field(..., min_length=1)
    as_of: str = Field(..., min_length=1)


class Metadata(_Contract):
    as_of_timestamp: str = Field(..., min_length=1)
    dataset_versions: List[DatasetVersion] = Field(..., min_length=1)
    provenance: str = Field(..., min_length=1)


class DashboardResult(_Contract):
    """
    The validated composite handed to the rendering layer.

    Only ever constructed by the contract validator; once built it is
    immutable and may be shared between cache readers.
    """

    location: Location
    baseline: Baseline
    risk_chain: RiskChain
    metadata: Metadata
