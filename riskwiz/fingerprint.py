# FILE: riskwiz/fingerprint.py
from __future__ import annotations

from typing import TYPE_CHECKING, Iterable

from .schemas import WizardInputs

if TYPE_CHECKING:  # pragma: no cover
    from .datasets import DatasetRegistry


NAMESPACE = "wizard"
FIELD_SEP = ":"
HAZARD_SEP = ","

# '%' first so already-escaped text is not escaped twice.
_ESCAPES = (("%", "%25"), (FIELD_SEP, "%3A"), (HAZARD_SEP, "%2C"))


def _escape(value: str) -> str:
    for raw, quoted in _ESCAPES:
        value = value.replace(raw, quoted)
    return value


def hazards_key(hazards: Iterable[str]) -> str:
    """Sorted, de-duplicated, comma-joined hazard tags."""
    return HAZARD_SEP.join(_escape(h) for h in sorted(set(hazards)))


def compute_fingerprint(inputs: WizardInputs, dataset_hash: str) -> str:
    """
    Deterministic request identifier, used as cache key and as the
    X-Request-ID correlation header.

    Layout: wizard:<location>:<precision>:<hazards>:<system>:<dataset_hash>.
    Field values are escaped so the delimiters never appear inside a field.
    The caller guarantees location, hazards and system are present.
    """
    return FIELD_SEP.join(
        [
            NAMESPACE,
            _escape(inputs.location_key or ""),
            _escape(inputs.effective_precision),
            hazards_key(inputs.selected_hazards),
            _escape(inputs.selected_system or ""),
            _escape(dataset_hash),
        ]
    )


def fingerprint_for(inputs: WizardInputs, registry: "DatasetRegistry") -> str:
    return compute_fingerprint(inputs, registry.hash())
