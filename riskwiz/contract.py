# FILE: riskwiz/contract.py
"""
Dashboard contract validation.

Every dashboard, whichever acquisition strategy produced it, passes through
`validate_dashboard` before it is cached or returned. The validator is a
total function: it reports problems as an ordered list of
"path: message" strings and never raises.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence, Tuple

from pydantic import ValidationError

from .errors import ContractViolation
from .schemas import DashboardResult

logger = logging.getLogger(__name__)

_TOP_LEVEL_SECTIONS = ("location", "baseline", "risk_chain", "metadata")

# Friendlier wording for the constrained fields, keyed by pydantic error type.
_MESSAGES = {
    "literal_error": "must be one of {expected}",
    "greater_than_equal": "must be >= {ge}",
    "less_than_equal": "must be <= {le}",
    "too_short": "must not be empty",
    "string_too_short": "is required",
    "missing": "is required",
}


@dataclass(frozen=True)
class ValidationOutcome:
    """
    Result of validating an untrusted value against the dashboard contract.

    Exactly one of `data` (on success) or a non-empty `errors` (on failure)
    is populated.
    """

    ok: bool
    data: Optional[DashboardResult] = None
    errors: Tuple[str, ...] = ()

    def raise_for_errors(self, *, fingerprint: Optional[str] = None) -> DashboardResult:
        if not self.ok or self.data is None:
            raise ContractViolation(self.errors, fingerprint=fingerprint)
        return self.data


def _format_path(loc: Sequence[Any]) -> str:
    return ".".join(str(p) for p in loc) or "<root>"


def _format_message(err: dict) -> str:
    template = _MESSAGES.get(err.get("type", ""))
    ctx = err.get("ctx") or {}
    if template is not None:
        try:
            return template.format(**ctx)
        except (KeyError, IndexError):
            pass
    return str(err.get("msg") or "invalid value")


def _errors_from(exc: ValidationError) -> Tuple[str, ...]:
    return tuple(
        f"{_format_path(err.get('loc', ()))}: {_format_message(err)}"
        for err in exc.errors(include_url=False)
    )


def validate_dashboard(value: Any) -> ValidationOutcome:
    """
    Check `value` against the dashboard contract.

    Covers presence of the four top-level sections, enumerations (confidence
    levels, drift directions and magnitudes, node types), numeric ranges
    (warming estimate in [0, 10], severities and spillover score in [0, 1]),
    non-empty node and dataset-version lists, and the temperature unit.
    """
    if not isinstance(value, dict):
        errors: Tuple[str, ...] = (
            f"<root>: expected an object with sections {', '.join(_TOP_LEVEL_SECTIONS)}, "
            f"got {type(value).__name__}",
        )
        logger.warning("dashboard.validation_failed", extra={"errors": list(errors)})
        return ValidationOutcome(ok=False, errors=errors)

    try:
        data = DashboardResult.model_validate(value)
    except ValidationError as exc:
        errors = _errors_from(exc) or ("<root>: invalid dashboard",)
        logger.warning(
            "dashboard.validation_failed",
            extra={"errors": list(errors), "error_count": len(errors)},
        )
        return ValidationOutcome(ok=False, errors=errors)
    except Exception as exc:  # a validator hook misbehaving must not escape
        logger.exception("dashboard.validation_crashed")
        return ValidationOutcome(ok=False, errors=(f"<root>: unexpected validation error: {exc}",))

    return ValidationOutcome(ok=True, data=data)


def parse_dashboard(value: Any, *, fingerprint: Optional[str] = None) -> DashboardResult:
    """Strict variant: return the typed dashboard or raise ContractViolation."""
    return validate_dashboard(value).raise_for_errors(fingerprint=fingerprint)


def safe_parse_dashboard(value: Any) -> Optional[DashboardResult]:
    outcome = validate_dashboard(value)
    return outcome.data if outcome.ok else None


def is_dashboard(value: Any) -> bool:
    return validate_dashboard(value).ok
