# FILE: riskwiz/errors.py
from __future__ import annotations

from typing import Any, Dict, Optional, Sequence, Tuple


class WizardError(Exception):
    """
    Base class for every terminal failure of a dashboard orchestration call.

    `code` is the short machine tag used as the `error` field of HTTP error
    bodies and diagnostic exports.
    """

    code = "internal_server_error"

    def __init__(self, message: str, *, fingerprint: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.fingerprint = fingerprint

    def details(self) -> Dict[str, Any]:
        return {}

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"error": self.code, "message": self.message}
        details = self.details()
        if self.fingerprint:
            details = dict(details, request_key=self.fingerprint)
        if details:
            out["details"] = details
        return out


class InputError(WizardError):
    """A required wizard field is missing; nothing was fingerprinted or dispatched."""

    code = "invalid_request"

    def __init__(self, message: str, *, missing: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.missing: Tuple[str, ...] = tuple(missing)

    def details(self) -> Dict[str, Any]:
        return {"missing": list(self.missing)} if self.missing else {}


class DispatchError(WizardError):
    """
    Acquisition failed: a simulated generator raised, or the remote call
    timed out, failed in transport, or answered with a non-2xx status.
    """

    code = "dispatch_failed"

    def __init__(
        self,
        message: str,
        *,
        fingerprint: Optional[str] = None,
        status: Optional[int] = None,
        body: Optional[str] = None,
        mode: Optional[str] = None,
    ) -> None:
        super().__init__(message, fingerprint=fingerprint)
        self.status = status
        self.body = body
        self.mode = mode

    def details(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        if self.mode:
            out["mode"] = self.mode
        if self.status is not None:
            out["status"] = self.status
        if self.body:
            out["body"] = self.body
        return out


class ContractViolation(WizardError):
    """The dispatched payload does not satisfy the dashboard contract."""

    code = "contract_violation"

    def __init__(
        self,
        errors: Sequence[str],
        *,
        fingerprint: Optional[str] = None,
    ) -> None:
        self.errors: Tuple[str, ...] = tuple(errors)
        super().__init__(
            "Invalid dashboard structure: " + ", ".join(self.errors),
            fingerprint=fingerprint,
        )

    def details(self) -> Dict[str, Any]:
        return {"errors": list(self.errors)}
