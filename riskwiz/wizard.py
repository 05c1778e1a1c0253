# FILE: riskwiz/wizard.py
from __future__ import annotations

import datetime as _dt
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from .drift import COLLECTION_STEP, STALE_DESCRIPTION, DriftTracker
from .errors import WizardError
from .orchestrator import DashboardOrchestrator
from .schemas import DashboardResult, WizardInputs

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Step:
    id: int
    title: str


STEPS: Tuple[Step, ...] = (
    Step(1, "Location"),
    Step(2, "Climate Pressure"),
    Step(3, "System Concern"),
    Step(4, "Warming Baseline"),
    Step(5, "Risk Chain"),
    Step(6, "Dashboard"),
)

_INPUT_FIELDS = frozenset(WizardInputs.model_fields)


@dataclass(frozen=True)
class Notice:
    title: str
    description: str


class WizardSession:
    """
    Step-flow controller for one user walking through the questionnaire.

    Steps 1-3 collect inputs; leaving step 3 submits them to the
    orchestrator, and steps 4-6 present the dashboard. Editing an input after
    a dashboard was produced discards it and, when the user is past step 3,
    sends them back there.
    """

    def __init__(self, orchestrator: DashboardOrchestrator) -> None:
        self.orchestrator = orchestrator
        self.drift = DriftTracker(orchestrator.request_key, collection_step=COLLECTION_STEP)
        self.current_step = 1
        self.inputs = WizardInputs()
        self.error: Optional[str] = None
        self.notice: Optional[Notice] = None
        self.loading = False
        self._debug: Optional[Dict[str, Any]] = None

    # ------------------------------------------------------------------ #

    @property
    def step(self) -> Step:
        return STEPS[self.current_step - 1]

    @property
    def progress(self) -> float:
        return self.current_step / len(STEPS) * 100.0

    @property
    def dashboard(self) -> Optional[DashboardResult]:
        return self.drift.result

    def can_proceed(self) -> bool:
        step = self.current_step
        if step == 1:
            return bool(self.inputs.location_key)
        if step == 2:
            return len(self.inputs.selected_hazards) > 0
        if step == 3:
            return bool(self.inputs.selected_system)
        if step in (4, 5, 6):
            return self.dashboard is not None
        return True

    def update(self, **fields: Any) -> None:
        """Edit one or more inputs; unknown field names raise TypeError."""
        unknown = set(fields) - _INPUT_FIELDS
        if unknown:
            raise TypeError(f"unknown wizard fields: {', '.join(sorted(unknown))}")
        data = self.inputs.model_dump()
        data.update(fields)
        self.inputs = WizardInputs(**data)
        self._apply(self.drift.observe(self.inputs, self.current_step))

    async def next(self) -> bool:
        """Advance one step; returns True when the step changed."""
        if not self.can_proceed():
            return False

        if self.current_step == COLLECTION_STEP:
            if self.dashboard is None or not self.drift.is_fresh_for(self.inputs):
                return await self._submit()
            self.current_step += 1
            return True

        if self.current_step < len(STEPS):
            self.current_step += 1
            return True
        return False

    def back(self) -> bool:
        if self.current_step > 1:
            self.current_step -= 1
            return True
        return False

    def restart(self) -> None:
        self.current_step = 1
        self.inputs = WizardInputs()
        self.error = None
        self.notice = None
        self._debug = None
        self.drift.discard()

    def debug_context(self) -> Optional[Dict[str, Any]]:
        """Diagnostic bundle of the last failed submission, JSON-serialisable."""
        return dict(self._debug) if self._debug is not None else None

    # ------------------------------------------------------------------ #

    async def _submit(self) -> bool:
        self.loading = True
        self.error = None
        snapshot = self.inputs
        request_key: Optional[str] = None
        self.drift.begin_computation()
        try:
            request_key = self.orchestrator.request_key(snapshot)
            result = await self.orchestrator.get_dashboard(snapshot)
        except WizardError as exc:
            self.error = exc.message
            self._debug = {
                "error": exc.message,
                "code": exc.code,
                "timestamp": _dt.datetime.now(_dt.timezone.utc).isoformat(),
                "inputs": snapshot.summary(),
                "request_key": request_key,
            }
            logger.error("wizard.submit_failed", extra={"debug_context": self._debug})
            return False
        else:
            self.drift.record_result(request_key, result)
            self._debug = None
            self.current_step = COLLECTION_STEP + 1
            return True
        finally:
            self.loading = False
            self._apply(self.drift.end_computation(self.current_step))

    def _apply(self, decision) -> None:
        if not decision.invalidated:
            return
        self.notice = Notice(decision.notice or "", STALE_DESCRIPTION)
        self.error = None
        if decision.navigate_to is not None:
            self.current_step = decision.navigate_to
