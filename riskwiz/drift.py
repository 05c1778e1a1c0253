# FILE: riskwiz/drift.py
from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple

from .errors import InputError
from .schemas import WizardInputs

logger = logging.getLogger(__name__)

# Step at which the wizard collects the last input and submits.
COLLECTION_STEP = 3

STALE_NOTICE = "Inputs Changed"
STALE_DESCRIPTION = "Please regenerate the dashboard with your new selections."

KeyFn = Callable[[WizardInputs], Optional[str]]


class DriftState(str, enum.Enum):
    NO_RESULT = "no_result"
    RESULT_FRESH = "result_fresh"
    RESULT_STALE = "result_stale"


@dataclass(frozen=True)
class DriftDecision:
    """
    What the caller should do after an input change.

    `navigate_to` is set only when the displayed result was discarded while
    the user stood past the collection step. `transitions` lists the states
    the tracker went through, for logging and tests.
    """

    invalidated: bool = False
    deferred: bool = False
    navigate_to: Optional[int] = None
    notice: Optional[str] = None
    transitions: Tuple[DriftState, ...] = ()


_NOOP = DriftDecision()


class DriftTracker:
    """
    Tracks the fingerprint of the dashboard on display against the live inputs.

        NO_RESULT --record_result--> RESULT_FRESH
        RESULT_FRESH --observe(changed)--> RESULT_STALE --discard--> NO_RESULT

    `key_fn` maps inputs to their fingerprint, or None when the inputs are
    incomplete (an incomplete selection never matches a recorded result).
    While a computation is in flight observations are held back; the most
    recent one is evaluated when the computation ends.
    """

    def __init__(self, key_fn: KeyFn, *, collection_step: int = COLLECTION_STEP) -> None:
        self._key_fn = key_fn
        self.collection_step = int(collection_step)
        self._lock = threading.RLock()
        self._state = DriftState.NO_RESULT
        self._last_key: Optional[str] = None
        self._result: Any = None
        self._in_flight = 0
        self._pending: Optional[Tuple[WizardInputs, int]] = None

    # ------------------------------------------------------------------ #
    # Read-only views
    # ------------------------------------------------------------------ #

    @property
    def state(self) -> DriftState:
        return self._state

    @property
    def last_key(self) -> Optional[str]:
        return self._last_key

    @property
    def result(self) -> Any:
        return self._result

    @property
    def in_flight(self) -> bool:
        return self._in_flight > 0

    def is_fresh_for(self, inputs: WizardInputs) -> bool:
        """True when the displayed result was computed from exactly these inputs."""
        with self._lock:
            if self._state is not DriftState.RESULT_FRESH:
                return False
            return self._safe_key(inputs) == self._last_key

    # ------------------------------------------------------------------ #
    # Transitions
    # ------------------------------------------------------------------ #

    def record_result(self, fingerprint: str, result: Any) -> None:
        with self._lock:
            self._last_key = fingerprint
            self._result = result
            self._state = DriftState.RESULT_FRESH
        logger.debug("drift.fresh", extra={"req_id": fingerprint})

    def discard(self) -> None:
        with self._lock:
            self._last_key = None
            self._result = None
            self._state = DriftState.NO_RESULT

    def observe(self, inputs: WizardInputs, current_step: int) -> DriftDecision:
        with self._lock:
            if self._in_flight:
                self._pending = (inputs, int(current_step))
                return DriftDecision(deferred=True)
            return self._evaluate(inputs, int(current_step))

    def begin_computation(self) -> None:
        with self._lock:
            self._in_flight += 1

    def end_computation(self, current_step: Optional[int] = None) -> DriftDecision:
        """
        Mark the in-flight call finished and replay the last held-back
        observation, if any. Record the call's result before ending it.

        `current_step` is where the user stands now; the call itself may have
        moved them. Without it the step seen at observation time is used.
        """
        with self._lock:
            if self._in_flight:
                self._in_flight -= 1
            if self._in_flight or self._pending is None:
                return _NOOP
            inputs, observed_step = self._pending
            self._pending = None
            step = observed_step if current_step is None else int(current_step)
            return self._evaluate(inputs, step)

    # ------------------------------------------------------------------ #

    def _safe_key(self, inputs: WizardInputs) -> Optional[str]:
        try:
            return self._key_fn(inputs)
        except InputError:
            # Incomplete inputs cannot be fingerprinted; treat as a change.
            return None

    def _evaluate(self, inputs: WizardInputs, current_step: int) -> DriftDecision:
        if self._state is not DriftState.RESULT_FRESH:
            return _NOOP

        current = self._safe_key(inputs)
        if current is not None and current == self._last_key:
            return _NOOP

        previous = self._last_key
        self._state = DriftState.RESULT_STALE
        logger.info(
            "drift.stale",
            extra={"req_id": previous, "new_key": current, "step": current_step},
        )
        self.discard()

        target = self.collection_step if current_step > self.collection_step else None
        return DriftDecision(
            invalidated=True,
            navigate_to=target,
            notice=STALE_NOTICE,
            transitions=(DriftState.RESULT_STALE, DriftState.NO_RESULT),
        )
