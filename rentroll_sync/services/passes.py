# rentroll_sync/services/passes.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..errors import InvalidPassTransition


class PassState(str, Enum):
    IDLE = "Idle"
    FETCHING = "Fetching"
    DIFFING = "Diffing"
    APPLYING = "Applying"
    DONE = "Done"
    FAILED = "Failed"


_TRANSITIONS: dict[PassState, frozenset[PassState]] = {
    PassState.IDLE: frozenset({PassState.FETCHING, PassState.FAILED}),
    PassState.FETCHING: frozenset({PassState.DIFFING, PassState.FAILED}),
    # a diff with nothing to apply finishes directly
    PassState.DIFFING: frozenset({PassState.APPLYING, PassState.DONE, PassState.FAILED}),
    PassState.APPLYING: frozenset({PassState.DONE, PassState.FAILED}),
    PassState.DONE: frozenset(),
    PassState.FAILED: frozenset(),
}


@dataclass
class ReportPass:
    """Lifecycle of one (report type, property) reconciliation pass."""

    report_type: str
    property_code: str
    state: PassState = PassState.IDLE
    error: Optional[str] = None

    def advance(self, to: PassState) -> None:
        if to not in _TRANSITIONS[self.state]:
            raise InvalidPassTransition(f"{self.report_type}/{self.property_code}: {self.state.value} -> {to.value}")
        self.state = to

    def fail(self, message: str) -> None:
        if self.state not in (PassState.DONE, PassState.FAILED):
            self.state = PassState.FAILED
        self.error = message
