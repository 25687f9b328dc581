from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Set


class AssignmentState(str, Enum):
    SELECTING = "SELECTING"
    OFFERING = "OFFERING"
    ACCEPTED = "ACCEPTED"
    EXHAUSTED = "EXHAUSTED"
    CANCELLED = "CANCELLED"


TERMINAL_STATES: FrozenSet[AssignmentState] = frozenset(
    {AssignmentState.ACCEPTED, AssignmentState.EXHAUSTED, AssignmentState.CANCELLED}
)

ALLOWED_TRANSITIONS: Dict[AssignmentState, FrozenSet[AssignmentState]] = {
    AssignmentState.SELECTING: frozenset(
        {AssignmentState.OFFERING, AssignmentState.EXHAUSTED, AssignmentState.CANCELLED}
    ),
    # OFFERING -> SELECTING is the move to the next candidate after a decline
    AssignmentState.OFFERING: frozenset(
        {AssignmentState.SELECTING, AssignmentState.ACCEPTED, AssignmentState.EXHAUSTED, AssignmentState.CANCELLED}
    ),
    AssignmentState.ACCEPTED: frozenset(),
    AssignmentState.EXHAUSTED: frozenset(),
    AssignmentState.CANCELLED: frozenset(),
}


class AssignmentStateException(Exception):
    """Raised when an invalid assignment transition is attempted."""
    pass


class AssignmentCycle:
    """
    State of the offer loop for one dispatch cycle.
    Owns the set of drivers already offered so no driver is offered twice.
    """

    def __init__(self):
        self.state = AssignmentState.SELECTING
        self.history: List[AssignmentState] = [AssignmentState.SELECTING]
        self._offered: Set[str] = set()
        self.current_driver_id: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def transition(self, new_state: AssignmentState) -> None:
        if new_state not in ALLOWED_TRANSITIONS[self.state]:
            raise AssignmentStateException(f"Cannot transition assignment from {self.state.value} to {new_state.value}")
        self.state = new_state
        self.history.append(new_state)

    def has_offered(self, driver_id: str) -> bool:
        return driver_id in self._offered

    def begin_offer(self, driver_id: str) -> None:
        """
        SELECTING -> OFFERING for one driver.
        """
        if driver_id in self._offered:
            raise AssignmentStateException(f"Driver {driver_id} was already offered this request")
        self.transition(AssignmentState.OFFERING)
        self._offered.add(driver_id)
        self.current_driver_id = driver_id

    def accept(self) -> None:
        self.transition(AssignmentState.ACCEPTED)

    def decline(self) -> None:
        """
        OFFERING -> SELECTING, ready for the next candidate.
        """
        self.transition(AssignmentState.SELECTING)
        self.current_driver_id = None

    def exhaust(self) -> None:
        self.transition(AssignmentState.EXHAUSTED)

    def cancel(self) -> None:
        if self.is_terminal:
            return
        self.transition(AssignmentState.CANCELLED)
