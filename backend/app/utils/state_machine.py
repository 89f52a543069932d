from enum import Enum
from typing import Dict, Set


class QuizStatus(Enum):
    IDLE = "idle"
    FETCHING_SECTIONS = "fetching_sections"
    SELECTING_SECTION = "selecting_section"
    GENERATING = "generating"
    ACTIVE = "active"
    COMPLETED = "completed"


IN_FLIGHT_STATUSES = {QuizStatus.FETCHING_SECTIONS, QuizStatus.GENERATING}


class QuizStateMachine:
    """State machine for quiz flow"""

    def __init__(self):
        self.current_state = QuizStatus.IDLE
        # Reset is handled separately via reset(); it is valid from any state
        self._transitions: Dict[QuizStatus, Set[QuizStatus]] = {
            QuizStatus.IDLE: {QuizStatus.FETCHING_SECTIONS},
            QuizStatus.FETCHING_SECTIONS: {
                QuizStatus.SELECTING_SECTION,
                QuizStatus.IDLE,
            },
            QuizStatus.SELECTING_SECTION: {
                QuizStatus.SELECTING_SECTION,
                QuizStatus.IDLE,
                QuizStatus.GENERATING,
            },
            QuizStatus.GENERATING: {
                QuizStatus.ACTIVE,
                QuizStatus.SELECTING_SECTION,
            },
            QuizStatus.ACTIVE: {QuizStatus.ACTIVE, QuizStatus.COMPLETED},
            QuizStatus.COMPLETED: set(),
        }

    def can_transition(self, target_state: QuizStatus) -> bool:
        """Check if transition to target state is allowed"""
        allowed = self._transitions.get(self.current_state, set())
        return target_state in allowed

    def transition(self, target_state: QuizStatus) -> bool:
        """Attempt to transition to target state"""
        if self.can_transition(target_state):
            self.current_state = target_state
            return True
        return False

    def reset(self):
        """Return to idle from any state"""
        self.current_state = QuizStatus.IDLE

    def get_state(self) -> QuizStatus:
        """Get current state"""
        return self.current_state

    def is_in_flight(self) -> bool:
        return self.current_state in IN_FLIGHT_STATUSES
