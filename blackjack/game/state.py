"""Round state enumeration."""

from enum import Enum, auto


class RoundState(Enum):
    """
    Round state machine states.

    Flow: INIT → DEALING → PLAYER_TURN → CPU_TURNS → DEALER_TURN → SETTLEMENT → TERMINAL

    Any non-terminal state may move to ABORTED when the card supply fails.
    """

    INIT = auto()
    DEALING = auto()
    PLAYER_TURN = auto()
    CPU_TURNS = auto()
    DEALER_TURN = auto()
    SETTLEMENT = auto()
    TERMINAL = auto()
    ABORTED = auto()

    def __str__(self) -> str:
        return self.name.replace("_", " ").title()

