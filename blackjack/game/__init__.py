"""Round orchestration and state management."""

from blackjack.game.events import GameEvent, EventType
from blackjack.game.state import RoundState
from blackjack.game.engine import BlackjackRound, PlayerAction, start_round

__all__ = [
    "GameEvent",
    "EventType",
    "RoundState",
    "BlackjackRound",
    "PlayerAction",
    "start_round",
]
