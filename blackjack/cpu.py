"""Scripted CPU opponents and their decision policy."""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

from blackjack.cards import Card
from blackjack.hand import Hand, rank_value

PROFILE_MIN = 0.01
PROFILE_MAX = 1.0


class RandomSource(Protocol):
    """Anything with ``random() -> float`` in [0, 1), e.g. ``random.Random``."""

    def random(self) -> float: ...


class CpuAction(str, Enum):
    """Actions a CPU can take."""

    SURRENDER = "surrender"
    DOUBLE = "double"
    HIT = "hit"
    STAND = "stand"


@dataclass(frozen=True)
class CpuProfile:
    """
    Fixed behavioural parameters of a CPU opponent.

    Attributes:
        name: Display name
        confidence: Raises the stand threshold from 13 (low) to 19 (1.0)
        risk: Chance of doubling a 9-11 on the first two cards
        surrender_rate: Chance of surrendering 15 or less against a strong up-card
    """

    name: str
    confidence: float = 0.5
    risk: float = 0.5
    surrender_rate: float = 0.1

    def __post_init__(self) -> None:
        """Validate parameter ranges."""
        if not self.name.strip():
            raise ValueError("CPU name must not be empty")
        for attr in ("confidence", "risk", "surrender_rate"):
            value = getattr(self, attr)
            if not PROFILE_MIN <= value <= PROFILE_MAX:
                raise ValueError(
                    f"{attr} must be between {PROFILE_MIN} and {PROFILE_MAX}, got {value}"
                )

    @property
    def stand_threshold(self) -> int:
        """Minimum score at which the CPU stops drawing voluntarily."""
        return 13 + math.floor(self.confidence * 6)


@dataclass
class CpuActor:
    """A CPU seated at the table for one round."""

    profile: CpuProfile
    hand: Hand = field(default_factory=Hand)

    @property
    def name(self) -> str:
        return self.profile.name

    @property
    def surrendered(self) -> bool:
        return self.hand.is_surrendered

    @property
    def doubled(self) -> bool:
        return self.hand.is_doubled


def decide(actor: CpuActor, dealer_up_card: Card, rng: RandomSource) -> CpuAction:
    """
    Choose the next action for a CPU.

    Rules are checked in order: surrender, double, stand threshold, hit.
    The random source is only consulted once the deterministic part of a
    rule holds, so a scripted source reproduces a decision sequence exactly.
    """
    profile = actor.profile
    value = actor.hand.value
    dealer_strong = rank_value(dealer_up_card) >= 10

    if value <= 15 and dealer_strong and rng.random() < profile.surrender_rate:
        return CpuAction.SURRENDER

    can_double = len(actor.hand) == 2
    good_double = 9 <= value <= 11
    if can_double and good_double and rng.random() < profile.risk:
        return CpuAction.DOUBLE

    if value >= profile.stand_threshold:
        return CpuAction.STAND

    return CpuAction.HIT
