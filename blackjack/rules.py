"""Table rules."""

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class TableRules:
    """
    Blackjack table rules configuration.

    The dealer draws to ``dealer_stands_on``; a surrender returns
    ``surrender_refund`` of the wager.
    """

    # Betting limits
    min_bet: int = 1
    max_bet: int = 1000

    # Dealer rules
    dealer_stands_on: int = 17

    # Surrender returns this fraction of the bet
    surrender_refund: Decimal = Decimal("0.5")

    # Number of CPU seats at the table
    cpu_seats: int = 3

    def __post_init__(self) -> None:
        """Validate rule combinations."""
        if self.min_bet < 1:
            raise ValueError("min_bet must be at least 1")
        if self.max_bet < self.min_bet:
            raise ValueError("max_bet must not be below min_bet")
        if not 0 <= self.surrender_refund < 1:
            raise ValueError("surrender_refund must be in [0, 1)")
        if self.cpu_seats < 0:
            raise ValueError("cpu_seats must not be negative")

    def validate_bet(self, amount: int) -> bool:
        """Check a bet against table limits."""
        return self.min_bet <= amount <= self.max_bet
