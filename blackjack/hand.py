"""Hand evaluation for blackjack."""

from dataclasses import dataclass, field
from typing import Iterable, Iterator

from blackjack.cards import Card


def score(cards: Iterable[Card]) -> int:
    """
    Calculate the best value of a sequence of cards.

    Aces start at 11 and are reduced to 1 one at a time while the total
    is over 21. Returns the lowest bust value when no reduction helps.
    """
    total = 0
    aces = 0

    for card in cards:
        if card.is_ace:
            aces += 1
        total += card.value

    # Reduce aces from 11 to 1 as needed
    while total > 21 and aces > 0:
        total -= 10
        aces -= 1

    return total


def is_blackjack(cards: Iterable[Card]) -> bool:
    """Check for a natural: exactly two cards worth 21."""
    cards = list(cards)
    return len(cards) == 2 and score(cards) == 21


def rank_value(card: Card) -> int:
    """Face cards count 10, an Ace 11. Used to judge dealer strength."""
    return card.value


@dataclass
class Hand:
    """A blackjack hand. The value is always derived from the cards."""

    cards: list[Card] = field(default_factory=list)
    is_doubled: bool = False
    is_surrendered: bool = False

    def add_card(self, card: Card) -> None:
        """Add a card to the hand."""
        self.cards.append(card)

    @property
    def value(self) -> int:
        """Best value of the hand."""
        return score(self.cards)

    @property
    def is_soft(self) -> bool:
        """
        Check if the hand is soft (has an ace counted as 11).

        A hand is soft if it contains an ace that can be counted as 11
        without busting.
        """
        if not any(card.is_ace for card in self.cards):
            return False

        total_hard = sum(1 if card.is_ace else card.value for card in self.cards)
        return total_hard + 10 <= 21

    @property
    def is_blackjack(self) -> bool:
        """Check if the hand is a natural blackjack (21 with 2 cards)."""
        return is_blackjack(self.cards)

    @property
    def is_busted(self) -> bool:
        """Check if the hand has busted (value > 21)."""
        return self.value > 21

    @property
    def can_double(self) -> bool:
        """Check if the hand can be doubled down."""
        return len(self.cards) == 2 and not self.is_doubled and not self.is_surrendered

    @property
    def is_finished(self) -> bool:
        """No more cards may be drawn to this hand."""
        return self.is_busted or self.is_doubled or self.is_surrendered

    def __len__(self) -> int:
        return len(self.cards)

    def __iter__(self) -> Iterator[Card]:
        return iter(self.cards)

    def __str__(self) -> str:
        cards_str = " ".join(str(card) for card in self.cards)
        value_str = f"({self.value})"
        if self.is_soft:
            value_str = f"(soft {self.value})"
        if self.is_blackjack:
            value_str = "(BLACKJACK)"
        if self.is_busted:
            value_str = "(BUST)"
        return f"{cards_str} {value_str}"

    def __repr__(self) -> str:
        return f"Hand({self.cards!r}, value={self.value})"
