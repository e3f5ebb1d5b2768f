"""Card representations - immutable once drawn."""

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any


class Suit(Enum):
    """Card suits."""

    CLUBS = auto()
    DIAMONDS = auto()
    HEARTS = auto()
    SPADES = auto()

    def __str__(self) -> str:
        symbols = {
            Suit.CLUBS: "♣",
            Suit.DIAMONDS: "♦",
            Suit.HEARTS: "♥",
            Suit.SPADES: "♠",
        }
        return symbols[self]

    @property
    def code(self) -> str:
        """Single-letter suit code used by deck services ('H', 'S', ...)."""
        return self.name[0]


class Rank(Enum):
    """Card ranks."""

    TWO = 2
    THREE = 3
    FOUR = 4
    FIVE = 5
    SIX = 6
    SEVEN = 7
    EIGHT = 8
    NINE = 9
    TEN = 10
    JACK = 11
    QUEEN = 12
    KING = 13
    ACE = 14

    def __str__(self) -> str:
        if self.value <= 10:
            return str(self.value)
        return {
            Rank.JACK: "J",
            Rank.QUEEN: "Q",
            Rank.KING: "K",
            Rank.ACE: "A",
        }[self]

    @property
    def blackjack_value(self) -> int:
        """Return the blackjack point value (Ace = 11, face cards = 10)."""
        if self.value <= 10:
            return self.value
        if self == Rank.ACE:
            return 11
        return 10  # Face cards

    @property
    def is_ace(self) -> bool:
        """Check if this rank is an Ace."""
        return self == Rank.ACE

    @property
    def code(self) -> str:
        """Rank code used by deck services ('0' stands for ten)."""
        return "0" if self == Rank.TEN else str(self)


_RANK_NAMES: dict[str, Rank] = {
    "2": Rank.TWO,
    "3": Rank.THREE,
    "4": Rank.FOUR,
    "5": Rank.FIVE,
    "6": Rank.SIX,
    "7": Rank.SEVEN,
    "8": Rank.EIGHT,
    "9": Rank.NINE,
    "10": Rank.TEN,
    "0": Rank.TEN,
    "T": Rank.TEN,
    "J": Rank.JACK,
    "JACK": Rank.JACK,
    "Q": Rank.QUEEN,
    "QUEEN": Rank.QUEEN,
    "K": Rank.KING,
    "KING": Rank.KING,
    "A": Rank.ACE,
    "ACE": Rank.ACE,
}

_SUIT_NAMES: dict[str, Suit] = {
    "C": Suit.CLUBS,
    "♣": Suit.CLUBS,
    "CLUBS": Suit.CLUBS,
    "D": Suit.DIAMONDS,
    "♦": Suit.DIAMONDS,
    "DIAMONDS": Suit.DIAMONDS,
    "H": Suit.HEARTS,
    "♥": Suit.HEARTS,
    "HEARTS": Suit.HEARTS,
    "S": Suit.SPADES,
    "♠": Suit.SPADES,
    "SPADES": Suit.SPADES,
}


@dataclass(frozen=True, slots=True)
class Card:
    """
    Immutable playing card.

    ``image`` is a display reference handed out by the deck service. Game
    logic never looks at it and it does not take part in equality.
    """

    rank: Rank
    suit: Suit
    image: str | None = field(default=None, compare=False)

    def __str__(self) -> str:
        return f"{self.rank}{self.suit}"

    def __repr__(self) -> str:
        return f"Card({self.rank.name}, {self.suit.name})"

    @property
    def value(self) -> int:
        """Return the blackjack point value."""
        return self.rank.blackjack_value

    @property
    def is_ace(self) -> bool:
        """Check if this card is an Ace."""
        return self.rank.is_ace

    @property
    def code(self) -> str:
        """Two-character code such as 'AS' or '0H'."""
        return f"{self.rank.code}{self.suit.code}"

    @classmethod
    def from_string(cls, s: str) -> "Card":
        """Create a card from a string like '2♣', 'AS', 'Kh', '10d'."""
        s = s.strip().upper()
        if len(s) < 2:
            raise ValueError(f"Invalid card string: {s}")

        rank_str = s[:-1]
        suit_str = s[-1]

        if rank_str not in _RANK_NAMES:
            raise ValueError(f"Invalid rank: {rank_str}")
        if suit_str not in _SUIT_NAMES:
            raise ValueError(f"Invalid suit: {suit_str}")

        return cls(_RANK_NAMES[rank_str], _SUIT_NAMES[suit_str])

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "Card":
        """
        Create a card from a deck service payload.

        Expects ``{"value": "KING", "suit": "HEARTS", "image": "..."}``.
        Raises ValueError on unknown values.
        """
        value = str(data.get("value", "")).strip().upper()
        suit = str(data.get("suit", "")).strip().upper()

        if value not in _RANK_NAMES:
            raise ValueError(f"Invalid rank: {value!r}")
        if suit not in _SUIT_NAMES:
            raise ValueError(f"Invalid suit: {suit!r}")

        return cls(_RANK_NAMES[value], _SUIT_NAMES[suit], image=data.get("image"))
