"""Card supply: shoe providers that shuffle shoes and draw cards on demand."""

import logging
from abc import ABC, abstractmethod
from random import Random
from uuid import uuid4

from blackjack.cards import Card, Rank, Suit
from blackjack.errors import ShoeError

logger = logging.getLogger(__name__)


class ShoeProvider(ABC):
    """
    Abstract card supply.

    Implementations may talk to a remote service; every failure must be
    raised as ShoeError. Cards are never fabricated.
    """

    @abstractmethod
    async def new_shoe(self) -> str:
        """Start a freshly shuffled shoe and return its id."""
        ...

    @abstractmethod
    async def draw(self, shoe_id: str, count: int) -> list[Card]:
        """Draw ``count`` cards, in order, from an existing shoe."""
        ...

    async def aclose(self) -> None:
        """Release resources held by the provider."""


class LocalShoeProvider(ShoeProvider):
    """In-process multi-deck shoes, for offline play and tests."""

    def __init__(self, num_decks: int = 1, rng: Random | None = None) -> None:
        """
        Initialize the provider.

        Args:
            num_decks: Number of 52-card decks per shoe
            rng: Random number generator for shuffling
        """
        if num_decks < 1:
            raise ValueError("Shoe must have at least 1 deck")

        self._num_decks = num_decks
        self._rng = rng or Random()
        self._shoes: dict[str, list[Card]] = {}

    async def new_shoe(self) -> str:
        """Shuffle a full shoe and register it under a new id."""
        cards = [
            Card(rank, suit)
            for _ in range(self._num_decks)
            for suit in Suit
            for rank in Rank
        ]
        self._rng.shuffle(cards)

        shoe_id = uuid4().hex[:12]
        self._shoes[shoe_id] = cards
        logger.debug("Shuffled local shoe %s (%d cards)", shoe_id, len(cards))
        return shoe_id

    async def draw(self, shoe_id: str, count: int) -> list[Card]:
        """Draw cards from the top of the shoe."""
        if count < 1:
            raise ValueError("count must be positive")

        cards = self._shoes.get(shoe_id)
        if cards is None:
            raise ShoeError(f"Unknown shoe: {shoe_id}")
        if len(cards) < count:
            raise ShoeError(
                f"Not enough cards remaining to draw {count} from shoe {shoe_id}"
            )

        return [cards.pop() for _ in range(count)]

    def cards_remaining(self, shoe_id: str) -> int:
        """Return the number of cards left in a shoe."""
        return len(self._shoes.get(shoe_id, []))
