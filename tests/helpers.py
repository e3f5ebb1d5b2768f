"""Test doubles and builders shared by the test suite."""

from hypothesis import strategies as st

from blackjack.cards import Card, Rank, Suit
from blackjack.errors import ShoeError
from blackjack.hand import Hand
from blackjack.shoe import ShoeProvider


def cards(*codes: str) -> list[Card]:
    """Build cards from short codes: cards('AS', 'KH')."""
    return [Card.from_string(code) for code in codes]


def hand_of(*codes: str) -> Hand:
    """Build a hand from short codes."""
    return Hand(cards=cards(*codes))


class ScriptedShoeProvider(ShoeProvider):
    """
    Shoe that deals a fixed sequence of cards in order.

    With ``fail_after`` set, any draw that would hand out card number
    ``fail_after`` (0-based) or later raises ShoeError instead.
    """

    def __init__(self, codes: list[str], fail_after: int | None = None) -> None:
        self._cards = cards(*codes)
        self._fail_after = fail_after
        self.dealt = 0
        self.shoes_opened = 0
        self.draw_calls: list[int] = []

    async def new_shoe(self) -> str:
        self.shoes_opened += 1
        return f"scripted-{self.shoes_opened}"

    async def draw(self, shoe_id: str, count: int) -> list[Card]:
        self.draw_calls.append(count)
        if self._fail_after is not None and self.dealt + count > self._fail_after:
            raise ShoeError("Deck service unavailable")
        if self.dealt + count > len(self._cards):
            raise ShoeError("Not enough cards remaining")
        drawn = self._cards[self.dealt:self.dealt + count]
        self.dealt += count
        return drawn


class ScriptedRandom:
    """Random source returning scripted values, then 0.99 once exhausted."""

    def __init__(self, *values: float) -> None:
        self._values = list(values)
        self.calls = 0

    def random(self) -> float:
        self.calls += 1
        if self._values:
            return self._values.pop(0)
        return 0.99


# Hypothesis strategies for property-based testing
@st.composite
def card_strategy(draw):
    """Generate a random card."""
    rank = draw(st.sampled_from(list(Rank)))
    suit = draw(st.sampled_from(list(Suit)))
    return Card(rank, suit)


@st.composite
def card_list_strategy(draw, min_cards=2, max_cards=6):
    """Generate a random list of cards."""
    return draw(st.lists(card_strategy(), min_size=min_cards, max_size=max_cards))
