"""Dealer policy: draw to 17."""

from typing import Awaitable, Callable

from blackjack.cards import Card
from blackjack.hand import Hand

DEALER_STANDS_ON = 17

# Async callable returning exactly one card from the round's shoe
DrawCard = Callable[[], Awaitable[Card]]


def dealer_should_hit(hand: Hand, stands_on: int = DEALER_STANDS_ON) -> bool:
    """Dealer draws while below the stand value. Soft totals are not special."""
    return hand.value < stands_on


async def play_dealer(
    hand: Hand,
    draw_card: DrawCard,
    stands_on: int = DEALER_STANDS_ON,
) -> Hand:
    """
    Draw cards to the dealer hand until it reaches ``stands_on`` or busts.

    Each draw is awaited before the next is requested.
    """
    while dealer_should_hit(hand, stands_on):
        hand.add_card(await draw_card())
    return hand
