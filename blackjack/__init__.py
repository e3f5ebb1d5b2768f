"""Blackjack round engine - 100% UI-agnostic."""

from blackjack.cards import Card, Rank, Suit
from blackjack.cpu import CpuAction, CpuActor, CpuProfile, decide
from blackjack.hand import Hand, is_blackjack, rank_value, score
from blackjack.rules import TableRules
from blackjack.settlement import Outcome, Settlement, settle
from blackjack.shoe import LocalShoeProvider, ShoeProvider

__all__ = [
    "Card",
    "Rank",
    "Suit",
    "CpuAction",
    "CpuActor",
    "CpuProfile",
    "decide",
    "Hand",
    "is_blackjack",
    "rank_value",
    "score",
    "TableRules",
    "Outcome",
    "Settlement",
    "settle",
    "LocalShoeProvider",
    "ShoeProvider",
]
