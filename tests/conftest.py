"""Pytest fixtures for blackjack tests."""

from decimal import Decimal
from random import Random

import pytest
import pytest_asyncio

from blackjack.cpu import CpuProfile
from blackjack.hand import Hand
from blackjack.settlement import InMemorySettlementRecorder
from blackjack.shoe import LocalShoeProvider
from helpers import hand_of


@pytest.fixture
def rng():
    """Seeded random number generator for reproducible tests."""
    return Random(42)


@pytest.fixture
def local_shoes(rng):
    """Local single-deck shoe provider."""
    return LocalShoeProvider(num_decks=1, rng=rng)


@pytest.fixture
def recorder():
    """In-memory settlement recorder."""
    return InMemorySettlementRecorder()


@pytest_asyncio.fixture
async def funded_recorder(recorder):
    """Recorder with one account holding 1000."""
    await recorder.create_account("alice", Decimal("1000"))
    return recorder


@pytest.fixture
def timid_cpu():
    """CPU with minimum parameters: stands on 13+."""
    return CpuProfile(name="Timid", confidence=0.01, risk=0.01, surrender_rate=0.01)


@pytest.fixture
def bold_cpu():
    """CPU with maximum confidence: stands on 19+."""
    return CpuProfile(name="Bold", confidence=1.0, risk=1.0, surrender_rate=1.0)


@pytest.fixture
def empty_hand():
    """An empty hand."""
    return Hand()


@pytest.fixture
def blackjack_hand():
    """A natural blackjack hand."""
    return hand_of("AS", "KH")


@pytest.fixture
def bust_hand():
    """A busted hand."""
    return hand_of("10S", "6H", "KC")

