"""Round outcomes and the settlement recorder that books them."""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

from blackjack.errors import (
    InputError,
    InsufficientFundsError,
    InvalidBetError,
    NotFoundError,
    PersistenceError,
)
from blackjack.hand import Hand

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    """Result classification of one hand."""

    WIN = "win"
    LOSS = "loss"
    PUSH = "push"
    SURRENDER = "surrender"


@dataclass(frozen=True)
class Settlement:
    """Final, immutable outcome of one hand: what was wagered and what it made."""

    outcome: Outcome
    profit: Decimal
    bet_amount: int
    player_score: int
    dealer_score: int

    @property
    def summary(self) -> str:
        """Human readable result text."""
        return (
            f"Dealer Score: {self.dealer_score}\n"
            f"Player Score: {self.player_score}\n\n"
            f"Result: {self.outcome.value.upper()}\n"
            f"Profit: {self.profit}"
        )


def settle(
    hand: Hand,
    dealer_hand: Hand,
    bet: int,
    surrender_refund: Decimal = Decimal("0.5"),
) -> Settlement:
    """
    Compare a finished hand with the final dealer hand.

    A doubled hand wagers twice the bet. A surrendered hand loses the bet
    minus the refund, whatever the dealer holds.
    """
    player_value = hand.value
    dealer_value = dealer_hand.value
    stake = bet * 2 if hand.is_doubled else bet

    if hand.is_surrendered:
        outcome, profit = Outcome.SURRENDER, -(Decimal(bet) * (1 - surrender_refund))
    elif player_value > 21:
        outcome, profit = Outcome.LOSS, Decimal(-stake)
    elif dealer_value > 21:
        outcome, profit = Outcome.WIN, Decimal(stake)
    elif player_value > dealer_value:
        outcome, profit = Outcome.WIN, Decimal(stake)
    elif player_value < dealer_value:
        outcome, profit = Outcome.LOSS, Decimal(-stake)
    else:
        outcome, profit = Outcome.PUSH, Decimal(0)

    return Settlement(
        outcome=outcome,
        profit=profit,
        bet_amount=stake,
        player_score=player_value,
        dealer_score=dealer_value,
    )


@dataclass(frozen=True)
class Account:
    """
    Wallet and lifetime aggregates of one user.

    ``reserved`` is the sum of stakes held for rounds that are open or
    finished but not yet booked.
    """

    username: str
    wallet: Decimal
    total_wins: int = 0
    total_profit: Decimal = Decimal(0)
    total_invested: Decimal = Decimal(0)
    reserved: Decimal = Decimal(0)

    @property
    def available(self) -> Decimal:
        """Wallet balance not held by unbooked rounds."""
        return self.wallet - self.reserved


@dataclass(frozen=True)
class HistoryEntry:
    """One booked round."""

    round_id: str
    username: str
    result: Outcome
    bet_amount: int
    profit_change: Decimal
    dealer_ref: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def apply_settlement(account: Account, settlement: Settlement) -> Account:
    """Return the account with one settlement booked. Only wins count as wins."""
    return replace(
        account,
        wallet=account.wallet + settlement.profit,
        total_profit=account.total_profit + settlement.profit,
        total_invested=account.total_invested + settlement.bet_amount,
        total_wins=account.total_wins + (1 if settlement.outcome == Outcome.WIN else 0),
    )


class SettlementRecorder(ABC):
    """
    Abstract account and history store.

    ``record`` must be all-or-nothing and idempotent per round id.
    """

    @abstractmethod
    async def create_account(self, username: str, wallet: Decimal) -> Account:
        """Open an account with a starting wallet."""
        ...

    @abstractmethod
    async def get_account(self, username: str) -> Account:
        """Get an account, raising NotFoundError if unknown."""
        ...

    @abstractmethod
    async def history(self, username: str, limit: int | None = None) -> list[HistoryEntry]:
        """Get booked rounds, newest first."""
        ...

    @abstractmethod
    async def record(
        self,
        username: str,
        settlement: Settlement,
        round_id: str,
        dealer_ref: str | None = None,
    ) -> HistoryEntry:
        """
        Book a settlement.

        Appends one history row, updates the wallet and aggregates and drops
        the round's stake hold in a single transaction. A second call with
        the same ``round_id`` returns the original entry without booking
        anything.
        """
        ...

    @abstractmethod
    async def reserve(self, username: str, round_id: str, amount: Decimal) -> Account:
        """
        Hold ``amount`` of the wallet for an unbooked round.

        Replaces any earlier hold of the same round, so a double raises the
        hold to twice the bet. Raises InsufficientFundsError, leaving the
        holds unchanged, when the wallet minus the other rounds' holds is
        short. Returns the account with the new hold applied.
        """
        ...

    @abstractmethod
    async def release(self, username: str, round_id: str) -> None:
        """Drop the hold of a round that ends without being booked."""
        ...

    @staticmethod
    def _validate(settlement: Settlement) -> None:
        if settlement.bet_amount <= 0:
            raise InvalidBetError(f"Bet must be positive, got {settlement.bet_amount}")

    @staticmethod
    def _check_hold(username: str, wallet: Decimal, others: Decimal, amount: Decimal) -> None:
        if amount <= 0:
            raise InvalidBetError(f"Stake must be positive, got {amount}")
        if amount > wallet - others:
            raise InsufficientFundsError(
                f"Stake {amount} exceeds available funds {wallet - others} of {username}"
            )


class InMemorySettlementRecorder(SettlementRecorder):
    """In-memory recorder for local development and tests."""

    def __init__(self) -> None:
        self._accounts: dict[str, Account] = {}
        self._history: dict[str, list[HistoryEntry]] = {}
        self._recorded: dict[str, HistoryEntry] = {}
        self._holds: dict[str, dict[str, Decimal]] = {}
        self._lock = asyncio.Lock()

    async def create_account(self, username: str, wallet: Decimal) -> Account:
        """Open an account with a starting wallet."""
        async with self._lock:
            if username in self._accounts:
                raise InputError(f"Account already exists: {username}")
            account = Account(username=username, wallet=wallet)
            self._accounts[username] = account
            self._history[username] = []
            self._holds[username] = {}
            return account

    async def get_account(self, username: str) -> Account:
        """Get an account."""
        account = self._accounts.get(username)
        if account is None:
            raise NotFoundError(f"Unknown account: {username}")
        return self._with_holds(account)

    async def history(self, username: str, limit: int | None = None) -> list[HistoryEntry]:
        """Get booked rounds, newest first."""
        await self.get_account(username)
        entries = list(reversed(self._history.get(username, [])))
        return entries[:limit] if limit is not None else entries

    async def reserve(self, username: str, round_id: str, amount: Decimal) -> Account:
        """Hold part of the wallet for a round."""
        async with self._lock:
            account = self._accounts.get(username)
            if account is None:
                raise NotFoundError(f"Unknown account: {username}")

            holds = self._holds.setdefault(username, {})
            others = sum(
                (held for rid, held in holds.items() if rid != round_id), Decimal(0)
            )
            self._check_hold(username, account.wallet, others, amount)
            holds[round_id] = amount
            return self._with_holds(account)

    async def release(self, username: str, round_id: str) -> None:
        """Drop a round's hold."""
        async with self._lock:
            if self._holds.get(username, {}).pop(round_id, None) is not None:
                logger.info("Released hold of round %s for %s", round_id, username)

    async def record(
        self,
        username: str,
        settlement: Settlement,
        round_id: str,
        dealer_ref: str | None = None,
    ) -> HistoryEntry:
        """Book a settlement by staging both writes and committing them together."""
        self._validate(settlement)

        async with self._lock:
            existing = self._recorded.get(round_id)
            if existing is not None:
                logger.info("Round %s already recorded, skipping", round_id)
                return existing

            account = self._accounts.get(username)
            if account is None:
                raise NotFoundError(f"Unknown account: {username}")

            entry = HistoryEntry(
                round_id=round_id,
                username=username,
                result=settlement.outcome,
                bet_amount=settlement.bet_amount,
                profit_change=settlement.profit,
                dealer_ref=dealer_ref,
            )

            try:
                history = self._insert_history(username, entry)
                updated = self._update_account(account, settlement)
            except Exception as exc:
                logger.error("Recording round %s for %s failed: %s", round_id, username, exc)
                raise PersistenceError(f"Could not record round {round_id}") from exc

            # Commit
            self._history[username] = history
            self._accounts[username] = updated
            self._recorded[round_id] = entry
            self._holds.get(username, {}).pop(round_id, None)

        logger.info(
            "Recorded round %s for %s: %s %s",
            round_id,
            username,
            settlement.outcome.value,
            settlement.profit,
        )
        return entry

    def _with_holds(self, account: Account) -> Account:
        held = sum(self._holds.get(account.username, {}).values(), Decimal(0))
        return replace(account, reserved=held)

    def _insert_history(self, username: str, entry: HistoryEntry) -> list[HistoryEntry]:
        """Stage the history insert."""
        return [*self._history.get(username, []), entry]

    def _update_account(self, account: Account, settlement: Settlement) -> Account:
        """Stage the wallet and aggregate update."""
        return apply_settlement(account, settlement)
