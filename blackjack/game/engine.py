"""Round orchestrator with state machine."""

import asyncio
import logging
from decimal import Decimal
from enum import Enum
from random import Random
from typing import Awaitable, Callable, Iterable, TypeVar
from uuid import uuid4

from transitions import Machine

from blackjack.cards import Card
from blackjack.cpu import CpuAction, CpuActor, CpuProfile, RandomSource, decide
from blackjack.dealer import play_dealer
from blackjack.errors import (
    IllegalActionError,
    InputError,
    InsufficientFundsError,
    InvalidBetError,
    ShoeError,
)
from blackjack.game.events import EventEmitter, EventType, GameEvent
from blackjack.game.state import RoundState
from blackjack.hand import Hand
from blackjack.rules import TableRules
from blackjack.settlement import HistoryEntry, Settlement, SettlementRecorder, settle
from blackjack.shoe import ShoeProvider

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PlayerAction(str, Enum):
    """Actions available to the human player."""

    HIT = "hit"
    STAND = "stand"
    DOUBLE = "double"
    SURRENDER = "surrender"


class BlackjackRound:
    """
    One round of blackjack against the dealer, with CPU opponents.

    The round owns its hands and its shoe handle. Public coroutines are
    serialized with a lock so draws against the shared shoe never overlap.
    Once the player's turn ends the CPUs, then the dealer, play out
    automatically and the round settles.
    """

    # State machine states
    STATES = [s.name.lower() for s in RoundState]

    # State machine transitions
    TRANSITIONS = [
        {"trigger": "begin_deal", "source": "init", "dest": "dealing"},
        {"trigger": "deal_complete", "source": "dealing", "dest": "player_turn"},
        {"trigger": "player_done", "source": "player_turn", "dest": "cpu_turns"},
        {"trigger": "cpus_done", "source": "cpu_turns", "dest": "dealer_turn"},
        {"trigger": "dealer_done", "source": "dealer_turn", "dest": "settlement"},
        {"trigger": "finalize", "source": "settlement", "dest": "terminal"},
        {
            "trigger": "abort",
            "source": ["init", "dealing", "player_turn", "cpu_turns", "dealer_turn"],
            "dest": "aborted",
        },
    ]

    def __init__(
        self,
        bet: int,
        shoe_provider: ShoeProvider,
        cpu_profiles: Iterable[CpuProfile] = (),
        *,
        rules: TableRules | None = None,
        rng: RandomSource | None = None,
        shoe_id: str | None = None,
        round_id: str | None = None,
        username: str | None = None,
        available_funds: Decimal | None = None,
    ) -> None:
        """
        Initialize a new round.

        Args:
            bet: Wager for the player's hand
            shoe_provider: Card supply
            cpu_profiles: CPU opponents, in seating order
            rules: Table rules (uses defaults if not provided)
            rng: Random source for CPU decisions
            shoe_id: Existing shoe to draw from; a new one is fetched if None
            round_id: Identifier, also used as the settlement idempotency key
            username: Account the settlement is booked to
            available_funds: Funds the round may stake, checked for the bet and doubles
        """
        self.rules = rules or TableRules()
        profiles = list(cpu_profiles)

        if isinstance(bet, bool) or not isinstance(bet, int) or not self.rules.validate_bet(bet):
            raise InvalidBetError(
                f"Bet must be between {self.rules.min_bet} and {self.rules.max_bet}"
            )
        if available_funds is not None and Decimal(bet) > available_funds:
            raise InsufficientFundsError(f"Bet {bet} exceeds wallet {available_funds}")
        if len(profiles) > self.rules.cpu_seats:
            raise InputError(f"At most {self.rules.cpu_seats} CPUs can be seated")
        if len({p.name for p in profiles}) != len(profiles):
            raise InputError("CPU names must be unique")

        self.round_id = round_id or uuid4().hex
        self.bet = bet
        self.username = username
        self.available_funds = available_funds
        self.shoe_provider = shoe_provider
        self.shoe_id = shoe_id
        self.rng = rng or Random()

        self.player_hand = Hand()
        self.dealer_hand = Hand()
        self.cpus = [CpuActor(profile) for profile in profiles]

        self.settlement: Settlement | None = None
        self.cpu_results: dict[str, Settlement] = {}
        self.receipt: HistoryEntry | None = None

        self.events = EventEmitter()
        self._lock = asyncio.Lock()

        # Initialize state machine
        self.machine = Machine(
            model=self,
            states=self.STATES,
            transitions=self.TRANSITIONS,
            initial="init",
            auto_transitions=False,
            model_attribute="_machine_state",
        )

    @property
    def state(self) -> RoundState:
        """Get current round state as enum."""
        return RoundState[self._machine_state.upper()]  # type: ignore

    def subscribe(
        self,
        handler: Callable[[GameEvent], None],
        event_type: EventType | None = None,
    ) -> None:
        """Subscribe to round events."""
        self.events.subscribe(handler, event_type)

    @property
    def dealer_up_card(self) -> Card | None:
        """The dealer's first card, the only one visible before the dealer plays."""
        return self.dealer_hand.cards[0] if self.dealer_hand.cards else None

    async def start(self) -> None:
        """Fetch a shoe if needed and deal two cards to every seat."""
        async with self._lock:
            if self.state != RoundState.INIT:
                raise IllegalActionError("Round already started")

            self.begin_deal()
            await self._guard(self._deal_initial_cards())
            self.deal_complete()

        logger.info(
            "Round %s started: bet=%d cpus=%d shoe=%s",
            self.round_id,
            self.bet,
            len(self.cpus),
            self.shoe_id,
        )
        self.events.emit_new(
            EventType.ROUND_STARTED,
            bet=self.bet,
            player_value=self.player_hand.value,
        )

    async def _deal_initial_cards(self) -> None:
        if self.shoe_id is None:
            self.shoe_id = await self.shoe_provider.new_shoe()
            self.events.emit_new(EventType.SHOE_SHUFFLED, shoe_id=self.shoe_id)

        seats = [("player", self.player_hand), ("dealer", self.dealer_hand)]
        seats.extend((cpu.name, cpu.hand) for cpu in self.cpus)

        for owner, hand in seats:
            for card in await self._draw(2):
                hand.add_card(card)
                self.events.emit_new(
                    EventType.CARD_DEALT,
                    hand=owner,
                    card=str(card) if owner == "player" else "??",
                )

    async def _draw(self, count: int) -> list[Card]:
        """Draw cards from this round's shoe. Returns all of them or raises."""
        if self.shoe_id is None:
            raise ShoeError("Round has no shoe")

        cards = await self.shoe_provider.draw(self.shoe_id, count)
        if len(cards) != count:
            raise ShoeError(f"Expected {count} cards from shoe {self.shoe_id}, got {len(cards)}")
        return cards

    async def _draw_one(self) -> Card:
        return (await self._draw(1))[0]

    async def _guard(self, step: Awaitable[T]) -> T:
        """Run a step that draws cards, aborting the round if the shoe fails."""
        try:
            return await step
        except ShoeError as exc:
            self.abort()
            logger.warning("Round %s aborted: %s", self.round_id, exc)
            self.events.emit_new(EventType.ROUND_ABORTED, reason=str(exc))
            raise

    async def player_action(self, action: PlayerAction | str) -> None:
        """
        Apply a player action.

        Raises:
            IllegalActionError: Unknown action, wrong state, or double with
                other than two cards. The round is not modified.
            ShoeError: The card supply failed; the round is aborted.
        """
        try:
            action = PlayerAction(action)
        except ValueError:
            raise IllegalActionError(f"Unknown action: {action}") from None

        async with self._lock:
            if self.state != RoundState.PLAYER_TURN:
                self.events.emit_new(
                    EventType.INVALID_ACTION,
                    message=f"Cannot {action.value} now",
                    state=self.state.name,
                )
                raise IllegalActionError(f"Cannot {action.value} in state {self.state.name}")

            handlers = {
                PlayerAction.HIT: self._hit,
                PlayerAction.STAND: self._stand,
                PlayerAction.DOUBLE: self._double_down,
                PlayerAction.SURRENDER: self._surrender,
            }
            await self._guard(handlers[action]())

    async def hit(self) -> None:
        """Player hits (takes another card)."""
        await self.player_action(PlayerAction.HIT)

    async def stand(self) -> None:
        """Player stands (keeps current hand)."""
        await self.player_action(PlayerAction.STAND)

    async def double_down(self) -> None:
        """Player doubles down."""
        await self.player_action(PlayerAction.DOUBLE)

    async def surrender(self) -> None:
        """Player surrenders."""
        await self.player_action(PlayerAction.SURRENDER)

    async def _hit(self) -> None:
        card = await self._draw_one()
        self.player_hand.add_card(card)
        self.events.emit_new(EventType.PLAYER_HIT, card=str(card), hand_value=self.player_hand.value)

        if self.player_hand.is_busted:
            self.events.emit_new(EventType.PLAYER_BUSTS, hand_value=self.player_hand.value)
            await self._finish_round()

    async def _stand(self) -> None:
        self.events.emit_new(EventType.PLAYER_STAND, hand_value=self.player_hand.value)
        await self._finish_round()

    async def _double_down(self) -> None:
        hand = self.player_hand
        if not hand.can_double:
            self.events.emit_new(
                EventType.INVALID_ACTION,
                message="You can only double down on your first two cards!",
            )
            raise IllegalActionError("You can only double down on your first two cards")

        if self.available_funds is not None and Decimal(self.bet * 2) > self.available_funds:
            raise InsufficientFundsError(f"Doubling needs {self.bet * 2}, wallet has {self.available_funds}")

        card = await self._draw_one()
        hand.is_doubled = True
        hand.add_card(card)
        self.events.emit_new(
            EventType.PLAYER_DOUBLE,
            card=str(card),
            hand_value=hand.value,
            new_bet=self.bet * 2,
        )

        if hand.is_busted:
            self.events.emit_new(EventType.PLAYER_BUSTS, hand_value=hand.value)

        await self._finish_round()

    async def _surrender(self) -> None:
        self.player_hand.is_surrendered = True
        self.events.emit_new(EventType.PLAYER_SURRENDER)
        await self._finish_round()

    async def _finish_round(self) -> None:
        """Run the CPU turns, the dealer turn and settle, in that order."""
        self.player_done()
        await self._play_cpus()
        self.cpus_done()
        await self._play_dealer()
        self.dealer_done()
        self._settle()
        self.finalize()

    async def _play_cpus(self) -> None:
        up_card = self.dealer_up_card
        if up_card is None:
            raise ShoeError("Dealer has no up-card")

        # One CPU at a time; each turn completes before the next begins
        for cpu in self.cpus:
            await self._play_cpu(cpu, up_card)

    async def _play_cpu(self, cpu: CpuActor, up_card: Card) -> None:
        self.events.emit_new(EventType.CPU_TURN_STARTED, cpu=cpu.name, hand_value=cpu.hand.value)
        action = decide(cpu, up_card, self.rng)

        while True:
            self.events.emit_new(EventType.CPU_ACTION, cpu=cpu.name, action=action.value)

            if action == CpuAction.SURRENDER:
                cpu.hand.is_surrendered = True
                return

            if action == CpuAction.DOUBLE:
                card = await self._draw_one()
                cpu.hand.is_doubled = True
                cpu.hand.add_card(card)
                return

            if action == CpuAction.STAND:
                return

            cpu.hand.add_card(await self._draw_one())
            if cpu.hand.is_busted:
                self.events.emit_new(EventType.CPU_BUSTS, cpu=cpu.name, hand_value=cpu.hand.value)
                return

            action = decide(cpu, up_card, self.rng)

    async def _play_dealer(self) -> None:
        if len(self.dealer_hand) >= 2:
            self.events.emit_new(
                EventType.DEALER_REVEALS,
                card=str(self.dealer_hand.cards[1]),
                hand_value=self.dealer_hand.value,
            )

        async def draw_for_dealer() -> Card:
            card = await self._draw_one()
            self.events.emit_new(EventType.DEALER_HITS, card=str(card))
            return card

        await play_dealer(self.dealer_hand, draw_for_dealer, self.rules.dealer_stands_on)

        if self.dealer_hand.is_busted:
            self.events.emit_new(EventType.DEALER_BUSTS, hand_value=self.dealer_hand.value)
        else:
            self.events.emit_new(EventType.DEALER_STANDS, hand_value=self.dealer_hand.value)

    def _settle(self) -> None:
        refund = self.rules.surrender_refund
        self.settlement = settle(self.player_hand, self.dealer_hand, self.bet, refund)
        self.cpu_results = {
            cpu.name: settle(cpu.hand, self.dealer_hand, self.bet, refund) for cpu in self.cpus
        }

        logger.info(
            "Round %s settled: %s %s",
            self.round_id,
            self.settlement.outcome.value,
            self.settlement.profit,
        )
        self.events.emit_new(
            EventType.ROUND_ENDED,
            result=self.settlement.outcome.value,
            profit=float(self.settlement.profit),
        )

    def get_settlement(self) -> Settlement:
        """Return the player's settlement once the round is terminal."""
        if self.state != RoundState.TERMINAL or self.settlement is None:
            raise IllegalActionError(f"Round is not finished (state {self.state.name})")
        return self.settlement

    async def report(
        self,
        recorder: SettlementRecorder,
        username: str | None = None,
        dealer_ref: str | None = None,
    ) -> HistoryEntry:
        """
        Book the settlement with the recorder, exactly once.

        Repeated calls return the first receipt without contacting the
        recorder. If the recorder fails, PersistenceError propagates and the
        report can be retried; the settlement itself is never recomputed.
        """
        async with self._lock:
            settlement = self.get_settlement()
            if self.receipt is not None:
                return self.receipt

            owner = username or self.username
            if owner is None:
                raise InputError("No account to book the round to")

            self.receipt = await recorder.record(owner, settlement, self.round_id, dealer_ref)
            self.events.emit_new(EventType.SETTLEMENT_RECORDED, username=owner)
            return self.receipt

    @property
    def is_finished(self) -> bool:
        """Check if the round reached a final state."""
        return self.state in (RoundState.TERMINAL, RoundState.ABORTED)

    @property
    def can_hit(self) -> bool:
        """Check if hitting is allowed."""
        return self.state == RoundState.PLAYER_TURN and not self.player_hand.is_busted

    @property
    def can_stand(self) -> bool:
        """Check if standing is allowed."""
        return self.state == RoundState.PLAYER_TURN

    @property
    def can_double(self) -> bool:
        """Check if doubling is allowed."""
        if self.state != RoundState.PLAYER_TURN or not self.player_hand.can_double:
            return False
        if self.available_funds is None:
            return True
        return Decimal(self.bet * 2) <= self.available_funds

    @property
    def can_surrender(self) -> bool:
        """Check if surrender is allowed."""
        return self.state == RoundState.PLAYER_TURN


async def start_round(
    bet: int,
    shoe_provider: ShoeProvider,
    cpu_profiles: Iterable[CpuProfile] = (),
    **kwargs,
) -> BlackjackRound:
    """Create a round and deal it."""
    game_round = BlackjackRound(bet, shoe_provider, cpu_profiles, **kwargs)
    await game_round.start()
    return game_round
