"""Tests for the round orchestrator."""

from decimal import Decimal

import pytest

from blackjack.cpu import CpuProfile
from blackjack.errors import (
    IllegalActionError,
    InputError,
    InsufficientFundsError,
    InvalidBetError,
    PersistenceError,
    ShoeError,
)
from blackjack.game import BlackjackRound, EventType, PlayerAction, RoundState, start_round
from blackjack.rules import TableRules
from blackjack.settlement import InMemorySettlementRecorder, Outcome
from helpers import ScriptedRandom, ScriptedShoeProvider, cards


async def dealt_round(codes, cpus=(), bet=10, **kwargs):
    shoe = ScriptedShoeProvider(codes, fail_after=kwargs.pop("fail_after", None))
    kwargs.setdefault("rng", ScriptedRandom())
    game_round = await start_round(bet, shoe, cpus, **kwargs)
    return game_round, shoe


class CountingRecorder(InMemorySettlementRecorder):
    """Recorder counting calls to record."""

    def __init__(self) -> None:
        super().__init__()
        self.calls = 0

    async def record(self, *args, **kwargs):
        self.calls += 1
        return await super().record(*args, **kwargs)


class FailingOnceRecorder(InMemorySettlementRecorder):
    """Recorder whose first account update fails."""

    def __init__(self) -> None:
        super().__init__()
        self.failed = False

    def _update_account(self, account, settlement):
        if not self.failed:
            self.failed = True
            raise RuntimeError("connection reset")
        return super()._update_account(account, settlement)


class TestConstruction:
    """Tests for round creation checks."""

    @pytest.mark.parametrize("bet", [0, -5, 1001, 10.5, True, "10"])
    def test_invalid_bet(self, local_shoes, bet):
        """Test non-integer or out-of-limit bets are rejected."""
        with pytest.raises(InvalidBetError):
            BlackjackRound(bet, local_shoes)

    def test_insufficient_funds(self, local_shoes):
        with pytest.raises(InsufficientFundsError):
            BlackjackRound(50, local_shoes, available_funds=Decimal(40))

    def test_too_many_cpus(self, local_shoes):
        profiles = [CpuProfile(f"CPU {i}") for i in range(4)]
        with pytest.raises(InputError):
            BlackjackRound(10, local_shoes, profiles)

    def test_duplicate_cpu_names(self, local_shoes):
        with pytest.raises(InputError):
            BlackjackRound(10, local_shoes, [CpuProfile("Ann"), CpuProfile("Ann")])

    def test_custom_limits(self, local_shoes):
        rules = TableRules(min_bet=5, max_bet=50)
        with pytest.raises(InvalidBetError):
            BlackjackRound(4, local_shoes, rules=rules)
        assert BlackjackRound(50, local_shoes, rules=rules).bet == 50

    def test_initial_state(self, local_shoes):
        game_round = BlackjackRound(10, local_shoes)
        assert game_round.state == RoundState.INIT
        assert not game_round.is_finished
        assert game_round.round_id


class TestDeal:
    """Tests for the opening deal."""

    @pytest.mark.asyncio
    async def test_deal_order(self, timid_cpu):
        """Test player, dealer, then each CPU receive two cards per draw."""
        game_round, shoe = await dealt_round(
            ["10S", "7H", "9C", "8D", "5S", "6H"], [timid_cpu]
        )

        assert game_round.player_hand.cards == cards("10S", "7H")
        assert game_round.dealer_hand.cards == cards("9C", "8D")
        assert game_round.cpus[0].hand.cards == cards("5S", "6H")
        assert shoe.draw_calls == [2, 2, 2]
        assert shoe.shoes_opened == 1
        assert game_round.state == RoundState.PLAYER_TURN
        assert game_round.dealer_up_card == cards("9C")[0]

    @pytest.mark.asyncio
    async def test_existing_shoe_reused(self):
        """Test a given shoe id is drawn from without opening a new shoe."""
        game_round, shoe = await dealt_round(["10S", "7H", "9C", "8D"], shoe_id="table-1")
        assert game_round.shoe_id == "table-1"
        assert shoe.shoes_opened == 0

    @pytest.mark.asyncio
    async def test_start_twice(self):
        game_round, _ = await dealt_round(["10S", "7H", "9C", "8D"])
        with pytest.raises(IllegalActionError):
            await game_round.start()

    @pytest.mark.asyncio
    async def test_real_shoe(self, local_shoes, timid_cpu, bold_cpu):
        """Test a full round against a shuffled local shoe reaches a result."""
        game_round = await start_round(10, local_shoes, [timid_cpu, bold_cpu])
        await game_round.stand()

        assert game_round.state == RoundState.TERMINAL
        assert game_round.dealer_hand.value >= 17
        assert set(game_round.cpu_results) == {"Timid", "Bold"}


class TestPlayerActions:
    """Tests for hit, stand, double and surrender."""

    @pytest.mark.asyncio
    async def test_hit_adds_card(self):
        game_round, _ = await dealt_round(["5S", "4H", "10C", "7D", "2C"])
        await game_round.hit()

        assert game_round.player_hand.value == 11
        assert game_round.state == RoundState.PLAYER_TURN

    @pytest.mark.asyncio
    async def test_hit_to_bust_finishes_round(self):
        """Test a bust ends the player's turn and the round settles as a loss."""
        game_round, _ = await dealt_round(["10S", "6H", "9C", "8D", "KC"])
        await game_round.hit()

        assert game_round.player_hand.is_busted
        assert game_round.state == RoundState.TERMINAL
        settlement = game_round.get_settlement()
        assert settlement.outcome == Outcome.LOSS
        assert settlement.profit == Decimal(-10)

    @pytest.mark.asyncio
    async def test_dealer_still_plays_after_bust(self):
        game_round, shoe = await dealt_round(["10S", "6H", "10C", "6D", "KC", "3S"])
        await game_round.hit()

        assert game_round.dealer_hand.value == 19
        assert shoe.dealt == 6

    @pytest.mark.asyncio
    async def test_stand_dealer_draws_to_seventeen(self):
        game_round, _ = await dealt_round(["10S", "8H", "6C", "5D", "3S", "4H"])
        await game_round.stand()

        # 11 -> 14 -> 18
        assert game_round.dealer_hand.value == 18
        assert game_round.get_settlement().outcome == Outcome.PUSH

    @pytest.mark.asyncio
    async def test_double_down(self):
        """Test a double takes exactly one card and stakes twice the bet."""
        game_round, shoe = await dealt_round(["5S", "6H", "10C", "7D", "KC"])
        await game_round.double_down()

        assert game_round.player_hand.is_doubled
        assert len(game_round.player_hand) == 3
        assert game_round.state == RoundState.TERMINAL
        settlement = game_round.get_settlement()
        assert settlement.outcome == Outcome.WIN
        assert settlement.profit == Decimal(20)
        assert settlement.bet_amount == 20

    @pytest.mark.asyncio
    async def test_double_on_three_cards_is_illegal(self):
        """Test doubling after a hit is rejected without drawing or changing state."""
        game_round, shoe = await dealt_round(["2S", "3H", "10C", "7D", "4C", "KS"])
        await game_round.hit()
        dealt_before = shoe.dealt

        with pytest.raises(IllegalActionError):
            await game_round.double_down()

        assert shoe.dealt == dealt_before
        assert len(game_round.player_hand) == 3
        assert not game_round.player_hand.is_doubled
        assert game_round.state == RoundState.PLAYER_TURN
        assert not game_round.can_double

    @pytest.mark.asyncio
    async def test_double_needs_funds(self):
        game_round, shoe = await dealt_round(
            ["5S", "6H", "10C", "7D", "KC"], available_funds=Decimal(15)
        )
        assert not game_round.can_double

        with pytest.raises(InsufficientFundsError):
            await game_round.double_down()
        assert shoe.dealt == 4
        assert game_round.state == RoundState.PLAYER_TURN

    @pytest.mark.asyncio
    async def test_surrender(self):
        """Test surrender ends the turn and loses half the bet."""
        game_round, shoe = await dealt_round(["10S", "6H", "KC", "7D"])
        await game_round.surrender()

        assert game_round.player_hand.is_surrendered
        assert shoe.dealt == 4
        settlement = game_round.get_settlement()
        assert settlement.outcome == Outcome.SURRENDER
        assert settlement.profit == Decimal(-5)

    @pytest.mark.asyncio
    async def test_surrender_after_hit(self):
        game_round, _ = await dealt_round(["2S", "3H", "KC", "7D", "4C"])
        await game_round.hit()
        await game_round.surrender()
        assert game_round.get_settlement().outcome == Outcome.SURRENDER

    @pytest.mark.asyncio
    async def test_action_by_string(self):
        game_round, _ = await dealt_round(["10S", "8H", "10C", "7D"])
        await game_round.player_action("stand")
        assert game_round.state == RoundState.TERMINAL

    @pytest.mark.asyncio
    async def test_unknown_action(self):
        game_round, _ = await dealt_round(["10S", "8H", "10C", "7D"])
        with pytest.raises(IllegalActionError):
            await game_round.player_action("split")
        assert game_round.state == RoundState.PLAYER_TURN

    @pytest.mark.asyncio
    async def test_action_after_round_over(self):
        game_round, _ = await dealt_round(["10S", "8H", "10C", "7D"])
        await game_round.stand()

        for action in PlayerAction:
            with pytest.raises(IllegalActionError):
                await game_round.player_action(action)

    @pytest.mark.asyncio
    async def test_action_before_deal(self, local_shoes):
        game_round = BlackjackRound(10, local_shoes)
        with pytest.raises(IllegalActionError):
            await game_round.hit()

    @pytest.mark.asyncio
    async def test_settlement_before_finish(self):
        game_round, _ = await dealt_round(["10S", "8H", "10C", "7D"])
        with pytest.raises(IllegalActionError):
            game_round.get_settlement()


class TestCpuTurns:
    """Tests for CPU sequencing."""

    @pytest.mark.asyncio
    async def test_cpus_play_in_order_before_dealer(self, timid_cpu, bold_cpu):
        """Test each CPU finishes its turn before the next CPU and the dealer."""
        codes = [
            "10S", "8H",  # player 18
            "6C", "10D",  # dealer 16
            "5S", "4H",  # Timid 9
            "10H", "9S",  # Bold 19
            "2C", "3D",  # Timid hits to 14
            "5H",  # dealer 21
        ]
        rng = ScriptedRandom()
        game_round, shoe = await dealt_round(codes, [timid_cpu, bold_cpu], rng=rng)
        events = []
        game_round.subscribe(events.append)

        await game_round.stand()

        timid, bold = game_round.cpus
        assert timid.hand.cards == cards("5S", "4H", "2C", "3D")
        assert bold.hand.cards == cards("10H", "9S")
        assert game_round.dealer_hand.value == 21
        assert shoe.draw_calls == [2, 2, 2, 2, 1, 1, 1]
        # Only Timid's opening double check consulted the random source
        assert rng.calls == 1

        turns = [
            e.data.get("cpu") or "dealer"
            for e in events
            if e.event_type in (EventType.CPU_TURN_STARTED, EventType.DEALER_REVEALS)
        ]
        assert turns == ["Timid", "Bold", "dealer"]

        assert game_round.cpu_results["Timid"].outcome == Outcome.LOSS
        assert game_round.cpu_results["Bold"].outcome == Outcome.LOSS
        assert game_round.get_settlement().outcome == Outcome.LOSS

    @pytest.mark.asyncio
    async def test_cpu_surrender_and_double(self):
        """Test CPU surrender draws nothing and a CPU double draws once."""
        quitter = CpuProfile("Quitter", confidence=0.5, risk=0.01, surrender_rate=1.0)
        gambler = CpuProfile("Gambler", confidence=0.5, risk=1.0, surrender_rate=0.01)
        codes = [
            "10S", "9H",  # player 19
            "KC", "7D",  # dealer 17
            "10C", "4H",  # Quitter 14
            "6S", "4D",  # Gambler 10
            "AC",  # Gambler doubles to 21
        ]
        game_round, shoe = await dealt_round(
            codes, [quitter, gambler], rng=ScriptedRandom(0.5, 0.99, 0.5)
        )
        await game_round.stand()

        quitter_seat, gambler_seat = game_round.cpus
        assert quitter_seat.surrendered
        assert len(quitter_seat.hand) == 2
        assert gambler_seat.doubled
        assert gambler_seat.hand.value == 21
        assert shoe.dealt == 9

        assert game_round.cpu_results["Quitter"].profit == Decimal(-5)
        assert game_round.cpu_results["Gambler"].profit == Decimal(20)


class TestShoeFailure:
    """Tests for card supply failures."""

    @pytest.mark.asyncio
    async def test_failure_during_deal_aborts(self, timid_cpu):
        """Test a deal failure aborts the round without a partial CPU hand."""
        shoe = ScriptedShoeProvider(["10S", "8H", "10C", "7D", "5S", "4H"], fail_after=4)
        game_round = BlackjackRound(10, shoe, [timid_cpu])

        with pytest.raises(ShoeError):
            await game_round.start()

        assert game_round.state == RoundState.ABORTED
        assert game_round.is_finished
        assert len(game_round.cpus[0].hand) == 0
        with pytest.raises(IllegalActionError):
            game_round.get_settlement()

    @pytest.mark.asyncio
    async def test_failure_on_hit_aborts(self):
        game_round, _ = await dealt_round(["10S", "2H", "10C", "7D", "5S"], fail_after=4)
        events = []
        game_round.subscribe(events.append, EventType.ROUND_ABORTED)

        with pytest.raises(ShoeError):
            await game_round.hit()

        assert game_round.state == RoundState.ABORTED
        assert len(game_round.player_hand) == 2
        assert len(events) == 1
        with pytest.raises(IllegalActionError):
            await game_round.stand()

    @pytest.mark.asyncio
    async def test_failure_during_dealer_turn_aborts(self):
        game_round, _ = await dealt_round(["10S", "8H", "10C", "2D"], fail_after=4)
        with pytest.raises(ShoeError):
            await game_round.stand()
        assert game_round.state == RoundState.ABORTED
        assert game_round.settlement is None


class TestReport:
    """Tests for booking the settlement."""

    @pytest.mark.asyncio
    async def test_report_books_once(self):
        """Test repeated reports return the same receipt and book once."""
        recorder = CountingRecorder()
        await recorder.create_account("alice", Decimal(1000))
        game_round, _ = await dealt_round(["10S", "9H", "10C", "7D"], username="alice")
        await game_round.stand()

        first = await game_round.report(recorder, dealer_ref="deck-9")
        second = await game_round.report(recorder)

        assert first is second
        assert recorder.calls == 1
        assert first.round_id == game_round.round_id
        assert first.dealer_ref == "deck-9"
        assert (await recorder.get_account("alice")).wallet == Decimal(1010)
        assert len(await recorder.history("alice")) == 1

    @pytest.mark.asyncio
    async def test_report_retry_after_persistence_error(self):
        """Test a failed report can be retried and books exactly once."""
        recorder = FailingOnceRecorder()
        await recorder.create_account("alice", Decimal(1000))
        game_round, _ = await dealt_round(["10S", "9H", "10C", "7D"], username="alice")
        await game_round.stand()
        settlement = game_round.get_settlement()

        with pytest.raises(PersistenceError):
            await game_round.report(recorder)
        assert game_round.receipt is None
        assert (await recorder.get_account("alice")).wallet == Decimal(1000)

        entry = await game_round.report(recorder)
        assert game_round.get_settlement() is settlement
        assert entry.profit_change == Decimal(10)
        assert len(await recorder.history("alice")) == 1

    @pytest.mark.asyncio
    async def test_report_before_finish(self, funded_recorder):
        game_round, _ = await dealt_round(["10S", "9H", "10C", "7D"], username="alice")
        with pytest.raises(IllegalActionError):
            await game_round.report(funded_recorder)

    @pytest.mark.asyncio
    async def test_report_needs_account(self, funded_recorder):
        game_round, _ = await dealt_round(["10S", "9H", "10C", "7D"])
        await game_round.stand()
        with pytest.raises(InputError):
            await game_round.report(funded_recorder)

        entry = await game_round.report(funded_recorder, username="alice")
        assert entry.username == "alice"
