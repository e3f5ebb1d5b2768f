"""Round API endpoints."""

import logging
import time
from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Header

from blackjack.cards import Card, Rank, Suit
from blackjack.cpu import CpuActor, CpuProfile
from blackjack.errors import NotFoundError, ShoeError
from blackjack.game import BlackjackRound, RoundState
from blackjack.game.events import EventEmitter, EventType, GameEvent
from blackjack.hand import Hand
from blackjack.rules import TableRules
from blackjack.settlement import Outcome, Settlement, SettlementRecorder
from blackjack.shoe import ShoeProvider
from config import config
from server.deck_api import get_shoe_provider
from server.ledger import deserialize_entry, get_settlement_recorder, serialize_entry
from server.routes.accounts import account_response, entry_response
from server.routes.cpus import get_profiles
from server.schemas import (
    ActionRequest,
    CardResponse,
    CpuSeatResponse,
    HandResponse,
    ReportRequest,
    ReportResponse,
    RoundStateResponse,
    SettlementResponse,
    StartRoundRequest,
)
from server.session import get_handle_signer, get_round_store

logger = logging.getLogger(__name__)

router = APIRouter()

Recorder = Annotated[SettlementRecorder, Depends(get_settlement_recorder)]
Shoes = Annotated[ShoeProvider, Depends(get_shoe_provider)]

# Live round cache (backed by the round store)
_rounds: dict[str, BlackjackRound] = {}

# Round data keys
ROUND_KEY_GAME = "round"
ROUND_KEY_LAST_ACTIVITY = "last_activity"


def table_rules() -> TableRules:
    """Table rules from configuration."""
    game = config.game
    return TableRules(
        min_bet=game.min_bet,
        max_bet=game.max_bet,
        dealer_stands_on=game.dealer_stands_on,
        surrender_refund=game.surrender_refund,
        cpu_seats=game.cpu_seats,
    )


def _serialize_card(card: Card) -> dict[str, Any]:
    """Serialize a card to a dict."""
    return {"rank": card.rank.value, "suit": card.suit.value, "image": card.image}


def _deserialize_card(data: dict[str, Any]) -> Card:
    """Deserialize a card from a dict."""
    return Card(Rank(data["rank"]), Suit(data["suit"]), image=data.get("image"))


def _serialize_hand(hand: Hand) -> dict[str, Any]:
    """Serialize a hand to a dict."""
    return {
        "cards": [_serialize_card(c) for c in hand.cards],
        "is_doubled": hand.is_doubled,
        "is_surrendered": hand.is_surrendered,
    }


def _deserialize_hand(data: dict[str, Any]) -> Hand:
    """Deserialize a hand from a dict."""
    return Hand(
        cards=[_deserialize_card(c) for c in data["cards"]],
        is_doubled=data["is_doubled"],
        is_surrendered=data["is_surrendered"],
    )


def _serialize_settlement(settlement: Settlement | None) -> dict[str, Any] | None:
    if settlement is None:
        return None
    return {
        "outcome": settlement.outcome.value,
        "profit": str(settlement.profit),
        "bet_amount": settlement.bet_amount,
        "player_score": settlement.player_score,
        "dealer_score": settlement.dealer_score,
    }


def _deserialize_settlement(data: dict[str, Any] | None) -> Settlement | None:
    if data is None:
        return None
    return Settlement(
        outcome=Outcome(data["outcome"]),
        profit=Decimal(data["profit"]),
        bet_amount=data["bet_amount"],
        player_score=data["player_score"],
        dealer_score=data["dealer_score"],
    )


def _serialize_event(event: GameEvent) -> dict[str, Any]:
    return {
        "type": event.event_type.name,
        "data": event.data,
        "timestamp": event.timestamp.isoformat(),
    }


def _deserialize_event(data: dict[str, Any]) -> GameEvent:
    return GameEvent(
        event_type=EventType[data["type"]],
        data=data["data"],
        timestamp=datetime.fromisoformat(data["timestamp"]),
    )


def _serialize_round(game_round: BlackjackRound) -> dict[str, Any]:
    """Serialize a round for the round store."""
    rules = game_round.rules
    return {
        "round_id": game_round.round_id,
        "state": game_round._machine_state,
        "bet": game_round.bet,
        "username": game_round.username,
        "available_funds": (
            str(game_round.available_funds) if game_round.available_funds is not None else None
        ),
        "shoe_id": game_round.shoe_id,
        "player_hand": _serialize_hand(game_round.player_hand),
        "dealer_hand": _serialize_hand(game_round.dealer_hand),
        "cpus": [
            {
                "name": cpu.profile.name,
                "confidence": cpu.profile.confidence,
                "risk": cpu.profile.risk,
                "surrender_rate": cpu.profile.surrender_rate,
                "hand": _serialize_hand(cpu.hand),
            }
            for cpu in game_round.cpus
        ],
        "settlement": _serialize_settlement(game_round.settlement),
        "cpu_results": {
            name: _serialize_settlement(result) for name, result in game_round.cpu_results.items()
        },
        "receipt": serialize_entry(game_round.receipt) if game_round.receipt else None,
        "events": [_serialize_event(e) for e in game_round.events.history],
        "rules": {
            "min_bet": rules.min_bet,
            "max_bet": rules.max_bet,
            "dealer_stands_on": rules.dealer_stands_on,
            "surrender_refund": str(rules.surrender_refund),
            "cpu_seats": rules.cpu_seats,
        },
    }


def _deserialize_round(data: dict[str, Any], shoe_provider: ShoeProvider) -> BlackjackRound:
    """Restore a round from stored data."""
    rules_data = data["rules"]
    rules = TableRules(
        min_bet=rules_data["min_bet"],
        max_bet=rules_data["max_bet"],
        dealer_stands_on=rules_data["dealer_stands_on"],
        surrender_refund=Decimal(rules_data["surrender_refund"]),
        cpu_seats=rules_data["cpu_seats"],
    )
    profiles = [
        CpuProfile(
            name=c["name"],
            confidence=c["confidence"],
            risk=c["risk"],
            surrender_rate=c["surrender_rate"],
        )
        for c in data["cpus"]
    ]
    funds = data["available_funds"]

    game_round = BlackjackRound(
        data["bet"],
        shoe_provider,
        profiles,
        rules=rules,
        shoe_id=data["shoe_id"],
        round_id=data["round_id"],
        username=data["username"],
        available_funds=Decimal(funds) if funds is not None else None,
    )

    # Restore state machine state
    game_round._machine_state = data["state"]

    game_round.player_hand = _deserialize_hand(data["player_hand"])
    game_round.dealer_hand = _deserialize_hand(data["dealer_hand"])
    game_round.cpus = [
        CpuActor(profile, _deserialize_hand(c["hand"])) for profile, c in zip(profiles, data["cpus"])
    ]
    game_round.settlement = _deserialize_settlement(data["settlement"])
    game_round.cpu_results = {
        name: _deserialize_settlement(result) for name, result in data["cpu_results"].items()
    }
    if data["receipt"] is not None:
        game_round.receipt = deserialize_entry(data["receipt"])
    game_round.events = EventEmitter(_deserialize_event(e) for e in data.get("events", []))

    return game_round


async def _save_round(game_round: BlackjackRound) -> None:
    """Save a round to the round store."""
    store = await get_round_store()
    await store.set(
        game_round.round_id,
        {
            ROUND_KEY_GAME: _serialize_round(game_round),
            ROUND_KEY_LAST_ACTIVITY: int(time.time()),
        },
    )


async def _get_round(handle: str, shoe_provider: ShoeProvider) -> BlackjackRound:
    """Resolve a handle to a live round."""
    round_id = get_handle_signer().unsign(handle)
    if round_id is None:
        raise NotFoundError("Unknown round")

    # Check memory cache first
    if round_id in _rounds:
        return _rounds[round_id]

    store = await get_round_store()
    data = await store.get(round_id)
    if not data or ROUND_KEY_GAME not in data:
        raise NotFoundError("Unknown round")

    game_round = _deserialize_round(data[ROUND_KEY_GAME], shoe_provider)
    _rounds[round_id] = game_round
    return game_round


def _card_response(card: Card, hidden: bool = False) -> CardResponse:
    """Convert a Card to CardResponse. Hidden cards show only the card back."""
    if hidden:
        return CardResponse(
            rank=None,
            suit=None,
            value=None,
            code=None,
            image=config.shoe.card_back_image,
            hidden=True,
        )
    return CardResponse(
        rank=str(card.rank),
        suit=str(card.suit),
        value=card.value,
        code=card.code,
        image=card.image,
    )


def _hand_response(hand: Hand, visible: int | None = None) -> HandResponse:
    """
    Convert a Hand to HandResponse.

    Only the first ``visible`` cards are shown; None shows all of them.
    """
    shown = len(hand.cards) if visible is None else visible
    concealed = shown < len(hand.cards)
    return HandResponse(
        cards=[_card_response(c, hidden=i >= shown) for i, c in enumerate(hand.cards)],
        card_count=len(hand.cards),
        value=None if concealed else hand.value,
        is_blackjack=False if concealed else hand.is_blackjack,
        is_busted=False if concealed else hand.is_busted,
        is_doubled=hand.is_doubled,
        is_surrendered=hand.is_surrendered,
    )


def _settlement_response(settlement: Settlement) -> SettlementResponse:
    """Convert a Settlement to SettlementResponse."""
    return SettlementResponse(
        outcome=settlement.outcome.value,
        profit=float(settlement.profit),
        bet_amount=settlement.bet_amount,
        player_score=settlement.player_score,
        dealer_score=settlement.dealer_score,
        summary=settlement.summary,
    )


def _round_response(game_round: BlackjackRound) -> RoundStateResponse:
    """Convert round state to response, hiding what the player cannot see yet."""
    reveal = game_round.is_finished

    cpus = [
        CpuSeatResponse(
            name=cpu.name,
            hand=_hand_response(cpu.hand, visible=None if reveal else 0),
            result=(
                _settlement_response(game_round.cpu_results[cpu.name])
                if cpu.name in game_round.cpu_results
                else None
            ),
        )
        for cpu in game_round.cpus
    ]

    up_card = game_round.dealer_up_card
    return RoundStateResponse(
        handle=get_handle_signer().sign(game_round.round_id),
        state=game_round.state.name,
        bet=game_round.bet,
        player_hand=_hand_response(game_round.player_hand),
        dealer_hand=_hand_response(game_round.dealer_hand, visible=None if reveal else 1),
        dealer_showing=_card_response(up_card) if up_card is not None else None,
        cpus=cpus,
        can_hit=game_round.can_hit,
        can_stand=game_round.can_stand,
        can_double=game_round.can_double,
        can_surrender=game_round.can_surrender,
        settlement=(
            _settlement_response(game_round.settlement)
            if game_round.state == RoundState.TERMINAL and game_round.settlement
            else None
        ),
        recorded=game_round.receipt is not None,
        messages=[str(e) for e in game_round.events.history],
    )


@router.post("")
async def start_round(
    request: StartRoundRequest,
    recorder: Recorder,
    shoe_provider: Shoes,
    username: Annotated[str, Header(alias="X-User-ID")],
) -> RoundStateResponse:
    """
    Place a bet, seat the CPUs and deal.

    The bet is held in the wallet until the round is reported, so rounds
    that are open at the same time cannot stake the same money twice.
    """
    account = await recorder.get_account(username)
    profiles = get_profiles(request.cpus)

    game_round = BlackjackRound(
        request.bet,
        shoe_provider,
        profiles,
        rules=table_rules(),
        username=username,
        available_funds=account.available,
    )
    account = await recorder.reserve(username, game_round.round_id, Decimal(request.bet))
    game_round.available_funds = account.available + request.bet

    try:
        await game_round.start()
    except ShoeError:
        await recorder.release(username, game_round.round_id)
        raise

    _rounds[game_round.round_id] = game_round
    await _save_round(game_round)
    return _round_response(game_round)


@router.get("/{handle}")
async def get_round(handle: str, shoe_provider: Shoes) -> RoundStateResponse:
    """Get current round state."""
    game_round = await _get_round(handle, shoe_provider)
    return _round_response(game_round)


@router.post("/{handle}/action")
async def player_action(
    handle: str,
    request: ActionRequest,
    recorder: Recorder,
    shoe_provider: Shoes,
) -> RoundStateResponse:
    """Execute a player action. The round plays out once the player is done."""
    game_round = await _get_round(handle, shoe_provider)

    # A double needs the hold raised to twice the bet before the card is drawn
    if (
        request.action == "double"
        and game_round.state == RoundState.PLAYER_TURN
        and game_round.player_hand.can_double
    ):
        stake = game_round.bet * 2
        account = await recorder.reserve(game_round.username, game_round.round_id, Decimal(stake))
        game_round.available_funds = account.available + stake

    try:
        await game_round.player_action(request.action)
    finally:
        if game_round.state == RoundState.ABORTED:
            await recorder.release(game_round.username, game_round.round_id)
        # Persist an aborted round too, so it is not replayed
        await _save_round(game_round)
    return _round_response(game_round)


@router.get("/{handle}/settlement")
async def get_settlement(handle: str, shoe_provider: Shoes) -> SettlementResponse:
    """Get the player's settlement of a finished round."""
    game_round = await _get_round(handle, shoe_provider)
    return _settlement_response(game_round.get_settlement())


@router.post("/{handle}/report")
async def report_round(
    handle: str,
    request: ReportRequest,
    recorder: Recorder,
    shoe_provider: Shoes,
) -> ReportResponse:
    """
    Book a finished round to the player's account.

    Safe to retry: the round is booked once and later calls return the
    same entry.
    """
    game_round = await _get_round(handle, shoe_provider)
    entry = await game_round.report(recorder, dealer_ref=request.dealer_ref)
    await _save_round(game_round)

    # Booked rounds leave the live cache; the stored copy answers retries
    _rounds.pop(game_round.round_id, None)

    account = await recorder.get_account(entry.username)
    return ReportResponse(entry=entry_response(entry), account=account_response(account))
