"""Account and history endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from blackjack.settlement import Account, HistoryEntry, SettlementRecorder
from config import config
from server.ledger import get_settlement_recorder
from server.schemas import AccountCreateRequest, AccountResponse, HistoryEntryResponse

router = APIRouter()

Recorder = Annotated[SettlementRecorder, Depends(get_settlement_recorder)]


def account_response(account: Account) -> AccountResponse:
    """Convert an Account to AccountResponse."""
    return AccountResponse(
        username=account.username,
        wallet=float(account.wallet),
        total_wins=account.total_wins,
        total_profit=float(account.total_profit),
        total_invested=float(account.total_invested),
        reserved=float(account.reserved),
        available=float(account.available),
    )


def entry_response(entry: HistoryEntry) -> HistoryEntryResponse:
    """Convert a HistoryEntry to HistoryEntryResponse."""
    return HistoryEntryResponse(
        round_id=entry.round_id,
        result=entry.result.value,
        bet_amount=entry.bet_amount,
        profit_change=float(entry.profit_change),
        dealer_ref=entry.dealer_ref,
        created_at=entry.created_at,
    )


@router.post("")
async def create_account(request: AccountCreateRequest, recorder: Recorder) -> AccountResponse:
    """Open an account."""
    wallet = request.wallet if request.wallet is not None else config.game.starting_wallet
    account = await recorder.create_account(request.username, wallet)
    return account_response(account)


@router.get("/{username}")
async def get_account(username: str, recorder: Recorder) -> AccountResponse:
    """Get wallet and lifetime stats."""
    return account_response(await recorder.get_account(username))


@router.get("/{username}/history")
async def get_history(
    username: str,
    recorder: Recorder,
    limit: Annotated[int | None, Query(ge=1, le=500)] = None,
) -> list[HistoryEntryResponse]:
    """Get booked rounds, newest first."""
    entries = await recorder.history(username, limit=limit)
    return [entry_response(e) for e in entries]
