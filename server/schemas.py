"""Pydantic schemas for API requests and responses."""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, StringConstraints


# Surrounding whitespace is dropped before the length check
Name = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=40)]


# CPU roster schemas
class CpuProfileRequest(BaseModel):
    """Request to create a CPU opponent. Sliders are bounded to [0.01, 1.0]."""

    name: Name
    confidence: float = Field(default=0.5, ge=0.01, le=1.0)
    risk: float = Field(default=0.5, ge=0.01, le=1.0)
    surrender_rate: float = Field(default=0.1, ge=0.01, le=1.0)


class CpuProfileResponse(BaseModel):
    """CPU opponent profile."""

    model_config = ConfigDict(from_attributes=True)

    name: str
    confidence: float
    risk: float
    surrender_rate: float
    stand_threshold: int


# Account schemas
class AccountCreateRequest(BaseModel):
    """Request to open an account."""

    username: Name
    wallet: Decimal | None = Field(default=None, gt=0, description="Starting wallet")


class AccountResponse(BaseModel):
    """Wallet and lifetime stats."""

    username: str
    wallet: float
    total_wins: int
    total_profit: float
    total_invested: float
    reserved: float
    available: float


class HistoryEntryResponse(BaseModel):
    """One booked round."""

    round_id: str
    result: Literal["win", "loss", "push", "surrender"]
    bet_amount: int
    profit_change: float
    dealer_ref: str | None
    created_at: datetime


# Round schemas
class StartRoundRequest(BaseModel):
    """Request to start a round."""

    bet: int = Field(..., ge=1, description="Bet amount")
    cpus: list[str] = Field(default_factory=list, description="Names of seated CPUs, in order")


class ActionRequest(BaseModel):
    """Request for player action."""

    action: Literal["hit", "stand", "double", "surrender"]


class ReportRequest(BaseModel):
    """Request to book a finished round."""

    dealer_ref: str | None = None


class CardResponse(BaseModel):
    """Card representation. Hidden cards only carry the card back image."""

    rank: str | None
    suit: str | None
    value: int | None
    code: str | None
    image: str | None
    hidden: bool = False


class HandResponse(BaseModel):
    """Hand representation."""

    cards: list[CardResponse]
    card_count: int
    value: int | None
    is_blackjack: bool
    is_busted: bool
    is_doubled: bool
    is_surrendered: bool


class SettlementResponse(BaseModel):
    """Outcome of one hand."""

    outcome: Literal["win", "loss", "push", "surrender"]
    profit: float
    bet_amount: int
    player_score: int
    dealer_score: int
    summary: str


class CpuSeatResponse(BaseModel):
    """A CPU at the table."""

    name: str
    hand: HandResponse
    result: SettlementResponse | None = None


class RoundStateResponse(BaseModel):
    """Current round state."""

    handle: str
    state: str
    bet: int
    player_hand: HandResponse
    dealer_hand: HandResponse
    dealer_showing: CardResponse | None
    cpus: list[CpuSeatResponse]
    can_hit: bool
    can_stand: bool
    can_double: bool
    can_surrender: bool
    settlement: SettlementResponse | None = None
    recorded: bool = False
    messages: list[str] = Field(default_factory=list)


class ReportResponse(BaseModel):
    """Booked round together with the updated account."""

    entry: HistoryEntryResponse
    account: AccountResponse
