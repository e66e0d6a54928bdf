from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from models import GameKind, RoundStatus, Outcome


# ============ Player ============

class PlayerCreate(BaseModel):
    telegram_id: str = Field(..., min_length=1, max_length=64)
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class PlayerResponse(BaseModel):
    id: str
    telegram_id: str
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    balance: Decimal
    created_at: datetime

    class Config:
        from_attributes = True


class BalanceChange(BaseModel):
    amount: Decimal = Field(..., gt=0, decimal_places=2)


class BalanceResponse(BaseModel):
    player_id: str
    balance: Decimal


# ============ Round ============

class RoundStart(BaseModel):
    player_id: str
    game_kind: GameKind
    bet_amount: Optional[Decimal] = None
    choice: Dict[str, Any] = Field(default_factory=dict)


class Decision(BaseModel):
    action: str
    cell: Optional[int] = None


class RoundResponse(BaseModel):
    round_id: str
    player_id: str
    game_kind: GameKind
    status: RoundStatus
    terminal: bool
    bet_amount: Decimal
    payout: Optional[Decimal] = None
    outcome: Optional[Outcome] = None
    state: Dict[str, Any]
    result: Optional[Dict[str, Any]] = None
    balance: Decimal
    started_at: datetime
    resolved_at: Optional[datetime] = None


class MultiplierResponse(BaseModel):
    round_id: str
    status: RoundStatus
    terminal: bool
    multiplier: Decimal
    tick: int
    payout: Optional[Decimal] = None
    outcome: Optional[Outcome] = None
    crash_point: Optional[Decimal] = None


# ============ History ============

class HistoryEntry(BaseModel):
    id: str
    round_id: str
    game_kind: GameKind
    bet_amount: Decimal
    payout: Decimal
    net: Decimal
    outcome: Outcome
    detail: Dict[str, Any]
    created_at: datetime


class GameStats(BaseModel):
    game_kind: GameKind
    rounds: int
    wagered: Decimal
    paid_out: Decimal
    net: Decimal


# ============ Catalog ============

class GameInfo(BaseModel):
    game_kind: GameKind
    min_bet: Decimal
    max_bet: Decimal
    decisions: List[str]
