"""
Player history service.

History Log contract plus the SQL implementation. Records are append-only:
the orchestrator writes exactly one record when a round resolves, and nothing
in the service updates or deletes them.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import List, Dict, Any, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from models import RoundHistory, GameKind, Outcome, utcnow
from services.payoff_service import CENT


class HistoryLog(ABC):
    """Append-only per-player round records."""

    @abstractmethod
    def append(
        self,
        player_id: str,
        round_id: str,
        game_kind: GameKind,
        bet_amount: Decimal,
        payout: Decimal,
        outcome: Outcome,
        detail: Dict[str, Any],
        timestamp: Optional[datetime] = None,
    ) -> str:
        ...

    @abstractmethod
    def list_for_player(
        self,
        player_id: str,
        limit: int = 50,
        game_kind: Optional[GameKind] = None,
    ) -> List[RoundHistory]:
        """Newest first, optionally restricted to one game."""
        ...


class SqlHistoryLog(HistoryLog):
    def __init__(self, db: Session):
        self.db = db

    def append(
        self,
        player_id: str,
        round_id: str,
        game_kind: GameKind,
        bet_amount: Decimal,
        payout: Decimal,
        outcome: Outcome,
        detail: Dict[str, Any],
        timestamp: Optional[datetime] = None,
    ) -> str:
        record = RoundHistory(
            player_id=player_id,
            round_id=round_id,
            game_kind=game_kind,
            bet_amount=bet_amount,
            payout=payout,
            outcome=outcome,
            detail=detail,
            created_at=timestamp or utcnow(),
        )
        self.db.add(record)
        self.db.flush()
        return record.id

    def list_for_player(
        self,
        player_id: str,
        limit: int = 50,
        game_kind: Optional[GameKind] = None,
    ) -> List[RoundHistory]:
        query = self.db.query(RoundHistory).filter(RoundHistory.player_id == player_id)
        if game_kind is not None:
            query = query.filter(RoundHistory.game_kind == game_kind)
        return (
            query
            .order_by(RoundHistory.created_at.desc())
            .limit(limit)
            .all()
        )


def get_player_round_history(
    player_id: str,
    db: Session,
    limit: int = 50,
    game_kind: Optional[GameKind] = None,
) -> List[Dict[str, Any]]:
    """
    Return the player's resolved rounds, newest first, ready for the frontend.

    Each entry carries the stake, the payout, the net result and the
    game-specific detail so the client never has to keep its own log.
    """
    rows = SqlHistoryLog(db).list_for_player(player_id, limit=limit, game_kind=game_kind)

    history: List[Dict[str, Any]] = []
    for record in rows:
        history.append({
            "id": record.id,
            "round_id": record.round_id,
            "game_kind": record.game_kind,
            "bet_amount": record.bet_amount,
            "payout": record.payout,
            "net": record.payout - record.bet_amount,
            "outcome": record.outcome,
            "detail": record.detail,
            "created_at": record.created_at,
        })

    return history


def get_player_stats(player_id: str, db: Session) -> List[Dict[str, Any]]:
    """
    Per-game aggregates for one player: rounds played, wagered, paid out, net.
    """
    rows = (
        db.query(
            RoundHistory.game_kind,
            func.count(RoundHistory.id),
            func.coalesce(func.sum(RoundHistory.bet_amount), 0),
            func.coalesce(func.sum(RoundHistory.payout), 0),
        )
        .filter(RoundHistory.player_id == player_id)
        .group_by(RoundHistory.game_kind)
        .all()
    )

    stats = []
    for game_kind, rounds, wagered, paid_out in rows:
        wagered = Decimal(str(wagered)).quantize(CENT)
        paid_out = Decimal(str(paid_out)).quantize(CENT)
        stats.append({
            "game_kind": game_kind,
            "rounds": rounds,
            "wagered": wagered,
            "paid_out": paid_out,
            "net": paid_out - wagered,
        })

    return sorted(stats, key=lambda entry: entry["game_kind"].value)
