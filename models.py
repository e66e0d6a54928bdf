"""
ORM models

- Player：玩家與餘額（Player Ledger 的 SQL 實作使用）
- GameRound：一個回合的生命週期與遊戲內部狀態（只由 RoundManager 修改）
- RoundHistory：已結算回合的紀錄（append-only，History Log 的 SQL 實作使用）
"""
import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, Numeric, DateTime, Enum, ForeignKey, JSON, Index
from sqlalchemy.orm import relationship

from database import Base


def utcnow() -> datetime:
    # SQLite 不保存時區，一律存 naive UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


class GameKind(str, enum.Enum):
    SLOTS = "slots"
    BLACKJACK = "blackjack"
    ROULETTE = "roulette"
    MINES = "mines"
    CRASH = "crash"
    COINFLIP = "coinflip"
    PENALTY = "penalty"


class RoundStatus(str, enum.Enum):
    BETTING = "betting"
    ACTIVE = "active"
    RESOLVED = "resolved"


class Outcome(str, enum.Enum):
    WIN = "win"
    LOSE = "lose"
    PUSH = "push"


Money = Numeric(12, 2, asdecimal=True)


class Player(Base):
    __tablename__ = "players"

    id = Column(String(36), primary_key=True, default=new_id)
    telegram_id = Column(String(64), unique=True, nullable=False, index=True)
    username = Column(String(64))
    first_name = Column(String(64))
    last_name = Column(String(64))
    balance = Column(Money, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    rounds = relationship("GameRound", back_populates="player")


class GameRound(Base):
    __tablename__ = "game_rounds"
    __table_args__ = (
        Index("ix_game_rounds_player_kind_status", "player_id", "game_kind", "status"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    player_id = Column(String(36), ForeignKey("players.id", ondelete="CASCADE"), nullable=False)
    game_kind = Column(Enum(GameKind), nullable=False)
    status = Column(Enum(RoundStatus), nullable=False, default=RoundStatus.BETTING)
    bet_amount = Column(Money, nullable=False)
    payout = Column(Money)
    outcome = Column(Enum(Outcome))
    # 遊戲內部狀態（牌堆、地雷位置、crash point），不可直接回傳給前端
    state = Column(JSON, nullable=False, default=dict)
    started_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)
    resolved_at = Column(DateTime)

    player = relationship("Player", back_populates="rounds")

    @property
    def is_resolved(self) -> bool:
        return self.status == RoundStatus.RESOLVED


class RoundHistory(Base):
    __tablename__ = "round_history"

    id = Column(String(36), primary_key=True, default=new_id)
    player_id = Column(String(36), ForeignKey("players.id", ondelete="CASCADE"), nullable=False, index=True)
    round_id = Column(String(36), nullable=False, unique=True)
    game_kind = Column(Enum(GameKind), nullable=False)
    bet_amount = Column(Money, nullable=False)
    payout = Column(Money, nullable=False, default=0)
    outcome = Column(Enum(Outcome), nullable=False)
    detail = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
