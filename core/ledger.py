"""
Player Ledger：玩家餘額的存取介面

RoundManager 只透過 PlayerLedger 讀寫餘額，不直接碰 Player model。
SqlPlayerLedger 與 GameRound 共用同一個 Session，所以扣款、建立回合、
派彩、寫入歷史可以落在同一個 transaction 裡。
"""
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional
import logging

from sqlalchemy.orm import Session

from models import Player
from database import transactional
from core.exceptions import PlayerNotFound, InsufficientFunds, InvalidStateTransition
from core.locks import player_mutex, with_player_lock

logger = logging.getLogger(__name__)


class PlayerLedger(ABC):
    """餘額儲存的抽象契約"""

    @abstractmethod
    def get_player(self, player_id: str, for_update: bool = False) -> Player:
        ...

    @abstractmethod
    def get_or_create(self, telegram_id: str, starting_balance: Decimal, **profile) -> Player:
        ...

    @abstractmethod
    def find_by_telegram_id(self, telegram_id: str) -> Optional[Player]:
        ...

    def get_balance(self, player_id: str) -> Decimal:
        return Decimal(self.get_player(player_id).balance)

    @abstractmethod
    def set_balance(self, player_id: str, amount: Decimal) -> None:
        ...


class SqlPlayerLedger(PlayerLedger):
    """SQLAlchemy 實作（不 commit，交給外層 @transactional）"""

    def __init__(self, db: Session):
        self.db = db

    def get_player(self, player_id: str, for_update: bool = False) -> Player:
        if for_update:
            player = with_player_lock(player_id, self.db).first()
        else:
            player = self.db.query(Player).filter(Player.id == player_id).first()
        if not player:
            raise PlayerNotFound(player_id)
        return player

    def find_by_telegram_id(self, telegram_id: str) -> Optional[Player]:
        return self.db.query(Player).filter(Player.telegram_id == telegram_id).first()

    def get_or_create(self, telegram_id: str, starting_balance: Decimal, **profile) -> Player:
        """
        以 Telegram ID 取得玩家，不存在就建立（初始餘額 starting_balance）

        已存在的玩家不會被重設餘額，但會更新非空的個人資料欄位
        """
        player = self.find_by_telegram_id(telegram_id)
        if player:
            for key, value in profile.items():
                if value is not None:
                    setattr(player, key, value)
            return player

        player = Player(telegram_id=telegram_id, balance=starting_balance, **profile)
        self.db.add(player)
        self.db.flush()
        logger.info(f"Created player {player.id} for telegram user {telegram_id}")
        return player

    def set_balance(self, player_id: str, amount: Decimal) -> None:
        if amount < 0:
            raise InvalidStateTransition(
                f"Balance of player {player_id} cannot become negative ({amount})"
            )
        player = self.get_player(player_id)
        player.balance = amount
        self.db.flush()


@transactional
def register_player(db: Session, telegram_id: str, starting_balance: Decimal, **profile) -> Player:
    """以 Telegram ID 取得或建立玩家"""
    return SqlPlayerLedger(db).get_or_create(telegram_id, starting_balance, **profile)


def adjust_balance(db: Session, player_id: str, delta: Decimal) -> Player:
    """
    存款（delta > 0）或提款（delta < 0）

    與回合操作共用 player_mutex，不會和扣款 / 派彩交錯

    異常：
        PlayerNotFound: 玩家不存在
        InsufficientFunds: 提款金額大於餘額
    """
    with player_mutex(player_id):
        return _adjust_balance(db, player_id, delta)


@transactional
def _adjust_balance(db: Session, player_id: str, delta: Decimal) -> Player:
    ledger = SqlPlayerLedger(db)
    player = ledger.get_player(player_id, for_update=True)
    balance = Decimal(player.balance)

    if balance + delta < 0:
        raise InsufficientFunds(balance, -delta)

    ledger.set_balance(player_id, balance + delta)
    logger.info(f"Player {player_id} balance adjusted by {delta}: {balance} -> {balance + delta}")
    return player
