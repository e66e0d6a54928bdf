"""
並發控制工具

兩層鎖：
1. Process 內：玩家 ID 雜湊到固定數量的 threading.Lock（stripe），序列化同一玩家的所有回合操作
   （FastAPI 的 sync endpoint 跑在 thread pool，背景排程也是另一個 thread）
   不同玩家可能共用同一把鎖，但鎖的總數固定，不會隨玩家數增加
2. Database-level：PostgreSQL 的 SELECT ... FOR UPDATE 悲觀鎖
   （SQLite 會忽略 FOR UPDATE，只靠第一層）
"""
import threading
import zlib
from contextlib import contextmanager
from typing import List

from sqlalchemy.orm import Session, Query

from models import Player, GameRound

LOCK_STRIPES = 256

_player_locks: List[threading.Lock] = [threading.Lock() for _ in range(LOCK_STRIPES)]


def lock_for(player_id: str) -> threading.Lock:
    """同一個 player_id 永遠拿到同一把鎖"""
    return _player_locks[zlib.crc32(str(player_id).encode("utf-8")) % LOCK_STRIPES]


@contextmanager
def player_mutex(player_id: str):
    """
    序列化同一玩家的操作

    使用場景：
    - 開局（檢查餘額 + 扣款 + 建立回合）
    - 回合內的決策（hit / reveal / cash out）
    - 背景排程結算 crash 回合

    範例：
        with player_mutex(player_id):
            manager.start_round(db, player_id, ...)
    """
    lock = lock_for(player_id)
    with lock:
        yield


def with_player_lock(player_id: str, db: Session) -> Query:
    """
    鎖定一個 Player（行級鎖）

    使用場景：
    - 讀取餘額後要寫回（扣款 / 派彩），防止 lost update

    返回：
        Query object（需要呼叫 .first() 來取得結果）
    """
    return db.query(Player).filter(
        Player.id == player_id
    ).populate_existing().with_for_update(nowait=False)


def with_round_lock(round_id: str, db: Session) -> Query:
    """
    鎖定一個 GameRound（行級鎖）

    使用場景：
    - 檢查並修改回合狀態時
    - 結算時（防止 cash out 與 crash 排程重複結算）

    範例：
        round_obj = with_round_lock(round_id, db).first()
        if round_obj and not round_obj.is_resolved:
            # 結算...

    返回：
        Query object（需要呼叫 .first() 或 .one() 來取得結果）
    """
    return db.query(GameRound).filter(
        GameRound.id == round_id
    ).populate_existing().with_for_update(nowait=False)
