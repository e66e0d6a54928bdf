"""
Player API Endpoints

職責：
1. 以 Telegram ID 取得或建立玩家
2. 查詢玩家資訊與餘額
3. 存款 / 提款
4. 回合歷史與統計
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
import logging

from database import get_db, get_settings
from models import GameKind
from schemas import (
    PlayerCreate,
    PlayerResponse,
    BalanceChange,
    BalanceResponse,
    HistoryEntry,
    GameStats,
)
from core.ledger import SqlPlayerLedger, register_player, adjust_balance
from core.exceptions import PlayerNotFound, InsufficientFunds
from services.history_service import get_player_round_history, get_player_stats

router = APIRouter(prefix="/api/players", tags=["players"])
logger = logging.getLogger(__name__)


@router.post("", response_model=PlayerResponse)
def create_player(player_data: PlayerCreate, db: Session = Depends(get_db)):
    """
    取得或建立玩家（Telegram mini-app 開啟時呼叫）

    流程：
    1. 以 telegram_id 查詢玩家
    2. 不存在就建立，初始餘額為 starting_balance
    3. 已存在就回傳原玩家（不重設餘額）
    """
    try:
        player = register_player(
            db,
            player_data.telegram_id,
            get_settings().starting_balance,
            username=player_data.username,
            first_name=player_data.first_name,
            last_name=player_data.last_name,
        )
        return PlayerResponse.model_validate(player)

    except Exception as e:
        logger.error(f"Failed to create player: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/by-telegram/{telegram_id}", response_model=PlayerResponse)
def get_player_by_telegram(telegram_id: str, db: Session = Depends(get_db)):
    player = SqlPlayerLedger(db).find_by_telegram_id(telegram_id)
    if not player:
        raise HTTPException(status_code=404, detail="Player not found")
    return PlayerResponse.model_validate(player)


@router.get("/{player_id}", response_model=PlayerResponse)
def get_player(player_id: str, db: Session = Depends(get_db)):
    try:
        player = SqlPlayerLedger(db).get_player(player_id)
        return PlayerResponse.model_validate(player)

    except PlayerNotFound:
        raise HTTPException(status_code=404, detail="Player not found")


@router.post("/{player_id}/deposit", response_model=BalanceResponse)
def deposit(player_id: str, change: BalanceChange, db: Session = Depends(get_db)):
    try:
        player = adjust_balance(db, player_id, change.amount)
        return BalanceResponse(player_id=player.id, balance=player.balance)

    except PlayerNotFound:
        raise HTTPException(status_code=404, detail="Player not found")
    except Exception as e:
        logger.error(f"Failed to deposit: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{player_id}/withdraw", response_model=BalanceResponse)
def withdraw(player_id: str, change: BalanceChange, db: Session = Depends(get_db)):
    """
    提款

    前置條件：
    - 餘額 >= 提款金額（進行中回合的下注已經先扣除）
    """
    try:
        player = adjust_balance(db, player_id, -change.amount)
        return BalanceResponse(player_id=player.id, balance=player.balance)

    except PlayerNotFound:
        raise HTTPException(status_code=404, detail="Player not found")
    except InsufficientFunds as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to withdraw: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{player_id}/history", response_model=List[HistoryEntry])
def get_history(
    player_id: str,
    game_kind: Optional[GameKind] = Query(None),
    limit: Optional[int] = Query(None, ge=1, le=500),
    db: Session = Depends(get_db)
):
    """
    取得玩家的回合歷史（新到舊）

    參數：
        game_kind: 只看某一種遊戲（可省略）
        limit: 筆數上限（預設 history_page_size）
    """
    try:
        SqlPlayerLedger(db).get_player(player_id)
        return get_player_round_history(
            player_id,
            db,
            limit=limit or get_settings().history_page_size,
            game_kind=game_kind,
        )

    except PlayerNotFound:
        raise HTTPException(status_code=404, detail="Player not found")
    except Exception as e:
        logger.error(f"Failed to get history: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{player_id}/stats", response_model=List[GameStats])
def get_stats(player_id: str, db: Session = Depends(get_db)):
    try:
        SqlPlayerLedger(db).get_player(player_id)
        return get_player_stats(player_id, db)

    except PlayerNotFound:
        raise HTTPException(status_code=404, detail="Player not found")
    except Exception as e:
        logger.error(f"Failed to get stats: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")
