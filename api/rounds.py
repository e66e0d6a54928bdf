"""
Round API Endpoints - 短輪詢版

重點：
1. 所有金流與結果都在伺服器端決定，前端只拿唯讀畫面
2. 所有業務邏輯集中在 RoundManager
3. Crash 倍率由伺服器時鐘推進，前端靠 /multiplier 輪詢
"""
from decimal import Decimal
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

import logging

from database import get_db, get_settings
from models import GameKind, GameRound
from schemas import RoundStart, Decision, RoundResponse, MultiplierResponse, GameInfo
from core.round_manager import RoundManager, DECISIONS, get_round_manager
from core.ledger import SqlPlayerLedger
from core.exceptions import (
    PlayerNotFound,
    RoundNotFound,
    RoundAlreadyActive,
    RoundAlreadyResolved,
    InsufficientFunds,
    InvalidBetAmount,
    InvalidChoice,
    InvalidDecision,
)
from services import crash_service
from services.payoff_service import bet_bounds

router = APIRouter(prefix="/api", tags=["rounds"])
logger = logging.getLogger(__name__)


def build_round_response(manager: RoundManager, db: Session, round_obj: GameRound) -> RoundResponse:
    balance = SqlPlayerLedger(db).get_balance(round_obj.player_id)
    return RoundResponse(
        round_id=round_obj.id,
        player_id=round_obj.player_id,
        game_kind=round_obj.game_kind,
        status=round_obj.status,
        terminal=round_obj.is_resolved,
        bet_amount=round_obj.bet_amount,
        payout=round_obj.payout,
        outcome=round_obj.outcome,
        state=manager.public_state(round_obj),
        result=(round_obj.state or {}).get("result") if round_obj.is_resolved else None,
        balance=balance,
        started_at=round_obj.started_at,
        resolved_at=round_obj.resolved_at,
    )


@router.get("/games", response_model=List[GameInfo])
def list_games():
    """遊戲清單與下注上下限（roulette 為單一籌碼的上下限）"""
    settings = get_settings()
    games = []
    for game_kind in GameKind:
        low, high = bet_bounds(game_kind, settings)
        games.append(GameInfo(
            game_kind=game_kind,
            min_bet=low,
            max_bet=high,
            decisions=list(DECISIONS.get(game_kind, ())),
        ))
    return games


@router.post("/rounds", response_model=RoundResponse)
def start_round(
    round_data: RoundStart,
    db: Session = Depends(get_db),
    manager: RoundManager = Depends(get_round_manager)
):
    """
    開始一個回合

    流程：
    1. 驗證下注與選擇
    2. 扣款並建立回合
    3. 單一回合型遊戲（coinflip / penalty / slots / roulette）直接回傳結果
       多步驟遊戲（blackjack / mines / crash）回傳初始畫面

    返回：
        - round_id, status, terminal
        - state: 前端可見的回合畫面
        - payout / outcome / result: 回合結束時才有
        - balance: 操作後的餘額
    """
    try:
        round_obj = manager.start_round(
            db,
            round_data.player_id,
            round_data.game_kind,
            round_data.bet_amount,
            round_data.choice,
        )
        return build_round_response(manager, db, round_obj)

    except PlayerNotFound:
        raise HTTPException(status_code=404, detail="Player not found")
    except (InsufficientFunds, InvalidBetAmount, InvalidChoice) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RoundAlreadyActive as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to start round: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/rounds/{round_id}", response_model=RoundResponse)
def get_round(
    round_id: str,
    db: Session = Depends(get_db),
    manager: RoundManager = Depends(get_round_manager)
):
    try:
        round_obj = manager.get_round(db, round_id)
        return build_round_response(manager, db, round_obj)

    except RoundNotFound:
        raise HTTPException(status_code=404, detail="Round not found")
    except Exception as e:
        logger.error(f"Failed to get round: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/rounds/{round_id}/decisions", response_model=RoundResponse)
def apply_decision(
    round_id: str,
    decision: Decision,
    db: Session = Depends(get_db),
    manager: RoundManager = Depends(get_round_manager)
):
    """
    送出決策

    - blackjack: {"action": "hit"} / {"action": "stand"}
    - mines: {"action": "reveal", "cell": 0-24} / {"action": "cash_out"}
    - crash: {"action": "cash_out"}

    Crash 的兌現以伺服器收到請求當下的倍率為準；
    若此時已過 crash point，回合會以輸結算並回傳 409。
    """
    try:
        round_obj = manager.apply_decision(db, round_id, decision.model_dump(exclude_none=True))
        return build_round_response(manager, db, round_obj)

    except RoundNotFound:
        raise HTTPException(status_code=404, detail="Round not found")
    except RoundAlreadyResolved as e:
        raise HTTPException(status_code=409, detail=str(e))
    except InvalidDecision as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to apply decision: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/rounds/{round_id}/multiplier", response_model=MultiplierResponse)
def poll_multiplier(
    round_id: str,
    db: Session = Depends(get_db),
    manager: RoundManager = Depends(get_round_manager)
):
    """
    取得 crash 回合目前的倍率（唯讀快照）

    crash_point 只在回合結束後才會出現
    """
    try:
        round_obj, tick = manager.poll_multiplier(db, round_id)
        crash_point = round_obj.state["crash_point"] if round_obj.is_resolved else None
        return MultiplierResponse(
            round_id=round_obj.id,
            status=round_obj.status,
            terminal=round_obj.is_resolved,
            multiplier=crash_service.multiplier_at(round_obj.state, tick),
            tick=tick,
            payout=round_obj.payout,
            outcome=round_obj.outcome,
            crash_point=Decimal(crash_point) if crash_point else None,
        )

    except RoundNotFound:
        raise HTTPException(status_code=404, detail="Round not found")
    except InvalidDecision as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to poll multiplier: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/players/{player_id}/rounds/active", response_model=List[RoundResponse])
def list_active_rounds(
    player_id: str,
    db: Session = Depends(get_db),
    manager: RoundManager = Depends(get_round_manager)
):
    """玩家所有進行中的回合（重新開啟畫面時用來接續）"""
    try:
        SqlPlayerLedger(db).get_player(player_id)
        rounds = manager.list_active_rounds(db, player_id)
        return [build_round_response(manager, db, r) for r in rounds]

    except PlayerNotFound:
        raise HTTPException(status_code=404, detail="Player not found")
    except Exception as e:
        logger.error(f"Failed to list active rounds: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")
