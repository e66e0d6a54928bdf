"""
回合狀態機：集中管理 GameRound 的所有狀態轉換

    BETTING ──> ACTIVE ──> RESOLVED
                 │  ^
                 └──┘ （hit / reveal 之後回合繼續）

- BETTING：下注已驗證、已扣款，回合剛建立
- ACTIVE：等待玩家決策（或 crash 倍率上升中）
- RESOLVED：終局，已派彩並寫入歷史，不可再改變

單一回合型遊戲（coin flip、penalty、slots、roulette）會在同一個
transaction 內走完 BETTING -> ACTIVE -> RESOLVED。
"""
from datetime import datetime
import logging

from models import GameRound, RoundStatus
from core.exceptions import InvalidStateTransition, RoundAlreadyResolved

logger = logging.getLogger(__name__)


class RoundStateMachine:
    """GameRound 狀態轉換規則"""

    TRANSITIONS = {
        RoundStatus.BETTING: {RoundStatus.ACTIVE},
        RoundStatus.ACTIVE: {RoundStatus.ACTIVE, RoundStatus.RESOLVED},
        RoundStatus.RESOLVED: set(),
    }

    @classmethod
    def can_transition(cls, current: RoundStatus, target: RoundStatus) -> bool:
        return target in cls.TRANSITIONS.get(current, set())

    @classmethod
    def transition(cls, round_obj: GameRound, target: RoundStatus, now: datetime) -> GameRound:
        """
        執行狀態轉換

        參數：
            round_obj: 已鎖定的 GameRound
            target: 目標狀態
            now: 轉換時間

        異常：
            RoundAlreadyResolved: 回合已是終局
            InvalidStateTransition: 不允許的轉換
        """
        current = round_obj.status
        if current == RoundStatus.RESOLVED:
            raise RoundAlreadyResolved(round_obj.id)

        if not cls.can_transition(current, target):
            raise InvalidStateTransition(
                f"Round {round_obj.id}: cannot transition from {current.value} to {target.value}"
            )

        round_obj.status = target
        round_obj.updated_at = now
        if target == RoundStatus.RESOLVED:
            round_obj.resolved_at = now

        if current != target:
            logger.debug(f"Round {round_obj.id}: {current.value} -> {target.value}")
        return round_obj
