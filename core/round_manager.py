"""
Round Manager：管理一個回合的完整生命週期（下注 -> 結算 -> 派彩 -> 紀錄）

職責：
1. 開局：驗證下注、檢查餘額、扣款、建立回合、執行開局步驟
2. 決策：hit / stand（blackjack）、reveal / cash_out（mines）、cash_out（crash）
3. 結算：一次寫入餘額、寫入一筆歷史、回合轉為 RESOLVED
4. 背景結算：crash 到點、閒置過久的回合

原則：
- 每一步都在同一個 transaction 內完成，失敗就整個 rollback
  （不會出現已扣款卻沒有回合紀錄、或已派彩卻沒有歷史的狀態）
- 回合結果只由伺服器端的 resolver 決定，前端只拿到唯讀的畫面資料
- 同一玩家的所有操作都經過 player_mutex 序列化，commit 也在鎖內
- 結算後餘額 == 開局前餘額 - 下注 + 派彩
"""
from datetime import datetime
from functools import lru_cache
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple
import logging

from sqlalchemy.orm import Session

from database import get_settings, transactional
from models import GameRound, GameKind, RoundStatus, utcnow
from core.state_machine import RoundStateMachine
from core.ledger import SqlPlayerLedger
from core.locks import player_mutex, with_round_lock
from core.exceptions import (
    InsufficientFunds,
    InvalidBetAmount,
    InvalidChoice,
    InvalidDecision,
    RoundAlreadyActive,
    RoundAlreadyResolved,
    RoundNotFound,
)
from services import (
    blackjack_service,
    coinflip_service,
    crash_service,
    mines_service,
    penalty_service,
    roulette_service,
    slots_service,
)
from services.history_service import SqlHistoryLog
from services.payoff_service import Resolution, validate_bet_amount, CENT
from services.rng_service import RandomSource, build_random_source

logger = logging.getLogger(__name__)

DECISIONS = {
    GameKind.BLACKJACK: ("hit", "stand"),
    GameKind.MINES: ("reveal", "cash_out"),
    GameKind.CRASH: ("cash_out",),
}


def parse_game_kind(value) -> GameKind:
    try:
        return GameKind(value)
    except ValueError:
        raise InvalidChoice(f"Unknown game kind: {value!r}")


class RoundManager:
    """回合生命週期管理器（Round Orchestrator）"""

    def __init__(
        self,
        settings=None,
        rng: Optional[RandomSource] = None,
        clock: Optional[Callable[[], datetime]] = None,
        ledger_factory=SqlPlayerLedger,
        history_factory=SqlHistoryLog,
    ):
        self.settings = settings or get_settings()
        self.rng = rng or build_random_source(self.settings)
        self.clock = clock or utcnow
        self.ledger_factory = ledger_factory
        self.history_factory = history_factory

    # ============ 開局 ============

    def start_round(
        self,
        db: Session,
        player_id: str,
        game_kind,
        bet_amount=None,
        choice: Optional[Dict[str, Any]] = None,
    ) -> GameRound:
        """
        開始一個新回合

        流程：
        1. 驗證下注金額與玩家選擇（不合法就直接拒絕，不動餘額）
        2. 檢查同一遊戲是否已有進行中的回合
        3. 檢查餘額並扣款
        4. 建立回合並執行開局步驟（單一回合型遊戲直接結算）

        參數：
            db: SQLAlchemy Session
            player_id: 玩家 ID
            game_kind: 遊戲種類
            bet_amount: 下注金額（roulette 可省略，以各注加總為準）
            choice: 遊戲專屬參數

        返回：
            GameRound（ACTIVE 或 RESOLVED）

        異常：
            PlayerNotFound, InvalidBetAmount, InvalidChoice,
            RoundAlreadyActive, InsufficientFunds
        """
        game_kind = parse_game_kind(game_kind)
        with player_mutex(player_id):
            return self._start_round(db, player_id, game_kind, bet_amount, choice or {})

    @transactional
    def _start_round(
        self,
        db: Session,
        player_id: str,
        game_kind: GameKind,
        bet_amount,
        choice: Dict[str, Any],
    ) -> GameRound:
        ledger = self.ledger_factory(db)

        # 1. 鎖定玩家
        player = ledger.get_player(player_id, for_update=True)

        # 2. 驗證下注（扣款之前）
        stake, prepared = self._prepare_bet(game_kind, bet_amount, choice)

        # 3. 單一進行中回合限制
        existing = self._find_active_round(db, player_id, game_kind)
        if existing:
            raise RoundAlreadyActive(player_id, game_kind.value, existing.id)

        # 4. 檢查餘額並扣款
        balance = Decimal(player.balance)
        if balance < stake:
            raise InsufficientFunds(balance, stake)

        now = self.clock()
        ledger.set_balance(player_id, balance - stake)

        round_obj = GameRound(
            player_id=player_id,
            game_kind=game_kind,
            status=RoundStatus.BETTING,
            bet_amount=stake,
            state={},
            started_at=now,
            updated_at=now,
        )
        db.add(round_obj)
        db.flush()

        logger.info(
            f"Round {round_obj.id} started: player={player_id} game={game_kind.value} "
            f"bet={stake} balance {balance} -> {balance - stake}"
        )

        # 5. 開局步驟
        RoundStateMachine.transition(round_obj, RoundStatus.ACTIVE, now)
        state, resolution = self._open(game_kind, stake, prepared)
        round_obj.state = state

        if resolution is not None:
            self._settle(db, round_obj, resolution, now)

        return round_obj

    def _prepare_bet(self, game_kind: GameKind, bet_amount, choice: Dict[str, Any]) -> Tuple[Decimal, Any]:
        """
        驗證下注與選擇，回傳 (總下注額, 正規化後的選擇)
        """
        if game_kind == GameKind.ROULETTE:
            bets = roulette_service.parse_bets(choice, self.settings)
            stake = roulette_service.total_stake(bets)
            if bet_amount is not None and Decimal(str(bet_amount)).quantize(CENT) != stake:
                raise InvalidBetAmount(
                    f"Roulette bet amount {bet_amount} does not match the sum of bets {stake}"
                )
            return stake, bets

        if bet_amount is None:
            raise InvalidBetAmount(f"{game_kind.value} requires a bet amount")
        stake = validate_bet_amount(bet_amount, game_kind, self.settings)

        if game_kind == GameKind.COINFLIP:
            return stake, {"side": coinflip_service.parse_choice(choice)}
        if game_kind == GameKind.PENALTY:
            return stake, {"direction": penalty_service.parse_choice(choice)}
        return stake, {}

    def _open(self, game_kind: GameKind, stake: Decimal, prepared) -> Tuple[Dict, Optional[Resolution]]:
        """執行開局步驟，回傳 (回合狀態, 結算結果或 None)"""
        if game_kind == GameKind.COINFLIP:
            return dict(prepared), coinflip_service.resolve(stake, prepared, self.rng)

        if game_kind == GameKind.PENALTY:
            return dict(prepared), penalty_service.resolve(
                stake,
                prepared,
                self.rng,
                goal_on_guess=self.settings.penalty_goal_on_guess,
                goal_on_miss=self.settings.penalty_goal_on_miss,
            )

        if game_kind == GameKind.SLOTS:
            return {}, slots_service.resolve(stake, prepared, self.rng)

        if game_kind == GameKind.ROULETTE:
            return {}, roulette_service.resolve(prepared, self.rng)

        if game_kind == GameKind.BLACKJACK:
            return blackjack_service.deal(stake, self.rng)

        if game_kind == GameKind.MINES:
            board = mines_service.new_board(
                self.rng,
                grid_size=self.settings.mines_grid_size,
                mine_count=self.settings.mines_count,
            )
            return board, None

        if game_kind == GameKind.CRASH:
            flight = crash_service.new_flight(
                self.rng,
                tick_ms=self.settings.crash_tick_ms,
                step=self.settings.crash_tick_step,
            )
            if crash_service.has_crashed(flight, 0):
                return flight, crash_service.crashed(flight)
            return flight, None

        raise InvalidChoice(f"Unsupported game kind: {game_kind}")

    # ============ 決策 ============

    def apply_decision(self, db: Session, round_id: str, decision: Dict[str, Any]) -> GameRound:
        """
        對進行中的回合送出決策

        decision 格式：
            {"action": "hit"} / {"action": "stand"}
            {"action": "reveal", "cell": 12} / {"action": "cash_out"}

        異常：
            RoundNotFound: 回合不存在
            RoundAlreadyResolved: 回合已結算（包含 crash 在兌現前已爆）
            InvalidDecision: 此遊戲不接受該操作
        """
        round_obj = self.get_round(db, round_id)
        with player_mutex(round_obj.player_id):
            round_obj, accepted = self._apply_decision(db, round_id, decision or {})

        if not accepted:
            raise RoundAlreadyResolved(round_id)
        return round_obj

    @transactional
    def _apply_decision(self, db: Session, round_id: str, decision: Dict[str, Any]) -> Tuple[GameRound, bool]:
        # 1. 鎖定回合
        round_obj = with_round_lock(round_id, db).first()
        if not round_obj:
            raise RoundNotFound(round_id)
        if round_obj.is_resolved:
            raise RoundAlreadyResolved(round_id)

        # 2. 檢查操作是否適用於此遊戲
        action = decision.get("action")
        allowed = DECISIONS.get(round_obj.game_kind, ())
        if action not in allowed:
            raise InvalidDecision(
                f"{round_obj.game_kind.value} rounds accept {list(allowed)}, got {action!r}"
            )

        now = self.clock()
        stake = Decimal(round_obj.bet_amount)
        logger.info(f"Round {round_id}: decision {action}")

        # 3. 交給各遊戲的 resolver
        if round_obj.game_kind == GameKind.BLACKJACK:
            if action == "hit":
                state, resolution = blackjack_service.hit(round_obj.state, stake)
            else:
                state, resolution = blackjack_service.stand(round_obj.state, stake)
            self._advance(db, round_obj, state, resolution, now)
            return round_obj, True

        if round_obj.game_kind == GameKind.MINES:
            if action == "reveal":
                state, resolution = mines_service.reveal(round_obj.state, stake, decision.get("cell"))
            else:
                state, resolution = round_obj.state, mines_service.cash_out(round_obj.state, stake)
            self._advance(db, round_obj, state, resolution, now)
            return round_obj, True

        # crash：先看時鐘，已經到 crash tick 就以輸結算，兌現被拒絕
        tick = self.current_tick(round_obj, now)
        if crash_service.has_crashed(round_obj.state, tick):
            logger.info(f"Round {round_id}: cash out at tick {tick} rejected, crashed at {round_obj.state['crash_tick']}")
            self._settle(db, round_obj, crash_service.crashed(round_obj.state), now)
            return round_obj, False

        resolution = crash_service.cash_out(round_obj.state, stake, tick)
        self._settle(db, round_obj, resolution, now)
        return round_obj, True

    def _advance(
        self,
        db: Session,
        round_obj: GameRound,
        state: Dict,
        resolution: Optional[Resolution],
        now: datetime,
    ) -> None:
        round_obj.state = state
        if resolution is None:
            RoundStateMachine.transition(round_obj, RoundStatus.ACTIVE, now)
        else:
            self._settle(db, round_obj, resolution, now)

    # ============ 結算 ============

    def _settle(self, db: Session, round_obj: GameRound, resolution: Resolution, now: datetime) -> None:
        """
        結算回合：派彩、寫入歷史、轉為 RESOLVED（同一個 transaction）
        """
        ledger = self.ledger_factory(db)
        history = self.history_factory(db)

        player = ledger.get_player(round_obj.player_id, for_update=True)
        balance = Decimal(player.balance)
        payout = resolution.payout.quantize(CENT)

        if payout:
            ledger.set_balance(player.id, balance + payout)

        round_obj.payout = payout
        round_obj.outcome = resolution.outcome
        round_obj.state = {**round_obj.state, "result": resolution.detail}

        history.append(
            player_id=round_obj.player_id,
            round_id=round_obj.id,
            game_kind=round_obj.game_kind,
            bet_amount=Decimal(round_obj.bet_amount),
            payout=payout,
            outcome=resolution.outcome,
            detail=resolution.detail,
            timestamp=now,
        )
        RoundStateMachine.transition(round_obj, RoundStatus.RESOLVED, now)

        logger.info(
            f"Round {round_obj.id} resolved: {resolution.outcome.value} "
            f"bet={round_obj.bet_amount} payout={payout} balance {balance} -> {balance + payout}"
        )

    # ============ Crash 倍率 ============

    def current_tick(self, round_obj: GameRound, now: Optional[datetime] = None) -> int:
        now = now or self.clock()
        elapsed_ms = (now - round_obj.started_at).total_seconds() * 1000
        return crash_service.tick_at(round_obj.state, elapsed_ms)

    def display_tick(self, round_obj: GameRound, now: Optional[datetime] = None) -> int:
        """畫面上要顯示的 tick：結算後停在兌現或爆炸的那一刻"""
        if not round_obj.is_resolved:
            return self.current_tick(round_obj, now)
        result = round_obj.state.get("result") or {}
        if result.get("cashed_out"):
            return result["cash_out_tick"]
        return round_obj.state["crash_tick"]

    def poll_multiplier(self, db: Session, round_id: str) -> Tuple[GameRound, int]:
        """
        取得 crash 回合目前的狀態；若已到 crash tick 會先結算

        返回：
            (GameRound, tick)：tick 與結算判斷使用同一次時鐘讀數

        異常：
            RoundNotFound: 回合不存在
            InvalidDecision: 不是 crash 回合
        """
        round_obj = self.get_round(db, round_id)
        if round_obj.game_kind != GameKind.CRASH:
            raise InvalidDecision(f"Round {round_id} is a {round_obj.game_kind.value} round, not crash")
        if round_obj.is_resolved:
            return round_obj, self.display_tick(round_obj)

        with player_mutex(round_obj.player_id):
            round_obj, now = self._settle_if_crashed(db, round_id)
        return round_obj, self.display_tick(round_obj, now)

    @transactional
    def _settle_if_crashed(self, db: Session, round_id: str) -> Tuple[GameRound, datetime]:
        round_obj = with_round_lock(round_id, db).first()
        if not round_obj:
            raise RoundNotFound(round_id)

        now = self.clock()
        if round_obj.is_resolved:
            return round_obj, now
        if crash_service.has_crashed(round_obj.state, self.current_tick(round_obj, now)):
            self._settle(db, round_obj, crash_service.crashed(round_obj.state), now)
        return round_obj, now

    # ============ 背景結算 ============

    def settle_crashed_rounds(self, db: Session) -> int:
        """
        結算所有已過 crash tick 的 crash 回合（背景排程每個 tick 呼叫一次）

        返回：
            本次結算的回合數
        """
        now = self.clock()
        candidates = db.query(GameRound).filter(
            GameRound.game_kind == GameKind.CRASH,
            GameRound.status == RoundStatus.ACTIVE,
        ).all()

        due = [
            (r.id, r.player_id) for r in candidates
            if crash_service.has_crashed(r.state, self.current_tick(r, now))
        ]
        db.rollback()

        settled = 0
        for round_id, player_id in due:
            with player_mutex(player_id):
                round_obj, _ = self._settle_if_crashed(db, round_id)
            if round_obj.is_resolved:
                settled += 1

        if settled:
            logger.info(f"Settled {settled} crashed round(s)")
        return settled

    def settle_stale_rounds(self, db: Session) -> int:
        """
        結算閒置超過 stale_round_seconds 的回合

        規則：
        - blackjack：自動停牌
        - mines：有翻開就兌現，沒有翻開就退回本金
        - crash：依時鐘結算（此時必定已過 crash tick）
        """
        now = self.clock()
        threshold = self.settings.stale_round_seconds
        rounds = db.query(GameRound).filter(GameRound.status == RoundStatus.ACTIVE).all()

        stale = [
            (r.id, r.player_id) for r in rounds
            if (now - r.updated_at).total_seconds() >= threshold
        ]
        db.rollback()

        settled = 0
        for round_id, player_id in stale:
            with player_mutex(player_id):
                round_obj = self._settle_stale(db, round_id)
            if round_obj.is_resolved:
                settled += 1

        if settled:
            logger.warning(f"Auto-settled {settled} stale round(s)")
        return settled

    @transactional
    def _settle_stale(self, db: Session, round_id: str) -> GameRound:
        round_obj = with_round_lock(round_id, db).first()
        if not round_obj:
            raise RoundNotFound(round_id)
        if round_obj.is_resolved:
            return round_obj

        now = self.clock()
        stake = Decimal(round_obj.bet_amount)

        if round_obj.game_kind == GameKind.BLACKJACK:
            state, resolution = blackjack_service.stand(round_obj.state, stake)
            round_obj.state = state
        elif round_obj.game_kind == GameKind.MINES:
            resolution = mines_service.settle_abandoned(round_obj.state, stake)
        else:
            tick = self.current_tick(round_obj, now)
            if not crash_service.has_crashed(round_obj.state, tick):
                return round_obj
            resolution = crash_service.crashed(round_obj.state)

        logger.warning(f"Round {round_id} idle since {round_obj.updated_at}, auto-settling")
        self._settle(db, round_obj, resolution, now)
        return round_obj

    # ============ 查詢 ============

    @staticmethod
    def get_round(db: Session, round_id: str) -> GameRound:
        """
        異常：
            RoundNotFound: 回合不存在
        """
        round_obj = db.query(GameRound).filter(GameRound.id == round_id).first()
        if not round_obj:
            raise RoundNotFound(round_id)
        return round_obj

    @staticmethod
    def _find_active_round(db: Session, player_id: str, game_kind: GameKind) -> Optional[GameRound]:
        return db.query(GameRound).filter(
            GameRound.player_id == player_id,
            GameRound.game_kind == game_kind,
            GameRound.status != RoundStatus.RESOLVED,
        ).first()

    @staticmethod
    def list_active_rounds(db: Session, player_id: str) -> List[GameRound]:
        return db.query(GameRound).filter(
            GameRound.player_id == player_id,
            GameRound.status != RoundStatus.RESOLVED,
        ).order_by(GameRound.started_at).all()

    # ============ 前端畫面 ============

    def public_state(self, round_obj: GameRound, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        回合的唯讀畫面資料

        進行中的回合不包含牌堆、莊家底牌、地雷位置、crash point
        """
        resolved = round_obj.is_resolved
        state = round_obj.state or {}

        if round_obj.game_kind == GameKind.BLACKJACK:
            return blackjack_service.public_view(state, resolved)
        if round_obj.game_kind == GameKind.MINES:
            return mines_service.public_view(state, resolved)
        if round_obj.game_kind == GameKind.CRASH:
            return crash_service.public_view(state, self.display_tick(round_obj, now), resolved)
        return {key: value for key, value in state.items() if key != "result"}


@lru_cache()
def get_round_manager() -> RoundManager:
    """FastAPI dependency：整個 process 共用一個 RoundManager（與背景排程共用）"""
    return RoundManager()
