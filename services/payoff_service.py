"""
計分服務：所有遊戲共用的派彩計算工具

純計算邏輯，不碰資料庫、不改餘額：
- Resolution：resolver 的統一回傳格式
- 金額處理：四捨（向下）到分、向下取整到整數單位
- 下注上下限檢查
"""
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_DOWN, ROUND_FLOOR, InvalidOperation
from typing import Any, Dict, Tuple

from models import GameKind, Outcome
from core.exceptions import InvalidBetAmount

CENT = Decimal("0.01")
ZERO = Decimal("0")


@dataclass(frozen=True)
class Resolution:
    """
    一個回合的最終結果

    payout 是「回到玩家手上的總金額」（含本金）：
    - 輸：payout == 0，outcome == LOSE
    - 平手（push）：payout == bet，outcome == PUSH
    - 贏：payout > 0，outcome == WIN
    """
    payout: Decimal
    outcome: Outcome
    detail: Dict[str, Any] = field(default_factory=dict)


def to_money(value) -> Decimal:
    """轉成兩位小數的 Decimal（向下捨去）"""
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidBetAmount(f"Invalid amount: {value!r}")
    return amount.quantize(CENT, rounding=ROUND_DOWN)


def multiply(bet: Decimal, multiplier) -> Decimal:
    """bet × multiplier，結果向下捨去到分"""
    return to_money(Decimal(bet) * Decimal(str(multiplier)))


def floor_multiply(bet: Decimal, multiplier) -> Decimal:
    """
    floor(bet × multiplier)，結果是整數單位

    範例：
        floor_multiply(100, 1.5)  -> 150
        floor_multiply(15, 1.5)   -> 22
        floor_multiply(33, 2.37)  -> 78
    """
    raw = Decimal(bet) * Decimal(str(multiplier))
    return raw.to_integral_value(rounding=ROUND_FLOOR).quantize(CENT)


def win_or_lose(won: bool, bet: Decimal, multiplier, detail: Dict[str, Any]) -> Resolution:
    if won:
        return Resolution(multiply(bet, multiplier), Outcome.WIN, detail)
    return Resolution(ZERO.quantize(CENT), Outcome.LOSE, detail)


def classify(payout: Decimal, bet: Decimal) -> Outcome:
    """
    依照 payout 與 bet 的關係判斷輸贏

    payout 小於 bet（只拿回部分本金）也算輸
    """
    if payout == bet:
        return Outcome.PUSH
    if payout > bet:
        return Outcome.WIN
    return Outcome.LOSE


def bet_bounds(game_kind: GameKind, settings) -> Tuple[Decimal, Decimal]:
    """
    取得遊戲的下注上下限

    roulette 的上下限是針對單一籌碼（一注），不是整輪總額
    """
    if game_kind == GameKind.SLOTS:
        return settings.slots_min_bet, settings.slots_max_bet
    if game_kind == GameKind.BLACKJACK:
        return settings.blackjack_min_bet, settings.blackjack_max_bet
    if game_kind == GameKind.ROULETTE:
        return settings.roulette_min_bet, settings.roulette_max_bet
    return settings.default_min_bet, settings.default_max_bet


def validate_bet_amount(amount, game_kind: GameKind, settings) -> Decimal:
    """
    檢查下注金額

    異常：
        InvalidBetAmount: 非正數、超過兩位小數、或超出遊戲上下限
    """
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except (InvalidOperation, ValueError):
        raise InvalidBetAmount(f"Invalid bet amount: {amount!r}")

    if not value.is_finite() or value <= 0:
        raise InvalidBetAmount(f"Bet amount must be positive, got {amount}")
    if value != value.quantize(CENT, rounding=ROUND_DOWN):
        raise InvalidBetAmount(f"Bet amount has more than 2 decimal places: {amount}")

    low, high = bet_bounds(game_kind, settings)
    if value < low or value > high:
        raise InvalidBetAmount(
            f"{game_kind.value} bet must be between {low} and {high}, got {value}"
        )
    return value.quantize(CENT)
