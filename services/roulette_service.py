"""
Roulette：歐式單零輪盤（0–36），一次轉盤可下多注

下注類型與派彩（payout 為回到玩家手上的總額）：
- number：押單一號碼，命中拿 35 倍
- color：red / black，命中拿 2 倍
- even / odd：命中拿 2 倍
- low（1–18）/ high（19–36）：命中拿 2 倍

0 不屬於任何顏色、奇偶或高低，只有押 number=0 會贏。
"""
from decimal import Decimal
from typing import Dict, List

from core.exceptions import InvalidChoice
from services.payoff_service import Resolution, classify, multiply, validate_bet_amount, CENT, ZERO
from services.rng_service import RandomSource
from models import GameKind

RED_NUMBERS = frozenset({1, 3, 5, 7, 9, 12, 14, 16, 18, 19, 21, 23, 25, 27, 30, 32, 34, 36})
BLACK_NUMBERS = frozenset({2, 4, 6, 8, 10, 11, 13, 15, 17, 20, 22, 24, 26, 28, 29, 31, 33, 35})

BET_TYPES = ("number", "color", "even", "odd", "low", "high")
STRAIGHT_MULTIPLIER = 35
EVEN_MONEY_MULTIPLIER = 2


def color_of(number: int) -> str:
    if number in RED_NUMBERS:
        return "red"
    if number in BLACK_NUMBERS:
        return "black"
    return "green"


def spin(rng: RandomSource) -> int:
    return rng.randint(0, 36)


def bet_wins(bet: Dict, winning_number: int) -> bool:
    bet_type = bet["type"]
    if bet_type == "number":
        return bet["value"] == winning_number
    if winning_number == 0:
        return False
    if bet_type == "color":
        return bet["value"] == color_of(winning_number)
    if bet_type == "even":
        return winning_number % 2 == 0
    if bet_type == "odd":
        return winning_number % 2 == 1
    if bet_type == "low":
        return 1 <= winning_number <= 18
    if bet_type == "high":
        return 19 <= winning_number <= 36
    return False


def bet_payout(bet: Dict, winning_number: int) -> Decimal:
    if not bet_wins(bet, winning_number):
        return ZERO.quantize(CENT)
    multiplier = STRAIGHT_MULTIPLIER if bet["type"] == "number" else EVEN_MONEY_MULTIPLIER
    return multiply(bet["amount"], multiplier)


def parse_bets(choice: dict, settings) -> List[Dict]:
    """
    驗證並正規化下注列表

    格式：
        {"bets": [{"type": "number", "value": 7, "amount": 100},
                  {"type": "color", "value": "red", "amount": 50}]}

    異常：
        InvalidChoice: 沒有下注、類型錯誤、號碼超出範圍
        InvalidBetAmount: 單注金額超出上下限
    """
    raw_bets = (choice or {}).get("bets")
    if not isinstance(raw_bets, list) or not raw_bets:
        raise InvalidChoice("Roulette requires a non-empty 'bets' list")

    bets = []
    for raw in raw_bets:
        if not isinstance(raw, dict):
            raise InvalidChoice(f"Invalid roulette bet: {raw!r}")

        bet_type = raw.get("type")
        if bet_type not in BET_TYPES:
            raise InvalidChoice(f"Roulette bet type must be one of {BET_TYPES}, got {bet_type!r}")

        value = raw.get("value")
        if bet_type == "number":
            if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 36:
                raise InvalidChoice(f"Straight bet number must be 0-36, got {value!r}")
        elif bet_type == "color":
            if value not in ("red", "black"):
                raise InvalidChoice(f"Color bet must be 'red' or 'black', got {value!r}")
        else:
            value = None

        amount = validate_bet_amount(raw.get("amount"), GameKind.ROULETTE, settings)
        bets.append({"type": bet_type, "value": value, "amount": amount})

    return bets


def total_stake(bets: List[Dict]) -> Decimal:
    return sum((bet["amount"] for bet in bets), ZERO).quantize(CENT)


def evaluate(bets: List[Dict], winning_number: int) -> Resolution:
    """
    計算一次轉盤的總派彩（各注獨立計算後加總）
    """
    lines = []
    payout = ZERO
    for bet in bets:
        won = bet_payout(bet, winning_number)
        payout += won
        lines.append({
            "type": bet["type"],
            "value": bet["value"],
            "amount": str(bet["amount"]),
            "payout": str(won),
        })

    payout = payout.quantize(CENT)
    detail = {
        "winning_number": winning_number,
        "color": color_of(winning_number),
        "bets": lines,
    }
    return Resolution(payout, classify(payout, total_stake(bets)), detail)


def resolve(bets: List[Dict], rng: RandomSource) -> Resolution:
    return evaluate(bets, spin(rng))
