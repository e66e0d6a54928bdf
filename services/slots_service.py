"""
Slots：三個滾輪，各自依權重抽一個符號

Pay table（三個相同）：
┌──────────┬────────┬──────────┐
│ Symbol   │ Weight │ 倍率      │
├──────────┼────────┼──────────┤
│ cherry   │  100   │  2x      │
│ lemon    │   80   │  3x      │
│ star     │   60   │  6x      │
│ apple    │   60   │  4x      │
│ grapes   │   40   │  5x      │
│ bell     │   30   │  8x      │
│ diamond  │   20   │  10x     │
└──────────┴────────┴──────────┘

三個相同：bet × 倍率（保留到分）
任兩個相同：floor(bet × 1.5)
都不同：0
"""
from collections import Counter
from decimal import Decimal
from typing import List

from services.payoff_service import Resolution, classify, floor_multiply, multiply, ZERO, CENT
from services.rng_service import RandomSource

# 順序決定累積權重的抽取結果，不可任意調整
SYMBOL_WEIGHTS = [
    ("cherry", 100),
    ("lemon", 80),
    ("star", 60),
    ("apple", 60),
    ("grapes", 40),
    ("bell", 30),
    ("diamond", 20),
]

SYMBOL_EMOJI = {
    "cherry": "🍒",
    "lemon": "🍋",
    "star": "⭐",
    "apple": "🍎",
    "grapes": "🍇",
    "bell": "🔔",
    "diamond": "💎",
}

TRIPLE_MULTIPLIERS = {
    "cherry": 2,
    "lemon": 3,
    "apple": 4,
    "grapes": 5,
    "star": 6,
    "bell": 8,
    "diamond": 10,
}

PAIR_MULTIPLIER = Decimal("1.5")
REEL_COUNT = 3


def total_weight() -> int:
    return sum(weight for _, weight in SYMBOL_WEIGHTS)


def weighted_symbol(rng: RandomSource) -> str:
    """
    累積權重抽樣：draw = u × 總權重，取第一個累積權重 >= draw 的符號
    """
    draw = rng.random() * total_weight()
    cumulative = 0
    for symbol, weight in SYMBOL_WEIGHTS:
        cumulative += weight
        if draw <= cumulative:
            return symbol
    return SYMBOL_WEIGHTS[0][0]


def spin_reels(rng: RandomSource) -> List[str]:
    return [weighted_symbol(rng) for _ in range(REEL_COUNT)]


def evaluate(reels: List[str], bet: Decimal) -> Resolution:
    """
    依照 pay table 計算派彩

    參數：
        reels: 三個符號
        bet: 下注金額

    返回：
        Resolution（detail 內含 reels、倍率與命中類型）
    """
    counts = Counter(reels)
    symbol, best = counts.most_common(1)[0]

    if best == REEL_COUNT:
        multiplier = Decimal(TRIPLE_MULTIPLIERS[symbol])
        payout = multiply(bet, multiplier)
        line = "triple"
    elif best == 2:
        # 只有 pair 向下取整到整數單位
        multiplier = PAIR_MULTIPLIER
        payout = floor_multiply(bet, multiplier)
        line = "pair"
    else:
        multiplier = ZERO
        payout = ZERO.quantize(CENT)
        line = "none"

    detail = {
        "reels": reels,
        "symbols": [SYMBOL_EMOJI[s] for s in reels],
        "line": line,
        "multiplier": str(multiplier),
    }
    return Resolution(payout, classify(payout, bet), detail)


def resolve(bet: Decimal, choice: dict, rng: RandomSource) -> Resolution:
    return evaluate(spin_reels(rng), bet)
