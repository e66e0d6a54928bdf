"""
Crash：倍率從 1.00 開始隨時間上升，在 crash point 爆掉前兌現

Crash point 分佈（約 4% 莊家優勢）：
┌──────────────┬──────────┬─────────────────┐
│ u            │ 機率      │ crash point     │
├──────────────┼──────────┼─────────────────┤
│ [0.00, 0.04) │ 4%       │ 1.00（立即爆）   │
│ [0.04, 0.15) │ 11%      │ [1.0, 1.5)      │
│ [0.15, 0.50) │ 35%      │ [1.5, 2.5)      │
│ [0.50, 0.85) │ 35%      │ [2.5, 7.5)      │
│ [0.85, 1.00) │ 15%      │ [7.5, 22.5)     │
└──────────────┴──────────┴─────────────────┘

倍率由伺服器時鐘決定：第 t 個 tick（每 tick 預設 100ms）的倍率為
1.00 + 0.01 × t，並且不超過 crash point。倍率到達 crash point 的那個
tick 就是 crash tick，之後任何兌現都無效。

回合狀態：
    {"crash_point": "2.37", "crash_tick": 137, "tick_ms": 100, "step": "0.01"}
"""
from decimal import Decimal, ROUND_CEILING, ROUND_DOWN
from typing import Dict

from core.exceptions import InvalidDecision
from models import Outcome
from services.payoff_service import Resolution, classify, floor_multiply, CENT, ZERO
from services.rng_service import RandomSource

ONE = Decimal("1.00")

# (累積機率上限, 區間起點, 區間寬度)
CRASH_TIERS = [
    (0.15, Decimal("1.0"), Decimal("0.5")),
    (0.50, Decimal("1.5"), Decimal("1")),
    (0.85, Decimal("2.5"), Decimal("5")),
    (1.00, Decimal("7.5"), Decimal("15")),
]
INSTANT_CRASH_PROBABILITY = 0.04


def draw_crash_point(rng: RandomSource) -> Decimal:
    u = rng.random()
    if u < INSTANT_CRASH_PROBABILITY:
        return ONE

    for upper, start, width in CRASH_TIERS:
        if u < upper:
            value = start + Decimal(str(rng.random())) * width
            return max(ONE, value.quantize(CENT, rounding=ROUND_DOWN))

    return CRASH_TIERS[-1][1]


def crash_tick_for(crash_point: Decimal, step: Decimal) -> int:
    """第一個倍率 >= crash point 的 tick"""
    ticks = ((Decimal(crash_point) - ONE) / Decimal(step)).to_integral_value(rounding=ROUND_CEILING)
    return max(0, int(ticks))


def new_flight(rng: RandomSource, tick_ms: int = 100, step: Decimal = Decimal("0.01")) -> Dict:
    crash_point = draw_crash_point(rng)
    return {
        "crash_point": str(crash_point),
        "crash_tick": crash_tick_for(crash_point, step),
        "tick_ms": tick_ms,
        "step": str(step),
    }


def tick_at(state: Dict, elapsed_ms: float) -> int:
    if elapsed_ms <= 0:
        return 0
    return int(elapsed_ms // state["tick_ms"])


def multiplier_at(state: Dict, tick: int) -> Decimal:
    """1.00 + step × tick，不超過 crash point"""
    value = ONE + Decimal(state["step"]) * tick
    return min(value, Decimal(state["crash_point"])).quantize(CENT)


def has_crashed(state: Dict, tick: int) -> bool:
    return tick >= state["crash_tick"]


def crashed(state: Dict) -> Resolution:
    return Resolution(
        ZERO.quantize(CENT),
        Outcome.LOSE,
        {
            "crash_point": state["crash_point"],
            "cashed_out": False,
            "cash_out_multiplier": None,
            "result": "crashed",
        },
    )


def cash_out(state: Dict, bet: Decimal, tick: int) -> Resolution:
    """
    在第 tick 個 tick 兌現

    前置條件：呼叫者已確認 tick < crash_tick

    異常：
        InvalidDecision: 倍率還沒開始上升（tick 0）
    """
    if has_crashed(state, tick):
        raise InvalidDecision(f"Cannot cash out at tick {tick}, flight crashed at tick {state['crash_tick']}")
    if tick <= 0:
        raise InvalidDecision("Multiplier has not started rising yet")

    multiplier = multiplier_at(state, tick)
    payout = floor_multiply(bet, multiplier)
    return Resolution(
        payout,
        classify(payout, bet),
        {
            "crash_point": state["crash_point"],
            "cashed_out": True,
            "cash_out_multiplier": str(multiplier),
            "cash_out_tick": tick,
            "result": "cashed_out",
        },
    )


def public_view(state: Dict, tick: int, resolved: bool) -> Dict:
    view = {
        "multiplier": str(multiplier_at(state, tick)),
        "tick": tick,
        "tick_ms": state["tick_ms"],
    }
    if resolved:
        view["crash_point"] = state["crash_point"]
    return view
