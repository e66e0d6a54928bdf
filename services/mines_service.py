"""
Mines：N 格中埋 M 顆地雷，玩家逐格翻開

- 翻到地雷：回合結束，payout 0（不論之前的倍率）
- 翻到安全格：倍率 = max(1, 1 + revealed / safe_cells × 2.5)
- 隨時可兌現：floor(bet × 目前倍率)
- 翻完所有安全格：自動以當下倍率兌現

回合狀態：
    {"grid_size": 25, "mine_count": 5, "mines": [...], "revealed": [...]}

地雷位置只在回合結束時才公開。
"""
from decimal import Decimal
from typing import Dict, Optional, Tuple

from core.exceptions import InvalidDecision
from models import Outcome
from services.payoff_service import Resolution, classify, floor_multiply, CENT, ZERO
from services.rng_service import RandomSource

RISK_FACTOR = Decimal("2.5")
MULTIPLIER_PLACES = Decimal("0.0001")


def new_board(rng: RandomSource, grid_size: int = 25, mine_count: int = 5) -> Dict:
    if not 0 < mine_count < grid_size:
        raise ValueError(f"mine_count must be between 1 and {grid_size - 1}, got {mine_count}")
    return {
        "grid_size": grid_size,
        "mine_count": mine_count,
        "mines": rng.sample_indices(grid_size, mine_count),
        "revealed": [],
    }


def safe_cell_count(state: Dict) -> int:
    return state["grid_size"] - state["mine_count"]


def multiplier_for(revealed_count: int, safe_cells: int) -> Decimal:
    """
    倍率只跟已翻開的安全格數量有關，隨 revealed_count 單調不減

    範例（25 格 5 雷）：
        0 格  -> 1
        4 格  -> 1.5
        20 格 -> 3.5
    """
    value = Decimal(1) + (Decimal(revealed_count) / Decimal(safe_cells)) * RISK_FACTOR
    return max(Decimal(1), value).quantize(MULTIPLIER_PLACES)


def current_multiplier(state: Dict) -> Decimal:
    return multiplier_for(len(state["revealed"]), safe_cell_count(state))


def _detail(state: Dict, result: str, hit_mine: Optional[int] = None) -> Dict:
    return {
        "grid_size": state["grid_size"],
        "mine_count": state["mine_count"],
        "mines": state["mines"],
        "revealed": state["revealed"],
        "multiplier": str(current_multiplier(state)),
        "hit_mine": hit_mine,
        "result": result,
    }


def reveal(state: Dict, bet: Decimal, cell: int) -> Tuple[Dict, Optional[Resolution]]:
    """
    翻開一格

    異常：
        InvalidDecision: 格子超出範圍或已翻開

    返回：
        (state, resolution)
        - 地雷：輸
        - 翻完所有安全格：贏（自動兌現）
        - 其他：None（回合繼續）
    """
    if isinstance(cell, bool) or not isinstance(cell, int) or not 0 <= cell < state["grid_size"]:
        raise InvalidDecision(f"Cell must be between 0 and {state['grid_size'] - 1}, got {cell!r}")
    if cell in state["revealed"]:
        raise InvalidDecision(f"Cell {cell} is already revealed")

    if cell in state["mines"]:
        return state, Resolution(ZERO.quantize(CENT), Outcome.LOSE, _detail(state, "lost", hit_mine=cell))

    state = {**state, "revealed": state["revealed"] + [cell]}
    if len(state["revealed"]) == safe_cell_count(state):
        return state, _cash_out(state, bet, "cleared")
    return state, None


def _cash_out(state: Dict, bet: Decimal, result: str) -> Resolution:
    payout = floor_multiply(bet, current_multiplier(state))
    return Resolution(payout, classify(payout, bet), _detail(state, result))


def cash_out(state: Dict, bet: Decimal) -> Resolution:
    """
    兌現目前倍率

    異常：
        InvalidDecision: 尚未翻開任何格子
    """
    if not state["revealed"]:
        raise InvalidDecision("Reveal at least one cell before cashing out")
    return _cash_out(state, bet, "cashed_out")


def settle_abandoned(state: Dict, bet: Decimal) -> Resolution:
    """閒置回合的結算：有進度就兌現，沒有進度就退回本金"""
    if not state["revealed"]:
        return Resolution(bet.quantize(CENT), Outcome.PUSH, _detail(state, "abandoned"))
    return _cash_out(state, bet, "abandoned")


def public_view(state: Dict, resolved: bool) -> Dict:
    view = {
        "grid_size": state["grid_size"],
        "mine_count": state["mine_count"],
        "revealed": state["revealed"],
        "multiplier": str(current_multiplier(state)),
    }
    if resolved:
        view["mines"] = state["mines"]
    return view
