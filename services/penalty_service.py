"""
Penalty Kick：玩家選射門方向，守門員隨機撲一個方向

- 守門員猜中方向：仍有 goal_on_guess（預設 30%）的機率進球
- 守門員猜錯方向：有 goal_on_miss（預設 85%）的機率進球
- 進球拿 2 倍，被擋下拿 0
"""
from decimal import Decimal

from core.exceptions import InvalidChoice
from services.payoff_service import Resolution, win_or_lose
from services.rng_service import RandomSource

DIRECTIONS = ("left", "center", "right")
WIN_MULTIPLIER = 2


def parse_choice(choice: dict) -> str:
    direction = (choice or {}).get("direction")
    if direction not in DIRECTIONS:
        raise InvalidChoice(f"Shot direction must be one of {DIRECTIONS}, got {direction!r}")
    return direction


def resolve(
    bet: Decimal,
    choice: dict,
    rng: RandomSource,
    goal_on_guess: float = 0.30,
    goal_on_miss: float = 0.85,
) -> Resolution:
    shot = parse_choice(choice)
    keeper = rng.choice(DIRECTIONS)

    goal_probability = goal_on_guess if shot == keeper else goal_on_miss
    is_goal = rng.random() < goal_probability

    return win_or_lose(
        is_goal,
        bet,
        WIN_MULTIPLIER,
        {"direction": shot, "keeper": keeper, "result": "goal" if is_goal else "save"},
    )
