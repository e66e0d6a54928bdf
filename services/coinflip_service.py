"""
Coin Flip：猜正反面，猜中拿 2 倍
"""
from decimal import Decimal

from core.exceptions import InvalidChoice
from services.payoff_service import Resolution, win_or_lose
from services.rng_service import RandomSource

SIDES = ("heads", "tails")
WIN_MULTIPLIER = 2


def parse_choice(choice: dict) -> str:
    side = (choice or {}).get("side")
    if side not in SIDES:
        raise InvalidChoice(f"Coin flip side must be one of {SIDES}, got {side!r}")
    return side


def flip(rng: RandomSource) -> str:
    return "heads" if rng.random() < 0.5 else "tails"


def resolve(bet: Decimal, choice: dict, rng: RandomSource) -> Resolution:
    side = parse_choice(choice)
    result = flip(rng)
    return win_or_lose(
        side == result,
        bet,
        WIN_MULTIPLIER,
        {"choice": side, "result": result},
    )
