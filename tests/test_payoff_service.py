"""
Unit tests for the shared payout helpers and the random source.
"""
import unittest
from decimal import Decimal

from core.exceptions import InvalidBetAmount
from models import GameKind, Outcome
from services.payoff_service import (
    bet_bounds,
    classify,
    floor_multiply,
    multiply,
    validate_bet_amount,
    win_or_lose,
)
from services.rng_service import RandomSource

from helpers import make_settings


class TestMoneyHelpers(unittest.TestCase):

    def test_floor_multiply_truncates_to_whole_units(self):
        self.assertEqual(floor_multiply(Decimal("100"), "1.5"), Decimal("150.00"))
        self.assertEqual(floor_multiply(Decimal("15"), "1.5"), Decimal("22.00"))
        self.assertEqual(floor_multiply(Decimal("33"), "2.37"), Decimal("78.00"))
        self.assertEqual(floor_multiply(Decimal("100"), Decimal("2.5")), Decimal("250.00"))

    def test_multiply_keeps_cents(self):
        self.assertEqual(multiply(Decimal("12.50"), 2), Decimal("25.00"))
        self.assertEqual(multiply(Decimal("0.33"), 35), Decimal("11.55"))

    def test_classify(self):
        bet = Decimal("100.00")
        self.assertEqual(classify(Decimal("0.00"), bet), Outcome.LOSE)
        self.assertEqual(classify(Decimal("60.00"), bet), Outcome.LOSE)
        self.assertEqual(classify(Decimal("100.00"), bet), Outcome.PUSH)
        self.assertEqual(classify(Decimal("101.00"), bet), Outcome.WIN)

    def test_win_or_lose(self):
        won = win_or_lose(True, Decimal("40"), 2, {"k": "v"})
        self.assertEqual(won.payout, Decimal("80.00"))
        self.assertEqual(won.outcome, Outcome.WIN)
        self.assertEqual(won.detail, {"k": "v"})

        lost = win_or_lose(False, Decimal("40"), 2, {})
        self.assertEqual(lost.payout, Decimal("0.00"))
        self.assertEqual(lost.outcome, Outcome.LOSE)


class TestBetValidation(unittest.TestCase):

    def setUp(self):
        self.settings = make_settings()

    def test_bounds_per_game(self):
        self.assertEqual(bet_bounds(GameKind.SLOTS, self.settings), (Decimal("10"), Decimal("1000")))
        self.assertEqual(bet_bounds(GameKind.BLACKJACK, self.settings), (Decimal("50"), Decimal("1000")))
        self.assertEqual(bet_bounds(GameKind.ROULETTE, self.settings), (Decimal("25"), Decimal("500")))
        self.assertEqual(bet_bounds(GameKind.COINFLIP, self.settings)[0], Decimal("1"))

    def test_accepts_valid_amounts(self):
        self.assertEqual(validate_bet_amount(100, GameKind.COINFLIP, self.settings), Decimal("100.00"))
        self.assertEqual(validate_bet_amount("12.5", GameKind.SLOTS, self.settings), Decimal("12.50"))
        self.assertEqual(validate_bet_amount(Decimal("50"), GameKind.BLACKJACK, self.settings), Decimal("50.00"))

    def test_rejects_invalid_amounts(self):
        invalid = [
            (0, GameKind.COINFLIP),
            (-5, GameKind.COINFLIP),
            ("abc", GameKind.COINFLIP),
            ("1.005", GameKind.COINFLIP),
            (5, GameKind.SLOTS),
            (1001, GameKind.SLOTS),
            (49, GameKind.BLACKJACK),
        ]
        for amount, game_kind in invalid:
            with self.assertRaises(InvalidBetAmount, msg=f"{amount} for {game_kind.value}"):
                validate_bet_amount(amount, game_kind, self.settings)


class TestRandomSource(unittest.TestCase):

    def test_seeded_sources_repeat(self):
        a = RandomSource(seed=42)
        b = RandomSource(seed=42)
        self.assertEqual([a.random() for _ in range(5)], [b.random() for _ in range(5)])

    def test_randint_is_inclusive(self):
        rng = RandomSource(seed=1)
        values = {rng.randint(0, 3) for _ in range(500)}
        self.assertEqual(values, {0, 1, 2, 3})

    def test_randint_rejects_empty_range(self):
        with self.assertRaises(ValueError):
            RandomSource(seed=1).randint(5, 4)

    def test_shuffle_is_a_permutation(self):
        items = list(range(52))
        shuffled = RandomSource(seed=3).shuffle(items)
        self.assertEqual(sorted(shuffled), items)
        self.assertEqual(items, list(range(52)))

    def test_sample_indices_are_distinct_and_sorted(self):
        picked = RandomSource(seed=9).sample_indices(25, 5)
        self.assertEqual(len(set(picked)), 5)
        self.assertEqual(picked, sorted(picked))
        self.assertTrue(all(0 <= i < 25 for i in picked))

    def test_secure_source(self):
        rng = RandomSource(secure=True)
        self.assertTrue(rng.secure)
        self.assertTrue(0 <= rng.random() < 1)


if __name__ == "__main__":
    unittest.main()
