"""
Shared fixtures for the test suite: scripted randomness, a controllable
clock and an in-memory SQLite database.
"""
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import models  # noqa: F401
from database import Base, Settings
from core.ledger import register_player
from services.rng_service import RandomSource


class ScriptedRandom(RandomSource):
    """
    RandomSource that replays queued values before falling back to a
    seeded generator.

    floats feed random(), ints feed randint() (and so choice() and
    sample_indices()), deck replaces any shuffle.
    """

    def __init__(self, floats=(), ints=(), deck=None, seed=7):
        super().__init__(seed=seed)
        self.floats = list(floats)
        self.ints = list(ints)
        self.deck = deck

    def random(self):
        if self.floats:
            return self.floats.pop(0)
        return super().random()

    def randint(self, low, high):
        if self.ints:
            value = self.ints.pop(0)
            if not low <= value <= high:
                raise AssertionError(f"scripted int {value} outside [{low}, {high}]")
            return value
        return super().randint(low, high)

    def shuffle(self, items):
        if self.deck is not None:
            return list(self.deck)
        return super().shuffle(items)


class FakeClock:
    """Naive-UTC clock that only moves when told to."""

    def __init__(self, start=None):
        self.now = start or datetime(2024, 1, 1, 12, 0, 0)
        # moves the clock forward after every read when set
        self.step_ms = 0

    def __call__(self):
        now = self.now
        self.now += timedelta(milliseconds=self.step_ms)
        return now

    def advance(self, milliseconds=0, seconds=0):
        self.now += timedelta(milliseconds=milliseconds, seconds=seconds)


def cards(*ranks, suit="♠"):
    return [{"rank": rank, "suit": suit} for rank in ranks]


def make_settings(**overrides):
    overrides.setdefault("scheduler_enabled", False)
    overrides.setdefault("rng_seed", 7)
    return Settings(**overrides)


def make_session_factory(url=None):
    """In-memory SQLite on one shared connection, or a real database file when url is given."""
    if url is None:
        engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(url, connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def create_player(db, telegram_id="tg-1", balance="1000"):
    return register_player(db, telegram_id, Decimal(balance), username=f"user_{telegram_id}")
