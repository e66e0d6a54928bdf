"""
Threaded tests against a file-backed SQLite database.

Each worker opens its own session from the same sessionmaker, the way
API requests and the background ticker do in production.
"""
import os
import tempfile
import threading
import unittest
from decimal import Decimal

from core.exceptions import RoundAlreadyActive, RoundAlreadyResolved
from core.ledger import SqlPlayerLedger
from core.locks import LOCK_STRIPES, _player_locks, lock_for, player_mutex
from core.round_manager import RoundManager
from core.ticker import RoundTicker
from models import GameRound, Outcome, RoundHistory, RoundStatus

from helpers import FakeClock, ScriptedRandom, create_player, make_session_factory, make_settings


class ThreadedTestCase(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        path = os.path.join(self.tmpdir.name, "casino.db")
        self.Session = make_session_factory(f"sqlite:///{path}")
        self.db = self.Session()
        self.clock = FakeClock()
        self.player_id = create_player(self.db).id

    def tearDown(self):
        self.db.close()
        self.Session.kw["bind"].dispose()
        self.tmpdir.cleanup()

    def manager(self, rng=None):
        return RoundManager(settings=make_settings(), rng=rng or ScriptedRandom(), clock=self.clock)

    def run_together(self, *targets):
        """Start every target behind one barrier and collect what each raised."""
        barrier = threading.Barrier(len(targets))
        errors = [None] * len(targets)

        def worker(index, target):
            db = self.Session()
            try:
                barrier.wait()
                target(db)
            except Exception as e:
                errors[index] = e
            finally:
                db.close()

        threads = [threading.Thread(target=worker, args=(i, t)) for i, t in enumerate(targets)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)
            self.assertFalse(thread.is_alive())
        return errors

    def balance(self):
        self.db.expire_all()
        return SqlPlayerLedger(self.db).get_balance(self.player_id)


class TestCrashSettlementRace(ThreadedTestCase):

    def test_cash_out_and_ticker_settle_once(self):
        # crash point 2.00, crashes at tick 100
        manager = self.manager(ScriptedRandom(floats=[0.3, 0.5]))
        round_id = manager.start_round(self.db, self.player_id, "crash", 100).id
        self.db.close()
        self.clock.advance(milliseconds=10000)

        ticker = RoundTicker(manager, session_factory=self.Session)
        errors = self.run_together(
            lambda db: manager.apply_decision(db, round_id, {"action": "cash_out"}),
            lambda db: ticker.settle_crashed(),
        )

        self.assertIsInstance(errors[0], RoundAlreadyResolved)
        self.assertIsNone(errors[1])

        self.db = self.Session()
        round_obj = self.db.query(GameRound).filter(GameRound.id == round_id).one()
        self.assertEqual(round_obj.status, RoundStatus.RESOLVED)
        self.assertEqual(round_obj.outcome, Outcome.LOSE)
        self.assertEqual(round_obj.payout, Decimal("0.00"))
        self.assertEqual(self.db.query(RoundHistory).filter(RoundHistory.round_id == round_id).count(), 1)
        self.assertEqual(self.balance(), Decimal("900.00"))

    def test_repeated_ticks_do_not_settle_twice(self):
        manager = self.manager(ScriptedRandom(floats=[0.3, 0.5]))
        round_id = manager.start_round(self.db, self.player_id, "crash", 100).id
        self.db.close()
        self.clock.advance(milliseconds=10000)

        ticker = RoundTicker(manager, session_factory=self.Session)
        errors = self.run_together(*[lambda db: ticker.settle_crashed() for _ in range(4)])

        self.assertEqual(errors, [None] * 4)
        self.db = self.Session()
        self.assertEqual(self.db.query(RoundHistory).filter(RoundHistory.round_id == round_id).count(), 1)
        self.assertEqual(self.balance(), Decimal("900.00"))


class TestConcurrentStarts(ThreadedTestCase):

    def test_only_one_mines_round_opens(self):
        workers = 8
        manager = self.manager()
        errors = self.run_together(
            *[lambda db: manager.start_round(db, self.player_id, "mines", 100) for _ in range(workers)]
        )

        rejected = [e for e in errors if e is not None]
        self.assertEqual(len(rejected), workers - 1)
        for error in rejected:
            self.assertIsInstance(error, RoundAlreadyActive)

        self.assertEqual(self.db.query(GameRound).filter(GameRound.player_id == self.player_id).count(), 1)
        self.assertEqual(self.balance(), Decimal("900.00"))


class TestPlayerMutex(unittest.TestCase):

    def test_same_player_same_lock(self):
        self.assertIs(lock_for("player-1"), lock_for("player-1"))
        self.assertIn(lock_for("player-2"), _player_locks)

    def test_lock_pool_does_not_grow(self):
        for i in range(LOCK_STRIPES * 4):
            with player_mutex(f"player-{i}"):
                pass
        self.assertEqual(len(_player_locks), LOCK_STRIPES)
        self.assertFalse(any(lock.locked() for lock in _player_locks))

    def test_released_after_error(self):
        with self.assertRaises(ValueError):
            with player_mutex("player-1"):
                raise ValueError("boom")
        self.assertFalse(lock_for("player-1").locked())


if __name__ == "__main__":
    unittest.main()
