"""
HTTP tests for the player and round endpoints.

The app runs without its lifespan (no background scheduler); the database
and the RoundManager are swapped for in-memory test doubles.
"""
import unittest
from decimal import Decimal

from fastapi.testclient import TestClient

from core.round_manager import RoundManager, get_round_manager
from database import get_db
from main import app

from helpers import FakeClock, ScriptedRandom, cards, make_session_factory, make_settings


class ApiTestCase(unittest.TestCase):

    def setUp(self):
        self.Session = make_session_factory()
        self.clock = FakeClock()
        self.manager = RoundManager(settings=make_settings(), rng=ScriptedRandom(), clock=self.clock)

        def override_get_db():
            db = self.Session()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = override_get_db
        app.dependency_overrides[get_round_manager] = lambda: self.manager
        self.client = TestClient(app)
        self.player_id = self.register("42")["id"]

    def tearDown(self):
        app.dependency_overrides.clear()

    def register(self, telegram_id, **profile):
        response = self.client.post("/api/players", json={"telegram_id": telegram_id, **profile})
        self.assertEqual(response.status_code, 200, response.text)
        return response.json()

    def start(self, game_kind, bet_amount=None, choice=None, player_id=None):
        payload = {"player_id": player_id or self.player_id, "game_kind": game_kind, "choice": choice or {}}
        if bet_amount is not None:
            payload["bet_amount"] = bet_amount
        return self.client.post("/api/rounds", json=payload)

    def decide(self, round_id, action, cell=None):
        payload = {"action": action}
        if cell is not None:
            payload["cell"] = cell
        return self.client.post(f"/api/rounds/{round_id}/decisions", json=payload)

    def balance(self):
        response = self.client.get(f"/api/players/{self.player_id}")
        return Decimal(response.json()["balance"])


class TestPlayerEndpoints(ApiTestCase):

    def test_registration(self):
        player = self.register("77", username="ann")
        self.assertEqual(player["telegram_id"], "77")
        self.assertEqual(player["username"], "ann")
        self.assertEqual(Decimal(player["balance"]), Decimal("1000"))

        again = self.register("77")
        self.assertEqual(again["id"], player["id"])

        found = self.client.get("/api/players/by-telegram/77")
        self.assertEqual(found.json()["id"], player["id"])

    def test_unknown_player(self):
        self.assertEqual(self.client.get("/api/players/missing").status_code, 404)
        self.assertEqual(self.client.get("/api/players/by-telegram/missing").status_code, 404)
        self.assertEqual(self.client.get("/api/players/missing/history").status_code, 404)

    def test_deposit_and_withdraw(self):
        response = self.client.post(f"/api/players/{self.player_id}/deposit", json={"amount": "50.25"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(Decimal(response.json()["balance"]), Decimal("1050.25"))

        response = self.client.post(f"/api/players/{self.player_id}/withdraw", json={"amount": 2000})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.balance(), Decimal("1050.25"))

        response = self.client.post(f"/api/players/{self.player_id}/withdraw", json={"amount": 0})
        self.assertEqual(response.status_code, 422)


class TestRoundEndpoints(ApiTestCase):

    def test_game_catalog(self):
        games = {g["game_kind"]: g for g in self.client.get("/api/games").json()}
        self.assertEqual(len(games), 7)
        self.assertEqual(Decimal(games["slots"]["min_bet"]), Decimal("10"))
        self.assertEqual(games["blackjack"]["decisions"], ["hit", "stand"])
        self.assertEqual(games["coinflip"]["decisions"], [])

    def test_coin_flip_round(self):
        self.manager.rng = ScriptedRandom(floats=[0.1])
        response = self.start("coinflip", 100, {"side": "heads"})
        self.assertEqual(response.status_code, 200, response.text)

        body = response.json()
        self.assertTrue(body["terminal"])
        self.assertEqual(body["status"], "resolved")
        self.assertEqual(body["outcome"], "win")
        self.assertEqual(Decimal(body["payout"]), Decimal("200"))
        self.assertEqual(Decimal(body["balance"]), Decimal("1100"))
        self.assertEqual(body["result"], {"choice": "heads", "result": "heads"})

        fetched = self.client.get(f"/api/rounds/{body['round_id']}").json()
        self.assertEqual(fetched["outcome"], "win")

    def test_roulette_round(self):
        self.manager.rng = ScriptedRandom(ints=[7])
        bets = {"bets": [{"type": "number", "value": 7, "amount": 100}]}
        body = self.start("roulette", choice=bets).json()
        self.assertEqual(Decimal(body["balance"]), Decimal("4400"))
        self.assertEqual(body["result"]["winning_number"], 7)

    def test_rejected_starts(self):
        self.assertEqual(self.start("coinflip", 5000, {"side": "heads"}).status_code, 400)
        self.assertEqual(self.start("coinflip", 10, {"side": "edge"}).status_code, 400)
        self.assertEqual(self.start("slots", 5).status_code, 400)
        self.assertEqual(self.start("coinflip", 10, {"side": "heads"}, player_id="missing").status_code, 404)
        self.assertEqual(self.start("poker", 10).status_code, 422)
        self.assertEqual(self.balance(), Decimal("1000"))

    def test_blackjack_round(self):
        self.manager.rng = ScriptedRandom(deck=cards("10", "9", "6", "8", "K"))
        body = self.start("blackjack", 100).json()
        self.assertFalse(body["terminal"])
        self.assertEqual(len(body["state"]["dealer"]), 1)
        self.assertNotIn("deck", body["state"])
        self.assertEqual(Decimal(body["balance"]), Decimal("900"))

        self.assertEqual(self.start("blackjack", 100).status_code, 409)

        active = self.client.get(f"/api/players/{self.player_id}/rounds/active").json()
        self.assertEqual([r["round_id"] for r in active], [body["round_id"]])

        self.assertEqual(self.decide(body["round_id"], "reveal", 3).status_code, 400)

        busted = self.decide(body["round_id"], "hit").json()
        self.assertTrue(busted["terminal"])
        self.assertEqual(busted["outcome"], "lose")
        self.assertEqual(busted["result"]["result"], "bust")
        self.assertEqual(len(busted["state"]["dealer"]), 2)

        self.assertEqual(self.decide(body["round_id"], "stand").status_code, 409)
        self.assertEqual(self.decide("missing", "stand").status_code, 404)

    def test_mines_round(self):
        self.manager.rng = ScriptedRandom(ints=[0, 1, 2, 3, 4])
        body = self.start("mines", 100).json()
        self.assertNotIn("mines", body["state"])

        for cell in (5, 6, 7, 8):
            response = self.decide(body["round_id"], "reveal", cell)
            self.assertEqual(response.status_code, 200, response.text)

        cashed = self.decide(body["round_id"], "cash_out").json()
        self.assertEqual(Decimal(cashed["payout"]), Decimal("150"))
        self.assertEqual(cashed["state"]["mines"], [0, 1, 2, 3, 4])
        self.assertEqual(self.balance(), Decimal("1050"))

    def test_crash_round(self):
        self.manager.rng = ScriptedRandom(floats=[0.3, 0.5])
        body = self.start("crash", 100).json()
        round_id = body["round_id"]

        self.clock.advance(milliseconds=3000)
        poll = self.client.get(f"/api/rounds/{round_id}/multiplier").json()
        self.assertFalse(poll["terminal"])
        self.assertEqual(poll["tick"], 30)
        self.assertEqual(Decimal(poll["multiplier"]), Decimal("1.30"))
        self.assertIsNone(poll["crash_point"])

        self.clock.advance(milliseconds=7000)
        self.assertEqual(self.decide(round_id, "cash_out").status_code, 409)

        poll = self.client.get(f"/api/rounds/{round_id}/multiplier").json()
        self.assertTrue(poll["terminal"])
        self.assertEqual(poll["outcome"], "lose")
        self.assertEqual(Decimal(poll["crash_point"]), Decimal("2.00"))
        self.assertEqual(self.balance(), Decimal("900"))

    def test_multiplier_for_other_games(self):
        self.manager.rng = ScriptedRandom(floats=[0.1])
        body = self.start("coinflip", 10, {"side": "heads"}).json()
        self.assertEqual(self.client.get(f"/api/rounds/{body['round_id']}/multiplier").status_code, 400)
        self.assertEqual(self.client.get("/api/rounds/missing/multiplier").status_code, 404)


class TestHistoryEndpoints(ApiTestCase):

    def test_history_and_stats(self):
        self.manager.rng = ScriptedRandom(floats=[0.1, 0.9])
        first = self.start("coinflip", 50, {"side": "heads"}).json()
        self.clock.advance(seconds=1)
        second = self.start("coinflip", 20, {"side": "heads"}).json()

        history = self.client.get(f"/api/players/{self.player_id}/history").json()
        self.assertEqual([h["round_id"] for h in history], [second["round_id"], first["round_id"]])
        self.assertEqual(Decimal(history[0]["net"]), Decimal("-20"))

        limited = self.client.get(f"/api/players/{self.player_id}/history", params={"limit": 1}).json()
        self.assertEqual(len(limited), 1)

        filtered = self.client.get(
            f"/api/players/{self.player_id}/history", params={"game_kind": "slots"}
        ).json()
        self.assertEqual(filtered, [])

        stats = self.client.get(f"/api/players/{self.player_id}/stats").json()
        self.assertEqual(stats[0]["game_kind"], "coinflip")
        self.assertEqual(stats[0]["rounds"], 2)
        self.assertEqual(Decimal(stats[0]["net"]), Decimal("30"))


class TestServiceEndpoints(ApiTestCase):

    def test_health(self):
        self.assertEqual(self.client.get("/health").json(), {"status": "healthy"})
        self.assertEqual(self.client.get("/").json()["status"], "ok")


if __name__ == "__main__":
    unittest.main()
