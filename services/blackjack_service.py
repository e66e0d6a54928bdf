"""
Blackjack：單副牌、每回合重新洗牌，莊家 17 點停牌

回合狀態（存在 GameRound.state）：
    {"deck": [...], "player": [...], "dealer": [...]}

牌以 {"rank": "A", "suit": "♠"} 表示。
回合進行中，莊家的第二張牌（hole card）與剩餘牌堆都不能回傳給前端。
"""
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from models import Outcome
from services.payoff_service import Resolution, floor_multiply, multiply, CENT, ZERO
from services.rng_service import RandomSource

SUITS = ["♠", "♥", "♦", "♣"]
RANKS = ["A", "2", "3", "4", "5", "6", "7", "8", "9", "10", "J", "Q", "K"]

BLACKJACK = 21
DEALER_STANDS_ON = 17
NATURAL_MULTIPLIER = Decimal("2.5")
WIN_MULTIPLIER = 2

Card = Dict[str, str]


def create_deck() -> List[Card]:
    return [{"rank": rank, "suit": suit} for suit in SUITS for rank in RANKS]


def card_value(card: Card) -> int:
    if card["rank"] == "A":
        return 11
    if card["rank"] in ("J", "Q", "K"):
        return 10
    return int(card["rank"])


def hand_value(cards: List[Card]) -> int:
    """
    計算手牌點數

    A 先算 11，總點數超過 21 時逐張改算 1（減 10）

    範例：
        [A, A, 9] -> 11 + 11 + 9 = 31 -> 21
        [K, Q]    -> 20
    """
    total = 0
    aces = 0
    for card in cards:
        total += card_value(card)
        if card["rank"] == "A":
            aces += 1

    while total > BLACKJACK and aces > 0:
        total -= 10
        aces -= 1

    return total


def _draw(state: Dict) -> Card:
    return state["deck"].pop(0)


def _detail(state: Dict, result: str) -> Dict:
    return {
        "player": state["player"],
        "dealer": state["dealer"],
        "player_score": hand_value(state["player"]),
        "dealer_score": hand_value(state["dealer"]),
        "result": result,
    }


def deal(bet: Decimal, rng: RandomSource, deck: Optional[List[Card]] = None) -> Tuple[Dict, Optional[Resolution]]:
    """
    開局發牌（玩家、莊家、玩家、莊家）

    參數：
        bet: 下注金額
        rng: 亂數來源（洗牌用）
        deck: 指定牌堆（不洗牌，依序發牌）；None 表示洗一副新牌

    返回：
        (state, resolution)
        - 玩家開局 21 點：resolution 不為 None（blackjack 或 push）
        - 否則 resolution 為 None，回合進入 active
    """
    cards = list(deck) if deck is not None else rng.shuffle(create_deck())
    state = {"deck": cards, "player": [], "dealer": []}

    for _ in range(2):
        state["player"].append(_draw(state))
        state["dealer"].append(_draw(state))

    if hand_value(state["player"]) == BLACKJACK:
        if hand_value(state["dealer"]) == BLACKJACK:
            return state, Resolution(multiply(bet, 1), Outcome.PUSH, _detail(state, "tie"))
        return state, Resolution(
            floor_multiply(bet, NATURAL_MULTIPLIER), Outcome.WIN, _detail(state, "blackjack")
        )

    return state, None


def hit(state: Dict, bet: Decimal) -> Tuple[Dict, Optional[Resolution]]:
    """
    玩家要一張牌

    返回：
        (state, resolution)：爆牌時 resolution 為輸（payout 0），否則 None
    """
    state = {**state, "deck": list(state["deck"]), "player": list(state["player"])}
    state["player"].append(_draw(state))

    if hand_value(state["player"]) > BLACKJACK:
        return state, Resolution(ZERO.quantize(CENT), Outcome.LOSE, _detail(state, "bust"))
    return state, None


def stand(state: Dict, bet: Decimal) -> Tuple[Dict, Resolution]:
    """
    玩家停牌：莊家補牌到 17 點以上，再比大小

    判定：
    - 莊家爆牌或玩家點數較大 -> 2 倍
    - 點數相同 -> push（退回本金）
    - 莊家點數較大 -> 0
    """
    state = {**state, "deck": list(state["deck"]), "dealer": list(state["dealer"])}
    while hand_value(state["dealer"]) < DEALER_STANDS_ON:
        state["dealer"].append(_draw(state))

    player_score = hand_value(state["player"])
    dealer_score = hand_value(state["dealer"])

    if dealer_score > BLACKJACK or player_score > dealer_score:
        return state, Resolution(multiply(bet, WIN_MULTIPLIER), Outcome.WIN, _detail(state, "player_wins"))
    if player_score == dealer_score:
        return state, Resolution(multiply(bet, 1), Outcome.PUSH, _detail(state, "tie"))
    return state, Resolution(ZERO.quantize(CENT), Outcome.LOSE, _detail(state, "dealer_wins"))


def public_view(state: Dict, resolved: bool) -> Dict:
    """前端可見的牌面；進行中只露出莊家第一張牌"""
    if resolved:
        dealer = state["dealer"]
    else:
        dealer = state["dealer"][:1]
    return {
        "player": state["player"],
        "dealer": dealer,
        "player_score": hand_value(state["player"]),
        "dealer_score": hand_value(dealer),
        "dealer_hidden": 0 if resolved else len(state["dealer"]) - 1,
    }
