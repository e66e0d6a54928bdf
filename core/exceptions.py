"""
自定義異常類別

集中管理所有業務邏輯異常，方便 API 層統一處理。
這裡的異常都是「玩家可修正」的錯誤，不代表系統故障。
"""


class CasinoException(Exception):
    """所有遊戲異常的基類"""
    pass


# ============ Player 相關異常 ============

class PlayerNotFound(CasinoException):
    """玩家不存在"""
    def __init__(self, player_id):
        self.player_id = player_id
        super().__init__(f"Player {player_id} not found")


class InsufficientFunds(CasinoException):
    """餘額不足（在任何扣款之前拒絕）"""
    def __init__(self, balance, amount):
        self.balance = balance
        self.amount = amount
        super().__init__(f"Insufficient balance: {balance} available, {amount} required")


# ============ Bet 相關異常 ============

class InvalidBetAmount(CasinoException):
    """下注金額超出遊戲的上下限"""
    pass


class InvalidChoice(CasinoException):
    """玩家選擇不合法（例如硬幣選了第三面）"""
    pass


# ============ Round 相關異常 ============

class RoundNotFound(CasinoException):
    """回合不存在"""
    def __init__(self, round_id):
        self.round_id = round_id
        super().__init__(f"Round {round_id} not found")


class RoundAlreadyResolved(CasinoException):
    """回合已經結算，不再接受任何操作"""
    def __init__(self, round_id):
        self.round_id = round_id
        super().__init__(f"Round {round_id} is already resolved")


class RoundAlreadyActive(CasinoException):
    """同一玩家在同一遊戲已有進行中的回合"""
    def __init__(self, player_id, game_kind, round_id):
        self.player_id = player_id
        self.game_kind = game_kind
        self.round_id = round_id
        super().__init__(
            f"Player {player_id} already has an active {game_kind} round ({round_id})"
        )


class InvalidDecision(CasinoException):
    """此回合目前不允許這個操作（例如尚未翻開任何格子就兌現）"""
    pass


# ============ 狀態轉換異常 ============

class InvalidStateTransition(CasinoException):
    """非法的狀態轉換"""
    pass
