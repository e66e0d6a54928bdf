from decimal import Decimal
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import sessionmaker, Session
from pydantic_settings import BaseSettings
from functools import lru_cache, wraps
import logging

from core.exceptions import CasinoException

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    database_url: str = "sqlite:///./mini_casino.db"
    log_level: str = "INFO"

    # 玩家
    starting_balance: Decimal = Decimal("1000")

    # 亂數來源：secure_rng=True 時改用作業系統熵源（不可設定 seed）
    secure_rng: bool = False
    rng_seed: Optional[int] = None

    # 各遊戲的下注上下限（roulette 的上下限是針對單一籌碼）
    default_min_bet: Decimal = Decimal("1")
    default_max_bet: Decimal = Decimal("10000")
    slots_min_bet: Decimal = Decimal("10")
    slots_max_bet: Decimal = Decimal("1000")
    blackjack_min_bet: Decimal = Decimal("50")
    blackjack_max_bet: Decimal = Decimal("1000")
    roulette_min_bet: Decimal = Decimal("25")
    roulette_max_bet: Decimal = Decimal("500")

    # Penalty：守門員猜中方向 / 猜錯方向時的進球機率
    penalty_goal_on_guess: float = 0.30
    penalty_goal_on_miss: float = 0.85

    # Mines
    mines_grid_size: int = 25
    mines_count: int = 5

    # Crash：每 crash_tick_ms 毫秒倍率增加 crash_tick_step
    crash_tick_ms: int = 100
    crash_tick_step: Decimal = Decimal("0.01")

    # 背景排程
    scheduler_enabled: bool = True
    crash_sweep_interval_ms: int = 100
    stale_sweep_interval_seconds: int = 60
    stale_round_seconds: int = 600

    history_page_size: int = 50

    class Config:
        env_file = ".env"


@lru_cache()
def get_settings():
    return Settings()


settings = get_settings()

# SQLite 需要特殊設定：connect_args={"check_same_thread": False}
# 這允許多執行緒存取同一個 SQLite 連線（FastAPI 的多執行緒環境需要）
engine = create_engine(
    settings.database_url,
    connect_args={"check_same_thread": False} if settings.database_url.startswith("sqlite") else {},
    pool_pre_ping=True
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    """
    FastAPI dependency：提供 Database Session

    使用 yield 確保 session 在請求結束後會被關閉
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _find_session(args, kwargs):
    if 'db' in kwargs and isinstance(kwargs['db'], Session):
        return kwargs['db']
    for arg in args[:2]:
        if isinstance(arg, Session):
            return arg
    return None


def transactional(func):
    """
    Transaction decorator：確保資料庫操作的原子性

    使用方式：
        @transactional
        def start_round(self, db: Session, ...):
            # 扣款、建立回合、寫入歷史都在同一個 transaction 內
            ...

    如果函式內發生異常：
        - 自動 rollback（已扣的下注金額一併還原）
        - 異常會被重新拋出（讓上層處理）

    注意：
        - db: Session 必須是第一個參數（method 則是 self 之後的第一個）
        - 不要在函式內手動 commit（decorator 會處理）
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        db = _find_session(args, kwargs)

        if db is None:
            raise ValueError(
                f"@transactional requires 'db: Session' as first argument, "
                f"but got args={args}, kwargs={kwargs}"
            )

        try:
            result = func(*args, **kwargs)
            db.commit()
            return result
        except CasinoException as e:
            # 業務規則拒絕（餘額不足等），不是系統錯誤
            logger.warning(f"Transaction rejected in {func.__name__}: {e}")
            db.rollback()
            raise
        except Exception as e:
            logger.error(f"Transaction failed in {func.__name__}: {e}", exc_info=True)
            db.rollback()
            raise

    return wrapper
