"""
背景結算排程（APScheduler）

兩個 interval job：
- crash-settlement：每個 crash tick 檢查一次，把已過 crash point 的回合以輸結算
  （就算玩家關掉畫面、不再輪詢，回合也會準時結束）
- stale-settlement：定期結算閒置過久的 blackjack / mines 回合

Job 和 API 請求共用 player_mutex，結算順序以先拿到鎖的一方為準。
"""
import logging

from apscheduler.schedulers.background import BackgroundScheduler

from database import SessionLocal

logger = logging.getLogger(__name__)


class RoundTicker:
    def __init__(self, manager, session_factory=SessionLocal, settings=None):
        self.manager = manager
        self.session_factory = session_factory
        self.settings = settings or manager.settings
        self.scheduler = BackgroundScheduler()

    def settle_crashed(self) -> int:
        db = self.session_factory()
        try:
            return self.manager.settle_crashed_rounds(db)
        finally:
            db.close()

    def settle_stale(self) -> int:
        db = self.session_factory()
        try:
            return self.manager.settle_stale_rounds(db)
        finally:
            db.close()

    def start(self) -> None:
        self.scheduler.add_job(
            self.settle_crashed,
            "interval",
            seconds=self.settings.crash_sweep_interval_ms / 1000,
            id="crash-settlement",
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.add_job(
            self.settle_stale,
            "interval",
            seconds=self.settings.stale_sweep_interval_seconds,
            id="stale-settlement",
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        logger.info(
            f"Round ticker started (crash every {self.settings.crash_sweep_interval_ms}ms, "
            f"stale every {self.settings.stale_sweep_interval_seconds}s)"
        )

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Round ticker stopped")
