from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

import models  # noqa: F401  註冊 ORM models 到 Base.metadata
from database import Base, engine, get_settings
from api import players, rounds
from core.round_manager import get_round_manager
from core.ticker import RoundTicker

settings = get_settings()
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: 建立資料庫表、啟動背景結算
    Base.metadata.create_all(bind=engine)

    ticker = None
    if settings.scheduler_enabled:
        ticker = RoundTicker(get_round_manager())
        ticker.start()

    try:
        yield
    finally:
        # Shutdown: 停止排程，進行中的回合留在資料庫，下次啟動後繼續結算
        if ticker:
            ticker.shutdown()
        logger.info("Stop Server")


app = FastAPI(
    title="Mini Casino API",
    description="Game outcome engine and round orchestration for the Telegram mini casino",
    version="1.0.0",
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure this properly in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(players.router)
app.include_router(rounds.router)


@app.get("/")
def root():
    return {"message": "Mini Casino API", "status": "ok"}


@app.get("/health")
def health():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
