import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from redis.exceptions import RedisError

from .config import settings
from .database import init_db
from .dependencies import get_orchestrator
from .redis_client import redis_client
from .routers import courts, slots
from .services.hold_sweeper import hold_sweeper_loop

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting court slots service")
    init_db()

    sweeper = asyncio.create_task(
        hold_sweeper_loop(get_orchestrator, settings.sweep_interval_seconds)
    )

    yield

    logger.info("Shutting down court slots service")
    sweeper.cancel()
    try:
        await sweeper
    except asyncio.CancelledError:
        pass


app = FastAPI(title="Court Slots API", lifespan=lifespan)

app.include_router(courts.router)
app.include_router(slots.router)


@app.get("/health")
def health():
    try:
        redis_ok = bool(redis_client.ping())
    except RedisError:
        redis_ok = False
    return {"status": "ok", "redis": redis_ok}
