from contextlib import asynccontextmanager

from fastapi import FastAPI

from wrapbot import __version__
from wrapbot.config import settings
from wrapbot.logging_config import get_logger, setup_logging
from wrapbot.routers import admin, telegram_webhook
from wrapbot.services.redis_client import close_redis, ping_redis

setup_logging(settings.log_level)

logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    missing = settings.missing_required()
    if missing:
        logger.error("Missing required configuration", extra={"context": {"missing": missing}})
        raise RuntimeError(f"Missing required configuration: {', '.join(missing)}")

    logger.info(
        "WrapBot started",
        extra={
            "context": {
                "usage_limit": settings.usage_limit,
                "usage_window": settings.usage_window,
                "processor_url": settings.n8n_webhook_url,
            }
        },
    )
    try:
        yield
    finally:
        await close_redis()


app = FastAPI(
    title="WrapBot API",
    description="Telegram bot backend for vehicle re-colour previews",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(telegram_webhook.router)
app.include_router(admin.router)


@app.get("/health")
async def health():
    redis_ok = await ping_redis()
    return {"status": "ok" if redis_ok else "degraded", "redis": redis_ok}
