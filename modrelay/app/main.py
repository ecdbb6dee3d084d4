import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import get_settings
from .moderation.bootstrap import ensure_channel_type_policy, ensure_system_user, sweep_periodically
from .moderation.dispatcher import NoticeDispatcher
from .moderation.flag_memory import FlagMemory
from .services.stream import StreamChatBackend

settings = get_settings()

# Configure console logging, plus a file when LOG_FILE is set
handlers = [logging.StreamHandler()]
if settings.LOG_FILE:
    log_path = Path(settings.LOG_FILE)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=handlers,
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    if not settings.has_stream_credentials:
        logger.error("Missing STREAM_KEY or STREAM_SECRET in .env")
        raise RuntimeError("STREAM_KEY and STREAM_SECRET are required")

    # The SDK opens its HTTP session here, inside the running loop
    backend = StreamChatBackend.from_settings(settings)
    memory = FlagMemory(ttl_seconds=settings.FLAG_TTL_S)
    app.state.chat_backend = backend
    app.state.dispatcher = NoticeDispatcher(
        backend,
        memory,
        system_user_id=settings.SYSTEM_USER_ID,
        preview_chars=settings.NOTICE_PREVIEW_CHARS,
    )

    await ensure_channel_type_policy(backend, settings)
    await ensure_system_user(backend, settings)

    sweeper = None
    if settings.FLAG_SWEEP_INTERVAL_S > 0:
        sweeper = asyncio.create_task(sweep_periodically(memory, settings.FLAG_SWEEP_INTERVAL_S))
        logger.info("flag memory sweep every %ss", settings.FLAG_SWEEP_INTERVAL_S)

    logger.info("Webhook endpoint: POST /webhook")
    if settings.DEBUG_ROUTES_ENABLED:
        logger.info("Debug: POST /debug/flag  (sends a profane test message)")
    try:
        yield
    finally:
        if sweeper is not None:
            sweeper.cancel()
            with suppress(asyncio.CancelledError):
                await sweeper
        try:
            await backend.close()
        except Exception as e:
            logger.warning("chat backend close failed: %s", e)


# Initialize FastAPI app with lifespan
app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Moderation-notification relay for Stream Chat webhooks",
    version=settings.VERSION,
    lifespan=lifespan,
)

# Set up CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Health check endpoint
@app.get("/health")
async def health_check():
    return {"ok": True}


# Import and include routers
from .api.v1.api import api_router  # noqa: E402

app.include_router(api_router)


def run() -> None:
    import uvicorn

    logger.info("API listening on http://localhost:%s", settings.PORT)
    uvicorn.run(app, host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    run()
