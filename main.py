import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from qr_auth import models  # noqa: F401  (registers tables on Base.metadata)
from qr_auth.config import settings
from qr_auth.database import Base, engine
from qr_auth.exception_handlers import register_exception_handlers
from qr_auth.middleware.logging import StructuredLoggingMiddleware, setup_structured_logging
from qr_auth.routes import auth
from qr_auth.scheduler import schedule_session_cleanup, scheduler
from qr_auth.utils.cache import password_reset_cache, registration_cache

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Tasks to run at application startup and shutdown."""
    logger.info("Starting up the application...")
    if settings.debug:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created (if not existing).")

    await registration_cache.connect()
    await password_reset_cache.connect()

    schedule_session_cleanup()
    scheduler.start()

    yield

    logger.info("Shutting down the application...")
    scheduler.shutdown(wait=False)
    await registration_cache.disconnect()
    await password_reset_cache.disconnect()
    await engine.dispose()


def create_app() -> FastAPI:
    """Create the FastAPI application."""
    setup_structured_logging(log_level=settings.log_level, json_format=settings.log_json)

    app = FastAPI(
        title=settings.app_name,
        description="Owner registration and session lifecycle for the QR ordering platform",
        debug=settings.debug,
        version=settings.app_version,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(StructuredLoggingMiddleware)

    register_exception_handlers(app)

    app.include_router(auth.router, prefix="/auth")

    @app.get("/health", tags=["Health"])
    async def health():
        return {"status": "ok"}

    if settings.debug:
        logger.info(f"Running in {settings.environment} mode")
        logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=settings.debug)
