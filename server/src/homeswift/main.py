"""FastAPI application entry point for the HomeSwift auth service."""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from homeswift import __version__
from homeswift.api.routes import get_event_bus, router
from homeswift.config import get_settings

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Background task handle
_cleanup_task: asyncio.Task | None = None


async def event_cleanup_loop() -> None:
    """Periodically drop auth event history for signed-out users."""
    settings = get_settings()
    while True:
        try:
            await asyncio.sleep(settings.event_cleanup_interval)
            removed = get_event_bus().cleanup_stale()
            if removed:
                logger.debug(f"Cleaned up auth events for {removed} users")
        except asyncio.CancelledError:
            logger.info("Event cleanup shutting down")
            break
        except Exception as e:
            logger.error(f"Event cleanup error: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    global _cleanup_task

    logger.info(f"Starting HomeSwift auth service v{__version__}")
    settings = get_settings()
    logger.info(f"Debug mode: {settings.debug}")

    _cleanup_task = asyncio.create_task(event_cleanup_loop())

    yield

    if _cleanup_task:
        _cleanup_task.cancel()
        try:
            await _cleanup_task
        except asyncio.CancelledError:
            pass

    logger.info("Shutting down HomeSwift auth service")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="HomeSwift Auth",
        description="OAuth sign-in and role reconciliation for HomeSwift",
        version=__version__,
        lifespan=lifespan,
        debug=settings.debug,
    )

    # Cookies are shared with the web client
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)

    return app


# Create app instance for uvicorn
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "homeswift.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
