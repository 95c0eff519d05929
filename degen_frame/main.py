"""FastAPI application setup for the DEGEN allowance frame."""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from .api import router as frame_router
from .config import Settings, settings as default_settings
from .data_sources import build_async_client, build_sources
from .frame_service import FrameService
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="degen_frame/main")


def create_app(settings: Settings | None = None, *, transport=None) -> FastAPI:
    """Build the app; the shared HTTP client lives for the app's lifespan."""
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        client = build_async_client(settings, transport=transport)
        app.state.frame_service = FrameService(build_sources(client, settings), settings)
        logger.info("Frame service ready", extra={"base_path": settings.base_path})
        try:
            yield
        finally:
            await client.aclose()
            logger.info("Upstream HTTP client closed")

    application = FastAPI(title=settings.title, lifespan=lifespan)
    application.include_router(frame_router, prefix=settings.base_path)
    return application


app = create_app()
