"""FastAPI entry point for the Batch Article Agent backend.

Run with ``uvicorn app.main:app`` from the ``backend`` directory.
"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.logging_config import RequestIdMiddleware, configure_logging

# Logging first: records emitted while the routers import are already JSON
configure_logging(level=os.environ.get("LOG_LEVEL", "INFO"))

from app.api.batches import router as batches_router  # noqa: E402
from app.config import settings  # noqa: E402
from app.services import batch_service  # noqa: E402

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Batch Article Agent API starting", extra={"dry_run": settings.dry_run})
    yield
    orchestrator = batch_service.peek_orchestrator()
    if orchestrator is not None and orchestrator.is_running:
        logger.warning("Batch still running at shutdown; cancelling it")
        await orchestrator.shutdown(settings.shutdown_grace_period)
    logger.info("Batch Article Agent API stopped")


def create_app() -> FastAPI:
    application = FastAPI(title="Batch Article Agent API", lifespan=lifespan)

    application.add_middleware(RequestIdMiddleware)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url],
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
    )
    application.include_router(batches_router)

    @application.get("/api/health")
    async def health():
        orchestrator = batch_service.peek_orchestrator()
        return {
            "status": "ok",
            "batch_running": bool(orchestrator and orchestrator.is_running),
        }

    return application


app = create_app()
