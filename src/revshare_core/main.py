"""Revshare FastAPI application entry point."""
import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from .api.routes import router as api_router
from .sync.service import stats_store_from_env


logging.basicConfig(
    level=os.getenv("REVSHARE_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    # Schema init runs once here, not per request
    app.state.stats_store = stats_store_from_env()
    logger.info("Stats store ready at %s", app.state.stats_store.db_path)
    if not os.getenv("REVSHARE_ADMIN_KEY"):
        logger.warning("REVSHARE_ADMIN_KEY not set, directory writes are disabled")
    yield


def create_app() -> FastAPI:
    """Create the revshare API: sync submission, stats reads, directory admin."""
    app = FastAPI(
        title="Revshare API",
        version="0.1.0",
        description=(
            "Attributes creator-channel analytics exports to owners and serves "
            "the resulting per-owner and per-channel revenue snapshots"
        ),
        lifespan=lifespan,
    )

    app.include_router(api_router)

    return app


app = create_app()
