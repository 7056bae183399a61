"""
FastAPI application entry point for the compensation search API.

The lifespan builds one RelationalStore and one SearchStore per process and
hands them to the FallbackQueryRouter and the SyncController, which endpoint
handlers receive through compsearch.core.dependencies.

Startup is tolerant of a degraded search store: if the index cannot be set
up, reads still work through the relational fallback. If PostgreSQL is
unreachable, data endpoints answer 503 until the process is restarted.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI

from compsearch import __version__
from compsearch.api.compensation import router as compensation_router
from compsearch.api.sync import router as sync_router
from compsearch.core.config import get_settings
from compsearch.core.database import create_relational_store
from compsearch.core.dependencies import SyncControllerDep
from compsearch.core.exceptions import IndexSetupError, RelationalStoreError
from compsearch.core.search import create_search_store
from compsearch.models import HealthStatus
from compsearch.services.federation import FallbackQueryRouter
from compsearch.services.sync_control import SyncController

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Lifespan context manager for startup and shutdown.

    On startup:
        - Create the relational pool and the search client
        - Ensure the search index exists with the fixed mapping
        - Optionally run a full bulk sync (SYNC_ON_STARTUP), only once the
          index is confirmed

    On shutdown:
        - Close the search client and drain the pool
    """
    settings = get_settings()
    logging.getLogger().setLevel(settings.log_level.upper())
    logger.info("Compensation search API starting")

    app.state.query_router = None
    app.state.sync_controller = None

    search = create_search_store(settings)
    relational = None
    try:
        relational = await create_relational_store(settings)
    except RelationalStoreError as e:
        logger.error(f"Failed to initialize relational store: {e}")

    index_ready = False
    try:
        await search.ensure_index()
        index_ready = True
    except IndexSetupError as e:
        logger.error(f"Search index unavailable, reads will fall back to PostgreSQL: {e}")

    if relational is not None:
        app.state.query_router = FallbackQueryRouter.from_settings(settings, relational, search)
        app.state.sync_controller = SyncController.from_settings(settings, relational, search)

        if settings.sync_on_startup and not index_ready:
            # Bulk writes into a missing index would auto-create it with dynamic mappings
            logger.error("Skipping startup sync: search index is not set up")
        elif settings.sync_on_startup:
            try:
                report = await app.state.sync_controller.sync_all()
                logger.info(f"Startup sync: {report.processed} processed, {report.failed} failed")
            except RelationalStoreError as e:
                logger.error(f"Startup sync failed: {e}")

    yield

    logger.info("Compensation search API shutting down")
    await search.close()
    if relational is not None:
        await relational.close()


def create_app() -> FastAPI:
    """Build the FastAPI application with all routers registered."""
    application = FastAPI(
        title="Compensation Search API",
        version=__version__,
        description=(
            "Federated compensation queries over Elasticsearch with PostgreSQL "
            "fallback, plus bulk and change-capture synchronization."
        ),
        lifespan=lifespan,
    )

    application.include_router(compensation_router, tags=["compensation"])
    application.include_router(sync_router, tags=["sync"])

    @application.get("/health", response_model=HealthStatus)
    async def health_check(controller: SyncControllerDep) -> HealthStatus:
        """
        Reachability of both stores.

        Returns:
            HealthStatus with relational/search booleans and the fallback flag
        """
        return await controller.health_check()

    @application.get("/")
    async def root():
        return {
            "name": "Compensation Search API",
            "version": __version__,
            "docs": "/docs",
        }

    return application


app = create_app()


# Run with uvicorn when executed directly
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "compsearch.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
