"""
Long-running streamer keeping the search index in step with PostgreSQL.

Startup sequence:
1. Create the relational pool and the search client, verify both respond
2. Ensure the search index exists (fatal if it cannot be set up)
3. Run a full bulk sync
4. Start change capture (trigger install, LISTEN, subscriber)
5. Log a health check every HEALTH_CHECK_INTERVAL_SECONDS until SIGINT/SIGTERM

Shutdown stops change capture, drains the pool and closes the search client.

Usage:
    python -m compsearch.jobs.streamer

    # Programmatic, with an externally controlled stop event
    exit_code = await run_streamer(get_settings(), stop_event)
"""

import asyncio
import logging
import signal
import sys
from typing import Optional

from compsearch.core.config import Settings, get_settings
from compsearch.core.database import RelationalStore, create_relational_store
from compsearch.core.exceptions import IndexSetupError, StoreError
from compsearch.core.search import SearchStore, create_search_store
from compsearch.services.sync_control import SyncController

logger = logging.getLogger(__name__)


# =============================================================================
# Startup
# =============================================================================

async def start_streaming(
    settings: Settings,
    relational: RelationalStore,
    search: SearchStore,
) -> SyncController:
    """
    Verify the stores, prepare the index, bulk sync and start change capture.

    Returns:
        The running SyncController.

    Raises:
        StoreError: If a store is unreachable or change capture cannot start.
        IndexSetupError: If the search index cannot be created.
    """
    if not await relational.ping():
        raise StoreError("PostgreSQL is not reachable")
    if not await search.ping():
        raise StoreError("Elasticsearch is not reachable")
    logger.info("Both stores reachable")

    created = await search.ensure_index()
    logger.info(f"Search index {'created' if created else 'verified'}: {search.index_name}")

    controller = SyncController.from_settings(settings, relational, search)
    report = await controller.sync_all()
    logger.info(
        f"Initial sync complete: {report.processed} processed, {report.failed} failed, "
        f"verified={report.verified}"
    )

    await controller.start_change_capture()
    return controller


async def health_loop(
    controller: SyncController,
    interval_seconds: float,
    stop_event: asyncio.Event,
) -> None:
    """Log store health every interval until stop_event is set."""
    while not stop_event.is_set():
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
        except asyncio.TimeoutError:
            pass
        if stop_event.is_set():
            break

        status = await controller.health_check()
        if status.relational and status.search and controller.change_capture_running:
            logger.info("Health check OK")
        else:
            logger.warning(
                f"Health check degraded: relational={status.relational}, search={status.search}, "
                f"change_capture={controller.change_capture_running}"
            )


# =============================================================================
# Process Entry Point
# =============================================================================

async def run_streamer(settings: Settings, stop_event: Optional[asyncio.Event] = None) -> int:
    """
    Run the streamer until stop_event is set.

    Returns:
        Process exit code: 0 after a clean stop, 1 if startup failed.
    """
    stop_event = stop_event or asyncio.Event()
    search = create_search_store(settings)
    relational: Optional[RelationalStore] = None
    controller: Optional[SyncController] = None

    try:
        relational = await create_relational_store(settings)
        controller = await start_streaming(settings, relational, search)
        logger.info("Streamer running, waiting for changes")
        await health_loop(controller, settings.health_check_interval_seconds, stop_event)
        return 0
    except (StoreError, IndexSetupError) as e:
        logger.error(f"Streamer startup failed: {e}")
        return 1
    finally:
        logger.info("Streamer shutting down")
        if controller is not None:
            await controller.stop_change_capture()
        if relational is not None:
            await relational.close()
        await search.close()


async def main() -> int:
    settings = get_settings()
    logging.getLogger().setLevel(settings.log_level.upper())

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    return await run_streamer(settings, stop_event)


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    sys.exit(asyncio.run(main()))
