"""
Sync control entry point for startup and ops tooling.

Wires the bulk synchronization engine and the change-capture pipeline
(PostgresChangeSource -> ChangeChannel -> ChangeCaptureSubscriber) around the
two shared store handles, and exposes:

- sync_all(): full resynchronization, one run at a time
- start_change_capture() / stop_change_capture()
- health_check(): reachability of both stores
"""

import asyncio
import functools
import logging

from compsearch.core.config import Settings
from compsearch.core.database import RelationalStore, connect_listener
from compsearch.core.search import SearchStore
from compsearch.models import HealthStatus, SyncReport
from compsearch.services.bulk_sync import BulkSyncEngine
from compsearch.services.change_capture import ChangeCaptureSubscriber
from compsearch.services.change_channel import ChangeChannel, PostgresChangeSource

logger = logging.getLogger(__name__)


class SyncController:
    """
    Owns the synchronization components for one process.

    Args:
        relational: Shared relational store handle.
        search: Shared search store handle.
        engine: Bulk synchronization engine.
        source: Producer of change events.
        subscriber: Consumer applying change events.
        fallback_enabled: Reported by health_check().
    """

    def __init__(
        self,
        relational: RelationalStore,
        search: SearchStore,
        engine: BulkSyncEngine,
        source: PostgresChangeSource,
        subscriber: ChangeCaptureSubscriber,
        fallback_enabled: bool = True,
    ):
        self.relational = relational
        self.search = search
        self.engine = engine
        self.source = source
        self.subscriber = subscriber
        self.fallback_enabled = fallback_enabled
        self._sync_lock = asyncio.Lock()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        relational: RelationalStore,
        search: SearchStore,
    ) -> 'SyncController':
        channel = ChangeChannel(maxsize=settings.change_queue_size)
        source = PostgresChangeSource(
            relational,
            functools.partial(connect_listener, settings),
            channel,
            channel_name=settings.change_channel,
        )
        return cls(
            relational,
            search,
            engine=BulkSyncEngine.from_settings(settings, relational, search),
            source=source,
            subscriber=ChangeCaptureSubscriber(search, channel),
            fallback_enabled=settings.enable_fallback,
        )

    @property
    def change_capture_running(self) -> bool:
        return self.source.listening and self.subscriber.running

    async def sync_all(self) -> SyncReport:
        """Run a full bulk synchronization; concurrent calls wait their turn."""
        if self._sync_lock.locked():
            logger.info("Bulk sync already running, waiting for it to finish")
        async with self._sync_lock:
            return await self.engine.sync_all()

    async def start_change_capture(self) -> None:
        """
        Start consuming events, then start listening.

        Raises:
            RelationalStoreError: If the trigger or listener cannot be set up.
        """
        self.subscriber.start()
        try:
            await self.source.start()
        except Exception:
            await self.subscriber.stop()
            raise
        logger.info("Change capture started")

    async def stop_change_capture(self) -> None:
        await self.source.stop()
        await self.subscriber.stop()
        logger.info("Change capture stopped")

    async def health_check(self) -> HealthStatus:
        relational_ok = await self.relational.ping()
        search_ok = await self.search.ping()
        return HealthStatus(
            relational=relational_ok,
            search=search_ok,
            fallbackEnabled=self.fallback_enabled,
        )
