"""
Change-capture subscriber: applies relational mutations to the search store.

Consumes ChangeEvents from a ChangeChannel one at a time, in arrival order,
so events for the same key are applied in the order PostgreSQL committed them.

- insert / update: transform the row snapshot and overwrite the document,
  waiting for it to become searchable (refresh=wait_for).
- delete: delete the document; a missing document counts as success.

Every write is keyed by the relational id, so applying an event twice leaves
the index exactly as applying it once. Failed events are logged and dropped.
"""

import asyncio
import logging
from typing import Optional

from pydantic import ValidationError

from compsearch.core.exceptions import SearchStoreError
from compsearch.core.search import SearchStore
from compsearch.models import ChangeEvent, ChangeOperation
from compsearch.services.change_channel import ChangeChannel
from compsearch.services.transformer import to_index_body, transform_record

logger = logging.getLogger(__name__)


class ChangeCaptureSubscriber:
    """
    Applies change events from a channel to the search store.

    Attributes:
        applied: Events written successfully.
        failed: Events dropped after a processing failure.
    """

    def __init__(self, search: SearchStore, channel: ChangeChannel):
        self.search = search
        self.channel = channel
        self.applied = 0
        self.failed = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def apply_event(self, event: ChangeEvent) -> bool:
        """
        Apply one event.

        Returns:
            True if the search store now reflects the event, False if it was
            dropped.
        """
        try:
            if event.operation == ChangeOperation.DELETE:
                deleted = await self.search.delete_document(event.key)
                logger.info(f"Deleted document {event.key}" if deleted else f"Document {event.key} already absent")
            else:
                if event.row is None:
                    raise ValueError(f"{event.operation.value} event for {event.key} has no row")
                document = transform_record({**event.row, 'id': event.key})
                await self.search.index_document(event.key, to_index_body(document))
                logger.info(f"Indexed document {event.key} ({event.operation.value})")
        except (SearchStoreError, ValidationError, ValueError) as e:
            self.failed += 1
            logger.error(f"Dropping {event.operation.value} event for {event.key}: {e}")
            return False

        self.applied += 1
        return True

    async def run(self) -> None:
        """Consume events until cancelled."""
        logger.info("Change capture subscriber started")
        try:
            while True:
                event = await self.channel.receive()
                try:
                    await self.apply_event(event)
                finally:
                    self.channel.task_done()
        finally:
            logger.info(
                f"Change capture subscriber stopped ({self.applied} applied, {self.failed} dropped)"
            )

    def start(self) -> asyncio.Task:
        if not self.running:
            self._task = asyncio.create_task(self.run())
            self._task.add_done_callback(self._on_task_done)
        return self._task

    def _on_task_done(self, task: asyncio.Task) -> None:
        # The running task is never awaited; report an unexpected failure here
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Change capture subscriber crashed: {error!r}", exc_info=error)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
