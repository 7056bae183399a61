"""
Change-notification transport.

ChangeChannel is a bounded in-process queue of ChangeEvents between a
producer (any change source) and the change-capture subscriber. The
subscriber only depends on ChangeChannel, so the producer can be swapped
(PostgreSQL LISTEN/NOTIFY today, a message queue later) without touching it.

PostgresChangeSource is the LISTEN/NOTIFY producer:
- installs the notify function and the row trigger on compensation_data
- holds one dedicated connection, outside the shared pool, for LISTEN
- parses each payload into a ChangeEvent and publishes it without blocking
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from asyncpg import Connection

from compsearch.core.database import RELATIONAL_ERRORS, RelationalStore
from compsearch.core.exceptions import RelationalStoreError
from compsearch.models import ChangeEvent
from compsearch.sql import (
    get_create_trigger_ddl,
    get_drop_trigger_ddl,
    get_notify_function_ddl,
)

logger = logging.getLogger(__name__)

DEFAULT_CHANNEL_NAME = 'compensation_data_change'
DEFAULT_QUEUE_SIZE = 10000


class ChangeChannel:
    """
    Bounded FIFO of change events.

    publish() never blocks: when the queue is full the event is dropped and
    counted, since the notification callback cannot wait.
    """

    def __init__(self, maxsize: int = DEFAULT_QUEUE_SIZE):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def publish(self, event: ChangeEvent) -> bool:
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(f"Change channel full, dropping {event.operation.value} for {event.key}")
            return False
        return True

    async def receive(self) -> ChangeEvent:
        return await self._queue.get()

    def task_done(self) -> None:
        self._queue.task_done()

    async def join(self) -> None:
        """Wait until every published event has been processed."""
        await self._queue.join()

    def qsize(self) -> int:
        return self._queue.qsize()


class PostgresChangeSource:
    """
    Publishes compensation_data mutations from LISTEN/NOTIFY onto a ChangeChannel.

    Args:
        relational: Shared store, used only to install the trigger.
        connect: Opens the dedicated listener connection.
        channel: Destination for parsed events.
        channel_name: NOTIFY channel the trigger publishes on.
    """

    def __init__(
        self,
        relational: RelationalStore,
        connect: Callable[[], Awaitable[Connection]],
        channel: ChangeChannel,
        channel_name: str = DEFAULT_CHANNEL_NAME,
    ):
        self.relational = relational
        self._connect = connect
        self.channel = channel
        self.channel_name = channel_name
        self._connection: Optional[Connection] = None

    @property
    def listening(self) -> bool:
        return self._connection is not None and not self._connection.is_closed()

    async def install_trigger(self) -> None:
        """Create or replace the notify function and (re)create the row trigger."""
        await self.relational.execute(get_notify_function_ddl(self.channel_name))
        await self.relational.execute(get_drop_trigger_ddl())
        await self.relational.execute(get_create_trigger_ddl())
        logger.info(f"Change trigger installed on channel {self.channel_name}")

    async def start(self) -> None:
        """
        Install the trigger and start listening.

        Raises:
            RelationalStoreError: If the trigger or listener cannot be set up.
        """
        if self.listening:
            return
        await self.install_trigger()
        connection = await self._connect()
        try:
            await connection.add_listener(self.channel_name, self._on_notification)
        except RELATIONAL_ERRORS as e:
            await connection.close()
            raise RelationalStoreError(f"Could not LISTEN on {self.channel_name}: {e}") from e
        self._connection = connection
        logger.info(f"Listening for changes on {self.channel_name}")

    async def stop(self) -> None:
        connection, self._connection = self._connection, None
        if connection is None:
            return
        try:
            await connection.remove_listener(self.channel_name, self._on_notification)
            await connection.close()
        except RELATIONAL_ERRORS as e:
            logger.warning(f"Error closing listener connection: {e}")
            connection.terminate()
        logger.info(f"Stopped listening on {self.channel_name}")

    def _on_notification(self, connection: Any, pid: int, channel: str, payload: str) -> None:
        try:
            event = ChangeEvent.from_notification(payload)
        except ValueError as e:
            logger.error(f"Ignoring malformed change notification: {e}")
            return
        logger.debug(f"Change received: {event.operation.value} {event.key}")
        self.channel.publish(event)
