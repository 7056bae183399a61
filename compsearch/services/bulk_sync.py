"""
Bulk synchronization engine: full copy of compensation_data into the search index.

Algorithm:
1. Read the relational row count once.
2. Walk fixed-size windows ordered by key (ORDER BY id LIMIT size OFFSET n)
   from offset 0, stopping at a short window or when offset reaches the total.
3. Transform each window and submit it as one bulk request. Per-item
   rejections are counted without failing the window.
4. A bulk request that fails as a whole is attempted up to max_retries times,
   sleeping backoff_base_seconds * attempt between attempts. After the last
   attempt every row of the window counts as failed and the engine moves on.
5. Refresh the index and compare its document count with the relational
   total. A mismatch is logged, never raised.

Writes are keyed by the relational id, so re-running the engine (or running
it alongside change capture) overwrites documents instead of duplicating them.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Tuple

from pydantic import ValidationError

from compsearch.core.config import Settings
from compsearch.core.database import RelationalStore
from compsearch.core.exceptions import RelationalStoreError, SearchStoreError
from compsearch.core.search import SearchStore
from compsearch.models import SyncReport, WindowReport
from compsearch.services.transformer import to_index_body, transform_record
from compsearch.sql import get_sync_window_query, get_total_rows_query

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SIZE = 1000
DEFAULT_MAX_RETRIES = 3


def count_item_failures(response: Mapping[str, Any]) -> int:
    """Number of per-item errors in a bulk response."""
    if not response.get('errors'):
        return 0
    failures = 0
    for item in response.get('items', []):
        result = next(iter(item.values()), {})
        if result.get('error'):
            failures += 1
    return failures


class BulkSyncEngine:
    """
    Copies every relational row into the search store in windows.

    Args:
        relational: Shared relational store handle.
        search: Shared search store handle.
        window_size: Rows per window and per bulk request.
        max_retries: Total attempts for a window's bulk request.
        backoff_base_seconds: Sleep before attempt n+1 is base * n.
        window_pause_seconds: Pause between windows to spare the search store.
        sleep: Awaitable sleep, replaceable in tests.
    """

    def __init__(
        self,
        relational: RelationalStore,
        search: SearchStore,
        window_size: int = DEFAULT_WINDOW_SIZE,
        max_retries: int = DEFAULT_MAX_RETRIES,
        backoff_base_seconds: float = 1.0,
        window_pause_seconds: float = 0.1,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if window_size <= 0:
            raise ValueError("window_size must be positive")
        if max_retries <= 0:
            raise ValueError("max_retries must be positive")
        self.relational = relational
        self.search = search
        self.window_size = window_size
        self.max_retries = max_retries
        self.backoff_base_seconds = backoff_base_seconds
        self.window_pause_seconds = window_pause_seconds
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        relational: RelationalStore,
        search: SearchStore,
    ) -> 'BulkSyncEngine':
        return cls(
            relational,
            search,
            window_size=settings.sync_window_size,
            max_retries=settings.sync_max_retries,
            backoff_base_seconds=settings.sync_backoff_base_seconds,
            window_pause_seconds=settings.sync_window_pause_seconds,
        )

    async def sync_all(self) -> SyncReport:
        """
        Synchronize the whole relational table into the search index.

        Returns:
            SyncReport with processed/failed document counts, one WindowReport
            per window and the post-sync verification result.

        Raises:
            RelationalStoreError: If the total row count cannot be read.
        """
        started = time.monotonic()
        total = int(await self.relational.fetchval(get_total_rows_query()) or 0)
        logger.info(f"Starting bulk sync of {total} rows (window size {self.window_size})")

        report = SyncReport(relational_total=total)
        offset = 0
        window_number = 0

        while offset < total:
            window_number += 1
            try:
                rows = await self.relational.fetch(get_sync_window_query(), self.window_size, offset)
            except RelationalStoreError as e:
                expected = min(self.window_size, total - offset)
                logger.error(f"Window {window_number} at offset {offset}: read failed, skipping {expected} rows: {e}")
                report.windows.append(WindowReport(
                    window=window_number, offset=offset, rows=expected, failed=expected,
                ))
                report.failed += expected
                offset += self.window_size
                continue

            if not rows:
                break

            window = await self.sync_window(window_number, offset, rows)
            report.windows.append(window)
            report.processed += window.indexed
            report.failed += window.failed

            done = min(offset + len(rows), total)
            logger.info(
                f"Window {window_number}: {window.indexed}/{window.rows} indexed, "
                f"progress {done}/{total} ({done * 100 // total}%)"
            )

            if len(rows) < self.window_size:
                break
            offset += self.window_size

            if self.window_pause_seconds > 0:
                await self._sleep(self.window_pause_seconds)

        await self._verify(report)
        report.duration_seconds = round(time.monotonic() - started, 3)
        logger.info(
            f"Bulk sync finished: {report.processed} processed, {report.failed} failed "
            f"in {report.duration_seconds}s"
        )
        return report

    def _build_operations(self, rows: List[Mapping[str, Any]]) -> Tuple[List[Dict[str, Any]], int]:
        operations: List[Dict[str, Any]] = []
        rejected = 0
        for row in rows:
            try:
                document = transform_record(row)
            except ValidationError as e:
                logger.warning(f"Skipping untransformable row: {e}")
                rejected += 1
                continue
            operations.append({'index': {'_id': document.id}})
            operations.append(to_index_body(document))
        return operations, rejected

    async def sync_window(
        self,
        window_number: int,
        offset: int,
        rows: List[Mapping[str, Any]],
    ) -> WindowReport:
        """
        Transform and bulk-write one window, retrying whole-request failures.

        Never raises for store errors; the outcome is in the WindowReport.
        """
        window = WindowReport(window=window_number, offset=offset, rows=len(rows))
        operations, rejected = self._build_operations(rows)
        window.failed += rejected
        documents = len(operations) // 2

        if documents == 0:
            return window

        for attempt in range(1, self.max_retries + 1):
            window.attempts = attempt
            try:
                response = await self.search.bulk(operations)
            except SearchStoreError as e:
                logger.warning(
                    f"Window {window_number}: bulk attempt {attempt}/{self.max_retries} failed: {e}"
                )
                if attempt < self.max_retries:
                    await self._sleep(self.backoff_base_seconds * attempt)
                continue

            item_failures = count_item_failures(response)
            if item_failures:
                logger.warning(f"Window {window_number}: {item_failures} documents rejected")
            window.indexed = documents - item_failures
            window.failed += item_failures
            return window

        logger.error(f"Window {window_number}: giving up after {self.max_retries} attempts")
        window.failed += documents
        return window

    async def _verify(self, report: SyncReport) -> None:
        try:
            await self.search.refresh()
            report.search_total = await self.search.count()
        except SearchStoreError as e:
            logger.warning(f"Could not verify sync: {e}")
            return

        report.verified = report.search_total == report.relational_total
        if report.verified:
            logger.info(f"Verified: search store holds {report.search_total} documents")
        else:
            logger.warning(
                f"Document count mismatch: relational {report.relational_total}, "
                f"search {report.search_total}"
            )
