"""
Services for the compensation search service.

Modules:
- transformer: relational row -> search document
- translator: logical filter/sort/pagination -> relational and search queries
- stats: statistics requests and reconciliation for both stores
- federation: FallbackQueryRouter (search first, relational fallback)
- bulk_sync: BulkSyncEngine (windowed full synchronization)
- change_channel: ChangeChannel and the LISTEN/NOTIFY change source
- change_capture: ChangeCaptureSubscriber (applies change events)
- sync_control: SyncController (sync and change-capture entry point)
"""

from compsearch.services.transformer import transform_record, to_index_body
from compsearch.services.translator import (
    RelationalQuery,
    SearchQuery,
    translate,
    translate_filter,
)
from compsearch.services.stats import reconcile_stats
from compsearch.services.federation import FallbackQueryRouter
from compsearch.services.bulk_sync import BulkSyncEngine
from compsearch.services.change_channel import ChangeChannel, PostgresChangeSource
from compsearch.services.change_capture import ChangeCaptureSubscriber
from compsearch.services.sync_control import SyncController

__all__ = [
    'transform_record',
    'to_index_body',
    'RelationalQuery',
    'SearchQuery',
    'translate',
    'translate_filter',
    'reconcile_stats',
    'FallbackQueryRouter',
    'BulkSyncEngine',
    'ChangeChannel',
    'PostgresChangeSource',
    'ChangeCaptureSubscriber',
    'SyncController',
]
