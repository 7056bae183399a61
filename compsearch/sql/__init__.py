"""
SQL Query Module for the compensation search service.

Provides parameterized SQL for:
- Federated reads: pages, counts, single records, statistics (compensation_queries)
- Bulk synchronization windows (compensation_queries)
- Change-notification trigger installation (trigger_queries)

Example usage:
    from compsearch.sql import get_page_query, get_sync_window_query

    sql = get_page_query("WHERE industry = $1", "ORDER BY created_at DESC", 1)
"""

from compsearch.sql.compensation_queries import (
    get_page_query,
    get_count_query,
    get_record_by_id_query,
    get_stats_query,
    get_group_stats_query,
    get_total_rows_query,
    get_sync_window_query,
    TABLE_NAME,
    TOTAL_COMPENSATION_EXPR,
    GROUPABLE_COLUMNS,
)

from compsearch.sql.trigger_queries import (
    get_notify_function_ddl,
    get_drop_trigger_ddl,
    get_create_trigger_ddl,
    NOTIFY_FUNCTION_NAME,
    TRIGGER_NAME,
)

__all__ = [
    'get_page_query',
    'get_count_query',
    'get_record_by_id_query',
    'get_stats_query',
    'get_group_stats_query',
    'get_total_rows_query',
    'get_sync_window_query',
    'TABLE_NAME',
    'TOTAL_COMPENSATION_EXPR',
    'GROUPABLE_COLUMNS',
    'get_notify_function_ddl',
    'get_drop_trigger_ddl',
    'get_create_trigger_ddl',
    'NOTIFY_FUNCTION_NAME',
    'TRIGGER_NAME',
]
