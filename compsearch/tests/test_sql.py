"""
Tests for the SQL builders and trigger DDL.
"""

import pytest

from compsearch.sql import (
    get_create_trigger_ddl,
    get_group_stats_query,
    get_notify_function_ddl,
    get_stats_query,
    get_sync_window_query,
    NOTIFY_FUNCTION_NAME,
)


class TestStatsQueries:
    """Tests for aggregate query text."""

    def test_stats_query_without_filter(self):
        sql = get_stats_query('')
        assert 'WHERE annual_base_pay IS NOT NULL AND annual_base_pay > 0' in sql
        assert 'STDDEV_POP' in sql
        assert 'PERCENTILE_CONT(0.5)' in sql

    def test_stats_query_extends_filter(self):
        sql = get_stats_query('WHERE industry = $1')
        assert 'WHERE industry = $1 AND annual_base_pay IS NOT NULL' in sql

    def test_group_query_limit_placeholder_follows_filter(self):
        sql = get_group_stats_query('location', 'WHERE industry = $1', 1, 3)
        assert 'GROUP BY location' in sql
        assert 'HAVING COUNT(*) >= 3' in sql
        assert 'LIMIT $2' in sql

    def test_group_query_average_threshold(self):
        sql = get_group_stats_query('job_title', 'WHERE years_experience_industry >= $1', 1, 3, 50000)
        assert 'HAVING COUNT(*) >= 3 AND AVG(annual_base_pay::DECIMAL / 100) > 50000.0' in sql
        assert 'AVG(years_experience_industry) AS average_experience' in sql

    def test_group_query_without_threshold(self):
        sql = get_group_stats_query('location', '', 0, 2)
        assert 'AVG(annual_base_pay::DECIMAL / 100) >' not in sql
        assert 'LIMIT $1' in sql

    def test_group_query_rejects_unknown_column(self):
        with pytest.raises(ValueError):
            get_group_stats_query('salary; --', '', 0, 1)


class TestSyncAndTriggerSql:
    """Tests for sync window and trigger DDL."""

    def test_sync_window_is_ordered_by_key(self):
        sql = get_sync_window_query()
        assert 'ORDER BY id' in sql
        assert 'LIMIT $1 OFFSET $2' in sql

    def test_notify_function_uses_channel(self):
        ddl = get_notify_function_ddl('comp_changes')
        assert f'FUNCTION {NOTIFY_FUNCTION_NAME}()' in ddl
        assert "pg_notify('comp_changes'" in ddl
        assert 'row_to_json(NEW)' in ddl

    def test_channel_name_is_quoted(self):
        ddl = get_notify_function_ddl("it's")
        assert "pg_notify('it''s'" in ddl

    def test_trigger_covers_all_mutations(self):
        ddl = get_create_trigger_ddl()
        assert 'AFTER INSERT OR UPDATE OR DELETE' in ddl
        assert 'FOR EACH ROW' in ddl
