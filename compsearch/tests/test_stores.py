"""
Tests for the store handles (RelationalStore, SearchStore).

Validates:
- Driver errors are wrapped into RelationalStoreError / SearchStoreError
- ensure_index creates the index with the fixed mapping, or updates the
  mapping in place without failing when the update is rejected
- Deleting or fetching a missing document is not an error
- Single-document writes use the configured refresh policy
"""

from unittest.mock import Mock

import asyncpg
import pytest
from elasticsearch import ConnectionError as ESConnectionError
from elasticsearch import NotFoundError

from compsearch.core.exceptions import IndexSetupError, RelationalStoreError, SearchStoreError
from compsearch.core.search import INDEX_MAPPINGS, SearchStore, build_index_settings


def es_not_found() -> NotFoundError:
    return NotFoundError("not found", Mock(status=404), {'found': False})


class TestRelationalStore:
    """Tests for RelationalStore."""

    async def test_fetch_uses_pooled_connection(self, relational_store, mock_connection):
        mock_connection.fetch.return_value = [{'id': 'k1'}]
        rows = await relational_store.fetch('SELECT 1', 'x')
        assert rows == [{'id': 'k1'}]
        mock_connection.fetch.assert_awaited_once_with('SELECT 1', 'x')

    async def test_driver_error_is_wrapped(self, relational_store, mock_connection):
        mock_connection.fetchrow.side_effect = asyncpg.InterfaceError("connection is closed")
        with pytest.raises(RelationalStoreError):
            await relational_store.fetchrow('SELECT * FROM missing')

    async def test_ping(self, relational_store, mock_connection):
        mock_connection.fetchval.return_value = 1
        assert await relational_store.ping() is True

    async def test_ping_failure(self, relational_store, mock_connection):
        mock_connection.fetchval.side_effect = OSError("connection refused")
        assert await relational_store.ping() is False


class TestEnsureIndex:
    """Tests for SearchStore.ensure_index()."""

    async def test_creates_missing_index(self, search_store, mock_es_client):
        mock_es_client.indices.exists.return_value = False
        assert await search_store.ensure_index() is True
        kwargs = mock_es_client.indices.create.await_args.kwargs
        assert kwargs['index'] == 'compensation_test'
        assert kwargs['mappings'] == INDEX_MAPPINGS
        assert kwargs['settings']['number_of_replicas'] == 0

    async def test_updates_existing_mapping(self, search_store, mock_es_client):
        mock_es_client.indices.exists.return_value = True
        assert await search_store.ensure_index() is False
        mock_es_client.indices.create.assert_not_called()
        mock_es_client.indices.put_mapping.assert_awaited_once()

    async def test_rejected_mapping_update_is_not_fatal(self, search_store, mock_es_client, caplog):
        mock_es_client.indices.exists.return_value = True
        mock_es_client.indices.put_mapping.side_effect = ESConnectionError("reset")
        assert await search_store.ensure_index() is False
        assert 'Could not update mapping' in caplog.text

    async def test_creation_failure_is_fatal(self, search_store, mock_es_client):
        mock_es_client.indices.exists.side_effect = ESConnectionError("refused")
        with pytest.raises(IndexSetupError):
            await search_store.ensure_index()

    def test_production_settings_add_replica(self):
        assert build_index_settings(production=True)['number_of_replicas'] == 1
        assert 'job_title_analyzer' in build_index_settings()['analysis']['analyzer']

    def test_mapping_has_derived_fields(self):
        properties = INDEX_MAPPINGS['properties']
        assert properties['total_compensation']['type'] == 'long'
        assert properties['compensation_bracket']['type'] == 'keyword'
        assert properties['job_title']['fields']['keyword']['type'] == 'keyword'


class TestDocuments:
    """Tests for single-document operations."""

    async def test_index_document_waits_for_refresh(self, search_store, mock_es_client):
        await search_store.index_document('k1', {'id': 'k1'})
        kwargs = mock_es_client.index.await_args.kwargs
        assert kwargs['id'] == 'k1'
        assert kwargs['refresh'] == 'wait_for'

    async def test_delete_missing_document(self, search_store, mock_es_client):
        mock_es_client.delete.side_effect = es_not_found()
        assert await search_store.delete_document('k1') is False

    async def test_delete_error_is_wrapped(self, search_store, mock_es_client):
        mock_es_client.delete.side_effect = ESConnectionError("refused")
        with pytest.raises(SearchStoreError):
            await search_store.delete_document('k1')

    async def test_get_missing_document(self, search_store, mock_es_client):
        mock_es_client.get.side_effect = es_not_found()
        assert await search_store.get_document('k1') is None

    async def test_get_document_includes_id(self, search_store, mock_es_client):
        mock_es_client.get.return_value = {'_id': 'k1', '_source': {'employer': 'Acme'}}
        assert await search_store.get_document('k1') == {'employer': 'Acme', 'id': 'k1'}

    async def test_search_error_is_wrapped(self, search_store, mock_es_client):
        mock_es_client.search.side_effect = ESConnectionError("refused")
        with pytest.raises(SearchStoreError):
            await search_store.search({'query': {'match_all': {}}})

    async def test_bulk_targets_index_without_refresh(self, search_store, mock_es_client):
        await search_store.bulk([{'index': {'_id': 'k1'}}, {'id': 'k1'}])
        kwargs = mock_es_client.bulk.await_args.kwargs
        assert kwargs['index'] == 'compensation_test'
        assert kwargs['refresh'] is False

    async def test_custom_refresh_policy(self, mock_es_client):
        store = SearchStore(mock_es_client, refresh_policy='false')
        await store.index_document('k1', {})
        assert mock_es_client.index.await_args.kwargs['refresh'] == 'false'
