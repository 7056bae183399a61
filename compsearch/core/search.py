"""
Elasticsearch access for the secondary search/analytics store.

The search store is a derived, rebuildable projection of compensation_data.
This module owns its index definition and exposes a SearchStore handle that
is created once per process and injected into the federation router, the bulk
synchronization engine and the change-capture subscriber.

Key Components:
- INDEX_MAPPINGS / build_index_settings(): fixed document-field mapping
- create_search_store(): build an AsyncElasticsearch client from Settings
- SearchStore: ensure_index, search, count, bulk, index/delete/get document,
  refresh, ping, close

Error Handling:
Client ApiError / TransportError / timeouts surface as SearchStoreError.
Deleting a missing document is not an error.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from elasticsearch import ApiError, AsyncElasticsearch, NotFoundError, TransportError

from compsearch.core.config import Settings
from compsearch.core.exceptions import IndexSetupError, SearchStoreError

logger = logging.getLogger(__name__)

SEARCH_ERRORS = (ApiError, TransportError, asyncio.TimeoutError)

DEFAULT_INDEX_NAME = 'compensation_data'


def _text_with_keyword(analyzer: str = 'standard') -> Dict[str, Any]:
    return {
        'type': 'text',
        'analyzer': analyzer,
        'fields': {
            'keyword': {'type': 'keyword', 'ignore_above': 256},
        },
    }


# =============================================================================
# Index Definition
# =============================================================================

# Field names match SearchDocument exactly; money fields are cents
INDEX_MAPPINGS: Dict[str, Any] = {
    'properties': {
        'id': {'type': 'keyword'},
        'source_file': {'type': 'keyword'},
        'row_number': {'type': 'integer'},
        'timestamp': {'type': 'date'},
        'created_at': {'type': 'date'},
        'updated_at': {'type': 'date'},
        'employer': _text_with_keyword(),
        'company_size': {'type': 'keyword'},
        'industry': {'type': 'keyword'},
        'public_private': {'type': 'keyword'},
        'location': _text_with_keyword(),
        'city': {'type': 'keyword'},
        'state_province': {'type': 'keyword'},
        'country': {'type': 'keyword'},
        'job_title': _text_with_keyword('job_title_analyzer'),
        'job_ladder': {'type': 'keyword'},
        'job_level': {'type': 'keyword'},
        'employment_type': {'type': 'keyword'},
        'years_experience_industry': {'type': 'float'},
        'years_experience_company': {'type': 'float'},
        'years_at_employer': {'type': 'float'},
        'annual_base_pay': {'type': 'long', 'meta': {'unit': 'cents'}},
        'annual_bonus': {'type': 'long'},
        'signing_bonus': {'type': 'long'},
        'stock_value': {'type': 'long'},
        'required_hours_per_week': {'type': 'integer'},
        'actual_hours_per_week': {'type': 'integer'},
        'annual_vacation_weeks': {'type': 'integer'},
        'gender': {'type': 'keyword'},
        'education_level': {'type': 'keyword'},
        'is_happy_at_position': {'type': 'boolean'},
        'plans_to_resign': {'type': 'boolean'},
        'health_insurance_offered': {'type': 'boolean'},
        'additional_comments': {'type': 'text', 'analyzer': 'standard'},
        'data_quality_score': {'type': 'float'},
        'is_validated': {'type': 'boolean'},
        # Derived at transform time
        'total_compensation': {'type': 'long', 'meta': {'unit': 'cents'}},
        'compensation_bracket': {'type': 'keyword'},
        'experience_bracket': {'type': 'keyword'},
    }
}

JOB_TITLE_SYNONYMS: List[str] = [
    'software engineer,swe,developer,programmer,coder',
    'data scientist,data analyst,analyst',
    'product manager,pm,product owner',
    'senior,sr,lead,principal',
    'junior,jr,entry level',
    'manager,mgr,supervisor',
    'director,dir,head',
    'vice president,vp',
    'chief technology officer,cto',
    'chief executive officer,ceo',
]


def build_index_settings(production: bool = False) -> Dict[str, Any]:
    """
    Build index settings: single shard, a replica only in production,
    and the synonym-aware job title analyzer.
    """
    return {
        'number_of_shards': 1,
        'number_of_replicas': 1 if production else 0,
        'refresh_interval': '30s',
        'max_result_window': 50000,
        'analysis': {
            'analyzer': {
                'job_title_analyzer': {
                    'tokenizer': 'standard',
                    'filter': ['lowercase', 'job_title_synonyms', 'stemmer'],
                },
            },
            'filter': {
                'job_title_synonyms': {
                    'type': 'synonym',
                    'synonyms': JOB_TITLE_SYNONYMS,
                },
            },
        },
    }


# =============================================================================
# Search Store Handle
# =============================================================================

class SearchStore:
    """
    Handle around an AsyncElasticsearch client bound to one index.

    Args:
        client: The async client (or a test double with the same methods).
        index_name: Target index.
        production: Replica count used when the index is created.
        refresh_policy: Refresh mode for single-document writes; 'wait_for'
            blocks until the write is visible to search.
    """

    def __init__(
        self,
        client: AsyncElasticsearch,
        index_name: str = DEFAULT_INDEX_NAME,
        production: bool = False,
        refresh_policy: str = 'wait_for',
    ):
        self.client = client
        self.index_name = index_name
        self.production = production
        self.refresh_policy = refresh_policy

    async def ensure_index(self) -> bool:
        """
        Make sure the index exists with the fixed mapping.

        Creates the index when absent. When present, applies the mapping in
        place; Elasticsearch only accepts additive changes there, so a rejected
        update is logged and ignored.

        Returns:
            True if the index was created, False if it already existed.

        Raises:
            IndexSetupError: If existence cannot be checked or creation fails.
        """
        try:
            exists = bool(await self.client.indices.exists(index=self.index_name))
            if not exists:
                await self.client.indices.create(
                    index=self.index_name,
                    mappings=INDEX_MAPPINGS,
                    settings=build_index_settings(self.production),
                )
                logger.info(f"Created search index: {self.index_name}")
                return True
        except SEARCH_ERRORS as e:
            raise IndexSetupError(f"Could not set up index {self.index_name}: {e}") from e

        logger.info(f"Search index already exists: {self.index_name}")
        try:
            await self.client.indices.put_mapping(
                index=self.index_name,
                properties=INDEX_MAPPINGS['properties'],
            )
            logger.info(f"Updated mapping for index {self.index_name}")
        except SEARCH_ERRORS as e:
            logger.warning(f"Could not update mapping for {self.index_name}: {e}")
        return False

    async def search(self, body: Dict[str, Any]) -> Dict[str, Any]:
        """
        Run a search request.

        Args:
            body: Keyword arguments for the client's search API
                (query, sort, from_, size, aggs, track_total_hits).

        Returns:
            The raw search response.

        Raises:
            SearchStoreError: On any transport or query error.
        """
        try:
            response = await self.client.search(index=self.index_name, **body)
        except SEARCH_ERRORS as e:
            raise SearchStoreError(f"Search failed: {e}") from e
        logger.debug(f"Search executed on {self.index_name}")
        return response

    async def count(self) -> int:
        try:
            response = await self.client.count(index=self.index_name)
        except SEARCH_ERRORS as e:
            raise SearchStoreError(f"Count failed: {e}") from e
        return int(response['count'])

    async def bulk(self, operations: List[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Submit one bulk request without forcing a refresh.

        Raises:
            SearchStoreError: When the request as a whole fails. Per-item
                rejections are reported in the response, not raised.
        """
        try:
            return await self.client.bulk(
                index=self.index_name,
                operations=operations,
                refresh=False,
                timeout='60s',
            )
        except SEARCH_ERRORS as e:
            raise SearchStoreError(f"Bulk request failed: {e}") from e

    async def index_document(self, key: str, document: Dict[str, Any]) -> None:
        """Create or overwrite one document, waiting per the refresh policy."""
        try:
            await self.client.index(
                index=self.index_name,
                id=key,
                document=document,
                refresh=self.refresh_policy,
            )
        except SEARCH_ERRORS as e:
            raise SearchStoreError(f"Failed to index document {key}: {e}") from e
        logger.debug(f"Indexed document {key}")

    async def delete_document(self, key: str) -> bool:
        """
        Delete one document.

        Returns:
            True if a document was deleted, False if none existed.
        """
        try:
            await self.client.delete(
                index=self.index_name,
                id=key,
                refresh=self.refresh_policy,
            )
        except NotFoundError:
            logger.debug(f"Document {key} already absent")
            return False
        except SEARCH_ERRORS as e:
            raise SearchStoreError(f"Failed to delete document {key}: {e}") from e
        logger.debug(f"Deleted document {key}")
        return True

    async def get_document(self, key: str) -> Optional[Dict[str, Any]]:
        """Return a document's source with its id, or None if absent."""
        try:
            response = await self.client.get(index=self.index_name, id=key)
        except NotFoundError:
            return None
        except SEARCH_ERRORS as e:
            raise SearchStoreError(f"Failed to get document {key}: {e}") from e
        return {**response['_source'], 'id': response['_id']}

    async def refresh(self) -> None:
        """Make every write so far visible to search."""
        try:
            await self.client.indices.refresh(index=self.index_name)
        except SEARCH_ERRORS as e:
            raise SearchStoreError(f"Refresh failed: {e}") from e

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except SEARCH_ERRORS as e:
            logger.error(f"Search health check failed: {e}")
            return False

    async def close(self) -> None:
        await self.client.close()
        logger.info("Search client closed")


# =============================================================================
# Lifecycle Helpers
# =============================================================================

def create_search_store(settings: Settings) -> SearchStore:
    """
    Build the search client and wrap it in a SearchStore.

    The client connects lazily; use SearchStore.ping() to verify reachability.
    """
    client = AsyncElasticsearch(
        hosts=[settings.elasticsearch_host],
        request_timeout=settings.es_request_timeout,
        max_retries=settings.es_max_retries,
        retry_on_timeout=True,
    )
    return SearchStore(
        client,
        index_name=settings.elasticsearch_index,
        production=settings.production,
        refresh_policy=settings.search_refresh_policy,
    )
