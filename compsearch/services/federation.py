"""
Fallback query router: federated reads over the search and relational stores.

Every read runs a two-state machine and stops at the first success:

    PRIMARY (search store) --error / empty listing--> SECONDARY (relational)

- When fallback is disabled, requests go straight to SECONDARY.
- PRIMARY results are tagged provenance=search, SECONDARY results
  provenance=relational.
- A SECONDARY failure is fatal for the request and raises FederationError.

Known limitation: degraded and genuinely empty search results cannot be told
apart. Any raised error counts as degraded. A clean listing with zero hits is
retried on the relational store only when fallback_on_empty_result is set.
Statistics requests trust a clean zero count from the search store.

Entry points:
- query(filter, sort, pagination) -> QueryResult
- get(key) -> RecordResult
- aggregate(filter) -> AggregateResult
- engineer_stats(filter) -> AggregateResult
- location_stats(filter, limit) / job_title_stats(filter, limit) -> GroupStatsResult
- engineer_compensation_by_location(limit) -> GroupStatsResult
- highest_paid_roles_by_experience(min_experience, max_experience, limit) -> GroupStatsResult
- health_check() -> HealthStatus
"""

import logging
from typing import Awaitable, Callable, Optional, TypeVar

from compsearch.core.config import Settings
from compsearch.core.database import RelationalStore
from compsearch.core.exceptions import FederationError, RelationalStoreError, SearchStoreError
from compsearch.core.search import SearchStore
from compsearch.models import (
    AggregateResult,
    CompensationFilter,
    FloatRange,
    GroupStatsResult,
    HealthStatus,
    Pagination,
    Provenance,
    QueryResult,
    RecordResult,
    SearchDocument,
)
from compsearch.services.stats import (
    ENGINEER_LOCATION_MIN_COUNT,
    JOB_TITLE_MIN_COUNT,
    LOCATION_MIN_COUNT,
    ROLE_MIN_AVERAGE_SALARY,
    ROLE_MIN_COUNT,
    build_group_search_body,
    build_stats_search_body,
    groups_from_relational_rows,
    groups_from_search_response,
    reconcile_stats,
    relational_stats_from_row,
    search_stats_count,
    search_stats_from_response,
)
from compsearch.services.transformer import transform_record
from compsearch.services.translator import SortInput, translate, translate_filter
from compsearch.sql import get_group_stats_query, get_record_by_id_query, get_stats_query

logger = logging.getLogger(__name__)

T = TypeVar('T')

DEFAULT_GROUP_LIMIT = 10
MAX_GROUP_LIMIT = 100
ENGINEER_TITLE_TERM = 'engineer'
DEFAULT_MIN_EXPERIENCE = 0.0
DEFAULT_MAX_EXPERIENCE = 50.0

# Errors that mark the search store as degraded for this request
PRIMARY_ERRORS = (SearchStoreError, KeyError, TypeError, ValueError)


def _document_from_hit(hit: dict) -> SearchDocument:
    return SearchDocument.model_validate({**hit['_source'], 'id': hit['_id']})


def _clamp_group_limit(limit: Optional[int]) -> int:
    if limit is None or limit <= 0:
        return DEFAULT_GROUP_LIMIT
    return min(limit, MAX_GROUP_LIMIT)


class FallbackQueryRouter:
    """
    Routes federated reads between the search store and the relational store.

    Args:
        relational: Shared relational store handle.
        search: Shared search store handle.
        enable_fallback: When False, every read goes to the relational store.
        fallback_on_empty_result: When True, a listing or lookup with zero
            search hits is retried on the relational store.
    """

    def __init__(
        self,
        relational: RelationalStore,
        search: SearchStore,
        enable_fallback: bool = True,
        fallback_on_empty_result: bool = True,
    ):
        self.relational = relational
        self.search = search
        self.enable_fallback = enable_fallback
        self.fallback_on_empty_result = fallback_on_empty_result

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        relational: RelationalStore,
        search: SearchStore,
    ) -> 'FallbackQueryRouter':
        return cls(
            relational,
            search,
            enable_fallback=settings.enable_fallback,
            fallback_on_empty_result=settings.fallback_on_empty_result,
        )

    # =========================================================================
    # State Machine
    # =========================================================================

    async def _route(
        self,
        operation: str,
        primary: Callable[[], Awaitable[Optional[T]]],
        secondary: Callable[[], Awaitable[T]],
    ) -> T:
        """
        Run PRIMARY then, if needed, SECONDARY.

        primary returns None to request the fallback without an error.
        """
        if not self.enable_fallback:
            logger.debug(f"{operation}: fallback disabled, using relational store")
            return await self._secondary(operation, secondary)

        try:
            result = await primary()
        except PRIMARY_ERRORS as e:
            logger.warning(f"{operation}: search store failed ({e}), falling back to relational store")
        else:
            if result is not None:
                return result
            logger.debug(f"{operation}: search store returned no results, falling back to relational store")

        return await self._secondary(operation, secondary)

    async def _secondary(self, operation: str, secondary: Callable[[], Awaitable[T]]) -> T:
        try:
            return await secondary()
        except RelationalStoreError as e:
            logger.error(f"{operation}: relational store failed: {e}")
            raise FederationError(f"{operation} failed on relational store: {e}") from e

    # =========================================================================
    # Listings
    # =========================================================================

    async def query(
        self,
        logical_filter: Optional[CompensationFilter] = None,
        sort: SortInput = None,
        pagination: Optional[Pagination] = None,
    ) -> QueryResult:
        """
        One page of compensation records matching the filter.

        Raises:
            FederationError: If the relational store fails when it is the
                last option.
        """
        relational_query, search_query = translate(logical_filter, sort, pagination)
        offset = relational_query.offset

        async def primary() -> Optional[QueryResult]:
            response = await self.search.search(search_query.to_body())
            hits = response['hits']
            total = int(hits['total']['value'])
            if total == 0 and self.fallback_on_empty_result:
                return None
            rows = [_document_from_hit(hit) for hit in hits['hits']]
            logger.debug(f"Search store returned {len(rows)} of {total} rows")
            return QueryResult(
                rows=rows,
                totalCount=total,
                hasNextPage=offset + len(rows) < total,
                hasPreviousPage=offset > 0,
                provenance=Provenance.SEARCH,
            )

        async def secondary() -> QueryResult:
            records = await self.relational.fetch(
                relational_query.page_sql(),
                *relational_query.page_params(),
            )
            total = await self.relational.fetchval(
                relational_query.count_sql(),
                *relational_query.params,
            )
            rows = [transform_record(record) for record in records]
            total = int(total or 0)
            return QueryResult(
                rows=rows,
                totalCount=total,
                hasNextPage=offset + len(rows) < total,
                hasPreviousPage=offset > 0,
                provenance=Provenance.RELATIONAL,
            )

        return await self._route('query', primary, secondary)

    async def get(self, key: str) -> RecordResult:
        """Single record by key; a miss on both stores returns record=None."""

        async def primary() -> Optional[RecordResult]:
            source = await self.search.get_document(key)
            if source is None:
                if self.fallback_on_empty_result:
                    return None
                return RecordResult(record=None, provenance=Provenance.SEARCH)
            return RecordResult(
                record=SearchDocument.model_validate(source),
                provenance=Provenance.SEARCH,
            )

        async def secondary() -> RecordResult:
            row = await self.relational.fetchrow(get_record_by_id_query(), key)
            return RecordResult(
                record=transform_record(row) if row is not None else None,
                provenance=Provenance.RELATIONAL,
            )

        return await self._route('get', primary, secondary)

    # =========================================================================
    # Statistics
    # =========================================================================

    async def aggregate(self, logical_filter: Optional[CompensationFilter] = None) -> AggregateResult:
        """
        Salary and experience statistics over rows with a positive base pay.

        Search-side quantiles are approximated by the mean and listed in
        stats.approximateFields.
        """
        translated = translate_filter(logical_filter)

        async def primary() -> AggregateResult:
            response = await self.search.search(build_stats_search_body(translated.search_query))
            stats = search_stats_from_response(response)
            logger.debug(f"Search store stats over {search_stats_count(stats)} rows")
            return AggregateResult(stats=reconcile_stats(stats), provenance=Provenance.SEARCH)

        async def secondary() -> AggregateResult:
            row = await self.relational.fetchrow(
                get_stats_query(translated.where_clause),
                *translated.params,
            )
            return AggregateResult(
                stats=reconcile_stats(relational_stats_from_row(row)),
                provenance=Provenance.RELATIONAL,
            )

        return await self._route('aggregate', primary, secondary)

    async def engineer_stats(self, logical_filter: Optional[CompensationFilter] = None) -> AggregateResult:
        """aggregate() restricted to job titles containing 'engineer'."""
        base = logical_filter or CompensationFilter()
        return await self.aggregate(base.model_copy(update={'job_title_contains': ENGINEER_TITLE_TERM}))

    async def _group_stats(
        self,
        operation: str,
        group_column: str,
        min_count: int,
        logical_filter: Optional[CompensationFilter],
        limit: Optional[int],
        min_average_salary: Optional[float] = None,
    ) -> GroupStatsResult:
        translated = translate_filter(logical_filter)
        limit = _clamp_group_limit(limit)

        async def primary() -> GroupStatsResult:
            response = await self.search.search(
                build_group_search_body(
                    group_column, translated.search_query, min_count, limit, min_average_salary,
                )
            )
            return GroupStatsResult(
                groups=groups_from_search_response(response),
                provenance=Provenance.SEARCH,
            )

        async def secondary() -> GroupStatsResult:
            rows = await self.relational.fetch(
                get_group_stats_query(
                    group_column, translated.where_clause, len(translated.params), min_count, min_average_salary,
                ),
                *translated.params,
                limit,
            )
            return GroupStatsResult(
                groups=groups_from_relational_rows(rows),
                provenance=Provenance.RELATIONAL,
            )

        return await self._route(operation, primary, secondary)

    async def location_stats(
        self,
        logical_filter: Optional[CompensationFilter] = None,
        limit: Optional[int] = DEFAULT_GROUP_LIMIT,
    ) -> GroupStatsResult:
        """Per-location salary statistics for locations with at least 3 rows."""
        return await self._group_stats('location_stats', 'location', LOCATION_MIN_COUNT, logical_filter, limit)

    async def job_title_stats(
        self,
        logical_filter: Optional[CompensationFilter] = None,
        limit: Optional[int] = DEFAULT_GROUP_LIMIT,
    ) -> GroupStatsResult:
        """Per-job-title salary statistics for titles with at least 2 rows."""
        return await self._group_stats('job_title_stats', 'job_title', JOB_TITLE_MIN_COUNT, logical_filter, limit)

    async def engineer_compensation_by_location(
        self,
        limit: Optional[int] = DEFAULT_GROUP_LIMIT,
    ) -> GroupStatsResult:
        """Per-location statistics for engineering titles, locations with at least 2 rows."""
        engineers = CompensationFilter(job_title_contains=ENGINEER_TITLE_TERM)
        return await self._group_stats(
            'engineer_compensation_by_location', 'location', ENGINEER_LOCATION_MIN_COUNT, engineers, limit,
        )

    async def highest_paid_roles_by_experience(
        self,
        min_experience: float = DEFAULT_MIN_EXPERIENCE,
        max_experience: float = DEFAULT_MAX_EXPERIENCE,
        limit: Optional[int] = DEFAULT_GROUP_LIMIT,
    ) -> GroupStatsResult:
        """
        Best-paid job titles among records with industry experience inside
        [min_experience, max_experience].

        A title needs at least 3 rows and an average base pay above 50,000.
        """
        window = CompensationFilter(
            years_experience_industry=FloatRange(min=min_experience, max=max_experience),
        )
        return await self._group_stats(
            'highest_paid_roles_by_experience',
            'job_title',
            ROLE_MIN_COUNT,
            window,
            limit,
            min_average_salary=ROLE_MIN_AVERAGE_SALARY,
        )

    # =========================================================================
    # Health
    # =========================================================================

    async def health_check(self) -> HealthStatus:
        relational_ok = await self.relational.ping()
        search_ok = await self.search.ping()
        return HealthStatus(
            relational=relational_ok,
            search=search_ok,
            fallbackEnabled=self.enable_fallback,
        )
