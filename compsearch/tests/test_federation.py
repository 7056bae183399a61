"""
Tests for the fallback query router.

Validates:
- PRIMARY success returns provenance=search without touching PostgreSQL
- Search errors fall back to the relational store (provenance=relational)
- Fallback correctness: with the search store down, rows equal the
  relational-only answer by key
- Disabled fallback goes straight to the relational store
- Clean empty listings follow fallback_on_empty_result
- A relational failure on the last hop raises FederationError
- Statistics reconciliation and approximate flags per provenance
- The San Francisco scenario computed from indexed documents and from rows
- Engineer-by-location and roles-by-experience group statistics
"""

from decimal import Decimal
from statistics import median
from typing import Any, Dict, List
from unittest.mock import AsyncMock

import pytest

from compsearch.core.exceptions import FederationError, RelationalStoreError, SearchStoreError
from compsearch.models import (
    CompensationFilter,
    Pagination,
    Provenance,
)
from compsearch.services.federation import FallbackQueryRouter
from compsearch.services.transformer import to_index_body, transform_record
from compsearch.tests.conftest import make_row


def search_response(rows: List[Dict[str, Any]], total: int = None) -> Dict[str, Any]:
    hits = []
    for row in rows:
        body = to_index_body(transform_record(row))
        hits.append({'_id': body.pop('id'), '_source': body})
    return {'hits': {'total': {'value': len(rows) if total is None else total}, 'hits': hits}}


@pytest.fixture
def relational(sample_rows) -> AsyncMock:
    store = AsyncMock()
    store.fetch = AsyncMock(return_value=sample_rows[:3])
    store.fetchval = AsyncMock(return_value=3)
    store.fetchrow = AsyncMock(return_value=None)
    store.ping = AsyncMock(return_value=True)
    return store


@pytest.fixture
def search(sample_rows) -> AsyncMock:
    store = AsyncMock()
    store.search = AsyncMock(return_value=search_response(sample_rows[:3]))
    store.get_document = AsyncMock(return_value=None)
    store.ping = AsyncMock(return_value=True)
    return store


@pytest.fixture
def router(relational, search) -> FallbackQueryRouter:
    return FallbackQueryRouter(relational, search)


class TestQuery:
    """Tests for federated listings."""

    async def test_search_success(self, router, relational, search):
        result = await router.query(CompensationFilter(industry='Tech'), None, Pagination(limit=2))
        assert result.provenance == Provenance.SEARCH
        assert [row.id for row in result.rows] == ['a1', 'a2', 'a3']
        assert result.totalCount == 3
        relational.fetch.assert_not_called()

    async def test_search_page_flags(self, router, search, sample_rows):
        search.search.return_value = search_response(sample_rows[2:4], total=8)
        result = await router.query(None, None, Pagination(limit=2, offset=2))
        assert result.hasNextPage is True
        assert result.hasPreviousPage is True

    async def test_search_error_falls_back(self, router, relational, search):
        search.search.side_effect = SearchStoreError("cluster red")
        result = await router.query(CompensationFilter(industry='Tech'))
        assert result.provenance == Provenance.RELATIONAL
        assert result.totalCount == 3
        relational.fetch.assert_awaited_once()

    async def test_fallback_rows_match_relational_only_answer(self, relational, search):
        logical_filter = CompensationFilter(industry='Tech')
        search.search.side_effect = SearchStoreError("timeout")

        degraded = await FallbackQueryRouter(relational, search).query(logical_filter)
        relational_only = await FallbackQueryRouter(relational, search, enable_fallback=False).query(logical_filter)

        assert degraded.provenance == relational_only.provenance == Provenance.RELATIONAL
        assert [row.id for row in degraded.rows] == [row.id for row in relational_only.rows]
        assert degraded.rows == relational_only.rows

    async def test_relational_rows_carry_derived_fields(self, router, search):
        search.search.side_effect = SearchStoreError("down")
        result = await router.query()
        assert result.rows[0].total_compensation == 15_000_000
        assert result.rows[0].compensation_bracket.value == 'Senior'

    async def test_disabled_fallback_skips_search(self, relational, search):
        router = FallbackQueryRouter(relational, search, enable_fallback=False)
        result = await router.query()
        assert result.provenance == Provenance.RELATIONAL
        search.search.assert_not_called()

    async def test_empty_search_result_falls_back(self, router, relational, search):
        search.search.return_value = search_response([])
        result = await router.query()
        assert result.provenance == Provenance.RELATIONAL
        relational.fetch.assert_awaited_once()

    async def test_empty_search_result_trusted_when_configured(self, relational, search):
        search.search.return_value = search_response([])
        router = FallbackQueryRouter(relational, search, fallback_on_empty_result=False)
        result = await router.query()
        assert result.provenance == Provenance.SEARCH
        assert result.rows == []
        relational.fetch.assert_not_called()

    async def test_relational_failure_raises_federation_error(self, router, relational, search):
        search.search.side_effect = SearchStoreError("down")
        relational.fetch.side_effect = RelationalStoreError("pool exhausted")
        with pytest.raises(FederationError):
            await router.query()

    async def test_relational_failure_without_fallback(self, relational, search):
        relational.fetch.side_effect = RelationalStoreError("down")
        router = FallbackQueryRouter(relational, search, enable_fallback=False)
        with pytest.raises(FederationError) as exc_info:
            await router.query()
        assert 'relational store' in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, RelationalStoreError)

    async def test_malformed_search_response_falls_back(self, router, search):
        search.search.return_value = {'unexpected': True}
        result = await router.query()
        assert result.provenance == Provenance.RELATIONAL

    async def test_relational_query_uses_clamped_pagination(self, router, relational, search):
        search.search.side_effect = SearchStoreError("down")
        await router.query(CompensationFilter(industry='Tech'), None, Pagination(limit=1000, offset=-3))
        args = relational.fetch.await_args.args
        assert args[1:] == ('Tech', 100, 0)


class TestGet:
    """Tests for single-record lookup."""

    async def test_found_in_search(self, router, search, sample_rows):
        search.get_document.return_value = to_index_body(transform_record(sample_rows[0]))
        result = await router.get('a1')
        assert result.provenance == Provenance.SEARCH
        assert result.record.id == 'a1'

    async def test_missing_in_search_found_in_relational(self, router, relational, sample_rows):
        relational.fetchrow.return_value = sample_rows[1]
        result = await router.get('a2')
        assert result.provenance == Provenance.RELATIONAL
        assert result.record.id == 'a2'

    async def test_missing_everywhere(self, router):
        result = await router.get('nope')
        assert result.record is None
        assert result.provenance == Provenance.RELATIONAL


class TestAggregate:
    """Tests for federated statistics."""

    async def test_search_stats_are_approximate(self, router, search):
        search.search.return_value = {'aggregations': {
            'salary_stats': {'count': 2, 'min': 9_000_000.0, 'max': 11_000_000.0,
                             'avg': 10_000_000.0, 'std_deviation': 1_000_000.0},
            'experience_stats': {'count': 2, 'min': 2.0, 'max': 6.0, 'avg': 4.0},
            'total_compensation_avg': {'value': 12_000_000.0},
        }}
        result = await router.aggregate()
        assert result.provenance == Provenance.SEARCH
        assert result.stats.averageSalary == 100000.0
        assert result.stats.medianSalary == 100000.0
        assert 'medianSalary' in result.stats.approximateFields

    async def test_zero_count_from_search_is_trusted(self, router, relational, search):
        search.search.return_value = {'aggregations': {
            'salary_stats': {'count': 0, 'min': None, 'max': None, 'avg': None},
            'experience_stats': {'count': 0},
            'total_compensation_avg': {'value': None},
        }}
        result = await router.aggregate(CompensationFilter(industry='Nonexistent'))
        assert result.provenance == Provenance.SEARCH
        assert result.stats.count == 0
        relational.fetchrow.assert_not_called()

    async def test_city_average_when_search_is_down(self, router, relational, search):
        search.search.side_effect = SearchStoreError("connection refused")
        relational.fetchrow.return_value = {
            'count': 3,
            'average_salary': Decimal('108333.3333'),
            'median_salary': Decimal('110000'),
            'min_salary': Decimal('95000'),
            'max_salary': Decimal('120000'),
            'q1_salary': 102500.0,
            'q3_salary': 115000.0,
            'standard_deviation': Decimal('10274.0'),
            'average_total_compensation': Decimal('138333.3333'),
            'average_experience': Decimal('4'),
            'median_experience': 4.0,
            'min_experience': Decimal('4'),
            'max_experience': Decimal('4'),
        }
        result = await router.aggregate(CompensationFilter(location_contains='San Francisco'))

        assert result.provenance == Provenance.RELATIONAL
        assert result.stats.count == 3
        assert result.stats.averageSalary == 108333.33
        assert result.stats.maxSalary == 120000.0
        assert result.stats.approximateFields == []
        sql, param = relational.fetchrow.await_args.args
        assert 'location ILIKE $1' in sql
        assert param == '%San Francisco%'

    async def test_engineer_stats_forces_title_filter(self, router, search):
        search.search.side_effect = SearchStoreError("down")
        relational = router.relational
        relational.fetchrow.return_value = {'count': 0}
        await router.engineer_stats(CompensationFilter(industry='Tech', job_title_contains='manager'))
        sql, *params = relational.fetchrow.await_args.args
        assert params == ['%engineer%', 'Tech']

    async def test_aggregate_relational_failure(self, router, relational, search):
        search.search.side_effect = SearchStoreError("down")
        relational.fetchrow.side_effect = RelationalStoreError("down")
        with pytest.raises(FederationError):
            await router.aggregate()


SAN_FRANCISCO_PAY = [12_000_000, 11_000_000, 9_500_000]


@pytest.fixture
def san_francisco_rows() -> List[Dict[str, Any]]:
    return [
        make_row(f'sf{number}', location='San Francisco', annual_base_pay=pay)
        for number, pay in enumerate(SAN_FRANCISCO_PAY, start=1)
    ]


def indexed(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [to_index_body(transform_record(row)) for row in rows]


def extended_stats(values: List[float]) -> Dict[str, Any]:
    count = len(values)
    average = sum(values) / count
    variance = sum((value - average) ** 2 for value in values) / count
    return {
        'count': count,
        'min': min(values),
        'max': max(values),
        'avg': average,
        'sum': sum(values),
        'std_deviation': variance ** 0.5,
    }


def stats_aggregation(documents: List[Dict[str, Any]]) -> Dict[str, Any]:
    """What Elasticsearch answers for build_stats_search_body over documents."""
    totals = [doc['total_compensation'] for doc in documents]
    return {'aggregations': {
        'salary_stats': extended_stats([doc['annual_base_pay'] for doc in documents]),
        'experience_stats': extended_stats([doc['years_experience_industry'] for doc in documents]),
        'total_compensation_avg': {'value': sum(totals) / len(totals)},
    }}


def terms_aggregation(documents: List[Dict[str, Any]], field: str, min_count: int) -> Dict[str, Any]:
    """What Elasticsearch answers for build_group_search_body over documents."""
    grouped: Dict[str, List[Dict[str, Any]]] = {}
    for doc in documents:
        grouped.setdefault(doc[field], []).append(doc)

    buckets = []
    for key, docs in grouped.items():
        if len(docs) < min_count:
            continue
        pay = [doc['annual_base_pay'] for doc in docs]
        years = [doc['years_experience_industry'] for doc in docs]
        buckets.append({
            'key': key,
            'doc_count': len(docs),
            'avg_salary': {'value': sum(pay) / len(pay)},
            'min_salary': {'value': min(pay)},
            'max_salary': {'value': max(pay)},
            'avg_experience': {'value': sum(years) / len(years)},
        })
    buckets.sort(key=lambda bucket: (-bucket['avg_salary']['value'], bucket['key']))
    return {'aggregations': {'groups': {'buckets': buckets}}}


def relational_group_row(key: str, rows: List[Dict[str, Any]]) -> Dict[str, Any]:
    """What get_group_stats_query returns for one group of rows."""
    pay = [Decimal(row['annual_base_pay']) / 100 for row in rows]
    return {
        'group_key': key,
        'count': len(rows),
        'average_salary': sum(pay) / len(pay),
        'median_salary': median(pay),
        'min_salary': min(pay),
        'max_salary': max(pay),
        'average_experience': Decimal(str(rows[0]['years_experience_industry'])),
    }


class TestSanFranciscoScenario:
    """Three San Francisco rows at 120,000 / 110,000 / 95,000 through every path."""

    # (120000 + 110000 + 95000) / 3
    EXPECTED_AVERAGE = 108333.33

    async def test_aggregate_from_indexed_documents(self, router, search, san_francisco_rows):
        search.search.return_value = stats_aggregation(indexed(san_francisco_rows))

        result = await router.aggregate(CompensationFilter(location_contains='San Francisco'))

        assert result.provenance == Provenance.SEARCH
        assert result.stats.count == 3
        assert result.stats.averageSalary == self.EXPECTED_AVERAGE
        assert result.stats.minSalary == 95000.0
        assert result.stats.maxSalary == 120000.0

    async def test_location_stats_from_indexed_documents(self, router, search, san_francisco_rows):
        search.search.return_value = terms_aggregation(indexed(san_francisco_rows), 'location', 3)

        result = await router.location_stats()

        assert result.provenance == Provenance.SEARCH
        assert len(result.groups) == 1
        group = result.groups[0]
        assert group.key == 'San Francisco'
        assert group.count == 3
        assert group.averageSalary == self.EXPECTED_AVERAGE
        assert group.maxSalary == 120000.0

    async def test_location_stats_relational_path(self, router, relational, search, san_francisco_rows):
        search.search.side_effect = SearchStoreError("connection refused")
        relational.fetch.return_value = [relational_group_row('San Francisco', san_francisco_rows)]

        result = await router.location_stats()

        assert result.provenance == Provenance.RELATIONAL
        assert result.groups[0].key == 'San Francisco'
        assert result.groups[0].count == 3
        assert result.groups[0].averageSalary == self.EXPECTED_AVERAGE

    async def test_both_paths_agree(self, relational, search, san_francisco_rows):
        search.search.return_value = terms_aggregation(indexed(san_francisco_rows), 'location', 3)
        relational.fetch.return_value = [relational_group_row('San Francisco', san_francisco_rows)]

        from_search = await FallbackQueryRouter(relational, search).location_stats()
        from_relational = await FallbackQueryRouter(relational, search, enable_fallback=False).location_stats()

        assert from_search.provenance == Provenance.SEARCH
        assert from_relational.provenance == Provenance.RELATIONAL
        for field in ('key', 'count', 'averageSalary', 'minSalary', 'maxSalary', 'averageExperience'):
            assert getattr(from_search.groups[0], field) == getattr(from_relational.groups[0], field)


class TestGroupStats:
    """Tests for location and job title statistics."""

    async def test_location_stats_from_search(self, router, search):
        search.search.return_value = {'aggregations': {'groups': {'buckets': [
            {'key': 'Seattle, WA', 'doc_count': 3, 'avg_salary': {'value': 12_000_000.0},
             'min_salary': {'value': 10_000_000.0}, 'max_salary': {'value': 14_000_000.0}},
        ]}}}
        result = await router.location_stats()
        assert result.provenance == Provenance.SEARCH
        assert result.groups[0].key == 'Seattle, WA'
        body = search.search.await_args.args[0]
        assert body['aggs']['groups']['terms']['min_doc_count'] == 3

    async def test_job_title_stats_fall_back(self, router, relational, search):
        search.search.side_effect = SearchStoreError("down")
        relational.fetch.return_value = [{
            'group_key': 'Software Engineer', 'count': 2,
            'average_salary': Decimal('120000'), 'median_salary': Decimal('120000'),
            'min_salary': Decimal('120000'), 'max_salary': Decimal('120000'),
        }]
        result = await router.job_title_stats(CompensationFilter(industry='Tech'), limit=5)
        assert result.provenance == Provenance.RELATIONAL
        assert result.groups[0].count == 2
        sql, *params = relational.fetch.await_args.args
        assert 'HAVING COUNT(*) >= 2' in sql
        assert params == ['Tech', 5]

    async def test_engineer_locations_from_search(self, router, search):
        search.search.return_value = {'aggregations': {'groups': {'buckets': [
            {'key': 'Austin, TX', 'doc_count': 2, 'avg_salary': {'value': 13_000_000.0},
             'min_salary': {'value': 12_000_000.0}, 'max_salary': {'value': 14_000_000.0},
             'avg_experience': {'value': 6.5}},
        ]}}}
        result = await router.engineer_compensation_by_location(limit=5)
        assert result.provenance == Provenance.SEARCH
        assert result.groups[0].key == 'Austin, TX'
        assert result.groups[0].averageExperience == 6.5
        groups = search.search.await_args.args[0]['aggs']['groups']
        assert groups['terms']['field'] == 'location.keyword'
        assert groups['terms']['min_doc_count'] == 2
        assert groups['terms']['size'] == 5
        assert 'min_average_salary' not in groups['aggs']

    async def test_engineer_locations_fall_back(self, router, relational, search):
        search.search.side_effect = SearchStoreError("down")
        relational.fetch.return_value = []
        result = await router.engineer_compensation_by_location()
        assert result.provenance == Provenance.RELATIONAL
        sql, *params = relational.fetch.await_args.args
        assert 'job_title ILIKE $1' in sql
        assert 'GROUP BY location' in sql
        assert 'HAVING COUNT(*) >= 2' in sql
        assert params == ['%engineer%', 10]

    async def test_roles_by_experience_from_search(self, router, search):
        search.search.return_value = {'aggregations': {'groups': {'buckets': []}}}
        result = await router.highest_paid_roles_by_experience(2, 8)
        assert result.provenance == Provenance.SEARCH
        groups = search.search.await_args.args[0]['aggs']['groups']
        assert groups['terms']['field'] == 'job_title.keyword'
        assert groups['terms']['min_doc_count'] == 3
        assert groups['aggs']['min_average_salary']['bucket_selector']['script'] == 'params.average > 5000000'

    async def test_roles_by_experience_fall_back(self, router, relational, search):
        search.search.side_effect = SearchStoreError("down")
        relational.fetch.return_value = [{
            'group_key': 'Staff Engineer', 'count': 3,
            'average_salary': Decimal('210000'), 'median_salary': Decimal('205000'),
            'min_salary': Decimal('190000'), 'max_salary': Decimal('235000'),
            'average_experience': Decimal('9.5'),
        }]
        result = await router.highest_paid_roles_by_experience()
        assert result.provenance == Provenance.RELATIONAL
        assert result.groups[0].averageExperience == 9.5
        sql, *params = relational.fetch.await_args.args
        assert 'years_experience_industry >= $1' in sql
        assert 'years_experience_industry <= $2' in sql
        assert 'HAVING COUNT(*) >= 3 AND AVG(annual_base_pay::DECIMAL / 100) > 50000.0' in sql
        assert params == [0.0, 50.0, 10]


class TestHealth:
    """Tests for health_check()."""

    async def test_reports_both_stores(self, router, search):
        search.ping.return_value = False
        status = await router.health_check()
        assert status.relational is True
        assert status.search is False
        assert status.fallbackEnabled is True
