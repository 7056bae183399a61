"""
Compensation statistics for both stores and their reconciliation.

The two stores answer statistics requests in different shapes:

- Search store: extended_stats over cents, no quantiles. Median, Q1, Q3 and
  median experience are substituted with the mean and flagged in
  approximateFields.
- Relational store: exact PERCENTILE_CONT / STDDEV_POP, already in whole
  currency units.

Each shape is captured as one member of the StatsResult tagged union and
mapped onto CompensationStats by reconcile_stats(). Group statistics
(per location, per job title) follow the same pattern with GroupStats.
"""

from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

from compsearch.models import (
    CompensationStats,
    GroupStats,
    RelationalStats,
    SearchStats,
    StatsResult,
)

CENTS_PER_UNIT = 100

APPROXIMATE_SEARCH_FIELDS = ['medianSalary', 'q1Salary', 'q3Salary', 'medianExperience']
APPROXIMATE_GROUP_FIELDS = ['medianSalary']

# Groupable field -> keyword field in the search index
GROUP_SEARCH_FIELDS = {
    'location': 'location.keyword',
    'job_title': 'job_title.keyword',
    'employer': 'employer.keyword',
}

LOCATION_MIN_COUNT = 3
JOB_TITLE_MIN_COUNT = 2
ENGINEER_LOCATION_MIN_COUNT = 2
ROLE_MIN_COUNT = 3
ROLE_MIN_AVERAGE_SALARY = 50000


def _round(value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, Decimal):
        value = float(value)
    return round(float(value), 2)


def _cents_to_units(value: Any) -> Optional[float]:
    if value is None:
        return None
    return _round(float(value) / CENTS_PER_UNIT)


# =============================================================================
# Search Store Requests
# =============================================================================

def _with_positive_base_pay(query: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'bool': {
            'must': [query],
            'filter': [{'range': {'annual_base_pay': {'gt': 0}}}],
        }
    }


def build_stats_search_body(query: Dict[str, Any]) -> Dict[str, Any]:
    """Aggregation-only search request for CompensationStats."""
    return {
        'query': _with_positive_base_pay(query),
        'size': 0,
        'track_total_hits': True,
        'aggs': {
            'salary_stats': {'extended_stats': {'field': 'annual_base_pay'}},
            'experience_stats': {'extended_stats': {'field': 'years_experience_industry'}},
            'total_compensation_avg': {'avg': {'field': 'total_compensation'}},
        },
    }


def build_group_search_body(
    group_column: str,
    query: Dict[str, Any],
    min_count: int,
    limit: int,
    min_average_salary: Optional[float] = None,
) -> Dict[str, Any]:
    """
    Terms aggregation over the keyword sub-field, highest average salary first.

    min_average_salary (currency units) adds a bucket_selector that keeps
    groups averaging strictly more. Buckets are already ordered by average,
    so trimming after the terms size never drops a qualifying group.

    Raises:
        ValueError: If group_column has no keyword field.
    """
    if group_column not in GROUP_SEARCH_FIELDS:
        raise ValueError(f"Cannot group by column: {group_column}")

    bucket_aggs: Dict[str, Any] = {
        'avg_salary': {'avg': {'field': 'annual_base_pay'}},
        'min_salary': {'min': {'field': 'annual_base_pay'}},
        'max_salary': {'max': {'field': 'annual_base_pay'}},
        'avg_experience': {'avg': {'field': 'years_experience_industry'}},
    }
    if min_average_salary is not None:
        bucket_aggs['min_average_salary'] = {
            'bucket_selector': {
                'buckets_path': {'average': 'avg_salary'},
                'script': f"params.average > {int(round(min_average_salary * CENTS_PER_UNIT))}",
            },
        }

    return {
        'query': _with_positive_base_pay(query),
        'size': 0,
        'aggs': {
            'groups': {
                'terms': {
                    'field': GROUP_SEARCH_FIELDS[group_column],
                    'size': limit,
                    'min_doc_count': min_count,
                    'order': [{'avg_salary': 'desc'}, {'_key': 'asc'}],
                },
                'aggs': bucket_aggs,
            },
        },
    }


# =============================================================================
# Result Capture
# =============================================================================

def search_stats_from_response(response: Mapping[str, Any]) -> SearchStats:
    aggregations = response.get('aggregations') or {}
    return SearchStats(
        salary=dict(aggregations.get('salary_stats') or {}),
        experience=dict(aggregations.get('experience_stats') or {}),
        total_compensation_avg=(aggregations.get('total_compensation_avg') or {}).get('value'),
    )


def relational_stats_from_row(row: Optional[Mapping[str, Any]]) -> RelationalStats:
    return RelationalStats(row=dict(row) if row is not None else {})


def search_stats_count(stats: SearchStats) -> int:
    return int(stats.salary.get('count') or 0)


# =============================================================================
# Reconciliation
# =============================================================================

def _reconcile_search(stats: SearchStats) -> CompensationStats:
    count = search_stats_count(stats)
    if count == 0:
        return CompensationStats(count=0)

    salary = stats.salary
    experience = stats.experience
    average_salary = _cents_to_units(salary.get('avg'))
    average_experience = _round(experience.get('avg'))

    return CompensationStats(
        count=count,
        averageSalary=average_salary,
        medianSalary=average_salary,
        minSalary=_cents_to_units(salary.get('min')),
        maxSalary=_cents_to_units(salary.get('max')),
        q1Salary=average_salary,
        q3Salary=average_salary,
        standardDeviation=_cents_to_units(salary.get('std_deviation')),
        averageTotalCompensation=_cents_to_units(stats.total_compensation_avg),
        averageExperience=average_experience,
        medianExperience=average_experience,
        minExperience=_round(experience.get('min')),
        maxExperience=_round(experience.get('max')),
        approximateFields=list(APPROXIMATE_SEARCH_FIELDS),
    )


def _reconcile_relational(stats: RelationalStats) -> CompensationStats:
    row = stats.row
    return CompensationStats(
        count=int(row.get('count') or 0),
        averageSalary=_round(row.get('average_salary')),
        medianSalary=_round(row.get('median_salary')),
        minSalary=_round(row.get('min_salary')),
        maxSalary=_round(row.get('max_salary')),
        q1Salary=_round(row.get('q1_salary')),
        q3Salary=_round(row.get('q3_salary')),
        standardDeviation=_round(row.get('standard_deviation')),
        averageTotalCompensation=_round(row.get('average_total_compensation')),
        averageExperience=_round(row.get('average_experience')),
        medianExperience=_round(row.get('median_experience')),
        minExperience=_round(row.get('min_experience')),
        maxExperience=_round(row.get('max_experience')),
    )


def reconcile_stats(result: StatsResult) -> CompensationStats:
    """
    Map either store's statistics onto the canonical CompensationStats.

    Money is reported in whole currency units rounded to 2 decimals. Fields
    the search store cannot compute exactly are listed in approximateFields.
    """
    if isinstance(result, SearchStats):
        return _reconcile_search(result)
    if isinstance(result, RelationalStats):
        return _reconcile_relational(result)
    raise TypeError(f"Unsupported statistics result: {type(result).__name__}")


def groups_from_search_response(response: Mapping[str, Any]) -> List[GroupStats]:
    buckets = ((response.get('aggregations') or {}).get('groups') or {}).get('buckets') or []
    groups = []
    for bucket in buckets:
        average = _cents_to_units((bucket.get('avg_salary') or {}).get('value'))
        groups.append(GroupStats(
            key=str(bucket['key']),
            count=int(bucket['doc_count']),
            averageSalary=average,
            medianSalary=average,
            minSalary=_cents_to_units((bucket.get('min_salary') or {}).get('value')),
            maxSalary=_cents_to_units((bucket.get('max_salary') or {}).get('value')),
            averageExperience=_round((bucket.get('avg_experience') or {}).get('value')),
            approximateFields=list(APPROXIMATE_GROUP_FIELDS),
        ))
    return groups


def groups_from_relational_rows(rows: List[Mapping[str, Any]]) -> List[GroupStats]:
    return [
        GroupStats(
            key=str(row['group_key']),
            count=int(row['count']),
            averageSalary=_round(row.get('average_salary')),
            medianSalary=_round(row.get('median_salary')),
            minSalary=_round(row.get('min_salary')),
            maxSalary=_round(row.get('max_salary')),
            averageExperience=_round(row.get('average_experience')),
        )
        for row in rows
    ]
