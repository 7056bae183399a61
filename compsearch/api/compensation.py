"""
FastAPI router for federated compensation reads.

Implements:
- GET /compensations: filtered, sorted, paginated listing
- GET /compensations/{key}: single record
- GET /stats, /stats/engineers: salary and experience statistics
- GET /stats/locations, /stats/job-titles: per-group salary statistics
- GET /stats/engineers/locations: engineering pay per location
- GET /stats/roles-by-experience: best-paid titles inside an experience window

Every response carries `provenance` ("search" or "relational") naming the
store that answered. Filter slots are plain query parameters; ranges use
min_/max_ (money in cents) and dates use _after/_before suffixes. Sorting
repeats sort_by (and optionally sort_direction) once per key, e.g.
?sort_by=TOTAL_COMPENSATION&sort_direction=DESC&sort_by=CREATED_AT.

Error mapping:
- FederationError (relational store down after fallback): 503
- anything else: 500
"""

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from compsearch.core.dependencies import QueryRouterDep
from compsearch.core.exceptions import FederationError
from compsearch.models import (
    AggregateResult,
    CompensationFilter,
    DateRange,
    FloatRange,
    GroupStatsResult,
    IntRange,
    Pagination,
    QueryResult,
    RecordResult,
    SortDirection,
    SortSpec,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _int_range(low: Optional[int], high: Optional[int]) -> Optional[IntRange]:
    if low is None and high is None:
        return None
    return IntRange(min=low, max=high)


def _float_range(low: Optional[float], high: Optional[float]) -> Optional[FloatRange]:
    if low is None and high is None:
        return None
    return FloatRange(min=low, max=high)


def _date_range(after: Optional[datetime], before: Optional[datetime]) -> Optional[DateRange]:
    if after is None and before is None:
        return None
    return DateRange(after=after, before=before)


def get_compensation_filter(
    employer_contains: Optional[str] = Query(default=None, description="Employer name contains"),
    job_title_contains: Optional[str] = Query(default=None, description="Job title contains"),
    location_contains: Optional[str] = Query(default=None, description="Location contains"),
    industry: Optional[str] = Query(default=None),
    company_size: Optional[str] = Query(default=None),
    gender: Optional[str] = Query(default=None),
    employment_type: Optional[str] = Query(default=None),
    education_level: Optional[str] = Query(default=None),
    public_private: Optional[str] = Query(default=None),
    country: Optional[str] = Query(default=None),
    min_annual_base_pay: Optional[int] = Query(default=None, description="Cents, inclusive"),
    max_annual_base_pay: Optional[int] = Query(default=None, description="Cents, inclusive"),
    min_annual_bonus: Optional[int] = Query(default=None),
    max_annual_bonus: Optional[int] = Query(default=None),
    min_total_compensation: Optional[int] = Query(default=None),
    max_total_compensation: Optional[int] = Query(default=None),
    min_years_experience_industry: Optional[float] = Query(default=None),
    max_years_experience_industry: Optional[float] = Query(default=None),
    min_years_experience_company: Optional[float] = Query(default=None),
    max_years_experience_company: Optional[float] = Query(default=None),
    min_actual_hours_per_week: Optional[int] = Query(default=None),
    max_actual_hours_per_week: Optional[int] = Query(default=None),
    min_data_quality_score: Optional[float] = Query(default=None),
    max_data_quality_score: Optional[float] = Query(default=None),
    timestamp_after: Optional[datetime] = Query(default=None),
    timestamp_before: Optional[datetime] = Query(default=None),
    created_after: Optional[datetime] = Query(default=None),
    created_before: Optional[datetime] = Query(default=None),
    health_insurance_offered: Optional[bool] = Query(default=None),
    is_happy_at_position: Optional[bool] = Query(default=None),
    plans_to_resign: Optional[bool] = Query(default=None),
    is_validated: Optional[bool] = Query(default=None),
) -> CompensationFilter:
    """Build a CompensationFilter from query parameters."""
    return CompensationFilter(
        employer_contains=employer_contains,
        job_title_contains=job_title_contains,
        location_contains=location_contains,
        industry=industry,
        company_size=company_size,
        gender=gender,
        employment_type=employment_type,
        education_level=education_level,
        public_private=public_private,
        country=country,
        annual_base_pay=_int_range(min_annual_base_pay, max_annual_base_pay),
        annual_bonus=_int_range(min_annual_bonus, max_annual_bonus),
        total_compensation=_int_range(min_total_compensation, max_total_compensation),
        years_experience_industry=_float_range(min_years_experience_industry, max_years_experience_industry),
        years_experience_company=_float_range(min_years_experience_company, max_years_experience_company),
        actual_hours_per_week=_int_range(min_actual_hours_per_week, max_actual_hours_per_week),
        data_quality_score=_float_range(min_data_quality_score, max_data_quality_score),
        timestamp=_date_range(timestamp_after, timestamp_before),
        created_at=_date_range(created_after, created_before),
        health_insurance_offered=health_insurance_offered,
        is_happy_at_position=is_happy_at_position,
        plans_to_resign=plans_to_resign,
        is_validated=is_validated,
    )


def _sort_specs(
    sort_by: Optional[List[str]],
    sort_direction: Optional[List[SortDirection]],
) -> Optional[List[SortSpec]]:
    if not sort_by:
        return None
    directions = sort_direction or []
    return [
        SortSpec(field=field, direction=directions[index] if index < len(directions) else SortDirection.DESC)
        for index, field in enumerate(sort_by)
    ]


def _unavailable(operation: str, error: FederationError) -> HTTPException:
    logger.error(f"{operation} failed on every store: {error}")
    return HTTPException(status_code=503, detail=f"Compensation data unavailable: {error}")


# =============================================================================
# Endpoint Implementations
# =============================================================================


@router.get("/compensations", response_model=QueryResult)
async def list_compensations(
    query_router: QueryRouterDep,
    logical_filter: CompensationFilter = Depends(get_compensation_filter),
    sort_by: Optional[List[str]] = Query(default=None, description="Sort fields in priority order, e.g. ANNUAL_BASE_PAY"),
    sort_direction: Optional[List[SortDirection]] = Query(default=None, description="Direction per sort_by; DESC when omitted"),
    limit: int = Query(default=20, description="Page size (clamped to 100)"),
    offset: int = Query(default=0, description="Rows to skip"),
) -> QueryResult:
    """
    List compensation records.

    Unknown sort fields are ignored; with no usable field the order is
    newest first. The response's totalCount covers the whole filtered set,
    not just this page.
    """
    sort = _sort_specs(sort_by, sort_direction)
    try:
        result = await query_router.query(logical_filter, sort, Pagination(limit=limit, offset=offset))
    except FederationError as e:
        raise _unavailable("list_compensations", e)
    except Exception as e:
        logger.exception("Error listing compensation records")
        raise HTTPException(status_code=500, detail=f"Failed to list compensation records: {str(e)}")

    logger.info(f"Listed {len(result.rows)} of {result.totalCount} records from {result.provenance.value}")
    return result


@router.get("/compensations/{key}", response_model=RecordResult)
async def get_compensation(key: str, query_router: QueryRouterDep) -> RecordResult:
    """
    Get one compensation record by key.

    Raises:
        HTTPException(404) if neither store has the record
    """
    try:
        result = await query_router.get(key)
    except FederationError as e:
        raise _unavailable("get_compensation", e)
    except Exception as e:
        logger.exception(f"Error retrieving compensation record {key}")
        raise HTTPException(status_code=500, detail=f"Failed to retrieve record: {str(e)}")

    if result.record is None:
        raise HTTPException(status_code=404, detail=f"Compensation record {key} not found")
    return result


@router.get("/stats", response_model=AggregateResult)
async def get_stats(
    query_router: QueryRouterDep,
    logical_filter: CompensationFilter = Depends(get_compensation_filter),
) -> AggregateResult:
    """Salary and experience statistics over the filtered records."""
    try:
        return await query_router.aggregate(logical_filter)
    except FederationError as e:
        raise _unavailable("get_stats", e)
    except Exception as e:
        logger.exception("Error computing compensation statistics")
        raise HTTPException(status_code=500, detail=f"Failed to compute statistics: {str(e)}")


@router.get("/stats/engineers", response_model=AggregateResult)
async def get_engineer_stats(
    query_router: QueryRouterDep,
    logical_filter: CompensationFilter = Depends(get_compensation_filter),
) -> AggregateResult:
    """Statistics restricted to job titles containing "engineer"."""
    try:
        return await query_router.engineer_stats(logical_filter)
    except FederationError as e:
        raise _unavailable("get_engineer_stats", e)
    except Exception as e:
        logger.exception("Error computing engineer statistics")
        raise HTTPException(status_code=500, detail=f"Failed to compute statistics: {str(e)}")


@router.get("/stats/locations", response_model=GroupStatsResult)
async def get_location_stats(
    query_router: QueryRouterDep,
    logical_filter: CompensationFilter = Depends(get_compensation_filter),
    limit: int = Query(default=10, description="Maximum number of locations"),
) -> GroupStatsResult:
    """Per-location statistics, locations with at least 3 records."""
    try:
        return await query_router.location_stats(logical_filter, limit)
    except FederationError as e:
        raise _unavailable("get_location_stats", e)
    except Exception as e:
        logger.exception("Error computing location statistics")
        raise HTTPException(status_code=500, detail=f"Failed to compute statistics: {str(e)}")


@router.get("/stats/job-titles", response_model=GroupStatsResult)
async def get_job_title_stats(
    query_router: QueryRouterDep,
    logical_filter: CompensationFilter = Depends(get_compensation_filter),
    limit: int = Query(default=10, description="Maximum number of job titles"),
) -> GroupStatsResult:
    """Per-job-title statistics, titles with at least 2 records."""
    try:
        return await query_router.job_title_stats(logical_filter, limit)
    except FederationError as e:
        raise _unavailable("get_job_title_stats", e)
    except Exception as e:
        logger.exception("Error computing job title statistics")
        raise HTTPException(status_code=500, detail=f"Failed to compute statistics: {str(e)}")


@router.get("/stats/engineers/locations", response_model=GroupStatsResult)
async def get_engineer_location_stats(
    query_router: QueryRouterDep,
    limit: int = Query(default=10, description="Maximum number of locations"),
) -> GroupStatsResult:
    """Engineering pay per location, locations with at least 2 engineering records."""
    try:
        return await query_router.engineer_compensation_by_location(limit)
    except FederationError as e:
        raise _unavailable("get_engineer_location_stats", e)
    except Exception as e:
        logger.exception("Error computing engineer location statistics")
        raise HTTPException(status_code=500, detail=f"Failed to compute statistics: {str(e)}")


@router.get("/stats/roles-by-experience", response_model=GroupStatsResult)
async def get_roles_by_experience(
    query_router: QueryRouterDep,
    min_experience: float = Query(default=0, description="Minimum years of industry experience"),
    max_experience: float = Query(default=50, description="Maximum years of industry experience"),
    limit: int = Query(default=10, description="Maximum number of job titles"),
) -> GroupStatsResult:
    """
    Highest paid job titles for an experience window.

    Titles need at least 3 records and an average base pay above 50,000.
    """
    try:
        return await query_router.highest_paid_roles_by_experience(min_experience, max_experience, limit)
    except FederationError as e:
        raise _unavailable("get_roles_by_experience", e)
    except Exception as e:
        logger.exception("Error computing highest paid roles by experience")
        raise HTTPException(status_code=500, detail=f"Failed to compute statistics: {str(e)}")
