"""
Pydantic schemas for the compensation search service.

Domain models mirror the relational columns of compensation_data in
snake_case (the search index uses the same names). API-facing envelopes use
camelCase attribute names, matching the connection/stats shapes the GraphQL
layer consumes.

Groups:
- Records: CompensationRecord, SearchDocument
- Logical query: IntRange, FloatRange, DateRange, CompensationFilter, SortSpec, Pagination
- Change capture: ChangeEvent
- Synchronization: WindowReport, SyncReport
- Statistics: SearchStats, RelationalStats (tagged union StatsResult),
  CompensationStats, GroupStats
- Envelopes: QueryResult, RecordResult, AggregateResult, GroupStatsResult, HealthStatus
"""

import json
import math
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from compsearch.models.enums import (
    ChangeOperation,
    CompensationBracket,
    ExperienceBracket,
    Provenance,
    SortDirection,
)

MAX_EXPERIENCE_YEARS = 99.0

MONEY_FIELDS = ('annual_base_pay', 'annual_bonus', 'signing_bonus', 'stock_value')
EXPERIENCE_FIELDS = ('years_experience_industry', 'years_experience_company', 'years_at_employer')
HOURS_FIELDS = ('required_hours_per_week', 'actual_hours_per_week', 'annual_vacation_weeks')


def _to_number(value: Any) -> Optional[float]:
    """Best-effort numeric coercion; anything unparseable becomes None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip().replace(',', '')
        if not value:
            return None
    try:
        number = float(Decimal(str(value)))
    except (InvalidOperation, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


# =============================================================================
# Records
# =============================================================================

class CompensationRecord(BaseModel):
    """
    One row of compensation_data.

    Ingestion is best-effort, so validators null out bad values instead of
    rejecting the row: money below zero, experience outside [0, 99] and
    unparseable numbers all become None.
    """
    model_config = ConfigDict(extra='ignore')

    id: str
    source_file: Optional[str] = None
    row_number: Optional[int] = None

    timestamp: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    employer: Optional[str] = None
    company_size: Optional[str] = None
    industry: Optional[str] = None
    public_private: Optional[str] = None

    location: Optional[str] = None
    city: Optional[str] = None
    state_province: Optional[str] = None
    country: Optional[str] = None

    job_title: Optional[str] = None
    job_ladder: Optional[str] = None
    job_level: Optional[str] = None
    employment_type: Optional[str] = None

    years_experience_industry: Optional[float] = None
    years_experience_company: Optional[float] = None
    years_at_employer: Optional[float] = None

    # Cents
    annual_base_pay: Optional[int] = None
    annual_bonus: Optional[int] = None
    signing_bonus: Optional[int] = None
    stock_value: Optional[int] = None

    required_hours_per_week: Optional[int] = None
    actual_hours_per_week: Optional[int] = None
    annual_vacation_weeks: Optional[int] = None

    gender: Optional[str] = None
    education_level: Optional[str] = None

    is_happy_at_position: Optional[bool] = None
    plans_to_resign: Optional[bool] = None
    health_insurance_offered: Optional[bool] = None
    additional_comments: Optional[str] = None

    data_quality_score: Optional[float] = None
    is_validated: Optional[bool] = None

    @field_validator('id', mode='before')
    @classmethod
    def _key_as_string(cls, value: Any) -> Any:
        # asyncpg returns uuid.UUID for the primary key
        return str(value) if value is not None else value

    @field_validator(*MONEY_FIELDS, mode='before')
    @classmethod
    def _money(cls, value: Any) -> Optional[int]:
        number = _to_number(value)
        if number is None or number < 0:
            return None
        return int(round(number))

    @field_validator(*EXPERIENCE_FIELDS, mode='before')
    @classmethod
    def _experience(cls, value: Any) -> Optional[float]:
        number = _to_number(value)
        if number is None or number < 0 or number > MAX_EXPERIENCE_YEARS:
            return None
        return number

    @field_validator(*HOURS_FIELDS, 'row_number', mode='before')
    @classmethod
    def _whole_number(cls, value: Any) -> Optional[int]:
        number = _to_number(value)
        if number is None or number < 0:
            return None
        return int(round(number))

    @field_validator('data_quality_score', mode='before')
    @classmethod
    def _score(cls, value: Any) -> Optional[float]:
        return _to_number(value)


class SearchDocument(CompensationRecord):
    """
    Denormalized search-store projection of one CompensationRecord.

    Identity is the relational key. Built only by the record transformer.
    """
    total_compensation: int = 0
    compensation_bracket: CompensationBracket
    experience_bracket: ExperienceBracket


# =============================================================================
# Logical Query
# =============================================================================

class IntRange(BaseModel):
    """Inclusive integer bounds; either side may be open."""
    min: Optional[int] = None
    max: Optional[int] = None


class FloatRange(BaseModel):
    """Inclusive float bounds; either side may be open."""
    min: Optional[float] = None
    max: Optional[float] = None


class DateRange(BaseModel):
    """Inclusive timestamp bounds; either side may be open."""
    after: Optional[datetime] = None
    before: Optional[datetime] = None


class CompensationFilter(BaseModel):
    """
    Logical filter: named predicate slots, absent slot = no constraint.

    Unknown slot names are kept as extra fields so the translator can report
    and drop them instead of failing the request.
    """
    model_config = ConfigDict(extra='allow')

    # Substring match
    employer_contains: Optional[str] = None
    job_title_contains: Optional[str] = None
    location_contains: Optional[str] = None

    # Exact match
    industry: Optional[str] = None
    company_size: Optional[str] = None
    gender: Optional[str] = None
    employment_type: Optional[str] = None
    education_level: Optional[str] = None
    public_private: Optional[str] = None
    country: Optional[str] = None

    # Ranges (money in cents)
    annual_base_pay: Optional[IntRange] = None
    annual_bonus: Optional[IntRange] = None
    total_compensation: Optional[IntRange] = None
    years_experience_industry: Optional[FloatRange] = None
    years_experience_company: Optional[FloatRange] = None
    actual_hours_per_week: Optional[IntRange] = None
    data_quality_score: Optional[FloatRange] = None
    timestamp: Optional[DateRange] = None
    created_at: Optional[DateRange] = None

    # Boolean equality
    health_insurance_offered: Optional[bool] = None
    is_happy_at_position: Optional[bool] = None
    plans_to_resign: Optional[bool] = None
    is_validated: Optional[bool] = None


class SortSpec(BaseModel):
    """
    One sort key. `field` is a free string so unknown values reach the
    translator, which falls back to the default order.
    """
    field: str
    direction: SortDirection = SortDirection.ASC


class Pagination(BaseModel):
    limit: Optional[int] = 20
    offset: Optional[int] = 0


# =============================================================================
# Change Capture
# =============================================================================

class ChangeEvent(BaseModel):
    """One relational mutation delivered on the change channel."""
    operation: ChangeOperation
    key: str
    row: Optional[Dict[str, Any]] = None

    @field_validator('operation', mode='before')
    @classmethod
    def _lower_operation(cls, value: Any) -> Any:
        # Trigger payloads carry TG_OP, which is upper case
        return value.lower() if isinstance(value, str) else value

    @field_validator('key', mode='before')
    @classmethod
    def _key_as_string(cls, value: Any) -> Any:
        return str(value) if value is not None else value

    @classmethod
    def from_notification(cls, payload: str) -> 'ChangeEvent':
        """
        Parse a `{"operation", "id", "data"}` JSON notification payload.

        Raises:
            ValueError: If the payload is not JSON or misses required keys
                (pydantic.ValidationError is a ValueError).
        """
        data = json.loads(payload)
        return cls(
            operation=data.get('operation'),
            key=data.get('id'),
            row=data.get('data'),
        )


# =============================================================================
# Synchronization
# =============================================================================

class WindowReport(BaseModel):
    """Outcome of one bulk window."""
    window: int
    offset: int
    rows: int
    indexed: int = 0
    failed: int = 0
    attempts: int = 0


class SyncReport(BaseModel):
    """
    Outcome of syncAll.

    processed counts documents the search store accepted; failed counts
    documents rejected per item plus every row of a window that exhausted
    its retries.
    """
    processed: int = 0
    failed: int = 0
    relational_total: int = 0
    search_total: Optional[int] = None
    verified: bool = False
    windows: List[WindowReport] = Field(default_factory=list)
    duration_seconds: float = 0.0


# =============================================================================
# Statistics
# =============================================================================

class SearchStats(BaseModel):
    """
    Statistics as the search store reports them: extended_stats on the salary
    and experience fields plus an avg on total compensation. Values are in
    the stored units (cents for money). No quantiles are available.
    """
    source: Literal['search'] = 'search'
    salary: Dict[str, Any]
    experience: Dict[str, Any]
    total_compensation_avg: Optional[float] = None


class RelationalStats(BaseModel):
    """
    Statistics as the relational aggregate query returns them, already in
    whole currency units with exact percentiles.
    """
    source: Literal['relational'] = 'relational'
    row: Dict[str, Any]


StatsResult = Annotated[Union[SearchStats, RelationalStats], Field(discriminator='source')]


class CompensationStats(BaseModel):
    """
    Canonical statistics record, money in whole currency units.

    approximateFields lists every field that was substituted rather than
    computed exactly (search-side quantiles are replaced by the mean).
    """
    count: int = 0
    averageSalary: Optional[float] = None
    medianSalary: Optional[float] = None
    minSalary: Optional[float] = None
    maxSalary: Optional[float] = None
    q1Salary: Optional[float] = None
    q3Salary: Optional[float] = None
    standardDeviation: Optional[float] = None
    averageTotalCompensation: Optional[float] = None
    averageExperience: Optional[float] = None
    medianExperience: Optional[float] = None
    minExperience: Optional[float] = None
    maxExperience: Optional[float] = None
    approximateFields: List[str] = Field(default_factory=list)


class GroupStats(BaseModel):
    """Per-group salary statistics (location or job title)."""
    key: str
    count: int
    averageSalary: Optional[float] = None
    medianSalary: Optional[float] = None
    minSalary: Optional[float] = None
    maxSalary: Optional[float] = None
    averageExperience: Optional[float] = None
    approximateFields: List[str] = Field(default_factory=list)


# =============================================================================
# Envelopes
# =============================================================================

class QueryResult(BaseModel):
    """One page of a federated listing."""
    rows: List[SearchDocument] = Field(default_factory=list)
    totalCount: int = 0
    hasNextPage: bool = False
    hasPreviousPage: bool = False
    provenance: Provenance


class RecordResult(BaseModel):
    record: Optional[SearchDocument] = None
    provenance: Provenance


class AggregateResult(BaseModel):
    stats: CompensationStats
    provenance: Provenance


class GroupStatsResult(BaseModel):
    groups: List[GroupStats] = Field(default_factory=list)
    provenance: Provenance


class HealthStatus(BaseModel):
    relational: bool
    search: bool
    fallbackEnabled: bool = True
