"""
Filter translator: one logical query in, two equivalent store queries out.

translate(filter, sort, pagination) returns a RelationalQuery (parameterized
PostgreSQL fragments) and a SearchQuery (Elasticsearch query DSL) that select
the same rows in the same order, with one accepted exception: substring slots
become ILIKE '%value%' on the relational side and an analyzed, fuzzy match on
the search side, so the search store may return extra near-miss rows.

Slot handling is table-driven (FILTER_SLOTS). A slot that cannot be
translated, such as an unknown name, an empty string or a range with no
bounds, is dropped with a warning and does not affect the other slots.

Ordering:
- Sort keys go through SORT_FIELDS in the requested order; unknown keys
  are dropped, and with none left the order is created_at DESC.
- Both sides append id ASC as a tie-breaker.
- The relational side sorts NULLS LAST, matching the search store's
  missing-value placement.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from compsearch.models import (
    CompensationFilter,
    CompensationSortField,
    DateRange,
    FloatRange,
    IntRange,
    Pagination,
    SlotKind,
    SortDirection,
    SortSpec,
)
from compsearch.sql import (
    TOTAL_COMPENSATION_EXPR,
    get_count_query,
    get_page_query,
)

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 20
MAX_LIMIT = 100

# slot name -> (kind, relational expression, search field)
FILTER_SLOTS: Dict[str, Tuple[SlotKind, str, str]] = {
    'employer_contains': (SlotKind.SUBSTRING, 'employer', 'employer'),
    'job_title_contains': (SlotKind.SUBSTRING, 'job_title', 'job_title'),
    'location_contains': (SlotKind.SUBSTRING, 'location', 'location'),
    'industry': (SlotKind.KEYWORD, 'industry', 'industry'),
    'company_size': (SlotKind.KEYWORD, 'company_size', 'company_size'),
    'gender': (SlotKind.KEYWORD, 'gender', 'gender'),
    'employment_type': (SlotKind.KEYWORD, 'employment_type', 'employment_type'),
    'education_level': (SlotKind.KEYWORD, 'education_level', 'education_level'),
    'public_private': (SlotKind.KEYWORD, 'public_private', 'public_private'),
    'country': (SlotKind.KEYWORD, 'country', 'country'),
    'annual_base_pay': (SlotKind.RANGE, 'annual_base_pay', 'annual_base_pay'),
    'annual_bonus': (SlotKind.RANGE, 'annual_bonus', 'annual_bonus'),
    'total_compensation': (SlotKind.RANGE, TOTAL_COMPENSATION_EXPR, 'total_compensation'),
    'years_experience_industry': (SlotKind.RANGE, 'years_experience_industry', 'years_experience_industry'),
    'years_experience_company': (SlotKind.RANGE, 'years_experience_company', 'years_experience_company'),
    'actual_hours_per_week': (SlotKind.RANGE, 'actual_hours_per_week', 'actual_hours_per_week'),
    'data_quality_score': (SlotKind.RANGE, 'data_quality_score', 'data_quality_score'),
    'timestamp': (SlotKind.DATE_RANGE, 'timestamp', 'timestamp'),
    'created_at': (SlotKind.DATE_RANGE, 'created_at', 'created_at'),
    'health_insurance_offered': (SlotKind.BOOLEAN, 'health_insurance_offered', 'health_insurance_offered'),
    'is_happy_at_position': (SlotKind.BOOLEAN, 'is_happy_at_position', 'is_happy_at_position'),
    'plans_to_resign': (SlotKind.BOOLEAN, 'plans_to_resign', 'plans_to_resign'),
    'is_validated': (SlotKind.BOOLEAN, 'is_validated', 'is_validated'),
}

# sort field -> (relational expression, search field)
SORT_FIELDS: Dict[CompensationSortField, Tuple[str, str]] = {
    CompensationSortField.TIMESTAMP: ('timestamp', 'timestamp'),
    CompensationSortField.ANNUAL_BASE_PAY: ('annual_base_pay', 'annual_base_pay'),
    CompensationSortField.ANNUAL_BONUS: ('annual_bonus', 'annual_bonus'),
    CompensationSortField.TOTAL_COMPENSATION: (TOTAL_COMPENSATION_EXPR, 'total_compensation'),
    CompensationSortField.YEARS_EXPERIENCE_INDUSTRY: ('years_experience_industry', 'years_experience_industry'),
    CompensationSortField.YEARS_EXPERIENCE_COMPANY: ('years_experience_company', 'years_experience_company'),
    CompensationSortField.CREATED_AT: ('created_at', 'created_at'),
}

SortKey = Tuple[CompensationSortField, SortDirection]
SortInput = Union[SortSpec, Sequence[SortSpec], None]

DEFAULT_SORT_KEYS: Tuple[SortKey, ...] = ((CompensationSortField.CREATED_AT, SortDirection.DESC),)


# =============================================================================
# Translated Query Types
# =============================================================================

@dataclass
class TranslatedFilter:
    """Filter-only translation shared by listing and statistics requests."""
    where_clause: str = ''
    params: List[Any] = field(default_factory=list)
    search_query: Dict[str, Any] = field(default_factory=lambda: {'match_all': {}})
    dropped_slots: List[str] = field(default_factory=list)


@dataclass
class RelationalQuery:
    """Parameterized relational listing: WHERE/ORDER BY fragments plus paging."""
    where_clause: str
    params: List[Any]
    order_by: str
    limit: int
    offset: int

    def page_sql(self) -> str:
        return get_page_query(self.where_clause, self.order_by, len(self.params))

    def page_params(self) -> List[Any]:
        return [*self.params, self.limit, self.offset]

    def count_sql(self) -> str:
        return get_count_query(self.where_clause)


@dataclass
class SearchQuery:
    """Search-store listing request in query DSL."""
    query: Dict[str, Any]
    sort: List[Dict[str, Any]]
    from_: int
    size: int

    def to_body(self) -> Dict[str, Any]:
        """Keyword arguments for SearchStore.search()."""
        return {
            'query': self.query,
            'sort': self.sort,
            'from_': self.from_,
            'size': self.size,
            'track_total_hits': True,
        }


# =============================================================================
# Slot Translation
# =============================================================================

def _escape_like(value: str) -> str:
    return value.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')


def _search_value(value: Any) -> Any:
    return value.isoformat() if isinstance(value, datetime) else value


class _ClauseBuilder:
    """Accumulates relational conditions and search clauses slot by slot."""

    def __init__(self):
        self.conditions: List[str] = []
        self.params: List[Any] = []
        self.must: List[Dict[str, Any]] = []
        self.filter: List[Dict[str, Any]] = []

    def _placeholder(self, value: Any) -> str:
        self.params.append(value)
        return f"${len(self.params)}"

    def add_substring(self, column: str, search_field: str, value: str) -> None:
        self.conditions.append(f"{column} ILIKE {self._placeholder(f'%{_escape_like(value)}%')}")
        self.must.append({
            'match': {search_field: {'query': value, 'fuzziness': 'AUTO'}},
        })

    def add_equality(self, column: str, search_field: str, value: Any) -> None:
        self.conditions.append(f"{column} = {self._placeholder(value)}")
        self.filter.append({'term': {search_field: value}})

    def add_range(self, column: str, search_field: str, lower: Any, upper: Any) -> None:
        bounds: Dict[str, Any] = {}
        if lower is not None:
            self.conditions.append(f"{column} >= {self._placeholder(lower)}")
            bounds['gte'] = _search_value(lower)
        if upper is not None:
            self.conditions.append(f"{column} <= {self._placeholder(upper)}")
            bounds['lte'] = _search_value(upper)
        self.filter.append({'range': {search_field: bounds}})

    def where_clause(self) -> str:
        if not self.conditions:
            return ''
        return "WHERE " + " AND ".join(self.conditions)

    def search_query(self) -> Dict[str, Any]:
        if not self.must and not self.filter:
            return {'match_all': {}}
        query: Dict[str, Any] = {}
        if self.must:
            query['must'] = self.must
        if self.filter:
            query['filter'] = self.filter
        return {'bool': query}


def _slot_values(logical_filter: CompensationFilter) -> List[Tuple[str, Any]]:
    """Set slots in declaration order, then unknown extras."""
    values = [
        (name, getattr(logical_filter, name))
        for name in type(logical_filter).model_fields
        if getattr(logical_filter, name) is not None
    ]
    extras = logical_filter.model_extra or {}
    values.extend((name, value) for name, value in extras.items() if value is not None)
    return values


def translate_filter(logical_filter: Optional[CompensationFilter]) -> TranslatedFilter:
    """
    Translate the filter slots of a logical query.

    Args:
        logical_filter: Filter to translate; None means no constraint.

    Returns:
        TranslatedFilter with the WHERE clause, its positional parameters,
        the search-store query and the names of any dropped slots.
    """
    if logical_filter is None:
        return TranslatedFilter()

    builder = _ClauseBuilder()
    dropped: List[str] = []

    for name, value in _slot_values(logical_filter):
        slot = FILTER_SLOTS.get(name)
        if slot is None:
            logger.warning(f"Dropping unknown filter slot: {name}")
            dropped.append(name)
            continue

        kind, column, search_field = slot

        if kind == SlotKind.SUBSTRING:
            text = value.strip() if isinstance(value, str) else ''
            if not text:
                logger.warning(f"Dropping empty substring slot: {name}")
                dropped.append(name)
                continue
            builder.add_substring(column, search_field, text)

        elif kind == SlotKind.KEYWORD:
            if not isinstance(value, str) or not value:
                logger.warning(f"Dropping empty keyword slot: {name}")
                dropped.append(name)
                continue
            builder.add_equality(column, search_field, value)

        elif kind == SlotKind.BOOLEAN:
            builder.add_equality(column, search_field, bool(value))

        elif kind == SlotKind.RANGE:
            if not isinstance(value, (IntRange, FloatRange)) or (value.min is None and value.max is None):
                logger.warning(f"Dropping empty range slot: {name}")
                dropped.append(name)
                continue
            builder.add_range(column, search_field, value.min, value.max)

        elif kind == SlotKind.DATE_RANGE:
            if not isinstance(value, DateRange) or (value.after is None and value.before is None):
                logger.warning(f"Dropping empty date range slot: {name}")
                dropped.append(name)
                continue
            builder.add_range(column, search_field, value.after, value.before)

    return TranslatedFilter(
        where_clause=builder.where_clause(),
        params=builder.params,
        search_query=builder.search_query(),
        dropped_slots=dropped,
    )


# =============================================================================
# Sort and Pagination
# =============================================================================

def resolve_sort(sort: SortInput) -> List[SortKey]:
    """
    Map requested sort keys onto the allow-list, keeping their order.

    Unknown fields are dropped with a warning and a repeated field keeps its
    first direction. When no key survives, the order is created_at DESC.
    """
    if sort is None:
        requested: List[SortSpec] = []
    elif isinstance(sort, SortSpec):
        requested = [sort]
    else:
        requested = list(sort)

    keys: List[SortKey] = []
    for spec in requested:
        try:
            sort_field = CompensationSortField(str(spec.field).upper())
        except ValueError:
            logger.warning(f"Unknown sort field {spec.field!r}, ignoring it")
            continue
        if any(sort_field == existing for existing, _ in keys):
            continue
        keys.append((sort_field, spec.direction))

    return keys or list(DEFAULT_SORT_KEYS)


def build_order_by(keys: Sequence[SortKey]) -> str:
    terms = [f"{SORT_FIELDS[sort_field][0]} {direction.value} NULLS LAST" for sort_field, direction in keys]
    return f"ORDER BY {', '.join(terms)}, id ASC"


def build_search_sort(keys: Sequence[SortKey]) -> List[Dict[str, Any]]:
    sort = [
        {SORT_FIELDS[sort_field][1]: {'order': direction.value.lower(), 'missing': '_last'}}
        for sort_field, direction in keys
    ]
    sort.append({'id': {'order': 'asc'}})
    return sort


def clamp_pagination(pagination: Optional[Pagination]) -> Tuple[int, int]:
    """
    Resolve (limit, offset).

    A missing or non-positive limit becomes 20, anything above 100 becomes
    100, and a negative offset becomes 0.
    """
    limit = pagination.limit if pagination else None
    offset = pagination.offset if pagination else None

    if limit is None or limit <= 0:
        limit = DEFAULT_LIMIT
    limit = min(limit, MAX_LIMIT)
    offset = max(offset or 0, 0)
    return limit, offset


def translate(
    logical_filter: Optional[CompensationFilter] = None,
    sort: SortInput = None,
    pagination: Optional[Pagination] = None,
) -> Tuple[RelationalQuery, SearchQuery]:
    """
    Translate a logical listing request into both store queries.

    Args:
        logical_filter: Predicate slots; None means every row.
        sort: One SortSpec or a list of them, applied in order; unknown
            fields are dropped and an empty order means created_at DESC.
        pagination: limit/offset, clamped per clamp_pagination().

    Returns:
        (RelationalQuery, SearchQuery) selecting the same rows in the same order.

    Example:
        relational, search = translate(
            CompensationFilter(industry="Tech"),
            [SortSpec(field="ANNUAL_BASE_PAY", direction="DESC"), SortSpec(field="CREATED_AT")],
            Pagination(limit=10),
        )
    """
    translated = translate_filter(logical_filter)
    sort_keys = resolve_sort(sort)
    limit, offset = clamp_pagination(pagination)

    relational = RelationalQuery(
        where_clause=translated.where_clause,
        params=translated.params,
        order_by=build_order_by(sort_keys),
        limit=limit,
        offset=offset,
    )
    search = SearchQuery(
        query=translated.search_query,
        sort=build_search_sort(sort_keys),
        from_=offset,
        size=limit,
    )
    return relational, search
