"""
Package initialization file for compsearch models.

Re-exports every enum and schema so other modules can import them from
compsearch.models directly.

Usage:
    from compsearch.models import CompensationFilter, Provenance, SearchDocument
"""

from compsearch.models.enums import (
    Provenance,
    ChangeOperation,
    CompensationBracket,
    ExperienceBracket,
    SortDirection,
    CompensationSortField,
    SlotKind,
)

from compsearch.models.schemas import (
    # Records
    CompensationRecord,
    SearchDocument,
    # Logical query
    IntRange,
    FloatRange,
    DateRange,
    CompensationFilter,
    SortSpec,
    Pagination,
    # Change capture
    ChangeEvent,
    # Synchronization
    WindowReport,
    SyncReport,
    # Statistics
    SearchStats,
    RelationalStats,
    StatsResult,
    CompensationStats,
    GroupStats,
    # Envelopes
    QueryResult,
    RecordResult,
    AggregateResult,
    GroupStatsResult,
    HealthStatus,
)

__all__ = [
    'Provenance',
    'ChangeOperation',
    'CompensationBracket',
    'ExperienceBracket',
    'SortDirection',
    'CompensationSortField',
    'SlotKind',
    'CompensationRecord',
    'SearchDocument',
    'IntRange',
    'FloatRange',
    'DateRange',
    'CompensationFilter',
    'SortSpec',
    'Pagination',
    'ChangeEvent',
    'WindowReport',
    'SyncReport',
    'SearchStats',
    'RelationalStats',
    'StatsResult',
    'CompensationStats',
    'GroupStats',
    'QueryResult',
    'RecordResult',
    'AggregateResult',
    'GroupStatsResult',
    'HealthStatus',
]
