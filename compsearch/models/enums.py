"""
Enumeration definitions for the compensation search service.

All enums inherit from both `str` and `Enum` so they serialize as plain
strings in pydantic models and API responses.
"""

from enum import Enum


class Provenance(str, Enum):
    """
    Store that produced a federated result.

    - search: answered by the search store (PRIMARY)
    - relational: answered by PostgreSQL (SECONDARY, or fallback disabled)
    """
    SEARCH = "search"
    RELATIONAL = "relational"


class ChangeOperation(str, Enum):
    """Row mutation carried by a change notification."""
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class CompensationBracket(str, Enum):
    """
    Total compensation bracket, in whole currency units.

    - Entry: < 50,000
    - Mid: < 100,000
    - Senior: < 200,000
    - Executive: everything above
    """
    ENTRY = "Entry"
    MID = "Mid"
    SENIOR = "Senior"
    EXECUTIVE = "Executive"


class ExperienceBracket(str, Enum):
    """
    Industry experience bracket, in years.

    - Junior: < 2
    - Mid-Level: < 5
    - Senior: < 10
    - Expert: everything above
    """
    JUNIOR = "Junior"
    MID_LEVEL = "Mid-Level"
    SENIOR = "Senior"
    EXPERT = "Expert"


class SortDirection(str, Enum):
    ASC = "ASC"
    DESC = "DESC"


class CompensationSortField(str, Enum):
    """Sort fields accepted by the filter translator."""
    TIMESTAMP = "TIMESTAMP"
    ANNUAL_BASE_PAY = "ANNUAL_BASE_PAY"
    ANNUAL_BONUS = "ANNUAL_BONUS"
    TOTAL_COMPENSATION = "TOTAL_COMPENSATION"
    YEARS_EXPERIENCE_INDUSTRY = "YEARS_EXPERIENCE_INDUSTRY"
    YEARS_EXPERIENCE_COMPANY = "YEARS_EXPERIENCE_COMPANY"
    CREATED_AT = "CREATED_AT"


class SlotKind(str, Enum):
    """
    Predicate family of a filter slot.

    - substring: case-insensitive contains (relational) / fuzzy match (search)
    - keyword: exact equality on both sides
    - range: inclusive numeric bounds
    - date_range: inclusive timestamp bounds
    - boolean: equality on a boolean column
    """
    SUBSTRING = "substring"
    KEYWORD = "keyword"
    RANGE = "range"
    DATE_RANGE = "date_range"
    BOOLEAN = "boolean"
