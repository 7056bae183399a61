"""
Record transformer: one relational row in, one search document out.

transform_record() is pure and deterministic, so the bulk engine and change
capture can replay it on redelivery or retry and always write the same
document. It never raises for a structurally valid row: absent money and
experience values count as zero for the derived fields.

Derived fields:
- total_compensation: base pay + bonus + stock value, in cents
- compensation_bracket: Entry / Mid / Senior / Executive by whole-unit total
- experience_bracket: Junior / Mid-Level / Senior / Expert by industry years
"""

from typing import Any, Dict, Mapping, Union

from compsearch.models import (
    CompensationBracket,
    CompensationRecord,
    ExperienceBracket,
    SearchDocument,
)

CENTS_PER_UNIT = 100

# Upper bounds (exclusive) in whole currency units
COMPENSATION_BRACKETS = (
    (50_000, CompensationBracket.ENTRY),
    (100_000, CompensationBracket.MID),
    (200_000, CompensationBracket.SENIOR),
)

# Upper bounds (exclusive) in years
EXPERIENCE_BRACKETS = (
    (2, ExperienceBracket.JUNIOR),
    (5, ExperienceBracket.MID_LEVEL),
    (10, ExperienceBracket.SENIOR),
)


def total_compensation_cents(record: CompensationRecord) -> int:
    """Sum of base pay, bonus and stock value; absent parts count as zero."""
    return (
        (record.annual_base_pay or 0)
        + (record.annual_bonus or 0)
        + (record.stock_value or 0)
    )


def compensation_bracket(total_cents: int) -> CompensationBracket:
    # Compare in cents to keep the thresholds exact
    for upper_units, bracket in COMPENSATION_BRACKETS:
        if total_cents < upper_units * CENTS_PER_UNIT:
            return bracket
    return CompensationBracket.EXECUTIVE


def experience_bracket(years: float) -> ExperienceBracket:
    for upper_years, bracket in EXPERIENCE_BRACKETS:
        if years < upper_years:
            return bracket
    return ExperienceBracket.EXPERT


def transform_record(
    record: Union[CompensationRecord, Mapping[str, Any]],
) -> SearchDocument:
    """
    Project one compensation row into its search document.

    Args:
        record: A CompensationRecord, an asyncpg Record, or a plain mapping
            (e.g. the row snapshot in a change notification).

    Returns:
        SearchDocument with the derived fields filled in.
    """
    if not isinstance(record, CompensationRecord):
        record = CompensationRecord.model_validate(dict(record))

    total = total_compensation_cents(record)
    return SearchDocument(
        **record.model_dump(),
        total_compensation=total,
        compensation_bracket=compensation_bracket(total),
        experience_bracket=experience_bracket(record.years_experience_industry or 0),
    )


def to_index_body(document: SearchDocument) -> Dict[str, Any]:
    """JSON-ready body for the search store (datetimes as ISO strings)."""
    return document.model_dump(mode='json')
