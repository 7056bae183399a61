"""
Parameterized SQL for reads against compensation_data.

Every builder takes an already-translated WHERE clause (from the filter
translator) and returns PostgreSQL text using $n placeholders. Placeholders
for values added here (limit, offset, group limit) are numbered after the
filter's own parameters.

Money columns are stored in cents; aggregate queries divide by 100 so their
output is in whole currency units.
"""

from typing import List, Optional

TABLE_NAME = 'compensation_data'

# Relational equivalent of the search document's total_compensation field
TOTAL_COMPENSATION_EXPR = (
    "(COALESCE(annual_base_pay, 0) + COALESCE(annual_bonus, 0) + COALESCE(stock_value, 0))"
)

# Aggregates only consider rows with a usable base pay
POSITIVE_BASE_PAY = ["annual_base_pay IS NOT NULL", "annual_base_pay > 0"]

# Columns allowed as a GROUP BY key for grouped statistics
GROUPABLE_COLUMNS = ('location', 'job_title', 'employer')


def _combine_where(where_clause: str, extra_conditions: List[str]) -> str:
    """Append conditions to a (possibly empty) 'WHERE ...' clause."""
    if not extra_conditions:
        return where_clause
    extra = " AND ".join(extra_conditions)
    if where_clause:
        return f"{where_clause} AND {extra}"
    return f"WHERE {extra}"


def get_page_query(where_clause: str, order_by: str, param_count: int) -> str:
    """
    One page of rows in the translated order.

    Args:
        where_clause: 'WHERE ...' or ''.
        order_by: 'ORDER BY ...' clause.
        param_count: Number of parameters already used by where_clause;
            LIMIT and OFFSET take the next two placeholders.
    """
    return f"""
    SELECT *
    FROM {TABLE_NAME}
    {where_clause}
    {order_by}
    LIMIT ${param_count + 1} OFFSET ${param_count + 2}
    """


def get_count_query(where_clause: str) -> str:
    return f"SELECT COUNT(*) AS total FROM {TABLE_NAME} {where_clause}"


def get_record_by_id_query() -> str:
    return f"SELECT * FROM {TABLE_NAME} WHERE id::text = $1"


def get_stats_query(where_clause: str) -> str:
    """
    Exact salary and experience statistics over the filtered rows.

    Uses population standard deviation so the figure matches the search
    store's extended_stats std_deviation.
    """
    where = _combine_where(where_clause, POSITIVE_BASE_PAY)
    return f"""
    SELECT
        COUNT(*) AS count,
        AVG(annual_base_pay::DECIMAL / 100) AS average_salary,
        MIN(annual_base_pay::DECIMAL / 100) AS min_salary,
        MAX(annual_base_pay::DECIMAL / 100) AS max_salary,
        PERCENTILE_CONT(0.25) WITHIN GROUP (ORDER BY annual_base_pay::DECIMAL / 100) AS q1_salary,
        PERCENTILE_CONT(0.5) WITHIN GROUP (ORDER BY annual_base_pay::DECIMAL / 100) AS median_salary,
        PERCENTILE_CONT(0.75) WITHIN GROUP (ORDER BY annual_base_pay::DECIMAL / 100) AS q3_salary,
        STDDEV_POP(annual_base_pay::DECIMAL / 100) AS standard_deviation,
        AVG({TOTAL_COMPENSATION_EXPR}::DECIMAL / 100) AS average_total_compensation,
        AVG(years_experience_industry) AS average_experience,
        MIN(years_experience_industry) AS min_experience,
        MAX(years_experience_industry) AS max_experience,
        PERCENTILE_CONT(0.5) WITHIN GROUP (ORDER BY years_experience_industry) AS median_experience
    FROM {TABLE_NAME}
    {where}
    """


def get_group_stats_query(
    group_column: str,
    where_clause: str,
    param_count: int,
    min_count: int,
    min_average_salary: Optional[float] = None,
) -> str:
    """
    Per-group salary statistics, highest average first.

    Args:
        group_column: One of GROUPABLE_COLUMNS.
        where_clause: Translated filter clause.
        param_count: Parameters already used; the group limit takes the next placeholder.
        min_count: Groups with fewer rows are dropped (HAVING).
        min_average_salary: When set, groups must average strictly more than
            this many currency units.

    Raises:
        ValueError: If group_column is not groupable.
    """
    if group_column not in GROUPABLE_COLUMNS:
        raise ValueError(f"Cannot group by column: {group_column}")

    where = _combine_where(where_clause, [f"{group_column} IS NOT NULL"] + POSITIVE_BASE_PAY)
    having = f"HAVING COUNT(*) >= {int(min_count)}"
    if min_average_salary is not None:
        having += f" AND AVG(annual_base_pay::DECIMAL / 100) > {float(min_average_salary)}"
    return f"""
    SELECT
        {group_column} AS group_key,
        COUNT(*) AS count,
        AVG(annual_base_pay::DECIMAL / 100) AS average_salary,
        MIN(annual_base_pay::DECIMAL / 100) AS min_salary,
        MAX(annual_base_pay::DECIMAL / 100) AS max_salary,
        PERCENTILE_CONT(0.5) WITHIN GROUP (ORDER BY annual_base_pay::DECIMAL / 100) AS median_salary,
        AVG(years_experience_industry) AS average_experience
    FROM {TABLE_NAME}
    {where}
    GROUP BY {group_column}
    {having}
    ORDER BY average_salary DESC, {group_column} ASC
    LIMIT ${param_count + 1}
    """


# =============================================================================
# Bulk synchronization reads
# =============================================================================

def get_total_rows_query() -> str:
    return f"SELECT COUNT(*) FROM {TABLE_NAME}"


def get_sync_window_query() -> str:
    """Fixed-size window ordered by key: $1 = window size, $2 = offset."""
    return f"""
    SELECT *
    FROM {TABLE_NAME}
    ORDER BY id
    LIMIT $1 OFFSET $2
    """
