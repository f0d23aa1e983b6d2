"""
Fiscal year window used for annual TDS thresholds (India: April 1 - March 31).
"""
from datetime import date, timedelta

APRIL = 4


def fy_start(on: date, start_month: int = APRIL) -> date:
    """First day of the fiscal year containing ``on``."""
    year = on.year if on.month >= start_month else on.year - 1
    return date(year, start_month, 1)


def fy_end(on: date, start_month: int = APRIL) -> date:
    """Last day of the fiscal year containing ``on``."""
    start = fy_start(on, start_month)
    return date(start.year + 1, start.month, 1) - timedelta(days=1)


def fy_label(on: date, start_month: int = APRIL) -> str:
    """e.g. ``2025-26`` for any date between 2025-04-01 and 2026-03-31."""
    start = fy_start(on, start_month)
    if start_month == 1:
        return str(start.year)
    return f"{start.year}-{str(start.year + 1)[-2:]}"
