# forecast_reconciliation/utils/date_utils.py
from datetime import date, datetime, timedelta
from typing import Tuple, Optional, Union
import calendar
import re

# Dates embedded in source file names, e.g. HOME-GOODS-20251105.xlsx
_FILENAME_DATE_PATTERN = re.compile(r'(20\d{2})[-_]?(0[1-9]|1[0-2])[-_]?(0[1-9]|[12]\d|3[01])')

def shift_month(year: int, month: int, months: int) -> Tuple[int, int]:
    """Move a (year, month) pair by a number of calendar months.

    Args:
        year: Year
        month: Month (1-12)
        months: Months to add (negative to go back)

    Returns:
        Tuple with (year, month)
    """
    index = year * 12 + (month - 1) + months
    return (index // 12, index % 12 + 1)

def month_start(year: int, month: int) -> date:
    return date(year, month, 1)

def month_end(year: int, month: int) -> date:
    """Get the last day of a month."""
    return date(year, month, calendar.monthrange(year, month)[1])

def days_until(target: date, today: date) -> int:
    return (target - today).days

def convert_to_date(value: Union[date, datetime, str, None]) -> Optional[date]:
    """Convert a date, datetime or ISO string to a date.

    Args:
        value: Value to convert

    Returns:
        Date or None if the value is empty
    """
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.strptime(str(value).strip()[:10], '%Y-%m-%d').date()

def capture_date_from_filename(file_name: Optional[str]) -> Optional[date]:
    """Extract the capture date embedded in a source file name.

    Args:
        file_name: File name such as ``FURNITURE-20251105.xlsx``

    Returns:
        Date or None if the name carries no valid date
    """
    if not file_name:
        return None
    match = _FILENAME_DATE_PATTERN.search(file_name)
    if not match:
        return None
    try:
        return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
    except ValueError:
        return None

def resolve_capture_date(
    captured_at: Union[date, datetime, str, None] = None,
    file_name: Optional[str] = None,
    today: Optional[date] = None
) -> date:
    """Resolve the capture date of an import.

    Explicit value first, then the date embedded in the file name, then today
    (midnight, i.e. the date part only).
    """
    explicit = convert_to_date(captured_at)
    if explicit:
        return explicit
    from_name = capture_date_from_filename(file_name)
    if from_name:
        return from_name
    return today or date.today()

def add_days(value: date, days: int) -> date:
    return value + timedelta(days=days)
