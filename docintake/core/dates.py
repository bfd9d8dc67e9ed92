"""Document date normalization."""
import re
from datetime import date, datetime
from typing import Any, Optional

from .models import ValueFrequency

_SPANISH_MONTHS = {
    "enero": 1, "febrero": 2, "marzo": 3, "abril": 4, "mayo": 5, "junio": 6,
    "julio": 7, "agosto": 8, "septiembre": 9, "setiembre": 9, "octubre": 10,
    "noviembre": 11, "diciembre": 12,
}

# (pattern, group order) where the order names which of year/month/day each group holds
_DATE_PATTERNS = [
    (re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})(?:[T ].*)?$"), ("y", "m", "d")),
    (re.compile(r"^(\d{4})/(\d{1,2})/(\d{1,2})$"), ("y", "m", "d")),
    (re.compile(r"^(\d{4})[-/](\d{1,2})$"), ("y", "m")),
    (re.compile(r"^(\d{4})$"), ("y",)),
    (re.compile(r"^(\d{1,2})[/.-](\d{1,2})[/.-](\d{4})$"), ("d", "m", "y")),
    (re.compile(r"^(\d{1,2})[/.-](\d{4})$"), ("m", "y")),
]

_MONTH_NAME_PATTERN = re.compile(r"^([a-záéíóú]+)(?:\s+de)?\s+(\d{4})$")


def _parse_parts(value: Any) -> Optional[tuple[int, Optional[int], Optional[int]]]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.year, value.month, value.day
    if isinstance(value, date):
        return value.year, value.month, value.day
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, int):
        return (value, None, None) if 1000 <= value <= 9999 else None
    if not isinstance(value, str):
        return None

    text = value.strip()
    for pattern, order in _DATE_PATTERNS:
        match = pattern.match(text)
        if match:
            parts = dict(zip(order, (int(g) for g in match.groups())))
            return parts["y"], parts.get("m"), parts.get("d")

    match = _MONTH_NAME_PATTERN.match(text.lower())
    if match and match.group(1) in _SPANISH_MONTHS:
        return int(match.group(2)), _SPANISH_MONTHS[match.group(1)], None

    return None


def normalize_doc_date(value: Any, frequency: ValueFrequency | str = ValueFrequency.NONE) -> Optional[str]:
    """Normalize a detected date to YYYY-MM-DD according to the document's frequency.

    year -> YYYY-01-01, month -> YYYY-MM-01, day/none -> the exact date found.
    Missing month or day components default to 1. Unrecognized or impossible
    dates return None.
    """
    parts = _parse_parts(value)
    if parts is None:
        return None

    year, month, day = parts
    try:
        found = date(year, month or 1, day or 1)
    except ValueError:
        return None

    frequency = ValueFrequency(frequency)
    if frequency == ValueFrequency.YEAR:
        found = found.replace(month=1, day=1)
    elif frequency == ValueFrequency.MONTH:
        found = found.replace(day=1)
    return found.isoformat()
