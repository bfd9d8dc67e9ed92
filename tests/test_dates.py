"""Tests for document date normalization."""

from datetime import date, datetime

import pytest

from docintake.core.dates import normalize_doc_date
from docintake.core.models import ValueFrequency


@pytest.mark.parametrize("value, frequency, expected", [
    ("2025-07-15", ValueFrequency.DAY, "2025-07-15"),
    ("2025-07-15", ValueFrequency.MONTH, "2025-07-01"),
    ("2025-07-15", ValueFrequency.YEAR, "2025-01-01"),
    ("2025-07-15", ValueFrequency.NONE, "2025-07-15"),
    ("2025-07", ValueFrequency.MONTH, "2025-07-01"),
    ("2025/7", ValueFrequency.MONTH, "2025-07-01"),
    ("2025", ValueFrequency.YEAR, "2025-01-01"),
    (2023, ValueFrequency.YEAR, "2023-01-01"),
    (2023.0, ValueFrequency.YEAR, "2023-01-01"),
    ("15/07/2025", ValueFrequency.DAY, "2025-07-15"),
    ("15-07-2025", ValueFrequency.MONTH, "2025-07-01"),
    ("15.07.2025", ValueFrequency.DAY, "2025-07-15"),
    ("07/2025", ValueFrequency.MONTH, "2025-07-01"),
    ("2025-07-15T10:30:00Z", ValueFrequency.DAY, "2025-07-15"),
    ("julio de 2025", ValueFrequency.MONTH, "2025-07-01"),
    ("Septiembre 2024", ValueFrequency.MONTH, "2024-09-01"),
    (date(2025, 3, 9), ValueFrequency.DAY, "2025-03-09"),
    (datetime(2025, 3, 9, 8, 0), ValueFrequency.MONTH, "2025-03-01"),
])
def test_normalize_doc_date(value, frequency, expected):
    assert normalize_doc_date(value, frequency) == expected


def test_frequency_accepts_plain_strings():
    assert normalize_doc_date("2025-07-15", "month") == "2025-07-01"


def test_month_only_value_with_day_frequency_defaults_to_first():
    assert normalize_doc_date("2025-07", ValueFrequency.DAY) == "2025-07-01"


@pytest.mark.parametrize("value", [
    None,
    "",
    "N/D",
    "2025-13",
    "2025-02-30",
    "31/02/2025",
    "fecha desconocida 2025",
    "marzoo 2025",
    True,
    12,
    {"periodo": "2025-07"},
])
def test_unrecognized_dates_are_none(value):
    assert normalize_doc_date(value, ValueFrequency.MONTH) is None
