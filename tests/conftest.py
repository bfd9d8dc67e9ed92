"""Shared fixtures."""

from datetime import datetime, timezone

import pytest

from docintake.core.catalog import load_default_catalog


@pytest.fixture(scope="session")
def catalog():
    """The catalog bundled with the package."""
    return load_default_catalog()


@pytest.fixture
def fixed_now():
    return datetime(2025, 8, 1, 12, 0, tzinfo=timezone.utc)
