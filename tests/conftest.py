"""Shared test configuration and fixtures."""

import os
from datetime import datetime

import pytest

CONFIG_DIR = os.path.join(os.path.dirname(__file__), '..', 'config')


@pytest.fixture
def companies_config():
    return os.path.join(CONFIG_DIR, 'companies.json')


@pytest.fixture
def fixed_now():
    """A fixed "current" instant so defaults are deterministic."""
    return datetime(2023, 8, 15, 10, 30, 0)

