"""Shared fixtures for QueryTune tests."""

import os

import pytest

from querytune.advisor.models import ColumnStatistic, RawPredicate
from querytune.advisor.selectivity import InMemoryStatisticsProvider
from querytune.config import AdvisorConfig, reset_config


@pytest.fixture(autouse=True)
def _fresh_config(monkeypatch):
    """Isolate every test from QUERYTUNE_* variables and the cached config."""
    for key in list(os.environ):
        if key.startswith("QUERYTUNE_"):
            monkeypatch.delenv(key, raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def config() -> AdvisorConfig:
    return AdvisorConfig()


@pytest.fixture
def orders_stats() -> InMemoryStatisticsProvider:
    """Statistics for the orders table shared across tests."""
    return InMemoryStatisticsProvider({
        "orders": [
            ColumnStatistic(column="status", distinct_count=5, row_count=100_000),
            ColumnStatistic(column="user_id", distinct_count=10_000, row_count=100_000),
        ],
    })


@pytest.fixture
def orders_predicates() -> list[RawPredicate]:
    """status = 'paid' AND user_id = 42 AND amount > 100."""
    return [
        RawPredicate(column="status", operator="=", value="paid"),
        RawPredicate(column="user_id", operator="=", value=42),
        RawPredicate(column="amount", operator=">", value=100),
    ]
