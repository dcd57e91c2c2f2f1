"""Pytest fixtures for dqgrammar tests."""

from __future__ import annotations

from datetime import date, datetime

import polars as pl
import pytest

from dqgrammar.compiler import CompiledRuleSet, compile_rules
from dqgrammar.config import GrammarConfig
from dqgrammar.logging import reset_logging
from dqgrammar.testing import (
    PERSON_RULES,
    GrammarTestContext,
    create_person_dataframe,
    create_sample_dataframe,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Leave no handlers behind between tests."""
    yield
    reset_logging()


@pytest.fixture
def fixed_now() -> datetime:
    """A fixed evaluation timestamp."""
    return datetime(2024, 1, 1, 12, 0, 0)


@pytest.fixture
def config() -> GrammarConfig:
    return GrammarConfig()


@pytest.fixture
def person_rules() -> str:
    return PERSON_RULES


@pytest.fixture
def person_ruleset(person_rules: str) -> CompiledRuleSet:
    return compile_rules(person_rules)


@pytest.fixture
def person_frame() -> pl.DataFrame:
    """John is clean; Gle9 X fails the name checks; R2D2 is born in the future."""
    return create_person_dataframe(
        names=["John", "Gle9 X", "R2D2"],
        birth_dates=[date(1990, 5, 1), date(1985, 1, 1), date(2030, 1, 1)],
    )


@pytest.fixture
def sample_frame() -> pl.DataFrame:
    return create_sample_dataframe(rows=200, include_nulls=True)


@pytest.fixture
def log_capture():
    """Capture package log records at DEBUG level."""
    with GrammarTestContext() as ctx:
        yield ctx
