"""Shared fixtures for the plancheck test suite."""

import os

import pytest

from plancheck.config import reset_config
from plancheck.observability import MemorySink


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch: pytest.MonkeyPatch):
    """Run every test against a clean environment and an empty config cache."""
    for key in list(os.environ):
        if key.startswith("PLANCHECK_"):
            monkeypatch.delenv(key, raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def sink() -> MemorySink:
    return MemorySink()
