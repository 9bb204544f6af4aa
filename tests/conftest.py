"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It pins the environment so settings never point at a real Redis server.
"""

import os

import pytest

# CRITICAL: Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"

os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("RATE_LIMITER_MAX_PER_NUMBER", "3")
os.environ.setdefault("RATE_LIMITER_MAX_PER_ACCOUNT", "5")


class FakeClock:
    """Deterministic clock shared by the store and the service under test."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
