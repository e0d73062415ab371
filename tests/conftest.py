"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
Environment variables are set before any app import so the process-wide
settings never require a real Steam key or touch the default database file.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("STEAM_SKIP_TICKET_VALIDATION", "true")
os.environ.setdefault("DATABASE_BACKEND", "memory")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest

from app.adapters.storage.in_memory import InMemoryStructureRepository
from app.adapters.storage.sqlite import SqliteStructureRepository
from app.core.config import DatabaseSettings, Settings, SteamSettings, StoreSettings


class FakeClock:
    """Deterministic clock in UNIX seconds."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def time(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store_settings() -> StoreSettings:
    return StoreSettings(
        max_user_structs_saved_per_scene=2,
        max_requested_structs=4,
        default_random_limit=3,
        max_scene_length=16,
        max_payload_bytes=1024,
        max_likes_per_request=100,
        post_structure_rate_limit=1.0,
        get_structure_rate_limit=1.0,
        post_like_rate_limit=1.0,
    )


@pytest.fixture
def test_settings(store_settings: StoreSettings) -> Settings:
    return Settings(
        steam=SteamSettings(skip_ticket_validation=True, appid=480),
        store=store_settings,
        database=DatabaseSettings(backend="memory"),
    )


@pytest.fixture(params=["memory", "sqlite"])
def repository(request, tmp_path):
    """Both repository implementations, so contract tests run against each."""
    if request.param == "memory":
        return InMemoryStructureRepository()
    repo = SqliteStructureRepository(tmp_path / "structures.db")
    repo.apply_schema()
    return repo
