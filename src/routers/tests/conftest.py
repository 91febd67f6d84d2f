"""Fixtures for API tests: an app on the in-memory store, no Postgres needed."""

from __future__ import annotations

from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from src.config import Settings
from src.main import create_app
from src.sync.memory_store import InMemorySyncStore

JWT_SECRET = "test-secret-with-enough-bytes-for-hs256"


@pytest.fixture
def settings() -> Settings:
    return Settings(storage_backend="memory", auth_enabled=False, environment="test")


@pytest.fixture
def client(settings: Settings) -> Iterator[TestClient]:
    with TestClient(create_app(settings)) as test_client:
        yield test_client


@pytest.fixture
def memory_store(client: TestClient) -> InMemorySyncStore:
    return client.app.state.sync_engine.store


@pytest.fixture
def auth_client() -> Iterator[TestClient]:
    settings = Settings(
        storage_backend="memory",
        auth_enabled=True,
        jwt_secret=JWT_SECRET,
        environment="test",
    )
    with TestClient(create_app(settings)) as test_client:
        yield test_client
