import os

# Keep test runs from writing app.log into the working directory
os.environ.setdefault("LOG_FILE_PATH", "")

import pytest
from fastapi.testclient import TestClient
import logging

from floor_tracker.main import app
from floor_tracker.api.endpoints import get_store
from floor_tracker.core.config import settings
from floor_tracker.core.exceptions import StoreError


class InMemoryStore:
    """Stands in for SheetsStore: same async read/append/update contract, rows kept in a list."""

    def __init__(self, rows=None):
        self.rows = [list(r) for r in rows or []]
        self.fail = False
        self.append_calls = 0
        self.update_calls = 0

    def _check(self):
        if self.fail:
            raise StoreError("store unavailable")

    async def read(self):
        self._check()
        return [list(r) for r in self.rows]

    async def append(self, rows):
        self._check()
        self.append_calls += 1
        self.rows.extend(list(r) for r in rows)

    async def update(self, rows):
        self._check()
        self.update_calls += 1
        self.rows = [list(r) for r in rows]

    async def aclose(self):
        pass


@pytest.fixture(autouse=True)
def setup_test_logging():
    """
    Sets logging to CRITICAL to suppress most output during tests.
    """
    test_log_handler = logging.StreamHandler()
    test_log_handler.setLevel(logging.DEBUG)

    root_logger = logging.getLogger()
    original_level = root_logger.level
    original_handlers = root_logger.handlers[:]

    root_logger.handlers = [test_log_handler]
    root_logger.setLevel(logging.CRITICAL)

    for name in logging.root.manager.loggerDict:
        if name.startswith('floor_tracker'):
            logging.getLogger(name).setLevel(logging.CRITICAL)

    yield

    root_logger.setLevel(original_level)
    root_logger.handlers = original_handlers
    for name in logging.root.manager.loggerDict:
        if name.startswith('floor_tracker'):
            logging.getLogger(name).setLevel(logging.NOTSET)


@pytest.fixture(name="store")
def store_fixture():
    return InMemoryStore()


@pytest.fixture(name="client")
def client_fixture(store, monkeypatch):
    app.dependency_overrides[get_store] = lambda: store

    # No background loops while the API is under test
    monkeypatch.setattr(settings, "SAMPLER_ENABLED", False)
    monkeypatch.setattr(settings, "BACKFILL_INTERVAL_SECONDS", 0)

    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
