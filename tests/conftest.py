"""
Shared fixtures: every store-level test runs against both backends.
"""

import logging
import os

import pytest
import structlog

from service_billing.storage.store import InMemoryDocumentStore, SQLiteDocumentStore


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    """A fresh, empty document store."""
    if request.param == "memory":
        return InMemoryDocumentStore()
    return SQLiteDocumentStore(os.path.join(str(tmp_path), "test.db"))


@pytest.fixture(autouse=True)
def reset_logging():
    """Undo any setup_logging() call made by a test."""
    yield
    structlog.reset_defaults()
    for handler in logging.root.handlers[:]:
        logging.root.removeHandler(handler)
