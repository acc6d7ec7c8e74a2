"""
Pytest configuration and shared fixtures.

Registers the integration marker and --run-integration option, and builds
reconcilers over a throwaway SQLite registry with the sample extraction.
"""

import copy
import os
import tempfile

import pytest
from fastapi.testclient import TestClient

from invoice_reconciler.api.deps import get_reconciler
from invoice_reconciler.api.main import app
from invoice_reconciler.core.config import ClientConfig
from invoice_reconciler.services.extraction_source import SAMPLE_EXTRACTION, StaticExtractionSource
from invoice_reconciler.services.reconciler import InvoiceReconciler
from invoice_reconciler.services.storage import SQLiteRegistryStore


def pytest_addoption(parser):
    """Add custom command-line options"""
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run integration tests against a live backend (BACKEND_BASE_URL)"
    )


def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line(
        "markers",
        "integration: mark test as integration test requiring a live backend"
    )


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless --run-integration is specified"""
    if config.getoption("--run-integration"):
        return

    skip_integration = pytest.mark.skip(reason="need --run-integration option to run")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


@pytest.fixture
def db_path():
    """Create a temporary database file for testing"""
    fd, path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    yield path
    # Cleanup
    if os.path.exists(path):
        os.remove(path)


@pytest.fixture
def registry(db_path):
    return SQLiteRegistryStore(db_path)


@pytest.fixture
def raw_invoice():
    """The Tech Supplies Ltd sample extraction (fresh copy per test)"""
    return copy.deepcopy(SAMPLE_EXTRACTION)


@pytest.fixture
def source(raw_invoice):
    return StaticExtractionSource([raw_invoice])


@pytest.fixture
def reconciler(db_path, registry, source):
    return InvoiceReconciler(ClientConfig(), registry=registry, source=source, db_path=db_path)


@pytest.fixture
def client(reconciler):
    """TestClient whose routes use the test reconciler"""
    app.dependency_overrides[get_reconciler] = lambda: reconciler
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def register_items(registry):
    """Register the sample invoice's products by code"""
    names = {"1": "Laptop Dell XPS 15", "2": "Monitor UltraWide 34\"", "3": "Wireless Keyboard"}

    def register(codes=("1", "2", "3")):
        for code in codes:
            registry.create_entry("product", names[code], code)
    return register
