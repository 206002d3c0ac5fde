"""
Pytest fixtures for the bar management backend.

Every test gets a fresh in-memory LocalStore; the API client is wired to it
through a dependency override, so nothing touches disk or MongoDB.
"""

import pytest
from fastapi.testclient import TestClient

import main
from database import LocalStore
from schemas import ArticleCreate
from services import BarServices


@pytest.fixture
def store():
    return LocalStore()


@pytest.fixture
def services(store):
    return BarServices(store)


@pytest.fixture
def client(store):
    main.app.dependency_overrides[main.get_store] = lambda: store
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


@pytest.fixture
def beer(services):
    """Article{stock:50, price_bar:1000, price_snackbar:1200}."""
    return services.catalog.create(
        ArticleCreate(name="Bière Régab", category="Boissons", price_bar=1000,
                      price_snackbar=1200, stock=50, unit="bouteille"),
        actor="patron",
    )


@pytest.fixture
def cola(services):
    return services.catalog.create(
        ArticleCreate(name="Coca-Cola", category="Boissons", price_bar=500,
                      price_snackbar=600, stock=5, unit="canette"),
        actor="patron",
    )


@pytest.fixture
def table(services):
    return services.tables.create("Terrasse 1", actor="patron")
