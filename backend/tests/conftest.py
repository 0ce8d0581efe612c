"""
conftest.py — Shared pytest fixtures for the Bayedi Estimator backend test suite.

No database is required. Engine tests run against the in-memory reference
catalog; API tests replace the catalog and dealer lookup dependencies with
in-memory versions and sign tokens with the configured JWT secret.

Import-path bootstrapping:
    The ``backend/`` directory is inserted into sys.path so that all
    ``app.*`` imports resolve correctly regardless of where pytest is invoked.
"""

import sys
import os
import pytest

# ---------------------------------------------------------------------------
# Ensure ``backend/`` is on the import path before any app imports occur.
# ---------------------------------------------------------------------------
_BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)

os.environ.setdefault("LOG_FORMAT", "text")


# ---------------------------------------------------------------------------
# Catalog / engine fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(scope="session")
def seed_catalog():
    """
    StaticCatalog over the reference products.

    BYD100 has six profiles: 10614, 10613, 10624, 10178 run along the width
    (multipliers 1, 0); 10623 and 10622 run up both sides (multipliers 0, 2).
    Accessories: BYD10-114DK and BYD10-113SK (set, 10.00), ZG0256 (piece,
    1.20, zip guide), ZIP-REG-101 (meter, 2.10, zip). WB5-5 is not in the
    catalog.
    """
    from app.db.seed_catalog import SEED_PRODUCTS
    from app.services.catalog_engine import StaticCatalog
    return StaticCatalog(SEED_PRODUCTS)


@pytest.fixture(scope="session")
def pricing_engine(seed_catalog):
    from app.services.pricing_engine import PricingEngine
    return PricingEngine(seed_catalog)


@pytest.fixture
def make_spec():
    """Factory for QuoteItemSpec with BYD100 3000×3000 ×1 defaults."""
    from app.services.pricing_engine import QuoteItemSpec

    def _make(**overrides):
        values = {
            "system_type": "BYD100",
            "width_mm": 3000,
            "height_mm": 3000,
            "quantity": 1,
        }
        values.update(overrides)
        return QuoteItemSpec(**values)

    return _make


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------

DEALER_ID = "5b1f7a52-0d7e-4c59-9a43-1f6f3c1c0001"
OTHER_DEALER_ID = "5b1f7a52-0d7e-4c59-9a43-1f6f3c1c0002"


class _SnapshotCatalog:
    """Stands in for SqlProductCatalog: same snapshot() call, no database."""

    def __init__(self, catalog):
        self.catalog = catalog

    async def snapshot(self, system_type):
        return self.catalog


@pytest.fixture(scope="session")
def client(seed_catalog):
    from fastapi.testclient import TestClient
    from app.main import app
    from app.api.deps import get_dealer_lookup, get_product_catalog
    from app.services.dealer_lookup import StaticDealerLookup
    from app.services.pricing_engine import DealerContext

    dealers = StaticDealerLookup({
        DEALER_ID: DealerContext(profit_margin=15, discount_rate=5),
        OTHER_DEALER_ID: DealerContext(profit_margin=25, discount_rate=0),
    })
    app.dependency_overrides[get_product_catalog] = lambda: _SnapshotCatalog(seed_catalog)
    app.dependency_overrides[get_dealer_lookup] = lambda: dealers
    yield TestClient(app)
    app.dependency_overrides.clear()


def _token(claims):
    from jose import jwt
    from app.api.deps import SECRET_KEY, ALGORITHM
    return jwt.encode(claims, SECRET_KEY, algorithm=ALGORITHM)


@pytest.fixture
def make_headers():
    """Factory: bearer headers for arbitrary token claims."""
    def _make(**claims):
        return {"Authorization": f"Bearer {_token(claims)}"}
    return _make


@pytest.fixture
def other_dealer_id():
    return OTHER_DEALER_ID


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {_token({'sub': 'admin-1', 'role': 'ADMIN'})}"}


@pytest.fixture
def dealer_headers():
    token = _token({"sub": "dealer-user-1", "role": "DEALER", "dealer_id": DEALER_ID})
    return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# Database stand-in for route tests
# ---------------------------------------------------------------------------

class _FakeResult:
    def __init__(self, value):
        self._value = value

    def scalar_one_or_none(self):
        return self._value

    def scalar_one(self):
        return self._value

    def one(self):
        return self._value

    def scalars(self):
        return self

    def all(self):
        return list(self._value or [])


class FakeSession:
    """
    Answers execute() from a queue of prepared results, in call order, and
    records statements and added objects. Enough for routes that load a row,
    change it in memory and flush.
    """

    def __init__(self, *results):
        self.results = list(results)
        self.statements = []
        self.added = []
        self.flushes = 0

    def queue(self, *results):
        self.results.extend(results)

    async def execute(self, stmt):
        self.statements.append(stmt)
        return _FakeResult(self.results.pop(0) if self.results else None)

    def add(self, obj):
        self.added.append(obj)

    async def flush(self):
        self.flushes += 1


@pytest.fixture
def db_session(client):
    """A FakeSession served to every route through get_db, for one test."""
    from app.main import app
    from app.db import get_db

    session = FakeSession()
    app.dependency_overrides[get_db] = lambda: session
    yield session
    app.dependency_overrides.pop(get_db, None)


@pytest.fixture
def dealer_id():
    return DEALER_ID


@pytest.fixture
def make_session():
    """Factory for FakeSession, for service code that takes a session directly."""
    return FakeSession
