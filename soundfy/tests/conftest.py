"""
Root test configuration and fixtures.

Provides database fixtures, shops and a fake Shopify GraphQL API that can
be used by all tests.

Jobs commit and roll back for real (per batch, per lock), so each test
gets its own in-memory database instead of an outer transaction that is
rolled back at the end.
"""

import json
import os
from typing import Any, Dict, Generator, List, Optional, Tuple

import httpx
import pytest
from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment
os.environ.setdefault("ENV", "test")
os.environ.setdefault("ENCRYPTION_KEY", "test-encryption-key-for-soundfy")
os.environ.setdefault("SHOPIFY_API_SECRET", "test-webhook-secret")

from soundfy.config.settings import reset_settings  # noqa: E402
from soundfy.integrations.shopify.client import ShopifyGraphQLClient  # noqa: E402
from soundfy.jobs.backend import set_job_backend  # noqa: E402
from soundfy.platform.secrets import reset_secrets_manager  # noqa: E402

WEBHOOK_SECRET = "test-webhook-secret"


def _get_test_database_url() -> str:
    """Get database URL for tests."""
    database_url = os.getenv("TEST_DATABASE_URL")

    if database_url:
        if database_url.startswith("postgres://"):
            database_url = database_url.replace("postgres://", "postgresql+psycopg://", 1)
        return database_url

    # Default to SQLite for unit tests if no PostgreSQL available
    return "sqlite://"


def _is_postgres() -> bool:
    return _get_test_database_url().startswith("postgresql")


@pytest.fixture(autouse=True)
def _reset_singletons(monkeypatch):
    """Fresh settings, secrets and job backend for every test."""
    monkeypatch.setenv("SHOPIFY_API_SECRET", WEBHOOK_SECRET)
    reset_settings()
    reset_secrets_manager()
    yield
    set_job_backend(None)
    reset_settings()
    reset_secrets_manager()


@pytest.fixture
def db_engine():
    """
    Create database engine for tests.

    Uses PostgreSQL if TEST_DATABASE_URL is set, otherwise SQLite in-memory.
    """
    database_url = _get_test_database_url()

    if _is_postgres():
        try:
            engine = create_engine(database_url, pool_pre_ping=True)
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception as e:
            pytest.skip(f"PostgreSQL not available. Error: {e}")
    else:
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

        # pysqlite needs explicit BEGIN for SAVEPOINT support; also enforce FKs
        @event.listens_for(engine, "connect")
        def _on_connect(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(engine, "begin")
        def _on_begin(conn):
            conn.exec_driver_sql("BEGIN")

    # Import and create all tables
    from soundfy.db_base import Base
    import soundfy.models  # noqa: F401

    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def postgres_session_factory(session_factory):
    """
    Session factory for tests that need real row locks.

    SQLite ignores FOR UPDATE, so these tests only run against TEST_DATABASE_URL.
    """
    if not _is_postgres():
        pytest.skip("Row lock tests need PostgreSQL (set TEST_DATABASE_URL)")
    return session_factory


@pytest.fixture
def db_session(session_factory) -> Generator[Session, None, None]:
    """Database session for one test."""
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def make_shop(db_session):
    """
    Factory fixture that persists an installed shop.

    Usage:
        shop = make_shop("a.myshopify.com")
    """
    from soundfy.models.shop import Shop

    def _make(domain: str, access_token: str = "shpat_test_token") -> Shop:
        shop = Shop(shopify_domain=domain, access_scopes="write_products")
        shop.set_access_token(access_token)
        db_session.add(shop)
        db_session.commit()
        return shop

    return _make


@pytest.fixture
def shop_a(make_shop):
    return make_shop("shop-a.myshopify.com")


@pytest.fixture
def shop_b(make_shop):
    return make_shop("shop-b.myshopify.com")


# =============================================================================
# Fake Shopify GraphQL API
# =============================================================================

def connection_body(key: str, nodes: List[Dict[str, Any]], end_cursor: Optional[str], has_next_page: bool) -> dict:
    """GraphQL response body for one page of a connection."""
    return {
        "data": {
            key: {
                "nodes": nodes,
                "pageInfo": {"hasNextPage": has_next_page, "endCursor": end_cursor},
            }
        }
    }


class FakeShopifyAPI:
    """
    Serves a fixed list of pages for one connection.

    Page i is returned for after=None (i == 0) or after=<end cursor of page
    i - 1>. Page indexes listed in fail_pages answer with HTTP 503 until
    removed.
    """

    def __init__(self, key: str, pages: List[Tuple[List[Dict[str, Any]], Optional[str], bool]]):
        self.key = key
        self.pages = pages
        self.fail_pages = set()
        self.requests: List[Dict[str, Any]] = []
        self.headers: List[httpx.Headers] = []

    def _index_for(self, after: Optional[str]) -> int:
        if after is None:
            return 0
        for index, (_, end_cursor, _) in enumerate(self.pages):
            if end_cursor == after:
                return index + 1
        raise AssertionError(f"Unexpected cursor {after!r}")

    def handler(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        variables = payload.get("variables") or {}
        self.requests.append(variables)
        self.headers.append(request.headers)

        index = self._index_for(variables.get("after"))
        if index in self.fail_pages:
            return httpx.Response(503, text="Service Unavailable")

        nodes, end_cursor, has_next_page = self.pages[index]
        return httpx.Response(200, json=connection_body(self.key, nodes, end_cursor, has_next_page))

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def client_factory(self, session) -> ShopifyGraphQLClient:
        return ShopifyGraphQLClient(session, transport=self.transport)

    @property
    def cursors_requested(self) -> List[Optional[str]]:
        return [variables.get("after") for variables in self.requests]


def product_node(number: int, variants: int = 1) -> Dict[str, Any]:
    """A product node as the products query returns it (camelCase)."""
    return {
        "id": f"gid://shopify/Product/{number}",
        "title": f"Product {number}",
        "status": "ACTIVE",
        "featuredImage": {"url": f"https://cdn.example.com/{number}.jpg"},
        "variants": {
            "nodes": [
                {"id": f"gid://shopify/ProductVariant/{number}{v}", "title": f"Variant {v}"}
                for v in range(variants)
            ]
        },
    }


def product_pages(count: int, page_size: int) -> List[Tuple[List[Dict[str, Any]], Optional[str], bool]]:
    """Split count products into pages with cursors c1, c2, ..."""
    pages = []
    numbers = list(range(1, count + 1))
    chunks = [numbers[i:i + page_size] for i in range(0, count, page_size)]
    for index, chunk in enumerate(chunks):
        has_next = index < len(chunks) - 1
        pages.append(([product_node(n) for n in chunk], f"c{index + 1}", has_next))
    return pages


@pytest.fixture
def make_api():
    """
    Factory fixture for fake connection APIs.

    Usage:
        api = make_api("collections", [([{"id": "gid://shopify/Collection/1", "title": "A"}], "c1", False)])
    """
    return FakeShopifyAPI


@pytest.fixture
def make_product_pages():
    """product_pages(count, page_size) as a fixture."""
    return product_pages


@pytest.fixture
def products_api(monkeypatch):
    """Ten products served two per page (cursors c1..c5), batch size set to match."""
    monkeypatch.setenv("SYNC_PRODUCTS_BATCH_SIZE", "2")
    reset_settings()
    return FakeShopifyAPI("products", product_pages(10, 2))


# =============================================================================
# Markers
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "security: mark test as security-focused")
