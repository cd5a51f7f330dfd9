# backend/catalog_service/tests/conftest.py

import logging
import os
import tempfile
import uuid
from dataclasses import replace
from decimal import Decimal
from unittest.mock import MagicMock

# Configure the environment before the application modules read it
_TEST_DIR = tempfile.mkdtemp(prefix="catalog-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TEST_DIR, 'import.db')}"
os.environ["ELASTICSEARCH_URL"] = "http://localhost:9200"
os.environ["JWT_SECRET_KEY"] = "test-secret"
os.environ["REQUEST_TIMEOUT_SECONDS"] = "0"
os.environ["RECONCILE_INTERVAL_SECONDS"] = "0"
os.environ["DB_STARTUP_MAX_RETRIES"] = "1"
os.environ.pop("AZURE_STORAGE_ACCOUNT_NAME", None)
os.environ.pop("AZURE_STORAGE_ACCOUNT_KEY", None)

import pytest
from fastapi.testclient import TestClient

from catalog import messages
from catalog.auth import create_access_token
from catalog.config import load_settings
from catalog.container import assemble_services
from catalog.db import build_engine, build_session_factory
from catalog.errors import TransportError
from catalog.main import create_app
from catalog.models import Product, utcnow
from catalog.search_index import SearchIndex
from catalog.storage import BlobStorage
from catalog.store import RecordStore

# Suppress noisy logs from SQLAlchemy/FastAPI during tests for cleaner output
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
logging.getLogger("fastapi").setLevel(logging.WARNING)

ADMIN_ID = "6f1c2a52-8d3e-4d7a-9b61-3f5e2c1d0a11"
CUSTOMER_ID = "0b7e4c9d-2f3a-4e5b-8c6d-1a2b3c4d5e6f"


class FakeSearchIndex(SearchIndex):
    """In-memory index with failure injection; documents are still validated."""

    def __init__(self):
        super().__init__(client=None, index_name="products-test")
        self.documents = {}
        self.queries = []
        self.fail_upserts = 0
        self.fail_deletes = 0
        self.fail_search = False
        self.upsert_calls = 0
        self.delete_calls = 0

    def ensure_index(self):
        return None

    def upsert(self, product_id, document):
        self.upsert_calls += 1
        payload = self._validate(product_id, document)
        if self.fail_upserts > 0:
            self.fail_upserts -= 1
            raise TransportError(messages.FAILED_INSERT_PRODUCT_TO_INDEX, detail=product_id)
        self.documents[product_id] = payload

    def delete_by_id(self, product_id):
        self.delete_calls += 1
        if self.fail_deletes > 0:
            self.fail_deletes -= 1
            raise TransportError(
                messages.FAILED_DELETE_PRODUCT_FROM_INDEX, detail=product_id
            )
        self.documents.pop(product_id, None)

    def search(self, query):
        self.queries.append(query)
        if self.fail_search:
            raise TransportError(messages.FAILED_SEARCH_PRODUCTS)
        documents = list(self.documents.values())
        start = query["from"]
        return documents[start : start + query["size"]], len(documents)

    def iter_ids(self):
        return iter(list(self.documents))

    def health_check(self):
        return True


def build_product(**overrides):
    now = utcnow()
    values = dict(
        id=str(uuid.uuid4()),
        name="Laptop Pro 14",
        description="Lightweight laptop",
        category=["laptop", "electronics"],
        brand="Acme",
        color=["silver"],
        specs={"ram": "16GB", "cpu": "M3"},
        price=Decimal("1299.00"),
        quantity=10,
        created_by=ADMIN_ID,
        created_at=now,
        updated_at=now,
        images=[],
    )
    values.update(overrides)
    return Product(**values)


@pytest.fixture
def settings(tmp_path):
    return replace(
        load_settings(),
        database_url=f"sqlite:///{tmp_path / 'catalog.db'}",
        jwt_secret_key="test-secret",
        request_timeout_seconds=0,
        reconcile_interval_seconds=0,
    )


@pytest.fixture
def store(settings):
    engine = build_engine(settings.database_url)
    record_store = RecordStore(engine, build_session_factory(engine))
    record_store.create_tables()
    yield record_store
    engine.dispose()


@pytest.fixture
def index():
    return FakeSearchIndex()


@pytest.fixture
def blob_client():
    return MagicMock()


@pytest.fixture
def storage(blob_client):
    return BlobStorage(
        blob_client,
        "product-images",
        account_name="catalogtest",
        account_key="dGVzdC1rZXk=",
        sas_expiry_hours=24,
    )


@pytest.fixture
def services(settings, store, index, storage):
    return assemble_services(settings, store, index, storage)


@pytest.fixture
def products(services):
    return services.products


@pytest.fixture
def stored_product(store):
    """Commit one product directly through the record store."""

    def _stored_product(**overrides):
        product = build_product(**overrides)
        with store.begin() as tx:
            store.create(tx, product)
            store.commit(tx)
        return product

    return _stored_product


@pytest.fixture
def client(services):
    with TestClient(create_app(services)) as test_client:
        yield test_client


@pytest.fixture
def admin_headers(settings):
    token = create_access_token(ADMIN_ID, ["admin"], settings.jwt_secret_key)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def customer_headers(settings):
    token = create_access_token(CUSTOMER_ID, ["customer"], settings.jwt_secret_key)
    return {"Authorization": f"Bearer {token}"}
