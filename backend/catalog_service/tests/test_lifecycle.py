# backend/catalog_service/tests/test_lifecycle.py

import logging
import threading
import uuid
from decimal import Decimal
from unittest.mock import patch

import pytest

from catalog.context import OperationContext
from catalog.errors import (
    CancelledError,
    IndexDesyncError,
    InsufficientQuantityError,
    NotFoundError,
    TransportError,
    ValidationError,
)
from catalog.query import SearchFilters
from conftest import ADMIN_ID

NEW_PRODUCT = {
    "name": "Laptop Pro 14",
    "description": "Lightweight laptop",
    "category": ["laptop", "electronics"],
    "brand": "Acme",
    "color": ["silver", "black"],
    "specs": {"ram": "16GB", "storage": "512GB"},
    "price": "1299.5",
    "quantity": 7,
}


def _cancelled():
    ctx = OperationContext()
    ctx.cancel()
    return ctx


# --- Create ---


def test_create_returns_fresh_id_and_matches_get(products, index):
    first = products.create_product(NEW_PRODUCT, ADMIN_ID)
    second = products.create_product(NEW_PRODUCT, ADMIN_ID)

    assert first.id != second.id
    assert uuid.UUID(first.id)
    assert first.price == Decimal("1299.50")
    assert first.created_by == ADMIN_ID
    assert products.get_product(first.id) == first
    assert index.documents[first.id]["name"] == "Laptop Pro 14"
    assert index.documents[first.id]["price"] == 1299.5


def test_create_with_invalid_request_touches_nothing(products, index):
    with pytest.raises(ValidationError):
        products.create_product({"name": "", "price": -1, "brand": "B"}, ADMIN_ID)

    assert products.list_products().pagination.total_item == 0
    assert index.upsert_calls == 0


def test_create_then_index_failure_reports_desync(products, index):
    index.fail_upserts = 1

    with pytest.raises(IndexDesyncError) as exc_info:
        products.create_product({"name": "X", "price": 10, "brand": "B"}, ADMIN_ID)

    error = exc_info.value
    assert error.operation == "create"
    assert uuid.UUID(error.product_id)
    assert error.product.id == error.product_id
    assert isinstance(error.cause, TransportError)
    # The record store still has the product; the index does not
    assert products.get_product(error.product_id).name == "X"
    assert error.product_id not in index.documents


def test_create_cancelled_before_commit_has_no_effect(products, index):
    with pytest.raises(CancelledError):
        products.create_product(NEW_PRODUCT, ADMIN_ID, _cancelled())

    assert products.list_products().pagination.total_item == 0
    assert index.upsert_calls == 0


def test_create_cancelled_after_commit_still_indexes(products, store, index, caplog):
    ctx = OperationContext()
    commit = store.commit

    def commit_then_cancel(tx):
        commit(tx)
        ctx.cancel()

    with patch.object(store, "commit", side_effect=commit_then_cancel):
        with caplog.at_level(logging.WARNING, logger="catalog.lifecycle"):
            created = products.create_product(NEW_PRODUCT, ADMIN_ID, ctx)

    assert ctx.cancelled
    assert index.documents[created.id]["name"] == "Laptop Pro 14"
    assert products.get_product(created.id) == created
    assert "cancelled after commit" in caplog.text


# --- Update ---


def test_update_only_overwrites_supplied_fields(products, index):
    created = products.create_product(NEW_PRODUCT, ADMIN_ID)

    updated = products.update_product(
        created.id, {"price": "999.99", "color": ["blue"], "description": None}
    )

    assert updated.price == Decimal("999.99")
    assert updated.color == ["blue"]
    assert updated.name == created.name
    assert updated.description == created.description
    assert updated.specs == created.specs
    assert updated.quantity == created.quantity
    assert updated.updated_at >= created.updated_at
    assert products.get_product(created.id) == updated
    assert index.documents[created.id]["price"] == 999.99
    assert index.documents[created.id]["color"] == ["blue"]


def test_update_missing_product_is_not_found_before_validation(products):
    with pytest.raises(NotFoundError):
        products.update_product(str(uuid.uuid4()), {"price": -5})


def test_update_with_invalid_field_leaves_product_unchanged(products):
    created = products.create_product(NEW_PRODUCT, ADMIN_ID)

    with pytest.raises(ValidationError):
        products.update_product(created.id, {"name": "", "quantity": 1})

    assert products.get_product(created.id) == created


def test_update_then_index_failure_reports_desync(products, index):
    created = products.create_product(NEW_PRODUCT, ADMIN_ID)
    index.fail_upserts = 1

    with pytest.raises(IndexDesyncError) as exc_info:
        products.update_product(created.id, {"name": "Renamed"})

    assert exc_info.value.operation == "update"
    assert products.get_product(created.id).name == "Renamed"
    assert index.documents[created.id]["name"] == "Laptop Pro 14"


def test_update_rejects_malformed_id(products):
    with pytest.raises(ValidationError):
        products.update_product("not-a-uuid", {"name": "x"})


# --- Delete ---


def test_delete_removes_row_and_document(products, index):
    created = products.create_product(NEW_PRODUCT, ADMIN_ID)

    products.delete_product(created.id)

    with pytest.raises(NotFoundError):
        products.get_product(created.id)
    assert created.id not in index.documents


def test_delete_blocked_by_index_failure_keeps_row(products, index):
    created = products.create_product(NEW_PRODUCT, ADMIN_ID)
    index.fail_deletes = 1

    with pytest.raises(TransportError):
        products.delete_product(created.id)

    assert products.get_product(created.id).id == created.id
    assert created.id in index.documents


def test_delete_cancelled_before_index_call_keeps_everything(products, index):
    created = products.create_product(NEW_PRODUCT, ADMIN_ID)

    with pytest.raises(CancelledError):
        products.delete_product(created.id, _cancelled())

    assert index.delete_calls == 0
    assert products.get_product(created.id).id == created.id


def test_delete_missing_product_is_not_found(products, index):
    with pytest.raises(NotFoundError):
        products.delete_product(str(uuid.uuid4()))
    assert index.delete_calls == 0


# --- Reads ---


def test_list_defaults_for_non_positive_pagination(products):
    for i in range(12):
        products.create_product(dict(NEW_PRODUCT, name=f"Product {i}"), ADMIN_ID)

    clamped = products.list_products(page=0, limit=0)
    default = products.list_products(page=1, limit=10)

    assert [p.id for p in clamped.data] == [p.id for p in default.data]
    assert clamped.pagination == default.pagination
    assert clamped.pagination.total_item == 12
    assert clamped.pagination.total_page == 2
    assert clamped.pagination.has_next is True
    assert clamped.pagination.has_previous is False


def test_get_products_by_ids(products):
    first = products.create_product(dict(NEW_PRODUCT, name="First"), ADMIN_ID)
    second = products.create_product(dict(NEW_PRODUCT, name="Second"), ADMIN_ID)

    found = products.get_products_by_ids([second.id, str(uuid.uuid4()), first.id])

    assert [p.name for p in found] == ["Second", "First"]
    with pytest.raises(ValidationError):
        products.get_products_by_ids([first.id, "bogus"])


def test_search_compiles_query_and_pages(products, index):
    for i in range(3):
        products.create_product(dict(NEW_PRODUCT, name=f"Product {i}"), ADMIN_ID)

    result = products.search_products(SearchFilters(name="product", page=2, limit=2))

    assert len(result.data) == 1
    assert result.pagination.total_item == 3
    assert result.pagination.current_page == 2
    assert result.pagination.has_next is False
    assert index.queries[-1]["from"] == 2
    assert index.queries[-1]["query"]["bool"]["minimum_should_match"] == 1


def test_search_surfaces_index_failures(products, index):
    index.fail_search = True

    with pytest.raises(TransportError):
        products.search_products(SearchFilters())


# --- Quantity ---


def test_decrease_quantity_and_low_stock_warning(products, caplog):
    created = products.create_product(dict(NEW_PRODUCT, quantity=6), ADMIN_ID)

    with caplog.at_level(logging.WARNING, logger="catalog.lifecycle"):
        assert products.decrease_quantity(created.id, 2) == 4

    assert products.get_product(created.id).quantity == 4
    assert "is low" in caplog.text


@pytest.mark.parametrize("amount", [0, -1, "3", 1.5, True])
def test_decrease_quantity_rejects_non_positive_amounts(products, amount):
    created = products.create_product(NEW_PRODUCT, ADMIN_ID)

    with pytest.raises(ValidationError):
        products.decrease_quantity(created.id, amount)


def test_decrease_quantity_distinguishes_missing_from_insufficient(products):
    created = products.create_product(dict(NEW_PRODUCT, quantity=1), ADMIN_ID)

    with pytest.raises(InsufficientQuantityError):
        products.decrease_quantity(created.id, 2)
    with pytest.raises(NotFoundError):
        products.decrease_quantity(str(uuid.uuid4()), 1)


def test_batch_decrement_reports_partial_failure(products):
    product_a = products.create_product(dict(NEW_PRODUCT, quantity=10), ADMIN_ID)
    missing_b = str(uuid.uuid4())

    outcome = products.decrease_quantities([(product_a.id, 5), (missing_b, 1)])

    assert outcome.success is False
    first, second = outcome.results
    assert (first.product_id, first.success, first.new_quantity) == (product_a.id, True, 5)
    assert second.product_id == missing_b
    assert second.success is False
    assert isinstance(second.error, NotFoundError)
    # Successes are not rolled back by later failures
    assert products.get_product(product_a.id).quantity == 5


def test_batch_decrement_requires_items(products):
    with pytest.raises(ValidationError):
        products.decrease_quantities([])


def test_concurrent_decrements_never_oversell(products):
    created = products.create_product(dict(NEW_PRODUCT, quantity=20), ADMIN_ID)
    successes = []
    failures = []
    lock = threading.Lock()

    def worker():
        try:
            products.decrease_quantity(created.id, 3)
        except InsufficientQuantityError as e:
            with lock:
                failures.append(e)
        else:
            with lock:
                successes.append(3)

    threads = [threading.Thread(target=worker) for _ in range(10)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    final = products.get_product(created.id).quantity
    assert final >= 0
    assert sum(successes) <= 20
    assert final == 20 - sum(successes)
    assert len(successes) == 6
    assert len(failures) == 4
