# backend/catalog_service/tests/test_reconcile.py

import logging
import threading
import uuid
from unittest.mock import MagicMock

import pytest

from catalog.errors import IndexDesyncError
from catalog.reconcile import IndexReconciler, ReconcileWorker
from catalog.schemas import ReconcileReport
from conftest import ADMIN_ID

PRODUCT = {"name": "Desk Lamp", "brand": "Lumen", "price": "39.90", "quantity": 12}


def test_reconcile_repairs_a_desynced_create(services, index):
    index.fail_upserts = 1
    with pytest.raises(IndexDesyncError) as exc_info:
        services.products.create_product(PRODUCT, ADMIN_ID)
    product_id = exc_info.value.product_id
    assert product_id not in index.documents

    report = services.reconciler.run()

    assert report.upserted == 1
    assert report.failed == []
    assert index.documents[product_id]["name"] == "Desk Lamp"


def test_reconcile_removes_orphaned_documents(services, index):
    kept = services.products.create_product(PRODUCT, ADMIN_ID)
    orphan_id = str(uuid.uuid4())
    index.documents[orphan_id] = {"id": orphan_id}

    report = services.reconciler.run()

    assert report.deleted == [orphan_id]
    assert set(index.documents) == {kept.id}


def test_reconcile_reports_failures_and_is_repeatable(services, index):
    created = services.products.create_product(PRODUCT, ADMIN_ID)
    index.fail_upserts = 1

    first = services.reconciler.run()
    second = services.reconciler.run()

    assert first.failed == [created.id]
    assert first.upserted == 0
    assert second.failed == []
    assert second.upserted == 1


def test_reconcile_refreshes_stale_documents_after_decrement(services, index):
    created = services.products.create_product(PRODUCT, ADMIN_ID)
    services.products.decrease_quantity(created.id, 5)
    assert index.documents[created.id]["quantity"] == 12

    IndexReconciler(services.store, index, batch_size=1).run()

    assert index.documents[created.id]["quantity"] == 7


def test_worker_runs_periodically_until_stopped(services, index):
    services.products.create_product(PRODUCT, ADMIN_ID)
    ran = threading.Event()
    reconciler = services.reconciler
    original_run = reconciler.run

    def tracking_run():
        report = original_run()
        ran.set()
        return report

    reconciler.run = tracking_run
    worker = ReconcileWorker(reconciler, interval=0.01)
    worker.start()
    try:
        assert ran.wait(timeout=5)
    finally:
        worker.stop()
        worker.join(timeout=5)

    assert not worker.is_alive()
    assert worker.last_report is not None


def test_reconcile_skips_rows_that_cannot_be_projected(services, index, stored_product):
    broken = stored_product(specs=["not", "a", "mapping"])
    kept = services.products.create_product(PRODUCT, ADMIN_ID)
    index.documents.clear()

    report = services.reconciler.run()

    assert report.failed == [broken.id]
    assert report.upserted == 1
    assert set(index.documents) == {kept.id}


def test_worker_survives_unexpected_errors(caplog):
    calls = []
    recovered = threading.Event()

    def flaky_run():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("boom")
        recovered.set()
        return ReconcileReport(upserted=0, deleted=[], failed=[])

    reconciler = MagicMock()
    reconciler.run.side_effect = flaky_run
    worker = ReconcileWorker(reconciler, interval=0.01)
    with caplog.at_level(logging.ERROR, logger="catalog.reconcile"):
        worker.start()
        try:
            assert recovered.wait(timeout=5)
        finally:
            worker.stop()
            worker.join(timeout=5)

    assert worker.last_report == ReconcileReport(upserted=0, deleted=[], failed=[])
    assert "Unexpected error during scheduled reindex" in caplog.text
