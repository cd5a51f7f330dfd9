# backend/catalog_service/catalog/reconcile.py
"""Repair job that brings the search index back in line with the record store.

Every product row is re-upserted and every indexed document whose product no
longer exists is deleted. Running it twice in a row is harmless.
"""

import logging
import threading
from typing import List, Optional

from pydantic import ValidationError as SchemaValidationError

from .converter import to_product_response, to_search_document
from .errors import CatalogError
from .schemas import ReconcileReport
from .search_index import SearchIndex
from .store import RecordStore

logger = logging.getLogger(__name__)


class IndexReconciler:
    def __init__(self, store: RecordStore, index: SearchIndex, batch_size: int = 100):
        self._store = store
        self._index = index
        self.batch_size = batch_size

    def run(self) -> ReconcileReport:
        upserted = 0
        failed: List[str] = []

        for batch in self._store.iter_all(self.batch_size):
            for product in batch:
                try:
                    response = to_product_response(product)
                    self._index.upsert(response.id, to_search_document(response))
                    upserted += 1
                except (CatalogError, SchemaValidationError) as e:
                    logger.error(
                        f"Catalog Service: Reindex failed for product {product.id}: {e}"
                    )
                    failed.append(product.id)

        indexed_ids = list(self._index.iter_ids())
        existing = self._store.existing_ids(indexed_ids)
        deleted: List[str] = []
        for orphan_id in indexed_ids:
            if orphan_id in existing:
                continue
            try:
                self._index.delete_by_id(orphan_id)
                deleted.append(orphan_id)
            except CatalogError as e:
                logger.error(
                    f"Catalog Service: Failed to remove orphaned document {orphan_id}: {e}"
                )
                failed.append(orphan_id)

        report = ReconcileReport(upserted=upserted, deleted=deleted, failed=failed)
        logger.info(
            f"Catalog Service: Index reconciled: {report.upserted} upserted, "
            f"{len(report.deleted)} orphan(s) deleted, {len(report.failed)} failed."
        )
        return report


class ReconcileWorker(threading.Thread):
    """Runs the reconciler every ``interval`` seconds until stopped."""

    def __init__(self, reconciler: IndexReconciler, interval: float):
        super().__init__(name="index-reconciler", daemon=True)
        self._reconciler = reconciler
        self.interval = interval
        self._stop_event = threading.Event()
        self.last_report: Optional[ReconcileReport] = None

    def run(self) -> None:
        while not self._stop_event.wait(self.interval):
            try:
                self.last_report = self._reconciler.run()
            except CatalogError as e:
                logger.error(f"Catalog Service: Scheduled reindex failed: {e}")
            except Exception as e:
                logger.error(
                    f"Catalog Service: Unexpected error during scheduled reindex: {e}",
                    exc_info=True,
                )

    def stop(self) -> None:
        self._stop_event.set()
