# backend/catalog_service/catalog/container.py
"""Wiring of gateways and use cases, assembled once at process start."""

import logging
from dataclasses import dataclass
from typing import Optional

from elasticsearch import Elasticsearch

from .config import Settings, load_settings
from .db import build_engine, build_session_factory
from .images import ImageService
from .lifecycle import ProductService
from .reconcile import IndexReconciler
from .rpc import ProductRpcHandler
from .search_index import SearchIndex
from .storage import BlobStorage
from .store import RecordStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Services:
    settings: Settings
    store: RecordStore
    index: SearchIndex
    storage: BlobStorage
    products: ProductService
    images: ImageService
    reconciler: IndexReconciler
    rpc: ProductRpcHandler


def build_elasticsearch(settings: Settings) -> Elasticsearch:
    basic_auth = None
    if settings.elasticsearch_username and settings.elasticsearch_password:
        basic_auth = (settings.elasticsearch_username, settings.elasticsearch_password)
    return Elasticsearch(
        settings.elasticsearch_url,
        basic_auth=basic_auth,
        request_timeout=settings.request_timeout_seconds or None,
    )


def assemble_services(
    settings: Settings, store: RecordStore, index: SearchIndex, storage: BlobStorage
) -> Services:
    products = ProductService(store, index)
    return Services(
        settings=settings,
        store=store,
        index=index,
        storage=storage,
        products=products,
        images=ImageService(store, storage),
        reconciler=IndexReconciler(store, index),
        rpc=ProductRpcHandler(products),
    )


def build_services(settings: Optional[Settings] = None) -> Services:
    settings = settings or load_settings()
    engine = build_engine(settings.database_url)
    store = RecordStore(engine, build_session_factory(engine))
    index = SearchIndex(build_elasticsearch(settings), settings.elasticsearch_index)
    logger.info(
        f"Catalog Service: Services assembled (index '{settings.elasticsearch_index}', "
        f"container '{settings.azure_container_name}')."
    )
    return assemble_services(settings, store, index, BlobStorage.from_settings(settings))
