# backend/catalog_service/catalog/main.py

import logging
import sys
import time
from typing import Optional

from fastapi import FastAPI, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import OperationalError

from . import api, rpc
from .config import load_settings
from .container import Services, build_services
from .errors import TransportError
from .reconcile import ReconcileWorker

# --- Standard Logging Configuration ---
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)

# Suppress noisy logs from third-party libraries for cleaner output
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
logging.getLogger("uvicorn.error").setLevel(logging.INFO)
logging.getLogger("elasticsearch").setLevel(logging.WARNING)
logging.getLogger("elastic_transport").setLevel(logging.WARNING)
logging.getLogger("azure").setLevel(logging.WARNING)


def prepare_backends(services: Services) -> None:
    """Create tables and the search index, retrying while the database starts."""
    settings = services.settings
    max_retries = max(settings.db_startup_max_retries, 1)
    retry_delay_seconds = settings.db_startup_retry_delay_seconds
    for i in range(max_retries):
        try:
            logger.info(
                f"Catalog Service: Attempting to connect to the database and create tables (attempt {i+1}/{max_retries})..."
            )
            services.store.create_tables()
            logger.info(
                "Catalog Service: Successfully connected to the database and ensured tables exist."
            )
            break
        except OperationalError as e:
            logger.warning(f"Catalog Service: Failed to connect to the database: {e}")
            if i < max_retries - 1:
                logger.info(
                    f"Catalog Service: Retrying in {retry_delay_seconds} seconds..."
                )
                time.sleep(retry_delay_seconds)
            else:
                logger.critical(
                    f"Catalog Service: Failed to connect to the database after {max_retries} attempts. Exiting application."
                )
                sys.exit(1)

    try:
        services.index.ensure_index()
    except TransportError as e:
        # Reads from the record store still work; search recovers with the index
        logger.error(f"Catalog Service: Could not ensure the search index: {e}")
    try:
        services.storage.ensure_container()
    except TransportError as e:
        logger.warning(f"Catalog Service: Could not verify the image container: {e}")


def create_app(services: Optional[Services] = None) -> FastAPI:
    """Build the application. Services are assembled from the environment unless given."""
    if services is None:
        services = build_services(load_settings())
    logging.getLogger("catalog").setLevel(services.settings.log_level)

    app = FastAPI(
        title="Catalog Service API",
        description="Product catalog backed by a relational store and a search index.",
        version="1.0.0",
    )
    app.state.services = services
    app.state.reconcile_worker = None

    # Enable CORS (for frontend dev/testing)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Use specific origins in production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    api.register_exception_handlers(app)
    app.include_router(api.router)
    app.include_router(api.admin_router)
    app.include_router(rpc.router)

    @app.on_event("startup")
    def startup_event():
        prepare_backends(services)
        interval = services.settings.reconcile_interval_seconds
        if interval > 0:
            worker = ReconcileWorker(services.reconciler, interval)
            worker.start()
            app.state.reconcile_worker = worker
            logger.info(
                f"Catalog Service: Index reconciliation scheduled every {interval} seconds."
            )

    @app.on_event("shutdown")
    def shutdown_event():
        worker = app.state.reconcile_worker
        if worker is not None:
            worker.stop()

    # --- Root Endpoint ---
    @app.get("/", status_code=status.HTTP_200_OK, summary="Root endpoint")
    async def read_root():
        return {"message": "Welcome to the Catalog Service!"}

    # --- Health Check Endpoint ---
    @app.get("/health", status_code=status.HTTP_200_OK, summary="Health check endpoint")
    def health_check():
        return {
            "status": "ok",
            "service": "catalog-service",
            "database": "ok" if services.store.health_check() else "unavailable",
            "search": "ok" if services.index.health_check() else "unavailable",
        }

    return app


app = create_app()
