# backend/catalog_service/catalog/config.py

import logging
import os
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(
            f"Catalog Service: Ignoring malformed value {raw!r} for {name}, using {default}."
        )
        return default


@dataclass(frozen=True)
class Settings:
    database_url: str
    elasticsearch_url: str
    elasticsearch_username: Optional[str]
    elasticsearch_password: Optional[str]
    elasticsearch_index: str
    azure_account_name: Optional[str]
    azure_account_key: Optional[str]
    azure_container_name: str
    azure_sas_expiry_hours: int
    jwt_secret_key: str
    jwt_algorithm: str
    admin_role: str
    log_level: str
    db_startup_max_retries: int
    db_startup_retry_delay_seconds: int
    request_timeout_seconds: int
    reconcile_interval_seconds: int

    @property
    def object_storage_enabled(self) -> bool:
        return bool(self.azure_account_name and self.azure_account_key)


def load_settings() -> Settings:
    """Read settings from the environment once, at process start."""
    postgres_user = os.getenv("POSTGRES_USER", "postgres")
    postgres_password = os.getenv("POSTGRES_PASSWORD", "postgres")
    postgres_db = os.getenv("POSTGRES_DB", "products")
    postgres_host = os.getenv("POSTGRES_HOST", "localhost")
    postgres_port = os.getenv("POSTGRES_PORT", "5432")

    database_url = os.getenv("DATABASE_URL") or (
        "postgresql://"
        f"{postgres_user}:{postgres_password}@"
        f"{postgres_host}:{postgres_port}/{postgres_db}"
    )
    # Some hosting providers still hand out the legacy scheme
    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql://", 1)

    return Settings(
        database_url=database_url,
        elasticsearch_url=os.getenv("ELASTICSEARCH_URL", "http://localhost:9200"),
        elasticsearch_username=os.getenv("ELASTICSEARCH_USERNAME") or None,
        elasticsearch_password=os.getenv("ELASTICSEARCH_PASSWORD") or None,
        elasticsearch_index=os.getenv("ELASTICSEARCH_INDEX", "products"),
        azure_account_name=os.getenv("AZURE_STORAGE_ACCOUNT_NAME") or None,
        azure_account_key=os.getenv("AZURE_STORAGE_ACCOUNT_KEY") or None,
        azure_container_name=os.getenv(
            "AZURE_STORAGE_CONTAINER_NAME", "product-images"
        ),
        azure_sas_expiry_hours=_int_env("AZURE_SAS_TOKEN_EXPIRY_HOURS", 24),
        jwt_secret_key=os.getenv("JWT_SECRET_KEY", "change-me"),
        jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
        admin_role=os.getenv("ADMIN_ROLE", "admin"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        db_startup_max_retries=_int_env("DB_STARTUP_MAX_RETRIES", 10),
        db_startup_retry_delay_seconds=_int_env("DB_STARTUP_RETRY_DELAY_SECONDS", 5),
        request_timeout_seconds=_int_env("REQUEST_TIMEOUT_SECONDS", 30),
        reconcile_interval_seconds=_int_env("RECONCILE_INTERVAL_SECONDS", 0),
    )
