# backend/catalog_service/catalog/store.py
"""Record store gateway: product and image rows behind explicit transactions."""

import logging
from contextlib import contextmanager
from typing import Iterable, Iterator, List, Optional, Set, Tuple

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload, sessionmaker

from . import messages
from .db import Base
from .errors import (
    ConstraintError,
    InsufficientQuantityError,
    NotFoundError,
    TransportError,
)
from .messages import Message
from .models import Product, ProductImage, utcnow

logger = logging.getLogger(__name__)

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MAX_OFFSET = 2**63 - 1


def clamp_pagination(page: Optional[int], limit: Optional[int]) -> Tuple[int, int]:
    """Non-positive or missing values fall back to page 1, limit 10."""
    if page is None or page <= 0:
        page = DEFAULT_PAGE
    if limit is None or limit <= 0:
        limit = DEFAULT_LIMIT
    return page, limit


@contextmanager
def _database_errors(message: Message, detail: Optional[str] = None):
    try:
        yield
    except IntegrityError as e:
        raise ConstraintError(detail=detail, cause=e) from e
    except SQLAlchemyError as e:
        raise TransportError(message=message, detail=detail, cause=e) from e


class Transaction:
    """One unit of work on the record store.

    Leaving the ``with`` block rolls back unless ``commit`` succeeded; rolling
    back an already committed transaction does nothing. Rows loaded inside the
    block stay readable after it ends.
    """

    def __init__(self, session: Session):
        self.session = session
        self.committed = False

    def commit(self) -> None:
        if self.committed:
            return
        with _database_errors(messages.DATABASE_UNAVAILABLE, "commit"):
            self.session.commit()
        self.committed = True

    def rollback(self) -> None:
        if self.committed:
            return
        self.session.rollback()

    def __enter__(self) -> "Transaction":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        # close() rolls back uncommitted work without expiring loaded rows
        self.session.close()


class RecordStore:
    def __init__(self, engine: Engine, session_factory: sessionmaker):
        self._engine = engine
        self._session_factory = session_factory

    def begin(self) -> Transaction:
        return Transaction(self._session_factory())

    def commit(self, tx: Transaction) -> None:
        tx.commit()

    def rollback(self, tx: Transaction) -> None:
        tx.rollback()

    # --- Products ---

    def find_by_id(self, tx: Transaction, product_id: str) -> Product:
        with _database_errors(messages.FAILED_GET_PRODUCTS, product_id):
            product = (
                tx.session.query(Product)
                .options(selectinload(Product.images))
                .filter(Product.id == product_id)
                .first()
            )
        if product is None:
            raise NotFoundError(messages.PRODUCT_NOT_FOUND, detail=product_id)
        return product

    def find_by_ids(self, tx: Transaction, product_ids: Iterable[str]) -> List[Product]:
        ids = list(dict.fromkeys(product_ids))
        if not ids:
            return []
        with _database_errors(messages.FAILED_GET_PRODUCTS):
            found = (
                tx.session.query(Product)
                .options(selectinload(Product.images))
                .filter(Product.id.in_(ids))
                .all()
            )
        by_id = {product.id: product for product in found}
        return [by_id[product_id] for product_id in ids if product_id in by_id]

    def list_page(
        self, tx: Transaction, limit: int, offset: int
    ) -> Tuple[List[Product], int]:
        if limit <= 0:
            limit = DEFAULT_LIMIT
        if offset < 0:
            offset = 0
        with _database_errors(messages.FAILED_GET_PRODUCTS):
            total = tx.session.query(Product).count()
            if offset > MAX_OFFSET:
                return [], total
            items = (
                tx.session.query(Product)
                .options(selectinload(Product.images))
                .order_by(Product.created_at, Product.id)
                .offset(offset)
                .limit(limit)
                .all()
            )
        return items, total

    def create(self, tx: Transaction, product: Product) -> None:
        with _database_errors(messages.FAILED_CREATE_PRODUCT, product.id):
            tx.session.add(product)
            tx.session.flush()

    def save(self, tx: Transaction, product: Product) -> None:
        with _database_errors(messages.FAILED_UPDATE_PRODUCT, product.id):
            tx.session.add(product)
            tx.session.flush()

    def delete(self, tx: Transaction, product: Product) -> None:
        # Image rows go with the product through the relationship cascade
        with _database_errors(messages.FAILED_DELETE_PRODUCT, product.id):
            tx.session.delete(product)
            tx.session.flush()

    def decrement_quantity(self, tx: Transaction, product_id: str, amount: int) -> int:
        """Atomically take ``amount`` off the stock, never going below zero."""
        with _database_errors(messages.FAILED_DECREASE_PRODUCT_QUANTITY, product_id):
            updated = (
                tx.session.query(Product)
                .filter(Product.id == product_id, Product.quantity >= amount)
                .update(
                    {
                        Product.quantity: Product.quantity - amount,
                        Product.updated_at: utcnow(),
                    },
                    synchronize_session=False,
                )
            )
            if updated == 0:
                exists = (
                    tx.session.query(Product.id).filter(Product.id == product_id).first()
                )
                if exists is None:
                    raise NotFoundError(messages.PRODUCT_NOT_FOUND, detail=product_id)
                raise InsufficientQuantityError(detail=product_id)
            return (
                tx.session.query(Product.quantity)
                .filter(Product.id == product_id)
                .scalar()
            )

    # --- Images ---

    def create_image(self, tx: Transaction, image: ProductImage) -> None:
        with _database_errors(messages.FAILED_UPLOAD_PRODUCT_IMAGES, image.image_object):
            tx.session.add(image)
            tx.session.flush()

    def find_image(self, tx: Transaction, image_id: str) -> ProductImage:
        with _database_errors(messages.FAILED_GET_PRODUCTS, image_id):
            image = (
                tx.session.query(ProductImage)
                .filter(ProductImage.id == image_id)
                .first()
            )
        if image is None:
            raise NotFoundError(messages.IMAGE_NOT_FOUND, detail=image_id)
        return image

    def delete_image(self, tx: Transaction, image: ProductImage) -> None:
        with _database_errors(messages.FAILED_DELETE_IMAGE, image.id):
            tx.session.delete(image)
            tx.session.flush()

    # --- Maintenance ---

    def iter_all(self, batch_size: int = 100) -> Iterator[List[Product]]:
        """Yield every product in stable order, one short transaction per batch."""
        offset = 0
        while True:
            with self.begin() as tx:
                batch, _ = self.list_page(tx, batch_size, offset)
            if not batch:
                return
            yield batch
            offset += len(batch)

    def existing_ids(self, product_ids: Iterable[str]) -> Set[str]:
        ids = list(product_ids)
        if not ids:
            return set()
        with self.begin() as tx:
            with _database_errors(messages.FAILED_GET_PRODUCTS):
                rows = tx.session.query(Product.id).filter(Product.id.in_(ids)).all()
        return {row[0] for row in rows}

    def create_tables(self) -> None:
        Base.metadata.create_all(bind=self._engine)

    def health_check(self) -> bool:
        try:
            with self._engine.connect() as connection:
                connection.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.error(f"Catalog Service: Database health check failed: {e}")
            return False
