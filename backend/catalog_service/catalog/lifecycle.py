# backend/catalog_service/catalog/lifecycle.py
"""Product use cases and the record store / index consistency protocol.

Create and update commit to the record store first and then upsert the index;
an index failure at that point is reported as ``IndexDesyncError`` while the
committed row stays. Delete removes the index document before committing, so a
failing index aborts the delete and both stores keep the product.
"""

import logging
import math
import uuid
from dataclasses import dataclass, field
from typing import (
    Any,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    Type,
    TypeVar,
    Union,
)

from pydantic import BaseModel
from pydantic import ValidationError as SchemaValidationError

from . import messages
from .context import OperationContext
from .converter import (
    normalize_price,
    parse_uuid,
    to_product_response,
    to_search_document,
)
from .errors import (
    CatalogError,
    IndexDesyncError,
    TransportError,
    ValidationError,
)
from .messages import Message
from .models import Product, utcnow
from .query import SearchFilters, compile_query
from .schemas import (
    PageMetadata,
    ProductCreate,
    ProductPage,
    ProductResponse,
    ProductUpdate,
    SearchResultPage,
)
from .search_index import SearchIndex
from .store import RecordStore, clamp_pagination

logger = logging.getLogger(__name__)

LOW_STOCK_THRESHOLD = 5

ModelT = TypeVar("ModelT", bound=BaseModel)


def validate_payload(
    model: Type[ModelT], payload: Union[ModelT, Mapping[str, Any]]
) -> ModelT:
    if isinstance(payload, model):
        return payload
    try:
        return model.model_validate(payload)
    except SchemaValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or 'body'}: {error['msg']}"
            for error in e.errors()
        )
        raise ValidationError(messages.INVALID_REQUEST_DATA, detail=problems, cause=e) from e


def page_metadata(page: int, page_size: int, total_item: int) -> PageMetadata:
    total_page = math.ceil(total_item / page_size) if page_size > 0 else 0
    return PageMetadata(
        current_page=page,
        page_size=page_size,
        total_page=total_page,
        total_item=total_item,
        has_next=page < total_page,
        has_previous=page > 1,
    )


@dataclass(frozen=True)
class QuantityOutcome:
    product_id: str
    success: bool
    new_quantity: int = 0
    error: Optional[CatalogError] = None


@dataclass(frozen=True)
class BatchQuantityOutcome:
    success: bool
    results: List[QuantityOutcome] = field(default_factory=list)


class ProductService:
    def __init__(self, store: RecordStore, index: SearchIndex):
        self._store = store
        self._index = index

    # --- Reads ---

    def list_products(
        self,
        page: Optional[int] = None,
        limit: Optional[int] = None,
        ctx: Optional[OperationContext] = None,
    ) -> ProductPage:
        ctx = ctx or OperationContext()
        page, limit = clamp_pagination(page, limit)
        ctx.check("list products")
        with self._store.begin() as tx:
            items, total = self._store.list_page(tx, limit, (page - 1) * limit)
            data = [to_product_response(product) for product in items]
        logger.info(
            f"Catalog Service: Listed {len(data)} of {total} products (page={page}, limit={limit})."
        )
        return ProductPage(data=data, pagination=page_metadata(page, limit, total))

    def get_product(
        self, product_id: Any, ctx: Optional[OperationContext] = None
    ) -> ProductResponse:
        ctx = ctx or OperationContext()
        product_id = parse_uuid(product_id, messages.INVALID_PRODUCT_ID_FORMAT)
        ctx.check("get product")
        with self._store.begin() as tx:
            return to_product_response(self._store.find_by_id(tx, product_id))

    def get_products_by_ids(
        self, product_ids: Sequence[Any], ctx: Optional[OperationContext] = None
    ) -> List[ProductResponse]:
        ctx = ctx or OperationContext()
        ids = [parse_uuid(raw, messages.INVALID_PRODUCT_ID_FORMAT) for raw in product_ids]
        ctx.check("get products")
        with self._store.begin() as tx:
            return [to_product_response(p) for p in self._store.find_by_ids(tx, ids)]

    def search_products(
        self, filters: SearchFilters, ctx: Optional[OperationContext] = None
    ) -> SearchResultPage:
        ctx = ctx or OperationContext()
        query = compile_query(filters)
        ctx.check("search products")
        documents, total = self._index.search(query)
        return SearchResultPage(
            data=documents,
            pagination=page_metadata(
                filters.effective_page, filters.effective_size, total
            ),
        )

    # --- Writes ---

    def create_product(
        self,
        request: Union[ProductCreate, Mapping[str, Any]],
        created_by: str,
        ctx: Optional[OperationContext] = None,
    ) -> ProductResponse:
        ctx = ctx or OperationContext()
        request = validate_payload(ProductCreate, request)
        now = utcnow()
        product = Product(
            id=str(uuid.uuid4()),
            name=request.name,
            description=request.description,
            category=request.category,
            brand=request.brand,
            color=request.color,
            specs=request.specs,
            price=normalize_price(request.price),
            quantity=request.quantity,
            created_by=str(created_by),
            created_at=now,
            updated_at=now,
            images=[],
        )
        logger.info(f"Catalog Service: Creating product: {product.name}")

        with self._store.begin() as tx:
            ctx.check("create product")
            try:
                self._store.create(tx, product)
                ctx.check("commit product")
                self._store.commit(tx)
            except CatalogError as e:
                logger.error(f"Catalog Service: Error creating product {product.name}: {e}")
                raise

        response = to_product_response(product)
        logger.info(
            f"Catalog Service: Product '{response.name}' (ID: {response.id}) created successfully."
        )
        self._sync_index(response, "create", messages.FAILED_INSERT_PRODUCT_TO_INDEX, ctx)
        return response

    def update_product(
        self,
        product_id: Any,
        request: Union[ProductUpdate, Mapping[str, Any]],
        ctx: Optional[OperationContext] = None,
    ) -> ProductResponse:
        ctx = ctx or OperationContext()
        product_id = parse_uuid(product_id, messages.INVALID_PRODUCT_ID_FORMAT)

        with self._store.begin() as tx:
            ctx.check("load product")
            product = self._store.find_by_id(tx, product_id)
            request = validate_payload(ProductUpdate, request)

            changes = request.model_dump(exclude_unset=True, exclude_none=True)
            if "price" in changes:
                changes["price"] = normalize_price(changes["price"])
            logger.info(f"Catalog Service: Updating product {product_id} with data: {changes}")
            for key, value in changes.items():
                setattr(product, key, value)
            product.updated_at = utcnow()

            try:
                self._store.save(tx, product)
                ctx.check("commit product")
                self._store.commit(tx)
            except CatalogError as e:
                logger.error(f"Catalog Service: Error updating product {product_id}: {e}")
                raise
            response = to_product_response(product)

        logger.info(f"Catalog Service: Product {product_id} updated successfully.")
        self._sync_index(response, "update", messages.FAILED_UPDATE_PRODUCT_IN_INDEX, ctx)
        return response

    def delete_product(
        self, product_id: Any, ctx: Optional[OperationContext] = None
    ) -> None:
        ctx = ctx or OperationContext()
        product_id = parse_uuid(product_id, messages.INVALID_PRODUCT_ID_FORMAT)
        logger.info(f"Catalog Service: Attempting to delete product with ID: {product_id}")

        with self._store.begin() as tx:
            ctx.check("load product")
            product = self._store.find_by_id(tx, product_id)
            self._store.delete(tx, product)
            ctx.check("delete indexed document")
            try:
                self._index.delete_by_id(product_id)
            except TransportError as e:
                logger.error(
                    f"Catalog Service: Index delete failed, keeping product {product_id}: {e}"
                )
                raise
            try:
                self._store.commit(tx)
            except CatalogError as e:
                # The document is already gone; the repair job re-indexes the row
                logger.error(
                    f"Catalog Service: Commit failed after index delete for product {product_id}: {e}",
                    exc_info=True,
                )
                raise

        logger.info(f"Catalog Service: Product {product_id} deleted successfully.")

    def _sync_index(
        self,
        response: ProductResponse,
        operation: str,
        message: Message,
        ctx: OperationContext,
    ) -> None:
        if ctx.cancelled:
            logger.warning(
                f"Catalog Service: Operation cancelled after commit, indexing product {response.id} anyway."
            )
        try:
            self._index.upsert(response.id, to_search_document(response))
        except (TransportError, ValidationError) as e:
            logger.error(
                f"Catalog Service: Product {response.id} committed but not indexed ({operation}): {e}"
            )
            raise IndexDesyncError(
                response.id, operation, product=response, message=message, cause=e
            ) from e

    # --- Stock ---

    def decrease_quantity(
        self, product_id: Any, amount: Any, ctx: Optional[OperationContext] = None
    ) -> int:
        ctx = ctx or OperationContext()
        product_id = parse_uuid(product_id, messages.INVALID_PRODUCT_ID_FORMAT)
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValidationError(messages.INVALID_QUANTITY, detail=str(amount))

        with self._store.begin() as tx:
            ctx.check("decrease quantity")
            try:
                new_quantity = self._store.decrement_quantity(tx, product_id, amount)
                ctx.check("commit quantity")
                self._store.commit(tx)
            except CatalogError as e:
                logger.warning(
                    f"Catalog Service: Stock deduction failed for product {product_id}: {e}"
                )
                raise

        logger.info(
            f"Catalog Service: Stock for product {product_id} updated to {new_quantity}. Deducted {amount}."
        )
        if new_quantity < LOW_STOCK_THRESHOLD:
            logger.warning(
                f"Catalog Service: ALERT! Stock for product {product_id} is low: {new_quantity}."
            )
        return new_quantity

    def decrease_quantities(
        self,
        items: Iterable[Tuple[Any, Any]],
        ctx: Optional[OperationContext] = None,
    ) -> BatchQuantityOutcome:
        """Decrease each item independently; a failed item never undoes the others."""
        ctx = ctx or OperationContext()
        items = list(items)
        if not items:
            raise ValidationError(messages.NO_PRODUCT_ITEMS)

        results: List[QuantityOutcome] = []
        for product_id, amount in items:
            try:
                new_quantity = self.decrease_quantity(product_id, amount, ctx)
            except CatalogError as e:
                results.append(
                    QuantityOutcome(product_id=str(product_id), success=False, error=e)
                )
                continue
            results.append(
                QuantityOutcome(
                    product_id=str(product_id), success=True, new_quantity=new_quantity
                )
            )

        return BatchQuantityOutcome(
            success=all(result.success for result in results), results=results
        )
