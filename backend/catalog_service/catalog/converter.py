# backend/catalog_service/catalog/converter.py

import json
import uuid
from decimal import Decimal
from typing import Any

from .errors import ValidationError
from .messages import Message
from .models import Product
from .schemas import ProductMessage, ProductResponse, SearchDocument


def to_product_response(product: Product) -> ProductResponse:
    return ProductResponse.model_validate(product)


def to_search_document(product: ProductResponse) -> SearchDocument:
    """Project a product onto its index document.

    Nothing is validated here; the index gateway validates before sending.
    """
    return SearchDocument.model_construct(
        id=product.id,
        name=product.name,
        description=product.description,
        category=product.category,
        brand=product.brand,
        color=product.color,
        specs=product.specs,
        price=float(product.price),
        quantity=product.quantity,
        created_by=product.created_by,
        created_at=product.created_at,
        updated_at=product.updated_at,
    )


def _json_text(value: Any) -> str:
    if value is None:
        return ""
    return json.dumps(value, sort_keys=True)


def to_product_message(product: ProductResponse) -> ProductMessage:
    return ProductMessage(
        id=product.id,
        name=product.name,
        description=product.description or "",
        category=_json_text(product.category),
        brand=product.brand,
        color=_json_text(product.color),
        specs=_json_text(product.specs),
        price=float(product.price),
        quantity=product.quantity,
        created_by=product.created_by,
    )


def normalize_price(price: Decimal) -> Decimal:
    return Decimal(price).quantize(Decimal("0.01"))


def parse_uuid(raw: Any, message: Message) -> str:
    """Canonical string form of a UUID, or a validation error."""
    try:
        return str(uuid.UUID(str(raw)))
    except (TypeError, ValueError) as e:
        raise ValidationError(message, detail=str(raw), cause=e) from e
