# backend/catalog_service/catalog/errors.py
"""Domain error kinds.

Adapters translate each kind into exactly one outward status through a fixed
table; nothing below the adapters knows about HTTP or RPC status codes.
"""

from typing import Any, Optional

from . import messages
from .messages import Message


class CatalogError(Exception):
    kind = "internal"
    default_message: Message = messages.INTERNAL_ERROR

    def __init__(
        self,
        message: Optional[Message] = None,
        detail: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        self.message = message or self.default_message
        self.detail = detail
        self.cause = cause
        super().__init__(self._render())

    def _render(self) -> str:
        text = messages.translate(self.message)
        if self.detail:
            text = f"{text}: {self.detail}"
        if self.cause is not None:
            text = f"{text} ({type(self.cause).__name__}: {self.cause})"
        return text

    def localized(self, language: str) -> str:
        text = messages.translate(self.message, language)
        if self.detail:
            return f"{text}: {self.detail}"
        return text


class ValidationError(CatalogError):
    kind = "validation"
    default_message = messages.INVALID_REQUEST_DATA


class NotFoundError(CatalogError):
    kind = "not_found"
    default_message = messages.PRODUCT_NOT_FOUND


class ConstraintError(CatalogError):
    kind = "constraint"
    default_message = messages.CONSTRAINT_VIOLATION


class IndexDesyncError(CatalogError):
    """The record store committed but the index write failed.

    ``product`` is the committed state, suitable for a later re-upsert.
    """

    kind = "index_desync"
    default_message = messages.FAILED_INSERT_PRODUCT_TO_INDEX

    def __init__(
        self,
        product_id: str,
        operation: str,
        product: Any = None,
        message: Optional[Message] = None,
        cause: Optional[BaseException] = None,
    ):
        self.product_id = product_id
        self.operation = operation
        self.product = product
        super().__init__(
            message=message, detail=f"product {product_id} ({operation})", cause=cause
        )


class InsufficientQuantityError(CatalogError):
    kind = "insufficient_quantity"
    default_message = messages.INSUFFICIENT_PRODUCT_QUANTITY


class AccessDeniedError(CatalogError):
    kind = "access_denied"
    default_message = messages.ACCESS_DENIED


class UnauthenticatedError(CatalogError):
    kind = "unauthenticated"
    default_message = messages.INVALID_CREDENTIALS


class TransportError(CatalogError):
    kind = "transport"
    default_message = messages.DATABASE_UNAVAILABLE


class CancelledError(CatalogError):
    kind = "cancelled"
    default_message = messages.OPERATION_CANCELLED
