# backend/catalog_service/catalog/rpc.py
"""Internal service-to-service surface (product lookups and stock decrements).

Methods are served as JSON over HTTP at ``/rpc/product.ProductService/<Method>``.
Failures come back as ``{"code": <status name>, "message": ...}``.
"""

import logging
from typing import Any, Dict, Optional, Type

from fastapi import APIRouter, Body, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from . import messages
from .context import OperationContext
from .converter import to_product_message
from .errors import CatalogError
from .lifecycle import ProductService, validate_payload
from .schemas import (
    DecreaseQuantityByIdsRequest,
    DecreaseQuantityByIdsResponse,
    DecreaseQuantityRequest,
    DecreaseQuantityResponse,
    DecreaseQuantityResult,
    GetProductByIdRequest,
    GetProductByIdsRequest,
    GetProductByIdsResponse,
    ProductMessage,
)

logger = logging.getLogger(__name__)

RPC_STATUS_TABLE = {
    "validation": "INVALID_ARGUMENT",
    "not_found": "NOT_FOUND",
    "constraint": "ALREADY_EXISTS",
    "index_desync": "INTERNAL",
    "insufficient_quantity": "FAILED_PRECONDITION",
    "access_denied": "PERMISSION_DENIED",
    "unauthenticated": "UNAUTHENTICATED",
    "transport": "UNAVAILABLE",
    "cancelled": "DEADLINE_EXCEEDED",
    "internal": "INTERNAL",
}

# HTTP statuses used to carry each RPC status name
RPC_HTTP_STATUS = {
    "INVALID_ARGUMENT": 400,
    "NOT_FOUND": 404,
    "ALREADY_EXISTS": 409,
    "FAILED_PRECONDITION": 400,
    "PERMISSION_DENIED": 403,
    "UNAUTHENTICATED": 401,
    "UNAVAILABLE": 503,
    "DEADLINE_EXCEEDED": 504,
    "INTERNAL": 500,
}

ALL_DECREASED = "All quantities decreased successfully"
SOME_FAILED = "Some quantities failed to decrease"


def rpc_status_for(exc: CatalogError) -> str:
    return RPC_STATUS_TABLE.get(exc.kind, "INTERNAL")


class ProductRpcHandler:
    def __init__(self, products: ProductService):
        self._products = products

    def get_product_by_id(
        self, request: GetProductByIdRequest, ctx: OperationContext, language: str = "en"
    ) -> ProductMessage:
        return to_product_message(self._products.get_product(request.id, ctx))

    def get_product_by_ids(
        self, request: GetProductByIdsRequest, ctx: OperationContext, language: str = "en"
    ) -> GetProductByIdsResponse:
        products = self._products.get_products_by_ids(request.ids, ctx)
        return GetProductByIdsResponse(
            products=[to_product_message(product) for product in products]
        )

    def decrease_quantity(
        self, request: DecreaseQuantityRequest, ctx: OperationContext, language: str = "en"
    ) -> DecreaseQuantityResponse:
        new_quantity = self._products.decrease_quantity(
            request.product_id, request.quantity, ctx
        )
        return DecreaseQuantityResponse(
            success=True,
            message="Product quantity decreased successfully",
            new_quantity=new_quantity,
        )

    def decrease_quantity_by_ids(
        self,
        request: DecreaseQuantityByIdsRequest,
        ctx: OperationContext,
        language: str = "en",
    ) -> DecreaseQuantityByIdsResponse:
        outcome = self._products.decrease_quantities(
            [(item.product_id, item.quantity) for item in request.items], ctx
        )
        results = []
        for item in outcome.results:
            if item.success:
                message = "quantity decreased successfully"
            else:
                message = item.error.localized(language)
            results.append(
                DecreaseQuantityResult(
                    product_id=item.product_id,
                    success=item.success,
                    message=message,
                    new_quantity=item.new_quantity,
                )
            )
        return DecreaseQuantityByIdsResponse(
            success=outcome.success,
            message=ALL_DECREASED if outcome.success else SOME_FAILED,
            results=results,
        )


router = APIRouter(prefix="/rpc/product.ProductService", tags=["RPC"])


def rpc_error_response(exc: CatalogError, language: str) -> JSONResponse:
    code = rpc_status_for(exc)
    return JSONResponse(
        status_code=RPC_HTTP_STATUS[code],
        content={"code": code, "message": exc.localized(language)},
    )


def _dispatch(
    request: Request,
    method: str,
    request_model: Type[BaseModel],
    payload: Optional[Dict[str, Any]],
):
    services = request.app.state.services
    language = messages.pick_language(request.headers.get("accept-language"))
    ctx = OperationContext.with_timeout(services.settings.request_timeout_seconds)
    try:
        body = validate_payload(request_model, payload or {})
        return getattr(services.rpc, method)(body, ctx, language)
    except CatalogError as e:
        logger.warning(f"Catalog Service: RPC {method} failed: {e}")
        return rpc_error_response(e, language)


@router.post("/GetProductById", response_model=ProductMessage)
def get_product_by_id(request: Request, payload: Dict[str, Any] = Body(None)):
    return _dispatch(request, "get_product_by_id", GetProductByIdRequest, payload)


@router.post("/GetProductByIds", response_model=GetProductByIdsResponse)
def get_product_by_ids(request: Request, payload: Dict[str, Any] = Body(None)):
    return _dispatch(request, "get_product_by_ids", GetProductByIdsRequest, payload)


@router.post("/DecreaseQuantity", response_model=DecreaseQuantityResponse)
def decrease_quantity(request: Request, payload: Dict[str, Any] = Body(None)):
    return _dispatch(request, "decrease_quantity", DecreaseQuantityRequest, payload)


@router.post("/DecreaseQuantityByIds", response_model=DecreaseQuantityByIdsResponse)
def decrease_quantity_by_ids(request: Request, payload: Dict[str, Any] = Body(None)):
    return _dispatch(
        request, "decrease_quantity_by_ids", DecreaseQuantityByIdsRequest, payload
    )
