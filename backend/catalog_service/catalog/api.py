# backend/catalog_service/catalog/api.py

import logging
import os
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, FastAPI, Query, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse

from . import messages
from .auth import Identity, require_admin
from .context import OperationContext
from .converter import parse_uuid
from .errors import CatalogError, IndexDesyncError, NotFoundError
from .query import parse_search_params, scan_int
from .schemas import (
    AttachImagesRequest,
    AttachImagesResponse,
    ProductCreate,
    ProductImageResponse,
    ProductImageURLResponse,
    ProductPage,
    ProductResponse,
    ReconcileReport,
    SearchResultPage,
)

logger = logging.getLogger(__name__)

HTTP_STATUS_TABLE = {
    "validation": (status.HTTP_422_UNPROCESSABLE_ENTITY, "VALIDATION_ERROR"),
    "not_found": (status.HTTP_404_NOT_FOUND, "NOT_FOUND"),
    "constraint": (status.HTTP_409_CONFLICT, "CONSTRAINT_VIOLATION"),
    "index_desync": (status.HTTP_202_ACCEPTED, "INDEX_DESYNC"),
    "insufficient_quantity": (status.HTTP_409_CONFLICT, "INSUFFICIENT_QUANTITY"),
    "access_denied": (status.HTTP_403_FORBIDDEN, "ACCESS_DENIED"),
    "unauthenticated": (status.HTTP_401_UNAUTHORIZED, "UNAUTHENTICATED"),
    "transport": (status.HTTP_503_SERVICE_UNAVAILABLE, "UPSTREAM_UNAVAILABLE"),
    "cancelled": (status.HTTP_408_REQUEST_TIMEOUT, "CANCELLED"),
    "internal": (status.HTTP_500_INTERNAL_SERVER_ERROR, "INTERNAL_ERROR"),
}


def _language(request: Request) -> str:
    return messages.pick_language(request.headers.get("accept-language"))


def error_body(message: str, code: str, details: Any = None) -> Dict[str, Any]:
    return {
        "success": False,
        "message": message,
        "error": {"code": code, "details": details},
    }


async def catalog_error_handler(request: Request, exc: CatalogError) -> JSONResponse:
    status_code, code = HTTP_STATUS_TABLE.get(exc.kind, HTTP_STATUS_TABLE["internal"])
    content = error_body(exc.localized(_language(request)), code, exc.detail)
    headers = None
    if isinstance(exc, IndexDesyncError) and exc.product is not None:
        content["data"] = exc.product.model_dump(mode="json")
    if exc.kind == "unauthenticated":
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(status_code=status_code, content=content, headers=headers)


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    details = [
        {
            "loc": [str(part) for part in error.get("loc", ())],
            "msg": str(error.get("msg", "")),
            "type": str(error.get("type", "")),
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=error_body(
            messages.translate(messages.INVALID_REQUEST_DATA, _language(request)),
            "VALIDATION_ERROR",
            details,
        ),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Catalog Service: Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body(
            messages.translate(messages.INTERNAL_ERROR, _language(request)),
            "INTERNAL_ERROR",
        ),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(CatalogError, catalog_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)


def get_services(request: Request):
    return request.app.state.services


def operation_context(request: Request) -> OperationContext:
    return OperationContext.with_timeout(
        request.app.state.services.settings.request_timeout_seconds
    )


router = APIRouter(prefix="/api/products", tags=["Products"])
admin_router = APIRouter(prefix="/api/admin", tags=["Admin"])


@router.get("/", response_model=ProductPage, summary="List products page by page")
def list_products(
    page: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
    services=Depends(get_services),
    ctx: OperationContext = Depends(operation_context),
):
    # Lenient: unreadable values fall back to the defaults
    return services.products.list_products(scan_int(page), scan_int(limit), ctx)


@router.get("/search", response_model=SearchResultPage, summary="Search products")
def search_products(
    request: Request,
    services=Depends(get_services),
    ctx: OperationContext = Depends(operation_context),
):
    filters = parse_search_params(request.query_params)
    logger.info(f"Catalog Service: Searching products with filters: {filters}")
    return services.products.search_products(filters, ctx)


@router.get(
    "/images/{image_id}/url",
    response_model=ProductImageURLResponse,
    summary="Get a signed read URL for an image",
)
def get_image_url(
    image_id: str,
    services=Depends(get_services),
    ctx: OperationContext = Depends(operation_context),
):
    return services.images.get_image_url(image_id, ctx)


@router.get("/images/{image_id}/object", summary="Stream an image's bytes")
def get_image_object(
    image_id: str,
    services=Depends(get_services),
    ctx: OperationContext = Depends(operation_context),
):
    image, blob = services.images.open_image(image_id, ctx)
    filename = os.path.basename(image.image_object)
    return StreamingResponse(
        blob.chunks,
        media_type=blob.content_type,
        headers={
            "Content-Length": str(blob.size),
            "Content-Disposition": f'inline; filename="{filename}"',
        },
    )


@router.delete(
    "/images/{image_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an image record",
)
def delete_image(
    image_id: str,
    identity: Identity = Depends(require_admin),
    services=Depends(get_services),
    ctx: OperationContext = Depends(operation_context),
):
    services.images.delete_image(image_id, ctx)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{product_id}", response_model=ProductResponse, summary="Get a product by ID")
def get_product(
    product_id: str,
    services=Depends(get_services),
    ctx: OperationContext = Depends(operation_context),
):
    return services.products.get_product(product_id, ctx)


@router.post(
    "/",
    response_model=ProductResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new product",
)
def create_product(
    product: ProductCreate,
    identity: Identity = Depends(require_admin),
    services=Depends(get_services),
    ctx: OperationContext = Depends(operation_context),
):
    return services.products.create_product(product, identity.user_id, ctx)


@router.put("/{product_id}", response_model=ProductResponse, summary="Update a product")
def update_product(
    product_id: str,
    payload: Dict[str, Any] = Body(...),
    identity: Identity = Depends(require_admin),
    services=Depends(get_services),
    ctx: OperationContext = Depends(operation_context),
):
    # Validated by the service after the product is loaded
    return services.products.update_product(product_id, payload, ctx)


@router.delete(
    "/{product_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a product and its images",
)
def delete_product(
    product_id: str,
    identity: Identity = Depends(require_admin),
    services=Depends(get_services),
    ctx: OperationContext = Depends(operation_context),
):
    services.products.delete_product(product_id, ctx)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{product_id}/images",
    response_model=AttachImagesResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Attach pre-uploaded images to a product",
)
def attach_images(
    product_id: str,
    request: AttachImagesRequest,
    identity: Identity = Depends(require_admin),
    services=Depends(get_services),
    ctx: OperationContext = Depends(operation_context),
):
    return services.images.attach_images(product_id, request.images, ctx)


@router.get(
    "/{product_id}/images/{image_id}",
    response_model=ProductImageResponse,
    summary="Get an image record",
)
def get_image(
    product_id: str,
    image_id: str,
    services=Depends(get_services),
    ctx: OperationContext = Depends(operation_context),
):
    product_id = parse_uuid(product_id, messages.INVALID_PRODUCT_ID_FORMAT)
    image = services.images.get_image(image_id, ctx)
    if image.product_id != product_id:
        raise NotFoundError(messages.IMAGE_NOT_FOUND, detail=image_id)
    return image


@admin_router.post(
    "/reindex", response_model=ReconcileReport, summary="Rebuild the search index"
)
def reindex(
    identity: Identity = Depends(require_admin),
    services=Depends(get_services),
):
    logger.info(f"Catalog Service: Reindex requested by {identity.user_id}.")
    return services.reconciler.run()
