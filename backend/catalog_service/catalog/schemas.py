# backend/catalog_service/catalog/schemas.py

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

# Structural rules shared by request bodies and search documents
ProductName = Annotated[str, Field(min_length=1, max_length=255)]
ProductDescription = Annotated[str, Field(max_length=2000)]
BrandName = Annotated[str, Field(min_length=1, max_length=100)]
PriceAmount = Annotated[Decimal, Field(ge=0, max_digits=12, decimal_places=2)]
StockQuantity = Annotated[int, Field(ge=0)]


class ProductBase(BaseModel):
    name: ProductName
    description: Optional[ProductDescription] = None
    category: Optional[Any] = None
    brand: BrandName
    color: Optional[Any] = None
    specs: Optional[Dict[str, Any]] = None
    price: PriceAmount
    quantity: StockQuantity = 0


class ProductCreate(ProductBase):
    pass


class ProductUpdate(BaseModel):
    """Partial update: omitted (or null) fields keep their stored value."""

    name: Optional[ProductName] = None
    description: Optional[ProductDescription] = None
    category: Optional[Any] = None
    brand: Optional[BrandName] = None
    color: Optional[Any] = None
    specs: Optional[Dict[str, Any]] = None
    price: Optional[PriceAmount] = None
    quantity: Optional[StockQuantity] = None


class ProductImageResponse(BaseModel):
    id: str
    product_id: str
    image_object: str
    position: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProductResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    category: Optional[Any] = None
    brand: str
    color: Optional[Any] = None
    specs: Optional[Dict[str, Any]] = None
    price: Decimal
    quantity: int
    created_by: str
    created_at: datetime
    updated_at: datetime
    images: List[ProductImageResponse] = []

    model_config = ConfigDict(from_attributes=True)


class SearchDocument(BaseModel):
    """Index-side projection of a product, keyed by the product id."""

    id: str = Field(..., min_length=36, max_length=36)
    name: ProductName
    description: Optional[ProductDescription] = None
    category: Optional[Any] = None
    brand: BrandName
    color: Optional[Any] = None
    specs: Optional[Dict[str, Any]] = None
    price: float = Field(..., ge=0)
    quantity: StockQuantity
    created_by: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(extra="forbid")


class PageMetadata(BaseModel):
    current_page: int
    page_size: int
    total_page: int
    total_item: int
    has_next: bool
    has_previous: bool


class ProductPage(BaseModel):
    data: List[ProductResponse]
    pagination: PageMetadata


class SearchResultPage(BaseModel):
    data: List[Dict[str, Any]]
    pagination: PageMetadata


class AttachImagesRequest(BaseModel):
    # Descriptors stay loosely typed; entries without a usable key are skipped
    images: List[Any] = Field(..., min_length=1)


class AttachImagesResponse(BaseModel):
    product_id: str
    images: List[str]


class ProductImageURLResponse(BaseModel):
    id: str
    product_id: str
    image_object: str
    url: str


class ReconcileReport(BaseModel):
    upserted: int = 0
    deleted: List[str] = []
    failed: List[str] = []


# --- Internal RPC surface ---


class GetProductByIdRequest(BaseModel):
    id: str


class GetProductByIdsRequest(BaseModel):
    ids: List[str]


class ProductMessage(BaseModel):
    id: str
    name: str
    description: str = ""
    category: str = ""
    brand: str
    color: str = ""
    specs: str = ""
    price: float
    quantity: int
    created_by: str


class GetProductByIdsResponse(BaseModel):
    products: List[ProductMessage] = []


class DecreaseQuantityRequest(BaseModel):
    product_id: str
    quantity: int


class DecreaseQuantityResponse(BaseModel):
    success: bool
    message: str
    new_quantity: int


class DecreaseQuantityByIdsRequest(BaseModel):
    items: List[DecreaseQuantityRequest] = []


class DecreaseQuantityResult(BaseModel):
    product_id: str
    success: bool
    message: str
    new_quantity: int = 0


class DecreaseQuantityByIdsResponse(BaseModel):
    success: bool
    message: str
    results: List[DecreaseQuantityResult]
