# backend/catalog_service/catalog/images.py

import logging
import uuid
from typing import Any, List, Optional, Sequence, Tuple

from . import messages
from .context import OperationContext
from .converter import parse_uuid
from .errors import CatalogError, ValidationError
from .models import ProductImage, utcnow
from .schemas import AttachImagesResponse, ProductImageResponse, ProductImageURLResponse
from .storage import BlobObject, BlobStorage
from .store import RecordStore

logger = logging.getLogger(__name__)


def _object_key(descriptor: Any) -> Optional[str]:
    if not isinstance(descriptor, dict):
        return None
    key = descriptor.get("file_name")
    if not isinstance(key, str) or not key.strip():
        return None
    return key


def _position(descriptor: dict) -> int:
    position = descriptor.get("position")
    if isinstance(position, bool) or not isinstance(position, int):
        return 0
    return position


class ImageService:
    """Attach pre-uploaded objects to products and serve them back."""

    def __init__(self, store: RecordStore, storage: BlobStorage):
        self._store = store
        self._storage = storage

    def attach_images(
        self,
        product_id: Any,
        descriptors: Sequence[Any],
        ctx: Optional[OperationContext] = None,
    ) -> AttachImagesResponse:
        """Create one image row per usable descriptor, all in one transaction.

        Descriptors without a ``file_name`` are skipped. Any failure while
        inserting rolls back the whole batch.
        """
        ctx = ctx or OperationContext()
        product_id = parse_uuid(product_id, messages.INVALID_PRODUCT_ID_FORMAT)
        if not descriptors:
            raise ValidationError(messages.INVALID_REQUEST_DATA, detail="images")

        keys: List[str] = []
        with self._store.begin() as tx:
            ctx.check("load product")
            self._store.find_by_id(tx, product_id)
            try:
                for descriptor in descriptors:
                    key = _object_key(descriptor)
                    if key is None:
                        logger.info(
                            f"Catalog Service: Skipping image descriptor without file_name for product {product_id}."
                        )
                        continue
                    now = utcnow()
                    self._store.create_image(
                        tx,
                        ProductImage(
                            id=str(uuid.uuid4()),
                            product_id=product_id,
                            image_object=key,
                            position=_position(descriptor),
                            created_at=now,
                            updated_at=now,
                        ),
                    )
                    keys.append(key)
                ctx.check("commit images")
                self._store.commit(tx)
            except CatalogError as e:
                logger.error(
                    f"Catalog Service: Error attaching images to product {product_id}: {e}"
                )
                raise

        logger.info(
            f"Catalog Service: Attached {len(keys)} image(s) to product {product_id}."
        )
        return AttachImagesResponse(product_id=product_id, images=keys)

    def get_image(
        self, image_id: Any, ctx: Optional[OperationContext] = None
    ) -> ProductImageResponse:
        ctx = ctx or OperationContext()
        image_id = parse_uuid(image_id, messages.INVALID_IMAGE_ID_FORMAT)
        ctx.check("get image")
        with self._store.begin() as tx:
            return ProductImageResponse.model_validate(self._store.find_image(tx, image_id))

    def delete_image(self, image_id: Any, ctx: Optional[OperationContext] = None) -> None:
        # Only the row goes; the stored object is left in place
        ctx = ctx or OperationContext()
        image_id = parse_uuid(image_id, messages.INVALID_IMAGE_ID_FORMAT)
        with self._store.begin() as tx:
            ctx.check("load image")
            image = self._store.find_image(tx, image_id)
            self._store.delete_image(tx, image)
            ctx.check("commit image delete")
            self._store.commit(tx)
        logger.info(f"Catalog Service: Image {image_id} deleted.")

    def get_image_url(
        self, image_id: Any, ctx: Optional[OperationContext] = None
    ) -> ProductImageURLResponse:
        image = self.get_image(image_id, ctx)
        url = self._storage.presign(image.image_object)
        return ProductImageURLResponse(
            id=image.id,
            product_id=image.product_id,
            image_object=image.image_object,
            url=url,
        )

    def open_image(
        self, image_id: Any, ctx: Optional[OperationContext] = None
    ) -> Tuple[ProductImageResponse, BlobObject]:
        image = self.get_image(image_id, ctx)
        return image, self._storage.stream(image.image_object)
