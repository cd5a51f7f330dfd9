# backend/catalog_service/catalog/search_index.py
"""Index gateway: product documents in Elasticsearch."""

import logging
from typing import Any, Dict, Iterator, List, Mapping, Tuple, Union

from elastic_transport import TransportError as ElasticTransportError
from elasticsearch import ApiError, BadRequestError, Elasticsearch, helpers
from pydantic import ValidationError as SchemaValidationError

from . import messages
from .errors import TransportError, ValidationError
from .schemas import SearchDocument

logger = logging.getLogger(__name__)

_CLIENT_ERRORS = (ApiError, ElasticTransportError)


class SearchIndex:
    def __init__(self, client: Elasticsearch, index_name: str):
        self._client = client
        self.index_name = index_name

    def ensure_index(self) -> None:
        try:
            if self._client.indices.exists(index=self.index_name):
                logger.info(
                    f"Catalog Service: Elasticsearch index already exists: {self.index_name}"
                )
                return
            # 400 means another replica created it first
            self._client.options(ignore_status=400).indices.create(index=self.index_name)
            logger.info(
                f"Catalog Service: Created new Elasticsearch index: {self.index_name}"
            )
        except _CLIENT_ERRORS as e:
            raise TransportError(
                messages.FAILED_SEARCH_PRODUCTS, detail="ensure index", cause=e
            ) from e

    def _validate(
        self, product_id: str, document: Union[SearchDocument, Mapping[str, Any]]
    ) -> Dict[str, Any]:
        data = document.model_dump() if isinstance(document, SearchDocument) else dict(document)
        try:
            validated = SearchDocument.model_validate(data)
        except SchemaValidationError as e:
            raise ValidationError(
                messages.INVALID_SEARCH_DOCUMENT, detail=str(e), cause=e
            ) from e
        if validated.id != product_id:
            raise ValidationError(
                messages.INVALID_SEARCH_DOCUMENT,
                detail=f"document id {validated.id} does not match {product_id}",
            )
        return validated.model_dump(mode="json")

    def upsert(
        self, product_id: str, document: Union[SearchDocument, Mapping[str, Any]]
    ) -> None:
        payload = self._validate(product_id, document)
        try:
            self._client.index(index=self.index_name, id=product_id, document=payload)
        except _CLIENT_ERRORS as e:
            logger.error(
                f"Catalog Service: Failed to index document {product_id}: {e}"
            )
            raise TransportError(
                messages.FAILED_INSERT_PRODUCT_TO_INDEX, detail=product_id, cause=e
            ) from e

    def delete_by_id(self, product_id: str) -> None:
        """Remove a document; an id that is not indexed is not an error."""
        try:
            response = self._client.options(ignore_status=404).delete(
                index=self.index_name, id=product_id
            )
        except _CLIENT_ERRORS as e:
            logger.error(
                f"Catalog Service: Failed to delete document {product_id}: {e}"
            )
            raise TransportError(
                messages.FAILED_DELETE_PRODUCT_FROM_INDEX, detail=product_id, cause=e
            ) from e
        body = getattr(response, "body", response)
        if body.get("result") == "not_found":
            logger.info(
                f"Catalog Service: Document {product_id} was not indexed, nothing to delete."
            )

    def search(self, query: Mapping[str, Any]) -> Tuple[List[Dict[str, Any]], int]:
        try:
            response = self._client.search(
                index=self.index_name,
                query=query["query"],
                from_=query["from"],
                size=query["size"],
                sort=query["sort"],
                track_total_hits=True,
            )
        except BadRequestError as e:
            # Rejected query, e.g. from + size past max_result_window
            logger.warning(f"Catalog Service: Search request rejected by the index: {e}")
            raise ValidationError(messages.INVALID_SEARCH_REQUEST, cause=e) from e
        except _CLIENT_ERRORS as e:
            logger.error(f"Catalog Service: Search request failed: {e}")
            raise TransportError(messages.FAILED_SEARCH_PRODUCTS, cause=e) from e

        try:
            hits = response["hits"]
            total = int(hits["total"]["value"])
            documents = [hit["_source"] for hit in hits["hits"] if "_source" in hit]
        except (KeyError, TypeError, ValueError) as e:
            raise TransportError(
                messages.FAILED_SEARCH_PRODUCTS, detail="unexpected response format", cause=e
            ) from e
        return documents, total

    def iter_ids(self) -> Iterator[str]:
        try:
            for hit in helpers.scan(
                self._client,
                index=self.index_name,
                query={"query": {"match_all": {}}, "_source": False},
            ):
                yield hit["_id"]
        except _CLIENT_ERRORS as e:
            raise TransportError(
                messages.FAILED_SEARCH_PRODUCTS, detail="scan ids", cause=e
            ) from e

    def health_check(self) -> bool:
        try:
            return bool(self._client.ping())
        except _CLIENT_ERRORS as e:
            logger.error(f"Catalog Service: Elasticsearch health check failed: {e}")
            return False
