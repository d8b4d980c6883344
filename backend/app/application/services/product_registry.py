"""Application service (use case) for Product catalog operations."""

import dataclasses
import logging
from collections.abc import Mapping
from typing import Any

from app.application.interfaces import DocumentQuery, DocumentStore
from app.domain.entities import Product
from app.domain.exceptions import DuplicateEntityError, EntityNotFoundError

logger = logging.getLogger(__name__)


class ProductRegistry:
    """Code-addressed façade over the id-addressed ``products`` document store.

    Callers address products by business code; the registry resolves the
    code to a store id before every write.
    """

    def __init__(self, store: DocumentStore[Product]):
        self._store = store

    async def create(self, product: Product) -> str:
        """Create a product after checking that its code is unused.

        The lookup and the write are separate operations; a store configured
        with ``unique_fields=("code",)`` rejects the loser of a concurrent race.
        """
        code = product.code.strip()
        if not code:
            raise ValueError("Product code must not be empty")

        existing = await self._first(DocumentQuery().where("code", "==", code))
        if existing is not None:
            raise DuplicateEntityError("Product", "code", code)

        product_id = await self._store.create(dataclasses.replace(product, code=code))
        logger.info("Registered product code=%s id=%s", code, product_id)
        return product_id

    async def get_by_code(self, code: str) -> Product:
        code = code.strip()
        product = await self._first(DocumentQuery().where("code", "==", code))
        if product is None:
            raise EntityNotFoundError("Product", code, field="code")
        return product

    async def find_by_barcode(self, barcode: str) -> Product:
        """First product carrying ``barcode``, in store insertion order."""
        product = await self._first(DocumentQuery().where("barcode_value", "==", barcode))
        if product is None:
            raise EntityNotFoundError("Product", barcode, field="barcode_value")
        return product

    async def find_by_name(self, name: str) -> Product:
        """First product whose name matches exactly, in store insertion order."""
        product = await self._first(DocumentQuery().where("name", "==", name))
        if product is None:
            raise EntityNotFoundError("Product", name, field="name")
        return product

    async def list_products(self) -> list[Product]:
        return await self._store.list()

    async def list_by_company(self, company_id: str) -> list[Product]:
        return await self._store.query(DocumentQuery().where("company_id", "==", company_id))

    async def update(self, code: str, changes: Mapping[str, Any]) -> Product:
        """Apply a partial update; fields not in ``changes`` keep their stored values."""
        if "code" in changes and str(changes["code"]).strip() != code.strip():
            raise ValueError("Product code is immutable")
        product = await self.get_by_code(code)
        fields = {k: v for k, v in changes.items() if k != "code"}
        if not fields:
            return product
        return await self._store.update(product.id, fields)

    async def update_image_metadata(
        self,
        code: str,
        image_url: str,
        barcode_value: str,
        recognition_metadata: str,
    ) -> Product:
        """Touch only the image-related fields (plus ``updated_at``) of a product."""
        product = await self.get_by_code(code)
        updated = await self._store.update(
            product.id,
            {
                "image_url": image_url,
                "barcode_value": barcode_value,
                "recognition_metadata": recognition_metadata,
            },
        )
        logger.info("Updated image metadata for product code=%s", product.code)
        return updated

    async def delete(self, code: str) -> None:
        product = await self.get_by_code(code)
        await self._store.delete(product.id)
        logger.info("Deleted product code=%s", product.code)

    async def _first(self, query: DocumentQuery) -> Product | None:
        matches = await self._store.query(query.limited(1))
        return matches[0] if matches else None
