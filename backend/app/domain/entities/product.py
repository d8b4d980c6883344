"""Domain entity — a catalog product stored in the ``products`` collection."""

from dataclasses import dataclass, field
from typing import Any, ClassVar

from app.domain.entities.record import Record


@dataclass
class Product(Record):
    """Core inventory entity, addressed by its business ``code``.

    ``code`` is caller-assigned and unique. ``barcode_value`` is not unique;
    lookups by barcode return the first product in insertion order.
    ``recognition_metadata`` is the opaque blob from the last recognition
    run and keeps the legacy document key ``image_recognition_data``.
    Brand, category and company ids are opaque references.
    """

    collection: ClassVar[str] = "products"

    code: str = ""
    name: str = ""
    purchase_price: float = 0.0
    sale_price: float = 0.0
    minimum_stock: float = 0.0
    image_url: str = ""
    barcode_value: str = ""
    recognition_metadata: str = field(
        default="", metadata={"key": "image_recognition_data"}
    )
    company_id: str = ""
    brand_id: str = ""
    product_category_id: str = ""

    def summary(self) -> dict[str, Any]:
        """Compact reference used in recognition payloads."""
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "barcode_value": self.barcode_value,
        }
