"""Domain entities for product recognition — the tagged outcome of one identification."""

from dataclasses import dataclass
from typing import Any, Union

from app.domain.entities.product import Product


@dataclass(frozen=True)
class Matched:
    """The image resolved to an existing catalog product."""

    product: Product
    barcode: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return {"status": "matched", "product": self.product.summary()}


@dataclass(frozen=True)
class Suggested:
    """No catalog match — offer a creation hint built from the classifier label."""

    name: str
    confidence: float
    barcode: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "action": "create_product",
            "suggested_name": self.name,
            "confidence": self.confidence,
        }
        if self.barcode:
            payload["barcode_value"] = self.barcode
        return payload


@dataclass(frozen=True)
class Failed:
    """Recognition could not produce a usable answer."""

    reason: str
    barcode: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return {"status": "failed", "reason": self.reason}


RecognitionOutcome = Union[Matched, Suggested, Failed]
