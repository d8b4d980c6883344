from .product_registry import ProductRegistry
from .recognition_pipeline import RecognitionPipeline

__all__ = [
    "ProductRegistry",
    "RecognitionPipeline",
]
