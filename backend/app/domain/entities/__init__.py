from .record import EPOCH, RECORD_METADATA_FIELDS, Record
from .product import Product
from .recognition import Failed, Matched, RecognitionOutcome, Suggested

__all__ = [
    "EPOCH",
    "RECORD_METADATA_FIELDS",
    "Record",
    "Product",
    "Failed",
    "Matched",
    "RecognitionOutcome",
    "Suggested",
]
