from .document_store import DocumentQuery, DocumentStore, FieldFilter
from .recognizer import Classification, Recognizer

__all__ = [
    "DocumentQuery",
    "DocumentStore",
    "FieldFilter",
    "Classification",
    "Recognizer",
]
