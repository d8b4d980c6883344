from .document import DocumentKeyModel, DocumentModel

__all__ = [
    "DocumentKeyModel",
    "DocumentModel",
]
